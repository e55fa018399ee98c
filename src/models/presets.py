"""Quality presets and model selection."""

import json
import logging
from dataclasses import dataclass
from typing import Optional

logger = logging.getLogger(__name__)

DEFAULT_VERIFICATION_THRESHOLD = 0.75
STRICT_VERIFICATION_THRESHOLD = 0.85


@dataclass(frozen=True)
class QualityPreset:
    """Named bundle of attempt cap, verification policy and cost multiplier."""

    id: str
    name: str
    description: str
    max_attempts: int
    skip_verification: bool
    cost_multiplier: float
    strict_verification: bool = False

    @property
    def verification_threshold(self) -> float:
        if self.strict_verification:
            return STRICT_VERIFICATION_THRESHOLD
        return DEFAULT_VERIFICATION_THRESHOLD

    def to_dict(self) -> dict:
        """Convert to dictionary for API responses."""
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "max_attempts": self.max_attempts,
            "skip_verification": self.skip_verification,
            "strict_verification": self.strict_verification,
            "verification_threshold": self.verification_threshold,
            "cost_multiplier": self.cost_multiplier,
        }


QUALITY_PRESETS: dict[str, QualityPreset] = {
    "draft": QualityPreset(
        id="draft",
        name="Draft",
        description="Fast generation, lower cost. Single attempt, no quality verification.",
        max_attempts=1,
        skip_verification=True,
        cost_multiplier=0.7,
    ),
    "standard": QualityPreset(
        id="standard",
        name="Standard",
        description="Balanced quality and speed. Up to 3 attempts with quality checks.",
        max_attempts=3,
        skip_verification=False,
        cost_multiplier=1.0,
    ),
    "premium": QualityPreset(
        id="premium",
        name="Premium",
        description="Best quality. Up to 5 attempts with strict verification (85% threshold).",
        max_attempts=5,
        skip_verification=False,
        cost_multiplier=1.5,
        strict_verification=True,
    ),
}

DEFAULT_PRESET_ID = "standard"


def get_preset(preset_id: Optional[str] = None) -> QualityPreset:
    """Get a preset by id, falling back to the standard preset."""
    if preset_id and preset_id not in QUALITY_PRESETS:
        logger.warning(f"Unknown quality preset '{preset_id}', using {DEFAULT_PRESET_ID}")
    return QUALITY_PRESETS.get(preset_id or DEFAULT_PRESET_ID, QUALITY_PRESETS[DEFAULT_PRESET_ID])


@dataclass(frozen=True)
class ModelSelection:
    """Model ids used for each kind of remote call."""

    text_model: str
    image_model: str
    verification_model: str

    def to_dict(self) -> dict:
        return {
            "text_model": self.text_model,
            "image_model": self.image_model,
            "verification_model": self.verification_model,
        }

    @classmethod
    def from_config(cls, config: dict) -> "ModelSelection":
        """Build the default selection from the loaded configuration."""
        return cls(
            text_model=config["text_model"],
            image_model=config["image_model"],
            verification_model=config["verification_model"],
        )

    def override(self, data: Optional[dict]) -> "ModelSelection":
        """Return a copy with any model ids present in ``data`` applied.

        Accepts both camelCase (``textModel``) and snake_case keys; empty or
        non-string values keep the current model.
        """
        if not isinstance(data, dict):
            return self

        def pick(snake: str, camel: str, current: str) -> str:
            value = data.get(camel, data.get(snake))
            return value.strip() if isinstance(value, str) and value.strip() else current

        return ModelSelection(
            text_model=pick("text_model", "textModel", self.text_model),
            image_model=pick("image_model", "imageModel", self.image_model),
            verification_model=pick(
                "verification_model", "verificationModel", self.verification_model
            ),
        )


def parse_model_selection_header(header: Optional[str], defaults: ModelSelection) -> ModelSelection:
    """Parse the model-selection header, falling back to defaults if malformed."""
    if not header:
        return defaults
    try:
        data = json.loads(header)
    except json.JSONDecodeError:
        logger.warning("Ignoring malformed model selection header")
        return defaults
    return defaults.override(data)
