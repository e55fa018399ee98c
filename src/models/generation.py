"""Models for story generation, scene images, verification and progress."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Generic, Optional, TypeVar, Union

T = TypeVar("T")

MAX_DESCRIPTION_WORDS = 15


@dataclass(frozen=True)
class CharacterInput:
    """A character as supplied by the user."""

    name: str
    traits: str

    def to_dict(self) -> dict:
        """Convert to dictionary for API responses."""
        return {"name": self.name, "traits": self.traits}


@dataclass(frozen=True)
class GenerationRequest:
    """A submitted generation request. Immutable once created."""

    outline: str
    characters: tuple[CharacterInput, ...]
    style: str
    scene_count: int
    comic_mode: bool = False
    quality_preset: str = "standard"

    def to_dict(self) -> dict:
        """Convert to dictionary for history records."""
        return {
            "outline": self.outline,
            "characters": [c.to_dict() for c in self.characters],
            "style": self.style,
            "scene_count": self.scene_count,
            "comic_mode": self.comic_mode,
            "quality_preset": self.quality_preset,
        }


@dataclass
class CharacterProfile:
    """Visual design of a character, reused across every scene prompt."""

    name: str
    appearance: str = ""
    outfit: str = ""
    personality: str = ""
    visual_markers: str = ""
    color_palette: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        """Convert to dictionary for API responses."""
        return {
            "name": self.name,
            "appearance": self.appearance,
            "outfit": self.outfit,
            "personality": self.personality,
            "visual_markers": self.visual_markers,
            "color_palette": list(self.color_palette),
        }

    @classmethod
    def from_dict(cls, name: str, data: dict) -> "CharacterProfile":
        """Build a profile from model output, tolerating missing fields."""
        palette = data.get("color_palette") or []
        if isinstance(palette, str):
            palette = [c.strip() for c in palette.split(",") if c.strip()]
        return cls(
            name=str(data.get("name") or name),
            appearance=str(data.get("appearance", "")),
            outfit=str(data.get("outfit", "")),
            personality=str(data.get("personality", "")),
            visual_markers=str(data.get("visual_markers", "")),
            color_palette=[str(c) for c in palette][:3],
        )


def shorten_description(text: str, max_words: int = MAX_DESCRIPTION_WORDS) -> str:
    """Trim a viewer-facing description to at most ``max_words`` words."""
    words = (text or "").split()
    if len(words) <= max_words:
        return " ".join(words)
    return " ".join(words[:max_words]).rstrip(",;:") + "..."


def _as_list(value) -> list:
    # Models sometimes return a comma-separated string instead of an array
    if not value:
        return []
    if isinstance(value, str):
        return [v.strip() for v in value.split(",") if v.strip()]
    return list(value)


@dataclass
class Scene:
    """One unit of the story that receives exactly one image."""

    id: str
    description: str
    characters_present: list[str] = field(default_factory=list)
    setting: str = ""
    mood: str = ""
    visual_elements: list[str] = field(default_factory=list)
    dialogue: Optional[str] = None
    image_prompt: str = ""
    negative_prompt: Optional[str] = None

    def to_dict(self) -> dict:
        """Convert to dictionary for API responses."""
        return {
            "id": self.id,
            "description": self.description,
            "characters_present": list(self.characters_present),
            "setting": self.setting,
            "mood": self.mood,
            "visual_elements": list(self.visual_elements),
            "dialogue": self.dialogue,
            "image_prompt": self.image_prompt,
            "negative_prompt": self.negative_prompt,
        }

    @classmethod
    def from_dict(cls, data: dict, index: int = 0) -> "Scene":
        """Build a scene from model output or a request body.

        Args:
            data: Raw scene dictionary
            index: Position of the scene, used for a fallback id
        """
        characters = _as_list(data.get("characters_present"))
        elements = _as_list(data.get("visual_elements"))
        return cls(
            id=str(data.get("id") or f"scene_{index + 1}"),
            description=shorten_description(str(data.get("description", ""))),
            characters_present=[str(c) for c in characters],
            setting=str(data.get("setting", "")),
            mood=str(data.get("mood", "")),
            visual_elements=[str(e) for e in elements],
            dialogue=data.get("dialogue") or None,
            image_prompt=str(data.get("image_prompt", "")),
            negative_prompt=data.get("negative_prompt") or None,
        )


@dataclass
class StoryBundle:
    """Characters, script and ordered scenes produced by the story step."""

    characters: dict[str, CharacterProfile]
    script: str
    scenes: list[Scene]

    def to_dict(self) -> dict:
        """Convert to dictionary for API responses."""
        return {
            "characters": {name: c.to_dict() for name, c in self.characters.items()},
            "script": self.script,
            "scenes": [s.to_dict() for s in self.scenes],
        }


@dataclass
class ImageGenerationOutput:
    """What the model provider returns for a single image request."""

    success: bool
    image_data: Optional[str] = None
    error: Optional[str] = None


@dataclass
class ImageAttemptResult:
    """Outcome of the attempt loop for one scene."""

    scene_id: str
    success: bool
    attempts: int
    image_data: Optional[str] = None
    error: Optional[str] = None


@dataclass(frozen=True)
class Success(Generic[T]):
    """A work item that completed normally."""

    value: T


@dataclass(frozen=True)
class Failure:
    """A work item that raised; the exception is kept as data."""

    error: BaseException

    @property
    def message(self) -> str:
        return str(self.error) or type(self.error).__name__


Outcome = Union[Success[T], Failure]


@dataclass
class VerificationResult:
    """Automated quality check of one generated image.

    ``passed`` is derived from the mean of the three scores against the
    threshold that was active when the result was produced.
    """

    passed: bool
    character_consistency_score: float
    scene_accuracy_score: float
    quality_score: float
    issues: list[str] = field(default_factory=list)
    suggestions: str = ""

    @property
    def average_score(self) -> float:
        return (
            self.character_consistency_score
            + self.scene_accuracy_score
            + self.quality_score
        ) / 3

    @classmethod
    def from_scores(cls, data: dict, threshold: float) -> "VerificationResult":
        """Build a result from a model's analysis, recomputing ``passed``.

        Args:
            data: Parsed analysis with the three score fields
            threshold: Minimum mean score to pass

        Raises:
            ValueError: If a score is missing or not numeric
        """

        def score(key: str) -> float:
            value = data.get(key)
            if value is None:
                raise ValueError(f"Verification response missing '{key}'")
            return min(1.0, max(0.0, float(value)))

        issues = data.get("issues") or []
        if isinstance(issues, str):
            issues = [issues]

        result = cls(
            passed=False,
            character_consistency_score=score("character_consistency_score"),
            scene_accuracy_score=score("scene_accuracy_score"),
            quality_score=score("quality_score"),
            issues=[str(i) for i in issues],
            suggestions=str(data.get("suggestions") or ""),
        )
        result.passed = result.average_score >= threshold
        return result

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        return {
            "passed": self.passed,
            "character_consistency_score": self.character_consistency_score,
            "scene_accuracy_score": self.scene_accuracy_score,
            "quality_score": self.quality_score,
            "issues": list(self.issues),
            "suggestions": self.suggestions,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "VerificationResult":
        return cls(
            passed=bool(data.get("passed")),
            character_consistency_score=float(data.get("character_consistency_score", 0.0)),
            scene_accuracy_score=float(data.get("scene_accuracy_score", 0.0)),
            quality_score=float(data.get("quality_score", 0.0)),
            issues=list(data.get("issues") or []),
            suggestions=str(data.get("suggestions") or ""),
        )


@dataclass
class GeneratedScene:
    """Durable per-scene record that appears in every snapshot."""

    scene_id: str
    image_url: str
    description: str
    attempts: int
    dialogue: Optional[str] = None
    setting: Optional[str] = None
    error: Optional[str] = None
    verification: Optional[VerificationResult] = None

    @property
    def has_image(self) -> bool:
        return bool(self.image_url)

    def to_dict(self) -> dict:
        """Convert to dictionary for snapshots and progress payloads."""
        data: dict[str, Any] = {
            "scene_id": self.scene_id,
            "image_url": self.image_url,
            "description": self.description,
            "dialogue": self.dialogue,
            "setting": self.setting,
            "attempts": self.attempts,
        }
        if self.error:
            data["error"] = self.error
        if self.verification is not None:
            data["verification"] = self.verification.to_dict()
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "GeneratedScene":
        verification = data.get("verification")
        return cls(
            scene_id=str(data["scene_id"]),
            image_url=str(data.get("image_url") or ""),
            description=str(data.get("description") or ""),
            attempts=int(data.get("attempts", 0)),
            dialogue=data.get("dialogue"),
            setting=data.get("setting"),
            error=data.get("error"),
            verification=VerificationResult.from_dict(verification) if verification else None,
        )


@dataclass
class SnapshotMetadata:
    """Metadata block of a persisted or emitted snapshot."""

    total_scenes: int
    passed_verification: int = 0
    needs_review: int = 0
    generation_time_seconds: float = 0.0
    timestamp: str = field(default_factory=lambda: datetime.now().isoformat())
    success: bool = True
    estimated_cost: Optional[float] = None
    actual_cost: Optional[float] = None
    partial: Optional[bool] = None
    completed_scenes: Optional[int] = None
    verification_pending: Optional[bool] = None
    verification_completed: Optional[bool] = None
    quality_preset: Optional[str] = None

    def to_dict(self) -> dict:
        """Convert to dictionary, omitting unset optional flags."""
        data: dict[str, Any] = {
            "success": self.success,
            "total_scenes": self.total_scenes,
            "passed_verification": self.passed_verification,
            "needs_review": self.needs_review,
            "generation_time_seconds": round(self.generation_time_seconds, 2),
            "timestamp": self.timestamp,
        }
        optional = {
            "estimated_cost": self.estimated_cost,
            "actual_cost": self.actual_cost,
            "partial": self.partial,
            "completed_scenes": self.completed_scenes,
            "verification_pending": self.verification_pending,
            "verification_completed": self.verification_completed,
            "quality_preset": self.quality_preset,
        }
        data.update({k: v for k, v in optional.items() if v is not None})
        return data


@dataclass
class GenerationSnapshot:
    """Generation result at a point in time (partial, preliminary or final)."""

    script: str
    characters: dict[str, CharacterProfile]
    scenes: list[GeneratedScene]
    metadata: SnapshotMetadata

    def to_dict(self) -> dict:
        """Convert to the JSON shape that is persisted and streamed."""
        return {
            "script": self.script,
            "characters": {name: c.to_dict() for name, c in self.characters.items()},
            "scenes": [s.to_dict() for s in self.scenes],
            "metadata": self.metadata.to_dict(),
        }


class ProgressStage(str, Enum):
    """Stages reported on the progress stream."""

    STORY = "story"
    IMAGE = "image"
    IMAGES_COMPLETE = "images_complete"
    VERIFICATION = "verification"
    COMPLETE = "complete"
    ERROR = "error"
    REGENERATING = "regenerating"

    @property
    def is_terminal(self) -> bool:
        return self in (ProgressStage.COMPLETE, ProgressStage.ERROR)


@dataclass
class ProgressEvent:
    """One unit of the ordered status stream."""

    stage: ProgressStage
    progress: int
    message: str
    current_scene: Optional[int] = None
    total_scenes: Optional[int] = None
    data: Optional[dict] = None

    def to_dict(self) -> dict:
        """Convert to the wire shape (camelCase counters)."""
        payload: dict[str, Any] = {
            "stage": self.stage.value,
            "progress": self.progress,
            "message": self.message,
        }
        if self.current_scene is not None:
            payload["currentScene"] = self.current_scene
        if self.total_scenes is not None:
            payload["totalScenes"] = self.total_scenes
        if self.data is not None:
            payload["data"] = self.data
        return payload

    @classmethod
    def from_dict(cls, data: dict) -> "ProgressEvent":
        return cls(
            stage=ProgressStage(data["stage"]),
            progress=int(data.get("progress", 0)),
            message=str(data.get("message", "")),
            current_scene=data.get("currentScene"),
            total_scenes=data.get("totalScenes"),
            data=data.get("data"),
        )
