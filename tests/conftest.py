"""Shared pytest fixtures for dream weaver tests."""

import asyncio
import json
import sys
import tempfile
from pathlib import Path
from typing import Callable, Generator, Optional

import pytest

# Add src directory to path for imports
src_path = Path(__file__).parent.parent / "src"
if str(src_path) not in sys.path:
    sys.path.insert(0, str(src_path))

from models.generation import (  # noqa: E402
    CharacterInput,
    GenerationRequest,
    ImageGenerationOutput,
)
from models.presets import ModelSelection  # noqa: E402
from services.storage import LocalResultStorage  # noqa: E402

# Base64 of the 8-byte PNG signature
PNG_BASE64 = "iVBORw0KGgo="
PNG_DATA_URL = f"data:image/png;base64,{PNG_BASE64}"

PASSING_VERIFICATION = {
    "character_consistency_score": 0.9,
    "scene_accuracy_score": 0.85,
    "quality_score": 0.95,
    "issues": [],
    "suggestions": "",
}


class FakeProvider:
    """In-memory model provider that records calls and concurrency.

    ``image_behavior`` receives the prompt and returns an
    ImageGenerationOutput or raises. ``verification_behavior`` receives the
    prompt and returns the raw text response or raises.
    """

    def __init__(
        self,
        story_response: str = "",
        image_behavior: Optional[Callable[[str], ImageGenerationOutput]] = None,
        verification_behavior: Optional[Callable[[str], str]] = None,
        image_delay: float = 0.0,
        analyze_delay: float = 0.0,
    ):
        self.story_response = story_response
        self.image_behavior = image_behavior or (
            lambda prompt: ImageGenerationOutput(success=True, image_data=PNG_DATA_URL)
        )
        self.verification_behavior = verification_behavior or (
            lambda prompt: json.dumps(PASSING_VERIFICATION)
        )
        self.image_delay = image_delay
        self.analyze_delay = analyze_delay
        self.text_calls: list[tuple[str, str]] = []
        self.image_calls: list[tuple[str, str, Optional[str]]] = []
        self.analyze_calls: list[tuple[str, str, str]] = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def generate_text(self, model: str, prompt: str) -> str:
        self.text_calls.append((model, prompt))
        if isinstance(self.story_response, Exception):
            raise self.story_response
        return self.story_response

    async def generate_image(
        self, model: str, prompt: str, negative_prompt: Optional[str] = None
    ) -> ImageGenerationOutput:
        self.image_calls.append((model, prompt, negative_prompt))
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(self.image_delay)
            return self.image_behavior(prompt)
        finally:
            self.in_flight -= 1

    async def analyze_image(self, model: str, prompt: str, image_data: str) -> str:
        self.analyze_calls.append((model, prompt, image_data))
        await asyncio.sleep(self.analyze_delay)
        return self.verification_behavior(prompt)


def make_story(scene_count: int = 3) -> dict:
    """Story response with Aria and Ember and ``scene_count`` scenes."""
    return {
        "characters": {
            "Aria": {
                "name": "Aria",
                "appearance": "long silver hair, violet eyes",
                "outfit": "blue knight armor",
                "personality": "brave",
                "visual_markers": "scar over left eye",
                "color_palette": ["#C0C0C0", "#8A2BE2", "#1E90FF", "#FFFFFF"],
            },
            "Ember": {
                "name": "Ember",
                "appearance": "small red dragon",
                "outfit": "none",
                "personality": "shy",
                "visual_markers": "golden horns",
                "color_palette": ["#FF4500"],
            },
        },
        "script": "Aria meets Ember in the forest. They become friends.",
        "scenes": [
            {
                "id": f"scene_{i + 1}",
                "description": f"Scene {i + 1} of the friendship between Aria and Ember",
                "characters_present": ["Aria", "Ember"],
                "setting": "Enchanted forest",
                "mood": "Hopeful",
                "visual_elements": ["glowing trees", "mist"],
                "dialogue": "Aria: Hello there!",
                "image_prompt": f"PROMPT_SCENE_{i + 1} anime knight and dragon",
                "negative_prompt": "blurry",
            }
            for i in range(scene_count)
        ],
    }


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for test files."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def storage(temp_dir: Path) -> LocalResultStorage:
    """Result storage writing into a temporary directory."""
    return LocalResultStorage(str(temp_dir / "generated"))


@pytest.fixture
def sample_story() -> dict:
    """Three-scene story as the text model would return it."""
    return make_story(3)


@pytest.fixture
def fake_provider(sample_story: dict) -> FakeProvider:
    """Provider that returns the sample story and succeeds on every call."""
    return FakeProvider(story_response=json.dumps(sample_story))


@pytest.fixture
def sample_request() -> GenerationRequest:
    """Three-scene request with two characters."""
    return GenerationRequest(
        outline="A young knight befriends a shy dragon in an enchanted forest",
        characters=(
            CharacterInput("Aria", "brave knight"),
            CharacterInput("Ember", "shy dragon"),
        ),
        style="fantasy",
        scene_count=3,
        quality_preset="standard",
    )


@pytest.fixture
def model_selection() -> ModelSelection:
    return ModelSelection(
        text_model="test/text",
        image_model="test/image",
        verification_model="test/vision",
    )


@pytest.fixture
def sample_config(temp_dir: Path) -> dict:
    """Sample configuration for testing."""
    return {
        "openrouter_api_key": None,
        "openrouter_base_url": "https://openrouter.test/api/v1",
        "site_url": "http://localhost:3000",
        "site_name": "Dream Weaver AI",
        "text_model": "test/text",
        "image_model": "test/image",
        "verification_model": "test/vision",
        "output_dir": str(temp_dir / "generated"),
        "history_db_path": str(temp_dir / "history.db"),
        "image_concurrency": 3,
        "verification_item_timeout": 15.0,
        "verification_batch_timeout": 30.0,
        "models_cache_ttl_seconds": 3600,
        "budget_limit_usd": 0.0,
        "log_level": "INFO",
        "log_json": False,
        "cors_origins": ["http://localhost:3000"],
    }
