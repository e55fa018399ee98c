"""Story generation: characters, script and scenes in a single text-model call."""

import logging
import random
from typing import Optional

from models.generation import (
    CharacterProfile,
    GenerationRequest,
    Scene,
    StoryBundle,
)
from services.openrouter_client import ModelProvider
from services.prompts import (
    COMIC_MODE_INSTRUCTIONS,
    COMPLETE_STORY,
    DEFAULT_NEGATIVE_PROMPT,
    IDEA_COMPLEXITY,
    IDEA_TONES,
    STORY_IDEA,
    style_guide,
)
from utils.json_extract import JSONExtractionError, extract_json

logger = logging.getLogger(__name__)

IDEA_GENRES = ["fantasy", "sci-fi", "romance", "mystery", "slice-of-life", "action", "horror"]


class StoryGenerationError(Exception):
    """The story step could not produce a usable story."""

    pass


def build_story_prompt(request: GenerationRequest) -> str:
    """Render the complete-story prompt for a request."""
    character_list = "\n".join(f"- {c.name}: {c.traits}" for c in request.characters)
    return COMPLETE_STORY.format(
        outline=request.outline,
        character_list=character_list,
        style=request.style,
        style_guide=style_guide(request.style),
        scene_count=request.scene_count,
        comic_mode_instructions=COMIC_MODE_INSTRUCTIONS if request.comic_mode else "",
        negative_prompt=DEFAULT_NEGATIVE_PROMPT,
    )


def parse_characters(raw) -> dict[str, CharacterProfile]:
    """Accept either a name-keyed mapping or a list of character objects."""
    characters: dict[str, CharacterProfile] = {}
    if isinstance(raw, dict):
        for key, data in raw.items():
            if isinstance(data, dict):
                profile = CharacterProfile.from_dict(str(key), data)
                characters[profile.name] = profile
    elif isinstance(raw, list):
        for i, data in enumerate(raw):
            if isinstance(data, dict):
                profile = CharacterProfile.from_dict(f"Character {i + 1}", data)
                characters[profile.name] = profile
    return characters


def _fallback_image_prompt(scene: Scene, style: str) -> str:
    parts = ["masterpiece, best quality, anime art", style_guide(style), scene.description]
    if scene.setting:
        parts.append(f"setting: {scene.setting}")
    if scene.mood:
        parts.append(f"{scene.mood} mood")
    return ", ".join(p for p in parts if p)


class StoryGenerator:
    """Turns a generation request into a StoryBundle."""

    def __init__(self, provider: ModelProvider):
        self.provider = provider

    async def generate(self, request: GenerationRequest, model: str) -> StoryBundle:
        """Generate the characters, script and scenes for a request.

        Args:
            request: The submitted request
            model: Text model id

        Returns:
            StoryBundle with at most ``request.scene_count`` scenes

        Raises:
            StoryGenerationError: On a failed call, unparseable output or no scenes
        """
        prompt = build_story_prompt(request)
        try:
            response = await self.provider.generate_text(model, prompt)
        except Exception as e:
            raise StoryGenerationError(f"Story model call failed: {e}") from e

        try:
            data = extract_json(response)
        except JSONExtractionError as e:
            logger.error(f"Failed to parse story response: {e}")
            raise StoryGenerationError(f"Failed to parse story: {e}") from e

        if not isinstance(data, dict):
            raise StoryGenerationError("Story response is not a JSON object")

        missing = [key for key in ("characters", "script", "scenes") if not data.get(key)]
        if missing:
            raise StoryGenerationError(f"Story response missing: {', '.join(missing)}")

        raw_scenes = data["scenes"]
        if not isinstance(raw_scenes, list):
            raise StoryGenerationError("Story response 'scenes' is not a list")

        scenes: list[Scene] = []
        for i, raw in enumerate(raw_scenes[: request.scene_count]):
            if not isinstance(raw, dict):
                logger.warning(f"Skipping malformed scene at position {i}")
                continue
            scene = Scene.from_dict(raw, len(scenes))
            if not scene.image_prompt:
                scene.image_prompt = _fallback_image_prompt(scene, request.style)
            if not scene.negative_prompt:
                scene.negative_prompt = DEFAULT_NEGATIVE_PROMPT
            scenes.append(scene)

        if not scenes:
            raise StoryGenerationError("Story response contained no scenes")

        if len(raw_scenes) != request.scene_count:
            logger.warning(
                f"Story model returned {len(raw_scenes)} scenes, requested {request.scene_count}"
            )

        bundle = StoryBundle(
            characters=parse_characters(data["characters"]),
            script=str(data["script"]),
            scenes=scenes,
        )
        logger.info(
            f"Story generated: {len(bundle.characters)} characters, {len(bundle.scenes)} scenes"
        )
        return bundle

    async def generate_idea(
        self,
        model: str,
        genre: Optional[str] = None,
        tone: str = "balanced",
        complexity: str = "standard",
        keywords: Optional[str] = None,
    ) -> dict:
        """Generate a random story idea to pre-fill a request.

        Returns:
            Dict with ``outline``, ``characters``, ``style`` and ``scenes``

        Raises:
            StoryGenerationError: If the response is missing or malformed
        """
        ranges = IDEA_COMPLEXITY.get(complexity, IDEA_COMPLEXITY["standard"])
        keywords_section = f"\n\nIncorporate these elements: {keywords}" if keywords else ""
        prompt = STORY_IDEA.format(
            genre=genre or random.choice(IDEA_GENRES),
            tone_description=IDEA_TONES.get(tone, IDEA_TONES["balanced"]),
            character_range=ranges["characters"],
            scene_range=ranges["scenes"],
            keywords_section=keywords_section,
        )

        try:
            idea = extract_json(await self.provider.generate_text(model, prompt))
        except JSONExtractionError as e:
            raise StoryGenerationError(f"Failed to parse story idea: {e}") from e

        if not isinstance(idea, dict) or not all(
            idea.get(key) for key in ("outline", "characters", "style", "scenes")
        ):
            raise StoryGenerationError("Invalid response structure")
        return idea
