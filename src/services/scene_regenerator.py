"""Regeneration of a single scene image with the caller's prompt."""

import logging
from contextlib import aclosing
from typing import AsyncIterator, Optional

from models.generation import (
    CharacterProfile,
    GeneratedScene,
    ProgressEvent,
    ProgressStage,
    Scene,
    VerificationResult,
)
from models.presets import ModelSelection, QualityPreset
from services.image_runner import generate_with_retries
from services.openrouter_client import ModelProvider
from services.progress import ProgressEmitter, stream_events
from services.result_assembler import inline_data_url
from services.storage import LocalResultStorage, StorageError, generate_image_filename
from services.verification_runner import DEFAULT_ITEM_TIMEOUT, VerificationRunner
from utils.cost_tracker import calculate_cost
from utils.prompt_cache import CharacterDescriptionCache

logger = logging.getLogger(__name__)

PREPARING = 10
GENERATING = 30
RETRY_STEP = 15
# Retry events stay below the saving step
RETRY_CAP = 65
SAVING = 70
VERIFYING = 85


def build_regeneration_prompt(image_prompt: str, modifications: Optional[str] = None) -> str:
    """Append the caller's modification text to the scene prompt."""
    if modifications and modifications.strip():
        return f"{image_prompt}, {modifications.strip()}"
    return image_prompt


class SceneRegenerator:
    """Re-runs the attempt loop for one scene and reports progress."""

    def __init__(
        self,
        provider: ModelProvider,
        storage: LocalResultStorage,
        cache: Optional[CharacterDescriptionCache] = None,
        item_timeout: float = DEFAULT_ITEM_TIMEOUT,
        background_tasks: Optional[set] = None,
    ):
        self.provider = provider
        self.storage = storage
        self.verifier = VerificationRunner(provider, cache=cache, item_timeout=item_timeout)
        self._background_tasks: set = background_tasks if background_tasks is not None else set()

    async def stream(
        self,
        scene: Scene,
        characters: dict[str, CharacterProfile],
        image_prompt: str,
        models: ModelSelection,
        preset: QualityPreset,
        negative_prompt: Optional[str] = None,
        modifications: Optional[str] = None,
        result_id: Optional[str] = None,
    ) -> AsyncIterator[ProgressEvent]:
        """Regenerate the scene image, yielding ``regenerating`` events then
        ``complete`` (with the new GeneratedScene) or ``error``."""

        async def producer(emitter: ProgressEmitter) -> None:
            await self.run(
                emitter,
                scene,
                characters,
                image_prompt,
                models,
                preset,
                negative_prompt=negative_prompt,
                modifications=modifications,
                result_id=result_id,
            )

        async with aclosing(stream_events(producer, self._background_tasks)) as events:
            async for event in events:
                yield event

    async def run(
        self,
        emitter: ProgressEmitter,
        scene: Scene,
        characters: dict[str, CharacterProfile],
        image_prompt: str,
        models: ModelSelection,
        preset: QualityPreset,
        negative_prompt: Optional[str] = None,
        modifications: Optional[str] = None,
        result_id: Optional[str] = None,
    ) -> Optional[GeneratedScene]:
        """Regenerate one scene, emitting into ``emitter``.

        Returns:
            The regenerated scene, or None if every attempt failed
        """
        try:
            return await self._run(
                emitter,
                scene,
                characters,
                image_prompt,
                models,
                preset,
                negative_prompt,
                modifications,
                result_id,
            )
        except Exception as e:
            logger.exception(f"Regeneration of scene {scene.id} failed: {e}")
            await emitter.fail(f"Error: {e}")
            return None

    async def _run(
        self,
        emitter: ProgressEmitter,
        scene: Scene,
        characters: dict[str, CharacterProfile],
        image_prompt: str,
        models: ModelSelection,
        preset: QualityPreset,
        negative_prompt: Optional[str],
        modifications: Optional[str],
        result_id: Optional[str],
    ) -> Optional[GeneratedScene]:
        await emitter.progress(
            ProgressStage.REGENERATING, PREPARING, f"Preparing to regenerate {scene.id}..."
        )
        prompt = build_regeneration_prompt(image_prompt, modifications)

        await emitter.progress(ProgressStage.REGENERATING, GENERATING, "Generating new image...")

        async def on_attempt_failed(attempt: int, error: str) -> None:
            if attempt >= preset.max_attempts:
                return
            await emitter.progress(
                ProgressStage.REGENERATING,
                min(GENERATING + RETRY_STEP * attempt, RETRY_CAP),
                f"Attempt {attempt} failed, retrying ({attempt + 1}/{preset.max_attempts})...",
            )

        result = await generate_with_retries(
            self.provider,
            models.image_model,
            scene.id,
            prompt,
            negative_prompt or scene.negative_prompt,
            preset.max_attempts,
            on_attempt_failed,
        )
        if not result.success:
            await emitter.fail(
                f"Error: Failed to regenerate image after {result.attempts} attempts: {result.error}"
            )
            return None

        await emitter.progress(ProgressStage.REGENERATING, SAVING, "Saving image...")
        try:
            image_url = self.storage.save_image(
                result.image_data, generate_image_filename(scene.id)
            )
        except StorageError as e:
            logger.warning(f"Keeping regenerated {scene.id} image inline: {e}")
            image_url = inline_data_url(result.image_data)

        verification: Optional[VerificationResult] = None
        if not preset.skip_verification:
            await emitter.progress(ProgressStage.REGENERATING, VERIFYING, "Verifying quality...")
            verification = await self.verifier.verify_with_timeout(
                result.image_data,
                scene,
                characters,
                models.verification_model,
                preset.verification_threshold,
            )

        generated = GeneratedScene(
            scene_id=scene.id,
            image_url=image_url,
            description=scene.description,
            attempts=result.attempts,
            dialogue=scene.dialogue,
            setting=scene.setting,
            verification=verification,
        )

        if result_id:
            self.update_stored_result(result_id, generated, preset)

        await emitter.progress(
            ProgressStage.COMPLETE,
            100,
            "Scene regenerated successfully!",
            data=generated.to_dict(),
        )
        logger.info(f"Regenerated scene {scene.id} in {result.attempts} attempt(s)")
        return generated

    def update_stored_result(
        self, result_id: str, generated: GeneratedScene, preset: QualityPreset
    ) -> bool:
        """Replace the matching scene in a stored final snapshot.

        Returns:
            True if the snapshot was updated
        """
        filename = f"{result_id}.json"
        try:
            snapshot = self.storage.load_result_json(filename)
        except StorageError as e:
            logger.warning(f"Cannot update stored result {result_id}: {e}")
            return False

        scenes = snapshot.get("scenes") or []
        for i, stored in enumerate(scenes):
            if stored.get("scene_id") == generated.scene_id:
                scenes[i] = generated.to_dict()
                break
        else:
            logger.warning(f"Scene {generated.scene_id} not found in {result_id}")
            return False

        with_image = [s for s in scenes if s.get("image_url")]
        passed = sum(1 for s in with_image if (s.get("verification") or {}).get("passed"))
        metadata = snapshot.setdefault("metadata", {})
        metadata["passed_verification"] = passed
        metadata["needs_review"] = len(with_image) - passed
        metadata["actual_cost"] = calculate_cost(len(with_image), preset.cost_multiplier)

        try:
            self.storage.save_result_json(snapshot, filename)
        except StorageError as e:
            logger.warning(f"Failed to save updated result {result_id}: {e}")
            return False
        logger.info(f"Updated scene {generated.scene_id} in stored result {result_id}")
        return True
