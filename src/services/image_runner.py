"""Parallel scene image generation with bounded concurrency and retries."""

import asyncio
import logging
from typing import Awaitable, Callable, Optional

from models.generation import (
    Failure,
    ImageAttemptResult,
    Outcome,
    Scene,
    Success,
)
from services.openrouter_client import ModelProvider

logger = logging.getLogger(__name__)

DEFAULT_CONCURRENCY = 3

# Suffixes appended cumulatively on retries: attempt N applies the first N.
MUTATION_STRATEGIES = [
    ", ultra detailed, 8k masterpiece, perfect composition, award winning",
    ", alternative angle, different perspective, professional lighting",
    ", cinematic composition, dramatic depth of field, rich color grading",
    ", clean uncluttered background, sharp focus on the characters",
]

AttemptFailedCallback = Callable[[int, str], Awaitable[None]]
SceneDoneCallback = Callable[[int, int, Scene, Outcome], Awaitable[None]]


def mutate_prompt(prompt: str, attempt: int) -> str:
    """Return the prompt to use for a zero-based attempt number.

    Attempt 0 is unmodified. Later attempts append one more strategy each,
    capped at the number of strategies available.
    """
    count = min(max(attempt, 0), len(MUTATION_STRATEGIES))
    return prompt + "".join(MUTATION_STRATEGIES[:count])


async def generate_with_retries(
    provider: ModelProvider,
    model: str,
    scene_id: str,
    prompt: str,
    negative_prompt: Optional[str],
    max_attempts: int,
    on_attempt_failed: Optional[AttemptFailedCallback] = None,
) -> ImageAttemptResult:
    """Try to generate an image up to ``max_attempts`` times.

    Both a failure result and a raised provider exception count as a failed
    attempt. Stops at the first success.

    Args:
        provider: Model provider used for image calls
        model: Image model id
        scene_id: Scene the image belongs to
        prompt: Base image prompt
        negative_prompt: Things to avoid
        max_attempts: Attempt cap (at least 1)
        on_attempt_failed: Awaited with (attempt_number, error) after each failure

    Returns:
        ImageAttemptResult; on total failure ``attempts == max_attempts``
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be at least 1")

    last_error = "Image generation failed"
    for attempt in range(max_attempts):
        attempt_prompt = mutate_prompt(prompt, attempt)
        try:
            output = await provider.generate_image(model, attempt_prompt, negative_prompt)
        except Exception as e:
            last_error = str(e) or type(e).__name__
        else:
            if output.success and output.image_data:
                if attempt > 0:
                    logger.info(f"Scene {scene_id} succeeded on attempt {attempt + 1}")
                return ImageAttemptResult(
                    scene_id=scene_id,
                    success=True,
                    attempts=attempt + 1,
                    image_data=output.image_data,
                )
            last_error = output.error or "No image in response"

        logger.warning(
            f"Scene {scene_id} attempt {attempt + 1}/{max_attempts} failed: {last_error}"
        )
        if on_attempt_failed is not None:
            await on_attempt_failed(attempt + 1, last_error)

    return ImageAttemptResult(
        scene_id=scene_id,
        success=False,
        attempts=max_attempts,
        error=last_error,
    )


class ImageRunner:
    """Generates one image per scene, at most ``concurrency`` in flight.

    Every scene is settled: an exception in one work item is captured as a
    ``Failure`` and never cancels the others.
    """

    def __init__(self, provider: ModelProvider, concurrency: int = DEFAULT_CONCURRENCY):
        if concurrency < 1:
            raise ValueError("concurrency must be at least 1")
        self.provider = provider
        self.concurrency = concurrency

    async def run(
        self,
        scenes: list[Scene],
        model: str,
        max_attempts: int,
        on_scene_done: Optional[SceneDoneCallback] = None,
    ) -> list[Outcome]:
        """Generate images for all scenes.

        Args:
            scenes: Scenes in story order
            model: Image model id
            max_attempts: Attempt cap per scene
            on_scene_done: Awaited with (completed, total, scene, outcome) as each
                scene finishes, in completion order

        Returns:
            One Outcome per scene, in the same order as ``scenes``
        """
        semaphore = asyncio.Semaphore(self.concurrency)
        total = len(scenes)
        completed = 0

        async def work(scene: Scene) -> ImageAttemptResult:
            async with semaphore:
                return await generate_with_retries(
                    self.provider,
                    model,
                    scene.id,
                    scene.image_prompt,
                    scene.negative_prompt,
                    max_attempts,
                )

        async def settle(scene: Scene) -> Outcome:
            nonlocal completed
            try:
                outcome: Outcome = Success(await work(scene))
            except Exception as e:
                logger.error(f"Image work for scene {scene.id} raised: {e}")
                outcome = Failure(e)

            completed += 1
            if on_scene_done is not None:
                await on_scene_done(completed, total, scene, outcome)
            return outcome

        logger.info(
            f"Generating {total} images (concurrency={self.concurrency}, "
            f"max_attempts={max_attempts})"
        )
        return list(await asyncio.gather(*(settle(scene) for scene in scenes)))
