"""Automated image verification with per-item and batch timeouts.

Each verification call races a per-item timer and the whole batch races a
batch timer. Calls that lose a race are not cancelled: they finish in the
background and their results are ignored.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Optional

from models.generation import CharacterProfile, Scene, VerificationResult
from models.presets import DEFAULT_VERIFICATION_THRESHOLD
from services.openrouter_client import ModelProvider
from services.prompts import IMAGE_VERIFIER
from utils.json_extract import extract_json
from utils.prompt_cache import CharacterDescriptionCache

logger = logging.getLogger(__name__)

DEFAULT_ITEM_TIMEOUT = 15.0
DEFAULT_BATCH_TIMEOUT = 30.0

ItemDoneCallback = Callable[[int, int, int, Optional[VerificationResult]], Awaitable[None]]


@dataclass
class VerificationItem:
    """One image to verify, correlated to its scene by index."""

    index: int
    scene: Scene
    image_data: str


@dataclass
class VerificationReport:
    """Results keyed by scene index; ``completed`` is False if the batch timed out."""

    results: dict[int, VerificationResult] = field(default_factory=dict)
    completed: bool = True


class VerificationRunner:
    """Verifies generated images against their scenes with a vision model."""

    def __init__(
        self,
        provider: ModelProvider,
        cache: Optional[CharacterDescriptionCache] = None,
        item_timeout: float = DEFAULT_ITEM_TIMEOUT,
        batch_timeout: float = DEFAULT_BATCH_TIMEOUT,
    ):
        """Initialize the runner.

        Args:
            provider: Model provider used for vision calls
            cache: Character description cache shared across scenes
            item_timeout: Seconds allowed for a single verification
            batch_timeout: Seconds allowed for the whole batch
        """
        self.provider = provider
        self.cache = cache or CharacterDescriptionCache()
        self.item_timeout = item_timeout
        self.batch_timeout = batch_timeout
        # Abandoned calls still running after losing a timeout race
        self._background_tasks: set[asyncio.Task] = set()

    @property
    def pending_background(self) -> int:
        return len(self._background_tasks)

    def _abandon(self, task: asyncio.Task) -> None:
        self._background_tasks.add(task)
        task.add_done_callback(self._background_tasks.discard)
        task.add_done_callback(_consume_result)

    async def verify_scene(
        self,
        image_data: str,
        scene: Scene,
        characters: dict[str, CharacterProfile],
        model: str,
        threshold: float = DEFAULT_VERIFICATION_THRESHOLD,
    ) -> VerificationResult:
        """Run one verification call without any timeout.

        Raises:
            OpenRouterError: If the vision call fails
            JSONExtractionError: If the response holds no usable JSON
            ValueError: If a score is missing
        """
        prompt = IMAGE_VERIFIER.format(
            description=scene.description,
            setting=scene.setting,
            mood=scene.mood,
            visual_elements=", ".join(scene.visual_elements),
            character_descriptions=self.cache.describe(scene.characters_present, characters),
        )
        response = await self.provider.analyze_image(model, prompt, image_data)
        data = extract_json(response)
        if not isinstance(data, dict):
            raise ValueError("Verification response is not a JSON object")
        return VerificationResult.from_scores(data, threshold)

    async def verify_with_timeout(
        self,
        image_data: str,
        scene: Scene,
        characters: dict[str, CharacterProfile],
        model: str,
        threshold: float = DEFAULT_VERIFICATION_THRESHOLD,
    ) -> Optional[VerificationResult]:
        """Race one verification against the per-item timer.

        Returns:
            The result, or None on timeout, error or an unusable response
        """
        task = asyncio.create_task(
            self.verify_scene(image_data, scene, characters, model, threshold)
        )
        done, _ = await asyncio.wait({task}, timeout=self.item_timeout)
        if not done:
            logger.warning(
                f"Verification of scene {scene.id} timed out after {self.item_timeout}s"
            )
            self._abandon(task)
            return None

        try:
            return task.result()
        except Exception as e:
            logger.warning(f"Verification of scene {scene.id} failed: {e}")
            return None

    async def run(
        self,
        items: list[VerificationItem],
        characters: dict[str, CharacterProfile],
        model: str,
        threshold: float = DEFAULT_VERIFICATION_THRESHOLD,
        on_item_done: Optional[ItemDoneCallback] = None,
    ) -> VerificationReport:
        """Verify all items concurrently under the batch timeout. Never raises.

        Args:
            items: Images to verify
            characters: Character profiles of the story
            model: Vision model id
            threshold: Minimum mean score for a pass
            on_item_done: Awaited with (done, total, index, result) as each item
                finishes or times out, until the batch timer fires

        Returns:
            VerificationReport with the results that arrived in time
        """
        report = VerificationReport()
        if not items:
            return report

        total = len(items)
        done = 0
        closed = False

        async def verify_item(item: VerificationItem) -> None:
            nonlocal done
            try:
                result = await self.verify_with_timeout(
                    item.image_data, item.scene, characters, model, threshold
                )
                if closed:
                    return
                if result is not None:
                    report.results[item.index] = result
                done += 1
                if on_item_done is not None:
                    await on_item_done(done, total, item.index, result)
            except Exception as e:
                logger.error(f"Verification of scene {item.scene.id} raised: {e}")

        tasks = [asyncio.create_task(verify_item(item)) for item in items]
        _, pending = await asyncio.wait(tasks, timeout=self.batch_timeout)
        closed = True

        if pending:
            logger.warning(
                f"Verification batch timed out after {self.batch_timeout}s; "
                f"{len(pending)}/{total} results discarded"
            )
            for task in pending:
                self._abandon(task)
            report.completed = False

        logger.info(f"Verified {len(report.results)}/{total} images")
        return report


def _consume_result(task: asyncio.Task) -> None:
    if not task.cancelled() and task.exception() is not None:
        logger.debug(f"Abandoned verification finished with error: {task.exception()}")
