"""Generation pipeline orchestration.

Runs story generation, parallel image generation, result assembly and
optional verification, reporting progress as an ordered event stream:

    story (10 -> 40) -> image (45 -> 80) -> images_complete (80)
        -> [verification (85 -> 95)] -> complete (100)

Any failure before ``images_complete`` ends the stream with a single
``error`` event.
"""

import logging
import time
import uuid
from contextlib import aclosing
from typing import AsyncIterator, Callable, Optional

from models.generation import (
    GenerationRequest,
    GenerationSnapshot,
    Outcome,
    ProgressEvent,
    ProgressStage,
    Scene,
    Success,
    VerificationResult,
)
from models.presets import ModelSelection, QualityPreset, get_preset
from services.history_store import HistoryStore
from services.image_runner import DEFAULT_CONCURRENCY, ImageRunner
from services.openrouter_client import ModelProvider
from services.progress import ProgressEmitter, stream_events
from services.result_assembler import ResultAssembler
from services.storage import LocalResultStorage, generate_result_basename
from services.story_generator import StoryGenerationError, StoryGenerator
from services.verification_runner import (
    DEFAULT_BATCH_TIMEOUT,
    DEFAULT_ITEM_TIMEOUT,
    VerificationItem,
    VerificationRunner,
)
from utils.cost_tracker import GenerationCostTracker, format_cost
from utils.logging import generation_context
from utils.prompt_cache import CharacterDescriptionCache

logger = logging.getLogger(__name__)

# Progress allocation
STORY_START = 10
STORY_DONE = 40
IMAGES_START = 45
IMAGES_BASE = 40
IMAGES_SPAN = 40
IMAGES_COMPLETE = 80
VERIFICATION_START = 85
VERIFICATION_SPAN = 10
COMPLETE = 100


def image_progress(done: int, total: int) -> int:
    return round(IMAGES_BASE + IMAGES_SPAN * done / total) if total else IMAGES_COMPLETE


def verification_progress(done: int, total: int) -> int:
    return round(VERIFICATION_START + VERIFICATION_SPAN * done / total) if total else VERIFICATION_START


class GenerationOrchestrator:
    """Runs the full generation pipeline for a request.

    Example usage:
        orchestrator = GenerationOrchestrator(provider, storage)
        async for event in orchestrator.stream(request, models, preset):
            print(event.stage, event.progress)
    """

    def __init__(
        self,
        provider: ModelProvider,
        storage: LocalResultStorage,
        history: Optional[HistoryStore] = None,
        cache: Optional[CharacterDescriptionCache] = None,
        concurrency: int = DEFAULT_CONCURRENCY,
        item_timeout: float = DEFAULT_ITEM_TIMEOUT,
        batch_timeout: float = DEFAULT_BATCH_TIMEOUT,
        cost_tracker: Optional[GenerationCostTracker] = None,
        clock: Callable[[], float] = time.monotonic,
        background_tasks: Optional[set] = None,
    ):
        """Initialize the orchestrator.

        Args:
            provider: Model provider for text, image and vision calls
            storage: Where images and snapshots are written
            history: Optional history store; completed runs are recorded there
            cache: Character description cache used by verification
            concurrency: Maximum images in flight
            item_timeout: Seconds allowed per verification
            batch_timeout: Seconds allowed for all verifications
            cost_tracker: Optional tracker for estimated and actual cost
            clock: Time source for generation time
            background_tasks: Set holding running pipelines; shared across instances by the API
        """
        self.provider = provider
        self.storage = storage
        self.history = history
        self.story_generator = StoryGenerator(provider)
        self.image_runner = ImageRunner(provider, concurrency=concurrency)
        self.verifier = VerificationRunner(
            provider,
            cache=cache,
            item_timeout=item_timeout,
            batch_timeout=batch_timeout,
        )
        self.cost_tracker = cost_tracker or GenerationCostTracker()
        self._clock = clock
        # Runs whose consumer went away keep going until they finish
        self._background_tasks: set = background_tasks if background_tasks is not None else set()

    async def stream(
        self,
        request: GenerationRequest,
        models: ModelSelection,
        preset: Optional[QualityPreset] = None,
    ) -> AsyncIterator[ProgressEvent]:
        """Run the pipeline and yield its progress events.

        The stream always ends with exactly one ``complete`` or ``error`` event.
        """
        preset = preset or get_preset(request.quality_preset)

        async def producer(emitter: ProgressEmitter) -> None:
            await self.run(request, models, preset, emitter)

        async with aclosing(stream_events(producer, self._background_tasks)) as events:
            async for event in events:
                yield event

    async def run(
        self,
        request: GenerationRequest,
        models: ModelSelection,
        preset: QualityPreset,
        emitter: ProgressEmitter,
    ) -> Optional[GenerationSnapshot]:
        """Run the pipeline, emitting into ``emitter``.

        Returns:
            The final snapshot, or None if the run failed
        """
        generation_id = uuid.uuid4().hex[:12]
        with generation_context(generation_id):
            logger.info(
                f"Starting generation: {request.scene_count} scenes, style={request.style}, "
                f"preset={preset.id}"
            )
            try:
                return await self._run(generation_id, request, models, preset, emitter)
            except StoryGenerationError as e:
                logger.error(f"Story generation failed: {e}")
                await emitter.fail(f"Error: {e}")
            except Exception as e:
                logger.exception(f"Generation failed: {e}")
                await emitter.fail(f"Error: {e}")
        return None

    async def _run(
        self,
        generation_id: str,
        request: GenerationRequest,
        models: ModelSelection,
        preset: QualityPreset,
        emitter: ProgressEmitter,
    ) -> GenerationSnapshot:
        started_at = self._clock()
        estimated = self.cost_tracker.estimate(
            generation_id, request.scene_count, preset.cost_multiplier
        )
        logger.info(f"Estimated cost: {format_cost(estimated)}")

        # Story
        await emitter.progress(
            ProgressStage.STORY, STORY_START, "Generating complete story with all scenes..."
        )
        bundle = await self.story_generator.generate(request, models.text_model)
        total = len(bundle.scenes)
        await emitter.progress(
            ProgressStage.STORY,
            STORY_DONE,
            f"Story complete! Created {total} scenes.",
            total_scenes=total,
        )

        # Images
        await emitter.progress(
            ProgressStage.IMAGE,
            IMAGES_START,
            f"Generating {total} images in parallel...",
            current_scene=0,
            total_scenes=total,
        )

        async def on_scene_done(done: int, count: int, scene: Scene, outcome: Outcome) -> None:
            ok = isinstance(outcome, Success) and outcome.value.success
            status = "complete" if ok else "failed"
            await emitter.progress(
                ProgressStage.IMAGE,
                image_progress(done, count),
                f"Image {done}/{count} {status} ({scene.id})",
                current_scene=done,
                total_scenes=count,
            )

        outcomes = await self.image_runner.run(
            bundle.scenes, models.image_model, preset.max_attempts, on_scene_done
        )

        # Assembly
        assembler = ResultAssembler(
            self.storage,
            bundle,
            generate_result_basename(),
            preset,
            started_at=started_at,
            clock=self._clock,
        )
        assembled = assembler.assemble(outcomes)
        preliminary = assembler.write_preliminary(assembled.scenes)
        await emitter.progress(
            ProgressStage.IMAGES_COMPLETE,
            IMAGES_COMPLETE,
            f"All images ready! {assembled.success_count}/{total} generated.",
            current_scene=total,
            total_scenes=total,
            data=self._payload(preliminary, assembler.base_name),
        )

        # Verification
        verification_completed = False
        if preset.skip_verification:
            logger.info("Skipping verification for this preset")
        else:
            items = [
                VerificationItem(index=i, scene=bundle.scenes[i], image_data=data)
                for i, data in sorted(assembled.image_data.items())
            ]
            await emitter.progress(
                ProgressStage.VERIFICATION,
                VERIFICATION_START,
                f"Verifying quality of {len(items)} images...",
                current_scene=0,
                total_scenes=len(items),
            )

            async def on_item_done(
                done: int, count: int, index: int, result: Optional[VerificationResult]
            ) -> None:
                scene_id = bundle.scenes[index].id
                status = "checked" if result is not None else "skipped"
                await emitter.progress(
                    ProgressStage.VERIFICATION,
                    verification_progress(done, count),
                    f"Quality check {done}/{count} {status} ({scene_id})",
                    current_scene=done,
                    total_scenes=count,
                )

            report = await self.verifier.run(
                items,
                bundle.characters,
                models.verification_model,
                preset.verification_threshold,
                on_item_done,
            )
            for index, result in report.results.items():
                assembled.scenes[index].verification = result
            verification_completed = report.completed

        # Final
        final = assembler.write_final(assembled.scenes, verification_completed)
        self.cost_tracker.record_actual(
            generation_id, assembled.success_count, preset.cost_multiplier
        )
        await self._record_history(request, final, assembler.base_name)

        passed = final.metadata.passed_verification
        if preset.skip_verification:
            message = f"Generation complete! {assembled.success_count}/{total} images generated."
        else:
            message = f"Generation complete! {passed}/{assembled.success_count} images passed verification."
        await emitter.progress(
            ProgressStage.COMPLETE,
            COMPLETE,
            message,
            current_scene=total,
            total_scenes=total,
            data=self._payload(final, assembler.base_name),
        )
        logger.info(
            f"Generation finished in {final.metadata.generation_time_seconds:.1f}s: "
            f"{assembled.success_count}/{total} images, {passed} passed verification"
        )
        return final

    @staticmethod
    def _payload(snapshot: GenerationSnapshot, base_name: str) -> dict:
        data = snapshot.to_dict()
        data["result_id"] = base_name
        return data

    async def _record_history(
        self, request: GenerationRequest, snapshot: GenerationSnapshot, base_name: str
    ) -> None:
        if self.history is None:
            return
        try:
            await self.history.add_entry(request.to_dict(), self._payload(snapshot, base_name))
        except Exception as e:
            logger.warning(f"Failed to record history entry: {e}")
