"""Folds image outcomes into generated scenes and persists snapshots."""

import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Optional

from models.generation import (
    GeneratedScene,
    GenerationSnapshot,
    Outcome,
    SnapshotMetadata,
    StoryBundle,
    Success,
)
from models.presets import QualityPreset
from services.storage import (
    LocalResultStorage,
    StorageError,
    generate_image_filename,
    partial_filename,
)
from utils.cost_tracker import calculate_cost

logger = logging.getLogger(__name__)


@dataclass
class AssembledScenes:
    """Generated scenes plus the raw image payloads kept for verification."""

    scenes: list[GeneratedScene]
    image_data: dict[int, str] = field(default_factory=dict)

    @property
    def success_count(self) -> int:
        return sum(1 for s in self.scenes if s.has_image)


def inline_data_url(image_data: str) -> str:
    """Return the image as a data URL, adding a PNG prefix to bare base64."""
    if image_data.startswith("data:"):
        return image_data
    return f"data:image/png;base64,{image_data}"


class ResultAssembler:
    """Builds and persists the snapshots of one generation run.

    Example usage:
        assembler = ResultAssembler(storage, bundle, "result_1700000000000", preset)
        assembled = assembler.assemble(outcomes)
        snapshot = assembler.write_preliminary(assembled.scenes)
    """

    def __init__(
        self,
        storage: LocalResultStorage,
        bundle: StoryBundle,
        base_name: str,
        preset: QualityPreset,
        started_at: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        """Initialize the assembler for one run.

        Args:
            storage: Where images and snapshots are written
            bundle: The story the scenes belong to
            base_name: Snapshot base name without extension (``result_<ms>``)
            preset: Active quality preset (cost multiplier)
            started_at: Clock reading at the start of the run
            clock: Time source used for generation time
        """
        self.storage = storage
        self.bundle = bundle
        self.base_name = base_name
        self.preset = preset
        self._clock = clock
        self.started_at = started_at if started_at is not None else clock()

    @property
    def result_filename(self) -> str:
        return f"{self.base_name}.json"

    @property
    def total_scenes(self) -> int:
        return len(self.bundle.scenes)

    def assemble(self, outcomes: list[Outcome]) -> AssembledScenes:
        """Convert outcomes (in scene order) into generated scenes.

        Successful images are stored and a partial snapshot is written after
        each one. Storage failures keep the image inline as a data URL.
        """
        assembled = AssembledScenes(scenes=[])
        saved = 0

        for index, (scene, outcome) in enumerate(zip(self.bundle.scenes, outcomes)):
            if isinstance(outcome, Success) and outcome.value.success:
                result = outcome.value
                try:
                    image_url = self.storage.save_image(
                        result.image_data, generate_image_filename(scene.id)
                    )
                except StorageError as e:
                    logger.warning(f"Keeping scene {scene.id} image inline: {e}")
                    image_url = inline_data_url(result.image_data)

                assembled.image_data[index] = result.image_data
                assembled.scenes.append(
                    GeneratedScene(
                        scene_id=scene.id,
                        image_url=image_url,
                        description=scene.description,
                        attempts=result.attempts,
                        dialogue=scene.dialogue,
                        setting=scene.setting,
                    )
                )
                saved += 1
                self._write(
                    self.build_snapshot(
                        assembled.scenes, partial=True, completed_scenes=saved
                    ),
                    partial_filename(self.base_name, saved),
                )
                continue

            if isinstance(outcome, Success):
                error = outcome.value.error or "Image generation failed"
                attempts = outcome.value.attempts
            else:
                error = outcome.message
                attempts = 1

            logger.warning(f"Scene {scene.id} has no image: {error}")
            assembled.scenes.append(
                GeneratedScene(
                    scene_id=scene.id,
                    image_url="",
                    description=scene.description,
                    attempts=attempts,
                    dialogue=scene.dialogue,
                    setting=scene.setting,
                    error=error,
                )
            )

        return assembled

    def build_snapshot(
        self,
        scenes: list[GeneratedScene],
        success: bool = True,
        partial: Optional[bool] = None,
        completed_scenes: Optional[int] = None,
        verification_pending: Optional[bool] = None,
        verification_completed: Optional[bool] = None,
    ) -> GenerationSnapshot:
        """Build a snapshot of ``scenes`` with computed metadata."""
        with_image = [s for s in scenes if s.has_image]
        passed = sum(1 for s in with_image if s.verification is not None and s.verification.passed)

        metadata = SnapshotMetadata(
            total_scenes=self.total_scenes,
            passed_verification=passed,
            needs_review=len(with_image) - passed,
            generation_time_seconds=self._clock() - self.started_at,
            success=success,
            estimated_cost=calculate_cost(self.total_scenes, self.preset.cost_multiplier),
            actual_cost=calculate_cost(len(with_image), self.preset.cost_multiplier),
            partial=partial,
            completed_scenes=completed_scenes,
            verification_pending=verification_pending,
            verification_completed=verification_completed,
            quality_preset=self.preset.id,
        )
        return GenerationSnapshot(
            script=self.bundle.script,
            characters=self.bundle.characters,
            scenes=list(scenes),
            metadata=metadata,
        )

    def write_preliminary(self, scenes: list[GeneratedScene]) -> GenerationSnapshot:
        """Persist the snapshot sent with ``images_complete``."""
        snapshot = self.build_snapshot(scenes, verification_pending=True)
        self._write(snapshot, self.result_filename)
        return snapshot

    def write_final(
        self, scenes: list[GeneratedScene], verification_completed: bool
    ) -> GenerationSnapshot:
        """Persist the final snapshot over the preliminary one and drop partials."""
        snapshot = self.build_snapshot(
            scenes, verification_completed=verification_completed
        )
        if self._write(snapshot, self.result_filename):
            self.storage.cleanup_partial_files(self.base_name)
        return snapshot

    def _write(self, snapshot: GenerationSnapshot, filename: str) -> bool:
        try:
            self.storage.save_result_json(snapshot.to_dict(), filename)
        except StorageError as e:
            logger.warning(f"Failed to save snapshot {filename}: {e}")
            return False
        return True
