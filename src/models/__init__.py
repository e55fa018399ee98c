# Data models for dream weaver
from .generation import (
    CharacterInput,
    CharacterProfile,
    Failure,
    GeneratedScene,
    GenerationRequest,
    GenerationSnapshot,
    ImageAttemptResult,
    ImageGenerationOutput,
    Outcome,
    ProgressEvent,
    ProgressStage,
    Scene,
    SnapshotMetadata,
    StoryBundle,
    Success,
    VerificationResult,
)
from .presets import (
    QUALITY_PRESETS,
    ModelSelection,
    QualityPreset,
    get_preset,
)

__all__ = [
    "CharacterInput",
    "CharacterProfile",
    "Failure",
    "GeneratedScene",
    "GenerationRequest",
    "GenerationSnapshot",
    "ImageAttemptResult",
    "ImageGenerationOutput",
    "Outcome",
    "ProgressEvent",
    "ProgressStage",
    "Scene",
    "SnapshotMetadata",
    "StoryBundle",
    "Success",
    "VerificationResult",
    "QUALITY_PRESETS",
    "ModelSelection",
    "QualityPreset",
    "get_preset",
]
