"""Generation routes for the Dream Weaver API (full runs, regeneration, ideas)."""

import logging
from typing import Callable

from api.dependencies import (
    ProviderFactory,
    get_model_selection,
    get_orchestrator_factory,
    get_provider_factory,
    get_regenerator_factory,
    resolve_api_key,
)
from api.schemas import (
    ErrorResponse,
    GenerateIdeaRequest,
    GenerateRequestBody,
    PresetListResponse,
    RegenerateRequestBody,
    StoryIdeaResponse,
)
from api.sse import SSE_HEADERS, SSE_MEDIA_TYPE, sse_frames
from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse, StreamingResponse
from models.presets import DEFAULT_PRESET_ID, QUALITY_PRESETS, ModelSelection, get_preset
from services.orchestrator import GenerationOrchestrator
from services.scene_regenerator import SceneRegenerator
from services.story_generator import StoryGenerator

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Generation"])


@router.post(
    "/api/generate",
    summary="Generate an illustrated story",
    description="Streams progress as server-sent events ending in 'complete' or 'error'.",
    responses={401: {"model": ErrorResponse}},
)
async def generate(
    body: GenerateRequestBody,
    api_key: str = Depends(resolve_api_key),
    models: ModelSelection = Depends(get_model_selection),
    provider_factory: ProviderFactory = Depends(get_provider_factory),
    orchestrator_factory: Callable[..., GenerationOrchestrator] = Depends(get_orchestrator_factory),
) -> StreamingResponse:
    """Run the full generation pipeline."""
    request = body.to_request()
    preset = get_preset(request.quality_preset)
    orchestrator = orchestrator_factory(provider_factory(api_key))

    logger.info(
        f"Generation requested: {request.scene_count} scenes, {len(request.characters)} characters, "
        f"preset={preset.id}, image_model={models.image_model}"
    )
    return StreamingResponse(
        sse_frames(orchestrator.stream(request, models, preset)),
        media_type=SSE_MEDIA_TYPE,
        headers=SSE_HEADERS,
    )


@router.post(
    "/api/regenerate",
    summary="Regenerate one scene image",
    description="Streams 'regenerating' events ending in 'complete' (with the scene) or 'error'.",
    responses={401: {"model": ErrorResponse}},
)
async def regenerate(
    body: RegenerateRequestBody,
    api_key: str = Depends(resolve_api_key),
    models: ModelSelection = Depends(get_model_selection),
    provider_factory: ProviderFactory = Depends(get_provider_factory),
    regenerator_factory: Callable[..., SceneRegenerator] = Depends(get_regenerator_factory),
) -> StreamingResponse:
    """Regenerate a single scene with optional modifications."""
    regenerator = regenerator_factory(provider_factory(api_key))
    events = regenerator.stream(
        body.scene.to_scene(),
        body.character_profiles(),
        body.image_prompt,
        models,
        get_preset(body.quality_preset),
        negative_prompt=body.negative_prompt,
        modifications=body.modifications,
        result_id=body.result_id,
    )
    return StreamingResponse(sse_frames(events), media_type=SSE_MEDIA_TYPE, headers=SSE_HEADERS)


@router.post(
    "/api/generate-idea",
    summary="Generate a story idea",
    responses={
        200: {"model": StoryIdeaResponse},
        401: {"model": ErrorResponse},
        500: {"model": ErrorResponse},
    },
)
async def generate_idea(
    body: GenerateIdeaRequest | None = None,
    api_key: str = Depends(resolve_api_key),
    models: ModelSelection = Depends(get_model_selection),
    provider_factory: ProviderFactory = Depends(get_provider_factory),
):
    """Generate a random story idea to pre-fill the form."""
    body = body or GenerateIdeaRequest()
    generator = StoryGenerator(provider_factory(api_key))
    try:
        return await generator.generate_idea(
            models.text_model,
            genre=body.genre,
            tone=body.tone,
            complexity=body.complexity,
            keywords=body.keywords,
        )
    except Exception as e:
        logger.error(f"Story idea generation failed: {e}")
        return JSONResponse(
            status_code=500,
            content={"error": "Failed to generate story idea", "details": str(e)},
        )


@router.get(
    "/api/presets",
    response_model=PresetListResponse,
    summary="List quality presets",
)
async def list_presets() -> dict:
    """Quality presets and the default preset id."""
    return {
        "presets": [preset.to_dict() for preset in QUALITY_PRESETS.values()],
        "default": DEFAULT_PRESET_ID,
    }

