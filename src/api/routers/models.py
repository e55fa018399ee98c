"""Model catalog routes for the Dream Weaver API."""

import logging

from api.dependencies import get_model_catalog
from api.schemas import ModelListResponse
from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import JSONResponse
from services.model_catalog import CATEGORIES, ModelCatalog

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Models"])


@router.get(
    "/api/models",
    response_model=ModelListResponse,
    summary="List available models",
    description="OpenRouter models filtered by category and ranked by search relevance.",
)
async def list_models(
    category: str | None = Query(default=None, description="text, image or vision"),
    search: str = Query(default=""),
    catalog: ModelCatalog = Depends(get_model_catalog),
):
    """Filtered model catalog (at most 200 entries)."""
    if category and category not in CATEGORIES:
        raise HTTPException(
            status_code=400, detail=f"Unknown category '{category}'. Use one of {', '.join(CATEGORIES)}"
        )

    try:
        result = await catalog.query(category=category, search=search)
    except Exception as e:
        logger.error(f"Error fetching models: {e}")
        return JSONResponse(
            status_code=500,
            content={"error": "Failed to fetch models", "message": str(e), "data": []},
        )

    logger.debug(
        f"Returning {len(result['data'])} models (total: {result['total']}, cached: {result['cached']})"
    )
    return result
