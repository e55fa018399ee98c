"""Service identity and health routes."""

from fastapi import APIRouter, Depends

from api.dependencies import get_config
from api.schemas import HealthResponse, RootResponse
from utils.config import validate_config

API_NAME = "Dream Weaver API"
API_VERSION = "1.0.0"

router = APIRouter(tags=["Core"])


@router.get("/", response_model=RootResponse, summary="API root")
async def root() -> RootResponse:
    return RootResponse(message=API_NAME, version=API_VERSION)


@router.get(
    "/api/health",
    response_model=HealthResponse,
    summary="Health check",
    description=(
        "Reports 'degraded' with the list of problems when the configuration "
        "cannot support a generation run, e.g. an output folder that cannot be created."
    ),
)
async def health(config: dict = Depends(get_config)) -> HealthResponse:
    problems = validate_config(config)
    return HealthResponse(
        status="degraded" if problems else "healthy",
        server_key_configured=bool(config.get("openrouter_api_key")),
        problems=problems,
    )
