#!/usr/bin/env python
"""FastAPI server for the Dream Weaver API."""

import logging
import sys
from contextlib import asynccontextmanager
from pathlib import Path

# Add src directory to Python path for imports
src_dir = Path(__file__).parent.parent
if str(src_dir) not in sys.path:
    sys.path.insert(0, str(src_dir))

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles

from api.dependencies import ApiKeyRequiredError, close_services, get_config
from api.routers import core, generation, history, models
from api.routers.core import API_NAME, API_VERSION
from utils.config import validate_config
from utils.logging import setup_logging

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Validate configuration on startup and close connections on shutdown."""
    config = get_config()
    for error in validate_config(config):
        logger.warning(f"Configuration problem: {error}")
    logger.info(f"{API_NAME} started, writing results to {config['output_dir']}")
    yield
    await close_services()
    logger.info(f"{API_NAME} stopped")


def create_app() -> FastAPI:
    """Build the application with routers, CORS and static result serving."""
    config = get_config()
    setup_logging(config["log_level"], json_output=config["log_json"])

    app = FastAPI(title=API_NAME, version=API_VERSION, lifespan=lifespan)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config["cors_origins"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(ApiKeyRequiredError)
    async def api_key_required_handler(request: Request, exc: ApiKeyRequiredError) -> JSONResponse:
        return JSONResponse(status_code=401, content={"error": str(exc), "code": exc.code})

    app.include_router(core.router)
    app.include_router(generation.router)
    app.include_router(models.router)
    app.include_router(history.router)

    output_dir = Path(config["output_dir"])
    output_dir.mkdir(parents=True, exist_ok=True)
    app.mount("/generated", StaticFiles(directory=str(output_dir)), name="generated")

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
