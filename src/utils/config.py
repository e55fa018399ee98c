"""Configuration loading and validation for dream weaver."""

import os
from pathlib import Path

from dotenv import load_dotenv

# Get the project root directory (parent of src)
PROJECT_ROOT = Path(__file__).parent.parent.parent

# Load environment variables from .env file in project root
load_dotenv(PROJECT_ROOT / ".env")

DEFAULT_TEXT_MODEL = "x-ai/grok-4-fast:free"
DEFAULT_IMAGE_MODEL = "google/gemini-2.5-flash-image-preview"
DEFAULT_VERIFICATION_MODEL = "x-ai/grok-4-fast:free"


def load_config() -> dict:
    """Load configuration from environment variables."""

    # Helper function to resolve paths relative to project root
    def resolve_path(path: str | None, default_relative: str) -> str:
        if not path:
            return str(PROJECT_ROOT / default_relative)
        if Path(path).is_absolute():
            return path
        return str(PROJECT_ROOT / path)

    config = {
        # Fallback API key when the client sends none
        "openrouter_api_key": os.getenv("OPENROUTER_API_KEY"),
        "openrouter_base_url": os.getenv("OPENROUTER_BASE_URL", "https://openrouter.ai/api/v1"),
        # Attribution headers sent to OpenRouter
        "site_url": os.getenv("SITE_URL", "http://localhost:3000"),
        "site_name": os.getenv("SITE_NAME", "Dream Weaver AI"),
        # Default model selection
        "text_model": os.getenv("TEXT_MODEL", DEFAULT_TEXT_MODEL),
        "image_model": os.getenv("IMAGE_MODEL", DEFAULT_IMAGE_MODEL),
        "verification_model": os.getenv("VERIFICATION_MODEL", DEFAULT_VERIFICATION_MODEL),
        # Persistence
        "output_dir": resolve_path(os.getenv("OUTPUT_DIR"), "public/generated"),
        "history_db_path": resolve_path(os.getenv("HISTORY_DB_PATH"), ".dreamweaver/history.db"),
        # Pipeline tuning
        "image_concurrency": int(os.getenv("IMAGE_CONCURRENCY", "3")),
        "verification_item_timeout": float(os.getenv("VERIFICATION_ITEM_TIMEOUT", "15")),
        "verification_batch_timeout": float(os.getenv("VERIFICATION_BATCH_TIMEOUT", "30")),
        "models_cache_ttl_seconds": int(os.getenv("MODELS_CACHE_TTL_SECONDS", "3600")),
        "budget_limit_usd": float(os.getenv("BUDGET_LIMIT_USD", "0.0")),
        # Logging
        "log_level": os.getenv("LOG_LEVEL", "INFO"),
        "log_json": os.getenv("LOG_JSON", "false").lower() == "true",
        # CORS
        "cors_origins": [
            origin.strip()
            for origin in os.getenv(
                "CORS_ORIGINS", "http://localhost:3000,http://localhost:5173"
            ).split(",")
            if origin.strip()
        ],
    }

    return config


def validate_config(config: dict) -> list[str]:
    """Validate configuration and return list of errors."""
    errors = []

    output_path = Path(config["output_dir"])
    try:
        output_path.mkdir(parents=True, exist_ok=True)
    except Exception as e:
        errors.append(f"Cannot create output folder: {e}")

    if config.get("image_concurrency", 0) < 1:
        errors.append("IMAGE_CONCURRENCY must be at least 1")

    for key in ("verification_item_timeout", "verification_batch_timeout"):
        if config.get(key, 0) <= 0:
            errors.append(f"{key.upper()} must be positive")

    if config.get("models_cache_ttl_seconds", 0) < 0:
        errors.append("MODELS_CACHE_TTL_SECONDS cannot be negative")

    # The API key is optional here: clients may send their own per request

    return errors
