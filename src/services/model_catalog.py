"""OpenRouter model catalog with categorization, search and a TTL cache."""

import logging
import time
from typing import Any, Awaitable, Callable, Optional

logger = logging.getLogger(__name__)

CATEGORIES = ("text", "image", "vision")
DEFAULT_TTL_SECONDS = 3600
MAX_RESULTS = 200

IMAGE_MODEL_MARKERS = (
    "flux",
    "stable-diffusion",
    "dall-e",
    "midjourney",
    "imagen",
    "playground",
    "ideogram",
    "recraft",
)

PRIORITY_MODELS = [
    "x-ai/grok-4-fast:free",
    "x-ai/grok-4-fast",
    "deepseek/deepseek-r1:free",
    "deepseek/deepseek-chat-v3.1:free",
    "qwen/qwen3-coder:free",
]


def _price(value: Any) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


def categorize_model(model: dict) -> list[str]:
    """Return the categories (text, image, vision) a catalog entry belongs to."""
    modality = str((model.get("architecture") or {}).get("modality") or "").lower()
    model_id = str(model.get("id", "")).lower()
    pricing = model.get("pricing") or {}

    is_image = (
        any(m in modality for m in ("text->image", "text-to-image", "text+image->image"))
        or any(marker in model_id for marker in IMAGE_MODEL_MARKERS)
        or ("gemini" in model_id and "image-preview" in model_id)
        or _price(pricing.get("image")) > 0
    )

    is_vision = (
        "image->text" in modality
        or "vision" in modality
        or "vision" in model_id
        or "gpt-4o" in model_id
        or "gpt-4-turbo" in model_id
        or ("claude-3" in model_id and "haiku" not in model_id)
        or (
            "gemini" in model_id
            and "image-preview" not in model_id
            and any(v in model_id for v in ("pro", "1.5", "2.0"))
        )
    )

    can_generate_text = "->text" in modality or modality == ""

    categories = []
    if can_generate_text and not is_image:
        categories.append("text")
    if is_image:
        categories.append("image")
    if is_vision:
        categories.append("vision")

    if not categories:
        logger.debug(f"Model {model.get('id')} uncategorized, defaulting to 'text'")
        categories.append("text")
    return categories


def filter_by_category(models: list[dict], category: str) -> list[dict]:
    return [m for m in models if category in categorize_model(m)]


def search_models(models: list[dict], query: str) -> list[dict]:
    """Score models against a query and return matches, best first."""
    query = query.strip().lower()
    if not query:
        return list(models)

    scored = []
    for model in models:
        model_id = str(model.get("id", "")).lower()
        name = str(model.get("name", "")).lower()
        description = str(model.get("description") or "").lower()

        score = 0
        if model_id == query:
            score += 100
        elif model_id.startswith(query):
            score += 50
        elif query in model_id:
            score += 25
        if query in name:
            score += 30
        if query in description:
            score += 10

        if score > 0:
            scored.append((score, model))

    scored.sort(key=lambda pair: pair[0], reverse=True)
    return [model for _, model in scored]


def sort_by_preference(models: list[dict]) -> list[dict]:
    """Priority models first, then free, cheaper, longer context, then by name."""

    def key(model: dict):
        model_id = str(model.get("id", ""))
        pricing = model.get("pricing") or {}
        priority = (
            PRIORITY_MODELS.index(model_id) if model_id in PRIORITY_MODELS else len(PRIORITY_MODELS)
        )
        is_free = str(pricing.get("prompt")) == "0" or ":free" in model_id
        return (
            priority,
            0 if is_free else 1,
            _price(pricing.get("prompt")),
            -int(model.get("context_length") or 0),
            str(model.get("name", "")),
        )

    return sorted(models, key=key)


class ModelCatalog:
    """Caches the remote model list for ``ttl_seconds``."""

    def __init__(
        self,
        fetch: Callable[[], Awaitable[list[dict]]],
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        """Initialize the catalog.

        Args:
            fetch: Coroutine function returning the full model list
            ttl_seconds: How long a fetched list stays valid
            clock: Time source, injectable for tests
        """
        self._fetch = fetch
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._models: Optional[list[dict]] = None
        self._fetched_at: Optional[float] = None

    def _is_fresh(self) -> bool:
        return (
            self._models is not None
            and self._fetched_at is not None
            and self._clock() - self._fetched_at < self.ttl_seconds
        )

    async def get_models(self) -> tuple[list[dict], bool]:
        """Return the model list and whether it came from the cache."""
        if self._is_fresh():
            return self._models, True

        logger.info("Fetching model catalog from OpenRouter")
        models = await self._fetch()
        self._models = models
        self._fetched_at = self._clock()
        return models, False

    async def query(self, category: Optional[str] = None, search: str = "") -> dict:
        """Filter, search and rank the catalog.

        Returns:
            Dict with ``data`` (at most 200 models), ``total`` and ``cached``
        """
        models, cached = await self.get_models()

        if category:
            models = filter_by_category(models, category)
        if search:
            models = search_models(models, search)
        else:
            models = sort_by_preference(models)

        return {"data": models[:MAX_RESULTS], "total": len(models), "cached": cached}

    def clear(self) -> None:
        self._models = None
        self._fetched_at = None
