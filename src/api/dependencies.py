"""Service singletons and dependency injection for the Dream Weaver API."""

import logging
from typing import Callable

import httpx
from fastapi import Depends, Request

from models.presets import ModelSelection, parse_model_selection_header
from services.history_store import HistoryStore
from services.model_catalog import ModelCatalog
from services.openrouter_client import DEFAULT_TIMEOUT, ModelProvider, OpenRouterClient
from services.orchestrator import GenerationOrchestrator
from services.scene_regenerator import SceneRegenerator
from services.storage import LocalResultStorage
from utils.config import load_config
from utils.cost_tracker import GenerationCostTracker
from utils.prompt_cache import CharacterDescriptionCache

logger = logging.getLogger(__name__)

API_KEY_HEADER = "x-api-key"
MODEL_SELECTION_HEADER = "x-model-selection"

ProviderFactory = Callable[[str], ModelProvider]

# Service singletons
_config: dict | None = None
_http_client: httpx.AsyncClient | None = None
_storage: LocalResultStorage | None = None
_history_store: HistoryStore | None = None
_description_cache: CharacterDescriptionCache | None = None
_model_catalog: ModelCatalog | None = None
_cost_tracker: GenerationCostTracker | None = None

# Keep references to running pipelines so they survive a disconnected client
_background_tasks: set = set()


class ApiKeyRequiredError(Exception):
    """No OpenRouter API key in the request or the server configuration."""

    code = "API_KEY_REQUIRED"

    def __init__(self, message: str = "OpenRouter API key is required"):
        super().__init__(message)


def get_config() -> dict:
    """Get or load the configuration."""
    global _config
    if _config is None:
        _config = load_config()
    return _config


def get_http_client() -> httpx.AsyncClient:
    """Get or create the HTTP client shared by all OpenRouter clients."""
    global _http_client
    if _http_client is None:
        _http_client = httpx.AsyncClient(timeout=DEFAULT_TIMEOUT)
    return _http_client


def get_storage() -> LocalResultStorage:
    """Get or create the result storage instance."""
    global _storage
    if _storage is None:
        _storage = LocalResultStorage(get_config()["output_dir"])
    return _storage


async def get_history_store() -> HistoryStore:
    """Get or create the connected history store."""
    global _history_store
    if _history_store is None:
        store = HistoryStore(get_config()["history_db_path"])
        await store.connect()
        _history_store = store
    return _history_store


def get_description_cache() -> CharacterDescriptionCache:
    """Get or create the character description cache."""
    global _description_cache
    if _description_cache is None:
        _description_cache = CharacterDescriptionCache()
    return _description_cache


def get_cost_tracker() -> GenerationCostTracker:
    """Get or create the cost tracker."""
    global _cost_tracker
    if _cost_tracker is None:
        _cost_tracker = GenerationCostTracker(get_config().get("budget_limit_usd") or None)
    return _cost_tracker


def get_provider_factory() -> ProviderFactory:
    """Return a function that builds a model provider for an API key."""
    config = get_config()

    def factory(api_key: str) -> ModelProvider:
        return OpenRouterClient(
            api_key=api_key,
            base_url=config["openrouter_base_url"],
            site_url=config["site_url"],
            site_name=config["site_name"],
            http_client=get_http_client(),
        )

    return factory


def get_model_catalog() -> ModelCatalog:
    """Get or create the model catalog."""
    global _model_catalog
    if _model_catalog is None:
        config = get_config()
        client = OpenRouterClient(
            api_key=config.get("openrouter_api_key") or "",
            base_url=config["openrouter_base_url"],
            site_url=config["site_url"],
            site_name=config["site_name"],
            http_client=get_http_client(),
        )
        _model_catalog = ModelCatalog(
            client.list_models, ttl_seconds=config["models_cache_ttl_seconds"]
        )
    return _model_catalog


def resolve_api_key(request: Request) -> str:
    """Return the caller's API key, falling back to the configured one.

    Raises:
        ApiKeyRequiredError: If neither is available
    """
    api_key = (request.headers.get(API_KEY_HEADER) or "").strip()
    if not api_key:
        api_key = (get_config().get("openrouter_api_key") or "").strip()
    if not api_key:
        raise ApiKeyRequiredError()
    return api_key


def get_model_selection(request: Request) -> ModelSelection:
    """Default models, overridden by the model-selection header."""
    defaults = ModelSelection.from_config(get_config())
    return parse_model_selection_header(request.headers.get(MODEL_SELECTION_HEADER), defaults)


def get_orchestrator_factory(
    storage: LocalResultStorage = Depends(get_storage),
    history: HistoryStore = Depends(get_history_store),
    cache: CharacterDescriptionCache = Depends(get_description_cache),
    cost_tracker: GenerationCostTracker = Depends(get_cost_tracker),
) -> Callable[[ModelProvider], GenerationOrchestrator]:
    """Return a function that builds an orchestrator around a provider."""
    config = get_config()

    def factory(provider: ModelProvider) -> GenerationOrchestrator:
        return GenerationOrchestrator(
            provider,
            storage,
            history=history,
            cache=cache,
            concurrency=config["image_concurrency"],
            item_timeout=config["verification_item_timeout"],
            batch_timeout=config["verification_batch_timeout"],
            cost_tracker=cost_tracker,
            background_tasks=_background_tasks,
        )

    return factory


def get_regenerator_factory(
    storage: LocalResultStorage = Depends(get_storage),
    cache: CharacterDescriptionCache = Depends(get_description_cache),
) -> Callable[[ModelProvider], SceneRegenerator]:
    """Return a function that builds a scene regenerator around a provider."""
    config = get_config()

    def factory(provider: ModelProvider) -> SceneRegenerator:
        return SceneRegenerator(
            provider,
            storage,
            cache=cache,
            item_timeout=config["verification_item_timeout"],
            background_tasks=_background_tasks,
        )

    return factory


async def close_services() -> None:
    """Close connections held by the singletons."""
    global _http_client, _history_store
    if _history_store is not None:
        await _history_store.close()
        _history_store = None
    if _http_client is not None:
        await _http_client.aclose()
        _http_client = None


def reset_services() -> None:
    """Drop every singleton so the next access rebuilds it (tests)."""
    global _config, _http_client, _storage, _history_store
    global _description_cache, _model_catalog, _cost_tracker
    _config = None
    _http_client = None
    _storage = None
    _history_store = None
    _description_cache = None
    _model_catalog = None
    _cost_tracker = None
