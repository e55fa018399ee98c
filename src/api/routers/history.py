"""History and stored result routes for the Dream Weaver API."""

import logging

from api.dependencies import get_history_store, get_storage
from api.schemas import HistoryEntryResponse, HistoryListResponse, MessageResponse
from fastapi import APIRouter, Depends, HTTPException, Query
from services.history_store import HistoryStore
from services.storage import LocalResultStorage, StorageError

logger = logging.getLogger(__name__)

router = APIRouter(tags=["History"])


@router.get(
    "/api/history",
    response_model=HistoryListResponse,
    summary="List past generations",
)
async def list_history(
    limit: int = Query(default=20, ge=1, le=100),
    store: HistoryStore = Depends(get_history_store),
) -> dict:
    """Past generations, newest first."""
    return {"entries": await store.list_entries(limit=limit)}


@router.get(
    "/api/history/{entry_id}",
    response_model=HistoryEntryResponse,
    summary="Get a past generation",
)
async def get_history_entry(
    entry_id: str, store: HistoryStore = Depends(get_history_store)
) -> dict:
    """A past generation including its final result."""
    entry = await store.get_entry(entry_id)
    if entry is None:
        raise HTTPException(status_code=404, detail="History entry not found")
    return entry


@router.delete(
    "/api/history/{entry_id}",
    response_model=MessageResponse,
    summary="Delete a past generation",
)
async def delete_history_entry(
    entry_id: str, store: HistoryStore = Depends(get_history_store)
) -> dict:
    """Delete one history entry."""
    if not await store.delete_entry(entry_id):
        raise HTTPException(status_code=404, detail="History entry not found")
    return {"message": f"History entry {entry_id} deleted"}


@router.delete(
    "/api/history",
    response_model=MessageResponse,
    summary="Clear history",
)
async def clear_history(store: HistoryStore = Depends(get_history_store)) -> dict:
    """Delete every history entry."""
    count = await store.clear()
    return {"message": f"Cleared {count} history entries"}


@router.get("/api/results", summary="List stored results")
async def list_results(storage: LocalResultStorage = Depends(get_storage)) -> dict:
    """Final snapshot file names, newest first."""
    return {"results": storage.list_results()}


@router.get("/api/results/{name}", summary="Get a stored result")
async def get_result(name: str, storage: LocalResultStorage = Depends(get_storage)) -> dict:
    """A stored snapshot by base name (``result_<ms>``) or file name."""
    filename = name if name.endswith(".json") else f"{name}.json"
    try:
        return storage.load_result_json(filename)
    except StorageError as e:
        logger.debug(f"Result lookup failed: {e}")
        raise HTTPException(status_code=404, detail="Result not found")
