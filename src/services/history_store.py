"""SQLite-based generation history.

Each completed run is recorded with its input, a short title, a thumbnail
and the final result snapshot. Uses aiosqlite for async database operations.
"""

import json
import logging
import uuid
from datetime import datetime
from pathlib import Path
from typing import Any

import aiosqlite

logger = logging.getLogger(__name__)

# Default database path
DEFAULT_DB_PATH = ".dreamweaver/history.db"

# Oldest entries beyond this count are pruned on insert
DEFAULT_MAX_ENTRIES = 20

TITLE_LENGTH = 50


def make_title(outline: str) -> str:
    """First 50 characters of the outline, with an ellipsis if cut."""
    outline = outline.strip()
    if len(outline) > TITLE_LENGTH:
        return outline[:TITLE_LENGTH] + "..."
    return outline


def pick_thumbnail(result: dict[str, Any]) -> str:
    """URL of the first scene that has an image, or ''."""
    for scene in result.get("scenes") or []:
        if scene.get("image_url"):
            return scene["image_url"]
    return ""


class HistoryStore:
    """Async SQLite history storage.

    Provides persistent storage for completed generations with async CRUD
    operations.
    """

    def __init__(self, db_path: str = DEFAULT_DB_PATH, max_entries: int = DEFAULT_MAX_ENTRIES):
        """Initialize history store with database path.

        Args:
            db_path: Path to SQLite database file. Parent directory
                     will be created if it doesn't exist.
            max_entries: Number of entries kept; older ones are pruned
        """
        self.db_path = Path(db_path)
        self.max_entries = max_entries
        self.db: aiosqlite.Connection | None = None

    async def connect(self) -> None:
        """Initialize database connection and create schema."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        self.db = await aiosqlite.connect(str(self.db_path))
        self.db.row_factory = aiosqlite.Row

        # Enable WAL mode for better concurrent read performance
        await self.db.execute("PRAGMA journal_mode=WAL")

        await self.db.execute("""
            CREATE TABLE IF NOT EXISTS history (
                id TEXT PRIMARY KEY,
                timestamp TEXT NOT NULL,
                title TEXT NOT NULL,
                thumbnail TEXT NOT NULL DEFAULT '',
                input JSON NOT NULL,
                result JSON NOT NULL
            )
        """)

        await self.db.execute("""
            CREATE INDEX IF NOT EXISTS idx_history_timestamp
            ON history (timestamp DESC)
        """)

        await self.db.commit()
        logger.info(f"History store connected: {self.db_path}")

    async def close(self) -> None:
        """Close database connection."""
        if self.db:
            await self.db.close()
            self.db = None
            logger.info("History store connection closed")

    def _require_db(self) -> aiosqlite.Connection:
        if self.db is None:
            raise RuntimeError("Database not connected. Call connect() first.")
        return self.db

    async def add_entry(
        self,
        input_data: dict[str, Any],
        result: dict[str, Any],
        entry_id: str | None = None,
    ) -> dict[str, Any]:
        """Record a completed generation.

        Args:
            input_data: The request as submitted
            result: The final result snapshot
            entry_id: Optional id; a random one is generated otherwise

        Returns:
            Created entry as dict

        Raises:
            RuntimeError: If database is not connected
        """
        db = self._require_db()

        entry = {
            "id": entry_id or uuid.uuid4().hex,
            "timestamp": datetime.now().isoformat(),
            "title": make_title(str(input_data.get("outline", ""))),
            "thumbnail": pick_thumbnail(result),
            "input": input_data,
            "result": result,
        }

        await db.execute(
            "INSERT INTO history (id, timestamp, title, thumbnail, input, result) VALUES (?, ?, ?, ?, ?, ?)",
            (
                entry["id"],
                entry["timestamp"],
                entry["title"],
                entry["thumbnail"],
                json.dumps(input_data),
                json.dumps(result),
            ),
        )

        # Keep only the newest max_entries
        await db.execute(
            """
            DELETE FROM history WHERE id NOT IN (
                SELECT id FROM history ORDER BY timestamp DESC LIMIT ?
            )
            """,
            (self.max_entries,),
        )
        await db.commit()

        logger.info(f"Recorded history entry {entry['id']}")
        return entry

    async def list_entries(self, limit: int = DEFAULT_MAX_ENTRIES) -> list[dict[str, Any]]:
        """List entries, newest first, without their result payloads.

        Raises:
            RuntimeError: If database is not connected
        """
        db = self._require_db()
        async with db.execute(
            "SELECT id, timestamp, title, thumbnail, input FROM history ORDER BY timestamp DESC LIMIT ?",
            (limit,),
        ) as cursor:
            rows = await cursor.fetchall()
            return [self._row_to_dict(row, include_result=False) for row in rows]

    async def get_entry(self, entry_id: str) -> dict[str, Any] | None:
        """Get an entry by ID, including its result.

        Raises:
            RuntimeError: If database is not connected
        """
        db = self._require_db()
        async with db.execute("SELECT * FROM history WHERE id = ?", (entry_id,)) as cursor:
            row = await cursor.fetchone()
            if row is None:
                return None
            return self._row_to_dict(row, include_result=True)

    async def delete_entry(self, entry_id: str) -> bool:
        """Delete an entry.

        Returns:
            True if deleted, False if not found

        Raises:
            RuntimeError: If database is not connected
        """
        db = self._require_db()
        async with db.execute(
            "DELETE FROM history WHERE id = ? RETURNING id", (entry_id,)
        ) as cursor:
            row = await cursor.fetchone()
        await db.commit()

        if row is not None:
            logger.info(f"Deleted history entry {entry_id}")
            return True
        return False

    async def clear(self) -> int:
        """Delete every entry and return how many were removed."""
        db = self._require_db()
        async with db.execute("SELECT COUNT(*) FROM history") as cursor:
            row = await cursor.fetchone()
            count = row[0] if row else 0

        await db.execute("DELETE FROM history")
        await db.commit()
        logger.info(f"Cleared {count} history entries")
        return count

    def _row_to_dict(self, row: aiosqlite.Row, include_result: bool) -> dict[str, Any]:
        """Convert a database row to a dict, decoding the JSON columns."""
        entry: dict[str, Any] = {
            "id": row["id"],
            "timestamp": row["timestamp"],
            "title": row["title"],
            "thumbnail": row["thumbnail"],
            "input": _loads(row["input"], row["id"]),
        }
        if include_result:
            entry["result"] = _loads(row["result"], row["id"])
        return entry


def _loads(value: str | None, entry_id: str) -> dict[str, Any]:
    if not value:
        return {}
    try:
        return json.loads(value)
    except json.JSONDecodeError:
        logger.warning(f"Failed to parse JSON data for history entry {entry_id}")
        return {}
