"""Local filesystem storage for generated images and result snapshots.

Files live in a single output directory that the API server also mounts at
``/generated``, so the URL of a stored file is ``/generated/<filename>``.
"""

import base64
import binascii
import json
import logging
import re
import time
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

PUBLIC_URL_PREFIX = "/generated"

DATA_URL_PREFIX = re.compile(r"^data:image/[\w.+-]+;base64,")

# Only plain file names are accepted; no separators or parent references
SAFE_FILENAME = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]*$")


class StorageError(Exception):
    """Error reading or writing stored results."""

    pass


def generate_image_filename(scene_id: str) -> str:
    """Unique image file name for a scene."""
    return f"{scene_id}_{int(time.time() * 1000)}.png"


def generate_result_basename() -> str:
    """Base name for a run's snapshots (without extension)."""
    return f"result_{int(time.time() * 1000)}"


def partial_filename(base: str, count: int) -> str:
    """File name of the ``count``-th partial snapshot of ``base``."""
    return f"{base}_partial_{count}.json"


class LocalResultStorage:
    """Stores images and JSON snapshots in a local directory."""

    def __init__(self, output_dir: str):
        """Initialize storage.

        Args:
            output_dir: Directory for generated files, created on first write
        """
        self.output_dir = Path(output_dir)

    def _ensure_dir(self) -> None:
        try:
            self.output_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageError(f"Cannot create output directory {self.output_dir}: {e}") from e

    def _path(self, filename: str) -> Path:
        if not SAFE_FILENAME.match(filename) or ".." in filename:
            raise StorageError(f"Invalid file name: {filename!r}")
        return self.output_dir / filename

    def public_url(self, filename: str) -> str:
        return f"{PUBLIC_URL_PREFIX}/{filename}"

    def save_image(self, image_data: str, filename: str) -> str:
        """Decode a base64 image (optionally a data URL) and write it to disk.

        Args:
            image_data: Base64 payload, with or without a ``data:image/...`` prefix
            filename: Target file name

        Returns:
            Public URL of the stored image

        Raises:
            StorageError: If the payload is not valid base64 or the write fails
        """
        self._ensure_dir()
        path = self._path(filename)

        payload = DATA_URL_PREFIX.sub("", image_data or "")
        try:
            image_bytes = base64.b64decode(payload, validate=True)
        except (binascii.Error, ValueError) as e:
            raise StorageError(f"Image data for {filename} is not valid base64: {e}") from e
        if not image_bytes:
            raise StorageError(f"Image data for {filename} is empty")

        try:
            path.write_bytes(image_bytes)
        except OSError as e:
            raise StorageError(f"Failed to write {filename}: {e}") from e

        logger.debug(f"Saved image {filename} ({len(image_bytes)} bytes)")
        return self.public_url(filename)

    def save_result_json(self, result: dict[str, Any], filename: str) -> str:
        """Write a snapshot as pretty-printed JSON and return its public URL.

        Raises:
            StorageError: If the write fails
        """
        self._ensure_dir()
        path = self._path(filename)
        try:
            path.write_text(json.dumps(result, indent=2), encoding="utf-8")
        except (OSError, TypeError, ValueError) as e:
            raise StorageError(f"Failed to write {filename}: {e}") from e
        return self.public_url(filename)

    def load_result_json(self, filename: str) -> dict[str, Any]:
        """Read a stored snapshot.

        Raises:
            StorageError: If the file is missing or is not valid JSON
        """
        path = self._path(filename)
        if not path.exists():
            raise StorageError(f"Result not found: {filename}")
        try:
            return json.loads(path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            raise StorageError(f"Failed to read {filename}: {e}") from e

    def cleanup_partial_files(self, base: str) -> int:
        """Delete every partial snapshot written for ``base``.

        Returns:
            Number of files removed
        """
        if not self.output_dir.exists():
            return 0

        removed = 0
        for path in self.output_dir.glob(f"{base}_partial_*.json"):
            try:
                path.unlink()
                removed += 1
            except OSError as e:
                logger.warning(f"Failed to delete partial file {path.name}: {e}")

        if removed:
            logger.debug(f"Cleaned up {removed} partial files for {base}")
        return removed

    def list_results(self) -> list[str]:
        """List final snapshot file names, newest first."""
        if not self.output_dir.exists():
            return []
        names = [
            p.name
            for p in self.output_dir.glob("result_*.json")
            if "_partial_" not in p.name
        ]
        return sorted(names, reverse=True)

    def delete(self, filename: str) -> bool:
        """Delete a stored file. Returns False if it did not exist."""
        path = self._path(filename)
        if not path.exists():
            return False
        try:
            path.unlink()
        except OSError as e:
            raise StorageError(f"Failed to delete {filename}: {e}") from e
        return True
