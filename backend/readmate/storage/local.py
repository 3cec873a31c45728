"""
Local filesystem storage — default backend for development and single-host
deployments. Blocking file I/O runs in a worker thread.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path

from readmate.core.errors import StorageError
from readmate.storage.base import StorageBackend, validate_key

logger = logging.getLogger(__name__)


class LocalStorage(StorageBackend):

    def __init__(self, root: str | Path) -> None:
        self._root = Path(root)

    def _path(self, key: str) -> Path:
        return self._root / validate_key(key)

    async def put(self, key: str, data: bytes, content_type: str) -> str:
        path = self._path(key)

        def _write() -> None:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(data)

        try:
            await asyncio.to_thread(_write)
        except OSError as exc:
            raise StorageError(f"Failed to write {key}: {exc}") from exc

        logger.info("Local upload ok | key=%s size=%d type=%s", key, len(data), content_type)
        return path.resolve().as_uri()

    async def get(self, key: str) -> bytes | None:
        path = self._path(key)
        try:
            return await asyncio.to_thread(path.read_bytes)
        except FileNotFoundError:
            return None
        except OSError as exc:
            raise StorageError(f"Failed to read {key}: {exc}") from exc

    async def delete(self, key: str) -> None:
        path = self._path(key)
        await asyncio.to_thread(path.unlink, missing_ok=True)
        logger.info("Local delete | key=%s", key)
