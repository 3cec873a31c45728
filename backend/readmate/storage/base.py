"""
Raw file storage contract.

Keys are built server-side as "<user_id>/<random>_<filename>"; backends
treat them as opaque relative paths.
"""

from __future__ import annotations

from abc import ABC, abstractmethod


class StorageBackend(ABC):

    @abstractmethod
    async def put(self, key: str, data: bytes, content_type: str) -> str:
        """Store *data* under *key*; returns a URL (or URI) for the object."""

    @abstractmethod
    async def get(self, key: str) -> bytes | None:
        """Object bytes, or None when the key does not exist."""

    @abstractmethod
    async def delete(self, key: str) -> None:
        """Remove the object; deleting a missing key is not an error."""


def validate_key(key: str) -> str:
    """Reject keys that could escape the storage root."""
    parts = key.split("/")
    if not key or key.startswith("/") or any(p in ("", ".", "..") for p in parts):
        raise ValueError(f"Invalid storage key: {key!r}")
    return key
