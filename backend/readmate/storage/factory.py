"""
Storage Factory

Selects the configured backend (local | s3). The rest of the app only
imports get_storage() and never touches the concrete classes directly.
"""

from __future__ import annotations

from functools import lru_cache

from readmate.core.config import settings
from readmate.storage.base import StorageBackend


@lru_cache(maxsize=1)
def get_storage() -> StorageBackend:
    backend = settings.storage_backend.lower()

    if backend == "local":
        from readmate.storage.local import LocalStorage
        return LocalStorage(settings.upload_dir)

    if backend == "s3":
        from readmate.storage.s3 import S3Storage
        return S3Storage(bucket=settings.s3_bucket, region=settings.aws_region)

    raise ValueError(
        f"Unknown storage backend: '{backend}'. "
        f"Valid options: 'local', 's3'"
    )
