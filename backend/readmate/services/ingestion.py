"""
Document Ingestion Service

Handles everything between "multipart upload received" and "background
processing scheduled":

  1. Read the upload with a hard size ceiling          → 400 / 413
  2. Validate the extension (pdf / docx / txt)         → 400
  3. Build the storage key  <user_id>/<random>_<name>  (server-side only)
  4. storage.put                                       → 502 on failure
  5. Create the Document row with status "processing" (stored file removed on failure)
  6. Schedule AnalysisPipeline.process_document        (PipelineRunner)

The route stays thin: it resolves dependencies and calls ingest().
"""

from __future__ import annotations

import logging
import re
import secrets

from fastapi import HTTPException, UploadFile, status

from readmate.core.config import settings
from readmate.core.errors import StorageError
from readmate.db.repository import PersistenceGateway
from readmate.schemas.documents import (
    ALLOWED_EXTENSIONS,
    CONTENT_TYPES,
    DocumentStatus,
    DocumentUploadResponse,
    UploadErrors,
)
from readmate.services.pipeline import PipelineRunner
from readmate.storage.base import StorageBackend

logger = logging.getLogger(__name__)

DEFAULT_AUTHOR = "Unknown"


# ---------------------------------------------------------------------------
# Filename helpers
# ---------------------------------------------------------------------------

def _get_extension(filename: str) -> str:
    """Return lowercased file extension including the dot."""
    parts = filename.rsplit(".", 1)
    return f".{parts[-1].lower()}" if len(parts) == 2 else ""


def _sanitize_filename(filename: str) -> str:
    """
    Strip path components and replace unsafe characters.
    Unicode letters are kept so non-Latin titles survive.
    """
    basename = filename.replace("\\", "/").rsplit("/", 1)[-1]
    safe = re.sub(r"[^\w.\-]", "_", basename)
    return safe[:200] or "upload"


def build_file_key(user_id: int, filename: str) -> str:
    return f"{user_id}/{secrets.token_hex(8)}_{_sanitize_filename(filename)}"


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------

class IngestionService:
    """
    One instance per request; all collaborators are injected.
    """

    def __init__(
        self,
        gateway: PersistenceGateway,
        storage: StorageBackend,
        runner:  PipelineRunner,
    ) -> None:
        self._gateway = gateway
        self._storage = storage
        self._runner  = runner

    async def ingest(
        self,
        user_id: int,
        file:    UploadFile,
        title:   str | None = None,
        author:  str | None = None,
    ) -> DocumentUploadResponse:
        """
        Store the upload and schedule processing. Returns the 202 body.
        Raises HTTPException with a structured ErrorResponse on bad input.
        """
        filename = file.filename or "upload"
        data = await self._read_upload(file)

        ext = _get_extension(filename)
        if ext not in ALLOWED_EXTENSIONS:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=UploadErrors.unsupported_file_type(filename, ext or "none").model_dump(),
            )
        file_type = ext.lstrip(".")

        file_key = build_file_key(user_id, filename)
        logger.info(
            "Ingest start | user=%s file=%s size=%d key=%s",
            user_id, filename, len(data), file_key,
        )

        try:
            file_url = await self._storage.put(file_key, data, CONTENT_TYPES[file_type])
        except StorageError as exc:
            logger.error("Ingest storage failed | user=%s key=%s error=%s", user_id, file_key, exc)
            raise HTTPException(
                status_code=status.HTTP_502_BAD_GATEWAY,
                detail=UploadErrors.storage_error(str(exc)).model_dump(),
            ) from exc

        try:
            document = await self._gateway.create_document(
                user_id=user_id,
                title=(title or "").strip() or filename,
                author=(author or "").strip() or DEFAULT_AUTHOR,
                file_key=file_key,
                file_url=file_url,
                file_type=file_type,
                file_size=len(data),
                status=DocumentStatus.PROCESSING.value,
            )
        except Exception:
            logger.exception("Ingest row creation failed | user=%s key=%s", user_id, file_key)
            await self._discard_stored(file_key)
            raise

        self._runner.schedule(document.id)

        logger.info("Ingest accepted | user=%s doc=%s", user_id, document.id)
        return DocumentUploadResponse(
            document_id=document.id,
            status=DocumentStatus.PROCESSING,
            file_key=file_key,
            title=document.title,
            file_type=file_type,
            file_size=len(data),
        )

    async def _discard_stored(self, file_key: str) -> None:
        try:
            await self._storage.delete(file_key)
        except StorageError:
            logger.exception("Ingest cleanup failed | key=%s", file_key)

    async def _read_upload(self, file: UploadFile) -> bytes:
        """Read the upload into memory; 400 when empty, 413 when too large."""
        limit = settings.max_upload_bytes
        data = await file.read(limit + 1)

        if not data:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=UploadErrors.empty_file().model_dump(),
            )
        if len(data) > limit:
            raise HTTPException(
                status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
                detail=UploadErrors.file_too_large(file.size or len(data), limit).model_dump(),
            )
        return data
