"""
Analysis Pipeline — the document processing state machine

Drives one document from stored file to finished report:

  ┌──────────────────────────────────────────────────────────────────────┐
  │  process_document(id)                                                │
  │    1. storage.get(file_key)          → raw bytes                     │
  │    2. extract_text                   → plain text                    │
  │    3. split_text                     → TextChunks                    │
  │    4. gateway.create_chunks          (status: processing)            │
  │    5. analyze_chunks(id)             (status: analyzing)             │
  │         for each chunk, in chunk_index order:                        │
  │           analyze → store analysis → embed → store vector            │
  │           processed_chunks += 1   (success or failure)               │
  │    6. generate_report(id)            (status: generating_report)     │
  │         all analyses → provider reduce → DocumentReport              │
  │                                      (status: completed)             │
  │                                                                      │
  │  any escaping exception → status: error, error_message = str(exc)    │
  └──────────────────────────────────────────────────────────────────────┘

Failure model:
  - A chunk whose analysis or embedding raises is logged and skipped; the
    loop continues with the next chunk.
  - Zero chunks, or zero successful analyses, is fatal (EmptyResultError);
    the reduce call is never made.
  - A reduce failure marks the document as error and re-raises.

Chunks of one document are processed strictly one after another. Separate
documents run concurrently as independent asyncio tasks (PipelineRunner),
and a document can only have one run in flight at a time.
"""

from __future__ import annotations

import asyncio
import logging
import math
import re
import time
from collections import Counter
from dataclasses import dataclass, field
from typing import Any, Iterable

from readmate.core.config import settings
from readmate.core.errors import (
    DocumentBusyError,
    EmptyResultError,
    InvalidStateError,
    NotFoundError,
    StorageError,
)
from readmate.db.repository import PersistenceGateway
from readmate.llm.client import TextIntelligenceClient
from readmate.models.documents import DocumentReport
from readmate.processing.chunking import split_text
from readmate.processing.extractor import extract_text_async
from readmate.schemas.documents import DocumentStatus
from readmate.storage.base import StorageBackend

logger = logging.getLogger(__name__)

WORDS_PER_MINUTE = 300

_TERMINAL_STATES = frozenset({DocumentStatus.COMPLETED.value, DocumentStatus.ERROR.value})

_LATIN_WORD_RE = re.compile(r"[A-Za-z0-9]+(?:['’\-][A-Za-z0-9]+)*")
_CJK_CHAR_RE   = re.compile(r"[\u3400-\u4dbf\u4e00-\u9fff\uf900-\ufaff]")


# ---------------------------------------------------------------------------
# Report enrichment helpers
# ---------------------------------------------------------------------------

def count_words(text: str) -> int:
    """Latin-script words plus individual CJK characters."""
    return len(_LATIN_WORD_RE.findall(text)) + len(_CJK_CHAR_RE.findall(text))


def estimate_reading_time(word_count: int | None) -> int | None:
    """Minutes at WORDS_PER_MINUTE, rounded up; at least 1 for any text."""
    if not word_count:
        return None if word_count is None else 0
    return max(1, math.ceil(word_count / WORDS_PER_MINUTE))


def dominant_sentiment(sentiments: Iterable[str | None]) -> str:
    """Most common chunk sentiment; first seen wins a tie; neutral when empty."""
    counts = Counter(s for s in sentiments if s)
    if not counts:
        return "neutral"
    return counts.most_common(1)[0][0]


# ---------------------------------------------------------------------------
# Cursor
# ---------------------------------------------------------------------------

@dataclass
class PipelineCursor:
    """
    Position of the per-chunk loop.

    next_index : chunk_index of the next chunk to process (resume point)
    succeeded  : chunk indices whose analysis was stored
    failed     : chunk indices that raised
    """
    document_id: int
    total:       int
    next_index:  int       = 0
    succeeded:   list[int] = field(default_factory=list)
    failed:      list[int] = field(default_factory=list)

    @property
    def processed(self) -> int:
        return len(self.succeeded) + len(self.failed)

    @property
    def done(self) -> bool:
        return self.processed >= self.total

    def advance(self, chunk_index: int, ok: bool) -> None:
        (self.succeeded if ok else self.failed).append(chunk_index)
        self.next_index = chunk_index + 1


# ---------------------------------------------------------------------------
# Pipeline
# ---------------------------------------------------------------------------

class AnalysisPipeline:
    """
    Sole writer of a document's status and progress counters while it is
    being processed.

    Args:
        gateway  : persistence
        provider : text-intelligence client (analysis, embedding, reduce)
        storage  : raw file storage; only needed by process_document
    """

    def __init__(
        self,
        gateway:  PersistenceGateway,
        provider: TextIntelligenceClient,
        storage:  StorageBackend | None = None,
    ) -> None:
        self._gateway  = gateway
        self._provider = provider
        self._storage  = storage

    async def _fail(self, document_id: int, message: str) -> None:
        await self._gateway.update_document_status(
            document_id, DocumentStatus.ERROR.value, error_message=message,
        )

    # ------------------------------------------------------------------
    # Map stage
    # ------------------------------------------------------------------

    async def analyze_chunks(self, document_id: int) -> PipelineCursor:
        """
        Analyse and embed every chunk of the document in index order.

        Raises:
            InvalidStateError : document already completed / errored
            EmptyResultError  : no chunks, or no analysis could be stored
        """
        document = await self._gateway.get_document(document_id)
        if document.status in _TERMINAL_STATES:
            raise InvalidStateError(
                f"Document {document_id} is {document.status}; analysis cannot start"
            )

        chunks = await self._gateway.get_chunks(document_id)
        if not chunks:
            await self._fail(document_id, "No chunks to analyze")
            raise EmptyResultError(f"Document {document_id} has no chunks")

        await self._gateway.update_document_status(document_id, DocumentStatus.ANALYZING.value)
        cursor = PipelineCursor(document_id=document_id, total=len(chunks))
        t0 = time.monotonic()

        for chunk in chunks:
            ok = False
            try:
                analysis = await self._provider.analyze_chunk(chunk.content)
                await self._gateway.create_chunk_analysis(chunk.id, document_id, analysis)
                ok = True

                vector = await self._provider.embed(chunk.content)
                if vector:
                    await self._gateway.update_chunk_embedding(chunk.id, vector)
                else:
                    logger.warning(
                        "Embedding empty | doc=%s chunk=%d", document_id, chunk.chunk_index,
                    )
            except Exception:
                logger.exception(
                    "Chunk processing failed | doc=%s chunk=%d", document_id, chunk.chunk_index,
                )
            finally:
                await self._gateway.increment_processed_chunks(document_id)
                cursor.advance(chunk.chunk_index, ok)

        logger.info(
            "Analysis loop done | doc=%s total=%d ok=%d failed=%d elapsed_s=%.1f",
            document_id, cursor.total, len(cursor.succeeded), len(cursor.failed),
            time.monotonic() - t0,
        )

        analyses = await self._gateway.get_chunk_analyses(document_id)
        if not analyses:
            await self._fail(document_id, "No chunk analyses were produced")
            raise EmptyResultError(f"Document {document_id} produced no chunk analyses")

        return cursor

    # ------------------------------------------------------------------
    # Reduce stage
    # ------------------------------------------------------------------

    async def generate_report(
        self,
        document_id: int,
        word_count:  int | None = None,
    ) -> DocumentReport:
        """
        Reduce all stored analyses into the document report.
        Any failure marks the document as error and is re-raised.
        """
        try:
            await self._gateway.update_document_status(
                document_id, DocumentStatus.GENERATING_REPORT.value,
            )
            document = await self._gateway.get_document(document_id)
            analyses = await self._gateway.get_chunk_analyses(document_id)
            if not analyses:
                raise EmptyResultError(f"Document {document_id} has no chunk analyses to reduce")

            result = await self._provider.generate_report(document.title, analyses)
            report = await self._gateway.create_report(
                document_id,
                result,
                overall_sentiment=dominant_sentiment(a.sentiment for a in analyses),
                word_count=word_count,
                reading_time=estimate_reading_time(word_count),
            )
            await self._gateway.update_document_status(
                document_id, DocumentStatus.COMPLETED.value,
            )
        except Exception as exc:
            logger.exception("Report generation failed | doc=%s", document_id)
            await self._fail(document_id, str(exc))
            raise

        logger.info("Report ready | doc=%s report=%s", document_id, report.id)
        return report

    async def run_analysis(
        self,
        document_id: int,
        word_count:  int | None = None,
    ) -> DocumentReport:
        """Map then reduce, for a document whose chunks are already stored."""
        await self.analyze_chunks(document_id)
        return await self.generate_report(document_id, word_count=word_count)

    # ------------------------------------------------------------------
    # Full orchestration
    # ------------------------------------------------------------------

    async def process_document(self, document_id: int) -> DocumentReport | None:
        """
        Extract → chunk → analyse → reduce for a freshly uploaded document.

        Top-level entry point for background tasks: every exception is
        logged and forces status error. Returns the report, or None when
        the run failed.
        """
        try:
            document = await self._gateway.get_document(document_id)
            if document.status in _TERMINAL_STATES:
                raise InvalidStateError(
                    f"Document {document_id} is {document.status}; processing cannot start"
                )
            if self._storage is None:
                raise StorageError("No storage backend configured")

            data = await self._storage.get(document.file_key)
            if data is None:
                raise StorageError(f"Stored file not found: {document.file_key}")

            text = await extract_text_async(data, document.file_type)
            if not text:
                raise EmptyResultError("Extracted text is empty")

            chunks = split_text(text, settings.chunk_size, settings.chunk_overlap)
            if not chunks:
                raise EmptyResultError("Text produced no chunks")

            await self._gateway.create_chunks(document_id, chunks)
            await self._gateway.set_total_chunks(document_id, len(chunks))
            logger.info("Chunked | doc=%s chunks=%d chars=%d", document_id, len(chunks), len(text))

            return await self.run_analysis(document_id, word_count=count_words(text))

        except InvalidStateError as exc:
            logger.warning("Processing skipped | doc=%s reason=%s", document_id, exc)
            return None
        except Exception as exc:
            logger.exception("Document processing failed | doc=%s", document_id)
            await self._mark_error(document_id, exc)
            return None

    async def _mark_error(self, document_id: int, exc: Exception) -> None:
        """Record exc unless an inner stage already stored its own error message."""
        try:
            document = await self._gateway.get_document(document_id)
            if document.status == DocumentStatus.ERROR.value:
                return
            await self._fail(document_id, str(exc) or type(exc).__name__)
        except NotFoundError:
            logger.warning("Document gone before error could be recorded | doc=%s", document_id)
        except Exception:
            logger.exception("Could not record error status | doc=%s", document_id)


# ---------------------------------------------------------------------------
# Background runner
# ---------------------------------------------------------------------------

class PipelineRunner:
    """
    Runs AnalysisPipeline.process_document as asyncio tasks.

    Holds strong references to running tasks and rejects a second run for
    a document that is already in flight (DocumentBusyError). Runs do not
    survive a process restart.
    """

    def __init__(self, pipeline: AnalysisPipeline) -> None:
        self._pipeline  = pipeline
        self._in_flight: set[int] = set()
        self._tasks:     set[asyncio.Task[Any]] = set()

    def is_running(self, document_id: int) -> bool:
        return document_id in self._in_flight

    def schedule(self, document_id: int) -> asyncio.Task[Any]:
        if document_id in self._in_flight:
            raise DocumentBusyError(document_id)
        self._in_flight.add(document_id)

        task = asyncio.create_task(self._run(document_id), name=f"process-document-{document_id}")
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        logger.info("Processing scheduled | doc=%s", document_id)
        return task

    async def _run(self, document_id: int) -> DocumentReport | None:
        try:
            return await self._pipeline.process_document(document_id)
        finally:
            self._in_flight.discard(document_id)

    async def drain(self) -> None:
        """Wait for every run scheduled so far to finish."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def shutdown(self) -> None:
        """Cancel outstanding runs (application shutdown)."""
        for task in list(self._tasks):
            task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
