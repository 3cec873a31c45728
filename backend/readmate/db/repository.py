"""
Persistence Gateway — durable storage for documents and everything beneath them

The analysis pipeline and the chat responder talk to storage only through
`PersistenceGateway`. `SqlAlchemyGateway` is the production implementation;
every method opens its own short transaction (`session_scope`) so a slow
provider call between two gateway calls never holds a connection or a
write lock.

Guarantees:
  - processed_chunks is incremented in SQL (UPDATE … SET x = x + 1), never
    read-modify-written in Python.
  - chunks are inserted in batches of CHUNK_INSERT_BATCH_SIZE rows.
  - delete_document removes messages, conversations, report, analyses,
    chunks and the document in one transaction.
  - not-found lookups raise NotFoundError.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Sequence

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from readmate.core.errors import NotFoundError
from readmate.db.session import session_scope
from readmate.models.documents import (
    Chunk,
    ChunkAnalysis,
    Conversation,
    Document,
    DocumentReport,
    Message,
)
from readmate.processing.chunking import TextChunk
from readmate.schemas.analysis import ChunkAnalysisResult, DocumentReportResult

logger = logging.getLogger(__name__)

CHUNK_INSERT_BATCH_SIZE = 100


# ---------------------------------------------------------------------------
# Contract
# ---------------------------------------------------------------------------

class PersistenceGateway(ABC):
    """Storage operations used by services. Ids are database integers."""

    # ── documents ────────────────────────────────────────────────────────
    @abstractmethod
    async def create_document(self, **fields: Any) -> Document: ...

    @abstractmethod
    async def get_document(self, document_id: int) -> Document: ...

    @abstractmethod
    async def list_documents(self, user_id: int) -> list[Document]: ...

    @abstractmethod
    async def update_document_status(
        self, document_id: int, status: str, error_message: str | None = None,
    ) -> None: ...

    @abstractmethod
    async def set_total_chunks(self, document_id: int, total: int) -> None: ...

    @abstractmethod
    async def increment_processed_chunks(self, document_id: int) -> None: ...

    @abstractmethod
    async def delete_document(self, document_id: int) -> None: ...

    # ── chunks ───────────────────────────────────────────────────────────
    @abstractmethod
    async def create_chunks(self, document_id: int, chunks: Sequence[TextChunk]) -> int: ...

    @abstractmethod
    async def get_chunks(self, document_id: int) -> list[Chunk]: ...

    @abstractmethod
    async def update_chunk_embedding(self, chunk_id: int, embedding: list[float]) -> None: ...

    # ── analyses & report ────────────────────────────────────────────────
    @abstractmethod
    async def create_chunk_analysis(
        self, chunk_id: int, document_id: int, result: ChunkAnalysisResult,
    ) -> ChunkAnalysis: ...

    @abstractmethod
    async def get_chunk_analyses(self, document_id: int) -> list[ChunkAnalysis]: ...

    @abstractmethod
    async def create_report(
        self,
        document_id: int,
        report: DocumentReportResult,
        overall_sentiment: str | None = None,
        word_count: int | None = None,
        reading_time: int | None = None,
    ) -> DocumentReport: ...

    @abstractmethod
    async def get_report(self, document_id: int) -> DocumentReport | None: ...

    # ── conversations ────────────────────────────────────────────────────
    @abstractmethod
    async def create_conversation(
        self, user_id: int, document_id: int, title: str | None,
    ) -> Conversation: ...

    @abstractmethod
    async def get_conversation(self, conversation_id: int) -> Conversation: ...

    @abstractmethod
    async def list_conversations(self, user_id: int, document_id: int) -> list[Conversation]: ...

    @abstractmethod
    async def create_message(
        self,
        conversation_id: int,
        role: str,
        content: str,
        citations: list[dict] | None = None,
    ) -> Message: ...

    @abstractmethod
    async def get_messages(self, conversation_id: int, limit: int | None = None) -> list[Message]: ...


# ---------------------------------------------------------------------------
# SQLAlchemy implementation
# ---------------------------------------------------------------------------

class SqlAlchemyGateway(PersistenceGateway):
    """
    Async SQLAlchemy gateway.

    Args:
        session_factory : async_sessionmaker; defaults to the application's
                          AsyncSessionLocal. Tests pass one bound to an
                          in-memory SQLite engine.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession] | None = None) -> None:
        self._factory = session_factory

    def _scope(self):
        return session_scope(self._factory)

    # ------------------------------------------------------------------
    # Documents
    # ------------------------------------------------------------------

    async def create_document(self, **fields: Any) -> Document:
        async with self._scope() as db:
            document = Document(**fields)
            db.add(document)
            await db.flush()
        logger.info(
            "Gateway | document created id=%s user=%s status=%s",
            document.id, document.user_id, document.status,
        )
        return document

    async def get_document(self, document_id: int) -> Document:
        async with self._scope() as db:
            document = await db.get(Document, document_id)
        if document is None:
            raise NotFoundError("Document", document_id)
        return document

    async def list_documents(self, user_id: int) -> list[Document]:
        async with self._scope() as db:
            result = await db.execute(
                select(Document)
                .where(Document.user_id == user_id)
                .order_by(Document.created_at.desc(), Document.id.desc())
            )
            return list(result.scalars().all())

    async def update_document_status(
        self, document_id: int, status: str, error_message: str | None = None,
    ) -> None:
        values: dict[str, Any] = {"status": status}
        if error_message is not None:
            values["error_message"] = error_message

        async with self._scope() as db:
            result = await db.execute(
                update(Document).where(Document.id == document_id).values(**values)
            )
        if result.rowcount == 0:
            raise NotFoundError("Document", document_id)
        logger.info("Gateway | status doc=%s status=%s", document_id, status)

    async def set_total_chunks(self, document_id: int, total: int) -> None:
        async with self._scope() as db:
            await db.execute(
                update(Document).where(Document.id == document_id).values(total_chunks=total)
            )

    async def increment_processed_chunks(self, document_id: int) -> None:
        async with self._scope() as db:
            await db.execute(
                update(Document)
                .where(Document.id == document_id)
                .values(processed_chunks=Document.processed_chunks + 1)
            )

    async def delete_document(self, document_id: int) -> None:
        async with self._scope() as db:
            if await db.get(Document, document_id) is None:
                raise NotFoundError("Document", document_id)

            conversation_ids = select(Conversation.id).where(Conversation.document_id == document_id)
            await db.execute(delete(Message).where(Message.conversation_id.in_(conversation_ids)))
            await db.execute(delete(Conversation).where(Conversation.document_id == document_id))
            await db.execute(delete(DocumentReport).where(DocumentReport.document_id == document_id))
            await db.execute(delete(ChunkAnalysis).where(ChunkAnalysis.document_id == document_id))
            await db.execute(delete(Chunk).where(Chunk.document_id == document_id))
            await db.execute(delete(Document).where(Document.id == document_id))
        logger.info("Gateway | document deleted id=%s", document_id)

    # ------------------------------------------------------------------
    # Chunks
    # ------------------------------------------------------------------

    async def create_chunks(self, document_id: int, chunks: Sequence[TextChunk]) -> int:
        """Insert all chunks in batches; returns the number inserted."""
        inserted = 0
        async with self._scope() as db:
            for start in range(0, len(chunks), CHUNK_INSERT_BATCH_SIZE):
                batch = chunks[start:start + CHUNK_INSERT_BATCH_SIZE]
                db.add_all(
                    Chunk(
                        document_id=document_id,
                        chunk_index=c.chunk_index,
                        content=c.content,
                        start_position=c.start_position,
                        end_position=c.end_position,
                    )
                    for c in batch
                )
                await db.flush()
                inserted += len(batch)
        logger.info("Gateway | chunks inserted doc=%s count=%d", document_id, inserted)
        return inserted

    async def get_chunks(self, document_id: int) -> list[Chunk]:
        async with self._scope() as db:
            result = await db.execute(
                select(Chunk)
                .where(Chunk.document_id == document_id)
                .order_by(Chunk.chunk_index)
            )
            return list(result.scalars().all())

    async def update_chunk_embedding(self, chunk_id: int, embedding: list[float]) -> None:
        async with self._scope() as db:
            result = await db.execute(
                update(Chunk).where(Chunk.id == chunk_id).values(embedding=list(embedding))
            )
        if result.rowcount == 0:
            raise NotFoundError("Chunk", chunk_id)

    # ------------------------------------------------------------------
    # Analyses & report
    # ------------------------------------------------------------------

    async def create_chunk_analysis(
        self, chunk_id: int, document_id: int, result: ChunkAnalysisResult,
    ) -> ChunkAnalysis:
        async with self._scope() as db:
            analysis = ChunkAnalysis(
                chunk_id=chunk_id,
                document_id=document_id,
                summary=result.summary,
                key_entities=result.key_entities,
                core_arguments=result.core_arguments,
                sentiment=result.sentiment,
                sentiment_score=result.sentiment_score,
                themes=result.themes,
                quotes=result.quotes,
                raw_analysis=result.model_dump_json(by_alias=True),
            )
            db.add(analysis)
            await db.flush()
        return analysis

    async def get_chunk_analyses(self, document_id: int) -> list[ChunkAnalysis]:
        async with self._scope() as db:
            result = await db.execute(
                select(ChunkAnalysis)
                .where(ChunkAnalysis.document_id == document_id)
                .order_by(ChunkAnalysis.id)
            )
            return list(result.scalars().all())

    async def create_report(
        self,
        document_id: int,
        report: DocumentReportResult,
        overall_sentiment: str | None = None,
        word_count: int | None = None,
        reading_time: int | None = None,
    ) -> DocumentReport:
        async with self._scope() as db:
            row = DocumentReport(
                document_id=document_id,
                core_summary=report.core_summary,
                key_elements=report.key_elements.model_dump(by_alias=True),
                style_analysis=report.style_analysis.model_dump(by_alias=True),
                value_assessment=report.value_assessment.model_dump(by_alias=True),
                overall_sentiment=overall_sentiment,
                word_count=word_count,
                reading_time=reading_time,
            )
            db.add(row)
            await db.flush()
        logger.info("Gateway | report stored doc=%s report=%s", document_id, row.id)
        return row

    async def get_report(self, document_id: int) -> DocumentReport | None:
        async with self._scope() as db:
            result = await db.execute(
                select(DocumentReport)
                .where(DocumentReport.document_id == document_id)
                .order_by(DocumentReport.id.desc())
                .limit(1)
            )
            return result.scalar_one_or_none()

    # ------------------------------------------------------------------
    # Conversations & messages
    # ------------------------------------------------------------------

    async def create_conversation(
        self, user_id: int, document_id: int, title: str | None,
    ) -> Conversation:
        async with self._scope() as db:
            conversation = Conversation(user_id=user_id, document_id=document_id, title=title)
            db.add(conversation)
            await db.flush()
        return conversation

    async def get_conversation(self, conversation_id: int) -> Conversation:
        async with self._scope() as db:
            conversation = await db.get(Conversation, conversation_id)
        if conversation is None:
            raise NotFoundError("Conversation", conversation_id)
        return conversation

    async def list_conversations(self, user_id: int, document_id: int) -> list[Conversation]:
        async with self._scope() as db:
            result = await db.execute(
                select(Conversation)
                .where(Conversation.user_id == user_id, Conversation.document_id == document_id)
                .order_by(Conversation.updated_at.desc(), Conversation.id.desc())
            )
            return list(result.scalars().all())

    async def create_message(
        self,
        conversation_id: int,
        role: str,
        content: str,
        citations: list[dict] | None = None,
    ) -> Message:
        async with self._scope() as db:
            message = Message(
                conversation_id=conversation_id,
                role=role,
                content=content,
                citations=citations,
            )
            db.add(message)
            await db.flush()
            await db.execute(
                update(Conversation)
                .where(Conversation.id == conversation_id)
                .values(updated_at=datetime.now(timezone.utc))
            )
        return message

    async def get_messages(self, conversation_id: int, limit: int | None = None) -> list[Message]:
        """Messages oldest first; with *limit*, only the most recent *limit* of them."""
        async with self._scope() as db:
            query = select(Message).where(Message.conversation_id == conversation_id)
            if limit is None:
                result = await db.execute(query.order_by(Message.created_at, Message.id))
                return list(result.scalars().all())

            result = await db.execute(
                query.order_by(Message.created_at.desc(), Message.id.desc()).limit(limit)
            )
            return list(reversed(result.scalars().all()))
