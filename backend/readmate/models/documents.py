"""
SQLAlchemy ORM Models — Documents, Chunks, Analyses, Reports, Conversations

Using SQLAlchemy mapped classes (2.x style) for full async support.
Column types are dialect-neutral (JSON, Text, Integer) so the same models
run on SQLite (aiosqlite, local/dev/tests) and PostgreSQL (asyncpg).

Ownership:
    Document ─┬─ Chunk ── ChunkAnalysis
              ├─ DocumentReport
              └─ Conversation ── Message

Deleting a Document removes everything beneath it; the gateway issues the
deletes explicitly in one transaction (SQLite does not enforce ON DELETE
CASCADE unless the foreign_keys pragma is on).
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import (
    JSON,
    CheckConstraint,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Declarative base — shared across all models
# ---------------------------------------------------------------------------

class Base(DeclarativeBase):
    pass


# ---------------------------------------------------------------------------
# Document model — documents
# ---------------------------------------------------------------------------

class Document(Base):
    """
    Tracks a single uploaded file from upload → analysis → report.

    State machine (status column):
        uploading         — file being stored
        processing        — stored; text extraction + chunking
        analyzing         — per-chunk analysis + embedding loop
        generating_report — reducing chunk analyses into the report
        completed         — report available
        error             — pipeline failed (see error_message)
    """

    __tablename__ = "documents"
    __table_args__ = (
        CheckConstraint(
            "status IN ('uploading', 'processing', 'analyzing', "
            "'generating_report', 'completed', 'error')",
            name="documents_status_check",
        ),
        Index("idx_documents_user_id", "user_id"),
        # ids of deleted documents are never handed out again
        {"sqlite_autoincrement": True},
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False)

    title:  Mapped[str]           = mapped_column(Text, nullable=False)
    author: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Stored file reference
    file_key:  Mapped[str] = mapped_column(Text, nullable=False, comment="Storage key: <user_id>/<random>_<filename>")
    file_url:  Mapped[str] = mapped_column(Text, nullable=False)
    file_type: Mapped[str] = mapped_column(String(16), nullable=False, comment="pdf | docx | txt")
    file_size: Mapped[int] = mapped_column(Integer, nullable=False)

    # Progress counters — processed_chunks is only ever incremented in SQL
    total_chunks:     Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    processed_chunks: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")

    status: Mapped[str] = mapped_column(
        String(32),
        nullable=False,
        default="uploading",
        server_default="uploading",
    )
    error_message: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
        comment="Populated only when status='error'",
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        server_default=func.now(),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        server_default=func.now(),
        onupdate=_utcnow,
    )

    def __repr__(self) -> str:
        return (
            f"<Document id={self.id} user={self.user_id} "
            f"status={self.status} title={self.title!r}>"
        )


# ---------------------------------------------------------------------------
# Chunk model — chunks
# ---------------------------------------------------------------------------

class Chunk(Base):
    """One overlapping text segment of a Document, optionally embedded."""

    __tablename__ = "chunks"
    __table_args__ = (
        UniqueConstraint("document_id", "chunk_index", name="uq_chunks_position"),
        Index("idx_chunks_document_id", "document_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    document_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("documents.id", ondelete="CASCADE"),
        nullable=False,
    )
    chunk_index: Mapped[int] = mapped_column(Integer, nullable=False)
    content:     Mapped[str] = mapped_column(Text, nullable=False)

    start_position: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    end_position:   Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    page_number:    Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    embedding: Mapped[Optional[list[float]]] = mapped_column(JSON, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        server_default=func.now(),
    )

    def __repr__(self) -> str:
        return f"<Chunk id={self.id} doc={self.document_id} index={self.chunk_index}>"


# ---------------------------------------------------------------------------
# ChunkAnalysis model — chunk_analyses
# ---------------------------------------------------------------------------

class ChunkAnalysis(Base):
    """
    Provider analysis of one chunk. Insert-only: a re-analysis would add a
    new row rather than update this one.
    """

    __tablename__ = "chunk_analyses"
    __table_args__ = (
        Index("idx_chunk_analyses_document_id", "document_id"),
        Index("idx_chunk_analyses_chunk_id",    "chunk_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    chunk_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("chunks.id", ondelete="CASCADE"),
        nullable=False,
    )
    document_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("documents.id", ondelete="CASCADE"),
        nullable=False,
    )

    summary:         Mapped[Optional[str]]   = mapped_column(Text, nullable=True)
    key_entities:    Mapped[list[str]]       = mapped_column(JSON, nullable=False, default=list)
    core_arguments:  Mapped[list[str]]       = mapped_column(JSON, nullable=False, default=list)
    sentiment:       Mapped[Optional[str]]   = mapped_column(String(16), nullable=True)
    sentiment_score: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    themes:          Mapped[list[str]]       = mapped_column(JSON, nullable=False, default=list)
    quotes:          Mapped[list[str]]       = mapped_column(JSON, nullable=False, default=list)
    raw_analysis:    Mapped[Optional[str]]   = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        server_default=func.now(),
    )


# ---------------------------------------------------------------------------
# DocumentReport model — document_reports
# ---------------------------------------------------------------------------

class DocumentReport(Base):
    """Whole-document report produced by the reduction step."""

    __tablename__ = "document_reports"
    __table_args__ = (
        Index("idx_document_reports_document_id", "document_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    document_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("documents.id", ondelete="CASCADE"),
        nullable=False,
    )

    core_summary:      Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    key_elements:      Mapped[dict]          = mapped_column(JSON, nullable=False, default=dict)
    style_analysis:    Mapped[dict]          = mapped_column(JSON, nullable=False, default=dict)
    value_assessment:  Mapped[dict]          = mapped_column(JSON, nullable=False, default=dict)
    overall_sentiment: Mapped[Optional[str]] = mapped_column(String(16), nullable=True)
    word_count:        Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    reading_time:      Mapped[Optional[int]] = mapped_column(Integer, nullable=True, comment="Minutes")

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        server_default=func.now(),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        server_default=func.now(),
        onupdate=_utcnow,
    )


# ---------------------------------------------------------------------------
# Conversation / Message models
# ---------------------------------------------------------------------------

class Conversation(Base):
    """A chat thread about one document. updated_at is bumped per message."""

    __tablename__ = "conversations"
    __table_args__ = (
        Index("idx_conversations_user_document", "user_id", "document_id"),
        {"sqlite_autoincrement": True},
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False)
    document_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("documents.id", ondelete="CASCADE"),
        nullable=False,
    )
    title: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        server_default=func.now(),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        server_default=func.now(),
    )


class Message(Base):
    __tablename__ = "messages"
    __table_args__ = (
        CheckConstraint("role IN ('user', 'assistant')", name="messages_role_check"),
        Index("idx_messages_conversation_id", "conversation_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    conversation_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("conversations.id", ondelete="CASCADE"),
        nullable=False,
    )
    role:      Mapped[str]                  = mapped_column(String(16), nullable=False)
    content:   Mapped[str]                  = mapped_column(Text, nullable=False)
    citations: Mapped[Optional[list[dict]]] = mapped_column(JSON, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        server_default=func.now(),
    )

    def __repr__(self) -> str:
        return f"<Message id={self.id} conv={self.conversation_id} role={self.role}>"
