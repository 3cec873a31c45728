"""
Documents & Conversations — Pydantic Request/Response Schemas

Covers the HTTP surface under /api/v1:
  - Upload accepted response (202)
  - Document detail / listing / status polling
  - Report payload attached to a completed document
  - Conversations and messages (RAG chat)
  - Structured error bodies shared by every 4xx/5xx response

Design decisions:
  - Ids are database integers; user_id always comes from the bearer token.
  - status is the pipeline state, separate from the HTTP status.
  - Response models read straight from ORM rows (from_attributes=True).
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


# ---------------------------------------------------------------------------
# Accepted upload types — enforced before touching storage
# ---------------------------------------------------------------------------

ALLOWED_EXTENSIONS: frozenset[str] = frozenset({".pdf", ".docx", ".txt"})

CONTENT_TYPES: dict[str, str] = {
    "pdf":  "application/pdf",
    "docx": "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    "txt":  "text/plain",
}


# ---------------------------------------------------------------------------
# Processing pipeline state machine
# ---------------------------------------------------------------------------

class DocumentStatus(str, Enum):
    """
    Maps to documents.status.
    Transitions: uploading → processing → analyzing → generating_report → completed
                 any non-terminal state → error
    """
    UPLOADING         = "uploading"
    PROCESSING        = "processing"
    ANALYZING         = "analyzing"
    GENERATING_REPORT = "generating_report"
    COMPLETED         = "completed"
    ERROR             = "error"

    @property
    def is_terminal(self) -> bool:
        return self in (DocumentStatus.COMPLETED, DocumentStatus.ERROR)


class _OrmModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)


# ---------------------------------------------------------------------------
# Upload — 202 Accepted
# ---------------------------------------------------------------------------

class DocumentUploadResponse(BaseModel):
    """
    Returned immediately after a successful upload.
    HTTP 202 — the file is stored but analysis runs in the background.
    """
    document_id: int            = Field(..., description="Server-generated document id")
    status:      DocumentStatus = Field(DocumentStatus.PROCESSING)
    file_key:    str            = Field(..., description="Storage key: <user_id>/<random>_<filename>")
    title:       str
    file_type:   str
    file_size:   int            = Field(..., description="File size in bytes")


# ---------------------------------------------------------------------------
# Document read models
# ---------------------------------------------------------------------------

class DocumentResponse(_OrmModel):
    id:               int
    user_id:          int
    title:            str
    author:           str | None = None
    file_key:         str
    file_url:         str
    file_type:        str
    file_size:        int
    total_chunks:     int
    processed_chunks: int
    status:           DocumentStatus
    error_message:    str | None = None
    created_at:       datetime
    updated_at:       datetime


class ReportResponse(_OrmModel):
    id:                int
    document_id:       int
    core_summary:      str | None = None
    key_elements:      dict[str, Any] = Field(default_factory=dict)
    style_analysis:    dict[str, Any] = Field(default_factory=dict)
    value_assessment:  dict[str, Any] = Field(default_factory=dict)
    overall_sentiment: str | None = None
    word_count:        int | None = None
    reading_time:      int | None = Field(None, description="Minutes")
    created_at:        datetime


class DocumentDetailResponse(BaseModel):
    document: DocumentResponse
    report:   ReportResponse | None = None


class DocumentStatusResponse(BaseModel):
    """Polled by clients to track background processing progress."""
    document_id:      int
    status:           DocumentStatus
    total_chunks:     int   = 0
    processed_chunks: int   = 0
    progress:         float = Field(0.0, ge=0.0, le=100.0, description="Percent of chunks processed")
    error_message:    str | None = None
    updated_at:       datetime

    @classmethod
    def from_document(cls, document: Any) -> "DocumentStatusResponse":
        total = document.total_chunks or 0
        done = min(document.processed_chunks or 0, total)
        progress = round(100.0 * done / total, 1) if total else 0.0
        if document.status == DocumentStatus.COMPLETED.value:
            progress = 100.0
        return cls(
            document_id=document.id,
            status=document.status,
            total_chunks=total,
            processed_chunks=document.processed_chunks or 0,
            progress=progress,
            error_message=document.error_message,
            updated_at=document.updated_at,
        )


# ---------------------------------------------------------------------------
# Conversations & messages
# ---------------------------------------------------------------------------

DEFAULT_CONVERSATION_TITLE = "New conversation"


class ConversationCreateRequest(BaseModel):
    document_id: int
    title:       str | None = Field(None, max_length=255)


class ConversationResponse(_OrmModel):
    id:          int
    user_id:     int
    document_id: int
    title:       str | None = None
    created_at:  datetime
    updated_at:  datetime


class Citation(BaseModel):
    chunk_id:    int
    chunk_index: int
    similarity:  float


class MessageCreateRequest(BaseModel):
    content: str = Field(..., min_length=1, max_length=4000)

    @field_validator("content")
    @classmethod
    def content_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("content must not be blank")
        return v.strip()


class MessageResponse(_OrmModel):
    id:              int
    conversation_id: int
    role:            str
    content:         str
    citations:       list[Citation] | None = None
    created_at:      datetime


class ChatTurnResponse(BaseModel):
    """One question/answer exchange as persisted."""
    user_message:      MessageResponse
    assistant_message: MessageResponse


# ---------------------------------------------------------------------------
# Structured error bodies
# ---------------------------------------------------------------------------

class ErrorDetail(BaseModel):
    """Single structured error — may appear in a list."""
    field:   str | None = Field(None, description="Request field that caused the error, if applicable")
    message: str
    code:    str         = Field(..., description="Machine-readable error code for client handling")


class ErrorResponse(BaseModel):
    """
    Uniform error envelope for all 4xx/5xx responses.
    Clients should check `error_code` for programmatic handling.
    """
    error_code: str               = Field(..., description="Stable machine-readable code")
    message:    str               = Field(..., description="Human-readable summary")
    details:    list[ErrorDetail] = Field(default_factory=list)
    request_id: str | None        = Field(None, description="Trace ID for log correlation")


# ---------------------------------------------------------------------------
# Pre-defined error factories (keeps route handlers thin)
# ---------------------------------------------------------------------------

class UploadErrors:
    """Factories for the upload route's documented error cases."""

    @staticmethod
    def unsupported_file_type(filename: str, extension: str) -> ErrorResponse:
        return ErrorResponse(
            error_code="UNSUPPORTED_FILE_TYPE",
            message=f"File type '{extension}' is not supported.",
            details=[
                ErrorDetail(
                    field="file",
                    message=f"'{filename}' has an unsupported type. Allowed: PDF, DOCX, TXT.",
                    code="UNSUPPORTED_FILE_TYPE",
                )
            ],
        )

    @staticmethod
    def file_too_large(size_bytes: int, limit_bytes: int) -> ErrorResponse:
        max_mb = limit_bytes // (1024 * 1024)
        return ErrorResponse(
            error_code="FILE_TOO_LARGE",
            message=f"Uploaded file exceeds the {max_mb} MB limit.",
            details=[
                ErrorDetail(
                    field="file",
                    message=f"Received {size_bytes:,} bytes; limit is {limit_bytes:,} bytes.",
                    code="FILE_TOO_LARGE",
                )
            ],
        )

    @staticmethod
    def empty_file() -> ErrorResponse:
        return ErrorResponse(
            error_code="EMPTY_FILE",
            message="The uploaded file is empty.",
            details=[ErrorDetail(field="file", message="File has 0 bytes.", code="EMPTY_FILE")],
        )

    @staticmethod
    def storage_error(detail: str | None = None) -> ErrorResponse:
        return ErrorResponse(
            error_code="STORAGE_ERROR",
            message="Failed to store the document. Please retry.",
            details=(
                [ErrorDetail(field=None, message=detail, code="STORAGE_ERROR")]
                if detail
                else []
            ),
        )


def forbidden(resource: str) -> ErrorResponse:
    return ErrorResponse(
        error_code="FORBIDDEN",
        message=f"You do not have access to this {resource}.",
    )
