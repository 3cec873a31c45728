"""
Documents API Router

  POST   /api/v1/documents/upload                 upload + schedule processing (202)
  GET    /api/v1/documents                        caller's documents, newest first
  GET    /api/v1/documents/{id}                   document + report
  GET    /api/v1/documents/{id}/status            pipeline progress
  DELETE /api/v1/documents/{id}                   cascade delete + stored file delete
  GET    /api/v1/documents/{id}/conversations     caller's conversations, most recent first

Ownership: user_id always comes from the verified JWT. A document owned by
someone else answers 403; a missing one 404 (NotFoundError handler).
A document cannot be deleted while its analysis is running (409).
"""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, File, Form, HTTPException, UploadFile, status

from readmate.auth.dependencies import CurrentUser, Gateway, Ingestion, Runner, Storage
from readmate.auth.token import TokenPayload
from readmate.core.errors import DocumentBusyError
from readmate.db.repository import PersistenceGateway
from readmate.models.documents import Document
from readmate.schemas.documents import (
    ConversationResponse,
    DocumentDetailResponse,
    DocumentResponse,
    DocumentStatusResponse,
    DocumentUploadResponse,
    ErrorResponse,
    ReportResponse,
    forbidden,
)

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/documents",
    tags=["Documents"],
)


async def get_owned_document(
    gateway: PersistenceGateway,
    document_id: int,
    user: TokenPayload,
) -> Document:
    document = await gateway.get_document(document_id)
    if document.user_id != user.user_id:
        logger.warning(
            "Forbidden document access | user=%s doc=%s owner=%s",
            user.user_id, document_id, document.user_id,
        )
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=forbidden("document").model_dump(),
        )
    return document


# ---------------------------------------------------------------------------
# POST /documents/upload
# ---------------------------------------------------------------------------

@router.post(
    "/upload",
    response_model=DocumentUploadResponse,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Upload a document for analysis",
    description=(
        "Accepts PDF, DOCX or TXT files up to 50 MB. "
        "Returns 202 immediately; analysis runs in the background. "
        "Poll GET /documents/{id}/status for progress."
    ),
    responses={
        400: {"model": ErrorResponse, "description": "Unsupported or empty file"},
        401: {"model": ErrorResponse, "description": "Missing or invalid JWT"},
        413: {"model": ErrorResponse, "description": "File exceeds the size limit"},
        502: {"model": ErrorResponse, "description": "File storage failed"},
    },
)
async def upload_document(
    user:      CurrentUser,
    ingestion: Ingestion,
    file:      UploadFile    = File(..., description="Document file (PDF, DOCX, TXT)"),
    title:     Optional[str] = Form(None, max_length=255),
    author:    Optional[str] = Form(None, max_length=255),
) -> DocumentUploadResponse:
    return await ingestion.ingest(user.user_id, file, title=title, author=author)


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------

@router.get("", response_model=list[DocumentResponse], summary="List my documents")
async def list_documents(user: CurrentUser, gateway: Gateway) -> list[Document]:
    return await gateway.list_documents(user.user_id)


@router.get(
    "/{document_id}",
    response_model=DocumentDetailResponse,
    responses={403: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
async def get_document(document_id: int, user: CurrentUser, gateway: Gateway) -> DocumentDetailResponse:
    document = await get_owned_document(gateway, document_id, user)
    report = await gateway.get_report(document_id)
    return DocumentDetailResponse(
        document=DocumentResponse.model_validate(document),
        report=ReportResponse.model_validate(report) if report else None,
    )


@router.get(
    "/{document_id}/status",
    response_model=DocumentStatusResponse,
    responses={403: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
async def get_document_status(
    document_id: int, user: CurrentUser, gateway: Gateway,
) -> DocumentStatusResponse:
    document = await get_owned_document(gateway, document_id, user)
    return DocumentStatusResponse.from_document(document)


@router.get(
    "/{document_id}/conversations",
    response_model=list[ConversationResponse],
    responses={403: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
async def list_document_conversations(document_id: int, user: CurrentUser, gateway: Gateway):
    await get_owned_document(gateway, document_id, user)
    return await gateway.list_conversations(user.user_id, document_id)


# ---------------------------------------------------------------------------
# DELETE /documents/{id}
# ---------------------------------------------------------------------------

@router.delete(
    "/{document_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    responses={
        403: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse, "description": "Analysis still running"},
    },
)
async def delete_document(
    document_id: int, user: CurrentUser, gateway: Gateway, storage: Storage, runner: Runner,
) -> None:
    document = await get_owned_document(gateway, document_id, user)
    if runner.is_running(document_id):
        raise DocumentBusyError(document_id)
    await gateway.delete_document(document_id)
    await storage.delete(document.file_key)
    logger.info("Document deleted | user=%s doc=%s key=%s", user.user_id, document_id, document.file_key)
