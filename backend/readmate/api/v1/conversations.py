"""
Conversations API Router

  POST /api/v1/conversations                     start a conversation about a document
  POST /api/v1/conversations/{id}/messages       ask a question (RAG answer)
  GET  /api/v1/conversations/{id}/messages       history, oldest first
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, HTTPException, status

from readmate.api.v1.documents import get_owned_document
from readmate.auth.dependencies import CurrentUser, Gateway, Responder
from readmate.auth.token import TokenPayload
from readmate.db.repository import PersistenceGateway
from readmate.models.documents import Conversation, Message
from readmate.schemas.documents import (
    DEFAULT_CONVERSATION_TITLE,
    ChatTurnResponse,
    ConversationCreateRequest,
    ConversationResponse,
    ErrorResponse,
    MessageCreateRequest,
    MessageResponse,
    forbidden,
)

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/conversations",
    tags=["Conversations"],
)


async def _owned_conversation(
    gateway: PersistenceGateway,
    conversation_id: int,
    user: TokenPayload,
) -> Conversation:
    conversation = await gateway.get_conversation(conversation_id)
    if conversation.user_id != user.user_id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=forbidden("conversation").model_dump(),
        )
    return conversation


@router.post(
    "",
    response_model=ConversationResponse,
    status_code=status.HTTP_201_CREATED,
    responses={403: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
async def create_conversation(
    body: ConversationCreateRequest, user: CurrentUser, gateway: Gateway,
) -> Conversation:
    await get_owned_document(gateway, body.document_id, user)
    title = (body.title or "").strip() or DEFAULT_CONVERSATION_TITLE
    conversation = await gateway.create_conversation(user.user_id, body.document_id, title)
    logger.info(
        "Conversation created | user=%s doc=%s conv=%s",
        user.user_id, body.document_id, conversation.id,
    )
    return conversation


@router.post(
    "/{conversation_id}/messages",
    response_model=ChatTurnResponse,
    responses={
        403: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        502: {"model": ErrorResponse, "description": "Provider failed; the question is kept"},
    },
)
async def post_message(
    conversation_id: int,
    body:      MessageCreateRequest,
    user:      CurrentUser,
    gateway:   Gateway,
    responder: Responder,
) -> ChatTurnResponse:
    await _owned_conversation(gateway, conversation_id, user)
    result = await responder.answer(conversation_id, user.user_id, body.content)
    return ChatTurnResponse(
        user_message=MessageResponse.model_validate(result.user_message),
        assistant_message=MessageResponse.model_validate(result.assistant_message),
    )


@router.get(
    "/{conversation_id}/messages",
    response_model=list[MessageResponse],
    responses={403: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
async def list_messages(conversation_id: int, user: CurrentUser, gateway: Gateway) -> list[Message]:
    await _owned_conversation(gateway, conversation_id, user)
    return await gateway.get_messages(conversation_id)
