"""
Conversation Responder — retrieval-augmented answers about one document

Flow per question:
  1. Load the conversation and the last N prior messages (oldest first)
  2. Persist the user's message          ← before any provider call
  3. Embed the question
  4. Top-k chunks of the conversation's document by cosine similarity
  5. One completion: system prompt with the joined chunk context
                     + prior history + the question
  6. Persist the assistant reply with citations (chunk id, index, similarity)

A provider failure in steps 3-5 propagates to the caller; the user's
message stays persisted so the question is not lost.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from readmate.core.config import Settings, settings as default_settings
from readmate.core.errors import NotFoundError
from readmate.db.repository import PersistenceGateway
from readmate.llm.client import ChatTurn, TextIntelligenceClient
from readmate.llm.prompts import build_rag_system_prompt
from readmate.models.documents import Message
from readmate.rag.similarity import ScoredChunk, search_similar_chunks

logger = logging.getLogger(__name__)


@dataclass
class ConversationAnswer:
    user_message:      Message
    assistant_message: Message
    sources:           list[ScoredChunk]


class ConversationResponder:

    def __init__(
        self,
        gateway:  PersistenceGateway,
        provider: TextIntelligenceClient,
        config:   Settings | None = None,
    ) -> None:
        self._gateway  = gateway
        self._provider = provider
        self._settings = config or default_settings

    async def answer(
        self,
        conversation_id: int,
        user_id:         int,
        question:        str,
    ) -> ConversationAnswer:
        """
        Answer *question* in the conversation owned by *user_id*.

        Raises:
            NotFoundError : conversation missing or owned by someone else
            ProviderError : completion failed (user message already stored)
        """
        conversation = await self._gateway.get_conversation(conversation_id)
        if conversation.user_id != user_id:
            raise NotFoundError("Conversation", conversation_id)

        prior = await self._gateway.get_messages(
            conversation_id, limit=self._settings.rag_history_limit,
        )
        history = [ChatTurn(role=m.role, content=m.content) for m in prior]

        user_message = await self._gateway.create_message(conversation_id, "user", question)

        query_vector = await self._provider.embed(question)
        if not query_vector:
            # every chunk scores 0; the first k embedded chunks become the context
            logger.warning("Responder | question embedding empty conv=%s", conversation_id)
        chunks = await self._gateway.get_chunks(conversation.document_id)
        sources = search_similar_chunks(chunks, query_vector, k=self._settings.rag_top_k)

        reply = await self._provider.complete(
            build_rag_system_prompt(s.content for s in sources),
            history,
            question,
            temperature=self._settings.rag_temperature,
            max_tokens=self._settings.rag_max_tokens,
        )

        assistant_message = await self._gateway.create_message(
            conversation_id,
            "assistant",
            reply,
            citations=[s.citation() for s in sources],
        )
        logger.info(
            "Responder | conv=%s doc=%s history=%d sources=%d chars_out=%d",
            conversation_id, conversation.document_id, len(history), len(sources), len(reply),
        )
        return ConversationAnswer(
            user_message=user_message,
            assistant_message=assistant_message,
            sources=sources,
        )
