"""
Text-Intelligence Client — analysis, embedding, completion, report reduction

Single adapter over an OpenAI-compatible provider (Volcengine Ark by
default). Two transports:

  ┌───────────────────────────────────────────────────────────┐
  │  analyze_chunk / generate_report / complete               │
  │       └──► ChatOpenAI (langchain)  POST /chat/completions │
  │                                                           │
  │  embed                                                    │
  │       └──► AsyncOpenAI             POST /embeddings       │
  └───────────────────────────────────────────────────────────┘

Failure contract — each call degrades differently:

  analyze_chunk    never raises; provider/parse errors → ChunkAnalysisResult.failed()
                   reply without a JSON object       → ChunkAnalysisResult.fallback(reply)
  embed            never raises; returns [] after retries are exhausted
  complete         raises ProviderError
  generate_report  raises ProviderError; reply without usable JSON
                   → DocumentReportResult.fallback(reply)

Timeouts come from settings and are enforced by the HTTP clients.
"""

from __future__ import annotations

import asyncio
import json
import logging
import re
import time
from dataclasses import dataclass
from typing import Any, Iterable, Sequence

from langchain_core.language_models.chat_models import BaseChatModel
from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, SystemMessage
from openai import AsyncOpenAI
from pydantic import ValidationError

from readmate.core.config import Settings, settings as default_settings
from readmate.core.errors import ProviderError
from readmate.llm import prompts
from readmate.schemas.analysis import ChunkAnalysisResult, DocumentReportResult

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Call parameters
# ---------------------------------------------------------------------------

ANALYSIS_TEMPERATURE = 0.3
REPORT_TEMPERATURE   = 0.5
REPORT_MAX_TOKENS    = 4096

RETRY_BASE_DELAY = 1.0    # seconds — doubles each retry
RETRY_MAX_DELAY  = 8.0

# Exception class-name suffixes that indicate a transient provider problem
_RETRYABLE_EXCEPTION_TYPES = (
    "RateLimitError",
    "APIConnectionError",
    "APITimeoutError",
    "InternalServerError",
    "ServiceUnavailableError",
    "ConnectError",
    "ReadTimeout",
    "RemoteProtocolError",
)

_JSON_OBJECT_RE = re.compile(r"\{[\s\S]*\}")


def _is_retryable(exc: Exception) -> bool:
    """True if the exception class name suggests a transient provider error."""
    name = type(exc).__name__
    return any(name.endswith(r) for r in _RETRYABLE_EXCEPTION_TYPES)


def extract_json(reply: str) -> dict[str, Any] | None:
    """
    Pull the JSON object out of a free-text reply.

    Greedy: spans from the first "{" to the last "}". Returns None when the
    reply has no braces at all; raises json.JSONDecodeError when the span
    is not valid JSON, or ValueError when it is not an object.
    """
    match = _JSON_OBJECT_RE.search(reply or "")
    if match is None:
        return None
    payload = json.loads(match.group(0))
    if not isinstance(payload, dict):
        raise ValueError(f"expected a JSON object, got {type(payload).__name__}")
    return payload


# ---------------------------------------------------------------------------
# History turn
# ---------------------------------------------------------------------------

@dataclass
class ChatTurn:
    """One prior message of a conversation, as sent to the provider."""
    role:    str   # "user" | "assistant"
    content: str


def build_messages(
    system_prompt: str,
    history:       Iterable[ChatTurn],
    user_text:     str,
) -> list[BaseMessage]:
    """[SystemMessage, *history, HumanMessage] in provider order."""
    messages: list[BaseMessage] = [SystemMessage(content=system_prompt)]
    for turn in history:
        if turn.role == "assistant":
            messages.append(AIMessage(content=turn.content))
        else:
            messages.append(HumanMessage(content=turn.content))
    messages.append(HumanMessage(content=user_text))
    return messages


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------

class TextIntelligenceClient:
    """
    Provider adapter used by the analysis pipeline and the chat responder.

    Both transports are injectable so tests can swap in a fake chat model
    and a mocked embeddings client.
    """

    def __init__(
        self,
        chat_model:        BaseChatModel | None = None,
        embeddings_client: AsyncOpenAI | None   = None,
        config:            Settings | None      = None,
    ) -> None:
        self._settings   = config or default_settings
        self._chat       = chat_model or self._build_chat_model()
        self._embeddings = embeddings_client or self._build_embeddings_client()

    def _build_chat_model(self) -> BaseChatModel:
        from langchain_openai import ChatOpenAI
        return ChatOpenAI(
            model=self._settings.chat_model,
            api_key=self._settings.provider_api_key,
            base_url=self._settings.provider_base_url,
            timeout=self._settings.provider_timeout_seconds,
            max_retries=0,
        )

    def _build_embeddings_client(self) -> AsyncOpenAI:
        return AsyncOpenAI(
            api_key=self._settings.provider_api_key,
            base_url=self._settings.provider_base_url,
            timeout=self._settings.embedding_timeout_seconds,
            max_retries=0,
        )

    # ------------------------------------------------------------------
    # Free-form completion
    # ------------------------------------------------------------------

    async def complete(
        self,
        system_prompt: str,
        history:       Sequence[ChatTurn],
        user_text:     str,
        temperature:   float = 0.7,
        max_tokens:    int   = 4096,
    ) -> str:
        """
        One chat completion. Raises ProviderError on any provider failure.
        """
        messages = build_messages(system_prompt, history, user_text)
        t0 = time.perf_counter()
        try:
            reply = await self._chat.ainvoke(
                messages,
                temperature=temperature,
                max_tokens=max_tokens,
            )
        except Exception as exc:
            logger.error("Provider | completion failed: %s %s", type(exc).__name__, exc)
            raise ProviderError(f"Completion failed: {exc}") from exc

        content = reply.content if isinstance(reply.content, str) else str(reply.content)
        logger.info(
            "Provider | completion messages=%d chars_out=%d latency_ms=%.1f",
            len(messages), len(content), (time.perf_counter() - t0) * 1000,
        )
        return content

    # ------------------------------------------------------------------
    # Map stage
    # ------------------------------------------------------------------

    async def analyze_chunk(self, content: str) -> ChunkAnalysisResult:
        """Structured analysis of one chunk. Never raises."""
        try:
            reply = await self.complete(
                prompts.CHUNK_ANALYSIS_SYSTEM_PROMPT,
                [],
                prompts.CHUNK_ANALYSIS_USER_TEMPLATE.format(content=content),
                temperature=ANALYSIS_TEMPERATURE,
            )
            payload = extract_json(reply)
            if payload is None:
                logger.warning("Provider | analysis reply had no JSON object; using raw text")
                return ChunkAnalysisResult.fallback(reply)
            return ChunkAnalysisResult.model_validate(payload)
        except (ProviderError, ValueError, ValidationError) as exc:
            logger.warning("Provider | chunk analysis failed: %s", exc)
            return ChunkAnalysisResult.failed()

    # ------------------------------------------------------------------
    # Embeddings
    # ------------------------------------------------------------------

    async def embed(self, text: str) -> list[float]:
        """
        Embedding vector for *text*, or [] when the provider keeps failing.

        Transient errors (rate limit, timeouts, 5xx) are retried with
        exponential back-off; anything else gives up immediately.
        """
        max_retries = self._settings.embedding_max_retries
        last_error: Exception | None = None

        for attempt in range(max_retries + 1):
            if attempt > 0:
                delay = min(RETRY_BASE_DELAY * (2 ** (attempt - 1)), RETRY_MAX_DELAY)
                logger.warning(
                    "Embedding retry | attempt=%d delay=%.1fs error=%s",
                    attempt, delay, last_error,
                )
                await asyncio.sleep(delay)

            try:
                response = await self._embeddings.embeddings.create(
                    model=self._settings.embedding_model,
                    input=[text],
                )
                if not response.data:
                    return []
                return list(response.data[0].embedding or [])
            except Exception as exc:
                last_error = exc
                if not _is_retryable(exc):
                    break

        logger.error("Embedding failed | chars=%d error=%s", len(text), last_error)
        return []

    # ------------------------------------------------------------------
    # Reduce stage
    # ------------------------------------------------------------------

    async def generate_report(
        self,
        title:    str,
        analyses: Sequence[Any],
    ) -> DocumentReportResult:
        """
        Reduce chunk analyses (insertion order) into a document report.

        *analyses* are objects exposing summary / themes / core_arguments
        (ORM rows or ChunkAnalysisResult). Raises ProviderError.
        """
        user_text = prompts.REPORT_USER_TEMPLATE.format(
            title=title,
            parts=prompts.format_report_parts(analyses),
        )
        reply = await self.complete(
            prompts.REPORT_SYSTEM_PROMPT,
            [],
            user_text,
            temperature=REPORT_TEMPERATURE,
            max_tokens=REPORT_MAX_TOKENS,
        )

        try:
            payload = extract_json(reply)
            if payload is not None:
                return DocumentReportResult.model_validate(payload)
        except (ValueError, ValidationError) as exc:
            logger.warning("Provider | report JSON unusable, keeping raw reply: %s", exc)
            return DocumentReportResult.fallback(reply)

        logger.warning("Provider | report reply had no JSON object; keeping raw reply")
        return DocumentReportResult.fallback(reply)
