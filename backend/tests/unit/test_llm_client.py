"""
Unit Tests — TextIntelligenceClient
═══════════════════════════════════
The chat model and the embeddings client are injected fakes; no network.

Coverage targets:
  ✅ extract_json: embedded object, no braces, invalid span
  ✅ analyze_chunk: JSON reply parsed (camelCase keys)
  ✅ analyze_chunk: reply without JSON → summary = first 200 chars
  ✅ analyze_chunk: provider failure / broken JSON → "Analysis failed"
  ✅ complete: history order, call parameters, ProviderError on failure
  ✅ embed: retries transient errors with back-off, [] when exhausted
  ✅ embed: non-transient error gives up after one attempt
  ✅ generate_report: parsed payload, raw-text fallback, ProviderError
"""

from __future__ import annotations

import json
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from langchain_core.language_models.fake_chat_models import FakeListChatModel
from langchain_core.messages import AIMessage, HumanMessage, SystemMessage

from readmate.core.config import Settings
from readmate.core.errors import ProviderError
from readmate.llm.client import (
    ANALYSIS_TEMPERATURE,
    REPORT_MAX_TOKENS,
    REPORT_TEMPERATURE,
    ChatTurn,
    TextIntelligenceClient,
    extract_json,
)
from readmate.schemas.analysis import ANALYSIS_FAILED_SUMMARY

from tests.conftest import sample_analysis


class RateLimitError(Exception):
    """Name matches the provider SDK's transient error."""


class AuthenticationError(Exception):
    pass


def _embedding_response(vector):
    return SimpleNamespace(data=[SimpleNamespace(embedding=vector)])


def _client(chat=None, embeddings=None, retries: int = 2) -> TextIntelligenceClient:
    if chat is None:
        chat = MagicMock()
        chat.ainvoke = AsyncMock(return_value=AIMessage(content="ok"))
    if embeddings is None:
        embeddings = MagicMock()
        embeddings.embeddings.create = AsyncMock(return_value=_embedding_response([0.1, 0.2]))
    config = Settings(embedding_max_retries=retries, embedding_model="test-embedding")
    return TextIntelligenceClient(chat_model=chat, embeddings_client=embeddings, config=config)


def _chat_replying(text: str) -> MagicMock:
    chat = MagicMock()
    chat.ainvoke = AsyncMock(return_value=AIMessage(content=text))
    return chat


# ─────────────────────────────────────────────────────────────────────────────
# JSON extraction
# ─────────────────────────────────────────────────────────────────────────────

@pytest.mark.unit
class TestExtractJson:

    def test_object_inside_prose(self):
        reply = 'Sure! Here it is:\n```json\n{"summary": "x", "themes": ["a"]}\n```\nDone.'
        assert extract_json(reply) == {"summary": "x", "themes": ["a"]}

    def test_no_braces_returns_none(self):
        assert extract_json("plain text answer") is None
        assert extract_json("") is None

    def test_invalid_json_raises_value_error(self):
        with pytest.raises(ValueError):
            extract_json("{not json}")

    def test_two_objects_span_is_not_valid_json(self):
        # greedy: the span runs from the first "{" to the last "}"
        with pytest.raises(ValueError):
            extract_json('{"a": 1} and {"b": 2}')


# ─────────────────────────────────────────────────────────────────────────────
# Map stage
# ─────────────────────────────────────────────────────────────────────────────

@pytest.mark.unit
class TestAnalyzeChunk:

    @pytest.mark.asyncio
    async def test_parses_camel_case_payload(self):
        payload = {
            "summary":       "Santiago goes out alone.",
            "keyEntities":   ["Santiago", "Manolin"],
            "coreArguments": ["Pride"],
            "sentiment":     "Negative",
            "themes":        "solitude",
            "quotes":        None,
        }
        client = _client(chat=_chat_replying(json.dumps(payload)))

        result = await client.analyze_chunk("some chunk")

        assert result.summary == "Santiago goes out alone."
        assert result.key_entities == ["Santiago", "Manolin"]
        assert result.core_arguments == ["Pride"]
        assert result.sentiment == "negative"
        assert result.themes == ["solitude"]
        assert result.quotes == []

    @pytest.mark.asyncio
    async def test_sends_chunk_with_analysis_temperature(self):
        chat = _chat_replying("{}")
        client = _client(chat=chat)

        await client.analyze_chunk("THE CHUNK TEXT")

        messages = chat.ainvoke.await_args.args[0]
        assert isinstance(messages[0], SystemMessage)
        assert "THE CHUNK TEXT" in messages[-1].content
        assert chat.ainvoke.await_args.kwargs["temperature"] == ANALYSIS_TEMPERATURE

    @pytest.mark.asyncio
    async def test_reply_without_json_keeps_head_as_summary(self):
        reply = "No structure here. " * 30
        client = _client(chat=_chat_replying(reply))

        result = await client.analyze_chunk("chunk")

        assert result.summary == reply[:200]
        assert result.sentiment == "neutral"
        assert result.themes == []

    @pytest.mark.asyncio
    async def test_provider_failure_gives_failed_record(self):
        chat = MagicMock()
        chat.ainvoke = AsyncMock(side_effect=RuntimeError("boom"))
        client = _client(chat=chat)

        result = await client.analyze_chunk("chunk")

        assert result.summary == ANALYSIS_FAILED_SUMMARY
        assert result.sentiment == "neutral"

    @pytest.mark.asyncio
    async def test_broken_json_gives_failed_record(self):
        client = _client(chat=_chat_replying("{summary: broken"))
        # no closing brace → treated as no JSON at all
        result = await client.analyze_chunk("chunk")
        assert result.summary == "{summary: broken"

        client = _client(chat=_chat_replying("{summary: broken}"))
        result = await client.analyze_chunk("chunk")
        assert result.summary == ANALYSIS_FAILED_SUMMARY

    @pytest.mark.asyncio
    async def test_works_with_langchain_fake_chat_model(self):
        reply = json.dumps({"summary": "from fake model", "sentiment": "positive"})
        client = _client(chat=FakeListChatModel(responses=[reply]))

        result = await client.analyze_chunk("chunk")

        assert result.summary == "from fake model"
        assert result.sentiment == "positive"


# ─────────────────────────────────────────────────────────────────────────────
# Completion
# ─────────────────────────────────────────────────────────────────────────────

@pytest.mark.unit
class TestComplete:

    @pytest.mark.asyncio
    async def test_history_is_sent_in_order(self):
        chat = _chat_replying("answer")
        client = _client(chat=chat)
        history = [ChatTurn("user", "q1"), ChatTurn("assistant", "a1")]

        reply = await client.complete("SYSTEM", history, "q2", temperature=0.2, max_tokens=100)

        assert reply == "answer"
        messages = chat.ainvoke.await_args.args[0]
        assert [type(m) for m in messages] == [SystemMessage, HumanMessage, AIMessage, HumanMessage]
        assert [m.content for m in messages] == ["SYSTEM", "q1", "a1", "q2"]
        assert chat.ainvoke.await_args.kwargs == {"temperature": 0.2, "max_tokens": 100}

    @pytest.mark.asyncio
    async def test_failure_raises_provider_error(self):
        chat = MagicMock()
        chat.ainvoke = AsyncMock(side_effect=TimeoutError("slow"))
        client = _client(chat=chat)

        with pytest.raises(ProviderError):
            await client.complete("SYSTEM", [], "q")


# ─────────────────────────────────────────────────────────────────────────────
# Embeddings
# ─────────────────────────────────────────────────────────────────────────────

@pytest.mark.unit
class TestEmbed:

    @pytest.mark.asyncio
    async def test_returns_vector(self):
        embeddings = MagicMock()
        embeddings.embeddings.create = AsyncMock(return_value=_embedding_response([0.5, 0.25]))
        client = _client(embeddings=embeddings)

        assert await client.embed("text") == [0.5, 0.25]
        kwargs = embeddings.embeddings.create.await_args.kwargs
        assert kwargs == {"model": "test-embedding", "input": ["text"]}

    @pytest.mark.asyncio
    async def test_transient_error_is_retried(self):
        embeddings = MagicMock()
        embeddings.embeddings.create = AsyncMock(
            side_effect=[RateLimitError("slow down"), _embedding_response([1.0])]
        )
        client = _client(embeddings=embeddings, retries=2)

        with patch("readmate.llm.client.asyncio.sleep", new=AsyncMock()) as sleep:
            vector = await client.embed("text")

        assert vector == [1.0]
        assert embeddings.embeddings.create.await_count == 2
        sleep.assert_awaited_once_with(1.0)

    @pytest.mark.asyncio
    async def test_exhausted_retries_return_empty(self):
        embeddings = MagicMock()
        embeddings.embeddings.create = AsyncMock(side_effect=RateLimitError("still busy"))
        client = _client(embeddings=embeddings, retries=2)

        with patch("readmate.llm.client.asyncio.sleep", new=AsyncMock()) as sleep:
            vector = await client.embed("text")

        assert vector == []
        assert embeddings.embeddings.create.await_count == 3
        assert [c.args[0] for c in sleep.await_args_list] == [1.0, 2.0]

    @pytest.mark.asyncio
    async def test_permanent_error_is_not_retried(self):
        embeddings = MagicMock()
        embeddings.embeddings.create = AsyncMock(side_effect=AuthenticationError("bad key"))
        client = _client(embeddings=embeddings, retries=2)

        with patch("readmate.llm.client.asyncio.sleep", new=AsyncMock()) as sleep:
            vector = await client.embed("text")

        assert vector == []
        assert embeddings.embeddings.create.await_count == 1
        sleep.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_empty_response_data(self):
        embeddings = MagicMock()
        embeddings.embeddings.create = AsyncMock(return_value=SimpleNamespace(data=[]))
        client = _client(embeddings=embeddings)

        assert await client.embed("text") == []


# ─────────────────────────────────────────────────────────────────────────────
# Reduce stage
# ─────────────────────────────────────────────────────────────────────────────

@pytest.mark.unit
class TestGenerateReport:

    @pytest.mark.asyncio
    async def test_parses_nested_payload(self):
        payload = {
            "coreSummary": "An old man and a fish.",
            "keyElements": {"mainCharacters": ["Santiago"], "keyThemes": ["endurance"]},
            "styleAnalysis": {"writingStyle": "spare", "languageFeatures": "short sentences"},
            "valueAssessment": {"overallRating": "8.5", "targetAudience": "everyone"},
        }
        chat = _chat_replying("Report:\n" + json.dumps(payload))
        client = _client(chat=chat)

        report = await client.generate_report("The Old Man and the Sea", [sample_analysis()])

        assert report.core_summary == "An old man and a fish."
        assert report.key_elements.main_characters == ["Santiago"]
        assert report.style_analysis.language_features == ["short sentences"]
        assert report.value_assessment.overall_rating == 8.5
        kwargs = chat.ainvoke.await_args.kwargs
        assert kwargs == {"temperature": REPORT_TEMPERATURE, "max_tokens": REPORT_MAX_TOKENS}

    @pytest.mark.asyncio
    async def test_prompt_lists_parts_in_order(self):
        chat = _chat_replying("{}")
        client = _client(chat=chat)
        analyses = [
            sample_analysis(summary="first", themes=["a", "b"], core_arguments=["x", "y"]),
            sample_analysis(summary="second", themes=[], core_arguments=[]),
        ]

        await client.generate_report("Book", analyses)

        user_text = chat.ainvoke.await_args.args[0][-1].content
        assert user_text.startswith("Title: Book")
        assert "Part 1:\nSummary: first\nThemes: a, b\nArguments: x; y" in user_text
        assert user_text.index("Part 1:") < user_text.index("Part 2:")

    @pytest.mark.asyncio
    async def test_reply_without_json_becomes_summary(self):
        client = _client(chat=_chat_replying("Just prose about the book."))

        report = await client.generate_report("Book", [sample_analysis()])

        assert report.core_summary == "Just prose about the book."
        assert report.key_elements.main_characters == []

    @pytest.mark.asyncio
    async def test_malformed_json_becomes_summary(self):
        reply = "{coreSummary: not quoted}"
        client = _client(chat=_chat_replying(reply))

        report = await client.generate_report("Book", [sample_analysis()])

        assert report.core_summary == reply

    @pytest.mark.asyncio
    async def test_provider_failure_propagates(self):
        chat = MagicMock()
        chat.ainvoke = AsyncMock(side_effect=RuntimeError("down"))
        client = _client(chat=chat)

        with pytest.raises(ProviderError):
            await client.generate_report("Book", [sample_analysis()])
