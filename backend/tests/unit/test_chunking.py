"""
Unit Tests — Paragraph Chunker
══════════════════════════════
  ✅ Blank / whitespace-only input → no chunks
  ✅ Short text → one chunk equal to the trimmed text
  ✅ Indices contiguous from 0, chunks never empty
  ✅ Every paragraph survives in some chunk
  ✅ Adjacent chunks overlap: chunk i+1 starts with the tail of chunk i
  ✅ Two 1500-char paragraphs → two chunks
  ✅ Oversized single paragraph is never split
  ✅ Position arithmetic (+2 per paragraph, end = len(text) - 1 on flush)
"""

from __future__ import annotations

import pytest

from readmate.processing.chunking import (
    MAX_CHUNK_CHARS,
    OVERLAP_CHARS,
    TextChunk,
    split_text,
)


def _paragraphs(count: int, size: int) -> list[str]:
    return [f"P{i:03d} " + ("x" * (size - 5)) for i in range(count)]


@pytest.mark.unit
class TestSplitTextBasics:

    @pytest.mark.parametrize("text", ["", "   ", "\n\n\n", " \n \n\t\n "])
    def test_blank_input_yields_nothing(self, text):
        assert split_text(text) == []

    def test_short_text_is_one_chunk(self):
        text = "  Hello world.\n\nSecond paragraph.  "
        chunks = split_text(text)

        assert len(chunks) == 1
        assert chunks[0].content == "Hello world.\n\nSecond paragraph."
        assert chunks[0].chunk_index == 0
        assert chunks[0].start_position == 0
        assert chunks[0].end_position == len(text) - 1

    def test_returns_text_chunks(self):
        chunks = split_text("One paragraph.")
        assert all(isinstance(c, TextChunk) for c in chunks)
        assert chunks[0].char_count == len("One paragraph.")

    def test_whitespace_paragraphs_are_skipped(self):
        text = "Alpha\n\n   \n\nBeta"
        chunks = split_text(text)
        assert len(chunks) == 1
        assert chunks[0].content == "Alpha\n\nBeta"

    def test_paragraphs_rejoined_with_blank_line(self):
        text = "First\n   \nSecond\n\n\n\nThird"
        assert split_text(text)[0].content == "First\n\nSecond\n\nThird"


@pytest.mark.unit
class TestSplitTextLongDocuments:

    def test_indices_contiguous_and_chunks_non_empty(self):
        text = "\n\n".join(_paragraphs(40, 300))
        chunks = split_text(text)

        assert len(chunks) > 1
        assert [c.chunk_index for c in chunks] == list(range(len(chunks)))
        assert all(c.content.strip() for c in chunks)

    def test_every_paragraph_is_recovered(self):
        paragraphs = _paragraphs(25, 450)
        chunks = split_text("\n\n".join(paragraphs))
        joined = "\n".join(c.content for c in chunks)

        for paragraph in paragraphs:
            assert paragraph in joined

    def test_adjacent_chunks_overlap(self):
        chunks = split_text("\n\n".join(_paragraphs(30, 400)))

        for prev, nxt in zip(chunks, chunks[1:]):
            tail = prev.content[-OVERLAP_CHARS:].strip()
            assert nxt.content.startswith(tail)

    def test_two_large_paragraphs_give_two_overlapping_chunks(self):
        first = "a" * 1500
        second = "b" * 1500
        chunks = split_text(f"{first}\n\n{second}")

        assert len(chunks) == 2
        assert chunks[0].content == first
        assert chunks[1].content == "a" * OVERLAP_CHARS + "\n\n" + second

    def test_oversized_paragraph_is_not_split(self):
        giant = "z" * (MAX_CHUNK_CHARS * 2)
        chunks = split_text(giant)

        assert len(chunks) == 1
        assert chunks[0].content == giant

    def test_oversized_paragraph_after_buffer_emits_buffer_first(self):
        giant = "z" * (MAX_CHUNK_CHARS + 500)
        chunks = split_text(f"intro\n\n{giant}")

        assert len(chunks) == 2
        assert chunks[0].content == "intro"
        assert chunks[1].content == "intro\n\n" + giant

    def test_no_chunk_grows_past_limit_from_small_paragraphs(self):
        chunks = split_text("\n\n".join(_paragraphs(50, 100)))
        # buffer is emitted before exceeding the limit; only the join adds 2 chars
        assert all(len(c.content) <= MAX_CHUNK_CHARS + 2 for c in chunks)


@pytest.mark.unit
class TestSplitTextPositions:

    def test_positions_follow_plus_two_rule(self):
        first = "a" * 1500
        second = "b" * 1500
        text = f"{first}\n\n{second}"
        chunks = split_text(text)

        # emitted before "second" is appended: position = 1500 + 2
        assert chunks[0].start_position == 0
        assert chunks[0].end_position == 1501
        assert chunks[1].start_position == 1502 - OVERLAP_CHARS
        assert chunks[1].end_position == len(text) - 1

    def test_custom_chunk_size_and_overlap(self):
        text = "\n\n".join(["aaaa", "bbbb", "cccc"])
        chunks = split_text(text, chunk_size=6, overlap=2)

        assert [c.content for c in chunks] == ["aaaa", "aa\n\nbbbb", "bb\n\ncccc"]
