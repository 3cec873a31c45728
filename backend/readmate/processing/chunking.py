"""
Paragraph Chunker  —  Overlapping, Position-Tracked Text Segmentation
══════════════════════════════════════════════════════════════════════

Long documents (books, reports) are far larger than one provider request,
so the pipeline analyses them segment by segment and later reduces the
per-segment results into one report.

Algorithm
─────────
  1. Split the text into paragraphs at blank-line boundaries (\\n\\s*\\n).
  2. Track an absolute character offset: every paragraph advances it by
     len(paragraph) + 2, whatever the real separator width was.
  3. Whitespace-only paragraphs only advance the offset.
  4. Before appending a paragraph, if buffer + paragraph would exceed
     MAX_CHUNK_CHARS and the buffer holds something, emit the buffer and
     re-seed it with its last OVERLAP_CHARS characters.
  5. Flush whatever remains at the end.

    ┌──────────── chunk 0 ────────────┐
    para A  ·  para B  ·  para C ─────┤
                          └─ overlap ─┴──── chunk 1 ────┐
                                     para D  ·  para E  │

Properties the pipeline relies on:
  - chunks are non-empty after trimming, indices are 0..n-1 with no gaps;
  - chunk i+1 starts with the tail of chunk i (the overlap seed);
  - a single paragraph longer than MAX_CHUNK_CHARS is kept whole.

Positions are approximate: the "+2" separator assumption drifts when the
real separator is wider, and the first chunk's start is always 0.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Configuration constants
# ---------------------------------------------------------------------------

MAX_CHUNK_CHARS = 2000   # emit before the buffer would exceed this
OVERLAP_CHARS   = 200    # tail of the previous chunk carried into the next

_PARAGRAPH_BREAK_RE = re.compile(r"\n\s*\n")
_PARAGRAPH_JOINER   = "\n\n"


# ---------------------------------------------------------------------------
# Data structure
# ---------------------------------------------------------------------------

@dataclass
class TextChunk:
    """
    A single segment ready for persistence.

    chunk_index    : zero-based position in the document (contiguous)
    content        : trimmed segment text (never empty)
    start_position : approximate offset of the segment start in the source
    end_position   : approximate offset of the segment end in the source
    """
    chunk_index:    int
    content:        str
    start_position: int
    end_position:   int

    @property
    def char_count(self) -> int:
        return len(self.content)


# ---------------------------------------------------------------------------
# Chunker
# ---------------------------------------------------------------------------

def split_text(
    text: str,
    chunk_size: int = MAX_CHUNK_CHARS,
    overlap: int = OVERLAP_CHARS,
) -> list[TextChunk]:
    """
    Split *text* into overlapping paragraph-aligned chunks.

    Args:
        text       : raw extracted document text
        chunk_size : size threshold that triggers emitting the buffer
        overlap    : number of trailing characters re-seeded into the next chunk

    Returns:
        Ordered list of TextChunk; empty for blank input.
    """
    chunks: list[TextChunk] = []
    buffer = ""
    current_start = 0
    position = 0

    def emit(end: int) -> None:
        content = buffer.strip()
        if content:
            chunks.append(
                TextChunk(
                    chunk_index=len(chunks),
                    content=content,
                    start_position=current_start,
                    end_position=end,
                )
            )

    for raw in _PARAGRAPH_BREAK_RE.split(text):
        paragraph = raw.strip()
        if not paragraph:
            position += len(raw) + 2
            continue

        if buffer and len(buffer) + len(paragraph) > chunk_size:
            emit(position - 1)
            buffer = buffer[-overlap:] if overlap > 0 else ""
            current_start = position - len(buffer)

        buffer = f"{buffer}{_PARAGRAPH_JOINER}{paragraph}" if buffer else paragraph
        position += len(raw) + 2

    if buffer.strip():
        emit(len(text) - 1)

    logger.debug(
        "Chunked | chars=%d chunks=%d chunk_size=%d overlap=%d",
        len(text), len(chunks), chunk_size, overlap,
    )
    return chunks
