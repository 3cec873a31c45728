"""
Similarity Index — exact nearest-neighbour search over one document's chunks

Brute force on purpose: a single document holds a few hundred chunks at
most, so scoring every embedded chunk per question is cheap and exact.

Cosine similarity is defined as 0.0 (never NaN, never an exception) when
the vectors differ in length, either is empty, or either has zero norm.
Chunks without an embedding are not candidates.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Iterable, Sequence


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    if not a or not b or len(a) != len(b):
        return 0.0

    dot = norm_a = norm_b = 0.0
    for x, y in zip(a, b):
        dot    += x * y
        norm_a += x * x
        norm_b += y * y

    if norm_a == 0.0 or norm_b == 0.0:
        return 0.0
    return dot / (math.sqrt(norm_a) * math.sqrt(norm_b))


@dataclass
class ScoredChunk:
    """A candidate chunk with its similarity to the query."""
    chunk_id:    int
    chunk_index: int
    content:     str
    similarity:  float

    def citation(self) -> dict[str, Any]:
        return {
            "chunk_id":    self.chunk_id,
            "chunk_index": self.chunk_index,
            "similarity":  round(self.similarity, 6),
        }


def search_similar_chunks(
    chunks:          Iterable[Any],
    query_embedding: Sequence[float],
    k:               int = 5,
) -> list[ScoredChunk]:
    """
    Top-k chunks by cosine similarity to *query_embedding*.

    *chunks* are objects with id / chunk_index / content / embedding
    attributes (ORM Chunk rows). The sort is stable, so ties keep the
    input order (ascending chunk_index when fed from the gateway).
    """
    if k <= 0:
        return []

    scored = [
        ScoredChunk(
            chunk_id=chunk.id,
            chunk_index=chunk.chunk_index,
            content=chunk.content,
            similarity=cosine_similarity(chunk.embedding, query_embedding),
        )
        for chunk in chunks
        if chunk.embedding
    ]
    scored.sort(key=lambda s: s.similarity, reverse=True)
    return scored[:k]
