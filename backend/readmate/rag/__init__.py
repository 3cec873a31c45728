"""
RAG package — similarity search and the conversation responder.
"""

from readmate.rag.responder import ConversationAnswer, ConversationResponder
from readmate.rag.similarity import ScoredChunk, cosine_similarity, search_similar_chunks

__all__ = [
    "ConversationAnswer",
    "ConversationResponder",
    "ScoredChunk",
    "cosine_similarity",
    "search_similar_chunks",
]
