"""
Document Processing Package
════════════════════════════

Post-upload preparation of a document's text:

  Text Extraction → Paragraph Chunking

Modules
───────
  extractor.py  pdf / docx / txt bytes → stripped plain text
  chunking.py   plain text → overlapping, position-tracked TextChunks

Both are stateless; the analysis pipeline owns persistence and status.
"""

from readmate.processing.chunking import TextChunk, split_text
from readmate.processing.extractor import (
    SUPPORTED_TYPES,
    extract_text,
    extract_text_async,
    normalize_file_type,
)

__all__ = [
    "TextChunk",
    "split_text",
    "SUPPORTED_TYPES",
    "extract_text",
    "extract_text_async",
    "normalize_file_type",
]
