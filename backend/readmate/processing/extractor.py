"""
Text Extraction
═══════════════

Turns stored file bytes into plain text for the chunker.

  pdf   → pypdf, one entry per page, pages joined with a blank line
  docx  → python-docx, non-empty paragraphs joined with a blank line
  txt   → UTF-8, falling back to latin-1

The file type may be given as an extension ("pdf", ".pdf") or a MIME type.
Paragraphs are joined with "\\n\\n" so the chunker's blank-line split sees
the document's own paragraph structure. Parsing is CPU-bound, so callers
run it through `extract_text_async` which offloads to a worker thread.
"""

from __future__ import annotations

import asyncio
import io
import logging

import docx
from pypdf import PdfReader

from readmate.core.errors import UnsupportedFileTypeError

logger = logging.getLogger(__name__)

_MIME_TO_TYPE: dict[str, str] = {
    "application/pdf": "pdf",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document": "docx",
    "text/plain": "txt",
}

SUPPORTED_TYPES: frozenset[str] = frozenset({"pdf", "docx", "txt"})


def normalize_file_type(file_type: str) -> str:
    """Map an extension or MIME type to "pdf" | "docx" | "txt"; raise otherwise."""
    value = (file_type or "").strip().lower()
    value = _MIME_TO_TYPE.get(value.split(";", 1)[0].strip(), value)
    value = value.lstrip(".")
    if value not in SUPPORTED_TYPES:
        raise UnsupportedFileTypeError(file_type)
    return value


def extract_text(data: bytes, file_type: str) -> str:
    """Extract stripped plain text from *data*."""
    kind = normalize_file_type(file_type)

    if kind == "pdf":
        text = _extract_pdf(data)
    elif kind == "docx":
        text = _extract_docx(data)
    else:
        text = _decode_plain(data)

    text = text.strip()
    logger.info("Extracted | type=%s bytes=%d chars=%d", kind, len(data), len(text))
    return text


async def extract_text_async(data: bytes, file_type: str) -> str:
    return await asyncio.to_thread(extract_text, data, file_type)


# ---------------------------------------------------------------------------
# Format handlers
# ---------------------------------------------------------------------------

def _extract_pdf(data: bytes) -> str:
    reader = PdfReader(io.BytesIO(data))
    pages = [page.extract_text() or "" for page in reader.pages]
    return "\n\n".join(pages)


def _extract_docx(data: bytes) -> str:
    document = docx.Document(io.BytesIO(data))
    return "\n\n".join(p.text for p in document.paragraphs if p.text.strip())


def _decode_plain(data: bytes) -> str:
    try:
        return data.decode("utf-8")
    except UnicodeDecodeError:
        return data.decode("latin-1", errors="replace")
