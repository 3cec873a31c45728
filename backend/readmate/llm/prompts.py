"""
Prompt templates for the text-intelligence provider.

Each template asks for a single JSON object whose keys match the provider
payload schemas in readmate.schemas.analysis.
"""

from __future__ import annotations

from typing import Iterable, Protocol

CHUNK_ANALYSIS_SYSTEM_PROMPT = """You are a professional text analysis assistant. Analyse the given text passage and extract:
1. Summary: 2-3 sentences describing the main content
2. Key entities: important people, places, organisations and concepts (at most 5)
3. Core arguments: the main points or claims (at most 3)
4. Sentiment: positive/negative/neutral
5. Themes: the topics the passage deals with (at most 3)
6. Notable quotes: sentences worth remembering (at most 2)

Reply in JSON using exactly this format:
{
  "summary": "summary text",
  "keyEntities": ["entity 1", "entity 2"],
  "coreArguments": ["argument 1", "argument 2"],
  "sentiment": "positive/negative/neutral",
  "themes": ["theme 1", "theme 2"],
  "quotes": ["quote 1", "quote 2"]
}"""

CHUNK_ANALYSIS_USER_TEMPLATE = "Analyse the following text:\n\n{content}"


REPORT_SYSTEM_PROMPT = """You are an expert book analyst. Using the analyses of each part of the book, write a complete analysis report for the whole book.

Reply in JSON using exactly this format:
{
  "coreSummary": "core summary of the whole book (300-500 words)",
  "keyElements": {
    "mainCharacters": ["main characters / concepts"],
    "keyThemes": ["key themes"],
    "coreArguments": ["core arguments"],
    "importantQuotes": ["important quotes"]
  },
  "styleAnalysis": {
    "writingStyle": "description of the writing style",
    "narrativeStructure": "description of the narrative structure",
    "languageFeatures": ["language features"]
  },
  "valueAssessment": {
    "academicValue": "assessment of academic value",
    "practicalValue": "assessment of practical value",
    "targetAudience": "intended readers",
    "overallRating": 8.5
  }
}"""

REPORT_USER_TEMPLATE = "Title: {title}\n\nAnalyses of each part:\n{parts}"


RAG_SYSTEM_TEMPLATE = """You are an intelligent reading assistant. Answer the user's question using the book content provided.

Requirements:
1. Base the answer on the context below
2. If the context does not contain the relevant information, say so honestly
3. Keep the answer accurate, concise and helpful
4. Quote the original text where it helps

Book content:
{context}"""

CONTEXT_SEPARATOR = "\n\n---\n\n"


class _AnalysisLike(Protocol):
    summary:        str | None
    themes:         list[str]
    core_arguments: list[str]


def format_report_parts(analyses: Iterable[_AnalysisLike]) -> str:
    """Render chunk analyses as numbered parts for the reduce prompt."""
    parts = []
    for i, analysis in enumerate(analyses, start=1):
        parts.append(
            f"Part {i}:\n"
            f"Summary: {analysis.summary or ''}\n"
            f"Themes: {', '.join(analysis.themes or [])}\n"
            f"Arguments: {'; '.join(analysis.core_arguments or [])}"
        )
    return "\n\n".join(parts)


def build_rag_system_prompt(context_blocks: Iterable[str]) -> str:
    return RAG_SYSTEM_TEMPLATE.format(context=CONTEXT_SEPARATOR.join(context_blocks))
