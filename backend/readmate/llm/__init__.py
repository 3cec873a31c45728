"""
Text-Intelligence Provider Package

One adapter over an OpenAI-compatible endpoint:
  - chat completions via langchain-openai ChatOpenAI
  - embeddings via openai.AsyncOpenAI

Public API::

    from readmate.llm import TextIntelligenceClient

    client   = TextIntelligenceClient()
    analysis = await client.analyze_chunk(text)
    vector   = await client.embed(text)
    report   = await client.generate_report(title, analyses)
"""

from readmate.llm.client import ChatTurn, TextIntelligenceClient, extract_json

__all__ = [
    "ChatTurn",
    "TextIntelligenceClient",
    "extract_json",
]
