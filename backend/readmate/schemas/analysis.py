"""
Provider Payload Schemas — chunk analysis (map) and document report (reduce)

The provider answers in free text that should contain one JSON object with
camelCase keys. These models give that payload an explicit shape:

  - every field is optional and defaults to empty, so a partial object
    still validates;
  - list fields accept null / a bare string and coerce to list[str];
  - `fallback()` builds the degraded record used when no JSON object can be
    found in the reply.

Serialised with `by_alias=True` the models round-trip to the provider's
camelCase format; the ORM columns use the snake_case field names.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

SENTIMENTS: frozenset[str] = frozenset({"positive", "negative", "neutral"})

ANALYSIS_FAILED_SUMMARY = "Analysis failed"
FALLBACK_SUMMARY_CHARS  = 200


def _as_str_list(value: Any) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value] if value.strip() else []
    if isinstance(value, (list, tuple)):
        return [str(v) for v in value if v is not None and str(v).strip()]
    return [str(value)]


class _ProviderModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


# ---------------------------------------------------------------------------
# Map stage — one chunk
# ---------------------------------------------------------------------------

class ChunkAnalysisResult(_ProviderModel):
    summary:         str         = ""
    key_entities:    list[str]   = Field(default_factory=list)
    core_arguments:  list[str]   = Field(default_factory=list)
    sentiment:       str         = "neutral"
    sentiment_score: float | None = None
    themes:          list[str]   = Field(default_factory=list)
    quotes:          list[str]   = Field(default_factory=list)

    @field_validator("key_entities", "core_arguments", "themes", "quotes", mode="before")
    @classmethod
    def _coerce_list(cls, value: Any) -> list[str]:
        return _as_str_list(value)

    @field_validator("summary", mode="before")
    @classmethod
    def _coerce_summary(cls, value: Any) -> str:
        return "" if value is None else str(value)

    @field_validator("sentiment", mode="before")
    @classmethod
    def _normalise_sentiment(cls, value: Any) -> str:
        label = str(value or "").strip().lower()
        return label if label in SENTIMENTS else "neutral"

    @classmethod
    def fallback(cls, reply: str) -> "ChunkAnalysisResult":
        """Reply had no JSON object: keep the head of the raw text as summary."""
        return cls(summary=reply[:FALLBACK_SUMMARY_CHARS])

    @classmethod
    def failed(cls) -> "ChunkAnalysisResult":
        """Provider call or parsing blew up."""
        return cls(summary=ANALYSIS_FAILED_SUMMARY)


# ---------------------------------------------------------------------------
# Reduce stage — whole document
# ---------------------------------------------------------------------------

class KeyElements(_ProviderModel):
    main_characters:  list[str] = Field(default_factory=list)
    key_themes:       list[str] = Field(default_factory=list)
    core_arguments:   list[str] = Field(default_factory=list)
    important_quotes: list[str] = Field(default_factory=list)

    @field_validator("*", mode="before")
    @classmethod
    def _coerce_list(cls, value: Any) -> list[str]:
        return _as_str_list(value)


class StyleAnalysis(_ProviderModel):
    writing_style:       str | None = None
    narrative_structure: str | None = None
    language_features:   list[str]  = Field(default_factory=list)

    @field_validator("language_features", mode="before")
    @classmethod
    def _coerce_list(cls, value: Any) -> list[str]:
        return _as_str_list(value)


class ValueAssessment(_ProviderModel):
    academic_value:  str | None   = None
    practical_value: str | None   = None
    target_audience: str | None   = None
    overall_rating:  float | None = None

    @field_validator("overall_rating", mode="before")
    @classmethod
    def _coerce_rating(cls, value: Any) -> float | None:
        try:
            return float(value) if value is not None else None
        except (TypeError, ValueError):
            return None


class DocumentReportResult(_ProviderModel):
    core_summary:     str             = ""
    key_elements:     KeyElements     = Field(default_factory=KeyElements)
    style_analysis:   StyleAnalysis   = Field(default_factory=StyleAnalysis)
    value_assessment: ValueAssessment = Field(default_factory=ValueAssessment)

    @field_validator("key_elements", "style_analysis", "value_assessment", mode="before")
    @classmethod
    def _null_to_empty(cls, value: Any) -> Any:
        return value if isinstance(value, (dict, BaseModel)) else {}

    @classmethod
    def fallback(cls, reply: str) -> "DocumentReportResult":
        """Reply had no usable JSON object: the whole reply is the summary."""
        return cls(core_summary=reply)
