"""
Document Analysis — Pydantic Schemas

Two shapes live here:
  - RawAnalysis      : permissive decode of whatever JSON the language model
                       returned (any field may be missing or mistyped)
  - DocumentAnalysis : the canonical, fully-populated analysis stored on a
                       document once processing reaches `completed`

The engine converts the first into the second in a separate validation step,
so each stage can be tested on its own.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator


# ---------------------------------------------------------------------------
# Caps and dimensions
# ---------------------------------------------------------------------------

SUMMARY_SHORT_MAX:    int = 500
SUMMARY_MEDIUM_MAX:   int = 1500
SUMMARY_DETAILED_MAX: int = 5000

MAX_KEYWORDS: int = 10
MAX_TOPICS:   int = 5
MAX_ENTITIES: int = 10

EMBEDDING_DIMENSIONS: int = 1536

SUMMARY_NOT_AVAILABLE = "Summary not available"


# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------

class SentimentLabel(str, Enum):
    POSITIVE = "positive"
    NEGATIVE = "negative"
    NEUTRAL  = "neutral"


class Complexity(str, Enum):
    SIMPLE   = "simple"     # ≤ 300 words
    MODERATE = "moderate"   # ≤ 1000 words
    COMPLEX  = "complex"    # > 1000 words


class EntityLabel(str, Enum):
    PERSON      = "PERSON"
    ORG         = "ORG"
    GPE         = "GPE"
    DATE        = "DATE"
    MONEY       = "MONEY"
    CARDINAL    = "CARDINAL"
    ORDINAL     = "ORDINAL"
    PERCENT     = "PERCENT"
    TIME        = "TIME"
    QUANTITY    = "QUANTITY"
    EVENT       = "EVENT"
    LAW         = "LAW"
    PRODUCT     = "PRODUCT"
    WORK_OF_ART = "WORK_OF_ART"
    LANGUAGE    = "LANGUAGE"
    FAC         = "FAC"
    LOC         = "LOC"
    NORP        = "NORP"
    MISC        = "MISC"


# ---------------------------------------------------------------------------
# Canonical analysis
# ---------------------------------------------------------------------------

class Summary(BaseModel):
    short:    str = Field("", max_length=SUMMARY_SHORT_MAX)
    medium:   str = Field("", max_length=SUMMARY_MEDIUM_MAX)
    detailed: str = Field("", max_length=SUMMARY_DETAILED_MAX)


class Sentiment(BaseModel):
    score:      float          = Field(0.0, ge=-1.0, le=1.0)
    label:      SentimentLabel = SentimentLabel.NEUTRAL
    confidence: float          = Field(0.5, ge=0.0, le=1.0)


class NamedEntity(BaseModel):
    text:       str
    label:      EntityLabel
    confidence: float = Field(..., ge=0.0, le=1.0)
    start_pos:  int   = Field(0, ge=0)
    end_pos:    int   = Field(0, ge=0)

    @model_validator(mode="after")
    def _check_offsets(self) -> "NamedEntity":
        if self.start_pos > self.end_pos:
            raise ValueError("start_pos must not exceed end_pos")
        return self


class DocumentAnalysis(BaseModel):
    """
    Structured analysis of one document.

    `embeddings` is deliberately unconstrained here: the 1536-dimension rule
    is enforced where the analysis is persisted (DocumentStore), which raises
    DimensionError instead of letting a bad vector through.
    """
    summary:      Summary          = Field(default_factory=Summary)
    sentiment:    Sentiment        = Field(default_factory=Sentiment)
    keywords:     list[str]        = Field(default_factory=list, max_length=MAX_KEYWORDS)
    topics:       list[str]        = Field(default_factory=list, max_length=MAX_TOPICS)
    entities:     list[NamedEntity] = Field(default_factory=list, max_length=MAX_ENTITIES)
    word_count:   int              = Field(0, ge=0)
    reading_time: int              = Field(0, ge=0, description="Minutes")
    complexity:   Complexity       = Complexity.SIMPLE
    language:     str              = "en"
    embeddings:   list[float] | None = None

    @classmethod
    def empty(cls) -> "DocumentAnalysis":
        """Placeholder attached to a document at upload time."""
        return cls(sentiment=Sentiment(score=0.0, label=SentimentLabel.NEUTRAL, confidence=0.0))


# ---------------------------------------------------------------------------
# Loosely-typed model output
# ---------------------------------------------------------------------------

class RawAnalysis(BaseModel):
    """Whatever the model returned, field by field, with no type guarantees."""
    model_config = ConfigDict(extra="allow")

    summary:    Any = None
    sentiment:  Any = None
    keywords:   Any = None
    topics:     Any = None
    entities:   Any = None
    complexity: Any = None
    language:   Any = None
