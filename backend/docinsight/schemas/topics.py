"""
Topic trend schemas.

A Topic is the only aggregate shared across documents. It is created on the
first mention of a name for an owner, mutated on every new timeline entry,
and never deleted (only deactivated).
"""

from __future__ import annotations

from datetime import datetime
from uuid import UUID, uuid4

from pydantic import BaseModel, Field

from docinsight.schemas.documents import utcnow

TOPIC_NAME_MAX:     int = 100
TOPIC_KEYWORDS_MAX: int = 20
ENTRY_CONTENT_MAX:  int = 1000
KEY_QUOTES_MAX:     int = 10
SENTIMENT_TREND_WINDOW: int = 10
POPULARITY_WINDOW:      int = 5


class TopicTimelineEntry(BaseModel):
    document_id:     UUID
    date:            datetime
    content:         str       = Field(..., max_length=ENTRY_CONTENT_MAX)
    relevance_score: float     = Field(..., ge=0.0, le=1.0)
    sentiment:       float     = Field(..., ge=-1.0, le=1.0)
    key_quotes:      list[str] = Field(default_factory=list, max_length=KEY_QUOTES_MAX)


class TrendData(BaseModel):
    frequency:        int         = Field(0, ge=0)
    sentiment_trend:  list[float] = Field(default_factory=list)
    popularity_score: int         = Field(0, ge=0, le=100)


class Topic(BaseModel):
    id:           UUID       = Field(default_factory=uuid4)
    owner_id:     UUID
    name:         str        = Field(..., min_length=1, max_length=TOPIC_NAME_MAX)
    description:  str        = ""
    keywords:     list[str]  = Field(default_factory=list, max_length=TOPIC_KEYWORDS_MAX)
    document_ids: list[UUID] = Field(default_factory=list)
    timeline:     list[TopicTimelineEntry] = Field(default_factory=list)
    trend_data:   TrendData  = Field(default_factory=TrendData)
    is_active:    bool       = True
    created_at:   datetime   = Field(default_factory=utcnow)
    updated_at:   datetime   = Field(default_factory=utcnow)


class TopicSummary(BaseModel):
    """Trend listing row — timeline omitted."""
    name:             str
    keywords:         list[str]
    document_count:   int
    frequency:        int
    sentiment_trend:  list[float]
    popularity_score: int
    is_active:        bool
    updated_at:       datetime

    @classmethod
    def from_topic(cls, topic: Topic) -> "TopicSummary":
        return cls(
            name=topic.name,
            keywords=topic.keywords,
            document_count=len(topic.document_ids),
            frequency=topic.trend_data.frequency,
            sentiment_trend=topic.trend_data.sentiment_trend,
            popularity_score=topic.trend_data.popularity_score,
            is_active=topic.is_active,
            updated_at=topic.updated_at,
        )
