"""
Topic Trend Tracker
═══════════════════

Maintains one timeline per (owner, topic name) and recomputes trend data on
every insert:

  frequency         = len(timeline)
  sentiment_trend   = sentiment of the 10 most recent entries, newest first
  popularity_score  = round_half_up( min(len × 2, 50)              activity
                                   + (avg sentiment of 5 newest + 1) × 25 )
                      ∈ [0, 100]

The timeline is kept newest-first. Entries with equal dates keep their
insertion order.

All topic mutation goes through DocumentStore.topic_transaction(), so two
documents discovering the same topic at once cannot lose each other's entry.
"""

from __future__ import annotations

import logging
import math
import re
from datetime import datetime, timezone
from uuid import UUID

from docinsight.schemas.analysis import DocumentAnalysis
from docinsight.schemas.documents import utcnow
from docinsight.schemas.topics import (
    ENTRY_CONTENT_MAX,
    POPULARITY_WINDOW,
    SENTIMENT_TREND_WINDOW,
    TOPIC_KEYWORDS_MAX,
    TOPIC_NAME_MAX,
    Topic,
    TopicTimelineEntry,
    TrendData,
)
from docinsight.storage.base import DocumentStore, normalize_topic_name

logger = logging.getLogger(__name__)

ACTIVITY_PER_ENTRY = 2
ACTIVITY_CAP       = 50
KEY_QUOTES_PER_ENTRY = 3
KEY_QUOTE_MAX_CHARS  = 300

_SENTENCE_SPLIT_RE = re.compile(r"(?<=[.!?])\s+")


def _as_utc(value: datetime) -> datetime:
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


def popularity_score(timeline: list[TopicTimelineEntry]) -> int:
    """Popularity of a newest-first timeline."""
    if not timeline:
        return 0
    recent = timeline[:POPULARITY_WINDOW]
    avg_sentiment   = sum(e.sentiment for e in recent) / len(recent)
    activity_score  = min(len(timeline) * ACTIVITY_PER_ENTRY, ACTIVITY_CAP)
    sentiment_score = (avg_sentiment + 1) * 25
    return max(0, min(100, math.floor(activity_score + sentiment_score + 0.5)))


def extract_key_quotes(text: str, topic: str, limit: int = KEY_QUOTES_PER_ENTRY) -> list[str]:
    """First `limit` sentences mentioning the topic (case-insensitive)."""
    needle = topic.lower()
    quotes: list[str] = []
    for sentence in _SENTENCE_SPLIT_RE.split(text):
        sentence = " ".join(sentence.split())
        if sentence and needle in sentence.lower():
            quotes.append(sentence[:KEY_QUOTE_MAX_CHARS])
            if len(quotes) >= limit:
                break
    return quotes


def merge_keywords(existing: list[str], new: list[str], cap: int = TOPIC_KEYWORDS_MAX) -> list[str]:
    merged = list(dict.fromkeys([*existing, *new]))
    return merged[:cap]


class TopicTrendTracker:
    """
    Usage::

        tracker = TopicTrendTracker(store)
        await tracker.record_document(owner_id, doc.id, analysis, doc.extracted_text)
        top = await tracker.trending(owner_id, limit=10)
    """

    def __init__(self, store: DocumentStore) -> None:
        self._store = store

    # ------------------------------------------------------------------
    # Pure trend maths
    # ------------------------------------------------------------------

    def add_entry(self, topic: Topic, entry: TopicTimelineEntry) -> Topic:
        """Insert `entry`, re-sort newest-first and recompute trend data in place."""
        entry = entry.model_copy(update={"date": _as_utc(entry.date)})
        # sorted() is stable with reverse=True: equal dates keep insertion order
        topic.timeline = sorted([*topic.timeline, entry], key=lambda e: _as_utc(e.date), reverse=True)
        return self._refresh(topic)

    def _refresh(self, topic: Topic) -> Topic:
        topic.trend_data = TrendData(
            frequency=len(topic.timeline),
            sentiment_trend=[e.sentiment for e in topic.timeline[:SENTIMENT_TREND_WINDOW]],
            popularity_score=popularity_score(topic.timeline),
        )
        topic.updated_at = utcnow()
        return topic

    # ------------------------------------------------------------------
    # Store-backed operations
    # ------------------------------------------------------------------

    async def record_document(
        self,
        owner_id:    UUID,
        document_id: UUID,
        analysis:    DocumentAnalysis,
        text:        str,
        date:        datetime | None = None,
    ) -> list[Topic]:
        """
        Add one timeline entry per analysis topic.

        Relevance decays with the topic's position in the analysis. Re-analysing
        a document replaces its earlier entry instead of adding a second one,
        and drops it from topics the new analysis no longer lists.
        """
        names = [
            normalize_topic_name(t)[:TOPIC_NAME_MAX]
            for t in analysis.topics
            if normalize_topic_name(t)
        ]
        names = list(dict.fromkeys(names))
        when = _as_utc(date or utcnow())
        updated: list[Topic] = []

        for i, name in enumerate(names):
            entry = TopicTimelineEntry(
                document_id=document_id,
                date=when,
                content=analysis.summary.short[:ENTRY_CONTENT_MAX],
                relevance_score=(len(names) - i) / len(names),
                sentiment=analysis.sentiment.score,
                key_quotes=extract_key_quotes(text, name),
            )
            async with self._store.topic_transaction(owner_id, name) as topic:
                if document_id in topic.document_ids:
                    topic.timeline = [e for e in topic.timeline if e.document_id != document_id]
                else:
                    topic.document_ids.append(document_id)
                topic.keywords = merge_keywords(topic.keywords, analysis.keywords)
                self.add_entry(topic, entry)
            updated.append(topic)

            logger.debug(
                "TopicTrendTracker | entry added | owner=%s topic=%s freq=%d popularity=%d",
                owner_id, topic.name, topic.trend_data.frequency, topic.trend_data.popularity_score,
            )

        await self._prune_document(owner_id, document_id, keep=set(names))

        if updated:
            logger.info("TopicTrendTracker | doc=%s topics=%d", document_id, len(updated))
        return updated

    async def _prune_document(self, owner_id: UUID, document_id: UUID, keep: set[str]) -> None:
        stale = [
            t.name for t in await self._store.list_topics(owner_id, active_only=False)
            if t.name not in keep and document_id in t.document_ids
        ]
        for name in stale:
            async with self._store.topic_transaction(owner_id, name) as topic:
                topic.document_ids = [d for d in topic.document_ids if d != document_id]
                topic.timeline = [e for e in topic.timeline if e.document_id != document_id]
                self._refresh(topic)
            logger.debug("TopicTrendTracker | entry removed | owner=%s topic=%s doc=%s", owner_id, name, document_id)

    async def trending(self, owner_id: UUID, limit: int = 10) -> list[Topic]:
        return await self._store.list_topics(owner_id, active_only=True, limit=limit)

    async def deactivate(self, owner_id: UUID, name: str) -> Topic | None:
        topic = await self._store.deactivate_topic(owner_id, name)
        if topic is not None:
            logger.info("TopicTrendTracker | deactivated | owner=%s topic=%s", owner_id, topic.name)
        return topic
