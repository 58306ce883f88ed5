"""
Simulated Analyzer — deterministic, dependency-free document analysis.

Used when no language model is configured and whenever the remote call
fails. Output depends only on (text, file_name_hint, words_per_minute):
two calls with the same inputs produce identical results.

Heuristics:
  keywords   most frequent tokens (len > 3, not a stopword), ties broken by
             first occurrence, top 8
  topics     first 3 keywords
  sentiment  substring counts of fixed positive/negative word lists
  entities   one MISC placeholder named after the file
  summaries  templates filled from word count, sentiment label, reading time
"""

from __future__ import annotations

import logging
import re
from collections import Counter

from docinsight.schemas.analysis import (
    Complexity,
    DocumentAnalysis,
    EntityLabel,
    NamedEntity,
    Sentiment,
    SentimentLabel,
    Summary,
)
from docinsight.schemas.documents import count_words, reading_time_minutes

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Word lists
# ---------------------------------------------------------------------------

_STOPWORDS = frozenset({
    "the", "a", "an", "and", "or", "but", "in", "on", "at", "to", "for",
    "of", "with", "by", "is", "are", "was", "were", "be", "been", "have",
    "has", "had", "do", "does", "did", "will", "would", "could", "should",
    "may", "might", "can", "this", "that", "these", "those",
})

POSITIVE_WORDS: tuple[str, ...] = (
    "good", "great", "excellent", "amazing", "wonderful",
    "positive", "success", "achieve", "benefit", "improve",
)
NEGATIVE_WORDS: tuple[str, ...] = (
    "bad", "terrible", "awful", "negative", "fail",
    "problem", "issue", "difficult", "challenge", "concern",
)

_NON_WORD_RE = re.compile(r"[^\w\s]")

KEYWORD_LIMIT      = 8
TOPIC_LIMIT        = 3
MAX_SIMULATED_SCORE = 0.8
SIMULATED_CONFIDENCE = 0.7
PLACEHOLDER_ENTITY_CONFIDENCE = 0.8


def tokenize(text: str) -> list[str]:
    """Lowercase → strip non-word characters → drop short tokens and stopwords."""
    cleaned = _NON_WORD_RE.sub("", text.lower())
    return [t for t in cleaned.split() if len(t) > 3 and t not in _STOPWORDS]


def extract_keywords(text: str, limit: int = KEYWORD_LIMIT) -> list[str]:
    # Counter keeps first-seen order, and most_common() is stable for ties
    return [word for word, _ in Counter(tokenize(text)).most_common(limit)]


def score_sentiment(text: str) -> Sentiment:
    lower = text.lower()
    positive = sum(lower.count(word) for word in POSITIVE_WORDS)
    negative = sum(lower.count(word) for word in NEGATIVE_WORDS)

    if positive > negative:
        score = min(MAX_SIMULATED_SCORE, positive / (positive + negative + 1))
        label = SentimentLabel.POSITIVE
    elif negative > positive:
        score = -min(MAX_SIMULATED_SCORE, negative / (positive + negative + 1))
        label = SentimentLabel.NEGATIVE
    else:
        score = 0.0
        label = SentimentLabel.NEUTRAL

    return Sentiment(score=score, label=label, confidence=SIMULATED_CONFIDENCE)


def complexity_for(word_count: int) -> Complexity:
    if word_count > 1000:
        return Complexity.COMPLEX
    if word_count > 300:
        return Complexity.MODERATE
    return Complexity.SIMPLE


def build_summary(word_count: int, label: SentimentLabel, reading_time: int) -> Summary:
    return Summary(
        short=f"Analysis of a document containing {word_count} words.",
        medium=(
            f"This document contains {word_count} words and appears to be "
            f"{label.value} in tone. Key topics are derived from its most frequent terms."
        ),
        detailed=(
            f"This document has been processed and analyzed. It contains {word_count} words "
            f"with an estimated reading time of {reading_time} minutes. The content appears "
            f"to have a {label.value} sentiment with key themes related to the extracted "
            f"keywords and topics."
        ),
    )


class SimulatedAnalyzer:
    """Keyword/sentiment/summary heuristics with no external calls."""

    def __init__(self, words_per_minute: int = 200) -> None:
        self._wpm = words_per_minute

    def analyze(self, text: str, file_name_hint: str | None = None) -> DocumentAnalysis:
        word_count   = count_words(text)
        reading_time = reading_time_minutes(word_count, self._wpm)
        keywords     = extract_keywords(text)
        sentiment    = score_sentiment(text)

        logger.debug(
            "SimulatedAnalyzer | words=%d keywords=%d sentiment=%s",
            word_count, len(keywords), sentiment.label.value,
        )

        return DocumentAnalysis(
            summary=build_summary(word_count, sentiment.label, reading_time),
            sentiment=sentiment,
            keywords=keywords,
            topics=keywords[:TOPIC_LIMIT],
            entities=[
                NamedEntity(
                    text=file_name_hint or "Document",
                    label=EntityLabel.MISC,
                    confidence=PLACEHOLDER_ENTITY_CONFIDENCE,
                    start_pos=0,
                    end_pos=0,
                )
            ],
            word_count=word_count,
            reading_time=reading_time,
            complexity=complexity_for(word_count),
            language="en",
        )
