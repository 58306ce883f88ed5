"""
Analysis Engine — remote inference with validated output and local fallback
═══════════════════════════════════════════════════════════════════════════

    text ──► prompt ──► CompletionProvider.complete()   (one attempt, bounded)
                              │
                              ▼
                     decode_raw_analysis()    JSON → RawAnalysis (permissive)
                              │
                              ▼
                     validate_analysis()      RawAnalysis → DocumentAnalysis
                                              (defaults, clamps, prefix caps)

Any failure along that path (no provider, timeout, provider exception,
non-JSON or non-object payload) is logged and answered by SimulatedAnalyzer.
`analyze()` never raises to its caller.

Word count and reading time are always computed locally from the full text,
never taken from the model.
"""

from __future__ import annotations

import asyncio
import json
import logging
import math
import re
from typing import Any

from pydantic import ValidationError

from docinsight.analysis.prompts import build_analysis_prompt
from docinsight.analysis.simulated import SimulatedAnalyzer, complexity_for
from docinsight.core.config import Settings
from docinsight.core.errors import AnalysisProviderError
from docinsight.llm.providers import CompletionProvider, classify_provider_error
from docinsight.schemas.analysis import (
    MAX_ENTITIES,
    MAX_KEYWORDS,
    MAX_TOPICS,
    SUMMARY_DETAILED_MAX,
    SUMMARY_MEDIUM_MAX,
    SUMMARY_NOT_AVAILABLE,
    SUMMARY_SHORT_MAX,
    Complexity,
    DocumentAnalysis,
    EntityLabel,
    NamedEntity,
    RawAnalysis,
    Sentiment,
    SentimentLabel,
    Summary,
)
from docinsight.schemas.documents import count_words, reading_time_minutes

logger = logging.getLogger(__name__)

_CODE_FENCE_RE = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)

_ENTITY_LABEL_ALIASES: dict[str, EntityLabel] = {
    "ORGANIZATION":  EntityLabel.ORG,
    "ORGANISATION":  EntityLabel.ORG,
    "LOCATION":      EntityLabel.LOC,
    "PEOPLE":        EntityLabel.PERSON,
    "MISCELLANEOUS": EntityLabel.MISC,
}

_DEFAULT_ENTITY_CONFIDENCE = 0.5
_LANGUAGE_MAX_LEN = 10


# ---------------------------------------------------------------------------
# Stage 1: permissive decode
# ---------------------------------------------------------------------------

def decode_raw_analysis(payload: str | None) -> RawAnalysis:
    """
    Parse the model's reply into a RawAnalysis.

    Markdown code fences around the JSON are tolerated. Anything that is not a
    JSON object raises AnalysisProviderError.
    """
    if not payload or not payload.strip():
        raise AnalysisProviderError("empty response from provider")

    cleaned = _CODE_FENCE_RE.sub("", payload.strip())
    try:
        data = json.loads(cleaned)
    except json.JSONDecodeError as exc:
        raise AnalysisProviderError("response is not valid JSON", original_error=exc) from exc

    if not isinstance(data, dict):
        raise AnalysisProviderError(f"expected a JSON object, got {type(data).__name__}")

    return RawAnalysis.model_validate(data)


# ---------------------------------------------------------------------------
# Stage 2: strict validation / defaulting
# ---------------------------------------------------------------------------

def _as_float(value: Any) -> float | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return None
    else:
        return None
    if math.isnan(number) or math.isinf(number):
        return None
    return number


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def _text_field(value: Any, limit: int) -> str:
    if isinstance(value, str) and value.strip():
        return value.strip()[:limit]
    return SUMMARY_NOT_AVAILABLE


def _validate_summary(raw: Any) -> Summary:
    data = raw if isinstance(raw, dict) else {}
    return Summary(
        short=_text_field(data.get("short"), SUMMARY_SHORT_MAX),
        medium=_text_field(data.get("medium"), SUMMARY_MEDIUM_MAX),
        detailed=_text_field(data.get("detailed"), SUMMARY_DETAILED_MAX),
    )


def _validate_sentiment(raw: Any) -> Sentiment:
    if not isinstance(raw, dict):
        return Sentiment()

    score = _as_float(raw.get("score"))
    confidence = _as_float(raw.get("confidence"))

    label_value = raw.get("label")
    try:
        label = SentimentLabel(label_value.strip().lower()) if isinstance(label_value, str) else SentimentLabel.NEUTRAL
    except ValueError:
        label = SentimentLabel.NEUTRAL

    return Sentiment(
        score=_clamp(score, -1.0, 1.0) if score is not None else 0.0,
        label=label,
        confidence=_clamp(confidence, 0.0, 1.0) if confidence is not None else 0.5,
    )


def _validate_strings(raw: Any, cap: int) -> list[str]:
    if not isinstance(raw, list):
        return []
    items = [item.strip() for item in raw if isinstance(item, str) and item.strip()]
    return items[:cap]


def _entity_label(value: Any) -> EntityLabel:
    if not isinstance(value, str):
        return EntityLabel.MISC
    key = value.strip().upper()
    if key in _ENTITY_LABEL_ALIASES:
        return _ENTITY_LABEL_ALIASES[key]
    try:
        return EntityLabel(key)
    except ValueError:
        return EntityLabel.MISC


def _is_offset(value: Any) -> bool:
    # bool is an int subclass; JSON true/false are not offsets
    return isinstance(value, int) and not isinstance(value, bool)


def _validate_entity(raw: Any, text: str) -> NamedEntity | None:
    if not isinstance(raw, dict):
        return None
    name = raw.get("text", raw.get("name"))
    if not isinstance(name, str) or not name.strip():
        return None
    name = name.strip()

    confidence = _as_float(raw.get("confidence"))
    start = raw.get("start_pos", raw.get("startPos"))
    end = raw.get("end_pos", raw.get("endPos"))

    if not (_is_offset(start) and _is_offset(end) and 0 <= start <= end):
        # model gave no usable offsets: locate the first occurrence, or 0/0
        found = text.find(name)
        start, end = (found, found + len(name)) if found >= 0 else (0, 0)

    return NamedEntity(
        text=name,
        label=_entity_label(raw.get("label", raw.get("type"))),
        confidence=_clamp(confidence, 0.0, 1.0) if confidence is not None else _DEFAULT_ENTITY_CONFIDENCE,
        start_pos=start,
        end_pos=end,
    )


def _validate_entities(raw: Any, text: str) -> list[NamedEntity]:
    if not isinstance(raw, list):
        return []
    entities = [e for e in (_validate_entity(item, text) for item in raw) if e is not None]
    return entities[:MAX_ENTITIES]


def validate_analysis(raw: RawAnalysis, text: str, words_per_minute: int = 200) -> DocumentAnalysis:
    """
    Turn a RawAnalysis into a fully-populated DocumentAnalysis.

    Missing or mistyped fields become fixed defaults; list fields are
    prefix-truncated in the order the model returned them.
    """
    word_count = count_words(text)

    try:
        complexity = Complexity(raw.complexity.strip().lower()) if isinstance(raw.complexity, str) else complexity_for(word_count)
    except ValueError:
        complexity = complexity_for(word_count)

    language = raw.language.strip().lower() if isinstance(raw.language, str) else ""
    if not language or len(language) > _LANGUAGE_MAX_LEN:
        language = "en"

    return DocumentAnalysis(
        summary=_validate_summary(raw.summary),
        sentiment=_validate_sentiment(raw.sentiment),
        keywords=_validate_strings(raw.keywords, MAX_KEYWORDS),
        topics=_validate_strings(raw.topics, MAX_TOPICS),
        entities=_validate_entities(raw.entities, text),
        word_count=word_count,
        reading_time=reading_time_minutes(word_count, words_per_minute),
        complexity=complexity,
        language=language,
    )


# ---------------------------------------------------------------------------
# AnalysisEngine
# ---------------------------------------------------------------------------

class AnalysisEngine:
    """
    Usage::

        engine = AnalysisEngine.from_settings(settings, completion_provider)
        analysis = await engine.analyze(text, "report.pdf")

    With provider=None every call goes straight to the simulated analyzer.
    """

    def __init__(
        self,
        provider:         CompletionProvider | None,
        simulated:        SimulatedAnalyzer | None = None,
        max_input_chars:  int   = 4000,
        timeout_seconds:  float = 30.0,
        words_per_minute: int   = 200,
    ) -> None:
        self._provider         = provider
        self._simulated        = simulated or SimulatedAnalyzer(words_per_minute=words_per_minute)
        self._max_input_chars  = max_input_chars
        self._timeout_seconds  = timeout_seconds
        self._words_per_minute = words_per_minute

    @classmethod
    def from_settings(cls, cfg: Settings, provider: CompletionProvider | None) -> "AnalysisEngine":
        return cls(
            provider=provider,
            max_input_chars=cfg.analysis_max_input_chars,
            timeout_seconds=cfg.llm_timeout_seconds,
            words_per_minute=cfg.reading_words_per_minute,
        )

    async def analyze(self, text: str, file_name_hint: str | None = None) -> DocumentAnalysis:
        if self._provider is None:
            logger.info("AnalysisEngine | no provider configured — simulated analysis | file=%s", file_name_hint)
            return self._simulated.analyze(text, file_name_hint)

        try:
            return await self._analyze_remote(text, file_name_hint)
        except asyncio.TimeoutError:
            logger.warning(
                "AnalysisEngine | provider timed out after %.1fs — falling back | file=%s",
                self._timeout_seconds, file_name_hint,
            )
        except AnalysisProviderError as exc:
            logger.warning(
                "AnalysisEngine | unusable provider response — falling back | file=%s reason=%s",
                file_name_hint, exc.context.get("reason"),
            )
        except Exception as exc:
            logger.warning(
                "AnalysisEngine | provider error — falling back | file=%s kind=%s error=%s",
                file_name_hint, classify_provider_error(exc), exc,
            )

        return self._simulated.analyze(text, file_name_hint)

    async def _analyze_remote(self, text: str, file_name_hint: str | None) -> DocumentAnalysis:
        prompt = build_analysis_prompt(text, file_name_hint, self._max_input_chars)
        reply = await asyncio.wait_for(self._provider.complete(prompt), timeout=self._timeout_seconds)

        raw = decode_raw_analysis(reply)
        try:
            analysis = validate_analysis(raw, text, self._words_per_minute)
        except ValidationError as exc:
            raise AnalysisProviderError("response failed validation", original_error=exc) from exc

        logger.info(
            "AnalysisEngine | remote analysis ok | file=%s keywords=%d topics=%d entities=%d",
            file_name_hint, len(analysis.keywords), len(analysis.topics), len(analysis.entities),
        )
        return analysis
