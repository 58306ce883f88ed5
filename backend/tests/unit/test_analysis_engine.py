"""
Unit Tests — AnalysisEngine
════════════════════════════
Remote inference with validation and fallback. The provider is always a
FakeCompletionProvider from conftest.py; no network calls.

Coverage targets:
  ✅ Well-formed reply → validated DocumentAnalysis
  ✅ No provider / raise / timeout / non-JSON / non-object → simulated fallback
  ✅ Missing fields → documented defaults
  ✅ Out-of-range numbers clamped, lists prefix-truncated
  ✅ Entity label aliases and offset recovery
  ✅ Word count and reading time always computed locally
  ✅ Prompt truncation
"""

from __future__ import annotations

import asyncio

import pytest

from docinsight.analysis.engine import AnalysisEngine, decode_raw_analysis, validate_analysis
from docinsight.analysis.prompts import build_analysis_prompt
from docinsight.analysis.simulated import SimulatedAnalyzer
from docinsight.core.errors import AnalysisProviderError
from docinsight.schemas.analysis import (
    SUMMARY_NOT_AVAILABLE,
    Complexity,
    EntityLabel,
    RawAnalysis,
    SentimentLabel,
)

TEXT = "Acme Corp announced new pricing in Berlin. Customers were pleased."


# ─────────────────────────────────────────────────────────────────────────────
# decode_raw_analysis
# ─────────────────────────────────────────────────────────────────────────────

@pytest.mark.unit
class TestDecode:

    def test_plain_json_object(self):
        raw = decode_raw_analysis('{"keywords": ["a"], "extra": 1}')
        assert raw.keywords == ["a"]

    def test_code_fenced_json(self):
        raw = decode_raw_analysis('```json\n{"language": "de"}\n```')
        assert raw.language == "de"

    @pytest.mark.parametrize("payload", ["", "   ", None, "not json", "[1, 2, 3]", '"a string"'])
    def test_unusable_payload_raises(self, payload):
        with pytest.raises(AnalysisProviderError):
            decode_raw_analysis(payload)


# ─────────────────────────────────────────────────────────────────────────────
# validate_analysis
# ─────────────────────────────────────────────────────────────────────────────

@pytest.mark.unit
class TestValidate:

    def test_empty_raw_gets_defaults(self):
        analysis = validate_analysis(RawAnalysis(), TEXT)

        assert analysis.summary.short == SUMMARY_NOT_AVAILABLE
        assert analysis.summary.medium == SUMMARY_NOT_AVAILABLE
        assert analysis.summary.detailed == SUMMARY_NOT_AVAILABLE
        assert analysis.sentiment.score == 0.0
        assert analysis.sentiment.label == SentimentLabel.NEUTRAL
        assert analysis.sentiment.confidence == 0.5
        assert analysis.keywords == []
        assert analysis.topics == []
        assert analysis.entities == []
        assert analysis.language == "en"
        assert analysis.complexity == Complexity.SIMPLE

    def test_sentiment_clamped_and_label_normalized(self):
        raw = RawAnalysis(sentiment={"score": 3.5, "label": "POSITIVE", "confidence": -2})
        sentiment = validate_analysis(raw, TEXT).sentiment
        assert sentiment.score == 1.0
        assert sentiment.label == SentimentLabel.POSITIVE
        assert sentiment.confidence == 0.0

    def test_unknown_sentiment_label_is_neutral(self):
        raw = RawAnalysis(sentiment={"score": "0.4", "label": "ecstatic"})
        sentiment = validate_analysis(raw, TEXT).sentiment
        assert sentiment.score == pytest.approx(0.4)
        assert sentiment.label == SentimentLabel.NEUTRAL

    def test_lists_prefix_truncated(self):
        raw = RawAnalysis(
            keywords=[f"k{i}" for i in range(15)],
            topics=[f"t{i}" for i in range(8)],
        )
        analysis = validate_analysis(raw, TEXT)
        assert analysis.keywords == [f"k{i}" for i in range(10)]
        assert analysis.topics == [f"t{i}" for i in range(5)]

    def test_non_string_list_items_dropped(self):
        raw = RawAnalysis(keywords=["pricing", 42, None, "  ", "berlin"])
        assert validate_analysis(raw, TEXT).keywords == ["pricing", "berlin"]

    def test_long_summary_truncated(self):
        raw = RawAnalysis(summary={"short": "x" * 900, "medium": "m", "detailed": "d"})
        summary = validate_analysis(raw, TEXT).summary
        assert len(summary.short) == 500
        assert summary.medium == "m"

    @pytest.mark.parametrize(
        "label, expected",
        [
            ("ORG",          EntityLabel.ORG),
            ("organization", EntityLabel.ORG),
            ("LOCATION",     EntityLabel.LOC),
            ("PEOPLE",       EntityLabel.PERSON),
            ("gpe",          EntityLabel.GPE),
            ("SPACESHIP",    EntityLabel.MISC),
            (None,           EntityLabel.MISC),
        ],
    )
    def test_entity_labels(self, label, expected):
        raw = RawAnalysis(entities=[{"text": "Acme Corp", "label": label}])
        assert validate_analysis(raw, TEXT).entities[0].label == expected

    def test_entity_offsets_located_in_text(self):
        raw = RawAnalysis(entities=[{"text": "Berlin", "label": "GPE", "confidence": 0.9}])
        entity = validate_analysis(raw, TEXT).entities[0]
        assert TEXT[entity.start_pos:entity.end_pos] == "Berlin"
        assert entity.confidence == pytest.approx(0.9)

    @pytest.mark.parametrize("start, end", [(True, 3), (0, False), (2, 1), (-1, 4), ("0", "4")])
    def test_unusable_offsets_are_relocated(self, start, end):
        raw = RawAnalysis(entities=[{"text": "Acme", "start_pos": start, "end_pos": end}])
        entity = validate_analysis(raw, "Acme rocks").entities[0]
        assert (entity.start_pos, entity.end_pos) == (0, 4)

    def test_valid_model_offsets_kept(self):
        raw = RawAnalysis(entities=[{"text": "Acme", "start_pos": 2, "end_pos": 6}])
        entity = validate_analysis(raw, "Acme rocks").entities[0]
        assert (entity.start_pos, entity.end_pos) == (2, 6)

    def test_entity_not_in_text_gets_zero_offsets_and_default_confidence(self):
        raw = RawAnalysis(entities=[{"name": "Globex", "type": "ORG"}])
        entity = validate_analysis(raw, TEXT).entities[0]
        assert (entity.start_pos, entity.end_pos) == (0, 0)
        assert entity.confidence == 0.5
        assert entity.label == EntityLabel.ORG

    def test_entities_without_text_dropped_and_capped(self):
        raw = RawAnalysis(entities=[{"label": "ORG"}, "junk"] + [{"text": f"E{i}"} for i in range(12)])
        entities = validate_analysis(raw, TEXT).entities
        assert len(entities) == 10
        assert entities[0].text == "E0"

    def test_word_count_and_reading_time_are_local(self):
        raw = RawAnalysis.model_validate({"word_count": 99999, "reading_time": 500})
        analysis = validate_analysis(raw, "word " * 450)
        assert analysis.word_count == 450
        assert analysis.reading_time == 3

    def test_complexity_from_reply_or_word_count(self):
        assert validate_analysis(RawAnalysis(complexity="Complex"), TEXT).complexity == Complexity.COMPLEX
        assert validate_analysis(RawAnalysis(complexity="hard"), "w " * 400).complexity == Complexity.MODERATE

    def test_overlong_language_falls_back_to_en(self):
        assert validate_analysis(RawAnalysis(language="english-united-states"), TEXT).language == "en"
        assert validate_analysis(RawAnalysis(language="FR"), TEXT).language == "fr"


# ─────────────────────────────────────────────────────────────────────────────
# AnalysisEngine.analyze
# ─────────────────────────────────────────────────────────────────────────────

@pytest.mark.unit
class TestAnalysisEngine:

    async def test_remote_reply_is_used(self, fake_completion, model_reply):
        provider = fake_completion(reply=model_reply)
        engine = AnalysisEngine(provider)

        analysis = await engine.analyze(TEXT, "pricing.txt")

        assert analysis.summary.short == "Quarterly pricing review."
        assert analysis.sentiment.label == SentimentLabel.POSITIVE
        assert analysis.topics == ["pricing", "customer feedback"]
        assert analysis.entities[0].label == EntityLabel.ORG
        assert analysis.entities[0].start_pos == 0
        assert analysis.complexity == Complexity.MODERATE
        assert len(provider.prompts) == 1
        assert "pricing.txt" in provider.prompts[0]

    async def test_no_provider_uses_simulated(self):
        engine = AnalysisEngine(None)
        assert await engine.analyze(TEXT, "a.txt") == SimulatedAnalyzer().analyze(TEXT, "a.txt")

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"error": RuntimeError("RateLimitError: insufficient_quota")},
            {"reply": "Sure! Here is your analysis."},
            {"reply": [1, 2, 3]},
            {"reply": ""},
        ],
        ids=["provider-raises", "non-json", "json-array", "empty"],
    )
    async def test_failures_fall_back_to_simulated(self, fake_completion, kwargs):
        engine = AnalysisEngine(fake_completion(**kwargs))
        analysis = await engine.analyze(TEXT, "a.txt")
        assert analysis == SimulatedAnalyzer().analyze(TEXT, "a.txt")

    async def test_timeout_falls_back_to_simulated(self, fake_completion, model_reply):
        engine = AnalysisEngine(fake_completion(reply=model_reply, delay=1.0), timeout_seconds=0.01)
        analysis = await engine.analyze(TEXT, "a.txt")
        assert analysis.summary.short.startswith("Analysis of a document")

    async def test_cancellation_is_not_swallowed(self, fake_completion):
        engine = AnalysisEngine(fake_completion(reply="{}", delay=5.0))
        task = asyncio.create_task(engine.analyze(TEXT))
        await asyncio.sleep(0.01)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task


@pytest.mark.unit
class TestPrompt:

    def test_text_truncated_with_ellipsis(self):
        prompt = build_analysis_prompt("x" * 5000, "big.txt", max_chars=4000)
        assert "x" * 4000 + "..." in prompt
        assert "x" * 4001 not in prompt

    def test_short_text_not_marked(self):
        prompt = build_analysis_prompt("short text", None)
        assert "short text..." not in prompt
        assert "Unknown" in prompt
