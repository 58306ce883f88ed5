"""
Unit Tests — OpenAI provider adapters and PostgreSQL row mapping
═════════════════════════════════════════════════════════════════
No network and no database: the chat model is a mock, ORM rows are built
in memory and never flushed.
"""

from __future__ import annotations

import uuid
from unittest.mock import AsyncMock, MagicMock

import pytest
from langchain_core.messages import AIMessage, HumanMessage, SystemMessage

from docinsight.core.config import PLACEHOLDER_API_KEY, Settings
from docinsight.llm.providers import (
    ANALYST_SYSTEM_PROMPT,
    CompletionProvider,
    OpenAICompletionProvider,
    build_providers,
    classify_provider_error,
)
from docinsight.models import documents as orm
from docinsight.schemas.analysis import DocumentAnalysis
from docinsight.schemas.documents import ProcessingStatus, utcnow
from docinsight.schemas.topics import Topic, TopicTimelineEntry
from docinsight.storage.sql_store import (
    _column_values,
    _document_to_record,
    _topic_to_schema,
    _topic_values,
)


# ─────────────────────────────────────────────────────────────────────────────
# Providers
# ─────────────────────────────────────────────────────────────────────────────

@pytest.mark.unit
class TestCompletionProvider:

    async def test_messages_and_content(self):
        llm = MagicMock()
        llm.ainvoke = AsyncMock(return_value=AIMessage(content='{"language": "en"}'))
        provider = OpenAICompletionProvider(llm)

        assert await provider.complete("analyze this") == '{"language": "en"}'

        messages = llm.ainvoke.await_args.args[0]
        assert isinstance(messages[0], SystemMessage)
        assert messages[0].content == ANALYST_SYSTEM_PROMPT
        assert isinstance(messages[1], HumanMessage)
        assert messages[1].content == "analyze this"

    async def test_multipart_content_joined(self):
        llm = MagicMock()
        llm.ainvoke = AsyncMock(return_value=AIMessage(content=[{"type": "text", "text": "{}"}, "\n"]))
        assert await OpenAICompletionProvider(llm).complete("x") == "{}\n"

    def test_satisfies_protocol(self):
        assert isinstance(OpenAICompletionProvider(MagicMock()), CompletionProvider)

    @pytest.mark.parametrize("api_key", ["", "   ", PLACEHOLDER_API_KEY])
    def test_no_key_means_no_providers(self, api_key):
        assert build_providers(Settings(openai_api_key=api_key)) == (None, None)

    @pytest.mark.parametrize(
        "exc, label",
        [
            (type("RateLimitError", (Exception,), {})("slow down"), "rate_limit"),
            (type("RateLimitError", (Exception,), {})("insufficient_quota"), "quota"),
            (type("APITimeoutError", (Exception,), {})("timeout"), "transient"),
            (type("BadRequestError", (Exception,), {})("bad"), "invalid_request"),
            (ValueError("other"), "other"),
        ],
    )
    def test_classify_provider_error(self, exc, label):
        assert classify_provider_error(exc) == label


# ─────────────────────────────────────────────────────────────────────────────
# SQL row mapping
# ─────────────────────────────────────────────────────────────────────────────

@pytest.mark.unit
class TestSqlMapping:

    def test_document_row_to_record(self, owner_id):
        now = utcnow()
        row = orm.Document(
            id=uuid.uuid4(),
            owner_id=owner_id,
            title="Report",
            original_file_name="report.txt",
            file_type="txt",
            file_size=12,
            mime_type="text/plain",
            extracted_text="hello world",
            word_count=2,
            reading_time=1,
            processing_status="completed",
            processing_error=None,
            analysis={"keywords": ["hello"], "embeddings": [0.0] * 1536},
            tags=["a"],
            created_at=now,
            updated_at=now,
            processed_at=now,
        )

        record = _document_to_record(row)

        assert record.processing_status == ProcessingStatus.COMPLETED
        assert record.analysis.keywords == ["hello"]
        assert len(record.analysis.embeddings) == 1536
        assert record.tags == ["a"]

    def test_empty_analysis_column_gets_placeholder(self, owner_id):
        now = utcnow()
        row = orm.Document(
            id=uuid.uuid4(), owner_id=owner_id, title="t", original_file_name="t.txt", file_type="txt",
            file_size=0, mime_type="text/plain", extracted_text="", word_count=0, reading_time=0,
            processing_status="pending", analysis={}, tags=None, created_at=now, updated_at=now,
        )
        assert _document_to_record(row).analysis == DocumentAnalysis.empty()

    def test_column_values_serialize_json_fields(self):
        values = _column_values({
            "analysis":          DocumentAnalysis(keywords=["k"]),
            "processing_status": ProcessingStatus.FAILED,
            "processing_error":  "boom",
        })
        assert values["analysis"]["keywords"] == ["k"]
        assert values["analysis"]["complexity"] == "simple"
        assert values["processing_status"] == "failed"
        assert values["processing_error"] == "boom"

    def test_topic_round_trip(self, owner_id):
        topic = Topic(owner_id=owner_id, name="pricing", keywords=["price"])
        topic.document_ids.append(uuid.uuid4())
        topic.timeline.append(TopicTimelineEntry(
            document_id=topic.document_ids[0], date=utcnow(), content="c", relevance_score=1.0, sentiment=0.5,
        ))
        topic.trend_data.popularity_score = 40

        values = _topic_values(topic)
        assert values["popularity_score"] == 40
        assert isinstance(values["document_ids"][0], str)

        row = orm.Topic(id=topic.id, owner_id=owner_id, name="pricing", created_at=topic.created_at, **values)
        restored = _topic_to_schema(row)

        assert restored.document_ids == topic.document_ids
        assert restored.timeline[0].sentiment == 0.5
        assert restored.trend_data.popularity_score == 40
