"""
Unit Tests — AnalyticsService
══════════════════════════════
Comparisons, nearest neighbours and owner statistics over the in-memory store.
"""

from __future__ import annotations

import uuid

import pytest

from docinsight.core.errors import DocumentNotFoundError
from docinsight.schemas.analysis import DocumentAnalysis, Sentiment, SentimentLabel
from docinsight.schemas.documents import ProcessingStatus
from docinsight.services.analytics import AnalyticsService

P = ProcessingStatus
DIMS = 1536


def _vector(*head: float) -> list[float]:
    return list(head) + [0.0] * (DIMS - len(head))


def _analysis(score: float, label: SentimentLabel, keywords: list[str], vector: list[float] | None = None) -> DocumentAnalysis:
    return DocumentAnalysis(
        sentiment=Sentiment(score=score, label=label, confidence=0.9),
        keywords=keywords,
        embeddings=vector,
    )


@pytest.fixture
def analytics(store) -> AnalyticsService:
    return AnalyticsService(store)


@pytest.mark.unit
class TestCompare:

    async def test_compare_documents(self, analytics, make_document, owner_id):
        a = await make_document(
            text="the cat sat", status=P.COMPLETED,
            analysis=_analysis(-0.2, SentimentLabel.NEGATIVE, ["cat", "sat"], _vector(1.0)),
        )
        b = await make_document(
            text="the cat ran", status=P.COMPLETED,
            analysis=_analysis(0.6, SentimentLabel.POSITIVE, ["cat", "ran"], _vector(1.0)),
        )

        result = await analytics.compare_documents(owner_id, a.id, b.id)

        assert result.similarity == pytest.approx(0.5)
        assert result.embedding_similarity == pytest.approx(1.0)
        assert result.differences.added == ["ran"]
        assert result.sentiment.change == pytest.approx(0.8)
        assert result.keyword_changes.added == ["ran"]
        assert result.keyword_changes.removed == ["sat"]
        assert result.keyword_changes.shared == ["cat"]

    async def test_compare_without_embeddings(self, analytics, make_document, owner_id):
        a = await make_document(text="one two")
        b = await make_document(text="two three")
        result = await analytics.compare_documents(owner_id, a.id, b.id)
        assert result.embedding_similarity is None

    async def test_other_owner_is_not_found(self, analytics, make_document, other_owner_id, owner_id):
        mine = await make_document()
        theirs = await make_document(owner=other_owner_id)
        with pytest.raises(DocumentNotFoundError):
            await analytics.compare_documents(owner_id, mine.id, theirs.id)
        with pytest.raises(DocumentNotFoundError):
            await analytics.compare_documents(owner_id, mine.id, uuid.uuid4())


@pytest.mark.unit
class TestSimilar:

    async def test_ranked_neighbours_exclude_target(self, analytics, make_document, owner_id, other_owner_id):
        target = await make_document(status=P.COMPLETED, analysis=_analysis(0, SentimentLabel.NEUTRAL, [], _vector(1.0, 0.0)))
        close = await make_document(status=P.COMPLETED, title="Close", analysis=_analysis(0, SentimentLabel.NEUTRAL, [], _vector(0.9, 0.1)))
        far = await make_document(status=P.COMPLETED, title="Far", analysis=_analysis(0, SentimentLabel.NEUTRAL, [], _vector(0.0, 1.0)))
        await make_document(status=P.PENDING)
        await make_document(owner=other_owner_id, status=P.COMPLETED, analysis=_analysis(0, SentimentLabel.NEUTRAL, [], _vector(1.0)))

        hits = await analytics.similar_documents(owner_id, target.id, top_k=5)

        assert [h.document_id for h in hits] == [close.id, far.id]
        assert hits[0].title == "Close"
        assert hits[0].score > hits[1].score

    async def test_target_without_embeddings(self, analytics, make_document, owner_id):
        doc = await make_document()
        assert await analytics.similar_documents(owner_id, doc.id) == []


@pytest.mark.unit
class TestOwnerAnalytics:

    async def test_empty(self, analytics, owner_id):
        result = await analytics.owner_analytics(owner_id)
        assert result.total_documents == 0
        assert result.avg_words_per_document == 0.0

    async def test_distributions(self, analytics, make_document, owner_id, other_owner_id):
        await make_document(text="one two three four", status=P.COMPLETED,
                            analysis=_analysis(0.5, SentimentLabel.POSITIVE, []))
        await make_document(text="one two", file_type="md", original_file_name="b.md")
        await make_document(owner=other_owner_id)

        result = await analytics.owner_analytics(owner_id)

        assert result.total_documents == 2
        assert result.total_words == 6
        assert result.avg_words_per_document == pytest.approx(3.0)
        assert result.file_type_distribution == {"txt": 1, "md": 1}
        assert result.sentiment_distribution == {"positive": 1}
        assert result.processing_status_distribution == {"completed": 1, "pending": 1}
