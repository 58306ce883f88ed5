"""
Analytics Service — comparisons, nearest neighbours and owner statistics.

Read-only over the DocumentStore. Every lookup is owner-scoped: a document
belonging to another owner is reported as not found.
"""

from __future__ import annotations

import logging
from collections import Counter
from uuid import UUID

from docinsight.core.errors import DocumentNotFoundError
from docinsight.processing.similarity import SimilarityIndex, compare_texts, cosine_similarity
from docinsight.schemas.analysis import EMBEDDING_DIMENSIONS
from docinsight.schemas.documents import (
    DocumentComparison,
    DocumentRecord,
    KeywordChanges,
    OwnerAnalytics,
    ProcessingStatus,
    SentimentChange,
    SimilarDocument,
)
from docinsight.storage.base import DocumentStore

logger = logging.getLogger(__name__)


class AnalyticsService:

    def __init__(self, store: DocumentStore) -> None:
        self._store = store

    async def _owned(self, owner_id: UUID, document_id: UUID) -> DocumentRecord:
        doc = await self._store.get_document(document_id)
        if doc is None or doc.owner_id != owner_id:
            raise DocumentNotFoundError(document_id)
        return doc

    async def compare_documents(self, owner_id: UUID, document1_id: UUID, document2_id: UUID) -> DocumentComparison:
        doc1 = await self._owned(owner_id, document1_id)
        doc2 = await self._owned(owner_id, document2_id)

        text_cmp = compare_texts(doc1.extracted_text, doc2.extracted_text)

        v1, v2 = doc1.analysis.embeddings, doc2.analysis.embeddings
        embedding_similarity = cosine_similarity(v1, v2) if v1 and v2 else None

        kw1, kw2 = doc1.analysis.keywords, doc2.analysis.keywords
        s1, s2 = doc1.analysis.sentiment.score, doc2.analysis.sentiment.score

        logger.info(
            "Compare | owner=%s doc1=%s doc2=%s jaccard=%.3f",
            owner_id, document1_id, document2_id, text_cmp.similarity,
        )
        return DocumentComparison(
            document1_id=document1_id,
            document2_id=document2_id,
            similarity=text_cmp.similarity,
            embedding_similarity=embedding_similarity,
            differences=text_cmp.differences,
            summary=text_cmp.summary,
            sentiment=SentimentChange(document1=s1, document2=s2, change=s2 - s1),
            keyword_changes=KeywordChanges(
                added=[k for k in kw2 if k not in kw1],
                removed=[k for k in kw1 if k not in kw2],
                shared=[k for k in kw1 if k in kw2],
            ),
        )

    async def similar_documents(self, owner_id: UUID, document_id: UUID, top_k: int = 5) -> list[SimilarDocument]:
        target = await self._owned(owner_id, document_id)
        if not target.analysis.embeddings:
            return []

        candidates = await self._store.list_documents(owner_id, status=ProcessingStatus.COMPLETED)
        index = SimilarityIndex(dimensions=EMBEDDING_DIMENSIONS)
        titles: dict[UUID, str] = {}
        for doc in candidates:
            if doc.id != document_id and doc.analysis.embeddings:
                index.add(doc.id, doc.analysis.embeddings)
                titles[doc.id] = doc.title

        return [
            SimilarDocument(document_id=key, title=titles[key], score=score)
            for key, score in index.nearest(target.analysis.embeddings, top_k=top_k)
        ]

    async def owner_analytics(self, owner_id: UUID) -> OwnerAnalytics:
        docs = await self._store.list_documents(owner_id)
        if not docs:
            return OwnerAnalytics()

        total_words = sum(d.word_count for d in docs)
        completed = [d for d in docs if d.processing_status == ProcessingStatus.COMPLETED]

        return OwnerAnalytics(
            total_documents=len(docs),
            total_words=total_words,
            total_size=sum(d.file_size for d in docs),
            avg_words_per_document=total_words / len(docs),
            avg_reading_time=sum(d.reading_time for d in docs) / len(docs),
            file_type_distribution=dict(Counter(d.file_type for d in docs)),
            sentiment_distribution=dict(Counter(d.analysis.sentiment.label.value for d in completed)),
            processing_status_distribution=dict(Counter(d.processing_status.value for d in docs)),
        )
