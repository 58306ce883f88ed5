"""
In-memory DocumentStore.

Default backend for local runs and tests. One asyncio.Lock guards the
document table, so every compare-and-swap is atomic within the event loop.
Topics get one lock per (owner_id, name) for topic_transaction().

Records are copied on the way in and out; callers never hold a reference
to stored state.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Collection, Mapping
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any
from uuid import UUID

from docinsight.core.errors import DocumentNotFoundError, TopicConflictError
from docinsight.schemas.documents import DocumentRecord, ProcessingStatus, utcnow
from docinsight.schemas.topics import Topic
from docinsight.storage.base import (
    DocumentStore,
    check_embeddings,
    normalize_topic_name,
    prepare_fields,
    search_terms,
)

logger = logging.getLogger(__name__)

_TopicKey = tuple[UUID, str]


def _merge(record: DocumentRecord, fields: Mapping[str, Any]) -> DocumentRecord:
    merged = record.model_copy(update={**fields, "updated_at": utcnow()}, deep=True)
    # model_copy skips validation; re-validate so max_length etc. still hold
    return DocumentRecord.model_validate(merged.model_dump())


class InMemoryDocumentStore(DocumentStore):

    def __init__(self) -> None:
        self._documents: dict[UUID, DocumentRecord] = {}
        self._topics:    dict[_TopicKey, Topic] = {}
        self._doc_lock   = asyncio.Lock()
        self._topic_lock = asyncio.Lock()
        self._topic_locks: dict[_TopicKey, asyncio.Lock] = {}

    # ------------------------------------------------------------------
    # Documents
    # ------------------------------------------------------------------

    async def create_document(self, record: DocumentRecord) -> DocumentRecord:
        check_embeddings(record.analysis)
        async with self._doc_lock:
            if record.id in self._documents:
                raise ValueError(f"Document {record.id} already exists")
            self._documents[record.id] = record.model_copy(deep=True)
        logger.debug("InMemoryDocumentStore | created | doc_id=%s", record.id)
        return record.model_copy(deep=True)

    async def get_document(self, document_id: UUID) -> DocumentRecord | None:
        record = self._documents.get(document_id)
        return record.model_copy(deep=True) if record else None

    async def update_document(self, document_id: UUID, fields: Mapping[str, Any]) -> DocumentRecord:
        prepared = prepare_fields(fields)
        async with self._doc_lock:
            current = self._documents.get(document_id)
            if current is None:
                raise DocumentNotFoundError(document_id)
            updated = _merge(current, prepared)
            self._documents[document_id] = updated
        return updated.model_copy(deep=True)

    async def transition_status(
        self,
        document_id: UUID,
        expected:    Collection[ProcessingStatus],
        target:      ProcessingStatus,
        fields:      Mapping[str, Any] | None = None,
    ) -> bool:
        prepared = prepare_fields(fields or {})
        async with self._doc_lock:
            current = self._documents.get(document_id)
            if current is None or current.processing_status not in expected:
                return False
            self._documents[document_id] = _merge(current, {**prepared, "processing_status": target})
        return True

    async def list_documents(
        self,
        owner_id: UUID,
        status:   ProcessingStatus | None = None,
    ) -> list[DocumentRecord]:
        docs = [
            d for d in self._documents.values()
            if d.owner_id == owner_id and (status is None or d.processing_status == status)
        ]
        docs.sort(key=lambda d: d.created_at, reverse=True)
        return [d.model_copy(deep=True) for d in docs]

    async def list_stale_pending(self, older_than: datetime) -> list[DocumentRecord]:
        return [
            d.model_copy(deep=True)
            for d in self._documents.values()
            if d.processing_status == ProcessingStatus.PENDING and d.updated_at < older_than
        ]

    async def search_documents(
        self,
        owner_id: UUID,
        query:    str,
        limit:    int = 10,
        offset:   int = 0,
    ) -> tuple[list[DocumentRecord], int]:
        terms = search_terms(query)
        if not terms:
            return [], 0

        def haystacks(doc: DocumentRecord) -> list[str]:
            return [
                doc.title.lower(),
                doc.extracted_text.lower(),
                *(k.lower() for k in doc.analysis.keywords),
                *(t.lower() for t in doc.analysis.topics),
            ]

        matches = [
            d for d in self._documents.values()
            if d.owner_id == owner_id
            and any(term in field for field in haystacks(d) for term in terms)
        ]
        matches.sort(key=lambda d: d.created_at, reverse=True)
        page = matches[offset: offset + limit]
        return [d.model_copy(deep=True) for d in page], len(matches)

    async def delete_document(self, document_id: UUID) -> bool:
        async with self._doc_lock:
            removed = self._documents.pop(document_id, None)
        if removed is not None:
            logger.debug("InMemoryDocumentStore | deleted | doc_id=%s", document_id)
        return removed is not None

    # ------------------------------------------------------------------
    # Topics
    # ------------------------------------------------------------------

    async def create_topic(self, owner_id: UUID, name: str) -> Topic:
        key = (owner_id, normalize_topic_name(name))
        async with self._topic_lock:
            if key in self._topics:
                raise TopicConflictError(owner_id, key[1])
            topic = Topic(owner_id=owner_id, name=key[1])
            self._topics[key] = topic
        return topic.model_copy(deep=True)

    async def get_topic(self, owner_id: UUID, name: str) -> Topic | None:
        topic = self._topics.get((owner_id, normalize_topic_name(name)))
        return topic.model_copy(deep=True) if topic else None

    async def upsert_topic(self, owner_id: UUID, name: str) -> Topic:
        key = (owner_id, normalize_topic_name(name))
        async with self._topic_lock:
            topic = self._topics.get(key)
            if topic is None:
                topic = Topic(owner_id=owner_id, name=key[1])
                self._topics[key] = topic
                logger.debug("InMemoryDocumentStore | topic created | owner=%s name=%s", owner_id, key[1])
        return topic.model_copy(deep=True)

    async def save_topic(self, topic: Topic) -> Topic:
        key = (topic.owner_id, topic.name)
        async with self._topic_lock:
            existing = self._topics.get(key)
            if existing is None or existing.id != topic.id:
                raise ValueError(f"Topic '{topic.name}' does not exist for owner {topic.owner_id}")
            saved = Topic.model_validate(topic.model_dump())
            self._topics[key] = saved
        return saved.model_copy(deep=True)

    @asynccontextmanager
    async def topic_transaction(self, owner_id: UUID, name: str) -> AsyncIterator[Topic]:
        key = (owner_id, normalize_topic_name(name))
        lock = self._topic_locks.setdefault(key, asyncio.Lock())
        async with lock:
            topic = await self.upsert_topic(owner_id, name)
            yield topic
            await self.save_topic(topic)

    async def list_topics(
        self,
        owner_id:    UUID,
        active_only: bool = True,
        limit:       int | None = None,
    ) -> list[Topic]:
        topics = [
            t for (owner, _), t in self._topics.items()
            if owner == owner_id and (t.is_active or not active_only)
        ]
        topics.sort(key=lambda t: (t.trend_data.popularity_score, t.updated_at), reverse=True)
        if limit is not None:
            topics = topics[:limit]
        return [t.model_copy(deep=True) for t in topics]

    async def deactivate_topic(self, owner_id: UUID, name: str) -> Topic | None:
        key = (owner_id, normalize_topic_name(name))
        async with self._topic_lock:
            topic = self._topics.get(key)
            if topic is None:
                return None
            topic = topic.model_copy(update={"is_active": False, "updated_at": utcnow()}, deep=True)
            self._topics[key] = topic
        return topic.model_copy(deep=True)
