"""
PostgreSQL DocumentStore (SQLAlchemy 2.x async ORM).

Atomicity mapping:
  transition_status   single UPDATE ... WHERE id = :id AND processing_status IN (...)
                      → rowcount decides the compare-and-swap
  update_document     SELECT ... FOR UPDATE, merge in Python, UPDATE, one transaction
  create_topic        INSERT ... ON CONFLICT DO NOTHING RETURNING id → no row = conflict
  topic_transaction   INSERT ... ON CONFLICT DO NOTHING, then SELECT ... FOR UPDATE;
                      the row lock is held until the block exits
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Collection, Mapping
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import delete, func, or_, select, text, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from docinsight.core.errors import DocumentNotFoundError, TopicConflictError
from docinsight.models import documents as orm
from docinsight.schemas.analysis import DocumentAnalysis
from docinsight.schemas.documents import DocumentRecord, ProcessingStatus, utcnow
from docinsight.schemas.topics import Topic, TrendData
from docinsight.storage.base import (
    DocumentStore,
    check_embeddings,
    normalize_topic_name,
    prepare_fields,
    search_terms,
)

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Row ↔ schema conversion
# ---------------------------------------------------------------------------

def _document_to_record(row: orm.Document) -> DocumentRecord:
    return DocumentRecord(
        id=row.id,
        owner_id=row.owner_id,
        title=row.title,
        original_file_name=row.original_file_name,
        file_type=row.file_type,
        file_size=row.file_size,
        mime_type=row.mime_type,
        extracted_text=row.extracted_text,
        word_count=row.word_count,
        reading_time=row.reading_time,
        processing_status=ProcessingStatus(row.processing_status),
        processing_error=row.processing_error,
        analysis=DocumentAnalysis.model_validate(row.analysis) if row.analysis else DocumentAnalysis.empty(),
        tags=list(row.tags or []),
        created_at=row.created_at,
        updated_at=row.updated_at,
        processed_at=row.processed_at,
    )


def _column_values(fields: Mapping[str, Any]) -> dict[str, Any]:
    """Schema values → column values (JSONB fields dumped to plain JSON)."""
    values: dict[str, Any] = {}
    for name, value in fields.items():
        if name == "analysis":
            values[name] = value.model_dump(mode="json")
        elif name == "processing_status":
            values[name] = ProcessingStatus(value).value
        else:
            values[name] = value
    return values


def _like_pattern(term: str) -> str:
    escaped = term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


def _topic_to_schema(row: orm.Topic) -> Topic:
    return Topic(
        id=row.id,
        owner_id=row.owner_id,
        name=row.name,
        description=row.description,
        keywords=list(row.keywords or []),
        document_ids=list(row.document_ids or []),
        timeline=list(row.timeline or []),
        trend_data=TrendData.model_validate(row.trend_data or {}),
        is_active=row.is_active,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _topic_values(topic: Topic) -> dict[str, Any]:
    data = topic.model_dump(mode="json")
    return {
        "description":      data["description"],
        "keywords":         data["keywords"],
        "document_ids":     data["document_ids"],
        "timeline":         data["timeline"],
        "trend_data":       data["trend_data"],
        "popularity_score": topic.trend_data.popularity_score,
        "is_active":        topic.is_active,
        "updated_at":       topic.updated_at,
    }


# ---------------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------------

class SqlDocumentStore(DocumentStore):
    """
    Usage::

        store = SqlDocumentStore(get_sessionmaker())
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    # ------------------------------------------------------------------
    # Documents
    # ------------------------------------------------------------------

    async def create_document(self, record: DocumentRecord) -> DocumentRecord:
        check_embeddings(record.analysis)
        values = record.model_dump(exclude={"analysis", "processing_status"})
        values.update(_column_values({"analysis": record.analysis, "processing_status": record.processing_status}))
        async with self._session_factory() as session:
            async with session.begin():
                session.add(orm.Document(**values))
        logger.debug("SqlDocumentStore | created | doc_id=%s", record.id)
        return record

    async def get_document(self, document_id: UUID) -> DocumentRecord | None:
        async with self._session_factory() as session:
            row = await session.get(orm.Document, document_id)
            return _document_to_record(row) if row else None

    async def update_document(self, document_id: UUID, fields: Mapping[str, Any]) -> DocumentRecord:
        prepared = prepare_fields(fields)
        async with self._session_factory() as session:
            async with session.begin():
                row = (
                    await session.execute(
                        select(orm.Document).where(orm.Document.id == document_id).with_for_update()
                    )
                ).scalar_one_or_none()
                if row is None:
                    raise DocumentNotFoundError(document_id)

                current = _document_to_record(row)
                merged = DocumentRecord.model_validate(
                    {**current.model_dump(), **prepared, "updated_at": utcnow()}
                )
                for name, value in _column_values({**prepared, "updated_at": merged.updated_at}).items():
                    setattr(row, name, value)
        return merged

    async def transition_status(
        self,
        document_id: UUID,
        expected:    Collection[ProcessingStatus],
        target:      ProcessingStatus,
        fields:      Mapping[str, Any] | None = None,
    ) -> bool:
        prepared = prepare_fields(fields or {})
        values = _column_values({**prepared, "processing_status": target})
        values["updated_at"] = utcnow()

        stmt = (
            update(orm.Document)
            .where(
                orm.Document.id == document_id,
                orm.Document.processing_status.in_([ProcessingStatus(s).value for s in expected]),
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        async with self._session_factory() as session:
            async with session.begin():
                result = await session.execute(stmt)
        return result.rowcount == 1

    async def list_documents(
        self,
        owner_id: UUID,
        status:   ProcessingStatus | None = None,
    ) -> list[DocumentRecord]:
        stmt = select(orm.Document).where(orm.Document.owner_id == owner_id)
        if status is not None:
            stmt = stmt.where(orm.Document.processing_status == status.value)
        stmt = stmt.order_by(orm.Document.created_at.desc())
        async with self._session_factory() as session:
            rows = (await session.execute(stmt)).scalars().all()
            return [_document_to_record(r) for r in rows]

    async def list_stale_pending(self, older_than: datetime) -> list[DocumentRecord]:
        stmt = select(orm.Document).where(
            orm.Document.processing_status == ProcessingStatus.PENDING.value,
            orm.Document.updated_at < older_than,
        )
        async with self._session_factory() as session:
            rows = (await session.execute(stmt)).scalars().all()
            return [_document_to_record(r) for r in rows]

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

        match = or_(*(
            column.ilike(_like_pattern(term), escape="\\")
            for term in terms
            for column in (
                orm.Document.title,
                orm.Document.extracted_text,
                orm.Document.analysis["keywords"].astext,
                orm.Document.analysis["topics"].astext,
            )
        ))
        where = (orm.Document.owner_id == owner_id, match)

        async with self._session_factory() as session:
            total = (
                await session.execute(select(func.count()).select_from(orm.Document).where(*where))
            ).scalar_one()
            rows = (
                await session.execute(
                    select(orm.Document)
                    .where(*where)
                    .order_by(orm.Document.created_at.desc())
                    .offset(offset)
                    .limit(limit)
                )
            ).scalars().all()
            return [_document_to_record(r) for r in rows], total

    async def delete_document(self, document_id: UUID) -> bool:
        async with self._session_factory() as session:
            async with session.begin():
                result = await session.execute(
                    delete(orm.Document)
                    .where(orm.Document.id == document_id)
                    .execution_options(synchronize_session=False)
                )
        deleted = result.rowcount == 1
        if deleted:
            logger.debug("SqlDocumentStore | deleted | doc_id=%s", document_id)
        return deleted

    # ------------------------------------------------------------------
    # Topics
    # ------------------------------------------------------------------

    def _insert_topic(self, owner_id: UUID, name: str):
        fresh = Topic(owner_id=owner_id, name=name)
        return (
            pg_insert(orm.Topic)
            .values(id=fresh.id, owner_id=owner_id, name=name, trend_data=fresh.trend_data.model_dump())
            .on_conflict_do_nothing(index_elements=["owner_id", "name"])
        )

    async def create_topic(self, owner_id: UUID, name: str) -> Topic:
        name = normalize_topic_name(name)
        async with self._session_factory() as session:
            async with session.begin():
                inserted = (
                    await session.execute(self._insert_topic(owner_id, name).returning(orm.Topic.id))
                ).scalar_one_or_none()
                if inserted is None:
                    raise TopicConflictError(owner_id, name)
                row = await session.get(orm.Topic, inserted)
                return _topic_to_schema(row)

    async def get_topic(self, owner_id: UUID, name: str) -> Topic | None:
        stmt = select(orm.Topic).where(
            orm.Topic.owner_id == owner_id,
            orm.Topic.name == normalize_topic_name(name),
        )
        async with self._session_factory() as session:
            row = (await session.execute(stmt)).scalar_one_or_none()
            return _topic_to_schema(row) if row else None

    async def upsert_topic(self, owner_id: UUID, name: str) -> Topic:
        name = normalize_topic_name(name)
        async with self._session_factory() as session:
            async with session.begin():
                await session.execute(self._insert_topic(owner_id, name))
                row = (
                    await session.execute(
                        select(orm.Topic).where(orm.Topic.owner_id == owner_id, orm.Topic.name == name)
                    )
                ).scalar_one()
                return _topic_to_schema(row)

    async def save_topic(self, topic: Topic) -> Topic:
        async with self._session_factory() as session:
            async with session.begin():
                result = await session.execute(
                    update(orm.Topic)
                    .where(orm.Topic.id == topic.id)
                    .values(**_topic_values(topic))
                    .execution_options(synchronize_session=False)
                )
                if result.rowcount != 1:
                    raise ValueError(f"Topic '{topic.name}' does not exist for owner {topic.owner_id}")
        return topic

    @asynccontextmanager
    async def topic_transaction(self, owner_id: UUID, name: str) -> AsyncIterator[Topic]:
        name = normalize_topic_name(name)
        async with self._session_factory() as session:
            async with session.begin():
                await session.execute(self._insert_topic(owner_id, name))
                row = (
                    await session.execute(
                        select(orm.Topic)
                        .where(orm.Topic.owner_id == owner_id, orm.Topic.name == name)
                        .with_for_update()
                    )
                ).scalar_one()
                topic = _topic_to_schema(row)

                yield topic

                for column, value in _topic_values(topic).items():
                    setattr(row, column, value)

    async def list_topics(
        self,
        owner_id:    UUID,
        active_only: bool = True,
        limit:       int | None = None,
    ) -> list[Topic]:
        stmt = select(orm.Topic).where(orm.Topic.owner_id == owner_id)
        if active_only:
            stmt = stmt.where(orm.Topic.is_active.is_(True))
        stmt = stmt.order_by(orm.Topic.popularity_score.desc(), orm.Topic.updated_at.desc())
        if limit is not None:
            stmt = stmt.limit(limit)
        async with self._session_factory() as session:
            rows = (await session.execute(stmt)).scalars().all()
            return [_topic_to_schema(r) for r in rows]

    async def deactivate_topic(self, owner_id: UUID, name: str) -> Topic | None:
        name = normalize_topic_name(name)
        async with self._session_factory() as session:
            async with session.begin():
                row = (
                    await session.execute(
                        select(orm.Topic)
                        .where(orm.Topic.owner_id == owner_id, orm.Topic.name == name)
                        .with_for_update()
                    )
                ).scalar_one_or_none()
                if row is None:
                    return None
                row.is_active  = False
                row.updated_at = utcnow()
                return _topic_to_schema(row)

    # ------------------------------------------------------------------
    # Health
    # ------------------------------------------------------------------

    async def check_health(self) -> dict:
        try:
            async with self._session_factory() as session:
                await session.execute(text("SELECT 1"))
            return {"status": "ok"}
        except Exception as exc:
            logger.error("SqlDocumentStore | health check failed: %s", exc)
            return {"status": "error", "detail": str(exc)}
