"""
SQLAlchemy ORM Models — Documents & Topics

Used only by SqlDocumentStore. Nested value objects (analysis, timeline,
trend data) are stored as JSONB and round-tripped through the Pydantic
schemas in docinsight.schemas, which remain the source of truth for shape
and limits.

popularity_score is denormalized out of trend_data so trend listings can be
ordered and indexed in SQL.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    DateTime,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    pass


# ---------------------------------------------------------------------------
# Document model: documents
# ---------------------------------------------------------------------------

class Document(Base):
    """
    One uploaded file and its analysis.

    State machine (processing_status column):
        pending    — text extracted and stored, analysis not yet started
        processing — analysis task running (set by compare-and-swap only)
        completed  — analysis + embeddings persisted
        failed     — job stopped; see processing_error
    """

    __tablename__ = "documents"
    __table_args__ = (
        CheckConstraint(
            "processing_status IN ('pending', 'processing', 'completed', 'failed')",
            name="documents_status_check",
        ),
        Index("idx_documents_owner_id",     "owner_id"),
        Index("idx_documents_owner_status", "owner_id", "processing_status"),
        Index("idx_documents_status_updated", "processing_status", "updated_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    owner_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)

    title:              Mapped[str] = mapped_column(String(200), nullable=False)
    original_file_name: Mapped[str] = mapped_column(String(255), nullable=False)
    file_type:          Mapped[str] = mapped_column(String(16), nullable=False)
    file_size:          Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    mime_type:          Mapped[str] = mapped_column(Text, nullable=False)

    extracted_text: Mapped[str] = mapped_column(Text, nullable=False, default="")
    word_count:     Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    reading_time:   Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    processing_status: Mapped[str] = mapped_column(
        String(16),
        nullable=False,
        default="pending",
        server_default="pending",
    )
    processing_error: Mapped[Optional[str]] = mapped_column(
        String(1000),
        nullable=True,
        comment="Populated only when processing_status='failed'",
    )

    analysis: Mapped[dict] = mapped_column(
        JSONB,
        nullable=False,
        default=dict,
        server_default="{}",
        comment="DocumentAnalysis, embeddings included",
    )
    tags: Mapped[list] = mapped_column(JSONB, nullable=False, default=list, server_default="[]")

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )
    processed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    def __repr__(self) -> str:
        return (
            f"<Document id={self.id} owner={self.owner_id} "
            f"status={self.processing_status} file={self.original_file_name!r}>"
        )


# ---------------------------------------------------------------------------
# Topic model: topics
# ---------------------------------------------------------------------------

class Topic(Base):
    """Cross-document trend aggregate; UNIQUE(owner_id, name)."""

    __tablename__ = "topics"
    __table_args__ = (
        CheckConstraint(
            "popularity_score BETWEEN 0 AND 100",
            name="topics_popularity_range",
        ),
        UniqueConstraint("owner_id", "name", name="uq_topics_owner_name"),
        Index("idx_topics_owner_popularity", "owner_id", "popularity_score", "updated_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    owner_id:    Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
    name:        Mapped[str]       = mapped_column(String(100), nullable=False)
    description: Mapped[str]       = mapped_column(Text, nullable=False, default="")

    keywords:     Mapped[list] = mapped_column(JSONB, nullable=False, default=list, server_default="[]")
    document_ids: Mapped[list] = mapped_column(JSONB, nullable=False, default=list, server_default="[]")
    timeline:     Mapped[list] = mapped_column(JSONB, nullable=False, default=list, server_default="[]")
    trend_data:   Mapped[dict] = mapped_column(JSONB, nullable=False, default=dict, server_default="{}")

    popularity_score: Mapped[int]  = mapped_column(Integer, nullable=False, default=0, server_default="0")
    is_active:        Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default="true")

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    def __repr__(self) -> str:
        return f"<Topic id={self.id} owner={self.owner_id} name={self.name!r} active={self.is_active}>"
