"""
Document Store — Abstract Base

Persistence collaborator for the analysis pipeline. Every backend (in-memory,
PostgreSQL) implements this interface; the pipeline, services and API only
speak this protocol.

Contract enforced by ALL implementations:
  - Writes are atomic per call. A rejected write changes nothing.
  - processing_status is only written through transition_status(), a
    compare-and-swap keyed on the current status.
  - An analysis carrying an embeddings vector whose length is not 1536 is
    rejected with DimensionError. An absent or empty vector is accepted.
  - Topic names are unique per owner. topic_transaction() gives exclusive
    read-modify-write access to one topic for the duration of the block.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Collection, Mapping
from contextlib import AbstractAsyncContextManager
from datetime import datetime
from typing import Any
from uuid import UUID

from docinsight.core.errors import DimensionError
from docinsight.schemas.analysis import EMBEDDING_DIMENSIONS, DocumentAnalysis
from docinsight.schemas.documents import DocumentRecord, ProcessingStatus
from docinsight.schemas.topics import Topic

# Fields callers may never write through update_document()
_PROTECTED_FIELDS = frozenset({"id", "owner_id", "created_at", "processing_status"})


def normalize_topic_name(name: str) -> str:
    return " ".join(name.split())


def search_terms(query: str) -> list[str]:
    """Lower-cased, de-duplicated terms of a search query (order kept)."""
    return list(dict.fromkeys(query.lower().split()))


def check_embeddings(analysis: DocumentAnalysis) -> None:
    vector = analysis.embeddings
    if vector and len(vector) != EMBEDDING_DIMENSIONS:
        raise DimensionError(EMBEDDING_DIMENSIONS, len(vector))


def prepare_fields(fields: Mapping[str, Any]) -> dict[str, Any]:
    """
    Validate a partial-update mapping before any backend touches storage.

    Unknown or protected field names raise ValueError; a dict `analysis` is
    coerced to DocumentAnalysis; bad embedding dimensions raise DimensionError.
    """
    prepared = dict(fields)
    unknown = set(prepared) - set(DocumentRecord.model_fields)
    if unknown:
        raise ValueError(f"Unknown document fields: {sorted(unknown)}")
    protected = set(prepared) & _PROTECTED_FIELDS
    if protected:
        raise ValueError(f"Fields cannot be updated directly: {sorted(protected)}")

    if "analysis" in prepared:
        analysis = prepared["analysis"]
        if not isinstance(analysis, DocumentAnalysis):
            analysis = DocumentAnalysis.model_validate(analysis)
        check_embeddings(analysis)
        prepared["analysis"] = analysis
    return prepared


class DocumentStore(ABC):
    """Owner-scoped persistence for documents and topics."""

    # ------------------------------------------------------------------
    # Documents
    # ------------------------------------------------------------------

    @abstractmethod
    async def create_document(self, record: DocumentRecord) -> DocumentRecord:
        """Insert a new document. Raises DimensionError on a bad embeddings vector."""

    @abstractmethod
    async def get_document(self, document_id: UUID) -> DocumentRecord | None:
        """Return the document or None."""

    @abstractmethod
    async def update_document(self, document_id: UUID, fields: Mapping[str, Any]) -> DocumentRecord:
        """
        Merge `fields` into the document atomically and return the result.
        Raises DocumentNotFoundError, DimensionError or ValueError.
        """

    @abstractmethod
    async def transition_status(
        self,
        document_id: UUID,
        expected:    Collection[ProcessingStatus],
        target:      ProcessingStatus,
        fields:      Mapping[str, Any] | None = None,
    ) -> bool:
        """
        Compare-and-swap on processing_status.

        If the current status is in `expected`, set it to `target` and merge
        `fields` in the same atomic step, returning True. Otherwise change
        nothing and return False (also False for an unknown document).
        """

    @abstractmethod
    async def list_documents(
        self,
        owner_id: UUID,
        status:   ProcessingStatus | None = None,
    ) -> list[DocumentRecord]:
        """Owner's documents, newest first."""

    @abstractmethod
    async def list_stale_pending(self, older_than: datetime) -> list[DocumentRecord]:
        """Documents still `pending` whose last update is before `older_than`, across all owners."""

    @abstractmethod
    async def search_documents(
        self,
        owner_id: UUID,
        query:    str,
        limit:    int = 10,
        offset:   int = 0,
    ) -> tuple[list[DocumentRecord], int]:
        """
        Case-insensitive search over title, extracted text, keywords and topics.

        A document matches when any whitespace-separated term of `query`
        occurs in one of those fields. Returns one page (newest first) and
        the total match count.
        """

    @abstractmethod
    async def delete_document(self, document_id: UUID) -> bool:
        """
        Remove a document permanently. Returns False if it did not exist.

        Topics keep their timeline entries and document_ids for the deleted
        document; they record history, not ownership.
        """

    # ------------------------------------------------------------------
    # Topics
    # ------------------------------------------------------------------

    @abstractmethod
    async def create_topic(self, owner_id: UUID, name: str) -> Topic:
        """Create a topic. Raises TopicConflictError if the name already exists for the owner."""

    @abstractmethod
    async def get_topic(self, owner_id: UUID, name: str) -> Topic | None:
        """Return the topic or None."""

    @abstractmethod
    async def upsert_topic(self, owner_id: UUID, name: str) -> Topic:
        """Return the existing topic, creating it on first mention."""

    @abstractmethod
    async def save_topic(self, topic: Topic) -> Topic:
        """Persist every mutable field of an existing topic."""

    @abstractmethod
    def topic_transaction(self, owner_id: UUID, name: str) -> AbstractAsyncContextManager[Topic]:
        """
        Exclusive read-modify-write on one topic::

            async with store.topic_transaction(owner_id, "pricing") as topic:
                tracker.add_entry(topic, entry)

        The topic is created if missing and saved when the block exits
        normally; nothing is saved if the block raises.
        """

    @abstractmethod
    async def list_topics(
        self,
        owner_id:    UUID,
        active_only: bool = True,
        limit:       int | None = None,
    ) -> list[Topic]:
        """Topics ordered by popularity_score desc, then updated_at desc."""

    @abstractmethod
    async def deactivate_topic(self, owner_id: UUID, name: str) -> Topic | None:
        """Soft-deactivate a topic; None if it does not exist."""

    # ------------------------------------------------------------------
    # Health
    # ------------------------------------------------------------------

    async def check_health(self) -> dict:
        return {"status": "ok"}
