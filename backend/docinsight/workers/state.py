"""
Processing State Machine — the only writer of processing_status
════════════════════════════════════════════════════════════════

    pending ──start──► processing ──complete──► completed
       ▲                   │                        │
       │                 fail                       │
       │                   ▼                        │
       └──────retry──── failed ◄────────────────────┘ (retry only)

Every transition is a compare-and-swap in the DocumentStore. A transition
attempted from the wrong state is a StateConflictError internally: it is
logged and reported as False, never raised to the caller.

start() is the single-flight guard: two concurrent starts on the same pending
document yield exactly one True.
"""

from __future__ import annotations

import logging
from collections.abc import Collection, Mapping
from typing import Any
from uuid import UUID

from docinsight.core.errors import StateConflictError
from docinsight.schemas.analysis import DocumentAnalysis
from docinsight.schemas.documents import PROCESSING_ERROR_MAX, ProcessingStatus, utcnow
from docinsight.storage.base import DocumentStore

logger = logging.getLogger(__name__)

_PROGRESS: dict[ProcessingStatus, int] = {
    ProcessingStatus.PENDING:    0,
    ProcessingStatus.PROCESSING: 50,
    ProcessingStatus.COMPLETED:  100,
    ProcessingStatus.FAILED:     0,
}


def progress(status: ProcessingStatus) -> int:
    """UI progress percentage; a pure function of status."""
    return _PROGRESS[ProcessingStatus(status)]


class ProcessingStateMachine:

    def __init__(self, store: DocumentStore) -> None:
        self._store = store

    async def _transition(
        self,
        document_id: UUID,
        expected:    Collection[ProcessingStatus],
        target:      ProcessingStatus,
        fields:      Mapping[str, Any] | None = None,
    ) -> bool:
        if await self._store.transition_status(document_id, expected, target, fields):
            logger.info("StateMachine | %s → %s | doc=%s", "|".join(s.value for s in expected), target.value, document_id)
            return True

        doc = await self._store.get_document(document_id)
        conflict = StateConflictError(
            document_id,
            doc.processing_status.value if doc else None,
            target.value,
        )
        logger.warning("StateMachine | transition rejected | %s", conflict.message)
        return False

    async def start(self, document_id: UUID) -> bool:
        """pending → processing. False if the document is not pending."""
        return await self._transition(document_id, (ProcessingStatus.PENDING,), ProcessingStatus.PROCESSING)

    async def complete(
        self,
        document_id:  UUID,
        analysis:     DocumentAnalysis,
        extra_fields: Mapping[str, Any] | None = None,
    ) -> bool:
        """
        processing → completed, merging the full analysis in the same write.
        Raises DimensionError (nothing written) on a bad embeddings vector.
        """
        fields = {
            "analysis":         analysis,
            "processing_error": None,
            "processed_at":     utcnow(),
            **(extra_fields or {}),
        }
        return await self._transition(
            document_id, (ProcessingStatus.PROCESSING,), ProcessingStatus.COMPLETED, fields,
        )

    async def fail(self, document_id: UUID, error: str) -> bool:
        """pending | processing → failed. Only the error message is written."""
        return await self._transition(
            document_id,
            (ProcessingStatus.PENDING, ProcessingStatus.PROCESSING),
            ProcessingStatus.FAILED,
            {"processing_error": error[:PROCESSING_ERROR_MAX]},
        )

    async def retry(self, document_id: UUID) -> bool:
        """failed | completed → pending. The caller publishes a new task afterwards."""
        return await self._transition(
            document_id,
            (ProcessingStatus.FAILED, ProcessingStatus.COMPLETED),
            ProcessingStatus.PENDING,
            {"processing_error": None},
        )
