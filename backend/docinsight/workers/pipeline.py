"""
Document Processor — the background analysis job
═════════════════════════════════════════════════

    start (CAS pending → processing)
      │   not pending → {"status": "skipped"}   (another run owns it)
      ▼
    AnalysisEngine.analyze(text, file name)       never raises
      ▼
    EmbeddingService.embed(text)                  never raises
      ▼
    complete (CAS processing → completed)         analysis + embeddings +
      │                                           reading time in one write
      ▼
    TopicTrendTracker.record_document()           failures logged only

Anything raised before completion (empty text, DimensionError, storage
outage) marks the document failed with the error message. process() itself
never raises: the result dict is the only report.
"""

from __future__ import annotations

import logging
from typing import Any
from uuid import UUID

from docinsight.analysis.engine import AnalysisEngine
from docinsight.core.config import Settings, settings as default_settings
from docinsight.core.errors import MalformedDocumentError
from docinsight.llm.providers import build_providers
from docinsight.processing.embeddings import EmbeddingService
from docinsight.schemas.documents import utcnow
from docinsight.storage.base import DocumentStore
from docinsight.trends.tracker import TopicTrendTracker
from docinsight.workers.state import ProcessingStateMachine

logger = logging.getLogger(__name__)


class DocumentProcessor:

    def __init__(
        self,
        store:      DocumentStore,
        engine:     AnalysisEngine,
        embeddings: EmbeddingService,
        tracker:    TopicTrendTracker | None = None,
    ) -> None:
        self._store      = store
        self._engine     = engine
        self._embeddings = embeddings
        self._tracker    = tracker or TopicTrendTracker(store)
        self._state      = ProcessingStateMachine(store)

    @property
    def state(self) -> ProcessingStateMachine:
        return self._state

    async def process(self, document_id: UUID) -> dict[str, Any]:
        doc = await self._store.get_document(document_id)
        if doc is None:
            logger.error("Processing | document not found | doc=%s", document_id)
            return {"status": "not_found", "document_id": str(document_id)}

        if not await self._state.start(document_id):
            current = await self._store.get_document(document_id)
            logger.info(
                "Processing | already %s, skipping | doc=%s",
                current.processing_status.value if current else "gone", document_id,
            )
            return {
                "status":         "skipped",
                "document_id":    str(document_id),
                "current_status": current.processing_status.value if current else None,
            }

        logger.info("Processing | doc=%s owner=%s file=%s", document_id, doc.owner_id, doc.original_file_name)

        try:
            if not doc.extracted_text.strip():
                raise MalformedDocumentError(document_id, "no extracted text")

            analysis = await self._engine.analyze(doc.extracted_text, doc.original_file_name)
            vector   = await self._embeddings.embed(doc.extracted_text)
            analysis = analysis.model_copy(update={"embeddings": vector})

            completed = await self._state.complete(
                document_id,
                analysis,
                {"word_count": analysis.word_count, "reading_time": analysis.reading_time},
            )
        except Exception as exc:
            logger.exception("Processing failed | doc=%s", document_id)
            await self._mark_failed(document_id, f"{type(exc).__name__}: {exc}")
            return {"status": "failed", "document_id": str(document_id), "error": str(exc)}

        if not completed:
            return {"status": "skipped", "document_id": str(document_id)}

        topics = 0
        try:
            updated = await self._tracker.record_document(
                doc.owner_id, document_id, analysis, doc.extracted_text, date=utcnow(),
            )
            topics = len(updated)
        except Exception:
            # the document is already completed; trends catch up on the next analysis
            logger.exception("Topic trend update failed | doc=%s", document_id)

        logger.info(
            "Processing complete | doc=%s words=%d keywords=%d topics=%d",
            document_id, analysis.word_count, len(analysis.keywords), topics,
        )
        return {
            "status":      "completed",
            "document_id": str(document_id),
            "word_count":  analysis.word_count,
            "topics":      topics,
        }

    async def _mark_failed(self, document_id: UUID, error: str) -> None:
        try:
            await self._state.fail(document_id, error)
        except Exception:
            logger.exception("Could not mark document failed | doc=%s", document_id)


def build_processor(store: DocumentStore, cfg: Settings | None = None) -> DocumentProcessor:
    """Wire a DocumentProcessor from settings (OpenAI providers when configured)."""
    cfg = cfg or default_settings
    completion, embedding = build_providers(cfg)
    return DocumentProcessor(
        store=store,
        engine=AnalysisEngine.from_settings(cfg, completion),
        embeddings=EmbeddingService.from_settings(cfg, embedding),
    )
