"""
Document Ingestion Service

Orchestrates the upload trigger:
  1. Validate file name, extension and size
  2. Extract text (ExtractionError → explanatory placeholder, upload continues)
  3. Count words and compute reading time
  4. Insert the document record (processing_status=pending)
  5. Publish the processing task (failure is logged, never fatal)
  6. Return 202 immediately; analysis runs in the background

The publisher is injected so tests can observe or suppress background work.
"""

from __future__ import annotations

import asyncio
import logging
import mimetypes
import uuid
from typing import Protocol

from fastapi import HTTPException, status

from docinsight.core.config import Settings, settings as default_settings
from docinsight.core.errors import ExtractionError
from docinsight.processing.extractor import TextExtractor
from docinsight.schemas.documents import (
    ALLOWED_FILE_TYPES,
    DocumentRecord,
    DocumentUploadResponse,
    ErrorDetail,
    ErrorResponse,
    ProcessingStatus,
    UploadErrors,
    count_words,
    reading_time_minutes,
)
from docinsight.storage.base import DocumentStore

logger = logging.getLogger(__name__)

_MIME_BY_TYPE: dict[str, str] = {
    "pdf":  "application/pdf",
    "docx": "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    "txt":  "text/plain",
    "md":   "text/markdown",
}


def get_file_type(filename: str) -> str:
    """Lowercased extension without the dot ('' if none)."""
    parts = filename.rsplit(".", 1)
    return parts[-1].lower() if len(parts) == 2 else ""


def _basename(filename: str) -> str:
    return filename.replace("\\", "/").rsplit("/", 1)[-1].strip()


def extraction_placeholder(file_name: str) -> str:
    return f"Failed to extract text from {file_name}"


# ---------------------------------------------------------------------------
# Task publishers
# ---------------------------------------------------------------------------

class TaskPublisher(Protocol):
    async def publish_processing_task(self, document_id: uuid.UUID) -> None: ...


class InProcessTaskPublisher:
    """
    Runs DocumentProcessor.process() as a detached asyncio task in the API
    process. Task references are held until completion so they are not
    garbage-collected mid-run.
    """

    def __init__(self, processor_factory) -> None:
        self._processor_factory = processor_factory
        self._tasks: set[asyncio.Task] = set()

    @property
    def pending_tasks(self) -> set[asyncio.Task]:
        return set(self._tasks)

    async def publish_processing_task(self, document_id: uuid.UUID) -> None:
        processor = self._processor_factory()
        task = asyncio.create_task(processor.process(document_id), name=f"process-{document_id}")
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        logger.info("Processing task scheduled in-process | doc=%s", document_id)

    async def drain(self, timeout: float | None = None) -> None:
        """
        Wait for every scheduled task, including ones scheduled meanwhile.
        With a timeout, tasks still running at the deadline are cancelled.
        """
        loop = asyncio.get_running_loop()
        deadline = None if timeout is None else loop.time() + timeout
        while self._tasks:
            remaining = None if deadline is None else max(0.0, deadline - loop.time())
            _, pending = await asyncio.wait(set(self._tasks), timeout=remaining)
            if pending:
                for task in pending:
                    task.cancel()
                await asyncio.gather(*pending, return_exceptions=True)
                logger.warning("In-process tasks cancelled on drain timeout | count=%d", len(pending))
                return


class CeleryTaskPublisher:
    """
    Sends the processing task to the Celery broker.
    Import is deferred so the broker connection is not required at module load time.
    """

    async def publish_processing_task(self, document_id: uuid.UUID) -> None:
        from docinsight.workers.tasks import process_document

        loop = asyncio.get_running_loop()
        await loop.run_in_executor(
            None,
            lambda: process_document.apply_async(kwargs={"document_id": str(document_id)}),
        )
        logger.info("Processing task published | doc=%s", document_id)


# ---------------------------------------------------------------------------
# Core ingestion orchestrator
# ---------------------------------------------------------------------------

class IngestionService:
    """
    Stateless service object.
    All dependencies are injected (testable, no hidden globals).
    """

    def __init__(
        self,
        store:          DocumentStore,
        task_publisher: TaskPublisher,
        extractor:      TextExtractor | None = None,
        cfg:            Settings | None = None,
    ) -> None:
        self._store     = store
        self._publisher = task_publisher
        self._extractor = extractor or TextExtractor()
        self._cfg       = cfg or default_settings

    async def ingest(
        self,
        owner_id:  uuid.UUID,
        file_name: str | None,
        data:      bytes | None,
        title:     str | None = None,
        mime_type: str | None = None,
    ) -> DocumentUploadResponse:
        """
        Store the upload as a pending document and schedule its analysis.
        Raises HTTPException with a structured ErrorResponse on invalid input.
        """
        # ---- Step 1: Validate ------------------------------------------
        file_name = _basename(file_name or "")
        if not file_name or not data:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=UploadErrors.missing_file().model_dump(),
            )

        file_type = get_file_type(file_name)
        if file_type not in ALLOWED_FILE_TYPES:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=UploadErrors.unsupported_file_type(file_name, file_type or "unknown").model_dump(),
            )

        if len(data) > self._cfg.max_file_size_bytes:
            raise HTTPException(
                status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
                detail=UploadErrors.file_too_large(len(data), self._cfg.max_file_size_bytes).model_dump(),
            )

        title = (title or "").strip() or file_name.rsplit(".", 1)[0] or file_name
        if len(title) > 200 or len(file_name) > 255:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=ErrorResponse(
                    error_code="INVALID_NAME",
                    message="Title must be at most 200 characters and file name at most 255.",
                    details=[ErrorDetail(field="title", message="Too long", code="INVALID_NAME")],
                ).model_dump(),
            )

        # ---- Step 2: Extract text --------------------------------------
        extraction_failed = False
        try:
            text = self._extractor.extract(data, file_type, file_name)
        except ExtractionError as exc:
            logger.warning("Extraction failed, storing placeholder | file=%s reason=%s", file_name, exc.context.get("reason"))
            text = extraction_placeholder(file_name)
            extraction_failed = True

        # ---- Step 3: Derived counts ------------------------------------
        word_count = count_words(text)
        record = DocumentRecord(
            owner_id=owner_id,
            title=title,
            original_file_name=file_name,
            file_type=file_type,
            file_size=len(data),
            mime_type=mime_type or _MIME_BY_TYPE.get(file_type) or mimetypes.guess_type(file_name)[0] or "application/octet-stream",
            extracted_text=text,
            word_count=word_count,
            reading_time=reading_time_minutes(word_count, self._cfg.reading_words_per_minute),
            processing_status=ProcessingStatus.PENDING,
        )

        # ---- Step 4: Persist -------------------------------------------
        await self._store.create_document(record)
        logger.info(
            "Ingest | owner=%s doc=%s file=%s size=%d words=%d",
            owner_id, record.id, file_name, len(data), word_count,
        )

        # ---- Step 5: Publish async processing task ---------------------
        try:
            await self._publisher.publish_processing_task(record.id)
        except Exception as exc:
            # Non-fatal: the stale-pending scanner re-publishes it later.
            logger.error("Failed to publish processing task | doc=%s error=%s", record.id, exc)

        return DocumentUploadResponse(
            document_id=record.id,
            title=record.title,
            file_type=record.file_type,
            size_bytes=record.file_size,
            word_count=record.word_count,
            reading_time=record.reading_time,
            processing_status=record.processing_status,
            extraction_failed=extraction_failed,
            created_at=record.created_at,
        )
