"""
Celery Tasks — Document Analysis

Task: process_document
  Runs DocumentProcessor.process() for one document id. The processor owns
  every status transition and never raises, so the task has nothing to retry:
  failures end up in the document's processing_error.

Task: requeue_stale_documents
  Beat task — re-publishes documents stuck in `pending` for longer than
  stale_pending_minutes (lost broker message, publisher outage at upload).
  Failed documents are never touched; they need an explicit retry.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from datetime import timedelta
from typing import Any

from celery.signals import worker_process_init

from docinsight.workers.celery_app import celery_app

logger = logging.getLogger(__name__)

REQUEUE_BATCH_LIMIT = 50


# ---------------------------------------------------------------------------
# Async task helper
# One event loop per worker process. Cached async resources (the SQLAlchemy
# engine and its asyncpg pool) bind to the loop they first ran on, so every
# task must run on that same loop.
# ---------------------------------------------------------------------------

_worker_loop: asyncio.AbstractEventLoop | None = None


def _get_worker_loop() -> asyncio.AbstractEventLoop:
    global _worker_loop
    if _worker_loop is None or _worker_loop.is_closed():
        _worker_loop = asyncio.new_event_loop()
    return _worker_loop


def run_async(coro):
    """Execute an async coroutine from a synchronous Celery task."""
    return _get_worker_loop().run_until_complete(coro)


@worker_process_init.connect
def reset_worker_state(**_):
    """
    Forked pool children start with a fresh loop and fresh engine/store
    caches; nothing created in the parent is reused across the fork.
    """
    global _worker_loop
    from docinsight.db.session import get_engine, get_sessionmaker
    from docinsight.storage.factory import get_document_store

    _worker_loop = None
    get_engine.cache_clear()
    get_sessionmaker.cache_clear()
    get_document_store.cache_clear()


# ---------------------------------------------------------------------------
# Main processing task
# ---------------------------------------------------------------------------

@celery_app.task(
    name="docinsight.workers.tasks.process_document",
    bind=False,
    acks_late=True,
    reject_on_worker_lost=True,
    soft_time_limit=270,
    time_limit=330,
)
def process_document(*, document_id: str) -> dict[str, Any]:
    return run_async(_process_document_async(uuid.UUID(document_id)))


async def _process_document_async(document_id: uuid.UUID) -> dict[str, Any]:
    from docinsight.storage.factory import get_document_store
    from docinsight.workers.pipeline import build_processor

    processor = build_processor(get_document_store())
    return await processor.process(document_id)


# ---------------------------------------------------------------------------
# Stale-pending scanner: runs every 60 seconds via Celery Beat
# ---------------------------------------------------------------------------

@celery_app.task(
    name="docinsight.workers.tasks.requeue_stale_documents",
    bind=False,
    acks_late=True,
    soft_time_limit=55,
    time_limit=60,
)
def requeue_stale_documents() -> dict[str, int]:
    return run_async(_requeue_stale_documents_async())


async def _requeue_stale_documents_async() -> dict[str, int]:
    from docinsight.core.config import settings
    from docinsight.schemas.documents import utcnow
    from docinsight.storage.factory import get_document_store

    store = get_document_store()
    cutoff = utcnow() - timedelta(minutes=settings.stale_pending_minutes)
    stale = (await store.list_stale_pending(cutoff))[:REQUEUE_BATCH_LIMIT]

    for doc in stale:
        process_document.apply_async(kwargs={"document_id": str(doc.id)}, countdown=5)
        logger.info("Re-queued stale document | doc=%s owner=%s", doc.id, doc.owner_id)

    return {"requeued": len(stale)}


# ---------------------------------------------------------------------------
# Health check task
# ---------------------------------------------------------------------------

@celery_app.task(name="docinsight.workers.tasks.health_check")
def health_check() -> dict[str, str]:
    return {"status": "ok", "worker": "healthy"}
