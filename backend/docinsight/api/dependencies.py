"""
Composed FastAPI Dependencies

Single wiring point for the request context: owner identity, document store,
task publisher and the services built on top of them. Route handlers import
from here, never from storage/factory or the service modules directly.

Tests swap any of these through app.dependency_overrides.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Annotated
from uuid import UUID

from fastapi import Depends, Header, HTTPException, status

from docinsight.core.config import settings
from docinsight.schemas.documents import ErrorResponse
from docinsight.services.analytics import AnalyticsService
from docinsight.services.ingestion import (
    CeleryTaskPublisher,
    InProcessTaskPublisher,
    IngestionService,
    TaskPublisher,
)
from docinsight.storage.base import DocumentStore
from docinsight.storage.factory import get_document_store
from docinsight.trends.tracker import TopicTrendTracker
from docinsight.workers.pipeline import DocumentProcessor, build_processor
from docinsight.workers.state import ProcessingStateMachine


# ---------------------------------------------------------------------------
# 1. Owner identity (access control is out of scope; the header is trusted)
# ---------------------------------------------------------------------------

async def get_owner_id(
    x_owner_id: Annotated[str | None, Header(alias="X-Owner-ID")] = None,
) -> UUID:
    try:
        return UUID(x_owner_id or "")
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=ErrorResponse(
                error_code="MISSING_OWNER",
                message="X-Owner-ID header with a valid UUID is required.",
            ).model_dump(),
        )


# ---------------------------------------------------------------------------
# 2. Store and background processing
# ---------------------------------------------------------------------------

def get_store() -> DocumentStore:
    return get_document_store()


@lru_cache(maxsize=1)
def get_processor() -> DocumentProcessor:
    return build_processor(get_document_store())


@lru_cache(maxsize=1)
def get_task_publisher() -> TaskPublisher:
    if settings.task_backend.lower() == "celery":
        return CeleryTaskPublisher()
    return InProcessTaskPublisher(get_processor)


# ---------------------------------------------------------------------------
# 3. Services
# ---------------------------------------------------------------------------

def get_ingestion_service(
    store:     Annotated[DocumentStore, Depends(get_store)],
    publisher: Annotated[TaskPublisher, Depends(get_task_publisher)],
) -> IngestionService:
    return IngestionService(store=store, task_publisher=publisher)


def get_analytics_service(store: Annotated[DocumentStore, Depends(get_store)]) -> AnalyticsService:
    return AnalyticsService(store)


def get_trend_tracker(store: Annotated[DocumentStore, Depends(get_store)]) -> TopicTrendTracker:
    return TopicTrendTracker(store)


def get_state_machine(store: Annotated[DocumentStore, Depends(get_store)]) -> ProcessingStateMachine:
    return ProcessingStateMachine(store)


# ---------------------------------------------------------------------------
# Type aliases for cleaner route signatures
# ---------------------------------------------------------------------------

OwnerId      = Annotated[UUID, Depends(get_owner_id)]
Store        = Annotated[DocumentStore, Depends(get_store)]
Publisher    = Annotated[TaskPublisher, Depends(get_task_publisher)]
Ingestion    = Annotated[IngestionService, Depends(get_ingestion_service)]
Analytics    = Annotated[AnalyticsService, Depends(get_analytics_service)]
Trends       = Annotated[TopicTrendTracker, Depends(get_trend_tracker)]
StateMachine = Annotated[ProcessingStateMachine, Depends(get_state_machine)]
