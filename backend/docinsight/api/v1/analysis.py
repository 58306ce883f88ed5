"""
Analysis API Router

  POST /api/v1/analysis/process/{id}              explicit re-trigger (202)
  POST /api/v1/analysis/compare                   word overlap + embedding similarity
  GET  /api/v1/analysis/similar/{id}              nearest neighbours by embedding
  GET  /api/v1/analysis/trends                    most popular active topics
  POST /api/v1/analysis/topics/{name}/deactivate  soft-deactivate a topic
  GET  /api/v1/analysis/analytics                 owner totals and distributions
"""

from __future__ import annotations

import logging
from uuid import UUID

from fastapi import APIRouter, HTTPException, Query, status
from fastapi.responses import JSONResponse

from docinsight.api.dependencies import Analytics, OwnerId, Publisher, StateMachine, Store, Trends
from docinsight.schemas.documents import (
    CompareRequest,
    DocumentComparison,
    ErrorResponse,
    OwnerAnalytics,
    ProcessingStatus,
    SimilarDocument,
    UploadErrors,
)
from docinsight.schemas.topics import TopicSummary

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/analysis",
    tags=["Analysis"],
)


# ---------------------------------------------------------------------------
# POST /analysis/process/{document_id}
# ---------------------------------------------------------------------------

@router.post(
    "/process/{document_id}",
    status_code=status.HTTP_202_ACCEPTED,
    summary="Re-run analysis for a document",
    description=(
        "Failed or completed documents are moved back to pending and re-queued. "
        "A pending document is simply re-queued. A document already processing is a 409."
    ),
    responses={
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse, "description": "Analysis already in progress"},
    },
)
async def process_document(
    document_id: UUID,
    owner_id:    OwnerId,
    store:       Store,
    state:       StateMachine,
    publisher:   Publisher,
) -> JSONResponse:
    doc = await store.get_document(document_id)
    if doc is None or doc.owner_id != owner_id:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=UploadErrors.document_not_found(document_id).model_dump(),
        )

    if doc.processing_status != ProcessingStatus.PENDING and not await state.retry(document_id):
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=ErrorResponse(
                error_code="ALREADY_PROCESSING",
                message=f"Document '{document_id}' is already being analyzed.",
            ).model_dump(),
        )

    await publisher.publish_processing_task(document_id)
    logger.info("Re-trigger | owner=%s doc=%s previous=%s", owner_id, document_id, doc.processing_status.value)

    return JSONResponse(
        status_code=status.HTTP_202_ACCEPTED,
        content={
            "document_id":       str(document_id),
            "processing_status": ProcessingStatus.PENDING.value,
        },
    )


# ---------------------------------------------------------------------------
# POST /analysis/compare
# ---------------------------------------------------------------------------

@router.post(
    "/compare",
    response_model=DocumentComparison,
    summary="Compare two documents",
    responses={404: {"model": ErrorResponse}},
)
async def compare_documents(body: CompareRequest, owner_id: OwnerId, analytics: Analytics) -> DocumentComparison:
    return await analytics.compare_documents(owner_id, body.document1_id, body.document2_id)


# ---------------------------------------------------------------------------
# GET /analysis/similar/{document_id}
# ---------------------------------------------------------------------------

@router.get(
    "/similar/{document_id}",
    response_model=list[SimilarDocument],
    summary="Most similar documents by embedding",
    responses={404: {"model": ErrorResponse}},
)
async def similar_documents(
    document_id: UUID,
    owner_id:    OwnerId,
    analytics:   Analytics,
    top_k:       int = Query(5, ge=1, le=50),
) -> list[SimilarDocument]:
    return await analytics.similar_documents(owner_id, document_id, top_k=top_k)


# ---------------------------------------------------------------------------
# Topics
# ---------------------------------------------------------------------------

@router.get(
    "/trends",
    response_model=list[TopicSummary],
    summary="Trending topics",
)
async def trending_topics(
    owner_id: OwnerId,
    trends:   Trends,
    limit:    int = Query(10, ge=1, le=100),
) -> list[TopicSummary]:
    topics = await trends.trending(owner_id, limit=limit)
    return [TopicSummary.from_topic(t) for t in topics]


@router.post(
    "/topics/{name}/deactivate",
    response_model=TopicSummary,
    summary="Deactivate a topic",
    responses={404: {"model": ErrorResponse}},
)
async def deactivate_topic(name: str, owner_id: OwnerId, trends: Trends) -> TopicSummary:
    topic = await trends.deactivate(owner_id, name)
    if topic is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=ErrorResponse(
                error_code="TOPIC_NOT_FOUND",
                message=f"Topic '{name}' was not found.",
            ).model_dump(),
        )
    return TopicSummary.from_topic(topic)


# ---------------------------------------------------------------------------
# GET /analysis/analytics
# ---------------------------------------------------------------------------

@router.get(
    "/analytics",
    response_model=OwnerAnalytics,
    summary="Owner document statistics",
)
async def owner_analytics(owner_id: OwnerId, analytics: Analytics) -> OwnerAnalytics:
    return await analytics.owner_analytics(owner_id)
