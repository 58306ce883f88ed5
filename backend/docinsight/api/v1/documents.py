"""
Documents API Router

  POST /api/v1/documents/upload          multipart upload → 202, analysis in background
  GET  /api/v1/documents                 owner's documents (optional status filter)
  GET  /api/v1/documents/search?q=      case-insensitive search, paginated
  GET  /api/v1/documents/{id}            analysis detail (no embedding vector)
  GET  /api/v1/documents/{id}/status     processing status + progress for polling
  DELETE /api/v1/documents/{id}         hard delete (204)

Owner scope comes from the X-Owner-ID header. A document owned by someone
else is reported as 404.
"""

from __future__ import annotations

import logging
import math
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, File, Form, HTTPException, Request, UploadFile, status
from fastapi.responses import JSONResponse, Response

from docinsight.api.dependencies import Ingestion, OwnerId, Store
from docinsight.core.config import settings
from docinsight.schemas.documents import (
    DocumentDetailResponse,
    DocumentRecord,
    DocumentStatusResponse,
    DocumentUploadResponse,
    ErrorResponse,
    ProcessingStatus,
    UploadErrors,
)
from docinsight.storage.base import DocumentStore
from docinsight.workers.state import progress

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/documents",
    tags=["Documents"],
)


async def _owned_document(store: DocumentStore, owner_id: UUID, document_id: UUID) -> DocumentRecord:
    doc = await store.get_document(document_id)
    if doc is None or doc.owner_id != owner_id:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=UploadErrors.document_not_found(document_id).model_dump(),
        )
    return doc


def _summary(d: DocumentRecord) -> dict:
    return {
        "document_id":        str(d.id),
        "title":              d.title,
        "original_file_name": d.original_file_name,
        "file_type":          d.file_type,
        "file_size":          d.file_size,
        "word_count":         d.word_count,
        "reading_time":       d.reading_time,
        "processing_status":  d.processing_status.value,
        "sentiment":          d.analysis.sentiment.label.value,
        "created_at":         d.created_at.isoformat(),
    }


# ---------------------------------------------------------------------------
# POST /documents/upload
# ---------------------------------------------------------------------------

@router.post(
    "/upload",
    response_model=DocumentUploadResponse,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Upload a document for analysis",
    description=(
        "Accepts PDF, DOCX, TXT or MD files up to 50 MB. "
        "Returns 202 immediately; analysis is asynchronous. "
        "Poll GET /documents/{id}/status for pipeline progress."
    ),
    responses={
        202: {"model": DocumentUploadResponse, "description": "File accepted for processing"},
        400: {"model": ErrorResponse, "description": "Missing file or unsupported type"},
        401: {"model": ErrorResponse, "description": "Missing or invalid X-Owner-ID"},
        413: {"model": ErrorResponse, "description": "File exceeds 50 MB limit"},
    },
)
async def upload_document(
    request:   Request,
    owner_id:  OwnerId,
    service:   Ingestion,
    file:      UploadFile     = File(..., description="Document file (PDF, DOCX, TXT, MD — max 50 MB)"),
    title:     Optional[str]  = Form(None, max_length=200, description="Display title; defaults to the file name"),
) -> JSONResponse:
    # Guard: reject oversized requests before reading body
    content_length = request.headers.get("content-length")
    if content_length and content_length.isdigit() and int(content_length) > settings.max_file_size_bytes + 4096:
        return JSONResponse(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            content=UploadErrors.file_too_large(int(content_length), settings.max_file_size_bytes).model_dump(mode="json"),
        )

    data = await file.read()
    result = await service.ingest(
        owner_id=owner_id,
        file_name=file.filename,
        data=data,
        title=title,
        mime_type=file.content_type,
    )

    return JSONResponse(
        status_code=status.HTTP_202_ACCEPTED,
        content=result.model_dump(mode="json"),
        headers={
            "X-Document-ID": str(result.document_id),
            "Location":      f"/api/v1/documents/{result.document_id}/status",
        },
    )


# ---------------------------------------------------------------------------
# GET /documents
# ---------------------------------------------------------------------------

@router.get(
    "",
    summary="List the owner's documents",
    responses={401: {"model": ErrorResponse}},
)
async def list_documents(
    owner_id:          OwnerId,
    store:             Store,
    processing_status: Optional[ProcessingStatus] = None,
    page:              int = 1,
    limit:             int = 20,
) -> dict:
    limit = max(1, min(limit, 100))
    page  = max(1, page)
    docs = await store.list_documents(owner_id, status=processing_status)
    window = docs[(page - 1) * limit: page * limit]

    return {
        "page":      page,
        "limit":     limit,
        "total":     len(docs),
        "documents": [_summary(d) for d in window],
    }


# ---------------------------------------------------------------------------
# GET /documents/search  (declared before /{document_id})
# ---------------------------------------------------------------------------

@router.get(
    "/search",
    summary="Search the owner's documents",
    description="Case-insensitive match on title, extracted text, keywords and topics.",
    responses={400: {"model": ErrorResponse}, 401: {"model": ErrorResponse}},
)
async def search_documents(
    owner_id: OwnerId,
    store:    Store,
    q:        Optional[str] = None,
    page:     int = 1,
    limit:    int = 10,
) -> dict:
    if not q or not q.strip():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=ErrorResponse(
                error_code="MISSING_QUERY",
                message="Search query parameter 'q' is required.",
            ).model_dump(),
        )
    limit = max(1, min(limit, 100))
    page  = max(1, page)
    docs, total = await store.search_documents(owner_id, q, limit=limit, offset=(page - 1) * limit)

    return {
        "query":     q,
        "page":      page,
        "limit":     limit,
        "total":     total,
        "pages":     math.ceil(total / limit),
        "documents": [_summary(d) for d in docs],
    }


# ---------------------------------------------------------------------------
# GET /documents/{document_id}
# ---------------------------------------------------------------------------

@router.get(
    "/{document_id}",
    response_model=DocumentDetailResponse,
    summary="Document detail and analysis",
    responses={401: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
async def get_document(document_id: UUID, owner_id: OwnerId, store: Store) -> DocumentDetailResponse:
    doc = await _owned_document(store, owner_id, document_id)
    return DocumentDetailResponse.from_record(doc)


# ---------------------------------------------------------------------------
# GET /documents/{document_id}/status
# ---------------------------------------------------------------------------

@router.get(
    "/{document_id}/status",
    response_model=DocumentStatusResponse,
    summary="Poll async processing status",
    responses={401: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
async def get_document_status(document_id: UUID, owner_id: OwnerId, store: Store) -> DocumentStatusResponse:
    doc = await _owned_document(store, owner_id, document_id)
    return DocumentStatusResponse(
        document_id=doc.id,
        processing_status=doc.processing_status,
        progress=progress(doc.processing_status),
        error_message=doc.processing_error,
        updated_at=doc.updated_at,
    )


# ---------------------------------------------------------------------------
# DELETE /documents/{document_id}
# ---------------------------------------------------------------------------

@router.delete(
    "/{document_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete a document",
    responses={
        204: {"description": "Document deleted"},
        401: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
    },
)
async def delete_document(document_id: UUID, owner_id: OwnerId, store: Store) -> Response:
    """
    Hard-deletes the document and its analysis. Topic timelines keep their
    entries for it.
    """
    await _owned_document(store, owner_id, document_id)
    await store.delete_document(document_id)
    logger.info("Document deleted | doc=%s owner=%s", document_id, owner_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
