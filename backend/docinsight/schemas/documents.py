"""
Documents — Pydantic Record, Request and Response Schemas

Covers the document lifecycle:
  - DocumentRecord: the stored shape, shared by every DocumentStore backend
  - Upload response (202 Accepted) and status polling
  - Comparison, similarity and analytics payloads
  - Structured error bodies used by the HTTP layer

Design decisions:
  - document_id is always server-generated (UUID4); never client-supplied.
  - processing_status is owned by ProcessingStateMachine; nothing else writes it.
  - Embedding vectors never appear in API responses.
  - All timestamps are timezone-aware UTC datetimes.
"""

from __future__ import annotations

import math
from datetime import datetime, timezone
from enum import Enum
from uuid import UUID, uuid4

from pydantic import BaseModel, Field

from docinsight.schemas.analysis import DocumentAnalysis, Sentiment, Summary


# ---------------------------------------------------------------------------
# Accepted uploads
# ---------------------------------------------------------------------------

ALLOWED_FILE_TYPES: frozenset[str] = frozenset({"pdf", "docx", "txt", "md"})

PROCESSING_ERROR_MAX: int = 1000


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def count_words(text: str) -> int:
    """Whitespace-delimited token count."""
    return len(text.split())


def reading_time_minutes(word_count: int, words_per_minute: int = 200) -> int:
    """Canonical reading time: ceil(word_count / words_per_minute)."""
    if word_count <= 0:
        return 0
    return math.ceil(word_count / words_per_minute)


# ---------------------------------------------------------------------------
# Processing pipeline state machine
# ---------------------------------------------------------------------------

class ProcessingStatus(str, Enum):
    """
    Transitions: pending → processing → completed | failed
    Explicit retry: failed | completed → pending
    """
    PENDING    = "pending"      # stored, analysis not yet started
    PROCESSING = "processing"   # analysis task running
    COMPLETED  = "completed"    # analysis + embeddings persisted
    FAILED     = "failed"       # job stopped; see processing_error


# ---------------------------------------------------------------------------
# Stored document
# ---------------------------------------------------------------------------

class DocumentRecord(BaseModel):
    """One uploaded document and its analysis."""
    id:                 UUID             = Field(default_factory=uuid4)
    owner_id:           UUID
    title:              str              = Field(..., max_length=200)
    original_file_name: str              = Field(..., max_length=255)
    file_type:          str
    file_size:          int              = Field(0, ge=0)
    mime_type:          str              = "application/octet-stream"
    extracted_text:     str              = ""
    word_count:         int              = Field(0, ge=0)
    reading_time:       int              = Field(0, ge=0)
    processing_status:  ProcessingStatus = ProcessingStatus.PENDING
    processing_error:   str | None       = Field(None, max_length=PROCESSING_ERROR_MAX)
    analysis:           DocumentAnalysis = Field(default_factory=DocumentAnalysis.empty)
    tags:               list[str]        = Field(default_factory=list)
    created_at:         datetime         = Field(default_factory=utcnow)
    updated_at:         datetime         = Field(default_factory=utcnow)
    processed_at:       datetime | None  = None


# ---------------------------------------------------------------------------
# Upload response: 202 Accepted
# ---------------------------------------------------------------------------

class DocumentUploadResponse(BaseModel):
    """
    Returned immediately after a successful upload.
    HTTP 202 — the record is stored but analysis runs in the background.
    """
    document_id:       UUID             = Field(..., description="Server-generated document UUID")
    title:             str
    file_type:         str
    size_bytes:        int
    word_count:        int
    reading_time:      int
    processing_status: ProcessingStatus = Field(
        ProcessingStatus.PENDING,
        description="Async pipeline state — poll /documents/{id}/status for updates",
    )
    extraction_failed: bool             = False
    created_at:        datetime


class DocumentStatusResponse(BaseModel):
    """Polled by clients to track async processing progress."""
    document_id:       UUID
    processing_status: ProcessingStatus
    progress:          int        = Field(0, ge=0, le=100)
    error_message:     str | None = None
    updated_at:        datetime


class DocumentDetailResponse(BaseModel):
    document_id:        UUID
    title:              str
    original_file_name: str
    file_type:          str
    file_size:          int
    word_count:         int
    reading_time:       int
    processing_status:  ProcessingStatus
    summary:            Summary
    sentiment:          Sentiment
    keywords:           list[str]
    topics:             list[str]
    entities:           list[dict]
    complexity:         str
    language:           str
    has_embeddings:     bool
    created_at:         datetime
    processed_at:       datetime | None = None

    @classmethod
    def from_record(cls, doc: DocumentRecord) -> "DocumentDetailResponse":
        a = doc.analysis
        return cls(
            document_id=doc.id,
            title=doc.title,
            original_file_name=doc.original_file_name,
            file_type=doc.file_type,
            file_size=doc.file_size,
            word_count=doc.word_count,
            reading_time=doc.reading_time,
            processing_status=doc.processing_status,
            summary=a.summary,
            sentiment=a.sentiment,
            keywords=a.keywords,
            topics=a.topics,
            entities=[e.model_dump(mode="json") for e in a.entities],
            complexity=a.complexity.value,
            language=a.language,
            has_embeddings=bool(a.embeddings),
            created_at=doc.created_at,
            processed_at=doc.processed_at,
        )


# ---------------------------------------------------------------------------
# Comparison / similarity / analytics
# ---------------------------------------------------------------------------

class TextDifferences(BaseModel):
    added:    list[str] = Field(default_factory=list)
    removed:  list[str] = Field(default_factory=list)
    modified: list[str] = Field(default_factory=list)


class TextComparison(BaseModel):
    """Word-overlap comparison of two texts (no embeddings involved)."""
    similarity:  float = Field(..., ge=0.0, le=1.0)
    differences: TextDifferences
    summary:     str


class CompareRequest(BaseModel):
    document1_id: UUID
    document2_id: UUID


class SentimentChange(BaseModel):
    document1: float
    document2: float
    change:    float


class KeywordChanges(BaseModel):
    added:   list[str] = Field(default_factory=list)
    removed: list[str] = Field(default_factory=list)
    shared:  list[str] = Field(default_factory=list)


class DocumentComparison(BaseModel):
    document1_id:         UUID
    document2_id:         UUID
    similarity:           float
    embedding_similarity: float | None = None
    differences:          TextDifferences
    summary:              str
    sentiment:            SentimentChange
    keyword_changes:      KeywordChanges


class SimilarDocument(BaseModel):
    document_id: UUID
    title:       str
    score:       float


class OwnerAnalytics(BaseModel):
    total_documents:                int   = 0
    total_words:                    int   = 0
    total_size:                     int   = 0
    avg_words_per_document:         float = 0.0
    avg_reading_time:               float = 0.0
    file_type_distribution:         dict[str, int] = Field(default_factory=dict)
    sentiment_distribution:         dict[str, int] = Field(default_factory=dict)
    processing_status_distribution: dict[str, int] = Field(default_factory=dict)


# ---------------------------------------------------------------------------
# Structured error bodies
# ---------------------------------------------------------------------------

class ErrorDetail(BaseModel):
    """Single structured error — may appear in a list."""
    field:   str | None = Field(None, description="Request field that caused the error, if applicable")
    message: str
    code:    str        = Field(..., description="Machine-readable error code for client handling")


class ErrorResponse(BaseModel):
    """
    Uniform error envelope for all 4xx/5xx responses.
    Clients should check `error_code` for programmatic handling.
    """
    error_code: str               = Field(..., description="Stable machine-readable code")
    message:    str               = Field(..., description="Human-readable summary")
    details:    list[ErrorDetail] = Field(default_factory=list)
    request_id: str | None        = Field(None, description="Trace ID for log correlation")


class UploadErrors:
    """Factories for every documented upload error case."""

    @staticmethod
    def missing_file() -> ErrorResponse:
        return ErrorResponse(
            error_code="MISSING_FILE",
            message="No file was provided in the request.",
            details=[
                ErrorDetail(
                    field="file",
                    message="The 'file' multipart field is required and must not be empty.",
                    code="MISSING_FILE",
                )
            ],
        )

    @staticmethod
    def unsupported_file_type(filename: str, file_type: str) -> ErrorResponse:
        return ErrorResponse(
            error_code="UNSUPPORTED_FILE_TYPE",
            message=f"File type '{file_type}' is not supported.",
            details=[
                ErrorDetail(
                    field="file",
                    message=(
                        f"'{filename}' has an unsupported type '{file_type}'. "
                        f"Allowed: PDF, DOCX, TXT, MD."
                    ),
                    code="UNSUPPORTED_FILE_TYPE",
                )
            ],
        )

    @staticmethod
    def file_too_large(size_bytes: int, limit_bytes: int) -> ErrorResponse:
        return ErrorResponse(
            error_code="FILE_TOO_LARGE",
            message=f"Uploaded file exceeds the {limit_bytes // (1024 * 1024)} MB limit.",
            details=[
                ErrorDetail(
                    field="file",
                    message=f"Received {size_bytes:,} bytes; limit is {limit_bytes:,} bytes.",
                    code="FILE_TOO_LARGE",
                )
            ],
        )

    @staticmethod
    def document_not_found(document_id: UUID | str) -> ErrorResponse:
        return ErrorResponse(
            error_code="DOCUMENT_NOT_FOUND",
            message=f"Document '{document_id}' was not found.",
            details=[],
        )
