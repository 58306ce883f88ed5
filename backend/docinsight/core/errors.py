"""
Exception hierarchy for the analysis pipeline.

Recovery policy per type:
  ExtractionError        → upload continues with a placeholder text
  AnalysisProviderError  → AnalysisEngine falls back to SimulatedAnalyzer
  EmbeddingProviderError → EmbeddingService falls back to a random vector
  StateConflictError     → transition skipped (no-op for the caller)
  DimensionError         → write rejected by the DocumentStore
  MalformedDocumentError → job stops, document marked failed

None of these cross the background task boundary; the processor reports
failures through the document's processing status.
"""

from __future__ import annotations

from typing import Any


class DocInsightError(Exception):
    """Base exception for all docinsight errors."""

    def __init__(
        self,
        message:    str,
        error_code: str | None = None,
        context:    dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message    = message
        self.error_code = error_code or self.__class__.__name__
        self.context    = context or {}

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to dictionary for logging/serialization."""
        return {
            "error_type": self.__class__.__name__,
            "error_code": self.error_code,
            "message":    self.message,
            "context":    self.context,
        }


class ExtractionError(DocInsightError):
    """Text could not be extracted from an uploaded file."""

    def __init__(self, file_name: str, file_type: str, reason: str) -> None:
        super().__init__(
            f"Failed to extract text from {file_name}: {reason}",
            error_code="EXTRACTION_ERROR",
            context={"file_name": file_name, "file_type": file_type, "reason": reason},
        )


class AnalysisProviderError(DocInsightError):
    """Remote inference failed or returned something unusable."""

    def __init__(self, reason: str, original_error: Exception | None = None) -> None:
        context: dict[str, Any] = {"reason": reason}
        if original_error is not None:
            context["original_error"] = f"{type(original_error).__name__}: {original_error}"
        super().__init__(
            f"Analysis provider error: {reason}",
            error_code="AI_SERVICE_ERROR",
            context=context,
        )


class EmbeddingProviderError(DocInsightError):
    """Remote embedding call failed or returned a malformed vector."""

    def __init__(self, reason: str, original_error: Exception | None = None) -> None:
        context: dict[str, Any] = {"reason": reason}
        if original_error is not None:
            context["original_error"] = f"{type(original_error).__name__}: {original_error}"
        super().__init__(
            f"Embedding provider error: {reason}",
            error_code="EMBEDDING_ERROR",
            context=context,
        )


class StateConflictError(DocInsightError):
    """A status transition was attempted from a state that does not allow it."""

    def __init__(self, document_id: Any, current: str | None, target: str) -> None:
        super().__init__(
            f"Document {document_id} cannot move from {current} to {target}",
            error_code="STATE_CONFLICT",
            context={"document_id": str(document_id), "current": current, "target": target},
        )


class DimensionError(DocInsightError):
    """An embedding vector does not have the required number of dimensions."""

    def __init__(self, expected: int, actual: int) -> None:
        super().__init__(
            f"Embeddings vector must be exactly {expected} dimensions, got {actual}",
            error_code="DIMENSION_ERROR",
            context={"expected": expected, "actual": actual},
        )


class DocumentNotFoundError(DocInsightError):
    def __init__(self, document_id: Any) -> None:
        super().__init__(
            f"Document '{document_id}' was not found",
            error_code="DOCUMENT_NOT_FOUND",
            context={"document_id": str(document_id)},
        )


class MalformedDocumentError(DocInsightError):
    """The stored document cannot be analyzed (e.g. no extracted text)."""

    def __init__(self, document_id: Any, reason: str) -> None:
        super().__init__(
            f"Document {document_id} is malformed: {reason}",
            error_code="MALFORMED_DOCUMENT",
            context={"document_id": str(document_id), "reason": reason},
        )


class TopicConflictError(DocInsightError):
    """A topic with the same name already exists for this owner."""

    def __init__(self, owner_id: Any, name: str) -> None:
        super().__init__(
            f"Topic '{name}' already exists for owner {owner_id}",
            error_code="TOPIC_CONFLICT",
            context={"owner_id": str(owner_id), "name": name},
        )
