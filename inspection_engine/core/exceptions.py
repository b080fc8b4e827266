"""
Custom Exceptions for the Inspection Engine

Every error carries a machine-readable ``category`` and a ``retryable`` flag so
callers can branch on the failure class without matching on messages.
"""

from typing import Any


class ErrorCategory:
    VALIDATION = "validation"
    UPSTREAM_AI = "upstream_ai"
    TIMEOUT = "timeout"
    PERSISTENCE = "persistence"
    SEARCH_DEGRADED = "search_degraded"
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    INTERNAL = "internal"


class InspectionEngineError(Exception):
    """Base exception for all engine errors"""

    category: str = ErrorCategory.INTERNAL
    retryable: bool = False

    def __init__(
        self,
        message: str,
        code: str | None = None,
        *,
        details: dict[str, Any] | None = None,
        hint: str | None = None,
    ):
        self.message = message
        self.code = code or self.__class__.__name__
        self.details = details
        self.hint = hint
        super().__init__(self.message)


# Validation Exceptions
class ValidationError(InspectionEngineError):
    """Input validation failed"""

    category = ErrorCategory.VALIDATION


# Upstream AI Exceptions
class UpstreamAIError(InspectionEngineError):
    """Vision or embedding model failed after retries"""

    category = ErrorCategory.UPSTREAM_AI
    retryable = True


class ModelCallError(UpstreamAIError):
    """A single model call failed (transport, HTTP status, malformed body)"""

    pass


class AssessmentValidationError(UpstreamAIError):
    """Model response did not conform to the assessment schema"""

    pass


class EmbeddingDimensionError(UpstreamAIError):
    """Embedding batch returned wrong count or dimension"""

    pass


# Processing Exceptions
class ProcessingTimeoutError(InspectionEngineError):
    """Synchronous wait for an inspection exceeded the deadline"""

    category = ErrorCategory.TIMEOUT

    def __init__(self, message: str, *, inspection_id: str | None = None, **kwargs: Any):
        super().__init__(message, **kwargs)
        self.inspection_id = inspection_id
        if inspection_id is not None:
            self.details = {**(self.details or {}), "inspectionId": inspection_id}


class InspectionFailedError(InspectionEngineError):
    """Inspection reached the failed state during a synchronous request"""

    def __init__(self, message: str, *, category: str, **kwargs: Any):
        super().__init__(message, **kwargs)
        self.category = category


class InvalidStatusTransitionError(InspectionEngineError):
    """Status transition not allowed from the current state"""

    category = ErrorCategory.CONFLICT


# Database Exceptions
class PersistenceError(InspectionEngineError):
    """Database operation failed"""

    category = ErrorCategory.PERSISTENCE
    retryable = True


class RecordNotFoundError(InspectionEngineError):
    """Requested record not found in database"""

    category = ErrorCategory.NOT_FOUND


# VectorStore Exceptions
class VectorStoreError(InspectionEngineError):
    """VectorStore operation failed"""

    category = ErrorCategory.PERSISTENCE
    retryable = True


class VectorIndexError(VectorStoreError):
    """Failed to index vector"""

    pass


class VectorSearchError(VectorStoreError):
    """Failed to search vectors"""

    category = ErrorCategory.SEARCH_DEGRADED


# Storage Exceptions
class StorageError(InspectionEngineError):
    """File storage operation failed"""

    category = ErrorCategory.PERSISTENCE
    retryable = True
