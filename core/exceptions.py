"""
Exception Hierarchy & Error Handling Framework
===============================================
Exception taxonomy with structured context propagation, retry metadata,
and severity classification.

Failure classes:
- Invariant violations (classification, cache key) fail loudly
- Collaborator failures surface as a single wrapped PipelineError
- Embedding and persistence failures are recovered by the caller
"""

from datetime import datetime
from typing import Any, Optional
from uuid import UUID, uuid4

from core.enums import ErrorSeverity

# =============================================================================
# BASE EXCEPTION CLASSES
# =============================================================================


class ContentBrokerException(Exception):
    """
    Root exception for all application errors.

    Carries:
    - Unique error ID for correlation
    - Severity classification
    - Structured context dictionary
    - Retry metadata
    """

    def __init__(
        self,
        message: str,
        *,
        severity: ErrorSeverity = ErrorSeverity.ERROR,
        context: Optional[dict[str, Any]] = None,
        error_code: Optional[str] = None,
        retryable: bool = False,
        cause: Optional[Exception] = None,
    ):
        super().__init__(message)

        self.error_id: UUID = uuid4()
        self.message: str = message
        self.severity: ErrorSeverity = severity
        self.context: dict[str, Any] = context or {}
        self.error_code: Optional[str] = error_code
        self.retryable: bool = retryable
        self.timestamp: datetime = datetime.utcnow()

        if cause:
            self.__cause__ = cause

    def to_dict(self) -> dict[str, Any]:
        """Serialize exception for logging/telemetry."""
        return {
            "error_id": str(self.error_id),
            "error_type": self.__class__.__name__,
            "message": self.message,
            "severity": self.severity.name,
            "error_code": self.error_code,
            "retryable": self.retryable,
            "context": self.context,
            "timestamp": self.timestamp.isoformat(),
            "cause": str(self.__cause__) if self.__cause__ else None,
        }

    def __str__(self) -> str:
        parts = [f"[{self.severity.name}] {self.message}"]
        if self.error_code:
            parts.append(f"Code: {self.error_code}")
        if self.context:
            parts.append(f"Context: {self.context}")
        return " | ".join(parts)


# =============================================================================
# VALIDATION EXCEPTIONS
# =============================================================================


class ValidationException(ContentBrokerException):
    """Request failed validation."""

    def __init__(
        self,
        message: str = "Request validation failed",
        *,
        field_errors: Optional[dict[str, str]] = None,
        **kwargs,
    ):
        super().__init__(
            message,
            severity=ErrorSeverity.WARNING,
            retryable=False,
            context={"field_errors": field_errors or {}},
            error_code="VALIDATION_FAILED",
            **kwargs,
        )
        self.field_errors = field_errors or {}


ValidationError = ValidationException


# =============================================================================
# INVARIANT EXCEPTIONS (should never happen)
# =============================================================================


class ClassificationError(ContentBrokerException):
    """Classifier produced a result outside its contract."""

    def __init__(self, message: str = "Request classification failed", **kwargs):
        super().__init__(
            message,
            severity=ErrorSeverity.CRITICAL,
            retryable=False,
            error_code="CLASSIFICATION_INVARIANT",
            **kwargs,
        )


class RoutingError(ContentBrokerException):
    """No provider or cache tier could be determined."""

    def __init__(self, message: str = "Request routing failed", **kwargs):
        super().__init__(
            message,
            severity=ErrorSeverity.CRITICAL,
            retryable=False,
            error_code="ROUTING_INVARIANT",
            **kwargs,
        )


# =============================================================================
# CACHE EXCEPTIONS
# =============================================================================


class CacheException(ContentBrokerException):
    """Base exception for caching errors."""

    def __init__(self, message: str, **kwargs):
        kwargs.setdefault("severity", ErrorSeverity.WARNING)
        super().__init__(message, **kwargs)


CacheError = CacheException


class CacheKeyError(CacheException):
    """Cache key could not be derived from a request."""

    def __init__(self, message: str = "Cache key derivation failed", **kwargs):
        super().__init__(
            message,
            severity=ErrorSeverity.CRITICAL,
            retryable=False,
            error_code="CACHE_KEY_INVARIANT",
            **kwargs,
        )


class CacheWriteError(CacheException):
    """Failed to write to a cache tier."""

    def __init__(
        self,
        message: str = "Cache write failed",
        *,
        cache_key: Optional[str] = None,
        tier: Optional[str] = None,
        **kwargs,
    ):
        super().__init__(
            message,
            retryable=True,
            context={"cache_key": cache_key, "tier": tier},
            error_code="CACHE_WRITE_FAILED",
            **kwargs,
        )


# =============================================================================
# PIPELINE EXCEPTIONS
# =============================================================================


class PipelineError(ContentBrokerException):
    """
    A request could not be fulfilled.

    The only failure a gateway caller sees; the collaborator exception is
    chained as ``__cause__``.
    """

    def __init__(
        self,
        message: str = "Processing pipeline failed",
        *,
        stage: Optional[str] = None,
        request_id: Optional[str] = None,
        **kwargs,
    ):
        super().__init__(
            message,
            severity=ErrorSeverity.ERROR,
            retryable=True,
            context={"stage": stage, "request_id": request_id},
            error_code="PIPELINE_FAILED",
            **kwargs,
        )
        self.stage = stage


# =============================================================================
# EMBEDDING EXCEPTIONS
# =============================================================================


class EmbeddingError(ContentBrokerException):
    """Embedding backend failed; callers fall back to deterministic vectors."""

    def __init__(
        self,
        message: str = "Embedding generation failed",
        *,
        model_name: Optional[str] = None,
        **kwargs,
    ):
        super().__init__(
            message,
            severity=ErrorSeverity.WARNING,
            retryable=True,
            context={"model_name": model_name},
            error_code="EMBEDDING_FAILED",
            **kwargs,
        )


# =============================================================================
# PERSISTENCE EXCEPTIONS
# =============================================================================


class PersistenceException(ContentBrokerException):
    """Base exception for persistence backend errors."""

    def __init__(self, message: str, **kwargs):
        kwargs.setdefault("severity", ErrorSeverity.ERROR)
        super().__init__(message, **kwargs)


PersistenceError = PersistenceException


class BackendFunctionUnavailableError(PersistenceException):
    """Native backend function (e.g. similarity search) is not available."""

    def __init__(self, function_name: str, message: Optional[str] = None, **kwargs):
        message = message or f"Backend function not available: {function_name}"
        super().__init__(
            message,
            severity=ErrorSeverity.INFO,
            retryable=False,
            context={"function_name": function_name},
            error_code="BACKEND_FUNCTION_UNAVAILABLE",
            **kwargs,
        )
        self.function_name = function_name


class PatternStoreError(PersistenceException):
    """Pattern create/update/read failed."""

    def __init__(
        self,
        message: str = "Pattern store operation failed",
        *,
        user_id: Optional[str] = None,
        operation: Optional[str] = None,
        **kwargs,
    ):
        super().__init__(
            message,
            retryable=True,
            context={"user_id": user_id, "operation": operation},
            error_code="PATTERN_STORE_FAILED",
            **kwargs,
        )


class VectorStoreError(PersistenceException):
    """Vector upsert/search/delete failed."""

    def __init__(
        self,
        message: str = "Vector store operation failed",
        *,
        operation: Optional[str] = None,
        **kwargs,
    ):
        super().__init__(
            message,
            retryable=True,
            context={"operation": operation},
            error_code="VECTOR_STORE_FAILED",
            **kwargs,
        )


# =============================================================================
# INFRASTRUCTURE EXCEPTIONS
# =============================================================================


class InfrastructureException(ContentBrokerException):
    """Redis/database connectivity failures at startup or on health checks."""

    def __init__(self, message: str, **kwargs):
        kwargs.setdefault("severity", ErrorSeverity.CRITICAL)
        super().__init__(message, **kwargs)


InfrastructureError = InfrastructureException


class DatabaseConnectionError(InfrastructureException):
    """Failed to establish database connection."""

    def __init__(
        self,
        message: str = "Database connection failed",
        *,
        host: Optional[str] = None,
        database: Optional[str] = None,
        **kwargs,
    ):
        super().__init__(
            message,
            retryable=True,
            context={"host": host, "database": database},
            error_code="DB_CONNECTION_FAILED",
            **kwargs,
        )


__all__ = [
    "ContentBrokerException",
    "ValidationException",
    "ValidationError",
    "ClassificationError",
    "RoutingError",
    "CacheException",
    "CacheError",
    "CacheKeyError",
    "CacheWriteError",
    "PipelineError",
    "EmbeddingError",
    "PersistenceException",
    "PersistenceError",
    "BackendFunctionUnavailableError",
    "PatternStoreError",
    "VectorStoreError",
    "InfrastructureException",
    "InfrastructureError",
    "DatabaseConnectionError",
]
