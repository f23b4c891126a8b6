from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict


class ErrorSeverity(str, Enum):
    """Severity levels for processing errors."""
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class ErrorCode(str, Enum):
    """Standardized error codes for the query processor."""
    INVALID_QUERY = "INVALID_QUERY"
    UNKNOWN_REFERENCE = "UNKNOWN_REFERENCE"
    UNSUPPORTED_OPERATION = "UNSUPPORTED_OPERATION"
    CONNECTION_ERROR = "CONNECTION_ERROR"
    EXECUTION_ERROR = "EXECUTION_ERROR"
    CANCELLED = "CANCELLED"
    UNKNOWN_ERROR = "UNKNOWN_ERROR"


class WarningCode(str, Enum):
    """Warning-class conditions attached to an otherwise successful result."""
    NONDETERMINISTIC_PAGING = "NONDETERMINISTIC_PAGING"
    LIMIT_OVERRIDDEN_BY_PAGE = "LIMIT_OVERRIDDEN_BY_PAGE"
    ORDER_BY_IGNORED = "ORDER_BY_IGNORED"


RETRYABLE_ERRORS = {
    ErrorCode.CONNECTION_ERROR,
}


class ProcessingError(BaseModel):
    """Represents a structured error reported by the query processor.

    Attributes:
        stage (str): The processing state in which the error occurred.
        message (str): A human-readable error message.
        severity (ErrorSeverity): The severity of the error.
        error_code (ErrorCode): The standardized error code.
        details (Optional[Dict[str, Any]]): Additional context or metadata.
    """
    model_config = ConfigDict(extra="ignore")

    stage: str
    message: str
    severity: ErrorSeverity
    error_code: ErrorCode
    details: Optional[Dict[str, Any]] = None

    @property
    def is_retryable(self) -> bool:
        """Determines if the caller may safely retry the request."""
        if self.severity == ErrorSeverity.CRITICAL:
            return False
        return self.error_code in RETRYABLE_ERRORS

    @property
    def kind(self) -> str:
        return self.error_code.value.lower()


class QueryProcessorError(Exception):
    """Base class for every failure raised while processing a query."""

    error_code: ErrorCode = ErrorCode.UNKNOWN_ERROR
    severity: ErrorSeverity = ErrorSeverity.ERROR

    def __init__(self, message: str, **details: Any) -> None:
        super().__init__(message)
        self.message = message
        self.details = {k: v for k, v in details.items() if v is not None}

    @property
    def retryable(self) -> bool:
        return self.error_code in RETRYABLE_ERRORS

    def to_processing_error(self, stage: str) -> ProcessingError:
        return ProcessingError(
            stage=stage,
            message=self.message,
            severity=self.severity,
            error_code=self.error_code,
            details=self.details or None,
        )


class InvalidQueryError(QueryProcessorError):
    """The query description is malformed."""

    error_code = ErrorCode.INVALID_QUERY


class UnknownReferenceError(QueryProcessorError):
    """A table, field or database identifier could not be resolved."""

    error_code = ErrorCode.UNKNOWN_REFERENCE

    def __init__(self, kind: str, reference: Any, message: Optional[str] = None) -> None:
        super().__init__(
            message or f"Unknown {kind} reference: {reference!r}",
            reference_kind=kind,
            reference=reference,
        )


class UnsupportedOperationError(QueryProcessorError):
    """The query cannot be expressed against the target backend."""

    error_code = ErrorCode.UNSUPPORTED_OPERATION

    def __init__(self, clause: str, message: str, driver: Optional[str] = None) -> None:
        super().__init__(message, clause=clause, driver=driver)
        self.clause = clause


class BackendConnectionError(QueryProcessorError):
    """Transient failure reaching the backend. Safe to retry with backoff."""

    error_code = ErrorCode.CONNECTION_ERROR

    def __init__(self, message: str, retryable: bool = True, **details: Any) -> None:
        super().__init__(message, **details)
        self._retryable = retryable

    @property
    def retryable(self) -> bool:
        return self._retryable


class ExecutionError(QueryProcessorError):
    """The backend rejected the plan. Not retried."""

    error_code = ErrorCode.EXECUTION_ERROR


class QueryCancelledError(QueryProcessorError):
    """Execution was cancelled by the caller or stopped by a timeout."""

    error_code = ErrorCode.CANCELLED
    severity = ErrorSeverity.INFO

    def __init__(self, message: str = "Query execution cancelled.", reason: str = "cancelled") -> None:
        super().__init__(message, reason=reason)
        self.reason = reason
