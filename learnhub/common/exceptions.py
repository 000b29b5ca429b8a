"""
Common Exception Classes

This module defines the error taxonomy used throughout the assessment core.
Every error carries a machine readable ``ErrorCode`` and a ``details`` mapping
so the HTTP layer can render a user-facing message without parsing strings.
"""

from enum import Enum
from typing import Any, Dict, List, Optional


class ErrorCode(str, Enum):
    """Machine readable error codes."""
    UNKNOWN_ERROR = "unknown_error"
    NOT_FOUND = "not_found"
    NOT_ELIGIBLE = "not_eligible"
    INVALID_STATE = "invalid_state"
    SESSION_TIMEOUT = "session_timeout"
    CONCURRENCY_CONFLICT = "concurrency_conflict"
    EVALUATION_FAILURE = "evaluation_failure"
    UPSTREAM_CONNECTION = "upstream_connection"
    UPSTREAM_TIMEOUT = "upstream_timeout"
    UPSTREAM_RATE_LIMIT = "upstream_rate_limit"
    UPSTREAM_ERROR = "upstream_error"
    MALFORMED_RESPONSE = "malformed_response"
    UPSTREAM_UNAVAILABLE = "upstream_unavailable"
    DATABASE_ERROR = "database_error"
    CONFIGURATION_ERROR = "configuration_error"


class LearnHubError(Exception):
    """Base class for all custom exceptions."""

    code: ErrorCode = ErrorCode.UNKNOWN_ERROR

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        cause: Optional[Exception] = None,
        code: Optional[ErrorCode] = None
    ):
        """
        Initialize the exception.

        Args:
            message: Error message
            details: Structured context for the caller
            cause: Original exception that caused this error
            code: Override for the class level error code
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}
        self.cause = cause
        if code is not None:
            self.code = code

    def to_dict(self) -> Dict[str, Any]:
        """Convert the error to a dictionary."""
        result = {
            "code": self.code.value,
            "message": self.message,
            "details": self.details,
        }
        if self.cause is not None:
            result["cause"] = f"{type(self.cause).__name__}: {self.cause}"
        return result


class NotFoundError(LearnHubError):
    """Exception raised when a session, assessment or question is missing."""

    code = ErrorCode.NOT_FOUND

    def __init__(self, resource_type: str, resource_id: Any):
        super().__init__(
            f"{resource_type} with ID {resource_id} not found",
            details={"resource_type": resource_type, "resource_id": resource_id}
        )
        self.resource_type = resource_type
        self.resource_id = resource_id


class NotEligibleError(LearnHubError):
    """Exception raised when the attempt limit or cooldown blocks a new session."""

    code = ErrorCode.NOT_ELIGIBLE

    def __init__(self, reasons: List[str]):
        super().__init__(
            f"Not eligible for assessment: {', '.join(reasons)}",
            details={"reasons": list(reasons)}
        )
        self.reasons = list(reasons)


class InvalidStateError(LearnHubError):
    """Exception raised when an operation is not allowed in the session's status."""

    code = ErrorCode.INVALID_STATE

    def __init__(self, session_id: str, status: str, operation: str):
        super().__init__(
            f"Cannot {operation} session {session_id} while it is {status}",
            details={"session_id": session_id, "status": status, "operation": operation}
        )
        self.session_id = session_id
        self.status = status
        self.operation = operation


class SessionTimeoutError(LearnHubError):
    """Exception raised when a session has used up its time budget."""

    code = ErrorCode.SESSION_TIMEOUT

    def __init__(self, session_id: str, elapsed_seconds: float, limit_seconds: float):
        super().__init__(
            f"Session {session_id} has timed out",
            details={
                "session_id": session_id,
                "elapsed_seconds": round(elapsed_seconds, 2),
                "limit_seconds": limit_seconds,
            }
        )
        self.session_id = session_id
        self.elapsed_seconds = elapsed_seconds
        self.limit_seconds = limit_seconds


class ConcurrencyConflictError(LearnHubError):
    """Exception raised when a document was modified since it was read."""

    code = ErrorCode.CONCURRENCY_CONFLICT

    def __init__(self, resource_type: str, resource_id: Any, expected_version: int):
        super().__init__(
            f"{resource_type} {resource_id} was modified concurrently "
            f"(expected version {expected_version})",
            details={
                "resource_type": resource_type,
                "resource_id": resource_id,
                "expected_version": expected_version,
            }
        )
        self.resource_type = resource_type
        self.resource_id = resource_id
        self.expected_version = expected_version


class EvaluationFailure(LearnHubError):
    """
    Exception raised inside AI evaluation strategies.

    Never surfaced to callers of the evaluator; it is converted into a
    degraded, human-review flagged result.
    """

    code = ErrorCode.EVALUATION_FAILURE


class UpstreamError(LearnHubError):
    """Base class for failures talking to the LLM provider."""

    code = ErrorCode.UPSTREAM_ERROR
    retryable = False

    def __init__(
        self,
        message: str,
        model: Optional[str] = None,
        status_code: Optional[int] = None,
        cause: Optional[Exception] = None
    ):
        details = {}
        if model is not None:
            details["model"] = model
        if status_code is not None:
            details["status_code"] = status_code
        super().__init__(message, details=details, cause=cause)
        self.model = model
        self.status_code = status_code


class UpstreamConnectionError(UpstreamError):
    """The provider could not be reached."""

    code = ErrorCode.UPSTREAM_CONNECTION
    retryable = True


class UpstreamTimeoutError(UpstreamError):
    """The provider did not answer in time."""

    code = ErrorCode.UPSTREAM_TIMEOUT
    retryable = True


class UpstreamRateLimitError(UpstreamError):
    """The provider rejected the call with HTTP 429."""

    code = ErrorCode.UPSTREAM_RATE_LIMIT
    retryable = True


class UpstreamServerError(UpstreamError):
    """The provider failed with a retryable 5xx status."""

    retryable = True


class MalformedResponseError(UpstreamError):
    """The provider answered but the payload is unusable."""

    code = ErrorCode.MALFORMED_RESPONSE


class UpstreamUnavailableError(UpstreamError):
    """Retries and the fallback model are exhausted."""

    code = ErrorCode.UPSTREAM_UNAVAILABLE

    def __init__(self, message: str, last_error: Optional[UpstreamError] = None):
        super().__init__(
            message,
            model=getattr(last_error, "model", None),
            status_code=getattr(last_error, "status_code", None),
            cause=last_error
        )
        self.last_error = last_error


class DatabaseError(LearnHubError):
    """Exception raised for database-related errors."""

    code = ErrorCode.DATABASE_ERROR

    def __init__(self, message: str, original_exception: Optional[Exception] = None):
        super().__init__(f"Database error: {message}", cause=original_exception)


class ConfigurationError(LearnHubError):
    """Exception raised for configuration-related errors."""

    code = ErrorCode.CONFIGURATION_ERROR

    def __init__(self, message: str, config_key: Optional[str] = None):
        super().__init__(
            f"Configuration error: {message}",
            details={"config_key": config_key} if config_key else None
        )
        self.config_key = config_key


def error_response(error: Exception, include_details: bool = True) -> Dict[str, Any]:
    """
    Generate a standardized error response for the HTTP layer.

    Args:
        error: The error to generate a response for
        include_details: Whether to include error details

    Returns:
        Standardized error response dictionary
    """
    if not isinstance(error, LearnHubError):
        error = LearnHubError(str(error) or "An unexpected error occurred", cause=error)

    response = {
        "status": "error",
        "code": error.code.value,
        "message": error.message,
    }
    if include_details and error.details:
        response["details"] = error.details
    return response
