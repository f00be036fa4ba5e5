"""
Error Handling for the Assessment Engine

This module defines the engine's error taxonomy and the helpers that turn
errors into log records and API responses:
1. A single exception hierarchy rooted at ``AssessmentEngineError``
2. Structured error information (``ErrorInfo``) for logging and reporting
3. HTTP status mapping and the ``{"status": "error", ...}`` response envelope

Errors are raised at the point of violation and never retried inside the
engine. Storage failures are not wrapped; they propagate unchanged.
"""

import json
import logging
import traceback
from enum import Enum
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

logger = logging.getLogger(__name__)


class ErrorSeverity(Enum):
    """Severity levels for errors"""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class ErrorCode(Enum):
    """Error codes exposed to API clients"""
    UNKNOWN_ERROR = "unknown_error"
    VALIDATION_ERROR = "validation_error"
    STRUCTURAL_MISMATCH = "structural_mismatch"
    NOT_FOUND = "not_found"
    FORBIDDEN = "forbidden"
    NOT_PUBLISHED = "not_published"
    OUT_OF_WINDOW = "out_of_window"
    ATTEMPT_LIMIT_EXCEEDED = "attempt_limit_exceeded"
    ATTEMPT_CLOSED = "attempt_closed"
    INVALID_STATE = "invalid_state"
    CONFLICT = "conflict"
    RATE_LIMITED = "rate_limited"


HTTP_STATUS_BY_CODE: Dict[ErrorCode, int] = {
    ErrorCode.UNKNOWN_ERROR: 500,
    ErrorCode.VALIDATION_ERROR: 400,
    ErrorCode.STRUCTURAL_MISMATCH: 422,
    ErrorCode.NOT_FOUND: 404,
    ErrorCode.FORBIDDEN: 403,
    ErrorCode.NOT_PUBLISHED: 403,
    ErrorCode.OUT_OF_WINDOW: 403,
    ErrorCode.ATTEMPT_LIMIT_EXCEEDED: 409,
    ErrorCode.ATTEMPT_CLOSED: 409,
    ErrorCode.INVALID_STATE: 409,
    ErrorCode.CONFLICT: 409,
    ErrorCode.RATE_LIMITED: 429,
}


class ErrorInfo(BaseModel):
    """Structured information about an error"""
    model_config = ConfigDict(use_enum_values=True)

    code: ErrorCode
    message: str
    timestamp: datetime = Field(default_factory=datetime.now)
    severity: ErrorSeverity = ErrorSeverity.ERROR
    details: Optional[Dict[str, Any]] = None
    exception_type: Optional[str] = None
    stack_trace: Optional[List[str]] = None
    context: Optional[Dict[str, Any]] = None

    @field_validator('stack_trace', mode='before')
    @classmethod
    def split_stack_trace(cls, v):
        if isinstance(v, str):
            return v.splitlines()
        return v


class AssessmentEngineError(Exception):
    """Base exception class for all engine errors"""

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.UNKNOWN_ERROR,
        severity: ErrorSeverity = ErrorSeverity.ERROR,
        details: Optional[Dict[str, Any]] = None,
        cause: Optional[Exception] = None,
        context: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.severity = severity
        self.details = details or {}
        self.cause = cause
        self.context = context or {}
        self.timestamp = datetime.now()

    @property
    def http_status(self) -> int:
        return HTTP_STATUS_BY_CODE.get(self.code, 500)

    def to_error_info(self, include_stack_trace: bool = False) -> ErrorInfo:
        """Convert the exception to an ErrorInfo object"""
        details = dict(self.details)
        if self.cause is not None:
            details["cause"] = {
                "type": type(self.cause).__name__,
                "message": str(self.cause)
            }

        return ErrorInfo(
            code=self.code,
            message=self.message,
            timestamp=self.timestamp,
            severity=self.severity,
            details=details,
            exception_type=type(self).__name__,
            stack_trace=traceback.format_exc() if include_stack_trace else None,
            context=self.context
        )

    def to_dict(self, include_stack_trace: bool = False) -> Dict[str, Any]:
        """Convert the exception to a JSON-compatible dictionary"""
        return self.to_error_info(include_stack_trace).model_dump(mode="json")

    def to_json(self, include_stack_trace: bool = False) -> str:
        return json.dumps(self.to_dict(include_stack_trace))

    def __str__(self) -> str:
        base_str = f"{self.code.value}: {self.message}"
        if self.details:
            base_str += f" (details: {self.details})"
        if self.cause:
            base_str += f" caused by {type(self.cause).__name__}: {self.cause}"
        return base_str


class ValidationError(AssessmentEngineError):
    """Raised when bank or composer input is malformed"""

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        cause: Optional[Exception] = None,
        context: Optional[Dict[str, Any]] = None
    ):
        super().__init__(
            message=message,
            code=ErrorCode.VALIDATION_ERROR,
            severity=ErrorSeverity.WARNING,
            details=details,
            cause=cause,
            context=context
        )


class StructuralMismatchError(AssessmentEngineError):
    """Raised when an answer payload does not have the shape its question type requires"""

    def __init__(
        self,
        expected: List[str],
        received: Optional[str],
        reason: Optional[str] = None,
        question_type: Optional[str] = None
    ):
        self.expected = list(expected)
        self.received = received
        message = f"Expected answer tag {' or '.join(repr(tag) for tag in self.expected)}, got {received!r}"
        if reason:
            message = f"{message}: {reason}"
        details = {"expected": self.expected, "received": received}
        if question_type is not None:
            details["question_type"] = question_type
        super().__init__(
            message=message,
            code=ErrorCode.STRUCTURAL_MISMATCH,
            severity=ErrorSeverity.WARNING,
            details=details
        )


class NotFoundError(AssessmentEngineError):
    """Raised when an assessment, attempt or question does not exist"""

    def __init__(self, resource_type: str, resource_id: Any, details: Optional[Dict[str, Any]] = None):
        self.resource_type = resource_type
        self.resource_id = resource_id
        details = dict(details or {})
        details.update({"resource_type": resource_type, "resource_id": str(resource_id)})
        super().__init__(
            message=f"{resource_type} with ID {resource_id} not found",
            code=ErrorCode.NOT_FOUND,
            severity=ErrorSeverity.WARNING,
            details=details
        )


class ForbiddenError(AssessmentEngineError):
    """Raised on attempt ownership violations or non-privileged access"""

    def __init__(self, message: str = "Forbidden", details: Optional[Dict[str, Any]] = None):
        super().__init__(
            message=message,
            code=ErrorCode.FORBIDDEN,
            severity=ErrorSeverity.WARNING,
            details=details
        )


class NotPublishedError(AssessmentEngineError):
    """Raised when starting an attempt on an assessment that is not published"""

    def __init__(self, assessment_id: Any, status: str):
        super().__init__(
            message=f"Assessment {assessment_id} is not available (status: {status})",
            code=ErrorCode.NOT_PUBLISHED,
            severity=ErrorSeverity.WARNING,
            details={"assessment_id": str(assessment_id), "status": status}
        )


class OutOfWindowError(AssessmentEngineError):
    """Raised when now is outside the assessment's availability window"""

    def __init__(
        self,
        assessment_id: Any,
        available_from: Optional[datetime],
        available_until: Optional[datetime],
        now: datetime
    ):
        if available_from is not None and now < available_from:
            message = f"Assessment {assessment_id} is not available yet"
        else:
            message = f"Assessment {assessment_id} is no longer available"
        super().__init__(
            message=message,
            code=ErrorCode.OUT_OF_WINDOW,
            severity=ErrorSeverity.WARNING,
            details={
                "assessment_id": str(assessment_id),
                "available_from": available_from.isoformat() if available_from else None,
                "available_until": available_until.isoformat() if available_until else None,
            }
        )


class AttemptLimitExceededError(AssessmentEngineError):
    """Raised when the user has used up every allowed attempt"""

    def __init__(self, assessment_id: Any, user_id: str, max_attempts: int):
        super().__init__(
            message=f"Maximum attempts ({max_attempts}) reached for assessment {assessment_id}",
            code=ErrorCode.ATTEMPT_LIMIT_EXCEEDED,
            severity=ErrorSeverity.WARNING,
            details={"assessment_id": str(assessment_id), "user_id": user_id, "max_attempts": max_attempts}
        )


class AttemptClosedError(AssessmentEngineError):
    """Raised when writing to an attempt that is no longer in progress"""

    def __init__(self, attempt_id: Any, status: str):
        super().__init__(
            message=f"Attempt {attempt_id} is not accepting changes (status: {status})",
            code=ErrorCode.ATTEMPT_CLOSED,
            severity=ErrorSeverity.WARNING,
            details={"attempt_id": str(attempt_id), "status": status}
        )


class InvalidStateError(AssessmentEngineError):
    """Raised when an operation is not allowed from the entity's current state"""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(
            message=message,
            code=ErrorCode.INVALID_STATE,
            severity=ErrorSeverity.WARNING,
            details=details
        )


class ConflictError(AssessmentEngineError):
    """Raised on a uniqueness race or an edit to locked content"""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None, cause: Optional[Exception] = None):
        super().__init__(
            message=message,
            code=ErrorCode.CONFLICT,
            severity=ErrorSeverity.WARNING,
            details=details,
            cause=cause
        )


class RateLimitedError(AssessmentEngineError):
    """Raised when the rate limiting collaborator rejects a request"""

    def __init__(self, message: str, retry_after: Optional[float] = None):
        self.retry_after = retry_after
        details = {}
        if retry_after is not None:
            details["retry_after_seconds"] = retry_after
        super().__init__(
            message=message,
            code=ErrorCode.RATE_LIMITED,
            severity=ErrorSeverity.WARNING,
            details=details
        )


def error_response(error: AssessmentEngineError) -> Dict[str, Any]:
    """
    Build the API error envelope for an engine error.

    Args:
        error: The error to report

    Returns:
        Response body dictionary
    """
    return {
        "status": "error",
        "code": error.code.value,
        "message": error.message,
        "details": error.details or None,
    }


def log_error(
    error: Exception,
    target: Optional[logging.Logger] = None,
    include_stack_trace: bool = False
) -> None:
    """
    Log an error at a level matching its severity.

    Args:
        error: The error to log
        target: Logger to use (module logger by default)
        include_stack_trace: Whether to attach the current traceback
    """
    target = target or logger
    if not isinstance(error, AssessmentEngineError):
        target.error(f"Unexpected error: {type(error).__name__}: {error}", exc_info=include_stack_trace)
        return

    level = {
        ErrorSeverity.DEBUG: logging.DEBUG,
        ErrorSeverity.INFO: logging.INFO,
        ErrorSeverity.WARNING: logging.WARNING,
        ErrorSeverity.ERROR: logging.ERROR,
        ErrorSeverity.CRITICAL: logging.CRITICAL,
    }[error.severity]
    target.log(level, str(error), exc_info=include_stack_trace)
