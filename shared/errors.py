"""
Shared error handling for the EOG Parser service.
"""

from typing import Dict, Any, Optional
from pydantic import BaseModel, Field

from opentelemetry import trace


class ErrorResponse(BaseModel):
    """Standard error response format."""

    error: str
    code: str
    message: str
    details: Dict[str, Any] = Field(default_factory=dict)
    trace_id: Optional[str] = None


class ParserServiceException(Exception):
    """Base exception for parser service errors."""

    status_code: int = 400

    def __init__(self, code: str, message: str, details: Optional[Dict[str, Any]] = None):
        self.code = code
        self.message = message
        self.details = details or {}
        self.headers: Dict[str, str] = {}
        super().__init__(message)

    def to_response(self) -> ErrorResponse:
        """Convert to error response."""
        trace_id = None
        current_span = trace.get_current_span()
        if current_span and current_span.is_recording():
            span_context = current_span.get_span_context()
            if span_context.trace_id != 0:
                trace_id = f"{span_context.trace_id:032x}"

        return ErrorResponse(
            error=self.message,
            code=self.code,
            message=self.message,
            details=self.details,
            trace_id=trace_id,
        )


class ValidationError(ParserServiceException):
    """Validation-related errors."""

    status_code = 400

    def __init__(self, message: str = "Validation failed", details: Optional[Dict[str, Any]] = None):
        super().__init__("VALIDATION_ERROR", message, details)


class AuthenticationError(ParserServiceException):
    """Authentication-related errors."""

    status_code = 401

    def __init__(self, message: str = "Authentication failed", details: Optional[Dict[str, Any]] = None):
        super().__init__("AUTHENTICATION_ERROR", message, details)


class NotFoundError(ParserServiceException):
    """Requested resource does not exist."""

    status_code = 404

    def __init__(self, message: str = "Not found", details: Optional[Dict[str, Any]] = None):
        super().__init__("NOT_FOUND", message, details)


class PayloadTooLargeError(ParserServiceException):
    """Upload exceeds the configured size ceiling."""

    status_code = 413

    def __init__(self, message: str = "File too large", details: Optional[Dict[str, Any]] = None):
        super().__init__("PAYLOAD_TOO_LARGE", message, details)


class RateLimitError(ParserServiceException):
    """Rate limiting errors."""

    status_code = 429

    def __init__(self, message: str = "Rate limit exceeded", details: Optional[Dict[str, Any]] = None):
        super().__init__("RATE_LIMIT_ERROR", message, details)


class BackendError(ParserServiceException):
    """Extraction backend failed to produce a result."""

    status_code = 500

    def __init__(self, message: str = "Backend error", details: Optional[Dict[str, Any]] = None,
                 code: str = "BACKEND_ERROR"):
        super().__init__(code, message, details)


class BackendTimeoutError(BackendError):
    """Extraction backend exceeded its wall-clock bound."""

    def __init__(self, message: str = "Backend timeout", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details, code="BACKEND_TIMEOUT")


class GatewayStartupError(ParserServiceException):
    """Agent gateway process could not be brought up."""

    status_code = 500

    def __init__(self, message: str = "Gateway failed to start", details: Optional[Dict[str, Any]] = None):
        super().__init__("GATEWAY_STARTUP_ERROR", message, details)
