"""
Shared error handling for the Feed Access Layer.
"""

from typing import Any, Dict, Optional

from pydantic import BaseModel, Field


class ErrorResponse(BaseModel):
    """Standard error response format."""

    code: str
    message: str
    details: Dict[str, Any] = Field(default_factory=dict)


class FeedAccessException(Exception):
    """Base exception for the Feed Access Layer."""

    def __init__(self, code: str, message: str, details: Optional[Dict[str, Any]] = None):
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_response(self) -> ErrorResponse:
        """Convert to error response."""
        return ErrorResponse(
            code=self.code,
            message=self.message,
            details=self.details,
        )


class RemoteCallFailure(FeedAccessException):
    """Remote content service call failed (network or service error)."""

    def __init__(self, operation: str, message: str = "Remote call failed", details: Optional[Dict[str, Any]] = None):
        self.operation = operation
        super().__init__("REMOTE_CALL_FAILURE", f"{operation}: {message}", details)


class ValidationGap(FeedAccessException):
    """A required parameter was missing before a remote call."""

    def __init__(self, parameter: str, operation: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        self.parameter = parameter
        message = f"Missing required parameter {parameter!r}"
        if operation:
            message = f"{operation}: {message}"
        super().__init__("VALIDATION_GAP", message, details)
