"""
Shared error handling for the interview relay services.
"""

from typing import Dict, Any, Optional
from pydantic import BaseModel


class ErrorResponse(BaseModel):
    """Standard error response format."""

    ok: bool = False
    error: str
    message: str
    details: Dict[str, Any] = {}


class RelayException(Exception):
    """Base exception for relay services."""

    status_code = 400

    def __init__(
        self,
        code: str,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        status_code: Optional[int] = None
    ):
        self.code = code
        self.message = message
        self.details = details or {}
        if status_code is not None:
            self.status_code = status_code
        super().__init__(message)

    def to_response(self) -> ErrorResponse:
        """Convert to error response."""
        return ErrorResponse(
            error=self.code,
            message=self.message,
            details=self.details
        )


class UnauthorizedError(RelayException):
    """Missing or mismatched shared secret."""

    status_code = 401

    def __init__(self, message: str = "Unauthorized", details: Optional[Dict[str, Any]] = None):
        super().__init__("unauthorized", message, details)


class InvalidArgumentError(RelayException):
    """Caller supplied an unusable argument."""

    status_code = 400

    def __init__(self, message: str = "Invalid argument", details: Optional[Dict[str, Any]] = None):
        super().__init__("invalid_argument", message, details)


class TokenInvalidError(RelayException):
    """Relay token is unknown, already used, or expired."""

    status_code = 401

    def __init__(self, message: str = "Token is invalid or expired", details: Optional[Dict[str, Any]] = None):
        super().__init__("invalid_or_expired_token", message, details)


class UpstreamFailureError(RelayException):
    """An external provider call or connection failed."""

    status_code = 502

    def __init__(self, service: str, message: str = "Upstream provider error", details: Optional[Dict[str, Any]] = None):
        super().__init__("upstream_failure", f"{service}: {message}", details)
        self.service = service
