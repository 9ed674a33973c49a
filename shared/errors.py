"""
Shared error handling for the content proxy.
"""

from typing import Dict, Any, Optional
from pydantic import BaseModel


class ErrorResponse(BaseModel):
    """Standard error envelope returned to clients."""

    success: bool = False
    error: str
    code: str


class ProxyException(Exception):
    """Base exception for proxy services."""

    status_code = 500

    def __init__(self, code: str, message: str, details: Optional[Dict[str, Any]] = None):
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_response(self) -> ErrorResponse:
        """Convert to error response."""
        return ErrorResponse(error=self.message, code=self.code)


class CredentialError(ProxyException):
    """A bearer credential could not be obtained."""

    status_code = 500

    def __init__(self, message: str = "Failed to get access token", details: Optional[Dict[str, Any]] = None):
        super().__init__("CREDENTIAL_ERROR", message, details)


class TransportError(ProxyException):
    """Non-2xx response or network failure talking to the remote store."""

    status_code = 502

    def __init__(
        self,
        message: str = "Remote store request failed",
        *,
        status_code: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        details = dict(details or {})
        if status_code is not None:
            details["status_code"] = status_code
        self.remote_status = status_code
        super().__init__("TRANSPORT_ERROR", message, details)

    @property
    def is_not_found(self) -> bool:
        return self.remote_status == 404


class NotFoundError(ProxyException):
    """Requested article or image does not exist."""

    status_code = 404

    def __init__(self, message: str = "Not found", details: Optional[Dict[str, Any]] = None):
        super().__init__("NOT_FOUND", message, details)


class ValidationError(ProxyException):
    """Validation-related errors."""

    status_code = 400

    def __init__(self, message: str = "Validation failed", details: Optional[Dict[str, Any]] = None):
        super().__init__("VALIDATION_ERROR", message, details)


class CacheCorruptionError(ProxyException):
    """Unreadable cache entry; always handled as a miss inside the cache layer."""

    def __init__(self, message: str = "Cache entry unreadable", details: Optional[Dict[str, Any]] = None):
        super().__init__("CACHE_CORRUPTION", message, details)
