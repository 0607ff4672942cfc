"""
Shared error handling for the Passport gating service.
"""

from typing import Dict, Any, Optional
from pydantic import BaseModel


class ErrorResponse(BaseModel):
    """Standard error response format."""

    request_id: Optional[str] = None
    code: str
    message: str
    details: Dict[str, Any] = {}


class AccessLayerException(Exception):
    """Base exception for service errors."""

    status_code = 400

    def __init__(self, code: str, message: str, details: Optional[Dict[str, Any]] = None):
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_response(self, request_id: Optional[str] = None) -> ErrorResponse:
        """Convert to error response."""
        return ErrorResponse(
            request_id=request_id,
            code=self.code,
            message=self.message,
            details=self.details
        )


class AuthorizationError(AccessLayerException):
    """Authorization-related errors."""

    status_code = 403

    def __init__(self, message: str = "Authorization failed", details: Optional[Dict[str, Any]] = None):
        super().__init__("AUTHORIZATION_ERROR", message, details)


class NotFoundError(AccessLayerException):
    """Requested entity does not exist."""

    status_code = 404

    def __init__(self, message: str = "Not found", details: Optional[Dict[str, Any]] = None):
        super().__init__("NOT_FOUND", message, details)


class ExternalServiceError(AccessLayerException):
    """External service errors."""

    status_code = 502

    def __init__(self, code: str, service: str, message: str = "External service error",
                 details: Optional[Dict[str, Any]] = None):
        super().__init__(code, f"{service}: {message}", details)


class ProviderUnavailable(ExternalServiceError):
    """Scoring provider could not be reached or timed out."""

    status_code = 503

    def __init__(self, message: str = "Scoring provider unavailable", details: Optional[Dict[str, Any]] = None):
        super().__init__("PROVIDER_UNAVAILABLE", "passport", message, details)


class InvalidResponse(ExternalServiceError):
    """Scoring provider answered with a payload we cannot use."""

    def __init__(self, message: str = "Invalid scoring provider response", details: Optional[Dict[str, Any]] = None):
        super().__init__("INVALID_RESPONSE", "passport", message, details)
