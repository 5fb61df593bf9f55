"""
Custom exceptions for Pacifica client.

Provides typed exceptions for REST, signing and streaming errors.
"""

from typing import Optional, Any


class PacificaError(Exception):
    """Base exception for all Pacifica errors."""

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class APIError(PacificaError):
    """API request failed."""

    def __init__(self, message: str, status_code: Optional[int] = None,
                 response: Optional[Any] = None, code: Optional[int] = None):
        super().__init__(
            message,
            {"status_code": status_code, "response": response, "code": code}
        )
        self.status_code = status_code
        self.response = response
        self.code = code


class AuthenticationError(PacificaError):
    """Authentication failed or key material is unusable."""
    pass


class ValidationError(PacificaError):
    """Input validation failed."""
    pass


class RateLimitError(PacificaError):
    """Rate limit exceeded."""

    def __init__(self, message: str, endpoint: str, retry_after: Optional[float] = None):
        super().__init__(message, {"endpoint": endpoint, "retry_after": retry_after})
        self.endpoint = endpoint
        self.retry_after = retry_after


class TimeoutError(PacificaError):
    """Request timed out."""
    pass


# WebSocket exceptions
class WebSocketError(PacificaError):
    """WebSocket connection error."""
    pass


class WebSocketConnectionError(WebSocketError):
    """Failed to connect to WebSocket."""
    pass


class WebSocketDisconnectedError(WebSocketError):
    """WebSocket is not connected."""
    pass
