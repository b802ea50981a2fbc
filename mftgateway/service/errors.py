from __future__ import annotations

from enum import Enum
from typing import Optional


class ServiceError(Exception):
    """Base class for gateway exceptions mapped to HTTP responses.

    Each subclass carries an HTTP ``status_code``, a stable ``error_code`` and a
    short ``title`` that becomes the ``error`` field of the response body:
    - unauthorized (401)
    - validation_error (400)
    - not_found (404)
    - rate_limited (429)
    - upstream_error (500)
    - server_error (500)
    """

    status_code: int = 400
    error_code: str = "validation_error"
    title: str = "Invalid request"

    def __init__(
        self,
        message: str,
        *,
        title: Optional[str] = None,
        status_code: Optional[int] = None,
        error_code: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        if title is not None:
            self.title = title
        if status_code is not None:
            self.status_code = status_code
        if error_code is not None:
            self.error_code = error_code


class ValidationError(ServiceError):
    """Request payload is malformed (400)."""
    status_code = 400
    error_code = "validation_error"
    title = "Invalid request"


class AuthenticationError(ServiceError):
    """Missing or invalid credential or caller identity (401)."""
    status_code = 401
    error_code = "unauthorized"
    title = "Unauthorized"


class NotFoundError(ServiceError):
    """No route for the requested path or method (404)."""
    status_code = 404
    error_code = "not_found"
    title = "Not Found"


class RateLimitedError(ServiceError):
    """Caller exceeded the per-identity window (429)."""
    status_code = 429
    error_code = "rate_limited"
    title = "Rate limit exceeded"


class UpstreamErrorKind(str, Enum):
    """Failure kinds reported by the completion provider boundary."""

    RATE_LIMITED = "rate_limited"
    UPSTREAM_AUTH_FAILURE = "upstream_auth_failure"
    QUOTA_EXHAUSTED = "quota_exhausted"
    EMPTY_COMPLETION = "empty_completion"
    GENERATION_FAILED = "generation_failed"


# User-facing text for each provider failure kind
UPSTREAM_ERROR_MESSAGES: dict[UpstreamErrorKind, str] = {
    UpstreamErrorKind.RATE_LIMITED: "Rate limit exceeded",
    UpstreamErrorKind.UPSTREAM_AUTH_FAILURE: "Invalid API key",
    UpstreamErrorKind.QUOTA_EXHAUSTED: "Insufficient credits",
    UpstreamErrorKind.EMPTY_COMPLETION: "No response generated",
    UpstreamErrorKind.GENERATION_FAILED: "Failed to generate response",
}


class UpstreamError(ServiceError):
    """Completion provider failed (500)."""
    status_code = 500
    error_code = "upstream_error"
    title = "AI Service Error"

    def __init__(self, kind: UpstreamErrorKind, message: Optional[str] = None) -> None:
        super().__init__(message or UPSTREAM_ERROR_MESSAGES[kind])
        self.kind = kind


class ServerError(ServiceError):
    """Unexpected failure anywhere in the pipeline (500)."""
    status_code = 500
    error_code = "server_error"
    title = "Internal server error"


class ConfigurationError(RuntimeError):
    """Required configuration is missing at startup."""


__all__ = [
    "ServiceError",
    "ValidationError",
    "AuthenticationError",
    "NotFoundError",
    "RateLimitedError",
    "UpstreamErrorKind",
    "UPSTREAM_ERROR_MESSAGES",
    "UpstreamError",
    "ServerError",
    "ConfigurationError",
]
