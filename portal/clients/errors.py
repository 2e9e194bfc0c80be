"""Errors raised by the LMS API client.

Handlers never see httpx exceptions directly.  The client maps every
failure onto one of these, and portal/api/errors.py maps these onto
HTTP responses.
"""

from __future__ import annotations


class ApiError(Exception):
    """Base class for every upstream failure."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        path: str | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.path = path


class SessionExpiredError(ApiError):
    """Upstream answered 401: the bearer token is no longer valid."""


class NotFoundError(ApiError):
    """Upstream answered 404."""


class UpstreamValidationError(ApiError):
    """Upstream rejected the payload (400/422).  ``message`` is user-facing."""


class UpstreamError(ApiError):
    """Any other non-2xx response."""


class UpstreamUnavailableError(ApiError):
    """No response at all: connection refused, DNS failure, timeout."""
