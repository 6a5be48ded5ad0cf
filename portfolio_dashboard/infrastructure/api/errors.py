"""
Business-domain API errors.

Raised only at the transport boundary; services translate them into
observable error state.
"""

from __future__ import annotations

from typing import Any, Optional

DEFAULT_ERROR_MESSAGE = "An unexpected error occurred"


class ApiError(Exception):
    def __init__(self, message: str = DEFAULT_ERROR_MESSAGE, status_code: Optional[int] = None, body: Any = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.body = body

    def __str__(self) -> str:
        if self.status_code is None:
            return self.message
        return f"{self.status_code}: {self.message}"


class NetworkFailure(ApiError):
    """Timeout, connection failure or 5xx."""


class AuthenticationError(ApiError):
    """401: the session token expired or is missing."""


class NotFoundError(ApiError):
    """404 on a resource addressed by id."""


class ConflictError(ApiError):
    """
    409 from the optimizer: an optimization is already in progress or ready.

    `body` keeps the raw response payload so the caller can recover the id of
    the existing optimization.
    """
