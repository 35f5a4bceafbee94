"""Exception hierarchy and HTTP error mapping for campussync."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional


class CampusSyncError(Exception):
    """
    Base exception for campussync.

    Attributes:
        details: Optional structured information (e.g., HTTP status, channel).
        cause: Optional original exception that triggered this error.
    """

    def __init__(
        self,
        message: str,
        *,
        details: Optional[dict[str, Any]] = None,
        cause: Optional[BaseException] = None,
    ) -> None:
        super().__init__(message)
        self.details = details or {}
        self.cause = cause


class InvalidStateError(CampusSyncError):
    """Raised when the library is used in an invalid state (e.g., no running loop)."""


class InvalidArgumentError(CampusSyncError):
    """Raised when arguments passed to the library are invalid."""


class RequestError(CampusSyncError):
    """Base class for REST API failures (HTTP status or transport)."""


class AuthError(RequestError):
    """Raised when the credential is missing or expired (HTTP 401)."""


class ForbiddenError(RequestError):
    """Raised when access is denied (HTTP 403)."""


class BadRequestError(RequestError):
    """Raised when the server rejects the request payload (HTTP 400)."""


class NotFoundError(RequestError):
    """Raised when a record is not found (HTTP 404)."""


class ConflictError(RequestError):
    """Raised when a write conflicts with current state (HTTP 409/412)."""


class RateLimitError(RequestError):
    """Raised when rate-limited (HTTP 429)."""


class NetworkError(RequestError):
    """Raised when network/timeout issues prevent the request."""


class ApiError(RequestError):
    """Raised for unclassified API errors (5xx, unknown 4xx, invalid body)."""


class FetchError(CampusSyncError):
    """Raised when a snapshot load fails. `cause` holds the RequestError."""


class SubscriptionError(CampusSyncError):
    """Raised when a change stream cannot be opened or closes unexpectedly."""


@dataclass(frozen=True)
class HttpErrorInfo:
    """Lightweight HTTP error information for mapping to campussync exceptions."""

    status_code: int
    reason: str | None = None
    message: str | None = None
    details: dict[str, Any] | None = None


def map_http_error(
    info: HttpErrorInfo,
    *,
    cause: Optional[BaseException] = None,
) -> RequestError:
    """
    Map an HTTP error to a campussync exception.

    Policy:
        - 400 -> BadRequestError
        - 401 -> AuthError
        - 403 -> ForbiddenError
        - 404 -> NotFoundError
        - 409/412 -> ConflictError
        - 429 -> RateLimitError
        - otherwise -> ApiError
    """
    details: dict[str, Any] = {
        "status_code": info.status_code,
        "reason": info.reason,
    }
    if info.details:
        details.update(info.details)

    message = info.message or f"HTTP error {info.status_code}"

    if info.status_code == 400:
        return BadRequestError(message, details=details, cause=cause)
    if info.status_code == 401:
        return AuthError(message, details=details, cause=cause)
    if info.status_code == 403:
        return ForbiddenError(message, details=details, cause=cause)
    if info.status_code == 404:
        return NotFoundError(message, details=details, cause=cause)
    if info.status_code in (409, 412):
        return ConflictError(message, details=details, cause=cause)
    if info.status_code == 429:
        return RateLimitError(message, details=details, cause=cause)

    return ApiError(message, details=details, cause=cause)
