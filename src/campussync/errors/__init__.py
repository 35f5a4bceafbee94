"""Public error exports for campussync."""

from __future__ import annotations

from .exceptions import (
    ApiError,
    AuthError,
    BadRequestError,
    CampusSyncError,
    ConflictError,
    FetchError,
    ForbiddenError,
    HttpErrorInfo,
    InvalidArgumentError,
    InvalidStateError,
    NetworkError,
    NotFoundError,
    RateLimitError,
    RequestError,
    SubscriptionError,
    map_http_error,
)

__all__ = [
    "CampusSyncError",
    "InvalidStateError",
    "InvalidArgumentError",
    "RequestError",
    "AuthError",
    "ForbiddenError",
    "BadRequestError",
    "NotFoundError",
    "ConflictError",
    "RateLimitError",
    "NetworkError",
    "ApiError",
    "FetchError",
    "SubscriptionError",
    "HttpErrorInfo",
    "map_http_error",
]
