"""campussync public API."""

from __future__ import annotations

from campussync.auth import AuthInfo
from campussync.config import ClientConfig
from campussync.controller import CampusApiClient
from campussync.errors import (
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
from campussync.local import AnomalyKind, CollectionState, ScopeFilter, apply_event
from campussync.manager import CampusConsole
from campussync.models import (
    Booking,
    BookingStatus,
    ChangeEvent,
    ChangeKind,
    DashboardStats,
    LoadState,
    Resource,
    ResourceStatus,
    ResourceType,
    SubscriptionState,
    User,
    UserRole,
    UserStatus,
)
from campussync.sync import (
    ChangeStream,
    ChangeSynchronizer,
    InMemoryChangeStream,
    RealtimeChangeStream,
    SnapshotLoader,
    SyncHandle,
)

__all__ = [
    # High-level
    "CampusConsole",
    "ClientConfig",
    "AuthInfo",
    "CampusApiClient",
    # Synchronization
    "ChangeSynchronizer",
    "SnapshotLoader",
    "SyncHandle",
    "ChangeStream",
    "RealtimeChangeStream",
    "InMemoryChangeStream",
    "CollectionState",
    "ScopeFilter",
    "AnomalyKind",
    "apply_event",
    # Models
    "ChangeEvent",
    "ChangeKind",
    "LoadState",
    "SubscriptionState",
    "User",
    "UserRole",
    "UserStatus",
    "Resource",
    "ResourceType",
    "ResourceStatus",
    "Booking",
    "BookingStatus",
    "DashboardStats",
    # Errors
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
