"""Public model exports for campussync."""

from __future__ import annotations

from .events import ChangeEvent, ChangeKind, Row
from .records import (
    Booking,
    BookingStatus,
    DashboardStats,
    Resource,
    ResourceStatus,
    ResourceType,
    User,
    UserRole,
    UserStatus,
)
from .states import LoadState, SubscriptionState
from .tables import TABLES, TableSpec, decode_rows, get_table

__all__ = [
    "ChangeEvent",
    "ChangeKind",
    "Row",
    "User",
    "UserRole",
    "UserStatus",
    "Resource",
    "ResourceType",
    "ResourceStatus",
    "Booking",
    "BookingStatus",
    "DashboardStats",
    "LoadState",
    "SubscriptionState",
    "TableSpec",
    "TABLES",
    "get_table",
    "decode_rows",
]
