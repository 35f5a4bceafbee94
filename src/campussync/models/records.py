"""Domain records for users, bookable resources and bookings."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Iterable, Mapping, Optional


class UserRole(str, Enum):
    STUDENT = "STUDENT"
    STAFF = "STAFF"


class UserStatus(str, Enum):
    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"


class ResourceType(str, Enum):
    LAB = "LAB"
    CLASSROOM = "CLASSROOM"
    EVENT_HALL = "EVENT_HALL"


class ResourceStatus(str, Enum):
    AVAILABLE = "AVAILABLE"
    UNAVAILABLE = "UNAVAILABLE"


class BookingStatus(str, Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


@dataclass(slots=True)
class User:
    """A console user (student or staff member)."""

    name: str
    email: str
    phone: str
    role: UserRole
    status: UserStatus

    id: Optional[int] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> User:
        return cls(
            id=_opt_int(data.get("id")),
            name=_str(data.get("name")),
            email=_str(data.get("email")),
            phone=_str(data.get("phone")),
            role=UserRole(data.get("role")),
            status=UserStatus(data.get("status")),
            created_at=_opt_str(data.get("createdAt")),
            updated_at=_opt_str(data.get("updatedAt")),
        )

    def to_payload(self) -> dict[str, Any]:
        """Request body for create/update (server-managed fields omitted)."""
        return {
            "name": self.name,
            "email": self.email,
            "phone": self.phone,
            "role": self.role.value,
            "status": self.status.value,
        }


@dataclass(slots=True)
class Resource:
    """A bookable room, lab or hall."""

    name: str
    type: ResourceType
    capacity: int
    status: ResourceStatus

    id: Optional[int] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Resource:
        return cls(
            id=_opt_int(data.get("id")),
            name=_str(data.get("name")),
            type=ResourceType(data.get("type")),
            capacity=_opt_int(data.get("capacity")) or 0,
            status=ResourceStatus(data.get("status")),
            created_at=_opt_str(data.get("createdAt")),
            updated_at=_opt_str(data.get("updatedAt")),
        )

    def to_payload(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "type": self.type.value,
            "capacity": self.capacity,
            "status": self.status.value,
        }


@dataclass(slots=True)
class Booking:
    """
    A time-slot booking of a resource by a user.

    Notes:
        - user_name/user_email/resource_name/resource_type are display fields
          joined in by the REST API; rows from the change stream do not carry
          them.
    """

    user_id: int
    resource_id: int
    booking_date: str
    time_slot: str
    status: BookingStatus = BookingStatus.PENDING

    id: Optional[int] = None
    user_name: Optional[str] = None
    user_email: Optional[str] = None
    resource_name: Optional[str] = None
    resource_type: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Booking:
        user_id = _opt_int(data.get("userId"))
        resource_id = _opt_int(data.get("resourceId"))
        if user_id is None or resource_id is None:
            raise ValueError("Booking requires userId and resourceId")
        return cls(
            id=_opt_int(data.get("id")),
            user_id=user_id,
            resource_id=resource_id,
            booking_date=_str(data.get("bookingDate")),
            time_slot=_str(data.get("timeSlot")),
            status=BookingStatus(data.get("status", BookingStatus.PENDING.value)),
            user_name=_opt_str(data.get("userName")),
            user_email=_opt_str(data.get("userEmail")),
            resource_name=_opt_str(data.get("resourceName")),
            resource_type=_opt_str(data.get("resourceType")),
            created_at=_opt_str(data.get("createdAt")),
            updated_at=_opt_str(data.get("updatedAt")),
        )

    def to_payload(self) -> dict[str, Any]:
        """Create payload. Status and display fields are assigned by the server."""
        return {
            "userId": self.user_id,
            "resourceId": self.resource_id,
            "bookingDate": self.booking_date,
            "timeSlot": self.time_slot,
        }


@dataclass(slots=True, frozen=True)
class DashboardStats:
    """Summary counts shown on the console dashboard."""

    total_users: int = 0
    total_resources: int = 0
    total_bookings: int = 0
    pending_bookings: int = 0
    approved_bookings: int = 0
    rejected_bookings: int = 0

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> DashboardStats:
        return cls(
            total_users=_opt_int(data.get("totalUsers")) or 0,
            total_resources=_opt_int(data.get("totalResources")) or 0,
            total_bookings=_opt_int(data.get("totalBookings")) or 0,
            pending_bookings=_opt_int(data.get("pendingBookings")) or 0,
            approved_bookings=_opt_int(data.get("approvedBookings")) or 0,
            rejected_bookings=_opt_int(data.get("rejectedBookings")) or 0,
        )

    @classmethod
    def from_rows(
        cls,
        users: Iterable[Mapping[str, Any]],
        resources: Iterable[Mapping[str, Any]],
        bookings: Iterable[Mapping[str, Any]],
    ) -> DashboardStats:
        """Derive the counts from synchronized collections instead of the API."""
        statuses = [row.get("status") for row in bookings]
        return cls(
            total_users=sum(1 for _ in users),
            total_resources=sum(1 for _ in resources),
            total_bookings=len(statuses),
            pending_bookings=statuses.count(BookingStatus.PENDING.value),
            approved_bookings=statuses.count(BookingStatus.APPROVED.value),
            rejected_bookings=statuses.count(BookingStatus.REJECTED.value),
        )


def _str(value: Any) -> str:
    return value if isinstance(value, str) else ""


def _opt_str(value: Any) -> Optional[str]:
    return value if isinstance(value, str) else None


def _opt_int(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip().lstrip("-").isdigit():
        return int(value)
    return None
