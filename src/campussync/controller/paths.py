"""REST endpoint paths of the booking API."""

from __future__ import annotations

DASHBOARD_PATH: str = "/dashboard"

USERS_PATH: str = "/users"
USERS_BY_STATUS_PATH: str = "/users/status/{status}"

RESOURCES_PATH: str = "/resources"

BOOKINGS_PATH: str = "/bookings"
BOOKING_STATUS_PATH: str = "/bookings/{id}/status"


def collection_path(collection: str) -> str:
    """Path of a whole collection ("resources" -> "/resources")."""
    return "/" + collection.strip("/")


def item_path(collection: str, item_id: int | str) -> str:
    """Path of one record ("resources", 3 -> "/resources/3")."""
    return f"{collection_path(collection)}/{item_id}"
