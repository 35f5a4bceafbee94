"""Booking REST API client (fetch + CRUD)."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Callable, Mapping, Optional, Union

import httpx

from campussync.auth import AuthInfo
from campussync.config import ClientConfig
from campussync.errors import (
    ApiError,
    AuthError,
    HttpErrorInfo,
    InvalidArgumentError,
    NetworkError,
    RateLimitError,
    RequestError,
    map_http_error,
)
from campussync.models import (
    Booking,
    BookingStatus,
    DashboardStats,
    Resource,
    Row,
    User,
    UserStatus,
)

from .paths import (
    BOOKING_STATUS_PATH,
    BOOKINGS_PATH,
    DASHBOARD_PATH,
    RESOURCES_PATH,
    USERS_BY_STATUS_PATH,
    USERS_PATH,
    collection_path,
    item_path,
)

logger = logging.getLogger(__name__)

AuthFailureHook = Callable[[AuthError], None]

_IDEMPOTENT_METHODS: frozenset[str] = frozenset({"GET", "PUT", "DELETE"})


@dataclass(frozen=True)
class RetryPolicy:
    max_retries: int = 3
    initial_delay_sec: float = 0.5


class CampusApiClient:
    """
    Async client for the booking REST API.

    Notes:
        - Every request carries the bearer credential when one is configured.
        - GET/PUT/DELETE are retried on 429, 5xx and network errors; POST is
          never retried.
        - A 401 triggers `on_auth_failure` (if given) before AuthError is raised.
    """

    def __init__(
        self,
        config: ClientConfig,
        auth: Optional[AuthInfo] = None,
        *,
        on_auth_failure: Optional[AuthFailureHook] = None,
        retry_policy: Optional[RetryPolicy] = None,
    ) -> None:
        http = httpx.AsyncClient(
            base_url=config.api_base_url,
            timeout=config.timeout,
            headers={"Content-Type": "application/json"},
        )
        self._init(http, auth, on_auth_failure, retry_policy)

    @classmethod
    def from_http_client(
        cls,
        http: httpx.AsyncClient,
        *,
        auth: Optional[AuthInfo] = None,
        on_auth_failure: Optional[AuthFailureHook] = None,
        retry_policy: Optional[RetryPolicy] = None,
    ) -> "CampusApiClient":
        """Create client from a pre-built httpx client (useful for tests)."""
        obj = cls.__new__(cls)
        obj._init(http, auth, on_auth_failure, retry_policy)
        return obj

    def _init(
        self,
        http: httpx.AsyncClient,
        auth: Optional[AuthInfo],
        on_auth_failure: Optional[AuthFailureHook],
        retry_policy: Optional[RetryPolicy],
    ) -> None:
        self._http = http
        self._auth = auth
        self._on_auth_failure = on_auth_failure
        self._retry_policy = retry_policy or RetryPolicy()

    async def aclose(self) -> None:
        await self._http.aclose()

    async def __aenter__(self) -> "CampusApiClient":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    # ----------------------------
    # Generic collection access
    # ----------------------------
    async def list_rows(self, collection: str) -> list[Row]:
        """GET a whole collection as raw JSON rows."""
        data = await self._request("GET", collection_path(collection))
        return _expect_rows(data, collection)

    async def get_row(self, collection: str, item_id: int | str) -> Row:
        data = await self._request("GET", item_path(collection, item_id))
        return _expect_row(data, collection)

    # ----------------------------
    # Dashboard
    # ----------------------------
    async def get_dashboard_stats(self) -> DashboardStats:
        data = await self._request("GET", DASHBOARD_PATH)
        return DashboardStats.from_dict(_expect_row(data, "dashboard"))

    # ----------------------------
    # Users
    # ----------------------------
    async def get_users(self) -> list[User]:
        return [User.from_dict(row) for row in await self.list_rows("users")]

    async def get_user(self, user_id: int) -> User:
        return User.from_dict(await self.get_row("users", user_id))

    async def get_users_by_status(self, status: Union[UserStatus, str]) -> list[User]:
        path = USERS_BY_STATUS_PATH.format(status=UserStatus(status).value)
        data = await self._request("GET", path)
        return [User.from_dict(row) for row in _expect_rows(data, "users")]

    async def create_user(self, user: User) -> User:
        data = await self._request("POST", USERS_PATH, json=user.to_payload())
        return User.from_dict(_expect_row(data, "users"))

    async def update_user(self, user_id: int, changes: Union[User, Mapping[str, Any]]) -> User:
        data = await self._request("PUT", item_path("users", user_id), json=_payload(changes))
        return User.from_dict(_expect_row(data, "users"))

    async def delete_user(self, user_id: int) -> None:
        await self._request("DELETE", item_path("users", user_id))

    # ----------------------------
    # Resources
    # ----------------------------
    async def get_resources(self) -> list[Resource]:
        return [Resource.from_dict(row) for row in await self.list_rows("resources")]

    async def get_resource(self, resource_id: int) -> Resource:
        return Resource.from_dict(await self.get_row("resources", resource_id))

    async def create_resource(self, resource: Resource) -> Resource:
        data = await self._request("POST", RESOURCES_PATH, json=resource.to_payload())
        return Resource.from_dict(_expect_row(data, "resources"))

    async def update_resource(
        self,
        resource_id: int,
        changes: Union[Resource, Mapping[str, Any]],
    ) -> Resource:
        data = await self._request(
            "PUT", item_path("resources", resource_id), json=_payload(changes)
        )
        return Resource.from_dict(_expect_row(data, "resources"))

    async def delete_resource(self, resource_id: int) -> None:
        await self._request("DELETE", item_path("resources", resource_id))

    # ----------------------------
    # Bookings
    # ----------------------------
    async def get_bookings(self) -> list[Booking]:
        return [Booking.from_dict(row) for row in await self.list_rows("bookings")]

    async def get_booking(self, booking_id: int) -> Booking:
        return Booking.from_dict(await self.get_row("bookings", booking_id))

    async def create_booking(self, booking: Booking) -> Booking:
        data = await self._request("POST", BOOKINGS_PATH, json=booking.to_payload())
        return Booking.from_dict(_expect_row(data, "bookings"))

    async def update_booking_status(
        self,
        booking_id: int,
        status: Union[BookingStatus, str],
    ) -> Booking:
        path = BOOKING_STATUS_PATH.format(id=booking_id)
        data = await self._request(
            "PUT", path, json={"status": BookingStatus(status).value}
        )
        return Booking.from_dict(_expect_row(data, "bookings"))

    # ----------------------------
    # Internals
    # ----------------------------
    async def _request(
        self,
        method: str,
        path: str,
        *,
        json: Optional[Any] = None,
    ) -> Any:
        headers = self._auth.headers() if self._auth is not None else None
        retries = self._retry_policy.max_retries if method in _IDEMPOTENT_METHODS else 0
        delay = self._retry_policy.initial_delay_sec

        for attempt in range(retries + 1):
            try:
                response = await self._http.request(method, path, json=json, headers=headers)
                response.raise_for_status()
                return _decode_body(response)
            except (httpx.HTTPError, ApiError) as exc:
                mapped = _map_exception(exc)
                if _should_retry(mapped) and attempt < retries:
                    logger.debug(f"{method} {path} failed ({mapped}); retrying in {delay}s")
                    await asyncio.sleep(delay)
                    delay *= 2
                    continue
                if isinstance(mapped, AuthError) and self._on_auth_failure is not None:
                    self._on_auth_failure(mapped)
                logger.warning(f"{method} {path} failed: {mapped.__class__.__name__}: {mapped}")
                if mapped is exc:
                    raise
                raise mapped from exc

        raise ApiError("Unexpected retry loop termination")


def _should_retry(exc: RequestError) -> bool:
    if isinstance(exc, (RateLimitError, NetworkError)):
        return True
    if isinstance(exc, ApiError):
        status_code = exc.details.get("status_code")
        return isinstance(status_code, int) and 500 <= status_code <= 599
    return False


def _map_exception(exc: Exception) -> RequestError:
    if isinstance(exc, RequestError):
        return exc
    if isinstance(exc, httpx.HTTPStatusError):
        return map_http_error(_response_to_info(exc.response), cause=exc)
    if isinstance(exc, (httpx.TimeoutException, httpx.TransportError)):
        return NetworkError(
            "Cannot connect to server. Please check if the backend is running.",
            cause=exc,
        )
    return ApiError("API request failed", cause=exc)


def _decode_body(response: httpx.Response) -> Any:
    if not response.content:
        return None
    try:
        return response.json()
    except ValueError as exc:
        raise ApiError(
            "Response body is not valid JSON",
            details={"status_code": response.status_code},
            cause=exc,
        ) from exc


def _response_to_info(response: httpx.Response) -> HttpErrorInfo:
    message = None
    reason = response.reason_phrase or None
    details: dict[str, Any] = {"url": str(response.request.url)}

    try:
        payload = response.json()
    except ValueError:
        payload = None

    if isinstance(payload, dict):
        if isinstance(payload.get("message"), str) and payload["message"]:
            message = payload["message"]
        if isinstance(payload.get("error"), str) and payload["error"]:
            reason = payload["error"]
            message = message or payload["error"]

    return HttpErrorInfo(
        status_code=response.status_code,
        reason=reason,
        message=message,
        details=details,
    )


def _expect_rows(data: Any, collection: str) -> list[Row]:
    if not isinstance(data, list) or not all(isinstance(row, dict) for row in data):
        raise ApiError(
            "Expected a JSON array of objects",
            details={"collection": collection},
        )
    return data


def _expect_row(data: Any, collection: str) -> Row:
    if not isinstance(data, dict):
        raise ApiError(
            "Expected a JSON object",
            details={"collection": collection},
        )
    return data


def _payload(changes: Union[User, Resource, Mapping[str, Any]]) -> dict[str, Any]:
    if isinstance(changes, (User, Resource)):
        return changes.to_payload()
    if isinstance(changes, Mapping):
        return dict(changes)
    raise InvalidArgumentError(
        "changes must be a record or a mapping",
        details={"type": type(changes).__name__},
    )
