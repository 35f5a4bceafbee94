"""CampusConsole: application context owning the client, stream and views."""

from __future__ import annotations

import logging
from typing import Any, Iterable, Mapping, Optional, Union

from campussync.auth import AuthInfo
from campussync.config import ClientConfig
from campussync.controller import AuthFailureHook, CampusApiClient
from campussync.errors import InvalidArgumentError, InvalidStateError
from campussync.local import ScopeFilter
from campussync.models import (
    BookingStatus,
    DashboardStats,
    ResourceStatus,
    UserStatus,
    get_table,
)
from campussync.models.tables import Record
from campussync.sync import (
    ChangeStream,
    ChangeSynchronizer,
    RealtimeChangeStream,
    SnapshotLoader,
    SyncHandle,
)
from campussync.sync.handle import ErrorCallback, ItemsCallback, StateCallback

logger = logging.getLogger(__name__)


class CampusConsole:
    """
    High-level entry point for the booking console.

    Constructed once by the application and passed where needed; it owns
    the REST client and the change stream and closes both on `close()`.
    """

    def __init__(
        self,
        config: ClientConfig,
        auth: Optional[AuthInfo] = None,
        *,
        on_auth_failure: Optional[AuthFailureHook] = None,
    ) -> None:
        stream = RealtimeChangeStream.from_config(config, auth)
        api = CampusApiClient(config, auth, on_auth_failure=on_auth_failure)
        self._init(api, stream)

    @classmethod
    def from_components(cls, api: CampusApiClient, stream: ChangeStream) -> "CampusConsole":
        """Create console with injected collaborators (useful for tests)."""
        obj = cls.__new__(cls)
        obj._init(api, stream)
        return obj

    def _init(self, api: CampusApiClient, stream: ChangeStream) -> None:
        self._api = api
        self._synchronizer = ChangeSynchronizer(SnapshotLoader(api), stream)
        self._closed = False

    @property
    def api(self) -> CampusApiClient:
        """REST client for reads and writes. Requires an open console."""
        self._ensure_open()
        return self._api

    @property
    def synchronizer(self) -> ChangeSynchronizer:
        return self._synchronizer

    async def __aenter__(self) -> "CampusConsole":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    async def close(self) -> None:
        """Deactivate every view and close the REST client."""
        if self._closed:
            return
        self._closed = True
        await self._synchronizer.close()
        await self._api.aclose()
        logger.info("Console closed")

    # ----------------------------
    # Views
    # ----------------------------
    def watch(
        self,
        table: str,
        scope: Optional[ScopeFilter] = None,
        *,
        on_change: ItemsCallback,
        on_snapshot: Optional[ItemsCallback] = None,
        on_error: Optional[ErrorCallback] = None,
        on_state: Optional[StateCallback] = None,
    ) -> SyncHandle:
        """Start a live view of `table` (users, resources or bookings)."""
        self._ensure_open()
        get_table(table)
        return self._synchronizer.activate(
            table,
            scope,
            on_change=on_change,
            on_snapshot=on_snapshot,
            on_error=on_error,
            on_state=on_state,
        )

    def watch_users(
        self,
        *,
        status: Optional[Union[UserStatus, str]] = None,
        **callbacks: Any,
    ) -> SyncHandle:
        scope = ScopeFilter.eq("status", UserStatus(status).value) if status else None
        return self.watch("users", scope, **callbacks)

    def watch_resources(
        self,
        *,
        status: Optional[Union[ResourceStatus, str]] = None,
        **callbacks: Any,
    ) -> SyncHandle:
        scope = ScopeFilter.eq("status", ResourceStatus(status).value) if status else None
        return self.watch("resources", scope, **callbacks)

    def watch_bookings(
        self,
        *,
        status: Optional[Union[BookingStatus, str]] = None,
        user_id: Optional[int] = None,
        resource_id: Optional[int] = None,
        **callbacks: Any,
    ) -> SyncHandle:
        """
        Live view of bookings, optionally scoped by one column.

        Raises:
            InvalidArgumentError: if more than one scope is given (the change
                stream accepts a single filter per channel).
        """
        scopes = [
            ScopeFilter.eq("status", BookingStatus(status).value) if status else None,
            ScopeFilter.eq("user_id", user_id) if user_id is not None else None,
            ScopeFilter.eq("resource_id", resource_id) if resource_id is not None else None,
        ]
        chosen = [scope for scope in scopes if scope is not None]
        if len(chosen) > 1:
            raise InvalidArgumentError(
                "Only one of status, user_id, resource_id may be given",
                details={"filters": [str(scope) for scope in chosen]},
            )
        return self.watch("bookings", chosen[0] if chosen else None, **callbacks)

    async def unwatch(self, handle: SyncHandle) -> None:
        await self._synchronizer.deactivate(handle)

    def records(self, handle: SyncHandle) -> list[Record]:
        """Decode a view's current items into typed records."""
        spec = get_table(handle.collection)
        return [spec.decode(row) for row in handle.items]

    @staticmethod
    def live_stats(
        users: Iterable[Mapping[str, Any]],
        resources: Iterable[Mapping[str, Any]],
        bookings: Iterable[Mapping[str, Any]],
    ) -> DashboardStats:
        """Dashboard counts computed from synchronized items."""
        return DashboardStats.from_rows(users, resources, bookings)

    def _ensure_open(self) -> None:
        if self._closed:
            raise InvalidStateError("Console is closed.")
