"""SyncHandle: per-activation state of a synchronized collection."""

from __future__ import annotations

import asyncio
import logging
import threading
from collections import Counter
from datetime import datetime
from typing import Any, Callable, Mapping, Optional

from campussync.errors import (
    CampusSyncError,
    FetchError,
    InvalidStateError,
    SubscriptionError,
)
from campussync.local import AnomalyKind, CollectionState, ScopeFilter, apply_event, channel_key
from campussync.models import ChangeEvent, LoadState, Row, SubscriptionState
from campussync.util.ids import new_handle_id
from campussync.util.time import now_utc

from .stream import StreamSubscription

logger = logging.getLogger(__name__)

Items = tuple[Row, ...]
ItemsCallback = Callable[[Items], None]
ErrorCallback = Callable[[CampusSyncError], None]
StateCallback = Callable[[SubscriptionState], None]
RowNormalizer = Callable[[Mapping[str, Any]], Row]


class SyncHandle:
    """
    Deactivation handle and live view for one activation.

    Delivery rules:
        - events received before the snapshot is installed are buffered and
          replayed on top of it
        - nothing is delivered once the handle is deactivated
        - callbacks never see partial state; `items` is an immutable tuple
    """

    def __init__(
        self,
        collection: str,
        scope: Optional[ScopeFilter],
        *,
        on_change: ItemsCallback,
        on_snapshot: Optional[ItemsCallback] = None,
        on_error: Optional[ErrorCallback] = None,
        on_state: Optional[StateCallback] = None,
        identity_key: str = "id",
        normalizer: Optional[RowNormalizer] = None,
    ) -> None:
        self.handle_id = new_handle_id()
        self.collection = collection
        self.scope = scope
        self.channel_key = channel_key(collection, scope)
        self.activated_at: datetime = now_utc()

        self.load_state = LoadState.IDLE
        self.subscription_state = SubscriptionState.CONNECTING
        self.error: Optional[CampusSyncError] = None
        self.anomalies: Counter[AnomalyKind] = Counter()
        self.events_applied = 0
        self.last_commit_at: Optional[datetime] = None

        self._on_change = on_change
        self._on_snapshot = on_snapshot
        self._on_error = on_error
        self._on_state = on_state
        self._normalize = normalizer

        self._state = CollectionState(identity_key=identity_key)
        self._pending: list[ChangeEvent] = []
        self._snapshot_installed = False
        self._active = True
        self._subscription: Optional[StreamSubscription] = None
        self._lock = threading.RLock()
        self._settled = asyncio.Event()
        self.task: Optional[asyncio.Task[None]] = None

    # ----------------------------
    # Read APIs
    # ----------------------------
    @property
    def active(self) -> bool:
        return self._active

    @property
    def items(self) -> Items:
        return self._state.items

    @property
    def state(self) -> CollectionState:
        return self._state

    async def wait_loaded(self) -> Items:
        """
        Wait until the snapshot is installed and return the items.

        Raises:
            FetchError: if the snapshot load failed.
            InvalidStateError: if deactivated before the snapshot arrived.
        """
        await self._settled.wait()
        if self.load_state is LoadState.LOADED:
            return self.items
        if self.load_state is LoadState.FAILED and isinstance(self.error, FetchError):
            raise self.error
        raise InvalidStateError(
            "Handle was deactivated before the snapshot loaded",
            details={"channel": self.channel_key},
        )

    # ----------------------------
    # Stream callbacks
    # ----------------------------
    def receive(self, event: ChangeEvent) -> None:
        """Accept one event from the change stream (delivery order)."""
        with self._lock:
            if not self._active:
                return
            if self._normalize is not None:
                event = event.map_rows(self._normalize)
            if not self._snapshot_installed:
                self._pending.append(event)
                return
            self._apply(event)

    def stream_status(
        self,
        state: SubscriptionState,
        error: Optional[SubscriptionError] = None,
    ) -> None:
        """Transport status callback. Unexpected CLOSED is reported once."""
        with self._lock:
            if not self._active or state is self.subscription_state:
                return
            self._set_subscription_state(state)
            if state is SubscriptionState.CLOSED:
                self._report(
                    error
                    or SubscriptionError(
                        "Change stream closed unexpectedly",
                        details={"channel": self.channel_key},
                    )
                )

    # ----------------------------
    # Lifecycle (driven by ChangeSynchronizer)
    # ----------------------------
    def attach(self, subscription: StreamSubscription) -> bool:
        """Store the opened subscription. Returns False if already deactivated."""
        with self._lock:
            if not self._active:
                return False
            self._subscription = subscription
            if subscription.state is not self.subscription_state:
                self._set_subscription_state(subscription.state)
            return True

    def subscription_failed(self, error: SubscriptionError) -> None:
        with self._lock:
            if not self._active:
                return
            logger.warning(f"Live updates unavailable for {self.channel_key}: {error}")
            self._set_subscription_state(SubscriptionState.CLOSED)
            self._report(error)

    def begin_load(self) -> None:
        with self._lock:
            if self._active:
                self.load_state = LoadState.LOADING

    def install_snapshot(self, rows: list[Row]) -> bool:
        """
        Install the snapshot and replay buffered events.

        Returns False (and changes nothing) when the handle is no longer
        active.
        """
        with self._lock:
            if not self._active:
                return False
            if self._normalize is not None:
                rows = [self._normalize(row) for row in rows]
            state, anomalies = CollectionState.from_rows(
                rows,
                identity_key=self._state.identity_key,
                scope=self.scope,
            )
            for anomaly in anomalies:
                self._note_anomaly(anomaly, None)

            self._state = state
            self._snapshot_installed = True
            self.load_state = LoadState.LOADED
            logger.info(f"Snapshot installed for {self.channel_key}: {len(state)} rows")
            self._emit(self._on_snapshot, state.items)

            pending, self._pending = self._pending, []
            for event in pending:
                if not self._active:
                    break
                self._apply(event)

        self._settled.set()
        return True

    def load_failed(self, error: FetchError) -> bool:
        """Mark the load as terminally failed. Returns False if inactive."""
        with self._lock:
            if not self._active:
                return False
            self.load_state = LoadState.FAILED
            self._pending.clear()
            logger.warning(f"Snapshot load failed for {self.channel_key}: {error}")
            self._report(error)
            if self.subscription_state is not SubscriptionState.CLOSED:
                self._set_subscription_state(SubscriptionState.CLOSED)
        self._settled.set()
        return True

    def deactivate(self) -> bool:
        """Stop delivery. Returns False when already deactivated."""
        with self._lock:
            if not self._active:
                return False
            self._active = False
            self._pending.clear()
            self._state = CollectionState(identity_key=self._state.identity_key)
            self.subscription_state = SubscriptionState.CLOSED
        self._settled.set()
        return True

    def release_subscription(self) -> Optional[StreamSubscription]:
        """Hand over the subscription for closing; returns it at most once."""
        with self._lock:
            subscription, self._subscription = self._subscription, None
            return subscription

    # ----------------------------
    # Internals
    # ----------------------------
    def _apply(self, event: ChangeEvent) -> None:
        result = apply_event(self._state, event, self.scope)
        if result.anomaly is not None:
            self._note_anomaly(result.anomaly, event)
        if event.commit_timestamp is not None:
            self.last_commit_at = event.commit_timestamp
        if not result.changed:
            return
        self._state = result.state
        self.events_applied += 1
        self._emit(self._on_change, result.state.items)

    def _note_anomaly(self, anomaly: AnomalyKind, event: Optional[ChangeEvent]) -> None:
        self.anomalies[anomaly] += 1
        kind = event.kind.value if event is not None else "SNAPSHOT"
        logger.debug(f"{self.channel_key}: {anomaly.value} resolved ({kind})")

    def _set_subscription_state(self, state: SubscriptionState) -> None:
        self.subscription_state = state
        if self._on_state is not None:
            try:
                self._on_state(state)
            except Exception:
                logger.exception(f"on_state callback failed for {self.channel_key}")

    def _report(self, error: CampusSyncError) -> None:
        self.error = error
        if self._on_error is not None:
            try:
                self._on_error(error)
            except Exception:
                logger.exception(f"on_error callback failed for {self.channel_key}")

    def _emit(self, callback: Optional[ItemsCallback], items: Items) -> None:
        if callback is None:
            return
        try:
            callback(items)
        except Exception:
            logger.exception(f"Change callback failed for {self.channel_key}")

    def __repr__(self) -> str:
        return (
            f"SyncHandle(channel={self.channel_key!r}, active={self._active}, "
            f"load_state={self.load_state.value}, "
            f"subscription_state={self.subscription_state.value}, items={len(self.items)})"
        )
