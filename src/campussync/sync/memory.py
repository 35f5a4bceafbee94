"""In-process change stream (local wiring, demos and tests)."""

from __future__ import annotations

import logging
from typing import Optional

from campussync.errors import SubscriptionError
from campussync.local import ScopeFilter, channel_key
from campussync.models import ChangeEvent, SubscriptionState

from .stream import ChangeStream, EventCallback, StatusCallback, StreamSubscription

logger = logging.getLogger(__name__)


class InMemoryChangeStream(ChangeStream):
    """
    Fan-out hub: `publish` delivers an event synchronously to every open
    subscription on the event's table whose scope accepts the row.
    """

    def __init__(self) -> None:
        self._subscriptions: list[InMemorySubscription] = []

    @property
    def open_channels(self) -> list[str]:
        return [sub.channel_key for sub in self._subscriptions]

    async def subscribe(
        self,
        table: str,
        scope: Optional[ScopeFilter],
        *,
        on_event: EventCallback,
        on_status: StatusCallback,
    ) -> "InMemorySubscription":
        subscription = InMemorySubscription(self, table, scope, on_event, on_status)
        self._subscriptions.append(subscription)
        subscription._set_state(SubscriptionState.OPEN)
        return subscription

    def publish(self, event: ChangeEvent) -> int:
        """Deliver `event`; returns the number of subscriptions reached."""
        delivered = 0
        for subscription in list(self._subscriptions):
            if subscription.accepts(event):
                subscription.on_event(event)
                delivered += 1
        return delivered

    def drop(self, table: Optional[str] = None) -> int:
        """Simulate connection loss for every subscription (on `table`)."""
        dropped = 0
        for subscription in list(self._subscriptions):
            if table is None or subscription.table == table:
                self._detach(subscription)
                subscription._set_state(
                    SubscriptionState.CLOSED,
                    SubscriptionError(
                        "Change stream connection lost",
                        details={"channel": subscription.channel_key},
                    ),
                )
                dropped += 1
        return dropped

    def _detach(self, subscription: "InMemorySubscription") -> None:
        if subscription in self._subscriptions:
            self._subscriptions.remove(subscription)


class InMemorySubscription(StreamSubscription):
    def __init__(
        self,
        hub: InMemoryChangeStream,
        table: str,
        scope: Optional[ScopeFilter],
        on_event: EventCallback,
        on_status: StatusCallback,
    ) -> None:
        self.channel_key = channel_key(table, scope)
        self.table = table
        self.scope = scope
        self.on_event = on_event
        self._on_status = on_status
        self._hub = hub
        self._state = SubscriptionState.CONNECTING
        self.close_calls = 0

    @property
    def state(self) -> SubscriptionState:
        return self._state

    def accepts(self, event: ChangeEvent) -> bool:
        if event.table != self.table or self._state is not SubscriptionState.OPEN:
            return False
        if self.scope is None:
            return True
        if self.scope.matches(event.row()):
            return True
        # An update moving a row out of scope is still delivered so views drop it.
        return event.old_row is not None and self.scope.matches(event.old_row)

    async def close(self) -> None:
        self.close_calls += 1
        if self._state is SubscriptionState.CLOSED:
            return
        self._hub._detach(self)
        self._state = SubscriptionState.CLOSED
        logger.debug(f"In-memory channel {self.channel_key} closed")

    def _set_state(
        self,
        state: SubscriptionState,
        error: Optional[SubscriptionError] = None,
    ) -> None:
        self._state = state
        self._on_status(state, error)
