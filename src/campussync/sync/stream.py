"""Change-stream transport interface consumed by ChangeSynchronizer."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Callable, Optional

from campussync.errors import SubscriptionError
from campussync.local import ScopeFilter
from campussync.models import ChangeEvent, SubscriptionState

EventCallback = Callable[[ChangeEvent], None]
StatusCallback = Callable[[SubscriptionState, Optional[SubscriptionError]], None]


class StreamSubscription(ABC):
    """A live channel bound to one (table, scope) pair."""

    channel_key: str

    @property
    @abstractmethod
    def state(self) -> SubscriptionState:
        """Current channel state."""

    @abstractmethod
    async def close(self) -> None:
        """Release the channel. Calling it again is a no-op."""


class ChangeStream(ABC):
    """
    Source of ordered change events per (table, scope).

    Implementations must support independent concurrent subscriptions on the
    same table and deliver events for one subscription in commit order.
    """

    @abstractmethod
    async def subscribe(
        self,
        table: str,
        scope: Optional[ScopeFilter],
        *,
        on_event: EventCallback,
        on_status: StatusCallback,
    ) -> StreamSubscription:
        """
        Open a channel and return once it is joined.

        `on_status` reports later transitions; an unexpected CLOSED carries a
        SubscriptionError.

        Raises:
            SubscriptionError: if the channel cannot be opened.
        """
