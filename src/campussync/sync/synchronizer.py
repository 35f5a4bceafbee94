"""ChangeSynchronizer: snapshot + live change stream per activation."""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

from campussync.errors import (
    FetchError,
    InvalidArgumentError,
    InvalidStateError,
    SubscriptionError,
)
from campussync.local import ScopeFilter
from campussync.util.keys import camelize_keys

from .handle import ErrorCallback, ItemsCallback, RowNormalizer, StateCallback, SyncHandle
from .loader import SnapshotLoader
from .stream import ChangeStream

logger = logging.getLogger(__name__)


class ChangeSynchronizer:
    """
    Keeps local views of remote tables in sync.

    Each `activate` call gets an independent handle, subscription and item
    state; nothing is shared across activations, even for the same
    (collection, scope).

    Start sequence per activation:
        1. open the change-stream subscription (failure is reported, not fatal)
        2. load the snapshot; events arriving meanwhile are buffered
        3. install the snapshot and replay the buffer
    """

    def __init__(
        self,
        loader: SnapshotLoader,
        stream: ChangeStream,
        *,
        identity_key: str = "id",
        normalizer: Optional[RowNormalizer] = camelize_keys,
    ) -> None:
        self._loader = loader
        self._stream = stream
        self._identity_key = identity_key
        self._normalizer = normalizer
        self._handles: dict[str, SyncHandle] = {}

    @property
    def active_handles(self) -> list[SyncHandle]:
        return list(self._handles.values())

    def activate(
        self,
        collection: str,
        scope: Optional[ScopeFilter] = None,
        *,
        on_change: ItemsCallback,
        on_snapshot: Optional[ItemsCallback] = None,
        on_error: Optional[ErrorCallback] = None,
        on_state: Optional[StateCallback] = None,
    ) -> SyncHandle:
        """
        Start synchronizing `collection` and return immediately.

        Raises:
            InvalidArgumentError: if collection is empty.
            InvalidStateError: if called without a running event loop.
        """
        if not isinstance(collection, str) or not collection.strip():
            raise InvalidArgumentError("collection must be a non-empty string")
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError as exc:
            raise InvalidStateError("activate() requires a running event loop", cause=exc) from exc

        handle = SyncHandle(
            collection,
            scope,
            on_change=on_change,
            on_snapshot=on_snapshot,
            on_error=on_error,
            on_state=on_state,
            identity_key=self._identity_key,
            normalizer=self._normalizer,
        )
        self._handles[handle.handle_id] = handle
        handle.task = loop.create_task(self._start(handle), name=f"campussync:{handle.channel_key}")
        handle.task.add_done_callback(_log_task_failure)
        logger.info(f"Activated {handle.channel_key} ({handle.handle_id})")
        return handle

    async def deactivate(self, handle: SyncHandle) -> None:
        """
        Stop delivery and release the channel. Safe to call repeatedly.

        A start still in flight (subscribe or snapshot) is cancelled; its
        result can no longer reach the handle.
        """
        if not handle.deactivate():
            return
        self._handles.pop(handle.handle_id, None)

        task = handle.task
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)

        await self._release(handle)
        logger.info(f"Deactivated {handle.channel_key} ({handle.handle_id})")

    async def close(self) -> None:
        """Deactivate every live handle."""
        for handle in list(self._handles.values()):
            await self.deactivate(handle)

    # ----------------------------
    # Internals
    # ----------------------------
    async def _start(self, handle: SyncHandle) -> None:
        try:
            subscription = await self._stream.subscribe(
                handle.collection,
                handle.scope,
                on_event=handle.receive,
                on_status=handle.stream_status,
            )
        except SubscriptionError as exc:
            handle.subscription_failed(exc)
        else:
            if not handle.attach(subscription):
                await subscription.close()
                return

        handle.begin_load()
        try:
            rows = await self._loader.load(handle.collection, handle.scope)
            handle.install_snapshot(rows)
        except FetchError as exc:
            await self._fail_load(handle, exc)
        except Exception as exc:
            logger.exception(f"Snapshot for {handle.channel_key} could not be installed")
            await self._fail_load(
                handle,
                FetchError(
                    f"Failed to load {handle.collection}",
                    details={
                        "collection": handle.collection,
                        "error_type": exc.__class__.__name__,
                    },
                    cause=exc,
                ),
            )

    async def _fail_load(self, handle: SyncHandle, error: FetchError) -> None:
        if handle.load_failed(error):
            await self._release(handle)

    async def _release(self, handle: SyncHandle) -> None:
        subscription = handle.release_subscription()
        if subscription is None:
            return
        try:
            await subscription.close()
        except Exception:
            logger.exception(f"Failed to close channel {handle.channel_key}")


def _log_task_failure(task: asyncio.Task[None]) -> None:
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.error(f"Synchronizer task {task.get_name()} failed", exc_info=exc)
