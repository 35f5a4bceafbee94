import asyncio
import unittest
from typing import Any, Optional

from campussync.errors import (
    CampusSyncError,
    FetchError,
    InvalidArgumentError,
    InvalidStateError,
    SubscriptionError,
)
from campussync.local import AnomalyKind, ScopeFilter
from campussync.models import ChangeEvent, LoadState, SubscriptionState
from campussync.sync.memory import InMemoryChangeStream, InMemorySubscription
from campussync.sync.synchronizer import ChangeSynchronizer


class FakeLoader:
    """Snapshot loader whose result can be held back with `gate`."""

    def __init__(self, rows: Any = None, error: Optional[Exception] = None, gated: bool = False) -> None:
        self.rows = rows or []
        self.error = error
        self.gate = asyncio.Event()
        if not gated:
            self.gate.set()
        self.calls: list[tuple[str, Optional[ScopeFilter]]] = []

    async def load(self, collection: str, scope: Optional[ScopeFilter] = None) -> list[dict[str, Any]]:
        self.calls.append((collection, scope))
        await self.gate.wait()
        if self.error is not None:
            raise self.error
        return [dict(row) for row in self.rows]


class RecordingStream(InMemoryChangeStream):
    def __init__(self) -> None:
        super().__init__()
        self.opened: list[InMemorySubscription] = []

    async def subscribe(self, table, scope, *, on_event, on_status):  # type: ignore[override]
        subscription = await super().subscribe(table, scope, on_event=on_event, on_status=on_status)
        self.opened.append(subscription)
        return subscription


class FailingStream(InMemoryChangeStream):
    async def subscribe(self, table, scope, *, on_event, on_status):  # type: ignore[override]
        raise SubscriptionError("Failed to connect to the change stream")


class Recorder:
    def __init__(self) -> None:
        self.changes: list[tuple[dict[str, Any], ...]] = []
        self.snapshots: list[tuple[dict[str, Any], ...]] = []
        self.errors: list[CampusSyncError] = []
        self.states: list[SubscriptionState] = []

    def callbacks(self) -> dict[str, Any]:
        return {
            "on_change": self.changes.append,
            "on_snapshot": self.snapshots.append,
            "on_error": self.errors.append,
            "on_state": self.states.append,
        }


async def _until(predicate: Any, timeout: float = 1.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not reached")
        await asyncio.sleep(0)


class TestChangeSynchronizer(unittest.IsolatedAsyncioTestCase):
    async def test_end_to_end_resources(self) -> None:
        stream = RecordingStream()
        loader = FakeLoader([{"id": 1, "name": "Room A", "status": "AVAILABLE"}])
        sync = ChangeSynchronizer(loader, stream)  # type: ignore[arg-type]
        rec = Recorder()

        handle = sync.activate("resources", **rec.callbacks())
        await handle.wait_loaded()

        stream.publish(ChangeEvent.insert("resources", {"id": 2, "name": "Room B", "status": "AVAILABLE"}))
        stream.publish(ChangeEvent.update("resources", {"id": 1, "status": "UNAVAILABLE"}))
        stream.publish(ChangeEvent.delete("resources", {"id": 2}))

        self.assertEqual(handle.items, ({"id": 1, "name": "Room A", "status": "UNAVAILABLE"},))
        self.assertEqual([len(items) for items in rec.changes], [2, 2, 1])
        self.assertEqual(rec.snapshots, [({"id": 1, "name": "Room A", "status": "AVAILABLE"},)])
        self.assertEqual(rec.errors, [])
        self.assertEqual(rec.states, [SubscriptionState.OPEN])
        self.assertEqual(handle.events_applied, 3)
        self.assertIs(handle.load_state, LoadState.LOADED)

        await sync.deactivate(handle)

    async def test_events_during_load_are_buffered_and_replayed(self) -> None:
        stream = RecordingStream()
        loader = FakeLoader([{"id": 1, "name": "Room A"}], gated=True)
        sync = ChangeSynchronizer(loader, stream)  # type: ignore[arg-type]
        rec = Recorder()

        handle = sync.activate("resources", **rec.callbacks())
        await _until(lambda: loader.calls)

        stream.publish(ChangeEvent.insert("resources", {"id": 2, "name": "Room B"}))
        stream.publish(ChangeEvent.insert("resources", {"id": 1, "name": "Room A"}))
        self.assertEqual(rec.changes, [])
        self.assertIs(handle.load_state, LoadState.LOADING)

        loader.gate.set()
        items = await handle.wait_loaded()

        self.assertEqual([row["id"] for row in items], [1, 2])
        self.assertEqual(len(rec.snapshots), 1)
        self.assertEqual(len(rec.changes), 1)
        self.assertEqual(handle.anomalies[AnomalyKind.DUPLICATE_INSERT], 1)
        await sync.deactivate(handle)

    async def test_no_delivery_after_deactivate(self) -> None:
        stream = RecordingStream()
        sync = ChangeSynchronizer(FakeLoader([{"id": 1}]), stream)  # type: ignore[arg-type]
        rec = Recorder()

        handle = sync.activate("users", **rec.callbacks())
        await handle.wait_loaded()
        await sync.deactivate(handle)

        handle.receive(ChangeEvent.insert("users", {"id": 2}))
        self.assertEqual(stream.publish(ChangeEvent.insert("users", {"id": 3})), 0)
        self.assertEqual(rec.changes, [])
        self.assertEqual(handle.items, ())
        self.assertFalse(handle.active)
        self.assertEqual(sync.active_handles, [])

    async def test_deactivate_discards_local_view(self) -> None:
        stream = RecordingStream()
        sync = ChangeSynchronizer(FakeLoader([{"id": 1}, {"id": 2}]), stream)  # type: ignore[arg-type]
        handle = sync.activate("users", on_change=lambda items: None)
        await handle.wait_loaded()
        self.assertEqual(len(handle.items), 2)

        await sync.deactivate(handle)

        self.assertEqual(handle.items, ())
        self.assertEqual(len(handle.state), 0)
        self.assertFalse(handle.state.has(1))

    async def test_unexpected_load_error_is_terminal(self) -> None:
        stream = RecordingStream()
        loader = FakeLoader(error=RuntimeError("decoder crashed"))
        sync = ChangeSynchronizer(loader, stream)  # type: ignore[arg-type]
        rec = Recorder()

        with self.assertLogs("campussync.sync.synchronizer", level="ERROR"):
            handle = sync.activate("users", **rec.callbacks())
            with self.assertRaises(FetchError) as cm:
                await asyncio.wait_for(handle.wait_loaded(), 1.0)

        self.assertIsInstance(cm.exception.cause, RuntimeError)
        self.assertIs(handle.load_state, LoadState.FAILED)
        self.assertEqual(len(rec.errors), 1)
        self.assertIsInstance(rec.errors[0], FetchError)
        self.assertEqual(stream.opened[0].close_calls, 1)

    async def test_failing_normalizer_fails_the_load(self) -> None:
        def normalizer(row: Any) -> dict[str, Any]:
            raise ValueError("bad column name")

        stream = RecordingStream()
        sync = ChangeSynchronizer(
            FakeLoader([{"id": 1}]), stream, normalizer=normalizer  # type: ignore[arg-type]
        )
        rec = Recorder()

        with self.assertLogs("campussync.sync.synchronizer", level="ERROR"):
            handle = sync.activate("users", **rec.callbacks())
            with self.assertRaises(FetchError):
                await asyncio.wait_for(handle.wait_loaded(), 1.0)

        self.assertIs(handle.load_state, LoadState.FAILED)
        self.assertEqual(rec.snapshots, [])
        self.assertEqual([type(e) for e in rec.errors], [FetchError])
        await sync.deactivate(handle)

    async def test_underscore_only_columns_load(self) -> None:
        sync = ChangeSynchronizer(FakeLoader([{"id": 1, "_": 0}]), RecordingStream())  # type: ignore[arg-type]
        handle = sync.activate("users", on_change=lambda items: None)
        items = await asyncio.wait_for(handle.wait_loaded(), 1.0)
        self.assertEqual(items, ({"id": 1, "_": 0},))
        await sync.deactivate(handle)

    async def test_deactivate_is_idempotent_and_closes_channel_once(self) -> None:
        stream = RecordingStream()
        sync = ChangeSynchronizer(FakeLoader([]), stream)  # type: ignore[arg-type]
        handle = sync.activate("users", on_change=lambda items: None)
        await handle.wait_loaded()

        await sync.deactivate(handle)
        await sync.deactivate(handle)
        await sync.deactivate(handle)

        self.assertEqual(len(stream.opened), 1)
        self.assertEqual(stream.opened[0].close_calls, 1)
        self.assertEqual(stream.open_channels, [])

    async def test_late_snapshot_is_ignored(self) -> None:
        stream = RecordingStream()
        loader = FakeLoader([{"id": 1}], gated=True)
        sync = ChangeSynchronizer(loader, stream)  # type: ignore[arg-type]
        rec = Recorder()

        handle = sync.activate("resources", **rec.callbacks())
        await _until(lambda: loader.calls)
        await sync.deactivate(handle)
        loader.gate.set()
        await asyncio.sleep(0)

        self.assertFalse(handle.install_snapshot([{"id": 1}]))
        self.assertEqual(rec.snapshots, [])
        self.assertEqual(handle.items, ())
        self.assertTrue(handle.task.done())
        self.assertEqual(stream.opened[0].close_calls, 1)
        with self.assertRaises(InvalidStateError):
            await handle.wait_loaded()

    async def test_attach_after_deactivate_is_refused(self) -> None:
        stream = RecordingStream()
        sync = ChangeSynchronizer(FakeLoader([]), stream)  # type: ignore[arg-type]
        handle = sync.activate("users", on_change=lambda items: None)
        await sync.deactivate(handle)

        late = await stream.subscribe("users", None, on_event=handle.receive, on_status=handle.stream_status)
        self.assertFalse(handle.attach(late))

    async def test_snapshot_failure_reports_fetch_error(self) -> None:
        stream = RecordingStream()
        loader = FakeLoader(error=FetchError("Failed to load users"))
        sync = ChangeSynchronizer(loader, stream)  # type: ignore[arg-type]
        rec = Recorder()

        handle = sync.activate("users", **rec.callbacks())
        with self.assertRaises(FetchError):
            await handle.wait_loaded()

        self.assertIs(handle.load_state, LoadState.FAILED)
        self.assertEqual(len(rec.errors), 1)
        self.assertIsInstance(rec.errors[0], FetchError)
        self.assertEqual(rec.states, [SubscriptionState.OPEN, SubscriptionState.CLOSED])
        self.assertEqual(stream.opened[0].close_calls, 1)
        self.assertEqual(rec.changes, [])

        await sync.deactivate(handle)
        self.assertEqual(stream.opened[0].close_calls, 1)

    async def test_subscription_failure_still_loads_snapshot(self) -> None:
        sync = ChangeSynchronizer(FakeLoader([{"id": 1}]), FailingStream())  # type: ignore[arg-type]
        rec = Recorder()

        handle = sync.activate("resources", **rec.callbacks())
        items = await handle.wait_loaded()

        self.assertEqual(items, ({"id": 1},))
        self.assertIs(handle.subscription_state, SubscriptionState.CLOSED)
        self.assertEqual(len(rec.errors), 1)
        self.assertIsInstance(rec.errors[0], SubscriptionError)
        await sync.deactivate(handle)

    async def test_connection_loss_is_reported_once(self) -> None:
        stream = RecordingStream()
        sync = ChangeSynchronizer(FakeLoader([{"id": 1}]), stream)  # type: ignore[arg-type]
        rec = Recorder()

        handle = sync.activate("resources", **rec.callbacks())
        await handle.wait_loaded()
        stream.drop("resources")
        handle.stream_status(SubscriptionState.CLOSED, None)

        self.assertEqual(len(rec.errors), 1)
        self.assertIsInstance(rec.errors[0], SubscriptionError)
        self.assertEqual(rec.states, [SubscriptionState.OPEN, SubscriptionState.CLOSED])
        self.assertEqual(handle.items, ({"id": 1},))
        await sync.deactivate(handle)

    async def test_scope_is_applied_to_snapshot_and_events(self) -> None:
        stream = RecordingStream()
        loader = FakeLoader(
            [
                {"id": 1, "name": "Room A", "status": "AVAILABLE"},
                {"id": 2, "name": "Room B", "status": "UNAVAILABLE"},
            ]
        )
        sync = ChangeSynchronizer(loader, stream)  # type: ignore[arg-type]
        scope = ScopeFilter.eq("status", "AVAILABLE")

        handle = sync.activate("resources", scope, on_change=lambda items: None)
        await handle.wait_loaded()
        self.assertEqual([row["id"] for row in handle.items], [1])
        self.assertEqual(handle.channel_key, "realtime-resources-status=eq.AVAILABLE")

        stream.publish(
            ChangeEvent.update(
                "resources",
                {"id": 1, "status": "UNAVAILABLE"},
                old_row={"id": 1, "status": "AVAILABLE"},
            )
        )
        self.assertEqual(handle.items, ())
        await sync.deactivate(handle)

    async def test_rows_are_normalised_to_camel_case(self) -> None:
        stream = RecordingStream()
        sync = ChangeSynchronizer(FakeLoader([{"id": 1, "userId": 4}]), stream)  # type: ignore[arg-type]
        handle = sync.activate("bookings", on_change=lambda items: None)
        await handle.wait_loaded()

        stream.publish(ChangeEvent.insert("bookings", {"id": 2, "user_id": 5, "resource_id": 7}))
        stream.publish(ChangeEvent.update("bookings", {"id": 1, "status": "APPROVED", "user_id": 4}))

        self.assertEqual(
            handle.items,
            ({"id": 1, "userId": 4, "status": "APPROVED"}, {"id": 2, "userId": 5, "resourceId": 7}),
        )
        await sync.deactivate(handle)

    async def test_activations_are_independent(self) -> None:
        stream = RecordingStream()
        sync = ChangeSynchronizer(FakeLoader([]), stream)  # type: ignore[arg-type]
        first = sync.activate("users", on_change=lambda items: None)
        second = sync.activate("users", on_change=lambda items: None)
        await first.wait_loaded()
        await second.wait_loaded()
        self.assertNotEqual(first.handle_id, second.handle_id)
        self.assertEqual(len(stream.opened), 2)

        await sync.deactivate(first)
        stream.publish(ChangeEvent.insert("users", {"id": 1}))
        self.assertEqual(first.items, ())
        self.assertEqual(second.items, ({"id": 1},))
        await sync.close()
        self.assertFalse(second.active)

    async def test_failing_callback_does_not_stop_delivery(self) -> None:
        stream = RecordingStream()
        sync = ChangeSynchronizer(FakeLoader([]), stream)  # type: ignore[arg-type]
        calls: list[int] = []

        def on_change(items: Any) -> None:
            calls.append(len(items))
            raise RuntimeError("view crashed")

        handle = sync.activate("users", on_change=on_change)
        await handle.wait_loaded()
        with self.assertLogs("campussync.sync.handle", level="ERROR"):
            stream.publish(ChangeEvent.insert("users", {"id": 1}))
        stream.publish(ChangeEvent.insert("users", {"id": 2}))

        self.assertEqual(calls, [1, 2])
        self.assertEqual(len(handle.items), 2)
        await sync.deactivate(handle)

    async def test_activate_rejects_empty_collection(self) -> None:
        sync = ChangeSynchronizer(FakeLoader(), RecordingStream())  # type: ignore[arg-type]
        with self.assertRaises(InvalidArgumentError):
            sync.activate(" ", on_change=lambda items: None)


class TestActivateWithoutLoop(unittest.TestCase):
    def test_requires_running_loop(self) -> None:
        sync = ChangeSynchronizer(FakeLoader(), InMemoryChangeStream())  # type: ignore[arg-type]
        with self.assertRaises(InvalidStateError):
            sync.activate("users", on_change=lambda items: None)


if __name__ == "__main__":
    unittest.main()
