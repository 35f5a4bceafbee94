"""Synchronization layer: snapshot loading + live change streams."""

from __future__ import annotations

from .handle import SyncHandle
from .loader import SnapshotLoader
from .memory import InMemoryChangeStream, InMemorySubscription
from .realtime import RealtimeChangeStream, RealtimeSubscription
from .stream import ChangeStream, EventCallback, StatusCallback, StreamSubscription
from .synchronizer import ChangeSynchronizer

__all__ = [
    "ChangeSynchronizer",
    "SyncHandle",
    "SnapshotLoader",
    "ChangeStream",
    "StreamSubscription",
    "EventCallback",
    "StatusCallback",
    "RealtimeChangeStream",
    "RealtimeSubscription",
    "InMemoryChangeStream",
    "InMemorySubscription",
]
