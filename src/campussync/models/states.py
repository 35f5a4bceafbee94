"""Lifecycle states for subscriptions and snapshot loads."""

from __future__ import annotations

from enum import Enum


class SubscriptionState(str, Enum):
    """State of a change-stream channel."""

    CONNECTING = "CONNECTING"
    OPEN = "OPEN"
    CLOSED = "CLOSED"


class LoadState(str, Enum):
    """State of the snapshot load for one activation. FAILED is terminal."""

    IDLE = "IDLE"
    LOADING = "LOADING"
    LOADED = "LOADED"
    FAILED = "FAILED"
