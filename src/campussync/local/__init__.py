"""Local (in-memory) collection state for campussync."""

from __future__ import annotations

from .collection import AnomalyKind, ApplyResult, CollectionState, apply_event
from .filters import OPERATORS, ScopeFilter, channel_key

__all__ = [
    "AnomalyKind",
    "ApplyResult",
    "CollectionState",
    "apply_event",
    "OPERATORS",
    "ScopeFilter",
    "channel_key",
]
