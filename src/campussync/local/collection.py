"""Synchronized collection state and the pure event-application reducer."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterable, Mapping, Optional

from campussync.models import ChangeEvent, ChangeKind, Row

from .filters import ScopeFilter


class AnomalyKind(str, Enum):
    """Non-fatal conditions resolved silently while applying events."""

    DUPLICATE_INSERT = "DUPLICATE_INSERT"
    UPDATE_MISSING = "UPDATE_MISSING"
    DELETE_MISSING = "DELETE_MISSING"
    OUT_OF_SCOPE = "OUT_OF_SCOPE"
    MISSING_IDENTITY = "MISSING_IDENTITY"
    DUPLICATE_SNAPSHOT_ROW = "DUPLICATE_SNAPSHOT_ROW"


@dataclass(slots=True, frozen=True)
class CollectionState:
    """
    Local view of one remote table for one active context.

    Invariants:
        - at most one row per identity value
        - `items` keeps arrival/snapshot order
        - never mutated; every accepted change produces a new state
    """

    items: tuple[Row, ...] = ()
    identity_key: str = "id"
    _positions: dict[Any, int] = field(default_factory=dict, init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        positions: dict[Any, int] = {}
        for index, row in enumerate(self.items):
            positions[row.get(self.identity_key)] = index
        object.__setattr__(self, "_positions", positions)

    @classmethod
    def from_rows(
        cls,
        rows: Iterable[Mapping[str, Any]],
        *,
        identity_key: str = "id",
        scope: Optional[ScopeFilter] = None,
    ) -> tuple[CollectionState, list[AnomalyKind]]:
        """
        Build the initial state from a snapshot.

        Rows outside `scope` are dropped. A repeated identity replaces the
        earlier row in place. Rows without an identity are skipped.
        """
        ordered: list[Row] = []
        positions: dict[Any, int] = {}
        anomalies: list[AnomalyKind] = []

        for raw in rows:
            row = dict(raw)
            identity = row.get(identity_key)
            if identity is None:
                anomalies.append(AnomalyKind.MISSING_IDENTITY)
                continue
            if scope is not None and not scope.matches(row):
                continue
            if identity in positions:
                ordered[positions[identity]] = row
                anomalies.append(AnomalyKind.DUPLICATE_SNAPSHOT_ROW)
                continue
            positions[identity] = len(ordered)
            ordered.append(row)

        return cls(items=tuple(ordered), identity_key=identity_key), anomalies

    def __len__(self) -> int:
        return len(self.items)

    def has(self, identity: Any) -> bool:
        return identity in self._positions

    def get(self, identity: Any) -> Optional[Row]:
        index = self._positions.get(identity)
        if index is None:
            return None
        return self.items[index]

    def index_of(self, identity: Any) -> Optional[int]:
        return self._positions.get(identity)

    def ids(self) -> list[Any]:
        return [row.get(self.identity_key) for row in self.items]

    # ----------------------------
    # Structural changes (return new states)
    # ----------------------------
    def appended(self, row: Row) -> CollectionState:
        return CollectionState(items=self.items + (row,), identity_key=self.identity_key)

    def replaced(self, index: int, row: Row) -> CollectionState:
        items = self.items[:index] + (row,) + self.items[index + 1:]
        return CollectionState(items=items, identity_key=self.identity_key)

    def removed(self, index: int) -> CollectionState:
        items = self.items[:index] + self.items[index + 1:]
        return CollectionState(items=items, identity_key=self.identity_key)


@dataclass(slots=True, frozen=True)
class ApplyResult:
    """Outcome of applying one event. `state` is the input state when unchanged."""

    state: CollectionState
    changed: bool
    anomaly: Optional[AnomalyKind] = None


def apply_event(
    state: CollectionState,
    event: ChangeEvent,
    scope: Optional[ScopeFilter] = None,
) -> ApplyResult:
    """
    Apply one change event to `state`.

    Rules:
        - INSERT: append unless the identity is already present.
        - UPDATE: merge new_row over the existing row, keeping its position;
          insert when absent. With a scope, a row whose new values fall
          outside it is removed.
        - DELETE: remove when present, otherwise no-op.
    """
    try:
        identity = event.identity(state.identity_key)
    except KeyError:
        return ApplyResult(state=state, changed=False, anomaly=AnomalyKind.MISSING_IDENTITY)

    index = state.index_of(identity)

    if event.kind is ChangeKind.INSERT:
        if index is not None:
            return ApplyResult(state=state, changed=False, anomaly=AnomalyKind.DUPLICATE_INSERT)
        row = dict(event.new_row or {})
        if scope is not None and not scope.matches(row):
            return ApplyResult(state=state, changed=False, anomaly=AnomalyKind.OUT_OF_SCOPE)
        return ApplyResult(state=state.appended(row), changed=True)

    if event.kind is ChangeKind.UPDATE:
        new_row = dict(event.new_row or {})
        if scope is not None and not scope.matches(new_row):
            if index is None:
                return ApplyResult(state=state, changed=False, anomaly=AnomalyKind.OUT_OF_SCOPE)
            return ApplyResult(state=state.removed(index), changed=True)
        if index is None:
            return ApplyResult(
                state=state.appended(new_row),
                changed=True,
                anomaly=AnomalyKind.UPDATE_MISSING,
            )
        merged = {**state.items[index], **new_row}
        return ApplyResult(state=state.replaced(index, merged), changed=True)

    # DELETE
    if index is None:
        return ApplyResult(state=state, changed=False, anomaly=AnomalyKind.DELETE_MISSING)
    return ApplyResult(state=state.removed(index), changed=True)
