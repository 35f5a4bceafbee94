"""Row-level change events delivered by the change stream."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Mapping, Optional

Row = dict[str, Any]


class ChangeKind(str, Enum):
    """Kinds of row mutation."""

    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


@dataclass(slots=True, frozen=True)
class ChangeEvent:
    """
    A single notification of a row mutation.

    Invariants (checked on construction):
        - INSERT carries new_row
        - UPDATE carries new_row (old_row may hold only the primary key, or be
          absent when the table does not publish old values)
        - DELETE carries old_row

    `commit_timestamp` is informational; events are applied in delivery order.
    """

    kind: ChangeKind
    table: str
    new_row: Optional[Row] = None
    old_row: Optional[Row] = None
    commit_timestamp: Optional[datetime] = None

    def __post_init__(self) -> None:
        if not isinstance(self.kind, ChangeKind):
            object.__setattr__(self, "kind", ChangeKind(self.kind))
        if not isinstance(self.table, str) or not self.table:
            raise ValueError("ChangeEvent.table must be a non-empty string")
        if self.kind in (ChangeKind.INSERT, ChangeKind.UPDATE) and not self.new_row:
            raise ValueError(f"{self.kind.value} event requires new_row")
        if self.kind is ChangeKind.DELETE and not self.old_row:
            raise ValueError("DELETE event requires old_row")

    def row(self) -> Row:
        """The row describing the current (or, for DELETE, last) state."""
        if self.kind is ChangeKind.DELETE:
            return self.old_row or {}
        return self.new_row or {}

    def identity(self, key: str = "id") -> Any:
        """
        Extract the identity value.

        Raises:
            KeyError: when neither row carries `key`.
        """
        primary = self.row()
        if primary.get(key) is not None:
            return primary[key]
        fallback = self.old_row or {}
        if fallback.get(key) is not None:
            return fallback[key]
        raise KeyError(key)

    def map_rows(self, fn: Callable[[Mapping[str, Any]], Row]) -> ChangeEvent:
        """Return a copy with both rows passed through `fn`."""
        return ChangeEvent(
            kind=self.kind,
            table=self.table,
            new_row=fn(self.new_row) if self.new_row is not None else None,
            old_row=fn(self.old_row) if self.old_row is not None else None,
            commit_timestamp=self.commit_timestamp,
        )

    @classmethod
    def insert(cls, table: str, row: Mapping[str, Any]) -> ChangeEvent:
        return cls(kind=ChangeKind.INSERT, table=table, new_row=dict(row))

    @classmethod
    def update(
        cls,
        table: str,
        row: Mapping[str, Any],
        old_row: Optional[Mapping[str, Any]] = None,
    ) -> ChangeEvent:
        return cls(
            kind=ChangeKind.UPDATE,
            table=table,
            new_row=dict(row),
            old_row=dict(old_row) if old_row is not None else None,
        )

    @classmethod
    def delete(cls, table: str, old_row: Mapping[str, Any]) -> ChangeEvent:
        return cls(kind=ChangeKind.DELETE, table=table, old_row=dict(old_row))
