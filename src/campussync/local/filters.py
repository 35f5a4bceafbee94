"""Scope filters restricting a snapshot/subscription to a subset of rows."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping, Optional

from campussync.util.keys import to_camel

OPERATORS: tuple[str, ...] = ("eq", "neq", "lt", "lte", "gt", "gte", "in")

_MISSING = object()


@dataclass(slots=True, frozen=True)
class ScopeFilter:
    """
    A single-column predicate in the change stream's filter syntax.

    Expression form: `<column>=<op>.<value>`, e.g. `status=eq.AVAILABLE` or
    `id=in.(1,2,3)`. `column` is the database column name; matching against
    API rows also accepts its camelCase form.
    """

    column: str
    value: Any
    op: str = "eq"

    def __post_init__(self) -> None:
        if not isinstance(self.column, str) or not self.column.strip():
            raise ValueError("ScopeFilter.column must be a non-empty string")
        if self.op not in OPERATORS:
            raise ValueError(f"Unsupported filter operator: {self.op}")
        if self.op == "in":
            if isinstance(self.value, (str, bytes)) or not hasattr(self.value, "__iter__"):
                raise ValueError("'in' filter requires a sequence of values")
            object.__setattr__(self, "value", tuple(self.value))
        elif isinstance(self.value, (list, tuple, set, dict)):
            raise ValueError(f"'{self.op}' filter requires a scalar value")

    @classmethod
    def eq(cls, column: str, value: Any) -> ScopeFilter:
        return cls(column=column, value=value)

    @classmethod
    def parse(cls, expression: str) -> ScopeFilter:
        """Parse `column=op.value`. Raises ValueError on malformed input."""
        column, sep, rest = expression.partition("=")
        op, dot, raw = rest.partition(".")
        if not sep or not dot or not column.strip():
            raise ValueError(f"Malformed filter expression: {expression!r}")
        if op == "in":
            if not (raw.startswith("(") and raw.endswith(")")):
                raise ValueError(f"Malformed 'in' filter value: {raw!r}")
            items = [item.strip() for item in raw[1:-1].split(",") if item.strip()]
            return cls(column=column.strip(), value=tuple(items), op=op)
        return cls(column=column.strip(), value=raw, op=op)

    def to_expression(self) -> str:
        if self.op == "in":
            joined = ",".join(_format_value(v) for v in self.value)
            return f"{self.column}=in.({joined})"
        return f"{self.column}={self.op}.{_format_value(self.value)}"

    def matches(self, row: Mapping[str, Any]) -> bool:
        """
        Evaluate the predicate against a row.

        A row that does not carry the column (e.g. a key-only DELETE row)
        cannot be judged and is treated as matching.
        """
        actual = row.get(self.column, _MISSING)
        if actual is _MISSING:
            actual = row.get(to_camel(self.column), _MISSING)
        if actual is _MISSING:
            return True

        if self.op == "in":
            return any(_equal(actual, candidate) for candidate in self.value)
        if self.op == "eq":
            return _equal(actual, self.value)
        if self.op == "neq":
            return not _equal(actual, self.value)

        expected = _coerce(self.value, like=actual)
        try:
            if self.op == "lt":
                return actual < expected
            if self.op == "lte":
                return actual <= expected
            if self.op == "gt":
                return actual > expected
            return actual >= expected
        except TypeError:
            return False

    def __str__(self) -> str:
        return self.to_expression()


def channel_key(table: str, scope: Optional[ScopeFilter] = None) -> str:
    """Channel name for a (table, scope) pair."""
    if scope is None:
        return f"realtime-{table}"
    return f"realtime-{table}-{scope.to_expression()}"


def _format_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if hasattr(value, "value") and isinstance(getattr(value, "value"), str):
        return value.value  # str-valued Enum
    return str(value)


def _equal(actual: Any, expected: Any) -> bool:
    if actual is None:
        return expected is None or _format_value(expected) == "null"
    return actual == _coerce(expected, like=actual)


def _coerce(value: Any, *, like: Any) -> Any:
    """Convert a filter value (often parsed text) to the type of a row value."""
    if not isinstance(value, str):
        if isinstance(like, str):
            return _format_value(value)
        return value
    if isinstance(like, bool):
        return value.lower() == "true"
    if isinstance(like, int):
        try:
            return int(value)
        except ValueError:
            return value
    if isinstance(like, float):
        try:
            return float(value)
        except ValueError:
            return value
    return value
