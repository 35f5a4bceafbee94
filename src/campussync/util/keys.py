"""Row key normalisation between database columns and API field names."""

from __future__ import annotations

from typing import Any, Mapping


def to_camel(name: str) -> str:
    """Convert a snake_case column name to camelCase ("user_id" -> "userId")."""
    if "_" not in name:
        return name
    parts = [part for part in name.split("_") if part]
    if not parts:
        return name
    head, *rest = parts
    if not rest:
        return head
    return head + "".join(part[:1].upper() + part[1:] for part in rest)


def camelize_keys(row: Mapping[str, Any]) -> dict[str, Any]:
    """Return a copy of `row` with every top-level key in camelCase."""
    return {to_camel(key): value for key, value in row.items()}
