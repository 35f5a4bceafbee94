"""Registry of the synchronized tables and their record types."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable, Mapping, Union

from campussync.errors import InvalidArgumentError

from .records import Booking, Resource, User

Record = Union[User, Resource, Booking]


@dataclass(slots=True, frozen=True)
class TableSpec:
    """Static description of one table: name and record type."""

    name: str
    record_type: type

    def decode(self, row: Mapping[str, Any]) -> Record:
        return self.record_type.from_dict(row)


USERS = TableSpec(name="users", record_type=User)
RESOURCES = TableSpec(name="resources", record_type=Resource)
BOOKINGS = TableSpec(name="bookings", record_type=Booking)

TABLES: dict[str, TableSpec] = {spec.name: spec for spec in (USERS, RESOURCES, BOOKINGS)}


def get_table(name: str) -> TableSpec:
    """Look up a TableSpec by name. Raises InvalidArgumentError if unknown."""
    spec = TABLES.get(name)
    if spec is None:
        raise InvalidArgumentError(
            "Unknown table",
            details={"table": name, "known": sorted(TABLES)},
        )
    return spec


def decode_rows(table: str, rows: Iterable[Mapping[str, Any]]) -> list[Record]:
    """Decode synchronized rows of `table` into typed records."""
    spec = get_table(table)
    return [spec.decode(row) for row in rows]
