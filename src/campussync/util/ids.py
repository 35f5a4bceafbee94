from __future__ import annotations

import itertools
import uuid
from typing import Iterator


def new_uuid() -> str:
    """Generate a UUID4 string."""
    return str(uuid.uuid4())


def new_handle_id() -> str:
    """Generate a new SyncHandle ID."""
    return new_uuid()


def ref_counter(start: int = 1) -> Iterator[str]:
    """Yield message refs ("1", "2", ...) for one realtime connection."""
    return (str(n) for n in itertools.count(start))
