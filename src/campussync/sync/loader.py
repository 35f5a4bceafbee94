"""SnapshotLoader: one bulk read of a collection."""

from __future__ import annotations

import logging
from typing import Optional

from campussync.controller import CampusApiClient
from campussync.errors import FetchError, RequestError
from campussync.local import ScopeFilter
from campussync.models import Row

logger = logging.getLogger(__name__)


class SnapshotLoader:
    """Fetch the current contents of a collection (no shared state)."""

    def __init__(self, client: CampusApiClient) -> None:
        self._client = client

    async def load(self, collection: str, scope: Optional[ScopeFilter] = None) -> list[Row]:
        """
        Return every row of `collection` within `scope`, in store order.

        Raises:
            FetchError: on network, auth, HTTP or payload failure. `cause`
                holds the underlying RequestError.
        """
        try:
            rows = await self._client.list_rows(collection)
        except RequestError as exc:
            raise FetchError(
                f"Failed to load {collection}",
                details={
                    "collection": collection,
                    "scope": scope.to_expression() if scope else None,
                    "error_type": exc.__class__.__name__,
                    **exc.details,
                },
                cause=exc,
            ) from exc

        if scope is not None:
            rows = [row for row in rows if scope.matches(row)]
        logger.debug(f"Loaded {len(rows)} {collection} rows (scope={scope})")
        return rows
