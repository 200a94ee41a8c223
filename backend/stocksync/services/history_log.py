"""History Log — append-only audit trail of local mutations.

Invariants:
    - Entries are appended under the history lock only; they never gate the
      mutation they describe (a failed append is logged, the mutation stands)
    - Entry shape: {id, user, action, description, date}; date is ISO-8601 UTC
    - The sync pulls the same collection, so server entries merge by id
"""

import logging
import uuid
from datetime import datetime, timezone

from stocksync.core.domain_types import Collection, HistoryAction, Record
from stocksync.core.errors import StockSyncError
from stocksync.core.repository_protocols import KeyedStore
from stocksync.services.collection_locks import CollectionLocks

logger = logging.getLogger(__name__)

HISTORY = Collection.HISTORY


def build_entry(user: str, action: HistoryAction, description: str) -> Record:
    return {
        "id": uuid.uuid4().hex,
        "user": user,
        "action": action.value,
        "description": description,
        "date": datetime.now(timezone.utc).isoformat(),
    }


class HistoryLog:
    def __init__(self, store: KeyedStore, locks: CollectionLocks):
        self._store = store
        self._locks = locks

    async def record(
        self, user: str, action: HistoryAction, description: str,
    ) -> Record | None:
        entry = build_entry(user, action, description)
        try:
            async with self._locks.hold(HISTORY.value):
                entries = await self._store.get(HISTORY.value)
                await self._store.set(HISTORY.value, entries + [entry])
        except StockSyncError as e:
            logger.error(
                f"History append failed: {e.message}",
                extra={"error_code": e.code, "collection": HISTORY.value},
            )
            return None
        return entry

    async def entries(self, user: str | None = None) -> list[Record]:
        async with self._locks.hold(HISTORY.value):
            entries = await self._store.get(HISTORY.value)
        if user is None:
            return entries
        return [e for e in entries if e.get("user") == user]
