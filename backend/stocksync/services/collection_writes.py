"""Collection Writes — record lookup and ordered multi-collection persistence.

Invariants:
    - write_collections() lands writes in the given order
    - If a later write fails, every earlier write is restored to its previous list
      (reverse order) and the original error is re-raised
    - If a restore fails too, TransactionInconsistency is raised: the store is
      known to be half-written and needs a repair pass
    - Callers hold CollectionLocks for every name they write

Design Decisions:
    - Compensating writes instead of transactions: KeyedStore offers no
      multi-record transaction, only whole-list set()
"""

import logging
from dataclasses import dataclass

from stocksync.core.domain_types import Collection, Record
from stocksync.core.errors import (
    ErrorContext,
    ResourceNotFoundError,
    TransactionInconsistency,
)
from stocksync.core.repository_protocols import KeyedStore

logger = logging.getLogger(__name__)

_RESOURCE_NAMES = {
    Collection.WAREHOUSE_ITEMS: "Item",
    Collection.PROJECTS: "Project",
    Collection.SPOTS: "Spot",
    Collection.WAREHOUSE_CATEGORIES: "Category",
    Collection.PROJECT_CATEGORIES: "Category",
    Collection.HISTORY: "History entry",
    Collection.PROFILE: "Profile",
}


@dataclass
class PendingWrite:
    """One collection's next list, plus the list it replaces."""
    name: str
    records: list[Record]
    previous: list[Record]


def index_of(records: list[Record], id_field: str, record_id: str) -> int | None:
    for i, record in enumerate(records):
        if record.get(id_field) == record_id:
            return i
    return None


def require_record(
    records: list[Record], collection: Collection, record_id: str,
) -> tuple[int, Record]:
    """(index, record) for record_id, or ResourceNotFoundError."""
    i = index_of(records, collection.id_field, record_id)
    if i is None:
        raise ResourceNotFoundError(
            _RESOURCE_NAMES[collection], record_id,
            context=ErrorContext(collection=collection.value),
        )
    return i, records[i]


def replace_at(records: list[Record], index: int, record: Record) -> list[Record]:
    updated = list(records)
    updated[index] = record
    return updated


async def write_collections(store: KeyedStore, writes: list[PendingWrite]) -> None:
    """Persist writes in order; on failure restore the ones that landed."""
    landed: list[PendingWrite] = []
    for write in writes:
        try:
            await store.set(write.name, write.records)
        except Exception as e:
            logger.error(
                f"Write to '{write.name}' failed, restoring {len(landed)} collection(s): {e}",
                extra={"collection": write.name},
            )
            for done in reversed(landed):
                try:
                    await store.set(done.name, done.previous)
                except Exception as restore_error:
                    raise TransactionInconsistency(
                        f"Could not restore '{done.name}' after failed write "
                        f"to '{write.name}': {restore_error}",
                        kind="partial_write",
                        context=ErrorContext(collection=done.name),
                    ) from e
            raise
        landed.append(write)
