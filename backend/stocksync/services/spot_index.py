"""Spot Assignment Index — spot ↔ item membership.

Invariants:
    - assign holds warehouseItems + spots (the item must exist); unassign holds spots
    - Every id in a spot's reservedItems references an existing item
    - unassign of an absent membership succeeds silently
    - unassign_everywhere() and prune_dangling_unlocked() run inside a caller's
      critical section (item delete, sync merge); they never take locks
"""

import logging
from collections.abc import Hashable

from stocksync.core.domain_types import Collection, ItemId, Record, SpotId
from stocksync.core.repository_protocols import KeyedStore
from stocksync.core.spot_rules import (
    prune_missing_items,
    spots_referencing,
    with_item,
    without_item,
)
from stocksync.services.collection_locks import CollectionLocks
from stocksync.services.collection_writes import replace_at, require_record

logger = logging.getLogger(__name__)

ITEMS = Collection.WAREHOUSE_ITEMS
SPOTS = Collection.SPOTS


class SpotAssignmentIndex:
    """Maintains which items sit in which storage spot."""

    def __init__(self, store: KeyedStore, locks: CollectionLocks):
        self._store = store
        self._locks = locks

    async def assign(self, spot_id: SpotId, item_id: ItemId) -> Record:
        async with self._locks.hold(ITEMS.value, SPOTS.value):
            spots = await self._store.get(SPOTS.value)
            s, spot = require_record(spots, SPOTS, spot_id)
            require_record(await self._store.get(ITEMS.value), ITEMS, item_id)

            new_spot, changed = with_item(spot, item_id)
            if changed:
                await self._store.set(SPOTS.value, replace_at(spots, s, new_spot))
                logger.info(
                    f"Assigned '{item_id}' to spot '{spot_id}'",
                    extra={"spot_id": spot_id, "item_id": item_id},
                )
        return new_spot

    async def unassign(self, spot_id: SpotId, item_id: ItemId) -> Record:
        async with self._locks.hold(SPOTS.value):
            spots = await self._store.get(SPOTS.value)
            s, spot = require_record(spots, SPOTS, spot_id)

            new_spot, changed = without_item(spot, item_id)
            if changed:
                await self._store.set(SPOTS.value, replace_at(spots, s, new_spot))
                logger.info(
                    f"Unassigned '{item_id}' from spot '{spot_id}'",
                    extra={"spot_id": spot_id, "item_id": item_id},
                )
        return new_spot

    async def spots_for_item(self, item_id: ItemId) -> list[SpotId]:
        async with self._locks.hold(SPOTS.value):
            return spots_referencing(await self._store.get(SPOTS.value), item_id)

    def unassign_everywhere(
        self, spots: list[Record], item_id: str,
    ) -> tuple[list[Record], list[str]]:
        """Spots with item_id unassigned from each one. Pure; caller persists.

        Used by item deletion, which already holds the spots lock.
        """
        updated = list(spots)
        touched: list[str] = []
        for i, spot in enumerate(spots):
            new_spot, changed = without_item(spot, item_id)
            if changed:
                updated[i] = new_spot
                touched.append(spot.get("spotId"))
        return updated, touched

    async def prune_dangling_unlocked(self) -> int:
        """Drop ids of items that no longer exist. Caller holds items + spots."""
        item_ids = {
            i["id"] for i in await self._store.get(ITEMS.value)
            if i.get("id") and isinstance(i["id"], Hashable)
        }
        spots = await self._store.get(SPOTS.value)
        pruned, removed = prune_missing_items(spots, item_ids)
        if removed:
            await self._store.set(SPOTS.value, pruned)
            logger.warning(f"Pruned {removed} dangling spot reference(s)")
        return removed

    async def prune_dangling(self) -> int:
        async with self._locks.hold(ITEMS.value, SPOTS.value):
            return await self.prune_dangling_unlocked()
