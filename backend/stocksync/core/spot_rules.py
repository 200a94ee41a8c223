"""Spot Rules — pure membership edits on a spot's reservedItems list.

Invariants:
    - assign is idempotent: an id appears at most once after assign
    - unassign of an absent id is a no-op, not an error
    - reservedItems holds item ids only, never quantities
"""

import copy
from collections.abc import Hashable, Iterable, Mapping

from stocksync.core.domain_types import Record


def spot_item_ids(spot: Mapping) -> list:
    items = spot.get("reservedItems")
    return list(items) if isinstance(items, list) else []


def with_item(spot: Mapping, item_id: str) -> tuple[Record, bool]:
    """Spot with item_id assigned. Returns (spot, changed)."""
    new_spot = copy.deepcopy(dict(spot))
    ids = spot_item_ids(spot)
    if item_id in ids:
        new_spot["reservedItems"] = ids
        return new_spot, False
    new_spot["reservedItems"] = ids + [item_id]
    return new_spot, True


def without_item(spot: Mapping, item_id: str) -> tuple[Record, bool]:
    """Spot with every occurrence of item_id removed. Returns (spot, changed)."""
    new_spot = copy.deepcopy(dict(spot))
    ids = spot_item_ids(spot)
    kept = [i for i in ids if i != item_id]
    new_spot["reservedItems"] = kept
    return new_spot, len(kept) != len(ids)


def spots_referencing(spots: Iterable[Mapping], item_id: str) -> list:
    return [s.get("spotId") for s in spots if item_id in spot_item_ids(s)]


def prune_missing_items(
    spots: Iterable[Mapping], existing_item_ids: set,
) -> tuple[list[Record], int]:
    """Drop references to items that no longer exist (or are not ids). Returns (spots, removed)."""
    pruned: list[Record] = []
    removed = 0
    for spot in spots:
        ids = spot_item_ids(spot)
        kept = [i for i in ids if isinstance(i, Hashable) and i in existing_item_ids]
        removed += len(ids) - len(kept)
        new_spot = copy.deepcopy(dict(spot))
        if "reservedItems" in spot or kept:
            new_spot["reservedItems"] = kept
        pruned.append(new_spot)
    return pruned, removed
