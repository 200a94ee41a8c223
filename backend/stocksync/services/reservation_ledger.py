"""Reservation Ledger — reserve/release/adjust across the Item and Project collections.

Invariants:
    - Every operation holds warehouseItems + projects for its whole read-compute-write
    - Writes land project side first, item side second, as one logical unit
      (write_collections restores the project list if the item write fails)
    - Quantities are read from projects only; Item.reserved is an existence index
    - Over-reservation is checked at reserve time only (no background reconciliation)

Design Decisions:
    - Arithmetic lives in core/reservation_rules.py; this class only does IO and locking
"""

import logging
from dataclasses import dataclass

from stocksync.core.domain_types import (
    Collection,
    ItemId,
    ProjectId,
    ReleaseMode,
    Record,
)
from stocksync.core.errors import TransactionInconsistency, ValidationError
from stocksync.core.repository_protocols import KeyedStore
from stocksync.core.reservation_rules import (
    apply_adjust,
    apply_release,
    apply_reserve,
    find_inconsistencies,
    rebuild_item_index,
    reservations_for_item,
)
from stocksync.services.collection_locks import CollectionLocks
from stocksync.services.collection_writes import (
    PendingWrite,
    replace_at,
    require_record,
    write_collections,
)

logger = logging.getLogger(__name__)

ITEMS = Collection.WAREHOUSE_ITEMS
PROJECTS = Collection.PROJECTS


@dataclass
class ReservationResult:
    """Both sides of a reservation change, as persisted."""
    item: Record | None
    project: Record
    released: int | None = None
    count: int | None = None


class ReservationLedger:
    """Single entry point for every reservation quantity change."""

    def __init__(self, store: KeyedStore, locks: CollectionLocks):
        self._store = store
        self._locks = locks

    async def _load(self) -> tuple[list[Record], list[Record]]:
        items = await self._store.get(ITEMS.value)
        projects = await self._store.get(PROJECTS.value)
        return items, projects

    async def _write_pair(
        self,
        items: list[Record], new_items: list[Record],
        projects: list[Record], new_projects: list[Record],
    ) -> None:
        await write_collections(self._store, [
            PendingWrite(PROJECTS.value, new_projects, projects),
            PendingWrite(ITEMS.value, new_items, items),
        ])

    async def reserve(
        self, item_id: ItemId, project_id: ProjectId, amount: int,
    ) -> ReservationResult:
        """Earmark amount units of item for project; decrements item count."""
        async with self._locks.hold(ITEMS.value, PROJECTS.value):
            items, projects = await self._load()
            i, item = require_record(items, ITEMS, item_id)
            p, project = require_record(projects, PROJECTS, project_id)

            new_item, new_project = apply_reserve(item, project, amount)
            await self._write_pair(
                items, replace_at(items, i, new_item),
                projects, replace_at(projects, p, new_project),
            )

        logger.info(
            f"Reserved {amount} of '{item_id}' for '{project_id}'",
            extra={"item_id": item_id, "project_id": project_id},
        )
        return ReservationResult(item=new_item, project=new_project)

    async def release(
        self, item_id: ItemId, project_id: ProjectId, mode: ReleaseMode | str,
    ) -> ReservationResult:
        """Remove the project's reservation; restore puts the units back."""
        try:
            mode = ReleaseMode(mode)
        except ValueError:
            raise ValidationError(
                f"Release mode must be 'subtract' or 'restore', got {mode!r}",
                field="mode", code="RELEASE_MODE_INVALID",
            )

        async with self._locks.hold(ITEMS.value, PROJECTS.value):
            items, projects = await self._load()
            i, item = require_record(items, ITEMS, item_id)
            p, project = require_record(projects, PROJECTS, project_id)

            new_item, new_project, released = apply_release(item, project, mode)
            await self._write_pair(
                items, replace_at(items, i, new_item),
                projects, replace_at(projects, p, new_project),
            )

        logger.info(
            f"Released {released} of '{item_id}' from '{project_id}' ({mode.value})",
            extra={"item_id": item_id, "project_id": project_id},
        )
        return ReservationResult(item=new_item, project=new_project, released=released)

    async def adjust_count(
        self, item_id: ItemId, project_id: ProjectId, delta: int,
    ) -> ReservationResult:
        """Change a reservation's quantity by delta, floored at 1; the item pays or is repaid."""
        async with self._locks.hold(ITEMS.value, PROJECTS.value):
            items, projects = await self._load()
            i, item = require_record(items, ITEMS, item_id)
            p, project = require_record(projects, PROJECTS, project_id)

            new_item, new_project, new_count = apply_adjust(item, project, delta)
            await self._write_pair(
                items, replace_at(items, i, new_item),
                projects, replace_at(projects, p, new_project),
            )

        logger.info(
            f"Adjusted '{item_id}' in '{project_id}' by {delta} → {new_count}",
            extra={"item_id": item_id, "project_id": project_id},
        )
        return ReservationResult(item=new_item, project=new_project, count=new_count)

    async def get_reservations_for_item(self, item_id: ItemId) -> list[dict]:
        """{projectId, projectName, count} for every project reserving item."""
        async with self._locks.hold(ITEMS.value, PROJECTS.value):
            items, projects = await self._load()
            require_record(items, ITEMS, item_id)
            return reservations_for_item(projects, item_id)

    async def check_consistency(self) -> list[TransactionInconsistency]:
        """Every partially-applied reservation write currently in the store."""
        async with self._locks.hold(ITEMS.value, PROJECTS.value):
            items, projects = await self._load()
            found = find_inconsistencies(items, projects)
        for problem in found:
            logger.warning(
                problem.message,
                extra={
                    "item_id": problem.item_id,
                    "project_id": problem.project_id,
                    "error_code": problem.code,
                },
            )
        return found

    async def repair(self) -> list[str]:
        """Rebuild every item index from the project side. Returns changed item ids."""
        async with self._locks.hold(ITEMS.value, PROJECTS.value):
            items, projects = await self._load()
            rebuilt, changed = rebuild_item_index(items, projects)
            if changed:
                await self._store.set(ITEMS.value, rebuilt)
        if changed:
            logger.warning(f"Repaired reserved index of {len(changed)} item(s)")
        return changed
