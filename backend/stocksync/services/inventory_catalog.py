"""Inventory Catalog — local-first record creation and cascading deletes.

Invariants:
    - Created records get a client-assigned id (uuid4 hex) unless one is supplied
    - Duplicate ids are refused with ValidationError(DUPLICATE_ID)
    - New items/projects start with reserved=[]; reservations go through the ledger
    - delete_item holds items + projects + spots: either refused
      (cascade=False with active reservations) or cascaded to every project
      entry and every spot membership before the item itself is removed
    - delete_project restores its reserved quantities to the items first
"""

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone

from stocksync.core.domain_types import CategoryScope, Collection, Record
from stocksync.core.errors import (
    ActiveReservationsError,
    ErrorContext,
    ValidationError,
)
from stocksync.core.repository_protocols import KeyedStore
from stocksync.core.reservation_rules import (
    entry_count,
    index_contains,
    is_strict_int,
    project_entries,
    reservations_for_item,
    strip_item_from_project,
    strip_project_from_item,
)
from stocksync.services.collection_locks import CollectionLocks
from stocksync.services.collection_writes import (
    PendingWrite,
    index_of,
    require_record,
    write_collections,
)
from stocksync.services.spot_index import SpotAssignmentIndex

logger = logging.getLogger(__name__)

ITEMS = Collection.WAREHOUSE_ITEMS
PROJECTS = Collection.PROJECTS
SPOTS = Collection.SPOTS


@dataclass
class DeleteReport:
    """What a delete touched besides the deleted record."""
    record: Record
    projects: list[str] = field(default_factory=list)
    items: list[str] = field(default_factory=list)
    spots: list[str] = field(default_factory=list)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _new_id(supplied: str | None) -> str:
    return supplied if supplied else uuid.uuid4().hex


def _require_text(value: object, field_name: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(
            f"{field_name} is required", field=field_name, code="FIELD_REQUIRED",
        )
    return value.strip()


def _photos(value: object) -> list:
    if value is None:
        return []
    if not isinstance(value, list):
        raise ValidationError("photos must be a list", field="photos")
    return list(value)


class InventoryCatalog:
    """Creates and deletes items, projects, spots and categories."""

    def __init__(
        self, store: KeyedStore, locks: CollectionLocks, spots: SpotAssignmentIndex,
    ):
        self._store = store
        self._locks = locks
        self._spots = spots

    async def _append(self, collection: Collection, record: Record) -> Record:
        async with self._locks.hold(collection.value):
            records = await self._store.get(collection.value)
            record_id = record[collection.id_field]
            if index_of(records, collection.id_field, record_id) is not None:
                raise ValidationError(
                    f"'{record_id}' already exists in {collection.value}",
                    field=collection.id_field, code="DUPLICATE_ID",
                    context=ErrorContext(collection=collection.value),
                )
            await self._store.set(collection.value, records + [record])
        logger.info(
            f"Created {collection.value} record '{record_id}'",
            extra={"collection": collection.value},
        )
        return record

    async def create_item(
        self,
        name: str,
        count: int,
        description: str = "",
        category: str | None = None,
        photos: list | None = None,
        item_id: str | None = None,
    ) -> Record:
        if not is_strict_int(count) or count < 0:
            raise ValidationError(
                f"count must be a non-negative integer, got {count!r}",
                field="count", code="ITEM_COUNT_INVALID",
            )
        return await self._append(ITEMS, {
            "id": _new_id(item_id),
            "name": _require_text(name, "name"),
            "description": description or "",
            "category": category,
            "count": count,
            "photos": _photos(photos),
            "reserved": [],
            "dateCreated": _now(),
        })

    async def create_project(
        self,
        name: str,
        description: str = "",
        category: str | None = None,
        photos: list | None = None,
        project_id: str | None = None,
    ) -> Record:
        return await self._append(PROJECTS, {
            "id": _new_id(project_id),
            "name": _require_text(name, "name"),
            "description": description or "",
            "category": category,
            "finished": False,
            "photos": _photos(photos),
            "dateCreated": _now(),
            "reserved": [],
        })

    async def create_spot(self, spot_id: str, description: str) -> Record:
        return await self._append(SPOTS, {
            "spotId": _require_text(spot_id, "spotId"),
            "description": _require_text(description, "description"),
            "dateCreated": _now(),
            "reservedItems": [],
        })

    async def create_category(
        self, scope: CategoryScope | str, name: str, category_id: str | None = None,
    ) -> Record:
        try:
            scope = CategoryScope(scope)
        except ValueError:
            raise ValidationError(
                f"scope must be 'warehouse' or 'project', got {scope!r}",
                field="scope", code="CATEGORY_SCOPE_INVALID",
            )
        return await self._append(scope.collection, {
            "id": _new_id(category_id),
            "name": _require_text(name, "name"),
            "scope": scope.value,
        })

    async def delete_item(self, item_id: str, cascade: bool = True) -> DeleteReport:
        """Delete item; cascade=False refuses while any project reserves it."""
        async with self._locks.hold(ITEMS.value, PROJECTS.value, SPOTS.value):
            items = await self._store.get(ITEMS.value)
            projects = await self._store.get(PROJECTS.value)
            spots = await self._store.get(SPOTS.value)
            i, item = require_record(items, ITEMS, item_id)

            holders = reservations_for_item(projects, item_id)
            if holders and not cascade:
                raise ActiveReservationsError(
                    item_id, [h["projectId"] for h in holders],
                )

            new_projects = list(projects)
            touched_projects: list[str] = []
            for p, project in enumerate(projects):
                if any(e.get("itemId") == item_id for e in project_entries(project)):
                    new_projects[p] = strip_item_from_project(project, item_id)
                    touched_projects.append(project.get("id"))

            new_spots, touched_spots = self._spots.unassign_everywhere(spots, item_id)
            new_items = items[:i] + items[i + 1:]

            await write_collections(self._store, [
                PendingWrite(PROJECTS.value, new_projects, projects),
                PendingWrite(SPOTS.value, new_spots, spots),
                PendingWrite(ITEMS.value, new_items, items),
            ])

        logger.info(
            f"Deleted item '{item_id}' (projects: {len(touched_projects)}, "
            f"spots: {len(touched_spots)})",
            extra={"item_id": item_id},
        )
        return DeleteReport(
            record=item, projects=touched_projects, spots=touched_spots,
        )

    async def delete_project(self, project_id: str) -> DeleteReport:
        """Delete project, returning its reserved quantities to the items."""
        async with self._locks.hold(ITEMS.value, PROJECTS.value):
            items = await self._store.get(ITEMS.value)
            projects = await self._store.get(PROJECTS.value)
            p, project = require_record(projects, PROJECTS, project_id)

            returned: dict[str, int] = {}
            for entry in project_entries(project):
                item_id = entry.get("itemId")
                returned[item_id] = returned.get(item_id, 0) + entry_count(entry)

            new_items = list(items)
            touched_items: list[str] = []
            for i, item in enumerate(items):
                item_id = item.get("id")
                if item_id not in returned and not index_contains(item, project_id):
                    continue
                new_item = strip_project_from_item(item, project_id)
                if item_id in returned and is_strict_int(item.get("count")):
                    new_item["count"] = item["count"] + returned[item_id]
                new_items[i] = new_item
                touched_items.append(item_id)

            new_projects = projects[:p] + projects[p + 1:]
            await write_collections(self._store, [
                PendingWrite(ITEMS.value, new_items, items),
                PendingWrite(PROJECTS.value, new_projects, projects),
            ])

        logger.info(
            f"Deleted project '{project_id}' (items restored: {len(touched_items)})",
            extra={"project_id": project_id},
        )
        return DeleteReport(record=project, items=touched_items)
