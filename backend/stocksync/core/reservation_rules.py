"""Reservation Rules — pure arithmetic behind the Reservation Ledger.

Invariants:
    - Item `count` means remaining-available units, everywhere
    - Project `reserved` ({itemId, count}) is the ONLY source of truth for quantities
    - Item `reserved` is an index of project ids: existence checks only, never counts
    - reserve: amount is an int (not bool), > 0, and strictly < available
    - release removes the project entry AND the index membership together
    - adjust moves units between item and project and floors the entry at 1;
      going to zero is a release
    - Every function returns new records; inputs are never mutated

Design Decisions:
    - Pure functions return (item, project) pairs: the ledger service writes both
      collections inside one critical section, so the pair is the unit of change
"""

import copy
from collections.abc import Iterable, Mapping

from stocksync.core.domain_types import Record, ReleaseMode
from stocksync.core.errors import (
    ErrorContext,
    TransactionInconsistency,
    ValidationError,
)


def is_strict_int(value: object) -> bool:
    """True for int values that are not bool."""
    return isinstance(value, int) and not isinstance(value, bool)


def entry_count(entry: Mapping) -> int:
    """Quantity carried by a project reservation entry (0 when unreadable)."""
    value = entry.get("count")
    if is_strict_int(value):
        return value
    if isinstance(value, str) and value.strip().isdigit():
        return int(value)
    return 0


def available_count(item: Mapping) -> int:
    value = item.get("count")
    if is_strict_int(value):
        return value
    raise ValidationError(
        f"Item '{item.get('id')}' has no integer count",
        field="count", code="ITEM_COUNT_INVALID",
        context=ErrorContext(item_id=item.get("id")),
    )


def _index_project_id(entry: object) -> object:
    if isinstance(entry, Mapping):
        return entry.get("projectId")
    return entry


def index_project_ids(item: Mapping) -> list:
    """Project ids present in an item's reserved index."""
    reserved = item.get("reserved")
    if not isinstance(reserved, list):
        return []
    return [_index_project_id(e) for e in reserved if _index_project_id(e)]


def index_contains(item: Mapping, project_id: str) -> bool:
    return project_id in index_project_ids(item)


def project_entries(project: Mapping) -> list[Mapping]:
    reserved = project.get("reserved")
    if not isinstance(reserved, list):
        return []
    return [e for e in reserved if isinstance(e, Mapping)]


def find_entry(project: Mapping, item_id: str) -> Mapping | None:
    return next(
        (e for e in project_entries(project) if e.get("itemId") == item_id), None,
    )


def reserved_total(projects: Iterable[Mapping], item_id: str) -> int:
    """Sum of reserved quantities for item across all projects."""
    return sum(
        entry_count(e)
        for p in projects for e in project_entries(p)
        if e.get("itemId") == item_id
    )


# ─── Validation ──────────────────────────────────────────────────

def validate_amount(amount: object, available: int, item_id: str) -> None:
    """Raise ValidationError unless 0 < amount < available."""
    ctx = ErrorContext(item_id=item_id)
    if not is_strict_int(amount):
        raise ValidationError(
            f"Amount must be an integer, got {amount!r}",
            field="amount", code="AMOUNT_NOT_INTEGER", context=ctx,
        )
    if amount <= 0:
        raise ValidationError(
            f"Amount must be positive, got {amount}",
            field="amount", code="AMOUNT_NOT_POSITIVE", context=ctx,
        )
    if amount >= available:
        raise ValidationError(
            f"Amount {amount} must be less than remaining availability {available}",
            field="amount", code="AMOUNT_EXCEEDS_AVAILABLE", context=ctx,
        )


def _missing_reservation(item_id: str, project_id: str) -> ValidationError:
    return ValidationError(
        f"Project '{project_id}' holds no reservation for item '{item_id}'",
        field="item_id", code="RESERVATION_NOT_FOUND",
        context=ErrorContext(item_id=item_id, project_id=project_id),
    )


# ─── Operations ──────────────────────────────────────────────────

def apply_reserve(
    item: Mapping, project: Mapping, amount: object,
) -> tuple[Record, Record]:
    """Reserve amount of item for project. Returns (new_item, new_project)."""
    item_id = item["id"]
    project_id = project["id"]
    if project.get("finished") is True:
        raise ValidationError(
            f"Project '{project_id}' is finished",
            field="project_id", code="PROJECT_FINISHED",
            context=ErrorContext(item_id=item_id, project_id=project_id),
        )
    validate_amount(amount, available_count(item), item_id)

    existing = find_entry(project, item_id)
    if existing is not None and not index_contains(item, project_id):
        raise TransactionInconsistency(
            f"Project '{project_id}' reserves item '{item_id}' "
            f"but the item index does not list the project",
            item_id=item_id, project_id=project_id, kind="missing_index",
        )

    new_item = copy.deepcopy(dict(item))
    new_project = copy.deepcopy(dict(project))
    new_item["count"] = new_item["count"] - amount

    entries = [copy.deepcopy(dict(e)) for e in project_entries(project)]
    for entry in entries:
        if entry.get("itemId") == item_id:
            entry["count"] = entry_count(entry) + amount
            break
    else:
        entries.append({"itemId": item_id, "count": amount})
    new_project["reserved"] = entries

    reserved = item.get("reserved")
    index = copy.deepcopy(reserved) if isinstance(reserved, list) else []
    if project_id not in index_project_ids(item):
        index.append(project_id)
    new_item["reserved"] = index
    return new_item, new_project


def apply_release(
    item: Mapping, project: Mapping, mode: ReleaseMode,
) -> tuple[Record, Record, int]:
    """Release the project's reservation on item. Returns (item, project, released)."""
    item_id = item["id"]
    project_id = project["id"]
    if find_entry(project, item_id) is None:
        raise _missing_reservation(item_id, project_id)

    released = sum(
        entry_count(e) for e in project_entries(project) if e.get("itemId") == item_id
    )
    new_project = copy.deepcopy(dict(project))
    new_project["reserved"] = [
        copy.deepcopy(dict(e)) for e in project_entries(project)
        if e.get("itemId") != item_id
    ]
    new_item = strip_project_from_item(item, project_id)
    if ReleaseMode(mode) is ReleaseMode.RESTORE:
        new_item["count"] = available_count(item) + released
    return new_item, new_project, released


def apply_adjust(
    item: Mapping, project: Mapping, delta: object,
) -> tuple[Record, Record, int]:
    """Change an entry's count by delta, floored at 1. Returns (item, project, new_count).

    Units move between the item and the project: a raise takes delta from the
    item (delta must be below availability), a cut returns what the entry lost.
    """
    item_id = item["id"]
    project_id = project["id"]
    ctx = ErrorContext(item_id=item_id, project_id=project_id)
    if not is_strict_int(delta):
        raise ValidationError(
            f"Delta must be an integer, got {delta!r}",
            field="delta", code="DELTA_NOT_INTEGER", context=ctx,
        )
    if delta == 0:
        raise ValidationError(
            "Delta must be non-zero", field="delta", code="DELTA_ZERO", context=ctx,
        )
    if find_entry(project, item_id) is None:
        raise _missing_reservation(item_id, project_id)
    available = available_count(item)
    if delta > 0 and delta >= available:
        raise ValidationError(
            f"Delta {delta} must be less than remaining availability {available}",
            field="delta", code="DELTA_EXCEEDS_AVAILABLE", context=ctx,
        )

    new_project = copy.deepcopy(dict(project))
    entries = [copy.deepcopy(dict(e)) for e in project_entries(project)]
    old_count = new_count = 0
    for entry in entries:
        if entry.get("itemId") == item_id:
            old_count = entry_count(entry)
            new_count = max(1, old_count + delta)
            entry["count"] = new_count
            break
    new_project["reserved"] = entries

    new_item = copy.deepcopy(dict(item))
    new_item["count"] = available - (new_count - old_count)
    return new_item, new_project, new_count


def reservations_for_item(
    projects: Iterable[Mapping], item_id: str,
) -> list[dict]:
    """{projectId, projectName, count} per project reserving item (project side only)."""
    result = []
    for project in projects:
        total = sum(
            entry_count(e) for e in project_entries(project)
            if e.get("itemId") == item_id
        )
        if any(e.get("itemId") == item_id for e in project_entries(project)):
            result.append({
                "projectId": project.get("id"),
                "projectName": project.get("name"),
                "count": total,
            })
    return result


# ─── Cascade helpers ─────────────────────────────────────────────

def strip_project_from_item(item: Mapping, project_id: str) -> Record:
    new_item = copy.deepcopy(dict(item))
    reserved = item.get("reserved")
    new_item["reserved"] = [
        copy.deepcopy(e) for e in (reserved if isinstance(reserved, list) else [])
        if _index_project_id(e) != project_id
    ]
    return new_item


def strip_item_from_project(project: Mapping, item_id: str) -> Record:
    new_project = copy.deepcopy(dict(project))
    reserved = project.get("reserved")
    new_project["reserved"] = [
        copy.deepcopy(e) for e in (reserved if isinstance(reserved, list) else [])
        if not (isinstance(e, Mapping) and e.get("itemId") == item_id)
    ]
    return new_project


# ─── Consistency ─────────────────────────────────────────────────

def find_inconsistencies(
    items: Iterable[Mapping], projects: Iterable[Mapping],
) -> list[TransactionInconsistency]:
    """Every place where the item index and the project side disagree."""
    items_by_id = {i.get("id"): i for i in items if i.get("id")}
    projects = list(projects)
    found: list[TransactionInconsistency] = []

    for project in projects:
        project_id = project.get("id")
        for entry in project_entries(project):
            item_id = entry.get("itemId")
            item = items_by_id.get(item_id)
            if item is None:
                found.append(TransactionInconsistency(
                    f"Project '{project_id}' reserves missing item '{item_id}'",
                    item_id=item_id, project_id=project_id, kind="missing_item",
                ))
            elif not index_contains(item, project_id):
                found.append(TransactionInconsistency(
                    f"Item '{item_id}' index lacks project '{project_id}'",
                    item_id=item_id, project_id=project_id, kind="missing_index",
                ))

    reserving = {
        (e.get("itemId"), p.get("id"))
        for p in projects for e in project_entries(p)
    }
    for item_id, item in items_by_id.items():
        for project_id in index_project_ids(item):
            if (item_id, project_id) not in reserving:
                found.append(TransactionInconsistency(
                    f"Item '{item_id}' index lists project '{project_id}' "
                    f"without a reservation entry",
                    item_id=item_id, project_id=project_id, kind="orphan_index",
                ))
    return found


def rebuild_item_index(
    items: Iterable[Mapping], projects: Iterable[Mapping],
) -> tuple[list[Record], list[str]]:
    """Recompute every item's reserved index from the project side.

    Returns (items, changed_item_ids). Quantities are never touched.
    """
    projects = list(projects)
    rebuilt: list[Record] = []
    changed: list[str] = []
    for item in items:
        item_id = item.get("id")
        expected = [
            p.get("id") for p in projects
            if any(e.get("itemId") == item_id for e in project_entries(p))
        ]
        new_item = copy.deepcopy(dict(item))
        if index_project_ids(item) != expected or not isinstance(item.get("reserved"), list):
            new_item["reserved"] = expected
            changed.append(item_id)
        rebuilt.append(new_item)
    return rebuilt, changed
