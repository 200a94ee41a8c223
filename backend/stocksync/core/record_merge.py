"""Record Merge Engine — folds an incoming batch into a collection's local list.

Invariants:
    - Pure: inputs are never mutated; the result is built from deep copies
    - A record without a value in id_field is a MergeSkip, never an abort
    - New ids: absent or non-list `reserved`/`photos` become []
    - Existing ids: every incoming field overwrites, except `reserved`/`photos`,
      which are authoritative-replace: non-empty incoming replaces (validated),
      empty incoming empties. Server "nothing here" is never "no update".
    - reserved entries kept only if they name itemId or projectId and carry a
      count that is not None; plain string entries (item-side index) kept if non-empty
    - Id lists (`reservedItems`) keep only non-empty string ids; non-list is []
    - Idempotent: merge(merge(L, B), B) == merge(L, B)
    - Output order is unspecified; callers sort their own views

Design Decisions:
    - MergeOutcome returns skips instead of logging: core does no IO; the sync
      coordinator logs each MergeSkip with the collection name
"""

import copy
from collections.abc import Hashable, Iterable, Mapping
from dataclasses import dataclass, field

from stocksync.core.domain_types import (
    AUTHORITATIVE_ARRAY_FIELDS,
    ID_LIST_FIELDS,
    Record,
)
from stocksync.core.errors import MergeSkip


@dataclass
class MergeOutcome:
    """Merged records plus every malformed record that was skipped."""
    records: list[Record]
    skipped: list[MergeSkip] = field(default_factory=list)
    inserted: int = 0
    updated: int = 0


def _has_value(value: object) -> bool:
    return value is not None and value != ""


def _usable_key(value: object) -> bool:
    return _has_value(value) and isinstance(value, Hashable)


def _valid_reservation(entry: object) -> bool:
    if isinstance(entry, str):
        return entry != ""
    if not isinstance(entry, Mapping):
        return False
    names_record = _has_value(entry.get("itemId")) or _has_value(entry.get("projectId"))
    return names_record and entry.get("count") is not None


def _valid_photo(entry: object) -> bool:
    if isinstance(entry, str):
        return entry != ""
    return isinstance(entry, Mapping) and _has_value(entry.get("uri"))


_ENTRY_VALIDATORS = {
    "reserved": _valid_reservation,
    "photos": _valid_photo,
}


def normalize_array_field(name: str, value: object) -> list:
    """Validated copy of an authoritative array field; anything non-list is []."""
    if not isinstance(value, list) or not value:
        return []
    keep = _ENTRY_VALIDATORS[name]
    return [copy.deepcopy(entry) for entry in value if keep(entry)]


def normalize_id_list(value: object) -> list[str]:
    if not isinstance(value, list):
        return []
    return [entry for entry in value if isinstance(entry, str) and entry != ""]


def normalize_new_record(record: Mapping) -> Record:
    """Copy of a record about to be inserted, with array fields normalized."""
    normalized = copy.deepcopy(dict(record))
    for name in AUTHORITATIVE_ARRAY_FIELDS:
        normalized[name] = normalize_array_field(name, record.get(name))
    for name in ID_LIST_FIELDS.intersection(record):
        normalized[name] = normalize_id_list(record[name])
    return normalized


def apply_incoming(existing: Mapping, incoming: Mapping) -> Record:
    """Overwrite existing with incoming field by field (authoritative arrays)."""
    merged = copy.deepcopy(dict(existing))
    for key, value in incoming.items():
        if key in AUTHORITATIVE_ARRAY_FIELDS:
            merged[key] = normalize_array_field(key, value)
        elif key in ID_LIST_FIELDS:
            merged[key] = normalize_id_list(value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def merge_records(
    collection: str,
    existing: Iterable[Record],
    incoming: Iterable[object],
    id_field: str = "id",
) -> MergeOutcome:
    """Merge incoming into existing. Pure — returns a new list and the skips."""
    by_id: dict[object, Record] = {}
    unkeyed: list[Record] = []
    for record in existing:
        key = record.get(id_field)
        if _usable_key(key):
            by_id[key] = copy.deepcopy(record)
        else:
            # Local records without an id are kept untouched
            unkeyed.append(copy.deepcopy(record))

    outcome = MergeOutcome(records=[])
    for index, record in enumerate(incoming):
        if not isinstance(record, Mapping):
            outcome.skipped.append(
                MergeSkip(collection, index, f"not an object ({type(record).__name__})"),
            )
            continue
        key = record.get(id_field)
        if not _usable_key(key):
            outcome.skipped.append(
                MergeSkip(collection, index, f"missing or unusable '{id_field}'"),
            )
            continue
        if key in by_id:
            by_id[key] = apply_incoming(by_id[key], record)
            outcome.updated += 1
        else:
            by_id[key] = normalize_new_record(record)
            outcome.inserted += 1

    outcome.records = unkeyed + list(by_id.values())
    return outcome


def merge(
    collection: str,
    existing: Iterable[Record],
    incoming: Iterable[object],
    id_field: str = "id",
) -> list[Record]:
    """Merged list only. Use merge_records() when the skips matter."""
    return merge_records(collection, existing, incoming, id_field).records
