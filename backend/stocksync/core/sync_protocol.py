"""Sync Protocol — request shaping, response parsing and the cycle state machine.

Invariants:
    - The request always names all collections; collections without a token send null
    - A missing collection key in the response is an empty batch
    - A collection value that is not a list is a parse error (profile may be one object)
    - Non-object response or non-object updatedTimestamps is a parse error
    - New SyncState = previous tokens overwritten by updatedTimestamps, per collection
    - The lastSync record also carries the time of the last successful cycle
      under "timestamp"; it is never part of SyncState
    - Phase graph: IDLE → REQUESTING → MERGING → IDLE, and REQUESTING|MERGING → FAILED;
      FAILED may only start a new cycle (→ REQUESTING)
"""

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime, timezone

from stocksync.core.domain_types import (
    ALL_COLLECTIONS,
    Collection,
    Record,
    SyncPhase,
    SyncState,
)
from stocksync.core.errors import ErrorContext, SyncFailure


UPDATED_TIMESTAMPS_KEY = "updatedTimestamps"
SYNCED_AT_KEY = "timestamp"

ALLOWED_TRANSITIONS: dict[SyncPhase, frozenset[SyncPhase]] = {
    SyncPhase.IDLE: frozenset({SyncPhase.REQUESTING}),
    SyncPhase.REQUESTING: frozenset({SyncPhase.MERGING, SyncPhase.FAILED}),
    SyncPhase.MERGING: frozenset({SyncPhase.IDLE, SyncPhase.FAILED}),
    SyncPhase.FAILED: frozenset({SyncPhase.REQUESTING}),
}


@dataclass
class SyncDelta:
    """Parsed server response: one batch per collection plus the new cursors."""
    batches: dict[Collection, list] = field(default_factory=dict)
    updated_timestamps: SyncState = field(default_factory=dict)


def can_transition(current: SyncPhase, target: SyncPhase) -> bool:
    return target in ALLOWED_TRANSITIONS[current]


def build_request(state: Mapping) -> dict:
    """Request body: {"lastSync": {collection: token-or-null}}."""
    return {
        "lastSync": {c.value: state.get(c.value) for c in ALL_COLLECTIONS},
    }


def _parse_failure(message: str) -> SyncFailure:
    return SyncFailure(
        message, "parse", context=ErrorContext(sync_phase=SyncPhase.REQUESTING.value),
    )


def _coerce_batch(collection: Collection, value: object) -> list:
    if value is None:
        return []
    if isinstance(value, list):
        return value
    # Server sends the current user's profile as a bare object
    if collection is Collection.PROFILE and isinstance(value, Mapping):
        return [dict(value)] if value else []
    raise _parse_failure(
        f"'{collection.value}' must be a list, got {type(value).__name__}",
    )


def parse_response(payload: object) -> SyncDelta:
    """Validate and split a decoded response body. Raises SyncFailure(parse)."""
    if not isinstance(payload, Mapping):
        raise _parse_failure(
            f"response must be an object, got {type(payload).__name__}",
        )

    timestamps = payload.get(UPDATED_TIMESTAMPS_KEY)
    if timestamps is None:
        timestamps = {}
    if not isinstance(timestamps, Mapping):
        raise _parse_failure(f"'{UPDATED_TIMESTAMPS_KEY}' must be an object")

    delta = SyncDelta()
    for collection in ALL_COLLECTIONS:
        delta.batches[collection] = _coerce_batch(
            collection, payload.get(collection.value),
        )
        if collection.value in timestamps:
            delta.updated_timestamps[collection.value] = timestamps[collection.value]
    return delta


def advance_sync_state(previous: Mapping, updated: Mapping) -> SyncState:
    """Next SyncState: previous tokens, overwritten where the server sent new ones."""
    state: SyncState = {
        c.value: previous.get(c.value) for c in ALL_COLLECTIONS
        if previous.get(c.value) is not None
    }
    for name, token in updated.items():
        state[name] = token
    return state


def sync_state_from_records(records: list[Record]) -> SyncState:
    """SyncState is persisted as a one-record list under the lastSync key."""
    if not records:
        return {}
    head = records[0]
    if not isinstance(head, Mapping):
        return {}
    return {k: v for k, v in head.items() if k != SYNCED_AT_KEY}


def synced_at_from_records(records: list[Record]) -> datetime | None:
    """When the last successful cycle finished, or None if unknown or unreadable."""
    if not records or not isinstance(records[0], Mapping):
        return None
    raw = records[0].get(SYNCED_AT_KEY)
    if not isinstance(raw, str):
        return None
    try:
        synced_at = datetime.fromisoformat(raw)
    except ValueError:
        return None
    if synced_at.tzinfo is None:
        synced_at = synced_at.replace(tzinfo=timezone.utc)
    return synced_at


def sync_state_to_records(
    state: Mapping, synced_at: datetime | None = None,
) -> list[Record]:
    record = dict(state)
    if synced_at is not None:
        record[SYNCED_AT_KEY] = synced_at.isoformat()
    return [record]
