"""Sync Protocol — tests for request shape, response parsing and the phase graph.

Tests cover:
    - request always names every collection (null when never synced)
    - missing collections parse as empty batches; profile may be a bare object
    - malformed responses raise SyncFailure(parse)
    - cursor advance keeps tokens the server did not resend
    - the last success time rides in the lastSync record but not in SyncState
    - legal and illegal phase transitions
"""

from datetime import datetime, timezone

import pytest

from stocksync.core.domain_types import ALL_COLLECTIONS, Collection, SyncPhase
from stocksync.core.errors import SyncFailure
from stocksync.core.sync_protocol import (
    SYNCED_AT_KEY,
    advance_sync_state,
    build_request,
    can_transition,
    parse_response,
    sync_state_from_records,
    sync_state_to_records,
    synced_at_from_records,
)


# ─── Request ─────────────────────────────────────────────────────

def test_build_request_names_every_collection():
    body = build_request({"projects": "2026-10-01T00:00:00Z"})
    assert set(body) == {"lastSync"}
    assert set(body["lastSync"]) == {c.value for c in ALL_COLLECTIONS}
    assert body["lastSync"]["projects"] == "2026-10-01T00:00:00Z"
    assert body["lastSync"]["spots"] is None


# ─── Response ────────────────────────────────────────────────────

def test_parse_response_missing_collections_are_empty():
    delta = parse_response({"projects": [{"id": "p1"}], "updatedTimestamps": {"projects": "t1"}})
    assert delta.batches[Collection.PROJECTS] == [{"id": "p1"}]
    assert delta.batches[Collection.SPOTS] == []
    assert delta.updated_timestamps == {"projects": "t1"}


def test_parse_response_accepts_profile_object():
    delta = parse_response({"profile": {"id": "u1", "name": "Sam"}})
    assert delta.batches[Collection.PROFILE] == [{"id": "u1", "name": "Sam"}]


def test_parse_response_without_timestamps():
    delta = parse_response({})
    assert delta.updated_timestamps == {}
    assert all(batch == [] for batch in delta.batches.values())


@pytest.mark.parametrize("payload", [
    None,
    ["projects"],
    "ok",
    {"projects": {"id": "p1"}},
    {"updatedTimestamps": ["t1"]},
])
def test_parse_response_rejects_malformed(payload):
    with pytest.raises(SyncFailure) as exc:
        parse_response(payload)
    assert exc.value.reason == "parse"


# ─── Cursor ──────────────────────────────────────────────────────

def test_advance_sync_state_keeps_unsent_tokens():
    previous = {"projects": "t1", "spots": "s1", "history": None}
    state = advance_sync_state(previous, {"projects": "t2", "history": "h1"})
    assert state == {"projects": "t2", "spots": "s1", "history": "h1"}


def test_sync_state_records_round_trip():
    state = {"projects": "t2"}
    assert sync_state_from_records(sync_state_to_records(state)) == state
    assert sync_state_from_records([]) == {}


def test_synced_at_is_stored_beside_the_cursor():
    synced_at = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)
    records = sync_state_to_records({"projects": "t2"}, synced_at)
    assert records[0][SYNCED_AT_KEY] == "2026-10-19T12:00:00+00:00"
    assert sync_state_from_records(records) == {"projects": "t2"}
    assert synced_at_from_records(records) == synced_at


@pytest.mark.parametrize("records", [
    [],
    [{"projects": "t2"}],
    [{SYNCED_AT_KEY: "yesterday"}],
    [{SYNCED_AT_KEY: 1760875200}],
    ["not a record"],
])
def test_unreadable_synced_at_is_none(records):
    assert synced_at_from_records(records) is None


def test_naive_synced_at_is_read_as_utc():
    records = [{SYNCED_AT_KEY: "2026-10-19T12:00:00"}]
    assert synced_at_from_records(records).tzinfo is timezone.utc



# ─── Phases ──────────────────────────────────────────────────────

def test_phase_graph():
    assert can_transition(SyncPhase.IDLE, SyncPhase.REQUESTING)
    assert can_transition(SyncPhase.REQUESTING, SyncPhase.MERGING)
    assert can_transition(SyncPhase.MERGING, SyncPhase.IDLE)
    assert can_transition(SyncPhase.REQUESTING, SyncPhase.FAILED)
    assert can_transition(SyncPhase.FAILED, SyncPhase.REQUESTING)
    assert not can_transition(SyncPhase.IDLE, SyncPhase.MERGING)
    assert not can_transition(SyncPhase.FAILED, SyncPhase.IDLE)
    assert not can_transition(SyncPhase.IDLE, SyncPhase.FAILED)
