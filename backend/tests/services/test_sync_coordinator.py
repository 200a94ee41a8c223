"""Sync Coordinator — tests for the pull → merge → persist cycle.

Invariants:
    - lastSync is written last, and only after every collection persisted
    - Any failure leaves SyncState untouched; a re-run re-requests the same delta
    - Re-running an identical delta duplicates nothing
    - Non-forced triggers inside the minimum interval are skipped, across restarts
    - Unexpected errors surface as SyncFailure(internal), never a raw exception
"""

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from stocksync.core.domain_types import SYNC_STATE_KEY, Collection, SyncPhase
from stocksync.core.errors import SyncFailure
from stocksync.services.collection_locks import CollectionLocks
from stocksync.services.spot_index import SpotAssignmentIndex
from stocksync.services.sync_coordinator import SyncCoordinator
from tests.services.mock_remote import sync_payload

PROJECTS = Collection.PROJECTS.value
SPOTS = Collection.SPOTS.value


def _delta():
    return sync_payload(
        {"projects": "2026-10-19T10:00:00Z", "spots": "2026-10-19T10:00:01Z"},
        projects=[
            {"id": "p1", "name": "Deck rebuild", "reserved": []},
            {"id": "p9", "name": "Server project"},
        ],
        spots=[{"spotId": "A1", "description": "Top shelf"}],
    )


# ─── happy path ──────────────────────────────────────────────────

async def test_cycle_merges_and_advances_cursor(engine, store, remote):
    remote.queue(_delta())

    report = await engine.trigger_sync()

    assert engine.sync.phase is SyncPhase.IDLE
    assert remote.requests == [{}]
    assert store.writes[-1] == SYNC_STATE_KEY
    assert report.sync_state == {
        "projects": "2026-10-19T10:00:00Z", "spots": "2026-10-19T10:00:01Z",
    }
    assert await engine.sync_state() == report.sync_state
    assert report.merged[PROJECTS] == 2
    names = {p["id"]: p["name"] for p in store.data[PROJECTS]}
    assert names == {"p1": "Deck rebuild", "p2": "Project p2", "p9": "Server project"}
    p9 = next(p for p in store.data[PROJECTS] if p["id"] == "p9")
    assert p9["reserved"] == [] and p9["photos"] == []


async def test_next_cycle_sends_stored_cursor(engine, remote):
    remote.queue(_delta(), sync_payload())
    await engine.trigger_sync()
    await engine.trigger_sync(force=True)
    assert remote.requests[1] == {
        "projects": "2026-10-19T10:00:00Z", "spots": "2026-10-19T10:00:01Z",
    }


async def test_empty_batches_are_not_rewritten(engine, store, remote):
    remote.queue(sync_payload({"history": "h1"}))
    report = await engine.trigger_sync()
    assert store.writes == [SYNC_STATE_KEY]
    assert report.sync_state == {"history": "h1"}


async def test_malformed_records_are_skipped_not_fatal(engine, store, remote):
    remote.queue(sync_payload({}, projects=[{"name": "no id"}, {"id": "p5"}]))
    report = await engine.trigger_sync()
    assert report.merge_skips == 1
    assert any(p["id"] == "p5" for p in store.data[PROJECTS])


async def test_profile_object_is_stored_as_one_record(engine, store, remote):
    remote.queue(sync_payload({}, profile={"id": "u1", "name": "Sam"}))
    await engine.trigger_sync()
    assert store.data[Collection.PROFILE.value][0]["name"] == "Sam"


async def test_dangling_spot_references_are_pruned(engine, store, remote):
    remote.queue(sync_payload({}, spots=[{"spotId": "A1", "reservedItems": ["i1", "gone"]}]))
    report = await engine.trigger_sync()
    assert report.pruned_spot_references == 1
    a1 = next(s for s in store.data[SPOTS] if s["spotId"] == "A1")
    assert a1["reservedItems"] == ["i1"]


async def test_spot_with_non_id_entries_still_advances_cursor(engine, store, remote):
    remote.queue(
        sync_payload(
            {"spots": "s1"},
            spots=[{"spotId": "A1", "reservedItems": [{"id": "i1"}, "i1", "gone"]}],
        ),
        sync_payload({"spots": "s2"}),
    )
    report = await engine.trigger_sync()

    assert report.sync_state == {"spots": "s1"}
    assert report.pruned_spot_references == 1
    a1 = next(s for s in store.data[SPOTS] if s["spotId"] == "A1")
    assert a1["reservedItems"] == ["i1"]

    report = await engine.trigger_sync(force=True)
    assert remote.requests[1] == {"spots": "s1"}
    assert report.sync_state == {"spots": "s2"}



async def test_server_reservations_inconsistency_is_counted(engine, remote):
    remote.queue(sync_payload({}, projects=[
        {"id": "p1", "reserved": [{"itemId": "i1", "count": 2}]},
    ]))
    report = await engine.trigger_sync()
    assert report.inconsistencies == 1


# ─── failures ────────────────────────────────────────────────────

async def test_network_failure_leaves_state_untouched(engine, store, remote):
    remote.queue(SyncFailure("read timed out", "timeout"))

    with pytest.raises(SyncFailure):
        await engine.trigger_sync()

    assert engine.sync.phase is SyncPhase.FAILED
    assert SYNC_STATE_KEY not in store.data
    assert store.writes == []
    status = engine.sync_status()
    assert status.last_error_reason == "timeout"
    assert status.last_success_at is None


async def test_parse_failure(engine, remote):
    remote.queue("<html>maintenance</html>")
    with pytest.raises(SyncFailure) as exc:
        await engine.trigger_sync()
    assert exc.value.reason == "parse"
    assert engine.sync.phase is SyncPhase.FAILED


async def test_persist_failure_before_cursor_then_idempotent_retry(engine, store, remote):
    remote.queue(_delta(), _delta())
    store.fail_on = {SPOTS}

    with pytest.raises(SyncFailure) as exc:
        await engine.trigger_sync()

    assert exc.value.reason == "persist"
    assert SYNC_STATE_KEY not in store.data
    assert PROJECTS in store.writes

    store.fail_on = set()
    report = await engine.trigger_sync()

    assert remote.requests[0] == remote.requests[1] == {}
    assert engine.sync.phase is SyncPhase.IDLE
    assert sorted(p["id"] for p in store.data[PROJECTS]) == ["p1", "p2", "p9"]
    assert report.sync_state["spots"] == "2026-10-19T10:00:01Z"
    assert engine.sync_status().last_error_code is None


async def test_cancelled_cycle_fails_without_advancing(engine, store, remote):
    remote.queue(_delta())
    remote.hold()
    task = asyncio.create_task(engine.trigger_sync())
    await remote.pull_started.wait()
    assert engine.sync.phase is SyncPhase.REQUESTING

    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    assert engine.sync.phase is SyncPhase.FAILED
    assert engine.sync_status().last_error_reason == "cancelled"
    assert SYNC_STATE_KEY not in store.data


async def test_unexpected_error_becomes_internal_failure(engine, store, remote, monkeypatch):
    async def broken_prune():
        raise TypeError("unhashable type: 'dict'")

    monkeypatch.setattr(engine.spots, "prune_dangling_unlocked", broken_prune)
    remote.queue(_delta(), _delta())

    with pytest.raises(SyncFailure) as exc:
        await engine.trigger_sync()

    assert exc.value.reason == "internal"
    assert isinstance(exc.value.__cause__, TypeError)
    assert engine.sync.phase is SyncPhase.FAILED
    assert SYNC_STATE_KEY not in store.data

    monkeypatch.undo()
    report = await engine.trigger_sync()
    assert remote.requests[1] == {}
    assert report.sync_state["projects"] == "2026-10-19T10:00:00Z"



# ─── throttle ────────────────────────────────────────────────────

class _Clock:
    def __init__(self):
        self.now = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.now


def _coordinator(store, remote, clock):
    locks = CollectionLocks()
    return SyncCoordinator(
        store, remote, locks, SpotAssignmentIndex(store, locks),
        min_interval_seconds=300, clock=clock,
    )


@pytest.fixture
def clocked(store, remote):
    clock = _Clock()
    return _coordinator(store, remote, clock), clock


async def test_recent_success_skips_unforced_trigger(clocked, remote):
    coordinator, clock = clocked
    remote.queue(sync_payload({"projects": "t1"}))
    await coordinator.trigger_sync()

    clock.now += timedelta(seconds=60)
    report = await coordinator.trigger_sync()

    assert report.skipped is True
    assert report.sync_state == {"projects": "t1"}
    assert len(remote.requests) == 1


async def test_force_and_expiry_bypass_throttle(clocked, remote):
    coordinator, clock = clocked
    remote.queue(sync_payload(), sync_payload(), sync_payload())
    await coordinator.trigger_sync()
    await coordinator.trigger_sync(force=True)
    clock.now += timedelta(seconds=301)
    report = await coordinator.trigger_sync()
    assert report.skipped is False
    assert len(remote.requests) == 3


async def test_failure_does_not_throttle_retry(clocked, remote):
    coordinator, _ = clocked
    remote.queue(SyncFailure("refused", "transport"), sync_payload())
    with pytest.raises(SyncFailure):
        await coordinator.trigger_sync()
    report = await coordinator.trigger_sync()
    assert report.skipped is False
    assert coordinator.phase is SyncPhase.IDLE


async def test_concurrent_trigger_waits_then_skips(clocked, remote):
    coordinator, _ = clocked
    remote.queue(sync_payload())
    remote.hold()
    first = asyncio.create_task(coordinator.trigger_sync())
    await remote.pull_started.wait()
    second = asyncio.create_task(coordinator.trigger_sync())
    await asyncio.sleep(0)
    assert not second.done()

    remote.release()
    first_report, second_report = await asyncio.gather(first, second)
    assert first_report.skipped is False
    assert second_report.skipped is True
    assert len(remote.requests) == 1


async def test_throttle_survives_restart(clocked, store, remote):
    coordinator, clock = clocked
    remote.queue(sync_payload({"projects": "t1"}), sync_payload())
    await coordinator.trigger_sync()
    assert store.data[SYNC_STATE_KEY][0]["timestamp"] == "2026-10-19T12:00:00+00:00"

    restarted = _coordinator(store, remote, clock)
    clock.now += timedelta(seconds=60)
    report = await restarted.trigger_sync()
    assert report.skipped is True
    assert report.sync_state == {"projects": "t1"}
    assert len(remote.requests) == 1

    clock.now += timedelta(seconds=300)
    report = await restarted.trigger_sync()
    assert report.skipped is False
    assert report.synced_at == "2026-10-19T12:06:00+00:00"
    assert len(remote.requests) == 2
