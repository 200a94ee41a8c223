"""Reservation Ledger — tests for locked, two-sided reservation writes.

Invariants:
    - Both sides land or neither does (compensating restore on failure)
    - Concurrent reserves never overdraw an item
    - Quantities come from the project side only
    - Units are conserved across reserve, adjust and release
"""

import asyncio

import pytest

from stocksync.core.domain_types import Collection, ReleaseMode
from stocksync.core.errors import (
    DatabaseError,
    ResourceNotFoundError,
    TransactionInconsistency,
    ValidationError,
)

ITEMS = Collection.WAREHOUSE_ITEMS.value
PROJECTS = Collection.PROJECTS.value


def _item(store, item_id):
    return next(i for i in store.data[ITEMS] if i["id"] == item_id)


def _project(store, project_id):
    return next(p for p in store.data[PROJECTS] if p["id"] == project_id)


# ─── reserve ─────────────────────────────────────────────────────

async def test_reserve_writes_project_then_item(engine, store):
    result = await engine.ledger.reserve("i1", "p1", 3)
    assert store.writes == [PROJECTS, ITEMS]
    assert _item(store, "i1")["count"] == 7
    assert _item(store, "i1")["reserved"] == ["p1"]
    assert _project(store, "p1")["reserved"] == [{"itemId": "i1", "count": 3}]
    assert result.item["count"] == 7


async def test_reserve_unknown_item_is_not_found(engine, store):
    with pytest.raises(ResourceNotFoundError) as exc:
        await engine.ledger.reserve("nope", "p1", 1)
    assert exc.value.resource_type == "Item"
    assert store.writes == []


async def test_reserve_unknown_project_is_not_found(engine):
    with pytest.raises(ResourceNotFoundError):
        await engine.ledger.reserve("i1", "nope", 1)


async def test_reserve_validation_error_writes_nothing(engine, store):
    with pytest.raises(ValidationError):
        await engine.ledger.reserve("i2", "p1", 3)
    assert store.writes == []


async def test_failed_item_write_restores_projects(engine, store, seeded):
    store.fail_on = {ITEMS}
    with pytest.raises(DatabaseError):
        await engine.ledger.reserve("i1", "p1", 3)
    assert store.data[PROJECTS] == seeded[PROJECTS]
    assert store.data[ITEMS] == seeded[ITEMS]


async def test_failed_restore_reports_inconsistency_and_repair_fixes_index(engine, store):
    store.fail_on = {ITEMS}
    store.fail_restore = True
    with pytest.raises(TransactionInconsistency) as exc:
        await engine.ledger.reserve("i1", "p1", 3)
    assert exc.value.kind == "partial_write"

    store.fail_on = set()
    store.fail_restore = False
    problems = await engine.check_consistency()
    assert [(p.kind, p.item_id, p.project_id) for p in problems] == [
        ("missing_index", "i1", "p1"),
    ]

    assert await engine.repair() == ["i1"]
    assert await engine.check_consistency() == []


async def test_concurrent_reserves_never_overdraw(engine, store):
    results = await asyncio.gather(
        *(engine.ledger.reserve("i2", "p1", 1) for _ in range(5)),
        return_exceptions=True,
    )
    succeeded = [r for r in results if not isinstance(r, Exception)]
    failed = [r for r in results if isinstance(r, ValidationError)]
    assert len(succeeded) == 2
    assert len(failed) == 3
    assert _item(store, "i2")["count"] == 1
    assert _project(store, "p1")["reserved"] == [{"itemId": "i2", "count": 2}]


# ─── release / adjust ────────────────────────────────────────────

async def test_release_restore_returns_units(engine, store):
    await engine.ledger.reserve("i1", "p1", 4)
    result = await engine.ledger.release("i1", "p1", ReleaseMode.RESTORE)
    assert result.released == 4
    assert _item(store, "i1")["count"] == 10
    assert _item(store, "i1")["reserved"] == []
    assert _project(store, "p1")["reserved"] == []


async def test_release_subtract_consumes_units(engine, store):
    await engine.ledger.reserve("i1", "p1", 4)
    await engine.ledger.release("i1", "p1", "subtract")
    assert _item(store, "i1")["count"] == 6
    assert _item(store, "i1")["reserved"] == []


async def test_release_rejects_unknown_mode(engine):
    with pytest.raises(ValidationError) as exc:
        await engine.ledger.release("i1", "p1", "discard")
    assert exc.value.code == "RELEASE_MODE_INVALID"


async def test_adjust_moves_units_between_item_and_project(engine, store):
    await engine.ledger.reserve("i1", "p1", 4)
    store.writes.clear()
    result = await engine.ledger.adjust_count("i1", "p1", -10)
    assert result.count == 1
    assert store.writes == [PROJECTS, ITEMS]
    assert _item(store, "i1")["count"] == 9

    result = await engine.ledger.adjust_count("i1", "p1", 2)
    assert result.count == 3
    assert _item(store, "i1")["count"] == 7


async def test_adjust_beyond_availability_is_rejected(engine, store):
    await engine.ledger.reserve("i1", "p1", 3)
    store.writes.clear()
    with pytest.raises(ValidationError) as exc:
        await engine.ledger.adjust_count("i1", "p1", 100)
    assert exc.value.code == "DELTA_EXCEEDS_AVAILABLE"
    assert store.writes == []

    await engine.ledger.adjust_count("i1", "p1", 2)
    result = await engine.ledger.release("i1", "p1", ReleaseMode.RESTORE)
    assert result.released == 5
    assert _item(store, "i1")["count"] == 10


# ─── conservation ────────────────────────────────────────────────

def _held(store, item_id):
    return sum(
        e["count"]
        for p in store.data[PROJECTS]
        for e in p.get("reserved", [])
        if e["itemId"] == item_id
    )


async def _apply(engine, op, project_id, arg):
    if op == "reserve":
        return await engine.ledger.reserve("i1", project_id, arg)
    if op == "adjust":
        return await engine.ledger.adjust_count("i1", project_id, arg)
    return await engine.ledger.release("i1", project_id, arg)


async def test_mixed_operations_never_create_units(engine, store):
    steps = [
        ("reserve", "p1", 3),
        ("reserve", "p2", 2),
        ("adjust", "p1", 2),
        ("adjust", "p2", -5),
        ("release", "p1", "subtract"),
        ("reserve", "p1", 1),
        ("adjust", "p1", 1),
        ("release", "p2", "restore"),
        ("release", "p1", "restore"),
    ]
    capacity = _item(store, "i1")["count"]
    consumed = 0
    for op, project_id, arg in steps:
        result = await _apply(engine, op, project_id, arg)
        if op == "release" and arg == "subtract":
            consumed += result.released
        count = _item(store, "i1")["count"]
        assert count + _held(store, "i1") <= capacity
        assert count + _held(store, "i1") + consumed == capacity
    assert consumed == 5
    assert _item(store, "i1")["count"] == 5


async def test_restore_only_cycle_returns_to_capacity(engine, store):
    steps = [
        ("reserve", "p1", 4),
        ("adjust", "p1", 3),
        ("reserve", "p2", 1),
        ("adjust", "p1", -2),
        ("adjust", "p2", 1),
        ("release", "p1", "restore"),
        ("release", "p2", "restore"),
    ]
    for op, project_id, arg in steps:
        await _apply(engine, op, project_id, arg)
        assert _item(store, "i1")["count"] + _held(store, "i1") == 10
    assert _item(store, "i1")["count"] == 10
    assert await engine.check_consistency() == []



# ─── per-item view ───────────────────────────────────────────────

async def test_get_reservations_for_item(engine):
    await engine.ledger.reserve("i1", "p1", 2)
    await engine.ledger.reserve("i1", "p2", 3)
    assert await engine.get_reservations_for_item("i1") == [
        {"projectId": "p1", "projectName": "Project p1", "count": 2},
        {"projectId": "p2", "projectName": "Project p2", "count": 3},
    ]


async def test_get_reservations_for_unknown_item(engine):
    with pytest.raises(ResourceNotFoundError):
        await engine.get_reservations_for_item("nope")


# ─── history ─────────────────────────────────────────────────────

async def test_engine_records_history_after_mutation(engine):
    await engine.reserve("i1", "p1", 2, actor="sam")
    entries = await engine.history.entries()
    assert len(entries) == 1
    assert entries[0]["user"] == "sam"
    assert entries[0]["action"] == "reserve"


async def test_failed_mutation_records_no_history(engine):
    with pytest.raises(ValidationError):
        await engine.reserve("i1", "p1", 0)
    assert await engine.history.entries() == []


async def test_history_failure_does_not_undo_mutation(engine, store):
    store.fail_on = {Collection.HISTORY.value}
    await engine.reserve("i1", "p1", 2)
    assert _item(store, "i1")["count"] == 8
