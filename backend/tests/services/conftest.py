"""Service test fixtures — in-memory store, scripted remote, SQLite store, API client.

Invariants:
    - Every test gets a fresh store, lock table and engine
    - The SQL fixtures use a fresh in-memory SQLite database per test
    - The API client talks to the real app with app.state.engine replaced

Design Decisions:
    - SQLite in-memory with StaticPool: every session shares one connection,
      so the schema created at setup is visible to all of them
    - ASGITransport does not run the lifespan: the fixture installs the engine
      on app.state itself and restores the previous value afterwards
"""

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.pool import StaticPool

from stocksync.core.domain_types import Collection
from stocksync.infrastructure.database import DatabaseSessionManager, SqlKeyedStore
from stocksync.main import app
from stocksync.services.inventory_engine import InventoryEngine
from tests.services.fake_store import (
    InMemoryKeyedStore, make_item, make_project, make_spot,
)
from tests.services.mock_remote import ScriptedRemote


@pytest.fixture
def seeded() -> dict:
    return {
        Collection.WAREHOUSE_ITEMS.value: [make_item("i1", 10), make_item("i2", 3)],
        Collection.PROJECTS.value: [make_project("p1"), make_project("p2")],
        Collection.SPOTS.value: [make_spot("A1"), make_spot("B2")],
    }


@pytest.fixture
def store(seeded) -> InMemoryKeyedStore:
    return InMemoryKeyedStore(seeded)


@pytest.fixture
def remote() -> ScriptedRemote:
    return ScriptedRemote()


@pytest.fixture
def engine(store, remote) -> InventoryEngine:
    return InventoryEngine(store, remote, sync_min_interval_seconds=300)


@pytest.fixture
async def db_manager():
    manager = DatabaseSessionManager(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    await manager.create_schema()
    yield manager
    await manager.dispose()


@pytest.fixture
def sql_store(db_manager) -> SqlKeyedStore:
    return SqlKeyedStore(db_manager)


@pytest.fixture
async def client(engine):
    """FastAPI test client bound to the per-test engine."""
    previous = getattr(app.state, "engine", None)
    app.state.engine = engine
    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test",
    ) as c:
        yield c
    app.state.engine = previous
