"""Database Session Manager & SQL Keyed Store — the production KeyedStore.

Invariants:
    - Every session auto-rolls-back on exception (no partial commits leak)
    - All SQLAlchemy exceptions mapped to DatabaseError (core/errors.py)
    - SqlKeyedStore.set() replaces one collection's list in a single commit
    - get() of a never-written name returns []; returned lists are private copies

Design Decisions:
    - Singleton db_manager initialized on startup: FastAPI lifespan manages lifecycle
    - expire_on_commit=False: prevents lazy-load issues in async context
    - create_schema() for the embedded database; alembic for managed deployments
"""

import copy
import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from sqlalchemy.ext.asyncio import (
    AsyncSession, create_async_engine, async_sessionmaker,
)
from sqlalchemy.exc import (
    IntegrityError, OperationalError, DBAPIError, SQLAlchemyError,
)
from sqlalchemy import text

from stocksync.core.domain_types import Record
from stocksync.core.errors import DatabaseError
from stocksync.db.base import Base
from stocksync.models.collection import CollectionRecord

logger = logging.getLogger(__name__)


class DatabaseSessionManager:
    """Manages async database sessions with rollback and health checks."""

    def __init__(self, database_url: str, echo: bool = False, **engine_kwargs):
        self.engine = create_async_engine(
            database_url, echo=echo, pool_pre_ping=True, **engine_kwargs,
        )
        self._session_factory = async_sessionmaker(
            self.engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        """Provide session with auto-rollback on exception."""
        session = self._session_factory()
        try:
            yield session
        except IntegrityError as e:
            await session.rollback()
            logger.error(f"DB integrity error: {e}")
            raise DatabaseError("Integrity constraint violated", "commit")
        except OperationalError as e:
            await session.rollback()
            logger.error(f"DB operational error: {e}")
            raise DatabaseError("Connection or operational error", "execute")
        except DBAPIError as e:
            await session.rollback()
            logger.error(f"DB driver error: {e}")
            raise DatabaseError("Database driver error", "query")
        except SQLAlchemyError as e:
            await session.rollback()
            logger.error(f"SQLAlchemy error: {e}")
            raise DatabaseError("Database operation failed", "unknown")
        finally:
            await session.close()

    async def create_schema(self) -> None:
        """Create missing tables (embedded database / development)."""
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def health_check(self) -> bool:
        """Check database connectivity (for readiness probes)."""
        try:
            async with self.session() as db:
                await db.execute(text("SELECT 1"))
            return True
        except DatabaseError as e:
            logger.error(f"DB health check failed: {e}")
            return False

    async def dispose(self) -> None:
        await self.engine.dispose()


class SqlKeyedStore:
    """KeyedStore backed by the `collections` table — one row per name."""

    def __init__(self, manager: DatabaseSessionManager):
        self._manager = manager

    async def get(self, name: str) -> list[Record]:
        async with self._manager.session() as db:
            row = await db.get(CollectionRecord, name)
            if row is None:
                return []
            return copy.deepcopy(row.records or [])

    async def set(self, name: str, records: list[Record]) -> None:
        async with self._manager.session() as db:
            row = await db.get(CollectionRecord, name)
            if row is None:
                db.add(CollectionRecord(name=name, records=copy.deepcopy(records)))
            else:
                row.records = copy.deepcopy(records)
            await db.commit()
        logger.debug(
            f"Persisted {len(records)} record(s)", extra={"collection": name},
        )


# Singleton (initialized on startup)
db_manager: DatabaseSessionManager | None = None


def init_db(database_url: str, **kwargs) -> DatabaseSessionManager:
    global db_manager
    db_manager = DatabaseSessionManager(database_url, **kwargs)
    return db_manager
