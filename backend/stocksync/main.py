"""StockSync API — FastAPI application entry point.

Invariants:
    - Routes registered explicitly (no auto-discovery)
    - Global error handlers map StockSyncError → structured JSON responses
    - CORS configured from settings (not hardcoded)
    - One InventoryEngine per process, built in the lifespan and kept on app.state
    - Shutdown closes the sync client before disposing the database engine

Design Decisions:
    - Lifespan over @app.on_event: FastAPI recommended pattern, cleaner cleanup
    - Embedded SQLite creates its schema on startup; other databases are
      migrated with alembic before the process starts
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from stocksync.api.error_handlers import register_error_handlers
from stocksync.api.routes import health, inventory, reservations, sync
from stocksync.config import get_settings
from stocksync.infrastructure.database import SqlKeyedStore, init_db
from stocksync.infrastructure.observability import setup_logging
from stocksync.infrastructure.sync_client import HttpSyncClient
from stocksync.services.inventory_engine import InventoryEngine

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup/shutdown lifecycle."""
    settings = get_settings()
    setup_logging(settings.log_level, settings.log_format)
    manager = init_db(settings.database_url, echo=settings.database_echo)
    if settings.is_sqlite:
        await manager.create_schema()

    client = HttpSyncClient(
        settings.sync_endpoint_url,
        timeout_seconds=settings.sync_timeout_seconds,
        session_token=settings.session_token,
    )
    app.state.engine = InventoryEngine(
        SqlKeyedStore(manager),
        client,
        sync_min_interval_seconds=settings.sync_min_interval_seconds,
        default_actor=settings.default_actor,
    )
    logger.info("StockSync API started")
    yield
    logger.info("StockSync API shutting down")
    await client.aclose()
    await manager.dispose()


app = FastAPI(
    title="StockSync API", version="1.0.0", lifespan=lifespan,
)

# CORS — configured from settings, not hardcoded
settings = get_settings()
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Routes — explicit registration
app.include_router(health.router)
app.include_router(inventory.router)
app.include_router(reservations.router)
app.include_router(sync.router)

register_error_handlers(app)
