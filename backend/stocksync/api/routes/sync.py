"""Sync Routes — trigger a cycle and read the coordinator state.

Invariants:
    - POST /sync returns the SyncReport or the SyncFailure envelope (502)
    - GET /sync/status never touches the network
"""

from dataclasses import asdict

from fastapi import APIRouter, Depends, Query

from stocksync.api.deps import get_engine
from stocksync.services.inventory_engine import InventoryEngine

router = APIRouter(prefix="/api/v1/sync", tags=["sync"])


@router.post("")
async def trigger_sync(
    force: bool = Query(False),
    engine: InventoryEngine = Depends(get_engine),
):
    report = await engine.trigger_sync(force=force)
    return asdict(report)


@router.get("/status")
async def sync_status(engine: InventoryEngine = Depends(get_engine)):
    status = engine.sync_status()
    return {
        "phase": status.phase.value,
        "last_success_at": (
            status.last_success_at.isoformat() if status.last_success_at else None
        ),
        "last_error": (
            {
                "code": status.last_error_code,
                "reason": status.last_error_reason,
                "message": status.last_error_message,
            }
            if status.last_error_code else None
        ),
        "sync_state": await engine.sync_state(),
    }
