"""Reservation Routes — reserve, release, adjust, per-item view, consistency.

Invariants:
    - ValidationError → 400, unknown item/project → 404,
      TransactionInconsistency → 409 (client should POST /reservations/repair)
    - Quantities in responses come from the project side only
"""

from fastapi import APIRouter, Depends

from stocksync.api.deps import get_actor, get_engine
from stocksync.schemas.inventory import (
    AdjustRequest,
    InconsistencyResponse,
    ItemReservation,
    ReleaseRequest,
    ReservationResponse,
    ReserveRequest,
)
from stocksync.services.inventory_engine import InventoryEngine
from stocksync.services.reservation_ledger import ReservationResult

router = APIRouter(prefix="/api/v1", tags=["reservations"])


def _response(result: ReservationResult) -> ReservationResponse:
    return ReservationResponse(
        item=result.item,
        project=result.project,
        released=result.released,
        count=result.count,
    )


@router.post("/reservations", response_model=ReservationResponse)
async def reserve(
    body: ReserveRequest,
    engine: InventoryEngine = Depends(get_engine),
    actor: str | None = Depends(get_actor),
):
    result = await engine.reserve(body.item_id, body.project_id, body.amount, actor=actor)
    return _response(result)


@router.post("/reservations/release", response_model=ReservationResponse)
async def release(
    body: ReleaseRequest,
    engine: InventoryEngine = Depends(get_engine),
    actor: str | None = Depends(get_actor),
):
    result = await engine.release(body.item_id, body.project_id, body.mode, actor=actor)
    return _response(result)


@router.post("/reservations/adjust", response_model=ReservationResponse)
async def adjust(
    body: AdjustRequest,
    engine: InventoryEngine = Depends(get_engine),
    actor: str | None = Depends(get_actor),
):
    result = await engine.adjust_count(
        body.item_id, body.project_id, body.delta, actor=actor,
    )
    return _response(result)


@router.get(
    "/items/{item_id}/reservations", response_model=list[ItemReservation],
)
async def item_reservations(
    item_id: str, engine: InventoryEngine = Depends(get_engine),
):
    return await engine.get_reservations_for_item(item_id)


@router.get(
    "/reservations/consistency", response_model=list[InconsistencyResponse],
)
async def consistency(engine: InventoryEngine = Depends(get_engine)):
    return [
        InconsistencyResponse(
            kind=p.kind, item_id=p.item_id, project_id=p.project_id, message=p.message,
        )
        for p in await engine.check_consistency()
    ]


@router.post("/reservations/repair")
async def repair(
    engine: InventoryEngine = Depends(get_engine),
    actor: str | None = Depends(get_actor),
):
    changed = await engine.repair(actor=actor)
    return {"repaired_items": changed}
