"""Inventory Routes — snapshots, local-first creation, deletes and spot membership.

Invariants:
    - Every mutation goes through InventoryEngine (locks + history)
    - Snapshots are read-only copies of one collection
    - DELETE /items/{id}?cascade=false refuses while reservations exist (400)
"""

import logging

from fastapi import APIRouter, Depends, Query, status

from stocksync.api.deps import get_actor, get_engine
from stocksync.schemas.inventory import (
    CategoryCreate,
    DeleteResponse,
    ItemCreate,
    ProjectCreate,
    SpotCreate,
)
from stocksync.services.inventory_catalog import DeleteReport
from stocksync.services.inventory_engine import InventoryEngine

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1", tags=["inventory"])


def _delete_response(report: DeleteReport) -> DeleteResponse:
    return DeleteResponse(
        deleted=report.record,
        projects=report.projects,
        items=report.items,
        spots=report.spots,
    )


@router.get("/collections/{name}")
async def get_collection(name: str, engine: InventoryEngine = Depends(get_engine)):
    """Read-only snapshot of one collection."""
    records = await engine.snapshot(name)
    return {"collection": name, "records": list(records), "total": len(records)}


@router.post("/items", status_code=status.HTTP_201_CREATED)
async def create_item(
    body: ItemCreate,
    engine: InventoryEngine = Depends(get_engine),
    actor: str | None = Depends(get_actor),
):
    return await engine.create_item(
        actor=actor,
        name=body.name,
        count=body.count,
        description=body.description,
        category=body.category,
        photos=body.photos,
        item_id=body.id,
    )


@router.delete("/items/{item_id}", response_model=DeleteResponse)
async def delete_item(
    item_id: str,
    cascade: bool = Query(True),
    engine: InventoryEngine = Depends(get_engine),
    actor: str | None = Depends(get_actor),
):
    report = await engine.delete_item(item_id, cascade=cascade, actor=actor)
    return _delete_response(report)


@router.post("/projects", status_code=status.HTTP_201_CREATED)
async def create_project(
    body: ProjectCreate,
    engine: InventoryEngine = Depends(get_engine),
    actor: str | None = Depends(get_actor),
):
    return await engine.create_project(
        actor=actor,
        name=body.name,
        description=body.description,
        category=body.category,
        photos=body.photos,
        project_id=body.id,
    )


@router.delete("/projects/{project_id}", response_model=DeleteResponse)
async def delete_project(
    project_id: str,
    engine: InventoryEngine = Depends(get_engine),
    actor: str | None = Depends(get_actor),
):
    report = await engine.delete_project(project_id, actor=actor)
    return _delete_response(report)


@router.post("/spots", status_code=status.HTTP_201_CREATED)
async def create_spot(
    body: SpotCreate,
    engine: InventoryEngine = Depends(get_engine),
    actor: str | None = Depends(get_actor),
):
    return await engine.create_spot(body.spot_id, body.description, actor=actor)


@router.post("/spots/{spot_id}/items/{item_id}")
async def assign_item(
    spot_id: str,
    item_id: str,
    engine: InventoryEngine = Depends(get_engine),
    actor: str | None = Depends(get_actor),
):
    return await engine.assign(spot_id, item_id, actor=actor)


@router.delete("/spots/{spot_id}/items/{item_id}")
async def unassign_item(
    spot_id: str,
    item_id: str,
    engine: InventoryEngine = Depends(get_engine),
    actor: str | None = Depends(get_actor),
):
    return await engine.unassign(spot_id, item_id, actor=actor)


@router.post("/categories", status_code=status.HTTP_201_CREATED)
async def create_category(
    body: CategoryCreate,
    engine: InventoryEngine = Depends(get_engine),
    actor: str | None = Depends(get_actor),
):
    return await engine.create_category(body.scope, body.name, body.id, actor=actor)
