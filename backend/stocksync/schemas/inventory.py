"""Inventory Schemas — request/response models for the command surface.

Invariants:
    - Quantities are StrictInt: "3" and True are rejected at the boundary
    - Range rules (amount < available, delta != 0) are NOT duplicated here;
      the ledger owns them and reports them as ValidationError
    - Record payloads stay plain dicts: the server owns record shapes
"""

from typing import Literal

from pydantic import BaseModel, Field, StrictInt, field_validator

from stocksync.core.domain_types import ReleaseMode


class _Named(BaseModel):
    name: str = Field(min_length=1, max_length=200)

    @field_validator("name")
    @classmethod
    def strip_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("name cannot be empty or whitespace")
        return v


class ItemCreate(_Named):
    id: str | None = Field(None, min_length=1, max_length=64)
    description: str = Field("", max_length=5_000)
    category: str | None = None
    count: StrictInt = Field(ge=0)
    photos: list[str | dict] = Field(default_factory=list)


class ProjectCreate(_Named):
    id: str | None = Field(None, min_length=1, max_length=64)
    description: str = Field("", max_length=5_000)
    category: str | None = None
    photos: list[str | dict] = Field(default_factory=list)


class SpotCreate(BaseModel):
    spot_id: str = Field(min_length=1, max_length=64)
    description: str = Field(min_length=1, max_length=1_000)


class CategoryCreate(_Named):
    id: str | None = Field(None, min_length=1, max_length=64)
    scope: Literal["warehouse", "project"]


class ReserveRequest(BaseModel):
    item_id: str = Field(min_length=1)
    project_id: str = Field(min_length=1)
    amount: StrictInt


class ReleaseRequest(BaseModel):
    item_id: str = Field(min_length=1)
    project_id: str = Field(min_length=1)
    mode: ReleaseMode


class AdjustRequest(BaseModel):
    item_id: str = Field(min_length=1)
    project_id: str = Field(min_length=1)
    delta: StrictInt


class ReservationResponse(BaseModel):
    item: dict | None
    project: dict
    released: int | None = None
    count: int | None = None


class ItemReservation(BaseModel):
    projectId: str | None
    projectName: str | None
    count: int


class DeleteResponse(BaseModel):
    deleted: dict
    projects: list[str] = []
    items: list[str] = []
    spots: list[str] = []


class InconsistencyResponse(BaseModel):
    kind: str
    item_id: str | None
    project_id: str | None
    message: str
