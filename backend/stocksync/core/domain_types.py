"""Domain Types — rich types that replace bare primitives across the codebase.

Invariants:
    - ItemId, ProjectId, SpotId wrap str — records use client- or server-assigned string ids
    - Collection names are the persisted keys AND the wire keys (one list per name)
    - spots are identified by "spotId"; every other collection by "id"
    - SYNC_STATE_KEY ("lastSync") is reserved: never a Collection member

Design Decisions:
    - NewType over dataclass wrappers: zero runtime cost, full type-checker support
    - str Enums: serialize to JSON without custom encoders
"""

from enum import Enum
from typing import NewType


# ─── Identity Types ──────────────────────────────────────────────

ItemId = NewType("ItemId", str)
ProjectId = NewType("ProjectId", str)
SpotId = NewType("SpotId", str)

Record = dict
SyncState = dict[str, str | None]


# ─── Enums ───────────────────────────────────────────────────────

class Collection(str, Enum):
    """Collections covered by the sync protocol, in pull order."""
    PROFILE = "profile"
    WAREHOUSE_ITEMS = "warehouseItems"
    PROJECTS = "projects"
    HISTORY = "history"
    WAREHOUSE_CATEGORIES = "warehouseCategories"
    PROJECT_CATEGORIES = "projectCategories"
    SPOTS = "spots"

    @property
    def id_field(self) -> str:
        return "spotId" if self is Collection.SPOTS else "id"


class ReleaseMode(str, Enum):
    """What happens to the released quantity."""
    SUBTRACT = "subtract"   # consumed: item count unchanged
    RESTORE = "restore"     # returned to stock: item count += released


class SyncPhase(str, Enum):
    """Sync Coordinator states. FAILED is terminal for the cycle that entered it."""
    IDLE = "idle"
    REQUESTING = "requesting"
    MERGING = "merging"
    FAILED = "failed"


class CategoryScope(str, Enum):
    """Category namespace — each scope persists in its own collection."""
    WAREHOUSE = "warehouse"
    PROJECT = "project"

    @property
    def collection(self) -> Collection:
        if self is CategoryScope.WAREHOUSE:
            return Collection.WAREHOUSE_CATEGORIES
        return Collection.PROJECT_CATEGORIES


class HistoryAction(str, Enum):
    """Audit actions recorded in the history collection."""
    RESERVE = "reserve"
    RELEASE = "release"
    ADJUST = "adjust"
    ASSIGN = "assign"
    UNASSIGN = "unassign"
    CREATE = "create"
    DELETE = "delete"
    REPAIR = "repair"


SYNC_STATE_KEY = "lastSync"
ALL_COLLECTIONS: tuple[Collection, ...] = tuple(Collection)

# Array fields that follow the authoritative-replace rule during merge
AUTHORITATIVE_ARRAY_FIELDS = frozenset({"reserved", "photos"})

# Array fields holding bare record ids; merge keeps only non-empty strings
ID_LIST_FIELDS = frozenset({"reservedItems"})
