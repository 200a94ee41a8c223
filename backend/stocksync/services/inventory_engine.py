"""Inventory Engine — facade the presentation layer issues commands through.

Invariants:
    - One store, one CollectionLocks table and one remote client per engine;
      every service shares them, so critical sections see each other
    - Snapshots are deep copies: callers can never mutate engine state
    - Every successful mutation appends one history entry (after it landed)
    - Errors propagate unchanged: result-or-error is the caller's contract
"""

import copy

from stocksync.core.domain_types import (
    Collection,
    HistoryAction,
    Record,
    ReleaseMode,
    SyncState,
)
from stocksync.core.errors import (
    ErrorContext,
    ResourceNotFoundError,
    TransactionInconsistency,
)
from stocksync.core.repository_protocols import KeyedStore, RemoteSyncClient
from stocksync.services.collection_locks import CollectionLocks
from stocksync.services.history_log import HistoryLog
from stocksync.services.inventory_catalog import DeleteReport, InventoryCatalog
from stocksync.services.reservation_ledger import ReservationLedger, ReservationResult
from stocksync.services.spot_index import SpotAssignmentIndex
from stocksync.services.sync_coordinator import SyncCoordinator, SyncReport, SyncStatus


class InventoryEngine:
    """Wires ledger, spot index, catalog, history and sync around one store."""

    def __init__(
        self,
        store: KeyedStore,
        client: RemoteSyncClient,
        sync_min_interval_seconds: float = 300,
        default_actor: str = "local",
        locks: CollectionLocks | None = None,
    ):
        self.store = store
        self.locks = locks or CollectionLocks()
        self.default_actor = default_actor
        self.ledger = ReservationLedger(store, self.locks)
        self.spots = SpotAssignmentIndex(store, self.locks)
        self.catalog = InventoryCatalog(store, self.locks, self.spots)
        self.history = HistoryLog(store, self.locks)
        self.sync = SyncCoordinator(
            store, client, self.locks, self.spots,
            min_interval_seconds=sync_min_interval_seconds,
        )

    async def _audit(
        self, actor: str | None, action: HistoryAction, description: str,
    ) -> None:
        await self.history.record(actor or self.default_actor, action, description)

    # ─── Snapshots ────────────────────────────────────────────────

    async def snapshot(self, name: str) -> tuple[Record, ...]:
        try:
            collection = Collection(name)
        except ValueError:
            raise ResourceNotFoundError(
                "Collection", name, context=ErrorContext(collection=name),
            )
        async with self.locks.hold(collection.value):
            records = await self.store.get(collection.value)
        return tuple(copy.deepcopy(records))

    # ─── Reservations ─────────────────────────────────────────────

    async def reserve(
        self, item_id: str, project_id: str, amount: int, actor: str | None = None,
    ) -> ReservationResult:
        result = await self.ledger.reserve(item_id, project_id, amount)
        await self._audit(
            actor, HistoryAction.RESERVE,
            f"reserved {amount} of {item_id} for {project_id}",
        )
        return result

    async def release(
        self, item_id: str, project_id: str, mode: ReleaseMode | str,
        actor: str | None = None,
    ) -> ReservationResult:
        result = await self.ledger.release(item_id, project_id, mode)
        await self._audit(
            actor, HistoryAction.RELEASE,
            f"released {result.released} of {item_id} from {project_id} "
            f"({ReleaseMode(mode).value})",
        )
        return result

    async def adjust_count(
        self, item_id: str, project_id: str, delta: int, actor: str | None = None,
    ) -> ReservationResult:
        result = await self.ledger.adjust_count(item_id, project_id, delta)
        await self._audit(
            actor, HistoryAction.ADJUST,
            f"adjusted {item_id} in {project_id} to {result.count}",
        )
        return result

    async def get_reservations_for_item(self, item_id: str) -> list[dict]:
        return await self.ledger.get_reservations_for_item(item_id)

    async def check_consistency(self) -> list[TransactionInconsistency]:
        return await self.ledger.check_consistency()

    async def repair(self, actor: str | None = None) -> list[str]:
        changed = await self.ledger.repair()
        if changed:
            await self._audit(
                actor, HistoryAction.REPAIR,
                f"rebuilt reserved index of {', '.join(changed)}",
            )
        return changed

    # ─── Spots ────────────────────────────────────────────────────

    async def assign(self, spot_id: str, item_id: str, actor: str | None = None) -> Record:
        spot = await self.spots.assign(spot_id, item_id)
        await self._audit(actor, HistoryAction.ASSIGN, f"assigned {item_id} to {spot_id}")
        return spot

    async def unassign(self, spot_id: str, item_id: str, actor: str | None = None) -> Record:
        spot = await self.spots.unassign(spot_id, item_id)
        await self._audit(
            actor, HistoryAction.UNASSIGN, f"unassigned {item_id} from {spot_id}",
        )
        return spot

    # ─── Catalog ──────────────────────────────────────────────────

    async def create_item(self, actor: str | None = None, **fields) -> Record:
        item = await self.catalog.create_item(**fields)
        await self._audit(actor, HistoryAction.CREATE, f"created item {item['id']}")
        return item

    async def create_project(self, actor: str | None = None, **fields) -> Record:
        project = await self.catalog.create_project(**fields)
        await self._audit(actor, HistoryAction.CREATE, f"created project {project['id']}")
        return project

    async def create_spot(
        self, spot_id: str, description: str, actor: str | None = None,
    ) -> Record:
        spot = await self.catalog.create_spot(spot_id, description)
        await self._audit(actor, HistoryAction.CREATE, f"created spot {spot['spotId']}")
        return spot

    async def create_category(
        self, scope: str, name: str, category_id: str | None = None,
        actor: str | None = None,
    ) -> Record:
        category = await self.catalog.create_category(scope, name, category_id)
        await self._audit(
            actor, HistoryAction.CREATE, f"created {scope} category {category['id']}",
        )
        return category

    async def delete_item(
        self, item_id: str, cascade: bool = True, actor: str | None = None,
    ) -> DeleteReport:
        report = await self.catalog.delete_item(item_id, cascade=cascade)
        await self._audit(actor, HistoryAction.DELETE, f"deleted item {item_id}")
        return report

    async def delete_project(self, project_id: str, actor: str | None = None) -> DeleteReport:
        report = await self.catalog.delete_project(project_id)
        await self._audit(actor, HistoryAction.DELETE, f"deleted project {project_id}")
        return report

    # ─── Sync ─────────────────────────────────────────────────────

    async def trigger_sync(self, force: bool = False) -> SyncReport:
        return await self.sync.trigger_sync(force=force)

    def sync_status(self) -> SyncStatus:
        return self.sync.status()

    async def sync_state(self) -> SyncState:
        return await self.sync.sync_state()
