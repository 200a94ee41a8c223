"""Sync Coordinator — pull → merge → persist cycles against the remote store.

Invariants:
    - Phases: IDLE → REQUESTING → MERGING → IDLE; any failure → FAILED
    - FAILED never advances SyncState: the next cycle re-requests the same delta
    - The network request runs outside every collection lock
    - MERGING holds every collection lock plus lastSync: local mutations issued
      meanwhile queue behind the persist step
    - lastSync is written last, only after every collection persisted
    - One cycle at a time; a second trigger waits, then re-checks the throttle
    - Throttle: a non-forced trigger within min_interval_seconds of the last
      successful cycle returns a skipped report without touching the network
    - The last success time is persisted beside the cursor, so the throttle
      survives a restart

Design Decisions:
    - Merge is idempotent, so a crash between collection writes and the cursor
      write is repaired by simply re-running the cycle
"""

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone

from stocksync.core.domain_types import (
    ALL_COLLECTIONS,
    SYNC_STATE_KEY,
    Collection,
    SyncPhase,
    SyncState,
)
from stocksync.core.errors import ErrorContext, StockSyncError, SyncFailure
from stocksync.core.record_merge import merge_records
from stocksync.core.repository_protocols import KeyedStore, RemoteSyncClient
from stocksync.core.reservation_rules import find_inconsistencies
from stocksync.core.sync_protocol import (
    advance_sync_state,
    can_transition,
    parse_response,
    sync_state_from_records,
    sync_state_to_records,
    synced_at_from_records,
)
from stocksync.services.collection_locks import CollectionLocks
from stocksync.services.spot_index import SpotAssignmentIndex

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class SyncReport:
    """Outcome of one trigger_sync call."""
    sync_state: SyncState
    skipped: bool = False
    merged: dict[str, int] = field(default_factory=dict)
    merge_skips: int = 0
    pruned_spot_references: int = 0
    inconsistencies: int = 0
    synced_at: str | None = None


@dataclass
class SyncStatus:
    """Read-only view of the coordinator for progress display."""
    phase: SyncPhase
    last_success_at: datetime | None = None
    last_error_code: str | None = None
    last_error_reason: str | None = None
    last_error_message: str | None = None


class SyncCoordinator:
    """Runs sync cycles and owns the SyncState cursor."""

    def __init__(
        self,
        store: KeyedStore,
        client: RemoteSyncClient,
        locks: CollectionLocks,
        spots: SpotAssignmentIndex,
        min_interval_seconds: float = 300,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self._store = store
        self._client = client
        self._locks = locks
        self._spots = spots
        self._min_interval = timedelta(seconds=min_interval_seconds)
        self._clock = clock
        self._cycle_lock = asyncio.Lock()
        self._phase = SyncPhase.IDLE
        self._last_success_at: datetime | None = None
        self._last_error: SyncFailure | None = None

    @property
    def phase(self) -> SyncPhase:
        return self._phase

    def status(self) -> SyncStatus:
        err = self._last_error
        return SyncStatus(
            phase=self._phase,
            last_success_at=self._last_success_at,
            last_error_code=err.code if err else None,
            last_error_reason=err.reason if err else None,
            last_error_message=err.message if err else None,
        )

    async def sync_state(self) -> SyncState:
        async with self._locks.hold(SYNC_STATE_KEY):
            return sync_state_from_records(await self._store.get(SYNC_STATE_KEY))

    def _enter(self, target: SyncPhase) -> None:
        if not can_transition(self._phase, target):
            raise RuntimeError(f"Illegal sync transition {self._phase} → {target}")
        logger.info(
            f"Sync phase {self._phase.value} → {target.value}",
            extra={"sync_phase": target.value},
        )
        self._phase = target

    def _fail(self, error: SyncFailure) -> None:
        self._last_error = error
        self._enter(SyncPhase.FAILED)
        logger.error(
            f"Sync cycle failed: {error.message}",
            extra={"sync_phase": SyncPhase.FAILED.value, "error_code": error.code},
        )

    async def _throttled(self) -> bool:
        if self._last_success_at is None:
            async with self._locks.hold(SYNC_STATE_KEY):
                records = await self._store.get(SYNC_STATE_KEY)
            self._last_success_at = synced_at_from_records(records)
        if self._last_success_at is None:
            return False
        return self._clock() - self._last_success_at < self._min_interval

    async def trigger_sync(self, force: bool = False) -> SyncReport:
        """Run one cycle. Raises SyncFailure; SyncState is untouched on failure."""
        async with self._cycle_lock:
            if not force and await self._throttled():
                logger.info("Skipping sync; synced recently", extra={"skipped": True})
                return SyncReport(sync_state=await self.sync_state(), skipped=True)
            return await self._run_cycle()

    async def _run_cycle(self) -> SyncReport:
        self._enter(SyncPhase.REQUESTING)
        try:
            last_sync = await self.sync_state()
            payload = await self._client.pull(last_sync)
            delta = parse_response(payload)

            self._enter(SyncPhase.MERGING)
            synced_at = self._clock()
            report = await self._merge_and_persist(
                last_sync, delta.batches, delta.updated_timestamps, synced_at,
            )
        except SyncFailure as e:
            self._fail(e)
            raise
        except StockSyncError as e:
            failure = SyncFailure(
                e.message, "persist",
                context=ErrorContext(sync_phase=self._phase.value),
            )
            self._fail(failure)
            raise failure from e
        except asyncio.CancelledError:
            self._fail(SyncFailure(
                "cycle cancelled", "cancelled",
                context=ErrorContext(sync_phase=self._phase.value),
            ))
            raise
        except Exception as e:
            failure = SyncFailure(
                f"{type(e).__name__}: {e}", "internal",
                context=ErrorContext(sync_phase=self._phase.value),
            )
            self._fail(failure)
            raise failure from e

        self._enter(SyncPhase.IDLE)
        self._last_success_at = synced_at
        self._last_error = None
        return report

    async def _merge_and_persist(
        self,
        last_sync: SyncState,
        batches: dict[Collection, list],
        updated_timestamps: SyncState,
        synced_at: datetime,
    ) -> SyncReport:
        names = [c.value for c in ALL_COLLECTIONS] + [SYNC_STATE_KEY]
        async with self._locks.hold(*names):
            report = SyncReport(sync_state=last_sync)
            for collection in ALL_COLLECTIONS:
                batch = batches.get(collection, [])
                existing = await self._store.get(collection.value)
                outcome = merge_records(
                    collection.value, existing, batch, collection.id_field,
                )
                for skip in outcome.skipped:
                    logger.warning(
                        skip.message,
                        extra={"collection": collection.value, "error_code": skip.code},
                    )
                if batch:
                    await self._store.set(collection.value, outcome.records)
                report.merged[collection.value] = outcome.inserted + outcome.updated
                report.merge_skips += len(outcome.skipped)

            report.pruned_spot_references = await self._spots.prune_dangling_unlocked()
            problems = find_inconsistencies(
                await self._store.get(Collection.WAREHOUSE_ITEMS.value),
                await self._store.get(Collection.PROJECTS.value),
            )
            report.inconsistencies = len(problems)
            if problems:
                logger.warning(
                    f"{len(problems)} reservation inconsistency(ies) after merge; repair pending",
                    extra={"error_code": problems[0].code},
                )

            new_state = advance_sync_state(last_sync, updated_timestamps)
            await self._store.set(
                SYNC_STATE_KEY, sync_state_to_records(new_state, synced_at),
            )
            report.sync_state = new_state
            report.synced_at = synced_at.isoformat()

        logger.info(
            f"Sync merged {sum(report.merged.values())} record(s)",
            extra={"sync_phase": SyncPhase.MERGING.value},
        )
        return report
