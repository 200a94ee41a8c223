"""Boundary Protocols — contracts between core and shell.

Invariants:
    - Core NEVER imports from shell — dependency arrows point inward only
    - All IO operations accessed through Protocol types
    - Implementations provided by shell via dependency injection

Design Decisions:
    - Protocol over ABC: structural subtyping, so the SQL store, the in-memory
      test fake and the HTTP client need no shared base class
    - Async in Protocol: implementations do IO; the pure functions in core that
      shape the data they carry are never async themselves
"""

from typing import Protocol

from stocksync.core.domain_types import Record, SyncState


class KeyedStore(Protocol):
    """Named, persisted list-of-records — one list per collection name.

    get() returns an empty list for a name that was never written.
    set() replaces the whole list for that name as one durable write.
    """
    async def get(self, name: str) -> list[Record]: ...
    async def set(self, name: str, records: list[Record]) -> None: ...


class RemoteSyncClient(Protocol):
    """Contract for the authoritative remote store — implemented by shell.

    pull() sends {"lastSync": last_sync} and returns the decoded response body.
    Any transport, timeout or status failure is raised as SyncFailure.
    """
    async def pull(self, last_sync: SyncState) -> object: ...
