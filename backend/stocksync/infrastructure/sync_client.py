"""Remote Sync Client — wraps httpx.AsyncClient with timeout and error mapping.

Invariants:
    - Every request carries the configured timeout; nothing blocks indefinitely
    - Timeout → SyncFailure(timeout); transport error → SyncFailure(transport);
      non-2xx → SyncFailure(http_status); undecodable body → SyncFailure(parse)
    - No retries: retry/backoff cadence belongs to the caller
    - CancelledError (BaseException) passes through uncaught
    - The session credential is opaque: sent as a Bearer token, never inspected

Design Decisions:
    - Wrapper over raw client: isolates error mapping from the sync coordinator
    - transport injectable: tests pass httpx.MockTransport
"""

import logging

import httpx

from stocksync.core.domain_types import SyncPhase, SyncState
from stocksync.core.errors import ErrorContext, SyncFailure
from stocksync.core.sync_protocol import build_request

logger = logging.getLogger(__name__)


class HttpSyncClient:
    """POSTs {"lastSync": ...} to the sync endpoint and returns the decoded body."""

    def __init__(
        self,
        endpoint_url: str,
        timeout_seconds: float = 30.0,
        session_token: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.endpoint_url = endpoint_url
        headers = {"Content-Type": "application/json"}
        if session_token:
            headers["Authorization"] = f"Bearer {session_token}"
        self.client = httpx.AsyncClient(
            timeout=timeout_seconds, headers=headers, transport=transport,
        )

    async def pull(self, last_sync: SyncState) -> object:
        ctx = ErrorContext(sync_phase=SyncPhase.REQUESTING.value)
        try:
            response = await self.client.post(
                self.endpoint_url, json=build_request(last_sync),
            )
        except httpx.TimeoutException as e:
            raise SyncFailure(f"request timed out: {e}", "timeout", context=ctx)
        except httpx.HTTPError as e:
            raise SyncFailure(f"transport error: {e}", "transport", context=ctx)

        if response.status_code < 200 or response.status_code >= 300:
            raise SyncFailure(
                f"server answered {response.status_code}", "http_status", context=ctx,
            )

        try:
            payload = response.json()
        except ValueError as e:
            raise SyncFailure(f"response is not JSON: {e}", "parse", context=ctx)

        logger.info(
            "Sync response received",
            extra={"sync_phase": SyncPhase.REQUESTING.value},
        )
        return payload

    async def aclose(self) -> None:
        await self.client.aclose()
