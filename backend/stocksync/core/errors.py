"""Error Hierarchy — typed, categorized exceptions for every StockSync failure mode.

Invariants:
    - Every error has a code (str), category (ErrorCategory), severity (ErrorSeverity)
    - ValidationError is never retried; it surfaces to the caller immediately
    - MergeSkip is collected by the merge engine, never raised past it
    - TransactionInconsistency is WARNING severity: recoverable through a repair pass
    - SyncFailure leaves SyncState untouched; the next cycle retries the same delta
    - to_response() produces the REST envelope; no internal details in messages

Design Decisions:
    - Single hierarchy rooted at StockSyncError: FastAPI global handler catches all
    - ErrorContext as dataclass: collection/record ids travel with the error into logs
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any
from datetime import datetime, timezone


class ErrorSeverity(str, Enum):
    """Error severity for observability and client handling."""
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class ErrorCategory(str, Enum):
    """High-level error categories for routing and handling."""
    VALIDATION = "validation"
    BUSINESS_RULE = "business_rule"
    RESOURCE_NOT_FOUND = "resource_not_found"
    DATABASE = "database"
    EXTERNAL_API = "external_api"
    INTERNAL = "internal"
    CONFLICT = "conflict"
    TIMEOUT = "timeout"


@dataclass
class ErrorContext:
    """Rich context for error observability and debugging."""
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    collection: str | None = None
    item_id: str | None = None
    project_id: str | None = None
    spot_id: str | None = None
    sync_phase: str | None = None
    debug_info: dict[str, Any] | None = None


class StockSyncError(Exception):
    """Base exception for all StockSync errors."""

    def __init__(
        self,
        message: str,
        code: str,
        category: ErrorCategory,
        severity: ErrorSeverity = ErrorSeverity.ERROR,
        context: ErrorContext | None = None,
        http_status: int = 500,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.category = category
        self.severity = severity
        self.context = context or ErrorContext()
        self.http_status = http_status

    @property
    def recoverable(self) -> bool:
        return self.severity in (ErrorSeverity.INFO, ErrorSeverity.WARNING)

    def to_response(self) -> dict:
        """Convert to standardized REST error response."""
        return {
            "error": {
                "code": self.code,
                "message": self.message,
                "category": self.category.value,
                "severity": self.severity.value,
                "timestamp": self.context.timestamp.isoformat(),
                "context": {
                    "collection": self.context.collection,
                    "item_id": self.context.item_id,
                    "project_id": self.context.project_id,
                    "spot_id": self.context.spot_id,
                    "sync_phase": self.context.sync_phase,
                },
            }
        }


# ─── Domain Errors (400-level) ──────────────────────────────────

class ValidationError(StockSyncError):
    """Bad, missing or out-of-range input to a ledger operation."""
    def __init__(
        self,
        message: str,
        field: str | None = None,
        code: str = "VALIDATION_ERROR",
        context: ErrorContext | None = None,
    ):
        super().__init__(
            message, code, ErrorCategory.VALIDATION,
            ErrorSeverity.ERROR, context, 400,
        )
        self.field = field


class ActiveReservationsError(ValidationError):
    """Item delete refused while projects still hold reservations on it."""
    def __init__(
        self, item_id: str, project_ids: list[str],
        context: ErrorContext | None = None,
    ):
        ctx = context or ErrorContext()
        ctx.item_id = item_id
        super().__init__(
            f"Item '{item_id}' is reserved by {len(project_ids)} project(s): "
            f"{', '.join(project_ids)}",
            field="item_id", code="ACTIVE_RESERVATIONS", context=ctx,
        )
        self.project_ids = project_ids


class ResourceNotFoundError(StockSyncError):
    """Requested record or collection does not exist."""
    def __init__(
        self, resource_type: str, resource_id: str, context: ErrorContext | None = None,
    ):
        super().__init__(
            f"{resource_type} '{resource_id}' not found",
            "RESOURCE_NOT_FOUND", ErrorCategory.RESOURCE_NOT_FOUND,
            ErrorSeverity.ERROR, context, 404,
        )
        self.resource_type = resource_type
        self.resource_id = resource_id


class MergeSkip(StockSyncError):
    """Malformed record encountered mid-batch; the rest of the batch proceeds."""
    def __init__(
        self, collection: str, index: int, reason: str,
        context: ErrorContext | None = None,
    ):
        ctx = context or ErrorContext()
        ctx.collection = collection
        super().__init__(
            f"Skipped record #{index} in '{collection}': {reason}",
            "MERGE_SKIP", ErrorCategory.VALIDATION,
            ErrorSeverity.WARNING, ctx, 422,
        )
        self.index = index
        self.reason = reason


class TransactionInconsistency(StockSyncError):
    """A multi-collection write was found partially applied."""
    def __init__(
        self, message: str, item_id: str | None = None,
        project_id: str | None = None, kind: str = "index_mismatch",
        context: ErrorContext | None = None,
    ):
        ctx = context or ErrorContext()
        ctx.item_id = ctx.item_id or item_id
        ctx.project_id = ctx.project_id or project_id
        super().__init__(
            message, "TRANSACTION_INCONSISTENCY", ErrorCategory.CONFLICT,
            ErrorSeverity.WARNING, ctx, 409,
        )
        self.item_id = item_id
        self.project_id = project_id
        self.kind = kind


# ─── Infrastructure Errors (500-level) ──────────────────────────

class DatabaseError(StockSyncError):
    """Keyed store operation failed."""
    def __init__(self, message: str, operation: str, context: ErrorContext | None = None):
        super().__init__(
            f"Database {operation} failed: {message}",
            "DATABASE_ERROR", ErrorCategory.DATABASE,
            ErrorSeverity.CRITICAL, context, 503,
        )
        self.operation = operation


class SyncFailure(StockSyncError):
    """Network, response-parse or persist error during a sync cycle."""
    def __init__(
        self, message: str, reason: str, context: ErrorContext | None = None,
    ):
        category = (
            ErrorCategory.TIMEOUT if reason == "timeout"
            else ErrorCategory.EXTERNAL_API
        )
        super().__init__(
            f"Sync failed ({reason}): {message}",
            "SYNC_FAILURE", category,
            ErrorSeverity.ERROR, context, 502,
        )
        self.reason = reason
