"""
practice_batch.domain.types -- Pure frozen dataclasses for batch execution.

ZERO I/O.  Frozen dataclasses with enum status fields and tuples for
immutable collections, the same shape the ORM models round-trip through
``to_dto()`` / ``from_dto()``.

Invariants enforced:
    - Actions are immutable once submitted; the executor only reads them.
    - ``ReservationOutcome`` is either reserved (carrying the new record
      id) or a skip (carrying exactly one ``SkipReason``), never both.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID


# =============================================================================
# Status enums
# =============================================================================


class BatchStatus(str, Enum):
    """Approval batch lifecycle status (owned by the approval workflow)."""

    PENDING = "pending"  # Proposed, waiting for the approver
    EDITING = "editing"  # Approver changed actions_current
    APPROVED = "approved"  # Approved, not yet handed to the engine
    EXECUTING = "executing"  # Engine running
    EXECUTED = "executed"  # Engine finished with no failed actions
    CANCELLED = "cancelled"  # Cancelled by the approver
    FAILED = "failed"  # Engine finished with failures or aborted


class ActionType(str, Enum):
    """Side-effecting action types an approval batch may contain."""

    CREATE_TASK = "create_task"
    BILLING = "billing"
    CREATE_DEADLINE = "create_deadline"
    CREATE_ALERT = "create_alert"
    SEND_EMAIL = "send_email"
    SAVE_FILE = "save_file"
    CALENDAR_EVENT = "calendar_event"


class ReservationStatus(str, Enum):
    """Execution record (reservation) status."""

    PENDING = "pending"  # Reserved, side effect in flight
    COMPLETED = "completed"  # Side effect applied
    FAILED = "failed"  # Failed, rolled back, or reclaimed as stale


class ActionResultStatus(str, Enum):
    """Per-action outcome reported in the execution summary."""

    SUCCESS = "success"
    FAILED = "failed"
    SKIPPED = "skipped"


class SkipReason(str, Enum):
    """Why an action was not executed."""

    DISABLED = "disabled"
    ALREADY_COMPLETED = "already_completed"
    IN_PROGRESS = "in_progress"
    PREVIOUSLY_FAILED = "previously_failed"


# =============================================================================
# Batch DTOs
# =============================================================================


@dataclass(frozen=True)
class BatchAction:
    """One approved unit of side effect inside a batch.

    ``action_type`` is kept as the raw string so that an unsupported type
    submitted by the caller can still be reported rather than rejected
    at parse time.  ``config`` is already fully resolved by the caller.
    """

    action_type: str
    enabled: bool = True
    idempotency_key: str | None = None
    config: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> BatchAction:
        return cls(
            action_type=str(data.get("action_type", "")),
            enabled=bool(data.get("enabled", True)),
            idempotency_key=data.get("idempotency_key") or None,
            config=dict(data.get("config") or {}),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "action_type": self.action_type,
            "enabled": self.enabled,
            "idempotency_key": self.idempotency_key,
            "config": dict(self.config),
        }


@dataclass(frozen=True)
class ApprovalBatch:
    """Immutable snapshot of an approval batch.

    ``actions_original`` is the proposal as produced upstream;
    ``actions_current`` is what the approver actually approved.
    """

    batch_id: UUID
    status: BatchStatus
    actions_current: tuple[BatchAction, ...] = ()
    actions_original: tuple[BatchAction, ...] = ()
    mail_id: str | None = None
    mail_subject: str | None = None
    case_id: str | None = None
    client_id: str | None = None
    rule_id: str | None = None
    rule_name: str | None = None
    approver_email: str | None = None
    expires_at: datetime | None = None
    approved_at: datetime | None = None
    approved_via: str | None = None
    execution_summary: dict[str, Any] | None = None
    error_message: str | None = None


@dataclass(frozen=True)
class ExecutionContext:
    """Who is executing the batch and through which entry point."""

    actor: str = "system"  # user email, or "system"
    origin: str = "unknown"  # e.g. "ui", "email_link"
    correlation_id: str | None = None


# =============================================================================
# Ledger DTOs
# =============================================================================


@dataclass(frozen=True)
class ReservationRecord:
    """Immutable snapshot of one execution ledger entry."""

    record_id: UUID
    idempotency_key: str
    batch_id: UUID
    action_type: str
    status: ReservationStatus
    actor: str
    context: dict[str, Any] = field(default_factory=dict)
    created_at: datetime | None = None
    completed_at: datetime | None = None
    result_entity: str | None = None
    result_id: str | None = None
    error_message: str | None = None


@dataclass(frozen=True)
class ReservationOutcome:
    """Result of ``ReservationLedger.reserve()``."""

    reserved: bool
    record_id: UUID | None = None
    skip_reason: SkipReason | None = None

    @classmethod
    def granted(cls, record_id: UUID) -> ReservationOutcome:
        return cls(reserved=True, record_id=record_id)

    @classmethod
    def skip(cls, reason: SkipReason, record_id: UUID | None = None) -> ReservationOutcome:
        return cls(reserved=False, record_id=record_id, skip_reason=reason)


# =============================================================================
# Execution DTOs
# =============================================================================


@dataclass(frozen=True)
class EntityRef:
    """Stable reference to whatever a handler created."""

    entity_type: str
    entity_id: str
    extras: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class RollbackEntry:
    """A completed revertible action that can still be undone."""

    action_type: str
    entity_id: str
    idempotency_key: str
    record_id: UUID


@dataclass(frozen=True)
class ActionResult:
    """Outcome of one action in one invocation."""

    action_type: str
    idempotency_key: str | None
    status: ActionResultStatus
    detail: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "action_type": self.action_type,
            "idempotency_key": self.idempotency_key,
            "status": self.status.value,
            "detail": dict(self.detail),
        }


@dataclass(frozen=True)
class ExecutionSummary:
    """The engine's sole return value for one batch invocation."""

    total: int
    success: int
    failed: int
    skipped: int
    results: tuple[ActionResult, ...] = ()
    executed_at: datetime | None = None
    execution_time_ms: int = 0
    rollback_performed: bool = False
    rolled_back: tuple[str, ...] = ()
    rollback_failures: tuple[dict[str, str], ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "total": self.total,
            "success": self.success,
            "failed": self.failed,
            "skipped": self.skipped,
            "results": [r.to_dict() for r in self.results],
            "executed_at": self.executed_at.isoformat() if self.executed_at else None,
            "execution_time_ms": self.execution_time_ms,
            "rollback_performed": self.rollback_performed,
            "rolled_back": list(self.rolled_back),
            "rollback_failures": [dict(f) for f in self.rollback_failures],
        }
