"""
ApprovalWorkflowService -- batch lifecycle around the execution engine.

Contract:
    - ``create_batch()`` persists a proposed batch (pending).
    - ``update_actions()`` replaces ``actions_current`` after validating
      it against ``actions_original``; the batch moves to editing.
    - ``approve()`` claims the batch (pending/editing -> approved ->
      executing), runs the executor and records executed or failed.
    - ``cancel()`` moves a batch that has not run to cancelled.

Invariants enforced:
    - Status transitions are compare-and-set UPDATEs, so two concurrent
      approvals of the same batch cannot both reach the executor.
    - The executor never sees a batch that has expired.
    - The stored ``execution_summary`` is always the summary the
      executor returned (or, on a configuration error, a synthesized
      one with ``rollback_performed`` set).

Non-goals:
    - Does NOT notify approvers or end users.
    - Does NOT retry failed batches.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any, Iterable, Sequence
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.orm import Session, sessionmaker

from practice_config import EngineSettings
from practice_kernel.db.engine import session_scope
from practice_kernel.domain.clock import Clock, SystemClock, as_utc
from practice_kernel.exceptions import (
    ActionConfigurationError,
    ActionValidationError,
    BatchExpiredError,
    BatchNotFoundError,
    InvalidBatchStatusError,
)
from practice_kernel.logging_config import LogContext, get_logger

from practice_batch.domain.types import (
    ActionType,
    ApprovalBatch,
    BatchAction,
    BatchStatus,
    ExecutionContext,
    ExecutionSummary,
)
from practice_batch.models.batch import ApprovalBatchModel
from practice_batch.services.executor import BatchActionExecutor

logger = get_logger("batch.workflow")

_EDITABLE = (BatchStatus.PENDING, BatchStatus.EDITING)
_NOT_CANCELLABLE = (BatchStatus.EXECUTED, BatchStatus.EXECUTING, BatchStatus.CANCELLED)


@dataclass(frozen=True)
class ApprovalResult:
    """What ``approve()`` hands back to its caller."""

    batch: ApprovalBatch
    summary: ExecutionSummary


# =============================================================================
# Edit validation (pure)
# =============================================================================


def validate_action_update(
    original: Sequence[BatchAction],
    current: Sequence[BatchAction],
    settings: EngineSettings,
) -> list[dict[str, str]]:
    """Return the list of ``{path, message}`` problems with an edit.

    The approver may tune an action's parameters or disable it, but may
    not add, remove, reorder or retarget actions.
    """
    errors: list[dict[str, str]] = []

    def err(path: str, message: str) -> None:
        errors.append({"path": path, "message": message})

    if len(current) != len(original):
        err("actions", f"expected {len(original)} actions, got {len(current)}")
        return errors

    for i, (before, after) in enumerate(zip(original, current)):
        path = f"actions[{i}]"
        if after.action_type != before.action_type:
            err(f"{path}.action_type", "action type cannot be changed")
            continue
        if after.idempotency_key != before.idempotency_key:
            err(f"{path}.idempotency_key", "idempotency key cannot be changed")
        if not after.enabled:
            continue

        config = after.config
        if after.action_type == ActionType.SEND_EMAIL.value:
            if config.get("to") != before.config.get("to"):
                err(f"{path}.config.to", "email recipients cannot be changed")
            subject = str(config.get("subject") or "")
            if len(subject) > settings.email_subject_max_length:
                err(
                    f"{path}.config.subject",
                    f"subject longer than {settings.email_subject_max_length} characters",
                )
        elif after.action_type == ActionType.BILLING.value:
            message = _billing_hours_problem(config.get("hours"), settings)
            if message:
                err(f"{path}.config.hours", message)
        elif after.action_type == ActionType.CREATE_TASK.value:
            if not str(config.get("title") or "").strip():
                err(f"{path}.config.title", "task title is required")
        elif after.action_type == ActionType.CALENDAR_EVENT.value:
            if not str(config.get("title") or config.get("title_template") or "").strip():
                err(f"{path}.config.title", "event title is required")

    return errors


def _billing_hours_problem(value: Any, settings: EngineSettings) -> str | None:
    if value in (None, ""):
        return None
    try:
        hours = Decimal(str(value))
    except InvalidOperation:
        return "hours must be a number"
    if not settings.billing_hours_min <= hours <= settings.billing_hours_max:
        return (
            f"hours must be between {settings.billing_hours_min} "
            f"and {settings.billing_hours_max}"
        )
    if hours % settings.billing_hours_increment != 0:
        return f"hours must be a multiple of {settings.billing_hours_increment}"
    return None


# =============================================================================
# Service
# =============================================================================


class ApprovalWorkflowService:
    def __init__(
        self,
        session_factory: sessionmaker[Session],
        executor: BatchActionExecutor,
        settings: EngineSettings | None = None,
        clock: Clock | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._executor = executor
        self._settings = settings or EngineSettings()
        self._clock = clock or SystemClock()

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def get_batch(self, batch_id: UUID) -> ApprovalBatch:
        """Raises BatchNotFoundError."""
        with session_scope(self._session_factory) as session:
            return self._load(session, batch_id).to_dto()

    # -------------------------------------------------------------------------
    # Commands
    # -------------------------------------------------------------------------

    def create_batch(self, batch: ApprovalBatch, created_by: str = "system") -> ApprovalBatch:
        with session_scope(self._session_factory) as session:
            model = ApprovalBatchModel.from_dto(batch, created_by=created_by)
            session.add(model)
            session.flush()
            created = model.to_dto()

        logger.info(
            "approval_batch_created",
            extra={
                "approval_batch_id": str(created.batch_id),
                "action_count": len(created.actions_current),
            },
        )
        return created

    def update_actions(
        self,
        batch_id: UUID,
        actions: Iterable[BatchAction],
    ) -> ApprovalBatch:
        """Replace the approver-edited actions of a pending/editing batch.

        Raises:
            BatchNotFoundError: No such batch.
            InvalidBatchStatusError: The batch is no longer editable.
            ActionValidationError: The edit is not allowed.
        """
        actions = tuple(actions)
        with session_scope(self._session_factory) as session:
            model = self._load(session, batch_id)
            status = BatchStatus(model.status)
            if status not in _EDITABLE:
                raise InvalidBatchStatusError(str(batch_id), status.value, "edit")

            original = model.to_dto().actions_original
            errors = validate_action_update(original, actions, self._settings)
            if errors:
                raise ActionValidationError(str(batch_id), errors)

            model.actions_current = [a.to_dict() for a in actions]
            model.status = BatchStatus.EDITING.value
            session.flush()
            updated = model.to_dto()

        logger.info("approval_batch_edited", extra={"approval_batch_id": str(batch_id)})
        return updated

    def approve(
        self,
        batch_id: UUID,
        context: ExecutionContext,
        approved_via: str | None = None,
    ) -> ApprovalResult:
        """Approve a batch and execute its actions.

        Raises:
            BatchNotFoundError: No such batch.
            InvalidBatchStatusError: Not pending/editing, or another
                approval claimed it first.
            BatchExpiredError: ``expires_at`` has passed.
            ActionConfigurationError: From the executor, after the batch
                was marked failed.
            Exception: Anything else the executor raised, likewise
                re-raised after the batch was marked failed.
        """
        with LogContext.bind(batch_id=str(batch_id), actor_id=context.actor):
            batch = self._claim(batch_id, context, approved_via or context.origin)
            try:
                summary = self._executor.execute_batch_actions(batch, context)
            except ActionConfigurationError as exc:
                self._finish(
                    batch_id, BatchStatus.FAILED,
                    self._aborted_summary(batch, rollback_performed=True), str(exc),
                )
                raise
            except Exception as exc:
                # Never leave the batch in executing: cancel() refuses that status.
                self._finish(
                    batch_id, BatchStatus.FAILED,
                    self._aborted_summary(batch, rollback_performed=False),
                    f"execution error: {exc}",
                )
                raise

            if summary.failed == 0:
                final, message = BatchStatus.EXECUTED, None
            else:
                final = BatchStatus.FAILED
                message = f"{summary.failed} action(s) failed"
                if summary.rollback_performed:
                    message += "; completed actions were rolled back"
                if summary.rollback_failures:
                    message += (
                        f"; {len(summary.rollback_failures)} entity(ies) could not be deleted"
                    )

            finished = self._finish(batch_id, final, summary, message)
            return ApprovalResult(batch=finished, summary=summary)

    def cancel(self, batch_id: UUID, reason: str | None = None) -> ApprovalBatch:
        """Raises BatchNotFoundError, InvalidBatchStatusError."""
        with session_scope(self._session_factory) as session:
            model = self._load(session, batch_id)
            status = BatchStatus(model.status)
            if status in _NOT_CANCELLABLE:
                raise InvalidBatchStatusError(str(batch_id), status.value, "cancel")
            model.status = BatchStatus.CANCELLED.value
            model.cancelled_at = self._clock.now()
            model.cancel_reason = reason
            session.flush()
            cancelled = model.to_dto()

        logger.info(
            "approval_batch_cancelled",
            extra={"approval_batch_id": str(batch_id), "reason": reason},
        )
        return cancelled

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _claim(
        self,
        batch_id: UUID,
        context: ExecutionContext,
        approved_via: str,
    ) -> ApprovalBatch:
        now = self._clock.now()
        with session_scope(self._session_factory) as session:
            model = self._load(session, batch_id)
            status = BatchStatus(model.status)
            if status not in _EDITABLE:
                raise InvalidBatchStatusError(str(batch_id), status.value, "approve")
            if model.expires_at is not None and as_utc(model.expires_at) <= now:
                raise BatchExpiredError(str(batch_id), as_utc(model.expires_at).isoformat())

            claimed = session.execute(
                update(ApprovalBatchModel)
                .where(
                    ApprovalBatchModel.id == batch_id,
                    ApprovalBatchModel.status.in_([s.value for s in _EDITABLE]),
                )
                .values(
                    status=BatchStatus.APPROVED.value,
                    approved_at=now,
                    approved_by=context.actor,
                    approved_via=approved_via,
                )
                .execution_options(synchronize_session=False)
            ).rowcount
            if claimed != 1:
                raise InvalidBatchStatusError(str(batch_id), "approved", "approve")

        logger.info("approval_batch_approved", extra={"approved_via": approved_via})

        with session_scope(self._session_factory) as session:
            model = self._load(session, batch_id)
            model.status = BatchStatus.EXECUTING.value
            session.flush()
            return model.to_dto()

    def _finish(
        self,
        batch_id: UUID,
        status: BatchStatus,
        summary: ExecutionSummary,
        error_message: str | None,
    ) -> ApprovalBatch:
        with session_scope(self._session_factory) as session:
            model = self._load(session, batch_id)
            model.status = status.value
            model.execution_summary = summary.to_dict()
            model.error_message = error_message
            session.flush()
            finished = model.to_dto()

        log = logger.info if status == BatchStatus.EXECUTED else logger.warning
        log(
            "approval_batch_finished",
            extra={"status": status.value, "error_message": error_message},
        )
        return finished

    def _aborted_summary(
        self, batch: ApprovalBatch, *, rollback_performed: bool,
    ) -> ExecutionSummary:
        """Summary stored when the engine raised instead of returning one."""
        total = len(batch.actions_current)
        return ExecutionSummary(
            total=total,
            success=0,
            failed=total,
            skipped=0,
            executed_at=self._clock.now(),
            rollback_performed=rollback_performed,
        )

    @staticmethod
    def _load(session: Session, batch_id: UUID) -> ApprovalBatchModel:
        model = session.execute(
            select(ApprovalBatchModel).where(ApprovalBatchModel.id == batch_id)
        ).scalar_one_or_none()
        if model is None:
            raise BatchNotFoundError(str(batch_id))
        return model
