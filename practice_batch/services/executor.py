"""
BatchActionExecutor -- at-most-once execution of an approved batch.

Contract:
    ``execute_batch_actions(batch, context)`` runs every action of
    ``batch.actions_current`` once, in classification order, and returns
    an ``ExecutionSummary``.  It is safe to call more than once for the
    same batch: the reservation ledger turns repeats into skips.

Control algorithm (one pass, no loops back):
    1. Order actions: revertible first, stable otherwise.
    2. Per action:
       disabled                 -> skipped(disabled)
       no idempotency key       -> roll back, raise ActionConfigurationError
       reserve() is a skip      -> skipped(<reason>)
       dispatch() succeeds      -> complete record, success, push if revertible
       dispatch() fails         -> fail record, failed, then by class:
           revertible           -> roll back the stack, stop
           non-revertible       -> log, continue
           best-effort          -> log, continue
    3. Summarize.

Non-goals:
    - Does NOT change the batch's status; the workflow service owns that.
    - Does NOT run actions concurrently or apply per-dispatch timeouts.
"""

from __future__ import annotations

from typing import Any

from practice_kernel.domain.clock import Clock, SystemClock
from practice_kernel.exceptions import ActionConfigurationError, ReservationError
from practice_kernel.logging_config import LogContext, get_logger

from practice_batch.domain.classification import classify, order_for_execution
from practice_batch.domain.types import (
    ApprovalBatch,
    BatchAction,
    ExecutionContext,
    ExecutionSummary,
    RollbackEntry,
    SkipReason,
)
from practice_batch.services.aggregator import ResultAggregator
from practice_batch.services.dispatcher import ActionDispatcher
from practice_batch.services.ledger import ReservationLedger
from practice_batch.services.rollback import RollbackManager

logger = get_logger("batch.executor")


class BatchActionExecutor:
    def __init__(
        self,
        ledger: ReservationLedger,
        dispatcher: ActionDispatcher,
        rollback_manager: RollbackManager,
        clock: Clock | None = None,
    ) -> None:
        self._ledger = ledger
        self._dispatcher = dispatcher
        self._rollback_manager = rollback_manager
        self._clock = clock or SystemClock()

    def execute_batch_actions(
        self,
        batch: ApprovalBatch,
        context: ExecutionContext,
    ) -> ExecutionSummary:
        """Execute the approved actions of ``batch``.

        Raises:
            ActionConfigurationError: An enabled action has no idempotency
                key.  Everything completed earlier in this call is rolled
                back first.
        """
        with LogContext.bind(
            batch_id=str(batch.batch_id),
            actor_id=context.actor,
            origin=context.origin,
            correlation_id=context.correlation_id,
        ):
            return self._execute(batch, context)

    def _execute(self, batch: ApprovalBatch, context: ExecutionContext) -> ExecutionSummary:
        aggregator = ResultAggregator(len(batch.actions_current), self._clock.now())
        stack: list[RollbackEntry] = []

        logger.info(
            "batch_execution_started",
            extra={"action_count": len(batch.actions_current)},
        )

        for action in order_for_execution(batch.actions_current):
            if not action.enabled:
                aggregator.record_skip(action, SkipReason.DISABLED)
                continue

            if not action.idempotency_key:
                logger.error(
                    "action_missing_idempotency_key",
                    extra={"action_type": action.action_type},
                )
                self._rollback(stack, aggregator)
                raise ActionConfigurationError(
                    action.action_type, "missing idempotency_key", str(batch.batch_id),
                )

            with LogContext.bind(idempotency_key=action.idempotency_key):
                stop = self._execute_action(action, batch, context, aggregator, stack)
            if stop:
                break

        summary = aggregator.summarize()
        logger.info(
            "batch_execution_completed",
            extra={
                "total": summary.total,
                "success": summary.success,
                "failed": summary.failed,
                "skipped": summary.skipped,
                "rollback_performed": summary.rollback_performed,
                "duration_ms": summary.execution_time_ms,
            },
        )
        return summary

    def _execute_action(
        self,
        action: BatchAction,
        batch: ApprovalBatch,
        context: ExecutionContext,
        aggregator: ResultAggregator,
        stack: list[RollbackEntry],
    ) -> bool:
        """Run one enabled, keyed action.  Returns True if the batch must stop."""
        key = action.idempotency_key
        revertible = classify(action.action_type).revertible

        try:
            outcome = self._ledger.reserve(
                key, batch.batch_id, action.action_type, context, _batch_metadata(batch),
            )
        except ReservationError as exc:
            return self._handle_failure(action, exc, aggregator, stack)

        if not outcome.reserved:
            logger.info(
                "action_skipped",
                extra={"action_type": action.action_type, "reason": outcome.skip_reason},
            )
            aggregator.record_skip(action, outcome.skip_reason, outcome.record_id)
            return False

        record_id = outcome.record_id
        try:
            ref = self._dispatcher.dispatch(action, batch, context)
        except Exception as exc:
            self._fail_record(record_id, exc)
            return self._handle_failure(action, exc, aggregator, stack)

        entry = RollbackEntry(action.action_type, ref.entity_id, key, record_id)
        try:
            self._ledger.complete(record_id, ref)
        except ReservationError as exc:
            self._fail_record(record_id, exc)
            # The entity exists; make sure a rollback can still remove it.
            if revertible:
                stack.append(entry)
            return self._handle_failure(action, exc, aggregator, stack)

        aggregator.record_success(action, ref)
        if revertible:
            stack.append(entry)
        return False

    def _handle_failure(
        self,
        action: BatchAction,
        exc: Exception,
        aggregator: ResultAggregator,
        stack: list[RollbackEntry],
    ) -> bool:
        aggregator.record_failure(action, exc)
        action_class = classify(action.action_type)
        log_extra: dict[str, Any] = {
            "action_type": action.action_type,
            "error": str(exc),
            "error_code": getattr(exc, "code", None),
        }

        if action_class.revertible:
            logger.error("revertible_action_failed", extra=log_extra)
            self._rollback(stack, aggregator)
            return True

        if action_class.best_effort:
            logger.info("best_effort_action_failed", extra=log_extra)
        else:
            logger.warning("action_failed", extra=log_extra)
        return False

    def _fail_record(self, record_id: Any, exc: Exception) -> None:
        try:
            self._ledger.fail(record_id, str(exc))
        except ReservationError:
            logger.error(
                "reservation_fail_not_recorded",
                extra={"record_id": str(record_id)},
                exc_info=True,
            )

    def _rollback(self, stack: list[RollbackEntry], aggregator: ResultAggregator) -> None:
        report = self._rollback_manager.rollback(stack)
        aggregator.record_rollback(report.rolled_back, report.failures)
        stack.clear()


def _batch_metadata(batch: ApprovalBatch) -> dict[str, Any]:
    return {
        "mail_id": batch.mail_id,
        "case_id": batch.case_id,
        "client_id": batch.client_id,
        "rule_id": batch.rule_id,
    }
