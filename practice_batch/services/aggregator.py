"""
ResultAggregator -- collects per-action outcomes into an ExecutionSummary.

One aggregator per invocation.  ``total`` is the number of actions in the
batch, so disabled actions count towards it (as skipped).
"""

from __future__ import annotations

import time
from datetime import datetime
from typing import Any
from uuid import UUID

from practice_kernel.exceptions import PracticeKernelError, RollbackError

from practice_batch.domain.classification import classify
from practice_batch.domain.types import (
    ActionResult,
    ActionResultStatus,
    BatchAction,
    EntityRef,
    ExecutionSummary,
    SkipReason,
)


class ResultAggregator:
    def __init__(self, total: int, executed_at: datetime) -> None:
        self._total = total
        self._executed_at = executed_at
        self._start = time.monotonic()
        self._results: list[ActionResult] = []
        self._rolled_back: tuple[str, ...] = ()
        self._rollback_failures: list[dict[str, str]] = []
        self._rollback_performed = False

    @property
    def results(self) -> tuple[ActionResult, ...]:
        return tuple(self._results)

    def record_success(self, action: BatchAction, ref: EntityRef) -> ActionResult:
        detail: dict[str, Any] = {
            "entity_type": ref.entity_type,
            "entity_id": ref.entity_id,
            **ref.extras,
        }
        return self._add(action, ActionResultStatus.SUCCESS, detail)

    def record_skip(
        self,
        action: BatchAction,
        reason: SkipReason,
        record_id: UUID | None = None,
    ) -> ActionResult:
        detail: dict[str, Any] = {"reason": reason.value}
        if record_id is not None:
            detail["record_id"] = str(record_id)
        return self._add(action, ActionResultStatus.SKIPPED, detail)

    def record_failure(self, action: BatchAction, error: Exception) -> ActionResult:
        action_class = classify(action.action_type)
        detail: dict[str, Any] = {
            "error": str(error),
            "error_code": (
                error.code if isinstance(error, PracticeKernelError) else "UNHANDLED_EXCEPTION"
            ),
            "revertible": action_class.revertible,
            "best_effort": action_class.best_effort,
        }
        return self._add(action, ActionResultStatus.FAILED, detail)

    def record_rollback(
        self,
        rolled_back: tuple[str, ...],
        failures: tuple[RollbackError, ...] = (),
    ) -> None:
        self._rollback_performed = True
        self._rolled_back = self._rolled_back + rolled_back
        self._rollback_failures.extend(
            {"action_type": f.action_type, "entity_id": f.entity_id, "reason": f.reason}
            for f in failures
        )

    def summarize(self) -> ExecutionSummary:
        counts = {status: 0 for status in ActionResultStatus}
        for result in self._results:
            counts[result.status] += 1
        return ExecutionSummary(
            total=self._total,
            success=counts[ActionResultStatus.SUCCESS],
            failed=counts[ActionResultStatus.FAILED],
            skipped=counts[ActionResultStatus.SKIPPED],
            results=tuple(self._results),
            executed_at=self._executed_at,
            execution_time_ms=int((time.monotonic() - self._start) * 1000),
            rollback_performed=self._rollback_performed,
            rolled_back=self._rolled_back,
            rollback_failures=tuple(self._rollback_failures),
        )

    def _add(
        self,
        action: BatchAction,
        status: ActionResultStatus,
        detail: dict[str, Any],
    ) -> ActionResult:
        result = ActionResult(action.action_type, action.idempotency_key, status, detail)
        self._results.append(result)
        return result
