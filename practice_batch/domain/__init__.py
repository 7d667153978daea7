"""
practice_batch.domain -- Pure types and classification for batch execution.

ZERO I/O.  All types are frozen dataclasses.
"""

from practice_batch.domain.classification import (
    ACTION_CLASSES,
    ActionClass,
    classify,
    is_best_effort,
    is_revertible,
    order_for_execution,
)
from practice_batch.domain.types import (
    ActionResult,
    ActionResultStatus,
    ActionType,
    ApprovalBatch,
    BatchAction,
    BatchStatus,
    EntityRef,
    ExecutionContext,
    ExecutionSummary,
    ReservationOutcome,
    ReservationRecord,
    ReservationStatus,
    RollbackEntry,
    SkipReason,
)

__all__ = [
    "ACTION_CLASSES",
    "ActionClass",
    "ActionResult",
    "ActionResultStatus",
    "ActionType",
    "ApprovalBatch",
    "BatchAction",
    "BatchStatus",
    "EntityRef",
    "ExecutionContext",
    "ExecutionSummary",
    "ReservationOutcome",
    "ReservationRecord",
    "ReservationStatus",
    "RollbackEntry",
    "SkipReason",
    "classify",
    "is_best_effort",
    "is_revertible",
    "order_for_execution",
]
