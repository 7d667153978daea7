"""
practice_batch.services -- Ledger, dispatch, rollback, execution and
the approval workflow around them.
"""

from practice_batch.services.aggregator import ResultAggregator
from practice_batch.services.dispatcher import ActionDispatcher
from practice_batch.services.entity_store import SqlEntityStore
from practice_batch.services.executor import BatchActionExecutor
from practice_batch.services.ledger import ReservationLedger
from practice_batch.services.reservation_store import (
    InsertResult,
    ReservationStore,
    SqlReservationStore,
)
from practice_batch.services.rollback import RollbackManager, RollbackReport
from practice_batch.services.workflow import (
    ApprovalResult,
    ApprovalWorkflowService,
    validate_action_update,
)

__all__ = [
    "ActionDispatcher",
    "ApprovalResult",
    "ApprovalWorkflowService",
    "BatchActionExecutor",
    "InsertResult",
    "ReservationLedger",
    "ReservationStore",
    "ResultAggregator",
    "RollbackManager",
    "RollbackReport",
    "SqlEntityStore",
    "SqlReservationStore",
    "validate_action_update",
]
