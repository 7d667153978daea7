"""
practice_batch.models -- ORM models for batch execution persistence.

Imports from practice_kernel.db.base only.
"""

from practice_batch.models.batch import ApprovalBatchModel, ExecutionRecordModel
from practice_batch.models.entities import (
    ActivityModel,
    CalendarEventMirrorModel,
    DeadlineModel,
    TaskModel,
    TimeEntryModel,
)

__all__ = [
    "ActivityModel",
    "ApprovalBatchModel",
    "CalendarEventMirrorModel",
    "DeadlineModel",
    "ExecutionRecordModel",
    "TaskModel",
    "TimeEntryModel",
]
