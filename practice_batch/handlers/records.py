"""
Handlers for the revertible action types.

Each one writes a single local record through an ``EntityStore`` and
can delete it again.  Defaults for omitted config keys come from
``EngineSettings``.
"""

from __future__ import annotations

from typing import Any

from practice_config import EngineSettings
from practice_kernel.domain.clock import Clock, SystemClock

from practice_batch.domain.types import (
    ActionType,
    ApprovalBatch,
    BatchAction,
    EntityRef,
    ExecutionContext,
)
from practice_batch.handlers.base import (
    config_date,
    config_decimal,
    first_present,
    require,
)
from practice_batch.handlers.ports import EntityStore


def _opt(value: Any) -> str | None:
    return str(value) if value not in (None, "") else None


class _RecordHandler:
    """Shared create/delete plumbing over one entity store."""

    action_type: str = ""

    def __init__(self, store: EntityStore, settings: EngineSettings | None = None) -> None:
        self._store = store
        self._settings = settings or EngineSettings()

    def revert(self, entity_id: str) -> None:
        self._store.delete(entity_id)

    def _created(self, entity_id: str, **extras: Any) -> EntityRef:
        return EntityRef(self._store.entity_type, entity_id, extras)


class CreateTaskHandler(_RecordHandler):
    action_type = ActionType.CREATE_TASK.value

    def perform(
        self,
        action: BatchAction,
        batch: ApprovalBatch,
        context: ExecutionContext,
    ) -> EntityRef:
        config = action.config
        due = first_present(config, "due_date")
        title = first_present(config, "title", default=f"Task from batch {batch.batch_id}")
        entity_id = self._store.create({
            "title": str(title),
            "description": str(first_present(config, "description", default="")),
            "case_id": _opt(first_present(config, "case_id", default=batch.case_id)),
            "client_id": _opt(first_present(config, "client_id", default=batch.client_id)),
            "mail_id": _opt(batch.mail_id),
            "status": "pending",
            "priority": str(
                first_present(config, "priority", default=self._settings.default_task_priority)
            ),
            "due_date": config_date(action, "due_date", due) if due is not None else None,
            "extracted_data": {
                "idempotency_key": action.idempotency_key,
                "approval_batch_id": str(batch.batch_id),
                "mail_subject": batch.mail_subject,
            },
            "created_by": context.actor,
        })
        return self._created(entity_id, title=str(title))


class BillingHandler(_RecordHandler):
    action_type = ActionType.BILLING.value

    def __init__(
        self,
        store: EntityStore,
        settings: EngineSettings | None = None,
        clock: Clock | None = None,
    ) -> None:
        super().__init__(store, settings)
        self._clock = clock or SystemClock()

    def perform(
        self,
        action: BatchAction,
        batch: ApprovalBatch,
        context: ExecutionContext,
    ) -> EntityRef:
        config = action.config
        hours = config_decimal(
            action, "hours",
            first_present(config, "hours", default=self._settings.default_billing_hours),
        )
        rate = config_decimal(
            action, "rate",
            first_present(
                config, "rate", "hourly_rate", default=self._settings.default_billing_rate,
            ),
        )
        description = first_present(
            config, "description", default=batch.mail_subject or "Automated billing",
        )
        entity_id = self._store.create({
            "case_id": _opt(first_present(config, "case_id", default=batch.case_id)),
            "description": str(description),
            "hours": hours,
            "rate": rate,
            "worked_at": self._clock.now(),
            "is_billable": True,
            "billed": False,
            "created_by": context.actor,
        })
        return self._created(
            entity_id, hours=str(hours), rate=str(rate), amount=str(hours * rate),
        )


class CreateDeadlineHandler(_RecordHandler):
    action_type = ActionType.CREATE_DEADLINE.value

    def perform(
        self,
        action: BatchAction,
        batch: ApprovalBatch,
        context: ExecutionContext,
    ) -> EntityRef:
        config = action.config
        due = config_date(action, "due_date", require(action, "due_date"))
        entity_id = self._store.create({
            "case_id": _opt(first_present(config, "case_id", default=batch.case_id)),
            "deadline_type": str(first_present(config, "deadline_type", default="custom")),
            "description": str(first_present(
                config, "description", "title", default="Deadline from approval batch",
            )),
            "due_date": due,
            "status": "pending",
            "is_critical": bool(config.get("is_critical", False)),
            "created_by": context.actor,
        })
        return self._created(entity_id, due_date=due.isoformat())


class CreateAlertHandler(_RecordHandler):
    """Alerts are stored as activity-feed entries."""

    action_type = ActionType.CREATE_ALERT.value

    def perform(
        self,
        action: BatchAction,
        batch: ApprovalBatch,
        context: ExecutionContext,
    ) -> EntityRef:
        config = action.config
        alert_type = str(first_present(config, "alert_type", default="reminder"))
        entity_id = self._store.create({
            "activity_type": "other",
            "title": str(first_present(config, "message", "title", default="Alert")),
            "description": str(first_present(config, "description", default="")),
            "case_id": _opt(first_present(config, "case_id", default=batch.case_id)),
            "client_id": _opt(first_present(config, "client_id", default=batch.client_id)),
            "status": "active",
            "details": {
                "alert_type": alert_type,
                "idempotency_key": action.idempotency_key,
                "approval_batch_id": str(batch.batch_id),
            },
            "created_by": context.actor,
        })
        return self._created(entity_id, alert_type=alert_type)
