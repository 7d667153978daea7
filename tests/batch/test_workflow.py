"""
Tests for practice_batch.services.workflow -- batch lifecycle around the
executor: edit validation, approval, expiry and cancellation.
"""

from dataclasses import replace
from datetime import timedelta
from uuid import uuid4

import pytest

from practice_kernel.exceptions import (
    ActionConfigurationError,
    ActionValidationError,
    BatchExpiredError,
    BatchNotFoundError,
    InvalidBatchStatusError,
)

from practice_batch.domain.types import BatchAction, BatchStatus
from practice_batch.models.entities import TaskModel
from practice_batch.services.workflow import ApprovalWorkflowService, validate_action_update


TASK = ("create_task", {"title": "Draft reply"})
BILLING = ("billing", {"hours": "0.5"})
EMAIL = ("send_email", {"to": "client@example.com", "subject": "Update", "body": "..."})
BROKEN_DEADLINE = ("create_deadline", {})


@pytest.fixture
def workflow(orchestrator):
    return orchestrator.workflow


@pytest.fixture
def pending(workflow, make_batch, deterministic_clock):
    """Persist a pending batch built from action specs."""

    def _create(*specs, **fields):
        fields.setdefault("status", BatchStatus.PENDING)
        fields.setdefault("expires_at", deterministic_clock.now() + timedelta(days=2))
        return workflow.create_batch(make_batch(*specs, **fields))

    return _create


def _edit(action: BatchAction, **config) -> BatchAction:
    return replace(action, config={**action.config, **config})


# =============================================================================
# Edit validation (pure)
# =============================================================================


class TestValidateActionUpdate:
    def _original(self):
        return (
            BatchAction("send_email", True, "m:0:send_email", {"to": "a@x", "subject": "s"}),
            BatchAction("billing", True, "m:1:billing", {"hours": "1"}),
            BatchAction("create_task", True, "m:2:create_task", {"title": "t"}),
            BatchAction("calendar_event", True, "m:3:calendar_event", {"title": "c"}),
        )

    def test_valid_edit(self, settings):
        original = self._original()
        current = (
            _edit(original[0], subject="better subject"),
            _edit(original[1], hours="2.75"),
            replace(original[2], enabled=False, config={}),
            original[3],
        )

        assert validate_action_update(original, current, settings) == []

    def test_count_mismatch(self, settings):
        original = self._original()

        errors = validate_action_update(original, original[:3], settings)

        assert errors == [{"path": "actions", "message": "expected 4 actions, got 3"}]

    def test_type_and_key_are_fixed(self, settings):
        original = self._original()
        current = (
            replace(original[0], action_type="save_file"),
            replace(original[1], idempotency_key="m:9:billing"),
            original[2],
            original[3],
        )

        paths = [e["path"] for e in validate_action_update(original, current, settings)]

        assert paths == ["actions[0].action_type", "actions[1].idempotency_key"]

    @pytest.mark.parametrize("index, change, path", [
        (0, {"to": "other@x"}, "actions[0].config.to"),
        (0, {"subject": "x" * 301}, "actions[0].config.subject"),
        (1, {"hours": "0.1"}, "actions[1].config.hours"),
        (1, {"hours": "24.25"}, "actions[1].config.hours"),
        (1, {"hours": "1.3"}, "actions[1].config.hours"),
        (1, {"hours": "many"}, "actions[1].config.hours"),
        (2, {"title": "  "}, "actions[2].config.title"),
        (3, {"title": ""}, "actions[3].config.title"),
    ])
    def test_field_rules(self, settings, index, change, path):
        original = self._original()
        current = list(original)
        current[index] = _edit(original[index], **change)

        errors = validate_action_update(original, current, settings)

        assert [e["path"] for e in errors] == [path]


# =============================================================================
# Service
# =============================================================================


class TestUpdateActions:
    def test_edit_moves_to_editing(self, workflow, pending):
        batch = pending(TASK, BILLING)
        edited = (_edit(batch.actions_current[0], title="New title"), batch.actions_current[1])

        updated = workflow.update_actions(batch.batch_id, edited)

        assert updated.status == BatchStatus.EDITING
        assert updated.actions_current[0].config["title"] == "New title"
        assert updated.actions_original[0].config["title"] == "Draft reply"

    def test_invalid_edit_raises_with_errors(self, workflow, pending):
        batch = pending(BILLING)

        with pytest.raises(ActionValidationError) as exc_info:
            workflow.update_actions(
                batch.batch_id, (_edit(batch.actions_current[0], hours="30"),),
            )

        assert exc_info.value.errors[0]["path"] == "actions[0].config.hours"
        assert workflow.get_batch(batch.batch_id).status == BatchStatus.PENDING

    def test_cannot_edit_cancelled(self, workflow, pending):
        batch = pending(TASK)
        workflow.cancel(batch.batch_id, "duplicate")

        with pytest.raises(InvalidBatchStatusError):
            workflow.update_actions(batch.batch_id, batch.actions_current)


class TestApprove:
    def test_successful_batch_is_executed(self, workflow, pending, context, deterministic_clock):
        batch = pending(TASK, EMAIL)

        result = workflow.approve(batch.batch_id, context)

        assert result.summary.success == 2
        assert result.batch.status == BatchStatus.EXECUTED
        assert result.batch.error_message is None
        stored = workflow.get_batch(batch.batch_id)
        assert stored.execution_summary["success"] == 2
        assert stored.approved_via == "ui"
        assert stored.approved_at is not None

    def test_failures_mark_batch_failed(self, workflow, pending, context, mail_sender):
        mail_sender.fail_with = "bounced"
        batch = pending(TASK, EMAIL)

        result = workflow.approve(batch.batch_id, context, approved_via="email_link")

        assert result.batch.status == BatchStatus.FAILED
        assert result.batch.error_message == "1 action(s) failed"
        assert result.summary.rollback_performed is False

    def test_rollback_noted_in_error_message(self, workflow, pending, context, count_rows):
        batch = pending(TASK, BROKEN_DEADLINE)

        result = workflow.approve(batch.batch_id, context)

        assert result.batch.status == BatchStatus.FAILED
        assert "rolled back" in result.batch.error_message
        assert result.batch.execution_summary["rollback_performed"] is True
        assert count_rows(TaskModel) == 0

    def test_configuration_error_fails_batch_and_reraises(self, workflow, pending, context):
        batch = pending(TASK, ("billing", {"key": None}))

        with pytest.raises(ActionConfigurationError):
            workflow.approve(batch.batch_id, context)

        stored = workflow.get_batch(batch.batch_id)
        assert stored.status == BatchStatus.FAILED
        assert stored.execution_summary["rollback_performed"] is True
        assert "idempotency_key" in stored.error_message
        assert stored.execution_summary["total"] == 2
        assert stored.execution_summary["failed"] == 2

    def test_unexpected_execution_error_fails_batch_and_reraises(
        self, session_factory, settings, deterministic_clock, make_batch, context,
    ):
        class ExplodingExecutor:
            def execute_batch_actions(self, batch, context):
                raise RuntimeError("driver exploded")

        workflow = ApprovalWorkflowService(
            session_factory, ExplodingExecutor(), settings, deterministic_clock,
        )
        batch = workflow.create_batch(
            make_batch(TASK, EMAIL, status=BatchStatus.PENDING, expires_at=None),
        )

        with pytest.raises(RuntimeError, match="driver exploded"):
            workflow.approve(batch.batch_id, context)

        stored = workflow.get_batch(batch.batch_id)
        assert stored.status == BatchStatus.FAILED
        assert stored.error_message == "execution error: driver exploded"
        assert stored.execution_summary["failed"] == stored.execution_summary["total"] == 2
        assert stored.execution_summary["rollback_performed"] is False
        assert workflow.cancel(batch.batch_id).status == BatchStatus.CANCELLED

    def test_undeletable_entities_noted_in_error_message(
        self, workflow, orchestrator, pending, context,
    ):
        def refuse(entity_id: str) -> None:
            raise RuntimeError("delete refused")

        orchestrator.handler_registry.get("create_task").revert = refuse
        batch = pending(TASK, BROKEN_DEADLINE)

        result = workflow.approve(batch.batch_id, context)

        assert result.batch.error_message == (
            "1 action(s) failed; completed actions were rolled back"
            "; 1 entity(ies) could not be deleted"
        )
        assert len(result.batch.execution_summary["rollback_failures"]) == 1

    def test_cannot_approve_twice(self, workflow, pending, context):
        batch = pending(TASK)
        workflow.approve(batch.batch_id, context)

        with pytest.raises(InvalidBatchStatusError) as exc_info:
            workflow.approve(batch.batch_id, context)

        assert exc_info.value.status == "executed"

    def test_expired_batch(self, workflow, pending, context, deterministic_clock, count_rows):
        batch = pending(TASK, expires_at=deterministic_clock.now() - timedelta(minutes=1))

        with pytest.raises(BatchExpiredError):
            workflow.approve(batch.batch_id, context)

        assert workflow.get_batch(batch.batch_id).status == BatchStatus.PENDING
        assert count_rows(TaskModel) == 0

    def test_unknown_batch(self, workflow, context):
        with pytest.raises(BatchNotFoundError):
            workflow.approve(uuid4(), context)


class TestCancel:
    def test_cancel_pending(self, workflow, pending):
        batch = pending(TASK)

        cancelled = workflow.cancel(batch.batch_id, "client withdrew")

        assert cancelled.status == BatchStatus.CANCELLED

    @pytest.mark.parametrize("status", [
        BatchStatus.EXECUTED, BatchStatus.EXECUTING, BatchStatus.CANCELLED,
    ])
    def test_cannot_cancel_finished_or_running(self, workflow, pending, status):
        batch = pending(TASK, status=status)

        with pytest.raises(InvalidBatchStatusError):
            workflow.cancel(batch.batch_id)

    def test_failed_batch_can_be_cancelled(self, workflow, pending):
        batch = pending(TASK, status=BatchStatus.FAILED)

        assert workflow.cancel(batch.batch_id).status == BatchStatus.CANCELLED
