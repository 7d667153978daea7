"""
Tests for the reservation ledger and its SQLAlchemy store.

Covers the atomic insert-if-absent contract, every conflict branch of
``reserve()``, stale reclaim (including a lost compare-and-set) and the
rule that store outages are never mistaken for duplicates.
"""

from dataclasses import replace
from datetime import timedelta
from uuid import uuid4

import pytest

from practice_kernel.exceptions import ReservationNotFoundError, ReservationStoreError

from practice_batch.domain.types import (
    EntityRef,
    ExecutionContext,
    ReservationRecord,
    ReservationStatus,
    SkipReason,
)
from practice_batch.services.ledger import ReservationLedger
from practice_batch.services.reservation_store import InsertResult, SqlReservationStore


CTX = ExecutionContext(actor="partner@firm.example", origin="email_link", correlation_id="c-9")


@pytest.fixture
def store(session_factory):
    return SqlReservationStore(session_factory)


@pytest.fixture
def ledger(store, settings, deterministic_clock):
    return ReservationLedger(store, settings, deterministic_clock)


def _record(clock, key="mail-1:0:create_task", **overrides) -> ReservationRecord:
    fields = dict(
        record_id=uuid4(),
        idempotency_key=key,
        batch_id=uuid4(),
        action_type="create_task",
        status=ReservationStatus.PENDING,
        actor="system",
        created_at=clock.now(),
    )
    fields.update(overrides)
    return ReservationRecord(**fields)


class ScriptedStore:
    """ReservationStore returning canned answers."""

    def __init__(self, insert=InsertResult.CONFLICT, existing=None, get_error=None,
                 update_result=True, after_update=None, reread_error=None):
        self._insert = insert
        self._existing = existing
        self._get_error = get_error
        self._update_result = update_result
        self._after_update = after_update
        self._reread_error = reread_error
        self.updates: list[dict] = []

    def insert_if_absent(self, record):
        return self._insert

    def get(self, idempotency_key):
        if self._get_error is not None:
            raise self._get_error
        if self.updates and self._reread_error is not None:
            raise self._reread_error
        if self.updates and self._after_update is not None:
            return self._after_update
        return self._existing

    def update(self, record_id, fields, *, expected_status=None, created_before=None):
        self.updates.append({
            "fields": fields,
            "expected_status": expected_status,
            "created_before": created_before,
        })
        return self._update_result


# =============================================================================
# SqlReservationStore
# =============================================================================


class TestSqlReservationStore:
    def test_insert_then_conflict(self, store, deterministic_clock):
        record = _record(deterministic_clock)

        assert store.insert_if_absent(record) is InsertResult.INSERTED
        duplicate = replace(record, record_id=uuid4())
        assert store.insert_if_absent(duplicate) is InsertResult.CONFLICT

    def test_get_round_trips(self, store, deterministic_clock):
        record = _record(deterministic_clock, context={"origin": "ui"})
        store.insert_if_absent(record)

        fetched = store.get(record.idempotency_key)

        assert fetched.record_id == record.record_id
        assert fetched.status == ReservationStatus.PENDING
        assert fetched.context == {"origin": "ui"}

    def test_get_missing_returns_none(self, store):
        assert store.get("nope:0:billing") is None

    def test_other_integrity_error_is_not_a_conflict(self, store, deterministic_clock):
        broken = _record(deterministic_clock, actor=None)

        with pytest.raises(ReservationStoreError) as exc_info:
            store.insert_if_absent(broken)

        assert exc_info.value.operation == "insert"
        assert store.get(broken.idempotency_key) is None

    def test_conditional_update_respects_expected_status(self, store, deterministic_clock):
        record = _record(deterministic_clock)
        store.insert_if_absent(record)

        assert store.update(
            record.record_id, {"status": ReservationStatus.COMPLETED},
            expected_status=ReservationStatus.FAILED,
        ) is False
        assert store.update(
            record.record_id, {"status": ReservationStatus.COMPLETED},
            expected_status=ReservationStatus.PENDING,
        ) is True
        assert store.get(record.idempotency_key).status == ReservationStatus.COMPLETED

    def test_update_unknown_record(self, store):
        assert store.update(uuid4(), {"error_message": "x"}) is False


# =============================================================================
# ReservationLedger
# =============================================================================


class TestReserve:
    def test_first_reservation_is_granted(self, ledger, store):
        outcome = ledger.reserve("m:0:create_task", uuid4(), "create_task", CTX, {"case_id": "c"})

        assert outcome.reserved is True
        record = store.get("m:0:create_task")
        assert record.record_id == outcome.record_id
        assert record.status == ReservationStatus.PENDING
        assert record.actor == CTX.actor
        assert record.context == {
            "origin": "email_link", "correlation_id": "c-9", "case_id": "c",
        }

    def test_pending_within_window_is_in_progress(self, ledger, deterministic_clock):
        first = ledger.reserve("m:0:billing", uuid4(), "billing", CTX)
        deterministic_clock.advance(minutes=10)

        outcome = ledger.reserve("m:0:billing", uuid4(), "billing", CTX)

        assert outcome.reserved is False
        assert outcome.skip_reason == SkipReason.IN_PROGRESS
        assert outcome.record_id == first.record_id

    def test_completed_is_already_completed(self, ledger):
        first = ledger.reserve("m:0:billing", uuid4(), "billing", CTX)
        ledger.complete(first.record_id, EntityRef("TimeEntry", "te-1"))

        outcome = ledger.reserve("m:0:billing", uuid4(), "billing", CTX)

        assert outcome.skip_reason == SkipReason.ALREADY_COMPLETED

    def test_failed_is_previously_failed(self, ledger):
        first = ledger.reserve("m:0:billing", uuid4(), "billing", CTX)
        ledger.fail(first.record_id, "boom")

        outcome = ledger.reserve("m:0:billing", uuid4(), "billing", CTX)

        assert outcome.skip_reason == SkipReason.PREVIOUSLY_FAILED

    def test_insert_error_propagates(self, settings, deterministic_clock):
        class Down:
            def insert_if_absent(self, record):
                raise ReservationStoreError(record.idempotency_key, "insert", "down")

        ledger = ReservationLedger(Down(), settings, deterministic_clock)

        with pytest.raises(ReservationStoreError):
            ledger.reserve("m:0:billing", uuid4(), "billing", CTX)

    def test_lookup_error_after_conflict_is_in_progress(self, settings, deterministic_clock):
        store = ScriptedStore(get_error=ReservationStoreError("m:0:billing", "get", "timeout"))
        ledger = ReservationLedger(store, settings, deterministic_clock)

        outcome = ledger.reserve("m:0:billing", uuid4(), "billing", CTX)

        assert outcome.skip_reason == SkipReason.IN_PROGRESS

    def test_vanished_row_after_conflict_is_in_progress(self, settings, deterministic_clock):
        ledger = ReservationLedger(ScriptedStore(existing=None), settings, deterministic_clock)

        outcome = ledger.reserve("m:0:billing", uuid4(), "billing", CTX)

        assert outcome.skip_reason == SkipReason.IN_PROGRESS

    def test_non_kernel_lookup_error_after_conflict_is_in_progress(
        self, settings, deterministic_clock, captured_logs,
    ):
        store = ScriptedStore(get_error=RuntimeError("driver exploded"))
        ledger = ReservationLedger(store, settings, deterministic_clock)

        outcome = ledger.reserve("m:0:billing", uuid4(), "billing", CTX)

        assert outcome.skip_reason == SkipReason.IN_PROGRESS
        (record,) = [
            r for r in captured_logs() if r["message"] == "reservation_conflict_lookup_failed"
        ]
        assert record["exc_type"] == "RuntimeError"
        assert record["conflicting_key"] == "m:0:billing"

    def test_pending_at_exactly_the_threshold_is_in_progress(self, ledger, deterministic_clock):
        start = deterministic_clock.now()
        ledger.reserve("m:0:billing", uuid4(), "billing", CTX)

        deterministic_clock.set_time(start + timedelta(minutes=10))
        at_threshold = ledger.reserve("m:0:billing", uuid4(), "billing", CTX)
        deterministic_clock.set_time(start + timedelta(minutes=10, microseconds=1))
        past_threshold = ledger.reserve("m:0:billing", uuid4(), "billing", CTX)

        assert at_threshold.skip_reason == SkipReason.IN_PROGRESS
        assert past_threshold.skip_reason == SkipReason.PREVIOUSLY_FAILED


class TestStaleReclaim:
    def test_stale_pending_is_reclaimed(self, ledger, store, deterministic_clock, captured_logs):
        first = ledger.reserve("m:0:create_task", uuid4(), "create_task", CTX)
        deterministic_clock.advance(minutes=10, seconds=1)

        outcome = ledger.reserve("m:0:create_task", uuid4(), "create_task", CTX)

        assert outcome.skip_reason == SkipReason.PREVIOUSLY_FAILED
        assert outcome.record_id == first.record_id
        record = store.get("m:0:create_task")
        assert record.status == ReservationStatus.FAILED
        assert record.error_message.startswith("reservation abandoned")
        assert any(r["message"] == "stale_reservation_reclaimed" for r in captured_logs())

    def test_reclaim_is_conditional(self, settings, deterministic_clock):
        stale = _record(deterministic_clock)
        store = ScriptedStore(existing=stale)
        ledger = ReservationLedger(store, settings, deterministic_clock)
        deterministic_clock.advance(minutes=30)

        ledger.reserve(stale.idempotency_key, uuid4(), "create_task", CTX)

        (update,) = store.updates
        assert update["expected_status"] == ReservationStatus.PENDING
        assert update["created_before"] == deterministic_clock.now() - timedelta(minutes=10)
        assert update["fields"]["status"] == ReservationStatus.FAILED

    def test_lost_reclaim_race_reports_winner_state(self, settings, deterministic_clock):
        stale = _record(deterministic_clock)
        store = ScriptedStore(
            existing=stale,
            update_result=False,
            after_update=replace(stale, status=ReservationStatus.COMPLETED),
        )
        ledger = ReservationLedger(store, settings, deterministic_clock)
        deterministic_clock.advance(minutes=30)

        outcome = ledger.reserve(stale.idempotency_key, uuid4(), "create_task", CTX)

        assert outcome.skip_reason == SkipReason.ALREADY_COMPLETED

    def test_reread_error_after_lost_reclaim_is_in_progress(self, settings, deterministic_clock):
        stale = _record(deterministic_clock)
        store = ScriptedStore(
            existing=stale, update_result=False, reread_error=KeyError("status"),
        )
        ledger = ReservationLedger(store, settings, deterministic_clock)
        deterministic_clock.advance(minutes=30)

        outcome = ledger.reserve(stale.idempotency_key, uuid4(), "create_task", CTX)

        assert outcome.skip_reason == SkipReason.IN_PROGRESS
        assert outcome.record_id == stale.record_id

    def test_threshold_is_configurable(self, store, deterministic_clock):
        from practice_config import EngineSettings

        ledger = ReservationLedger(
            store, EngineSettings(stale_reservation_seconds=60), deterministic_clock,
        )
        ledger.reserve("m:0:create_task", uuid4(), "create_task", CTX)
        deterministic_clock.advance(seconds=61)

        outcome = ledger.reserve("m:0:create_task", uuid4(), "create_task", CTX)

        assert outcome.skip_reason == SkipReason.PREVIOUSLY_FAILED


class TestCloseOut:
    def test_complete_records_result(self, ledger, store, deterministic_clock):
        outcome = ledger.reserve("m:0:create_task", uuid4(), "create_task", CTX)
        deterministic_clock.advance(seconds=2)

        ledger.complete(outcome.record_id, EntityRef("Task", "t-1"))

        record = store.get("m:0:create_task")
        assert record.status == ReservationStatus.COMPLETED
        assert record.result_entity == "Task"
        assert record.result_id == "t-1"
        assert record.completed_at is not None

    def test_fail_records_message(self, ledger, store):
        outcome = ledger.reserve("m:0:create_task", uuid4(), "create_task", CTX)

        ledger.fail(outcome.record_id, "provider exploded")

        record = store.get("m:0:create_task")
        assert record.status == ReservationStatus.FAILED
        assert record.error_message == "provider exploded"

    def test_unknown_record(self, ledger):
        with pytest.raises(ReservationNotFoundError):
            ledger.complete(uuid4(), EntityRef("Task", "t-1"))
