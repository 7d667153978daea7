"""
ReservationLedger -- at-most-once guard for batch actions.

Contract:
    ``reserve()`` turns "has this action already been attempted?" plus
    "mark it as in progress" into a single atomic insert keyed by the
    action's idempotency key.  The caller that gets ``reserved`` is the
    exclusive owner of this attempt and must close it with exactly one
    ``complete()`` or ``fail()``.

Conflict resolution (the key already exists):
    completed                      -> skip(already_completed)
    pending, age <= stale window   -> skip(in_progress)
    pending, age >  stale window   -> reclaim to failed, skip(previously_failed)
    failed                         -> skip(previously_failed)
    existing row cannot be read    -> skip(in_progress)

Non-goals:
    - No locks, heartbeats or in-process mutual exclusion.  The UNIQUE
      constraint in the store is the only synchronization primitive.
    - Does NOT retry anything.  A reclaimed action is reported, not re-run.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID, uuid4

from practice_config import EngineSettings
from practice_kernel.domain.clock import Clock, SystemClock, as_utc
from practice_kernel.exceptions import ReservationNotFoundError
from practice_kernel.logging_config import get_logger

from practice_batch.domain.types import (
    EntityRef,
    ExecutionContext,
    ReservationOutcome,
    ReservationRecord,
    ReservationStatus,
    SkipReason,
)
from practice_batch.services.reservation_store import InsertResult, ReservationStore

logger = get_logger("batch.ledger")

STALE_RECLAIM_MESSAGE = "reservation abandoned: pending longer than {seconds}s"

_LOOKUP_FAILED = object()


class ReservationLedger:
    """Reserve, complete and fail execution records."""

    def __init__(
        self,
        store: ReservationStore,
        settings: EngineSettings | None = None,
        clock: Clock | None = None,
    ) -> None:
        self._store = store
        self._settings = settings or EngineSettings()
        self._clock = clock or SystemClock()

    # -------------------------------------------------------------------------
    # Reserve
    # -------------------------------------------------------------------------

    def reserve(
        self,
        idempotency_key: str,
        batch_id: UUID,
        action_type: str,
        context: ExecutionContext,
        metadata: dict[str, Any] | None = None,
    ) -> ReservationOutcome:
        """Try to become the owner of ``idempotency_key``.

        Raises:
            ReservationStoreError: The insert failed for a reason other
                than a uniqueness conflict.  Never converted into a skip.
        """
        record = ReservationRecord(
            record_id=uuid4(),
            idempotency_key=idempotency_key,
            batch_id=batch_id,
            action_type=action_type,
            status=ReservationStatus.PENDING,
            actor=context.actor,
            context={
                "origin": context.origin,
                "correlation_id": context.correlation_id,
                **(metadata or {}),
            },
            created_at=self._clock.now(),
        )

        if self._store.insert_if_absent(record) is InsertResult.INSERTED:
            logger.info(
                "action_reserved",
                extra={
                    "record_id": str(record.record_id),
                    "action_type": action_type,
                },
            )
            return ReservationOutcome.granted(record.record_id)

        return self._resolve_conflict(idempotency_key)

    def _resolve_conflict(self, idempotency_key: str) -> ReservationOutcome:
        existing = self._lookup_after_conflict(idempotency_key)
        if existing is _LOOKUP_FAILED:
            return ReservationOutcome.skip(SkipReason.IN_PROGRESS)

        if existing is None:
            # Row vanished between the conflict and the read.
            return ReservationOutcome.skip(SkipReason.IN_PROGRESS)

        if existing.status == ReservationStatus.COMPLETED:
            return ReservationOutcome.skip(SkipReason.ALREADY_COMPLETED, existing.record_id)
        if existing.status == ReservationStatus.FAILED:
            return ReservationOutcome.skip(SkipReason.PREVIOUSLY_FAILED, existing.record_id)

        now = self._clock.now()
        age = now - as_utc(existing.created_at) if existing.created_at else None
        if age is None or age <= self._settings.stale_after:
            return ReservationOutcome.skip(SkipReason.IN_PROGRESS, existing.record_id)

        return self._reclaim_stale(existing, now)

    def _reclaim_stale(self, existing: ReservationRecord, now: datetime) -> ReservationOutcome:
        message = STALE_RECLAIM_MESSAGE.format(
            seconds=self._settings.stale_reservation_seconds,
        )
        try:
            reclaimed = self._store.update(
                existing.record_id,
                {
                    "status": ReservationStatus.FAILED,
                    "error_message": message,
                    "completed_at": now,
                },
                expected_status=ReservationStatus.PENDING,
                created_before=now - self._settings.stale_after,
            )
        except Exception:
            logger.warning(
                "stale_reclaim_failed",
                extra={"record_id": str(existing.record_id)},
                exc_info=True,
            )
            return ReservationOutcome.skip(SkipReason.IN_PROGRESS, existing.record_id)

        if reclaimed:
            logger.warning(
                "stale_reservation_reclaimed",
                extra={
                    "record_id": str(existing.record_id),
                    "stale_key": existing.idempotency_key,
                    "created_at": existing.created_at,
                },
            )
            return ReservationOutcome.skip(SkipReason.PREVIOUSLY_FAILED, existing.record_id)

        # Lost the compare-and-set: someone else finalized or reclaimed it.
        current = self._lookup_after_conflict(existing.idempotency_key)
        if current is _LOOKUP_FAILED:
            current = None
        if current is not None and current.status == ReservationStatus.COMPLETED:
            return ReservationOutcome.skip(SkipReason.ALREADY_COMPLETED, current.record_id)
        if current is not None and current.status == ReservationStatus.FAILED:
            return ReservationOutcome.skip(SkipReason.PREVIOUSLY_FAILED, current.record_id)
        return ReservationOutcome.skip(SkipReason.IN_PROGRESS, existing.record_id)

    def _lookup_after_conflict(self, idempotency_key: str) -> Any:
        """Read the record that holds ``idempotency_key``.

        Any failure here, kernel or not, yields ``_LOOKUP_FAILED``: the
        key is known to be taken, so the caller must skip, never raise.
        """
        try:
            return self._store.get(idempotency_key)
        except Exception:
            logger.warning(
                "reservation_conflict_lookup_failed",
                extra={"conflicting_key": idempotency_key},
                exc_info=True,
            )
            return _LOOKUP_FAILED

    # -------------------------------------------------------------------------
    # Close out
    # -------------------------------------------------------------------------

    def complete(self, record_id: UUID, result: EntityRef) -> None:
        """Mark a reserved record completed with a reference to what was created.

        Raises:
            ReservationNotFoundError: No record with ``record_id``.
            ReservationStoreError: The store failed.
        """
        self._close(
            record_id,
            {
                "status": ReservationStatus.COMPLETED,
                "completed_at": self._clock.now(),
                "result_entity": result.entity_type,
                "result_id": result.entity_id,
                "error_message": None,
            },
        )
        logger.info(
            "reservation_completed",
            extra={
                "record_id": str(record_id),
                "result_entity": result.entity_type,
                "result_id": result.entity_id,
            },
        )

    def fail(self, record_id: UUID, error_message: str) -> None:
        """Mark a record failed.

        Raises:
            ReservationNotFoundError: No record with ``record_id``.
            ReservationStoreError: The store failed.
        """
        self._close(
            record_id,
            {
                "status": ReservationStatus.FAILED,
                "completed_at": self._clock.now(),
                "error_message": error_message,
            },
        )
        logger.info(
            "reservation_failed",
            extra={"record_id": str(record_id), "error_message": error_message},
        )

    def _close(self, record_id: UUID, fields: dict[str, Any]) -> None:
        if not self._store.update(record_id, fields):
            raise ReservationNotFoundError(str(record_id))
