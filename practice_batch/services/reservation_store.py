"""
ReservationStore -- persistence port and SQLAlchemy adapter for the
execution ledger.

Contract:
    ``insert_if_absent()`` is a true atomic insert-if-absent: the row is
    written or the UNIQUE(idempotency_key) constraint rejects it.  No
    read-then-write check happens in application code.

Failure modes:
    - ``InsertResult.CONFLICT`` only for a genuine uniqueness violation:
      an IntegrityError after which a row with the same key is visible.
    - ``ReservationStoreError`` for everything else (connection loss,
      other constraint violations, a conflict whose row cannot be
      found).  Callers must never read this as "already exists".
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Protocol
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from practice_kernel.db.engine import session_scope
from practice_kernel.exceptions import ReservationStoreError
from practice_kernel.logging_config import get_logger

from practice_batch.domain.types import ReservationRecord, ReservationStatus
from practice_batch.models.batch import ExecutionRecordModel

logger = get_logger("batch.reservation_store")


class InsertResult(str, Enum):
    INSERTED = "inserted"
    CONFLICT = "conflict"


class ReservationStore(Protocol):
    """Port for the persisted, uniquely-keyed execution ledger."""

    def insert_if_absent(self, record: ReservationRecord) -> InsertResult: ...

    def get(self, idempotency_key: str) -> ReservationRecord | None: ...

    def update(
        self,
        record_id: UUID,
        fields: dict[str, Any],
        *,
        expected_status: ReservationStatus | None = None,
        created_before: datetime | None = None,
    ) -> bool:
        """Apply ``fields`` to one record; return False if no row matched.

        ``expected_status`` / ``created_before`` turn the update into a
        compare-and-set so concurrent reclaimers cannot both win.
        """
        ...


class SqlReservationStore:
    """``ReservationStore`` over the ``execution_records`` table."""

    def __init__(self, session_factory: sessionmaker[Session]) -> None:
        self._session_factory = session_factory

    def insert_if_absent(self, record: ReservationRecord) -> InsertResult:
        try:
            with session_scope(self._session_factory) as session:
                session.add(ExecutionRecordModel.from_dto(record))
        except IntegrityError as exc:
            if self._key_visible(record.idempotency_key):
                return InsertResult.CONFLICT
            raise ReservationStoreError(
                record.idempotency_key, "insert", str(exc.orig),
            ) from exc
        except SQLAlchemyError as exc:
            raise ReservationStoreError(
                record.idempotency_key, "insert", str(exc),
            ) from exc
        return InsertResult.INSERTED

    def get(self, idempotency_key: str) -> ReservationRecord | None:
        try:
            with session_scope(self._session_factory) as session:
                model = session.execute(
                    select(ExecutionRecordModel).where(
                        ExecutionRecordModel.idempotency_key == idempotency_key,
                    )
                ).scalar_one_or_none()
                return model.to_dto() if model is not None else None
        except SQLAlchemyError as exc:
            raise ReservationStoreError(idempotency_key, "get", str(exc)) from exc

    def update(
        self,
        record_id: UUID,
        fields: dict[str, Any],
        *,
        expected_status: ReservationStatus | None = None,
        created_before: datetime | None = None,
    ) -> bool:
        values = {
            key: (val.value if isinstance(val, Enum) else val)
            for key, val in fields.items()
        }
        stmt = update(ExecutionRecordModel).where(ExecutionRecordModel.id == record_id)
        if expected_status is not None:
            stmt = stmt.where(ExecutionRecordModel.status == expected_status.value)
        if created_before is not None:
            stmt = stmt.where(ExecutionRecordModel.created_at < created_before)
        stmt = stmt.values(**values).execution_options(synchronize_session=False)

        try:
            with session_scope(self._session_factory) as session:
                result = session.execute(stmt)
                return result.rowcount == 1
        except SQLAlchemyError as exc:
            raise ReservationStoreError(str(record_id), "update", str(exc)) from exc

    def _key_visible(self, idempotency_key: str) -> bool:
        """Whether a row with this key exists after a failed insert.

        If even this lookup fails, the IntegrityError is still most
        plausibly the unique key, so report it as visible and let the
        ledger degrade to a conservative skip.
        """
        try:
            return self.get(idempotency_key) is not None
        except ReservationStoreError:
            logger.warning(
                "conflict_verification_failed",
                extra={"idempotency_key": idempotency_key},
                exc_info=True,
            )
            return True
