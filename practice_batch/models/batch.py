"""
ORM models for approval batches and the execution ledger.

Contract:
    ApprovalBatchModel persists the batch the approver acts on;
    ExecutionRecordModel is the reservation ledger.  Each has
    ``to_dto()`` / ``from_dto()`` round-trip methods.

Invariants enforced:
    - ``execution_records.idempotency_key`` is UNIQUE.  This constraint
      is the only concurrency-control primitive of the engine: whoever
      inserts the row owns the action.
    - Status columns are limited by CHECK constraints.
    - ``execution_records.created_at`` is written from the injected clock
      (not the server default) because stale reclaim compares against it.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Any
from uuid import UUID

from sqlalchemy import JSON, CheckConstraint, DateTime, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from practice_kernel.db.base import Base, TrackedBase, UUIDString

if TYPE_CHECKING:
    from practice_batch.domain.types import ApprovalBatch, ReservationRecord


class ApprovalBatchModel(TrackedBase):
    """Persistent approval batch (status owned by the approval workflow)."""

    __tablename__ = "approval_batches"

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'editing', 'approved', 'executing', "
            "'executed', 'cancelled', 'failed')",
            name="ck_approval_batches_valid_status",
        ),
        Index("ix_approval_batches_status", "status"),
        Index("ix_approval_batches_mail_approver", "mail_id", "approver_email"),
    )

    status: Mapped[str] = mapped_column(String(50), nullable=False, default="pending")
    actions_current: Mapped[list[dict[str, Any]]] = mapped_column(
        JSON, nullable=False, default=list,
    )
    actions_original: Mapped[list[dict[str, Any]]] = mapped_column(
        JSON, nullable=False, default=list,
    )
    mail_id: Mapped[str | None] = mapped_column(String(200), nullable=True)
    mail_subject: Mapped[str | None] = mapped_column(String(500), nullable=True)
    case_id: Mapped[str | None] = mapped_column(String(200), nullable=True)
    client_id: Mapped[str | None] = mapped_column(String(200), nullable=True)
    rule_id: Mapped[str | None] = mapped_column(String(200), nullable=True)
    rule_name: Mapped[str | None] = mapped_column(String(200), nullable=True)
    approver_email: Mapped[str | None] = mapped_column(String(320), nullable=True)
    expires_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    approved_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    approved_via: Mapped[str | None] = mapped_column(String(50), nullable=True)
    approved_by: Mapped[str | None] = mapped_column(String(320), nullable=True)
    cancelled_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    cancel_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    execution_summary: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)

    def to_dto(self) -> ApprovalBatch:
        from practice_batch.domain.types import ApprovalBatch, BatchAction, BatchStatus

        return ApprovalBatch(
            batch_id=self.id,
            status=BatchStatus(self.status),
            actions_current=tuple(
                BatchAction.from_dict(a) for a in (self.actions_current or [])
            ),
            actions_original=tuple(
                BatchAction.from_dict(a) for a in (self.actions_original or [])
            ),
            mail_id=self.mail_id,
            mail_subject=self.mail_subject,
            case_id=self.case_id,
            client_id=self.client_id,
            rule_id=self.rule_id,
            rule_name=self.rule_name,
            approver_email=self.approver_email,
            expires_at=self.expires_at,
            approved_at=self.approved_at,
            approved_via=self.approved_via,
            execution_summary=self.execution_summary,
            error_message=self.error_message,
        )

    @classmethod
    def from_dto(cls, dto: ApprovalBatch, created_by: str = "system") -> ApprovalBatchModel:
        return cls(
            id=dto.batch_id,
            status=dto.status.value,
            actions_current=[a.to_dict() for a in dto.actions_current],
            actions_original=[a.to_dict() for a in dto.actions_original],
            mail_id=dto.mail_id,
            mail_subject=dto.mail_subject,
            case_id=dto.case_id,
            client_id=dto.client_id,
            rule_id=dto.rule_id,
            rule_name=dto.rule_name,
            approver_email=dto.approver_email,
            expires_at=dto.expires_at,
            approved_at=dto.approved_at,
            approved_via=dto.approved_via,
            execution_summary=dto.execution_summary,
            error_message=dto.error_message,
            created_by=created_by,
        )


class ExecutionRecordModel(Base):
    """Reservation ledger entry: durable evidence of one action attempt."""

    __tablename__ = "execution_records"

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'completed', 'failed')",
            name="ck_execution_records_valid_status",
        ),
        Index("ix_execution_records_batch", "batch_id"),
        Index("ix_execution_records_status_created", "status", "created_at"),
    )

    idempotency_key: Mapped[str] = mapped_column(
        String(300), nullable=False, unique=True,
    )
    batch_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    action_type: Mapped[str] = mapped_column(String(50), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    actor: Mapped[str] = mapped_column(String(320), nullable=False)
    context: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False,
    )
    completed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    result_entity: Mapped[str | None] = mapped_column(String(50), nullable=True)
    result_id: Mapped[str | None] = mapped_column(String(200), nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)

    def to_dto(self) -> ReservationRecord:
        from practice_batch.domain.types import ReservationRecord, ReservationStatus

        return ReservationRecord(
            record_id=self.id,
            idempotency_key=self.idempotency_key,
            batch_id=self.batch_id,
            action_type=self.action_type,
            status=ReservationStatus(self.status),
            actor=self.actor,
            context=self.context or {},
            created_at=self.created_at,
            completed_at=self.completed_at,
            result_entity=self.result_entity,
            result_id=self.result_id,
            error_message=self.error_message,
        )

    @classmethod
    def from_dto(cls, dto: ReservationRecord) -> ExecutionRecordModel:
        return cls(
            id=dto.record_id,
            idempotency_key=dto.idempotency_key,
            batch_id=dto.batch_id,
            action_type=dto.action_type,
            status=dto.status.value,
            actor=dto.actor,
            context=dto.context or None,
            created_at=dto.created_at,
            completed_at=dto.completed_at,
            result_entity=dto.result_entity,
            result_id=dto.result_id,
            error_message=dto.error_message,
        )
