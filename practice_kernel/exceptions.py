"""
Typed exception hierarchy for the practice-automation packages.

Every exception carries a class-level ``code`` (machine-readable, stable
across message rewording) and stores its context as attributes so the
structured log formatter can emit it field by field.

    PracticeKernelError (base)
    |
    +-- BatchError
    |   +-- BatchNotFoundError
    |   +-- InvalidBatchStatusError
    |   +-- BatchExpiredError
    |   +-- ActionValidationError
    |
    +-- ActionError
    |   +-- ActionConfigurationError
    |   +-- ActionExecutionError
    |   +-- UnknownActionTypeError
    |   +-- HandlerNotRegisteredError
    |
    +-- ReservationError
    |   +-- ReservationStoreError
    |   +-- ReservationNotFoundError
    |
    +-- ProviderError
    +-- EntityNotFoundError
    +-- RollbackError

Handling patterns:

    ActionConfigurationError is a defect in how the batch was built.  The
    executor rolls back what it already did and re-raises it.

    ActionExecutionError and ProviderError never escape the executor;
    they are turned into ``failed`` action results.

    RollbackError is logged by the rollback manager and never re-raised.
"""

from __future__ import annotations

from typing import Any


class PracticeKernelError(Exception):
    """
    Base exception for all practice-automation errors.

    All subclasses must have a ``code`` class attribute.
    """

    code: str = "PRACTICE_KERNEL_ERROR"


# Batch lifecycle exceptions


class BatchError(PracticeKernelError):
    """Base exception for approval batch lifecycle errors."""

    code: str = "BATCH_ERROR"


class BatchNotFoundError(BatchError):
    """Approval batch with the given ID does not exist."""

    code: str = "BATCH_NOT_FOUND"

    def __init__(self, batch_id: str):
        self.batch_id = batch_id
        super().__init__(f"Approval batch not found: {batch_id}")


class InvalidBatchStatusError(BatchError):
    """Requested operation is not allowed in the batch's current status."""

    code: str = "INVALID_BATCH_STATUS"

    def __init__(self, batch_id: str, status: str, operation: str):
        self.batch_id = batch_id
        self.status = status
        self.operation = operation
        super().__init__(
            f"Cannot {operation} batch {batch_id} with status: {status}"
        )


class BatchExpiredError(BatchError):
    """Approval batch expired before it was approved."""

    code: str = "BATCH_EXPIRED"

    def __init__(self, batch_id: str, expires_at: str):
        self.batch_id = batch_id
        self.expires_at = expires_at
        super().__init__(f"Approval batch {batch_id} expired at {expires_at}")


class ActionValidationError(BatchError):
    """Edited actions do not match the originally proposed actions."""

    code: str = "ACTION_VALIDATION_FAILED"

    def __init__(self, batch_id: str, errors: list[dict[str, str]]):
        self.batch_id = batch_id
        self.errors = errors
        summary = "; ".join(f"{e['path']}: {e['message']}" for e in errors)
        super().__init__(f"Invalid action update for batch {batch_id}: {summary}")


# Action exceptions


class ActionError(PracticeKernelError):
    """Base exception for errors raised while executing one action."""

    code: str = "ACTION_ERROR"


class ActionConfigurationError(ActionError):
    """Action cannot be executed as submitted (e.g. no idempotency key).

    Fatal for the whole batch: the caller built the batch incorrectly.
    """

    code: str = "ACTION_CONFIGURATION_ERROR"

    def __init__(self, action_type: str, reason: str, batch_id: str | None = None):
        self.action_type = action_type
        self.reason = reason
        self.batch_id = batch_id
        super().__init__(
            f"Misconfigured {action_type} action in batch {batch_id}: {reason}"
        )


class ActionExecutionError(ActionError):
    """A handler failed to perform its side effect."""

    code: str = "ACTION_EXECUTION_FAILED"

    def __init__(self, action_type: str, idempotency_key: str | None, reason: str):
        self.action_type = action_type
        self.idempotency_key = idempotency_key
        self.reason = reason
        super().__init__(f"{action_type} action {idempotency_key} failed: {reason}")


class UnknownActionTypeError(ActionError):
    """Action type is not one of the supported action types."""

    code: str = "UNKNOWN_ACTION_TYPE"

    def __init__(self, action_type: str):
        self.action_type = action_type
        super().__init__(f"Unknown action type: {action_type}")


class HandlerNotRegisteredError(ActionError):
    """No handler is registered for a known action type."""

    code: str = "HANDLER_NOT_REGISTERED"

    def __init__(self, action_type: str, available: tuple[str, ...]):
        self.action_type = action_type
        self.available = list(available)
        super().__init__(
            f"No handler registered for '{action_type}'. "
            f"Available: {sorted(available)}"
        )


# Reservation ledger exceptions


class ReservationError(PracticeKernelError):
    """Base exception for reservation ledger errors."""

    code: str = "RESERVATION_ERROR"


class ReservationStoreError(ReservationError):
    """The reservation store failed for a reason other than a duplicate key."""

    code: str = "RESERVATION_STORE_ERROR"

    def __init__(self, idempotency_key: str, operation: str, reason: str):
        self.idempotency_key = idempotency_key
        self.operation = operation
        self.reason = reason
        super().__init__(
            f"Reservation store {operation} failed for {idempotency_key}: {reason}"
        )


class ReservationNotFoundError(ReservationError):
    """Execution record with the given ID does not exist."""

    code: str = "RESERVATION_NOT_FOUND"

    def __init__(self, record_id: str):
        self.record_id = record_id
        super().__init__(f"Execution record not found: {record_id}")


# External collaborator exceptions


class ProviderError(PracticeKernelError):
    """A mail, document-storage or calendar provider reported an error."""

    code: str = "PROVIDER_ERROR"

    def __init__(self, provider: str, reason: str, details: dict[str, Any] | None = None):
        self.provider = provider
        self.reason = reason
        self.details = details or {}
        super().__init__(f"{provider} provider error: {reason}")


class EntityNotFoundError(PracticeKernelError):
    """A local record (task, time entry, ...) does not exist."""

    code: str = "ENTITY_NOT_FOUND"

    def __init__(self, entity_type: str, entity_id: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(f"{entity_type} not found: {entity_id}")


class RollbackError(PracticeKernelError):
    """Deleting a previously created entity failed during rollback."""

    code: str = "ROLLBACK_FAILED"

    def __init__(self, action_type: str, entity_id: str, reason: str):
        self.action_type = action_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Failed to roll back {action_type} entity {entity_id}: {reason}"
        )
