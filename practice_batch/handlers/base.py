"""
ActionHandler protocol, HandlerRegistry and config coercion helpers.

Contract:
    ``ActionHandler`` defines the interface every action handler implements.
    ``RevertibleHandler`` adds ``revert()`` for handlers whose side effect
    is a local record the rollback manager may delete again.
    ``HandlerRegistry`` stores registered handlers keyed by ``action_type``.

Architecture:
    practice_batch/handlers.  Imports only from practice_batch.domain,
    the kernel exception types and stdlib.  Handlers never touch the
    reservation ledger; the executor owns that.

Invariants enforced:
    - One handler per ``action_type`` string.
    - Handlers translate config into exactly one collaborator call and
      return an ``EntityRef``; they do not retry.
"""

from __future__ import annotations

from datetime import date, datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Protocol, runtime_checkable

from practice_kernel.exceptions import ActionExecutionError, HandlerNotRegisteredError

from practice_batch.domain.types import ApprovalBatch, BatchAction, EntityRef, ExecutionContext


# =============================================================================
# Protocols
# =============================================================================


@runtime_checkable
class ActionHandler(Protocol):
    """Performs the side effect of one action type.

    Contract:
        - ``action_type``: unique string key registered in HandlerRegistry.
        - ``perform()``: applies the side effect and returns a reference
          to what was created.  Raises on failure.
    """

    @property
    def action_type(self) -> str: ...

    def perform(
        self,
        action: BatchAction,
        batch: ApprovalBatch,
        context: ExecutionContext,
    ) -> EntityRef: ...


@runtime_checkable
class RevertibleHandler(ActionHandler, Protocol):
    """Handler whose created entity can be deleted again."""

    def revert(self, entity_id: str) -> None:
        """Delete the entity created by ``perform()``.

        Raises:
            EntityNotFoundError: The entity no longer exists.
        """
        ...


# =============================================================================
# HandlerRegistry
# =============================================================================


class HandlerRegistry:
    """Registry mapping action_type strings to ActionHandler implementations.

    Contract:
        - ``register()`` adds a handler; raises ValueError on duplicate.
        - ``get()`` retrieves by action_type; raises HandlerNotRegisteredError.
        - ``list_handlers()`` returns all registered action_type strings.
    """

    def __init__(self) -> None:
        self._handlers: dict[str, ActionHandler] = {}

    def register(self, handler: ActionHandler) -> None:
        """Register an action handler.

        Raises:
            ValueError: If a handler for the same action_type is registered.
        """
        if handler.action_type in self._handlers:
            raise ValueError(
                f"Action type '{handler.action_type}' is already registered"
            )
        self._handlers[handler.action_type] = handler

    def get(self, action_type: str) -> ActionHandler:
        try:
            return self._handlers[action_type]
        except KeyError:
            raise HandlerNotRegisteredError(action_type, self.list_handlers()) from None

    def list_handlers(self) -> tuple[str, ...]:
        """Return all registered action_type strings, sorted."""
        return tuple(sorted(self._handlers.keys()))

    def __len__(self) -> int:
        return len(self._handlers)

    def __contains__(self, action_type: str) -> bool:
        return action_type in self._handlers


# =============================================================================
# Config helpers
# =============================================================================


def first_present(config: dict[str, Any], *keys: str, default: Any = None) -> Any:
    """Value of the first key in ``keys`` that is set and non-empty."""
    for key in keys:
        value = config.get(key)
        if value not in (None, ""):
            return value
    return default


def config_decimal(action: BatchAction, key: str, value: Any) -> Decimal:
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ActionExecutionError(
            action.action_type, action.idempotency_key,
            f"{key} is not a number: {value!r}",
        ) from None


def config_date(action: BatchAction, key: str, value: Any) -> date:
    """Parse an ISO date (or the date part of an ISO datetime)."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError:
        raise ActionExecutionError(
            action.action_type, action.idempotency_key,
            f"{key} is not an ISO date: {value!r}",
        ) from None


def config_datetime(action: BatchAction, key: str, value: Any) -> datetime:
    """Parse an ISO datetime; a bare date means midnight UTC."""
    if isinstance(value, datetime):
        parsed = value
    else:
        text = str(value).replace("Z", "+00:00")
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            raise ActionExecutionError(
                action.action_type, action.idempotency_key,
                f"{key} is not an ISO datetime: {value!r}",
            ) from None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def require(action: BatchAction, *keys: str) -> Any:
    """Return the first present value of ``keys`` or fail the action."""
    value = first_present(action.config, *keys)
    if value is None:
        raise ActionExecutionError(
            action.action_type, action.idempotency_key,
            f"missing required config: {' or '.join(keys)}",
        )
    return value
