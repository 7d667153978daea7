"""
ActionDispatcher -- maps an action to its handler and performs it.

Contract:
    ``dispatch()`` returns an ``EntityRef`` or raises a
    ``PracticeKernelError``.  Unexpected exceptions from a handler are
    wrapped in ``ActionExecutionError`` with the original as ``__cause__``.

Non-goals:
    - No retries.  Retrying across attempts is the ledger's job.
    - No ledger access.
"""

from __future__ import annotations

import time

from practice_kernel.exceptions import (
    ActionExecutionError,
    PracticeKernelError,
    UnknownActionTypeError,
)
from practice_kernel.logging_config import get_logger

from practice_batch.domain.classification import classify
from practice_batch.domain.types import ApprovalBatch, BatchAction, EntityRef, ExecutionContext
from practice_batch.handlers.base import HandlerRegistry

logger = get_logger("batch.dispatcher")


class ActionDispatcher:
    """Polymorphic dispatch over the registered action handlers."""

    def __init__(self, registry: HandlerRegistry) -> None:
        self._registry = registry

    @property
    def registry(self) -> HandlerRegistry:
        return self._registry

    def dispatch(
        self,
        action: BatchAction,
        batch: ApprovalBatch,
        context: ExecutionContext,
    ) -> EntityRef:
        """Perform ``action`` and return a reference to what it created.

        Raises:
            UnknownActionTypeError: ``action_type`` is not supported.
            HandlerNotRegisteredError: Supported, but nothing registered.
            ActionExecutionError: The handler failed.
            ProviderError: An external provider rejected the call.
        """
        if not classify(action.action_type).known:
            raise UnknownActionTypeError(action.action_type)

        handler = self._registry.get(action.action_type)
        start = time.monotonic()
        try:
            ref = handler.perform(action, batch, context)
        except PracticeKernelError:
            raise
        except Exception as exc:
            raise ActionExecutionError(
                action.action_type, action.idempotency_key, str(exc),
            ) from exc

        logger.info(
            "action_dispatched",
            extra={
                "action_type": action.action_type,
                "entity_type": ref.entity_type,
                "entity_id": ref.entity_id,
                "duration_ms": int((time.monotonic() - start) * 1000),
            },
        )
        return ref
