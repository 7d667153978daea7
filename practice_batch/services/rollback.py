"""
RollbackManager -- compensating rollback of completed revertible actions.

Contract:
    ``rollback(stack)`` walks the stack newest-first.  For each entry it
    deletes the created entity through the handler's ``revert()`` and then
    marks the entry's ledger record failed with the rollback message.

Failure modes:
    A failed delete or ledger update is logged as ``rollback_entry_failed``
    and the sweep moves on to the next entry.  ``rollback()`` never raises.
    A record whose entity could not be deleted stays ``completed`` so the
    ledger keeps pointing at the entity that still exists.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Sequence

from practice_config import EngineSettings
from practice_kernel.exceptions import RollbackError
from practice_kernel.logging_config import get_logger

from practice_batch.domain.types import RollbackEntry
from practice_batch.handlers.base import HandlerRegistry, RevertibleHandler
from practice_batch.services.ledger import ReservationLedger

logger = get_logger("batch.rollback")


@dataclass(frozen=True)
class RollbackReport:
    """Which entries were undone and which could not be."""

    rolled_back: tuple[str, ...] = ()
    failures: tuple[RollbackError, ...] = field(default=())

    @property
    def clean(self) -> bool:
        return not self.failures


class RollbackManager:
    def __init__(
        self,
        registry: HandlerRegistry,
        ledger: ReservationLedger,
        settings: EngineSettings | None = None,
    ) -> None:
        self._registry = registry
        self._ledger = ledger
        self._settings = settings or EngineSettings()

    def rollback(self, stack: Sequence[RollbackEntry]) -> RollbackReport:
        rolled_back: list[str] = []
        failures: list[RollbackError] = []

        logger.warning("rollback_started", extra={"entries": len(stack)})

        for entry in reversed(stack):
            try:
                self._revert(entry)
            except Exception as exc:
                error = RollbackError(entry.action_type, entry.entity_id, str(exc))
                failures.append(error)
                logger.error(
                    "rollback_entry_failed",
                    extra={
                        "action_type": entry.action_type,
                        "entity_id": entry.entity_id,
                        "rolled_back_key": entry.idempotency_key,
                        "error": str(exc),
                    },
                )
                continue

            try:
                self._ledger.fail(entry.record_id, self._settings.rollback_message)
            except Exception as exc:
                # Entity is gone; only the ledger bookkeeping failed.
                failures.append(RollbackError(entry.action_type, entry.entity_id, str(exc)))
                logger.error(
                    "rollback_entry_failed",
                    extra={
                        "action_type": entry.action_type,
                        "entity_id": entry.entity_id,
                        "rolled_back_key": entry.idempotency_key,
                        "error": str(exc),
                    },
                )
            rolled_back.append(entry.idempotency_key)

        logger.warning(
            "rollback_completed",
            extra={"rolled_back": len(rolled_back), "failures": len(failures)},
        )
        return RollbackReport(tuple(rolled_back), tuple(failures))

    def _revert(self, entry: RollbackEntry) -> None:
        handler = self._registry.get(entry.action_type)
        if not isinstance(handler, RevertibleHandler):
            raise TypeError(f"handler for {entry.action_type} cannot revert")
        handler.revert(entry.entity_id)
