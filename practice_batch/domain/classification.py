"""
Action classification and execution ordering.  ZERO I/O.

Each action type carries static metadata: whether its side effect is a
local record that can be deleted again (revertible), whether a failure
may be tolerated without marking the batch as broken (best-effort), and
the entity type its handler creates.  The table is built once at import
time and never mutated.

Ordering puts every revertible action before every non-revertible one,
keeping the submitted relative order inside each group, so that if
something has to fail it fails while compensation is still possible.
"""

from __future__ import annotations

from dataclasses import dataclass
from types import MappingProxyType
from typing import Iterable, Mapping

from practice_batch.domain.types import ActionType, BatchAction


@dataclass(frozen=True)
class ActionClass:
    """Static metadata for one action type."""

    action_type: str
    revertible: bool
    best_effort: bool
    entity_type: str
    known: bool = True


ACTION_CLASSES: Mapping[str, ActionClass] = MappingProxyType({
    c.action_type: c
    for c in (
        ActionClass(ActionType.CREATE_TASK.value, True, False, "Task"),
        ActionClass(ActionType.BILLING.value, True, False, "TimeEntry"),
        ActionClass(ActionType.CREATE_DEADLINE.value, True, False, "Deadline"),
        ActionClass(ActionType.CREATE_ALERT.value, True, False, "Activity"),
        ActionClass(ActionType.SEND_EMAIL.value, False, False, "Email"),
        ActionClass(ActionType.SAVE_FILE.value, False, True, "Document"),
        ActionClass(ActionType.CALENDAR_EVENT.value, False, True, "CalendarEvent"),
    )
})


def classify(action_type: str) -> ActionClass:
    """Return the static class of ``action_type``.

    Unsupported types are treated as non-revertible and not best-effort:
    they run last and their (certain) failure is reported, not hidden.
    """
    found = ACTION_CLASSES.get(action_type)
    if found is not None:
        return found
    return ActionClass(action_type, False, False, "Unknown", known=False)


def is_revertible(action_type: str) -> bool:
    return classify(action_type).revertible


def is_best_effort(action_type: str) -> bool:
    return classify(action_type).best_effort


def order_for_execution(actions: Iterable[BatchAction]) -> tuple[BatchAction, ...]:
    """Revertible actions first, then the rest; stable within each group."""
    return tuple(sorted(actions, key=lambda a: 0 if is_revertible(a.action_type) else 1))
