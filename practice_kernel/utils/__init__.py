"""Utility modules for the practice kernel."""

from practice_kernel.utils.idempotency import make_action_key, parse_action_key

__all__ = [
    "make_action_key",
    "parse_action_key",
]
