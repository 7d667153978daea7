"""
Pure domain helpers shared across packages.

Nothing here performs I/O except ``SystemClock``, the one sanctioned
boundary for reading the current time.
"""

from practice_kernel.domain.clock import Clock, DeterministicClock, SystemClock, as_utc

__all__ = [
    "Clock",
    "DeterministicClock",
    "SystemClock",
    "as_utc",
]
