"""Database layer - engine, base classes, and column types."""

from practice_kernel.db.base import UUID, Base, TrackedBase, UUIDString
from practice_kernel.db.engine import build_engine, create_tables, session_scope

__all__ = [
    "build_engine",
    "create_tables",
    "session_scope",
    "Base",
    "TrackedBase",
    "UUIDString",
    "UUID",
]
