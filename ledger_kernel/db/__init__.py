"""Database layer - engine, base classes, types, and immutability."""

from ledger_kernel.db.base import UUID, Base, TrackedBase, UTCDateTime, UUIDString
from ledger_kernel.db.engine import create_tables, get_engine, get_session_factory

__all__ = [
    "get_engine",
    "get_session_factory",
    "create_tables",
    "Base",
    "TrackedBase",
    "UTCDateTime",
    "UUIDString",
    "UUID",
]
