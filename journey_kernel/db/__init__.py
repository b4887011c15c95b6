"""Database layer - engine, base classes, and immutability enforcement."""

from journey_kernel.db.base import UUID, Base, TrackedBase, UUIDString
from journey_kernel.db.engine import (
    build_engine,
    create_tables,
    drop_tables,
    get_engine,
    get_session,
    get_session_factory,
    init_engine_from_url,
    reset_engine,
    session_scope,
)

__all__ = [
    "build_engine",
    "create_tables",
    "drop_tables",
    "get_engine",
    "get_session",
    "get_session_factory",
    "init_engine_from_url",
    "reset_engine",
    "session_scope",
    "Base",
    "TrackedBase",
    "UUIDString",
    "UUID",
]
