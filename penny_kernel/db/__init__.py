"""Database layer: declarative base, column types and engine management."""

from penny_kernel.db.base import Base, TrackedBase, UUIDString
from penny_kernel.db.engine import (
    build_engine,
    create_tables,
    get_session_factory,
    init_engine_from_url,
    reset_engine,
    session_scope,
)
from penny_kernel.db.types import Money, ZERO, round_money, to_money

__all__ = [
    "Base",
    "Money",
    "TrackedBase",
    "UUIDString",
    "ZERO",
    "build_engine",
    "create_tables",
    "get_session_factory",
    "init_engine_from_url",
    "reset_engine",
    "round_money",
    "session_scope",
    "to_money",
]
