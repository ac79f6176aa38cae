"""Database layer - engine, base classes, column types, immutability."""

from mill_kernel.db.base import UUID, Base, TrackedBase, UUIDString
from mill_kernel.db.engine import create_tables, get_engine, get_session
from mill_kernel.db.types import ScaledDecimal, to_money, to_quantity

__all__ = [
    "get_engine",
    "get_session",
    "create_tables",
    "Base",
    "TrackedBase",
    "UUIDString",
    "UUID",
    "ScaledDecimal",
    "to_money",
    "to_quantity",
]
