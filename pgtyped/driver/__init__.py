"""Drivers that carry queries to PostgreSQL."""

from __future__ import annotations

from .asyncpg_driver import AsyncpgDriver, PoolHandle, classify_error
from .base import Driver, IsolationLevel, RawRow

__all__ = [
    "AsyncpgDriver",
    "Driver",
    "IsolationLevel",
    "PoolHandle",
    "RawRow",
    "classify_error",
]
