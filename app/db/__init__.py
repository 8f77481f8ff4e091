"""
Database package — clean public API.

This makes `from app.db import AsyncSessionLocal, Base, engine, etc.` work
and keeps imports consistent across the service.
"""

from .session import (
    engine,
    AsyncSessionLocal,
    Base,
    init_db,
    close_db,
)

__all__ = [
    "engine",
    "AsyncSessionLocal",
    "Base",
    "init_db",
    "close_db",
]
