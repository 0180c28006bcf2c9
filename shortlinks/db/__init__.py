"""
Database module with abstraction layer.

This module provides:
- DatabaseAdapter interface: Abstract base class for database implementations
- SQLiteAdapter / PostgreSQLAdapter: Dialect-specific implementations
- Session management: Database session creation and management
"""

from shortlinks.db.interface import DatabaseAdapter
from shortlinks.db.session import async_session_maker, engine, get_session, get_session_factory

__all__ = [
    "DatabaseAdapter",
    "get_session",
    "get_session_factory",
    "async_session_maker",
    "engine",
]
