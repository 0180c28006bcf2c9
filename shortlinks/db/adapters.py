"""
Database Adapters

This module implements the DatabaseAdapter interface for SQLite (default)
and PostgreSQL, and picks one from the connection string.

SQLite is a file-based database that's perfect for:
- Local development
- Testing
- Single-instance deployments

Key characteristics:
- Single writer at a time (file locking); writers wait on the busy timeout
- INSERT ... ON CONFLICT DO NOTHING since 3.24

PostgreSQL is the production target; it gets a real connection pool.
"""

from typing import Any, Optional

from sqlalchemy import Table
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.pool import NullPool

from shortlinks.db.interface import DatabaseAdapter


class SQLiteAdapter(DatabaseAdapter):
    """
    SQLite database adapter implementation.

    This adapter handles all SQLite-specific configuration and operations.
    """

    def get_pool_class(self) -> type[NullPool]:
        """
        Get the connection pool class for SQLite.

        NullPool gives every session its own connection, so concurrent
        writers serialize on the database file lock instead of sharing a
        transaction.

        Returns:
            NullPool class
        """
        return NullPool

    def get_connect_args(self) -> dict[str, Any]:
        """
        Get SQLite-specific connection arguments.

        check_same_thread=False is required by aiosqlite; the timeout is how
        long a writer waits for the file lock before giving up.
        """
        return {
            "check_same_thread": False,
            "timeout": 15,
        }

    def get_engine_kwargs(self) -> dict[str, Any]:
        return {
            "echo": False  # Set to True only for SQL debugging in development
        }

    async def insert_if_absent(
        self,
        session: AsyncSession,
        table: Table,
        values: dict[str, Any],
        conflict_columns: list[str],
    ) -> bool:
        statement = (
            sqlite.insert(table)
            .values(**values)
            .on_conflict_do_nothing(index_elements=conflict_columns)
        )
        result = await session.execute(statement)
        return result.rowcount == 1

    def get_dialect_name(self) -> str:
        return "sqlite"


class PostgreSQLAdapter(DatabaseAdapter):
    """
    PostgreSQL adapter (asyncpg driver).

    Uses SQLAlchemy's default QueuePool with pre-ping so dropped connections
    surface as a reconnect instead of a failed request.
    """

    def get_pool_class(self) -> Optional[type]:
        return None

    def get_connect_args(self) -> dict[str, Any]:
        return {}

    def get_engine_kwargs(self) -> dict[str, Any]:
        return {
            "echo": False,
            "pool_size": 10,
            "max_overflow": 20,
            "pool_pre_ping": True,
        }

    async def insert_if_absent(
        self,
        session: AsyncSession,
        table: Table,
        values: dict[str, Any],
        conflict_columns: list[str],
    ) -> bool:
        statement = (
            postgresql.insert(table)
            .values(**values)
            .on_conflict_do_nothing(index_elements=conflict_columns)
        )
        result = await session.execute(statement)
        return result.rowcount == 1

    def get_dialect_name(self) -> str:
        return "postgresql"


def get_database_adapter(database_url: str = "sqlite") -> DatabaseAdapter:
    """
    Factory function to get the database adapter for a connection string.

    Args:
        database_url: SQLAlchemy URL, only its scheme is inspected

    Returns:
        PostgreSQLAdapter for postgresql URLs, SQLiteAdapter otherwise
    """
    if database_url.startswith("postgresql"):
        return PostgreSQLAdapter()
    return SQLiteAdapter()
