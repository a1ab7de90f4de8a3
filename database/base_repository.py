"""Base repository pattern for database operations."""

from __future__ import annotations

import asyncio
import sqlite3
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Awaitable, Callable, List, Optional, Sequence, TypeVar

import aiosqlite

from core.exceptions import ConcurrencyConflictError, PersistenceError
from core.logger import get_logger
from database.connection import get_db_pool

logger = get_logger(__name__)

T = TypeVar('T')

_BUSY_MARKERS = ("database is locked", "database is busy", "database table is locked")


def is_transient(error: BaseException) -> bool:
    """Tell apart lost races (lock contention, unique violations) from real failures."""
    if isinstance(error, ConcurrencyConflictError):
        return True
    if isinstance(error, sqlite3.IntegrityError):
        return "UNIQUE" in str(error).upper()
    if isinstance(error, sqlite3.OperationalError):
        message = str(error).lower()
        return any(marker in message for marker in _BUSY_MARKERS)
    return False


class BaseRepository:
    """Base repository with common database operations.

    Every helper accepts an optional ``conn``; when given, the statement runs
    on that connection inside the caller's transaction, otherwise a pooled
    connection is borrowed for the single statement.
    """

    @staticmethod
    @asynccontextmanager
    async def _borrow(conn: Optional[aiosqlite.Connection] = None) -> AsyncIterator[aiosqlite.Connection]:
        if conn is not None:
            yield conn
            return
        pool = get_db_pool()
        async with pool.connection() as pooled:
            yield pooled

    @staticmethod
    async def execute(
        query: str,
        params: Sequence[Any] = (),
        conn: Optional[aiosqlite.Connection] = None,
    ) -> int:
        """Execute a query and return the number of affected rows."""
        async with BaseRepository._borrow(conn) as active:
            cursor = await active.execute(query, params)
            return cursor.rowcount

    @staticmethod
    async def insert(
        query: str,
        params: Sequence[Any] = (),
        conn: Optional[aiosqlite.Connection] = None,
    ) -> int:
        """Execute an INSERT and return the new row id."""
        async with BaseRepository._borrow(conn) as active:
            cursor = await active.execute(query, params)
            return cursor.lastrowid

    @staticmethod
    async def fetch_one(
        query: str,
        params: Sequence[Any] = (),
        conn: Optional[aiosqlite.Connection] = None,
    ) -> Optional[aiosqlite.Row]:
        """Fetch a single row."""
        async with BaseRepository._borrow(conn) as active:
            cursor = await active.execute(query, params)
            return await cursor.fetchone()

    @staticmethod
    async def fetch_all(
        query: str,
        params: Sequence[Any] = (),
        conn: Optional[aiosqlite.Connection] = None,
    ) -> List[aiosqlite.Row]:
        """Fetch all rows."""
        async with BaseRepository._borrow(conn) as active:
            cursor = await active.execute(query, params)
            return list(await cursor.fetchall())

    @staticmethod
    async def fetch_value(
        query: str,
        params: Sequence[Any] = (),
        conn: Optional[aiosqlite.Connection] = None,
    ) -> Optional[Any]:
        """Fetch a single value from a single row."""
        row = await BaseRepository.fetch_one(query, params, conn)
        return row[0] if row else None

    @staticmethod
    async def fetch_column(
        query: str,
        params: Sequence[Any] = (),
        conn: Optional[aiosqlite.Connection] = None,
    ) -> List[Any]:
        """Fetch first column from all rows."""
        rows = await BaseRepository.fetch_all(query, params, conn)
        return [row[0] for row in rows]

    @staticmethod
    @asynccontextmanager
    async def immediate_transaction() -> AsyncIterator[aiosqlite.Connection]:
        """Open a write transaction that holds the database write lock.

        Lock contention while starting or committing is reported as
        ``ConcurrencyConflictError``; the body is rolled back on any error.
        """
        pool = get_db_pool()
        async with pool.connection() as conn:
            try:
                await conn.execute("BEGIN IMMEDIATE")
            except sqlite3.OperationalError as e:
                if is_transient(e):
                    raise ConcurrencyConflictError(f"Could not acquire write lock: {e}") from e
                raise PersistenceError(f"Could not begin transaction: {e}") from e
            try:
                yield conn
            except BaseException:
                await conn.rollback()
                raise
            try:
                await conn.commit()
            except sqlite3.Error as e:
                await conn.rollback()
                if is_transient(e):
                    raise ConcurrencyConflictError(f"Commit lost a race: {e}") from e
                raise PersistenceError(f"Commit failed: {e}") from e

    @staticmethod
    async def run_with_retries(
        operation: Callable[[], Awaitable[T]],
        attempts: int,
        backoff_ms: int = 25,
        label: str = "transaction",
        on_conflict: Optional[Callable[[], None]] = None,
    ) -> T:
        """Run ``operation`` retrying transient conflicts up to ``attempts`` extra times.

        Raises:
            ConcurrencyConflictError: When every attempt lost a race
            PersistenceError: On any non-transient database failure
        """
        last_error: Optional[BaseException] = None
        for attempt in range(attempts + 1):
            try:
                return await operation()
            except (ConcurrencyConflictError, sqlite3.Error) as e:
                if not is_transient(e):
                    raise PersistenceError(f"{label} failed: {e}") from e
                last_error = e
                logger.warning(f"{label} conflict (attempt {attempt + 1}/{attempts + 1}): {e}")
                if on_conflict is not None:
                    on_conflict()
                if attempt < attempts:
                    await asyncio.sleep(backoff_ms / 1000 * (attempt + 1))
        raise ConcurrencyConflictError(
            f"{label} still conflicting after {attempts + 1} attempts"
        ) from last_error
