"""Unit tests for AppDatabase."""

from __future__ import annotations

from contextlib import asynccontextmanager
from unittest.mock import AsyncMock, MagicMock, patch

import asyncpg
import pytest
from accessgate.adapters.db.app_db import AppDatabase, affected_rows
from accessgate.core.exceptions import DuplicateIdentity, StoreUnavailable


class TestAppDatabase:
    """Tests for AppDatabase."""

    @pytest.fixture
    def db(self) -> AppDatabase:
        """Return an AppDatabase without a pool."""
        return AppDatabase(dsn="postgresql://user:pw@localhost:5432/test")

    @pytest.fixture
    def mock_conn(self) -> AsyncMock:
        """Return a mock connection."""
        return AsyncMock()

    @pytest.fixture
    def db_with_pool(self, mock_conn: AsyncMock) -> AppDatabase:
        """Return an AppDatabase with a mocked pool."""
        db = AppDatabase(dsn="postgresql://localhost:5432/test")

        mock_pool = MagicMock()

        @asynccontextmanager
        async def mock_acquire():
            yield mock_conn

        mock_pool.acquire = mock_acquire
        mock_pool.close = AsyncMock()
        db.pool = mock_pool
        return db

    def test_init(self, db: AppDatabase) -> None:
        """Test adapter initialization."""
        assert db.dsn == "postgresql://user:pw@localhost:5432/test"
        assert db.min_size == 2
        assert db.max_size == 10
        assert db.pool is None

    async def test_connect_creates_pool(self, db: AppDatabase) -> None:
        """Test that connect creates a connection pool."""
        mock_pool = MagicMock()

        async def mock_create_pool(*args, **kwargs):
            return mock_pool

        with patch(
            "accessgate.adapters.db.app_db.asyncpg.create_pool", side_effect=mock_create_pool
        ):
            await db.connect()

        assert db.pool is mock_pool

    async def test_connect_failure(self, db: AppDatabase) -> None:
        """Connection errors surface as StoreUnavailable."""
        with patch(
            "accessgate.adapters.db.app_db.asyncpg.create_pool",
            side_effect=OSError("connection refused"),
        ):
            with pytest.raises(StoreUnavailable):
                await db.connect()

    async def test_close_closes_pool(self, db_with_pool: AppDatabase) -> None:
        """Test that close closes the connection pool."""
        pool = db_with_pool.pool
        await db_with_pool.close()

        pool.close.assert_called_once()  # type: ignore[union-attr]
        assert db_with_pool.pool is None

    async def test_close_noop_when_no_pool(self, db: AppDatabase) -> None:
        """Test that close is a no-op when pool doesn't exist."""
        await db.close()

    async def test_acquire_without_pool(self, db: AppDatabase) -> None:
        """Queries before connect raise StoreUnavailable."""
        with pytest.raises(StoreUnavailable):
            await db.fetch_one("SELECT 1")

    async def test_fetch_one(self, db_with_pool: AppDatabase, mock_conn: AsyncMock) -> None:
        """Rows come back as dictionaries."""
        mock_conn.fetchrow.return_value = {"id": 1, "name": "alice"}

        row = await db_with_pool.fetch_one("SELECT * FROM principals WHERE id = $1", 1)

        assert row == {"id": 1, "name": "alice"}
        mock_conn.fetchrow.assert_awaited_once_with("SELECT * FROM principals WHERE id = $1", 1)

    async def test_fetch_one_none(self, db_with_pool: AppDatabase, mock_conn: AsyncMock) -> None:
        """Missing rows are None."""
        mock_conn.fetchrow.return_value = None

        assert await db_with_pool.fetch_one("SELECT 1") is None

    async def test_fetch_all(self, db_with_pool: AppDatabase, mock_conn: AsyncMock) -> None:
        """All rows are returned as dictionaries."""
        mock_conn.fetch.return_value = [{"id": 1}, {"id": 2}]

        assert await db_with_pool.fetch_all("SELECT id FROM roles") == [{"id": 1}, {"id": 2}]

    async def test_execute(self, db_with_pool: AppDatabase, mock_conn: AsyncMock) -> None:
        """Execute returns the command status."""
        mock_conn.execute.return_value = "UPDATE 3"

        assert await db_with_pool.execute("UPDATE principals SET is_active = true") == "UPDATE 3"

    async def test_unique_violation(
        self, db_with_pool: AppDatabase, mock_conn: AsyncMock
    ) -> None:
        """Unique-key violations become DuplicateIdentity."""
        mock_conn.fetchrow.side_effect = asyncpg.UniqueViolationError("duplicate key")

        with pytest.raises(DuplicateIdentity):
            await db_with_pool.fetch_one("INSERT INTO principals ...")

    async def test_driver_error(self, db_with_pool: AppDatabase, mock_conn: AsyncMock) -> None:
        """Other driver errors become StoreUnavailable."""
        mock_conn.execute.side_effect = asyncpg.InterfaceError("connection closed")

        with pytest.raises(StoreUnavailable):
            await db_with_pool.execute("DELETE FROM organizations")


class TestAffectedRows:
    """Tests for command status parsing."""

    @pytest.mark.parametrize(
        ("status", "expected"),
        [("UPDATE 3", 3), ("DELETE 0", 0), ("INSERT 0 1", 1), ("", 0), ("CREATE TABLE", 0)],
    )
    def test_affected_rows(self, status: str, expected: int) -> None:
        """Row counts are parsed from the status tag."""
        assert affected_rows(status) == expected
