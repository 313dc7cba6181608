"""
Shared fixtures: a mocked asyncpg pool and connection.
"""
from unittest.mock import AsyncMock, MagicMock

import pytest


@pytest.fixture
def mock_conn():
    """Connection whose transaction() and copy_to_table() behave like asyncpg's."""
    conn = MagicMock()
    conn.execute = AsyncMock(return_value="SELECT 1")
    conn.copied = []

    async def fake_copy(table, *, source, schema_name=None, format=None):
        async for chunk in source:
            conn.copied.append(chunk)

    conn.copy_to_table = AsyncMock(side_effect=fake_copy)
    return conn


@pytest.fixture
def mock_pool(mock_conn):
    pool = MagicMock()
    pool.acquire.return_value.__aenter__.return_value = mock_conn
    pool.close = AsyncMock()
    return pool
