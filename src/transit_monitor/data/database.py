"""Database connection helper for the SQLite position store."""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path

import aiosqlite


@asynccontextmanager
async def get_db(db_path: Path) -> AsyncIterator[aiosqlite.Connection]:
    """Async context manager for DB connections with Row factory.

    Args:
        db_path: Path to an existing position database.

    Yields:
        aiosqlite.Connection configured with Row factory for dict-like access.

    Raises:
        FileNotFoundError: If the database file doesn't exist.
    """
    if not db_path.exists():
        raise FileNotFoundError(
            f"Database not found at {db_path}. Run 'transit-monitor init-db' to create it."
        )

    async with aiosqlite.connect(db_path) as db:
        db.row_factory = aiosqlite.Row
        yield db
