"""Async Postgres connection pool using asyncpg."""
from __future__ import annotations

from pathlib import Path
from typing import Optional

import asyncpg

from ..errors import ConfigurationError
from ..settings import settings

SCHEMA_FILE = Path(__file__).with_name("schema.sql")

_pool: Optional[asyncpg.Pool] = None


async def get_pool() -> asyncpg.Pool:
    """Return (and lazily create) the asyncpg connection pool."""
    global _pool
    if _pool is None:
        if not settings.database_url:
            raise ConfigurationError(
                "DATABASE_URL is not set. "
                "Postgres is required."
            )
        _pool = await asyncpg.create_pool(
            dsn=settings.database_url,
            min_size=settings.db_pool_min,
            max_size=settings.db_pool_max,
        )
    return _pool


async def ensure_schema(pool: asyncpg.Pool) -> None:
    """Create the tables this service owns if they are missing."""
    ddl = SCHEMA_FILE.read_text(encoding="utf-8")
    async with pool.acquire() as conn:
        await conn.execute(ddl)


async def close_pool() -> None:
    """Shut down the connection pool (call on app shutdown)."""
    global _pool
    if _pool is not None:
        await _pool.close()
        _pool = None
