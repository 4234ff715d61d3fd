"""
asyncpg pool shared by the Postgres-backed TTL store and account repo.

Only used when TTL_STORE_BACKEND or ACCOUNT_STORE_BACKEND is "postgres".
Repos go through system_conn(); nothing else touches the pool.
"""

from __future__ import annotations

import json
from contextlib import asynccontextmanager

import asyncpg

from backend import config

pool: asyncpg.Pool | None = None


async def init_pool(dsn: str | None = None) -> None:
    global pool
    pool = await asyncpg.create_pool(
        dsn=dsn or config.settings.DATABASE_URL,
        min_size=config.settings.DB_POOL_MIN_SIZE,
        max_size=config.settings.DB_POOL_MAX_SIZE,
        command_timeout=config.settings.DB_COMMAND_TIMEOUT_SECONDS,
        server_settings={"application_name": "linkbridge", "timezone": "UTC"},
        init=_register_json_codecs,
    )


async def close_pool() -> None:
    global pool
    if pool is not None:
        await pool.close()
        pool = None


async def _register_json_codecs(conn: asyncpg.Connection) -> None:
    # ttl_entries.value, secondary_tokens and device_fingerprint come back as dicts
    for type_name in ("jsonb", "json"):
        await conn.set_type_codec(type_name, encoder=json.dumps, decoder=json.loads, schema="pg_catalog")


@asynccontextmanager
async def system_conn():
    """
    Pooled connection inside a transaction.

    There is no row-level security here: account queries scope themselves
    with an explicit owner_id filter.

    Usage:
        async with system_conn() as conn:
            row = await conn.fetchrow("SELECT * FROM ttl_entries WHERE key = $1", key)
    """
    if pool is None:
        raise RuntimeError("Database pool not initialized. Call init_pool() first.")

    async with pool.acquire() as conn:
        async with conn.transaction():
            yield conn


async def ping() -> bool:
    """True if the pool can run a trivial query."""
    if pool is None:
        return False
    try:
        async with pool.acquire() as conn:
            return await conn.fetchval("SELECT 1") == 1
    except (OSError, asyncpg.PostgresError):
        return False
