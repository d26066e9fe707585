# services/db_service.py
from __future__ import annotations

import os
from time import monotonic
from typing import Any, Optional
from urllib.parse import urlparse

import asyncpg

from app.config import require_database_url
from app.core.logging import get_logger

logger = get_logger().bind(module="db_service")

APPLICATION_NAME = "affiliate-ingest"
STATEMENT_TIMEOUT_MS = int(os.getenv("STATEMENT_TIMEOUT_MS", "30000"))
IDLE_IN_TX_TIMEOUT_MS = int(os.getenv("IDLE_IN_TX_TIMEOUT_MS", "60000"))
LOCK_TIMEOUT_MS = int(os.getenv("LOCK_TIMEOUT_MS", "5000"))
DB_POOL_MIN_SIZE = int(os.getenv("DB_POOL_MIN_SIZE", "1"))
DB_POOL_MAX_SIZE = int(os.getenv("DB_POOL_MAX_SIZE", "4"))
SLOW_QUERY_THRESHOLD_MS = 1_000


def normalize_database_url(raw_dsn: str) -> str:
    """
    Keep user, password, host, port and database exactly as given;
    only rewrite the scheme postgresql+asyncpg:// -> postgresql://.
    """
    raw_dsn = raw_dsn.strip()
    if raw_dsn.startswith("postgresql+asyncpg://"):
        raw_dsn = "postgresql://" + raw_dsn[len("postgresql+asyncpg://"):]
    return raw_dsn


async def create_pool(dsn: Optional[str] = None) -> asyncpg.Pool:
    final_dsn = normalize_database_url(dsn or require_database_url())
    parsed = urlparse(final_dsn)
    logger.info(
        "db_pool_initializing",
        dsn_host=parsed.hostname,
        dsn_port=parsed.port,
        application_name=APPLICATION_NAME,
    )
    return await asyncpg.create_pool(
        dsn=final_dsn,
        min_size=DB_POOL_MIN_SIZE,
        max_size=DB_POOL_MAX_SIZE,
        command_timeout=60,
        timeout=60,
        # Supabase pooler (pgbouncer, transaction mode) does not support prepared statement caching.
        statement_cache_size=0,
        max_inactive_connection_lifetime=30,
        server_settings={
            "application_name": APPLICATION_NAME,
            "statement_timeout": str(STATEMENT_TIMEOUT_MS),
            "idle_in_transaction_session_timeout": str(IDLE_IN_TX_TIMEOUT_MS),
            "lock_timeout": str(LOCK_TIMEOUT_MS),
        },
    )


async def run_query(pool: Any, method: str, query: str, *args: Any) -> Any:
    """
    Acquire a connection and call fetch/fetchrow/fetchval/execute on it.
    Queries slower than SLOW_QUERY_THRESHOLD_MS are logged.
    """
    start_ms = monotonic() * 1000
    try:
        async with pool.acquire() as conn:
            return await getattr(conn, method)(query, *args)
    finally:
        duration_ms = (monotonic() * 1000) - start_ms
        if duration_ms >= SLOW_QUERY_THRESHOLD_MS:
            logger.warning(
                "db_slow_query",
                duration_ms=round(duration_ms, 2),
                method=method,
                arg_count=len(args),
                query_snippet=query.strip().split("\n")[0][:200],
            )
