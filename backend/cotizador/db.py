from __future__ import annotations

import logging
from typing import Optional

import asyncpg

logger = logging.getLogger(__name__)


async def init_pool(
    database_url: str,
    *,
    min_size: int = 1,
    max_size: int = 5,
    timeout: int = 10,
) -> Optional[asyncpg.pool.Pool]:
    """Crea el pool del cotizador. Devuelve None si no hay DATABASE_URL."""
    if not database_url:
        return None
    if database_url.startswith("postgres://"):
        database_url = "postgresql://" + database_url[len("postgres://") :]
    return await asyncpg.create_pool(
        database_url,
        min_size=min_size,
        max_size=max_size,
        timeout=timeout,
    )


async def close_pool(pool: Optional[asyncpg.pool.Pool]) -> None:
    if pool is not None:
        await pool.close()


async def ping(pool: asyncpg.pool.Pool) -> bool:
    try:
        async with pool.acquire() as conn:
            return await conn.fetchval("SELECT 1") == 1
    except (asyncpg.PostgresError, asyncpg.InterfaceError, OSError) as exc:
        logger.warning("Ping a la base de datos fallo: %s", exc)
        return False
