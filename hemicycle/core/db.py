import asyncio
import re
from typing import Any
from urllib.parse import urlparse

import asyncpg
import structlog

from hemicycle.core.constants import DatabasePool

logger = structlog.get_logger(__name__)

_pool: asyncpg.Pool | None = None
_pool_lock = asyncio.Lock()


def _parse_db_url(url: str) -> dict[str, Any]:
    """Parse DATABASE_URL into asyncpg connection parameters.

    Strips SQLAlchemy driver prefixes (postgresql+asyncpg://) so the same URL
    serves both alembic and asyncpg.
    """
    normalised = re.sub(r"^postgresql\+\w+://", "postgresql://", url)
    parsed = urlparse(normalised)
    return {
        "host": parsed.hostname or "localhost",
        "port": parsed.port or 5432,
        "user": parsed.username or "hemicycle",
        "password": parsed.password or "hemicycle",
        "database": parsed.path.lstrip("/") or "hemicycle",
    }


async def get_db_pool(database_url: str) -> asyncpg.Pool:
    """Return the shared asyncpg connection pool, creating it on first call.

    Double-checked locking keeps two concurrent first callers from each
    creating a pool.
    """
    global _pool

    if _pool is None:
        async with _pool_lock:
            if _pool is None:
                db_params = _parse_db_url(database_url)
                logger.info(
                    "db.pool.create",
                    host=db_params["host"],
                    port=db_params["port"],
                    min_size=DatabasePool.MIN_SIZE,
                    max_size=DatabasePool.MAX_SIZE,
                )
                _pool = await asyncpg.create_pool(
                    **db_params,
                    min_size=DatabasePool.MIN_SIZE,
                    max_size=DatabasePool.MAX_SIZE,
                )
                logger.info("db.pool.created", pool_size=_pool.get_size())
    return _pool  # type: ignore[return-value]


async def close_db_pool() -> None:
    """Close the asyncpg pool on worker shutdown."""
    global _pool
    if _pool:
        logger.info("db.pool.closing", pool_size=_pool.get_size())
        await _pool.close()
        _pool = None
