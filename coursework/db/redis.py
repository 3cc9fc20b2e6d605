"""Redis connection management.

Redis carries the notification task queue between the API process
(producer) and the worker (consumer).  Same conditional pattern as
engine.py: with REDIS_URL set we build a pooled async client at import
time; without it `redis_pool` is None and the queue falls back to an
in-process list, which is enough for tests and single-process dev.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

import redis.asyncio as aioredis

from coursework.core.config import SETTINGS

logger = logging.getLogger(__name__)

if SETTINGS.redis_url:
    redis_pool: aioredis.Redis | None = aioredis.from_url(  # type: ignore[type-arg]
        SETTINGS.redis_url,
        decode_responses=True,
        max_connections=20,
    )
else:
    redis_pool = None


@asynccontextmanager
async def lifespan_redis():
    """Verify Redis on startup and close the pool on shutdown.

    An unreachable Redis does not stop the API from starting: begin and
    submit never depend on it, only notification dispatch does, and a
    lost notification is acceptable.
    """
    if redis_pool is None:
        logger.info("No REDIS_URL configured; notifications use the in-memory queue")
        yield
        return

    try:
        await redis_pool.ping()  # type: ignore[misc]
        logger.info("Redis connected: %s", SETTINGS.redis_url)
    except Exception:
        logger.exception("Redis connection failed on startup")
        yield
        return

    yield

    await redis_pool.aclose()
    logger.info("Redis connection pool closed")
