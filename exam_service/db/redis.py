"""Redis connection management.

Mirrors engine.py: when REDIS_URL is configured a shared connection pool
is created; when it's None (local dev, tests) the cache and the task
queue fall back to in-memory implementations.

What lives in Redis here:
  - eligibility:{user}:{course}  cached certificate eligibility (TTL)
  - tasks:audit                   audit events waiting for the worker

Both are safe to lose on a Redis restart: eligibility is recomputed from
Postgres on the next miss, and audit writes are fire-and-forget by
contract.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

import redis.asyncio as aioredis

from exam_service.core.config import SETTINGS

logger = logging.getLogger(__name__)

if SETTINGS.redis_url:
    redis_pool: aioredis.Redis | None = aioredis.from_url(  # type: ignore[type-arg]
        SETTINGS.redis_url,
        decode_responses=True,  # return str instead of bytes
        max_connections=20,
    )
else:
    redis_pool = None


@asynccontextmanager
async def lifespan_redis():
    """Startup/shutdown hook for Redis — mirrors lifespan_db().

    A failed ping at startup is logged, not raised: the API can still
    grade exams, it just loses the shared cache until Redis is back.
    """
    if redis_pool is None:
        logger.info("No REDIS_URL configured — cache and queue are in-memory")
        yield
        return

    try:
        await redis_pool.ping()  # type: ignore[misc]  # redis stubs mistype async ping as bool
        logger.info("Redis connected: %s", SETTINGS.redis_url)
    except Exception:
        logger.exception("Redis connection failed on startup")
        yield
        return

    yield

    await redis_pool.aclose()
    logger.info("Redis connection pool closed")
