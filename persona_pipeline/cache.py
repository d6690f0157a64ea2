"""
cache.py — Redis layer for persona-pipeline.

Namespace conventions:
  classify:{session_id}   → last classification attempt marker   TTL 30s

Design:
  - Uses redis.asyncio (async client, part of redis-py 5.x)
  - Pool created once in lifespan, stored on app.state.redis
  - Helper functions take the client as a param — no module-level global state
  - The cooldown is a single SET NX EX, so concurrent requests for one visitor
    race inside Redis and exactly one wins the slot
  - Logs only opaque session ids
"""
import logging
from datetime import datetime, timezone

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from persona_pipeline.config import settings

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# TTL constants (seconds)
# ---------------------------------------------------------------------------
CLASSIFY_COOLDOWN_TTL: int = 30

# ---------------------------------------------------------------------------
# Key prefix constants
# ---------------------------------------------------------------------------
CLASSIFY_PREFIX = "classify"


def make_classify_key(session_id: str) -> str:
    """Build Redis key for the classification cooldown: classify:{session_id}"""
    return f"{CLASSIFY_PREFIX}:{session_id}"


# ---------------------------------------------------------------------------
# Pool factory — called once in lifespan
# ---------------------------------------------------------------------------

async def create_redis_pool() -> aioredis.Redis:
    """
    Create and return an async Redis connection pool.
    Called once in FastAPI lifespan startup — stored on app.state.redis.
    Verifies connectivity with PING before returning.
    """
    client = aioredis.from_url(
        settings.redis_url,
        encoding="utf-8",
        decode_responses=True,
        max_connections=20,
    )
    await client.ping()
    logger.info("Redis connection pool established at %s", settings.redis_url)
    return client


# ---------------------------------------------------------------------------
# Classification cooldown
# ---------------------------------------------------------------------------

async def acquire_classify_slot(
    client: aioredis.Redis,
    session_id: str,
    ttl: int = CLASSIFY_COOLDOWN_TTL,
) -> bool:
    """
    Claim the right to run a classifier call for this session.

    Returns True when no attempt was made within the last `ttl` seconds (the
    marker is set atomically), False while the cooldown is active.
    If Redis is unreachable the slot is granted: the cooldown limits cost,
    it never blocks classification.
    """
    key = make_classify_key(session_id)
    try:
        acquired = await client.set(
            key,
            datetime.now(timezone.utc).isoformat(),
            nx=True,
            ex=ttl,
        )
    except (RedisError, OSError) as exc:
        logger.warning("Cooldown check skipped session_id=%s: %s", session_id, exc)
        return True

    if not acquired:
        logger.info("Classification cooldown active session_id=%s", session_id)
    return bool(acquired)
