"""
Module: connection.py
Description: Redis client construction for the scheduler.

Creates the single asyncio Redis client shared by the record store,
the timer store and the dispatch loop, verifies connectivity and
enables expired-key notifications, without which no timer would ever
fire.

Dependencies: redis (redis.asyncio)
"""

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from redis_scheduler.utils.logger import get_logger

logger = get_logger(__name__)

# E: publish on the keyevent channel, x: expired events only
KEYSPACE_EVENTS = "Ex"


async def create_redis_client(
    redis_url: str,
    configure_keyspace_events: bool = True
) -> aioredis.Redis:
    """
    Connect to Redis and prepare it for expiry notifications.

    Args:
        redis_url: Redis connection URL
        configure_keyspace_events: Whether to CONFIG SET notify-keyspace-events

    Returns:
        Connected redis.asyncio client decoding responses to str

    Raises:
        ValueError: If the URL cannot be parsed
        RedisError: If Redis is unreachable or refuses the configuration
    """
    client = aioredis.from_url(redis_url, encoding="utf-8", decode_responses=True)

    try:
        await client.ping()
        logger.info("Connected to Redis", db=database_index(client))

        if configure_keyspace_events:
            await client.config_set("notify-keyspace-events", KEYSPACE_EVENTS)
            logger.info("Keyspace notifications enabled", events=KEYSPACE_EVENTS)

    except RedisError as e:
        logger.error(
            "Failed to prepare Redis connection",
            error=str(e),
            error_type=type(e).__name__
        )
        await client.aclose()
        raise

    return client


def database_index(client: aioredis.Redis) -> int:
    """Database number the client is bound to (notifications are per-db)."""
    return int(client.connection_pool.connection_kwargs.get("db", 0) or 0)
