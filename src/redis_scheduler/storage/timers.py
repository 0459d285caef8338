"""
Module: timers.py
Description: Redis-backed timers built on key expiry.

A timer is an empty key whose TTL is the delay. When Redis expires it,
an event is published on ``__keyevent@<db>__:expired`` carrying the key
name. Redis only guarantees that the event arrives eventually and only
to subscribers connected at that moment: a notification missed while
no subscriber is listening is lost.

Key Components:
- TimerStore: arm/cancel/inspect timers and subscribe to expirations

Dependencies: redis (redis.asyncio), typing
"""

from typing import AsyncIterator, Optional

import redis.asyncio as aioredis

from redis_scheduler.storage.connection import database_index
from redis_scheduler.storage.keys import KeyCodec, ScheduleKey
from redis_scheduler.utils.logger import get_logger

logger = get_logger(__name__)


def expired_channel(db: int) -> str:
    return f"__keyevent@{db}__:expired"


class TimerStore:
    """
    Timer operations over an injected Redis client.

    Attributes:
        client: Shared redis.asyncio client (decode_responses=True)
        codec: Key codec used to derive timer key names
    """

    def __init__(self, client: aioredis.Redis, codec: KeyCodec):
        self.client = client
        self.codec = codec

    async def arm_timer(self, key: ScheduleKey, seconds: int) -> None:
        """
        Create or overwrite the timer so it fires in `seconds`.

        Raises:
            ValueError: If seconds is not a positive integer
            RedisError: If the write fails
        """
        if not isinstance(seconds, int) or seconds < 1:
            raise ValueError("seconds must be a positive integer")

        timer_key = self.codec.timer_key(key)
        await self.client.set(timer_key, "", ex=seconds)

        logger.debug("Timer armed", timer_key=timer_key, seconds=seconds)

    async def cancel_timer(self, key: ScheduleKey) -> bool:
        """
        Delete the timer so it never fires.

        Returns:
            True if a live timer was removed
        """
        timer_key = self.codec.timer_key(key)
        deleted = await self.client.delete(timer_key)

        logger.debug("Timer cancelled", timer_key=timer_key, deleted=bool(deleted))
        return bool(deleted)

    async def timer_exists(self, key: ScheduleKey) -> bool:
        return bool(await self.client.exists(self.codec.timer_key(key)))

    async def remaining_seconds(self, key: ScheduleKey) -> Optional[int]:
        """
        Seconds until the timer fires.

        Returns:
            Remaining TTL, or None when there is no live timer
        """
        ttl = await self.client.ttl(self.codec.timer_key(key))
        # -2: key missing, -1: key without expiry
        if ttl is None or ttl < 0:
            return None
        return ttl

    async def count_timers(self) -> int:
        count = 0
        async for _ in self.client.scan_iter(match=self.codec.timer_pattern()):
            count += 1
        return count

    async def subscribe_expirations(self) -> AsyncIterator[str]:
        """
        Yield the name of every key that expires in the client's database.

        Blocks between notifications. Foreign keys are not filtered here;
        callers decode each name with the key codec. Connection errors
        propagate to the caller, which owns the reconnect policy.

        Yields:
            Expired key names
        """
        channel = expired_channel(database_index(self.client))
        pubsub = self.client.pubsub()

        try:
            await pubsub.psubscribe(channel)
            logger.info("Subscribed to expiry notifications", channel=channel)

            async for message in pubsub.listen():
                if message.get("type") not in ("message", "pmessage"):
                    continue

                name = message.get("data")
                if isinstance(name, bytes):
                    name = name.decode("utf-8", errors="replace")
                if isinstance(name, str):
                    yield name

        finally:
            await pubsub.aclose()
