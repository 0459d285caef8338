"""
Module: records.py
Description: Redis-backed store for schedule records.

Reads and writes the persistent half of a schedule: the JSON record
under its record key, which never carries an expiry. Write failures
always propagate so callers can decide between a 500 response and
aborting a firing.

Key Components:
- RecordStore: get/put/delete/enumerate schedule records
- RecordDecodeError: Raised when a stored value is not a valid record

Dependencies: redis (redis.asyncio), pydantic, typing
"""

from typing import List, Optional, Tuple

import redis.asyncio as aioredis
from pydantic import ValidationError
from redis.exceptions import RedisError

from redis_scheduler.models.schedule import Schedule
from redis_scheduler.storage.keys import KeyCodec, ScheduleKey
from redis_scheduler.utils.logger import get_logger

logger = get_logger(__name__)


class RecordDecodeError(ValueError):
    """A stored record could not be parsed."""

    def __init__(self, record_key: str, reason: str):
        super().__init__(f"Invalid schedule record at {record_key}: {reason}")
        self.record_key = record_key


class RecordStore:
    """
    Schedule record operations over an injected Redis client.

    Attributes:
        client: Shared redis.asyncio client (decode_responses=True)
        codec: Key codec used to derive record key names

    Example:
        >>> store = RecordStore(client, KeyCodec())
        >>> await store.put_record(key, Schedule(webhook=url, ttl=30, data={}))
        >>> schedule = await store.get_record(key)
    """

    def __init__(self, client: aioredis.Redis, codec: KeyCodec):
        self.client = client
        self.codec = codec

    async def put_record(
        self,
        key: ScheduleKey,
        schedule: Schedule,
        existing_only: bool = False
    ) -> bool:
        """
        Store a schedule record without expiry.

        Args:
            key: Schedule identity
            schedule: Record to store
            existing_only: Only overwrite a record that still exists (SET XX)

        Returns:
            True if written, False if existing_only was set and the record was gone

        Raises:
            RedisError: If the write fails
        """
        record_key = self.codec.record_key(key)

        try:
            written = await self.client.set(record_key, schedule.to_json(), xx=existing_only)
        except RedisError as e:
            logger.error(
                "Failed to store schedule record",
                record_key=record_key,
                error=str(e)
            )
            raise

        if not written:
            logger.info(
                "Schedule record no longer exists, write skipped",
                record_key=record_key
            )
            return False

        logger.debug(
            "Schedule record stored",
            record_key=record_key,
            retry=schedule.retry,
            ttl=schedule.ttl
        )
        return True

    async def get_record(self, key: ScheduleKey) -> Optional[Schedule]:
        """
        Retrieve a schedule record.

        Returns:
            Schedule if found, None otherwise

        Raises:
            RedisError: If the read fails
            RecordDecodeError: If the stored value is not a valid record
        """
        record_key = self.codec.record_key(key)

        try:
            raw = await self.client.get(record_key)
        except RedisError as e:
            logger.error(
                "Failed to retrieve schedule record",
                record_key=record_key,
                error=str(e)
            )
            raise

        if raw is None:
            return None

        try:
            return Schedule.from_json(raw)
        except ValidationError as e:
            logger.error(
                "Failed to decode schedule record",
                record_key=record_key,
                error_count=e.error_count()
            )
            raise RecordDecodeError(record_key, str(e)) from e

    async def delete_record(self, key: ScheduleKey) -> bool:
        """
        Delete a schedule record.

        Returns:
            True if a record was deleted
        """
        record_key = self.codec.record_key(key)
        deleted = await self.client.delete(record_key)

        logger.debug("Schedule record deleted", record_key=record_key, deleted=bool(deleted))
        return bool(deleted)

    async def list_keys(self, schedule_type: Optional[str] = None) -> List[ScheduleKey]:
        """Enumerate identities of stored records, optionally of one type."""
        keys = []
        async for name in self.client.scan_iter(match=self.codec.record_pattern(schedule_type)):
            key = self.codec.decode_record_key(name)
            if key is not None:
                keys.append(key)
        return keys

    async def list_records(
        self,
        schedule_type: Optional[str] = None
    ) -> List[Tuple[ScheduleKey, Schedule]]:
        """
        Enumerate records by type.

        Records deleted between the scan and the read, and records that fail
        to decode, are skipped.

        Returns:
            List of (identity, record) pairs; empty when none match
        """
        records = []
        for key in await self.list_keys(schedule_type):
            try:
                schedule = await self.get_record(key)
            except RecordDecodeError:
                continue

            if schedule is not None:
                records.append((key, schedule))

        logger.debug(
            "Schedule records listed",
            schedule_type=schedule_type or "*",
            count=len(records)
        )
        return records

    async def count_records(self) -> int:
        return len(await self.list_keys())

    async def database_size(self) -> int:
        """Total number of keys in the Redis database, schedules or not."""
        return await self.client.dbsize()
