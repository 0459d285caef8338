"""
Module: scheduler.py
Description: Schedule operations exposed to the API layer.

Creates, reads, patches and deletes schedules by keeping each record
and its timer in step:

- create writes the record before arming the timer, so a fired timer
  always finds its record
- delete cancels the timer before removing the record, so a timer
  never outlives its record
- patch rewrites the record and re-arms the timer to the record's ttl

There is no locking against a firing of the same schedule running at
the same time; Redis per-key atomicity is the only protection.

Key Components:
- ScheduleService: create/get/patch/delete/list plus purge, timer repair and stats
"""

import time
from typing import Any, Dict, List, Optional, Tuple

import psutil
from redis.exceptions import RedisError

from redis_scheduler.models.schedule import Schedule
from redis_scheduler.storage.keys import (
    DEFAULT_SCHEDULE_TYPE,
    KeyCodec,
    ScheduleKey,
    is_valid_schedule_type,
    new_schedule_id,
)
from redis_scheduler.storage.records import RecordStore
from redis_scheduler.storage.timers import TimerStore
from redis_scheduler.utils.logger import get_logger

logger = get_logger(__name__)

# Delay used when re-arming a timer lost while the service was down
REPAIR_DELAY_SECONDS = 1

BYTE_UNITS = ("B", "KB", "MB", "GB", "TB")


def format_bytes(size: int) -> str:
    """Render a byte count with a binary unit suffix, e.g. 2048 -> "2.00KB"."""
    if size < 1024:
        return f"{size}B"

    value = float(size)
    for unit in BYTE_UNITS[1:]:
        value /= 1024
        if value < 1024 or unit == BYTE_UNITS[-1]:
            return f"{value:.2f}{unit}"


class ScheduleService:
    """
    Core schedule operations over the record and timer stores.

    Example:
        >>> service = ScheduleService(records, timers, codec)
        >>> key = await service.create("email", "https://example.com/hook", 30, {"id": 1})
        >>> schedule = await service.get(key)
        >>> schedule.retry
        0
    """

    def __init__(self, records: RecordStore, timers: TimerStore, codec: KeyCodec):
        self.records = records
        self.timers = timers
        self.codec = codec
        self.started_at = time.monotonic()
        self.process = psutil.Process()
        # First reading only sets the baseline for the next call
        self.process.cpu_percent(interval=None)

    async def create(
        self,
        schedule_type: Optional[str],
        webhook: str,
        ttl: int,
        data: Any
    ) -> ScheduleKey:
        """
        Schedule a webhook delivery `ttl` seconds from now.

        Args:
            schedule_type: Namespace for the schedule (None or "" = default)
            webhook: Destination URL
            ttl: Delay in seconds, >= 1
            data: Payload to deliver

        Returns:
            Identity of the new schedule

        Raises:
            ValueError: If the type or record fields are invalid
            RedisError: If either write fails; no record is left behind
        """
        schedule_type = schedule_type or DEFAULT_SCHEDULE_TYPE
        if not is_valid_schedule_type(schedule_type):
            raise ValueError(
                "type must be 1-100 letters, numbers, dots, underscores, or hyphens"
            )

        schedule = Schedule(webhook=webhook, ttl=ttl, retry=0, data=data)
        key = ScheduleKey(schedule_type, new_schedule_id())

        await self.records.put_record(key, schedule)
        try:
            await self.timers.arm_timer(key, schedule.ttl)
        except RedisError:
            await self.records.delete_record(key)
            raise

        logger.info(
            "Schedule created",
            schedule_key=self.codec.timer_key(key),
            ttl=schedule.ttl
        )
        return key

    async def get(self, key: ScheduleKey) -> Optional[Schedule]:
        """Return the schedule record, or None if it does not exist."""
        return await self.records.get_record(key)

    async def patch(
        self,
        key: ScheduleKey,
        webhook: Optional[str] = None,
        ttl: Optional[int] = None,
        data: Optional[Any] = None
    ) -> Optional[Schedule]:
        """
        Update selected fields and re-arm the timer.

        Fields left as None keep their stored value. The timer is always
        re-armed to the record's (possibly new) ttl, even when nothing
        changed. The retry counter is never touched.

        Returns:
            Updated schedule, or None if it does not exist
        """
        schedule = await self.records.get_record(key)
        if schedule is None:
            return None

        if webhook:
            schedule.webhook = webhook
        if ttl is not None:
            schedule.ttl = ttl
        if data is not None:
            schedule.data = data

        await self.records.put_record(key, schedule)
        await self.timers.arm_timer(key, schedule.ttl)

        logger.info(
            "Schedule updated",
            schedule_key=self.codec.timer_key(key),
            ttl=schedule.ttl,
            retry=schedule.retry
        )
        return schedule

    async def delete(self, key: ScheduleKey) -> bool:
        """
        Delete a schedule before it fires.

        Returns:
            True if the schedule existed
        """
        if await self.records.get_record(key) is None:
            return False

        await self.timers.cancel_timer(key)
        await self.records.delete_record(key)

        logger.info("Schedule deleted", schedule_key=self.codec.timer_key(key))
        return True

    async def list(self, schedule_type: Optional[str] = None) -> List[Tuple[ScheduleKey, Schedule]]:
        """
        List schedules of one type, or of all types when None.

        Raises:
            ValueError: If schedule_type is not a valid type
        """
        if schedule_type and not is_valid_schedule_type(schedule_type):
            raise ValueError(
                "type must be 1-100 letters, numbers, dots, underscores, or hyphens"
            )
        return await self.records.list_records(schedule_type or None)

    async def remaining_seconds(self, key: ScheduleKey) -> Optional[int]:
        """Seconds until the schedule's timer fires, None if no timer is armed."""
        return await self.timers.remaining_seconds(key)

    async def purge(self) -> int:
        """
        Delete every schedule in the namespace.

        Keys outside the namespace are left alone.

        Returns:
            Number of schedules deleted
        """
        deleted = 0
        for key in await self.records.list_keys():
            await self.timers.cancel_timer(key)
            if await self.records.delete_record(key):
                deleted += 1

        logger.warning("All schedules purged", deleted=deleted)
        return deleted

    async def repair_timers(self) -> int:
        """
        Arm a short timer for every record that has none.

        A timer that expired while no subscriber was connected is never
        notified again, leaving its record stranded. Re-arming makes the
        record fire shortly after startup.

        Returns:
            Number of timers re-armed
        """
        repaired = 0
        for key in await self.records.list_keys():
            if await self.timers.timer_exists(key):
                continue

            await self.timers.arm_timer(key, REPAIR_DELAY_SECONDS)
            repaired += 1
            logger.info(
                "Re-armed missing timer",
                schedule_key=self.codec.timer_key(key),
                seconds=REPAIR_DELAY_SECONDS
            )

        if repaired:
            logger.warning("Stranded schedules recovered", count=repaired)
        return repaired

    async def stats(self) -> Dict[str, Any]:
        """Counts for the stats endpoint."""
        return {
            "total_redis_keys": await self.records.database_size(),
            "schedules": await self.records.count_records(),
            "running_schedules": await self.timers.count_timers(),
            "uptime_seconds": round(time.monotonic() - self.started_at, 3),
            **self.process_usage(),
        }

    def process_usage(self) -> Dict[str, Any]:
        """CPU percent since the previous call and resident memory of this process."""
        rss = self.process.memory_info().rss
        return {
            "cpu_usage": round(self.process.cpu_percent(interval=None), 2),
            "ram_usage": format_bytes(rss),
            "ram_usage_bytes": rss,
        }
