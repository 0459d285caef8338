"""
Module: delivery/retry.py
Description: Retry state machine run for every fired timer.

A schedule is Pending while its timer is armed. When the timer fires
the record is loaded and one of three things happens:

- Exhausted: the retry counter reached the configured maximum; the
  record is deleted without another attempt.
- Delivered: the webhook answered 200; the record is deleted.
- RetryScheduled: delivery failed; the counter is incremented, the
  record rewritten and the timer re-armed with the global retry
  interval, returning the schedule to Pending.

A record is deleted only on Delivered or Exhausted, and a Pending
record always has exactly one live timer.
"""

from enum import Enum

from redis.exceptions import RedisError

from redis_scheduler.config.settings import UNLIMITED_RETRIES
from redis_scheduler.delivery.push import WebhookSender
from redis_scheduler.storage.keys import KeyCodec, ScheduleKey
from redis_scheduler.storage.records import RecordDecodeError, RecordStore
from redis_scheduler.storage.timers import TimerStore
from redis_scheduler.utils.logger import get_logger

logger = get_logger(__name__)


class FiringOutcome(str, Enum):
    """How a single firing ended."""

    MISSING = "missing"
    EXHAUSTED = "exhausted"
    DELIVERED = "delivered"
    RETRY_SCHEDULED = "retry_scheduled"
    ABORTED = "aborted"


class RetryStateMachine:
    """
    Drives one schedule from a fired timer to its next state.

    Firings for different schedules share no mutable state, so any
    number of fire() calls may run concurrently.
    """

    def __init__(
        self,
        records: RecordStore,
        timers: TimerStore,
        sender: WebhookSender,
        codec: KeyCodec,
        max_retries: int,
        retry_interval: int
    ):
        """
        Args:
            records: Record store
            timers: Timer store
            sender: Webhook sender
            codec: Key codec (for log context)
            max_retries: Failed attempts before giving up, or -1 for unlimited
            retry_interval: Seconds before a failed delivery is retried
        """
        if max_retries < UNLIMITED_RETRIES:
            raise ValueError("max_retries must be >= 0, or -1 for unlimited")
        if retry_interval < 1:
            raise ValueError("retry_interval must be a positive integer")

        self.records = records
        self.timers = timers
        self.sender = sender
        self.codec = codec
        self.max_retries = max_retries
        self.retry_interval = retry_interval

    async def fire(self, key: ScheduleKey) -> FiringOutcome:
        """
        Handle one fired timer.

        Store and decode errors abort the firing and are logged; they are
        never raised to the dispatch loop.

        Args:
            key: Identity decoded from the fired timer key

        Returns:
            FiringOutcome describing the transition taken
        """
        timer_key = self.codec.timer_key(key)
        log = logger.bind(schedule_key=timer_key)

        try:
            return await self._transition(key, log)

        except RecordDecodeError as e:
            log.error("Firing aborted, stored record is invalid", error=str(e))
            return FiringOutcome.ABORTED

        except RedisError as e:
            log.error(
                "Firing aborted by store error",
                error=str(e),
                error_type=type(e).__name__
            )
            return FiringOutcome.ABORTED

    async def _transition(self, key: ScheduleKey, log) -> FiringOutcome:
        schedule = await self.records.get_record(key)
        if schedule is None:
            # Deleted through the API, or a duplicate notification
            log.info("Schedule no longer exists, skipping delivery", reason="record_missing")
            return FiringOutcome.MISSING

        if schedule.retries_exhausted(self.max_retries):
            await self._destroy(key)
            log.warning(
                "Max retries reached, schedule dropped",
                retry=schedule.retry,
                max_retries=self.max_retries
            )
            return FiringOutcome.EXHAUSTED

        delivered = await self.sender.send(
            schedule.webhook,
            schedule.data,
            schedule_key=self.codec.timer_key(key)
        )

        if delivered:
            await self._destroy(key)
            log.info("Schedule delivered", attempts=schedule.retry + 1)
            return FiringOutcome.DELIVERED

        schedule.increment_retry()

        if not await self.records.put_record(key, schedule, existing_only=True):
            log.info("Schedule deleted during delivery, retry dropped", reason="record_missing")
            return FiringOutcome.MISSING

        await self.timers.arm_timer(key, self.retry_interval)

        log.warning(
            "Webhook delivery failed, retry scheduled",
            retry=schedule.retry,
            max_retries=self.max_retries,
            retry_in_seconds=self.retry_interval
        )
        return FiringOutcome.RETRY_SCHEDULED

    async def _destroy(self, key: ScheduleKey) -> None:
        # Timer first so it never outlives its record
        await self.timers.cancel_timer(key)
        await self.records.delete_record(key)
