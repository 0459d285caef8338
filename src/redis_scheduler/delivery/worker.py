"""
Module: delivery/worker.py
Description: Dispatch loop consuming Redis expiry notifications.

One long-lived task owns the expiry subscription. Every notification
whose key decodes as a timer key spawns an independent task running
the retry state machine; other keys sharing the database are ignored.
Firings run concurrently with no ordering between them, so a slow
webhook never holds up other schedules.

The subscription is re-established with exponential backoff when the
Redis connection drops. Expirations that happen while disconnected are
not replayed by Redis.
"""

import asyncio
import logging
from typing import Optional, Set

from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import TimeoutError as RedisTimeoutError
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    wait_exponential,
    before_sleep_log,
)

from redis_scheduler.delivery.retry import FiringOutcome, RetryStateMachine
from redis_scheduler.storage.keys import KeyCodec, ScheduleKey
from redis_scheduler.storage.timers import TimerStore
from redis_scheduler.utils.logger import get_logger

logger = get_logger(__name__)


class ExpirationWorker:
    """
    Consumes fired timer keys and dispatches firings.

    Attributes:
        in_flight: Number of firings currently running
    """

    def __init__(
        self,
        timers: TimerStore,
        codec: KeyCodec,
        state_machine: RetryStateMachine,
        max_concurrency: Optional[int] = None,
        shutdown_grace_seconds: float = 10.0,
        reconnect_max_wait: float = 30.0
    ):
        """
        Args:
            timers: Timer store providing the expiry subscription
            codec: Key codec used to recognize timer keys
            state_machine: Retry state machine run for each firing
            max_concurrency: Optional cap on concurrent firings (None = unbounded)
            shutdown_grace_seconds: Time stop() waits for in-flight firings
            reconnect_max_wait: Upper bound of the resubscribe backoff
        """
        self.timers = timers
        self.codec = codec
        self.state_machine = state_machine
        self.shutdown_grace_seconds = shutdown_grace_seconds
        self.reconnect_max_wait = reconnect_max_wait

        self._semaphore = asyncio.Semaphore(max_concurrency) if max_concurrency else None
        self._tasks: Set[asyncio.Task] = set()
        self._loop_task: Optional[asyncio.Task] = None
        self._sleep = asyncio.sleep

    @property
    def in_flight(self) -> int:
        return len(self._tasks)

    @property
    def is_running(self) -> bool:
        return self._loop_task is not None and not self._loop_task.done()

    async def start(self) -> None:
        """Start consuming expiry notifications in the background."""
        if self.is_running:
            logger.warning("Expiration worker already running")
            return

        self._loop_task = asyncio.create_task(self.run())
        self._loop_task.add_done_callback(self._on_loop_done)
        logger.info("Expiration worker started")

    def _on_loop_done(self, task: asyncio.Task) -> None:
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error(
                "Expiration worker stopped unexpectedly",
                error=str(error),
                error_type=type(error).__name__
            )

    async def stop(self) -> None:
        """
        Stop the subscription and drain in-flight firings.

        Firings still running after the grace period are cancelled.
        """
        if self._loop_task is not None:
            if not self._loop_task.done():
                self._loop_task.cancel()
                try:
                    await self._loop_task
                except asyncio.CancelledError:
                    pass
            self._loop_task = None

        if self._tasks:
            pending = list(self._tasks)
            logger.info("Waiting for in-flight deliveries", count=len(pending))

            done, not_done = await asyncio.wait(pending, timeout=self.shutdown_grace_seconds)
            for task in not_done:
                task.cancel()
            if not_done:
                await asyncio.gather(*not_done, return_exceptions=True)
                logger.warning("In-flight deliveries cancelled at shutdown", count=len(not_done))

        logger.info("Expiration worker stopped")

    async def run(self) -> None:
        """
        Consume the expiry stream until cancelled, resubscribing on connection loss.

        Backoff grows only across consecutive failed subscriptions. Once a
        subscription delivers a notification it counts as healthy, and the
        next loss starts again from the shortest wait.
        """
        async for attempt in AsyncRetrying(
            retry=retry_if_exception_type((RedisConnectionError, RedisTimeoutError)),
            wait=wait_exponential(multiplier=1, min=1, max=self.reconnect_max_wait),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            sleep=self._sleep,
            reraise=True
        ):
            with attempt:
                async for name in self.timers.subscribe_expirations():
                    attempt.retry_state.attempt_number = 1
                    self.dispatch(name)

                logger.warning("Expiry subscription ended, resubscribing")
                raise RedisConnectionError("expiry subscription closed by server")

    def dispatch(self, name: str) -> Optional[asyncio.Task]:
        """
        Spawn a firing for one expired key.

        Args:
            name: Expired key name from the notification

        Returns:
            The spawned task, or None if the key is not a timer key
        """
        key = self.codec.decode_timer_key(name)
        if key is None:
            logger.debug("Ignoring expired key outside the timer namespace", key=name)
            return None

        task = asyncio.create_task(self._fire(key))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _fire(self, key: ScheduleKey) -> FiringOutcome:
        if self._semaphore is None:
            return await self.state_machine.fire(key)

        async with self._semaphore:
            return await self.state_machine.fire(key)
