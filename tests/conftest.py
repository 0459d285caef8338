"""
Module: conftest.py
Description: Shared pytest fixtures for scheduler tests.

Provides settings, in-memory doubles for the record store, timer store
and webhook sender, and factories wiring them into the retry state
machine and schedule service. The doubles implement the same methods
as the Redis-backed classes, so the core runs unchanged against them.
"""

import asyncio
from typing import AsyncIterator, Dict, List, Optional, Tuple

import pytest
from pydantic import ValidationError
from redis.exceptions import ConnectionError as RedisConnectionError

from redis_scheduler.config.settings import Settings
from redis_scheduler.delivery.retry import RetryStateMachine
from redis_scheduler.models.schedule import Schedule
from redis_scheduler.scheduler import ScheduleService
from redis_scheduler.storage.keys import KeyCodec, ScheduleKey
from redis_scheduler.storage.records import RecordDecodeError

API_TOKEN = "test-token"


class InMemoryRecordStore:
    """Record store double keeping serialized records in a dict."""

    def __init__(self, codec: KeyCodec):
        self.codec = codec
        self.raw: Dict[ScheduleKey, str] = {}
        self.fail_reads = False
        self.fail_writes = False
        self.writes = 0

    async def put_record(self, key: ScheduleKey, schedule: Schedule, existing_only: bool = False) -> bool:
        if self.fail_writes:
            raise RedisConnectionError("write failed")
        if existing_only and key not in self.raw:
            return False
        self.raw[key] = schedule.to_json()
        self.writes += 1
        return True

    async def get_record(self, key: ScheduleKey) -> Optional[Schedule]:
        if self.fail_reads:
            raise RedisConnectionError("read failed")
        raw = self.raw.get(key)
        if raw is None:
            return None
        try:
            return Schedule.from_json(raw)
        except ValidationError as e:
            raise RecordDecodeError(self.codec.record_key(key), str(e)) from e

    async def delete_record(self, key: ScheduleKey) -> bool:
        return self.raw.pop(key, None) is not None

    async def list_keys(self, schedule_type: Optional[str] = None) -> List[ScheduleKey]:
        return [k for k in self.raw if schedule_type is None or k.type == schedule_type]

    async def list_records(self, schedule_type: Optional[str] = None) -> List[Tuple[ScheduleKey, Schedule]]:
        records = []
        for key in await self.list_keys(schedule_type):
            try:
                schedule = await self.get_record(key)
            except RecordDecodeError:
                continue
            if schedule is not None:
                records.append((key, schedule))
        return records

    async def count_records(self) -> int:
        return len(self.raw)

    async def database_size(self) -> int:
        return len(self.raw)


class InMemoryTimerStore:
    """Timer store double; timers only expire when a test says so."""

    def __init__(self, codec: KeyCodec):
        self.codec = codec
        self.timers: Dict[ScheduleKey, int] = {}
        self.armed: List[Tuple[ScheduleKey, int]] = []
        self.notifications: List[str] = []
        self.fail_arm = False

    async def arm_timer(self, key: ScheduleKey, seconds: int) -> None:
        if self.fail_arm:
            raise RedisConnectionError("arm failed")
        self.timers[key] = seconds
        self.armed.append((key, seconds))

    async def cancel_timer(self, key: ScheduleKey) -> bool:
        return self.timers.pop(key, None) is not None

    async def timer_exists(self, key: ScheduleKey) -> bool:
        return key in self.timers

    async def remaining_seconds(self, key: ScheduleKey) -> Optional[int]:
        return self.timers.get(key)

    async def count_timers(self) -> int:
        return len(self.timers)

    async def subscribe_expirations(self) -> AsyncIterator[str]:
        while self.notifications:
            yield self.notifications.pop(0)
        # Stays open like a live subscription
        await asyncio.Event().wait()

    def expire(self, key: ScheduleKey) -> str:
        """Let a timer run out; returns the name Redis would publish."""
        del self.timers[key]
        return self.codec.timer_key(key)


class FakeSender:
    """Webhook sender double answering from a fixed script."""

    def __init__(self, succeed: bool = False):
        self.succeed = succeed
        self.calls: List[Tuple[str, object]] = []

    async def send(self, webhook: str, data, schedule_key: Optional[str] = None) -> bool:
        self.calls.append((webhook, data))
        return self.succeed


@pytest.fixture
def test_settings():
    """
    Provide test configuration settings.

    Built explicitly so no environment variables or .env file are needed.
    """
    return Settings(
        _env_file=None,
        redis_url="redis://localhost:6379/15",
        api_auth=API_TOKEN,
        port=8080,
        retries=2,
        retry_time=1,
        log_level="DEBUG"
    )


@pytest.fixture
def codec():
    return KeyCodec()


@pytest.fixture
def records(codec):
    return InMemoryRecordStore(codec)


@pytest.fixture
def timers(codec):
    return InMemoryTimerStore(codec)


@pytest.fixture
def sender():
    return FakeSender()


@pytest.fixture
def make_state_machine(records, timers, sender, codec):
    """Factory for a RetryStateMachine over the in-memory doubles."""

    def _make(max_retries: int = 2, retry_interval: int = 1) -> RetryStateMachine:
        return RetryStateMachine(
            records,
            timers,
            sender,
            codec,
            max_retries=max_retries,
            retry_interval=retry_interval
        )

    return _make


@pytest.fixture
def service(records, timers, codec):
    return ScheduleService(records, timers, codec)


@pytest.fixture
def sample_schedule():
    return {
        "webhook": "https://hooks.example.com/deliver",
        "ttl": 30,
        "data": {"order_id": "12345", "amount": 99.99, "tags": ["a", "b"]}
    }
