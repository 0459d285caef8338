"""
Module: test_worker.py
Description: Unit tests for the expiration dispatch loop.

Checks filtering of foreign keys, one independent task per firing,
non-blocking behavior for slow deliveries, the optional concurrency
cap, resubscription and its backoff after connection loss, and graceful
shutdown.
"""

import asyncio

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from redis_scheduler.delivery.retry import FiringOutcome
from redis_scheduler.delivery.worker import ExpirationWorker
from redis_scheduler.models.schedule import Schedule
from redis_scheduler.storage.keys import ScheduleKey


class RecordingStateMachine:
    """Retry state machine double that can hold firings open."""

    def __init__(self):
        self.fired = []
        self.gates = {}
        self.active = 0
        self.max_active = 0

    async def fire(self, key):
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            gate = self.gates.get(key)
            if gate is not None:
                await gate.wait()
            self.fired.append(key)
            return FiringOutcome.DELIVERED
        finally:
            self.active -= 1


BLOCK = object()


def scripted_subscription(*sessions):
    """
    Build an expiry subscription double.

    Each call plays the next session: key names to yield, then a final
    entry that is an exception to raise, None to end the stream, or
    BLOCK to stay open. Calls past the script stay open.
    """
    calls = []

    async def subscribe():
        calls.append(1)
        if len(calls) > len(sessions):
            await asyncio.Event().wait()
        *names, ending = sessions[len(calls) - 1]
        for name in names:
            yield name
        if ending is BLOCK:
            await asyncio.Event().wait()
        if ending is not None:
            raise ending

    return subscribe, calls


def recorded_sleeps(worker):
    """Replace the resubscribe sleep with one that records its delay."""
    sleeps = []

    async def record(seconds):
        sleeps.append(seconds)

    worker._sleep = record
    return sleeps


async def _run_briefly(worker):
    await worker.start()
    await asyncio.sleep(0.05)
    await worker.stop()


@pytest.fixture
def machine():
    return RecordingStateMachine()


class TestExpirationWorker:
    """Test cases for ExpirationWorker."""

    @pytest.mark.asyncio
    async def test_dispatch_ignores_foreign_keys(self, timers, codec, machine):
        worker = ExpirationWorker(timers, codec, machine)

        assert worker.dispatch("session:42") is None
        assert worker.dispatch("rsch:default:abc") is None
        assert worker.dispatch("rsch-ref:default") is None
        assert worker.in_flight == 0
        assert machine.fired == []

    @pytest.mark.asyncio
    async def test_dispatch_spawns_firing_for_timer_key(self, timers, codec, machine):
        worker = ExpirationWorker(timers, codec, machine)

        task = worker.dispatch("rsch-ref:email:abc")

        assert task is not None
        assert await task == FiringOutcome.DELIVERED
        assert machine.fired == [ScheduleKey("email", "abc")]

    @pytest.mark.asyncio
    async def test_run_consumes_subscription(self, timers, codec, machine):
        timers.notifications = [
            "rsch-ref:default:one",
            "unrelated:key",
            "rsch-ref:email:two",
        ]
        worker = ExpirationWorker(timers, codec, machine)

        await _run_briefly(worker)

        assert sorted(k.id for k in machine.fired) == ["one", "two"]
        assert timers.notifications == []

    @pytest.mark.asyncio
    async def test_slow_delivery_does_not_block_others(self, timers, codec, machine):
        slow = ScheduleKey("default", "slow")
        machine.gates[slow] = asyncio.Event()
        worker = ExpirationWorker(timers, codec, machine)

        slow_task = worker.dispatch(codec.timer_key(slow))
        fast_task = worker.dispatch("rsch-ref:default:fast")

        await asyncio.wait_for(fast_task, timeout=1)
        assert machine.fired == [ScheduleKey("default", "fast")]
        assert not slow_task.done()
        assert worker.in_flight == 1

        machine.gates[slow].set()
        await slow_task
        assert worker.in_flight == 0

    @pytest.mark.asyncio
    async def test_unbounded_concurrency_by_default(self, timers, codec, machine):
        keys = [ScheduleKey("default", f"k{i}") for i in range(20)]
        gate = asyncio.Event()
        for key in keys:
            machine.gates[key] = gate
        worker = ExpirationWorker(timers, codec, machine)

        tasks = [worker.dispatch(codec.timer_key(k)) for k in keys]
        await asyncio.sleep(0)
        assert machine.max_active == 20

        gate.set()
        await asyncio.gather(*tasks)

    @pytest.mark.asyncio
    async def test_concurrency_cap(self, timers, codec, machine):
        keys = [ScheduleKey("default", f"k{i}") for i in range(10)]
        gate = asyncio.Event()
        for key in keys:
            machine.gates[key] = gate
        worker = ExpirationWorker(timers, codec, machine, max_concurrency=3)

        tasks = [worker.dispatch(codec.timer_key(k)) for k in keys]
        await asyncio.sleep(0)
        assert machine.active == 3

        gate.set()
        await asyncio.gather(*tasks)
        assert machine.max_active == 3
        assert len(machine.fired) == 10

    @pytest.mark.asyncio
    async def test_start_and_stop_drain_in_flight(self, timers, codec, machine):
        waiting = asyncio.Event()

        async def endless_subscription():
            yield "rsch-ref:default:one"
            await waiting.wait()

        timers.subscribe_expirations = endless_subscription
        worker = ExpirationWorker(timers, codec, machine)

        await worker.start()
        assert worker.is_running
        await asyncio.sleep(0.01)

        await worker.stop()

        assert not worker.is_running
        assert machine.fired == [ScheduleKey("default", "one")]
        assert worker.in_flight == 0

    @pytest.mark.asyncio
    async def test_stop_cancels_stuck_firings_after_grace_period(self, timers, codec, machine):
        stuck = ScheduleKey("default", "stuck")
        machine.gates[stuck] = asyncio.Event()
        worker = ExpirationWorker(timers, codec, machine, shutdown_grace_seconds=0.01)

        task = worker.dispatch(codec.timer_key(stuck))
        await worker.stop()

        assert task.cancelled()
        assert machine.fired == []


class TestResubscribe:
    """Subscription recovery and its backoff."""

    @pytest.mark.asyncio
    async def test_resubscribes_after_connection_loss(self, timers, codec, machine):
        subscribe, calls = scripted_subscription(
            [RedisConnectionError("connection reset")],
            ["rsch-ref:default:after-reconnect", BLOCK],
        )
        timers.subscribe_expirations = subscribe
        worker = ExpirationWorker(timers, codec, machine)
        sleeps = recorded_sleeps(worker)

        await _run_briefly(worker)

        assert len(calls) == 2
        assert sleeps == [1]
        assert machine.fired == [ScheduleKey("default", "after-reconnect")]

    @pytest.mark.asyncio
    async def test_backoff_grows_across_consecutive_failures(self, timers, codec, machine):
        subscribe, calls = scripted_subscription(
            *[[RedisConnectionError("refused")] for _ in range(4)]
        )
        timers.subscribe_expirations = subscribe
        worker = ExpirationWorker(timers, codec, machine)
        sleeps = recorded_sleeps(worker)

        await _run_briefly(worker)

        assert sleeps == [1, 2, 4, 8]
        assert len(calls) == 5

    @pytest.mark.asyncio
    async def test_backoff_is_capped(self, timers, codec, machine):
        subscribe, _ = scripted_subscription(
            *[[RedisConnectionError("refused")] for _ in range(4)]
        )
        timers.subscribe_expirations = subscribe
        worker = ExpirationWorker(timers, codec, machine, reconnect_max_wait=3)
        sleeps = recorded_sleeps(worker)

        await _run_briefly(worker)

        assert sleeps == [1, 2, 3, 3]

    @pytest.mark.asyncio
    async def test_backoff_resets_after_healthy_subscription(self, timers, codec, machine):
        subscribe, calls = scripted_subscription(
            *[[f"rsch-ref:default:k{i}", RedisConnectionError("reset")] for i in range(6)]
        )
        timers.subscribe_expirations = subscribe
        worker = ExpirationWorker(timers, codec, machine)
        sleeps = recorded_sleeps(worker)

        await _run_briefly(worker)

        assert sleeps == [1] * 6
        assert len(calls) == 7
        assert sorted(k.id for k in machine.fired) == [f"k{i}" for i in range(6)]

    @pytest.mark.asyncio
    async def test_resubscribes_when_stream_ends(self, timers, codec, machine):
        subscribe, calls = scripted_subscription(
            ["rsch-ref:default:one", None],
            ["rsch-ref:default:two", BLOCK],
        )
        timers.subscribe_expirations = subscribe
        worker = ExpirationWorker(timers, codec, machine)
        sleeps = recorded_sleeps(worker)

        await _run_briefly(worker)

        assert len(calls) == 2
        assert sleeps == [1]
        assert sorted(k.id for k in machine.fired) == ["one", "two"]

    @pytest.mark.asyncio
    async def test_other_errors_stop_the_loop(self, timers, codec, machine):
        subscribe, calls = scripted_subscription([ValueError("bad payload")])
        timers.subscribe_expirations = subscribe
        worker = ExpirationWorker(timers, codec, machine)
        sleeps = recorded_sleeps(worker)

        await worker.start()
        await asyncio.sleep(0.01)

        assert not worker.is_running
        assert sleeps == []
        assert len(calls) == 1
        await worker.stop()


class TestWorkerWithStateMachine:
    """Dispatch loop driving the real retry state machine."""

    @pytest.mark.asyncio
    async def test_duplicate_notification_is_harmless(
        self, make_state_machine, records, timers, sender, codec, sample_schedule
    ):
        key = ScheduleKey("default", "dup")
        await records.put_record(key, Schedule(**sample_schedule))
        sender.succeed = True
        worker = ExpirationWorker(timers, codec, make_state_machine())

        first = worker.dispatch(codec.timer_key(key))
        assert await first == FiringOutcome.DELIVERED

        second = worker.dispatch(codec.timer_key(key))
        assert await second == FiringOutcome.MISSING
        assert len(sender.calls) == 1
