# Cancellation countdown tests

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from client.cancel_timer import CancellationTimer

CREATED_AT = datetime(2025, 1, 15, 12, 0, 0, tzinfo=timezone.utc)


class SteppedClock:
    def __init__(self, seconds=0.0):
        self.now = CREATED_AT + timedelta(seconds=seconds)

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += timedelta(seconds=seconds)


def test_remaining_counts_down():
    clock = SteppedClock(10)
    timer = CancellationTimer(CREATED_AT, 30, clock=clock)

    assert timer.remaining == 20
    assert timer.can_cancel is True

    clock.advance(20)
    assert timer.remaining == 0
    assert timer.can_cancel is False


def test_accepts_iso_timestamp():
    timer = CancellationTimer("2025-01-15T12:00:00.000000+00:00", 30, clock=SteppedClock(12.5))
    assert timer.remaining == pytest.approx(17.5)


def test_acceptance_closes_window_immediately():
    closed = []
    timer = CancellationTimer(CREATED_AT, 30, clock=SteppedClock(3), on_close=closed.append)

    timer.observe("Pending", is_accepted=True)
    timer.observe("Pending", is_accepted=True)

    assert timer.closed_reason == "accepted"
    assert timer.remaining == 0
    assert timer.can_cancel is False
    assert closed == ["accepted"]


@pytest.mark.parametrize("status,reason", [("Cancelled", "cancelled"), ("Preparing", "preparing")])
def test_leaving_pending_closes_window(status, reason):
    timer = CancellationTimer(CREATED_AT, 30, clock=SteppedClock(3))
    timer.observe(status)
    assert timer.closed_reason == reason


def test_pending_unaccepted_keeps_window_open():
    timer = CancellationTimer(CREATED_AT, 30, clock=SteppedClock(3))
    timer.observe("Pending", is_accepted=False)
    assert timer.closed_reason is None
    assert timer.can_cancel is True


def test_run_ticks_until_expiry():
    clock = SteppedClock(0.5)
    ticks = []

    def on_tick(seconds):
        ticks.append(seconds)
        clock.advance(10)

    timer = CancellationTimer(CREATED_AT, 30, tick_seconds=0, clock=clock, on_tick=on_tick)
    asyncio.run(timer.run())

    assert ticks == [30, 20, 10]
    assert timer.closed_reason == "expired"


def test_stop_ends_run():
    ticks = []

    async def scenario():
        timer = CancellationTimer(CREATED_AT, 30, tick_seconds=60, clock=SteppedClock(1), on_tick=ticks.append)
        task = asyncio.create_task(timer.run())
        while not ticks:
            await asyncio.sleep(0)
        timer.stop()
        await asyncio.wait_for(task, timeout=5)
        return timer

    timer = asyncio.run(scenario())
    assert ticks == [29]
    assert timer.closed_reason == "stopped"


def test_already_expired_window():
    timer = CancellationTimer(CREATED_AT, 30, clock=SteppedClock(45))
    asyncio.run(timer.run())
    assert timer.closed_reason == "expired"
