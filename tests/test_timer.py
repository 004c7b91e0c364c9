import asyncio

from conftest import FakeClock
from quizsync.client.timer import (
    DriftCorrectedTimer,
    PresentationTimer,
    remaining_seconds,
    response_time,
    run_countdown,
)
from quizsync.server.quiz_types import GameStateRecord, Phase


def _record(phase=Phase.QUIZ, started=1_000.0, budget=20):
    return GameStateRecord(phase, 0, budget, started, "s1", version=1)


def test_remaining_seconds_floors_elapsed_time():
    assert remaining_seconds(100.0, 20, 100.0) == 20
    assert remaining_seconds(100.0, 20, 105.4) == 15
    assert remaining_seconds(100.0, 20, 105.99) == 15
    assert remaining_seconds(100.0, 20, 130.0) == 0


def test_response_time_is_never_negative():
    assert response_time(100.0, 98.0) == 0.0
    assert response_time(100.0, 103.5) == 3.5


def test_remaining_is_non_increasing_and_floored():
    clock = FakeClock(1_000.0)
    timer = DriftCorrectedTimer(clock)
    timer.bind(_record())
    seen = []
    for _ in range(60):
        seen.append(timer.remaining())
        clock.advance(0.5)
    assert seen == sorted(seen, reverse=True)
    assert seen[0] == 20
    assert seen[-1] == 0
    assert timer.expired()


def test_late_observer_sees_the_same_remaining_time():
    clock = FakeClock(1_000.0)
    prompt, late = DriftCorrectedTimer(clock), DriftCorrectedTimer(clock)
    prompt.bind(_record())
    clock.advance(2.4)
    # this client only receives the record 2.4s after it was published
    late.bind(_record())
    assert late.remaining() == prompt.remaining() == 18


def test_timer_only_runs_during_quiz():
    clock = FakeClock(1_000.0)
    timer = DriftCorrectedTimer(clock)
    assert timer.remaining() == 0
    timer.bind(_record(phase=Phase.RESULT))
    assert not timer.running
    assert timer.remaining() == 0
    assert not timer.expired()


def test_elapsed_is_measured_from_the_published_start():
    clock = FakeClock(1_005.25)
    timer = DriftCorrectedTimer(clock)
    timer.bind(_record(started=1_000.0))
    assert timer.elapsed() == 5.25


async def test_countdown_ticks_down_to_zero():
    ticks, sleeps = [], []

    async def fake_sleep(seconds):
        sleeps.append(seconds)

    await run_countdown(3, ticks.append, sleep=fake_sleep)
    assert ticks == [3, 2, 1, 0]
    assert sleeps == [1, 1, 1]


async def test_presentation_timer_counts_down_and_stops():
    ticks = []
    timer = PresentationTimer(on_tick=ticks.append, interval=0)
    timer.start(3)
    for _ in range(20):
        if not timer.running:
            break
        await asyncio.sleep(0)
    assert ticks == [2, 1, 0]
    assert timer.value == 0


async def test_presentation_timer_stop_cancels():
    ticks = []
    timer = PresentationTimer(on_tick=ticks.append, interval=10)
    timer.start(5)
    await asyncio.sleep(0)
    timer.stop()
    assert not timer.running
    assert ticks == []
