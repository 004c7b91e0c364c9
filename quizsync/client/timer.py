"""Question timers.

Remaining time is always derived from the published ``phase_started_at``
and never counted down locally, so a client whose poll arrives late still
shows the same number as everybody else.
"""
import asyncio
import logging
import math
import time
from typing import Awaitable, Callable, Optional

from quizsync.config import COUNTDOWN_DURATION
from quizsync.server.quiz_types import GameStateRecord, Phase

logger = logging.getLogger("quizsync.timer")

Clock = Callable[[], float]


def remaining_seconds(phase_started_at: float, time_budget: int, now: float) -> int:
    """Whole seconds left in the phase, floored at 0."""
    elapsed = math.floor(now - phase_started_at)
    return max(0, time_budget - elapsed)


def response_time(phase_started_at: float, now: float) -> float:
    """Seconds between the published phase start and ``now``, never negative."""
    return max(0.0, now - phase_started_at)


class DriftCorrectedTimer:
    """Remaining-time view over the currently applied game state record."""

    def __init__(self, clock: Clock = time.time):
        self.clock = clock
        self.record: Optional[GameStateRecord] = None

    def bind(self, record: Optional[GameStateRecord]) -> None:
        self.record = record

    @property
    def running(self) -> bool:
        return self.record is not None and self.record.phase is Phase.QUIZ

    def remaining(self, now: Optional[float] = None) -> int:
        if not self.running:
            return 0
        now = self.clock() if now is None else now
        return remaining_seconds(self.record.phase_started_at, self.record.time_budget, now)

    def expired(self, now: Optional[float] = None) -> bool:
        return self.running and self.remaining(now) <= 0

    def elapsed(self, now: Optional[float] = None) -> float:
        if self.record is None:
            return 0.0
        now = self.clock() if now is None else now
        return response_time(self.record.phase_started_at, now)


class PresentationTimer:
    """The host's 1-second decrementing display counter.

    Purely cosmetic: nothing reads ``value`` for scoring.
    """

    def __init__(self, on_tick: Optional[Callable[[int], None]] = None, interval: float = 1.0):
        self.on_tick = on_tick
        self.interval = interval
        self.value = 0
        self._task: Optional[asyncio.Task] = None

    def start(self, seconds: int) -> None:
        self.stop()
        self.value = seconds
        self._task = asyncio.create_task(self._run(), name="presentation-timer")

    async def _run(self) -> None:
        while self.value > 0:
            await asyncio.sleep(self.interval)
            self.value -= 1
            if self.on_tick:
                self.on_tick(self.value)

    def stop(self) -> None:
        if self._task and not self._task.done():
            self._task.cancel()
        self._task = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()


async def run_countdown(
    seconds: int = COUNTDOWN_DURATION,
    on_tick: Optional[Callable[[int], None]] = None,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> None:
    """The 3-2-1 before a game starts. Local only, nothing is published."""
    for count in range(seconds, 0, -1):
        if on_tick:
            on_tick(count)
        await sleep(1)
    if on_tick:
        on_tick(0)
