"""Reconciliation loop: the only path by which remote state reaches a client.

Each concern (roster, answers for one question, game state) is a
``PollTask`` with its own fixed cadence. ``ReconciliationLoop.sync`` starts
and stops tasks so that exactly the concerns relevant to the current role and
phase are being polled.
"""
import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Set, Tuple

from quizsync.config import (
    POLL_INTERVAL_HOST_ANSWERS,
    POLL_INTERVAL_HOST_ROSTER,
    POLL_INTERVAL_HOST_STATE,
    POLL_INTERVAL_LOBBY,
    POLL_INTERVAL_PLAYER_STATE,
    POLL_INTERVAL_RESULT,
)
from quizsync.errors import StoreError
from quizsync.server.quiz_types import Answer, Participant, Phase
from quizsync.server.session_store import SessionStore

logger = logging.getLogger("quizsync.poll")

# What a failed poll may raise: store errors plus whatever a malformed
# payload produces while being decoded.
POLL_ERRORS = (StoreError, OSError, KeyError, ValueError, TypeError)


@dataclass
class ClientView:
    """Last-known-good remote state as seen by one client."""
    roster: Dict[str, Participant] = field(default_factory=dict)
    answers: Dict[str, Answer] = field(default_factory=dict)  # participant_id -> answer
    answers_question_id: Optional[int] = None
    connected: bool = True
    last_error: Optional[str] = None
    last_sync: Optional[float] = None

    def replace_roster(self, participants: Iterable[Participant]) -> None:
        self.roster = {p.id: p for p in participants}

    def replace_answers(self, question_id: int, answers: Iterable[Answer]) -> None:
        self.answers_question_id = question_id
        self.answers = {a.participant_id: a for a in answers if a.question_id == question_id}

    def participants(self) -> List[Participant]:
        return sorted(self.roster.values(), key=lambda p: p.joined_at)

    def answers_for(self, question_id: int) -> List[Answer]:
        if self.answers_question_id != question_id:
            return []
        return list(self.answers.values())

    def mark_ok(self, now: float) -> None:
        if not self.connected:
            logger.info("[poll] connectivity restored")
        self.connected = True
        self.last_error = None
        self.last_sync = now

    def mark_degraded(self, error: str) -> None:
        if self.connected:
            logger.warning(f"[poll] connectivity degraded: {error}")
        self.connected = False
        self.last_error = error

    def clear(self) -> None:
        self.roster.clear()
        self.answers.clear()
        self.answers_question_id = None


class PollTask:
    """Periodically fetch one concern and hand the result to ``apply``.

    - Every tick launches a new poll without waiting for the previous one,
      so a hung request only delays its own cycle.
    - Responses are numbered; one that comes back after a newer response
      was already applied is dropped.
    - ``stop()`` cancels the ticker and every in-flight poll; a result that
      still arrives afterwards is discarded.
    """

    def __init__(
        self,
        name: str,
        fetch: Callable[[], Awaitable[Any]],
        apply: Callable[[Any], None],
        interval: float,
        on_success: Optional[Callable[[str], None]] = None,
        on_failure: Optional[Callable[[str, Exception], None]] = None,
    ):
        self.name = name
        self.fetch = fetch
        self.apply = apply
        self.interval = interval
        self.on_success = on_success
        self.on_failure = on_failure
        self._generation = 0
        self._seq = 0
        self._applied_seq = 0
        self._runner: Optional[asyncio.Task] = None
        self._inflight: Set[asyncio.Task] = set()

    @property
    def running(self) -> bool:
        return self._runner is not None and not self._runner.done()

    def start(self) -> None:
        if self.running:
            return
        logger.debug(f"[poll] start {self.name} every {self.interval}s")
        self._runner = asyncio.create_task(self._run(), name=f"poll:{self.name}")

    async def _run(self) -> None:
        while True:
            task = asyncio.create_task(self.poll_once())
            self._inflight.add(task)
            task.add_done_callback(self._inflight.discard)
            await asyncio.sleep(self.interval)

    async def poll_once(self) -> bool:
        """Run one fetch/apply cycle. Returns True if the result was applied."""
        generation = self._generation
        self._seq += 1
        seq = self._seq
        try:
            result = await self.fetch()
        except POLL_ERRORS as e:
            if generation == self._generation and self.on_failure:
                self.on_failure(self.name, e)
            return False

        if generation != self._generation:
            logger.debug(f"[poll] {self.name}: discarding result that arrived after teardown")
            return False
        if seq < self._applied_seq:
            logger.debug(f"[poll] {self.name}: discarding out-of-order response #{seq}")
            return False
        self._applied_seq = seq
        try:
            self.apply(result)
        except Exception as e:
            logger.exception(f"[poll] {self.name}: applying the result failed")
            if self.on_failure:
                self.on_failure(self.name, e)
            return False
        if self.on_success:
            self.on_success(self.name)
        return True

    def stop(self) -> None:
        self._generation += 1
        if self._runner is not None:
            self._runner.cancel()
            self._runner = None
        for task in list(self._inflight):
            task.cancel()
        self._inflight.clear()
        logger.debug(f"[poll] stop {self.name}")


ConcernKey = Tuple[Any, ...]


class ReconciliationLoop:
    """Owns every PollTask of one client."""

    def __init__(
        self,
        store: SessionStore,
        view: ClientView,
        is_host: bool,
        observe_state: Callable[[Any], Any],
        session_id: Callable[[], Optional[str]],
        clock: Callable[[], float] = time.time,
    ):
        self.store = store
        self.view = view
        self.is_host = is_host
        self.observe_state = observe_state
        self.session_id = session_id
        self.clock = clock
        self._tasks: Dict[ConcernKey, PollTask] = {}

    @property
    def concerns(self) -> Set[ConcernKey]:
        return set(self._tasks)

    def plan(self, phase: Phase, question_id: Optional[int], joined: bool = True) -> Set[ConcernKey]:
        """The concerns this client should be polling right now."""
        wanted: Set[ConcernKey] = set()
        if self.is_host:
            if phase is Phase.WAITING:
                return wanted
            wanted.add(("state", POLL_INTERVAL_HOST_STATE))
            if phase in (Phase.LOBBY, Phase.COUNTDOWN):
                wanted.add(("roster", POLL_INTERVAL_LOBBY))
            elif phase is Phase.QUIZ:
                wanted.add(("roster", POLL_INTERVAL_HOST_ROSTER))
                if question_id is not None:
                    wanted.add(("answers", question_id, POLL_INTERVAL_HOST_ANSWERS))
            elif phase is Phase.RESULT:
                wanted.add(("roster", POLL_INTERVAL_RESULT))
                if question_id is not None:
                    wanted.add(("answers", question_id, POLL_INTERVAL_RESULT))
            elif phase is Phase.RANKING:
                wanted.add(("roster", POLL_INTERVAL_RESULT))
            return wanted

        if not joined:
            return wanted
        wanted.add(("state", POLL_INTERVAL_PLAYER_STATE))
        if phase is Phase.LOBBY:
            wanted.add(("roster", POLL_INTERVAL_LOBBY))
        elif phase in (Phase.RESULT, Phase.RANKING, Phase.FINAL):
            wanted.add(("roster", POLL_INTERVAL_RESULT))
        return wanted

    def sync(self, phase: Phase, question_id: Optional[int] = None, joined: bool = True) -> None:
        """Stop tasks for concerns that no longer apply and start the new ones."""
        wanted = self.plan(phase, question_id, joined)
        for key in list(self._tasks):
            if key not in wanted:
                self._tasks.pop(key).stop()
        for key in wanted:
            if key not in self._tasks:
                task = self._make_task(key)
                self._tasks[key] = task
                task.start()

    async def refresh(self) -> None:
        """Poll every active concern once, right now."""
        await asyncio.gather(*(task.poll_once() for task in list(self._tasks.values())))

    def stop(self) -> None:
        for task in self._tasks.values():
            task.stop()
        self._tasks.clear()

    def _make_task(self, key: ConcernKey) -> PollTask:
        kind, interval = key[0], key[-1]
        if kind == "state":
            fetch = self.store.get_game_state
            apply = self.observe_state
        elif kind == "roster":
            async def fetch():
                return await self.store.get_roster(self.session_id())
            apply = self.view.replace_roster
        else:
            question_id = key[1]

            async def fetch():
                return await self.store.get_answers(question_id, self.session_id())

            def apply(answers):
                self.view.replace_answers(question_id, answers)
        name = ":".join(str(part) for part in key[:-1])
        return PollTask(name, fetch, apply, interval, self._on_success, self._on_failure)

    def _on_success(self, name: str) -> None:
        self.view.mark_ok(self.clock())

    def _on_failure(self, name: str, exc: Exception) -> None:
        logger.debug(f"[poll] {name} failed: {exc}")
        self.view.mark_degraded(str(exc) or type(exc).__name__)
