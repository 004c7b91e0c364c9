"""Phase state machine.

Only the host drives transitions, and only through ``advance``. Every client,
the host included, feeds polled records through ``observe`` which drops
anything stale or that would move the game backward.
"""
import logging
from typing import Callable, Dict, FrozenSet, List, Optional

from quizsync.errors import InvalidTransitionError, NotHostError
from quizsync.server.quiz_types import GameStateRecord, Phase, PHASE_RANK
from quizsync.server.session_store import LOCAL_ONLY_PHASES, SessionStore

logger = logging.getLogger("quizsync.phase")

HOST_TRANSITIONS: Dict[Phase, FrozenSet[Phase]] = {
    Phase.WAITING: frozenset({Phase.LOBBY}),
    Phase.LOBBY: frozenset({Phase.COUNTDOWN}),
    Phase.COUNTDOWN: frozenset({Phase.QUIZ}),
    Phase.QUIZ: frozenset({Phase.RESULT}),
    Phase.RESULT: frozenset({Phase.RANKING}),
    Phase.RANKING: frozenset({Phase.QUIZ, Phase.FINAL}),
    Phase.FINAL: frozenset(),
}

PhaseListener = Callable[[Phase, Optional[GameStateRecord]], None]


class PhaseStateMachine:
    def __init__(
        self,
        store: SessionStore,
        is_host: bool,
        question_count: int = 0,
        time_budget_for: Optional[Callable[[int], int]] = None,
    ):
        self.store = store
        self.is_host = is_host
        self.question_count = question_count
        # seconds allotted to the question at a given index
        self.time_budget_for = time_budget_for
        self.record: Optional[GameStateRecord] = None
        self.phase: Phase = Phase.WAITING
        self._listeners: List[PhaseListener] = []

    # ---------- Listeners ----------

    def add_listener(self, listener: PhaseListener) -> None:
        self._listeners.append(listener)

    def _notify(self) -> None:
        for listener in list(self._listeners):
            listener(self.phase, self.record)

    # ---------- Derived state ----------

    @property
    def session_id(self) -> Optional[str]:
        return self.record.session_id if self.record else None

    @property
    def question_index(self) -> int:
        return self.record.current_question_index if self.record else 0

    @property
    def progress_key(self) -> tuple:
        return (self.question_index, PHASE_RANK[self.phase])

    def has_next_question(self) -> bool:
        return self.question_index + 1 < self.question_count

    def can_advance(self, target: Phase) -> bool:
        if target not in HOST_TRANSITIONS[self.phase]:
            return False
        if self.phase is Phase.RANKING:
            # next question while one remains, otherwise the final screen
            return (target is Phase.QUIZ) == self.has_next_question()
        return True

    def _budget(self, index: int, base: GameStateRecord) -> int:
        if self.time_budget_for is not None:
            return self.time_budget_for(index)
        return base.time_budget

    # ---------- Host transitions ----------

    def _require_host(self) -> None:
        if not self.is_host:
            raise NotHostError("Only the host can change the phase.")

    async def advance(self, target: Phase) -> Optional[GameStateRecord]:
        """Move to ``target`` and publish it. Returns the written record.

        COUNTDOWN is local only and returns None.
        """
        self._require_host()
        target = Phase(target)
        if not self.can_advance(target):
            raise InvalidTransitionError(f"Cannot move from {self.phase.value} to {target.value}.")

        if target in LOCAL_ONLY_PHASES:
            logger.info(f"[phase] {self.phase.value} -> {target.value} (local)")
            self.phase = target
            self._notify()
            return None

        if self.phase is Phase.WAITING:
            base = await self.store.get_game_state()
            index = 0
        else:
            base = self.record
            index = self.question_index
        if self.phase is Phase.RANKING and target is Phase.QUIZ:
            index += 1

        record = await self.store.set_game_state(target, index, self._budget(index, base), base.session_id)
        logger.info(f"[phase] {self.phase.value} -> {target.value} q={index} v={record.version}")
        self._apply(record)
        return record

    async def recover(self) -> GameStateRecord:
        """Enter the lobby without wiping a game that is already running.

        If the live session has participants, adopt it and re-announce its
        record unchanged. Otherwise start a fresh session.
        """
        self._require_host()
        if self.phase is not Phase.WAITING:
            raise InvalidTransitionError(f"Recovery only runs from WAITING, not {self.phase.value}.")

        current = await self.store.get_game_state()
        roster = await self.store.get_roster(current.session_id)
        if roster:
            logger.info(
                f"[phase] adopting live session sid={current.session_id} "
                f"phase={current.phase.value} players={len(roster)}"
            )
            record = await self.store.set_game_state(
                current.phase,
                current.current_question_index,
                current.time_budget,
                current.session_id,
                phase_started_at=current.phase_started_at,
            )
        else:
            fresh = await self.store.reset_session()
            record = await self.store.set_game_state(Phase.LOBBY, 0, self._budget(0, fresh), fresh.session_id)
            logger.info(f"[phase] no players found, started fresh session sid={record.session_id}")
        self._apply(record)
        return record

    async def reset(self) -> GameStateRecord:
        """Throw the session away and open a new lobby. Legal from any phase."""
        self._require_host()
        fresh = await self.store.reset_session()
        record = await self.store.set_game_state(Phase.LOBBY, 0, self._budget(0, fresh), fresh.session_id)
        logger.info(f"[phase] session reset, new sid={record.session_id}")
        self._apply(record)
        return record

    # ---------- Observation ----------

    def observe(self, record: GameStateRecord) -> bool:
        """Apply a polled record if it is newer and moves the game forward."""
        current = self.record
        if current is not None:
            if record.session_id == current.session_id:
                if record.version == current.version and record.order_key == current.order_key:
                    return False  # nothing new
                if record.order_key < current.order_key:
                    logger.warning(
                        f"[phase] dropping stale record v={record.version} "
                        f"(applied v={current.version})"
                    )
                    return False
                if record.progress_key < self.progress_key:
                    logger.error(
                        f"[phase] dropping record that moves backward: "
                        f"{self.phase.value}@q{self.question_index} -> "
                        f"{record.phase.value}@q{record.current_question_index}"
                    )
                    return False
            elif record.phase_started_at < current.phase_started_at:
                logger.warning(f"[phase] dropping record from old session sid={record.session_id}")
                return False
            else:
                logger.info(f"[phase] session replaced {current.session_id} -> {record.session_id}")
        self._apply(record)
        return True

    def _apply(self, record: GameStateRecord) -> None:
        previous = self.record
        previous_phase = self.phase
        self.record = record
        self.phase = record.phase
        changed = (
            previous is None
            or previous_phase is not record.phase
            or previous.current_question_index != record.current_question_index
            or previous.session_id != record.session_id
        )
        if changed:
            logger.debug(f"[phase] applied {record.phase.value} q={record.current_question_index} v={record.version}")
            self._notify()
