# client/common.py
"""Per-role client surface.

`HostInterface` and `PlayerInterface` wire the store, the phase machine, the
reconciliation loop, the timers and the submission protocol together. The
Textual front ends only ever talk to these objects.
"""
from dataclasses import dataclass, field
from typing import Callable, ClassVar, Dict, List, Optional
import asyncio
import logging
import secrets
import time

from quizsync.config import COUNTDOWN_DURATION, JOIN_ATTEMPTS, Settings
from quizsync.errors import (
    InvalidTransitionError, StoreUnavailableError, SubmissionRejectedError, ValidationError
)
from quizsync.server.quiz_types import (
    GameStateRecord, Participant, Phase, Question, SubmissionResult, new_id
)
from quizsync.server.scoring import (
    OptionStats, RankedParticipant, RankingBoard, calculate_option_stats
)
from quizsync.server.session_store import SessionStore
from quizsync.client.identity import IdentityCache, PlayerIdentity
from quizsync.client.phase_machine import PhaseStateMachine
from quizsync.client.reconciliation import ClientView, ReconciliationLoop
from quizsync.client.sound_cues import CueService, null_cues
from quizsync.client.submission import AnswerSubmitter
from quizsync.client.timer import DriftCorrectedTimer, PresentationTimer, run_countdown

logger = logging.getLogger("quizsync.client")


@dataclass
class SessionInterface:
    store: SessionStore
    settings: Settings = field(default_factory=Settings)
    clock: Callable[[], float] = time.time
    cues: CueService = field(default_factory=null_cues)

    is_host: ClassVar[bool] = False

    view: ClientView = field(init=False)
    timer: DriftCorrectedTimer = field(init=False)
    machine: PhaseStateMachine = field(init=False)
    loop: ReconciliationLoop = field(init=False)
    questions: List[Question] = field(init=False, default_factory=list)
    board: RankingBoard = field(init=False, default_factory=RankingBoard)

    def __post_init__(self):
        self.view = ClientView()
        self.timer = DriftCorrectedTimer(self.clock)
        self.machine = PhaseStateMachine(self.store, self.is_host, time_budget_for=self._time_budget_for)
        self.machine.add_listener(self._on_phase)
        self.loop = ReconciliationLoop(
            self.store,
            self.view,
            self.is_host,
            observe_state=self.machine.observe,
            session_id=lambda: self.machine.session_id,
            clock=self.clock,
        )

    # ---------- Observation ----------

    @property
    def phase(self) -> Phase:
        return self.machine.phase

    @property
    def record(self) -> Optional[GameStateRecord]:
        return self.machine.record

    @property
    def connected(self) -> bool:
        return self.view.connected

    @property
    def current_question(self) -> Optional[Question]:
        index = self.machine.question_index
        if 0 <= index < len(self.questions):
            return self.questions[index]
        return None

    def remaining(self) -> int:
        return self.timer.remaining()

    def participants(self) -> List[Participant]:
        return self.view.participants()

    def rankings(self) -> List[RankedParticipant]:
        """Standings with deltas against the ranking shown last round."""
        return self.board.preview(self.view.participants())

    # ---------- Plumbing ----------

    async def load_questions(self) -> List[Question]:
        self.questions = await self.store.get_questions()
        self.machine.question_count = len(self.questions)
        logger.info(f"[client] loaded {len(self.questions)} questions")
        return self.questions

    def _time_budget_for(self, index: int) -> int:
        if 0 <= index < len(self.questions):
            return self.questions[index].time_limit
        return self.settings.time_budget

    def _joined(self) -> bool:
        return True

    def _sync_polling(self) -> None:
        question = self.current_question
        self.loop.sync(self.phase, question.id if question else None, self._joined())

    def _on_phase(self, phase: Phase, record: Optional[GameStateRecord]) -> None:
        logger.info(f"[client] phase={phase.value} q={self.machine.question_index}")
        self.timer.bind(record)
        if phase is Phase.QUIZ and record is not None and record.current_question_index > 0:
            # the ranking shown before this question becomes the baseline
            self.board.update(self.view.participants())
        self._sync_polling()

    def close(self) -> None:
        """Stop every poll. Safe to call more than once."""
        self.loop.stop()
        self.cues.teardown()


@dataclass
class HostInterface(SessionInterface):
    # overrides every question's own time limit when set
    time_budget: Optional[int] = None
    authenticated: bool = field(init=False, default=False)
    presentation: PresentationTimer = field(init=False)
    sleep: Callable = asyncio.sleep

    is_host: ClassVar[bool] = True

    def __post_init__(self):
        super().__post_init__()
        self.presentation = PresentationTimer(on_tick=self._on_presentation_tick)

    def authenticate(self, password: str) -> bool:
        ok = secrets.compare_digest(
            (password or "").encode(), self.settings.teacher_password.encode()
        )
        if ok:
            self.authenticated = True
            self.cues.init()
        logger.info(f"[host] authentication {'succeeded' if ok else 'failed'}")
        return ok

    def _require_auth(self) -> None:
        if not self.authenticated:
            raise InvalidTransitionError("Authenticate before driving the game.")

    def _time_budget_for(self, index: int) -> int:
        if self.time_budget is not None:
            return self.time_budget
        return super()._time_budget_for(index)

    async def enter(self) -> GameStateRecord:
        """Load questions and join (or resume) the live session."""
        self._require_auth()
        await self.load_questions()
        return await self.machine.recover()

    async def start_game(self, on_tick: Optional[Callable[[int], None]] = None) -> GameStateRecord:
        """3-2-1 countdown, then open the current question."""
        self._require_auth()
        self.cues.init()
        if self.phase is Phase.LOBBY:
            self.cues.play("click")
            await self.machine.advance(Phase.COUNTDOWN)
            await run_countdown(COUNTDOWN_DURATION, on_tick, sleep=self.sleep)
        return await self.machine.advance(Phase.QUIZ)

    async def reveal_result(self) -> GameStateRecord:
        self._require_auth()
        record = await self.machine.advance(Phase.RESULT)
        self.cues.play("result")
        return record

    async def reveal_ranking(self) -> GameStateRecord:
        self._require_auth()
        return await self.machine.advance(Phase.RANKING)

    async def next_question(self) -> GameStateRecord:
        """Open the next question, or the final screen after the last one."""
        self._require_auth()
        target = Phase.QUIZ if self.machine.has_next_question() else Phase.FINAL
        record = await self.machine.advance(target)
        if target is Phase.FINAL:
            self.cues.play("winner")
        return record

    async def reset_session(self) -> GameStateRecord:
        self._require_auth()
        self.presentation.stop()
        self.cues.teardown()
        self.view.clear()
        self.board.clear()
        return await self.machine.reset()

    # ---------- Aggregates ----------

    def _current_answers(self):
        question = self.current_question
        return self.view.answers_for(question.id) if question else []

    @property
    def answered_count(self) -> int:
        return len(self._current_answers())

    def option_stats(self) -> List[OptionStats]:
        question = self.current_question
        if question is None:
            return []
        return calculate_option_stats(self._current_answers(), question.correct_option_index)

    def recent_scores(self) -> Dict[str, int]:
        return {a.participant_id: a.score for a in self._current_answers()}

    # ---------- Internals ----------

    def _on_phase(self, phase: Phase, record: Optional[GameStateRecord]) -> None:
        super()._on_phase(phase, record)
        if phase is Phase.QUIZ:
            self.presentation.start(self.timer.remaining())
        else:
            self.presentation.stop()

    def _on_presentation_tick(self, value: int) -> None:
        if 1 <= value <= 5:
            self.cues.play("tick")

    def close(self) -> None:
        self.presentation.stop()
        super().close()


@dataclass
class PlayerInterface(SessionInterface):
    identity_cache: Optional[IdentityCache] = None
    participant: Optional[Participant] = field(init=False, default=None)
    submitter: AnswerSubmitter = field(init=False)
    selected_option: Optional[int] = field(init=False, default=None)
    last_result: Optional[SubmissionResult] = field(init=False, default=None)
    # set when the host reset the session under us
    removed: bool = field(init=False, default=False)
    # kept until a join succeeds so a retried join reuses the same row
    _join_id: Optional[str] = field(init=False, default=None)

    def __post_init__(self):
        super().__post_init__()
        self.submitter = AnswerSubmitter(
            self.store,
            self.timer,
            phase=lambda: self.phase,
            participant_id=lambda: self.participant.id if self.participant else None,
            session_id=lambda: self.machine.session_id,
            on_pending=self._on_pending,
            on_rollback=self._on_rollback,
        )

    def _joined(self) -> bool:
        return self.participant is not None

    async def join(self, name: str) -> Participant:
        name = (name or "").strip()
        if not name:
            raise ValidationError("Name cannot be empty.")
        record = await self.store.get_game_state()
        self.machine.observe(record)
        if record.phase is not Phase.LOBBY:
            raise InvalidTransitionError("The game has already started.")
        await self.load_questions()

        if self._join_id is None:
            self._join_id = new_id()
        self.participant = await self._add_participant(name, record.session_id, self._join_id)
        self._join_id = None
        self.removed = False
        logger.info(f"[player] joined as {self.participant.name} id={self.participant.id}")
        if self.identity_cache:
            self.identity_cache.save(
                PlayerIdentity(self.participant.id, self.participant.name, record.session_id)
            )
        self.cues.init()
        self.cues.play("join")
        self._sync_polling()
        return self.participant

    async def _add_participant(self, name: str, session_id: str, participant_id: str) -> Participant:
        for attempt in range(1, JOIN_ATTEMPTS + 1):
            try:
                return await self.store.add_participant(name, session_id, participant_id=participant_id)
            except StoreUnavailableError as e:
                if attempt == JOIN_ATTEMPTS:
                    raise
                logger.warning(f"[player] join attempt {attempt} as {participant_id} failed: {e}; retrying")

    async def resume(self) -> Optional[Participant]:
        """Pick up a cached identity if the live session still knows it."""
        if not self.identity_cache:
            return None
        identity = self.identity_cache.load()
        if identity is None:
            return None
        record = await self.store.get_game_state()
        if record.session_id != identity.session_id:
            self.identity_cache.clear()
            return None
        roster = await self.store.get_roster(record.session_id)
        match = next((p for p in roster if p.id == identity.participant_id), None)
        if match is None:
            self.identity_cache.clear()
            return None
        await self.load_questions()
        self.machine.observe(record)
        self.participant = match
        logger.info(f"[player] resumed as {match.name} id={match.id}")
        self._sync_polling()
        return match

    async def submit(self, selected_option: int) -> SubmissionResult:
        question = self.current_question
        if question is None:
            raise SubmissionRejectedError("No question is open.")
        result = await self.submitter.submit(question, selected_option)
        self.last_result = result
        self.cues.play("correct" if result.is_correct else "wrong")
        return result

    @property
    def score(self) -> int:
        if self.participant is None:
            return 0
        latest = self.view.roster.get(self.participant.id)
        return latest.score if latest else self.participant.score

    def my_rank(self) -> Optional[RankedParticipant]:
        if self.participant is None:
            return None
        return next((r for r in self.rankings() if r.participant.id == self.participant.id), None)

    # ---------- Internals ----------

    def _on_pending(self, question_id: int, option: int) -> None:
        self.selected_option = option

    def _on_rollback(self, question_id: int) -> None:
        self.selected_option = None

    def _on_phase(self, phase: Phase, record: Optional[GameStateRecord]) -> None:
        if (
            record is not None
            and self.participant is not None
            and record.session_id != self.participant.session_id
        ):
            logger.warning(f"[player] session {self.participant.session_id} was reset; rejoin required")
            self.participant = None
            self.removed = True
            self.submitter.clear()
            self.view.clear()
            self.cues.teardown()
            if self.identity_cache:
                self.identity_cache.clear()
        if phase is Phase.QUIZ:
            question = self.current_question
            if question is None or not self.submitter.has_answered(question.id):
                self.selected_option = None
                self.last_result = None
        elif phase is Phase.RESULT:
            self.cues.play("result")
        super()._on_phase(phase, record)
