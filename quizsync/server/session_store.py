"""Shared session store contract and the in-process implementation.

Every client reaches the shared state only through the operations on
``SessionStore``. ``InMemorySessionStore`` is the authority the server
publishes; ``quizsync.client.ws_client.RemoteSessionStore`` is the client
side of the same contract.
"""
from abc import ABC, abstractmethod
from dataclasses import replace
from typing import Callable, Dict, List, Optional, Tuple
import logging
import secrets
import time

from quizsync.config import DEFAULT_TIMER, MAX_NAME_LENGTH, MAX_PARTICIPANTS, OPTION_COUNT
from quizsync.errors import NotFoundError, SubmissionAnomalyError, ValidationError
from quizsync.server.quiz_types import (
    Answer, GameStateRecord, Participant, Phase, Question, SubmissionResult
)
from quizsync.server.scoring import calculate_score

logger = logging.getLogger("quizsync.store")

# Phases that exist only on a client and are never published.
LOCAL_ONLY_PHASES = (Phase.WAITING, Phase.COUNTDOWN)


class SessionStore(ABC):
    """The operations every client may call. All of them are safe to repeat."""

    @abstractmethod
    async def get_roster(self, session_id: Optional[str] = None) -> List[Participant]:
        ...

    @abstractmethod
    async def add_participant(
        self, name: str, session_id: Optional[str] = None, participant_id: Optional[str] = None
    ) -> Participant:
        ...

    @abstractmethod
    async def get_questions(self) -> List[Question]:
        ...

    @abstractmethod
    async def submit_answer(
        self,
        participant_id: str,
        question_id: int,
        selected_option: int,
        response_time: float,
        session_id: Optional[str] = None,
    ) -> SubmissionResult:
        """Score and record an answer.

        A second call for the same (participant, question) returns the
        stored result with ``duplicate=True`` and changes nothing.
        """

    @abstractmethod
    async def get_answers(self, question_id: int, session_id: Optional[str] = None) -> List[Answer]:
        ...

    @abstractmethod
    async def get_game_state(self) -> GameStateRecord:
        ...

    @abstractmethod
    async def set_game_state(
        self,
        phase: Phase,
        current_question_index: int,
        time_budget: int,
        session_id: Optional[str] = None,
        phase_started_at: Optional[float] = None,
    ) -> GameStateRecord:
        ...

    @abstractmethod
    async def reset_session(self) -> GameStateRecord:
        """Drop roster, answers and state; start a fresh session id."""


class InMemorySessionStore(SessionStore):
    """Single-process store. Methods never await, so each call is atomic
    with respect to the event loop that serves it."""

    def __init__(
        self,
        questions: List[Question],
        clock: Callable[[], float] = time.time,
        time_budget: int = DEFAULT_TIMER,
        max_participants: int = MAX_PARTICIPANTS,
    ):
        self._questions = list(questions)
        self._clock = clock
        self._default_budget = time_budget
        self._max_participants = max_participants
        self._participants: Dict[str, Participant] = {}
        self._answers: Dict[Tuple[str, int], Answer] = {}
        self._state: Optional[GameStateRecord] = None
        self._version = 0

    # ---------- Session ----------

    def _next_version(self) -> int:
        self._version += 1
        return self._version

    def _fresh_record(self) -> GameStateRecord:
        return GameStateRecord(
            phase=Phase.LOBBY,
            current_question_index=0,
            time_budget=self._default_budget,
            phase_started_at=self._clock(),
            session_id=secrets.token_urlsafe(6),
            version=self._next_version(),
        )

    def _ensure_session(self) -> GameStateRecord:
        if self._state is None:
            self._state = self._fresh_record()
            logger.info(f"[store] created session sid={self._state.session_id}")
        return self._state

    def _resolve_session(self, session_id: Optional[str]) -> str:
        active = self._ensure_session().session_id
        if session_id is not None and session_id != active:
            raise NotFoundError(f"Session {session_id} is not active.")
        return active

    async def get_game_state(self) -> GameStateRecord:
        return self._ensure_session()

    async def set_game_state(
        self,
        phase: Phase,
        current_question_index: int,
        time_budget: int,
        session_id: Optional[str] = None,
        phase_started_at: Optional[float] = None,
    ) -> GameStateRecord:
        phase = Phase(phase)
        if phase in LOCAL_ONLY_PHASES:
            raise ValidationError(f"{phase.value} is a local phase and cannot be published.")
        if time_budget <= 0:
            raise ValidationError("Time budget must be a positive number of seconds.")
        sid = self._resolve_session(session_id)
        self._state = GameStateRecord(
            phase=phase,
            current_question_index=current_question_index,
            time_budget=time_budget,
            phase_started_at=self._clock() if phase_started_at is None else phase_started_at,
            session_id=sid,
            version=self._next_version(),
        )
        logger.debug(f"[store] state={phase.value} q={current_question_index} v={self._state.version} sid={sid}")
        return self._state

    async def reset_session(self) -> GameStateRecord:
        self._participants.clear()
        self._answers.clear()
        self._state = self._fresh_record()
        logger.info(f"[store] reset, new session sid={self._state.session_id}")
        return self._state

    # ---------- Roster ----------

    async def get_roster(self, session_id: Optional[str] = None) -> List[Participant]:
        return [
            replace(p) for p in self._participants.values()
            if session_id is None or p.session_id == session_id
        ]

    async def add_participant(
        self, name: str, session_id: Optional[str] = None, participant_id: Optional[str] = None
    ) -> Participant:
        name = (name or "").strip()
        if not name:
            raise ValidationError("Name cannot be empty.")
        name = name[:MAX_NAME_LENGTH]
        sid = self._resolve_session(session_id)

        # A retried join with the same id gets the original row back.
        if participant_id and participant_id in self._participants:
            existing = self._participants[participant_id]
            if existing.session_id == sid:
                return replace(existing)

        if len(self._participants) >= self._max_participants:
            raise ValidationError("Session is full.")

        kwargs = {"id": participant_id} if participant_id else {}
        participant = Participant(name=name, session_id=sid, joined_at=self._clock(), **kwargs)
        self._participants[participant.id] = participant
        logger.info(f"[store] participant joined id={participant.id} name={name} sid={sid}")
        return replace(participant)

    # ---------- Questions & answers ----------

    async def get_questions(self) -> List[Question]:
        return list(self._questions)

    def _question(self, question_id: int) -> Question:
        for question in self._questions:
            if question.id == question_id:
                return question
        raise NotFoundError(f"Question {question_id} does not exist.")

    async def submit_answer(
        self,
        participant_id: str,
        question_id: int,
        selected_option: int,
        response_time: float,
        session_id: Optional[str] = None,
    ) -> SubmissionResult:
        sid = self._resolve_session(session_id)
        participant = self._participants.get(participant_id)
        if participant is None or participant.session_id != sid:
            raise NotFoundError(f"Participant {participant_id} is not in session {sid}.")
        question = self._question(question_id)
        if not 0 <= selected_option < OPTION_COUNT:
            raise ValidationError("Selected option must be between 0 and 3.")

        key = (participant_id, question_id)
        existing = self._answers.get(key)
        if existing is not None:
            logger.info(f"[store] duplicate answer pid={participant_id} q={question_id}, returning stored result")
            return SubmissionResult(existing.is_correct, existing.score, question.correct_option_index, duplicate=True)

        is_correct = selected_option == question.correct_option_index
        score = calculate_score(is_correct, response_time, self._ensure_session().time_budget)
        answer = Answer(
            participant_id=participant_id,
            question_id=question_id,
            selected_option=selected_option,
            response_time=response_time,
            is_correct=is_correct,
            score=score,
            session_id=sid,
            answered_at=self._clock(),
        )
        result = SubmissionResult(is_correct, score, question.correct_option_index)

        self._answers[key] = answer
        try:
            self._credit_score(participant, score)
        except Exception as exc:
            logger.error(f"[store] answer stored but score update failed pid={participant_id} q={question_id}: {exc}")
            raise SubmissionAnomalyError("Answer recorded but the score update failed.", result) from exc
        logger.debug(f"[store] answer pid={participant_id} q={question_id} correct={is_correct} score={score}")
        return result

    def _credit_score(self, participant: Participant, score: int) -> None:
        # scores only ever grow
        participant.score += max(0, score)

    async def get_answers(self, question_id: int, session_id: Optional[str] = None) -> List[Answer]:
        return [
            a for (pid, qid), a in self._answers.items()
            if qid == question_id and (session_id is None or a.session_id == session_id)
        ]
