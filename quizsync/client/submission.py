"""Answer submission protocol.

One effective write per (participant, question). The store refuses to score
a pair twice; on top of that the client keeps a local set of questions it
has answered so the button cannot even send a second request.
"""
import logging
from typing import Callable, Dict, Optional, Set

from quizsync.config import OPTION_COUNT, SUBMIT_ATTEMPTS
from quizsync.errors import (
    StoreUnavailableError, SubmissionAnomalyError, SubmissionRejectedError
)
from quizsync.server.quiz_types import Phase, Question, SubmissionResult
from quizsync.server.session_store import SessionStore
from quizsync.client.timer import DriftCorrectedTimer

logger = logging.getLogger("quizsync.submit")


class AnswerSubmitter:
    """Submits answers for one participant.

    ``on_pending(question_id, option)`` fires as soon as a submission starts
    (the UI's "submitted" flag); ``on_rollback(question_id)`` undoes it when
    the submission fails so the participant can try again.
    """

    def __init__(
        self,
        store: SessionStore,
        timer: DriftCorrectedTimer,
        phase: Callable[[], Phase],
        participant_id: Callable[[], Optional[str]],
        session_id: Callable[[], Optional[str]],
        max_attempts: int = SUBMIT_ATTEMPTS,
        on_pending: Optional[Callable[[int, int], None]] = None,
        on_rollback: Optional[Callable[[int], None]] = None,
        on_anomaly: Optional[Callable[[int, SubmissionAnomalyError], None]] = None,
    ):
        self.store = store
        self.timer = timer
        self.phase = phase
        self.participant_id = participant_id
        self.session_id = session_id
        self.max_attempts = max(1, max_attempts)
        self.on_pending = on_pending
        self.on_rollback = on_rollback
        self.on_anomaly = on_anomaly
        self.results: Dict[int, SubmissionResult] = {}
        self._pending: Set[int] = set()

    def has_answered(self, question_id: int) -> bool:
        return question_id in self.results or question_id in self._pending

    def clear(self) -> None:
        """Forget every answer, e.g. after the session was reset."""
        self.results.clear()
        self._pending.clear()

    def check(self, question: Question, selected_option: int) -> None:
        """Raise SubmissionRejectedError if the answer must not be sent."""
        if self.participant_id() is None:
            raise SubmissionRejectedError("Join the quiz before answering.")
        if self.phase() is not Phase.QUIZ:
            raise SubmissionRejectedError("Answers are only accepted while a question is open.")
        if not 0 <= selected_option < OPTION_COUNT:
            raise SubmissionRejectedError("Pick one of the four options.")
        if self.has_answered(question.id):
            raise SubmissionRejectedError("You already answered this question.")
        if self.timer.expired():
            raise SubmissionRejectedError("Time is up.")

    async def submit(self, question: Question, selected_option: int) -> SubmissionResult:
        self.check(question, selected_option)

        qid = question.id
        # measured once so every retry sends identical arguments
        elapsed = self.timer.elapsed()
        self._pending.add(qid)
        if self.on_pending:
            self.on_pending(qid, selected_option)

        try:
            result = await self._send(qid, selected_option, elapsed)
        except SubmissionAnomalyError as e:
            # the answer row exists; the roster total may lag behind it
            logger.error(f"[submit] partial write for q={qid}: {e}")
            if self.on_anomaly:
                self.on_anomaly(qid, e)
            if e.result is None:
                self._rollback(qid)
                raise
            result = e.result
        except Exception:
            self._rollback(qid)
            raise

        self._pending.discard(qid)
        self.results[qid] = result
        logger.info(
            f"[submit] q={qid} option={selected_option} t={elapsed:.2f}s "
            f"correct={result.is_correct} score={result.score} duplicate={result.duplicate}"
        )
        return result

    async def _send(self, question_id: int, selected_option: int, elapsed: float) -> SubmissionResult:
        for attempt in range(1, self.max_attempts + 1):
            try:
                return await self.store.submit_answer(
                    self.participant_id(), question_id, selected_option, elapsed, self.session_id()
                )
            except StoreUnavailableError as e:
                if attempt == self.max_attempts:
                    raise
                logger.warning(f"[submit] attempt {attempt} for q={question_id} failed: {e}; retrying")

    def _rollback(self, question_id: int) -> None:
        self._pending.discard(question_id)
        if self.on_rollback:
            self.on_rollback(question_id)
        logger.info(f"[submit] rolled back q={question_id}")
