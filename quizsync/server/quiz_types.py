"""Quiz data types shared by the store and every client."""
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional
import json
import time
import uuid
from pathlib import Path

from quizsync.config import OPTION_COUNT, DEFAULT_TIMER


class Phase(Enum):
    WAITING = "WAITING"      # host only, before authentication
    LOBBY = "LOBBY"          # accepting joins
    COUNTDOWN = "COUNTDOWN"  # local 3-2-1, never written to the store
    QUIZ = "QUIZ"            # accepting answers
    RESULT = "RESULT"        # answers frozen, per-option stats
    RANKING = "RANKING"      # standings
    FINAL = "FINAL"          # terminal until reset


# Position of each phase inside one question round.
PHASE_RANK = {
    Phase.WAITING: 0,
    Phase.LOBBY: 1,
    Phase.COUNTDOWN: 2,
    Phase.QUIZ: 3,
    Phase.RESULT: 4,
    Phase.RANKING: 5,
    Phase.FINAL: 6,
}


def new_id() -> str:
    return uuid.uuid4().hex[:9]


@dataclass
class Question:
    text: str
    options: List[str]          # exactly 4
    correct_option_index: int   # 0-3
    time_limit: int = DEFAULT_TIMER
    id: int = 0

    def __post_init__(self):
        if len(self.options) != OPTION_COUNT:
            raise ValueError(f"Each question must have exactly {OPTION_COUNT} options.")
        if not 0 <= self.correct_option_index < OPTION_COUNT:
            raise ValueError("Correct option index must be between 0 and 3.")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "text": self.text,
            "options": list(self.options),
            "correctAnswer": self.correct_option_index,
            "timeLimit": self.time_limit,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Question":
        return cls(
            id=int(data.get("id", 0)),
            text=data["text"],
            options=list(data["options"]),
            correct_option_index=int(data["correctAnswer"]),
            time_limit=int(data.get("timeLimit", DEFAULT_TIMER)),
        )


def load_questions(filepath: Path | str) -> List[Question]:
    """Load an ordered question list from a quiz JSON file.

    Questions without an ``id`` are numbered from 1 in file order.
    """
    with open(filepath, "r", encoding="utf-8") as f:
        data = json.load(f)
    raw = data["questions"] if isinstance(data, dict) else data
    questions = []
    for position, item in enumerate(raw, start=1):
        item = dict(item)
        item.setdefault("id", position)
        questions.append(Question.from_dict(item))
    return questions


@dataclass
class Participant:
    """A player who joined a session."""
    name: str
    session_id: Optional[str] = None
    id: str = field(default_factory=new_id)
    score: int = 0
    joined_at: float = field(default_factory=time.time)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "sessionId": self.session_id,
            "score": self.score,
            "joinedAt": self.joined_at,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Participant":
        return cls(
            id=str(data["id"]),
            name=data["name"],
            session_id=data.get("sessionId"),
            score=int(data.get("score", 0)),
            joined_at=float(data.get("joinedAt", 0.0)),
        )


@dataclass(frozen=True)
class Answer:
    """One participant's response to one question. Never mutated."""
    participant_id: str
    question_id: int
    selected_option: int
    response_time: float
    is_correct: bool
    score: int
    session_id: Optional[str] = None
    answered_at: float = field(default_factory=time.time)

    def to_dict(self) -> dict:
        return {
            "participantId": self.participant_id,
            "questionId": self.question_id,
            "selectedOption": self.selected_option,
            "responseTime": self.response_time,
            "isCorrect": self.is_correct,
            "score": self.score,
            "sessionId": self.session_id,
            "answeredAt": self.answered_at,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Answer":
        # older stores name the option "selectedAnswer"
        selected = data.get("selectedOption", data.get("selectedAnswer"))
        return cls(
            participant_id=str(data["participantId"]),
            question_id=int(data["questionId"]),
            selected_option=int(selected),
            response_time=float(data.get("responseTime", 0.0)),
            is_correct=bool(data.get("isCorrect", False)),
            score=int(data.get("score", 0)),
            session_id=data.get("sessionId"),
            answered_at=float(data.get("answeredAt", 0.0)),
        )


@dataclass(frozen=True)
class GameStateRecord:
    """The published phase snapshot every client polls."""
    phase: Phase
    current_question_index: int
    time_budget: int
    phase_started_at: float
    session_id: str
    version: int = 0

    @property
    def order_key(self) -> tuple:
        """Sort key used to spot records that arrive out of order."""
        return (self.phase_started_at, self.version)

    @property
    def progress_key(self) -> tuple:
        """Where this record sits in the game: (question, phase)."""
        return (self.current_question_index, PHASE_RANK[self.phase])

    def to_dict(self) -> dict:
        return {
            "state": self.phase.value,
            "currentQuestionIndex": self.current_question_index,
            "maxTimer": self.time_budget,
            "updatedAt": self.phase_started_at,
            "sessionId": self.session_id,
            "version": self.version,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "GameStateRecord":
        return cls(
            phase=Phase(data["state"]),
            current_question_index=int(data.get("currentQuestionIndex", 0)),
            time_budget=int(data.get("maxTimer", DEFAULT_TIMER)),
            phase_started_at=float(data["updatedAt"]),
            session_id=str(data["sessionId"]),
            version=int(data.get("version", 0)),
        )


@dataclass(frozen=True)
class SubmissionResult:
    is_correct: bool
    score: int
    correct_option_index: Optional[int] = None
    duplicate: bool = False

    def to_dict(self) -> dict:
        return {
            "isCorrect": self.is_correct,
            "score": self.score,
            "correctAnswer": self.correct_option_index,
            "duplicate": self.duplicate,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "SubmissionResult":
        correct = data.get("correctAnswer")
        return cls(
            is_correct=bool(data["isCorrect"]),
            score=int(data["score"]),
            correct_option_index=None if correct is None else int(correct),
            duplicate=bool(data.get("duplicate", False)),
        )
