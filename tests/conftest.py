import pytest

from quizsync.server.quiz_types import Question
from quizsync.server.session_store import InMemorySessionStore


class FakeClock:
    """Wall clock that only moves when told to."""

    def __init__(self, now: float = 1_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def make_questions(count: int = 3, time_limit: int = 20):
    return [
        Question(
            id=i + 1,
            text=f"Question {i + 1}?",
            options=["a", "b", "c", "d"],
            correct_option_index=i % 4,
            time_limit=time_limit,
        )
        for i in range(count)
    ]


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def questions():
    return make_questions()


@pytest.fixture
def store(questions, clock):
    return InMemorySessionStore(questions, clock=clock)
