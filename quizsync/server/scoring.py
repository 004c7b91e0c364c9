"""Scoring and ranking.

Everything here is pure: identical inputs always give identical outputs,
which the idempotent submission protocol relies on.
"""
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional
import math

from quizsync.config import BASE_SCORE, MAX_BONUS, WRONG_SCORE, OPTION_COUNT
from quizsync.server.quiz_types import Answer, Participant


def calculate_score(is_correct: bool, response_time: float, time_budget: float) -> int:
    """Points for one answer: 500 for being right plus up to 500 for speed."""
    if not is_correct:
        return WRONG_SCORE
    if time_budget <= 0:
        return BASE_SCORE
    clamped = min(max(response_time, 0.0), float(time_budget))
    remaining = max(0.0, time_budget - clamped)
    return BASE_SCORE + math.floor((remaining / time_budget) * MAX_BONUS)


@dataclass(frozen=True)
class RankedParticipant:
    participant: Participant
    rank: int
    previous_rank: Optional[int] = None

    @property
    def rank_delta(self) -> int:
        """Positive when the participant moved up since the last ranking."""
        if self.previous_rank is None:
            return 0
        return self.previous_rank - self.rank


def calculate_rankings(
    participants: Iterable[Participant],
    previous_ranks: Optional[Dict[str, int]] = None,
) -> List[RankedParticipant]:
    """Sort by score descending; equal scores keep their input order."""
    previous_ranks = previous_ranks or {}
    ordered = sorted(participants, key=lambda p: p.score, reverse=True)
    return [
        RankedParticipant(participant=p, rank=index + 1, previous_rank=previous_ranks.get(p.id))
        for index, p in enumerate(ordered)
    ]


class RankingBoard:
    """Remembers the last computed ranks so each new ranking can report deltas.

    Rankings are derived data and are never written back to the store.
    """

    def __init__(self) -> None:
        self._previous: Dict[str, int] = {}

    def update(self, participants: Iterable[Participant]) -> List[RankedParticipant]:
        ranked = calculate_rankings(participants, self._previous)
        self._previous = {r.participant.id: r.rank for r in ranked}
        return ranked

    def preview(self, participants: Iterable[Participant]) -> List[RankedParticipant]:
        """Like ``update`` but keeps the remembered ranks as they are."""
        return calculate_rankings(participants, self._previous)

    def rank_of(self, participant_id: str) -> Optional[int]:
        return self._previous.get(participant_id)

    def clear(self) -> None:
        self._previous.clear()


def rank_change_text(change: int) -> str:
    if change > 0:
        return f"▲{change}"
    if change < 0:
        return f"▼{abs(change)}"
    return "-"


@dataclass(frozen=True)
class OptionStats:
    option_index: int
    count: int
    percentage: int
    is_correct: bool


def calculate_option_stats(answers: Iterable[Answer], correct_option_index: int) -> List[OptionStats]:
    """Per-option answer counts for the result screen."""
    counts = [0] * OPTION_COUNT
    total = 0
    for answer in answers:
        if 0 <= answer.selected_option < OPTION_COUNT:
            counts[answer.selected_option] += 1
            total += 1
    return [
        OptionStats(
            option_index=index,
            count=count,
            percentage=round(count / total * 100) if total else 0,
            is_correct=index == correct_option_index,
        )
        for index, count in enumerate(counts)
    ]


def top_participants(participants: Iterable[Participant], count: int) -> List[RankedParticipant]:
    return calculate_rankings(participants)[:count]


def podium(participants: Iterable[Participant]) -> List[Optional[RankedParticipant]]:
    """First, second and third place; ``None`` fills empty spots."""
    ranked = calculate_rankings(participants)[:3]
    return ranked + [None] * (3 - len(ranked))


def accuracy_rate(answers: Iterable[Answer]) -> int:
    answers = list(answers)
    if not answers:
        return 0
    correct = sum(1 for a in answers if a.is_correct)
    return round(correct / len(answers) * 100)
