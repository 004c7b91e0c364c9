import pytest

from quizsync.server.quiz_types import Answer, Participant
from quizsync.server.scoring import (
    RankingBoard,
    accuracy_rate,
    calculate_option_stats,
    calculate_rankings,
    calculate_score,
    podium,
    rank_change_text,
    top_participants,
)


def test_five_seconds_into_twenty_scores_875():
    assert calculate_score(True, 5.0, 20) == 875


def test_instant_answer_scores_1000():
    assert calculate_score(True, 0.0, 20) == 1000
    assert calculate_score(True, -3.0, 20) == 1000


def test_answer_at_or_past_the_limit_scores_500():
    assert calculate_score(True, 20.0, 20) == 500
    assert calculate_score(True, 45.0, 20) == 500


def test_wrong_answer_scores_zero_regardless_of_speed():
    assert calculate_score(False, 0.0, 20) == 0
    assert calculate_score(False, 19.0, 20) == 0


def test_non_positive_budget_scores_base_only():
    assert calculate_score(True, 0.0, 0) == 500


@pytest.mark.parametrize("response_time", [0.0, 0.3, 1.7, 9.99, 10.0, 19.5, 30.0])
@pytest.mark.parametrize("budget", [10, 15, 20, 30])
def test_correct_scores_stay_within_bounds(response_time, budget):
    score = calculate_score(True, response_time, budget)
    assert 500 <= score <= 1000


def test_faster_is_never_worth_less():
    scores = [calculate_score(True, t / 2, 20) for t in range(0, 45)]
    assert scores == sorted(scores, reverse=True)


def _p(pid, score):
    return Participant(name=pid.upper(), id=pid, score=score)


def test_rankings_order_by_score_and_keep_ties_in_input_order():
    ranked = calculate_rankings([_p("a", 500), _p("b", 900), _p("c", 500), _p("d", 900)])
    assert [r.participant.id for r in ranked] == ["b", "d", "a", "c"]
    assert [r.rank for r in ranked] == [1, 2, 3, 4]


def test_first_ranking_has_no_delta():
    ranked = RankingBoard().update([_p("a", 100), _p("b", 200)])
    assert [r.rank_delta for r in ranked] == [0, 0]


def test_rank_delta_is_previous_minus_current():
    board = RankingBoard()
    board.update([_p("a", 1000), _p("b", 500), _p("c", 0)])
    ranked = board.update([_p("a", 1000), _p("b", 500), _p("c", 1900)])
    deltas = {r.participant.id: r.rank_delta for r in ranked}
    assert deltas == {"c": 2, "a": -1, "b": -1}
    assert board.rank_of("c") == 1


def test_preview_does_not_move_the_baseline():
    board = RankingBoard()
    board.update([_p("a", 10), _p("b", 0)])
    board.preview([_p("a", 10), _p("b", 50)])
    ranked = board.preview([_p("a", 10), _p("b", 50)])
    assert {r.participant.id: r.rank_delta for r in ranked} == {"b": 1, "a": -1}


def test_newcomer_has_no_delta():
    board = RankingBoard()
    board.update([_p("a", 10)])
    ranked = board.update([_p("a", 10), _p("z", 99)])
    assert {r.participant.id: r.rank_delta for r in ranked} == {"z": 0, "a": -1}


def test_rank_change_text():
    assert rank_change_text(2) == "▲2"
    assert rank_change_text(-1) == "▼1"
    assert rank_change_text(0) == "-"


def _a(pid, option, correct):
    return Answer(pid, 1, option, 1.0, option == correct, 0)


def test_option_stats_counts_and_percentages():
    answers = [_a("a", 1, 1), _a("b", 1, 1), _a("c", 1, 1), _a("d", 0, 1)]
    stats = calculate_option_stats(answers, correct_option_index=1)
    assert [s.count for s in stats] == [1, 3, 0, 0]
    assert [s.percentage for s in stats] == [25, 75, 0, 0]
    assert [s.is_correct for s in stats] == [False, True, False, False]


def test_option_stats_without_answers():
    stats = calculate_option_stats([], correct_option_index=2)
    assert [s.percentage for s in stats] == [0, 0, 0, 0]


def test_podium_fills_missing_places_with_none():
    places = podium([_p("a", 10), _p("b", 30)])
    assert [p.participant.id if p else None for p in places] == ["b", "a", None]


def test_top_participants_limits_count():
    players = [_p(str(i), i * 10) for i in range(8)]
    assert [r.participant.id for r in top_participants(players, 5)] == ["7", "6", "5", "4", "3"]


def test_accuracy_rate():
    assert accuracy_rate([]) == 0
    assert accuracy_rate([_a("a", 1, 1), _a("b", 2, 1), _a("c", 1, 1)]) == 67
