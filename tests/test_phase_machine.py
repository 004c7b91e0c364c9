import pytest

from quizsync.client.phase_machine import PhaseStateMachine
from quizsync.errors import InvalidTransitionError, NotHostError
from quizsync.server.quiz_types import GameStateRecord, Phase


@pytest.fixture
def host(store, questions):
    return PhaseStateMachine(store, is_host=True, question_count=len(questions))


def _rec(phase, index=0, started=100.0, sid="s1", version=1):
    return GameStateRecord(phase, index, 20, started, sid, version=version)


async def test_full_game_walk(host, store, clock):
    assert host.phase is Phase.WAITING
    await host.advance(Phase.LOBBY)
    assert host.phase is Phase.LOBBY

    assert await host.advance(Phase.COUNTDOWN) is None
    assert host.phase is Phase.COUNTDOWN
    assert (await store.get_game_state()).phase is Phase.LOBBY

    for index in range(3):
        clock.advance(1)
        if index > 0:
            assert host.can_advance(Phase.QUIZ)
            assert not host.can_advance(Phase.FINAL)
        record = await host.advance(Phase.QUIZ)
        assert record.current_question_index == index
        assert record.phase_started_at == clock()
        assert await store.get_game_state() == record
        await host.advance(Phase.RESULT)
        await host.advance(Phase.RANKING)

    assert not host.can_advance(Phase.QUIZ)
    final = await host.advance(Phase.FINAL)
    assert final.phase is Phase.FINAL
    assert final.current_question_index == 2
    assert host.can_advance(Phase.LOBBY) is False


async def test_unreachable_transitions_raise(host):
    await host.advance(Phase.LOBBY)
    with pytest.raises(InvalidTransitionError):
        await host.advance(Phase.QUIZ)
    with pytest.raises(InvalidTransitionError):
        await host.advance(Phase.RANKING)


async def test_final_is_refused_while_questions_remain(host):
    await host.advance(Phase.LOBBY)
    await host.advance(Phase.COUNTDOWN)
    await host.advance(Phase.QUIZ)
    await host.advance(Phase.RESULT)
    await host.advance(Phase.RANKING)
    with pytest.raises(InvalidTransitionError):
        await host.advance(Phase.FINAL)


async def test_players_cannot_drive_the_game(store):
    player = PhaseStateMachine(store, is_host=False)
    with pytest.raises(NotHostError):
        await player.advance(Phase.LOBBY)
    with pytest.raises(NotHostError):
        await player.reset()


async def test_budget_comes_from_the_callback(store):
    machine = PhaseStateMachine(store, is_host=True, question_count=2, time_budget_for=lambda i: 10 + i)
    await machine.advance(Phase.LOBBY)
    await machine.advance(Phase.COUNTDOWN)
    record = await machine.advance(Phase.QUIZ)
    assert record.time_budget == 10


async def test_recover_adopts_a_running_game(store, clock, questions):
    first = PhaseStateMachine(store, is_host=True, question_count=len(questions))
    await first.recover()
    for name in ("Ann", "Bob", "Cy"):
        await store.add_participant(name)
    await first.advance(Phase.COUNTDOWN)
    await first.advance(Phase.QUIZ)
    await first.advance(Phase.RESULT)
    await first.advance(Phase.RANKING)
    clock.advance(3)
    running = await first.advance(Phase.QUIZ)

    clock.advance(6)
    # host page reloaded
    second = PhaseStateMachine(store, is_host=True, question_count=len(questions))
    adopted = await second.recover()
    assert second.phase is Phase.QUIZ
    assert adopted.session_id == running.session_id
    assert adopted.current_question_index == 1
    assert adopted.phase_started_at == running.phase_started_at
    assert adopted.version > running.version
    assert len(await store.get_roster()) == 3


async def test_recover_without_players_starts_fresh(store, host):
    old = await store.get_game_state()
    record = await host.recover()
    assert record.phase is Phase.LOBBY
    assert record.session_id != old.session_id


async def test_recover_only_from_waiting(host):
    await host.recover()
    with pytest.raises(InvalidTransitionError):
        await host.recover()


async def test_reset_is_legal_from_any_phase(host, store):
    await host.recover()
    await store.add_participant("Ann")
    await host.advance(Phase.COUNTDOWN)
    quiz = await host.advance(Phase.QUIZ)
    record = await host.reset()
    assert record.phase is Phase.LOBBY
    assert record.session_id != quiz.session_id
    assert await store.get_roster() == []


def test_observe_applies_forward_records(store):
    machine = PhaseStateMachine(store, is_host=False)
    assert machine.observe(_rec(Phase.LOBBY, version=1))
    assert machine.observe(_rec(Phase.QUIZ, 0, started=110.0, version=2))
    # phases may be skipped by a slow poller
    assert machine.observe(_rec(Phase.QUIZ, 2, started=150.0, version=9))
    assert machine.phase is Phase.QUIZ
    assert machine.question_index == 2


def test_observe_drops_stale_and_backward_records(store):
    machine = PhaseStateMachine(store, is_host=False)
    machine.observe(_rec(Phase.RESULT, 1, started=200.0, version=5))

    assert not machine.observe(_rec(Phase.RESULT, 1, started=200.0, version=5))
    assert not machine.observe(_rec(Phase.QUIZ, 1, started=190.0, version=4))
    # newer stamp, but it would move the game backward
    assert not machine.observe(_rec(Phase.QUIZ, 1, started=210.0, version=6))
    assert machine.phase is Phase.RESULT

    assert machine.observe(_rec(Phase.RANKING, 1, started=220.0, version=7))


def test_observe_follows_a_new_session_but_not_an_old_one(store):
    machine = PhaseStateMachine(store, is_host=False)
    machine.observe(_rec(Phase.RANKING, 2, started=300.0, sid="s1", version=8))
    assert not machine.observe(_rec(Phase.QUIZ, 0, started=250.0, sid="s0", version=3))
    assert machine.observe(_rec(Phase.LOBBY, 0, started=400.0, sid="s2", version=1))
    assert machine.session_id == "s2"
    assert machine.phase is Phase.LOBBY


def test_listeners_fire_only_on_change(store):
    machine = PhaseStateMachine(store, is_host=False)
    seen = []
    machine.add_listener(lambda phase, record: seen.append((phase, record.current_question_index)))
    machine.observe(_rec(Phase.QUIZ, 0, started=100.0, version=1))
    # republished with the same start: new version, nothing visible changed
    machine.observe(_rec(Phase.QUIZ, 0, started=100.0, version=2))
    machine.observe(_rec(Phase.RESULT, 0, started=120.0, version=3))
    assert seen == [(Phase.QUIZ, 0), (Phase.RESULT, 0)]
