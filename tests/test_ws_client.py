import json

import pytest

from quizsync.client.ws_client import RemoteSessionStore, WSClient, unwrap_reply
from quizsync.errors import (
    NotFoundError, StoreError, StoreUnavailableError, SubmissionAnomalyError, ValidationError
)
from quizsync.server.app import handle_call
from quizsync.server.quiz_types import Phase


class LoopbackClient:
    """Stands in for WSClient: routes calls straight into the server handler."""

    def __init__(self, store):
        self.store = store
        self.sent = []

    async def call(self, action, **params):
        params = {k: v for k, v in params.items() if v is not None}
        self.sent.append((action, params))
        # through JSON, as on the wire
        reply = json.loads(json.dumps(await handle_call(self.store, action, params)))
        return unwrap_reply(action, reply)


@pytest.fixture
def remote(store):
    return RemoteSessionStore(LoopbackClient(store))


async def test_remote_store_round_trip(remote, clock):
    state = await remote.get_game_state()
    assert state.phase is Phase.LOBBY

    ann = await remote.add_participant("Ann", state.session_id)
    record = await remote.set_game_state(Phase.QUIZ, 0, 20, state.session_id)
    assert record.phase is Phase.QUIZ
    assert record.version > state.version

    clock.advance(5)
    result = await remote.submit_answer(ann.id, 1, 0, 5.0, state.session_id)
    assert (result.is_correct, result.score, result.duplicate) == (True, 875, False)
    again = await remote.submit_answer(ann.id, 1, 0, 5.0, state.session_id)
    assert again.duplicate

    [answer] = await remote.get_answers(1, state.session_id)
    assert answer.participant_id == ann.id
    [participant] = await remote.get_roster(state.session_id)
    assert participant.score == 875
    assert [q.id for q in await remote.get_questions()] == [1, 2, 3]


async def test_republish_keeps_the_start_time(remote, clock):
    first = await remote.set_game_state(Phase.RESULT, 0, 20)
    clock.advance(9)
    again = await remote.set_game_state(Phase.RESULT, 0, 20, phase_started_at=first.phase_started_at)
    assert again.phase_started_at == first.phase_started_at


async def test_remote_errors_map_back_to_exceptions(remote):
    with pytest.raises(ValidationError):
        await remote.add_participant("  ")
    with pytest.raises(NotFoundError):
        await remote.submit_answer("ghost", 1, 0, 1.0)


async def test_reset_over_the_wire(remote):
    before = await remote.get_game_state()
    after = await remote.reset_session()
    assert after.session_id != before.session_id


def test_unwrap_reply():
    assert unwrap_reply("x", {"success": True, "data": [1]}) == [1]
    with pytest.raises(StoreError):
        unwrap_reply("x", {"success": False})
    with pytest.raises(ValidationError):
        unwrap_reply("x", {"success": False, "error": "bad", "kind": "validation"})
    with pytest.raises(SubmissionAnomalyError) as info:
        unwrap_reply("submitAnswer", {
            "success": False, "error": "partial", "kind": "anomaly",
            "data": {"isCorrect": True, "score": 900, "correctAnswer": 1},
        })
    assert info.value.result.score == 900


async def test_call_while_disconnected_is_unavailable():
    client = WSClient("ws://127.0.0.1:9/ws")
    with pytest.raises(StoreUnavailableError):
        await client.call("getGameState")
