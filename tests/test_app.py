import pytest
from fastapi.testclient import TestClient

from quizsync.config import Settings
from quizsync.server.app import create_app
from quizsync.server.session_store import InMemorySessionStore


class BrokenScoreStore(InMemorySessionStore):
    def _credit_score(self, participant, score):
        raise RuntimeError("roster write failed")


@pytest.fixture
def client(store):
    with TestClient(create_app(store=store, settings=Settings())) as c:
        yield c


def _api(client, **params):
    response = client.get("/api", params=params)
    assert response.status_code == 200
    return response.json()


def test_ping(client):
    assert client.get("/ping").json() == {"ok": True}


def test_game_state_over_http(client):
    reply = _api(client, action="getGameState", _ts="123")
    assert reply["success"] is True
    assert reply["data"]["state"] == "LOBBY"
    assert reply["data"]["sessionId"]


def test_join_and_roster_over_http(client):
    joined = _api(client, action="addParticipant", name="Ann")
    assert joined["success"]
    roster = _api(client, action="getParticipants")
    assert [p["name"] for p in roster["data"]] == ["Ann"]
    assert roster["data"][0]["id"] == joined["data"]["id"]


def test_errors_carry_a_kind(client):
    assert _api(client, action="explode") == {
        "success": False, "error": "Unknown action: explode", "kind": "validation"
    }
    missing = _api(client, action="submitAnswer", participantId="x")
    assert missing["kind"] == "validation"
    unknown = _api(client, action="submitAnswer", participantId="x", questionId=1,
                   selectedOption=0, responseTime=1.0)
    assert unknown["kind"] == "not_found"
    local = _api(client, action="updateGameState", state="COUNTDOWN", maxTimer=20)
    assert local["kind"] == "validation"


def test_store_call_over_websocket(client):
    with client.websocket_connect("/ws") as ws:
        ws.send_json({"type": "store.call", "id": 1, "action": "getQuestions", "params": {}})
        reply = ws.receive_json()
        assert reply["type"] == "store.result"
        assert reply["id"] == 1
        assert [q["id"] for q in reply["data"]] == [1, 2, 3]

        ws.send_json({"type": "store.call", "id": 2, "action": "updateGameState",
                      "params": {"state": "QUIZ", "currentQuestionIndex": 0, "maxTimer": 15}})
        reply = ws.receive_json()
        assert reply["id"] == 2
        assert reply["data"]["state"] == "QUIZ"
        assert reply["data"]["maxTimer"] == 15


def test_bad_frames_get_an_error(client):
    with client.websocket_connect("/ws") as ws:
        ws.send_text("not json")
        assert ws.receive_json()["type"] == "error"
        ws.send_json({"type": "chat", "text": "hi"})
        assert ws.receive_json()["type"] == "error"


def test_partial_write_is_reported_with_the_result(questions, clock):
    store = BrokenScoreStore(questions, clock=clock)
    with TestClient(create_app(store=store, settings=Settings())) as client:
        pid = _api(client, action="addParticipant", name="Ann")["data"]["id"]
        reply = _api(client, action="submitAnswer", participantId=pid, questionId=1,
                     selectedOption=0, responseTime=0)
    assert reply["success"] is False
    assert reply["kind"] == "anomaly"
    assert reply["data"]["isCorrect"] is True
    assert reply["data"]["score"] == 1000
