# server/app.py
"""
Shared session store server.

Responsibilities:
- Exposes HTTP health-check `/ping`.
- Exposes WebSocket endpoint `/ws`: every client keeps one connection open
    and sends `store.call` requests; each gets exactly one `store.result`
    reply carrying the same `id`.
- Exposes `GET /api?action=...` with the same actions for clients that can
    only issue plain HTTP requests.

Notes / operational caveats:
- There is no push. Clients learn about changes only by polling, so the
    server never sends anything unprompted.
- State lives in one `InMemorySessionStore`; run a single worker.
"""
import json
from contextlib import asynccontextmanager
import logging
from typing import Any, Optional

from fastapi import FastAPI, Request, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware

from quizsync.config import Settings
from quizsync.errors import StoreError, SubmissionAnomalyError, ValidationError, error_kind
from quizsync.log import configure_logging
from quizsync.server.quiz_types import load_questions
from quizsync.server.session_store import InMemorySessionStore, SessionStore

logger = logging.getLogger("quizsync.server")


def _opt(params: dict, key: str) -> Optional[str]:
    value = params.get(key)
    return None if value in (None, "") else str(value)


async def dispatch(store: SessionStore, action: str, params: dict) -> Any:
    """Run one store action and return its JSON-ready result."""
    try:
        if action == "getParticipants":
            roster = await store.get_roster(_opt(params, "sessionId"))
            return [p.to_dict() for p in roster]

        if action == "addParticipant":
            participant = await store.add_participant(
                params.get("name", ""),
                _opt(params, "sessionId"),
                _opt(params, "participantId"),
            )
            return participant.to_dict()

        if action == "getQuestions":
            return [q.to_dict() for q in await store.get_questions()]

        if action == "submitAnswer":
            selected = params.get("selectedOption", params.get("selectedAnswer"))
            result = await store.submit_answer(
                str(params["participantId"]),
                int(params["questionId"]),
                int(selected),
                float(params["responseTime"]),
                _opt(params, "sessionId"),
            )
            return result.to_dict()

        if action == "getAnswers":
            answers = await store.get_answers(int(params["questionId"]), _opt(params, "sessionId"))
            return [a.to_dict() for a in answers]

        if action == "getGameState":
            return (await store.get_game_state()).to_dict()

        if action == "updateGameState":
            started = params.get("updatedAt")
            record = await store.set_game_state(
                params["state"],
                int(params.get("currentQuestionIndex", 0)),
                int(params["maxTimer"]),
                _opt(params, "sessionId"),
                None if started in (None, "") else float(started),
            )
            return record.to_dict()

        if action == "resetGame":
            return (await store.reset_session()).to_dict()

    except (KeyError, TypeError) as e:
        raise ValidationError(f"Missing or malformed parameter for {action}: {e}") from e
    except ValueError as e:
        if isinstance(e, StoreError):
            raise
        raise ValidationError(f"Invalid parameter for {action}: {e}") from e

    raise ValidationError(f"Unknown action: {action}")


async def handle_call(store: SessionStore, action: str, params: dict) -> dict:
    """Wrap `dispatch` in the {success, data | error} envelope."""
    try:
        return {"success": True, "data": await dispatch(store, action, params)}
    except SubmissionAnomalyError as e:
        logger.error(f"[api] anomaly in {action}: {e}")
        return {
            "success": False,
            "error": str(e),
            "kind": "anomaly",
            "data": e.result.to_dict() if e.result else None,
        }
    except StoreError as e:
        logger.info(f"[api] {action} rejected: {e}")
        return {"success": False, "error": str(e), "kind": error_kind(e)}


def create_app(store: Optional[SessionStore] = None, settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or Settings.from_env()
    if store is None:
        store = InMemorySessionStore(load_questions(settings.questions_path), time_budget=settings.time_budget)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("[lifespan] starting")
        try:
            yield
        finally:
            logger.info("[lifespan] bye")

    app = FastAPI(lifespan=lifespan)
    app.state.store = store

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/ping")
    def health_check():
        """Health check endpoint."""
        return {"ok": True}

    @app.get("/api")
    async def api(request: Request):
        """Query-string flavour of the store API: /api?action=getGameState"""
        params = dict(request.query_params)
        action = params.pop("action", "")
        params.pop("_ts", None)  # cache buster
        return await handle_call(store, action, params)

    @app.websocket("/ws")
    async def ws_endpoint(ws: WebSocket):
        await ws.accept()
        peer = f"{ws.client.host}:{ws.client.port}" if ws.client else "?"
        logger.debug(f"[ws] connected peer={peer}")
        try:
            while True:
                raw = await ws.receive_text()
                try:
                    data = json.loads(raw)
                except json.JSONDecodeError:
                    await ws.send_text(json.dumps({"type": "error", "message": "Malformed JSON"}))
                    continue

                if data.get("type") != "store.call":
                    await ws.send_text(json.dumps({
                        "type": "error",
                        "message": f"Unsupported message type: {data.get('type')}",
                    }))
                    continue

                reply = await handle_call(store, data.get("action", ""), data.get("params") or {})
                reply.update({"type": "store.result", "id": data.get("id")})
                await ws.send_text(json.dumps(reply))
        except WebSocketDisconnect:
            logger.debug(f"[ws] disconnected peer={peer}")

    return app


def main():
    import uvicorn

    settings = Settings.from_env()
    configure_logging("server", settings.log_dir)
    uvicorn.run(create_app(settings=settings), host=settings.host, port=settings.port, log_config=None)


if __name__ == "__main__":
    main()
