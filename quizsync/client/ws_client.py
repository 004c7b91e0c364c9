# client/ws_client.py
# =====================================================================================
# PURPOSE
#   Client side of the shared session store contract over one WebSocket:
#     - Maintains ONE persistent connection to the store server
#     - Reconnects after a fixed delay if the connection drops
#     - Matches every `store.result` reply to its request by id
#     - Turns every transport problem into StoreUnavailableError so the
#       reconciliation loop can mark the view degraded and keep polling
#
# KEY TECHNOLOGIES
#   - websockets: lightweight WS library for asyncio
#   - asyncio: Queue for outbound messages; Futures for pending requests
# =====================================================================================

import asyncio
import itertools
import json
import logging
from typing import Any, Dict, List, Optional

import websockets

from quizsync.config import RECONNECT_DELAY, REQUEST_TIMEOUT
from quizsync.errors import ERROR_KINDS, StoreError, StoreUnavailableError, SubmissionAnomalyError
from quizsync.server.quiz_types import (
    Answer, GameStateRecord, Participant, Phase, Question, SubmissionResult
)
from quizsync.server.session_store import SessionStore

logger = logging.getLogger("quizsync.ws")


def unwrap_reply(action: str, reply: dict) -> Any:
    """Return the `data` of a store reply or raise the matching error."""
    if reply.get("success"):
        return reply.get("data")

    kind = reply.get("kind", "store")
    message = reply.get("error") or f"{action} failed"
    if kind == "anomaly":
        data = reply.get("data")
        raise SubmissionAnomalyError(message, SubmissionResult.from_dict(data) if data else None)
    raise ERROR_KINDS.get(kind, StoreError)(message)


class WSClient:
    """Transport-only request/response client.

    Parameters
    ----------
    url : str
        Full ws:// or wss:// URL of the store endpoint.
        Example: ws://127.0.0.1:8000/ws
    request_timeout : float
        Seconds to wait for a reply before the call fails.
    """

    def __init__(self, url: str, request_timeout: float = REQUEST_TIMEOUT,
                 reconnect_delay: float = RECONNECT_DELAY):
        self.url = url
        self.request_timeout = request_timeout
        self.reconnect_delay = reconnect_delay
        self.send_q: asyncio.Queue[dict] = asyncio.Queue()
        self._pending: Dict[int, asyncio.Future] = {}
        self._ids = itertools.count(1)
        self._connected = asyncio.Event()
        self._stop = False

    @property
    def is_connected(self) -> bool:
        return self._connected.is_set()

    async def start(self):
        """Run until stop() is called, keeping a live connection.

        Polling already retries at a fixed cadence, so reconnects use a fixed
        delay too instead of backing off.
        """
        while not self._stop:
            try:
                async with websockets.connect(
                    self.url,
                    ping_interval=20,
                    ping_timeout=10,
                    close_timeout=5,
                    max_size=2**23,
                ) as ws:
                    self._connected.set()
                    logger.info(f"[ws] connected to {self.url}")
                    sender = asyncio.create_task(self._sender(ws))
                    receiver = asyncio.create_task(self._receiver(ws))
                    pending = set()
                    try:
                        done, pending = await asyncio.wait(
                            {sender, receiver},
                            return_when=asyncio.FIRST_COMPLETED,
                        )
                        for task in done:
                            if not task.cancelled() and task.exception():
                                logger.warning(f"[ws] task failed: {task.exception()}")
                    finally:
                        for t in pending:
                            t.cancel()
                        await asyncio.gather(*pending, return_exceptions=True)
            except (OSError, asyncio.TimeoutError, websockets.WebSocketException) as e:
                logger.warning(f"[ws] connection error: {e}")
            finally:
                self._connected.clear()
                self._fail_pending(StoreUnavailableError("Connection to the store was lost."))

            if not self._stop:
                await asyncio.sleep(self.reconnect_delay)

    async def wait_until_connected(self, timeout: float = 5.0) -> bool:
        try:
            await asyncio.wait_for(self._connected.wait(), timeout)
            return True
        except asyncio.TimeoutError:
            return False

    async def _receiver(self, ws):
        """Resolve the pending future for every reply that comes in."""
        async for raw in ws:
            try:
                msg = json.loads(raw)
            except json.JSONDecodeError:
                logger.warning(f"[ws] dropping malformed frame: {raw!r:.80}")
                continue
            if msg.get("type") != "store.result":
                logger.debug(f"[ws] ignoring message type={msg.get('type')}")
                continue
            future = self._pending.pop(msg.get("id"), None)
            if future is not None and not future.done():
                future.set_result(msg)

    async def _sender(self, ws):
        while True:
            payload = await self.send_q.get()
            try:
                await ws.send(json.dumps(payload))
            finally:
                self.send_q.task_done()

    def _fail_pending(self, exc: Exception) -> None:
        for future in self._pending.values():
            if not future.done():
                future.set_exception(exc)
        self._pending.clear()
        # requests queued for a dead socket would be answered by nobody
        while not self.send_q.empty():
            self.send_q.get_nowait()
            self.send_q.task_done()

    async def call(self, action: str, **params) -> Any:
        """Send one store action and return its `data`, raising on failure."""
        if not self.is_connected:
            raise StoreUnavailableError("Not connected to the store.")

        request_id = next(self._ids)
        future = asyncio.get_running_loop().create_future()
        self._pending[request_id] = future
        await self.send_q.put({
            "type": "store.call",
            "id": request_id,
            "action": action,
            "params": {k: v for k, v in params.items() if v is not None},
        })
        try:
            reply = await asyncio.wait_for(future, self.request_timeout)
        except asyncio.TimeoutError as e:
            raise StoreUnavailableError(f"{action} timed out after {self.request_timeout}s") from e
        finally:
            self._pending.pop(request_id, None)

        return unwrap_reply(action, reply)

    def stop(self):
        """Signal the reconnect loop to exit (used on UI shutdown)."""
        self._stop = True


class RemoteSessionStore(SessionStore):
    """`SessionStore` backed by a store server reached through `WSClient`."""

    def __init__(self, client: WSClient):
        self.client = client

    async def get_roster(self, session_id: Optional[str] = None) -> List[Participant]:
        data = await self.client.call("getParticipants", sessionId=session_id)
        return [Participant.from_dict(item) for item in data]

    async def add_participant(
        self, name: str, session_id: Optional[str] = None, participant_id: Optional[str] = None
    ) -> Participant:
        data = await self.client.call(
            "addParticipant", name=name, sessionId=session_id, participantId=participant_id
        )
        return Participant.from_dict(data)

    async def get_questions(self) -> List[Question]:
        data = await self.client.call("getQuestions")
        return [Question.from_dict(item) for item in data]

    async def submit_answer(
        self,
        participant_id: str,
        question_id: int,
        selected_option: int,
        response_time: float,
        session_id: Optional[str] = None,
    ) -> SubmissionResult:
        data = await self.client.call(
            "submitAnswer",
            participantId=participant_id,
            questionId=question_id,
            selectedOption=selected_option,
            responseTime=response_time,
            sessionId=session_id,
        )
        return SubmissionResult.from_dict(data)

    async def get_answers(self, question_id: int, session_id: Optional[str] = None) -> List[Answer]:
        data = await self.client.call("getAnswers", questionId=question_id, sessionId=session_id)
        return [Answer.from_dict(item) for item in data]

    async def get_game_state(self) -> GameStateRecord:
        return GameStateRecord.from_dict(await self.client.call("getGameState"))

    async def set_game_state(
        self,
        phase: Phase,
        current_question_index: int,
        time_budget: int,
        session_id: Optional[str] = None,
        phase_started_at: Optional[float] = None,
    ) -> GameStateRecord:
        data = await self.client.call(
            "updateGameState",
            state=Phase(phase).value,
            currentQuestionIndex=current_question_index,
            maxTimer=time_budget,
            sessionId=session_id,
            updatedAt=phase_started_at,
        )
        return GameStateRecord.from_dict(data)

    async def reset_session(self) -> GameStateRecord:
        return GameStateRecord.from_dict(await self.client.call("resetGame"))
