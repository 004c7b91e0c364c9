"""Textual TUI for quiz participants/students."""
import logging
from typing import Optional

from rich.text import Text
from textual.app import App, ComposeResult
from textual.widgets import Header, Footer, Static, Button, Input
from textual.containers import Horizontal, Vertical

from quizsync.config import OPTION_COUNT, RANKING_TOP_COUNT, Settings
from quizsync.errors import QuizSyncError, SubmissionRejectedError
from quizsync.server.quiz_types import Phase
from quizsync.server.scoring import podium, rank_change_text
from quizsync.client.common import PlayerInterface
from quizsync.client.identity import IdentityCache
from quizsync.client.sound_cues import CueService
from quizsync.client.timedisplay import TimeDisplay
from quizsync.client.utils import clean_name, generate_option_labels
from quizsync.client.ws_client import RemoteSessionStore, WSClient

logger = logging.getLogger("quizsync.student")

LABELS = generate_option_labels(OPTION_COUNT)


class StudentTUI(App):
    """Quiz participant interface for joining and answering questions."""

    CSS = """
    Screen {
        layout: vertical;
        padding: 1;
    }

    #header {
        height: 3;
        content-align: center middle;
        background: blue;
    }

    #status {
        height: 1;
        color: yellow;
        margin-bottom: 1;
    }

    #join-form {
        height: auto;
    }

    Input {
        width: 1fr;
        border: solid green;
    }

    Input:focus {
        border: solid yellow;
    }

    #prompt {
        height: auto;
        min-height: 3;
        margin-top: 1;
        color: cyan;
    }

    #timer {
        height: 1;
        content-align: right middle;
    }

    #options {
        height: auto;
        min-height: 6;
    }

    #options Button {
        width: 100%;
        margin: 0 0 1 0;
    }

    #board {
        height: 1fr;
        border: solid cyan;
        padding: 0 1;
    }
    """

    def __init__(self, settings: Settings):
        super().__init__()
        self.settings = settings
        self.ws_client = WSClient(f"{settings.server_url}/ws", request_timeout=settings.request_timeout)
        self.player = PlayerInterface(
            RemoteSessionStore(self.ws_client),
            settings=settings,
            cues=CueService(self.bell),
            identity_cache=IdentityCache(settings.identity_path),
        )
        self.ws_worker = None
        self._error = ""

    def compose(self) -> ComposeResult:
        yield Header()
        yield Static("Quiz Student Interface", id="header")
        yield Static("Connecting...", id="status")

        with Horizontal(id="join-form"):
            yield Input(id="player_name", placeholder="Enter your name")
            yield Button("Join Quiz", id="join", variant="primary")

        yield Static("", id="prompt")
        yield TimeDisplay(self.player.remaining, id="timer")
        with Vertical(id="options"):
            for index in range(OPTION_COUNT):
                yield Button(LABELS[index], id=f"answer_{index}", disabled=True)
        yield Static("", id="board")
        yield Footer()

    async def on_mount(self) -> None:
        self.query_one("#options").display = False
        self.ws_worker = self.run_worker(self.ws_client.start(), name="websocket", group="system")
        self.run_worker(self._resume(), group="actions")
        self.set_interval(0.2, self._refresh)
        self.query_one("#player_name", Input).focus()

    async def _resume(self) -> None:
        if not await self.ws_client.wait_until_connected(self.settings.request_timeout):
            return
        try:
            participant = await self.player.resume()
        except QuizSyncError as e:
            logger.warning(f"[student] could not resume: {e}")
            return
        if participant is not None:
            self.query_one("#player_name", Input).value = participant.name

    # ---------- Actions ----------

    async def _join(self) -> None:
        ok, name = clean_name(self.query_one("#player_name", Input).value)
        if not ok:
            self._error = name
            return
        self._error = ""
        if not await self.ws_client.wait_until_connected(self.settings.request_timeout):
            self._error = "Store server not reachable, try again"
            return
        try:
            await self.player.join(name)
        except QuizSyncError as e:
            self._error = str(e)

    async def _answer(self, index: int) -> None:
        self._error = ""
        try:
            await self.player.submit(index)
        except SubmissionRejectedError as e:
            self._error = str(e)
        except QuizSyncError as e:
            logger.warning(f"[student] submission failed: {e}")
            self._error = f"Could not send your answer ({e}), try again"

    def on_button_pressed(self, event: Button.Pressed) -> None:
        button_id = event.button.id or ""
        if button_id == "join":
            self.run_worker(self._join(), group="actions", exclusive=True)
        elif button_id.startswith("answer_"):
            self.run_worker(self._answer(int(button_id.split("_")[1])), group="actions")

    def on_input_submitted(self, event: Input.Submitted) -> None:
        if event.input.id == "player_name":
            self.run_worker(self._join(), group="actions", exclusive=True)

    # ---------- Rendering ----------

    def _refresh(self) -> None:
        player = self.player
        joined = player.participant is not None
        self.query_one("#join-form").display = not joined
        self._render_status()
        self._render_prompt()
        self._render_options()
        self._render_board()

    def _render_status(self) -> None:
        player = self.player
        status = self.query_one("#status", Static)
        if not self.ws_client.is_connected:
            status.update("[red]Disconnected, reconnecting...")
        elif self._error:
            status.update(f"[red]{self._error}")
        elif player.removed and player.participant is None:
            status.update("[yellow]The host started a new session. Join again.")
        elif not player.connected:
            status.update("[yellow]Connection unstable, showing last known state")
        elif player.participant is not None:
            status.update(f"[green]{player.participant.name} · {player.score} pts")
        else:
            status.update("Enter your name to join")

    def _render_prompt(self) -> None:
        player = self.player
        prompt = self.query_one("#prompt", Static)
        question = player.current_question
        if player.participant is None:
            prompt.update("")
        elif player.phase is Phase.LOBBY:
            names = ", ".join(p.name for p in player.participants())
            prompt.update(f"Lobby - waiting for the host to start...\nPlayers: {names or 'None'}")
        elif player.phase in (Phase.QUIZ, Phase.RESULT) and question is not None:
            header = f"Q{player.machine.question_index + 1}/{len(player.questions)}: {question.text}"
            result = player.last_result
            if player.phase is Phase.RESULT:
                correct = LABELS[question.correct_option_index]
                if result is None:
                    header += f"\nNo answer. Correct answer: {correct}"
                elif result.is_correct:
                    header += f"\nCorrect! +{result.score}"
                else:
                    header += f"\nIncorrect. Correct answer: {correct}"
            elif player.selected_option is not None:
                header += f"\nAnswer {LABELS[player.selected_option]} sent, waiting for results..."
            prompt.update(header)
        elif player.phase is Phase.RANKING:
            prompt.update("Rankings")
        elif player.phase is Phase.FINAL:
            prompt.update("Quiz Finished!")
        else:
            prompt.update("")

    def _render_options(self) -> None:
        player = self.player
        question = player.current_question
        options = self.query_one("#options")
        visible = player.participant is not None and player.phase in (Phase.QUIZ, Phase.RESULT)
        options.display = visible
        if not visible or question is None:
            return
        can_answer = (
            player.phase is Phase.QUIZ
            and player.selected_option is None
            and player.remaining() > 0
        )
        for index, option in enumerate(question.options):
            button = self.query_one(f"#answer_{index}", Button)
            mark = ""
            if player.phase is Phase.RESULT and index == question.correct_option_index:
                mark = " ✓"
            elif index == player.selected_option:
                mark = " ●"
            button.label = f"{LABELS[index]}) {option}{mark}"
            button.disabled = not can_answer

    def _render_board(self) -> None:
        player = self.player
        board = self.query_one("#board", Static)
        if player.participant is None or player.phase not in (Phase.RANKING, Phase.FINAL):
            board.update("")
            return
        text = Text()
        if player.phase is Phase.FINAL:
            for place, ranked in enumerate(podium(player.participants()), start=1):
                if ranked is not None:
                    text.append(f"{place}. {ranked.participant.name}  {ranked.participant.score}\n", style="bold")
        else:
            for ranked in player.rankings()[:RANKING_TOP_COUNT]:
                style = "bold green" if ranked.participant.id == player.participant.id else ""
                text.append(
                    f"{ranked.rank}. {ranked.participant.name:<20} {ranked.participant.score:>6}  "
                    f"{rank_change_text(ranked.rank_delta)}\n",
                    style=style,
                )
        mine = player.my_rank()
        if mine is not None:
            text.append(f"\nYour rank: {mine.rank} of {len(player.participants())}", style="cyan")
        board.update(text)

    async def on_unmount(self) -> None:
        self.player.close()
        self.ws_client.stop()
        if self.ws_worker and not self.ws_worker.is_finished:
            self.ws_worker.cancel()


def run(settings: Optional[Settings] = None) -> None:
    StudentTUI(settings or Settings.from_env()).run()
