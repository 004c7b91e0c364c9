"""Host TUI: lobby, question control, live answers and rankings."""
import logging
from typing import Dict, Optional

from textual.app import App, ComposeResult
from textual.widgets import Header, Footer, Static, Button, Input, Select
from textual.containers import Horizontal, Vertical

from quizsync.config import RANKING_TOP_COUNT, TIMER_OPTIONS, Settings
from quizsync.errors import QuizSyncError
from quizsync.server.quiz_types import Phase
from quizsync.server.scoring import accuracy_rate, podium, rank_change_text, top_participants
from quizsync.client.common import HostInterface
from quizsync.client.plot_widgets import AnswerHistogramPlot, PercentCorrectPlot
from quizsync.client.sound_cues import CueService
from quizsync.client.timedisplay import TimeDisplay
from quizsync.client.utils import generate_option_labels
from quizsync.client.ws_client import RemoteSessionStore, WSClient

logger = logging.getLogger("quizsync.host")

LABELS = generate_option_labels(4)


class HostTUI(App):
    """Quiz host interface."""

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
    }

    #session-info {
        height: auto;
        background: $panel;
        padding: 0 1;
        color: green;
    }

    #login {
        height: auto;
        padding: 1 0;
    }

    #lobby {
        height: 1fr;
        min-height: 6;
        border: solid cyan;
        padding: 0 1;
    }

    #current {
        height: auto;
        min-height: 3;
        color: cyan;
        padding: 0 1;
        background: $panel;
    }

    #timer {
        height: 1;
        content-align: right middle;
    }

    #plots {
        height: 14;
    }

    #plot, #accuracy {
        width: 1fr;
        border: solid white;
    }

    Button {
        margin: 0 1;
    }

    #timer-select {
        width: 20;
    }
    """

    def __init__(self, settings: Settings):
        super().__init__()
        self.settings = settings
        self.ws_client = WSClient(f"{settings.server_url}/ws", request_timeout=settings.request_timeout)
        self.host = HostInterface(
            RemoteSessionStore(self.ws_client),
            settings=settings,
            cues=CueService(self.bell),
        )
        self.ws_worker = None
        self._busy = False
        self._error = ""
        self._accuracy: Dict[int, int] = {}

    def compose(self) -> ComposeResult:
        yield Header()
        yield Static("Quiz Host Interface", id="header")
        yield Static("Connecting...", id="status")
        yield Static("", id="session-info")

        with Horizontal(id="login"):
            yield Input(id="password", password=True, placeholder="Teacher password")
            yield Button("Enter", id="enter", variant="primary")

        with Horizontal(id="controls"):
            yield Select(
                [(f"{seconds}s per question", seconds) for seconds in TIMER_OPTIONS],
                id="timer-select",
                prompt="Question timers",
            )
            yield Button("Start Quiz", id="start-quiz", disabled=True)
            yield Button("Show Result", id="reveal-result", disabled=True)
            yield Button("Show Ranking", id="reveal-ranking", disabled=True)
            yield Button("Next", id="next-question", disabled=True)
            yield Button("Reset", id="reset", variant="error", disabled=True)

        yield Static("", id="current")
        yield TimeDisplay(self.host.remaining, id="timer")
        with Vertical(id="lobby"):
            yield Static("", id="player-list")
        with Horizontal(id="plots"):
            yield AnswerHistogramPlot(id="plot")
            yield PercentCorrectPlot(id="accuracy")
        yield Footer()

    async def on_mount(self) -> None:
        self.query_one("#controls").display = False
        self.ws_worker = self.run_worker(self.ws_client.start(), name="websocket", group="system")
        self.set_interval(0.25, self._refresh)
        self.query_one("#password", Input).focus()

    # ---------- Actions ----------

    async def _run(self, action, *args) -> None:
        """Run one host action, reporting failures in the status line."""
        if self._busy:
            return
        self._busy = True
        self._error = ""
        try:
            await action(*args)
        except QuizSyncError as e:
            logger.warning(f"[host] {getattr(action, '__name__', action)} failed: {e}")
            self._error = str(e)
        finally:
            self._busy = False
        self._refresh()

    def _spawn(self, action, *args) -> None:
        self.run_worker(self._run(action, *args), group="actions")

    async def _enter(self) -> None:
        password = self.query_one("#password", Input).value
        if not self.host.authenticate(password):
            self._error = "Wrong password"
            return
        if not await self.ws_client.wait_until_connected(self.settings.request_timeout):
            self._error = "Store server not reachable, try again"
            return
        await self.host.enter()
        self.query_one("#login").display = False
        self.query_one("#controls").display = True

    def _countdown_tick(self, count: int) -> None:
        text = f"Starting in {count}..." if count else "Go!"
        self.query_one("#current", Static).update(f"[b]{text}")

    def on_button_pressed(self, event: Button.Pressed) -> None:
        button_id = event.button.id
        if button_id == "enter":
            self._spawn(self._enter)
        elif button_id == "start-quiz":
            self._spawn(self.host.start_game, self._countdown_tick)
        elif button_id == "reveal-result":
            self._spawn(self.host.reveal_result)
        elif button_id == "reveal-ranking":
            self._spawn(self.host.reveal_ranking)
        elif button_id == "next-question":
            self._spawn(self.host.next_question)
        elif button_id == "reset":
            self._accuracy.clear()
            self._spawn(self.host.reset_session)

    def on_input_submitted(self, event: Input.Submitted) -> None:
        if event.input.id == "password":
            self._spawn(self._enter)

    def on_select_changed(self, event: Select.Changed) -> None:
        if event.select.id == "timer-select":
            self.host.time_budget = None if event.value is Select.BLANK else int(event.value)
            logger.info(f"[host] time budget override {self.host.time_budget}")

    # ---------- Rendering ----------

    def _refresh(self) -> None:
        host = self.host
        phase = host.phase
        status = self.query_one("#status", Static)
        if not self.ws_client.is_connected:
            status.update("[red]Disconnected from store, reconnecting...")
        elif not host.connected:
            status.update(f"[yellow]Sync degraded: {host.view.last_error}")
        elif self._error:
            status.update(f"[red]{self._error}")
        elif host.authenticated:
            status.update(f"[green]{phase.value}")
        else:
            status.update("Enter the teacher password")

        if host.record is not None:
            self.query_one("#session-info", Static).update(
                f"Session: {host.record.session_id}    Players: {len(host.participants())}"
            )

        machine = host.machine
        self.query_one("#start-quiz", Button).disabled = (
            self._busy or phase is not Phase.LOBBY or not host.participants()
        )
        self.query_one("#reveal-result", Button).disabled = self._busy or not machine.can_advance(Phase.RESULT)
        self.query_one("#reveal-ranking", Button).disabled = self._busy or not machine.can_advance(Phase.RANKING)
        next_btn = self.query_one("#next-question", Button)
        next_btn.disabled = self._busy or phase is not Phase.RANKING
        next_btn.label = "Next Question" if machine.has_next_question() else "Final Results"
        self.query_one("#reset", Button).disabled = self._busy or phase is Phase.WAITING

        self._render_current()
        self._render_players()
        self._render_plots()

    def _render_current(self) -> None:
        host = self.host
        question = host.current_question
        current = self.query_one("#current", Static)
        if host.phase is Phase.COUNTDOWN:
            return
        if host.phase in (Phase.QUIZ, Phase.RESULT) and question is not None:
            lines = [f"Q{host.machine.question_index + 1}/{len(host.questions)}: {question.text}"]
            for index, option in enumerate(question.options):
                mark = " ✓" if host.phase is Phase.RESULT and index == question.correct_option_index else ""
                lines.append(f"  {LABELS[index]}. {option}{mark}")
            lines.append(f"Answered: {host.answered_count}/{len(host.participants())}")
            current.update("\n".join(lines))
        elif host.phase is Phase.LOBBY:
            current.update("Waiting for players to join...")
        elif host.phase is Phase.FINAL:
            places = podium(host.participants())
            current.update("Final Results\n" + "\n".join(
                f"  {i + 1}. {r.participant.name} ({r.participant.score})" if r else f"  {i + 1}. -"
                for i, r in enumerate(places)
            ))
        else:
            current.update("")

    def _render_players(self) -> None:
        host = self.host
        player_list = self.query_one("#player-list", Static)
        if host.phase in (Phase.RANKING, Phase.FINAL):
            rows = host.rankings()[:RANKING_TOP_COUNT]
            player_list.update("\n".join(
                f"{r.rank}. {r.participant.name:<20} {r.participant.score:>6}  {rank_change_text(r.rank_delta)}"
                for r in rows
            ) or "No players")
            return
        if host.phase is Phase.QUIZ or host.phase is Phase.RESULT:
            scores = host.recent_scores()
            rows = top_participants(host.participants(), len(host.participants()))
            player_list.update("\n".join(
                f"{r.participant.name:<20} {r.participant.score:>6}"
                + (f"  +{scores[r.participant.id]}" if r.participant.id in scores else "")
                for r in rows
            ) or "No players")
            return
        names = [p.name for p in host.participants()]
        player_list.update("\n".join(names) if names else "No players yet...")

    def _render_plots(self) -> None:
        host = self.host
        question = host.current_question
        if question is None or host.phase not in (Phase.QUIZ, Phase.RESULT):
            return
        self.query_one("#plot", AnswerHistogramPlot).show_stats(
            LABELS, host.option_stats(), reveal=host.phase is Phase.RESULT
        )
        if host.phase is Phase.RESULT:
            self._accuracy[question.id] = accuracy_rate(host.view.answers_for(question.id))
            self.query_one("#accuracy", PercentCorrectPlot).set_series(
                [self._accuracy[qid] for qid in sorted(self._accuracy)]
            )

    async def on_unmount(self) -> None:
        self.host.close()
        self.ws_client.stop()
        if self.ws_worker and not self.ws_worker.is_finished:
            self.ws_worker.cancel()


def run(settings: Optional[Settings] = None) -> None:
    HostTUI(settings or Settings.from_env()).run()
