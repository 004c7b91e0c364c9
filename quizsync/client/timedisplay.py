from typing import Callable, Optional

from textual.widgets import Static
from textual.reactive import reactive

from quizsync.client.utils import format_remaining


class TimeDisplay(Static):
    """Question countdown (MM:SS).

    The widget never counts on its own: every tick it asks ``source`` for the
    remaining seconds, which are derived from the published phase start.
    """

    remaining: int = reactive(0)

    def __init__(self, source: Optional[Callable[[], int]] = None, **kwargs):
        super().__init__(**kwargs)
        self.source = source

    def on_mount(self) -> None:
        self._ticker = self.set_interval(0.2, self._tick)
        self._render_remaining()

    def _tick(self) -> None:
        self.remaining = self.source() if self.source else 0

    def watch_remaining(self, value: int) -> None:
        self._render_remaining()

    def _render_remaining(self) -> None:
        text = format_remaining(self.remaining)
        self.update(f"[red]{text}" if 0 < self.remaining <= 5 else text)
