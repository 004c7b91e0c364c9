"""Sound cues.

An explicitly constructed service instead of a module-level singleton. The
terminal has exactly one sound, the bell, so each cue maps to a number of
bells (zero means silent). ``init`` runs on the first user interaction and
``teardown`` on session reset.
"""
import logging
from typing import Callable

logger = logging.getLogger("quizsync.cues")

CUE_BELLS = {
    "join": 1,
    "click": 0,
    "tick": 1,
    "correct": 1,
    "wrong": 2,
    "result": 1,
    "winner": 3,
}


class CueService:
    def __init__(self, bell: Callable[[], None], enabled: bool = True):
        self._bell = bell
        self.enabled = enabled
        self.ready = False

    def init(self) -> None:
        if not self.ready:
            logger.debug("[cues] ready")
        self.ready = True

    def play(self, cue: str) -> int:
        """Ring the bell for ``cue``. Returns how many bells rang."""
        if not (self.ready and self.enabled):
            return 0
        count = CUE_BELLS.get(cue)
        if count is None:
            raise KeyError(f"Unknown cue: {cue}")
        for _ in range(count):
            self._bell()
        return count

    def teardown(self) -> None:
        self.ready = False


def null_cues() -> CueService:
    return CueService(bell=lambda: None, enabled=False)
