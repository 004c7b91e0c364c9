"""Runtime settings and game constants."""
import os
from dataclasses import dataclass, field
from pathlib import Path

# Scoring
BASE_SCORE = 500       # awarded for any correct answer
MAX_BONUS = 500        # time bonus for an instant answer
WRONG_SCORE = 0

# Game
DEFAULT_TIMER = 20     # seconds per question
TIMER_OPTIONS = (10, 15, 20, 30)
COUNTDOWN_DURATION = 3
MAX_PARTICIPANTS = 50
MAX_NAME_LENGTH = 20
OPTION_COUNT = 4
RANKING_TOP_COUNT = 5

# Poll cadences (seconds)
POLL_INTERVAL_LOBBY = 3.0
POLL_INTERVAL_HOST_ANSWERS = 0.5
POLL_INTERVAL_HOST_ROSTER = 1.0
POLL_INTERVAL_HOST_STATE = 1.0
POLL_INTERVAL_PLAYER_STATE = 0.2
POLL_INTERVAL_RESULT = 1.0

# Transport
REQUEST_TIMEOUT = 5.0
RECONNECT_DELAY = 1.0
SUBMIT_ATTEMPTS = 3
JOIN_ATTEMPTS = 3

DEFAULT_QUESTIONS = Path(__file__).parent / "quizzes" / "sample.json"


@dataclass
class Settings:
    """Environment driven settings shared by server and clients."""
    teacher_password: str = "teacher123"
    server_url: str = "ws://127.0.0.1:8000"
    host: str = "0.0.0.0"
    port: int = 8000
    questions_path: Path = DEFAULT_QUESTIONS
    log_dir: Path = Path("logs")
    request_timeout: float = REQUEST_TIMEOUT
    time_budget: int = DEFAULT_TIMER
    identity_path: Path = field(default_factory=lambda: Path.home() / ".quizsync" / "player.json")

    @classmethod
    def from_env(cls, environ=None) -> "Settings":
        env = os.environ if environ is None else environ
        defaults = cls()
        return cls(
            teacher_password=env.get("QUIZSYNC_TEACHER_PASSWORD", defaults.teacher_password),
            server_url=env.get("QUIZSYNC_SERVER", defaults.server_url),
            host=env.get("QUIZSYNC_HOST", defaults.host),
            port=int(env.get("QUIZSYNC_PORT", defaults.port)),
            questions_path=Path(env.get("QUIZSYNC_QUESTIONS", defaults.questions_path)),
            log_dir=Path(env.get("QUIZSYNC_LOG_DIR", defaults.log_dir)),
            request_timeout=float(env.get("QUIZSYNC_REQUEST_TIMEOUT", defaults.request_timeout)),
            time_budget=int(env.get("QUIZSYNC_TIME_BUDGET", defaults.time_budget)),
            identity_path=Path(env.get("QUIZSYNC_IDENTITY", defaults.identity_path)),
        )
