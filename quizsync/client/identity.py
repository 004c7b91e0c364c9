"""Local "who am I" cache for players.

Only a convenience: the store is the source of truth, so a cached identity
is reused only when the live session still lists that participant.
"""
import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

logger = logging.getLogger("quizsync.identity")


@dataclass
class PlayerIdentity:
    participant_id: str
    name: str
    session_id: str

    def to_dict(self) -> dict:
        return {"participantId": self.participant_id, "name": self.name, "sessionId": self.session_id}

    @classmethod
    def from_dict(cls, data: dict) -> "PlayerIdentity":
        return cls(
            participant_id=data["participantId"],
            name=data["name"],
            session_id=data["sessionId"],
        )


class IdentityCache:
    def __init__(self, path: Path | str):
        self.path = Path(path)

    def load(self) -> Optional[PlayerIdentity]:
        if not self.path.exists():
            return None
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                return PlayerIdentity.from_dict(json.load(f))
        except (OSError, json.JSONDecodeError, KeyError) as e:
            logger.warning(f"[identity] ignoring unreadable cache {self.path}: {e}")
            return None

    def save(self, identity: PlayerIdentity) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, "w", encoding="utf-8") as f:
            json.dump(identity.to_dict(), f, indent=2)

    def clear(self) -> None:
        self.path.unlink(missing_ok=True)
