"""JSON file storage for game sessions.

All sessions live in one file under a configurable base directory:

    {base}/
      sessions.json   ← list of GameSession records, most recently played first

Each record is written wholesale; the last writer wins. A session's history is
capped at `max_history` messages on every save. When a `capacity` (bytes) is
set and the document would exceed it, the oldest sessions have their history
cut to the last `prune_to` messages, one session at a time, until the write
fits.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from pathlib import Path

from storyspawn.errors import StorageError
from storyspawn.models import GameSession

logger = logging.getLogger(__name__)

MAX_HISTORY_PER_SESSION = 50
PRUNED_HISTORY = 10


class SessionStore:
    def __init__(
        self,
        base_path: Path,
        max_history: int = MAX_HISTORY_PER_SESSION,
        prune_to: int = PRUNED_HISTORY,
        capacity: int | None = None,
    ) -> None:
        self._base = base_path
        self._base.mkdir(parents=True, exist_ok=True)
        self._path = base_path / "sessions.json"
        self._max_history = max_history
        self._prune_to = prune_to
        self._capacity = capacity

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _read(self) -> list[GameSession]:
        if not self._path.is_file():
            return []
        return [GameSession.model_validate(s) for s in json.loads(self._path.read_text())]

    def _serialise(self, sessions: list[GameSession]) -> str:
        return json.dumps([s.to_wire() for s in sessions], indent=2)

    def _try_write(self, sessions: list[GameSession]) -> bool:
        text = self._serialise(sessions)
        if self._capacity is not None and len(text.encode()) > self._capacity:
            return False
        self._path.write_text(text)
        return True

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    def list_sessions(self) -> list[GameSession]:
        """All sessions, most recently played first."""
        return sorted(self._read(), key=lambda s: s.last_played, reverse=True)

    def get_session(self, session_id: str) -> GameSession | None:
        return next((s for s in self._read() if s.id == session_id), None)

    def save_session(self, session: GameSession) -> GameSession:
        """Upsert a session at the front of the list. Returns the stored record."""
        if len(session.history) > self._max_history:
            session = session.model_copy(update={"history": session.history[-self._max_history:]})
        if not session.last_played:
            session = session.model_copy(update={"last_played": _now()})

        others = [s for s in self.list_sessions() if s.id != session.id]
        sessions = [session, *others]
        if self._try_write(sessions):
            return session

        logger.warning("Session storage over capacity, pruning old session histories")
        for i in range(len(sessions) - 1, -1, -1):
            if len(sessions[i].history) <= self._prune_to:
                continue
            sessions[i] = sessions[i].model_copy(
                update={"history": sessions[i].history[-self._prune_to:]}
            )
            if self._try_write(sessions):
                logger.info("Saved after pruning session %r", sessions[i].title)
                return sessions[0]

        logger.error("Failed to save session %s even after pruning all histories", session.id)
        raise StorageError(f"Session {session.id} does not fit in storage")

    def delete_session(self, session_id: str) -> bool:
        sessions = self._read()
        remaining = [s for s in sessions if s.id != session_id]
        if len(remaining) == len(sessions):
            return False
        self._path.write_text(self._serialise(remaining))
        return True

    def rename_session(self, session_id: str, title: str) -> GameSession | None:
        sessions = self._read()
        for i, s in enumerate(sessions):
            if s.id == session_id:
                sessions[i] = s.model_copy(update={"title": title})
                self._path.write_text(self._serialise(sessions))
                return sessions[i]
        return None


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()
