import logging
import random
import threading
import time
import uuid
from typing import Dict, Optional

from .session import Session
from .settings import GameSettings


logger = logging.getLogger(__name__)


def generate_session_id() -> str:
    return f"game_{int(time.time() * 1000)}_{uuid.uuid4().hex[:6]}"


class SessionRegistry:
    """Owns the active sessions and the player -> session index."""

    def __init__(self, settings: GameSettings, scheduler, store, rng: Optional[random.Random] = None):
        self._settings = settings
        self._scheduler = scheduler
        self._store = store
        self._rng = rng
        self._sessions: Dict[str, Session] = {}
        self._by_player: Dict[object, str] = {}
        self._lock = threading.RLock()

    def __len__(self):
        with self._lock:
            return len(self._sessions)

    def __contains__(self, session_id):
        with self._lock:
            return session_id in self._sessions

    def create_session(self, first, second) -> Session:
        """Register a new session for two queue entries. Call ``start()`` on it to begin."""
        session = Session(
            generate_session_id(),
            first,
            second,
            settings=self._settings,
            scheduler=self._scheduler,
            store=self._store,
            on_cleanup=self.destroy,
            rng=self._rng,
        )
        with self._lock:
            self._sessions[session.session_id] = session
            for player_id in session.player_ids:
                self._by_player[player_id] = session.session_id
        logger.info(
            f"[session-create] session={session.session_id} "
            f"players={session.player_ids[0]},{session.player_ids[1]}"
        )
        return session

    def get(self, session_id) -> Optional[Session]:
        with self._lock:
            return self._sessions.get(session_id)

    def session_for_player(self, player_id) -> Optional[Session]:
        with self._lock:
            session_id = self._by_player.get(player_id)
            return self._sessions.get(session_id) if session_id else None

    def owns_active_session(self, player_id) -> bool:
        session = self.session_for_player(player_id)
        return session is not None and not session.finished

    def destroy(self, session_id) -> bool:
        with self._lock:
            session = self._sessions.pop(session_id, None)
            if session is None:
                return False
            for player_id in session.player_ids:
                # A player may already be indexed to a newer session
                if self._by_player.get(player_id) == session_id:
                    del self._by_player[player_id]
        session.close()
        logger.info(f"[session-cleanup] session={session_id}")
        return True

    def on_disconnect(self, player_id) -> bool:
        """Forfeit the player's live session, if any. Returns True when a forfeit happened."""
        session = self.session_for_player(player_id)
        if session is None or session.finished:
            return False
        return session.forfeit(player_id)

    def shutdown(self) -> None:
        with self._lock:
            session_ids = list(self._sessions)
        for session_id in session_ids:
            self.destroy(session_id)
