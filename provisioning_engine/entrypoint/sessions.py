# provisioning_engine/entrypoint/sessions.py

import secrets
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, Optional


@dataclass
class Session:
    session_id: str
    username: str
    expires_at: datetime


class SessionStore:
    """Authenticated sessions issued by the listener, expiring after a fixed timeout."""

    def __init__(self, timeout_minutes: int = 30, clock: Optional[Callable[[], datetime]] = None):
        self.timeout = timedelta(minutes=timeout_minutes)
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._sessions: Dict[str, Session] = {}
        self._lock = threading.Lock()

    def create(self, username: str) -> Session:
        session = Session(
            session_id=secrets.token_urlsafe(32),
            username=username,
            expires_at=self._clock() + self.timeout,
        )
        with self._lock:
            self._sessions[session.session_id] = session
        return session

    def get(self, session_id: Optional[str]) -> Optional[Session]:
        """Valid session, or None if unknown or expired (expired ones are dropped)."""
        if not session_id:
            return None
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                return None
            if session.expires_at <= self._clock():
                del self._sessions[session_id]
                return None
            return session

    def revoke(self, session_id: str) -> None:
        with self._lock:
            self._sessions.pop(session_id, None)
