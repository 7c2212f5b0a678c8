"""
Session Store Service - keeps live intake sessions in memory.

Sessions never outlive the process; each one expires after
SESSION_TTL_HOURS of inactivity.
"""
from typing import Dict, Optional
from datetime import datetime, timedelta

from app.core.config import settings
from app.core.logging import logger
from app.orchestration.intake.session import IntakeSession


class InMemorySessionStore:
    """In-memory store of IntakeSession objects keyed by session id."""

    def __init__(self, ttl_hours: Optional[int] = None):
        self._sessions: Dict[str, IntakeSession] = {}
        self._expiry: Dict[str, datetime] = {}
        self._ttl = timedelta(hours=ttl_hours if ttl_hours is not None else settings.SESSION_TTL_HOURS)

    def _cleanup_expired(self):
        """Remove expired sessions."""
        now = datetime.utcnow()
        expired = [k for k, v in self._expiry.items() if v < now]
        for key in expired:
            self._sessions.pop(key, None)
            self._expiry.pop(key, None)
        if expired:
            logger.info(f"Expired {len(expired)} intake session(s)")

    def get(self, session_id: str) -> Optional[IntakeSession]:
        self._cleanup_expired()
        session = self._sessions.get(session_id)
        if session is not None:
            self._expiry[session_id] = datetime.utcnow() + self._ttl
        return session

    def add(self, session: IntakeSession) -> None:
        self._sessions[session.session_id] = session
        self._expiry[session.session_id] = datetime.utcnow() + self._ttl

    def delete(self, session_id: str) -> bool:
        if session_id in self._sessions:
            del self._sessions[session_id]
            self._expiry.pop(session_id, None)
            return True
        return False

    def exists(self, session_id: str) -> bool:
        self._cleanup_expired()
        return session_id in self._sessions

    def count(self) -> int:
        """Get the number of active sessions."""
        self._cleanup_expired()
        return len(self._sessions)


# Singleton session store instance
_session_store: Optional[InMemorySessionStore] = None


def get_session_store() -> InMemorySessionStore:
    """Get the session store instance (creates if needed)."""
    global _session_store

    if _session_store is None:
        logger.info("Using in-memory intake session store")
        _session_store = InMemorySessionStore()

    return _session_store
