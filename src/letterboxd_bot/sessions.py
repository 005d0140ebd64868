"""
Registry of short-lived interactive sessions (one game per channel).

State lives in an explicit object with an injected clock so expiry is
testable without sleeping.
"""
import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable

logger = logging.getLogger(__name__)


class SessionActiveError(Exception):
    """A session is already running under this key."""

    def __init__(self, key):
        super().__init__(f"A session is already active for {key!r}")
        self.key = key


@dataclass
class Session:
    key: Any
    state: Any
    started_at: float
    expires_at: float


class SessionRegistry:
    def __init__(self, ttl: float, clock: Callable[[], float] = time.monotonic):
        self.ttl = ttl
        self._clock = clock
        self._lock = threading.Lock()
        self._sessions: dict[Any, Session] = {}

    def _is_live(self, session: Session, now: float) -> bool:
        return now < session.expires_at

    def create(self, key, state) -> Session:
        """Start a session; raises SessionActiveError if one is still live."""
        now = self._clock()
        with self._lock:
            current = self._sessions.get(key)
            if current is not None and self._is_live(current, now):
                raise SessionActiveError(key)
            session = Session(key=key, state=state, started_at=now, expires_at=now + self.ttl)
            self._sessions[key] = session
        logger.debug(f"Session started for {key!r} (ttl {self.ttl}s)")
        return session

    def get(self, key) -> Session | None:
        """The live session for ``key``; an expired one is dropped and None returned."""
        now = self._clock()
        with self._lock:
            session = self._sessions.get(key)
            if session is None:
                return None
            if not self._is_live(session, now):
                del self._sessions[key]
                return None
            return session

    def close(self, key) -> Session | None:
        with self._lock:
            return self._sessions.pop(key, None)

    def expire_stale(self) -> list[Session]:
        """Remove and return every expired session."""
        now = self._clock()
        with self._lock:
            expired = [s for s in self._sessions.values() if not self._is_live(s, now)]
            for session in expired:
                del self._sessions[session.key]
        if expired:
            logger.info(f"Expired {len(expired)} stale session(s)")
        return expired

    def active_keys(self) -> list:
        now = self._clock()
        with self._lock:
            return [k for k, s in self._sessions.items() if self._is_live(s, now)]
