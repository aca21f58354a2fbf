"""
Server-Side Session Storage

In-memory session records keyed by an opaque session identifier. The browser
only ever holds the identifier (inside a signed cookie); PKCE material and the
authenticated identity stay on the server.

Note: In production systems this would be replaced with a shared store such
as Redis so sessions survive restarts and work across worker processes.
"""

import secrets
import threading
import time
from typing import Any, Callable, Dict, Optional

from ..shared.logging_utils import ComponentType, OAuthLogger

logger = OAuthLogger(ComponentType.SESSION_STORE)

DEFAULT_TTL_SECONDS = 24 * 60 * 60

_MISSING = object()


class SessionStore:
    """
    In-memory session storage with fixed expiration.

    Security Features:
    - Cryptographically secure session identifiers (32 bytes, URL-safe base64)
    - Fixed lifetime measured from creation
    - Read-and-remove (take) executed under a lock, so a value such as the
      PKCE verifier can be consumed by at most one request
    - Expired sessions are never returned and are purged on access
    """

    def __init__(self, ttl_seconds: int = DEFAULT_TTL_SECONDS,
                 clock: Callable[[], float] = time.monotonic):
        """
        Initialize an empty session store.

        Args:
            ttl_seconds: Session lifetime in seconds
            clock: Monotonic time source, injectable for tests
        """
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._sessions: Dict[str, Dict[str, Any]] = {}
        self._lock = threading.Lock()

    def _live_record(self, session_id: Optional[str]) -> Optional[Dict[str, Any]]:
        # Caller must hold the lock.
        if not session_id:
            return None
        record = self._sessions.get(session_id)
        if record is None:
            return None
        if self._clock() >= record['expires_at']:
            del self._sessions[session_id]
            return None
        return record

    def _require(self, session_id: str) -> Dict[str, Any]:
        record = self._live_record(session_id)
        if record is None:
            raise KeyError(f"Unknown or expired session: {session_id[:10]}...")
        return record['data']

    def create_session(self) -> str:
        """
        Create a new empty session.

        Expired sessions are purged first, so abandoned logins do not
        accumulate.

        Returns:
            str: The new opaque session identifier
        """
        self.cleanup_expired()

        session_id = secrets.token_urlsafe(32)
        with self._lock:
            self._sessions[session_id] = {
                'data': {},
                'expires_at': self._clock() + self.ttl_seconds,
            }

        logger.log_oauth_message(
            ComponentType.SESSION_STORE, ComponentType.WEB_APP,
            "Session Created",
            {
                "session_id": session_id,
                "expires_in_seconds": self.ttl_seconds
            }
        )
        return session_id

    def exists(self, session_id: Optional[str]) -> bool:
        """Return True if the session exists and has not expired."""
        with self._lock:
            return self._live_record(session_id) is not None

    def get(self, session_id: str, key: str, default: Any = None) -> Any:
        with self._lock:
            record = self._live_record(session_id)
            if record is None:
                return default
            return record['data'].get(key, default)

    def set(self, session_id: str, key: str, value: Any) -> None:
        """
        Store a value in a live session.

        Raises:
            KeyError: If the session does not exist or has expired
        """
        with self._lock:
            self._require(session_id)[key] = value

    def setdefault(self, session_id: str, key: str, value: Any) -> Any:
        """Store value only if the key is absent; return the stored value."""
        with self._lock:
            return self._require(session_id).setdefault(key, value)

    def delete(self, session_id: str, key: str) -> None:
        with self._lock:
            record = self._live_record(session_id)
            if record is not None:
                record['data'].pop(key, None)

    def take(self, session_id: str, key: str, default: Any = None) -> Any:
        """
        Atomically read and remove a value.

        Of two concurrent callers, at most one receives the value.
        """
        with self._lock:
            record = self._live_record(session_id)
            if record is None:
                return default
            return record['data'].pop(key, default)

    def destroy(self, session_id: Optional[str]) -> bool:
        """
        Remove a session and everything stored in it.

        Returns:
            bool: True if a session was removed
        """
        if not session_id:
            return False

        with self._lock:
            removed = self._sessions.pop(session_id, None) is not None

        if removed:
            logger.log_oauth_message(
                ComponentType.WEB_APP, ComponentType.SESSION_STORE,
                "Session Destroyed",
                {"session_id": session_id}
            )
        return removed

    def cleanup_expired(self) -> int:
        """
        Remove expired sessions from storage.

        Returns:
            int: Number of expired sessions removed
        """
        with self._lock:
            now = self._clock()
            expired = [
                session_id for session_id, record in self._sessions.items()
                if now >= record['expires_at']
            ]
            for session_id in expired:
                del self._sessions[session_id]
            remaining = len(self._sessions)

        if expired:
            logger.log_oauth_message(
                ComponentType.SESSION_STORE, ComponentType.SESSION_STORE,
                "Expired Sessions Cleanup",
                {
                    "sessions_removed": len(expired),
                    "remaining_sessions": remaining
                }
            )

        return len(expired)

    def active_sessions_count(self) -> int:
        with self._lock:
            now = self._clock()
            return sum(1 for record in self._sessions.values() if now < record['expires_at'])


class ServerSession:
    """
    One browser's view of the session store.

    This is the session object the authorization flow reads and writes.
    """

    def __init__(self, store: SessionStore, session_id: str):
        self.store = store
        self.session_id = session_id

    def get(self, key: str, default: Any = None) -> Any:
        return self.store.get(self.session_id, key, default)

    def set(self, key: str, value: Any) -> None:
        self.store.set(self.session_id, key, value)

    def setdefault(self, key: str, value: Any) -> Any:
        return self.store.setdefault(self.session_id, key, value)

    def delete(self, key: str) -> None:
        self.store.delete(self.session_id, key)

    def take(self, key: str, default: Any = None) -> Any:
        return self.store.take(self.session_id, key, default)

    def contains(self, key: str) -> bool:
        return self.store.get(self.session_id, key, _MISSING) is not _MISSING

    def clear(self) -> None:
        self.store.destroy(self.session_id)
