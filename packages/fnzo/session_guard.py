"""Session Guard: verify (and refresh once) the caller's session before data calls."""

from __future__ import annotations

import threading
import time
from collections.abc import Callable

from .errors import AuthenticationError
from .logging_setup import get_logger
from .models import AuthSession
from .remote import RemoteStore

_logger = get_logger("fnzo.session_guard")


class SessionGuard:
    """Caches the verified session for ``ttl`` seconds.

    ``clock`` drives both the cache TTL and token expiry checks and must
    return seconds since the epoch (token ``expires_at`` uses that scale).
    """

    def __init__(
        self,
        store: RemoteStore,
        *,
        ttl: float = 30.0,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._store = store
        self._ttl = ttl
        self._clock = clock
        self._lock = threading.Lock()
        self._session: AuthSession | None = None
        self._checked_at: float | None = None

    def _cached(self, now: float) -> AuthSession | None:
        if self._session is None or self._checked_at is None:
            return None
        if now - self._checked_at >= self._ttl:
            return None
        if self._session.is_expired(now):
            return None
        return self._session

    def _clear(self) -> None:
        self._session = None
        self._checked_at = None

    def current_session(self) -> AuthSession | None:
        """Return a valid session, refreshing an expired one at most once."""

        with self._lock:
            now = self._clock()
            cached = self._cached(now)
            if cached is not None:
                return cached

            session = self._store.get_session()
            if session is None:
                _logger.info("session:missing")
                self._clear()
                return None

            if session.is_expired(now):
                _logger.info("session:expired user_id=%s; refreshing", session.user_id)
                session = self._store.refresh_session()
                if session is None or session.is_expired(self._clock()):
                    _logger.warning("session:refresh_failed")
                    self._clear()
                    return None

            self._session = session
            self._checked_at = now
            return session

    def verify_authentication(self) -> bool:
        return self.current_session() is not None

    def require_session(self) -> AuthSession:
        """Return the verified session or raise ``AuthenticationError``."""

        session = self.current_session()
        if session is None:
            raise AuthenticationError("Not authenticated; please sign in")
        return session

    @property
    def user_id(self) -> str:
        return self.require_session().user_id

    def invalidate(self) -> None:
        with self._lock:
            self._clear()


__all__ = ["SessionGuard"]
