import pytest
from fnzo.errors import AuthenticationError
from fnzo.models import AuthSession
from fnzo.session_guard import SessionGuard

from tests.helpers.store import FakeClock


class _AuthStore:
    def __init__(self, session=None, refreshed=None):
        self.session = session
        self.refreshed = refreshed
        self.get_calls = 0
        self.refresh_calls = 0

    def get_session(self):
        self.get_calls += 1
        return self.session

    def refresh_session(self):
        self.refresh_calls += 1
        return self.refreshed


def _session(expires_at=None, user_id="u1"):
    return AuthSession(access_token="tok", refresh_token="r", expires_at=expires_at, user_id=user_id)


def test_verified_session_is_cached_for_ttl():
    clock = FakeClock(1000.0)
    store = _AuthStore(_session(expires_at=5000.0))
    guard = SessionGuard(store, ttl=30.0, clock=clock)

    assert guard.user_id == "u1"
    clock.advance(10)
    assert guard.verify_authentication()
    assert store.get_calls == 1

    clock.advance(25)
    assert guard.verify_authentication()
    assert store.get_calls == 2


def test_expired_session_is_refreshed_exactly_once():
    clock = FakeClock(1000.0)
    store = _AuthStore(_session(expires_at=900.0), refreshed=_session(expires_at=4600.0))
    guard = SessionGuard(store, clock=clock)

    session = guard.require_session()
    assert session.expires_at == 4600.0
    assert store.refresh_calls == 1


def test_failed_refresh_reports_unauthenticated():
    clock = FakeClock(1000.0)
    store = _AuthStore(_session(expires_at=900.0), refreshed=None)
    guard = SessionGuard(store, clock=clock)

    assert guard.verify_authentication() is False
    assert store.refresh_calls == 1
    with pytest.raises(AuthenticationError, match="please sign in"):
        guard.require_session()


def test_missing_session_raises_and_nothing_is_refreshed():
    store = _AuthStore(None)
    guard = SessionGuard(store, clock=FakeClock(0.0))
    with pytest.raises(AuthenticationError):
        guard.require_session()
    assert store.refresh_calls == 0


def test_cached_session_is_not_used_past_its_expiry():
    clock = FakeClock(1000.0)
    store = _AuthStore(_session(expires_at=1010.0), refreshed=None)
    guard = SessionGuard(store, ttl=30.0, clock=clock)
    assert guard.verify_authentication()

    clock.advance(15)  # inside the cache TTL but past token expiry
    assert guard.verify_authentication() is False
    assert store.refresh_calls == 1


def test_invalidate_forces_a_fresh_lookup():
    store = _AuthStore(_session())
    guard = SessionGuard(store, clock=FakeClock(0.0))
    guard.require_session()
    guard.invalidate()
    store.session = _session(user_id="u2")
    assert guard.user_id == "u2"
