"""
Unit tests for the server-side session store.
"""

import threading

import pytest

from keycloak_pkce.web_app.session_store import ServerSession, SessionStore


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(clock):
    return SessionStore(ttl_seconds=60, clock=clock)


class TestSessionStore:
    """Test cases for SessionStore."""

    def test_create_session_ids_are_unique(self, store):
        ids = {store.create_session() for _ in range(100)}

        assert len(ids) == 100
        assert all(len(session_id) >= 43 for session_id in ids)

    def test_set_get_delete(self, store):
        session_id = store.create_session()

        store.set(session_id, "pkce", {"code_verifier": "v"})
        assert store.get(session_id, "pkce") == {"code_verifier": "v"}

        store.delete(session_id, "pkce")
        assert store.get(session_id, "pkce") is None

    def test_sessions_are_isolated(self, store):
        first = store.create_session()
        second = store.create_session()

        store.set(first, "pkce", "first")

        assert store.get(second, "pkce") is None

    def test_take_removes_value(self, store):
        session_id = store.create_session()
        store.set(session_id, "pkce", "value")

        assert store.take(session_id, "pkce") == "value"
        assert store.take(session_id, "pkce") is None

    def test_take_is_exclusive_across_threads(self, store):
        session_id = store.create_session()
        store.set(session_id, "pkce", "value")
        results = []
        barrier = threading.Barrier(8)

        def worker():
            barrier.wait()
            results.append(store.take(session_id, "pkce"))

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert results.count("value") == 1

    def test_setdefault_keeps_existing(self, store):
        session_id = store.create_session()

        assert store.setdefault(session_id, "pkce", "first") == "first"
        assert store.setdefault(session_id, "pkce", "second") == "first"

    def test_set_on_unknown_session_raises(self, store):
        with pytest.raises(KeyError):
            store.set("does-not-exist", "pkce", "value")

    def test_session_expires_after_ttl(self, store, clock):
        session_id = store.create_session()
        store.set(session_id, "user", {"sub": "1"})

        clock.now += 59
        assert store.exists(session_id)

        clock.now += 1
        assert not store.exists(session_id)
        assert store.get(session_id, "user") is None
        assert store.take(session_id, "user") is None

    def test_expiry_is_fixed_from_creation(self, store, clock):
        session_id = store.create_session()

        clock.now += 30
        store.set(session_id, "user", "alice")
        clock.now += 30

        assert not store.exists(session_id)

    def test_destroy(self, store):
        session_id = store.create_session()

        assert store.destroy(session_id) is True
        assert store.destroy(session_id) is False
        assert store.destroy(None) is False
        assert not store.exists(session_id)

    def test_cleanup_expired(self, store, clock):
        store.create_session()
        store.create_session()
        clock.now += 30
        live = store.create_session()
        clock.now += 45

        assert store.cleanup_expired() == 2
        assert store.active_sessions_count() == 1
        assert store.exists(live)

    def test_create_session_purges_expired(self, store, clock):
        abandoned = [store.create_session() for _ in range(5)]
        clock.now += 60

        fresh = store.create_session()

        assert store.cleanup_expired() == 0
        assert store.active_sessions_count() == 1
        assert store.exists(fresh)
        assert not any(store.exists(session_id) for session_id in abandoned)

    def test_exists_handles_missing_id(self, store):
        assert store.exists(None) is False
        assert store.exists("") is False


class TestServerSession:
    """Test cases for the per-browser ServerSession view."""

    def test_operations_delegate_to_store(self, session_store):
        session = ServerSession(session_store, session_store.create_session())

        session.set("pkce", "value")
        assert session.contains("pkce")
        assert session.get("pkce") == "value"
        assert session.take("pkce") == "value"
        assert not session.contains("pkce")
        assert session.get("missing", "default") == "default"

    def test_contains_distinguishes_none_value(self, session):
        session.set("user", None)
        assert session.contains("user")

    def test_clear_destroys_session(self, session_store, session):
        session.set("user", {"sub": "1"})

        session.clear()

        assert not session_store.exists(session.session_id)
