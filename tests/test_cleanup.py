"""Tests for cleanup functionality."""

from datetime import datetime, timedelta

from leakhub.cleanup import delete_old_closed_requests
from leakhub.database import Request, get_session
from leakhub.storage import StorageError


def backdate(db_path, request_id, days):
    session = get_session(db_path)
    try:
        session.get(Request, request_id).created_at = datetime.now() - timedelta(days=days)
        session.commit()
    finally:
        session.close()


def new_request(store, user_id, name):
    return store.create_request(
        user_id=user_id,
        target_name=name,
        provider="acme",
        target_type="app",
        target_url=f"https://acme.example.com/{name.lower()}",
    )


class TestCleanup:
    """Test removal of old user-closed requests."""

    def test_removes_old_user_closed_requests(self, store, db_path, users, request_id, submit):
        """User-closed requests past the threshold are deleted."""
        leak_id = submit(users["alice"], "leaked text")
        store.close_request(request_id, users["dave"])
        backdate(db_path, request_id, days=3)

        before, after = delete_old_closed_requests(store, days=1)

        assert (before, after) == (1, 0)
        assert store.get_request(request_id) is None
        leak = store.get_leak(leak_id)
        assert leak is not None
        assert leak["request_id"] is None

    def test_keeps_recent_and_open_requests(self, store, db_path, users, request_id):
        """Recent and open requests survive cleanup."""
        recent = new_request(store, users["alice"], "Recent")
        store.close_request(recent, users["alice"])
        backdate(db_path, request_id, days=10)  # old but still open

        before, after = delete_old_closed_requests(store, days=1)

        assert (before, after) == (2, 2)
        assert store.get_request(recent)["closed"] is True
        assert store.get_request(request_id)["closed"] is False

    def test_keeps_verified_requests(self, store, db_path, users, request_id, submit):
        """Requests closed by verification are never deleted."""
        submit(users["alice"], "same leaked text")
        submit(users["bob"], "same leaked text")
        state = store.load_pending_submissions(request_id)
        assert store.apply_verification(request_id, state[0].leak_id, (users["bob"],))
        backdate(db_path, request_id, days=30)

        assert delete_old_closed_requests(store, days=1) == (1, 1)
        assert store.get_request(request_id)["closed_by"] == "verification"

    def test_custom_threshold(self, store, db_path, users, request_id):
        """The age threshold is configurable."""
        store.close_request(request_id, users["dave"])
        backdate(db_path, request_id, days=3)

        assert delete_old_closed_requests(store, days=7) == (1, 1)
        assert delete_old_closed_requests(store, days=2) == (1, 0)

    def test_storage_failure_returns_zeroes(self, store, monkeypatch):
        """A storage failure is logged and reported as zero counts."""
        def broken(created_before):
            raise StorageError("database is locked")

        monkeypatch.setattr(store, "delete_closed_requests", broken)
        assert delete_old_closed_requests(store) == (0, 0)
