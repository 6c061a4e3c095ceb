"""
Tests for the in-memory and file-backed session stores.
"""

import json
from datetime import timedelta

from conftest import make_session
from trainingpeaks.auth.session_store import FileSessionStore, InMemorySessionStore


class TestInMemoryStore:

    def test_empty_by_default(self):
        assert InMemorySessionStore().get() is None

    def test_set_replaces(self):
        store = InMemorySessionStore(make_session(access="one"))
        store.set(make_session(access="two"))
        assert store.get().token.access_token == "two"

    def test_clear(self, session):
        store = InMemorySessionStore(session)
        store.clear()
        assert store.get() is None


class TestFileStore:

    def test_missing_file_reads_as_none(self, tmp_path):
        assert FileSessionStore(tmp_path / "session.json").get() is None

    def test_survives_restart(self, tmp_path, session):
        path = tmp_path / "session.json"
        FileSessionStore(path).set(session)

        loaded = FileSessionStore(path).get()

        assert loaded == session
        assert loaded.token.refresh_token == "r1"
        assert loaded.user.name == "Test Athlete"

    def test_creates_parent_directories(self, tmp_path, session):
        path = tmp_path / "nested" / "dir" / "session.json"
        FileSessionStore(path).set(session)
        assert path.exists()
        assert not path.with_name("session.json.tmp").exists()

    def test_corrupt_file_reads_as_none(self, tmp_path, caplog):
        path = tmp_path / "session.json"
        path.write_text("{not json", encoding="utf-8")
        assert FileSessionStore(path).get() is None
        assert "Corrupt session file" in caplog.text

    def test_wrong_shape_reads_as_none(self, tmp_path):
        path = tmp_path / "session.json"
        path.write_text(json.dumps({"token": {}}), encoding="utf-8")
        assert FileSessionStore(path).get() is None

    def test_expired_session_still_returned(self, tmp_path):
        path = tmp_path / "session.json"
        FileSessionStore(path).set(make_session(expires_in=timedelta(hours=-1)))

        loaded = FileSessionStore(path).get()

        assert loaded is not None
        assert loaded.token.is_expired()

    def test_clear_removes_file(self, tmp_path, session):
        path = tmp_path / "session.json"
        store = FileSessionStore(path)
        store.set(session)

        store.clear()
        store.clear()

        assert not path.exists()
        assert store.get() is None

    def test_only_token_and_user_written(self, tmp_path, session):
        path = tmp_path / "session.json"
        FileSessionStore(path).set(session)
        data = json.loads(path.read_text(encoding="utf-8"))
        assert set(data) == {"token", "user"}
        assert "password" not in path.read_text(encoding="utf-8")
