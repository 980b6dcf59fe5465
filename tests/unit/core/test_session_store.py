"""
Unit tests for SessionStore.
"""

import json

import pytest

from copilot_chat.core.error_handlers import PersistenceError
from copilot_chat.core.session_store import SessionStore, encode_session_key
from copilot_chat.models.chat import ChatSession, Message, TrackedFile


@pytest.fixture
def store(tmp_path):
    """Provide a store rooted in a temporary cache directory."""
    return SessionStore(tmp_path / "cache")


@pytest.fixture
def session():
    return ChatSession(
        messages=[Message.user("hi"), Message.assistant("hello")],
        tracked_files=[
            TrackedFile(
                path="src/app.py",
                baseline_content="secret = 1\n",
                baseline_modified_at="2025-01-01T10:00:00Z",
            )
        ],
    )


class TestSessionKey:
    """Test cache file naming."""

    def test_alphanumerics_kept(self):
        assert encode_session_key("abcXYZ019") == "abcXYZ019"

    def test_separators_encoded(self):
        assert encode_session_key("/home/me/my-proj") == (
            "%2Fhome%2Fme%2Fmy%2Dproj"
        )

    def test_non_ascii_encoded_per_byte(self):
        assert encode_session_key("é") == "%C3%A9"

    def test_path_for_uses_key(self, store):
        assert store.path_for("/work/x").name == "%2Fwork%2Fx.json"


class TestSessionStore:
    """Test saving, loading and removing sessions."""

    def test_load_missing(self, store, tmp_path):
        assert store.load(tmp_path) is None

    def test_save_and_load(self, store, session, tmp_path):
        store.save(session, tmp_path)

        loaded = store.load(tmp_path)

        assert loaded.messages == session.messages
        assert loaded.tracked_files[0].path == "src/app.py"
        assert (
            loaded.tracked_files[0].baseline_modified_at
            == session.tracked_files[0].baseline_modified_at
        )

    def test_content_is_not_persisted(self, store, session, tmp_path):
        cache_file = store.save(session, tmp_path)

        raw = json.loads(cache_file.read_text(encoding="utf-8"))

        assert "baseline_content" not in raw["tracked_files"][0]
        assert "secret" not in cache_file.read_text(encoding="utf-8")
        assert store.load(tmp_path).tracked_files[0].has_content is False

    def test_save_replaces_previous(self, store, session, tmp_path):
        store.save(session, tmp_path)
        store.save(ChatSession(), tmp_path)

        assert store.load(tmp_path).messages == []
        assert not list((tmp_path / "cache").glob("*.tmp"))

    def test_directories_are_separate(self, store, session, tmp_path):
        store.save(session, tmp_path / "one")

        assert store.load(tmp_path / "two") is None

    def test_corrupt_file(self, store, tmp_path):
        cache_file = store.path_for(tmp_path)
        cache_file.parent.mkdir(parents=True)
        cache_file.write_text("{not json", encoding="utf-8")

        with pytest.raises(PersistenceError) as exc_info:
            store.load(tmp_path)

        assert exc_info.value.error_code == "PERSISTENCE_ERROR"

    def test_remove(self, store, session, tmp_path):
        store.save(session, tmp_path)

        assert store.remove(tmp_path) is True
        assert store.remove(tmp_path) is False
        assert store.load(tmp_path) is None
