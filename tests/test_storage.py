"""Tests for storyspawn.storage.SessionStore."""

import json

import pytest

from storyspawn.errors import StorageError
from storyspawn.models import GameSession, StoryMessage
from storyspawn.storage import SessionStore


def _session(session_id: str, messages: int = 0, last_played: str = "", **kw) -> GameSession:
    return GameSession(
        id=session_id,
        last_played=last_played,
        history=[StoryMessage(author="narrator", text=f"Line {i} " + "x" * 40) for i in range(messages)],
        **kw,
    )


# ── Save & list ──────────────────────────────────────────


def test_empty_store(store):
    assert store.list_sessions() == []
    assert store.get_session("missing") is None


def test_save_and_get(store):
    store.save_session(_session("a", 3, title="The Old Mill"))
    loaded = store.get_session("a")
    assert loaded.title == "The Old Mill"
    assert len(loaded.history) == 3


def test_save_sets_last_played(store):
    saved = store.save_session(_session("a"))
    assert saved.last_played


def test_list_most_recent_first(store):
    store.save_session(_session("old", last_played="2026-01-01T00:00:00+00:00"))
    store.save_session(_session("new", last_played="2026-03-01T00:00:00+00:00"))
    store.save_session(_session("mid", last_played="2026-02-01T00:00:00+00:00"))
    assert [s.id for s in store.list_sessions()] == ["new", "mid", "old"]


def test_save_upserts(store):
    store.save_session(_session("a", title="First"))
    store.save_session(_session("a", title="Second"))
    sessions = store.list_sessions()
    assert len(sessions) == 1
    assert sessions[0].title == "Second"


def test_history_capped(store):
    store.save_session(_session("a", 60))
    history = store.get_session("a").history
    assert len(history) == 50
    assert history[0].text.startswith("Line 10 ")


def test_file_is_camel_case(store, tmp_path):
    store.save_session(_session("a", 1, world_title="Ashfall"))
    data = json.loads((tmp_path / "data" / "sessions.json").read_text())
    assert data[0]["worldTitle"] == "Ashfall"
    assert "gameState" in data[0]
    assert "playerStatus" in data[0]["gameState"]


# ── Rename & delete ──────────────────────────────────────


def test_rename(store):
    store.save_session(_session("a", title="Old"))
    renamed = store.rename_session("a", "New")
    assert renamed.title == "New"
    assert store.get_session("a").title == "New"


def test_rename_missing(store):
    assert store.rename_session("missing", "New") is None


def test_delete(store):
    store.save_session(_session("a"))
    store.save_session(_session("b"))
    assert store.delete_session("a")
    assert [s.id for s in store.list_sessions()] == ["b"]
    assert not store.delete_session("a")


# ── Capacity pruning ─────────────────────────────────────


def _size(store: SessionStore, sessions: list[GameSession]) -> int:
    return len(store._serialise(sessions).encode())


def test_prunes_oldest_first(tmp_path):
    sizer = SessionStore(tmp_path / "sizer")
    old = _session("old", 30, last_played="2026-01-01T00:00:00+00:00")
    mid = _session("mid", 30, last_played="2026-02-01T00:00:00+00:00")
    new = _session("new", 30, last_played="2026-03-01T00:00:00+00:00")
    # room for everything once the oldest session is cut to 10 messages
    pruned_old = old.model_copy(update={"history": old.history[-10:]})
    capacity = _size(sizer, [new, mid, pruned_old])

    store = SessionStore(tmp_path / "data", capacity=capacity)
    store.save_session(old)
    store.save_session(mid)
    store.save_session(new)

    by_id = {s.id: s for s in store.list_sessions()}
    assert len(by_id["old"].history) == 10
    assert len(by_id["mid"].history) == 30
    assert len(by_id["new"].history) == 30


def test_raises_when_nothing_left_to_prune(tmp_path):
    store = SessionStore(tmp_path / "data", capacity=100)
    with pytest.raises(StorageError):
        store.save_session(_session("a", 5))
    assert store.list_sessions() == []
