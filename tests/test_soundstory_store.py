from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from soundstory.errors import InvalidConfigError, SessionNotFoundError
from soundstory.schema import AttributeTuple
from soundstory.selector import select
from soundstory.store import InMemorySessionStore, JsonlSessionStore

_START = datetime(2026, 1, 1, tzinfo=timezone.utc)


def _attrs(intensity: float, mood: str = "calm") -> AttributeTuple:
    return AttributeTuple(mood=mood, setting="village", intensity=intensity, narrative_event="exploration")


def _fill(store: InMemorySessionStore, session_id: str, count: int) -> None:
    for index in range(count):
        attributes = _attrs(index / 10)
        store.append_analysis(
            session_id,
            attributes,
            select(attributes),
            f"chunk {index}",
            timestamp=_START + timedelta(seconds=index),
        )


def test_start_session_defaults() -> None:
    store = InMemorySessionStore()

    session = store.start_session(user_id="user-1")

    assert session.preset == "Fantasy"
    assert session.user_id == "user-1"
    assert session.ended_at is None
    assert store.get_session(session.id) == session


def test_unknown_session_raises() -> None:
    store = InMemorySessionStore()

    with pytest.raises(SessionNotFoundError):
        store.get_session("missing")
    with pytest.raises(SessionNotFoundError):
        store.append_analysis("missing", _attrs(0.1), select(_attrs(0.1)), "text")
    with pytest.raises(SessionNotFoundError):
        store.history("missing")


def test_end_session_sets_timestamp() -> None:
    store = InMemorySessionStore()
    session = store.start_session(preset="Horror")

    ended = store.end_session(session.id)

    assert ended.ended_at is not None
    assert ended.preset == "Horror"
    assert store.get_session(session.id).ended_at == ended.ended_at


def test_recent_attributes_are_chronological_and_limited() -> None:
    store = InMemorySessionStore()
    session = store.start_session()
    _fill(store, session.id, 7)

    recent = store.recent_attributes(session.id, limit=3)

    assert [item.intensity for item in recent] == [0.4, 0.5, 0.6]
    assert store.recent_attributes(session.id, limit=0) == []


def test_history_pages_newest_first_returned_oldest_first() -> None:
    store = InMemorySessionStore()
    session = store.start_session()
    _fill(store, session.id, 5)

    first = store.history(session.id, limit=2)
    second = store.history(session.id, limit=2, offset=2)
    beyond = store.history(session.id, limit=2, offset=10)

    assert [record.transcript for record in first.analyses] == ["chunk 3", "chunk 4"]
    assert [record.transcript for record in second.analyses] == ["chunk 1", "chunk 2"]
    assert beyond.analyses == ()
    assert first.total == second.total == beyond.total == 5


def test_sessions_do_not_share_analyses() -> None:
    store = InMemorySessionStore()
    first = store.start_session()
    second = store.start_session()
    _fill(store, first.id, 2)

    assert store.history(second.id).total == 0
    assert store.recent_attributes(second.id) == []


def test_jsonl_store_replays_sessions_and_analyses(tmp_path: Path) -> None:
    path = tmp_path / "nested" / "sessions.jsonl"
    store = JsonlSessionStore(path)
    session = store.start_session(preset="Cozy")
    _fill(store, session.id, 3)
    store.end_session(session.id)

    reopened = JsonlSessionStore(path)

    restored = reopened.get_session(session.id)
    assert restored.preset == "Cozy"
    assert restored.ended_at is not None
    page = reopened.history(session.id)
    assert page.total == 3
    assert page.analyses == store.history(session.id).analyses


def test_jsonl_rows_tag_each_record_kind(tmp_path: Path) -> None:
    path = tmp_path / "sessions.jsonl"
    store = JsonlSessionStore(path)
    session = store.start_session()
    _fill(store, session.id, 1)

    rows = [json.loads(line) for line in path.read_text(encoding="utf-8").splitlines()]

    assert [row["kind"] for row in rows] == ["session", "analysis"]
    attributes = rows[1]["data"]["attributes"]
    assert set(attributes) == {"mood", "setting", "intensity", "narrative_event"}


def test_jsonl_store_rejects_corrupt_file(tmp_path: Path) -> None:
    path = tmp_path / "sessions.jsonl"
    path.write_text("{not json\n", encoding="utf-8")

    with pytest.raises(InvalidConfigError, match=":1: invalid JSON"):
        JsonlSessionStore(path)


def test_jsonl_store_skips_malformed_rows(tmp_path: Path) -> None:
    path = tmp_path / "sessions.jsonl"
    store = JsonlSessionStore(path)
    session = store.start_session()
    with path.open("a", encoding="utf-8") as handle:
        handle.write('["not", "a", "row"]\n\n')
        handle.write('{"kind": "unknown", "data": {}}\n')

    reopened = JsonlSessionStore(path)

    assert reopened.get_session(session.id).id == session.id


def test_jsonl_failed_write_leaves_memory_unchanged(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    path = tmp_path / "sessions.jsonl"
    store = JsonlSessionStore(path)
    session = store.start_session()
    _fill(store, session.id, 1)

    def failing_append(kind: str, model: object) -> None:
        raise OSError("disk full")

    monkeypatch.setattr(store, "_append", failing_append)
    attributes = _attrs(0.9, mood="scary")

    with pytest.raises(OSError, match="disk full"):
        store.append_analysis(session.id, attributes, select(attributes), "lost chunk")
    with pytest.raises(OSError):
        store.end_session(session.id)

    assert store.history(session.id).total == 1
    assert store.get_session(session.id).ended_at is None
    assert JsonlSessionStore(path).history(session.id).total == 1
