"""Tests for feedback.json persistence."""

import json
from datetime import datetime, timezone
from pathlib import Path

import pytest

from src.chunk_ranker.errors import PersistenceError
from src.chunk_ranker.flywheel import ChunkRef, FeedbackEvent, FeedbackEventType, FeedbackStore
from src.chunk_ranker.flywheel.persistence import read_feedback_file

QUERY = ChunkRef.for_query("vector search")
TARGET = ChunkRef("docs/a.md", 2, fingerprint="0123456789abcdef")
WHEN = datetime(2026, 1, 15, 12, 30, tzinfo=timezone.utc)


def _write(tmp_path: Path, document) -> None:
    text = document if isinstance(document, str) else json.dumps(document)
    (tmp_path / "feedback.json").write_text(text, encoding="utf-8")


def _event_dict(**overrides):
    data = FeedbackEvent(FeedbackEventType.PIN, QUERY, TARGET, timestamp=WHEN).to_dict()
    data.update(overrides)
    return data


def test_save_and_load_round_trip(tmp_path):
    store = FeedbackStore()
    store.record_event(FeedbackEvent(FeedbackEventType.PIN, QUERY, TARGET, timestamp=WHEN))
    store.record_event(FeedbackEvent(FeedbackEventType.DISMISS_INFERRED, QUERY, ChunkRef("b.md", 0)))

    path = store.save_to_disk(tmp_path)
    assert path == tmp_path / "feedback.json"

    restored = FeedbackStore()
    assert restored.load_from_disk(tmp_path) == 2
    assert restored.is_pinned(QUERY, TARGET)
    assert restored.was_dismissed(QUERY, ChunkRef("b.md", 0))
    assert restored.export_events()[0].timestamp == WHEN


def test_file_format(tmp_path):
    store = FeedbackStore()
    store.record_event(FeedbackEvent(FeedbackEventType.PIN, QUERY, TARGET, timestamp=WHEN))
    store.save_to_disk(tmp_path)

    document = json.loads((tmp_path / "feedback.json").read_text(encoding="utf-8"))

    assert document["version"] == 1
    assert document["events"] == [
        {
            "type": "pin",
            "source": {"filePath": "__query__", "chunkIndex": 0, "fingerprint": "vector search"},
            "target": {"filePath": "docs/a.md", "chunkIndex": 2, "fingerprint": "0123456789abcdef"},
            "timestamp": "2026-01-15T12:30:00+00:00",
        }
    ]


def test_save_creates_directory(tmp_path):
    target_dir = tmp_path / "nested" / "ragdb"
    FeedbackStore().save_to_disk(target_dir)
    assert (target_dir / "feedback.json").exists()


def test_missing_file_starts_fresh(tmp_path, log_messages):
    store = FeedbackStore()
    assert store.load_from_disk(tmp_path) == 0
    assert not any(m.startswith("WARNING") for m in log_messages)


def test_unsupported_version_is_ignored(tmp_path, log_messages):
    _write(tmp_path, {"version": 2, "events": [_event_dict()]})

    store = FeedbackStore()

    assert store.load_from_disk(tmp_path) == 0
    assert store.get_stats()["eventCount"] == 0
    assert any("Unsupported version 2" in m for m in log_messages)


@pytest.mark.parametrize(
    "content",
    [
        "{not json",
        json.dumps([1, 2, 3]),
        json.dumps({"version": 1, "events": {"type": "pin"}}),
        json.dumps({"version": True, "events": []}),
    ],
)
def test_malformed_file_is_ignored(tmp_path, log_messages, content):
    _write(tmp_path, content)

    assert FeedbackStore().load_from_disk(tmp_path) == 0
    assert any(m.startswith("WARNING") for m in log_messages)


def test_invalid_utf8_is_ignored(tmp_path, log_messages):
    (tmp_path / "feedback.json").write_bytes(b'{"version": 1, "events": [\xff\xfe]}')

    assert FeedbackStore().load_from_disk(tmp_path) == 0
    assert any("not valid UTF-8" in m for m in log_messages)


def test_invalid_events_are_skipped(tmp_path, log_messages):
    _write(
        tmp_path,
        {
            "version": 1,
            "events": [
                _event_dict(),
                _event_dict(timestamp="yesterday"),
                _event_dict(target={"filePath": "x.md"}),
            ],
        },
    )

    store = FeedbackStore()

    assert store.load_from_disk(tmp_path) == 1
    assert store.is_pinned(QUERY, TARGET)
    assert sum("Skipping invalid event" in m for m in log_messages) == 2


def test_load_appends_to_existing_events(tmp_path):
    _write(tmp_path, {"version": 1, "events": [_event_dict()]})

    store = FeedbackStore()
    store.record_event(FeedbackEvent(FeedbackEventType.CLICK_RELATED, TARGET, ChunkRef("c.md", 1)))
    store.load_from_disk(tmp_path)

    assert store.get_stats()["eventCount"] == 2


def test_timestamp_with_z_suffix(tmp_path):
    _write(tmp_path, {"version": 1, "events": [_event_dict(timestamp="2026-01-15T12:30:00Z")]})

    store = FeedbackStore()
    store.load_from_disk(tmp_path)

    assert store.export_events()[0].timestamp == WHEN


def test_unreadable_path_raises(tmp_path):
    (tmp_path / "feedback.json").mkdir()

    with pytest.raises(PersistenceError):
        read_feedback_file(tmp_path)


def test_atomic_write_leaves_no_temp_files(tmp_path):
    store = FeedbackStore()
    store.record_event(FeedbackEvent(FeedbackEventType.PIN, QUERY, TARGET))
    store.save_to_disk(tmp_path)
    store.save_to_disk(tmp_path)

    assert [p.name for p in tmp_path.iterdir()] == ["feedback.json"]


def test_failed_write_keeps_previous_file(tmp_path, monkeypatch):
    _write(tmp_path, {"version": 1, "events": [_event_dict()]})
    before = (tmp_path / "feedback.json").read_text(encoding="utf-8")

    def failing_replace(self, target):
        raise OSError("disk full")

    monkeypatch.setattr(Path, "replace", failing_replace)

    store = FeedbackStore()
    with pytest.raises(PersistenceError):
        store.save_to_disk(tmp_path)

    monkeypatch.undo()
    assert (tmp_path / "feedback.json").read_text(encoding="utf-8") == before
    assert [p.name for p in tmp_path.iterdir()] == ["feedback.json"]


def test_out_of_range_timestamp_is_skipped(tmp_path, log_messages):
    _write(
        tmp_path,
        {
            "version": 1,
            "events": [_event_dict(), _event_dict(timestamp="0001-01-01T00:00:00+01:00")],
        },
    )

    store = FeedbackStore()

    assert store.load_from_disk(tmp_path) == 1
    assert store.is_pinned(QUERY, TARGET)
    assert sum("Skipping invalid event" in m for m in log_messages) == 1
