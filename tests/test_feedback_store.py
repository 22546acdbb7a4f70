"""
Unit Tests for the feedback store.

Tests:
- Pin, unpin, dismiss and co-pin indices
- Re-ranking boosts and stable ordering
- Pruning, rebuilding and importing the event log
- Concurrent recording
"""

import threading
from datetime import datetime, timedelta, timezone

import pytest

from src.chunk_ranker.config import FlywheelConfig
from src.chunk_ranker.flywheel import (
    ChunkRef,
    FeedbackEvent,
    FeedbackEventType,
    FeedbackStore,
    chunk_key,
)

A = ChunkRef("docs/a.md", 0)
B = ChunkRef("docs/b.md", 1)
C = ChunkRef("docs/c.md", 2)


def pin(store, source, target, **kwargs):
    store.record_event(FeedbackEvent(FeedbackEventType.PIN, source, target, **kwargs))


def dismiss(store, source, target, **kwargs):
    store.record_event(FeedbackEvent(FeedbackEventType.DISMISS_INFERRED, source, target, **kwargs))


@pytest.mark.unit
class TestChunkKeys:
    def test_fingerprint_key_preferred(self):
        assert chunk_key(ChunkRef("a.md", 3, fingerprint="abc123")) == "fp:abc123"
        assert chunk_key(ChunkRef("a.md", 3)) == "a.md:3"

    def test_query_source_ref(self):
        ref = ChunkRef.for_query("vector search")
        assert ref.file_path == "__query__"
        assert ref.chunk_index == 0
        assert ref.key == "fp:vector search"


@pytest.mark.unit
class TestIndices:
    def test_pin_and_unpin(self, feedback_store, query_ref):
        pin(feedback_store, query_ref, A)
        assert feedback_store.is_pinned(query_ref, A)
        assert not feedback_store.is_pinned(query_ref, B)
        assert not feedback_store.is_pinned(A, query_ref)

        feedback_store.record_event(FeedbackEvent(FeedbackEventType.UNPIN, query_ref, A))
        assert not feedback_store.is_pinned(query_ref, A)

    def test_dismiss(self, feedback_store, query_ref):
        dismiss(feedback_store, query_ref, B)
        assert feedback_store.was_dismissed(query_ref, B)
        assert not feedback_store.was_dismissed(ChunkRef.for_query("other"), B)

    def test_click_related_is_logged_only(self, feedback_store):
        feedback_store.record_event(FeedbackEvent(FeedbackEventType.CLICK_RELATED, A, B))
        assert feedback_store.get_stats() == {"eventCount": 1, "pinnedPairs": 0, "dismissedPairs": 0}
        assert feedback_store.boost_for(A, B) == 1.0

    def test_co_pin_counts_are_symmetric(self, feedback_store, query_ref):
        pin(feedback_store, query_ref, A)
        pin(feedback_store, query_ref, B)
        assert feedback_store.co_pin_count(A, B) == 1
        assert feedback_store.co_pin_count(B, A) == 1

    def test_unpin_keeps_co_pin_counts(self, feedback_store, query_ref):
        pin(feedback_store, query_ref, A)
        pin(feedback_store, query_ref, B)
        feedback_store.record_event(FeedbackEvent(FeedbackEventType.UNPIN, query_ref, B))
        assert feedback_store.co_pin_count(A, B) == 1

    def test_co_pin_pattern_needs_two_co_occurrences(self, feedback_store):
        q1, q2, q3 = (ChunkRef.for_query(q) for q in ("first", "second", "third"))
        pin(feedback_store, q1, A)
        pin(feedback_store, q1, B)
        pin(feedback_store, q3, A)
        assert not feedback_store.matches_co_pinned_pattern(q3, B)

        pin(feedback_store, q2, A)
        pin(feedback_store, q2, B)
        assert feedback_store.co_pin_count(A, B) == 2
        assert feedback_store.matches_co_pinned_pattern(q3, B)
        assert feedback_store.boost_for(q3, B) == pytest.approx(1.15)

    def test_stats(self, feedback_store, query_ref):
        pin(feedback_store, query_ref, A)
        pin(feedback_store, query_ref, B)
        dismiss(feedback_store, query_ref, C)
        assert feedback_store.get_stats() == {"eventCount": 3, "pinnedPairs": 2, "dismissedPairs": 1}


@pytest.mark.unit
class TestRerank:
    def test_pinned_result_moves_up(self, feedback_store, query_ref, make_result):
        results = [make_result("docs/a.md", 0, 0.5), make_result("docs/b.md", 1, 0.6)]
        pin(feedback_store, query_ref, B)

        ranked = feedback_store.rerank_results(results, query_ref)

        assert [r.file_path for r in ranked] == ["docs/b.md", "docs/a.md"]
        assert ranked[0].score == pytest.approx(0.6 / 1.3)

    def test_dismissed_result_moves_down(self, feedback_store, query_ref, make_result):
        results = [make_result("docs/a.md", 0, 0.5), make_result("docs/b.md", 1, 0.6)]
        dismiss(feedback_store, query_ref, A)

        ranked = feedback_store.rerank_results(results, query_ref)

        assert [r.file_path for r in ranked] == ["docs/b.md", "docs/a.md"]
        assert ranked[1].score == pytest.approx(1.0)

    def test_boosts_multiply_in_order(self, feedback_store, query_ref):
        pin(feedback_store, query_ref, A)
        dismiss(feedback_store, query_ref, A)
        assert feedback_store.boost_for(query_ref, A) == pytest.approx(1.3 * 0.5)

    def test_custom_boosts(self, query_ref):
        store = FeedbackStore(FlywheelConfig(pin_boost=2.0))
        pin(store, query_ref, A)
        assert store.boost_for(query_ref, A) == 2.0

    def test_input_not_modified(self, feedback_store, query_ref, make_result):
        results = [make_result("docs/a.md", 0, 0.5), make_result("docs/b.md", 1, 0.6)]
        pin(feedback_store, query_ref, B)

        feedback_store.rerank_results(results, query_ref)

        assert [r.score for r in results] == [0.5, 0.6]

    def test_ties_keep_original_order(self, feedback_store, query_ref, make_result):
        results = [make_result(f"docs/{name}.md", 0, 0.4) for name in "wxyz"]
        assert [r.file_path for r in feedback_store.rerank_results(results, query_ref)] == [
            "docs/w.md", "docs/x.md", "docs/y.md", "docs/z.md"
        ]

    def test_fingerprint_survives_rename(self, feedback_store, query_ref, make_result):
        pin(feedback_store, query_ref, ChunkRef("old/path.md", 0, fingerprint="f00d"))
        results = [
            make_result("docs/a.md", 0, 0.5),
            make_result("new/path.md", 4, 0.6, fingerprint="f00d"),
        ]
        ranked = feedback_store.rerank_results(results, query_ref)
        assert ranked[0].fingerprint == "f00d"

    def test_feedback_is_scoped_to_source(self, feedback_store, make_result):
        pin(feedback_store, ChunkRef.for_query("cache"), B)
        results = [make_result("docs/a.md", 0, 0.5), make_result("docs/b.md", 1, 0.6)]
        ranked = feedback_store.rerank_results(results, ChunkRef.for_query("vector search"))
        assert [r.file_path for r in ranked] == ["docs/a.md", "docs/b.md"]


@pytest.mark.unit
class TestMaintenance:
    NOW = datetime(2026, 3, 1, tzinfo=timezone.utc)

    def test_prune_removes_old_events_softly(self, feedback_store, query_ref):
        pin(feedback_store, query_ref, A, timestamp=self.NOW - timedelta(days=40))
        pin(feedback_store, query_ref, B, timestamp=self.NOW - timedelta(days=1))

        removed = feedback_store.prune_old_events(now=self.NOW)

        assert removed == 1
        assert feedback_store.get_stats()["eventCount"] == 1
        # Indices are not rebuilt by default
        assert feedback_store.is_pinned(query_ref, A)

    def test_prune_with_rebuild(self, feedback_store, query_ref):
        pin(feedback_store, query_ref, A, timestamp=self.NOW - timedelta(days=40))
        pin(feedback_store, query_ref, B, timestamp=self.NOW - timedelta(days=1))

        feedback_store.prune_old_events(now=self.NOW, rebuild=True)

        assert not feedback_store.is_pinned(query_ref, A)
        assert feedback_store.is_pinned(query_ref, B)
        assert feedback_store.co_pin_count(A, B) == 0

    def test_naive_timestamps_are_treated_as_utc(self, feedback_store, query_ref):
        pin(feedback_store, query_ref, A, timestamp=datetime(2020, 1, 1))

        assert feedback_store.export_events()[0].timestamp == datetime(2020, 1, 1, tzinfo=timezone.utc)
        assert feedback_store.prune_old_events(now=self.NOW) == 1

    def test_prune_respects_configured_age(self, query_ref):
        store = FeedbackStore(FlywheelConfig(max_event_age=timedelta(days=7)))
        pin(store, query_ref, A, timestamp=self.NOW - timedelta(days=8))
        assert store.prune_old_events(now=self.NOW) == 1

    def test_rebuild_matches_incremental(self, feedback_store, query_ref):
        other = ChunkRef.for_query("other")
        pin(feedback_store, query_ref, A)
        pin(feedback_store, query_ref, B)
        pin(feedback_store, other, A)
        pin(feedback_store, other, B)
        feedback_store.record_event(FeedbackEvent(FeedbackEventType.UNPIN, other, B))
        dismiss(feedback_store, query_ref, C)

        before = (feedback_store.get_stats(), feedback_store.co_pin_count(A, B))
        feedback_store.rebuild_from_log()
        after = (feedback_store.get_stats(), feedback_store.co_pin_count(A, B))

        assert before == after

    def test_import_skips_invalid_entries(self, feedback_store, log_messages):
        good = FeedbackEvent(FeedbackEventType.PIN, ChunkRef.for_query("q"), A).to_dict()
        bad_timestamp = dict(good, timestamp="not-a-date")
        bad_type = dict(good, type="like")

        imported = feedback_store.import_events([good, bad_timestamp, bad_type, "junk"])

        assert imported == 1
        assert feedback_store.is_pinned(ChunkRef.for_query("q"), A)
        assert sum("Skipping invalid event" in m for m in log_messages) == 3

    def test_export_is_a_snapshot(self, feedback_store, query_ref):
        pin(feedback_store, query_ref, A)
        events = feedback_store.export_events()
        pin(feedback_store, query_ref, B)
        assert len(events) == 1


@pytest.mark.unit
def test_concurrent_recording(feedback_store):
    def worker(n):
        source = ChunkRef.for_query(f"query-{n}")
        for i in range(50):
            pin(feedback_store, source, ChunkRef("docs/shared.md", i))

    threads = [threading.Thread(target=worker, args=(n,)) for n in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    stats = feedback_store.get_stats()
    assert stats["eventCount"] == 400
    assert stats["pinnedPairs"] == 400
