"""
Feedback store: records user interactions and re-ranks results from them.

The event log is the source of truth. Three indices are derived from it
and updated incrementally as events arrive:

- pinned:      source key -> target keys pinned under it
- dismissed:   source key -> target keys dismissed under it
- co_pinned:   target key -> {co-target key -> count}, symmetric

rebuild_from_log() recomputes the indices from scratch; incremental updates
are an optimization and always agree with a rebuild of the same log.
"""

from datetime import datetime, timezone
from pathlib import Path
from threading import RLock
from typing import Any, Iterable, List, Optional, Sequence, TypeVar, Union

from loguru import logger

from ..config import FlywheelConfig
from ..errors import FeedbackFileNotFoundError
from ..scoring.models import ScoredResult
from .models import ChunkRef, FeedbackEvent, FeedbackEventType, chunk_key
from .persistence import read_feedback_file, write_feedback_file

# A co-pin pattern needs at least this many co-occurrences
CO_PIN_THRESHOLD = 2

R = TypeVar("R", bound=ScoredResult)


class FeedbackStore:
    """
    In-memory feedback log with derived lookup indices.

    Thread safety:
        A single re-entrant lock serializes every mutation and every index
        read, so readers never see an event half-applied.

    Example:
        store = FeedbackStore()
        store.record_event(FeedbackEvent(FeedbackEventType.PIN, source, target))
        ranked = store.rerank_results(results, source)
    """

    def __init__(self, config: Optional[FlywheelConfig] = None):
        """
        Args:
            config: Boost/penalty policy (defaults apply when omitted)
        """
        self.config = config or FlywheelConfig()
        self._lock = RLock()
        self._events: List[FeedbackEvent] = []
        self._pinned: dict[str, set[str]] = {}
        self._dismissed: dict[str, set[str]] = {}
        self._co_pinned: dict[str, dict[str, int]] = {}

    # ------------------------------------------------------------------
    # Recording
    # ------------------------------------------------------------------

    def record_event(self, event: FeedbackEvent) -> None:
        """Append an event to the log and update the indices."""
        with self._lock:
            self._events.append(event)
            self._apply(event)
        logger.debug(
            f"Feedback recorded: {event.type.value} {event.source.key} -> {event.target.key}"
        )

    def _apply(self, event: FeedbackEvent) -> None:
        """Update indices for one event. Caller holds the lock."""
        source_key = chunk_key(event.source)
        target_key = chunk_key(event.target)

        if event.type is FeedbackEventType.PIN:
            pins = self._pinned.setdefault(source_key, set())
            pins.add(target_key)
            for other in pins:
                if other == target_key:
                    continue
                forward = self._co_pinned.setdefault(other, {})
                forward[target_key] = forward.get(target_key, 0) + 1
                reverse = self._co_pinned.setdefault(target_key, {})
                reverse[other] = reverse.get(other, 0) + 1

        elif event.type is FeedbackEventType.UNPIN:
            # Co-pin counts are left as they are
            pins = self._pinned.get(source_key)
            if pins is not None:
                pins.discard(target_key)

        elif event.type is FeedbackEventType.DISMISS_INFERRED:
            self._dismissed.setdefault(source_key, set()).add(target_key)

        # CLICK_RELATED is logged only

    def rebuild_from_log(self) -> None:
        """Recompute all indices by replaying the event log."""
        with self._lock:
            self._pinned = {}
            self._dismissed = {}
            self._co_pinned = {}
            for event in self._events:
                self._apply(event)
            count = len(self._events)
        logger.info(f"FeedbackStore: Rebuilt indices from {count} events")

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def is_pinned(self, source: ChunkRef, target: ChunkRef) -> bool:
        with self._lock:
            pins = self._pinned.get(chunk_key(source))
            return pins is not None and chunk_key(target) in pins

    def was_dismissed(self, source: ChunkRef, target: ChunkRef) -> bool:
        with self._lock:
            dismissed = self._dismissed.get(chunk_key(source))
            return dismissed is not None and chunk_key(target) in dismissed

    def matches_co_pinned_pattern(self, source: ChunkRef, target: ChunkRef) -> bool:
        """
        True if target was co-pinned at least twice with any chunk pinned
        under source.
        """
        with self._lock:
            source_pins = self._pinned.get(chunk_key(source))
            if not source_pins:
                return False

            target_key = chunk_key(target)
            for pinned in source_pins:
                co_pins = self._co_pinned.get(pinned)
                if co_pins and co_pins.get(target_key, 0) >= CO_PIN_THRESHOLD:
                    return True
            return False

    def co_pin_count(self, first: ChunkRef, second: ChunkRef) -> int:
        """How many times two chunks were pinned together."""
        with self._lock:
            return self._co_pinned.get(chunk_key(first), {}).get(chunk_key(second), 0)

    # ------------------------------------------------------------------
    # Re-ranking
    # ------------------------------------------------------------------

    def boost_for(self, source: ChunkRef, target: ChunkRef) -> float:
        """
        Combined multiplier for a source/target pair.

        Applied in order: pin, co-pin, dismiss.
        """
        with self._lock:
            boost = 1.0
            if self.is_pinned(source, target):
                boost *= self.config.pin_boost
            if self.matches_co_pinned_pattern(source, target):
                boost *= self.config.co_pin_boost
            if self.was_dismissed(source, target):
                boost *= self.config.dismiss_penalty
            return boost

    def rerank_results(self, results: Sequence[R], source: ChunkRef) -> List[R]:
        """
        Re-rank results using recorded feedback.

        Each score is divided by its boost (lower is better, so a boost
        above 1 improves the rank). The sort is stable: ties keep their
        original relative order.

        Args:
            results: Results to re-rank (not modified)
            source: Query or chunk the results were retrieved for

        Returns:
            New list sorted ascending by boosted score
        """
        with self._lock:
            boosted = []
            for result in results:
                target = ChunkRef(
                    file_path=result.file_path,
                    chunk_index=result.chunk_index,
                    fingerprint=result.fingerprint or None,
                )
                boost = self.boost_for(source, target)
                if boost == 1.0:
                    boosted.append(result)
                else:
                    boosted.append(result.with_relevance(result.relevance.boosted(boost)))

        boosted.sort(key=lambda r: r.relevance)
        return boosted

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    def prune_old_events(self, now: Optional[datetime] = None, rebuild: bool = False) -> int:
        """
        Remove events older than max_event_age.

        The indices are not rebuilt unless rebuild=True, so pins from pruned
        events keep influencing ranking until the next rebuild or restart.

        Args:
            now: Reference time (defaults to current UTC time)
            rebuild: Rebuild indices after pruning

        Returns:
            Number of events removed
        """
        now = now or datetime.now(timezone.utc)
        cutoff = now - self.config.max_event_age

        with self._lock:
            before = len(self._events)
            self._events = [e for e in self._events if e.timestamp > cutoff]
            removed = before - len(self._events)
            if rebuild and removed:
                self.rebuild_from_log()

        if removed:
            logger.info(f"FeedbackStore: Pruned {removed} events older than {cutoff.isoformat()}")
        return removed

    def export_events(self) -> List[FeedbackEvent]:
        """Snapshot of the event log."""
        with self._lock:
            return list(self._events)

    def import_events(self, events: Iterable[Union[FeedbackEvent, dict[str, Any]]]) -> int:
        """
        Append events, e.g. from disk.

        Serialized entries are validated one by one; malformed entries
        (including unparseable timestamps) are skipped with a warning.

        Returns:
            Number of events imported
        """
        parsed: List[FeedbackEvent] = []
        for entry in events:
            if isinstance(entry, FeedbackEvent):
                parsed.append(entry)
                continue
            try:
                parsed.append(FeedbackEvent.from_dict(entry))
            except ValueError as e:
                logger.warning(f"FeedbackStore: Skipping invalid event {entry!r}: {e}")

        with self._lock:
            for event in parsed:
                self._events.append(event)
                self._apply(event)

        return len(parsed)

    def get_stats(self) -> dict[str, int]:
        """Event count and the number of pinned / dismissed pairs."""
        with self._lock:
            return {
                "eventCount": len(self._events),
                "pinnedPairs": sum(len(t) for t in self._pinned.values()),
                "dismissedPairs": sum(len(t) for t in self._dismissed.values()),
            }

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def save_to_disk(self, database_dir: Union[str, Path]) -> Path:
        """
        Write the event log to <database_dir>/feedback.json atomically.

        Raises:
            PersistenceError: If the write fails; the previous file is untouched
        """
        events = self.export_events()
        path = write_feedback_file(database_dir, events)
        logger.info(f"FeedbackStore: Saved {len(events)} events to {path}")
        return path

    def load_from_disk(self, database_dir: Union[str, Path]) -> int:
        """
        Import events from <database_dir>/feedback.json.

        A missing file is normal for a new database and is ignored. An
        unparseable file or an unsupported version is logged and ignored.

        Returns:
            Number of events imported

        Raises:
            PersistenceError: On unexpected I/O failures
        """
        try:
            entries = read_feedback_file(database_dir)
        except FeedbackFileNotFoundError:
            logger.debug(f"FeedbackStore: No feedback file in {database_dir}, starting fresh")
            return 0

        if entries is None:
            return 0

        imported = self.import_events(entries)
        logger.info(f"FeedbackStore: Loaded {imported} events from {database_dir}")
        return imported
