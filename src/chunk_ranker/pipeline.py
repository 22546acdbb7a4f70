"""
Retrieval ranking pipeline.

Main entry point for the server layer. Control flow:
1. Parse the raw query into structured intent
2. Embed the semantic string, build the full-text string
3. Fetch raw candidates from the store
4. Blend and quality-filter the two signals
5. Re-rank with user feedback
6. Apply exclusion and metadata filters, trim to the limit
7. Optionally explain each result against the query or a source chunk
"""

from pathlib import Path
from typing import List, Optional, Union

from loguru import logger

from .collaborators import CandidateStoreProtocol, EmbedderProtocol
from .config import Config, RankingConfig, Settings
from .explainability import explain_chunk_similarity
from .flywheel import ChunkRef, FeedbackEvent, FeedbackEventType, FeedbackStore
from .query import matches_filters, parse_query, should_exclude, to_fts_query, to_semantic_query
from .scoring import HybridScorer, ScoredResult


class RankingPipeline:
    """
    Request-scoped ranking over a shared feedback store.

    The pipeline holds no per-request state; the FeedbackStore it is given
    is the only shared mutable state and is owned by the caller.

    Example:
        pipeline = build_pipeline(load_settings(), storage, embedder)
        results = pipeline.search('"vector search" -draft author:kim', limit=5)
        pipeline.pin('"vector search"', ChunkRef("notes/a.md", 3))
    """

    def __init__(
        self,
        storage: CandidateStoreProtocol,
        embedder: EmbedderProtocol,
        feedback_store: FeedbackStore,
        ranking_config: Optional[RankingConfig] = None,
        db_path: Optional[Union[str, Path]] = None,
    ):
        """
        Args:
            storage: Vector + full-text candidate store
            embedder: Embedding model adapter
            feedback_store: Shared feedback store
            ranking_config: Hybrid scoring policy
            db_path: Database directory holding feedback.json
        """
        self.storage = storage
        self.embedder = embedder
        self.feedback_store = feedback_store
        self.scorer = HybridScorer(ranking_config)
        self.db_path = Path(db_path) if db_path is not None else None

    @property
    def ranking_config(self) -> RankingConfig:
        return self.scorer.config

    @staticmethod
    def _validate_limit(limit: int) -> None:
        if not (Config.MIN_RESULT_LIMIT <= limit <= Config.MAX_RESULT_LIMIT):
            raise ValueError(
                f"Invalid limit: expected {Config.MIN_RESULT_LIMIT}-"
                f"{Config.MAX_RESULT_LIMIT}, got {limit}"
            )

    def search(
        self,
        query: str,
        limit: int = Config.DEFAULT_RESULT_LIMIT,
        explain: bool = False,
    ) -> List[ScoredResult]:
        """
        Rank chunks for a query.

        Args:
            query: Raw query (phrases, field:value filters, -exclusions, OR)
            limit: Maximum number of results (1-20)
            explain: Attach a query-vs-result explanation to each result

        Returns:
            Results ordered most relevant first (ascending score)

        Raises:
            ValueError: If limit is out of range
        """
        self._validate_limit(limit)

        parsed = parse_query(query)
        semantic_query = to_semantic_query(parsed) or query
        fts_query = to_fts_query(parsed)

        # Ask for extra results when post-filters will discard some
        request_limit = (
            min(limit * 2, Config.MAX_RESULT_LIMIT) if parsed.has_post_filters else limit
        )
        candidate_limit = request_limit * self.ranking_config.candidate_multiplier

        query_vector = self.embedder.embed(semantic_query)
        candidates = self.storage.search(query_vector, fts_query, candidate_limit)

        results = self.scorer.score(candidates)
        results = self.feedback_store.rerank_results(results, ChunkRef.for_query(query))

        if parsed.has_post_filters:
            before = len(results)
            results = [
                r for r in results
                if not should_exclude(r.text, parsed.exclude_terms)
                and matches_filters(r.metadata, parsed.filters)
            ]
            logger.debug(f"Post-filters: {before} -> {len(results)}")

        results = results[:limit]

        if explain:
            for result in results:
                result.explanation = explain_chunk_similarity(
                    query, result.text, is_same_document=False, similarity_score=result.score
                ).to_dict()

        logger.info(
            f"Search completed: query='{query[:30]}', candidates={len(candidates)}, "
            f"results={len(results)}"
        )
        return results

    def related_to(
        self,
        source: ChunkRef,
        source_text: str,
        limit: int = Config.DEFAULT_RESULT_LIMIT,
        exclude_same_document: bool = True,
        include_explanation: bool = False,
    ) -> List[ScoredResult]:
        """
        Find chunks related to a source chunk.

        The source chunk itself is always excluded.

        Args:
            source: Reference to the source chunk
            source_text: Text of the source chunk
            limit: Maximum number of results (1-20)
            exclude_same_document: Drop other chunks from the source's file
            include_explanation: Attach shared keywords, phrases and a
                reason label to each result

        Raises:
            ValueError: If limit is out of range
        """
        self._validate_limit(limit)

        query_vector = self.embedder.embed(source_text)
        candidates = self.storage.search(
            query_vector, "", (limit + 1) * self.ranking_config.candidate_multiplier
        )

        source_key = source.key
        results = [
            r for r in self.scorer.score(candidates)
            if ChunkRef(r.file_path, r.chunk_index, r.fingerprint).key != source_key
            and not (r.file_path == source.file_path and r.chunk_index == source.chunk_index)
            and not (exclude_same_document and r.file_path == source.file_path)
        ]
        results = self.feedback_store.rerank_results(results, source)[:limit]

        if not include_explanation:
            return results

        for result in results:
            result.explanation = explain_chunk_similarity(
                source_text,
                result.text,
                is_same_document=result.file_path == source.file_path,
                similarity_score=result.score,
            ).to_dict()

        return results

    # ------------------------------------------------------------------
    # Feedback
    # ------------------------------------------------------------------

    def _record(self, event_type: FeedbackEventType, source: ChunkRef, target: ChunkRef) -> None:
        self.feedback_store.record_event(
            FeedbackEvent(type=event_type, source=source, target=target)
        )

    def pin(self, query: str, target: ChunkRef) -> None:
        """Pin a result for a query."""
        self._record(FeedbackEventType.PIN, ChunkRef.for_query(query), target)

    def unpin(self, query: str, target: ChunkRef) -> None:
        self._record(FeedbackEventType.UNPIN, ChunkRef.for_query(query), target)

    def dismiss(self, query: str, target: ChunkRef) -> None:
        """Dismiss a result suggested for a query."""
        self._record(FeedbackEventType.DISMISS_INFERRED, ChunkRef.for_query(query), target)

    def record_click(self, source: ChunkRef, target: ChunkRef) -> None:
        self._record(FeedbackEventType.CLICK_RELATED, source, target)

    def feedback_stats(self) -> dict[str, int]:
        return self.feedback_store.get_stats()

    def flush_feedback(self) -> Optional[Path]:
        """
        Persist the feedback store to the database directory.

        Returns:
            Written path, or None if the pipeline has no db_path

        Raises:
            PersistenceError: If the write fails
        """
        if self.db_path is None:
            logger.debug("No db_path configured, feedback not persisted")
            return None
        return self.feedback_store.save_to_disk(self.db_path)


def build_pipeline(
    settings: Settings,
    storage: CandidateStoreProtocol,
    embedder: EmbedderProtocol,
) -> RankingPipeline:
    """
    Composition root.

    Constructs the one FeedbackStore for the process and loads its history
    before any pipeline can use it; the caller shares the returned pipeline
    (and its store) across requests.
    """
    feedback_store = FeedbackStore(settings.flywheel)
    feedback_store.load_from_disk(settings.db_path)

    pipeline = RankingPipeline(
        storage=storage,
        embedder=embedder,
        feedback_store=feedback_store,
        ranking_config=settings.ranking,
        db_path=settings.db_path,
    )
    logger.info(
        f"Ranking pipeline ready: db_path={settings.db_path}, "
        f"feedback_events={feedback_store.get_stats()['eventCount']}"
    )
    return pipeline
