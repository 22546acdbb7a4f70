"""Pytest fixtures and test utilities for the chunk ranker test suite."""

from typing import List, Optional, Sequence

import pytest
from loguru import logger

from src.chunk_ranker.collaborators import InMemoryCandidateStore
from src.chunk_ranker.flywheel import ChunkRef, FeedbackStore
from src.chunk_ranker.scoring import Candidate, ScoredResult

# Words the fake embedder maps onto vector dimensions
VOCABULARY = ["vector", "search", "cache", "redis", "python", "database", "ranking", "draft"]


# ============================================================================
# COLLABORATOR FAKES
# ============================================================================


class KeywordEmbedder:
    """
    Deterministic embedder: one dimension per vocabulary word plus a bias
    dimension so no vector has zero norm.
    """

    def __init__(self):
        self.calls: List[str] = []

    def embed(self, text: str) -> List[float]:
        self.calls.append(text)
        lowered = text.lower()
        return [1.0 if word in lowered else 0.0 for word in VOCABULARY] + [0.1]

    def embed_batch(self, texts: Sequence[str], cancel_event=None) -> List[List[float]]:
        vectors = []
        for text in texts:
            if cancel_event is not None and cancel_event.is_set():
                break
            vectors.append(self.embed(text))
        return vectors


class RecordingStorage:
    """Storage stub returning fixed candidates and recording each request."""

    def __init__(self, candidates: Optional[List[Candidate]] = None):
        self.candidates = candidates or []
        self.requests: List[dict] = []

    def search(self, query_vector, fts_query, limit):
        self.requests.append({"query_vector": query_vector, "fts_query": fts_query, "limit": limit})
        return list(self.candidates[:limit])


# ============================================================================
# FIXTURES
# ============================================================================


@pytest.fixture
def log_messages():
    """
    Capture loguru output for assertions.

    Yields:
        List of "LEVEL message" strings
    """
    messages: List[str] = []
    handler_id = logger.add(
        lambda message: messages.append(
            f"{message.record['level'].name} {message.record['message']}"
        ),
        level="DEBUG",
    )
    try:
        yield messages
    finally:
        logger.remove(handler_id)


@pytest.fixture
def embedder():
    return KeywordEmbedder()


@pytest.fixture
def chunk_store(embedder):
    """In-memory store seeded with a handful of chunks."""
    store = InMemoryCandidateStore()
    chunks = [
        ("docs/search.md", 0, "Vector search ranks chunks by embedding distance.", {"author": "Kim"}),
        ("docs/search.md", 1, "Hybrid search blends vector and keyword ranking.", {"author": "Kim"}),
        ("docs/cache.md", 0, "A redis cache keeps hot keys in memory.", {"author": "Lee"}),
        ("notes/draft.md", 0, "Draft notes about vector search tuning.", {"author": "Kim"}),
        ("notes/python.md", 0, "Python database drivers and connection pools.", {"author": "Park"}),
    ]
    for file_path, chunk_index, text, metadata in chunks:
        store.add(file_path, chunk_index, text, embedder.embed(text), metadata)
    embedder.calls.clear()
    return store


@pytest.fixture
def feedback_store():
    return FeedbackStore()


@pytest.fixture
def query_ref():
    return ChunkRef.for_query("vector search")


@pytest.fixture
def make_result():
    """Factory for ScoredResult instances."""

    def _make(file_path: str, chunk_index: int, score: float, fingerprint=None, text=""):
        return ScoredResult(
            file_path=file_path,
            chunk_index=chunk_index,
            score=score,
            fingerprint=fingerprint,
            text=text,
        )

    return _make


@pytest.fixture
def recording_storage():
    """Storage stub; assign .candidates before searching."""
    return RecordingStorage()
