"""Interfaces for the external embedding and storage collaborators."""

import re
from dataclasses import dataclass, field
from threading import Event, Lock
from typing import Any, Dict, List, Optional, Protocol, Sequence, runtime_checkable

from loguru import logger

from .errors import EmbeddingError
from .fingerprint import generate_chunk_fingerprint
from .scoring.models import Candidate
from .vector_math import cosine_similarity

_FTS_PHRASE = re.compile(r'"([^"]*)"')


@runtime_checkable
class EmbedderProtocol(Protocol):
    """Embedding model adapter."""

    def embed(self, text: str) -> List[float]:
        """
        Embed a single text.

        Raises:
            EmbeddingError: On empty text or backend failure
        """
        ...

    def embed_batch(
        self,
        texts: Sequence[str],
        cancel_event: Optional[Event] = None,
    ) -> List[List[float]]:
        """Embed several texts, stopping early if cancel_event is set."""
        ...


@runtime_checkable
class CandidateStoreProtocol(Protocol):
    """Vector + full-text store returning raw candidates."""

    def search(
        self,
        query_vector: Sequence[float],
        fts_query: str,
        limit: int,
    ) -> List[Candidate]:
        """
        Return up to limit candidates with raw vector distances and
        lexical scores (either may be None).
        """
        ...


@dataclass
class _StoredChunk:
    file_path: str
    chunk_index: int
    text: str
    vector: List[float]
    fingerprint: str
    metadata: Dict[str, Any] = field(default_factory=dict)


class InMemoryCandidateStore:
    """
    Small CandidateStoreProtocol implementation held in memory.

    Vector distance is 1 - cosine similarity (range [0, 2]). The lexical
    score counts occurrences of the full-text query's terms and phrases.
    Returns the union of the best `limit` matches by each signal.
    """

    def __init__(self):
        self._chunks: List[_StoredChunk] = []
        self._lock = Lock()

    def __len__(self) -> int:
        return len(self._chunks)

    def add(
        self,
        file_path: str,
        chunk_index: int,
        text: str,
        vector: Sequence[float],
        metadata: Optional[Dict[str, Any]] = None,
    ) -> str:
        """Index a chunk. Returns its content fingerprint."""
        fingerprint = generate_chunk_fingerprint(text)
        with self._lock:
            self._chunks.append(
                _StoredChunk(
                    file_path=file_path,
                    chunk_index=chunk_index,
                    text=text,
                    vector=list(vector),
                    fingerprint=fingerprint,
                    metadata=dict(metadata or {}),
                )
            )
        return fingerprint

    @staticmethod
    def _fts_terms(fts_query: str) -> List[str]:
        terms = [phrase.lower() for phrase in _FTS_PHRASE.findall(fts_query) if phrase]
        remainder = _FTS_PHRASE.sub(" ", fts_query)
        terms.extend(word.lower() for word in remainder.split())
        return terms

    def search(
        self,
        query_vector: Sequence[float],
        fts_query: str,
        limit: int,
    ) -> List[Candidate]:
        with self._lock:
            chunks = list(self._chunks)

        terms = self._fts_terms(fts_query)
        scored = []
        for chunk in chunks:
            distance = None
            if query_vector:
                distance = 1.0 - cosine_similarity(query_vector, chunk.vector)
            lexical = None
            if terms:
                text = chunk.text.lower()
                hits = sum(text.count(term) for term in terms)
                lexical = float(hits) if hits else None
            scored.append((chunk, distance, lexical))

        by_vector = sorted(
            (s for s in scored if s[1] is not None), key=lambda s: s[1]
        )[:limit]
        by_lexical = sorted(
            (s for s in scored if s[2] is not None), key=lambda s: -s[2]
        )[:limit]

        candidates: List[Candidate] = []
        seen = set()
        for chunk, distance, lexical in by_vector + by_lexical:
            if id(chunk) in seen:
                continue
            seen.add(id(chunk))
            candidates.append(
                Candidate(
                    file_path=chunk.file_path,
                    chunk_index=chunk.chunk_index,
                    fingerprint=chunk.fingerprint,
                    raw_vector_distance=distance,
                    raw_lexical_score=lexical,
                    text=chunk.text,
                    metadata=dict(chunk.metadata),
                )
            )

        logger.debug(
            f"InMemoryCandidateStore: {len(by_vector)} vector, {len(by_lexical)} lexical, "
            f"{len(candidates)} merged"
        )
        return candidates


def embed_in_batches(
    embedder: EmbedderProtocol,
    texts: Sequence[str],
    batch_size: int = 32,
    cancel_event: Optional[Event] = None,
) -> List[List[float]]:
    """
    Embed texts batch by batch.

    cancel_event is checked between batches; when set, iteration stops and
    the vectors embedded so far are returned.

    Raises:
        ValueError: If batch_size is not positive
        EmbeddingError: Propagated from the embedder
    """
    if batch_size <= 0:
        raise ValueError(f"batch_size must be > 0, got {batch_size}")

    vectors: List[List[float]] = []
    for start in range(0, len(texts), batch_size):
        if cancel_event is not None and cancel_event.is_set():
            logger.info(f"Embedding cancelled after {len(vectors)}/{len(texts)} texts")
            break
        batch = texts[start:start + batch_size]
        batch_vectors = embedder.embed_batch(batch, cancel_event)
        if cancel_event is not None and cancel_event.is_set():
            # The embedder may have stopped part way through this batch
            vectors.extend(batch_vectors)
            logger.info(f"Embedding cancelled after {len(vectors)}/{len(texts)} texts")
            break
        if len(batch_vectors) != len(batch):
            raise EmbeddingError(
                f"Embedder returned {len(batch_vectors)} vectors for {len(batch)} texts"
            )
        vectors.extend(batch_vectors)

    return vectors
