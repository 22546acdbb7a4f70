# scoring/models.py
"""Candidate and result types flowing through the ranking pipeline."""

from dataclasses import dataclass, field, replace
from typing import Any, Dict, Optional

from .relevance import RelevanceScore


@dataclass
class Candidate:
    """
    A raw match returned by the storage collaborator.

    Either signal may be missing: rows found only by full-text search have
    no vector distance, rows found only by vector search have no lexical
    score.
    """

    file_path: str
    chunk_index: int
    fingerprint: Optional[str] = None
    raw_vector_distance: Optional[float] = None  # lower is better
    raw_lexical_score: Optional[float] = None  # higher is better (BM25-style)
    text: str = ""
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class ScoredResult:
    """
    A ranked chunk. score is a distance: lower means more relevant.
    """

    file_path: str
    chunk_index: int
    score: float
    fingerprint: Optional[str] = None
    text: str = ""
    metadata: Dict[str, Any] = field(default_factory=dict)
    explanation: Optional[Dict[str, Any]] = None

    @property
    def relevance(self) -> RelevanceScore:
        return RelevanceScore(self.score)

    def with_relevance(self, relevance: RelevanceScore) -> "ScoredResult":
        """Copy of this result carrying a new score."""
        return replace(self, score=relevance.value)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        data = {
            "file_path": self.file_path,
            "chunk_index": self.chunk_index,
            "fingerprint": self.fingerprint,
            "score": self.score,
            "text": self.text,
            "metadata": self.metadata,
        }
        if self.explanation is not None:
            data["explanation"] = self.explanation
        return data
