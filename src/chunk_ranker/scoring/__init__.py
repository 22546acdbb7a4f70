# scoring/__init__.py
"""
Hybrid scoring for retrieval candidates.

Components:
- RelevanceScore: lower-is-better score wrapper
- Candidate / ScoredResult: raw matches and ranked results
- HybridScorer: blends vector and lexical signals, applies quality filtering
"""

from .hybrid import HybridScorer, apply_grouping
from .models import Candidate, ScoredResult
from .relevance import RelevanceScore

__all__ = [
    "Candidate",
    "HybridScorer",
    "RelevanceScore",
    "ScoredResult",
    "apply_grouping",
]
