# explainability/__init__.py
"""
Explainability for related chunks.

Components:
- find_shared_keywords / find_shared_phrases: lexical overlap
- determine_reason_label: categorical relationship label
- explain_chunk_similarity: all of the above as a ChunkExplanation
"""

from .keywords import (
    ChunkExplanation,
    ReasonLabel,
    determine_reason_label,
    explain_chunk_similarity,
    find_shared_keywords,
    find_shared_phrases,
    jaccard_similarity,
)

__all__ = [
    "ChunkExplanation",
    "ReasonLabel",
    "determine_reason_label",
    "explain_chunk_similarity",
    "find_shared_keywords",
    "find_shared_phrases",
    "jaccard_similarity",
]
