# scoring/hybrid.py
"""
Hybrid vector + lexical score combiner with quality filtering.

Architecture:
1. Normalize vector distances and lexical scores to 0-1 distances
2. Blend them with the hybrid weight (0 = vector only, 1 = lexical only)
3. Drop candidates beyond max_distance
4. Optionally cut the ranked list at score-group boundaries

Grouping works on score gaps, not on source documents: a boundary falls
wherever the gap between consecutive scores exceeds mean + k*std of all
gaps. "similar" keeps the first group, "related" the first two.

All scores are distances: lower is better.
"""

import math
from typing import List, Optional, Sequence

from loguru import logger

from ..config import GroupingMode, RankingConfig
from .models import Candidate, ScoredResult
from .relevance import RelevanceScore

# Dot distance on normalized embeddings spans [0, 2]
VECTOR_DISTANCE_RANGE = 2.0

# Blended score for a candidate that carries no signal at all
NO_SIGNAL_SCORE = 1.0


def normalize_vector_distance(distance: float) -> float:
    """Map a raw vector distance onto [0, 1]."""
    return min(max(distance / VECTOR_DISTANCE_RANGE, 0.0), 1.0)


def normalize_lexical_scores(candidates: Sequence[Candidate]) -> dict[int, float]:
    """
    Convert lexical scores to 0-1 distances, keyed by candidate position.

    Scores are divided by the batch maximum (the best lexical match gets
    distance 0.0); a batch whose scores are all zero maps every score to 1.0.
    """
    present = [
        (i, c.raw_lexical_score)
        for i, c in enumerate(candidates)
        if c.raw_lexical_score is not None
    ]
    if not present:
        return {}

    max_score = max(score for _, score in present)
    if max_score <= 0:
        return {i: 1.0 for i, _ in present}

    return {i: 1.0 - max(score, 0.0) / max_score for i, score in present}


def apply_grouping(
    results: List[ScoredResult],
    mode: GroupingMode,
    std_multiplier: float = 1.5,
) -> List[ScoredResult]:
    """
    Cut a ranked list at significant score gaps.

    A gap between consecutive scores is a group boundary when it exceeds
    mean + std_multiplier * std of all gaps.
    - SIMILAR keeps the first group
    - RELATED keeps the first two groups (everything if there is only one boundary)

    Args:
        results: Results sorted by score ascending
        mode: Grouping mode
        std_multiplier: Boundary sensitivity

    Returns:
        Prefix of results
    """
    if len(results) <= 1:
        return results

    gaps = [
        (i + 1, results[i + 1].score - results[i].score)
        for i in range(len(results) - 1)
    ]

    values = [gap for _, gap in gaps]
    mean = sum(values) / len(values)
    variance = sum((v - mean) ** 2 for v in values) / len(values)
    threshold = mean + std_multiplier * math.sqrt(variance)

    boundaries = [index for index, gap in gaps if gap > threshold]
    if not boundaries:
        return results

    groups_to_include = 1 if mode == GroupingMode.SIMILAR else 2
    boundary_index = groups_to_include - 1

    if boundary_index >= len(boundaries):
        return results if mode == GroupingMode.RELATED else results[:boundaries[0]]

    return results[:boundaries[boundary_index]]


class HybridScorer:
    """
    Stateless scoring policy between raw retrieval and feedback re-ranking.

    Example:
        scorer = HybridScorer(RankingConfig(hybrid_weight=0.3, max_distance=0.8))
        ranked = scorer.score(candidates)
    """

    def __init__(self, config: Optional[RankingConfig] = None):
        """
        Args:
            config: Validated ranking policy (defaults apply when omitted)
        """
        self.config = config or RankingConfig()

    def blend(
        self,
        vector_distance: Optional[float],
        lexical_distance: Optional[float],
    ) -> RelevanceScore:
        """
        Blend two normalized distances.

        Falls back to whichever signal is present when the other is missing.
        """
        weight = self.config.hybrid_weight
        if vector_distance is not None and lexical_distance is not None:
            return RelevanceScore((1.0 - weight) * vector_distance + weight * lexical_distance)
        if vector_distance is not None:
            return RelevanceScore(vector_distance)
        if lexical_distance is not None:
            return RelevanceScore(lexical_distance)
        return RelevanceScore(NO_SIGNAL_SCORE)

    def combine(self, candidates: Sequence[Candidate]) -> List[ScoredResult]:
        """
        Merge both signals into one ranked list, without filtering.

        Returns:
            Results sorted by blended score ascending (stable)
        """
        if not candidates:
            return []

        lexical = normalize_lexical_scores(candidates)
        results = []

        for i, candidate in enumerate(candidates):
            vector = (
                normalize_vector_distance(candidate.raw_vector_distance)
                if candidate.raw_vector_distance is not None
                else None
            )
            relevance = self.blend(vector, lexical.get(i))
            if candidate.raw_vector_distance is None and i not in lexical:
                logger.debug(
                    f"Candidate {candidate.file_path}:{candidate.chunk_index} has no scores"
                )

            results.append(
                ScoredResult(
                    file_path=candidate.file_path,
                    chunk_index=candidate.chunk_index,
                    fingerprint=candidate.fingerprint,
                    score=float(relevance),
                    text=candidate.text,
                    metadata=dict(candidate.metadata),
                )
            )

        results.sort(key=lambda r: r.relevance)
        return results

    def filter(self, results: List[ScoredResult]) -> List[ScoredResult]:
        """Apply max_distance and grouping to an already ranked list."""
        if not results:
            return results

        filtered = results
        if self.config.max_distance is not None:
            filtered = [r for r in filtered if not r.relevance.exceeds(self.config.max_distance)]
            if len(filtered) < len(results):
                logger.debug(
                    f"Max distance filter: {len(results)} -> {len(filtered)} "
                    f"(max_distance={self.config.max_distance})"
                )

        if self.config.grouping is not None and len(filtered) > 1:
            before = len(filtered)
            filtered = apply_grouping(
                filtered, self.config.grouping, self.config.grouping_std_multiplier
            )
            if len(filtered) < before:
                logger.debug(
                    f"Grouping ({self.config.grouping.value}): {before} -> {len(filtered)}"
                )

        return filtered

    def score(self, candidates: Sequence[Candidate]) -> List[ScoredResult]:
        """
        Combine and filter candidates.

        An empty candidate list passes through as an empty result list.
        """
        return self.filter(self.combine(candidates))
