# scoring/relevance.py
"""
Distance-style relevance score.

Every score in the pipeline is a distance: lower means more relevant.
RelevanceScore keeps that convention in one place so callers compare and
boost scores without re-deriving which direction is "better".
"""

from dataclasses import dataclass


@dataclass(frozen=True, order=True)
class RelevanceScore:
    """
    A lower-is-better relevance score.

    Ordering is ascending, so sorted() puts the most relevant first.
    """

    value: float

    def is_better_than(self, other: "RelevanceScore") -> bool:
        return self.value < other.value

    def boosted(self, factor: float) -> "RelevanceScore":
        """
        Apply a multiplicative boost.

        factor > 1 makes the result more relevant (smaller distance),
        factor < 1 makes it less relevant.

        Raises:
            ValueError: If factor is not positive
        """
        if factor <= 0:
            raise ValueError(f"Boost factor must be > 0, got {factor}")
        return RelevanceScore(self.value / factor)

    def exceeds(self, threshold: float) -> bool:
        """True if this score is worse than the given distance threshold."""
        return self.value > threshold

    def __float__(self) -> float:
        return float(self.value)
