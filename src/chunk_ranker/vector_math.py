"""Vector helpers used when comparing embeddings directly."""

import math
from typing import Sequence


def cosine_similarity(vec1: Sequence[float], vec2: Sequence[float]) -> float:
    """
    Cosine of the angle between two vectors.

    Returns a value in [-1, 1], or 0.0 when the vectors differ in length,
    are empty, or either has zero norm.
    """
    if len(vec1) != len(vec2) or len(vec1) == 0:
        return 0.0

    dot = 0.0
    norm1 = 0.0
    norm2 = 0.0
    for a, b in zip(vec1, vec2):
        dot += a * b
        norm1 += a * a
        norm2 += b * b

    denominator = math.sqrt(norm1) * math.sqrt(norm2)
    if denominator == 0:
        return 0.0

    return dot / denominator

