"""
Vector math and similarity ranking.
"""

import math
from typing import Iterable, List, Sequence

from ..exceptions import DimensionMismatch
from ..models import Chunk, RankedChunk


def l2_normalize(vector: Sequence[float]) -> List[float]:
    """Return a new list with the vector scaled to unit length."""
    norm = math.sqrt(sum(x * x for x in vector))
    if norm == 0.0:
        return list(vector)
    return [x / norm for x in vector]


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """
    Cosine similarity of two vectors.

    Args:
        a: First vector
        b: Second vector

    Returns:
        Similarity in [-1, 1]; 0.0 if either vector has zero norm

    Raises:
        DimensionMismatch: If the vectors differ in length
    """
    if len(a) != len(b):
        raise DimensionMismatch(len(a), len(b))

    dot = 0.0
    norm_a = 0.0
    norm_b = 0.0
    for x, y in zip(a, b):
        dot += x * y
        norm_a += x * x
        norm_b += y * y

    if norm_a == 0.0 or norm_b == 0.0:
        return 0.0

    similarity = dot / (math.sqrt(norm_a) * math.sqrt(norm_b))
    # Rounding can push parallel vectors just past 1
    return max(-1.0, min(1.0, similarity))


def rank(query_vector: Sequence[float], candidates: Iterable[Chunk], k: int) -> List[RankedChunk]:
    """
    Rank chunks by cosine similarity to a query vector.

    Chunks without a vector are skipped. Equal scores keep chunk index order.

    Args:
        query_vector: Embedded query
        candidates: Chunks to score
        k: Maximum number of results

    Returns:
        At most k ranked chunks, highest score first

    Raises:
        DimensionMismatch: If a candidate vector differs in length from the query
    """
    if k <= 0:
        return []

    scored = [
        RankedChunk(chunk=chunk, score=cosine_similarity(query_vector, chunk.vector))
        for chunk in sorted((c for c in candidates if c.vector), key=lambda c: c.index)
    ]
    scored.sort(key=lambda r: r.score, reverse=True)
    return scored[:k]
