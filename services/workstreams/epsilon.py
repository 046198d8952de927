"""
Epsilon estimation for DBSCAN
Derives the neighbourhood radius from the k-nearest-neighbour distance distribution
"""

import math
from typing import Optional, Sequence

import numpy as np
import structlog

from .vector_math import cosine_distance_matrix

logger = structlog.get_logger()

# Used when the corpus is too small to estimate a distribution
DEFAULT_EPSILON = 0.6

# Lower percentiles favour more, tighter clusters
EPSILON_PERCENTILE = 0.4

MIN_EPSILON = 0.15
MAX_EPSILON = 0.35


def k_distances(distances: np.ndarray, k: int) -> np.ndarray:
    """
    Sorted k-th nearest neighbour distance of every point.

    Args:
        distances: Square pairwise distance matrix
        k: Neighbour rank (1 = nearest other point)

    Returns:
        Ascending array with one entry per point, empty if no point has a neighbour
    """
    n = distances.shape[0]
    if n < 2:
        return np.empty(0, dtype=np.float64)

    # Exclude each point from its own neighbour list
    others = distances.astype(np.float64, copy=True)
    np.fill_diagonal(others, np.inf)
    others.sort(axis=1)

    column = min(k - 1, n - 2)
    return np.sort(others[:, column])


def estimate_epsilon(
    embeddings: Sequence[Sequence[float]],
    k: int,
    distances: Optional[np.ndarray] = None,
) -> float:
    """
    Estimate the DBSCAN epsilon for a set of embeddings.

    Takes the 40th percentile of the sorted k-distances and clamps it to
    [MIN_EPSILON, MAX_EPSILON]. Corpora with fewer than k points get
    DEFAULT_EPSILON.

    Args:
        embeddings: Embedding vectors
        k: Neighbour rank, normally minPts
        distances: Precomputed cosine distance matrix, computed if omitted
    """
    n = len(embeddings)
    if n < k:
        logger.debug("Too few points to estimate epsilon", n=n, k=k, epsilon=DEFAULT_EPSILON)
        return DEFAULT_EPSILON

    if distances is None:
        distances = cosine_distance_matrix(embeddings)

    kdist = k_distances(distances, k)
    if kdist.size == 0:
        # A single point has no neighbours to measure
        return MAX_EPSILON

    raw = float(kdist[math.floor(EPSILON_PERCENTILE * kdist.size)])
    epsilon = min(MAX_EPSILON, max(MIN_EPSILON, raw))
    logger.debug("Estimated epsilon", n=n, k=k, raw=round(raw, 4), epsilon=round(epsilon, 4))
    return epsilon
