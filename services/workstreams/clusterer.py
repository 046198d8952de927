"""
Achievement Clustering Engine
Groups achievement embeddings into workstreams using DBSCAN over cosine distance,
searching a few epsilon values for a useful number of balanced clusters
"""

import math
from dataclasses import dataclass
from typing import Optional, Sequence

import numpy as np
import structlog
from sklearn.cluster import DBSCAN

from shared.schemas import ClusteringParams

from .epsilon import estimate_epsilon
from .vector_math import cosine_distance_matrix

logger = structlog.get_logger()

# Boundary points at exactly epsilon stay inside the neighbourhood
EPSILON_BUFFER = 0.001

MAX_ATTEMPTS = 3
EPSILON_DECAY = 0.85

# Scoring targets
TARGET_CLUSTERS = 10
TARGET_COVERAGE = 0.7
CLUSTER_COUNT_WEIGHT = 5
DOMINANCE_WEIGHT = 100
COVERAGE_WEIGHT = 30

# Early stop once an attempt is balanced enough
GOOD_ENOUGH_DOMINANCE = 0.5
GOOD_ENOUGH_CLUSTERS = 5

# Adaptive size filtering
MAX_CLUSTERS_BEFORE_FILTER = 25
ITEMS_PER_TARGET_CLUSTER = 25
MIN_TARGET_CLUSTERS = 12
MAX_TARGET_CLUSTERS = 20


@dataclass
class ClusteringResult:
    """Result of clustering operation"""
    clusters: list[list[int]]  # point indices per retained cluster
    labels: list[int]  # cluster index per point, -1 for outliers
    epsilon: float
    outlier_count: int


@dataclass
class ClusteringAttempt:
    """One DBSCAN run at a given epsilon"""
    epsilon: float
    clusters: list[list[int]]
    noise: list[int]
    score: float = 0.0
    n_points: int = 0

    @property
    def assigned(self) -> int:
        return sum(len(c) for c in self.clusters)

    @property
    def largest(self) -> int:
        return max((len(c) for c in self.clusters), default=0)

    @property
    def dominance(self) -> float:
        """Share of assigned points held by the largest cluster"""
        if self.assigned == 0:
            return 1.0
        return self.largest / self.assigned

    @property
    def coverage(self) -> float:
        if self.n_points == 0:
            return 0.0
        return self.assigned / self.n_points


def score_attempt(attempt: ClusteringAttempt) -> float:
    """Higher for about ten balanced clusters covering ~70% of points"""
    return (
        -CLUSTER_COUNT_WEIGHT * abs(len(attempt.clusters) - TARGET_CLUSTERS)
        - DOMINANCE_WEIGHT * attempt.dominance
        - COVERAGE_WEIGHT * abs(attempt.coverage - TARGET_COVERAGE)
    )


def run_dbscan(distances: np.ndarray, epsilon: float, min_pts: int) -> tuple[list[list[int]], list[int]]:
    """Run DBSCAN on a precomputed distance matrix, returning clusters and noise indices"""
    labels = DBSCAN(eps=epsilon, min_samples=min_pts, metric="precomputed").fit_predict(distances)

    n_clusters = int(labels.max()) + 1 if labels.size else 0
    clusters = [np.flatnonzero(labels == c).tolist() for c in range(n_clusters)]
    noise = np.flatnonzero(labels == -1).tolist()
    return clusters, noise


def adaptive_min_cluster_size(cluster_sizes: Sequence[int], n_points: int, min_cluster_size: int) -> int:
    """
    Raise min_cluster_size so that at most a target number of clusters survive.

    Only applies when there are more than MAX_CLUSTERS_BEFORE_FILTER clusters.
    The target scales with corpus size within [MIN_TARGET_CLUSTERS, MAX_TARGET_CLUSTERS].
    """
    if len(cluster_sizes) <= MAX_CLUSTERS_BEFORE_FILTER:
        return min_cluster_size

    target = min(MAX_TARGET_CLUSTERS, max(MIN_TARGET_CLUSTERS, math.floor(n_points / ITEMS_PER_TARGET_CLUSTER)))
    sizes = sorted(cluster_sizes, reverse=True)
    threshold = sizes[target - 1]

    # Ties at the boundary size can still leave too many clusters
    while sum(1 for s in sizes if s >= threshold) > target:
        threshold += 1

    new_min = max(min_cluster_size, threshold)
    logger.info(
        "Raising minimum cluster size",
        clusters=len(cluster_sizes),
        target=target,
        min_cluster_size=new_min,
    )
    return new_min


def cluster_embeddings(
    embeddings: Sequence[Sequence[float]],
    params: ClusteringParams,
    distances: Optional[np.ndarray] = None,
) -> ClusteringResult:
    """
    Cluster achievement embeddings into workstreams.

    Args:
        embeddings: Embedding vectors, all of the same dimensionality
        params: Clustering parameters (min_pts, min_cluster_size)
        distances: Precomputed cosine distance matrix, computed if omitted

    Returns:
        ClusteringResult with retained clusters, per-point labels, epsilon and outlier count
    """
    n_points = len(embeddings)
    if n_points == 0:
        return ClusteringResult(clusters=[], labels=[], epsilon=0.0, outlier_count=0)

    logger.info("Starting clustering", n_points=n_points, min_pts=params.min_pts)

    if distances is None:
        distances = cosine_distance_matrix(embeddings)

    base_epsilon = estimate_epsilon(embeddings, params.min_pts, distances=distances) + EPSILON_BUFFER

    best: Optional[ClusteringAttempt] = None
    for attempt_no in range(MAX_ATTEMPTS):
        epsilon = base_epsilon * EPSILON_DECAY ** attempt_no
        clusters, noise = run_dbscan(distances, epsilon, params.min_pts)
        attempt = ClusteringAttempt(epsilon=epsilon, clusters=clusters, noise=noise, n_points=n_points)
        attempt.score = score_attempt(attempt)

        logger.info(
            "Clustering attempt",
            attempt=attempt_no + 1,
            epsilon=round(epsilon, 4),
            clusters=len(clusters),
            noise=len(noise),
            largest=attempt.largest,
            score=round(attempt.score, 2),
        )

        if best is None or attempt.score > best.score:
            best = attempt

        if attempt.dominance < GOOD_ENOUGH_DOMINANCE and len(clusters) >= GOOD_ENOUGH_CLUSTERS:
            break

    min_cluster_size = adaptive_min_cluster_size(
        [len(c) for c in best.clusters], n_points, params.min_cluster_size
    )

    retained = [c for c in best.clusters if len(c) >= min_cluster_size]
    dropped = sum(len(c) for c in best.clusters if len(c) < min_cluster_size)
    outlier_count = len(best.noise) + dropped

    labels = [-1] * n_points
    for cluster_idx, members in enumerate(retained):
        for point in members:
            labels[point] = cluster_idx

    logger.info(
        "Clustering complete",
        epsilon=round(best.epsilon, 4),
        clusters=len(retained),
        dropped_small=len(best.clusters) - len(retained),
        outliers=outlier_count,
    )

    return ClusteringResult(
        clusters=retained,
        labels=labels,
        epsilon=best.epsilon,
        outlier_count=outlier_count,
    )
