"""Tests for workstreams.epsilon module."""

import numpy as np
import pytest

from services.workstreams.epsilon import (
    DEFAULT_EPSILON,
    MAX_EPSILON,
    MIN_EPSILON,
    estimate_epsilon,
    k_distances,
)
from services.workstreams.vector_math import cosine_distance_matrix


class TestKDistances:
    def test_picks_kth_nearest_other_point(self) -> None:
        # Distances from point 0: 0.1, 0.4, 0.9
        distances = np.array([
            [0.0, 0.1, 0.4, 0.9],
            [0.1, 0.0, 0.2, 0.8],
            [0.4, 0.2, 0.0, 0.3],
            [0.9, 0.8, 0.3, 0.0],
        ])
        assert k_distances(distances, 2).tolist() == [0.2, 0.3, 0.4, 0.8]

    def test_k_larger_than_neighbours_uses_farthest(self) -> None:
        distances = np.array([[0.0, 0.5], [0.5, 0.0]])
        assert k_distances(distances, 5).tolist() == [0.5, 0.5]

    def test_single_point_has_no_k_distance(self) -> None:
        assert k_distances(np.zeros((1, 1)), 1).size == 0


class TestEstimateEpsilon:
    def test_fewer_points_than_k_returns_default(self) -> None:
        assert estimate_epsilon([[1.0, 0.0], [0.0, 1.0]], k=3) == DEFAULT_EPSILON
        assert estimate_epsilon([], k=1) == DEFAULT_EPSILON

    def test_tight_points_clamped_to_minimum(self) -> None:
        vectors = [[1.0, 0.001 * i] for i in range(10)]
        assert estimate_epsilon(vectors, k=3) == MIN_EPSILON

    def test_orthogonal_points_clamped_to_maximum(self) -> None:
        vectors = np.eye(6).tolist()
        assert estimate_epsilon(vectors, k=3) == MAX_EPSILON

    def test_uses_fortieth_percentile(self) -> None:
        # Unit vectors at increasing angles; k=1 distances are known
        angles = [0.0, 0.7, 1.4, 2.1, 2.8]
        vectors = [[np.cos(a), np.sin(a)] for a in angles]
        distances = cosine_distance_matrix(vectors)
        kdist = k_distances(distances, 1)
        expected = min(MAX_EPSILON, max(MIN_EPSILON, kdist[2]))
        assert estimate_epsilon(vectors, k=1) == pytest.approx(expected)

    @pytest.mark.parametrize("seed", [0, 1, 2, 3])
    def test_always_within_bounds(self, seed: int) -> None:
        rng = np.random.RandomState(seed)
        vectors = rng.normal(size=(30, 16)).tolist()
        assert MIN_EPSILON <= estimate_epsilon(vectors, k=3) <= MAX_EPSILON

    def test_single_point_within_bounds(self) -> None:
        assert MIN_EPSILON <= estimate_epsilon([[1.0, 0.0]], k=1) <= MAX_EPSILON
