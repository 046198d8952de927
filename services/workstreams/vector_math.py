"""
Vector primitives for workstream clustering
Cosine distance and centroid (mean vector) over embedding vectors
"""

import math
from typing import Sequence

import numpy as np

from .errors import DimensionMismatchError, EmptyInputError

# Distance reported when either vector has zero magnitude
MAX_DISTANCE = 2.0


def cosine_distance(a: Sequence[float], b: Sequence[float]) -> float:
    """
    Cosine distance between two embedding vectors.

    Ranges from 0 (same direction) to 2 (opposite direction).

    Raises:
        DimensionMismatchError: if the vectors differ in length
    """
    if len(a) != len(b):
        raise DimensionMismatchError(
            f"Embedding vectors must have equal length ({len(a)} != {len(b)})"
        )

    va = np.asarray(a, dtype=np.float64)
    vb = np.asarray(b, dtype=np.float64)
    dot = float(np.dot(va, vb))
    mag_a = float(np.dot(va, va))
    mag_b = float(np.dot(vb, vb))

    if mag_a == 0.0 or mag_b == 0.0:
        return MAX_DISTANCE

    similarity = dot / math.sqrt(mag_a * mag_b)
    return min(MAX_DISTANCE, max(0.0, 1.0 - similarity))


def centroid(vectors: Sequence[Sequence[float]]) -> list[float]:
    """
    Elementwise mean of one or more vectors.

    Dimensionality is taken from the first vector; members of any other
    length are rejected.

    Raises:
        EmptyInputError: if no vectors are given
        DimensionMismatchError: if a vector differs in length from the first
    """
    if len(vectors) == 0:
        raise EmptyInputError("Cannot calculate centroid of empty embedding set")

    dimensions = len(vectors[0])
    for i, vector in enumerate(vectors):
        if len(vector) != dimensions:
            raise DimensionMismatchError(
                f"Embedding {i} has {len(vector)} dimensions, expected {dimensions}"
            )

    matrix = np.asarray(vectors, dtype=np.float64)
    return matrix.mean(axis=0).tolist()


def cosine_distance_matrix(vectors: Sequence[Sequence[float]]) -> np.ndarray:
    """
    All-pairs cosine distance matrix with a zero diagonal.

    Uses the same conventions as cosine_distance: rows or columns of
    zero-magnitude vectors are at MAX_DISTANCE from everything else.
    """
    if len(vectors) == 0:
        return np.zeros((0, 0), dtype=np.float64)

    dimensions = len(vectors[0])
    if any(len(v) != dimensions for v in vectors):
        raise DimensionMismatchError("All embeddings in a clustering run must share dimensionality")

    matrix = np.asarray(vectors, dtype=np.float64)
    norms = np.linalg.norm(matrix, axis=1)
    zero = norms == 0.0
    safe = np.where(zero, 1.0, norms)
    unit = matrix / safe[:, None]

    distances = 1.0 - unit @ unit.T
    np.clip(distances, 0.0, MAX_DISTANCE, out=distances)
    distances[zero, :] = MAX_DISTANCE
    distances[:, zero] = MAX_DISTANCE
    np.fill_diagonal(distances, 0.0)
    return distances
