"""
Pairwise Euclidean distance matrix.

Produces the full, symmetric n x n single-precision matrix consumed by
the average-linkage engine.
"""

import logging
from typing import Any, Sequence

import numpy as np
from scipy.spatial.distance import pdist, squareform

from hclust.utils.error_handling import InvalidInputError

logger = logging.getLogger(__name__)


def validate_vectors(vectors: Any) -> np.ndarray:
    """
    Coerce input vectors to a 2D float64 array.

    Args:
        vectors: Sequence of equal-length numeric sequences, or an N x D array

    Returns:
        Array of shape (n, d); (0, 0) for empty input

    Raises:
        InvalidInputError: On ragged, non-numeric or non-2D input
    """
    if isinstance(vectors, np.ndarray):
        if vectors.ndim == 1 and vectors.size == 0:
            return np.zeros((0, 0), dtype=np.float64)
        if vectors.ndim != 2:
            raise InvalidInputError(
                f"Expected a 2D array of vectors, got {vectors.ndim} dimensions",
                details={"shape": list(vectors.shape)},
            )
        try:
            return vectors.astype(np.float64, copy=False)
        except (TypeError, ValueError) as e:
            raise InvalidInputError(f"Vectors must be numeric: {e}") from e

    rows: Sequence[Any] = list(vectors)
    if not rows:
        return np.zeros((0, 0), dtype=np.float64)

    expected = None
    for i, row in enumerate(rows):
        if np.ndim(row) != 1:
            raise InvalidInputError(
                f"Vector {i} is not a flat sequence of numbers",
                details={"index": i},
            )
        length = len(row)
        if expected is None:
            expected = length
        elif length != expected:
            raise InvalidInputError(
                f"Vector {i} has length {length}, expected {expected}",
                details={"index": i, "length": length, "expected": expected},
            )

    try:
        return np.asarray(rows, dtype=np.float64)
    except (TypeError, ValueError) as e:
        raise InvalidInputError(f"Vectors must be numeric: {e}") from e


def compute_distance_matrix(vectors: Any) -> np.ndarray:
    """
    Compute the Euclidean distance matrix of the input vectors.

    d[i][j] = sqrt(sum_k (v_i[k] - v_j[k])^2), mirrored across the diagonal,
    with a zero diagonal. Non-finite inputs are not rejected and propagate.

    Args:
        vectors: Sequence of equal-length numeric sequences, or an N x D array

    Returns:
        n x n float32 matrix
    """
    data = validate_vectors(vectors)
    n = data.shape[0]

    if n < 2 or data.shape[1] == 0:
        return np.zeros((n, n), dtype=np.float32)

    with np.errstate(invalid="ignore", over="ignore"):
        condensed = pdist(data, metric="euclidean")
        matrix = squareform(condensed, checks=False).astype(np.float32)

    logger.debug(f"Computed {n}x{n} distance matrix over {data.shape[1]} dimensions")
    return matrix


def flatten_distances(matrix: np.ndarray) -> np.ndarray:
    """Row-major flat float32 buffer of length n*n."""
    return np.ascontiguousarray(matrix, dtype=np.float32).reshape(-1)
