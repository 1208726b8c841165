"""
Flat k-way partitions derived from a merge sequence.

clusters_given_k[k - 1] is the partition into k clusters, obtained after
applying the first n - k merges. Each cluster is an ascending list of
sample indices and clusters are ordered by their smallest member. The
trailing entry (index n) is always empty: k = n + 1 is not representable.
"""

import logging
from typing import Dict, List, Sequence, Tuple

import numpy as np
from sklearn.metrics import silhouette_score

from hclust.utils.error_handling import ClusteringFailedError, InvalidInputError

logger = logging.getLogger(__name__)

Partition = List[List[int]]


def _snapshot(members: Dict[int, List[int]]) -> Partition:
    return [list(cluster) for cluster in sorted(members.values(), key=lambda c: c[0])]


def build_clusters_given_k(
    merges: Sequence[Tuple[int, int]],
    n_samples: int,
) -> List[Partition]:
    """
    Build the partition table for every achievable cluster count.

    Args:
        merges: (id_a, id_b) pairs in chronological order
        n_samples: Number of samples

    Returns:
        List of length n_samples + 1

    Raises:
        ClusteringFailedError: If the merges do not form a full hierarchy
    """
    if n_samples == 0:
        return [[]]

    if len(merges) != n_samples - 1:
        raise ClusteringFailedError(
            f"Expected {n_samples - 1} merges for {n_samples} samples, got {len(merges)}",
        )

    table: List[Partition] = [[] for _ in range(n_samples + 1)]
    members: Dict[int, List[int]] = {i: [i] for i in range(n_samples)}
    table[n_samples - 1] = _snapshot(members)

    for step, (id_a, id_b) in enumerate(merges):
        try:
            members_a = members.pop(int(id_a))
            members_b = members.pop(int(id_b))
        except KeyError as e:
            raise ClusteringFailedError(
                f"Merge {step} references unknown or retired cluster id {e.args[0]}",
                details={"step": step, "merge": [int(id_a), int(id_b)]},
            ) from e

        members[n_samples + step] = sorted(members_a + members_b)
        table[n_samples - step - 2] = _snapshot(members)

    return table


def labels_for_k(clusters_given_k: Sequence[Partition], k: int) -> np.ndarray:
    """
    Flat label vector for the partition into k clusters.

    labels[i] is the position of sample i's cluster within the entry for k.

    Raises:
        InvalidInputError: If k is outside 1..n
    """
    n_samples = len(clusters_given_k) - 1
    if k < 1 or k > n_samples:
        raise InvalidInputError(
            f"k must be between 1 and {n_samples}, got {k}",
            details={"k": k, "n_samples": n_samples},
        )

    labels = np.full(n_samples, -1, dtype=np.int32)
    for label, cluster in enumerate(clusters_given_k[k - 1]):
        labels[cluster] = label
    return labels


def partition_quality(
    distances: np.ndarray,
    clusters_given_k: Sequence[Partition],
) -> Dict[int, float]:
    """
    Silhouette score of every partition with 2 <= k <= n - 1.

    Informational only; no k is selected.

    Args:
        distances: n x n distance matrix
        clusters_given_k: Partition table from build_clusters_given_k

    Returns:
        Mapping k -> silhouette score (higher is better, range -1 to 1)
    """
    n_samples = len(clusters_given_k) - 1
    matrix = np.asarray(distances, dtype=np.float64).reshape(n_samples, n_samples)
    scores: Dict[int, float] = {}

    for k in range(2, n_samples):
        labels = labels_for_k(clusters_given_k, k)
        try:
            scores[k] = float(silhouette_score(matrix, labels, metric="precomputed"))
        except ValueError as e:
            logger.warning(f"Silhouette score unavailable for k={k}: {e}")

    return scores
