"""
Agglomerative Hierarchical Clustering Algorithm Implementation.

Unweighted average linkage (UPGMA) over a precomputed distance matrix,
using the Lance-Williams update and a naive O(n^3) closest-pair search.

Merge policy:
- The closest pair of distinct active clusters is merged at each step
- Ties go to the lowest cluster id, then the lowest partner id
- NaN distances rank after every other value, including +inf
- Cluster ids 0..n-1 are samples; merge number s creates id n + s
"""

import logging
import math
from typing import List, Optional, Sequence, Tuple

import numpy as np

from hclust.config.settings_loader import EngineSettings
from hclust.core.base_clustering import LinkageResult
from hclust.core.cancellation import ProgressChannel
from hclust.utils.advanced_logging import BatchLogger, get_logger
from hclust.utils.error_handling import InvalidInputError

logger = logging.getLogger(__name__)


def as_square_matrix(distances: np.ndarray) -> np.ndarray:
    """
    Accept an n x n matrix or its flat row-major buffer of length n*n.

    Raises:
        InvalidInputError: If the input is not square
    """
    matrix = np.asarray(distances)
    if matrix.ndim == 1:
        n = math.isqrt(matrix.size)
        if n * n != matrix.size:
            raise InvalidInputError(
                f"Flat distance buffer of length {matrix.size} is not n*n",
                details={"length": int(matrix.size)},
            )
        matrix = matrix.reshape(n, n)
    if matrix.ndim != 2 or matrix.shape[0] != matrix.shape[1]:
        raise InvalidInputError(
            f"Distance matrix must be square, got shape {matrix.shape}",
            details={"shape": list(matrix.shape)},
        )
    return matrix


def leaf_order(merges: Sequence[Tuple[int, int]], n_samples: int) -> List[int]:
    """
    Depth-first leaf order of the merge tree, first-merged child first.

    Each cluster's members come out contiguously, so a dendrogram drawn in
    this order has no crossing branches.
    """
    if n_samples <= 1:
        return list(range(n_samples))

    order: List[int] = []
    stack = [n_samples + len(merges) - 1]
    while stack:
        node = stack.pop()
        if node < n_samples:
            order.append(node)
        else:
            id_a, id_b = merges[node - n_samples]
            stack.append(id_b)
            stack.append(id_a)
    return order


class _LinkageState:
    """Working state of one run: distances, active slots, ids and sizes."""

    def __init__(self, matrix: np.ndarray):
        n = matrix.shape[0]
        self.work = np.array(matrix, dtype=np.float64)
        self.active = np.ones(n, dtype=bool)
        self.ids = np.arange(n, dtype=np.int64)
        self.sizes = np.ones(n, dtype=np.float64)

    def closest_pair(self) -> Tuple[int, int]:
        """Slots of the closest active pair, ordered so ids[slot_a] < ids[slot_b]."""
        active = np.flatnonzero(self.active)
        sub = self.work[np.ix_(active, active)]
        off_diagonal = ~np.eye(len(active), dtype=bool)
        comparable = off_diagonal & ~np.isnan(sub)

        if comparable.any():
            best = sub[comparable].min()
            rows, cols = np.nonzero(comparable & (sub == best))
        else:
            rows, cols = np.nonzero(off_diagonal)

        row_ids = self.ids[active[rows]]
        col_ids = self.ids[active[cols]]
        low = np.minimum(row_ids, col_ids)
        high = np.maximum(row_ids, col_ids)
        pick = np.lexsort((high, low))[0]

        slot_r, slot_c = active[rows[pick]], active[cols[pick]]
        if row_ids[pick] < col_ids[pick]:
            return int(slot_r), int(slot_c)
        return int(slot_c), int(slot_r)

    def merge(self, slot_a: int, slot_b: int, new_id: int) -> None:
        """Fold slot_b into slot_a and apply the average-linkage update."""
        size_a = self.sizes[slot_a]
        size_b = self.sizes[slot_b]

        self.active[slot_a] = False
        self.active[slot_b] = False
        others = np.flatnonzero(self.active)

        with np.errstate(invalid="ignore", over="ignore"):
            updated = (
                size_a * self.work[slot_a, others] + size_b * self.work[slot_b, others]
            ) / (size_a + size_b)

        self.work[slot_a, others] = updated
        self.work[others, slot_a] = updated
        self.active[slot_a] = True
        self.sizes[slot_a] = size_a + size_b
        self.ids[slot_a] = new_id


class AverageLinkageAlgorithm:
    """
    Average-linkage agglomerative clustering.

    Best for: dendrograms over small to medium sample sets
    Strengths: deterministic, reducible linkage (non-decreasing heights)
    Weaknesses: O(n^3) time, O(n^2) memory, single-threaded

    An instance holds the state of the run in progress, so one instance
    must not run overlapping calls.
    """

    def __init__(self, settings: Optional[EngineSettings] = None):
        """
        Initialize the algorithm.

        Args:
            settings: Engine settings (progress interval)
        """
        settings = settings or EngineSettings()
        self.progress_interval = settings.progress_interval
        self._state: Optional[_LinkageState] = None

    @property
    def running(self) -> bool:
        return self._state is not None

    def run(
        self,
        distances: np.ndarray,
        channel: Optional[ProgressChannel] = None,
    ) -> LinkageResult:
        """
        Agglomerate all samples into one cluster.

        Args:
            distances: n x n distance matrix (or its flat n*n buffer)
            channel: Progress/cancellation channel polled once per merge

        Returns:
            LinkageResult with n-1 merges, their heights and the leaf order

        Raises:
            ClusteringCancelledError: If the channel reports cancellation
            ClusteringFailedError: If the cancellation query fails
        """
        channel = channel or ProgressChannel.noop()
        matrix = as_square_matrix(distances)
        n = matrix.shape[0]

        if n <= 1:
            return LinkageResult(order=list(range(n)))

        channel.report(f"Starting average-linkage clustering of {n} samples")
        logger.info(f"Starting average-linkage clustering on {n} samples")

        merges: List[Tuple[int, int]] = []
        heights = np.empty(n - 1, dtype=np.float32)
        batch = BatchLogger(
            total_items=n - 1,
            operation="average_linkage",
            log_interval=self.progress_interval,
            logger=get_logger(__name__),
        )

        self._state = _LinkageState(matrix)
        try:
            state = self._state
            for step in range(n - 1):
                channel.raise_if_cancelled()

                slot_a, slot_b = state.closest_pair()
                merges.append((int(state.ids[slot_a]), int(state.ids[slot_b])))
                heights[step] = state.work[slot_a, slot_b]
                state.merge(slot_a, slot_b, n + step)

                if batch.update():
                    channel.report(f"{batch.remaining_items} merges remaining")
        finally:
            self._state = None

        batch.complete()

        if np.isnan(heights).any():
            logger.warning(
                f"{int(np.isnan(heights).sum())} merge heights are NaN; "
                "input contained non-finite values"
            )

        order = leaf_order(merges, n)
        logger.info(f"Average linkage complete: {len(merges)} merges, max height {heights[-1]:.4f}")

        return LinkageResult(merges=merges, heights=heights, order=order)
