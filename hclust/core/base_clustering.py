"""
Base clustering types.

Defines the options, intermediate linkage output and final result
shared by every stage of the hierarchical clustering pipeline.
"""

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, NamedTuple, Optional, Sequence, Tuple

import numpy as np

from hclust.schemas.data_models import ClusterNode, ClusteringSummary


ProgressCallback = Callable[[str], None]
CancelCheck = Callable[[], bool]


class Merge(NamedTuple):
    """One agglomeration step."""

    id_a: int
    id_b: int
    height: float


@dataclass
class ClusterOptions:
    """Options for a clustering call."""

    sample_labels: Optional[Sequence[str]] = None
    on_progress: Optional[ProgressCallback] = None
    check_cancelled: Optional[CancelCheck] = None
    stop_token: Any = None
    compute_quality: bool = False


@dataclass
class LinkageResult:
    """Output of the agglomerative engine."""

    merges: List[Tuple[int, int]] = field(default_factory=list)
    heights: np.ndarray = field(default_factory=lambda: np.zeros(0, dtype=np.float32))
    order: List[int] = field(default_factory=list)

    @property
    def n_merges(self) -> int:
        return len(self.merges)

    def iter_merges(self):
        """Yield Merge triples in chronological order."""
        for (id_a, id_b), height in zip(self.merges, self.heights):
            yield Merge(id_a, id_b, float(height))


class ClusteringResult:
    """Results from a clustering call."""

    def __init__(
        self,
        tree: ClusterNode,
        order: List[int],
        distances: np.ndarray,
        clusters_given_k: List[List[List[int]]],
        merges: Optional[List[Tuple[int, int]]] = None,
        heights: Optional[np.ndarray] = None,
        quality_metrics: Optional[Dict[int, float]] = None,
    ):
        self.tree = tree
        self.order = order
        self.distances = distances
        self.clusters_given_k = clusters_given_k
        self.merges = merges if merges is not None else []
        self.heights = heights if heights is not None else np.zeros(0, dtype=np.float32)
        self.quality_metrics = quality_metrics or {}

    @property
    def n_samples(self) -> int:
        return len(self.clusters_given_k) - 1

    @property
    def distance_matrix(self) -> np.ndarray:
        """Distances reshaped to n x n (a view, no copy)."""
        n = self.n_samples
        return self.distances.reshape(n, n)

    def clusters_for_k(self, k: int) -> List[List[int]]:
        """Partition into k clusters ([] when k == n + 1)."""
        if k < 1 or k > self.n_samples + 1:
            raise IndexError(f"k must be in 1..{self.n_samples + 1}, got {k}")
        return self.clusters_given_k[k - 1]

    def to_summary(self) -> ClusteringSummary:
        return ClusteringSummary(
            n_samples=self.n_samples,
            merges=[[int(a), int(b)] for a, b in self.merges],
            heights=[float(h) for h in self.heights],
            order=[int(i) for i in self.order],
            tree=self.tree,
            clusters_given_k=self.clusters_given_k,
            quality_metrics={str(k): v for k, v in self.quality_metrics.items()},
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to a JSON-serializable dictionary (distances omitted)."""
        return self.to_summary().model_dump(mode="json", exclude_none=True)
