"""
hclust - hierarchical average-linkage clustering.

Example:
    from hclust import cluster_data, to_newick

    result = cluster_data([[1, 2], [3, 4], [10, 10]])
    print(to_newick(result.tree))
"""

from hclust.core import (
    ClusteringEngine,
    ClusteringJob,
    ClusteringResult,
    ClusteringWorker,
    ClusterOptions,
    cluster_data,
    get_engine,
    shutdown_engine,
)
from hclust.schemas.data_models import ClusterNode, JobStatus
from hclust.utils.error_handling import (
    ClusteringCancelledError,
    ClusteringError,
    ClusteringFailedError,
    HClustError,
    InvalidInputError,
)
from hclust.utils.tree_utils import from_newick, print_tree, to_newick, tree_to_dict

__version__ = "1.0.0"

__all__ = [
    "ClusterNode",
    "ClusterOptions",
    "ClusteringCancelledError",
    "ClusteringEngine",
    "ClusteringError",
    "ClusteringFailedError",
    "ClusteringJob",
    "ClusteringResult",
    "ClusteringWorker",
    "HClustError",
    "InvalidInputError",
    "JobStatus",
    "cluster_data",
    "from_newick",
    "get_engine",
    "print_tree",
    "shutdown_engine",
    "to_newick",
    "tree_to_dict",
]
