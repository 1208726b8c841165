"""
Core hierarchical clustering module.

Exports:
- ClusteringEngine: Pipeline orchestration class
- AverageLinkageAlgorithm: Agglomerative engine
- ClusterOptions / ClusteringResult / LinkageResult: Options and result containers
- ProgressChannel and stop-token stores: Cancellation protocol
- ClusteringWorker: Background execution
"""

from hclust.core.agglomerative_algorithm import AverageLinkageAlgorithm
from hclust.core.base_clustering import (
    ClusteringResult,
    ClusterOptions,
    LinkageResult,
    Merge,
)
from hclust.core.cancellation import (
    LocalStopTokenStore,
    ProgressChannel,
    RedisStopTokenStore,
    StopTokenStore,
    get_stop_token_store,
    make_cancel_check,
)
from hclust.core.clustering_engine import (
    ClusteringEngine,
    cluster_data,
    get_engine,
    shutdown_engine,
)
from hclust.core.distance import compute_distance_matrix, flatten_distances
from hclust.core.partitions import build_clusters_given_k, labels_for_k, partition_quality
from hclust.core.tree_builder import build_tree
from hclust.core.worker import ClusteringJob, ClusteringWorker

__all__ = [
    "AverageLinkageAlgorithm",
    "ClusteringEngine",
    "ClusteringJob",
    "ClusteringResult",
    "ClusteringWorker",
    "ClusterOptions",
    "LinkageResult",
    "LocalStopTokenStore",
    "Merge",
    "ProgressChannel",
    "RedisStopTokenStore",
    "StopTokenStore",
    "build_clusters_given_k",
    "build_tree",
    "cluster_data",
    "compute_distance_matrix",
    "flatten_distances",
    "get_engine",
    "get_stop_token_store",
    "labels_for_k",
    "make_cancel_check",
    "partition_quality",
    "shutdown_engine",
]
