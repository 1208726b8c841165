"""
Clustering Engine - Orchestrates hierarchical clustering runs.

Main entry point for clustering functionality. Validates input, checks the
memory budget, then runs distances -> average linkage -> tree -> partitions
and packages the outcome as a ClusteringResult.
"""

import atexit
import dataclasses
import logging
import threading
import uuid
from typing import Any, Optional

import numpy as np

from hclust.config.settings_loader import Settings, get_settings
from hclust.core.agglomerative_algorithm import AverageLinkageAlgorithm
from hclust.core.base_clustering import CancelCheck, ClusteringResult, ClusterOptions
from hclust.core.cancellation import ProgressChannel, make_cancel_check
from hclust.core.distance import compute_distance_matrix, flatten_distances, validate_vectors
from hclust.core.partitions import build_clusters_given_k, partition_quality
from hclust.core.tree_builder import build_tree
from hclust.utils.advanced_logging import (
    LogContext,
    MetricsLogger,
    PerformanceLogger,
    get_logger,
)
from hclust.utils.error_handling import (
    ClusteringFailedError,
    HClustError,
    InvalidInputError,
)
from hclust.utils.resource_manager import ResourceManager

logger = logging.getLogger(__name__)

RUNNING_MESSAGE = "Running hierarchical clustering..."


class ClusteringEngine:
    """
    Hierarchical clustering engine.

    Overlapping cluster() calls are serialized: the linkage algorithm keeps
    per-run working state and is not reentrant.
    """

    def __init__(self, settings: Optional[Settings] = None):
        """
        Initialize clustering engine.

        Args:
            settings: Application settings (defaults to the loaded configuration)
        """
        self.settings = settings or get_settings()
        engine_settings = self.settings.engine

        self.resources = ResourceManager(
            max_memory_fraction=engine_settings.max_memory_fraction,
            large_dataset_warning=engine_settings.large_dataset_warning,
        )
        self.algorithm = AverageLinkageAlgorithm(engine_settings)
        self.metrics = MetricsLogger(get_logger(__name__))
        self._lock = threading.Lock()
        self.closed = False

        logger.info("Initialized ClusteringEngine")

    def cluster(
        self,
        vectors: Any,
        options: Optional[ClusterOptions] = None,
    ) -> ClusteringResult:
        """
        Perform average-linkage clustering of the input vectors.

        Args:
            vectors: Sequence of equal-length numeric vectors, or an N x D array
            options: Labels, progress/cancellation callbacks and extras

        Returns:
            ClusteringResult with tree, leaf order, distances and partitions

        Raises:
            InvalidInputError: If vectors or labels are malformed
            ResourceExhaustedError: If the run does not fit in memory
            ClusteringCancelledError: If cancellation was requested
            ClusteringFailedError: On any internal failure
        """
        if self.closed:
            raise ClusteringFailedError("ClusteringEngine has been shut down")

        options = options or ClusterOptions()
        run_id = uuid.uuid4().hex[:12]

        with LogContext.correlation_context(run_id), self._lock:
            try:
                return self._run(vectors, options)
            except HClustError:
                raise
            except Exception as e:
                logger.exception(f"Clustering run {run_id} failed unexpectedly")
                raise ClusteringFailedError(
                    f"Clustering failed: {type(e).__name__}: {e}",
                    details={"run_id": run_id},
                ) from e

    def _run(self, vectors: Any, options: ClusterOptions) -> ClusteringResult:
        data = validate_vectors(vectors)
        n_samples = data.shape[0]

        labels = options.sample_labels
        if labels is not None and len(labels) != n_samples:
            raise InvalidInputError(
                f"Got {len(labels)} sample labels for {n_samples} vectors",
                details={"labels": len(labels), "n_samples": n_samples},
            )

        self.resources.check_capacity(n_samples)

        channel = ProgressChannel(
            report_progress=options.on_progress,
            check_cancelled=self._cancel_check(options),
        )
        channel.report(RUNNING_MESSAGE)
        logger.info(f"Starting hierarchical clustering on {n_samples} vectors")

        with PerformanceLogger("distance_matrix", item_count=n_samples):
            matrix = compute_distance_matrix(data)

        with PerformanceLogger("average_linkage", item_count=max(n_samples - 1, 0)):
            linkage = self.algorithm.run(matrix, channel)

        with PerformanceLogger("build_tree", log_level="debug"):
            tree = build_tree(linkage.merges, linkage.heights, labels, n_samples=n_samples)

        with PerformanceLogger("build_partitions", log_level="debug"):
            clusters_given_k = build_clusters_given_k(linkage.merges, n_samples)

        quality_metrics = None
        if options.compute_quality:
            with PerformanceLogger("partition_quality"):
                quality_metrics = partition_quality(matrix, clusters_given_k)

        self.metrics.log_cpu_memory(context="clustering_complete")
        logger.info(f"Hierarchical clustering complete: {linkage.n_merges} merges")

        return ClusteringResult(
            tree=tree,
            order=linkage.order,
            distances=flatten_distances(matrix),
            clusters_given_k=clusters_given_k,
            merges=linkage.merges,
            heights=np.asarray(linkage.heights, dtype=np.float32),
            quality_metrics=quality_metrics,
        )

    @staticmethod
    def _cancel_check(options: ClusterOptions) -> Optional[CancelCheck]:
        """Combine an explicit callback and a stop token into one query."""
        checks = [
            check
            for check in (options.check_cancelled, make_cancel_check(options.stop_token))
            if check is not None
        ]
        if not checks:
            return None
        if len(checks) == 1:
            return checks[0]
        return lambda: any(check() for check in checks)

    def close(self) -> None:
        with self._lock:
            self.closed = True
        logger.info("ClusteringEngine shut down")


# =============================================================================
# Singleton Instance
# =============================================================================

_engine_instance: Optional[ClusteringEngine] = None
_engine_lock = threading.Lock()


def get_engine() -> ClusteringEngine:
    """
    Get the process-wide engine, creating it on first use.

    Returns:
        ClusteringEngine instance
    """
    global _engine_instance

    with _engine_lock:
        if _engine_instance is None:
            _engine_instance = ClusteringEngine()
        return _engine_instance


def shutdown_engine() -> None:
    """Tear down the process-wide engine; the next get_engine() builds a new one."""
    global _engine_instance

    with _engine_lock:
        if _engine_instance is not None:
            _engine_instance.close()
            _engine_instance = None


atexit.register(shutdown_engine)


def cluster_data(
    vectors: Any,
    options: Optional[ClusterOptions] = None,
    **kwargs: Any,
) -> ClusteringResult:
    """
    Cluster vectors with the process-wide engine.

    Keyword arguments are ClusterOptions fields and override options.

    Example:
        result = cluster_data([[1, 2], [3, 4]], sample_labels=["a", "b"])
        print(result.tree)
    """
    if options is None:
        options = ClusterOptions(**kwargs)
    elif kwargs:
        options = dataclasses.replace(options, **kwargs)

    return get_engine().cluster(vectors, options)
