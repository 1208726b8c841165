"""
resource_manager.py

Memory accounting for the clustering engine.

The engine holds an n x n float32 output matrix plus an n x n float64
working copy for the whole run, so large inputs are checked against the
memory actually available before anything is allocated.
"""

import logging

import psutil

from hclust.utils.error_handling import ResourceExhaustedError

logger = logging.getLogger(__name__)

OUTPUT_BYTES_PER_CELL = 4  # float32 distance matrix
WORKING_BYTES_PER_CELL = 8  # float64 linkage working copy


def estimate_memory_bytes(n_samples: int) -> int:
    """Peak bytes needed to cluster n_samples (distance matrix + working state)."""
    cells = n_samples * n_samples
    return cells * (OUTPUT_BYTES_PER_CELL + WORKING_BYTES_PER_CELL)


class ResourceManager:
    """
    Checks whether a clustering run fits in memory.

    Features:
    - Peak memory estimation for a given sample count
    - Available-memory check with a configurable fraction
    - Large-dataset warnings
    """

    def __init__(
        self,
        max_memory_fraction: float = 0.8,
        large_dataset_warning: int = 5000,
    ):
        """
        Initialize resource manager.

        Args:
            max_memory_fraction: Fraction of available memory one run may use
            large_dataset_warning: Sample count above which a warning is logged
        """
        self.max_memory_fraction = max_memory_fraction
        self.large_dataset_warning = large_dataset_warning

        logger.debug(
            f"ResourceManager initialized (max_memory_fraction={max_memory_fraction}, "
            f"large_dataset_warning={large_dataset_warning})"
        )

    def check_capacity(self, n_samples: int) -> int:
        """
        Verify that clustering n_samples fits in the memory budget.

        Args:
            n_samples: Number of input vectors

        Returns:
            Estimated peak bytes

        Raises:
            ResourceExhaustedError: If the estimate exceeds the budget
        """
        required = estimate_memory_bytes(n_samples)

        if n_samples > self.large_dataset_warning:
            logger.warning(
                f"Average-linkage clustering on {n_samples} samples is O(n^3) in time "
                f"and needs ~{required / (1024**2):.0f}MB of memory"
            )

        if required == 0:
            return required

        available = psutil.virtual_memory().available
        budget = int(available * self.max_memory_fraction)

        if required > budget:
            raise ResourceExhaustedError(
                f"Clustering {n_samples} samples needs ~{required / (1024**2):.0f}MB "
                f"but only {budget / (1024**2):.0f}MB is within budget",
                error_code="MEMORY_BUDGET_EXCEEDED",
                details={
                    "n_samples": n_samples,
                    "required_bytes": required,
                    "budget_bytes": budget,
                },
            )

        return required
