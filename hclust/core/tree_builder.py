"""
Dendrogram construction from a merge sequence.
"""

import logging
from typing import Dict, List, Optional, Sequence, Tuple

from hclust.schemas.data_models import ClusterNode
from hclust.utils.error_handling import ClusteringFailedError, InvalidInputError

logger = logging.getLogger(__name__)

ROOT_NAME = "Root"


def default_labels(n_samples: int) -> List[str]:
    return [f"Sample {i}" for i in range(n_samples)]


def build_tree(
    merges: Sequence[Tuple[int, int]],
    heights: Sequence[float],
    labels: Optional[Sequence[str]] = None,
    n_samples: Optional[int] = None,
) -> ClusterNode:
    """
    Replay merges in order and return the root ClusterNode.

    Each merge replaces its two children with a parent whose height is the
    merge height and whose children keep the recorded (a, b) order. Internal
    nodes are named "Cluster {step}"; the final merge is named "Root".

    Args:
        merges: (id_a, id_b) pairs; merge s creates cluster id n + s
        heights: Merge heights parallel to merges
        labels: Per-sample leaf names (defaults to "Sample {i}")
        n_samples: Sample count (defaults to len(merges) + 1, or len(labels))

    Returns:
        Root node; a single leaf when there is one sample

    Raises:
        InvalidInputError: If labels or heights do not match the merges
        ClusteringFailedError: If a merge references an unknown or retired id
    """
    if n_samples is None:
        if labels is not None:
            n_samples = len(labels)
        else:
            n_samples = len(merges) + 1 if merges else 0

    if labels is None:
        labels = default_labels(n_samples)
    elif len(labels) != n_samples:
        raise InvalidInputError(
            f"Got {len(labels)} labels for {n_samples} samples",
            details={"labels": len(labels), "n_samples": n_samples},
        )

    if len(heights) != len(merges):
        raise InvalidInputError(
            f"Got {len(heights)} heights for {len(merges)} merges",
        )

    if n_samples == 0:
        return ClusterNode(name="", height=0.0)

    expected_merges = n_samples - 1
    if len(merges) != expected_merges:
        raise ClusteringFailedError(
            f"Expected {expected_merges} merges for {n_samples} samples, got {len(merges)}",
        )

    live: Dict[int, ClusterNode] = {
        i: ClusterNode(name=str(label), height=0.0) for i, label in enumerate(labels)
    }

    for step, (id_a, id_b) in enumerate(merges):
        try:
            node_a = live.pop(int(id_a))
            node_b = live.pop(int(id_b))
        except KeyError as e:
            raise ClusteringFailedError(
                f"Merge {step} references unknown or retired cluster id {e.args[0]}",
                details={"step": step, "merge": [int(id_a), int(id_b)]},
            ) from e

        name = ROOT_NAME if step == expected_merges - 1 else f"Cluster {step}"
        live[n_samples + step] = ClusterNode(
            name=name,
            height=float(heights[step]),
            children=[node_a, node_b],
        )

    (root,) = live.values()
    logger.debug(f"Built dendrogram with {n_samples} leaves")
    return root

