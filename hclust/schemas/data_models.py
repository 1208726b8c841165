"""
data_models.py

Pydantic data models for the hclust clustering engine.
Defines the dendrogram node, job states and the serialized result summary.
"""

from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


# =============================================================================
# ENUMS
# =============================================================================


class JobStatus(str, Enum):
    """Background clustering job states."""

    QUEUED = "queued"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELED = "canceled"


# =============================================================================
# TREE MODELS
# =============================================================================


class ClusterNode(BaseModel):
    """Dendrogram node. Leaves have no children and height 0."""

    name: str = Field(default="", description="Sample label or internal node name")
    height: float = Field(default=0.0, description="Merge distance (or branch length when parsed)")
    children: Optional[List["ClusterNode"]] = Field(default=None, description="Ordered child nodes")

    @property
    def is_leaf(self) -> bool:
        return not self.children

    def leaves(self) -> List["ClusterNode"]:
        """Leaf nodes in left-to-right order."""
        result: List[ClusterNode] = []
        stack = [self]
        while stack:
            node = stack.pop()
            if node.is_leaf:
                result.append(node)
            else:
                stack.extend(reversed(node.children))
        return result


ClusterNode.model_rebuild()


# =============================================================================
# RESULT MODELS
# =============================================================================


class ClusteringSummary(BaseModel):
    """JSON-friendly view of a clustering run."""

    n_samples: int = Field(..., ge=0, description="Number of input vectors")
    merges: List[List[int]] = Field(default_factory=list, description="Merged cluster-id pairs in order")
    heights: List[float] = Field(default_factory=list, description="Merge heights parallel to merges")
    order: List[int] = Field(default_factory=list, description="Dendrogram leaf order")
    tree: ClusterNode = Field(..., description="Dendrogram root")
    clusters_given_k: List[List[List[int]]] = Field(default_factory=list, description="Flat partitions by k-1")
    quality_metrics: Dict[str, Any] = Field(default_factory=dict, description="Optional partition quality scores")
