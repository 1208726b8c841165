"""
Tree text utilities.

Bracket (Newick-style) encoding and decoding, an ASCII tree printer and
conversion to plain dictionaries for ClusterNode dendrograms.

Heights are written after the closing bracket of an internal node, e.g.
"((A,B)1.0000,C)2.0000". The decoder follows the usual Newick grammar,
where text after ")" is a node name and text after ":" is a branch length,
so the two are not inverses: encoded heights come back as names.
"""

import re
from typing import Any, Dict, List, Optional

from hclust.schemas.data_models import ClusterNode
from hclust.utils.error_handling import InvalidInputError

_NEWICK_TOKENS = re.compile(r"\s*(;|\(|\)|,|:)\s*")
_NAME_PREDECESSORS = (")", "(", ",", None, "")


def to_newick(node: ClusterNode) -> str:
    """
    Encode a tree in bracket notation.

    Leaves are written as their name; internal nodes as the bracketed,
    comma-joined children followed by the height with 4 decimals. No
    trailing ";" is emitted.
    """
    if not node.children:
        return node.name

    children = ",".join(to_newick(child) for child in node.children)
    return f"({children}){node.height:.4f}"


def from_newick(text: str) -> ClusterNode:
    """
    Parse a Newick string such as "(A:0.1,B:0.2,(C:0.3,D:0.4)E:0.5)F;".

    Unnamed nodes get name "" and nodes without a branch length get height 0.

    Raises:
        InvalidInputError: On unbalanced brackets or a malformed length
    """
    tokens = _NEWICK_TOKENS.split(text)
    ancestors: List[Dict[str, Any]] = []
    tree: Dict[str, Any] = {}

    for i, token in enumerate(tokens):
        if token == "(":
            subtree: Dict[str, Any] = {}
            tree["children"] = [subtree]
            ancestors.append(tree)
            tree = subtree
        elif token == ",":
            if not ancestors:
                raise InvalidInputError(f"Unexpected ',' outside brackets in {text!r}")
            subtree = {}
            ancestors[-1]["children"].append(subtree)
            tree = subtree
        elif token == ")":
            if not ancestors:
                raise InvalidInputError(f"Unbalanced ')' in {text!r}")
            tree = ancestors.pop()
        elif token in (":", ";"):
            continue
        else:
            previous: Optional[str] = tokens[i - 1] if i > 0 else None
            if previous in _NAME_PREDECESSORS:
                tree["name"] = token
            elif previous == ":":
                try:
                    tree["height"] = float(token)
                except ValueError as e:
                    raise InvalidInputError(
                        f"Malformed branch length {token!r} in {text!r}"
                    ) from e

    return _to_node(tree)


def _to_node(tree: Dict[str, Any]) -> ClusterNode:
    children = tree.get("children")
    return ClusterNode(
        name=tree.get("name") or "",
        height=tree.get("height", 0.0),
        children=[_to_node(child) for child in children] if children is not None else None,
    )


def print_tree(node: ClusterNode, indent: str = "", is_last: bool = True) -> str:
    """
    Render a tree as an ASCII diagram, one node per line.

    Example:
        └── Root h=2.00
            ├── Cluster 0 h=1.00
            │   ├── Sample 0 h=0.00
            │   └── Sample 1 h=0.00
            └── Sample 2 h=0.00
    """
    prefix = indent + ("└── " if is_last else "├── ")
    output = f"{prefix}{node.name} h={node.height:.2f}\n"

    if node.children:
        child_indent = indent + ("    " if is_last else "│   ")
        last = len(node.children) - 1
        for i, child in enumerate(node.children):
            output += print_tree(child, child_indent, i == last)

    return output


def tree_to_dict(node: ClusterNode) -> Dict[str, Any]:
    """Plain {name, height[, children]} dictionary; empty children are omitted."""
    result: Dict[str, Any] = {"name": node.name, "height": node.height}
    if node.children:
        result["children"] = [tree_to_dict(child) for child in node.children]
    return result
