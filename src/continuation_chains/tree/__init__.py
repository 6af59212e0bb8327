"""Continuation tree construction.

Public surface
--------------
- build_tree         — build a ``ContinuationTree`` from flat descendants
- ContinuationTree   — built tree with node/parent maps and path lookup
- TreeNode           — one session in a tree
- ContinuationPath   — root-first path returned by ``linear_path``
- BranchPoint        — a node with divergent continuations
- build_parent_map   — child → parent from flat rows
- build_node_map     — id → node from a built tree
- all_branch_points  — every branch point in a tree
"""
from __future__ import annotations

from continuation_chains.tree.builder import (
    BranchPoint,
    ContinuationPath,
    ContinuationTree,
    TreeNode,
    all_branch_points,
    build_node_map,
    build_parent_map,
    build_tree,
)

__all__ = [
    "BranchPoint",
    "ContinuationPath",
    "ContinuationTree",
    "TreeNode",
    "all_branch_points",
    "build_node_map",
    "build_parent_map",
    "build_tree",
]
