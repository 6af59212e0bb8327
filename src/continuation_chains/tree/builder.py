"""Tree construction over a flattened continuation chain.

``build_tree`` turns a root session plus its flat descendant rows into a
navigable ``ContinuationTree``.  Trees are rebuilt wholesale whenever the
underlying edges change; nodes are never mutated after construction.

Construction uses an explicit work stack rather than recursion, keeps a
visited set so malformed (cyclic or duplicated) rows cannot loop, and
stops descending at ``max_depth``.

Classes
-------
- TreeNode          — one session in the tree
- BranchPoint       — a node with more than one child
- ContinuationPath  — root-first path to a target session
- ContinuationTree  — the built tree plus O(1) lookup maps

Functions
---------
- build_tree        — construct a ``ContinuationTree``
- build_parent_map  — child id → parent id from flat rows
- build_node_map    — session id → node from a built tree
- all_branch_points — every branch point in a tree, pre-order
"""
from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field

from continuation_chains.config import DEFAULT_MAX_DEPTH
from continuation_chains.models import FlatDescendant, SessionRecord

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Node and path types
# ---------------------------------------------------------------------------


@dataclass(eq=False)
class TreeNode:
    """One session within a ``ContinuationTree``.

    Parameters
    ----------
    session:
        The session this node represents.
    parent_id:
        Parent session id, or None for the root.
    depth:
        Distance from the root (root = 0).
    sibling_index:
        Position among the parent's children, ordered by ``order``.
    sibling_count:
        Number of children the parent has (1 for the root).
    is_on_active_path:
        True when this node lies on the live continuation branch.
    children:
        Child nodes ordered by ``order`` ascending.
    """

    session: SessionRecord
    parent_id: str | None
    depth: int
    sibling_index: int
    sibling_count: int
    is_on_active_path: bool
    children: list[TreeNode] = field(default_factory=list)

    @property
    def session_id(self) -> str:
        return self.session.session_id

    @property
    def is_branch_point(self) -> bool:
        return len(self.children) > 1

    def __repr__(self) -> str:
        return (
            f"TreeNode(session_id={self.session_id!r}, depth={self.depth}, "
            f"children={len(self.children)})"
        )


@dataclass(frozen=True)
class BranchPoint:
    """A session from which more than one continuation diverges."""

    session_id: str
    sibling_ids: tuple[str, ...]
    depth: int

    @property
    def branch_count(self) -> int:
        return len(self.sibling_ids)


@dataclass(frozen=True)
class ContinuationPath:
    """Root-first path from the tree root to a target session.

    Parameters
    ----------
    session_ids:
        Ids along the path, root first, target last.
    branch_points:
        Ancestors on the path whose children diverge, root side first.
    is_active_path:
        True when every node on the path is on the active path.
    """

    session_ids: tuple[str, ...]
    branch_points: tuple[BranchPoint, ...]
    is_active_path: bool

    def __len__(self) -> int:
        return len(self.session_ids)


# ---------------------------------------------------------------------------
# Tree
# ---------------------------------------------------------------------------


class ContinuationTree:
    """A built continuation tree with precomputed lookups.

    Use ``build_tree`` to construct instances.

    Attributes
    ----------
    root:
        Root node.
    has_branches:
        True iff some node has more than one child.
    node_map:
        Session id → node, for every node in the tree.
    parent_map:
        Child id → parent id, for every non-root node in the tree.
    max_depth:
        Depth of the deepest node (0 for a lone root).
    """

    def __init__(self, root: TreeNode, node_map: dict[str, TreeNode]) -> None:
        self.root = root
        self.node_map: Mapping[str, TreeNode] = node_map
        self.parent_map: Mapping[str, str] = {
            sid: node.parent_id for sid, node in node_map.items() if node.parent_id is not None
        }
        self.has_branches = any(node.is_branch_point for node in node_map.values())
        self.max_depth = max(node.depth for node in node_map.values())

    @property
    def root_id(self) -> str:
        return self.root.session_id

    def get(self, session_id: str) -> TreeNode | None:
        """Return the node for ``session_id``, or None."""
        return self.node_map.get(session_id)

    def iter_preorder(self) -> Iterable[TreeNode]:
        """Yield nodes depth-first, parents before children, siblings in order."""
        stack = [self.root]
        while stack:
            node = stack.pop()
            yield node
            stack.extend(reversed(node.children))

    def linear_path(self, target_id: str) -> ContinuationPath | None:
        """Return the root-first path to ``target_id``, or None if absent.

        Walks up via the node map from the target to the root, collecting
        each ancestor whose children diverge as a branch point.
        """
        node = self.node_map.get(target_id)
        if node is None:
            return None

        ids: list[str] = []
        branch_points: list[BranchPoint] = []
        is_active = True
        visited: set[str] = set()

        current: TreeNode | None = node
        while current is not None and current.session_id not in visited:
            visited.add(current.session_id)
            ids.append(current.session_id)
            if not current.is_on_active_path:
                is_active = False
            parent = self.node_map.get(current.parent_id) if current.parent_id else None
            if parent is not None and current.sibling_count > 1:
                branch_points.append(
                    BranchPoint(
                        session_id=parent.session_id,
                        sibling_ids=tuple(c.session_id for c in parent.children),
                        depth=parent.depth,
                    )
                )
            current = parent

        ids.reverse()
        branch_points.reverse()
        return ContinuationPath(
            session_ids=tuple(ids),
            branch_points=tuple(branch_points),
            is_active_path=is_active,
        )

    def __len__(self) -> int:
        return len(self.node_map)

    def __contains__(self, session_id: object) -> bool:
        return session_id in self.node_map

    def __repr__(self) -> str:
        return (
            f"ContinuationTree(root={self.root_id!r}, size={len(self)}, "
            f"has_branches={self.has_branches})"
        )


# ---------------------------------------------------------------------------
# Builders
# ---------------------------------------------------------------------------


def _group_by_parent(
    descendants: Iterable[FlatDescendant],
) -> dict[str, list[FlatDescendant]]:
    grouped: dict[str, list[FlatDescendant]] = {}
    for row in descendants:
        grouped.setdefault(row.parent_id, []).append(row)
    for rows in grouped.values():
        rows.sort(key=lambda r: (r.order, r.session_id))
    return grouped


def build_tree(
    root: SessionRecord,
    descendants: Iterable[FlatDescendant],
    max_depth: int = DEFAULT_MAX_DEPTH,
) -> ContinuationTree:
    """Build a ``ContinuationTree`` rooted at ``root``.

    Parameters
    ----------
    root:
        Root session.
    descendants:
        Flat rows, each naming its parent.  Rows not reachable from
        ``root`` are ignored, as are repeated session ids after the first.
    max_depth:
        Nodes deeper than this are not attached.

    Returns
    -------
    ContinuationTree
        Each child is on the active path when its parent is and it is the
        ``is_active`` child; when no child of a parent is marked active,
        every child inherits the parent's flag.
    """
    children_by_parent = _group_by_parent(descendants)
    root_node = TreeNode(
        session=root,
        parent_id=None,
        depth=0,
        sibling_index=0,
        sibling_count=1,
        is_on_active_path=True,
    )
    node_map: dict[str, TreeNode] = {root.session_id: root_node}
    stack: list[TreeNode] = [root_node]
    dropped = 0

    while stack:
        node = stack.pop()
        rows: list[FlatDescendant] = []
        seen: set[str] = set()
        for row in children_by_parent.get(node.session_id, []):
            if row.session_id in node_map or row.session_id in seen:
                continue
            seen.add(row.session_id)
            rows.append(row)
        if not rows:
            continue
        if node.depth >= max_depth:
            dropped += len(rows)
            continue

        any_active = any(r.is_active for r in rows)
        for index, row in enumerate(rows):
            child = TreeNode(
                session=row.session,
                parent_id=node.session_id,
                depth=node.depth + 1,
                sibling_index=index,
                sibling_count=len(rows),
                is_on_active_path=node.is_on_active_path and (row.is_active or not any_active),
            )
            node.children.append(child)
            node_map[child.session_id] = child
            stack.append(child)

    if dropped:
        logger.warning(
            "build_tree: %d sessions below max_depth=%d under %r were not attached",
            dropped,
            max_depth,
            root.session_id,
        )
    return ContinuationTree(root_node, node_map)


def build_parent_map(descendants: Iterable[FlatDescendant]) -> dict[str, str]:
    """Return child id → parent id for every flat row."""
    return {row.session_id: row.parent_id for row in descendants}


def build_node_map(tree: ContinuationTree | TreeNode) -> dict[str, TreeNode]:
    """Return session id → node for every node reachable from ``tree``."""
    root = tree.root if isinstance(tree, ContinuationTree) else tree
    node_map: dict[str, TreeNode] = {}
    stack = [root]
    while stack:
        node = stack.pop()
        if node.session_id in node_map:
            continue
        node_map[node.session_id] = node
        stack.extend(node.children)
    return node_map


def all_branch_points(tree: ContinuationTree) -> list[BranchPoint]:
    """Return every node with more than one child, in pre-order."""
    return [
        BranchPoint(
            session_id=node.session_id,
            sibling_ids=tuple(c.session_id for c in node.children),
            depth=node.depth,
        )
        for node in tree.iter_preorder()
        if node.is_branch_point
    ]
