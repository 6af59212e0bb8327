"""Unit tests for continuation_chains.tree.builder."""
from __future__ import annotations

import pytest

from continuation_chains.models import FlatDescendant, SessionRecord
from continuation_chains.tree.builder import (
    ContinuationTree,
    all_branch_points,
    build_node_map,
    build_parent_map,
    build_tree,
)

ROOT = SessionRecord(session_id="root")


def _row(
    session_id: str,
    parent_id: str,
    depth: int = 1,
    order: int = 0,
    is_active: bool = False,
) -> FlatDescendant:
    return FlatDescendant(
        session=SessionRecord(session_id=session_id),
        parent_id=parent_id,
        depth=depth,
        order=order,
        is_active=is_active,
    )


def _linear(length: int) -> list[FlatDescendant]:
    """Rows for root <- s1 <- ... <- s{length-1}."""
    rows = []
    parent = "root"
    for i in range(1, length):
        rows.append(_row(f"s{i}", parent, depth=i, is_active=True))
        parent = f"s{i}"
    return rows


@pytest.fixture()
def branching_tree() -> ContinuationTree:
    """root -> {a (order 0), b (order 1, active)}; a -> c."""
    return build_tree(
        ROOT,
        [
            _row("b", "root", order=1, is_active=True),
            _row("a", "root", order=0),
            _row("c", "a", depth=2, is_active=True),
        ],
    )


# ---------------------------------------------------------------------------
# build_tree
# ---------------------------------------------------------------------------


class TestBuildTree:
    def test_three_direct_children(self) -> None:
        tree = build_tree(ROOT, [_row(sid, "root", order=i) for i, sid in enumerate("xyz")])
        assert tree.has_branches is True
        assert len(tree.root.children) == 3
        for child in tree.root.children:
            assert child.depth == 1
            assert child.sibling_count == 3
        assert [c.sibling_index for c in tree.root.children] == [0, 1, 2]

    def test_six_session_linear_chain(self) -> None:
        tree = build_tree(ROOT, _linear(6))
        assert tree.has_branches is False
        assert tree.max_depth == 5
        assert len(tree) == 6

    def test_lone_root(self) -> None:
        tree = build_tree(ROOT, [])
        assert len(tree) == 1
        assert tree.max_depth == 0
        assert tree.root.is_on_active_path is True

    def test_children_sorted_by_order(self, branching_tree: ContinuationTree) -> None:
        assert [c.session_id for c in branching_tree.root.children] == ["a", "b"]

    def test_active_path_follows_active_child(self, branching_tree: ContinuationTree) -> None:
        assert branching_tree.get("b").is_on_active_path is True
        assert branching_tree.get("a").is_on_active_path is False
        assert branching_tree.get("c").is_on_active_path is False

    def test_all_children_inherit_when_none_active(self) -> None:
        tree = build_tree(ROOT, [_row("a", "root"), _row("b", "root", order=1)])
        assert all(c.is_on_active_path for c in tree.root.children)

    def test_max_depth_caps_tree(self) -> None:
        tree = build_tree(ROOT, _linear(6), max_depth=3)
        assert len(tree) == 4
        assert tree.max_depth == 3
        assert "s4" not in tree

    def test_unreachable_rows_are_ignored(self) -> None:
        tree = build_tree(ROOT, [_row("a", "root"), _row("island", "elsewhere")])
        assert "island" not in tree
        assert len(tree) == 2

    def test_cyclic_rows_terminate(self) -> None:
        tree = build_tree(ROOT, [_row("a", "root"), _row("root", "a", depth=2)])
        assert len(tree) == 2
        assert tree.get("a").children == []

    def test_duplicate_session_attached_once(self) -> None:
        rows = [
            _row("a", "root"),
            _row("b", "root", order=1),
            _row("x", "a", depth=2),
            _row("x", "b", depth=2),
        ]
        tree = build_tree(ROOT, rows)
        assert len(tree) == 4
        attached = [n for n in tree.iter_preorder() if n.session_id == "x"]
        assert len(attached) == 1

    def test_parent_map(self, branching_tree: ContinuationTree) -> None:
        assert dict(branching_tree.parent_map) == {"a": "root", "b": "root", "c": "a"}


# ---------------------------------------------------------------------------
# Traversal and paths
# ---------------------------------------------------------------------------


class TestTreeNavigation:
    def test_preorder(self, branching_tree: ContinuationTree) -> None:
        assert [n.session_id for n in branching_tree.iter_preorder()] == ["root", "a", "c", "b"]

    def test_linear_path_collects_branch_points(self, branching_tree: ContinuationTree) -> None:
        path = branching_tree.linear_path("c")
        assert path is not None
        assert path.session_ids == ("root", "a", "c")
        assert len(path) == 3
        assert len(path.branch_points) == 1
        point = path.branch_points[0]
        assert point.session_id == "root"
        assert point.sibling_ids == ("a", "b")
        assert point.depth == 0
        assert point.branch_count == 2
        assert path.is_active_path is False

    def test_linear_path_on_active_branch(self, branching_tree: ContinuationTree) -> None:
        path = branching_tree.linear_path("b")
        assert path is not None
        assert path.session_ids == ("root", "b")
        assert path.is_active_path is True

    def test_linear_path_to_root(self, branching_tree: ContinuationTree) -> None:
        path = branching_tree.linear_path("root")
        assert path is not None
        assert path.session_ids == ("root",)
        assert path.branch_points == ()

    def test_linear_path_unknown(self, branching_tree: ContinuationTree) -> None:
        assert branching_tree.linear_path("nope") is None

    def test_all_branch_points(self) -> None:
        tree = build_tree(
            ROOT,
            [
                _row("a", "root"),
                _row("b", "root", order=1),
                _row("c", "a", depth=2),
                _row("d", "a", depth=2, order=1),
            ],
        )
        points = all_branch_points(tree)
        assert [p.session_id for p in points] == ["root", "a"]
        assert points[1].sibling_ids == ("c", "d")

    def test_no_branch_points_in_linear_chain(self) -> None:
        assert all_branch_points(build_tree(ROOT, _linear(4))) == []


class TestMapBuilders:
    def test_build_parent_map(self) -> None:
        assert build_parent_map(_linear(3)) == {"s1": "root", "s2": "s1"}

    def test_build_node_map_from_tree_and_node(self, branching_tree: ContinuationTree) -> None:
        assert set(build_node_map(branching_tree)) == {"root", "a", "b", "c"}
        assert set(build_node_map(branching_tree.get("a"))) == {"a", "c"}
