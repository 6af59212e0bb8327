"""Unit tests for continuation_chains.highlight.engine."""
from __future__ import annotations

import pytest

from continuation_chains.errors import FocusNotInTreeError
from continuation_chains.highlight.engine import (
    HighlightRole,
    HighlightTracker,
    compute_highlight,
)
from continuation_chains.models import FlatDescendant, SessionRecord
from continuation_chains.tree.builder import ContinuationTree, build_tree


def _row(session_id: str, parent_id: str, depth: int, order: int = 0) -> FlatDescendant:
    return FlatDescendant(
        session=SessionRecord(session_id=session_id),
        parent_id=parent_id,
        depth=depth,
        order=order,
    )


@pytest.fixture()
def abc_tree() -> ContinuationTree:
    """A <- B <- C"""
    return build_tree(SessionRecord(session_id="A"), [_row("B", "A", 1), _row("C", "B", 2)])


@pytest.fixture()
def forked_tree() -> ContinuationTree:
    """root -> {a, b}; a -> c; b -> d"""
    return build_tree(
        SessionRecord(session_id="root"),
        [
            _row("a", "root", 1),
            _row("b", "root", 1, order=1),
            _row("c", "a", 2),
            _row("d", "b", 2),
        ],
    )


# ---------------------------------------------------------------------------
# compute_highlight
# ---------------------------------------------------------------------------


class TestComputeHighlight:
    def test_linear_chain_focus_on_middle(self, abc_tree: ContinuationTree) -> None:
        snapshot = compute_highlight(abc_tree, "B")
        assert snapshot.role_of("A") is HighlightRole.ANCESTOR
        assert snapshot.distance_of("A") == -1
        assert snapshot.role_of("B") is HighlightRole.CLICKED
        assert snapshot.distance_of("B") == 0
        assert snapshot.role_of("C") is HighlightRole.DESCENDANT
        assert snapshot.distance_of("C") == 1
        positions = {snapshot.position_of(sid) for sid in "ABC"}
        assert positions == {1, 2, 3}

    def test_descendant_hop_count(self, abc_tree: ContinuationTree) -> None:
        snapshot = compute_highlight(abc_tree, "A")
        assert snapshot.distance_of("C") == 2
        assert snapshot.role_of("C") is HighlightRole.DESCENDANT

    def test_ancestor_distance_from_leaf(self, abc_tree: ContinuationTree) -> None:
        snapshot = compute_highlight(abc_tree, "C")
        assert snapshot.distance_of("A") == -2
        assert snapshot.distance_of("B") == -1

    def test_positions_follow_preorder(self, forked_tree: ContinuationTree) -> None:
        snapshot = compute_highlight(forked_tree, "a")
        order = sorted(snapshot.members, key=snapshot.positions.__getitem__)
        assert order == ["root", "a", "c", "b", "d"]
        assert snapshot.total == 5

    def test_true_sibling_distance_zero(self, forked_tree: ContinuationTree) -> None:
        snapshot = compute_highlight(forked_tree, "a")
        assert snapshot.role_of("b") is HighlightRole.SIBLING
        assert snapshot.distance_of("b") == 0
        assert snapshot.role_of("root") is HighlightRole.ANCESTOR

    def test_unrelated_nodes_fall_back_to_sibling(self, forked_tree: ContinuationTree) -> None:
        snapshot = compute_highlight(forked_tree, "c")
        assert snapshot.role_of("b") is HighlightRole.SIBLING
        assert snapshot.distance_of("b") == -1
        assert snapshot.role_of("d") is HighlightRole.SIBLING
        assert snapshot.distance_of("d") == 0

    def test_root_flag(self, abc_tree: ContinuationTree) -> None:
        snapshot = compute_highlight(abc_tree, "A")
        info = snapshot.info("A")
        assert info is not None
        assert info.is_root is True
        assert info.role is HighlightRole.CLICKED
        other = snapshot.info("B")
        assert other is not None
        assert other.is_root is False

    def test_info_fields(self, abc_tree: ContinuationTree) -> None:
        info = compute_highlight(abc_tree, "B").info("C")
        assert info is not None
        assert (info.position, info.total, info.distance) == (3, 3, 1)

    def test_absent_session_is_none(self, abc_tree: ContinuationTree) -> None:
        snapshot = compute_highlight(abc_tree, "B")
        assert "Z" not in snapshot
        assert snapshot.info("Z") is None
        assert snapshot.role_of("Z") is None
        assert snapshot.position_of("Z") is None
        assert snapshot.distance_of("Z") is None

    def test_focus_outside_tree_raises(self, abc_tree: ContinuationTree) -> None:
        with pytest.raises(FocusNotInTreeError):
            compute_highlight(abc_tree, "Z")
        with pytest.raises(KeyError):
            compute_highlight(abc_tree, "Z")

    def test_snapshot_maps_are_read_only(self, abc_tree: ContinuationTree) -> None:
        snapshot = compute_highlight(abc_tree, "B")
        with pytest.raises(TypeError):
            snapshot.positions["A"] = 99  # type: ignore[index]


# ---------------------------------------------------------------------------
# HighlightTracker
# ---------------------------------------------------------------------------


class TestHighlightTracker:
    def test_starts_inactive(self) -> None:
        tracker = HighlightTracker()
        assert tracker.is_active is False
        assert tracker.info("A") is None

    def test_focus_replaces_snapshot(self, abc_tree: ContinuationTree) -> None:
        tracker = HighlightTracker()
        tracker.focus(abc_tree, "A")
        tracker.focus(abc_tree, "C")
        assert tracker.snapshot is not None
        assert tracker.snapshot.focal_id == "C"
        info = tracker.info("A")
        assert info is not None
        assert info.role is HighlightRole.ANCESTOR

    def test_clear(self, abc_tree: ContinuationTree) -> None:
        tracker = HighlightTracker()
        tracker.focus(abc_tree, "B")
        tracker.clear()
        assert tracker.is_active is False
        assert tracker.info("B") is None
        assert "None" in repr(tracker)
