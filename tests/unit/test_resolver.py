"""Unit tests for continuation_chains.resolution.resolver.ContinuationResolver.

Edges and sessions live in the in-memory stores; transcript-driven paths
(heal, resolve_all) write JSONL files under tmp_path.
"""
from __future__ import annotations

from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any

import pytest

from continuation_chains.cache.chain_cache import ChainCache
from continuation_chains.models import (
    DEFAULT_SPLIT_REASON,
    ContinuationEdge,
    DetectionResult,
    SessionRecord,
)
from continuation_chains.resolution.resolver import ContinuationResolver
from continuation_chains.resolution.validation import ValidationFailure
from continuation_chains.storage.filesystem import discover_sessions
from continuation_chains.storage.memory import InMemoryEdgeStore, InMemorySessionCatalog

T0 = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)


def _child(session_id: str, parent_id: str, minutes: int | None = None) -> DetectionResult:
    started = T0 + timedelta(minutes=minutes) if minutes is not None else None
    return DetectionResult(
        session_id=session_id, is_child=True, parent_id=parent_id, child_started_at=started
    )


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def resolver(edges: InMemoryEdgeStore, catalog: InMemorySessionCatalog) -> ContinuationResolver:
    return ContinuationResolver(edges, catalog)


@pytest.fixture()
def known_root(catalog: InMemorySessionCatalog) -> str:
    catalog.register(SessionRecord(session_id="root"))
    return "root"


# ---------------------------------------------------------------------------
# persist_edges
# ---------------------------------------------------------------------------


class TestPersistEdges:
    def test_persisting_twice_keeps_one_edge(
        self, resolver: ContinuationResolver, edges: InMemoryEdgeStore, known_root: str
    ) -> None:
        resolver.persist_edges([_child("c1", known_root)])
        resolver.persist_edges([_child("c1", known_root)])
        assert len(edges.all_edges()) == 1
        assert edges.get_parent("c1") == known_root

    def test_non_children_are_ignored(
        self, resolver: ContinuationResolver, edges: InMemoryEdgeStore
    ) -> None:
        report = resolver.persist_edges([DetectionResult(session_id="x", is_parent=True)])
        assert report.written == 0
        assert edges.all_edges() == []

    def test_self_parent_is_skipped(
        self, resolver: ContinuationResolver, edges: InMemoryEdgeStore
    ) -> None:
        report = resolver.persist_edges([_child("x", "x")])
        assert report.skipped == 1
        assert edges.get_edge("x") is None

    def test_unknown_parent_is_recorded_as_orphan(
        self, resolver: ContinuationResolver, edges: InMemoryEdgeStore
    ) -> None:
        report = resolver.persist_edges([_child("c1", "ghost")])
        assert report.written == 1
        assert report.orphaned == 1
        edge = edges.get_edge("c1")
        assert edge is not None
        assert edge.is_orphaned is True

    def test_known_parent_is_not_orphaned(
        self, resolver: ContinuationResolver, edges: InMemoryEdgeStore, known_root: str
    ) -> None:
        resolver.persist_edges([_child("c1", known_root)])
        edge = edges.get_edge("c1")
        assert edge is not None
        assert edge.is_orphaned is False

    def test_siblings_ordered_by_start_time_and_latest_active(
        self, resolver: ContinuationResolver, edges: InMemoryEdgeStore, known_root: str
    ) -> None:
        resolver.persist_edges(
            [_child("late", known_root, 30), _child("early", known_root, 10), _child("mid", known_root, 20)]
        )
        children = edges.children_of(known_root)
        assert [e.child_id for e in children] == ["early", "mid", "late"]
        assert [e.order for e in children] == [0, 1, 2]
        assert [e.is_active for e in children] == [False, False, True]

    def test_later_batch_moves_active_flag(
        self, resolver: ContinuationResolver, edges: InMemoryEdgeStore, known_root: str
    ) -> None:
        resolver.persist_edges([_child("first", known_root, 1)])
        resolver.persist_edges([_child("second", known_root, 2)])
        first = edges.get_edge("first")
        second = edges.get_edge("second")
        assert first is not None and second is not None
        assert first.is_active is False
        assert (second.order, second.is_active) == (1, True)

    def test_missing_start_time_sorts_first(
        self, resolver: ContinuationResolver, edges: InMemoryEdgeStore, known_root: str
    ) -> None:
        resolver.persist_edges([_child("dated", known_root, 5), _child("undated", known_root)])
        assert [e.child_id for e in edges.children_of(known_root)] == ["undated", "dated"]

    def test_reparenting_renumbers_old_parent(
        self,
        resolver: ContinuationResolver,
        edges: InMemoryEdgeStore,
        catalog: InMemorySessionCatalog,
    ) -> None:
        catalog.register(SessionRecord(session_id="p1"))
        catalog.register(SessionRecord(session_id="p2"))
        resolver.persist_edges([_child("c1", "p1", 1), _child("c2", "p1", 2)])
        resolver.persist_edges([_child("c2", "p2", 2)])
        remaining = edges.children_of("p1")
        assert [(e.child_id, e.order, e.is_active) for e in remaining] == [("c1", 0, True)]
        assert edges.get_parent("c2") == "p2"

    def test_split_info_from_parent_result_in_batch(
        self, resolver: ContinuationResolver, edges: InMemoryEdgeStore, known_root: str
    ) -> None:
        parent = DetectionResult(
            session_id=known_root, is_parent=True, boundary_text="Summary of work", boundary_at=T0
        )
        resolver.persist_edges([parent, _child("c1", known_root)])
        edge = edges.get_edge("c1")
        assert edge is not None
        assert edge.split_reason == "Summary of work"
        assert edge.split_at == T0

    def test_split_info_defaults_and_survives_redetection(
        self, resolver: ContinuationResolver, edges: InMemoryEdgeStore, known_root: str
    ) -> None:
        resolver.persist_edges([_child("c0", known_root)])
        c0 = edges.get_edge("c0")
        assert c0 is not None
        assert c0.split_reason == DEFAULT_SPLIT_REASON

        parent = DetectionResult(session_id=known_root, is_parent=True, boundary_text="Split")
        resolver.persist_edges([parent, _child("c1", known_root)])
        resolver.persist_edges([_child("c1", known_root)])
        c1 = edges.get_edge("c1")
        assert c1 is not None
        assert c1.split_reason == "Split"

    def test_batch_is_a_single_mutation(
        self, resolver: ContinuationResolver, edges: InMemoryEdgeStore, known_root: str
    ) -> None:
        before = edges.version
        resolver.persist_edges([_child("a", known_root, 1), _child("b", known_root, 2)])
        assert edges.version == before + 1


# ---------------------------------------------------------------------------
# Chain walks
# ---------------------------------------------------------------------------


class TestChainWalks:
    def test_validate_and_find_root(
        self, resolver: ContinuationResolver, edges: InMemoryEdgeStore
    ) -> None:
        edges.upsert_edges(
            [
                ContinuationEdge(child_id="b", parent_id="a"),
                ContinuationEdge(child_id="c", parent_id="b"),
            ]
        )
        assert resolver.find_root_parent("c") == "a"
        assert resolver.validate_chain("c").depth == 3
        assert resolver.validate_chain("c", max_depth=2).failure is ValidationFailure.DEPTH_EXCEEDED

    def test_cycle_is_reported(
        self, resolver: ContinuationResolver, edges: InMemoryEdgeStore
    ) -> None:
        edges.upsert_edges(
            [
                ContinuationEdge(child_id="a", parent_id="b"),
                ContinuationEdge(child_id="b", parent_id="a"),
            ]
        )
        assert resolver.validate_chain("a").failure is ValidationFailure.CIRCULAR_REFERENCE


# ---------------------------------------------------------------------------
# Orphans
# ---------------------------------------------------------------------------


class TestOrphans:
    def test_detect_orphans_lists_unknown_parents(
        self,
        resolver: ContinuationResolver,
        catalog: InMemorySessionCatalog,
        known_root: str,
    ) -> None:
        catalog.register(SessionRecord(session_id="lost", project_path="proj", file_path="/t.jsonl"))
        resolver.persist_edges([_child("ok", known_root), _child("lost", "ghost")])
        orphans = resolver.detect_orphans()
        assert [o.child_id for o in orphans] == ["lost"]
        assert orphans[0].parent_id == "ghost"
        assert orphans[0].project_path == "proj"
        assert orphans[0].file_path == "/t.jsonl"

    def test_heal_relinks_once_parent_exists(
        self,
        resolver: ContinuationResolver,
        edges: InMemoryEdgeStore,
        catalog: InMemorySessionCatalog,
        marker: Callable[..., dict[str, Any]],
        write_transcript: Callable[..., Path],
    ) -> None:
        path = write_transcript("child", [marker("parent")])
        catalog.register(SessionRecord(session_id="child", file_path=str(path)))
        resolver.persist_edges([_child("child", "parent")])
        assert [o.child_id for o in resolver.detect_orphans()] == ["child"]

        catalog.register(SessionRecord(session_id="parent"))
        report = resolver.heal_orphans()

        assert report.candidates == 1
        assert report.healed == 1
        assert report.remaining == 0
        assert resolver.detect_orphans() == []
        edge = edges.get_edge("child")
        assert edge is not None
        assert edge.is_orphaned is False

    def test_heal_is_idempotent(
        self,
        resolver: ContinuationResolver,
        catalog: InMemorySessionCatalog,
        marker: Callable[..., dict[str, Any]],
        write_transcript: Callable[..., Path],
    ) -> None:
        path = write_transcript("child", [marker("parent")])
        catalog.register(SessionRecord(session_id="child", file_path=str(path)))
        resolver.persist_edges([_child("child", "parent")])
        catalog.register(SessionRecord(session_id="parent"))
        resolver.heal_orphans()
        assert resolver.heal_orphans().candidates == 0

    def test_heal_counts_candidates_without_transcripts(
        self, resolver: ContinuationResolver
    ) -> None:
        resolver.persist_edges([_child("nowhere", "ghost")])
        report = resolver.heal_orphans()
        assert report.candidates == 1
        assert report.failed == 1
        assert report.healed == 0

    def test_heal_leaves_still_missing_parents(
        self,
        resolver: ContinuationResolver,
        catalog: InMemorySessionCatalog,
        marker: Callable[..., dict[str, Any]],
        write_transcript: Callable[..., Path],
    ) -> None:
        path = write_transcript("child", [marker("ghost")])
        catalog.register(SessionRecord(session_id="child", file_path=str(path)))
        resolver.persist_edges([_child("child", "ghost")])
        report = resolver.heal_orphans()
        assert report.healed == 0
        assert [o.child_id for o in resolver.detect_orphans()] == ["child"]


# ---------------------------------------------------------------------------
# Session lifecycle
# ---------------------------------------------------------------------------


class TestSessionLifecycle:
    def test_register_clears_orphan_flags(
        self, resolver: ContinuationResolver, edges: InMemoryEdgeStore
    ) -> None:
        resolver.persist_edges([_child("c1", "late-parent")])
        cleared = resolver.register_session(SessionRecord(session_id="late-parent"))
        assert cleared == 1
        edge = edges.get_edge("c1")
        assert edge is not None
        assert edge.is_orphaned is False

    def test_remove_orphans_child_and_own_edges(
        self,
        resolver: ContinuationResolver,
        edges: InMemoryEdgeStore,
        catalog: InMemorySessionCatalog,
        known_root: str,
    ) -> None:
        catalog.register(SessionRecord(session_id="mid"))
        resolver.persist_edges([_child("mid", known_root), _child("leaf", "mid")])
        flagged = resolver.remove_session("mid")
        assert flagged == 2
        assert all(e.is_orphaned for e in edges.all_edges())

    def test_remove_unknown_session_raises(self, resolver: ContinuationResolver) -> None:
        with pytest.raises(KeyError):
            resolver.remove_session("nobody")


# ---------------------------------------------------------------------------
# resolve_all
# ---------------------------------------------------------------------------


class TestResolveAll:
    def test_full_pass_over_transcripts(
        self,
        edges: InMemoryEdgeStore,
        catalog: InMemorySessionCatalog,
        marker: Callable[..., dict[str, Any]],
        write_transcript: Callable[..., Path],
        tmp_path: Path,
    ) -> None:
        write_transcript("root", [{"type": "user"}, marker("root", content="Compacted here")])
        write_transcript("c1", [marker("root", timestamp="2024-01-01T10:00:00Z")])
        write_transcript("c2", [marker("root", timestamp="2024-01-01T11:00:00Z")])
        for record in discover_sessions(tmp_path / "projects"):
            catalog.register(record)

        cache = ChainCache(edges)
        resolver = ContinuationResolver(edges, catalog, cache=cache)
        summary = resolver.resolve_all()

        assert summary.total == 3
        assert summary.continuations == 2
        assert summary.orphans == 0
        assert summary.errors == 0
        assert summary.invalid_chains == 0
        assert summary.cached == 3
        children = edges.children_of("root")
        assert [e.child_id for e in children] == ["c1", "c2"]
        assert children[1].is_active is True
        assert children[0].split_reason == "Compacted here"
        assert cache.peek("c2") is not None

    def test_missing_transcript_counts_as_error(
        self,
        resolver: ContinuationResolver,
        catalog: InMemorySessionCatalog,
        tmp_path: Path,
    ) -> None:
        catalog.register(SessionRecord(session_id="gone", file_path=str(tmp_path / "gone.jsonl")))
        summary = resolver.resolve_all()
        assert summary.total == 1
        assert summary.errors == 1
        assert summary.continuations == 0
