"""Derived per-session chain facts.

The cache is a read-through view over an ``EdgeStore``.  It has no
authority of its own: it subscribes to the store's mutation listeners and
clears every entry on any edge write.  Entries are computed while holding
the store's ``mutation_lock``, so an entry can never be computed against
one edge set and served after the next write.

Classes
-------
- CacheEntry  — ``ChainMetadata`` stamped with the generation it was built in
- RootStats   — aggregate facts for one cached chain
- ChainCache  — the read-through cache
"""
from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass
from datetime import datetime, timezone

from pydantic import Field

from continuation_chains.config import DEFAULT_MAX_DEPTH
from continuation_chains.models import ChainMetadata, ChainStats
from continuation_chains.resolution.validation import ParentLookup, ancestry, find_root_parent
from continuation_chains.storage.base import EdgeStore

logger = logging.getLogger(__name__)


class CacheEntry(ChainMetadata):
    """Cached chain facts for a single session."""

    model_config = {"frozen": True}

    generation: int = 0
    computed_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass(frozen=True)
class RootStats:
    """Aggregate facts over the cached members of one chain."""

    max_depth: int
    total_sessions: int
    has_branches: bool


class ChainCache:
    """Read-through cache of per-session chain metadata.

    Parameters
    ----------
    edges:
        The edge store this cache derives from.  The cache registers itself
        as a mutation listener on construction.
    max_depth:
        Cap on the parent walk used to compute ``depth_from_root`` and on
        subtree traversal in ``populate_subtree``.
    """

    def __init__(self, edges: EdgeStore, max_depth: int = DEFAULT_MAX_DEPTH) -> None:
        self._edges = edges
        self.max_depth = max_depth
        self._entries: dict[str, CacheEntry] = {}
        self._generation = 0
        edges.add_listener(self._on_edges_mutated)

    @property
    def generation(self) -> int:
        """Counter advanced every time the cache is cleared."""
        return self._generation

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get(self, session_id: str) -> CacheEntry:
        """Return the entry for ``session_id``, computing and storing it on a miss."""
        with self._edges.mutation_lock:
            entry = self._entries.get(session_id)
            if entry is not None:
                logger.debug("ChainCache: hit for %r", session_id)
                return entry
            logger.debug("ChainCache: miss for %r, computing", session_id)
            entry = self._compute(session_id)
            self._entries[session_id] = entry
            return entry

    def peek(self, session_id: str) -> CacheEntry | None:
        """Return the stored entry without computing one."""
        with self._edges.mutation_lock:
            return self._entries.get(session_id)

    def root_stats(self, root_id: str) -> RootStats | None:
        """Aggregate cached entries whose root is ``root_id``.

        Returns None when no member of that chain is cached.
        """
        with self._edges.mutation_lock:
            members = [e for e in self._entries.values() if e.root_id == root_id]
        if not members:
            return None
        return RootStats(
            max_depth=max(e.depth_from_root for e in members),
            total_sessions=len(members),
            has_branches=any(e.has_multiple_children for e in members),
        )

    # ------------------------------------------------------------------
    # Population
    # ------------------------------------------------------------------

    def populate(self, session_id: str) -> CacheEntry:
        """Recompute and store the entry for ``session_id``."""
        with self._edges.mutation_lock:
            entry = self._compute(session_id)
            self._entries[session_id] = entry
        logger.debug(
            "ChainCache: populated %r root=%r depth=%d children=%d",
            session_id,
            entry.root_id,
            entry.depth_from_root,
            entry.child_count,
        )
        return entry

    def populate_subtree(self, root_id: str) -> int:
        """Recompute entries for ``root_id`` and every descendant.

        Traversal is breadth-first, skips sessions already visited and stops
        descending below ``max_depth``.

        Returns
        -------
        int
            Number of entries populated.
        """
        populated = 0
        with self._edges.mutation_lock:
            visited: set[str] = {root_id}
            queue: deque[tuple[str, int]] = deque([(root_id, 0)])
            while queue:
                session_id, depth = queue.popleft()
                self._entries[session_id] = self._compute(session_id)
                populated += 1
                if depth >= self.max_depth:
                    continue
                for edge in self._edges.children_of(session_id):
                    if edge.child_id not in visited:
                        visited.add(edge.child_id)
                        queue.append((edge.child_id, depth + 1))
        logger.debug("ChainCache: populated %d entries under %r", populated, root_id)
        return populated

    # ------------------------------------------------------------------
    # Invalidation
    # ------------------------------------------------------------------

    def invalidate(self) -> int:
        """Drop every entry and advance the generation.

        Returns
        -------
        int
            Number of entries dropped.
        """
        with self._edges.mutation_lock:
            dropped = len(self._entries)
            self._entries.clear()
            self._generation += 1
        if dropped:
            logger.debug("ChainCache: cleared %d entries", dropped)
        return dropped

    def _on_edges_mutated(self, version: int) -> None:
        self.invalidate()

    # ------------------------------------------------------------------
    # Statistics
    # ------------------------------------------------------------------

    def stats(self) -> ChainStats:
        """Compute global statistics from the current edge set."""
        with self._edges.mutation_lock:
            edges = self._edges.all_edges()
        if not edges:
            return ChainStats()

        parents = {e.child_id: e.parent_id for e in edges}
        roots: set[str] = set()
        max_depth = 0
        for child_id in parents:
            roots.add(find_root_parent(child_id, parents.get))
            max_depth = max(max_depth, self._bounded_depth(child_id, parents.get))

        total_chains = len(roots)
        return ChainStats(
            total_edges=len(edges),
            total_chains=total_chains,
            max_depth=max_depth,
            orphan_count=sum(1 for e in edges if e.is_orphaned),
            average_chain_length=round(len(edges) / total_chains, 2) if total_chains else 0.0,
        )

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _bounded_depth(self, session_id: str, parent_lookup: ParentLookup) -> int:
        return len(ancestry(session_id, parent_lookup, max_hops=self.max_depth)) - 1

    def _compute(self, session_id: str) -> CacheEntry:
        edge = self._edges.get_edge(session_id)
        child_count = self._edges.count_children(session_id)
        parent_lookup = self._edges.get_parent
        return CacheEntry(
            session_id=session_id,
            root_id=find_root_parent(session_id, parent_lookup),
            depth_from_root=self._bounded_depth(session_id, parent_lookup) if edge else 0,
            is_child=edge is not None,
            is_parent=child_count > 0,
            child_count=child_count,
            has_multiple_children=child_count > 1,
            order=edge.order if edge is not None else 0,
            is_active=edge.is_active if edge is not None else False,
            generation=self._generation,
        )

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._entries

    def __repr__(self) -> str:
        return f"ChainCache(entries={len(self._entries)}, generation={self._generation})"
