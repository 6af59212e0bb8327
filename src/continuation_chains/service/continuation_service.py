"""Consumer-facing continuation queries.

Provides ``ContinuationService``, the facade a presentation layer talks
to.  It wires the edge store, session catalog, resolver, cache and
highlight tracker together and returns every answer wrapped in an
``Envelope``.

Classes
-------
- ContinuationService  — envelope-returning facade over the engine
"""
from __future__ import annotations

import logging
from collections import deque
from collections.abc import Callable, Iterable
from typing import TypeVar

from continuation_chains.cache.chain_cache import ChainCache, RootStats
from continuation_chains.config import EngineConfig
from continuation_chains.detection.detector import ContinuationDetector, ProgressCallback
from continuation_chains.errors import ContinuationError, SessionNotFoundError
from continuation_chains.highlight.engine import HighlightInfo, HighlightSnapshot, HighlightTracker
from continuation_chains.models import (
    ChainMetadata,
    ChainStats,
    ChainView,
    ContinuationEdge,
    FlatDescendant,
    OrphanRecord,
    SessionRecord,
)
from continuation_chains.resolution.resolver import (
    ContinuationResolver,
    HealReport,
    ResolutionSummary,
)
from continuation_chains.resolution.validation import find_root_parent
from continuation_chains.service.envelope import Envelope
from continuation_chains.storage.base import EdgeStore, SessionCatalog
from continuation_chains.storage.filesystem import discover_sessions, transcript_locator
from continuation_chains.storage.sqlite import SQLiteStore
from continuation_chains.tree.builder import (
    BranchPoint,
    ContinuationTree,
    all_branch_points,
    build_tree,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ContinuationService:
    """Envelope-returning facade over the continuation engine.

    Any ``ContinuationError`` raised underneath is logged and converted into
    a failed envelope.  Other exceptions propagate.

    Parameters
    ----------
    edges:
        Edge store holding continuation relationships.
    catalog:
        Session catalog.
    resolver:
        Resolver writing to ``edges``.  Built from ``edges`` and ``catalog``
        when omitted.
    cache:
        Chain cache over ``edges``.  Built when omitted.
    config:
        Engine settings.  Defaults to ``EngineConfig()``.
    """

    def __init__(
        self,
        edges: EdgeStore,
        catalog: SessionCatalog,
        resolver: ContinuationResolver | None = None,
        cache: ChainCache | None = None,
        config: EngineConfig | None = None,
    ) -> None:
        self._config = config or EngineConfig()
        self._edges = edges
        self._catalog = catalog
        self._cache = cache or ChainCache(edges, max_depth=self._config.max_depth)
        self._resolver = resolver or ContinuationResolver(
            edges,
            catalog,
            detector=ContinuationDetector(
                max_workers=self._config.max_workers,
                transcript_locator=transcript_locator(catalog),
            ),
            cache=self._cache,
            max_depth=self._config.max_depth,
        )
        self._tracker = HighlightTracker()

    @classmethod
    def from_config(cls, config: EngineConfig) -> ContinuationService:
        """Build a service backed by a ``SQLiteStore`` at ``config.db_path``."""
        store = SQLiteStore(config.db_path)
        return cls(store, store, config=config)

    @property
    def config(self) -> EngineConfig:
        return self._config

    @property
    def resolver(self) -> ContinuationResolver:
        return self._resolver

    @property
    def cache(self) -> ChainCache:
        return self._cache

    def _call(self, operation: str, func: Callable[[], T]) -> Envelope[T]:
        try:
            return Envelope.ok(func())
        except ContinuationError as exc:
            logger.warning("%s failed: %s", operation, exc)
            return Envelope.fail(str(exc))

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    def register_sessions(self, records: Iterable[SessionRecord]) -> Envelope[int]:
        """Add ``records`` to the catalog, clearing orphan flags they satisfy."""

        def run() -> int:
            batch = list(records)
            self._resolver.register_sessions(batch)
            return len(batch)

        return self._call("register_sessions", run)

    def discover(self) -> Envelope[int]:
        """Register every transcript found under ``config.projects_dir``."""
        return self.register_sessions(discover_sessions(self._config.projects_dir))

    def remove_session(self, session_id: str) -> Envelope[int]:
        """Remove a session from the catalog and orphan its edges."""

        def run() -> int:
            try:
                return self._resolver.remove_session(session_id)
            except KeyError as exc:
                raise SessionNotFoundError(session_id) from exc

        return self._call("remove_session", run)

    # ------------------------------------------------------------------
    # Chains
    # ------------------------------------------------------------------

    def _record(self, session_id: str) -> SessionRecord:
        return self._catalog.get(session_id) or SessionRecord(session_id=session_id)

    def _chain(self, session_id: str) -> ChainView:
        known = (
            self._catalog.exists(session_id)
            or self._edges.get_edge(session_id) is not None
            or self._edges.count_children(session_id) > 0
        )
        if not known:
            raise SessionNotFoundError(session_id)

        with self._edges.mutation_lock:
            root_id = find_root_parent(session_id, self._edges.get_parent)
            flat: list[FlatDescendant] = []
            visited: set[str] = {root_id}
            queue: deque[tuple[str, int]] = deque([(root_id, 0)])
            while queue:
                parent_id, depth = queue.popleft()
                if depth >= self._config.max_depth:
                    continue
                for edge in self._edges.children_of(parent_id):
                    if edge.child_id in visited:
                        continue
                    visited.add(edge.child_id)
                    flat.append(
                        FlatDescendant(
                            session=self._record(edge.child_id),
                            parent_id=parent_id,
                            depth=depth + 1,
                            order=edge.order,
                            is_active=edge.is_active,
                        )
                    )
                    queue.append((edge.child_id, depth + 1))

        child_counts: dict[str, int] = {}
        for row in flat:
            child_counts[row.parent_id] = child_counts.get(row.parent_id, 0) + 1
        return ChainView(
            root=self._record(root_id),
            children=[row.session for row in flat if row.depth == 1],
            flat_descendants=flat,
            depth=max((row.depth for row in flat), default=0),
            has_branches=any(count > 1 for count in child_counts.values()),
        )

    def get_chain(self, session_id: str) -> Envelope[ChainView]:
        """Return the full chain containing ``session_id``.

        Fails with a not-found message when the session has no catalog
        record and takes part in no edge.
        """
        return self._call("get_chain", lambda: self._chain(session_id))

    def get_children(self, session_id: str) -> Envelope[list[ContinuationEdge]]:
        """Return the direct continuations of ``session_id`` ordered by ``order``."""
        return self._call("get_children", lambda: self._edges.children_of(session_id))

    def get_session_group(self, session_id: str) -> Envelope[list[str]]:
        """Return every session id in the chain containing ``session_id``, root first.

        Falls back to ``[session_id]`` when the chain cannot be built.
        """
        try:
            return Envelope.ok(self._chain(session_id).session_ids)
        except ContinuationError as exc:
            logger.debug("get_session_group: falling back for %r: %s", session_id, exc)
            return Envelope.ok([session_id])

    def get_metadata(self, session_id: str) -> Envelope[ChainMetadata]:
        """Return cached chain facts for ``session_id``."""
        return self._call("get_metadata", lambda: self._cache.get(session_id))

    # ------------------------------------------------------------------
    # Statistics and maintenance
    # ------------------------------------------------------------------

    def get_stats(self) -> Envelope[ChainStats]:
        return self._call("get_stats", self._cache.stats)

    def get_root_stats(self, root_id: str) -> Envelope[RootStats]:
        """Return cached stats for the chain rooted at ``root_id``.

        The payload is None when no member of that chain is cached.
        """
        return self._call("get_root_stats", lambda: self._cache.root_stats(root_id))

    def get_orphans(self) -> Envelope[list[OrphanRecord]]:
        return self._call("get_orphans", self._resolver.detect_orphans)

    def heal_orphans(self, progress: ProgressCallback | None = None) -> Envelope[HealReport]:
        return self._call("heal_orphans", lambda: self._resolver.heal_orphans(progress))

    def resolve(self, progress: ProgressCallback | None = None) -> Envelope[ResolutionSummary]:
        """Run a full detection and persistence pass over the catalog."""
        return self._call("resolve", lambda: self._resolver.resolve_all(progress))

    def clear_cache(self) -> Envelope[int]:
        """Drop every cached entry; the payload is the number dropped."""
        return self._call("clear_cache", self._cache.invalidate)

    # ------------------------------------------------------------------
    # Trees and highlight
    # ------------------------------------------------------------------

    def _tree(self, session_id: str) -> ContinuationTree:
        chain = self._chain(session_id)
        return build_tree(chain.root, chain.flat_descendants, max_depth=self._config.max_depth)

    def build_tree(self, session_id: str) -> Envelope[ContinuationTree]:
        """Build the tree of the chain containing ``session_id``."""
        return self._call("build_tree", lambda: self._tree(session_id))

    def get_branch_points(self, session_id: str) -> Envelope[list[BranchPoint]]:
        return self._call("get_branch_points", lambda: all_branch_points(self._tree(session_id)))

    def focus(self, focal_id: str) -> Envelope[HighlightSnapshot]:
        """Highlight the chain containing ``focal_id`` relative to that session."""
        return self._call("focus", lambda: self._tracker.focus(self._tree(focal_id), focal_id))

    def highlight_info(self, session_id: str) -> Envelope[HighlightInfo]:
        """Return highlight facts for ``session_id`` under the current focus.

        The payload is None when nothing is focused or the session is not a
        member of the focused chain.
        """
        return Envelope.ok(self._tracker.info(session_id))

    def clear_highlight(self) -> Envelope[None]:
        self._tracker.clear()
        return Envelope.ok(None)

    def __repr__(self) -> str:
        return f"ContinuationService(edges={self._edges!r}, catalog={self._catalog!r})"
