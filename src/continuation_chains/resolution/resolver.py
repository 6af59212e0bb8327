"""Turn detection results into persisted continuation edges.

The resolver is the only writer of continuation edges.  It validates
chains, records edges whose parent is unknown as orphaned rather than
rejecting them, and heals those orphans once the parent appears.

Classes
-------
- PersistReport        — counts from ``persist_edges``
- HealReport           — counts from ``heal_orphans``
- ResolutionSummary    — counts from ``resolve_all``
- ContinuationResolver — edge persistence, validation and orphan healing
"""
from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING

from continuation_chains.config import DEFAULT_MAX_DEPTH
from continuation_chains.detection.detector import ContinuationDetector, ProgressCallback
from continuation_chains.models import (
    DEFAULT_SPLIT_REASON,
    ContinuationEdge,
    DetectionResult,
    OrphanRecord,
    SessionRecord,
)
from continuation_chains.resolution.validation import (
    ChainValidation,
    ancestry,
    find_root_parent,
    validate_chain,
)
from continuation_chains.storage.base import EdgeStore, SessionCatalog
from continuation_chains.storage.filesystem import transcript_locator

if TYPE_CHECKING:
    from continuation_chains.cache.chain_cache import ChainCache

logger = logging.getLogger(__name__)

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


@dataclass(frozen=True)
class PersistReport:
    """Outcome of a ``persist_edges`` batch."""

    written: int = 0
    orphaned: int = 0
    skipped: int = 0


@dataclass(frozen=True)
class HealReport:
    """Outcome of a ``heal_orphans`` pass."""

    candidates: int = 0
    healed: int = 0
    failed: int = 0

    @property
    def remaining(self) -> int:
        return self.candidates - self.healed


@dataclass(frozen=True)
class ResolutionSummary:
    """Outcome of a full ``resolve_all`` pass."""

    total: int = 0
    continuations: int = 0
    orphans: int = 0
    errors: int = 0
    cached: int = 0
    invalid_chains: int = 0


def _sibling_sort_key(edge: ContinuationEdge) -> tuple[datetime, str]:
    return (edge.child_started_at or _EPOCH, edge.child_id)


class ContinuationResolver:
    """Persist, validate and heal continuation edges.

    Parameters
    ----------
    edges:
        Edge store to write to.
    catalog:
        Session catalog used for parent existence checks and transcript
        locations.
    detector:
        Detector used by ``heal_orphans`` and ``resolve_all``.  Defaults to
        a ``ContinuationDetector`` that locates transcripts via ``catalog``.
    cache:
        Optional cache to populate eagerly after ``resolve_all``.
    max_depth:
        Default depth limit for chain validation.
    """

    def __init__(
        self,
        edges: EdgeStore,
        catalog: SessionCatalog,
        detector: ContinuationDetector | None = None,
        cache: ChainCache | None = None,
        max_depth: int = DEFAULT_MAX_DEPTH,
    ) -> None:
        self._edges = edges
        self._catalog = catalog
        self._detector = detector or ContinuationDetector(
            transcript_locator=transcript_locator(catalog)
        )
        self._cache = cache
        self.max_depth = max_depth

    # ------------------------------------------------------------------
    # Chain walks
    # ------------------------------------------------------------------

    def parent_of(self, session_id: str) -> str | None:
        """Return the stored parent of ``session_id``, or None."""
        return self._edges.get_parent(session_id)

    def validate_chain(self, start: str, max_depth: int | None = None) -> ChainValidation:
        """Validate the stored chain above ``start``.

        ``max_depth`` overrides the resolver's default for this call.
        """
        limit = self.max_depth if max_depth is None else max_depth
        return validate_chain(start, self.parent_of, max_depth=limit)

    def find_root_parent(self, session_id: str) -> str:
        """Return the root of the stored chain containing ``session_id``."""
        return find_root_parent(session_id, self.parent_of)

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def persist_edges(self, results: Iterable[DetectionResult]) -> PersistReport:
        """Upsert one edge per detected child, atomically.

        Re-detecting a child replaces its edge.  A parent with no session
        record is stored with ``is_orphaned=True``.  Every parent touched by
        the batch has its children renumbered by start time; the latest
        child becomes the active continuation.

        Parameters
        ----------
        results:
            Detection results; non-child results are ignored.

        Returns
        -------
        PersistReport
        """
        batch = list(results)
        by_session = {r.session_id: r for r in batch}
        detected: dict[str, DetectionResult] = {}
        skipped = 0
        for result in batch:
            if not result.is_child or not result.parent_id:
                continue
            if result.parent_id == result.session_id:
                logger.warning("persist_edges: ignoring self-parent for %r", result.session_id)
                skipped += 1
                continue
            detected[result.session_id] = result

        if not detected:
            return PersistReport(skipped=skipped)

        existing_parents = self._catalog.existing(
            r.parent_id for r in detected.values() if r.parent_id
        )
        now = datetime.now(timezone.utc)

        with self._edges.mutation_lock:
            incoming: dict[str, ContinuationEdge] = {}
            touched_parents: set[str] = set()
            for child_id, result in detected.items():
                parent_id = result.parent_id or ""
                previous = self._edges.get_edge(child_id)
                if previous is not None and previous.parent_id != parent_id:
                    touched_parents.add(previous.parent_id)
                touched_parents.add(parent_id)

                split_reason = DEFAULT_SPLIT_REASON
                split_at = None
                parent_result = by_session.get(parent_id)
                if parent_result is not None and parent_result.is_parent:
                    split_reason = parent_result.boundary_text or DEFAULT_SPLIT_REASON
                    split_at = parent_result.boundary_at
                elif previous is not None and previous.parent_id == parent_id:
                    split_reason, split_at = previous.split_reason, previous.split_at

                incoming[child_id] = ContinuationEdge(
                    child_id=child_id,
                    parent_id=parent_id,
                    is_orphaned=parent_id not in existing_parents,
                    detected_at=now,
                    child_started_at=result.child_started_at,
                    split_reason=split_reason,
                    split_at=split_at,
                )

            to_write = self._renumber(touched_parents, incoming)
            written = self._edges.upsert_edges(to_write)

        orphaned = sum(1 for e in incoming.values() if e.is_orphaned)
        if orphaned:
            logger.warning("persist_edges: %d orphaned continuations recorded for healing", orphaned)
        logger.info(
            "persist_edges: %d continuations written (%d rows incl. siblings)",
            len(incoming),
            written,
        )
        return PersistReport(written=len(incoming), orphaned=orphaned, skipped=skipped)

    def _renumber(
        self,
        parents: set[str],
        incoming: dict[str, ContinuationEdge],
    ) -> list[ContinuationEdge]:
        """Return ``incoming`` plus re-ordered siblings for every touched parent."""
        out: list[ContinuationEdge] = []
        for parent_id in sorted(parents):
            siblings = {
                e.child_id: e
                for e in self._edges.children_of(parent_id)
                if e.child_id not in incoming
            }
            siblings.update(
                {cid: e for cid, e in incoming.items() if e.parent_id == parent_id}
            )
            ordered = sorted(siblings.values(), key=_sibling_sort_key)
            last = len(ordered) - 1
            for index, edge in enumerate(ordered):
                out.append(edge.model_copy(update={"order": index, "is_active": index == last}))
        return out

    # ------------------------------------------------------------------
    # Orphans
    # ------------------------------------------------------------------

    def detect_orphans(self) -> list[OrphanRecord]:
        """Return edges whose parent has no session record.

        Each record carries the child's own transcript location when the
        child is known to the catalog.
        """
        edges = self._edges.all_edges()
        known_parents = self._catalog.existing(e.parent_id for e in edges)
        orphans: list[OrphanRecord] = []
        for edge in edges:
            if edge.parent_id in known_parents:
                continue
            child = self._catalog.get(edge.child_id)
            orphans.append(
                OrphanRecord(
                    child_id=edge.child_id,
                    parent_id=edge.parent_id,
                    order=edge.order,
                    file_path=child.file_path if child is not None else None,
                    project_path=child.project_path if child is not None else None,
                )
            )
        orphans.sort(key=lambda o: o.child_id)
        if orphans:
            logger.debug("detect_orphans: found %d orphaned continuations", len(orphans))
        return orphans

    def heal_orphans(self, progress: ProgressCallback | None = None) -> HealReport:
        """Re-scan orphaned children and re-link those whose parent now exists.

        Candidates are edges whose parent is missing from the catalog plus
        edges still flagged orphaned.  Each candidate's transcript is
        re-detected; a per-item failure is logged and skipped.  Running
        this repeatedly is safe.
        """
        edges = self._edges.all_edges()
        known_parents = self._catalog.existing(e.parent_id for e in edges)
        candidates = [e for e in edges if e.is_orphaned or e.parent_id not in known_parents]
        if not candidates:
            logger.info("heal_orphans: no orphans to heal")
            return HealReport()

        logger.info("heal_orphans: %d candidates", len(candidates))
        locations: dict[str, str] = {}
        failed = 0
        for edge in candidates:
            record = self._catalog.get(edge.child_id)
            if record is None or not record.file_path:
                logger.warning("heal_orphans: no transcript for %r, skipping", edge.child_id)
                failed += 1
                continue
            locations[edge.child_id] = record.file_path

        results = self._detector.batch_detect_sessions(locations, progress=progress)
        found = self._catalog.existing(r.parent_id for r in results.values() if r.parent_id)
        healable = [
            r for r in results.values() if r.is_child and r.parent_id and r.parent_id in found
        ]
        failed += sum(1 for r in results.values() if not r.is_child)

        report = self.persist_edges(healable)
        logger.info(
            "heal_orphans: healed %d of %d orphaned continuations", report.written, len(candidates)
        )
        return HealReport(candidates=len(candidates), healed=report.written, failed=failed)

    # ------------------------------------------------------------------
    # Session lifecycle
    # ------------------------------------------------------------------

    def register_session(self, record: SessionRecord) -> int:
        """Add ``record`` to the catalog and clear orphan flags pointing at it.

        Returns
        -------
        int
            Number of edges whose orphan flag was cleared.
        """
        return self.register_sessions([record])

    def register_sessions(self, records: Iterable[SessionRecord]) -> int:
        """Register ``records`` in one catalog call, then clear satisfied orphan flags.

        Returns
        -------
        int
            Number of edges whose orphan flag was cleared.
        """
        batch = list(records)
        if not batch:
            return 0
        self._catalog.register_many(batch)
        registered = {r.session_id for r in batch}
        waiting = [
            e.child_id
            for e in self._edges.all_edges()
            if e.is_orphaned and e.parent_id in registered
        ]
        cleared = self._edges.set_orphaned(waiting, False)
        logger.debug(
            "register_sessions: %d sessions registered, %d orphan flags cleared",
            len(batch),
            cleared,
        )
        return cleared

    def remove_session(self, session_id: str) -> int:
        """Remove ``session_id`` from the catalog and orphan its edges.

        Both the edges naming it as parent and its own edge as a child are
        flagged.

        Raises
        ------
        KeyError
            If the session is not in the catalog.
        """
        self._catalog.remove(session_id)
        affected = [e.child_id for e in self._edges.children_of(session_id)]
        if self._edges.get_edge(session_id) is not None:
            affected.append(session_id)
        return self._edges.set_orphaned(affected, True)

    # ------------------------------------------------------------------
    # Full pass
    # ------------------------------------------------------------------

    def resolve_all(self, progress: ProgressCallback | None = None) -> ResolutionSummary:
        """Scan every catalogued transcript and persist the continuation graph.

        Steps: batch detection, atomic persistence, validation of every
        detected child's chain, then eager cache population per root.
        """
        records = [r for r in self._catalog.list_sessions() if r.file_path]
        locations: dict[str, str] = {}
        errors = 0
        for record in records:
            if Path(record.file_path or "").is_file():
                locations[record.session_id] = record.file_path or ""
            else:
                logger.warning("resolve_all: transcript missing for %r", record.session_id)
                errors += 1

        logger.info("resolve_all: analysing %d sessions for continuations", len(locations))
        results = self._detector.batch_detect_sessions(locations, progress=progress)
        report = self.persist_edges(results.values())

        children = [r.session_id for r in results.values() if r.is_child and r.parent_id]
        invalid = 0
        roots: set[str] = set()
        for child_id in children:
            validation = self.validate_chain(child_id)
            if not validation.is_valid:
                invalid += 1
                continue
            roots.add(ancestry(child_id, self.parent_of)[-1])

        cached = 0
        if self._cache is not None:
            for root_id in sorted(roots):
                cached += self._cache.populate_subtree(root_id)

        summary = ResolutionSummary(
            total=len(records),
            continuations=report.written,
            orphans=report.orphaned,
            errors=errors,
            cached=cached,
            invalid_chains=invalid,
        )
        logger.info("resolve_all: %s", summary)
        return summary

    def __repr__(self) -> str:
        return f"ContinuationResolver(max_depth={self.max_depth})"
