"""In-memory storage backends.

Stores sessions and edges in plain Python dicts.  All data is lost when
the process exits.  These backends are primarily useful for tests and
short-lived tooling.

Classes
-------
- InMemorySessionCatalog  — dict-backed session catalog
- InMemoryEdgeStore       — dict-backed edge store
"""
from __future__ import annotations

import threading
from collections.abc import Iterable

from continuation_chains.models import ContinuationEdge, SessionRecord
from continuation_chains.storage.base import EdgeStore, SessionCatalog


class InMemorySessionCatalog(SessionCatalog):
    """Session catalog backed by a dict.

    Parameters
    ----------
    records:
        Optional initial records.
    """

    def __init__(self, records: Iterable[SessionRecord] | None = None) -> None:
        self._lock = threading.Lock()
        self._records: dict[str, SessionRecord] = {
            record.session_id: record for record in records or []
        }

    def get(self, session_id: str) -> SessionRecord | None:
        with self._lock:
            return self._records.get(session_id)

    def list_sessions(self) -> list[SessionRecord]:
        with self._lock:
            return list(self._records.values())

    def register(self, record: SessionRecord) -> None:
        with self._lock:
            self._records[record.session_id] = record

    def remove(self, session_id: str) -> None:
        with self._lock:
            try:
                del self._records[session_id]
            except KeyError:
                raise KeyError(
                    f"Session {session_id!r} not found in InMemorySessionCatalog."
                ) from None

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

    def __repr__(self) -> str:
        return f"InMemorySessionCatalog(sessions={len(self)})"


class InMemoryEdgeStore(EdgeStore):
    """Edge store backed by a dict keyed by child id.

    Batch writes build a new mapping and swap it in, so a failure part-way
    through a batch leaves the previous mapping untouched.
    """

    def __init__(self, edges: Iterable[ContinuationEdge] | None = None) -> None:
        super().__init__()
        self._edges: dict[str, ContinuationEdge] = {
            edge.child_id: edge for edge in edges or []
        }

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_edge(self, child_id: str) -> ContinuationEdge | None:
        return self._edges.get(child_id)

    def children_of(self, parent_id: str) -> list[ContinuationEdge]:
        children = [e for e in list(self._edges.values()) if e.parent_id == parent_id]
        children.sort(key=lambda e: (e.order, e.child_id))
        return children

    def all_edges(self) -> list[ContinuationEdge]:
        return list(self._edges.values())

    # ------------------------------------------------------------------
    # Backend hooks
    # ------------------------------------------------------------------

    def _write_edges(self, edges: list[ContinuationEdge]) -> None:
        updated = dict(self._edges)
        for edge in edges:
            updated[edge.child_id] = edge.model_copy()
        self._edges = updated

    def _remove_edge(self, child_id: str) -> bool:
        if child_id not in self._edges:
            return False
        updated = dict(self._edges)
        del updated[child_id]
        self._edges = updated
        return True

    def _write_orphaned(self, child_ids: list[str], is_orphaned: bool) -> int:
        updated = dict(self._edges)
        changed = 0
        for child_id in child_ids:
            edge = updated.get(child_id)
            if edge is None or edge.is_orphaned == is_orphaned:
                continue
            updated[child_id] = edge.model_copy(update={"is_orphaned": is_orphaned})
            changed += 1
        self._edges = updated
        return changed

    def __len__(self) -> int:
        return len(self._edges)

    def __repr__(self) -> str:
        return f"InMemoryEdgeStore(edges={len(self._edges)})"
