"""Abstract storage interfaces consumed by the continuation engine.

Two collaborators are defined here:

- ``SessionCatalog`` answers "does this session exist, and where is its
  transcript?".
- ``EdgeStore`` persists continuation edges keyed by child id.

``EdgeStore`` owns the mutation discipline: every public write runs under
``mutation_lock``, advances ``version`` and synchronously notifies the
registered listeners before the lock is released.  Derived views such as
``ChainCache`` register a listener and compute under the same lock, so no
reader can observe a value computed against a superseded edge set.

Classes
-------
- SessionCatalog  — session existence and location lookups
- EdgeStore       — keyed edge upsert, query-by-parent and full scan
"""
from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod
from collections.abc import Callable, Iterable

from continuation_chains.models import ContinuationEdge, SessionRecord

logger = logging.getLogger(__name__)

MutationListener = Callable[[int], None]


class SessionCatalog(ABC):
    """Lookup of known sessions.

    Implementations must be safe to call from several threads.
    """

    @abstractmethod
    def get(self, session_id: str) -> SessionRecord | None:
        """Return the record for ``session_id`` or None if unknown."""

    @abstractmethod
    def list_sessions(self) -> list[SessionRecord]:
        """Return every known session."""

    @abstractmethod
    def register(self, record: SessionRecord) -> None:
        """Insert or replace the record for ``record.session_id``."""

    def register_many(self, records: Iterable[SessionRecord]) -> int:
        """Insert or replace several records; returns how many were given."""
        count = 0
        for record in records:
            self.register(record)
            count += 1
        return count

    @abstractmethod
    def remove(self, session_id: str) -> None:
        """Forget ``session_id``.

        Raises
        ------
        KeyError
            If the session is unknown.
        """

    def exists(self, session_id: str) -> bool:
        """Return True if ``session_id`` has a record."""
        return self.get(session_id) is not None

    def existing(self, session_ids: Iterable[str]) -> set[str]:
        """Return the subset of ``session_ids`` that have records."""
        return {sid for sid in set(session_ids) if self.exists(sid)}


class EdgeStore(ABC):
    """Persistent set of continuation edges, one per child id."""

    def __init__(self) -> None:
        self._mutation_lock = threading.RLock()
        self._version = 0
        self._listeners: list[MutationListener] = []

    # ------------------------------------------------------------------
    # Mutation discipline
    # ------------------------------------------------------------------

    @property
    def mutation_lock(self) -> threading.RLock:
        """Lock held for the duration of every write."""
        return self._mutation_lock

    @property
    def version(self) -> int:
        """Counter advanced by every write."""
        return self._version

    def add_listener(self, listener: MutationListener) -> None:
        """Register ``listener(version)`` to run synchronously after each write."""
        with self._mutation_lock:
            self._listeners.append(listener)

    def remove_listener(self, listener: MutationListener) -> None:
        with self._mutation_lock:
            self._listeners.remove(listener)

    def _mutated(self) -> None:
        self._version += 1
        for listener in list(self._listeners):
            listener(self._version)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def upsert_edges(self, edges: Iterable[ContinuationEdge]) -> int:
        """Insert or replace ``edges`` atomically.

        An edge whose ``child_id`` already exists replaces the stored edge.
        Either every edge is written or none is.

        Returns
        -------
        int
            Number of edges written.
        """
        batch = list(edges)
        if not batch:
            return 0
        with self._mutation_lock:
            self._write_edges(batch)
            self._mutated()
        logger.debug("%s: upserted %d edges", type(self).__name__, len(batch))
        return len(batch)

    def delete_edge(self, child_id: str) -> bool:
        """Delete the edge for ``child_id``.  Returns False if none existed."""
        with self._mutation_lock:
            removed = self._remove_edge(child_id)
            if removed:
                self._mutated()
        return removed

    def set_orphaned(self, child_ids: Iterable[str], is_orphaned: bool) -> int:
        """Set the orphan flag on the edges for ``child_ids``.

        Returns
        -------
        int
            Number of edges changed.
        """
        ids = list(dict.fromkeys(child_ids))
        if not ids:
            return 0
        with self._mutation_lock:
            changed = self._write_orphaned(ids, is_orphaned)
            if changed:
                self._mutated()
        return changed

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    @abstractmethod
    def get_edge(self, child_id: str) -> ContinuationEdge | None:
        """Return the edge whose child is ``child_id``, or None."""

    @abstractmethod
    def children_of(self, parent_id: str) -> list[ContinuationEdge]:
        """Return edges whose parent is ``parent_id``, ordered by ``order``."""

    @abstractmethod
    def all_edges(self) -> list[ContinuationEdge]:
        """Return every stored edge."""

    def get_parent(self, child_id: str) -> str | None:
        """Return the parent id of ``child_id``, or None for a parentless session."""
        edge = self.get_edge(child_id)
        return edge.parent_id if edge is not None else None

    def count_children(self, parent_id: str) -> int:
        return len(self.children_of(parent_id))

    # ------------------------------------------------------------------
    # Backend hooks (called with mutation_lock held)
    # ------------------------------------------------------------------

    @abstractmethod
    def _write_edges(self, edges: list[ContinuationEdge]) -> None:
        """Persist ``edges`` in one transaction."""

    @abstractmethod
    def _remove_edge(self, child_id: str) -> bool:
        """Remove one edge; return True if it existed."""

    @abstractmethod
    def _write_orphaned(self, child_ids: list[str], is_orphaned: bool) -> int:
        """Update orphan flags; return the number of edges changed."""
