"""Chain highlight computation.

Given a built ``ContinuationTree`` and a focal session, every member is
assigned a position, a role relative to the focus and a signed distance,
all precomputed so per-session queries are plain dict lookups.

Roles
-----
- ``clicked``     — the focal session itself, distance 0
- ``ancestor``    — on the root → focal path, negative distance
- ``descendant``  — below the focal session, positive hop count
- ``sibling``     — everything else.  True siblings (same parent as the
  focus) get distance 0; unrelated sessions elsewhere in the tree also get
  this role with distance ``depth - focal depth``.  There is no separate
  "unrelated" role, so ``sibling`` is imprecise for distant nodes.

Classes
-------
- HighlightRole      — role enum
- HighlightInfo      — per-session answer
- HighlightSnapshot  — immutable precomputed maps
- HighlightTracker   — holds the snapshot for the current focus

Functions
---------
- compute_highlight  — build a snapshot for one focus
"""
from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType

from continuation_chains.errors import FocusNotInTreeError
from continuation_chains.tree.builder import ContinuationTree

logger = logging.getLogger(__name__)


class HighlightRole(str, Enum):
    """Role of a session relative to the focal session."""

    CLICKED = "clicked"
    ANCESTOR = "ancestor"
    DESCENDANT = "descendant"
    SIBLING = "sibling"


@dataclass(frozen=True)
class HighlightInfo:
    """Highlight facts for one session."""

    role: HighlightRole
    position: int
    total: int
    distance: int
    is_root: bool


@dataclass(frozen=True)
class HighlightSnapshot:
    """Precomputed highlight data for one focal session.

    All maps are read-only views; a snapshot is never updated in place.
    """

    root_id: str
    focal_id: str
    members: frozenset[str]
    positions: Mapping[str, int]
    roles: Mapping[str, HighlightRole]
    distances: Mapping[str, int]

    @property
    def total(self) -> int:
        return len(self.members)

    def __contains__(self, session_id: object) -> bool:
        return session_id in self.members

    def role_of(self, session_id: str) -> HighlightRole | None:
        return self.roles.get(session_id)

    def position_of(self, session_id: str) -> int | None:
        return self.positions.get(session_id)

    def distance_of(self, session_id: str) -> int | None:
        return self.distances.get(session_id)

    def info(self, session_id: str) -> HighlightInfo | None:
        """Return all highlight facts for ``session_id``, or None for non-members."""
        if session_id not in self.members:
            return None
        return HighlightInfo(
            role=self.roles[session_id],
            position=self.positions[session_id],
            total=self.total,
            distance=self.distances[session_id],
            is_root=session_id == self.root_id,
        )


def _hops_to(session_id: str, target_id: str, parent_map: Mapping[str, str]) -> int | None:
    """Return parent-link hops from ``session_id`` up to ``target_id``, or None."""
    visited: set[str] = {session_id}
    current = parent_map.get(session_id)
    hops = 1
    while current is not None and current not in visited:
        if current == target_id:
            return hops
        visited.add(current)
        current = parent_map.get(current)
        hops += 1
    return None


def compute_highlight(tree: ContinuationTree, focal_id: str) -> HighlightSnapshot:
    """Precompute position, role and distance of every member of ``tree``.

    Positions are assigned 1..n in depth-first pre-order (parents before
    children, siblings by ``order``).

    Raises
    ------
    FocusNotInTreeError
        If ``focal_id`` is not a member of ``tree``.
    """
    focal = tree.get(focal_id)
    if focal is None:
        raise FocusNotInTreeError(focal_id)

    parent_map = tree.parent_map
    path = tree.linear_path(focal_id)
    path_ids = path.session_ids if path is not None else (focal_id,)
    path_index = {sid: index for index, sid in enumerate(path_ids)}
    focal_index = path_index[focal_id]
    focal_parent = parent_map.get(focal_id)

    positions: dict[str, int] = {}
    roles: dict[str, HighlightRole] = {}
    distances: dict[str, int] = {}

    for position, node in enumerate(tree.iter_preorder(), start=1):
        sid = node.session_id
        positions[sid] = position
        if sid == focal_id:
            roles[sid] = HighlightRole.CLICKED
            distances[sid] = 0
            continue
        if sid in path_index:
            roles[sid] = HighlightRole.ANCESTOR
            distances[sid] = path_index[sid] - focal_index
            continue
        hops = _hops_to(sid, focal_id, parent_map)
        if hops is not None:
            roles[sid] = HighlightRole.DESCENDANT
            distances[sid] = hops
            continue
        roles[sid] = HighlightRole.SIBLING
        if focal_parent is not None and parent_map.get(sid) == focal_parent:
            distances[sid] = 0
        else:
            distances[sid] = node.depth - focal.depth

    logger.debug(
        "compute_highlight: focus=%r root=%r members=%d", focal_id, tree.root_id, len(positions)
    )
    return HighlightSnapshot(
        root_id=tree.root_id,
        focal_id=focal_id,
        members=frozenset(positions),
        positions=MappingProxyType(positions),
        roles=MappingProxyType(roles),
        distances=MappingProxyType(distances),
    )


class HighlightTracker:
    """Holds the highlight snapshot for the current focus.

    Each ``focus`` call replaces the snapshot wholesale; ``clear`` discards it.
    """

    def __init__(self) -> None:
        self._snapshot: HighlightSnapshot | None = None

    @property
    def snapshot(self) -> HighlightSnapshot | None:
        return self._snapshot

    @property
    def is_active(self) -> bool:
        return self._snapshot is not None

    def focus(self, tree: ContinuationTree, focal_id: str) -> HighlightSnapshot:
        """Compute and store a new snapshot for ``focal_id``."""
        self._snapshot = compute_highlight(tree, focal_id)
        return self._snapshot

    def clear(self) -> None:
        self._snapshot = None

    def info(self, session_id: str) -> HighlightInfo | None:
        """Return highlight facts for ``session_id`` under the current focus."""
        if self._snapshot is None:
            return None
        return self._snapshot.info(session_id)

    def __repr__(self) -> str:
        focal = self._snapshot.focal_id if self._snapshot is not None else None
        return f"HighlightTracker(focal_id={focal!r})"
