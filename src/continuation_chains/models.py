"""Continuation domain models.

All types are Pydantic BaseModel subclasses so records coming from SQLite
rows, transcript events or JSON payloads are validated at the boundary.

Classes
-------
- SessionRecord     — a session known to the catalog (canonical id + location)
- DetectionResult   — what one transcript says about its own continuation role
- ContinuationEdge  — a persisted child → parent relationship
- OrphanRecord      — an edge whose parent has no session record
- FlatDescendant    — one row of a flattened chain below a root
- ChainView         — the full chain for a session
- ChainMetadata     — cheap per-session chain facts
- ChainStats        — global edge-set statistics
"""
from __future__ import annotations

from datetime import datetime, timezone

from pydantic import AliasChoices, BaseModel, Field

DEFAULT_SPLIT_REASON = "Context window approaching limit"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SessionRecord(BaseModel):
    """A session known to the catalog.

    Some sources expose the identifier as ``id`` or ``sessionId`` rather than
    ``session_id``; all three are accepted on input and normalised to
    ``session_id``.

    Parameters
    ----------
    session_id:
        Canonical session identifier.
    project_path:
        Project the session belongs to, if known.
    file_path:
        Location of the session's transcript, if known.
    title:
        Optional display title supplied by an external collaborator.
    """

    model_config = {"frozen": True, "populate_by_name": True}

    session_id: str = Field(
        validation_alias=AliasChoices("session_id", "sessionId", "id"),
        min_length=1,
    )
    project_path: str | None = None
    file_path: str | None = None
    title: str | None = None


class DetectionResult(BaseModel):
    """Continuation role of a single session, derived from its transcript.

    Parameters
    ----------
    session_id:
        The session the transcript belongs to.
    is_child:
        True when a compaction marker carries another session's id.
    parent_id:
        That other session's id.
    child_started_at:
        Timestamp of the first mismatching marker.
    is_parent:
        True when a compaction marker carries this session's own id.
    successor_id:
        Successor id extracted from the last own-id marker's text.
    boundary_text:
        Text of the last own-id marker.
    boundary_at:
        Timestamp of the last own-id marker.
    """

    session_id: str
    is_child: bool = False
    parent_id: str | None = None
    child_started_at: datetime | None = None
    is_parent: bool = False
    successor_id: str | None = None
    boundary_text: str | None = None
    boundary_at: datetime | None = None

    @classmethod
    def negative(cls, session_id: str) -> DetectionResult:
        """Return a result that marks ``session_id`` as neither child nor parent."""
        return cls(session_id=session_id)


class ContinuationEdge(BaseModel):
    """A persisted continuation relationship, keyed by ``child_id``."""

    model_config = {"frozen": True}

    child_id: str
    parent_id: str
    order: int = 0
    is_active: bool = False
    is_orphaned: bool = False
    detected_at: datetime = Field(default_factory=_utcnow)
    child_started_at: datetime | None = None
    split_reason: str = DEFAULT_SPLIT_REASON
    split_at: datetime | None = None


class OrphanRecord(BaseModel):
    """An edge whose declared parent has no session record."""

    child_id: str
    parent_id: str
    order: int = 0
    file_path: str | None = None
    project_path: str | None = None


class FlatDescendant(BaseModel):
    """One descendant of a chain root, with its parent reference.

    ``depth`` is measured from the root (direct children are depth 1).
    """

    session: SessionRecord
    parent_id: str
    depth: int
    order: int = 0
    is_active: bool = False

    @property
    def session_id(self) -> str:
        return self.session.session_id


class ChainView(BaseModel):
    """Complete continuation chain containing a session."""

    root: SessionRecord
    children: list[SessionRecord] = Field(default_factory=list)
    flat_descendants: list[FlatDescendant] = Field(default_factory=list)
    depth: int = 0
    has_branches: bool = False

    @property
    def total_sessions(self) -> int:
        return 1 + len(self.flat_descendants)

    @property
    def session_ids(self) -> list[str]:
        """All member ids, root first, then descendants by depth and order."""
        return [self.root.session_id] + [d.session_id for d in self.flat_descendants]


class ChainMetadata(BaseModel):
    """Per-session chain facts, cheaper to obtain than a ``ChainView``."""

    session_id: str
    root_id: str
    depth_from_root: int = 0
    is_child: bool = False
    is_parent: bool = False
    child_count: int = 0
    has_multiple_children: bool = False
    order: int = 0
    is_active: bool = False


class ChainStats(BaseModel):
    """Statistics computed over the whole edge set."""

    total_edges: int = 0
    total_chains: int = 0
    max_depth: int = 0
    orphan_count: int = 0
    average_chain_length: float = 0.0
