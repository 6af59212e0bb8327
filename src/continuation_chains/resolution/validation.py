"""Parent-link walks over a continuation edge set.

Edge sets come from transcript content and may contain cycles, so every
walk here keeps a visited set and terminates on any input.

Classes
-------
- ValidationFailure  — kind of structural violation
- ChainValidation    — outcome of ``validate_chain``

Functions
---------
- validate_chain    — walk to the root, reporting cycles and depth violations
- find_root_parent  — walk to the root, stopping at the first revisited node
- ancestry          — the ids walked from a session up to its root
"""
from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from continuation_chains.config import DEFAULT_MAX_DEPTH
from continuation_chains.errors import (
    ChainDepthExceededError,
    ChainValidationError,
    CircularReferenceError,
)

logger = logging.getLogger(__name__)

ParentLookup = Callable[[str], Optional[str]]


class ValidationFailure(str, Enum):
    """Structural violations reported by ``validate_chain``."""

    CIRCULAR_REFERENCE = "circular_reference"
    DEPTH_EXCEEDED = "depth_exceeded"


@dataclass(frozen=True)
class ChainValidation:
    """Result of walking a chain from a session to its root.

    Parameters
    ----------
    is_valid:
        True when the walk reached a parentless session within the limit.
    depth:
        Number of sessions visited, including the start.
    max_depth:
        The limit the walk was checked against.
    failure:
        The violation kind when ``is_valid`` is False.
    failed_at:
        The session being visited when the violation was found.
    """

    is_valid: bool
    depth: int
    max_depth: int
    failure: ValidationFailure | None = None
    failed_at: str | None = None

    @property
    def error(self) -> str | None:
        """Human-readable description of the failure, or None."""
        if self.failure is ValidationFailure.CIRCULAR_REFERENCE:
            return f"Circular reference detected at session {self.failed_at}"
        if self.failure is ValidationFailure.DEPTH_EXCEEDED:
            return f"Chain depth exceeded maximum ({self.max_depth})"
        return None

    def raise_for_status(self) -> None:
        """Raise the matching ``ChainValidationError`` if the chain is invalid."""
        if self.failure is ValidationFailure.CIRCULAR_REFERENCE:
            raise CircularReferenceError(self.failed_at or "")
        if self.failure is ValidationFailure.DEPTH_EXCEEDED:
            raise ChainDepthExceededError(self.max_depth)
        if not self.is_valid:
            raise ChainValidationError(self.error or "Invalid chain.")


def validate_chain(
    start: str,
    parent_lookup: ParentLookup,
    max_depth: int = DEFAULT_MAX_DEPTH,
) -> ChainValidation:
    """Walk parent links from ``start`` and check the chain is well formed.

    Parameters
    ----------
    start:
        Session to start from.
    parent_lookup:
        Returns the parent id of a session, or None for a parentless one.
    max_depth:
        Maximum number of sessions the chain may contain.

    Returns
    -------
    ChainValidation
        Never raises for structural problems; call ``raise_for_status`` to
        turn a failure into an exception.
    """
    if max_depth < 1:
        raise ValueError(f"max_depth must be >= 1, got {max_depth!r}.")

    visited: set[str] = set()
    current: str | None = start
    depth = 0

    while current:
        depth += 1
        if current in visited:
            logger.warning("validate_chain: circular reference at %r (start=%r)", current, start)
            return ChainValidation(
                is_valid=False,
                depth=depth,
                max_depth=max_depth,
                failure=ValidationFailure.CIRCULAR_REFERENCE,
                failed_at=current,
            )
        if depth > max_depth:
            logger.warning("validate_chain: depth exceeded %d (start=%r)", max_depth, start)
            return ChainValidation(
                is_valid=False,
                depth=depth,
                max_depth=max_depth,
                failure=ValidationFailure.DEPTH_EXCEEDED,
                failed_at=current,
            )
        visited.add(current)
        current = parent_lookup(current)

    return ChainValidation(is_valid=True, depth=depth, max_depth=max_depth)


def ancestry(
    session_id: str,
    parent_lookup: ParentLookup,
    max_hops: int | None = None,
) -> list[str]:
    """Return ``session_id`` followed by each ancestor up to the root.

    On a cycle the walk stops before the first revisited session, so the
    returned list never contains duplicates.  With ``max_hops`` the walk
    follows at most that many parent links.
    """
    path: list[str] = []
    visited: set[str] = set()
    current: str | None = session_id
    while current and current not in visited:
        visited.add(current)
        path.append(current)
        if max_hops is not None and len(path) > max_hops:
            break
        current = parent_lookup(current)
    return path


def find_root_parent(session_id: str, parent_lookup: ParentLookup) -> str:
    """Return the parentless session reached by walking up from ``session_id``.

    On a cycle, the first revisited session is returned instead.
    """
    visited: set[str] = set()
    current = session_id
    while True:
        if current in visited:
            logger.warning(
                "find_root_parent: circular reference in chain for %r at %r",
                session_id,
                current,
            )
            return current
        visited.add(current)
        parent = parent_lookup(current)
        if not parent:
            return current
        current = parent
