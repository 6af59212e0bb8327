"""Exception hierarchy for continuation-chains.

Classes
-------
- ContinuationError         — base for every error raised by this package
- ChainValidationError      — a chain walk violated a structural rule
- CircularReferenceError    — a parent walk revisited a session
- ChainDepthExceededError   — a parent walk exceeded the configured depth
- SessionNotFoundError      — a chain was requested for an unknown session
- FocusNotInTreeError       — a highlight focus is not a member of the tree
- StorageError              — the backing store failed
- ConfigError               — configuration could not be loaded
"""
from __future__ import annotations


class ContinuationError(Exception):
    """Base class for all continuation-chains errors."""


class ChainValidationError(ContinuationError):
    """Raised when a continuation chain violates a structural rule."""


class CircularReferenceError(ChainValidationError):
    """Raised when walking parent links revisits ``session_id``."""

    def __init__(self, session_id: str) -> None:
        self.session_id = session_id
        super().__init__(f"Circular reference detected at session {session_id!r}.")


class ChainDepthExceededError(ChainValidationError):
    """Raised when a chain is deeper than ``max_depth``."""

    def __init__(self, max_depth: int) -> None:
        self.max_depth = max_depth
        super().__init__(f"Chain depth exceeded maximum ({max_depth}).")


class SessionNotFoundError(ContinuationError, KeyError):
    """Raised when a requested session has neither a record nor any edges."""

    def __init__(self, session_id: str) -> None:
        self.session_id = session_id
        super().__init__(f"Session {session_id!r} not found.")

    def __str__(self) -> str:
        return str(self.args[0])


class FocusNotInTreeError(ContinuationError, KeyError):
    """Raised when a highlight focus is not part of the tree."""

    def __init__(self, session_id: str) -> None:
        self.session_id = session_id
        super().__init__(f"Session {session_id!r} is not a member of this tree.")

    def __str__(self) -> str:
        return str(self.args[0])


class StorageError(ContinuationError):
    """Raised when the backing store cannot complete an operation."""


class ConfigError(ContinuationError, ValueError):
    """Raised for unreadable or invalid configuration."""
