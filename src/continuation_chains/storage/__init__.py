"""Storage backends for continuation-chains.

Public surface
--------------
- SessionCatalog          — abstract session existence/location lookup
- EdgeStore               — abstract keyed edge store with mutation listeners
- InMemorySessionCatalog  — dict-backed catalog
- InMemoryEdgeStore       — dict-backed edge store
- SQLiteStore             — catalog and edge store in one SQLite file
- discover_sessions       — transcript discovery under a projects directory
- transcript_locator      — session id to transcript path lookup
"""
from __future__ import annotations

from continuation_chains.storage.base import EdgeStore, MutationListener, SessionCatalog
from continuation_chains.storage.filesystem import discover_sessions, transcript_locator
from continuation_chains.storage.memory import InMemoryEdgeStore, InMemorySessionCatalog
from continuation_chains.storage.sqlite import SQLiteStore

__all__ = [
    "EdgeStore",
    "InMemoryEdgeStore",
    "InMemorySessionCatalog",
    "MutationListener",
    "SQLiteStore",
    "SessionCatalog",
    "discover_sessions",
    "transcript_locator",
]
