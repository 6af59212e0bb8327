"""continuation-chains — Detect and navigate session continuation chains.

Public API
----------
The stable public surface is everything exported from this module.
Anything inside submodules not re-exported here is considered private
and may change without notice.

Example
-------
>>> import continuation_chains
>>> continuation_chains.__version__
'0.1.0'
"""
from __future__ import annotations

# Domain models
from continuation_chains.models import (
    ChainMetadata,
    ChainStats,
    ChainView,
    ContinuationEdge,
    DetectionResult,
    FlatDescendant,
    OrphanRecord,
    SessionRecord,
)

# Configuration and errors
from continuation_chains.config import EngineConfig, load_config
from continuation_chains.errors import (
    ChainDepthExceededError,
    ChainValidationError,
    CircularReferenceError,
    ConfigError,
    ContinuationError,
    FocusNotInTreeError,
    SessionNotFoundError,
    StorageError,
)

# Storage
from continuation_chains.storage.base import EdgeStore, SessionCatalog
from continuation_chains.storage.memory import InMemoryEdgeStore, InMemorySessionCatalog
from continuation_chains.storage.sqlite import SQLiteStore
from continuation_chains.storage.filesystem import discover_sessions

# Detection and resolution
from continuation_chains.detection.detector import ContinuationDetector, detect_continuation
from continuation_chains.resolution.validation import (
    ChainValidation,
    find_root_parent,
    validate_chain,
)
from continuation_chains.resolution.resolver import (
    ContinuationResolver,
    HealReport,
    ResolutionSummary,
)

# Cache, trees and highlight
from continuation_chains.cache.chain_cache import CacheEntry, ChainCache
from continuation_chains.tree.builder import ContinuationTree, TreeNode, build_tree
from continuation_chains.highlight.engine import (
    HighlightRole,
    HighlightSnapshot,
    HighlightTracker,
    compute_highlight,
)

# Service layer
from continuation_chains.service.continuation_service import ContinuationService
from continuation_chains.service.envelope import Envelope

__version__: str = "0.1.0"

__all__ = [
    "__version__",
    # Domain models
    "ChainMetadata",
    "ChainStats",
    "ChainView",
    "ContinuationEdge",
    "DetectionResult",
    "FlatDescendant",
    "OrphanRecord",
    "SessionRecord",
    # Configuration and errors
    "EngineConfig",
    "load_config",
    "ChainDepthExceededError",
    "ChainValidationError",
    "CircularReferenceError",
    "ConfigError",
    "ContinuationError",
    "FocusNotInTreeError",
    "SessionNotFoundError",
    "StorageError",
    # Storage
    "EdgeStore",
    "SessionCatalog",
    "InMemoryEdgeStore",
    "InMemorySessionCatalog",
    "SQLiteStore",
    "discover_sessions",
    # Detection and resolution
    "ContinuationDetector",
    "detect_continuation",
    "ChainValidation",
    "find_root_parent",
    "validate_chain",
    "ContinuationResolver",
    "HealReport",
    "ResolutionSummary",
    # Cache, trees and highlight
    "CacheEntry",
    "ChainCache",
    "ContinuationTree",
    "TreeNode",
    "build_tree",
    "HighlightRole",
    "HighlightSnapshot",
    "HighlightTracker",
    "compute_highlight",
    # Service layer
    "ContinuationService",
    "Envelope",
]
