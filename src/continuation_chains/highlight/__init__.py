"""Chain highlight subpackage.

Public surface
--------------
- compute_highlight  — precompute roles/positions/distances for a focus
- HighlightSnapshot  — immutable result with O(1) per-session queries
- HighlightTracker   — current-focus holder
- HighlightRole      — clicked / ancestor / descendant / sibling
- HighlightInfo      — per-session answer
"""
from __future__ import annotations

from continuation_chains.highlight.engine import (
    HighlightInfo,
    HighlightRole,
    HighlightSnapshot,
    HighlightTracker,
    compute_highlight,
)

__all__ = [
    "HighlightInfo",
    "HighlightRole",
    "HighlightSnapshot",
    "HighlightTracker",
    "compute_highlight",
]
