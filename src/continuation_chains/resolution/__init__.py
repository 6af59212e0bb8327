"""Chain resolution subpackage.

Public surface
--------------
- validate_chain        — cycle and depth checks over parent links
- find_root_parent      — terminating walk to a chain root
- ChainValidation       — result of ``validate_chain``
- ContinuationResolver  — edge persistence and orphan healing
"""
from __future__ import annotations

from continuation_chains.resolution.resolver import (
    ContinuationResolver,
    HealReport,
    PersistReport,
    ResolutionSummary,
)
from continuation_chains.resolution.validation import (
    ChainValidation,
    ParentLookup,
    ValidationFailure,
    ancestry,
    find_root_parent,
    validate_chain,
)

__all__ = [
    "ChainValidation",
    "ContinuationResolver",
    "HealReport",
    "ParentLookup",
    "PersistReport",
    "ResolutionSummary",
    "ValidationFailure",
    "ancestry",
    "find_root_parent",
    "validate_chain",
]
