"""Continuation detection subpackage.

Public surface
--------------
- detect_continuation   — single pass over one transcript's event stream
- ContinuationDetector  — file, session and batch detection
- session_id_from_path  — derive a session id from a transcript file name
- extract_successor_id  — find an embedded session id in marker text
"""
from __future__ import annotations

from continuation_chains.detection.detector import (
    ContinuationDetector,
    ProgressCallback,
    detect_continuation,
    extract_successor_id,
    session_id_from_path,
)

__all__ = [
    "ContinuationDetector",
    "ProgressCallback",
    "detect_continuation",
    "extract_successor_id",
    "session_id_from_path",
]
