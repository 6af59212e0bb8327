"""Consumer-facing service layer.

Public surface
--------------
- ContinuationService  — envelope-returning facade
- Envelope             — ``{success, payload | error}`` result wrapper
"""
from __future__ import annotations

from continuation_chains.service.continuation_service import ContinuationService
from continuation_chains.service.envelope import Envelope

__all__ = ["ContinuationService", "Envelope"]
