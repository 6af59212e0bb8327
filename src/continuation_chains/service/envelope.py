"""Uniform result wrapper for consumer-facing operations.

Callers check ``success`` before trusting ``payload``.  A successful
envelope may still carry ``None`` as its payload when the answer is
"absent"; that is distinct from a zero value.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Generic, TypeVar

from continuation_chains.errors import ContinuationError

T = TypeVar("T")


@dataclass(frozen=True)
class Envelope(Generic[T]):
    """Result of a service call.

    Parameters
    ----------
    success:
        True when the operation completed.
    payload:
        The operation's result when ``success`` is True.
    error:
        Human-readable failure message when ``success`` is False.
    """

    success: bool
    payload: T | None = None
    error: str | None = None

    @classmethod
    def ok(cls, payload: T | None = None) -> Envelope[T]:
        return cls(success=True, payload=payload)

    @classmethod
    def fail(cls, message: str) -> Envelope[T]:
        return cls(success=False, error=message)

    def unwrap(self) -> T | None:
        """Return the payload, raising ``ContinuationError`` for a failed envelope."""
        if not self.success:
            raise ContinuationError(self.error or "Operation failed.")
        return self.payload

    def __bool__(self) -> bool:
        return self.success
