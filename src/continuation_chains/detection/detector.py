"""Continuation detection from transcript event streams.

A session transcript is a JSONL stream.  When a session's context is
compacted, a compaction boundary marker is written that embeds the id of
the session where compaction occurred.  The marker is copied into the
transcript of the session that continues the work, so a marker whose
embedded id differs from the transcript's own id identifies the parent.

Two marker shapes are recognised::

    {"type": "system", "subtype": "compact_boundary", "sessionId": ..., "content": ...}
    {"type": "compact_boundary", "sessionId": ..., "message": {"content": ...}}

Classes
-------
- ContinuationDetector  — file, session and batch detection

Functions
---------
- detect_continuation      — single streaming pass over an event stream
- session_id_from_path     — derive a session id from a transcript file name
- extract_successor_id     — find an embedded session id in marker text
"""
from __future__ import annotations

import json
import logging
import re
import threading
from collections.abc import Callable, Iterable, Iterator
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone
from pathlib import Path

from continuation_chains.models import DetectionResult

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int, str], None]

_UUID_PATTERN = r"[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}"
_UUID_RE = re.compile(_UUID_PATTERN, re.IGNORECASE)
_TRANSCRIPT_NAME_RE = re.compile(rf"({_UUID_PATTERN})\.jsonl$", re.IGNORECASE)
_BOUNDARY = "compact_boundary"


# ---------------------------------------------------------------------------
# Field extraction helpers
# ---------------------------------------------------------------------------


def session_id_from_path(path: str | Path) -> str:
    """Return the session id encoded in a transcript file name.

    ``<uuid>.jsonl`` yields the uuid; any other name yields the file stem.
    """
    name = Path(path).name
    match = _TRANSCRIPT_NAME_RE.search(name)
    if match:
        return match.group(1)
    return Path(name).stem


def extract_successor_id(text: str | None) -> str | None:
    """Return the first session id embedded in ``text``, or None."""
    if not text:
        return None
    match = _UUID_RE.search(text)
    return match.group(0) if match else None


def _is_boundary_marker(event: dict[str, object]) -> bool:
    event_type = event.get("type")
    if event_type == _BOUNDARY:
        return True
    return event_type == "system" and event.get("subtype") == _BOUNDARY


def _embedded_session_id(event: dict[str, object]) -> str | None:
    for key in ("sessionId", "session_id"):
        value = event.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None


def _content_text(content: object) -> str | None:
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts = [
            str(block.get("text", ""))
            for block in content
            if isinstance(block, dict) and block.get("type", "text") == "text"
        ]
        joined = "\n".join(part for part in parts if part)
        return joined or None
    return None


def _marker_text(event: dict[str, object]) -> str | None:
    text = _content_text(event.get("content"))
    if text is not None:
        return text
    message = event.get("message")
    if isinstance(message, dict):
        return _content_text(message.get("content"))
    return _content_text(message)


def _parse_timestamp(value: object) -> datetime | None:
    """Parse an ISO-8601 string or epoch number (seconds or milliseconds)."""
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float)):
        seconds = value / 1000 if value > 10**11 else value
        try:
            return datetime.fromtimestamp(seconds, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    if isinstance(value, str) and value.strip():
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        return parsed
    return None


# ---------------------------------------------------------------------------
# Single-stream detection
# ---------------------------------------------------------------------------


def detect_continuation(session_id: str, lines: Iterable[str]) -> DetectionResult:
    """Determine the continuation role of ``session_id`` from its event stream.

    The stream is consumed once, line by line, so memory use is bounded by
    the longest line.

    Parameters
    ----------
    session_id:
        The session's own id, taken from its storage identifier.
    lines:
        Raw JSONL lines in transcript order.

    Returns
    -------
    DetectionResult
        ``is_child`` / ``parent_id`` come from the first marker whose
        embedded id differs from ``session_id``.  ``is_parent`` /
        ``successor_id`` come from markers that embed ``session_id``
        itself; the last such marker wins.
    """
    is_child = False
    parent_id: str | None = None
    child_started_at: datetime | None = None
    own_markers = 0
    successor_id: str | None = None
    boundary_text: str | None = None
    boundary_at: datetime | None = None

    for line in lines:
        if not line or not line.strip():
            continue
        try:
            event = json.loads(line)
        except (ValueError, RecursionError):
            continue
        if not isinstance(event, dict) or not _is_boundary_marker(event):
            continue

        embedded_id = _embedded_session_id(event)
        if embedded_id is None:
            continue

        if embedded_id != session_id:
            if not is_child:
                is_child = True
                parent_id = embedded_id
                child_started_at = _parse_timestamp(event.get("timestamp"))
            continue

        own_markers += 1
        boundary_text = _marker_text(event)
        boundary_at = _parse_timestamp(event.get("timestamp"))
        successor_id = extract_successor_id(boundary_text)

    return DetectionResult(
        session_id=session_id,
        is_child=is_child,
        parent_id=parent_id,
        child_started_at=child_started_at,
        is_parent=own_markers > 0,
        successor_id=successor_id,
        boundary_text=boundary_text,
        boundary_at=boundary_at,
    )


def _iter_file_lines(path: Path) -> Iterator[str]:
    with path.open("r", encoding="utf-8", errors="replace") as handle:
        yield from handle


# ---------------------------------------------------------------------------
# Detector
# ---------------------------------------------------------------------------


class ContinuationDetector:
    """Run continuation detection over transcript files.

    Parameters
    ----------
    max_workers:
        Maximum number of transcripts read concurrently by ``batch_detect``.
    transcript_locator:
        Optional callable mapping a session id to its transcript path; used
        by ``detect_session``.  Returns None when the session has no
        transcript.
    """

    def __init__(
        self,
        max_workers: int = 8,
        transcript_locator: Callable[[str], str | Path | None] | None = None,
    ) -> None:
        if max_workers < 1:
            raise ValueError(f"max_workers must be >= 1, got {max_workers!r}.")
        self.max_workers = max_workers
        self._locate = transcript_locator

    def detect_file(self, path: str | Path, session_id: str | None = None) -> DetectionResult:
        """Detect continuation metadata for one transcript file.

        Unreadable or missing files produce a negative result; this method
        does not raise for I/O problems.

        Parameters
        ----------
        path:
            Transcript file.
        session_id:
            The session's id.  Derived from the file name when omitted.
        """
        file_path = Path(path)
        own_id = session_id or session_id_from_path(file_path)
        try:
            return detect_continuation(own_id, _iter_file_lines(file_path))
        except OSError as exc:
            logger.warning("ContinuationDetector: cannot read %r: %s", str(file_path), exc)
            return DetectionResult.negative(own_id)

    def detect_session(self, session_id: str) -> DetectionResult:
        """Detect continuation metadata for ``session_id`` via the locator."""
        if self._locate is None:
            logger.debug("ContinuationDetector: no transcript locator for %r", session_id)
            return DetectionResult.negative(session_id)
        location = self._locate(session_id)
        if location is None:
            logger.debug("ContinuationDetector: no transcript for %r", session_id)
            return DetectionResult.negative(session_id)
        return self.detect_file(location, session_id=session_id)

    def batch_detect(
        self,
        paths: Iterable[str | Path],
        progress: ProgressCallback | None = None,
    ) -> dict[str, DetectionResult]:
        """Detect continuation metadata for many transcripts concurrently.

        Parameters
        ----------
        paths:
            Transcript files.  Session ids are derived from file names.
        progress:
            Optional ``progress(current, total, path)`` callback invoked once
            per finished item.  ``current`` increases monotonically.

        Returns
        -------
        dict[str, DetectionResult]
            Results keyed by session id.  A failure in one item produces a
            negative result for that item only.
        """
        items = [(session_id_from_path(p), Path(p)) for p in paths]
        return self._run_batch(items, progress)

    def batch_detect_sessions(
        self,
        locations: dict[str, str | Path],
        progress: ProgressCallback | None = None,
    ) -> dict[str, DetectionResult]:
        """Like ``batch_detect`` but with explicit ``session_id -> path`` pairs."""
        items = [(session_id, Path(path)) for session_id, path in locations.items()]
        return self._run_batch(items, progress)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _run_batch(
        self,
        items: list[tuple[str, Path]],
        progress: ProgressCallback | None,
    ) -> dict[str, DetectionResult]:
        total = len(items)
        results: dict[str, DetectionResult] = {}
        if total == 0:
            return results

        counter_lock = threading.Lock()
        completed = 0

        def work(item: tuple[str, Path]) -> DetectionResult:
            nonlocal completed
            session_id, path = item
            try:
                result = self.detect_file(path, session_id=session_id)
            except Exception:  # noqa: BLE001
                logger.exception("ContinuationDetector: detection failed for %r", str(path))
                result = DetectionResult.negative(session_id)
            with counter_lock:
                completed += 1
                if progress is not None:
                    try:
                        progress(completed, total, str(path))
                    except Exception:  # noqa: BLE001
                        logger.exception("ContinuationDetector: progress callback failed")
            return result

        workers = min(self.max_workers, total)
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="detect") as pool:
            for result in pool.map(work, items):
                results[result.session_id] = result

        children = sum(1 for r in results.values() if r.is_child)
        logger.info(
            "ContinuationDetector: scanned %d transcripts, %d children found", total, children
        )
        return results

    def __repr__(self) -> str:
        return f"ContinuationDetector(max_workers={self.max_workers})"
