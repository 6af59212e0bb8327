"""Filesystem transcript discovery.

Transcripts live under a projects directory as
``<projects_dir>/<project>/<session-uuid>.jsonl``.  Discovery only
records where each transcript is; it does not parse transcript content.

Functions
---------
- discover_sessions  — yield one ``SessionRecord`` per transcript file
- transcript_locator — build a ``session_id -> path`` lookup over a catalog
"""
from __future__ import annotations

import logging
from collections.abc import Callable, Iterator
from pathlib import Path

from continuation_chains.detection.detector import session_id_from_path
from continuation_chains.models import SessionRecord
from continuation_chains.storage.base import SessionCatalog

logger = logging.getLogger(__name__)

_TRANSCRIPT_SUFFIX = ".jsonl"


def discover_sessions(projects_dir: str | Path) -> Iterator[SessionRecord]:
    """Yield a ``SessionRecord`` for every transcript under ``projects_dir``.

    Parameters
    ----------
    projects_dir:
        Root directory.  Each immediate subdirectory is a project.  A
        missing directory yields nothing.

    Yields
    ------
    SessionRecord
        With ``project_path`` set to the project directory name and
        ``file_path`` to the absolute transcript path.
    """
    root = Path(projects_dir).expanduser()
    if not root.is_dir():
        logger.warning("discover_sessions: %r is not a directory", str(root))
        return

    for project_dir in sorted(p for p in root.iterdir() if p.is_dir()):
        for transcript in sorted(project_dir.glob(f"*{_TRANSCRIPT_SUFFIX}")):
            if not transcript.is_file():
                continue
            yield SessionRecord(
                session_id=session_id_from_path(transcript),
                project_path=project_dir.name,
                file_path=str(transcript.resolve()),
            )


def transcript_locator(catalog: SessionCatalog) -> Callable[[str], str | None]:
    """Return a callable mapping a session id to its transcript path."""

    def locate(session_id: str) -> str | None:
        record = catalog.get(session_id)
        return record.file_path if record is not None else None

    return locate
