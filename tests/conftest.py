"""Shared fixtures: in-memory stores and transcript file factories."""
from __future__ import annotations

import json
from collections.abc import Callable
from pathlib import Path
from typing import Any

import pytest

from continuation_chains.storage.memory import InMemoryEdgeStore, InMemorySessionCatalog


@pytest.fixture()
def catalog() -> InMemorySessionCatalog:
    return InMemorySessionCatalog()


@pytest.fixture()
def edges() -> InMemoryEdgeStore:
    return InMemoryEdgeStore()


@pytest.fixture()
def marker() -> Callable[..., dict[str, Any]]:
    """Return a factory for compaction boundary events."""

    def make(
        session_id: str,
        timestamp: str | None = None,
        content: str = "Conversation compacted",
        shape: str = "system",
    ) -> dict[str, Any]:
        if shape == "system":
            event: dict[str, Any] = {
                "type": "system",
                "subtype": "compact_boundary",
                "sessionId": session_id,
                "content": content,
            }
        else:
            event = {
                "type": "compact_boundary",
                "sessionId": session_id,
                "message": {"content": content},
            }
        if timestamp is not None:
            event["timestamp"] = timestamp
        return event

    return make


@pytest.fixture()
def write_transcript(tmp_path: Path) -> Callable[..., Path]:
    """Return a factory writing ``<project>/<session_id>.jsonl`` under tmp_path."""

    def write(
        session_id: str,
        events: list[dict[str, Any] | str],
        project: str = "demo-project",
    ) -> Path:
        project_dir = tmp_path / "projects" / project
        project_dir.mkdir(parents=True, exist_ok=True)
        path = project_dir / f"{session_id}.jsonl"
        lines = [e if isinstance(e, str) else json.dumps(e) for e in events]
        path.write_text("\n".join(lines) + "\n", encoding="utf-8")
        return path

    return write
