#!/usr/bin/env python3
"""Example: Quickstart — continuation-chains

Minimal working example: write three transcripts to a temporary
projects directory, resolve their continuations in memory, then query
the chain and highlight it relative to one session.

Usage:
    python examples/01_quickstart.py

Requirements:
    pip install continuation-chains
"""
from __future__ import annotations

import json
import tempfile
from pathlib import Path

import continuation_chains
from continuation_chains import (
    ContinuationService,
    EngineConfig,
    InMemoryEdgeStore,
    InMemorySessionCatalog,
)


def _write(project_dir: Path, session_id: str, marker_session: str, timestamp: str) -> None:
    event = {
        "type": "system",
        "subtype": "compact_boundary",
        "sessionId": marker_session,
        "timestamp": timestamp,
        "content": "Conversation compacted",
    }
    (project_dir / f"{session_id}.jsonl").write_text(json.dumps(event) + "\n", encoding="utf-8")


def main() -> None:
    print(f"continuation-chains version: {continuation_chains.__version__}")

    with tempfile.TemporaryDirectory() as tmp:
        projects = Path(tmp)
        project_dir = projects / "demo"
        project_dir.mkdir()

        # Step 1: a root that was compacted twice, and two sessions resuming it
        _write(project_dir, "root", "root", "2024-01-01T09:00:00Z")
        _write(project_dir, "first-try", "root", "2024-01-01T10:00:00Z")
        _write(project_dir, "second-try", "root", "2024-01-01T11:00:00Z")

        # Step 2: discover transcripts and resolve continuations
        config = EngineConfig(projects_dir=projects)
        service = ContinuationService(InMemoryEdgeStore(), InMemorySessionCatalog(), config=config)
        service.discover().unwrap()
        summary = service.resolve().unwrap()
        print(f"Resolved: {summary}")

        # Step 3: query the chain
        chain = service.get_chain("first-try").unwrap()
        print(f"Root: {chain.root.session_id}, members: {chain.session_ids}")
        print(f"Branches: {chain.has_branches}")

        # Step 4: highlight relative to the older branch
        service.focus("first-try").unwrap()
        for session_id in chain.session_ids:
            info = service.highlight_info(session_id).unwrap()
            print(f"  {session_id:<12} {info.role.value:<10} distance={info.distance}")


if __name__ == "__main__":
    main()
