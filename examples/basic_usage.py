#!/usr/bin/env python3
"""Programmatic session example.

This demonstrates using the engine components directly:

* load settings from `.env`
* load a manifest (and optional script) from the manifests directory
* create a session on local disk
* materialize stages in order, writing sentinels for skipped ones
* print where the session stands

Stage content here is placeholder data; a real caller would run the stage's
handler and pass its output.
"""

from __future__ import annotations

import argparse
from pathlib import Path
from typing import Sequence

from manifest_dag.config import EngineSettings
from manifest_dag.graph.parser import load_script
from manifest_dag.graph.registry import ManifestRegistry
from manifest_dag.graph.types import ManifestHeader
from manifest_dag.logging import configure_logging
from manifest_dag.store.filesystem import FilesystemArtifactStore
from manifest_dag.store.sessions import SessionManager
from manifest_dag.workflow import Workflow


def _parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run a workflow session (programmatic example).")
    parser.add_argument("--workflow", default="federated-analysis", help="Workflow id to run")
    parser.add_argument("--script", default=None, help="Optional script overlay file")
    parser.add_argument(
        "--stages",
        type=int,
        default=3,
        help="How many stages to materialize before stopping",
    )
    return parser.parse_args(argv)


def main(argv: Sequence[str] | None = None) -> int:
    args = _parse_args(argv)

    settings = EngineSettings()
    configure_logging(settings.log_level)

    registry = ManifestRegistry(settings.manifests_dir)
    definition = registry.load(args.workflow)
    header = definition.header
    assert isinstance(header, ManifestHeader)
    if args.script:
        definition = load_script(Path(args.script), definition)

    store = FilesystemArtifactStore(settings.sessions_root)
    session = SessionManager(store, base="").create_session(header.persona, header.version)
    workflow = Workflow(args.workflow, definition, store, session.root)

    for _ in range(args.stages):
        workflow.apply_declared_skips()
        stage_id = workflow.position().current_stage
        if stage_id is None:
            break
        node = definition.node(stage_id)
        envelope = workflow.engine.materialize(stage_id, {"stage": node.name, "example": True})
        print(f"Materialized {stage_id}: {envelope.fingerprint[:12]}")

    print(f"Session: {settings.sessions_root / session.root}")
    print(workflow.progress_summary(), end="")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
