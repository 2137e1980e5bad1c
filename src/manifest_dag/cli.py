"""Command line for inspecting manifests and sessions.

Read-only: validates documents, prints session layouts, and reports where a
session stands. Stage execution belongs to the caller.
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path

from pydantic import ValidationError

from manifest_dag import __version__
from manifest_dag.config import EngineSettings
from manifest_dag.errors import ParseError, TopologyError, WorkflowNotFoundError
from manifest_dag.graph.parser import load_manifest, load_script
from manifest_dag.graph.registry import MANIFEST_SUFFIX, ManifestRegistry
from manifest_dag.graph.types import GraphDefinition
from manifest_dag.logging import configure_logging
from manifest_dag.paths import resolve_paths
from manifest_dag.store.filesystem import FilesystemArtifactStore
from manifest_dag.workflow import Workflow

logger = logging.getLogger(__name__)


def _workflow_id(manifest: Path) -> str:
    name = manifest.name
    return name[: -len(MANIFEST_SUFFIX)] if name.endswith(MANIFEST_SUFFIX) else manifest.stem


def _load_definition(manifest: Path, script: Path | None) -> GraphDefinition:
    definition = load_manifest(manifest)
    if script is not None:
        definition = load_script(script, definition)
    return definition


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="manifest-dag",
        description="Inspect manifest-driven workflow DAGs and their session artifacts",
    )
    parser.add_argument("--version", action="version", version=f"manifest-dag {__version__}")

    subparsers = parser.add_subparsers(dest="command", required=True)

    validate = subparsers.add_parser("validate", help="Parse a manifest (and optional script)")
    validate.add_argument("manifest", type=Path, help="Path to a manifest YAML file")
    validate.add_argument("--script", type=Path, default=None, help="Script overlay to apply")

    paths = subparsers.add_parser("paths", help="Print the session path of every stage")
    paths.add_argument("manifest", type=Path, help="Path to a manifest YAML file")
    paths.add_argument("--script", type=Path, default=None, help="Script overlay to apply")

    status = subparsers.add_parser("status", help="Show where a session stands")
    status.add_argument("manifest", type=Path, help="Path to a manifest YAML file")
    status.add_argument(
        "--session",
        type=Path,
        required=True,
        help="Session directory holding the stage artifact tree",
    )
    status.add_argument("--script", type=Path, default=None, help="Script overlay to apply")
    status.add_argument(
        "--json",
        action="store_true",
        help="Print the full position as JSON instead of a summary",
    )

    workflows = subparsers.add_parser("workflows", help="List available workflow manifests")
    workflows.add_argument(
        "--dir",
        type=Path,
        default=None,
        help="Manifest directory (defaults to MANIFEST_DAG_MANIFESTS_DIR)",
    )

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        settings = EngineSettings()
    except ValidationError as e:
        # Logging isn't configured yet; keep it simple and actionable.
        print("Configuration error (check your .env):", file=sys.stderr)
        print(e, file=sys.stderr)
        return 2

    configure_logging(settings.log_level)

    try:
        if args.command == "validate":
            definition = _load_definition(args.manifest, args.script)
            print(
                f"OK {definition.header.name}: {len(definition)} stages, "
                f"{len(definition.edges)} edges, "
                f"roots={','.join(definition.root_ids)}, "
                f"terminals={','.join(definition.terminal_ids)}"
            )
            return 0

        if args.command == "paths":
            definition = _load_definition(args.manifest, args.script)
            for node_id, stage_path in resolve_paths(definition).items():
                print(f"{node_id}\t{stage_path.artifact_file}")
            return 0

        if args.command == "status":
            definition = _load_definition(args.manifest, args.script)
            store = FilesystemArtifactStore(args.session)
            workflow = Workflow(_workflow_id(args.manifest), definition, store)
            if args.json:
                print(json.dumps(workflow.position().to_json(), indent=2, ensure_ascii=False))
            else:
                print(workflow.progress_summary(), end="")
            return 0

        if args.command == "workflows":
            registry = ManifestRegistry(args.dir or settings.manifests_dir)
            summaries = registry.summaries()
            if not summaries:
                print(f"No manifests found in {registry.directory}")
                return 0
            for summary in summaries:
                print(
                    f"{summary.id}\t{summary.name}\t{summary.persona}\t"
                    f"{summary.stage_count} stages\t{summary.description}"
                )
            return 0

        logger.error("Unknown command", extra={"command": args.command})
        return 2
    except (ParseError, TopologyError, WorkflowNotFoundError) as e:
        print(str(e), file=sys.stderr)
        if isinstance(e, ParseError):
            for issue in e.issues:
                print(f"  {issue}", file=sys.stderr)
        return 2
    except FileNotFoundError as e:
        print(f"File not found: {e.filename}", file=sys.stderr)
        return 2
    except Exception:
        logger.exception("Command failed")
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
