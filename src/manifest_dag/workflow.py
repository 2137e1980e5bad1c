"""One workflow bound to one session: the API collaborators talk to.

Wraps a definition, its session paths, the provenance engine and the
readiness queries. Also owns the command index (which stage a typed command
belongs to) and the in-memory skip-warning counters used to gate transitions.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass

from manifest_dag.graph.registry import ManifestRegistry
from manifest_dag.graph.types import GraphDefinition, StageNode
from manifest_dag.paths import StagePath, resolve_paths
from manifest_dag.provenance.engine import ProvenanceEngine
from manifest_dag.readiness import WorkflowPosition, resolve_position
from manifest_dag.store.base import ArtifactStore

logger = logging.getLogger(__name__)

_ARGUMENT_START = re.compile(r"[<\[]")


def _canonical_command(command: str) -> str:
    """'gather <ids> [--all]' -> 'gather'; 'show container' stays as is."""

    return " ".join(_ARGUMENT_START.split(command, 1)[0].lower().split())


@dataclass(frozen=True, slots=True)
class TransitionResult:
    allowed: bool
    warning: str | None = None
    reason: str | None = None
    suggestion: str | None = None
    skip_count: int = 0
    hard_block: bool = False
    skipped_stage_id: str | None = None

    def to_json(self) -> dict[str, object]:
        return {
            "allowed": self.allowed,
            "warning": self.warning,
            "reason": self.reason,
            "suggestion": self.suggestion,
            "skip_count": self.skip_count,
            "hard_block": self.hard_block,
            "skipped_stage_id": self.skipped_stage_id,
        }


_ALLOWED = TransitionResult(allowed=True)


def build_command_index(definition: GraphDefinition) -> dict[str, StageNode]:
    """Map canonical command strings to the stage that handles them.

    Multi-word commands are indexed first and always win. Single-word commands
    are indexed only when they equal their stage id. Remaining commands fall
    back to their first word, unless that word already starts another stage's
    multi-word command.
    """

    index: dict[str, StageNode] = {}
    nodes = list(definition.iter_nodes())

    for node in nodes:
        for command in node.commands:
            canonical = _canonical_command(command)
            if len(canonical.split()) > 1 and canonical not in index:
                index[canonical] = node

    for node in nodes:
        for command in node.commands:
            canonical = _canonical_command(command)
            if canonical == node.id:
                index[canonical] = node

    for node in nodes:
        for command in node.commands:
            words = command.lower().split()
            if not words or words[0] in index:
                continue
            base = words[0]
            shadowed = any(
                len(key.split()) > 1 and key.split()[0] == base and owner.id != node.id
                for key, owner in index.items()
            )
            if not shadowed:
                index[base] = node

    return index


class Workflow:
    """A definition plus a session root in an artifact store."""

    def __init__(
        self,
        workflow_id: str,
        definition: GraphDefinition,
        store: ArtifactStore,
        session_root: str = "",
        *,
        engine: ProvenanceEngine | None = None,
    ) -> None:
        self.workflow_id = workflow_id
        self._definition = definition
        self._store = store
        self._session_root = session_root
        self._paths = resolve_paths(definition)
        self._engine = engine or ProvenanceEngine(definition, store, session_root, paths=self._paths)
        self._command_index = build_command_index(definition)
        self._skip_counts: dict[str, int] = {}

    @classmethod
    def from_registry(
        cls,
        registry: ManifestRegistry,
        workflow_id: str,
        store: ArtifactStore,
        session_root: str = "",
    ) -> Workflow:
        """Load a manifest by id and bind it to a session.

        Raises:
            WorkflowNotFoundError: If the registry has no such manifest.
            ParseError: If the manifest is invalid.
        """

        return cls(workflow_id, registry.load(workflow_id), store, session_root)

    @property
    def definition(self) -> GraphDefinition:
        return self._definition

    @property
    def paths(self) -> dict[str, StagePath]:
        return dict(self._paths)

    @property
    def engine(self) -> ProvenanceEngine:
        return self._engine

    @property
    def command_index(self) -> dict[str, StageNode]:
        return dict(self._command_index)

    def position(self) -> WorkflowPosition:
        return resolve_position(self._definition, self._store, self._session_root, self._paths)

    def stage_for_command(self, command: str) -> StageNode | None:
        """The stage a command belongs to: full match first, then its first word."""

        trimmed = " ".join(command.lower().split())
        if not trimmed:
            return None
        match = self._command_index.get(trimmed)
        if match is not None:
            return match
        return self._command_index.get(trimmed.split()[0])

    def check_transition(self, command: str) -> TransitionResult:
        """Whether running ``command`` now respects the workflow order.

        Commands that no stage owns are always allowed. A pending required
        parent without a skip warning is a hard block. A parent with a skip
        warning blocks softly until the user has been warned ``max_warnings``
        times; the detailed reason is shown from the second warning on.
        """

        target = self.stage_for_command(command)
        if target is None:
            return _ALLOWED

        entry = self.position().for_node(target.id)
        if entry is None or entry.complete or not entry.pending_parents:
            return _ALLOWED

        for parent_id in entry.pending_parents:
            parent = self._definition.get(parent_id)
            if parent is None:
                continue

            if not parent.optional and parent.skip_warning is None:
                logger.info(
                    "Transition blocked",
                    extra={"command": command, "stage": target.id, "missing": parent.id},
                )
                return TransitionResult(
                    allowed=False,
                    warning=f"PREREQUISITE NOT MET: {parent.name.upper()}",
                    reason=f"This action requires completion of the '{parent.name}' stage.",
                    suggestion=(
                        f"Run '{parent.commands[0]}' to proceed."
                        if parent.commands
                        else "Complete the previous stage first."
                    ),
                    hard_block=True,
                    skipped_stage_id=parent.id,
                )

            if parent.skip_warning is not None:
                skip_count = self._skip_counts.get(parent.id, 0)
                if skip_count >= parent.skip_warning.max_warnings:
                    continue
                return TransitionResult(
                    allowed=False,
                    warning=parent.skip_warning.short,
                    reason=parent.skip_warning.reason if skip_count >= 1 else None,
                    suggestion=(
                        f"Run '{parent.commands[0]}' to complete this step."
                        if parent.commands
                        else None
                    ),
                    skip_count=skip_count,
                    skipped_stage_id=parent.id,
                )

        return _ALLOWED

    def record_skip(self, stage_id: str) -> int:
        """Count one more time the user pressed on past ``stage_id``'s warning."""

        self._skip_counts[stage_id] = self._skip_counts.get(stage_id, 0) + 1
        return self._skip_counts[stage_id]

    def clear_skip(self, stage_id: str) -> None:
        self._skip_counts.pop(stage_id, None)

    def apply_declared_skips(self) -> list[str]:
        """Write sentinels for every ready stage a script marked as skipped.

        Repeats until no further skipped stage becomes ready, so chains of
        skipped stages resolve in one call. Returns the ids written, in order.
        """

        applied: list[str] = []
        while True:
            pending = [
                node_id for node_id in self.position().pending_skips if node_id not in applied
            ]
            if not pending:
                break
            for node_id in pending:
                self._engine.materialize_skip(node_id)
                self.clear_skip(node_id)
                applied.append(node_id)

        if applied:
            logger.info(
                "Declared skips applied",
                extra={"workflow": self.workflow_id, "stages": applied},
            )
        return applied

    def progress_summary(self) -> str:
        """Human-readable progress: ● complete, ○ pending, * stale."""

        position = self.position()
        completed = set(position.completed_stages)
        stale = set(position.stale_stages)

        lines = [
            f"Workflow: {self._definition.header.name}",
            f"Progress: {position.progress.completed}/{position.progress.total} stages",
            "",
        ]
        for node in self._definition.iter_nodes():
            if node.id in stale:
                marker, status = "*", " [STALE]"
            elif node.id in completed:
                marker, status = "●", ""
            else:
                marker, status = "○", ""
            line = f"  {marker} {node.name}{status}"
            if node.id == position.current_stage:
                line += " ← NEXT"
            lines.append(line)

        return "\n".join(lines) + "\n"
