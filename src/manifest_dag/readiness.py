"""Readiness, completeness and staleness of every stage in a session.

These are pure queries over a definition and an artifact store. Nothing is
cached: the store may change between calls from outside this process, so
every call re-reads it.

``resolve_position`` is the single read API collaborators should use to
answer "what's done, what's next, what's blocked".
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field

from manifest_dag.errors import IntegrityWarning
from manifest_dag.graph.types import GraphDefinition
from manifest_dag.paths import StagePath
from manifest_dag.provenance.chain import FingerprintRecord, check_staleness
from manifest_dag.provenance.engine import EnvelopeLookup, ProvenanceEngine
from manifest_dag.store.base import ArtifactStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class NodeReadiness:
    node_id: str
    ready: bool
    complete: bool
    stale: bool = False
    skipped: bool = False
    pending_parents: tuple[str, ...] = ()
    stale_parents: tuple[str, ...] = ()
    fingerprint: str | None = None
    integrity_warnings: tuple[IntegrityWarning, ...] = ()
    read_errors: tuple[IntegrityWarning, ...] = ()

    def to_json(self) -> dict[str, object]:
        out: dict[str, object] = {
            "node_id": self.node_id,
            "ready": self.ready,
            "complete": self.complete,
            "stale": self.stale,
            "skipped": self.skipped,
        }
        if self.pending_parents:
            out["pending_parents"] = list(self.pending_parents)
        if self.stale_parents:
            out["stale_parents"] = list(self.stale_parents)
        if self.fingerprint is not None:
            out["fingerprint"] = self.fingerprint
        if self.integrity_warnings:
            out["integrity_warnings"] = [w.to_json() for w in self.integrity_warnings]
        if self.read_errors:
            out["read_errors"] = [w.to_json() for w in self.read_errors]
        return out


@dataclass(frozen=True, slots=True)
class Progress:
    completed: int
    total: int
    phase: str | None = None

    @property
    def percent(self) -> int:
        return round(100 * self.completed / self.total) if self.total else 0

    def to_json(self) -> dict[str, object]:
        return {"completed": self.completed, "total": self.total, "phase": self.phase}


@dataclass(frozen=True, slots=True)
class WorkflowPosition:
    """Where a session stands: done, next, blocked, and anything suspicious."""

    completed_stages: list[str]
    current_stage: str | None
    next_instruction: str | None
    available_commands: list[str]
    progress: Progress
    is_complete: bool
    stale_stages: list[str] = field(default_factory=list)
    skipped_stages: list[str] = field(default_factory=list)
    pending_skips: list[str] = field(default_factory=list)
    readiness: list[NodeReadiness] = field(default_factory=list)
    integrity_warnings: list[IntegrityWarning] = field(default_factory=list)
    read_errors: list[IntegrityWarning] = field(default_factory=list)

    def for_node(self, node_id: str) -> NodeReadiness | None:
        for entry in self.readiness:
            if entry.node_id == node_id:
                return entry
        return None

    def to_json(self) -> dict[str, object]:
        return {
            "completed_stages": list(self.completed_stages),
            "current_stage": self.current_stage,
            "next_instruction": self.next_instruction,
            "available_commands": list(self.available_commands),
            "progress": self.progress.to_json(),
            "is_complete": self.is_complete,
            "stale_stages": list(self.stale_stages),
            "skipped_stages": list(self.skipped_stages),
            "pending_skips": list(self.pending_skips),
            "integrity_warnings": [w.to_json() for w in self.integrity_warnings],
            "read_errors": [w.to_json() for w in self.read_errors],
            "readiness": [entry.to_json() for entry in self.readiness],
        }


def _lookup_all(engine: ProvenanceEngine) -> dict[str, EnvelopeLookup]:
    return {node.id: engine.latest_envelope(node.id) for node in engine.definition.iter_nodes()}


def _node_readiness(
    definition: GraphDefinition,
    node_id: str,
    lookups: Mapping[str, EnvelopeLookup],
) -> NodeReadiness:
    node = definition.node(node_id)
    lookup = lookups[node_id]
    envelope = lookup.envelope
    complete = envelope is not None

    # A sentinel is an envelope too, so skipped parents satisfy readiness.
    pending_parents = tuple(
        parent_id
        for parent_id in node.parents
        if parent_id not in lookups or not lookups[parent_id].found
    )

    stale_parents: tuple[str, ...] = ()
    if envelope is not None:
        current = {
            parent_id: fp
            for parent_id in node.parents
            if parent_id in lookups and (fp := lookups[parent_id].fingerprint) is not None
        }
        record = FingerprintRecord(envelope.fingerprint, envelope.parent_fingerprints)
        stale_parents = check_staleness(node_id, record, current).stale_parents

    return NodeReadiness(
        node_id=node_id,
        ready=node.is_root or not pending_parents,
        complete=complete,
        stale=bool(stale_parents),
        skipped=envelope is not None and envelope.is_skip_sentinel,
        pending_parents=pending_parents,
        stale_parents=stale_parents,
        fingerprint=lookup.fingerprint,
        integrity_warnings=lookup.warnings,
        read_errors=lookup.read_errors,
    )


def _engine(
    definition: GraphDefinition,
    store: ArtifactStore,
    session_root: str,
    paths: Mapping[str, StagePath] | None,
) -> ProvenanceEngine:
    return ProvenanceEngine(definition, store, session_root, paths=paths)


def resolve_readiness(
    definition: GraphDefinition,
    store: ArtifactStore,
    session_root: str = "",
    paths: Mapping[str, StagePath] | None = None,
) -> list[NodeReadiness]:
    """Readiness of every stage, in declaration order.

    Corrupt and unreadable envelopes both degrade to "not complete". Corrupt
    ones are reported as ``integrity_warnings`` and unreadable ones as
    ``read_errors`` on the affected entry.

    Raises:
        StoreError: If the store cannot list a stage's parent directory.
    """

    lookups = _lookup_all(_engine(definition, store, session_root, paths))
    return [_node_readiness(definition, node_id, lookups) for node_id in definition.ordered_ids]


def resolve_position(
    definition: GraphDefinition,
    store: ArtifactStore,
    session_root: str = "",
    paths: Mapping[str, StagePath] | None = None,
) -> WorkflowPosition:
    """Summarize a session: completed stages, the next stage, and what is stale or skipped."""

    readiness = resolve_readiness(definition, store, session_root, paths)
    by_id = {entry.node_id: entry for entry in readiness}

    completed = [entry.node_id for entry in readiness if entry.complete]
    current = next((entry.node_id for entry in readiness if entry.ready and not entry.complete), None)
    current_node = definition.node(current) if current is not None else None

    pending_skips = [
        entry.node_id
        for entry in readiness
        if entry.ready and not entry.complete and definition.node(entry.node_id).is_skipped
    ]
    warnings = [warning for entry in readiness for warning in entry.integrity_warnings]
    read_errors = [error for entry in readiness for error in entry.read_errors]
    is_complete = all(by_id[terminal].complete for terminal in definition.terminal_ids)

    position = WorkflowPosition(
        completed_stages=completed,
        current_stage=current,
        next_instruction=current_node.instruction or None if current_node is not None else None,
        available_commands=list(current_node.commands) if current_node is not None else [],
        progress=Progress(
            completed=len(completed),
            total=len(definition),
            phase=current_node.phase if current_node is not None else None,
        ),
        is_complete=is_complete,
        stale_stages=[entry.node_id for entry in readiness if entry.stale],
        skipped_stages=[entry.node_id for entry in readiness if entry.skipped],
        pending_skips=pending_skips,
        readiness=readiness,
        integrity_warnings=warnings,
        read_errors=read_errors,
    )

    if warnings:
        logger.warning(
            "Session has corrupt artifact envelopes",
            extra={"session_root": session_root, "nodes": sorted({w.node_id for w in warnings})},
        )
    if read_errors:
        logger.warning(
            "Session has unreadable artifact envelopes",
            extra={"session_root": session_root, "nodes": sorted({e.node_id for e in read_errors})},
        )
    logger.debug(
        "Position resolved",
        extra={
            "session_root": session_root,
            "current_stage": current,
            "completed": len(completed),
            "total": len(definition),
        },
    )
    return position
