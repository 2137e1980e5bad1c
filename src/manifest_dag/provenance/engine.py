"""Materialize stage artifacts as fingerprinted envelopes.

Every envelope records the fingerprints of the stage's parents at the time it
was created, forming a Merkle chain across the session tree. Envelopes are
never overwritten: re-running a stage whose canonical envelope already exists
writes a branch next to it, and the most recent envelope wins on lookup.

The engine does not lock. At most one writer per (session, stage) may run at a
time; the store's atomic create-or-fail keeps two racing writers from
clobbering each other.
"""

from __future__ import annotations

import itertools
import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

from manifest_dag.errors import EnvelopeCorrupt, IntegrityWarning, StoreError, TopologyError
from manifest_dag.graph.types import GraphDefinition, StageNode
from manifest_dag.paths import (
    BRANCH_MARKER,
    META_DIR,
    StagePath,
    branch_nesting,
    resolve_paths,
    stage_path_for,
)
from manifest_dag.provenance.chain import FingerprintRecord
from manifest_dag.provenance.envelope import ArtifactEnvelope, skip_sentinel
from manifest_dag.provenance.fingerprint import FingerprintHasher, Sha256Hasher, normalize_json
from manifest_dag.store.base import ArtifactStore, CreateResult, join_path

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]

# Process-wide, so two engines sharing a clock still produce distinct branches.
_branch_sequence = itertools.count(1)

_MAX_BRANCH_ATTEMPTS = 8


def _utc_now() -> datetime:
    return datetime.now(UTC)


def _branch_suffix(now: datetime) -> str:
    return f"{now.astimezone(UTC).strftime('%Y%m%dT%H%M%S%f')}-{next(_branch_sequence):06d}"


@dataclass(frozen=True, slots=True)
class EnvelopeLookup:
    """Result of resolving the latest envelope of one stage."""

    node_id: str
    envelope: ArtifactEnvelope | None = None
    path: str | None = None
    candidates: int = 0
    warnings: tuple[IntegrityWarning, ...] = ()
    read_errors: tuple[IntegrityWarning, ...] = ()

    @property
    def found(self) -> bool:
        return self.envelope is not None

    @property
    def fingerprint(self) -> str | None:
        return self.envelope.fingerprint if self.envelope is not None else None


class ProvenanceEngine:
    """Writes and reads fingerprinted artifact envelopes for one session."""

    def __init__(
        self,
        definition: GraphDefinition,
        store: ArtifactStore,
        session_root: str = "",
        *,
        paths: Mapping[str, StagePath] | None = None,
        hasher: FingerprintHasher | None = None,
        clock: Clock | None = None,
        verify: bool = True,
    ) -> None:
        self._definition = definition
        self._store = store
        self._session_root = session_root
        self._paths = dict(paths) if paths is not None else resolve_paths(definition)
        self._hasher = hasher or Sha256Hasher()
        self._clock = clock or _utc_now
        self._verify = verify

    @property
    def definition(self) -> GraphDefinition:
        return self._definition

    @property
    def paths(self) -> Mapping[str, StagePath]:
        return self._paths

    @property
    def session_root(self) -> str:
        return self._session_root

    def _node(self, node_id: str) -> StageNode:
        node = self._definition.get(node_id)
        if node is None:
            raise TopologyError(node_id)
        return node

    def _stage_path(self, node_id: str) -> StagePath:
        return self._paths[node_id]

    def _store_path(self, relative: str) -> str:
        return join_path(self._session_root, relative)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def _candidate_dirs(self, stage_path: StagePath) -> list[str]:
        """Canonical and branch directories of a stage, relative to the session root."""

        parent_dir = stage_path.parent_dir
        name = stage_path.stage_dir_name
        branch_prefix = f"{name}{BRANCH_MARKER}"
        children = self._store.list_children(self._store_path(parent_dir))
        return [
            join_path(parent_dir, child)
            for child in children
            if child == name or child.startswith(branch_prefix)
        ]

    def latest_envelope(self, node_id: str) -> EnvelopeLookup:
        """Resolve the most recently created envelope of a stage.

        Ordering is by envelope timestamp; equal timestamps prefer a branch over
        the canonical directory, then the greater branch suffix (which carries
        a sub-second stamp and a sequence number). Listing order never matters.

        Raises:
            TopologyError: If ``node_id`` is not part of the definition.
            StoreError: If the stage's parent directory cannot be listed.
        """

        self._node(node_id)
        stage_path = self._stage_path(node_id)

        warnings: list[IntegrityWarning] = []
        read_errors: list[IntegrityWarning] = []
        found: list[tuple[tuple[datetime, bool, str], str, ArtifactEnvelope]] = []

        candidate_dirs = self._candidate_dirs(stage_path)
        for directory in candidate_dirs:
            path = self._store_path(join_path(directory, META_DIR, stage_path.artifact_name))
            try:
                data = self._store.read(path)
            except OSError as e:
                logger.warning(
                    "Artifact read failed; reporting as unreadable",
                    extra={"node_id": node_id, "path": path, "error": str(e)},
                )
                read_errors.append(IntegrityWarning(node_id=node_id, path=path, message=str(e)))
                continue
            if data is None:
                continue

            try:
                envelope = ArtifactEnvelope.from_json_bytes(data, path=path)
                if envelope.stage != node_id:
                    raise EnvelopeCorrupt(path, f"envelope belongs to stage '{envelope.stage}'")
                if self._verify and not envelope.verify(self._hasher):
                    raise EnvelopeCorrupt(path, "fingerprint does not match content")
            except EnvelopeCorrupt as e:
                logger.warning(
                    "Corrupt artifact envelope",
                    extra={"node_id": node_id, "path": path, "reason": e.reason},
                )
                warnings.append(IntegrityWarning(node_id=node_id, path=path, message=e.reason))
                continue

            is_branch = directory != stage_path.nesting
            found.append(((envelope.created_at, is_branch, directory), path, envelope))

        if not found:
            return EnvelopeLookup(
                node_id=node_id,
                candidates=len(candidate_dirs),
                warnings=tuple(warnings),
                read_errors=tuple(read_errors),
            )

        _, path, envelope = max(found, key=lambda item: item[0])
        return EnvelopeLookup(
            node_id=node_id,
            envelope=envelope,
            path=path,
            candidates=len(candidate_dirs),
            warnings=tuple(warnings),
            read_errors=tuple(read_errors),
        )

    def fingerprint_of(self, node_id: str) -> str | None:
        """Fingerprint of the latest envelope of a stage, or None if never produced."""

        return self.latest_envelope(node_id).fingerprint

    def fingerprint_record(self, node_id: str) -> FingerprintRecord | None:
        envelope = self.latest_envelope(node_id).envelope
        if envelope is None:
            return None
        return FingerprintRecord(
            fingerprint=envelope.fingerprint,
            parent_fingerprints=dict(envelope.parent_fingerprints),
        )

    def parent_fingerprints(self, node_id: str) -> dict[str, str]:
        """Current fingerprints of every resolvable parent (all of ``previous``).

        Parents that have not been produced yet are omitted.
        """

        fingerprints: dict[str, str] = {}
        for parent_id in self._node(node_id).parents:
            if parent_id not in self._definition:
                continue
            fp = self.fingerprint_of(parent_id)
            if fp is not None:
                fingerprints[parent_id] = fp
        return fingerprints

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def _write(self, node_id: str, envelope: ArtifactEnvelope, now: datetime) -> str:
        stage_path = self._stage_path(node_id)
        data = envelope.to_json_bytes()

        target = self._store_path(stage_path.artifact_file)
        if self._create(target, data) is CreateResult.CREATED:
            return target

        for _ in range(_MAX_BRANCH_ATTEMPTS):
            branch = stage_path_for(
                branch_nesting(stage_path.nesting, _branch_suffix(now)),
                stage_path.artifact_name,
            )
            target = self._store_path(branch.artifact_file)
            if self._create(target, data) is CreateResult.CREATED:
                return target

        raise StoreError(target, "Could not allocate a branch path for the artifact")

    def _create(self, path: str, data: bytes) -> CreateResult:
        try:
            return self._store.create_atomically(path, data)
        except StoreError:
            raise
        except OSError as e:
            raise StoreError(path, f"Artifact write failed ({e})") from e

    def materialize(
        self,
        node_id: str,
        content: Mapping[str, Any],
        parameters: Mapping[str, Any] | None = None,
    ) -> ArtifactEnvelope:
        """Fingerprint ``content`` against the parents' current fingerprints and persist it.

        Args:
            node_id: Stage that produced the content.
            content: Domain-specific, JSON-serializable content block.
            parameters: Parameters the stage ran with; defaults to the stage's
                effective parameters.

        Raises:
            TopologyError: If ``node_id`` is not part of the definition.
            ValueError: If content or parameters are not JSON-serializable.
            StoreError: If the envelope could not be written.
        """

        node = self._node(node_id)
        normalized_content = normalize_json(dict(content))
        parameters_used = normalize_json(
            dict(parameters) if parameters is not None else node.effective_parameters()
        )
        parents = self.parent_fingerprints(node_id)
        fingerprint = self._hasher.compute(normalized_content, parents)

        now = self._clock()
        envelope = ArtifactEnvelope(
            stage=node_id,
            timestamp=now.astimezone(UTC).isoformat(timespec="microseconds"),
            parameters_used=parameters_used,
            content=normalized_content,
            fingerprint=fingerprint,
            parent_fingerprints=parents,
        )
        path = self._write(node_id, envelope, now)

        logger.info(
            "Artifact materialized",
            extra={
                "node_id": node_id,
                "path": path,
                "fingerprint": fingerprint[:12],
                "parents": sorted(parents),
            },
        )
        return envelope

    def materialize_skip(self, node_id: str, reason: str | None = None) -> ArtifactEnvelope:
        """Write a skip sentinel for an optional (or script-skipped) stage.

        The sentinel is fingerprinted like any other artifact, so the chain
        stays unbroken.

        Raises:
            TopologyError: If the stage is unknown or may not be skipped.
        """

        node = self._node(node_id)
        if not node.optional and node.skip is None:
            raise TopologyError(node_id, f"Stage '{node_id}' is required and cannot be skipped")

        resolved = reason or (node.skip.reason if node.skip is not None else "skipped by user")
        return self.materialize(node_id, skip_sentinel(resolved), parameters={"skip": resolved})
