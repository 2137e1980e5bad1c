"""Merkle chain validation across materialized stages.

A stage is stale when a parent fingerprint it recorded at creation time no
longer matches that parent's current fingerprint. Chain validation also
cascades: descendants of a stale stage are stale until re-run.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass, field

from manifest_dag.graph.types import GraphDefinition


@dataclass(frozen=True, slots=True)
class FingerprintRecord:
    fingerprint: str
    parent_fingerprints: Mapping[str, str] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class StalenessResult:
    stage_id: str
    stale: bool
    stale_parents: tuple[str, ...] = ()
    current_fingerprint: str | None = None


@dataclass(frozen=True, slots=True)
class ChainValidation:
    valid: bool
    stale_stages: tuple[StalenessResult, ...] = ()
    missing_stages: tuple[str, ...] = ()

    @property
    def stale_ids(self) -> list[str]:
        return [result.stage_id for result in self.stale_stages]


FingerprintReader = Callable[[str], FingerprintRecord | None]


def check_staleness(
    stage_id: str,
    recorded: FingerprintRecord,
    current_parent_fingerprints: Mapping[str, str],
) -> StalenessResult:
    """Compare recorded parent fingerprints with the parents' current ones.

    Parents without a current fingerprint are not counted as changed.
    """

    stale_parents = tuple(
        parent_id
        for parent_id, recorded_fp in sorted(recorded.parent_fingerprints.items())
        if parent_id in current_parent_fingerprints
        and current_parent_fingerprints[parent_id] != recorded_fp
    )
    return StalenessResult(
        stage_id=stage_id,
        stale=bool(stale_parents),
        stale_parents=stale_parents,
        current_fingerprint=recorded.fingerprint,
    )


def validate_chain(definition: GraphDefinition, reader: FingerprintReader) -> ChainValidation:
    stale: list[StalenessResult] = []
    missing: list[str] = []
    current: dict[str, str] = {}
    stale_ids: set[str] = set()

    for stage_id in definition.topological_order():
        record = reader(stage_id)
        if record is None:
            missing.append(stage_id)
            continue
        current[stage_id] = record.fingerprint

        parent_ids = definition.parents_of(stage_id)
        result = check_staleness(
            stage_id,
            record,
            {pid: current[pid] for pid in parent_ids if pid in current},
        )
        inherited = tuple(pid for pid in parent_ids if pid in stale_ids)
        if inherited:
            merged = tuple(dict.fromkeys(result.stale_parents + inherited))
            result = StalenessResult(
                stage_id=stage_id,
                stale=True,
                stale_parents=merged,
                current_fingerprint=record.fingerprint,
            )

        if result.stale:
            stale.append(result)
            stale_ids.add(stage_id)

    return ChainValidation(
        valid=not stale and not missing,
        stale_stages=tuple(stale),
        missing_stages=tuple(missing),
    )
