"""Unit tests for artifact materialization and latest-envelope resolution."""

from __future__ import annotations

import json
from collections.abc import Callable
from datetime import UTC, datetime

import pytest

from manifest_dag.errors import StoreError, TopologyError
from manifest_dag.graph.parser import parse_script
from manifest_dag.graph.types import GraphDefinition
from manifest_dag.provenance.engine import ProvenanceEngine
from manifest_dag.provenance.fingerprint import compute_fingerprint
from manifest_dag.store.base import CreateResult
from manifest_dag.store.memory import MemoryArtifactStore


def test_materialize_writes_canonical_envelope(
    scenario_definition: GraphDefinition,
    store: MemoryArtifactStore,
    clock: Callable[[], datetime],
) -> None:
    engine = ProvenanceEngine(scenario_definition, store, "sessions/fedml/s1", clock=clock)

    envelope = engine.materialize("search", {"hits": 4})

    raw = store.read("sessions/fedml/s1/search/meta/search.json")
    assert raw is not None
    data = json.loads(raw)
    assert data["stage"] == "search"
    assert data["timestamp"] == "2026-01-01T12:00:00.000000+00:00"
    assert data["content"] == {"hits": 4}
    assert data["_parent_fingerprints"] == {}
    assert data["_fingerprint"] == envelope.fingerprint == compute_fingerprint({"hits": 4}, {})


def test_materialize_records_parent_fingerprints(
    scenario_definition: GraphDefinition,
    store: MemoryArtifactStore,
    clock: Callable[[], datetime],
) -> None:
    engine = ProvenanceEngine(scenario_definition, store, clock=clock)
    search = engine.materialize("search", {"hits": 4})

    gather = engine.materialize("gather", {"rows": 10})

    assert gather.parent_fingerprints == {"search": search.fingerprint}
    assert gather.fingerprint == compute_fingerprint({"rows": 10}, {"search": search.fingerprint})
    assert gather.parameters_used == {"limit": 10, "sources": ["a", "b"]}
    assert store.exists("search/gather/meta/gather.json")


def test_join_omits_unproduced_parents(
    join_definition: GraphDefinition,
    store: MemoryArtifactStore,
    clock: Callable[[], datetime],
) -> None:
    engine = ProvenanceEngine(join_definition, store, clock=clock)
    left = engine.materialize("left", {"side": "L"})

    merge = engine.materialize("merge", {"joined": False})

    assert merge.parent_fingerprints == {"left": left.fingerprint}

    right = engine.materialize("right", {"side": "R"})
    assert engine.parent_fingerprints("merge") == {
        "left": left.fingerprint,
        "right": right.fingerprint,
    }


def test_explicit_parameters_are_recorded(
    scenario_definition: GraphDefinition, store: MemoryArtifactStore
) -> None:
    engine = ProvenanceEngine(scenario_definition, store)

    envelope = engine.materialize("search", {"hits": 0}, parameters={"query": "brain mri"})

    assert envelope.parameters_used == {"query": "brain mri"}


def test_unknown_node_is_a_topology_error(
    scenario_definition: GraphDefinition, store: MemoryArtifactStore
) -> None:
    engine = ProvenanceEngine(scenario_definition, store)

    with pytest.raises(TopologyError):
        engine.materialize("teleport", {})
    with pytest.raises(TopologyError):
        engine.fingerprint_of("teleport")


def test_unserializable_content_is_rejected(
    scenario_definition: GraphDefinition, store: MemoryArtifactStore
) -> None:
    engine = ProvenanceEngine(scenario_definition, store)

    with pytest.raises(ValueError):
        engine.materialize("search", {"when": object()})
    assert store.paths() == []


def test_rerun_creates_branch_and_latest_wins(
    scenario_definition: GraphDefinition,
    store: MemoryArtifactStore,
    clock: Callable[[], datetime],
) -> None:
    engine = ProvenanceEngine(scenario_definition, store, clock=clock)
    first = engine.materialize("search", {"hits": 1})

    second = engine.materialize("search", {"hits": 2})

    branches = [c for c in store.list_children("") if c.startswith("search_BRANCH_")]
    assert len(branches) == 1
    assert json.loads(store.read("search/meta/search.json") or b"{}")["content"] == {"hits": 1}
    assert engine.fingerprint_of("search") == second.fingerprint != first.fingerprint

    lookup = engine.latest_envelope("search")
    assert lookup.path == f"{branches[0]}/meta/search.json"
    assert lookup.candidates == 2


def test_latest_is_chosen_by_timestamp_not_listing_order(
    scenario_definition: GraphDefinition, store: MemoryArtifactStore
) -> None:
    times = iter(
        [
            datetime(2026, 1, 1, 12, 0, 5, tzinfo=UTC),
            datetime(2026, 1, 1, 12, 0, 9, tzinfo=UTC),
            datetime(2026, 1, 1, 12, 0, 7, tzinfo=UTC),
        ]
    )
    engine = ProvenanceEngine(scenario_definition, store, clock=lambda: next(times))

    engine.materialize("search", {"run": 1})
    newest = engine.materialize("search", {"run": 2})
    engine.materialize("search", {"run": 3})

    assert engine.fingerprint_of("search") == newest.fingerprint


def test_identical_timestamps_break_ties_deterministically(
    scenario_definition: GraphDefinition, store: MemoryArtifactStore
) -> None:
    fixed = datetime(2026, 1, 1, 12, 0, 0, tzinfo=UTC)
    engine = ProvenanceEngine(scenario_definition, store, clock=lambda: fixed)

    engine.materialize("search", {"run": 1})
    engine.materialize("search", {"run": 2})
    last = engine.materialize("search", {"run": 3})

    assert engine.fingerprint_of("search") == last.fingerprint
    assert engine.fingerprint_of("search") == engine.fingerprint_of("search")


def test_descendants_of_rerun_stage_stay_under_canonical_path(
    scenario_definition: GraphDefinition,
    store: MemoryArtifactStore,
    clock: Callable[[], datetime],
) -> None:
    engine = ProvenanceEngine(scenario_definition, store, clock=clock)
    engine.materialize("search", {"hits": 1})
    rerun = engine.materialize("search", {"hits": 2})

    gather = engine.materialize("gather", {"rows": 1})

    assert store.exists("search/gather/meta/gather.json")
    assert gather.parent_fingerprints == {"search": rerun.fingerprint}


def test_skip_sentinel_for_optional_stage(
    scenario_definition: GraphDefinition, store: MemoryArtifactStore
) -> None:
    engine = ProvenanceEngine(scenario_definition, store)

    sentinel = engine.materialize_skip("search", "catalog known")

    assert sentinel.is_skip_sentinel
    assert sentinel.content == {"skipped": True, "reason": "catalog known"}
    assert sentinel.parameters_used == {"skip": "catalog known"}
    assert engine.fingerprint_of("search") == sentinel.fingerprint


def test_required_stage_cannot_be_skipped(
    scenario_definition: GraphDefinition, store: MemoryArtifactStore
) -> None:
    engine = ProvenanceEngine(scenario_definition, store)

    with pytest.raises(TopologyError):
        engine.materialize_skip("gather")


def test_script_marked_stage_can_be_skipped(
    scenario_definition: GraphDefinition, store: MemoryArtifactStore
) -> None:
    script = parse_script(
        "manifest: fed\nstages:\n  - id: gather\n    skip: true\n    reason: offline\n",
        scenario_definition,
    )
    engine = ProvenanceEngine(script, store)

    sentinel = engine.materialize_skip("gather")

    assert sentinel.content["reason"] == "offline"


class _ReadOnlyStore(MemoryArtifactStore):
    def create_atomically(self, path: str, data: bytes) -> CreateResult:
        raise PermissionError(13, "read-only", path)


class _AlwaysExistsStore(MemoryArtifactStore):
    def create_atomically(self, path: str, data: bytes) -> CreateResult:
        return CreateResult.ALREADY_EXISTS


def test_write_failures_propagate_as_store_errors(scenario_definition: GraphDefinition) -> None:
    engine = ProvenanceEngine(scenario_definition, _ReadOnlyStore())

    with pytest.raises(StoreError):
        engine.materialize("search", {"hits": 1})


def test_exhausted_branch_attempts_raise(scenario_definition: GraphDefinition) -> None:
    engine = ProvenanceEngine(scenario_definition, _AlwaysExistsStore())

    with pytest.raises(StoreError):
        engine.materialize("search", {"hits": 1})


def test_corrupt_envelope_is_reported_not_returned(
    scenario_definition: GraphDefinition, store: MemoryArtifactStore
) -> None:
    store.create_atomically("search/meta/search.json", b"{oops")
    engine = ProvenanceEngine(scenario_definition, store)

    lookup = engine.latest_envelope("search")

    assert not lookup.found
    assert lookup.fingerprint is None
    assert [w.node_id for w in lookup.warnings] == ["search"]
    assert lookup.warnings[0].path == "search/meta/search.json"


def test_tampered_envelope_is_reported(
    scenario_definition: GraphDefinition, store: MemoryArtifactStore
) -> None:
    engine = ProvenanceEngine(scenario_definition, store)
    engine.materialize("search", {"hits": 1})
    data = json.loads(store.read("search/meta/search.json") or b"{}")
    data["content"] = {"hits": 999}
    tampered = MemoryArtifactStore({"search/meta/search.json": json.dumps(data).encode()})

    lookup = ProvenanceEngine(scenario_definition, tampered).latest_envelope("search")

    assert not lookup.found
    assert "fingerprint does not match" in lookup.warnings[0].message
