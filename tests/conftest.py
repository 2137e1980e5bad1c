"""Test configuration and fixtures."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest

from manifest_dag.graph.parser import parse_manifest
from manifest_dag.graph.types import GraphDefinition
from manifest_dag.store.memory import MemoryArtifactStore

SCENARIO_MANIFEST = """\
name: Federated Analysis
persona: fedml
description: |
  Search, gather and harmonize cohort data.
  Second line is not part of the summary.
version: 1.2
stages:
  - id: search
    name: Search Catalog
    phase: discovery
    previous: null
    optional: true
    produces: [search.json]
    instruction: Search the catalog for datasets.
    commands: [search <query>]
    skip_warning:
      short: Search skipped
      reason: Searching first narrows the datasets you gather.
      max_warnings: 2
  - id: gather
    name: Gather Data
    phase: discovery
    previous: search
    produces: [gather.json]
    parameters:
      limit: 10
      sources: [a, b]
    instruction: Gather the selected datasets.
    commands: [gather, add <id>]
  - id: harmonize
    name: Harmonize
    phase: preparation
    previous: gather
    produces: [harmonize.json]
    instruction: Harmonize gathered data.
    commands: [harmonize]
"""

GATED_MANIFEST = """\
name: Gated Pipeline
persona: analyst
stages:
  - id: ingest
    previous: null
    produces: [ingest.json]
    commands: [ingest]
  - id: gate
    previous: ingest
    structural: true
    produces: [gate.json]
  - id: train
    previous: gate
    produces: [train.json]
    commands: [train, show model]
  - id: tune
    previous: train
    optional: true
    produces: [tune.json]
    commands: [tune]
  - id: evaluate
    previous: tune
    produces: [evaluate.json]
    commands: [evaluate, show metrics]
"""

JOIN_MANIFEST = """\
name: Join
persona: analyst
stages:
  - id: left
    produces: [left.json]
  - id: right
    produces: [right.json]
  - id: merge
    previous: [left, right]
    produces: [merge.json]
  - id: publish
    previous: merge
    produces: [publish.json]
"""


class StepClock:
    """Deterministic clock: each call advances by ``step``."""

    def __init__(self, start: datetime | None = None, step: timedelta = timedelta(seconds=1)) -> None:
        self.now = start or datetime(2026, 1, 1, 12, 0, 0, tzinfo=UTC)
        self.step = step

    def __call__(self) -> datetime:
        current = self.now
        self.now = current + self.step
        return current


@pytest.fixture
def scenario_definition() -> GraphDefinition:
    """search (root, optional) -> gather -> harmonize."""
    return parse_manifest(SCENARIO_MANIFEST)


@pytest.fixture
def gated_definition() -> GraphDefinition:
    """ingest -> gate (structural) -> train -> tune (optional) -> evaluate."""
    return parse_manifest(GATED_MANIFEST)


@pytest.fixture
def join_definition() -> GraphDefinition:
    """left + right -> merge -> publish."""
    return parse_manifest(JOIN_MANIFEST)


@pytest.fixture
def store() -> MemoryArtifactStore:
    return MemoryArtifactStore()


@pytest.fixture
def clock() -> StepClock:
    return StepClock()


@pytest.fixture
def scenario_manifest_text() -> str:
    return SCENARIO_MANIFEST


@pytest.fixture
def gated_manifest_text() -> str:
    return GATED_MANIFEST
