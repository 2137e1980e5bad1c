"""Graph model for manifest-driven workflows.

Pure data: stages (nodes), derived edges, headers, and the parsed definition
that both manifests and scripts compile into. No I/O happens here.

Stages declare their parents through ``previous`` (backward pointers). Edges
are derived from those pointers and point parent -> child, the direction in
which artifacts flow.
"""

from __future__ import annotations

import copy
from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any

StageParameters = Mapping[str, Any]

# Session tree names. Stage ids must not collide with them.
BRANCH_MARKER = "_BRANCH_"
DATA_DIR = "data"
META_DIR = "meta"


def freeze_parameters(parameters: Mapping[str, Any] | None) -> StageParameters:
    """Deep-copy a parameter map into a read-only view."""

    return MappingProxyType(copy.deepcopy(dict(parameters or {})))


class DefinitionSource(str, Enum):
    MANIFEST = "manifest"
    SCRIPT = "script"


@dataclass(frozen=True, slots=True)
class SkipWarning:
    """Warning shown when a user tries to move past an optional stage."""

    short: str = ""
    reason: str = ""
    max_warnings: int = 2


@dataclass(frozen=True, slots=True)
class SkipMarker:
    """Declares that a stage produces a skip sentinel instead of real output."""

    reason: str = "skipped by script"


@dataclass(frozen=True, slots=True)
class StageNode:
    """One unit of work in the DAG."""

    id: str
    name: str
    produces: tuple[str, ...]
    previous: tuple[str, ...] | None = None
    phase: str | None = None
    optional: bool = False
    structural: bool = False
    parameters: StageParameters = field(default_factory=lambda: MappingProxyType({}))
    instruction: str = ""
    commands: tuple[str, ...] = ()
    handler: str | None = None
    skip_warning: SkipWarning | None = None
    narrative: str | None = None
    blueprint: tuple[str, ...] = ()
    skip: SkipMarker | None = None

    @property
    def is_root(self) -> bool:
        return self.previous is None

    @property
    def parents(self) -> tuple[str, ...]:
        return self.previous or ()

    @property
    def primary_parent(self) -> str | None:
        """The first declared parent; join stages nest under it."""

        return self.previous[0] if self.previous else None

    @property
    def is_skipped(self) -> bool:
        return self.skip is not None

    @property
    def is_transparent(self) -> bool:
        """Whether this stage is hidden from the nesting path of its descendants.

        Structural stages and non-root optional (bypass) stages are hidden.
        Root-level optional stages stay visible: they are the only anchor.
        """

        return self.structural or (self.optional and bool(self.previous))

    def effective_parameters(self) -> dict[str, Any]:
        """A mutable deep copy of the parameters this stage runs with."""

        return copy.deepcopy(dict(self.parameters))


@dataclass(frozen=True, slots=True)
class Edge:
    """Dependency between two stages, parent (source) to child (target)."""

    source: str
    target: str


@dataclass(frozen=True, slots=True)
class ManifestHeader:
    name: str
    persona: str
    description: str = ""
    category: str = ""
    version: str = "1.0.0"
    locked: bool = False
    authors: str = ""


@dataclass(frozen=True, slots=True)
class ScriptHeader:
    name: str
    manifest: str
    description: str = ""
    version: str = "1.0.0"
    authors: str = ""


@dataclass(frozen=True, slots=True)
class ScriptStageOverride:
    """A script entry: references a manifest stage and adjusts it."""

    id: str
    skip: bool = False
    parameters: StageParameters = field(default_factory=lambda: MappingProxyType({}))
    reason: str | None = None


@dataclass(frozen=True, slots=True)
class GraphDefinition:
    """Parsed manifest or script.

    Immutable after construction; safe to share between callers.
    """

    source: DefinitionSource
    header: ManifestHeader | ScriptHeader
    nodes: Mapping[str, StageNode]
    ordered_ids: tuple[str, ...]
    edges: tuple[Edge, ...]
    root_ids: tuple[str, ...]
    terminal_ids: tuple[str, ...]

    def __len__(self) -> int:
        return len(self.ordered_ids)

    def __contains__(self, node_id: object) -> bool:
        return node_id in self.nodes

    def node(self, node_id: str) -> StageNode:
        return self.nodes[node_id]

    def get(self, node_id: str) -> StageNode | None:
        return self.nodes.get(node_id)

    def iter_nodes(self) -> Iterator[StageNode]:
        """Stages in manifest declaration order."""

        for node_id in self.ordered_ids:
            yield self.nodes[node_id]

    def parents_of(self, node_id: str) -> tuple[str, ...]:
        return self.nodes[node_id].parents

    def children_of(self, node_id: str) -> tuple[str, ...]:
        return tuple(edge.target for edge in self.edges if edge.source == node_id)

    def topological_order(self) -> list[str]:
        """Kahn's algorithm; ties are broken by declaration order.

        Stages caught in a cycle are omitted from the result.
        """

        position = {node_id: index for index, node_id in enumerate(self.ordered_ids)}
        in_degree = {node_id: 0 for node_id in self.ordered_ids}
        for edge in self.edges:
            if edge.target in in_degree and edge.source in in_degree:
                in_degree[edge.target] += 1

        ready = sorted((n for n, d in in_degree.items() if d == 0), key=position.__getitem__)
        order: list[str] = []
        while ready:
            current = ready.pop(0)
            order.append(current)
            released = []
            for child in self.children_of(current):
                if child not in in_degree:
                    continue
                in_degree[child] -= 1
                if in_degree[child] == 0:
                    released.append(child)
            if released:
                ready = sorted(ready + released, key=position.__getitem__)
        return order
