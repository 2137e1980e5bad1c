"""Structural validation for graph definitions.

The parser runs these checks while building a definition. ``validate_definition``
re-runs them on an already built (or hand-assembled) definition and reports
instead of raising.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field

from manifest_dag.graph.types import Edge, GraphDefinition, StageNode


@dataclass(frozen=True, slots=True)
class ValidationResult:
    valid: bool
    errors: list[str] = field(default_factory=list)


def find_cycle_members(nodes: Mapping[str, StageNode], edges: Iterable[Edge]) -> list[str]:
    """Return the stages Kahn's algorithm could not order (empty if acyclic)."""

    edge_list = [e for e in edges if e.source in nodes and e.target in nodes]
    in_degree = {node_id: 0 for node_id in nodes}
    for edge in edge_list:
        in_degree[edge.target] += 1

    queue = [node_id for node_id, degree in in_degree.items() if degree == 0]
    visited: set[str] = set()
    while queue:
        current = queue.pop(0)
        visited.add(current)
        for edge in edge_list:
            if edge.source != current:
                continue
            in_degree[edge.target] -= 1
            if in_degree[edge.target] == 0:
                queue.append(edge.target)

    return [node_id for node_id in nodes if node_id not in visited]


def validate_definition(definition: GraphDefinition) -> ValidationResult:
    errors: list[str] = []

    if not definition.root_ids:
        errors.append("DAG has no root nodes (no stage with previous: null)")

    for node in definition.iter_nodes():
        if not node.produces:
            errors.append(f"Stage '{node.id}': produces must be non-empty")
        if node.previous is not None and not node.previous:
            errors.append(f"Stage '{node.id}': previous must be null, not an empty list")
        for parent_id in node.parents:
            if parent_id not in definition.nodes:
                errors.append(f"Stage '{node.id}': references nonexistent parent '{parent_id}'")

    cycle = find_cycle_members(definition.nodes, definition.edges)
    if cycle:
        errors.append(f"Cycle detected in DAG: {', '.join(cycle)}")

    return ValidationResult(valid=not errors, errors=errors)
