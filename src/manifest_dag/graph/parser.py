"""Manifest and script parsers.

Both parsers produce a :class:`GraphDefinition`. Documents are validated
against their schema at the boundary, before any field is read; every
violation is reported in a single :class:`ParseError`. Nothing is partially
applied: either a complete definition is returned or an error is raised.
"""

from __future__ import annotations

import logging
from pathlib import Path
from types import MappingProxyType
from typing import Any, TypeVar

import yaml
from pydantic import BaseModel, ValidationError

from manifest_dag.errors import ParseError, ParseIssue, TopologyError
from manifest_dag.graph.schemas import ManifestDocument, ScriptDocument, StageDocument
from manifest_dag.graph.types import (
    DefinitionSource,
    Edge,
    GraphDefinition,
    ManifestHeader,
    ScriptHeader,
    ScriptStageOverride,
    SkipMarker,
    SkipWarning,
    StageNode,
    freeze_parameters,
)
from manifest_dag.graph.validator import find_cycle_members

logger = logging.getLogger(__name__)

_DocumentT = TypeVar("_DocumentT", bound=BaseModel)


def _load_yaml(text: str, document: str) -> dict[str, Any]:
    try:
        raw = yaml.safe_load(text)
    except yaml.YAMLError as e:
        mark = getattr(e, "problem_mark", None)
        where = f"line {mark.line + 1}" if mark is not None else ""
        raise ParseError([ParseIssue(where, f"YAML syntax error: {e}")], document=document) from e

    if not isinstance(raw, dict):
        raise ParseError([ParseIssue("", "document must be a YAML mapping")], document=document)
    return raw


def _issues_from_validation(error: ValidationError) -> list[ParseIssue]:
    issues: list[ParseIssue] = []
    for detail in error.errors():
        path = ".".join(str(part) for part in detail["loc"])
        message = detail["msg"]
        if message.startswith("Value error, "):
            message = message[len("Value error, ") :]
        issues.append(ParseIssue(path, message))
    return issues


def _validate_document(model: type[_DocumentT], raw: dict[str, Any], document: str) -> _DocumentT:
    try:
        return model.model_validate(raw)
    except ValidationError as e:
        raise ParseError(_issues_from_validation(e), document=document) from e


def _build_node(stage: StageDocument) -> StageNode:
    skip_warning = None
    if stage.skip_warning is not None:
        skip_warning = SkipWarning(
            short=stage.skip_warning.short,
            reason=stage.skip_warning.reason,
            max_warnings=stage.skip_warning.max_warnings,
        )
    return StageNode(
        id=stage.id,
        name=stage.name or stage.id,
        phase=stage.phase,
        previous=tuple(stage.previous) if stage.previous is not None else None,
        optional=stage.optional,
        structural=stage.structural,
        produces=tuple(stage.produces),
        parameters=freeze_parameters(stage.parameters),
        instruction=stage.instruction,
        commands=tuple(stage.commands),
        handler=stage.handler,
        skip_warning=skip_warning,
        narrative=stage.narrative,
        blueprint=tuple(stage.blueprint),
    )


def _derive_edges(nodes: dict[str, StageNode], ordered_ids: list[str]) -> list[Edge]:
    edges: list[Edge] = []
    for node_id in ordered_ids:
        for parent_id in nodes[node_id].parents:
            edges.append(Edge(source=parent_id, target=node_id))
    return edges


def parse_manifest(text: str) -> GraphDefinition:
    """Parse a manifest YAML document into a GraphDefinition.

    Raises:
        ParseError: On schema violations, duplicate stage ids, dangling or
            self references, cycles, or a manifest without a root stage.
    """

    raw = _load_yaml(text, "manifest")
    doc = _validate_document(ManifestDocument, raw, "manifest")

    header = ManifestHeader(
        name=doc.name,
        persona=doc.persona,
        description=doc.description,
        category=doc.category,
        version=doc.version,
        locked=doc.locked,
        authors=doc.authors,
    )

    issues: list[ParseIssue] = []

    # Pass 1: index nodes by id, preserving declaration order.
    nodes: dict[str, StageNode] = {}
    ordered_ids: list[str] = []
    for index, stage in enumerate(doc.stages):
        if stage.id in nodes:
            issues.append(ParseIssue(f"stages.{index}.id", f"duplicate stage id '{stage.id}'"))
            continue
        nodes[stage.id] = _build_node(stage)
        ordered_ids.append(stage.id)

    for index, stage in enumerate(doc.stages):
        for parent_id in stage.previous or []:
            if parent_id == stage.id:
                issues.append(
                    ParseIssue(f"stages.{index}.previous", f"stage '{stage.id}' references itself")
                )
            elif parent_id not in nodes:
                issues.append(
                    ParseIssue(
                        f"stages.{index}.previous",
                        f"stage '{stage.id}' references nonexistent parent '{parent_id}'",
                    )
                )

    root_ids = [node_id for node_id in ordered_ids if nodes[node_id].is_root]
    if not root_ids:
        issues.append(ParseIssue("stages", "manifest has no root stage (previous: null)"))

    if issues:
        raise ParseError(issues, document="manifest")

    # Pass 2: derive edges by inverting the backward pointers.
    edges = _derive_edges(nodes, ordered_ids)
    parent_ids = {edge.source for edge in edges}
    terminal_ids = [node_id for node_id in ordered_ids if node_id not in parent_ids]

    cycle = find_cycle_members(nodes, edges)
    if cycle:
        raise ParseError(
            [ParseIssue("stages", f"cycle detected among stages: {', '.join(cycle)}")],
            document="manifest",
        )

    definition = GraphDefinition(
        source=DefinitionSource.MANIFEST,
        header=header,
        nodes=MappingProxyType(nodes),
        ordered_ids=tuple(ordered_ids),
        edges=tuple(edges),
        root_ids=tuple(root_ids),
        terminal_ids=tuple(terminal_ids),
    )
    logger.debug(
        "Manifest parsed",
        extra={"manifest": header.name, "stages": len(ordered_ids), "edges": len(edges)},
    )
    return definition


def _parse_overrides(doc: ScriptDocument) -> list[ScriptStageOverride]:
    return [
        ScriptStageOverride(
            id=entry.id,
            skip=entry.skip,
            parameters=freeze_parameters(entry.parameters),
            reason=entry.reason,
        )
        for entry in doc.stages
    ]


def parse_script(text: str, manifest: GraphDefinition) -> GraphDefinition:
    """Apply a script overlay to a manifest.

    The manifest is never mutated: every node is cloned, and parameter maps
    are deep-copied before overrides are merged. Overrides apply in
    declaration order, so a later entry for the same stage wins.

    Raises:
        ParseError: If the script document is malformed.
        TopologyError: If an override names a stage absent from the manifest.
    """

    raw = _load_yaml(text, "script")
    doc = _validate_document(ScriptDocument, raw, "script")
    overrides = _parse_overrides(doc)

    for override in overrides:
        if override.id not in manifest.nodes:
            raise TopologyError(
                override.id,
                f"Script references nonexistent manifest stage: '{override.id}'",
            )

    parameters: dict[str, dict[str, Any]] = {
        node.id: node.effective_parameters() for node in manifest.iter_nodes()
    }
    skips: dict[str, SkipMarker | None] = {node.id: node.skip for node in manifest.iter_nodes()}

    for override in overrides:
        if override.parameters:
            parameters[override.id].update(override.parameters)
        # Each entry restates the skip decision for its stage.
        skips[override.id] = (
            SkipMarker(reason=override.reason or "skipped by script") if override.skip else None
        )

    nodes: dict[str, StageNode] = {}
    for node in manifest.iter_nodes():
        nodes[node.id] = StageNode(
            id=node.id,
            name=node.name,
            phase=node.phase,
            previous=node.previous,
            optional=node.optional,
            structural=node.structural,
            produces=node.produces,
            parameters=freeze_parameters(parameters[node.id]),
            instruction=node.instruction,
            commands=node.commands,
            handler=node.handler,
            skip_warning=node.skip_warning,
            narrative=node.narrative,
            blueprint=node.blueprint,
            skip=skips[node.id],
        )

    header = ScriptHeader(
        name=doc.name,
        manifest=doc.manifest,
        description=doc.description,
        version=doc.version,
        authors=doc.authors,
    )
    logger.debug(
        "Script applied",
        extra={
            "script": header.name,
            "manifest": header.manifest,
            "overrides": len(overrides),
            "skipped": [node_id for node_id, marker in skips.items() if marker is not None],
        },
    )
    return GraphDefinition(
        source=DefinitionSource.SCRIPT,
        header=header,
        nodes=MappingProxyType(nodes),
        ordered_ids=manifest.ordered_ids,
        edges=manifest.edges,
        root_ids=manifest.root_ids,
        terminal_ids=manifest.terminal_ids,
    )


def load_manifest(path: Path) -> GraphDefinition:
    """Read and parse a manifest file."""

    return parse_manifest(path.read_text(encoding="utf-8"))


def load_script(path: Path, manifest: GraphDefinition) -> GraphDefinition:
    """Read a script file and apply it to ``manifest``."""

    return parse_script(path.read_text(encoding="utf-8"), manifest)
