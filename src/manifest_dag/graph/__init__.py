"""Graph model, document parsers, and manifest discovery."""

from manifest_dag.graph.parser import load_manifest, load_script, parse_manifest, parse_script
from manifest_dag.graph.registry import ManifestRegistry, WorkflowSummary
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
)
from manifest_dag.graph.validator import ValidationResult, validate_definition

__all__ = [
    "DefinitionSource",
    "Edge",
    "GraphDefinition",
    "ManifestHeader",
    "ManifestRegistry",
    "ScriptHeader",
    "ScriptStageOverride",
    "SkipMarker",
    "SkipWarning",
    "StageNode",
    "ValidationResult",
    "WorkflowSummary",
    "load_manifest",
    "load_script",
    "parse_manifest",
    "parse_script",
    "validate_definition",
]
