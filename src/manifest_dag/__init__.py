"""Manifest DAG.

Compiles declarative stage manifests into a DAG, lays out session artifact
trees from that topology, and tracks readiness and provenance of every stage
through fingerprinted, parent-chained artifact envelopes.
"""

__version__ = "0.1.0"

from manifest_dag.config import EngineSettings
from manifest_dag.errors import (
    EnvelopeCorrupt,
    IntegrityWarning,
    ManifestDagError,
    ParseError,
    ParseIssue,
    StoreError,
    TopologyError,
    WorkflowNotFoundError,
)
from manifest_dag.graph import GraphDefinition, StageNode, parse_manifest, parse_script
from manifest_dag.paths import StagePath, resolve_paths
from manifest_dag.provenance import ArtifactEnvelope, ProvenanceEngine
from manifest_dag.readiness import NodeReadiness, WorkflowPosition, resolve_position, resolve_readiness
from manifest_dag.workflow import TransitionResult, Workflow

__all__ = [
    "__version__",
    "ArtifactEnvelope",
    "EngineSettings",
    "EnvelopeCorrupt",
    "GraphDefinition",
    "IntegrityWarning",
    "ManifestDagError",
    "NodeReadiness",
    "ParseError",
    "ParseIssue",
    "ProvenanceEngine",
    "StageNode",
    "StagePath",
    "StoreError",
    "TopologyError",
    "TransitionResult",
    "Workflow",
    "WorkflowNotFoundError",
    "WorkflowPosition",
    "parse_manifest",
    "parse_script",
    "resolve_paths",
    "resolve_position",
    "resolve_readiness",
]
