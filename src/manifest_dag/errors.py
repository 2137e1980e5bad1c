"""Error taxonomy for the DAG engine.

Parse and topology errors are terminal for the call that raised them. Store
errors wrap backend failures. Integrity warnings are values, not exceptions:
readiness queries report them alongside their results.
"""

from __future__ import annotations

from dataclasses import dataclass


class ManifestDagError(Exception):
    """Base class for all engine errors."""


@dataclass(frozen=True, slots=True)
class ParseIssue:
    """One schema or structure violation, tagged with its field path."""

    path: str
    message: str

    def __str__(self) -> str:
        return f"[{self.path}] {self.message}" if self.path else self.message


class ParseError(ManifestDagError):
    """A manifest or script document could not be parsed.

    All violations found in the document are aggregated into ``issues``.
    """

    def __init__(self, issues: list[ParseIssue], *, document: str = "manifest") -> None:
        self.issues = list(issues)
        self.document = document
        super().__init__(self._render())

    def _render(self) -> str:
        joined = "; ".join(str(issue) for issue in self.issues)
        return f"Invalid {self.document}: {joined}"


class TopologyError(ManifestDagError):
    """A reference to a stage that does not exist in the anchoring graph."""

    def __init__(self, stage_id: str, message: str | None = None) -> None:
        self.stage_id = stage_id
        super().__init__(message or f"Unknown stage: '{stage_id}'")


class StoreError(ManifestDagError, OSError):
    """The artifact store failed to read or write."""

    def __init__(self, path: str, message: str) -> None:
        self.path = path
        super().__init__(f"{message}: {path}")


class EnvelopeCorrupt(ManifestDagError, ValueError):
    """Envelope bytes exist but are not a valid artifact envelope."""

    def __init__(self, path: str, message: str) -> None:
        self.path = path
        self.reason = message
        super().__init__(f"Corrupt artifact envelope at {path}: {message}")


class WorkflowNotFoundError(ManifestDagError, KeyError):
    def __init__(self, workflow_id: str, available: list[str]) -> None:
        self.workflow_id = workflow_id
        self.available = list(available)
        super().__init__(workflow_id)

    def __str__(self) -> str:
        available = ", ".join(self.available) or "none"
        return f"Workflow '{self.workflow_id}' not found. Available: {available}"


@dataclass(frozen=True, slots=True)
class IntegrityWarning:
    """An envelope that exists but could not be read or trusted.

    Distinct from "not yet produced": the remedy is investigation, not a re-run.
    """

    node_id: str
    path: str
    message: str

    def to_json(self) -> dict[str, str]:
        return {"node_id": self.node_id, "path": self.path, "message": self.message}
