"""Discovery of workflow manifests on disk.

A workflow id is the manifest filename without the ``.manifest.yaml`` suffix.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import cast

from manifest_dag.errors import ParseError, WorkflowNotFoundError
from manifest_dag.graph.parser import load_manifest
from manifest_dag.graph.types import GraphDefinition, ManifestHeader

logger = logging.getLogger(__name__)

MANIFEST_SUFFIX = ".manifest.yaml"


@dataclass(frozen=True, slots=True)
class WorkflowSummary:
    """Short description of one workflow, for selection lists."""

    id: str
    name: str
    persona: str
    description: str
    stage_count: int

    def to_json(self) -> dict[str, object]:
        return {
            "id": self.id,
            "name": self.name,
            "persona": self.persona,
            "description": self.description,
            "stage_count": self.stage_count,
        }


class ManifestRegistry:
    """Index of the manifests in one directory.

    The directory is re-scanned on every call so that newly added manifests
    show up without restarting.
    """

    def __init__(self, directory: Path) -> None:
        self._directory = directory

    @property
    def directory(self) -> Path:
        return self._directory

    def _entries(self) -> dict[str, Path]:
        if not self._directory.is_dir():
            return {}
        entries: dict[str, Path] = {}
        for path in sorted(self._directory.iterdir(), key=lambda p: p.name):
            if path.is_file() and path.name.endswith(MANIFEST_SUFFIX):
                entries[path.name[: -len(MANIFEST_SUFFIX)]] = path
        return entries

    def ids(self) -> list[str]:
        return list(self._entries())

    def path_for(self, workflow_id: str) -> Path:
        entries = self._entries()
        if workflow_id not in entries:
            raise WorkflowNotFoundError(workflow_id, list(entries))
        return entries[workflow_id]

    def load(self, workflow_id: str) -> GraphDefinition:
        return load_manifest(self.path_for(workflow_id))

    def summaries(self) -> list[WorkflowSummary]:
        summaries: list[WorkflowSummary] = []
        for workflow_id, path in self._entries().items():
            try:
                definition = load_manifest(path)
            except (ParseError, OSError, UnicodeDecodeError) as e:
                logger.warning(
                    "Skipping manifest that failed to parse",
                    extra={"path": str(path), "error": str(e)},
                )
                continue

            header = cast(ManifestHeader, definition.header)
            description = header.description.strip().splitlines()
            summaries.append(
                WorkflowSummary(
                    id=workflow_id,
                    name=header.name,
                    persona=header.persona,
                    description=description[0] if description else "",
                    stage_count=len(definition),
                )
            )
        return summaries
