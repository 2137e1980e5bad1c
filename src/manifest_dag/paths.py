"""Session tree layout derived from DAG topology.

Each stage's directory nests under its primary parent (the first entry of
``previous``), so that the directory structure of a session is itself the
provenance chain:

    search/
      meta/search.json
      gather/
        meta/gather.json
        harmonize/
          meta/harmonize.json

Structural stages (gates, joins) and non-root optional stages are
transparent: they get their own directory but never appear as a segment in
their descendants' paths.
"""

from __future__ import annotations

from dataclasses import dataclass

from manifest_dag.graph.types import BRANCH_MARKER, DATA_DIR, META_DIR, GraphDefinition, StageNode


@dataclass(frozen=True, slots=True)
class StagePath:
    """Where a stage's files live, relative to the session root."""

    nesting: str
    data_dir: str
    artifact_file: str

    @property
    def segments(self) -> list[str]:
        return self.nesting.split("/")

    @property
    def artifact_name(self) -> str:
        return self.artifact_file.rsplit("/", 1)[-1]

    @property
    def parent_dir(self) -> str:
        """Directory that holds this stage's directory ('' at the session root)."""

        head, _, _ = self.nesting.rpartition("/")
        return head

    @property
    def stage_dir_name(self) -> str:
        return self.nesting.rsplit("/", 1)[-1]


def artifact_name_for(node: StageNode) -> str:
    return node.produces[0] if node.produces else f"{node.id}.json"


def stage_path_for(nesting: str, artifact_name: str) -> StagePath:
    return StagePath(
        nesting=nesting,
        data_dir=f"{nesting}/{DATA_DIR}",
        artifact_file=f"{nesting}/{META_DIR}/{artifact_name}",
    )


def branch_nesting(nesting: str, suffix: str) -> str:
    """Nesting path of a re-execution branch of the stage at ``nesting``."""

    return f"{nesting}{BRANCH_MARKER}{suffix}"


def _visible_ancestors(node: StageNode, definition: GraphDefinition) -> list[str]:
    chain: list[str] = []
    seen = {node.id}
    current = node
    while current.primary_parent is not None:
        parent = definition.get(current.primary_parent)
        if parent is None or parent.id in seen:
            # A missing parent (or a loop in a hand-built definition) ends the walk.
            break
        seen.add(parent.id)
        if not parent.is_transparent:
            chain.append(parent.id)
        current = parent
    chain.reverse()
    return chain


def resolve_paths(definition: GraphDefinition) -> dict[str, StagePath]:
    """Compute the session path of every stage, in declaration order.

    Never raises for a definition that parsed successfully.
    """

    paths: dict[str, StagePath] = {}
    for node in definition.iter_nodes():
        nesting = "/".join([*_visible_ancestors(node, definition), node.id])
        paths[node.id] = stage_path_for(nesting, artifact_name_for(node))
    return paths
