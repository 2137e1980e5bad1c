"""Artifact store boundary and its backends."""

from manifest_dag.store.base import ArtifactStore, CreateResult, join_path
from manifest_dag.store.filesystem import FilesystemArtifactStore
from manifest_dag.store.memory import MemoryArtifactStore
from manifest_dag.store.sessions import Session, SessionManager

__all__ = [
    "ArtifactStore",
    "CreateResult",
    "FilesystemArtifactStore",
    "MemoryArtifactStore",
    "Session",
    "SessionManager",
    "join_path",
]
