"""The artifact store boundary.

The engine needs exactly four primitives from its host storage. Any backend
providing them (in-memory, local disk, object storage) is sufficient. Paths
are POSIX-style and relative to the store root.
"""

from __future__ import annotations

from enum import Enum
from typing import Protocol, runtime_checkable


class CreateResult(str, Enum):
    CREATED = "created"
    ALREADY_EXISTS = "already_exists"


@runtime_checkable
class ArtifactStore(Protocol):
    def exists(self, path: str) -> bool:
        """Whether a file or directory exists at ``path``."""
        ...

    def read(self, path: str) -> bytes | None:
        """File contents, or None if there is no file at ``path``."""
        ...

    def create_atomically(self, path: str, data: bytes) -> CreateResult:
        """Create a file with ``data`` unless one exists; never overwrite.

        Readers must never observe a partially written file.
        """
        ...

    def list_children(self, path: str) -> list[str]:
        """Names (not paths) of the entries directly under ``path``.

        Returns an empty list if ``path`` does not exist.
        """
        ...


def join_path(*parts: str) -> str:
    """Join relative store path segments, ignoring empty ones."""

    return "/".join(part.strip("/") for part in parts if part and part.strip("/"))


def normalize_path(path: str) -> str:
    """Canonical relative form; rejects '..' segments."""

    segments = [s for s in path.replace("\\", "/").split("/") if s and s != "."]
    if any(s == ".." for s in segments):
        raise ValueError(f"Store paths must not contain '..': {path!r}")
    return "/".join(segments)
