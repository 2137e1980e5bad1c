"""In-memory artifact store, used by tests and embedded callers."""

from __future__ import annotations

import threading

from manifest_dag.store.base import CreateResult, normalize_path


class MemoryArtifactStore:
    """Dict-backed store with atomic create-or-fail semantics.

    Directories are implied by the files beneath them.
    """

    def __init__(self, files: dict[str, bytes] | None = None) -> None:
        self._lock = threading.Lock()
        self._files: dict[str, bytes] = {}
        for path, data in (files or {}).items():
            self._files[normalize_path(path)] = bytes(data)

    def exists(self, path: str) -> bool:
        key = normalize_path(path)
        with self._lock:
            if key in self._files:
                return True
            prefix = f"{key}/" if key else ""
            return any(name.startswith(prefix) for name in self._files)

    def read(self, path: str) -> bytes | None:
        with self._lock:
            return self._files.get(normalize_path(path))

    def create_atomically(self, path: str, data: bytes) -> CreateResult:
        key = normalize_path(path)
        if not key:
            raise ValueError("Cannot create a file at the store root")
        with self._lock:
            if key in self._files:
                return CreateResult.ALREADY_EXISTS
            self._files[key] = bytes(data)
            return CreateResult.CREATED

    def list_children(self, path: str) -> list[str]:
        key = normalize_path(path)
        prefix = f"{key}/" if key else ""
        children: set[str] = set()
        with self._lock:
            for name in self._files:
                if name.startswith(prefix):
                    children.add(name[len(prefix) :].split("/", 1)[0])
        return sorted(children)

    def paths(self) -> list[str]:
        """Every file path currently stored."""

        with self._lock:
            return sorted(self._files)
