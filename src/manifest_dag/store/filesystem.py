"""Local-disk artifact store."""

from __future__ import annotations

import logging
import os
import tempfile
from pathlib import Path

from manifest_dag.errors import StoreError
from manifest_dag.store.base import CreateResult, normalize_path

logger = logging.getLogger(__name__)


class FilesystemArtifactStore:
    """Artifact store rooted at a directory on the local filesystem.

    Files are written to a temporary name in the target directory and then
    hard-linked into place. The link fails if the target exists, which gives
    create-or-fail semantics and guarantees that readers only ever see
    complete files.
    """

    def __init__(self, root: Path) -> None:
        self._root = root.resolve()

    @property
    def root(self) -> Path:
        return self._root

    def _resolve(self, path: str) -> Path:
        try:
            relative = normalize_path(path)
        except ValueError as e:
            raise StoreError(path, "Path escapes the store root") from e
        return self._root / relative if relative else self._root

    def exists(self, path: str) -> bool:
        return self._resolve(path).exists()

    def read(self, path: str) -> bytes | None:
        target = self._resolve(path)
        try:
            return target.read_bytes()
        except (FileNotFoundError, IsADirectoryError, NotADirectoryError):
            return None
        except OSError as e:
            raise StoreError(path, f"Failed to read ({e.strerror or e})") from e

    def create_atomically(self, path: str, data: bytes) -> CreateResult:
        target = self._resolve(path)
        if target == self._root:
            raise StoreError(path, "Cannot create a file at the store root")
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(prefix=".tmp-", dir=target.parent)
        except OSError as e:
            raise StoreError(path, f"Failed to prepare write ({e.strerror or e})") from e

        tmp_path = Path(tmp_name)
        try:
            with os.fdopen(fd, "wb") as handle:
                handle.write(data)
                handle.flush()
                os.fsync(handle.fileno())
            try:
                os.link(tmp_path, target)
            except FileExistsError:
                logger.debug("Create skipped, file exists", extra={"path": path})
                return CreateResult.ALREADY_EXISTS
            return CreateResult.CREATED
        except OSError as e:
            raise StoreError(path, f"Failed to write ({e.strerror or e})") from e
        finally:
            tmp_path.unlink(missing_ok=True)

    def list_children(self, path: str) -> list[str]:
        target = self._resolve(path)
        if not target.is_dir():
            return []
        try:
            return sorted(
                entry.name for entry in target.iterdir() if not entry.name.startswith(".tmp-")
            )
        except OSError as e:
            raise StoreError(path, f"Failed to list ({e.strerror or e})") from e
