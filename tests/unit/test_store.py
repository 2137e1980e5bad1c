"""Unit tests for the artifact store backends and session management."""

from __future__ import annotations

from pathlib import Path

import pytest

from manifest_dag.errors import StoreError
from manifest_dag.store.base import ArtifactStore, CreateResult, join_path, normalize_path
from manifest_dag.store.filesystem import FilesystemArtifactStore
from manifest_dag.store.memory import MemoryArtifactStore
from manifest_dag.store.sessions import SESSION_FILE, SessionManager


@pytest.fixture(params=["memory", "filesystem"])
def any_store(request: pytest.FixtureRequest, tmp_path: Path) -> ArtifactStore:
    if request.param == "memory":
        return MemoryArtifactStore()
    return FilesystemArtifactStore(tmp_path / "store")


def test_backends_satisfy_protocol(any_store: ArtifactStore) -> None:
    assert isinstance(any_store, ArtifactStore)


def test_create_is_create_or_fail(any_store: ArtifactStore) -> None:
    assert any_store.create_atomically("a/meta/a.json", b"first") is CreateResult.CREATED
    assert any_store.create_atomically("a/meta/a.json", b"second") is CreateResult.ALREADY_EXISTS
    assert any_store.read("a/meta/a.json") == b"first"


def test_missing_paths_are_absent_not_errors(any_store: ArtifactStore) -> None:
    assert any_store.read("nope/meta/x.json") is None
    assert not any_store.exists("nope")
    assert any_store.list_children("nope") == []


def test_list_children_returns_names(any_store: ArtifactStore) -> None:
    any_store.create_atomically("s/a/meta/a.json", b"{}")
    any_store.create_atomically("s/a_BRANCH_1/meta/a.json", b"{}")
    any_store.create_atomically("s/top.json", b"{}")

    assert any_store.list_children("s") == ["a", "a_BRANCH_1", "top.json"]
    assert any_store.exists("s/a")
    assert any_store.exists("s/top.json")


def test_paths_escaping_root_are_rejected(tmp_path: Path) -> None:
    store = FilesystemArtifactStore(tmp_path)

    with pytest.raises(StoreError):
        store.read("../outside.json")
    with pytest.raises(ValueError):
        MemoryArtifactStore().read("a/../../b")


def test_filesystem_store_leaves_no_temp_files(tmp_path: Path) -> None:
    store = FilesystemArtifactStore(tmp_path)
    store.create_atomically("x/meta/x.json", b"one")
    store.create_atomically("x/meta/x.json", b"two")

    assert sorted(p.name for p in (tmp_path / "x" / "meta").iterdir()) == ["x.json"]
    assert (tmp_path / "x" / "meta" / "x.json").read_bytes() == b"one"


def test_path_helpers() -> None:
    assert join_path("", "a/", "/b", "") == "a/b"
    assert normalize_path("./a//b/") == "a/b"
    assert normalize_path("") == ""


def test_session_lifecycle(any_store: ArtifactStore) -> None:
    manager = SessionManager(any_store)

    first = manager.create_session("fedml", "1.2")
    second = manager.create_session("fedml", "1.2")

    assert first.id != second.id
    assert first.id.startswith("session-")
    assert first.root == f"sessions/fedml/{first.id}"
    assert any_store.exists(join_path(first.root, SESSION_FILE))

    opened = manager.open_session("fedml", first.id)
    assert opened == first

    listed = manager.list_sessions("fedml")
    assert {s.id for s in listed} == {first.id, second.id}
    assert listed[0].created >= listed[1].created


def test_open_missing_or_corrupt_session_returns_none() -> None:
    store = MemoryArtifactStore({"sessions/p/broken/session.json": b"not json"})
    manager = SessionManager(store)

    assert manager.open_session("p", "missing") is None
    assert manager.open_session("p", "broken") is None
    assert manager.list_sessions("p") == []
