"""Unit tests for the command line."""

from __future__ import annotations

import json
import logging
from collections.abc import Iterator
from pathlib import Path

import pytest

from manifest_dag.cli import main
from manifest_dag.graph.parser import parse_manifest
from manifest_dag.provenance.engine import ProvenanceEngine
from manifest_dag.store.filesystem import FilesystemArtifactStore


@pytest.fixture(autouse=True)
def _restore_logging(monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    monkeypatch.delenv("LOG_LEVEL", raising=False)
    monkeypatch.delenv("MANIFEST_DAG_MANIFESTS_DIR", raising=False)
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


@pytest.fixture
def manifest_path(tmp_path: Path, scenario_manifest_text: str, monkeypatch: pytest.MonkeyPatch) -> Path:
    monkeypatch.chdir(tmp_path)
    path = tmp_path / "fedml.manifest.yaml"
    path.write_text(scenario_manifest_text, encoding="utf-8")
    return path


def test_validate_prints_counts(manifest_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    assert main(["validate", str(manifest_path)]) == 0

    out = capsys.readouterr().out
    assert "OK Federated Analysis: 3 stages, 2 edges" in out
    assert "roots=search" in out
    assert "terminals=harmonize" in out


def test_validate_reports_parse_errors(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    bad = tmp_path / "bad.manifest.yaml"
    bad.write_text("name: bad\npersona: p\nstages:\n  - id: a\n    previous: []\n", encoding="utf-8")

    assert main(["validate", str(bad)]) == 2

    err = capsys.readouterr().err
    assert "stages.0.produces" in err
    assert "stages.0.previous" in err


def test_validate_reports_unknown_script_stage(
    manifest_path: Path, tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    script = tmp_path / "bad.script.yaml"
    script.write_text("manifest: fedml\nstages:\n  - id: ghost\n", encoding="utf-8")

    assert main(["validate", str(manifest_path), "--script", str(script)]) == 2
    assert "ghost" in capsys.readouterr().err


def test_missing_file_is_a_user_error(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    assert main(["paths", str(tmp_path / "nope.manifest.yaml")]) == 2
    assert "File not found" in capsys.readouterr().err


def test_paths_prints_artifact_files(manifest_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    assert main(["paths", str(manifest_path)]) == 0

    lines = capsys.readouterr().out.splitlines()
    assert lines == [
        "search\tsearch/meta/search.json",
        "gather\tsearch/gather/meta/gather.json",
        "harmonize\tsearch/gather/harmonize/meta/harmonize.json",
    ]


def test_status_reads_session_directory(
    manifest_path: Path, tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    session = tmp_path / "session"
    definition = parse_manifest(manifest_path.read_text(encoding="utf-8"))
    engine = ProvenanceEngine(definition, FilesystemArtifactStore(session))
    engine.materialize("search", {"hits": 2})

    assert main(["status", str(manifest_path), "--session", str(session)]) == 0
    out = capsys.readouterr().out
    assert "Progress: 1/3 stages" in out
    assert "Gather Data ← NEXT" in out

    assert main(["status", str(manifest_path), "--session", str(session), "--json"]) == 0
    data = json.loads(capsys.readouterr().out)
    assert data["current_stage"] == "gather"
    assert data["completed_stages"] == ["search"]


def test_workflows_lists_manifests(manifest_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    assert main(["workflows", "--dir", str(manifest_path.parent)]) == 0

    out = capsys.readouterr().out
    assert out.startswith("fedml\tFederated Analysis\tfedml\t3 stages")


def test_workflows_with_empty_directory(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    assert main(["workflows", "--dir", str(tmp_path)]) == 0
    assert "No manifests found" in capsys.readouterr().out


def test_bad_configuration_exits_2(
    manifest_path: Path, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    monkeypatch.setenv("LOG_LEVEL", "CHATTY")

    assert main(["validate", str(manifest_path)]) == 2
    assert "Configuration error" in capsys.readouterr().err


def test_unexpected_failures_exit_1(
    manifest_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    def _boom(*_args: object, **_kwargs: object) -> None:
        raise RuntimeError("boom")

    monkeypatch.setattr("manifest_dag.cli.resolve_paths", _boom)

    assert main(["paths", str(manifest_path)]) == 1


def test_workflows_skips_undecodable_manifests(
    manifest_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    (manifest_path.parent / "broken.manifest.yaml").write_bytes(b"\xff\xfe\x00name")

    assert main(["workflows", "--dir", str(manifest_path.parent)]) == 0
    assert capsys.readouterr().out.startswith("fedml\t")
