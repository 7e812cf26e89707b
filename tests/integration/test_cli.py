"""CLI entrypoint, output envelope and exit code tests."""

from __future__ import annotations

import json
import subprocess
import sys
from pathlib import Path

import pytest

from hotcode import cli
from hotcode.commands.output import emit_output, format_human
from hotcode.errors import ConfigMissing, MalformedManifest
from tests.helpers.bundles import FakeFetcher, index_html, serve_version, write_packaged_bundle

V1 = {"/app.js": ("app/app.js", b"console.log('v1');")}


def _common(packaged: Path, state: Path, tmp_path: Path) -> list[str]:
    return [
        "--packaged-dir",
        str(packaged),
        "--state-dir",
        str(state),
        "--config",
        str(tmp_path / "no-settings.json"),
        "--json",
    ]


def _envelope(capsys) -> dict:
    out = capsys.readouterr().out.strip().splitlines()
    assert len(out) == 1
    return json.loads(out[0])


def test_cli_entrypoint_help() -> None:
    result = subprocess.run(
        [sys.executable, "-m", "hotcode.cli", "--help"],
        capture_output=True,
        text=True,
        check=False,
    )
    assert result.returncode == 0
    assert "usage: hotcode" in result.stdout.lower()


def test_no_command_prints_help(capsys) -> None:
    assert cli.main([]) == 1
    assert "usage: hotcode" in capsys.readouterr().out.lower()


def test_status_reports_persisted_state(packaged_dir: Path, state_dir: Path, tmp_path: Path, capsys) -> None:
    assert cli.main(["status", *_common(packaged_dir, state_dir, tmp_path)]) == 0

    envelope = _envelope(capsys)
    assert envelope["schema_version"] == "v1"
    assert envelope["command"] == "status"
    data = envelope["data"]
    assert data["initial_version"] == "v0"
    assert data["downloaded_versions"] == []
    assert data["blacklisted_versions"] == []
    assert data["last_known_good_version"] is None


def test_check_downloads_and_reloads(
    packaged_dir: Path, state_dir: Path, tmp_path: Path, capsys, monkeypatch: pytest.MonkeyPatch
) -> None:
    fetcher = FakeFetcher()
    serve_version(fetcher, "v1", V1)
    monkeypatch.setattr("hotcode.app.UrllibFetcher", lambda **kwargs: fetcher)

    code = cli.main(["check", *_common(packaged_dir, state_dir, tmp_path), "--reload"])

    assert code == 0
    data = _envelope(capsys)["data"]
    assert data["status"] == "DOWNLOADED"
    assert data["version"] == "v1"
    assert data["switched"] is True
    assert data["current_version"] == "v1"
    assert (state_dir / "serving" / "v1" / "app.js").exists()

    assert cli.main(["status", *_common(packaged_dir, state_dir, tmp_path)]) == 0
    assert _envelope(capsys)["data"]["downloaded_versions"] == ["v1"]


def test_check_failure_maps_exit_code(
    packaged_dir: Path, state_dir: Path, tmp_path: Path, capsys, monkeypatch: pytest.MonkeyPatch
) -> None:
    fetcher = FakeFetcher({"http://example.test/__cordova/manifest.json": b"not json"})
    monkeypatch.setattr("hotcode.app.UrllibFetcher", lambda **kwargs: fetcher)

    code = cli.main(["check", *_common(packaged_dir, state_dir, tmp_path)])

    assert code == MalformedManifest.exit_code
    data = _envelope(capsys)["data"]
    assert data["status"] == "FAILED"
    assert "not valid JSON" in data["error_message"]


def test_check_without_root_url(tmp_path: Path, capsys, monkeypatch: pytest.MonkeyPatch) -> None:
    packaged = write_packaged_bundle(
        tmp_path / "packaged", "v0", V1, index=index_html("v0", root_url=None)
    )
    fetcher = FakeFetcher()
    monkeypatch.setattr("hotcode.app.UrllibFetcher", lambda **kwargs: fetcher)

    code = cli.main(["check", *_common(packaged, tmp_path / "state", tmp_path)])

    assert code == ConfigMissing.exit_code
    data = _envelope(capsys)["data"]
    assert data["error_type"] == "ConfigMissing"
    assert fetcher.requests == []


def test_materialize_packaged_bundle(packaged_dir: Path, state_dir: Path, tmp_path: Path, capsys) -> None:
    target = tmp_path / "out"

    code = cli.main(["materialize", *_common(packaged_dir, state_dir, tmp_path), str(target)])

    assert code == 0
    data = _envelope(capsys)["data"]
    assert data == {"version": "v0", "target": str(target.resolve()), "files": 4}
    assert (target / "index.html").exists()


def test_materialize_unknown_version(packaged_dir: Path, state_dir: Path, tmp_path: Path, capsys) -> None:
    args = ["materialize", *_common(packaged_dir, state_dir, tmp_path), str(tmp_path / "out"), "--version", "v9"]

    assert cli.main(args) == ConfigMissing.exit_code
    assert "v9" in capsys.readouterr().err


def test_missing_packaged_manifest_exit_code(tmp_path: Path, capsys) -> None:
    (tmp_path / "empty").mkdir()
    args = ["status", *_common(tmp_path / "empty", tmp_path / "state", tmp_path)]

    assert cli.main(args) == MalformedManifest.exit_code


def test_human_output_lines() -> None:
    lines = []
    emit_output(
        command="status",
        payload={"b": None, "a": ["x", "y"]},
        json_output=False,
        output_sink=lines.append,
    )
    assert lines == ["status: a=x,y", "status: b=-"]
    assert format_human("check", {"status": "SKIPPED"}) == ["check: status=SKIPPED"]
