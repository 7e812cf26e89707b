"""Pytest configuration and shared fixtures."""

from __future__ import annotations

import shutil
import tempfile
from pathlib import Path
from typing import Generator

import pytest

from tests.helpers.bundles import FakeFetcher, FakeWebView, write_packaged_bundle


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for test files."""
    tmpdir = Path(tempfile.mkdtemp())
    try:
        yield tmpdir
    finally:
        shutil.rmtree(tmpdir, ignore_errors=True)


@pytest.fixture
def fetcher() -> FakeFetcher:
    return FakeFetcher()


@pytest.fixture
def web_view() -> FakeWebView:
    return FakeWebView()


@pytest.fixture
def packaged_dir(temp_dir: Path) -> Path:
    """Packaged bundle "v0" with one script, one stylesheet and a source map."""
    return write_packaged_bundle(
        temp_dir / "packaged",
        "v0",
        {
            "/app.js": ("app/app.js", b"console.log('v0');"),
            "/app.css": ("app/app.css", b"body { color: black; }"),
        },
        source_maps={"/app.js": ("app/app.js.map", b'{"version":3}')},
    )


@pytest.fixture
def state_dir(temp_dir: Path) -> Path:
    path = temp_dir / "state"
    path.mkdir()
    return path
