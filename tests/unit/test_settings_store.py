"""Unit tests for the SQLite settings store and the rollout configuration view."""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
import sqlite3

import pytest

from hotcode.core.state import RolloutState
from hotcode.infrastructure.configuration import (
    BLACKLISTED_VERSIONS,
    LAST_KNOWN_GOOD_VERSION,
    RolloutConfiguration,
)
from hotcode.infrastructure.settings_store import SettingsStore


def test_set_get_delete_roundtrip(tmp_path: Path) -> None:
    store = SettingsStore(tmp_path / "state.db")
    try:
        assert store.get("missing") is None
        store.set("rootUrl", "http://example.test")
        assert store.get("rootUrl") == "http://example.test"
        store.set("rootUrl", None)
        assert store.get("rootUrl") is None
        store.set("appId", "app-1")
        store.delete("appId")
        assert store.get("appId") is None
    finally:
        store.close()


def test_values_survive_reopen(tmp_path: Path) -> None:
    store = SettingsStore(tmp_path / "state.db")
    store.set("lastKnownGoodVersion", "v3")
    store.close()

    reopened = SettingsStore(tmp_path / "state.db")
    try:
        assert reopened.get("lastKnownGoodVersion") == "v3"
    finally:
        reopened.close()


def test_updated_at_uses_clock(tmp_path: Path) -> None:
    fixed = datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc)
    store = SettingsStore(tmp_path / "state.db", now_fn=lambda: fixed)
    store.set("k", "v")
    store.close()

    conn = sqlite3.connect(tmp_path / "state.db")
    try:
        row = conn.execute("SELECT updated_at FROM settings WHERE key = 'k'").fetchone()
    finally:
        conn.close()
    assert row[0] == "2024-01-02T03:04:05Z"


def test_newer_schema_is_rejected(tmp_path: Path) -> None:
    SettingsStore(tmp_path / "state.db").close()
    conn = sqlite3.connect(tmp_path / "state.db")
    conn.execute("UPDATE schema_metadata SET value = '99' WHERE key = 'schema_version'")
    conn.commit()
    conn.close()

    with pytest.raises(ValueError, match="upgrade"):
        SettingsStore(tmp_path / "state.db")


@pytest.fixture
def configuration(tmp_path: Path):
    store = SettingsStore(tmp_path / "state.db")
    yield RolloutConfiguration(store)
    store.close()


def test_configuration_properties(configuration: RolloutConfiguration) -> None:
    configuration.last_seen_initial_version = "v0"
    configuration.last_downloaded_version = "v1"
    configuration.last_known_good_version = "v0"
    configuration.app_id = "app"
    configuration.root_url = "http://example.test"
    configuration.compatibility_version = "c1"

    assert configuration.snapshot() == RolloutState(
        last_seen_initial_version="v0",
        last_downloaded_version="v1",
        last_known_good_version="v0",
        blacklisted_versions=frozenset(),
        app_id="app",
        root_url="http://example.test",
        compatibility_version="c1",
    )


def test_blacklist_accumulates(configuration: RolloutConfiguration) -> None:
    configuration.add_blacklisted_version("v2")
    configuration.add_blacklisted_version("v1")
    configuration.add_blacklisted_version("v2")

    assert configuration.blacklisted_versions == frozenset({"v1", "v2"})


def test_unreadable_blacklist_is_ignored(configuration: RolloutConfiguration) -> None:
    configuration._store.set(BLACKLISTED_VERSIONS, "{not json")
    assert configuration.blacklisted_versions == frozenset()


def test_reset_clears_every_key(configuration: RolloutConfiguration) -> None:
    configuration.last_known_good_version = "v1"
    configuration.add_blacklisted_version("v2")
    configuration._store.set("unrelated", "kept")

    configuration.reset()

    assert configuration.snapshot() == RolloutState()
    assert configuration._store.get(LAST_KNOWN_GOOD_VERSION) is None
    assert configuration._store.get("unrelated") == "kept"
