"""Typed view over the persisted rollout keys."""

from __future__ import annotations

import json
import logging
from typing import Optional

from hotcode.core.state import RolloutState
from hotcode.infrastructure.settings_store import SettingsStore

logger = logging.getLogger(__name__)

LAST_SEEN_INITIAL_VERSION = "lastSeenInitialVersion"
LAST_DOWNLOADED_VERSION = "lastDownloadedVersion"
LAST_KNOWN_GOOD_VERSION = "lastKnownGoodVersion"
BLACKLISTED_VERSIONS = "blacklistedVersions"
APP_ID = "appId"
ROOT_URL = "rootUrl"
COMPATIBILITY_VERSION = "compatibilityVersion"

ROLLOUT_KEYS = (
    LAST_SEEN_INITIAL_VERSION,
    LAST_DOWNLOADED_VERSION,
    LAST_KNOWN_GOOD_VERSION,
    BLACKLISTED_VERSIONS,
    APP_ID,
    ROOT_URL,
    COMPATIBILITY_VERSION,
)


class RolloutConfiguration:
    """Reads and writes rollout state through an opaque settings store."""

    def __init__(self, store: SettingsStore) -> None:
        self._store = store

    @property
    def last_seen_initial_version(self) -> Optional[str]:
        return self._store.get(LAST_SEEN_INITIAL_VERSION)

    @last_seen_initial_version.setter
    def last_seen_initial_version(self, value: Optional[str]) -> None:
        self._store.set(LAST_SEEN_INITIAL_VERSION, value)

    @property
    def last_downloaded_version(self) -> Optional[str]:
        return self._store.get(LAST_DOWNLOADED_VERSION)

    @last_downloaded_version.setter
    def last_downloaded_version(self, value: Optional[str]) -> None:
        self._store.set(LAST_DOWNLOADED_VERSION, value)

    @property
    def last_known_good_version(self) -> Optional[str]:
        return self._store.get(LAST_KNOWN_GOOD_VERSION)

    @last_known_good_version.setter
    def last_known_good_version(self, value: Optional[str]) -> None:
        self._store.set(LAST_KNOWN_GOOD_VERSION, value)

    @property
    def app_id(self) -> Optional[str]:
        return self._store.get(APP_ID)

    @app_id.setter
    def app_id(self, value: Optional[str]) -> None:
        self._store.set(APP_ID, value)

    @property
    def root_url(self) -> Optional[str]:
        return self._store.get(ROOT_URL)

    @root_url.setter
    def root_url(self, value: Optional[str]) -> None:
        self._store.set(ROOT_URL, value)

    @property
    def compatibility_version(self) -> Optional[str]:
        return self._store.get(COMPATIBILITY_VERSION)

    @compatibility_version.setter
    def compatibility_version(self, value: Optional[str]) -> None:
        self._store.set(COMPATIBILITY_VERSION, value)

    @property
    def blacklisted_versions(self) -> frozenset[str]:
        raw = self._store.get(BLACKLISTED_VERSIONS)
        if not raw:
            return frozenset()
        try:
            values = json.loads(raw)
        except json.JSONDecodeError:
            values = None
        if not isinstance(values, list):
            logger.warning("Ignoring unreadable blacklist: %r", raw)
            return frozenset()
        return frozenset(str(value) for value in values)

    def add_blacklisted_version(self, version: str) -> None:
        versions = set(self.blacklisted_versions)
        versions.add(version)
        self._store.set(BLACKLISTED_VERSIONS, json.dumps(sorted(versions)))

    def snapshot(self) -> RolloutState:
        return RolloutState(
            last_seen_initial_version=self.last_seen_initial_version,
            last_downloaded_version=self.last_downloaded_version,
            last_known_good_version=self.last_known_good_version,
            blacklisted_versions=self.blacklisted_versions,
            app_id=self.app_id,
            root_url=self.root_url,
            compatibility_version=self.compatibility_version,
        )

    def reset(self) -> None:
        """Clear every rollout key, including the blacklist."""
        for key in ROLLOUT_KEYS:
            self._store.delete(key)
