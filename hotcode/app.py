"""Application bootstrap with dependency injection."""

from __future__ import annotations

from pathlib import Path
from typing import Optional

from .core.bundle import AssetBundle
from .infrastructure.bundle_store import BundleStore
from .infrastructure.configuration import RolloutConfiguration
from .infrastructure.http import Fetcher, UrllibFetcher
from .infrastructure.settings_store import SettingsStore
from .plugin import HotCodePushPlugin
from .services.bundle_manager import BundleManager
from .services.rollout import RolloutController, WebView
from .settings import Settings

STATE_DB_FILENAME = "state.db"
VERSIONS_DIRNAME = "versions"
SERVING_DIRNAME = "serving"


class HotCodeApp:
    """Wires storage, the bundle manager and the rollout controller."""

    def __init__(
        self,
        packaged_dir: Path,
        state_dir: Path,
        settings: Optional[Settings] = None,
        fetcher: Optional[Fetcher] = None,
        view: Optional[WebView] = None,
    ):
        """Initialize the hot code push stack.

        Args:
            packaged_dir: Read-only directory of the bundle shipped with the app
            state_dir: Writable directory for state DB, versions and serving copies
            settings: Runtime settings (defaults if omitted)
            fetcher: HTTP fetcher (urllib-based if omitted)
            view: Embedded browser view (a recording stand-in if omitted)
        """
        self.packaged_dir = packaged_dir
        self.state_dir = state_dir
        self.settings = settings or Settings()

        # Initialize infrastructure
        state_dir.mkdir(parents=True, exist_ok=True)
        self.settings_store = SettingsStore(state_dir / STATE_DB_FILENAME)
        self.configuration = RolloutConfiguration(self.settings_store)
        self.bundle_store = BundleStore(state_dir / VERSIONS_DIRNAME, state_dir / SERVING_DIRNAME)
        self.bundle_store.ensure_directories()
        self.fetcher = fetcher or UrllibFetcher(timeout=self.settings.request_timeout_seconds)

        # Initialize services
        self.initial_bundle = AssetBundle.load(packaged_dir, platform=self.settings.platform)
        self.manager = BundleManager(
            self.initial_bundle,
            self.bundle_store,
            fetcher=self.fetcher,
            settings=self.settings,
        )
        self.controller = RolloutController(
            self.manager,
            self.configuration,
            self.bundle_store,
            settings=self.settings,
            view=view,
        )
        self.plugin = HotCodePushPlugin(self.controller)

    def start(self) -> AssetBundle:
        """Select and serve the starting bundle."""
        return self.controller.initialize()

    def close(self) -> None:
        """Clean up resources."""
        self.controller.close()
        self.settings_store.close()
