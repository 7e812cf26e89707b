"""Rollout controller: activation, startup confirmation and rollback.

The controller owns the current and pending bundle pointers. All reads and
writes of those pointers and of the persisted rollout state happen on a
single switch worker thread; downloads run on a separate worker and hand
their results over to the switch worker.
"""

from __future__ import annotations

from concurrent.futures import Future, ThreadPoolExecutor
import logging
from pathlib import Path
from typing import Callable, Optional, Protocol

from hotcode.core.bundle import AssetBundle
from hotcode.core.manifest import Manifest
from hotcode.core.state import RolloutStatus
from hotcode.errors import ConfigMissing, MaterializationError, StorageError
from hotcode.infrastructure.bundle_store import BundleStore
from hotcode.infrastructure.configuration import RolloutConfiguration
from hotcode.services.bundle_manager import BundleManager, DownloadResult, DownloadStatus
from hotcode.services.deadline import StartupDeadline
from hotcode.services.materializer import materialize_bundle
from hotcode.settings import Settings

logger = logging.getLogger(__name__)

UPDATE_AVAILABLE_EVENT = "updateAvailable"
ERROR_EVENT = "error"
CORDOVA_PATH = "__cordova/"

EventSink = Callable[[str, dict], None]


class WebView(Protocol):
    """The embedded browser view serving the current bundle."""

    def set_server_base_path(self, path: Path) -> None: ...

    def reload(self) -> None: ...

    def run_on_ui_thread(self, action: Callable[[], None]) -> None: ...


class NullWebView:
    """View stand-in for headless use; records what it was told."""

    def __init__(self) -> None:
        self.base_path: Optional[Path] = None
        self.reload_count = 0

    def set_server_base_path(self, path: Path) -> None:
        self.base_path = path

    def reload(self) -> None:
        self.reload_count += 1

    def run_on_ui_thread(self, action: Callable[[], None]) -> None:
        action()


def _discard_event(name: str, payload: dict) -> None:
    logger.debug("Dropping %s event without listener: %s", name, payload)


def update_base_url(root_url: str) -> str:
    return root_url.rstrip("/") + "/" + CORDOVA_PATH


class RolloutController:
    """Decides which bundle is served and when to switch or roll back."""

    def __init__(
        self,
        manager: BundleManager,
        configuration: RolloutConfiguration,
        store: BundleStore,
        *,
        settings: Optional[Settings] = None,
        view: Optional[WebView] = None,
        emit: Optional[EventSink] = None,
    ) -> None:
        self.manager = manager
        self.configuration = configuration
        self.store = store
        self.settings = settings or Settings()
        self.view: WebView = view or NullWebView()
        self.emit: EventSink = emit or _discard_event

        self._download_worker = ThreadPoolExecutor(max_workers=1, thread_name_prefix="hotcode-download")
        self._switch_worker = ThreadPoolExecutor(max_workers=1, thread_name_prefix="hotcode-switch")
        self._deadline = StartupDeadline(self.settings.startup_timeout_seconds, self._on_deadline_fired)

        self._current: AssetBundle = manager.initial_bundle
        self._pending: Optional[AssetBundle] = None
        self._no_safe_fallback = False
        self._closed = False

    # Lifecycle

    def initialize(self) -> AssetBundle:
        """Select, materialize and serve the bundle to start with.

        Blocks until done and returns the current bundle.
        """
        return self._switch_worker.submit(self._initialize).result()

    def _initialize(self) -> AssetBundle:
        initial = self.manager.initial_bundle
        last_seen = self.configuration.last_seen_initial_version
        if last_seen is not None and last_seen != initial.version:
            logger.info(
                "Packaged version changed from %s to %s, discarding downloaded versions",
                last_seen,
                initial.version,
            )
            self.manager.reset()
            self.configuration.reset()
        self.configuration.last_seen_initial_version = initial.version

        self.store.ensure_directories()
        self.store.remove_leftovers()

        current = initial
        arm_deadline = False
        last_downloaded = self.configuration.last_downloaded_version
        if last_downloaded is not None:
            downloaded = self.manager.downloaded_asset_bundle_with_version(last_downloaded)
            if downloaded is not None:
                logger.info("Using downloaded version %s", last_downloaded)
                current = downloaded
                arm_deadline = last_downloaded != self.configuration.last_known_good_version
            else:
                logger.warning(
                    "Downloaded version %s was configured but is not available, using packaged version",
                    last_downloaded,
                )
        if current is initial:
            logger.info("Using packaged version %s", initial.version)

        try:
            serving = self._materialize(current)
        except MaterializationError as exc:
            if current is initial:
                raise
            logger.error("Could not serve version %s, using packaged version: %s", current.version, exc)
            current = initial
            arm_deadline = False
            serving = self._materialize(current)

        self._set_current(current)
        self._pending = None
        self.view.run_on_ui_thread(lambda: self.view.set_server_base_path(serving))
        if arm_deadline:
            self._deadline.arm()
        return current

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._deadline.cancel()
        self._download_worker.shutdown(wait=True)
        self._switch_worker.shutdown(wait=True)

    def flush(self) -> None:
        """Wait until all queued downloads and switch work have finished."""
        self._download_worker.submit(lambda: None).result()
        self._switch_worker.submit(lambda: None).result()

    # Queries

    @property
    def current_version(self) -> str:
        return self._switch_worker.submit(lambda: self._current.version).result()

    @property
    def update_available(self) -> bool:
        return self._switch_worker.submit(lambda: self._pending is not None).result()

    def status(self) -> RolloutStatus:
        return self._switch_worker.submit(self._status).result()

    def _status(self) -> RolloutStatus:
        return RolloutStatus(
            current_version=self._current.version,
            pending_version=self._pending.version if self._pending else None,
            last_known_good_version=self.configuration.last_known_good_version,
            blacklisted_versions=tuple(sorted(self.configuration.blacklisted_versions)),
            awaiting_startup=self._deadline.armed,
            no_safe_fallback=self._no_safe_fallback,
        )

    # Update check

    def check_for_updates(self) -> "Future[DownloadResult]":
        """Start a background update check against the configured root URL.

        Raises:
            ConfigMissing: If no root URL is configured; nothing is fetched
        """
        root_url, app_id = self._switch_worker.submit(
            lambda: (self.configuration.root_url, self.configuration.app_id)
        ).result()
        if not root_url:
            raise ConfigMissing("Root URL must be configured before checking for updates")
        base_url = update_base_url(root_url)
        logger.info("Checking for updates at %s", base_url)
        return self._download_worker.submit(self._run_check, base_url, app_id)

    def _run_check(self, base_url: str, app_id: Optional[str]) -> DownloadResult:
        current = self._switch_worker.submit(lambda: self._current).result()
        result = self.manager.check_for_updates(
            base_url,
            current_bundle=current,
            should_download=self._should_download_from_worker,
            expected_app_id=app_id,
        )
        self._switch_worker.submit(self._handle_download_result, result).result()
        return result

    def _should_download_from_worker(self, manifest: Manifest) -> bool:
        return self._switch_worker.submit(self.should_download, manifest).result()

    def should_download(self, manifest: Manifest) -> bool:
        """Download policy. Must run on the switch worker."""
        version = manifest.version
        if version == self._current.version:
            logger.info("Skipping downloading current version: %s", version)
            return False
        if self._pending is not None and version == self._pending.version:
            logger.info("Skipping downloading pending version: %s", version)
            return False
        if version in self.configuration.blacklisted_versions:
            logger.warning("Skipping downloading blacklisted version: %s", version)
            return False
        if self.settings.enforce_compatibility_version:
            expected = self.configuration.compatibility_version
            if expected is not None and expected != manifest.compatibility_version:
                logger.warning(
                    "Skipping downloading version %s: compatibility version %s does not match %s",
                    version,
                    manifest.compatibility_version,
                    expected,
                )
                return False
        return True

    def _handle_download_result(self, result: DownloadResult) -> None:
        if result.status is DownloadStatus.FAILED:
            message = str(result.error) if result.error else "Download failed"
            self.emit(ERROR_EVENT, {"message": message})
            return
        if not result.has_bundle or result.bundle is None:
            return
        bundle = result.bundle
        if bundle.version == self._current.version:
            return
        logger.info("Version %s is ready", bundle.version)
        self._pending = bundle
        self.configuration.last_downloaded_version = bundle.version
        self.emit(UPDATE_AVAILABLE_EVENT, {"version": bundle.version})

    # Activation

    def reload(self) -> "Future[bool]":
        """Switch to the pending bundle, if any.

        The future resolves to whether a switch happened, or raises
        MaterializationError when the pending bundle could not be served; the
        previous version then stays current.
        """
        return self._switch_worker.submit(self._activate)

    def _activate(self) -> bool:
        pending = self._pending
        if pending is None:
            logger.info("No pending version to reload")
            return False
        try:
            serving = self._materialize(pending)
        except MaterializationError as exc:
            logger.error("Error switching to version %s: %s", pending.version, exc)
            self.emit(ERROR_EVENT, {"message": str(exc)})
            raise

        self._set_current(pending)
        self._pending = None
        self._no_safe_fallback = False

        def swap() -> None:
            self.view.set_server_base_path(serving)
            self.view.reload()

        self.view.run_on_ui_thread(swap)
        self._deadline.arm()
        logger.info("Switched to version %s", pending.version)
        return True

    def _materialize(self, bundle: AssetBundle) -> Path:
        try:
            target = self.store.serving_directory(bundle.version)
        except StorageError as exc:
            raise MaterializationError(str(exc)) from exc
        return materialize_bundle(bundle, target, plugin_name=self.settings.plugin_name)

    def _set_current(self, bundle: AssetBundle) -> None:
        self._current = bundle
        self.configuration.app_id = bundle.app_id
        self.configuration.root_url = bundle.root_url
        self.configuration.compatibility_version = bundle.compatibility_version

    # Startup confirmation and rollback

    def startup_did_complete(self) -> "Future[None]":
        return self._switch_worker.submit(self._confirm_startup)

    def _confirm_startup(self) -> None:
        self._deadline.cancel()
        version = self._current.version
        logger.info("App startup completed for version %s", version)
        self.configuration.last_known_good_version = version
        self._switch_worker.submit(self._remove_unused)

    def _remove_unused(self) -> None:
        live = {self._current.version}
        if self._pending is not None:
            live.add(self._pending.version)
        retained = set(live)
        last_known_good = self.configuration.last_known_good_version
        if last_known_good is not None:
            retained.add(last_known_good)
        try:
            self.manager.remove_all_downloaded_asset_bundles_except_for_version(
                self._current.version, also_keep=retained
            )
            for version in self.store.serving_versions():
                if version not in live:
                    self.store.remove_serving_version(version)
        except StorageError as exc:
            logger.error("Could not remove unused versions: %s", exc)

    def _on_deadline_fired(self, generation: int) -> None:
        if self._closed:
            return
        try:
            self._switch_worker.submit(self._revert, generation)
        except RuntimeError:
            logger.debug("Startup deadline fired after shutdown, ignoring")

    def _bundle_for_version(self, version: str) -> Optional[AssetBundle]:
        if version == self.manager.initial_bundle.version:
            return self.manager.initial_bundle
        return self.manager.downloaded_asset_bundle_with_version(version)

    def _revert(self, generation: int) -> None:
        # Startup confirmation or a newer activation queued ahead of us wins.
        if not self._deadline.expire(generation):
            logger.debug("Startup deadline %d was superseded, not reverting", generation)
            return

        failed = self._current.version
        logger.warning("Reverting from version %s", failed)
        self.configuration.add_blacklisted_version(failed)

        fallback: Optional[AssetBundle] = None
        last_known_good = self.configuration.last_known_good_version
        if last_known_good is not None and last_known_good != failed:
            fallback = self._bundle_for_version(last_known_good)
        initial = self.manager.initial_bundle
        if fallback is None and self._current is not initial:
            fallback = initial

        if fallback is None:
            logger.warning("No suitable version to revert to.")
            self._no_safe_fallback = True
            return

        logger.info("Reverting to: %s", fallback.version)
        self._pending = fallback
        try:
            self._activate()
        except MaterializationError:
            logger.error("Could not revert to version %s", fallback.version)
