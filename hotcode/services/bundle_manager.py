"""Bundle manager - manifest retrieval, selective download and verification."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
import hashlib
import logging
from pathlib import Path, PurePosixPath
from threading import Lock
from typing import Callable, Iterable, Optional

from hotcode.core.bundle import INDEX_URL_PATH, Asset, AssetBundle, parse_runtime_config
from hotcode.core.manifest import Manifest, parse_manifest
from hotcode.errors import (
    AssetVerificationError,
    HotCodeError,
    MalformedManifest,
    ManifestFetchError,
    StorageError,
)
from hotcode.infrastructure.bundle_store import BundleStore, StoredVersion
from hotcode.infrastructure.http import FetchError, Fetcher, add_query_parameter, join_url
from hotcode.infrastructure.staging import StagingDirectory
from hotcode.settings import Settings

logger = logging.getLogger(__name__)

MANIFEST_URL_PATH = "manifest.json"

ShouldDownload = Callable[[Manifest], bool]
FinishedCallback = Callable[["DownloadResult"], None]
ErrorCallback = Callable[[HotCodeError], None]


class DownloadStatus(str, Enum):
    """Outcome of a check for updates."""

    DOWNLOADED = "DOWNLOADED"
    ALREADY_DOWNLOADED = "ALREADY_DOWNLOADED"
    SKIPPED = "SKIPPED"
    FAILED = "FAILED"


@dataclass(frozen=True)
class DownloadResult:
    status: DownloadStatus
    version: Optional[str] = None
    bundle: Optional[AssetBundle] = None
    error: Optional[HotCodeError] = None
    reason: Optional[str] = None

    @property
    def has_bundle(self) -> bool:
        return self.bundle is not None and self.status in (
            DownloadStatus.DOWNLOADED,
            DownloadStatus.ALREADY_DOWNLOADED,
        )


def _safe_relative_path(file_path: str) -> Path:
    relative = PurePosixPath(file_path)
    if relative.is_absolute() or ".." in relative.parts or not relative.parts:
        raise AssetVerificationError(f"Invalid asset file path: {file_path}")
    return Path(*relative.parts)


class BundleManager:
    """Owns the downloaded bundle versions and the download protocol."""

    def __init__(
        self,
        initial_bundle: AssetBundle,
        store: BundleStore,
        *,
        fetcher: Fetcher,
        settings: Optional[Settings] = None,
        on_finished: Optional[FinishedCallback] = None,
        on_error: Optional[ErrorCallback] = None,
    ) -> None:
        self.initial_bundle = initial_bundle
        self.store = store
        self._fetcher = fetcher
        self._settings = settings or Settings()
        self._on_finished = on_finished
        self._on_error = on_error
        self._lock = Lock()
        self._check_lock = Lock()
        self._downloaded: dict[str, AssetBundle] = {}
        self._load_downloaded_bundles()

    def _load_downloaded_bundles(self) -> None:
        stored = {entry.version: entry for entry in self.store.stored_versions()}
        loaded: dict[str, Optional[AssetBundle]] = {}

        def resolve(entry: StoredVersion, seen: frozenset[str]) -> Optional[AssetBundle]:
            if entry.version in loaded:
                return loaded[entry.version]
            parent: Optional[AssetBundle] = None
            parent_version = entry.parent_version
            if parent_version == self.initial_bundle.version:
                parent = self.initial_bundle
            elif parent_version is not None:
                parent_entry = stored.get(parent_version)
                if parent_entry is None or parent_version in seen:
                    logger.warning(
                        "Skipping downloaded version %s: parent version %s is not available",
                        entry.version,
                        parent_version,
                    )
                    loaded[entry.version] = None
                    return None
                parent = resolve(parent_entry, seen | {entry.version})
                if parent is None:
                    loaded[entry.version] = None
                    return None
            try:
                bundle = AssetBundle.load(entry.directory, parent, platform=self._settings.platform)
            except (MalformedManifest, ValueError) as exc:
                logger.warning("Skipping downloaded version %s: %s", entry.version, exc)
                loaded[entry.version] = None
                return None
            loaded[entry.version] = bundle
            return bundle

        for entry in stored.values():
            resolve(entry, frozenset())

        with self._lock:
            self._downloaded = {
                version: bundle for version, bundle in loaded.items() if bundle is not None
            }
        logger.info("Loaded %d downloaded bundle(s) from %s", len(self._downloaded), self.store.versions_dir)

    def downloaded_asset_bundle_with_version(self, version: str) -> Optional[AssetBundle]:
        with self._lock:
            return self._downloaded.get(version)

    def downloaded_versions(self) -> list[str]:
        with self._lock:
            return sorted(self._downloaded)

    def check_for_updates(
        self,
        base_url: str,
        *,
        current_bundle: AssetBundle,
        should_download: ShouldDownload,
        expected_app_id: Optional[str] = None,
    ) -> DownloadResult:
        """Fetch the manifest at base_url and download the version it names.

        Only one check runs at a time; a concurrent call returns SKIPPED.
        Failures are returned as FAILED results, never raised.
        """
        if not self._check_lock.acquire(blocking=False):
            logger.info("Update check already in progress")
            return DownloadResult(status=DownloadStatus.SKIPPED, reason="busy")
        try:
            result = self._check_for_updates(base_url, current_bundle, should_download, expected_app_id)
        finally:
            self._check_lock.release()

        if result.error is not None:
            if self._on_error is not None:
                self._on_error(result.error)
        elif result.has_bundle and self._on_finished is not None:
            self._on_finished(result)
        return result

    def _check_for_updates(
        self,
        base_url: str,
        current_bundle: AssetBundle,
        should_download: ShouldDownload,
        expected_app_id: Optional[str],
    ) -> DownloadResult:
        manifest_url = join_url(base_url, MANIFEST_URL_PATH)
        try:
            response = self._fetcher.get(manifest_url)
            manifest = parse_manifest(response.body, platform=self._settings.platform)
        except FetchError as exc:
            return self._failed(None, ManifestFetchError(f"Error downloading asset manifest: {exc}"))
        except ManifestFetchError as exc:
            return self._failed(None, exc)

        version = manifest.version
        logger.info("Downloaded asset manifest for version %s", version)

        if not should_download(manifest):
            return DownloadResult(status=DownloadStatus.SKIPPED, version=version, reason="policy")

        if version == self.initial_bundle.version:
            logger.info("Version %s is the packaged bundle, nothing to download", version)
            return DownloadResult(
                status=DownloadStatus.ALREADY_DOWNLOADED, version=version, bundle=self.initial_bundle
            )

        existing = self.downloaded_asset_bundle_with_version(version)
        if existing is not None:
            logger.info("Version %s was downloaded before", version)
            return DownloadResult(status=DownloadStatus.ALREADY_DOWNLOADED, version=version, bundle=existing)

        try:
            bundle = self._download(base_url, manifest, response.body, current_bundle, expected_app_id)
        except (AssetVerificationError, StorageError) as exc:
            return self._failed(version, exc)

        with self._lock:
            self._downloaded[version] = bundle
        logger.info("Finished downloading version %s", version)
        return DownloadResult(status=DownloadStatus.DOWNLOADED, version=version, bundle=bundle)

    def _failed(self, version: Optional[str], error: HotCodeError) -> DownloadResult:
        logger.warning("Download failure%s: %s", f" for version {version}" if version else "", error)
        return DownloadResult(status=DownloadStatus.FAILED, version=version, error=error)

    def _download(
        self,
        base_url: str,
        manifest: Manifest,
        raw_manifest: bytes,
        current_bundle: AssetBundle,
        expected_app_id: Optional[str],
    ) -> AssetBundle:
        final_dir = self.store.version_directory(manifest.version)
        with StagingDirectory(final_dir, replace=True) as staging:
            prospective = AssetBundle.build(staging.path, manifest, parent=current_bundle)
            missing = sorted(prospective.own_assets.values(), key=lambda asset: asset.url_path)
            logger.info(
                "Downloading %d asset(s) for version %s (%d reused from version %s)",
                len(missing),
                manifest.version,
                len(manifest.entries) + 1 - len(missing),
                current_bundle.version,
            )
            for asset in missing:
                self._download_asset(base_url, asset, staging.path)
            self._verify_runtime_config(staging.path / prospective.index_asset.file_path, manifest, expected_app_id)
            self.store.write_manifest(staging.path, raw_manifest)
            self.store.write_metadata(staging.path, manifest.version, current_bundle.version)

        return AssetBundle.build(final_dir, manifest, parent=current_bundle)

    def _asset_url(self, base_url: str, asset: Asset) -> str:
        if asset.url_path == INDEX_URL_PATH:
            return join_url(base_url, "")
        url = join_url(base_url, asset.url_path.lstrip("/"))
        # Keeps the server from answering a missing file with the index page.
        return add_query_parameter(url, "meteor_dont_serve_index", "true")

    def _download_asset(self, base_url: str, asset: Asset, directory: Path) -> None:
        url = self._asset_url(base_url, asset)
        try:
            response = self._fetcher.get(url)
        except FetchError as exc:
            raise AssetVerificationError(f"Error downloading asset {asset.url_path}: {exc}") from exc

        if asset.hash is not None:
            digest = hashlib.new(self._settings.hash_algorithm, response.body).hexdigest()
            if digest.lower() != asset.hash.lower():
                raise AssetVerificationError(
                    f"Hash mismatch for asset {asset.url_path}: expected {asset.hash}, got {digest}"
                )

        target = directory / _safe_relative_path(asset.file_path)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(response.body)
        except OSError as exc:
            raise StorageError(f"Could not write asset {asset.url_path} to {target}: {exc}") from exc

    def _verify_runtime_config(
        self, index_file: Path, manifest: Manifest, expected_app_id: Optional[str]
    ) -> None:
        try:
            document = index_file.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            raise AssetVerificationError(f"Could not read downloaded index file: {exc}") from exc
        config = parse_runtime_config(document)
        if config is None:
            raise AssetVerificationError("Could not find runtime config in downloaded index file")
        if config.autoupdate_version is not None and config.autoupdate_version != manifest.version:
            raise AssetVerificationError(
                f"Version mismatch for index page, expected: {manifest.version}, "
                f"actual: {config.autoupdate_version}"
            )
        if not config.root_url:
            raise AssetVerificationError("Could not find ROOT_URL in downloaded asset bundle")
        if expected_app_id is not None and config.app_id != expected_app_id:
            raise AssetVerificationError(
                f"appId in downloaded asset bundle does not match current appId. "
                f"Expected: {expected_app_id}, actual: {config.app_id}"
            )

    def reset(self) -> None:
        """Forget and delete every downloaded version and serving directory."""
        with self._lock:
            self._downloaded.clear()
        self.store.wipe()
        self.store.ensure_directories()

    def remove_all_downloaded_asset_bundles_except_for_version(
        self, keep: str, *, also_keep: Iterable[str] = ()
    ) -> list[str]:
        """Delete downloaded versions other than ``keep`` and its ancestors.

        Versions in ``also_keep`` are retained along with their ancestors too.

        The packaged initial bundle lives outside the versions directory and is
        never touched. Returns the removed versions.
        """
        retained: set[str] = set()
        with self._lock:
            for version in (keep, *also_keep):
                retained.add(version)
                bundle = self._downloaded.get(version)
                if bundle is not None:
                    retained.update(ancestor.version for ancestor in bundle.ancestors())

        removed: list[str] = []
        for stored in self.store.stored_versions():
            if stored.version in retained:
                continue
            self.store.remove_version(stored.version)
            removed.append(stored.version)

        with self._lock:
            for version in list(self._downloaded):
                if version not in retained:
                    self._downloaded.pop(version)
                    if version not in removed:
                        removed.append(version)
        if removed:
            logger.info("Removed downloaded version(s): %s", ", ".join(sorted(removed)))
        return sorted(removed)
