"""On-disk layout of downloaded and served bundle versions.

    <versions_dir>/<version>/program.json   manifest the bundle was built from
    <versions_dir>/<version>/bundle.json    {"version", "parentVersion"}
    <versions_dir>/<version>/...            own asset files
    <serving_dir>/<version>/...             materialized copy being served
"""

from __future__ import annotations

from dataclasses import dataclass
import json
import logging
from pathlib import Path
from typing import Optional

from hotcode.core.manifest import MANIFEST_FILENAME
from hotcode.errors import StorageError
from hotcode.infrastructure.staging import remove_tree

logger = logging.getLogger(__name__)

BUNDLE_METADATA_FILENAME = "bundle.json"


@dataclass(frozen=True)
class StoredVersion:
    version: str
    directory: Path
    parent_version: Optional[str]


def _is_valid_version_name(version: str) -> bool:
    return bool(version) and not version.startswith(".") and "/" not in version and "\\" not in version


class BundleStore:
    """Manages version directories under the versions and serving roots."""

    def __init__(self, versions_dir: Path, serving_dir: Path) -> None:
        self.versions_dir = versions_dir
        self.serving_dir = serving_dir

    def ensure_directories(self) -> None:
        for directory in (self.versions_dir, self.serving_dir):
            try:
                directory.mkdir(parents=True, exist_ok=True)
            except OSError as exc:
                raise StorageError(f"Could not create directory {directory}: {exc}") from exc

    def version_directory(self, version: str) -> Path:
        if not _is_valid_version_name(version):
            raise StorageError(f"Version is not usable as a directory name: {version!r}")
        return self.versions_dir / version

    def serving_directory(self, version: str) -> Path:
        if not _is_valid_version_name(version):
            raise StorageError(f"Version is not usable as a directory name: {version!r}")
        return self.serving_dir / version

    def write_metadata(self, directory: Path, version: str, parent_version: Optional[str]) -> None:
        payload = {"version": version, "parentVersion": parent_version}
        try:
            (directory / BUNDLE_METADATA_FILENAME).write_text(json.dumps(payload, sort_keys=True))
        except OSError as exc:
            raise StorageError(f"Could not write bundle metadata in {directory}: {exc}") from exc

    def write_manifest(self, directory: Path, raw_manifest: bytes) -> None:
        try:
            (directory / MANIFEST_FILENAME).write_bytes(raw_manifest)
        except OSError as exc:
            raise StorageError(f"Could not write manifest in {directory}: {exc}") from exc

    def stored_versions(self) -> list[StoredVersion]:
        """List complete version directories; staging leftovers are ignored."""
        if not self.versions_dir.is_dir():
            return []
        versions: list[StoredVersion] = []
        for directory in sorted(self.versions_dir.iterdir()):
            if not directory.is_dir() or directory.name.startswith("."):
                continue
            metadata_path = directory / BUNDLE_METADATA_FILENAME
            try:
                metadata = json.loads(metadata_path.read_text())
            except (OSError, json.JSONDecodeError) as exc:
                logger.warning("Skipping version directory %s without readable metadata: %s", directory, exc)
                continue
            version = metadata.get("version")
            if version != directory.name:
                logger.warning("Skipping version directory %s: metadata names %r", directory, version)
                continue
            versions.append(
                StoredVersion(
                    version=version,
                    directory=directory,
                    parent_version=metadata.get("parentVersion"),
                )
            )
        return versions

    def serving_versions(self) -> list[str]:
        if not self.serving_dir.is_dir():
            return []
        return sorted(
            directory.name
            for directory in self.serving_dir.iterdir()
            if directory.is_dir() and not directory.name.startswith(".")
        )

    def remove_version(self, version: str) -> None:
        remove_tree(self.version_directory(version))

    def remove_serving_version(self, version: str) -> None:
        remove_tree(self.serving_directory(version))

    def remove_leftovers(self) -> None:
        """Delete staging directories left behind by an interrupted run."""
        for root in (self.versions_dir, self.serving_dir):
            if not root.is_dir():
                continue
            for directory in root.iterdir():
                if directory.is_dir() and directory.name.startswith("."):
                    logger.info("Removing leftover staging directory %s", directory)
                    remove_tree(directory)

    def wipe(self) -> None:
        """Remove every downloaded and served version."""
        remove_tree(self.versions_dir)
        remove_tree(self.serving_dir)
