"""Organize a bundle chain into a flat directory the view can serve."""

from __future__ import annotations

import logging
import os
import shutil
from pathlib import Path, PurePosixPath

from hotcode.core.bundle import INDEX_FILE_PATH, INDEX_URL_PATH, Asset, AssetBundle
from hotcode.core.shim import inject_shim
from hotcode.errors import MaterializationError, StorageError
from hotcode.infrastructure.staging import StagingDirectory
from hotcode.settings import Settings

logger = logging.getLogger(__name__)

ENTRY_DOCUMENT_PATHS = frozenset({INDEX_URL_PATH, "/index.html"})


def serving_path_for(url_path: str) -> PurePosixPath:
    """Map a url path to its location relative to the serving directory.

    Raises:
        MaterializationError: If the path would land outside the directory
    """
    if url_path == INDEX_URL_PATH:
        return PurePosixPath(INDEX_FILE_PATH)
    relative = PurePosixPath(url_path.lstrip("/"))
    if not relative.parts or ".." in relative.parts or relative.is_absolute():
        raise MaterializationError(f"Refusing to materialize unsafe path: {url_path}")
    return relative


def _collect_assets(bundle: AssetBundle) -> dict[PurePosixPath, tuple[AssetBundle, Asset]]:
    """Resolve every servable path to the bundle that owns it, newest first."""
    by_url: dict[str, tuple[AssetBundle, Asset]] = {}
    for owner in bundle.chain():
        for url_path, asset in owner.own_assets.items():
            by_url.setdefault(url_path, (owner, asset))

    placed: dict[PurePosixPath, tuple[AssetBundle, Asset]] = {}
    for url_path in sorted(by_url):
        placed[serving_path_for(url_path)] = by_url[url_path]
    # The root entry document wins over an explicit /index.html.
    placed[PurePosixPath(INDEX_FILE_PATH)] = by_url[INDEX_URL_PATH]
    return placed


def _link_or_copy(source: Path, destination: Path) -> None:
    try:
        os.link(source, destination)
    except OSError:
        shutil.copy2(source, destination)


def _write_entry_document(source: Path, destination: Path, plugin_name: str) -> None:
    document = source.read_text(encoding="utf-8")
    destination.write_text(inject_shim(document, plugin_name), encoding="utf-8")


def materialize_bundle(
    bundle: AssetBundle,
    target: Path,
    *,
    plugin_name: str = Settings.plugin_name,
) -> Path:
    """Place the full asset set of ``bundle`` under ``target``.

    Files are hard linked where possible and copied otherwise. Entry
    documents get the compatibility shim. The directory is assembled beside
    ``target`` and swapped in only once complete.

    Args:
        bundle: Bundle whose chain should be materialized
        target: Serving directory for the bundle's version
        plugin_name: Host plugin name the shim proxies to

    Returns:
        The target directory

    Raises:
        MaterializationError: If a non source-map file is missing or cannot
            be placed
    """
    placed = _collect_assets(bundle)
    logger.info("Materializing version %s into %s (%d files)", bundle.version, target, len(placed))
    try:
        target.parent.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise MaterializationError(f"Could not create serving root {target.parent}: {exc}") from exc

    try:
        with StagingDirectory(target, replace=True) as staging:
            for relative, (owner, asset) in placed.items():
                source = owner.file_for(asset)
                destination = staging.path.joinpath(*relative.parts)
                if not source.is_file():
                    if asset.is_source_map:
                        logger.debug("Skipping missing source map %s", source)
                        continue
                    raise MaterializationError(
                        f"Missing file {source} for {asset.url_path} in version {owner.version}"
                    )
                try:
                    destination.parent.mkdir(parents=True, exist_ok=True)
                    if asset.url_path in ENTRY_DOCUMENT_PATHS:
                        _write_entry_document(source, destination, plugin_name)
                    else:
                        _link_or_copy(source, destination)
                except (OSError, UnicodeDecodeError) as exc:
                    raise MaterializationError(
                        f"Could not place {asset.url_path} from {source}: {exc}"
                    ) from exc
    except StorageError as exc:
        raise MaterializationError(f"Could not materialize version {bundle.version}: {exc}") from exc
    return target
