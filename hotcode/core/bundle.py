"""Asset bundle model: one version's servable files plus metadata.

A bundle only owns the assets that are new or changed relative to its parent;
everything else resolves through the parent chain. The chain is immutable and
always points at strictly older versions.
"""

from __future__ import annotations

from dataclasses import dataclass
import json
import logging
import re
import urllib.parse
from pathlib import Path
from typing import Iterator, Mapping, Optional

from hotcode.core.manifest import Manifest, load_manifest, remove_query_string

logger = logging.getLogger(__name__)

INDEX_URL_PATH = "/"
INDEX_FILE_PATH = "index.html"

_RUNTIME_CONFIG_PATTERN = re.compile(
    r'__meteor_runtime_config__ = JSON\.parse\(decodeURIComponent\("([^"]*)"\)\)'
)
_UNSET = object()


@dataclass(frozen=True)
class Asset:
    """Identity of one file within a bundle."""

    file_path: str
    url_path: str
    file_type: str
    cacheable: bool
    hash: Optional[str] = None
    source_map_url_path: Optional[str] = None

    def is_identical_to(self, other: "Asset") -> bool:
        return self.hash is not None and self.hash == other.hash

    @property
    def is_source_map(self) -> bool:
        return self.url_path.endswith(".map") or self.file_path.endswith(".map")


@dataclass(frozen=True)
class RuntimeConfig:
    """Bundle-level configuration embedded in the entry document."""

    values: Mapping[str, object]

    @property
    def app_id(self) -> Optional[str]:
        return self._str("appId")

    @property
    def root_url(self) -> Optional[str]:
        return self._str("ROOT_URL")

    @property
    def autoupdate_version(self) -> Optional[str]:
        return self._str("autoupdateVersionCordova")

    def _str(self, key: str) -> Optional[str]:
        value = self.values.get(key)
        return str(value) if value is not None else None


def parse_runtime_config(document: str) -> Optional[RuntimeConfig]:
    """Extract the runtime config from entry document text, or None."""
    match = _RUNTIME_CONFIG_PATTERN.search(document)
    if not match:
        return None
    try:
        payload = json.loads(urllib.parse.unquote(match.group(1)))
    except json.JSONDecodeError as exc:
        logger.warning("Error parsing runtime config: %s", exc)
        return None
    if not isinstance(payload, dict):
        return None
    return RuntimeConfig(values=payload)


def load_runtime_config(index_file: Path) -> Optional[RuntimeConfig]:
    try:
        document = index_file.read_text(encoding="utf-8")
    except OSError as exc:
        logger.warning("Error loading index file %s: %s", index_file, exc)
        return None
    config = parse_runtime_config(document)
    if config is None:
        logger.warning("Could not find runtime config in index file %s", index_file)
    return config


class AssetBundle:
    """One version's asset set on durable storage."""

    def __init__(
        self,
        directory: Path,
        version: str,
        own_assets: Mapping[str, Asset],
        *,
        parent: Optional["AssetBundle"] = None,
        compatibility_version: Optional[str] = None,
        manifest: Optional[Manifest] = None,
    ) -> None:
        if INDEX_URL_PATH not in own_assets:
            raise ValueError(f"Bundle {version} has no entry document asset")
        self.directory = directory
        self.version = version
        self.parent = parent
        self.compatibility_version = compatibility_version
        self.manifest = manifest
        self._own_assets = dict(own_assets)
        self._runtime_config: object = _UNSET

    @classmethod
    def build(
        cls,
        directory: Path,
        manifest: Manifest,
        parent: Optional["AssetBundle"] = None,
    ) -> "AssetBundle":
        """Build a bundle from a manifest, reusing unchanged assets of the parent.

        An entry only becomes an own asset if the asset the parent resolves at
        the same path is not a cache hit for the entry's hash. The entry
        document is always owned, since it is regenerated for every version.
        """
        own: dict[str, Asset] = {}
        for entry in manifest.entries:
            url_path = remove_query_string(entry.url_path)
            if parent is None or parent.cached_asset_in_chain(url_path, entry.hash) is None:
                own[url_path] = Asset(
                    file_path=entry.file_path,
                    url_path=url_path,
                    file_type=entry.file_type,
                    cacheable=entry.cacheable,
                    hash=entry.hash,
                    source_map_url_path=entry.source_map_url_path,
                )

            if entry.source_map_file_path and entry.source_map_url_path:
                map_path = remove_query_string(entry.source_map_url_path)
                if parent is None or parent.cached_asset_in_chain(map_path, None) is None:
                    own[map_path] = Asset(
                        file_path=entry.source_map_file_path,
                        url_path=map_path,
                        file_type="json",
                        cacheable=True,
                    )

        own[INDEX_URL_PATH] = Asset(
            file_path=INDEX_FILE_PATH,
            url_path=INDEX_URL_PATH,
            file_type="html",
            cacheable=False,
        )
        return cls(
            directory,
            manifest.version,
            own,
            parent=parent,
            compatibility_version=manifest.compatibility_version,
            manifest=manifest,
        )

    @classmethod
    def load(
        cls,
        directory: Path,
        parent: Optional["AssetBundle"] = None,
        *,
        platform: str = "android",
    ) -> "AssetBundle":
        """Load a bundle from the program.json stored in its directory."""
        logger.debug("Loading asset bundle from directory %s", directory)
        return cls.build(directory, load_manifest(directory, platform=platform), parent)

    @property
    def own_assets(self) -> Mapping[str, Asset]:
        return dict(self._own_assets)

    @property
    def index_asset(self) -> Asset:
        return self._own_assets[INDEX_URL_PATH]

    def ancestors(self) -> Iterator["AssetBundle"]:
        bundle = self.parent
        while bundle is not None:
            yield bundle
            bundle = bundle.parent

    def chain(self) -> Iterator["AssetBundle"]:
        """This bundle followed by its ancestors, newest first."""
        yield self
        yield from self.ancestors()

    def asset_for_url_path(self, url_path: str) -> Optional[Asset]:
        """Resolve a url path through own assets, then the parent chain."""
        for bundle in self.chain():
            asset = bundle._own_assets.get(url_path)
            if asset is not None:
                return asset
        logger.debug("Asset %s not found in bundle %s or its parents", url_path, self.version)
        return None

    def owner_of(self, url_path: str) -> Optional["AssetBundle"]:
        for bundle in self.chain():
            if url_path in bundle._own_assets:
                return bundle
        return None

    def cached_asset_for_url_path(self, url_path: str, hash: Optional[str]) -> Optional[Asset]:
        """Return an own asset that can stand in for (url_path, hash), if any."""
        asset = self._own_assets.get(url_path)
        if asset is None:
            return None
        # Non-cacheable assets only ever match on hash.
        if (asset.cacheable and hash is None) or (asset.hash is not None and asset.hash == hash):
            return asset
        return None

    def cached_asset_in_chain(self, url_path: str, hash: Optional[str]) -> Optional[Asset]:
        """Apply the cache rule to whichever bundle in the chain serves url_path.

        Only the nearest owner counts; an older ancestor's matching asset is
        shadowed by a changed asset in a newer bundle.
        """
        owner = self.owner_of(url_path)
        if owner is None:
            return None
        return owner.cached_asset_for_url_path(url_path, hash)

    def file_for(self, asset: Asset) -> Path:
        return self.directory / asset.file_path

    @property
    def runtime_config(self) -> Optional[RuntimeConfig]:
        if self._runtime_config is _UNSET:
            self._runtime_config = load_runtime_config(self.file_for(self.index_asset))
        return self._runtime_config  # type: ignore[return-value]

    @property
    def app_id(self) -> Optional[str]:
        config = self.runtime_config
        return config.app_id if config else None

    @property
    def root_url(self) -> Optional[str]:
        config = self.runtime_config
        return config.root_url if config else None

    def __repr__(self) -> str:
        return f"AssetBundle(version={self.version!r}, directory={str(self.directory)!r})"
