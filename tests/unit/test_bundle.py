"""Unit tests for asset bundle construction and parent-chain resolution."""

from __future__ import annotations

from pathlib import Path

import pytest

from hotcode.core.bundle import (
    INDEX_URL_PATH,
    Asset,
    AssetBundle,
    parse_runtime_config,
)
from hotcode.core.manifest import parse_manifest
from tests.helpers.bundles import APP_ID, ROOT_URL, index_html, program_json, write_packaged_bundle


def _manifest(version: str, files, **kwargs):
    return parse_manifest(program_json(version, files, **kwargs))


def _bundle(directory: Path, version: str, files, parent=None, **kwargs) -> AssetBundle:
    return AssetBundle.build(directory / version, _manifest(version, files, **kwargs), parent=parent)


def test_build_without_parent_owns_every_entry(tmp_path: Path) -> None:
    bundle = _bundle(
        tmp_path,
        "v0",
        {"/a.js": ("a.js", b"a"), "/b.css": ("b.css", b"b")},
        source_maps={"/a.js": ("a.js.map", b"{}")},
    )

    assert set(bundle.own_assets) == {"/a.js", "/b.css", "/a.js.map", INDEX_URL_PATH}
    source_map = bundle.own_assets["/a.js.map"]
    assert source_map.file_type == "json"
    assert source_map.cacheable is True
    assert source_map.hash is None
    index = bundle.index_asset
    assert index.file_path == "index.html"
    assert index.file_type == "html"
    assert index.cacheable is False


def test_query_string_is_stripped_from_url_paths(tmp_path: Path) -> None:
    bundle = _bundle(tmp_path, "v0", {"/a.js": ("a.js", b"a")})
    assert "/a.js" in bundle.own_assets
    assert bundle.asset_for_url_path("/a.js").file_path == "a.js"


def test_incremental_bundle_owns_only_changed_assets(tmp_path: Path) -> None:
    v1 = _bundle(tmp_path, "v1", {"/a.js": ("a.js", b"same"), "/b.js": ("b.js", b"old")})
    v2 = _bundle(tmp_path, "v2", {"/a.js": ("a.js", b"same"), "/b.js": ("b.js", b"new")}, parent=v1)

    assert set(v2.own_assets) == {"/b.js", INDEX_URL_PATH}
    assert v2.asset_for_url_path("/a.js") is v1.own_assets["/a.js"]
    assert v2.owner_of("/a.js") is v1
    assert v2.owner_of("/b.js") is v2
    assert v2.file_for(v2.asset_for_url_path("/b.js")) == tmp_path / "v2" / "b.js"


def test_index_is_always_owned(tmp_path: Path) -> None:
    v1 = _bundle(tmp_path, "v1", {"/a.js": ("a.js", b"a")})
    v2 = _bundle(tmp_path, "v2", {"/a.js": ("a.js", b"a")}, parent=v1)
    assert set(v2.own_assets) == {INDEX_URL_PATH}


def test_three_level_chain_resolution(tmp_path: Path) -> None:
    v0 = _bundle(tmp_path, "v0", {"/x.js": ("x.js", b"x0"), "/y.js": ("y.js", b"y0"), "/z.js": ("z.js", b"z0")})
    v1 = _bundle(tmp_path, "v1", {"/x.js": ("x.js", b"x0"), "/y.js": ("y.js", b"y1"), "/z.js": ("z.js", b"z0")}, parent=v0)
    v2 = _bundle(tmp_path, "v2", {"/x.js": ("x.js", b"x0"), "/y.js": ("y.js", b"y1"), "/z.js": ("z.js", b"z2")}, parent=v1)

    assert v2.owner_of("/x.js") is v0
    assert v2.owner_of("/y.js") is v1
    assert v2.owner_of("/z.js") is v2
    assert v2.asset_for_url_path("/missing.js") is None
    assert [bundle.version for bundle in v2.ancestors()] == ["v1", "v0"]
    assert [bundle.version for bundle in v2.chain()] == ["v2", "v1", "v0"]


def test_reverted_asset_is_not_reused_from_shadowed_ancestor(tmp_path: Path) -> None:
    v0 = _bundle(tmp_path, "v0", {"/a.js": ("a.js", b"first")})
    v1 = _bundle(tmp_path, "v1", {"/a.js": ("a.js", b"second")}, parent=v0)
    v2 = _bundle(tmp_path, "v2", {"/a.js": ("a.js", b"first")}, parent=v1)

    assert "/a.js" in v2.own_assets


def test_parent_source_map_is_reused(tmp_path: Path) -> None:
    files = {"/a.js": ("a.js", b"a")}
    maps = {"/a.js": ("a.js.map", b"{}")}
    v1 = _bundle(tmp_path, "v1", files, source_maps=maps)
    v2 = _bundle(tmp_path, "v2", files, parent=v1, source_maps=maps)

    assert "/a.js.map" not in v2.own_assets
    assert v2.owner_of("/a.js.map") is v1


def _single_asset_bundle(tmp_path: Path, asset: Asset) -> AssetBundle:
    index = Asset(file_path="index.html", url_path=INDEX_URL_PATH, file_type="html", cacheable=False)
    return AssetBundle(tmp_path, "v0", {asset.url_path: asset, INDEX_URL_PATH: index})


def test_cache_rule_matches_on_equal_hash(tmp_path: Path) -> None:
    asset = Asset(file_path="a.js", url_path="/a.js", file_type="js", cacheable=False, hash="h1")
    bundle = _single_asset_bundle(tmp_path, asset)

    assert bundle.cached_asset_for_url_path("/a.js", "h1") is asset
    assert bundle.cached_asset_for_url_path("/a.js", "h2") is None
    assert bundle.cached_asset_for_url_path("/a.js", None) is None
    assert bundle.cached_asset_for_url_path("/other.js", "h1") is None


def test_cache_rule_cacheable_without_hash(tmp_path: Path) -> None:
    asset = Asset(file_path="a.js.map", url_path="/a.js.map", file_type="json", cacheable=True)
    bundle = _single_asset_bundle(tmp_path, asset)

    assert bundle.cached_asset_for_url_path("/a.js.map", None) is asset
    # An asset without a hash can never satisfy a hash-based lookup.
    assert bundle.cached_asset_for_url_path("/a.js.map", "h1") is None


def test_cached_asset_in_chain_uses_nearest_owner(tmp_path: Path) -> None:
    v0 = _bundle(tmp_path, "v0", {"/a.js": ("a.js", b"first")})
    v1 = _bundle(tmp_path, "v1", {"/a.js": ("a.js", b"second")}, parent=v0)
    first_hash = v0.own_assets["/a.js"].hash
    second_hash = v1.own_assets["/a.js"].hash

    assert v1.cached_asset_in_chain("/a.js", first_hash) is None
    assert v1.cached_asset_in_chain("/a.js", second_hash) is v1.own_assets["/a.js"]


def test_asset_identity_requires_hash() -> None:
    a = Asset(file_path="a.js", url_path="/a.js", file_type="js", cacheable=True, hash="h")
    b = Asset(file_path="b.js", url_path="/b.js", file_type="js", cacheable=True, hash="h")
    c = Asset(file_path="c.js", url_path="/c.js", file_type="js", cacheable=True)

    assert a.is_identical_to(b)
    assert not c.is_identical_to(c)


def test_bundle_requires_entry_document(tmp_path: Path) -> None:
    asset = Asset(file_path="a.js", url_path="/a.js", file_type="js", cacheable=True)
    with pytest.raises(ValueError):
        AssetBundle(tmp_path, "v0", {"/a.js": asset})


def test_runtime_config_is_read_from_index(tmp_path: Path) -> None:
    directory = write_packaged_bundle(tmp_path / "v0", "v0", {"/a.js": ("a.js", b"a")})
    bundle = AssetBundle.load(directory)

    assert bundle.version == "v0"
    assert bundle.app_id == APP_ID
    assert bundle.root_url == ROOT_URL
    assert bundle.runtime_config.autoupdate_version == "v0"
    assert bundle.compatibility_version == "1"


def test_runtime_config_soft_fails(tmp_path: Path) -> None:
    directory = write_packaged_bundle(
        tmp_path / "v0", "v0", {"/a.js": ("a.js", b"a")}, index=index_html("v0", with_config=False)
    )
    bundle = AssetBundle.load(directory)

    assert bundle.runtime_config is None
    assert bundle.app_id is None
    assert bundle.root_url is None


def test_parse_runtime_config_decodes_values() -> None:
    config = parse_runtime_config(index_html("v3", root_url="https://app.example", app_id="xyz").decode())

    assert config is not None
    assert config.root_url == "https://app.example"
    assert config.app_id == "xyz"
    assert config.autoupdate_version == "v3"
    assert parse_runtime_config("<html></html>") is None
