"""Version manifest model and parser."""

from __future__ import annotations

from dataclasses import dataclass
import json
from pathlib import Path
from typing import Any, Optional

from hotcode.errors import MalformedManifest

SUPPORTED_FORMAT = "web-program-pre1"
MANIFEST_FILENAME = "program.json"


@dataclass(frozen=True)
class ManifestEntry:
    """One asset descriptor from a version manifest."""

    url_path: str
    file_path: str
    file_type: str
    cacheable: bool
    hash: Optional[str] = None
    source_map_file_path: Optional[str] = None
    source_map_url_path: Optional[str] = None


@dataclass(frozen=True)
class Manifest:
    version: str
    entries: tuple[ManifestEntry, ...]
    compatibility_version: Optional[str] = None


def remove_query_string(url_path: str) -> str:
    return url_path.split("?", 1)[0]


def _optional_str(value: Any, field: str) -> Optional[str]:
    if value is None:
        return None
    if not isinstance(value, str):
        raise MalformedManifest(f"Manifest field {field} must be a string")
    return value


def _parse_entry(raw: Any, index: int) -> Optional[ManifestEntry]:
    if not isinstance(raw, dict):
        raise MalformedManifest(f"Manifest entry {index} is not an object")
    # Server-only entries are never served to the client.
    if raw.get("where", "client") != "client":
        return None

    file_path = raw.get("path")
    url_path = raw.get("url")
    if not isinstance(file_path, str) or not file_path:
        raise MalformedManifest(f"Manifest entry {index} missing path")
    if not isinstance(url_path, str) or not url_path:
        raise MalformedManifest(f"Manifest entry {index} missing url")

    return ManifestEntry(
        url_path=url_path,
        file_path=file_path,
        file_type=str(raw.get("type") or ""),
        cacheable=bool(raw.get("cacheable", False)),
        hash=_optional_str(raw.get("hash"), f"manifest[{index}].hash"),
        source_map_file_path=_optional_str(raw.get("sourceMap"), f"manifest[{index}].sourceMap"),
        source_map_url_path=_optional_str(raw.get("sourceMapUrl"), f"manifest[{index}].sourceMapUrl"),
    )


def _compatibility_version(payload: dict, platform: str) -> Optional[str]:
    versions = payload.get("cordovaCompatibilityVersions")
    if isinstance(versions, dict):
        value = versions.get(platform)
        if value is not None:
            return str(value)
    value = payload.get("compatibilityVersion")
    return str(value) if value is not None else None


def parse_manifest(raw: str | bytes, *, platform: str = "android") -> Manifest:
    """Parse a manifest document.

    Args:
        raw: JSON text of the manifest
        platform: Key used to pick the native compatibility marker

    Returns:
        Parsed Manifest with client entries in document order

    Raises:
        MalformedManifest: If the document is not valid JSON or lacks
            required fields
    """
    try:
        payload = json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise MalformedManifest(f"Manifest is not valid JSON: {exc}") from exc
    if not isinstance(payload, dict):
        raise MalformedManifest("Manifest must be a JSON object")

    fmt = payload.get("format")
    if fmt is not None and fmt != SUPPORTED_FORMAT:
        raise MalformedManifest(f"The asset manifest format is incompatible: {fmt}")

    version = payload.get("version")
    if not isinstance(version, str) or not version:
        raise MalformedManifest("Asset manifest does not have a version")

    raw_entries = payload.get("manifest", [])
    if not isinstance(raw_entries, list):
        raise MalformedManifest("Manifest entries must be a list")

    entries: list[ManifestEntry] = []
    for index, raw_entry in enumerate(raw_entries):
        entry = _parse_entry(raw_entry, index)
        if entry is not None:
            entries.append(entry)

    return Manifest(
        version=version,
        entries=tuple(entries),
        compatibility_version=_compatibility_version(payload, platform),
    )


def load_manifest(directory: Path, *, platform: str = "android") -> Manifest:
    """Read and parse the program.json stored in a bundle directory."""
    path = directory / MANIFEST_FILENAME
    try:
        raw = path.read_bytes()
    except OSError as exc:
        raise MalformedManifest(f"Error loading asset manifest {path}: {exc}") from exc
    return parse_manifest(raw, platform=platform)
