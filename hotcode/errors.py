"""Error taxonomy and exit code mapping for CLI."""

from __future__ import annotations


class HotCodeError(Exception):
    """Base error for deterministic CLI exit codes."""

    exit_code: int = 1


class ManifestFetchError(HotCodeError):
    """Manifest could not be fetched or parsed. The caller may retry later."""

    exit_code = 4


class MalformedManifest(ManifestFetchError):
    """Manifest document is not valid or lacks required fields."""


class AssetVerificationError(HotCodeError):
    """A referenced file failed to download or did not match its hash."""

    exit_code = 4


class StorageError(HotCodeError):
    """Filesystem or I/O failure."""

    exit_code = 3


class ConfigMissing(HotCodeError):
    """Required configuration (e.g. the root URL) is not set."""

    exit_code = 2


class MaterializationError(HotCodeError):
    """A bundle could not be organized into a serving directory."""

    exit_code = 3


def exit_code_for_exception(exc: BaseException) -> int:
    """Resolve a deterministic exit code for an exception."""
    if isinstance(exc, HotCodeError):
        return exc.exit_code
    if isinstance(exc, OSError):
        return StorageError.exit_code
    if isinstance(exc, ValueError):
        return ConfigMissing.exit_code
    return HotCodeError.exit_code
