"""Runtime settings for the update machinery."""

from __future__ import annotations

from dataclasses import dataclass
import json
import os
from pathlib import Path
from typing import Optional


_DEFAULT_STARTUP_TIMEOUT = 30.0
_DEFAULT_REQUEST_TIMEOUT = 10.0
_DEFAULT_PLATFORM = "android"
_DEFAULT_HASH_ALGORITHM = "sha1"
_DEFAULT_PLUGIN_NAME = "CapacitorMeteorWebApp"
_ALLOWED_PLATFORMS = {"android", "ios"}
_ALLOWED_HASH_ALGORITHMS = {"sha1", "sha256"}
_TRUTHY = {"1", "true", "yes", "on"}
_FALSY = {"0", "false", "no", "off"}


@dataclass(frozen=True)
class Settings:
    startup_timeout_seconds: float = _DEFAULT_STARTUP_TIMEOUT
    request_timeout_seconds: float = _DEFAULT_REQUEST_TIMEOUT
    enforce_compatibility_version: bool = True
    platform: str = _DEFAULT_PLATFORM
    hash_algorithm: str = _DEFAULT_HASH_ALGORITHM
    plugin_name: str = _DEFAULT_PLUGIN_NAME


def _parse_bool(value: object, name: str) -> bool:
    if isinstance(value, bool):
        return value
    lowered = str(value).strip().lower()
    if lowered in _TRUTHY:
        return True
    if lowered in _FALSY:
        return False
    raise ValueError(f"Invalid boolean for {name}: {value}")


def _parse_positive(value: object, name: str) -> float:
    try:
        number = float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        raise ValueError(f"Invalid number for {name}: {value}") from None
    if number <= 0:
        raise ValueError(f"{name} must be positive, got {value}")
    return number


def load_settings(path: Optional[Path]) -> Settings:
    """Load settings from JSON config file, with environment variable overrides.

    Priority order:
    1. Environment variables (HOTCODE_*)
    2. JSON config file
    3. Defaults

    Args:
        path: Path to JSON config file, or None to use defaults only

    Returns:
        Settings object with resolved values
    """
    json_settings = {}
    if path and path.exists():
        json_settings = json.loads(path.read_text())

    startup_timeout = _parse_positive(
        os.getenv("HOTCODE_STARTUP_TIMEOUT")
        or json_settings.get("startup_timeout_seconds", _DEFAULT_STARTUP_TIMEOUT),
        "startup_timeout_seconds",
    )
    request_timeout = _parse_positive(
        os.getenv("HOTCODE_REQUEST_TIMEOUT")
        or json_settings.get("request_timeout_seconds", _DEFAULT_REQUEST_TIMEOUT),
        "request_timeout_seconds",
    )
    enforce = _parse_bool(
        os.getenv("HOTCODE_ENFORCE_COMPATIBILITY")
        or json_settings.get("enforce_compatibility_version", True),
        "enforce_compatibility_version",
    )

    platform = os.getenv("HOTCODE_PLATFORM") or json_settings.get("platform", _DEFAULT_PLATFORM)
    if platform not in _ALLOWED_PLATFORMS:
        raise ValueError(f"Unsupported platform: {platform}")

    hash_algorithm = json_settings.get("hash_algorithm", _DEFAULT_HASH_ALGORITHM)
    if hash_algorithm not in _ALLOWED_HASH_ALGORITHMS:
        raise ValueError(f"Unsupported hash algorithm: {hash_algorithm}")

    plugin_name = json_settings.get("plugin_name", _DEFAULT_PLUGIN_NAME)

    return Settings(
        startup_timeout_seconds=startup_timeout,
        request_timeout_seconds=request_timeout,
        enforce_compatibility_version=enforce,
        platform=platform,
        hash_algorithm=hash_algorithm,
        plugin_name=plugin_name,
    )


def default_config_path() -> Path:
    return Path.home() / ".config" / "hotcode" / "settings.json"
