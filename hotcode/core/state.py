"""Rollout state records."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional


@dataclass(frozen=True)
class RolloutState:
    """Persisted rollout state, keyed in the settings store."""

    last_seen_initial_version: Optional[str] = None
    last_downloaded_version: Optional[str] = None
    last_known_good_version: Optional[str] = None
    blacklisted_versions: frozenset[str] = field(default_factory=frozenset)
    app_id: Optional[str] = None
    root_url: Optional[str] = None
    compatibility_version: Optional[str] = None


@dataclass(frozen=True)
class RolloutStatus:
    """Point-in-time view of the controller: Serving(current) plus pending."""

    current_version: str
    pending_version: Optional[str]
    last_known_good_version: Optional[str]
    blacklisted_versions: tuple[str, ...]
    awaiting_startup: bool
    no_safe_fallback: bool

    def to_dict(self) -> dict:
        return {
            "current_version": self.current_version,
            "pending_version": self.pending_version,
            "last_known_good_version": self.last_known_good_version,
            "blacklisted_versions": list(self.blacklisted_versions),
            "awaiting_startup": self.awaiting_startup,
            "no_safe_fallback": self.no_safe_fallback,
        }
