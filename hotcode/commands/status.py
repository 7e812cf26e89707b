"""Status command - report persisted rollout state and stored versions."""

from __future__ import annotations

from argparse import Namespace

from hotcode.commands.output import emit_output
from hotcode.core.bundle import AssetBundle
from hotcode.infrastructure.bundle_store import BundleStore
from hotcode.infrastructure.configuration import RolloutConfiguration


def collect_status(
    *,
    initial_bundle: AssetBundle,
    configuration: RolloutConfiguration,
    store: BundleStore,
) -> dict[str, object]:
    """Read-only view of what would be served on the next start."""
    state = configuration.snapshot()
    return {
        "initial_version": initial_bundle.version,
        "last_seen_initial_version": state.last_seen_initial_version,
        "last_downloaded_version": state.last_downloaded_version,
        "last_known_good_version": state.last_known_good_version,
        "blacklisted_versions": sorted(state.blacklisted_versions),
        "root_url": state.root_url,
        "app_id": state.app_id,
        "compatibility_version": state.compatibility_version,
        "downloaded_versions": [entry.version for entry in store.stored_versions()],
        "serving_versions": store.serving_versions(),
    }


def run_status(
    args: Namespace,
    *,
    initial_bundle: AssetBundle,
    configuration: RolloutConfiguration,
    store: BundleStore,
    output_sink=print,
) -> int:
    payload = collect_status(initial_bundle=initial_bundle, configuration=configuration, store=store)
    emit_output(
        command="status",
        payload=payload,
        json_output=getattr(args, "json", False),
        output_sink=output_sink,
    )
    return 0
