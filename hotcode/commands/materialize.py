"""Materialize command - write a bundle's servable tree to a directory."""

from __future__ import annotations

from argparse import Namespace
from pathlib import Path
from typing import Optional

from hotcode.commands.output import emit_output
from hotcode.core.bundle import AssetBundle
from hotcode.errors import ConfigMissing
from hotcode.services.bundle_manager import BundleManager
from hotcode.services.materializer import materialize_bundle
from hotcode.settings import Settings


def run_materialize(
    args: Namespace,
    *,
    manager: BundleManager,
    settings: Optional[Settings] = None,
    output_sink=print,
) -> int:
    """Materialize the packaged bundle, or a downloaded version, into args.target."""
    settings = settings or Settings()
    version = getattr(args, "version", None)
    bundle: Optional[AssetBundle]
    if version is None or version == manager.initial_bundle.version:
        bundle = manager.initial_bundle
    else:
        bundle = manager.downloaded_asset_bundle_with_version(version)
        if bundle is None:
            raise ConfigMissing(f"Version {version} has not been downloaded")

    target = Path(args.target).resolve()
    materialize_bundle(bundle, target, plugin_name=settings.plugin_name)
    files = sorted(
        path.relative_to(target).as_posix() for path in target.rglob("*") if path.is_file()
    )
    emit_output(
        command="materialize",
        payload={"version": bundle.version, "target": str(target), "files": len(files)},
        json_output=getattr(args, "json", False),
        output_sink=output_sink,
        human_lines=(f"materialize: version={bundle.version} target={target} files={len(files)}",),
    )
    return 0
