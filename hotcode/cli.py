"""Command-line interface for hotcode."""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from . import __version__ as HOTCODE_VERSION
from .settings import default_config_path


def _add_common_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--packaged-dir",
        type=Path,
        required=True,
        help="Directory of the bundle shipped with the app (contains program.json)",
    )
    parser.add_argument(
        "--state-dir",
        type=Path,
        required=True,
        help="Writable directory for state DB, downloaded and serving versions",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=default_config_path(),
        help="Settings path (default: ~/.config/hotcode/settings.json)",
    )
    parser.add_argument(
        "--json",
        action="store_true",
        help="Emit machine-readable JSON output",
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="hotcode",
        description="Client-side hot code push: fetch, verify, stage and activate web asset bundles",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"hotcode {HOTCODE_VERSION}",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Log at DEBUG level",
    )

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    status_parser = subparsers.add_parser(
        "status",
        help="Show persisted rollout state and stored versions",
    )
    _add_common_arguments(status_parser)

    check_parser = subparsers.add_parser(
        "check",
        help="Check the server for a new version and download it",
    )
    _add_common_arguments(check_parser)
    check_parser.add_argument(
        "--reload",
        action="store_true",
        help="Switch to the downloaded version right away",
    )

    materialize_parser = subparsers.add_parser(
        "materialize",
        help="Write a bundle's servable file tree to a directory",
    )
    _add_common_arguments(materialize_parser)
    materialize_parser.add_argument(
        "target",
        type=Path,
        help="Directory to materialize into (replaced if present)",
    )
    materialize_parser.add_argument(
        "--version",
        dest="version",
        help="Downloaded version to materialize (default: packaged bundle)",
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s: %(message)s",
    )

    try:
        # Import here to avoid slow startup
        from .settings import load_settings

        settings = load_settings(args.config)
        if args.command == "status":
            from .core.bundle import AssetBundle
            from .infrastructure.bundle_store import BundleStore
            from .infrastructure.configuration import RolloutConfiguration
            from .infrastructure.settings_store import SettingsStore
            from .commands.status import run_status
            from .app import SERVING_DIRNAME, STATE_DB_FILENAME, VERSIONS_DIRNAME

            args.state_dir.mkdir(parents=True, exist_ok=True)
            store = SettingsStore(args.state_dir / STATE_DB_FILENAME)
            try:
                return run_status(
                    args,
                    initial_bundle=AssetBundle.load(args.packaged_dir, platform=settings.platform),
                    configuration=RolloutConfiguration(store),
                    store=BundleStore(args.state_dir / VERSIONS_DIRNAME, args.state_dir / SERVING_DIRNAME),
                )
            finally:
                store.close()
        elif args.command == "check":
            from .app import HotCodeApp
            from .commands.check import run_check

            app = HotCodeApp(args.packaged_dir, args.state_dir, settings=settings)
            try:
                return run_check(args, app=app)
            finally:
                app.close()
        elif args.command == "materialize":
            from .core.bundle import AssetBundle
            from .infrastructure.bundle_store import BundleStore
            from .infrastructure.http import UrllibFetcher
            from .services.bundle_manager import BundleManager
            from .commands.materialize import run_materialize
            from .app import SERVING_DIRNAME, VERSIONS_DIRNAME

            manager = BundleManager(
                AssetBundle.load(args.packaged_dir, platform=settings.platform),
                BundleStore(args.state_dir / VERSIONS_DIRNAME, args.state_dir / SERVING_DIRNAME),
                fetcher=UrllibFetcher(timeout=settings.request_timeout_seconds),
                settings=settings,
            )
            return run_materialize(args, manager=manager, settings=settings)
        else:
            parser.print_help()
            return 1
    except Exception as exc:  # pragma: no cover - exercised in CLI tests
        from .errors import exit_code_for_exception

        print(str(exc), file=sys.stderr)
        return exit_code_for_exception(exc)


if __name__ == "__main__":
    sys.exit(main())
