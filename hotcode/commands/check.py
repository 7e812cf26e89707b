"""Check command - look for a new version and optionally switch to it."""

from __future__ import annotations

from argparse import Namespace

from hotcode.app import HotCodeApp
from hotcode.commands.output import emit_output, error_payload
from hotcode.errors import ConfigMissing, exit_code_for_exception
from hotcode.services.bundle_manager import DownloadStatus


def run_check(args: Namespace, *, app: HotCodeApp, output_sink=print) -> int:
    """Run one update check against the root URL of the serving bundle."""
    json_output = getattr(args, "json", False)
    app.start()
    try:
        future = app.controller.check_for_updates()
    except ConfigMissing as exc:
        emit_output(
            command="check",
            payload=error_payload(exc),
            json_output=json_output,
            output_sink=output_sink,
            human_lines=(f"check: error={exc}",),
        )
        return exit_code_for_exception(exc)

    result = future.result()
    switched = False
    if getattr(args, "reload", False) and result.status in (
        DownloadStatus.DOWNLOADED,
        DownloadStatus.ALREADY_DOWNLOADED,
    ):
        switched = app.controller.reload().result()

    status = app.controller.status()
    payload = {
        "status": result.status.value,
        "version": result.version,
        "reason": result.reason,
        "error_message": str(result.error) if result.error else None,
        "switched": switched,
        "current_version": status.current_version,
        "pending_version": status.pending_version,
    }
    emit_output(
        command="check",
        payload=payload,
        json_output=json_output,
        output_sink=output_sink,
    )
    if result.status is DownloadStatus.FAILED and result.error is not None:
        return exit_code_for_exception(result.error)
    return 0
