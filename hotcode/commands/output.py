"""Deterministic CLI output: one JSON envelope, or human-readable lines."""

from __future__ import annotations

import json
from typing import Iterable, Mapping

SCHEMA_VERSION = "v1"


def format_human(command: str, payload: Mapping[str, object]) -> list[str]:
    """Render a flat payload as ``command: key=value`` lines."""
    lines = []
    for key in sorted(payload):
        value = payload[key]
        if isinstance(value, (list, tuple)):
            value = ",".join(str(item) for item in value) or "-"
        elif value is None:
            value = "-"
        lines.append(f"{command}: {key}={value}")
    return lines


def emit_output(
    *,
    command: str,
    payload: dict,
    json_output: bool,
    output_sink=print,
    human_lines: Iterable[str] = (),
) -> None:
    """Write the result of a command to ``output_sink``.

    JSON output is a single line with sorted keys wrapped in a versioned
    envelope. Human output uses ``human_lines`` when given, otherwise the
    payload rendered by format_human.
    """
    if json_output:
        envelope = {"schema_version": SCHEMA_VERSION, "command": command, "data": payload}
        output_sink(json.dumps(envelope, sort_keys=True, separators=(",", ":"), ensure_ascii=True))
        return
    lines = list(human_lines) or format_human(command, payload)
    for line in lines:
        output_sink(line)


def error_payload(exc: BaseException) -> dict:
    return {
        "status": "ERROR",
        "error_type": exc.__class__.__name__,
        "error_message": str(exc),
    }
