"""
Hook I/O envelope.

The host sends a JSON object on stdin and expects exactly one JSON object
on stdout. ``run_hook`` is the only place where a hook failure is caught:
whatever happens inside the handler, the hook prints either the handler's
output or its hard-coded fallback envelope, and returns exit code 0.
"""

from __future__ import annotations

import contextlib
import json
import sys
from collections.abc import Callable
from dataclasses import dataclass
from typing import IO, Any

import structlog

from mako_hooks.config import get_settings
from mako_hooks.log import configure_logging, ensure_logging
from mako_hooks.telemetry import wrap_hook

logger = structlog.get_logger(__name__)

MAX_INPUT_BYTES = 512 * 1024

HookHandler = Callable[[dict[str, Any]], dict[str, Any]]


@dataclass
class HookSpecificOutput:
    """Output for hooks that answer with a ``hookSpecificOutput`` object."""

    hook_event_name: str
    additional_context: str | None = None
    status_message: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON output. Unset fields are omitted."""
        body: dict[str, Any] = {"hookEventName": self.hook_event_name}
        if self.additional_context is not None:
            body["additionalContext"] = self.additional_context
        if self.status_message is not None:
            body["statusMessage"] = self.status_message
        return {"hookSpecificOutput": body}


def read_hook_input(stream: IO[Any] | None = None) -> dict[str, Any]:
    """
    Read the hook payload from stdin.

    At most ``MAX_INPUT_BYTES`` are read. Empty, oversized, invalid or
    non-object input yields an empty dict.
    """
    stream = stream if stream is not None else sys.stdin
    try:
        raw = stream.read(MAX_INPUT_BYTES)
        if isinstance(raw, (bytes, bytearray)):
            raw = bytes(raw).decode("utf-8")
    except (OSError, ValueError) as e:
        logger.debug("Hook input unreadable", error=str(e))
        return {}

    if not raw or not raw.strip():
        return {}

    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        logger.debug("Invalid JSON input", error=str(e))
        return {}

    return data if isinstance(data, dict) else {}


def emit(payload: dict[str, Any], stream: IO[str] | None = None) -> None:
    """Write one JSON object and a newline to stdout."""
    stream = stream if stream is not None else sys.stdout
    stream.write(json.dumps(payload, ensure_ascii=False) + "\n")
    stream.flush()


def run_hook(
    name: str,
    handler: HookHandler,
    fallback: dict[str, Any],
    *,
    stdin: IO[Any] | None = None,
    stdout: IO[str] | None = None,
) -> int:
    """
    Run a hook handler inside the telemetry wrapper and print its output.

    Args:
        name: Hook name recorded in telemetry.
        handler: Function mapping the input payload to the output envelope.
        fallback: Envelope printed when the handler fails.
        stdin: Input stream override.
        stdout: Output stream override.

    Returns:
        The process exit code, always 0.
    """
    ensure_logging()
    payload = fallback
    try:
        configure_logging(get_settings().debug)
        input_data = read_hook_input(stdin)
        output = wrap_hook(name)(handler)(input_data)
        if not isinstance(output, dict):
            raise TypeError(f"Hook {name} returned {type(output).__name__}, expected dict")
        # Serialization errors must surface here, before stdout is touched.
        json.dumps(output, ensure_ascii=False)
        payload = output
    except Exception:
        logger.exception("Hook failed, emitting fallback", hook=name)

    with contextlib.suppress(OSError, ValueError):
        emit(payload, stdout)
    return 0
