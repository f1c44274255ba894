"""
SessionStart hook: ``ensure-memory-server``.

Checks that mcp-memory-service can be launched (a Python interpreter with
the package installed), keeps ``.mcp.json`` pointing at it and reports the
result as a status message. Nothing is installed automatically.

Output (via stdout):
{
  "hookSpecificOutput": {
    "hookEventName": "SessionStart",
    "statusMessage": "MCP memory configured (...)"
  }
}
"""

from __future__ import annotations

from typing import Any

import structlog

from mako_hooks.config import get_settings
from mako_hooks.envelope import HookSpecificOutput, run_hook
from mako_hooks.mcp_config import (
    detect_python,
    is_service_installed,
    memory_server_entry,
    storage_dir,
    sync_mcp_json,
)
from mako_hooks.memory import is_memory_service_healthy, memory_fallback_message

logger = structlog.get_logger(__name__)

HOOK_NAME = "ensure-memory-server"
HOOK_EVENT = "SessionStart"

PYTHON_NOT_FOUND = (
    "MCP memory disabled: Python 3 not found. "
    "Install Python 3.10+, then run: pip install mcp-memory-service"
)
SERVICE_NOT_INSTALLED = (
    "MCP memory disabled: mcp-memory-service is not installed. "
    "Run: pip install mcp-memory-service"
)

FALLBACK_OUTPUT = HookSpecificOutput(
    HOOK_EVENT, status_message="MCP memory setup skipped."
).to_dict()


def _status(message: str) -> dict[str, Any]:
    return HookSpecificOutput(HOOK_EVENT, status_message=message).to_dict()


def handle_hook(input_data: dict[str, Any]) -> dict[str, Any]:
    """
    Main hook handler function.

    Args:
        input_data: Dictionary containing hook input (unused)

    Returns:
        Dictionary containing hook output
    """
    settings = get_settings()

    python_cmd = detect_python()
    if python_cmd is None:
        logger.warning("Python 3 not found")
        return _status(PYTHON_NOT_FOUND)

    if not is_service_installed(python_cmd):
        logger.warning("mcp-memory-service not installed", python=" ".join(python_cmd))
        return _status(SERVICE_NOT_INSTALLED)

    try:
        storage_dir().mkdir(parents=True, exist_ok=True)
        sync_mcp_json(settings.mcp_json_path, memory_server_entry(python_cmd, settings))
    except OSError as e:
        logger.warning("MCP config not written", error=str(e))
        return _status(f"MCP memory not configured: cannot write {settings.mcp_json_path} ({e}).")

    message = (
        f"MCP memory configured (mcp-memory-service, SQLite-Vec backend, "
        f"port {settings.mcp_http_port})."
    )
    if not is_memory_service_healthy(settings):
        fallback = memory_fallback_message(HOOK_NAME)
        logger.warning(fallback, hook=HOOK_NAME)
        message = f"{message} {fallback}"
    return _status(message)


def main() -> None:
    """Main entry point for the hook."""
    run_hook(HOOK_NAME, handle_hook, FALLBACK_OUTPUT)


if __name__ == "__main__":
    main()
