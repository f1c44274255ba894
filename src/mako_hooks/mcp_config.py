"""
Memory-server configuration.

Detects a Python interpreter with mcp-memory-service installed and keeps
the ``memory`` entry of the plugin's ``.mcp.json`` in sync with the current
settings. Only the configuration is managed here: the service itself runs
on its own and is never started or stopped by the hooks.
"""

from __future__ import annotations

import json
import subprocess
from pathlib import Path
from typing import Any

import structlog

from mako_hooks.config import Settings, get_settings

logger = structlog.get_logger(__name__)

PYTHON_CANDIDATES: tuple[tuple[str, ...], ...] = (("python3",), ("python",), ("py", "-3"))
COMMAND_TIMEOUT_S = 10

SERVICE_MODULE = "mcp_memory_service"
SERVER_MODULE = "mcp_memory_service.server"
MEMORY_SERVER_KEY = "memory"


def storage_dir() -> Path:
    """Directory holding the memory service's SQLite-Vec database."""
    return Path.home() / ".shinra"


def _run_quietly(command: list[str]) -> bool:
    try:
        subprocess.run(
            command,
            capture_output=True,
            text=True,
            timeout=COMMAND_TIMEOUT_S,
            check=True,
        )
    except (OSError, subprocess.SubprocessError) as e:
        logger.debug("Command failed", command=" ".join(command), error=str(e))
        return False
    return True


def detect_python() -> list[str] | None:
    """
    Find a working Python interpreter.

    Returns:
        The interpreter command as an argument list, or None.
    """
    for candidate in PYTHON_CANDIDATES:
        command = list(candidate)
        if _run_quietly([*command, "--version"]):
            logger.debug("Python found", command=" ".join(command))
            return command
    return None


def is_service_installed(python_cmd: list[str]) -> bool:
    """Return True if ``mcp_memory_service`` is importable by ``python_cmd``."""
    return _run_quietly([*python_cmd, "-c", f"import {SERVICE_MODULE}"])


def memory_server_entry(python_cmd: list[str], settings: Settings | None = None) -> dict[str, Any]:
    """Build the ``memory`` server entry for ``.mcp.json``."""
    settings = settings or get_settings()
    return {
        "command": python_cmd[0],
        "args": [*python_cmd[1:], "-m", SERVER_MODULE],
        "env": {
            "MCP_MEMORY_STORAGE_BACKEND": "sqlite_vec",
            "MCP_MEMORY_SQLITE_PATH": str(storage_dir() / "sqlite_vec.db"),
            "MCP_HTTP_ENABLED": "true",
            "MCP_HTTP_PORT": str(settings.mcp_http_port),
        },
    }


def _load_mcp_json(path: Path) -> dict[str, Any]:
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError:
        return {}
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
        logger.warning("Replacing unreadable MCP config", path=str(path), error=str(e))
        return {}
    return data if isinstance(data, dict) else {}


def sync_mcp_json(path: Path, entry: dict[str, Any]) -> bool:
    """
    Make ``path`` hold ``entry`` under the ``memory`` key.

    Other keys are preserved. The file is only rewritten when the entry
    differs, so repeated calls leave it byte-for-byte unchanged.

    Returns:
        True if the file was written.

    Raises:
        OSError: If the file cannot be written.
    """
    config = _load_mcp_json(path)
    if config.get(MEMORY_SERVER_KEY) == entry:
        return False

    config[MEMORY_SERVER_KEY] = entry
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(config, indent=2) + "\n", encoding="utf-8")
    logger.info(".mcp.json updated", path=str(path))
    return True
