"""
Memory service health check and fallback messages.

Hooks that rely on mcp-memory-service degrade gracefully when it is down:
they probe it once, with a hard time bound, and append a hook-specific
fallback notice to their output instead of failing. Nothing here raises.
"""

from __future__ import annotations

import threading
import urllib.error
import urllib.request
from typing import Any

import structlog

from mako_hooks.config import Settings, get_settings
from mako_hooks.errors import ProbeError

logger = structlog.get_logger(__name__)

HEALTH_TIMEOUT_S = 2.0

# Loopback probe; never routed through an HTTP proxy from the environment.
_OPENER = urllib.request.build_opener(urllib.request.ProxyHandler({}))

FALLBACK_PREFIX = "[MCP MEMORY FALLBACK]"

FALLBACK_MESSAGES: dict[str, str] = {
    "ensure-memory-server": (
        f"{FALLBACK_PREFIX} mcp-memory-service is unavailable. "
        "The MCP configuration was written but the service does not respond. "
        "Memory operations will be skipped until the service is restarted."
    ),
    "subagent-stop-memory": (
        f"{FALLBACK_PREFIX} mcp-memory-service is unavailable. "
        "store_memory() will not be executed. "
        "The agent's results will not be persisted to memory. "
        "Restart the service to re-enable persistence."
    ),
    "pre-compact-save": (
        f"{FALLBACK_PREFIX} mcp-memory-service is unavailable. "
        "retrieve_memory() may fail after compaction. "
        "Local context (sprint-status.yaml, .mako-session-state.json) remains available."
    ),
}

DEFAULT_FALLBACK = (
    f"{FALLBACK_PREFIX} mcp-memory-service is unavailable. "
    "Memory operations are temporarily disabled."
)


def _get_status(url: str, timeout: float) -> int:
    try:
        with _OPENER.open(url, timeout=timeout) as response:
            return int(getattr(response, "status", None) or response.getcode())
    except urllib.error.HTTPError as e:
        raise ProbeError(f"HTTP {e.code} from {url}") from e
    except (urllib.error.URLError, OSError, ValueError) as e:
        raise ProbeError(f"{url} unreachable: {e}") from e


def probe_memory_service(url: str, timeout: float = HEALTH_TIMEOUT_S) -> None:
    """
    Perform one HTTP GET against the memory service.

    ``timeout`` bounds the whole request, not each socket operation: the GET
    runs on a daemon thread and is abandoned once the deadline passes, so a
    server that trickles its response cannot hold the hook.

    Raises:
        ProbeError: If the request fails, times out or returns a non-2xx status.
    """
    outcome: dict[str, Any] = {}

    def _run() -> None:
        try:
            outcome["status"] = _get_status(url, timeout)
        except Exception as e:
            outcome["error"] = e

    worker = threading.Thread(target=_run, name="memory-probe", daemon=True)
    worker.start()
    worker.join(timeout)

    if worker.is_alive():
        raise ProbeError(f"{url} did not answer within {timeout:g}s")
    error = outcome.get("error")
    if isinstance(error, ProbeError):
        raise error
    if error is not None:
        raise ProbeError(f"{url} probe failed: {error}") from error

    status = outcome["status"]
    if not 200 <= status < 300:
        raise ProbeError(f"HTTP {status} from {url}")


def is_memory_service_healthy(settings: Settings | None = None) -> bool:
    """
    Check whether mcp-memory-service is reachable.

    Returns False without any I/O when ``MCP_MEMORY_HEALTHY=false``.
    Otherwise probes ``http://127.0.0.1:<MCP_HTTP_PORT>/`` once, bounded by
    ``HEALTH_TIMEOUT_S``. Any error or non-2xx answer counts as unhealthy.

    Returns:
        True only after a completed, successful round trip.
    """
    try:
        settings = settings or get_settings()
        if settings.force_unhealthy:
            return False
        probe_memory_service(settings.health_url)
        return True
    except ProbeError as e:
        logger.debug("Memory service unhealthy", error=str(e))
        return False
    except Exception as e:
        logger.debug("Memory service health check failed", error=str(e))
        return False


def memory_fallback_message(hook: object) -> str:
    """
    Get the fallback message for a hook.

    Unknown hooks, ``None`` and non-string values get ``DEFAULT_FALLBACK``.
    """
    try:
        key = "" if hook is None else str(hook)
        return FALLBACK_MESSAGES.get(key, DEFAULT_FALLBACK)
    except Exception:
        return DEFAULT_FALLBACK


def is_fallback_message(text: object) -> bool:
    """Return True if ``text`` is a memory fallback notice."""
    return isinstance(text, str) and text.startswith(FALLBACK_PREFIX)
