"""
mako-hooks - lifecycle hooks for the MAKO orchestration plugin

Telemetry, memory-service fallback and compaction-safe session state for
the hooks run by the host at session start, prompt submit, sub-agent stop,
pre-compaction and pre-tool-use.
"""

__version__ = "0.1.0"
__author__ = "MAKO Contributors"

from mako_hooks.log import ensure_logging

# stdout carries the hook envelope; route structlog to stderr before any module logs.
ensure_logging()

from mako_hooks.errors import MakoHookError, PersistenceError, ProbeError, StateError  # noqa: E402
from mako_hooks.memory import is_memory_service_healthy, memory_fallback_message  # noqa: E402
from mako_hooks.routing import next_step  # noqa: E402
from mako_hooks.session_state import SessionState, load_and_merge, persist  # noqa: E402
from mako_hooks.sprint import extract_field  # noqa: E402
from mako_hooks.telemetry import log_event, wrap_hook  # noqa: E402

__all__ = [
    "__version__",
    "__author__",
    "MakoHookError",
    "StateError",
    "PersistenceError",
    "ProbeError",
    "log_event",
    "wrap_hook",
    "is_memory_service_healthy",
    "memory_fallback_message",
    "SessionState",
    "load_and_merge",
    "persist",
    "extract_field",
    "next_step",
]
