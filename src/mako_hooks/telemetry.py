"""
Local telemetry for mako-hooks.

Append-only JSONL log of hook executions. One self-contained record per
line, so a damaged line never invalidates its neighbours. No data is sent
externally and telemetry never interferes with the hook it observes:
``log_event`` swallows every failure, ``wrap_hook`` re-raises the body's
exception unchanged.
"""

from __future__ import annotations

import contextlib
import functools
import json
import math
import os
import time
from collections.abc import Callable, Iterable, Iterator, Mapping
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, TypeVar

import structlog

from mako_hooks.config import get_settings

logger = structlog.get_logger(__name__)

F = TypeVar("F", bound=Callable[..., Any])

CORE_FIELDS = ("timestamp", "event", "hook", "duration_ms")

# Process-scoped: once a telemetry directory exists it is not checked again.
_ensured_dirs: set[Path] = set()


class TelemetryEvent(str, Enum):
    """Lifecycle events recorded for each hook invocation."""

    HOOK_START = "hook_start"
    HOOK_END = "hook_end"
    HOOK_ERROR = "hook_error"


def _coerce_duration(value: Any) -> int:
    """Clamp a duration to a non-negative integer number of milliseconds."""
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0
    if not math.isfinite(number) or number < 0:
        return 0
    return int(number)


def _event_name(event: TelemetryEvent | str) -> str:
    if isinstance(event, TelemetryEvent):
        return event.value
    return str(event)


def build_record(
    event: TelemetryEvent | str,
    hook: str,
    duration_ms: Any = 0,
    metadata: Mapping[str, Any] | None = None,
) -> dict[str, Any]:
    """
    Build a telemetry record.

    Metadata keys are merged at the top level but cannot replace the core
    fields (timestamp, event, hook, duration_ms).

    Args:
        event: Event type.
        hook: Hook name.
        duration_ms: Execution duration in milliseconds.
        metadata: Extra key/value pairs (error message, etc.).

    Returns:
        The record as a JSON-serializable dictionary.
    """
    record: dict[str, Any] = {
        "timestamp": datetime.now(timezone.utc).isoformat(timespec="milliseconds"),
        "event": _event_name(event),
        "hook": str(hook) or "unknown",
        "duration_ms": _coerce_duration(duration_ms),
    }
    if metadata:
        for key, value in dict(metadata).items():
            key = str(key)
            if key not in CORE_FIELDS:
                record[key] = value
    return record


def _append_line(path: Path, line: str) -> None:
    # One write on an O_APPEND descriptor keeps each line intact when
    # several hook processes append at the same time.
    fd = os.open(path, os.O_WRONLY | os.O_APPEND | os.O_CREAT, 0o644)
    try:
        os.write(fd, line.encode("utf-8"))
    finally:
        os.close(fd)


def log_event(
    event: TelemetryEvent | str,
    hook: str,
    duration_ms: Any = 0,
    metadata: Mapping[str, Any] | None = None,
    *,
    path: Path | None = None,
) -> None:
    """
    Append a telemetry event to the JSONL log.

    Never raises: a missing directory, a full disk or unserializable
    metadata drops the event silently.

    Args:
        event: Event type (hook_start, hook_end, hook_error).
        hook: Hook name.
        duration_ms: Execution duration in milliseconds.
        metadata: Additional fields (error messages, etc.).
        path: Log file override; defaults to the configured telemetry path.
    """
    try:
        target = path or get_settings().telemetry_path
        line = json.dumps(
            build_record(event, hook, duration_ms, metadata),
            allow_nan=False,
            default=str,
        )

        if target.parent not in _ensured_dirs:
            target.parent.mkdir(parents=True, exist_ok=True)
            _ensured_dirs.add(target.parent)

        _append_line(target, line + "\n")
    except Exception as e:
        with contextlib.suppress(Exception):
            logger.debug("Telemetry event dropped", hook=hook, error=str(e))


def _elapsed_ms(start: float) -> int:
    return int((time.monotonic() - start) * 1000)


def wrap_hook(hook_name: str) -> Callable[[F], F]:
    """
    Wrap a hook function with telemetry instrumentation.

    Logs hook_start before execution, hook_end on success and hook_error on
    failure. The original exception is always re-raised.

    Example:
        >>> @wrap_hook("pre-compact-save")
        ... def handle_hook(input_data):
        ...     ...
    """

    def decorator(fn: F) -> F:
        @functools.wraps(fn)
        def wrapped(*args: Any, **kwargs: Any) -> Any:
            start = time.monotonic()
            log_event(TelemetryEvent.HOOK_START, hook_name)
            try:
                result = fn(*args, **kwargs)
            except Exception as exc:
                log_event(
                    TelemetryEvent.HOOK_ERROR,
                    hook_name,
                    _elapsed_ms(start),
                    {"error": str(exc)},
                )
                raise
            log_event(TelemetryEvent.HOOK_END, hook_name, _elapsed_ms(start))
            return result

        return wrapped  # type: ignore[return-value]

    return decorator


# ==============================================================================
# Reading and summarizing
# ==============================================================================

@dataclass
class HookStats:
    """Summary statistics for one hook."""

    hook: str
    runs: int = 0
    completed: int = 0
    errors: int = 0
    total_duration_ms: int = 0
    max_duration_ms: int = 0
    last_error: str | None = None

    @property
    def mean_duration_ms(self) -> float:
        finished = self.completed + self.errors
        if finished == 0:
            return 0.0
        return self.total_duration_ms / finished


def read_events(path: Path | None = None) -> Iterator[dict[str, Any]]:
    """
    Iterate over the records of a telemetry log.

    Lines that are not valid JSON objects are skipped.
    """
    target = path or get_settings().telemetry_path
    try:
        with open(target, encoding="utf-8", errors="replace") as f:
            for line in f:
                line = line.strip()
                if not line:
                    continue
                try:
                    record = json.loads(line)
                except json.JSONDecodeError:
                    continue
                if isinstance(record, dict):
                    yield record
    except OSError as e:
        logger.debug("Telemetry log unreadable", path=str(target), error=str(e))


def summarize_events(records: Iterable[Mapping[str, Any]]) -> dict[str, HookStats]:
    """Aggregate telemetry records into per-hook statistics, sorted by hook name."""
    stats: dict[str, HookStats] = {}

    for record in records:
        hook = str(record.get("hook") or "unknown")
        entry = stats.setdefault(hook, HookStats(hook=hook))
        event = record.get("event")
        duration = _coerce_duration(record.get("duration_ms", 0))

        if event == TelemetryEvent.HOOK_START.value:
            entry.runs += 1
        elif event == TelemetryEvent.HOOK_END.value:
            entry.completed += 1
            entry.total_duration_ms += duration
            entry.max_duration_ms = max(entry.max_duration_ms, duration)
        elif event == TelemetryEvent.HOOK_ERROR.value:
            entry.errors += 1
            entry.total_duration_ms += duration
            entry.max_duration_ms = max(entry.max_duration_ms, duration)
            if record.get("error") is not None:
                entry.last_error = str(record["error"])

    return dict(sorted(stats.items()))
