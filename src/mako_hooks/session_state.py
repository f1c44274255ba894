"""
Session-state store.

Compaction discards the host's conversational context. Just before it
happens, the pre-compact hook writes a snapshot to
``<project>/.mako-session-state.json`` so the orchestrator can recover
afterwards: the current sprint fields plus the agents, decisions and notes
carried over from the previous snapshot.

Loading never raises (missing, empty, binary or malformed files yield the
empty default) and persisting is best-effort.
"""

from __future__ import annotations

import contextlib
import json
import os
import tempfile
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any

import structlog
from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

from mako_hooks.config import get_settings
from mako_hooks.errors import PersistenceError, StateError

logger = structlog.get_logger(__name__)


class SessionState(BaseModel):
    """Recoverable session snapshot, one per project."""

    model_config = ConfigDict(extra="forbid")

    last_compaction: str = Field(default="", description="ISO-8601 time of the last snapshot")
    sprint: dict[str, str] = Field(default_factory=dict, description="Sprint fields")
    active_agents: dict[str, str] = Field(
        default_factory=dict, description="Agent id -> task handle"
    )
    pending_decisions: list[str] = Field(
        default_factory=list, description="Decisions awaiting resolution"
    )
    notes: str = Field(default="", description="Free-text notes")


_FIELD_ADAPTERS: dict[str, TypeAdapter[Any]] = {
    "last_compaction": TypeAdapter(str),
    "sprint": TypeAdapter(dict[str, str]),
    "active_agents": TypeAdapter(dict[str, str]),
    "pending_decisions": TypeAdapter(list[str]),
    "notes": TypeAdapter(str),
}


def state_path(project_dir: Path | None = None) -> Path:
    """Path of the session-state file for a project."""
    return get_settings().session_state_path(project_dir)


def read_state_file(path: Path) -> dict[str, Any]:
    """
    Read the raw snapshot document.

    Returns:
        The JSON object, or an empty dict if the file does not exist or is empty.

    Raises:
        StateError: If the file cannot be read or is not a JSON object.
    """
    try:
        raw = path.read_bytes()
    except FileNotFoundError:
        return {}
    except OSError as e:
        raise StateError(f"Cannot read {path}: {e}") from e

    if not raw.strip():
        return {}

    try:
        data = json.loads(raw.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise StateError(f"Malformed session state in {path}: {e}") from e

    if not isinstance(data, dict):
        raise StateError(f"Session state in {path} is not a JSON object")
    return data


def _carry(data: dict[str, Any], name: str) -> Any:
    """Validate one field of a prior snapshot, falling back to its default."""
    default = SessionState.model_fields[name].get_default(call_default_factory=True)
    if name not in data:
        return default
    try:
        return _FIELD_ADAPTERS[name].validate_python(data[name])
    except ValidationError:
        logger.debug("Discarding invalid session-state field", field=name)
        return default


def load_prior(project_dir: Path | None = None) -> SessionState:
    """
    Load the previous snapshot.

    Each field is validated on its own, so one damaged field does not
    discard the others. Never raises.
    """
    path = state_path(project_dir)
    try:
        data = read_state_file(path)
    except StateError as e:
        logger.debug("Using empty session state", reason=str(e))
        data = {}

    unknown = sorted(set(data) - set(_FIELD_ADAPTERS))
    if unknown:
        logger.debug("Dropping unknown session-state keys", keys=unknown)

    return SessionState(**{name: _carry(data, name) for name in _FIELD_ADAPTERS})


def _parse_timestamp(value: str) -> datetime | None:
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def next_compaction_timestamp(previous: str = "", now: datetime | None = None) -> str:
    """
    Timestamp for a new snapshot.

    Always strictly later than ``previous`` so that successive writes can be
    ordered even when the clock has not moved. A previous value at the edge
    of the representable range is ignored.
    """
    current = now or datetime.now(timezone.utc)
    prior = _parse_timestamp(previous)
    if prior is not None and current <= prior:
        try:
            return (prior + timedelta(milliseconds=1)).astimezone(timezone.utc).isoformat(
                timespec="milliseconds"
            )
        except OverflowError:
            logger.debug("Ignoring out-of-range last_compaction", value=previous)
    return current.astimezone(timezone.utc).isoformat(timespec="milliseconds")


def load_and_merge(
    project_dir: Path | None,
    fresh_sprint: dict[str, str],
    *,
    active_agents: dict[str, str] | None = None,
    pending_decisions: list[str] | None = None,
    notes: str | None = None,
    now: datetime | None = None,
) -> SessionState:
    """
    Build the next snapshot from the previous one.

    ``sprint`` is replaced by ``fresh_sprint``; ``active_agents``,
    ``pending_decisions`` and ``notes`` are carried over unless replacements
    are given; ``last_compaction`` always advances.

    Args:
        project_dir: Project directory (None for the configured one).
        fresh_sprint: Sprint fields just extracted from sprint-status.yaml.
        active_agents: Replacement agent map.
        pending_decisions: Replacement decision list.
        notes: Replacement notes.
        now: Clock override.

    Returns:
        The merged snapshot (not yet persisted).
    """
    prior = load_prior(project_dir)
    return SessionState(
        last_compaction=next_compaction_timestamp(prior.last_compaction, now),
        sprint=dict(fresh_sprint),
        active_agents=dict(prior.active_agents if active_agents is None else active_agents),
        pending_decisions=list(
            prior.pending_decisions if pending_decisions is None else pending_decisions
        ),
        notes=prior.notes if notes is None else notes,
    )


def write_state(path: Path, state: SessionState) -> None:
    """
    Atomically replace the snapshot file.

    Raises:
        PersistenceError: If the snapshot cannot be written.
    """
    payload = state.model_dump_json(indent=2) + "\n"
    tmp_name: str | None = None
    try:
        fd, tmp_name = tempfile.mkstemp(
            prefix=f"{path.name}.", suffix=".tmp", dir=path.parent
        )
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(payload)
        os.replace(tmp_name, path)
    except OSError as e:
        if tmp_name is not None:
            with contextlib.suppress(OSError):
                os.unlink(tmp_name)
        raise PersistenceError(f"Cannot write {path}: {e}") from e


def persist(project_dir: Path | None, state: SessionState) -> bool:
    """
    Write a snapshot, best effort.

    Returns:
        True if the snapshot was written, False otherwise. Never raises.
    """
    path = state_path(project_dir)
    try:
        write_state(path, state)
    except PersistenceError as e:
        logger.warning("Session state not persisted", error=str(e))
        return False
    return True


def format_agent_ids(agents: dict[str, str], limit: int | None = None) -> str:
    """Render agent ids as ``agent=handle, agent=handle``."""
    items = list(agents.items())
    if limit is not None:
        items = items[:limit]
    return ", ".join(f"{agent}={handle}" for agent, handle in items)


def read_active_agents(project_dir: Path | None = None, limit: int | None = None) -> dict[str, str]:
    """Active agent ids from the previous snapshot, at most ``limit`` of them."""
    agents = load_prior(project_dir).active_agents
    if limit is None:
        return agents
    return dict(list(agents.items())[:limit])
