"""
Shared fixtures for the mako-hooks test suite.

Provides common test fixtures including:
- An isolated environment (plugin root, project dir, home) per test
- Sprint-status documents
- Prior session-state files
- A helper to run hooks in-process and parse their envelope
"""

from __future__ import annotations

import io
import json
from pathlib import Path
from typing import Any, Callable

import pytest

from mako_hooks import telemetry
from mako_hooks.config import get_settings
from mako_hooks.log import configure_logging

HOST_VARIABLES = (
    "MCP_HTTP_PORT",
    "CLAUDE_PLUGIN_ROOT",
    "CLAUDE_PROJECT_DIR",
    "MCP_MEMORY_HEALTHY",
    "MAKO_DEBUG",
)


# ==============================================================================
# Sample documents
# ==============================================================================

SPRINT_STATUS = """\
sprint: 3
workflow: feature
status: in-progress
current_phase: "hojo"
next_phase: "reno"
quality_tier: Standard
scale: medium

stories:
  - id: ST-1
    status: done
  - id: ST-2
    status: done
  - id: ST-3
    status: review
  - id: ST-4
    status: backlog
"""

PRIOR_STATE = {
    "last_compaction": "2026-01-15T10:00:00.000+00:00",
    "sprint": {"workflow": "old-workflow"},
    "active_agents": {"hojo": "task-abc123", "reno": "task-def456"},
    "pending_decisions": ["decision-alpha", "decision-beta"],
    "notes": "Experiment 42 in progress.",
}


# ==============================================================================
# Environment Fixtures
# ==============================================================================

@pytest.fixture(autouse=True)
def isolated_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> dict[str, Path]:
    """
    Point every host variable at a fresh temporary tree.

    The memory service is forced unhealthy so no test touches the network
    unless it opts in.
    """
    for name in HOST_VARIABLES:
        monkeypatch.delenv(name, raising=False)

    plugin_root = tmp_path / "plugin"
    project_dir = tmp_path / "project"
    home = tmp_path / "home"
    for directory in (plugin_root, project_dir, home):
        directory.mkdir()

    monkeypatch.setenv("CLAUDE_PLUGIN_ROOT", str(plugin_root))
    monkeypatch.setenv("CLAUDE_PROJECT_DIR", str(project_dir))
    monkeypatch.setenv("MCP_MEMORY_HEALTHY", "false")
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.setenv("USERPROFILE", str(home))

    get_settings.cache_clear()
    monkeypatch.setattr(telemetry, "_ensured_dirs", set())
    configure_logging()

    yield {"plugin_root": plugin_root, "project_dir": project_dir, "home": home}

    get_settings.cache_clear()


@pytest.fixture
def plugin_root(isolated_env: dict[str, Path]) -> Path:
    """Plugin root directory (CLAUDE_PLUGIN_ROOT)."""
    return isolated_env["plugin_root"]


@pytest.fixture
def project_dir(isolated_env: dict[str, Path]) -> Path:
    """Project directory (CLAUDE_PROJECT_DIR)."""
    return isolated_env["project_dir"]


@pytest.fixture
def telemetry_path(plugin_root: Path) -> Path:
    """Location of the telemetry log."""
    return plugin_root / "telemetry" / "events.jsonl"


@pytest.fixture
def state_file(project_dir: Path) -> Path:
    """Location of the session-state snapshot."""
    return project_dir / ".mako-session-state.json"


@pytest.fixture
def sprint_file(project_dir: Path) -> Path:
    """A sprint-status.yaml with four stories, two of them done."""
    path = project_dir / "sprint-status.yaml"
    path.write_text(SPRINT_STATUS, encoding="utf-8")
    return path


@pytest.fixture
def prior_state(state_file: Path) -> dict[str, Any]:
    """A previous session-state snapshot on disk."""
    state_file.write_text(json.dumps(PRIOR_STATE, indent=2), encoding="utf-8")
    return PRIOR_STATE


@pytest.fixture
def memory_healthy(monkeypatch: pytest.MonkeyPatch) -> None:
    """Treat the memory service as reachable without any network I/O."""
    monkeypatch.delenv("MCP_MEMORY_HEALTHY", raising=False)
    get_settings.cache_clear()
    for target in ("mako_hooks.memory", "mako_hooks.doctor", "mako_hooks.cli"):
        monkeypatch.setattr(f"{target}.probe_memory_service", lambda *a, **kw: None)


# ==============================================================================
# Hook helpers
# ==============================================================================

@pytest.fixture
def run_hook_module() -> Callable[..., dict[str, Any]]:
    """
    Run a hook module in-process through its envelope.

    Returns the parsed JSON object printed on stdout.
    """
    from mako_hooks.envelope import run_hook

    def _run(module: Any, payload: Any = None) -> dict[str, Any]:
        raw = "" if payload is None else (payload if isinstance(payload, str) else json.dumps(payload))
        stdout = io.StringIO()
        exit_code = run_hook(
            module.HOOK_NAME,
            module.handle_hook,
            module.FALLBACK_OUTPUT,
            stdin=io.StringIO(raw),
            stdout=stdout,
        )
        assert exit_code == 0
        lines = stdout.getvalue().splitlines()
        assert len(lines) == 1, f"expected one JSON line, got {lines!r}"
        return json.loads(lines[0])

    return _run

