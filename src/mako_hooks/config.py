"""
Configuration module for mako-hooks.

Provides strongly-typed configuration with pydantic-settings. Every setting
comes from an environment variable defined by the host runtime (Claude Code)
or the memory service, so the variable names are fixed rather than prefixed.

Settings are read once per process through ``get_settings()``. Malformed
values never raise: they fall back to the documented defaults, because a
hook must still produce its output even when its environment is broken.
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_MCP_HTTP_PORT = 8000
HEALTH_HOST = "127.0.0.1"

SPRINT_STATUS_FILENAME = "sprint-status.yaml"
SESSION_STATE_FILENAME = ".mako-session-state.json"

_TRUTHY = frozenset({"1", "true", "yes", "on"})


def default_plugin_root() -> Path:
    """Installation root used when ``CLAUDE_PLUGIN_ROOT`` is not set."""
    return Path.home() / ".mako"


class Settings(BaseSettings):
    """
    Environment-driven settings.

    Variables:
    - ``MCP_HTTP_PORT``: memory service HTTP port (default 8000)
    - ``CLAUDE_PLUGIN_ROOT``: installation root (telemetry, persona, .mcp.json)
    - ``CLAUDE_PROJECT_DIR``: project directory (sprint status, session state)
    - ``MCP_MEMORY_HEALTHY``: set to ``false`` to force the unhealthy path
    - ``MAKO_DEBUG``: enable debug logging on stderr
    """

    model_config = SettingsConfigDict(
        case_sensitive=False,
        populate_by_name=True,
    )

    mcp_http_port: int = Field(
        default=DEFAULT_MCP_HTTP_PORT,
        validation_alias="MCP_HTTP_PORT",
        description="Memory service HTTP port",
    )
    plugin_root: Path = Field(
        default_factory=default_plugin_root,
        validation_alias="CLAUDE_PLUGIN_ROOT",
        description="Installation root directory",
    )
    project_dir: Path | None = Field(
        default=None,
        validation_alias="CLAUDE_PROJECT_DIR",
        description="Project directory (defaults to the working directory)",
    )
    memory_healthy: str | None = Field(
        default=None,
        validation_alias="MCP_MEMORY_HEALTHY",
        description="Health override; 'false' skips the network probe",
    )
    debug: bool = Field(
        default=False,
        validation_alias="MAKO_DEBUG",
        description="Debug logging",
    )

    @field_validator("mcp_http_port", mode="before")
    @classmethod
    def parse_port(cls, v: object) -> int:
        """Accept only a plain integer in 1..65535, else the default port."""
        if isinstance(v, bool):
            return DEFAULT_MCP_HTTP_PORT
        if isinstance(v, int):
            port = v
        else:
            text = str(v).strip() if v is not None else ""
            if not text.isdigit() or not text.isascii():
                return DEFAULT_MCP_HTTP_PORT
            port = int(text)
        if 1 <= port <= 65535:
            return port
        return DEFAULT_MCP_HTTP_PORT

    @field_validator("plugin_root", mode="before")
    @classmethod
    def parse_plugin_root(cls, v: object) -> Path:
        if v is None or (isinstance(v, str) and not v.strip()):
            return default_plugin_root()
        return Path(v)  # type: ignore[arg-type]

    @field_validator("project_dir", mode="before")
    @classmethod
    def parse_project_dir(cls, v: object) -> Path | None:
        if v is None or (isinstance(v, str) and not v.strip()):
            return None
        return Path(v)  # type: ignore[arg-type]

    @field_validator("debug", mode="before")
    @classmethod
    def parse_debug(cls, v: object) -> bool:
        if isinstance(v, bool):
            return v
        return str(v).strip().lower() in _TRUTHY

    @property
    def force_unhealthy(self) -> bool:
        """True when the memory service must be treated as down without probing."""
        return (self.memory_healthy or "").strip().lower() == "false"

    @property
    def project_root(self) -> Path:
        """Project directory, falling back to the current working directory."""
        return self.project_dir or Path.cwd()

    @property
    def telemetry_path(self) -> Path:
        """Path of the append-only telemetry log."""
        return self.plugin_root / "telemetry" / "events.jsonl"

    @property
    def persona_path(self) -> Path:
        """Path of the orchestrator persona injected at session start."""
        return self.plugin_root / "context" / "rufus.md"

    @property
    def mcp_json_path(self) -> Path:
        """Path of the plugin's MCP server configuration."""
        return self.plugin_root / ".mcp.json"

    @property
    def health_url(self) -> str:
        """URL probed by the memory service health check."""
        return f"http://{HEALTH_HOST}:{int(self.mcp_http_port)}/"

    def sprint_status_path(self, project_dir: Path | None = None) -> Path:
        """Path of the sprint-status document for a project."""
        return (project_dir or self.project_root) / SPRINT_STATUS_FILENAME

    def session_state_path(self, project_dir: Path | None = None) -> Path:
        """Path of the session-state snapshot for a project."""
        return (project_dir or self.project_root) / SESSION_STATE_FILENAME


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get the process-wide settings, read from the environment once."""
    return Settings()
