"""
mako-hooks Health Check (Doctor)

Verifies that the hooks are installed and can do their job.

Checks performed:
1. Plugin root exists
2. Orchestrator persona is present
3. Telemetry directory is writable
4. Telemetry log is parseable
5. MCP memory server is configured in .mcp.json
6. Memory service answers (warning only)
7. Python version
8. Python dependencies are available

Exit code 0 when every critical check passes, 1 otherwise.
"""

from __future__ import annotations

import argparse
import importlib.util
import json
import os
import sys
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any

from rich.console import Console

from mako_hooks.config import Settings, get_settings
from mako_hooks.errors import ProbeError
from mako_hooks.log import configure_logging
from mako_hooks.mcp_config import MEMORY_SERVER_KEY
from mako_hooks.memory import probe_memory_service

REQUIRED_MODULES = ("click", "rich", "pydantic", "pydantic_settings", "structlog")


@dataclass
class CheckResult:
    """Result of a single health check."""

    name: str
    passed: bool
    message: str
    critical: bool = True
    fix_command: str | None = None


@dataclass
class HealthReport:
    """Complete health report."""

    checks: list[CheckResult] = field(default_factory=list)
    passed: int = 0
    failed: int = 0
    warnings: int = 0

    def add(self, result: CheckResult) -> None:
        """Add a check result."""
        self.checks.append(result)
        if result.passed:
            self.passed += 1
        elif result.critical:
            self.failed += 1
        else:
            self.warnings += 1

    @property
    def healthy(self) -> bool:
        """Return True if all critical checks passed."""
        return self.failed == 0

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON output."""
        return {
            "healthy": self.healthy,
            "passed": self.passed,
            "failed": self.failed,
            "warnings": self.warnings,
            "checks": [asdict(c) for c in self.checks],
        }


class HealthChecker:
    """Performs mako-hooks health checks."""

    def __init__(self, settings: Settings | None = None, plugin_root: Path | None = None):
        """Initialize health checker."""
        settings = settings or get_settings()
        if plugin_root is not None:
            settings = settings.model_copy(update={"plugin_root": plugin_root})
        self.settings = settings
        self.plugin_root = settings.plugin_root
        self.telemetry_path = settings.telemetry_path
        self.persona_path = settings.persona_path
        self.mcp_json_path = settings.mcp_json_path

    def check_all(self) -> HealthReport:
        """Run all health checks."""
        report = HealthReport()

        report.add(self.check_plugin_root())
        report.add(self.check_persona())
        report.add(self.check_telemetry_dir())
        report.add(self.check_telemetry_log())
        report.add(self.check_mcp_config())
        report.add(self.check_memory_service())

        report.add(self.check_python_version())
        report.add(self.check_dependencies())

        return report

    def check_plugin_root(self) -> CheckResult:
        """Check that the plugin root is a directory."""
        if not self.plugin_root.is_dir():
            return CheckResult(
                name="Plugin Root",
                passed=False,
                message=f"Not a directory: {self.plugin_root}",
                fix_command="set CLAUDE_PLUGIN_ROOT to the plugin directory",
            )
        return CheckResult(name="Plugin Root", passed=True, message=str(self.plugin_root))

    def check_persona(self) -> CheckResult:
        """Check that the persona file exists and is not empty."""
        try:
            content = self.persona_path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            return CheckResult(
                name="Persona",
                passed=False,
                message=f"Cannot read {self.persona_path}: {e} (built-in fallback will be used)",
                critical=False,
            )
        if not content.strip():
            return CheckResult(
                name="Persona",
                passed=False,
                message=f"{self.persona_path} is empty (built-in fallback will be used)",
                critical=False,
            )
        return CheckResult(name="Persona", passed=True, message=str(self.persona_path))

    def check_telemetry_dir(self) -> CheckResult:
        """Check that telemetry can be written."""
        directory = self.telemetry_path.parent
        target = directory
        while not target.exists() and target != target.parent:
            target = target.parent

        if not target.is_dir() or not os.access(target, os.W_OK):
            return CheckResult(
                name="Telemetry Directory",
                passed=False,
                message=f"{directory} is not writable",
            )
        if target != directory:
            return CheckResult(
                name="Telemetry Directory",
                passed=True,
                message=f"{directory} will be created on first use",
            )
        return CheckResult(name="Telemetry Directory", passed=True, message=str(directory))

    def check_telemetry_log(self) -> CheckResult:
        """Check that every line of the telemetry log is a JSON object."""
        if not self.telemetry_path.exists():
            return CheckResult(name="Telemetry Log", passed=True, message="No events recorded yet")

        total = damaged = 0
        try:
            with open(self.telemetry_path, encoding="utf-8", errors="replace") as f:
                for line in f:
                    if not line.strip():
                        continue
                    total += 1
                    try:
                        if not isinstance(json.loads(line), dict):
                            damaged += 1
                    except json.JSONDecodeError:
                        damaged += 1
        except OSError as e:
            return CheckResult(
                name="Telemetry Log",
                passed=False,
                message=f"Cannot read {self.telemetry_path}: {e}",
            )

        if damaged:
            return CheckResult(
                name="Telemetry Log",
                passed=False,
                message=f"{damaged} of {total} lines damaged (they are skipped when read)",
                critical=False,
            )
        return CheckResult(name="Telemetry Log", passed=True, message=f"{total} events")

    def check_mcp_config(self) -> CheckResult:
        """Check that .mcp.json declares the memory server."""
        if not self.mcp_json_path.exists():
            return CheckResult(
                name="MCP Memory Config",
                passed=False,
                message=f"{self.mcp_json_path} not found",
                critical=False,
                fix_command="mako-hooks hook ensure-memory-server",
            )

        try:
            config = json.loads(self.mcp_json_path.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
            return CheckResult(
                name="MCP Memory Config",
                passed=False,
                message=f"Invalid .mcp.json: {e}",
                critical=False,
                fix_command="mako-hooks hook ensure-memory-server",
            )

        entry = config.get(MEMORY_SERVER_KEY) if isinstance(config, dict) else None
        if not isinstance(entry, dict):
            return CheckResult(
                name="MCP Memory Config",
                passed=False,
                message="No memory server entry",
                critical=False,
                fix_command="mako-hooks hook ensure-memory-server",
            )

        return CheckResult(
            name="MCP Memory Config",
            passed=True,
            message=f"Configured (command: {entry.get('command', '')})",
        )

    def check_memory_service(self) -> CheckResult:
        """Probe the memory service. A failure is only a warning."""
        if self.settings.force_unhealthy:
            return CheckResult(
                name="Memory Service",
                passed=False,
                message="Forced unhealthy by MCP_MEMORY_HEALTHY=false",
                critical=False,
            )
        try:
            probe_memory_service(self.settings.health_url)
        except ProbeError as e:
            return CheckResult(
                name="Memory Service",
                passed=False,
                message=f"{e} (hooks will use fallback messages)",
                critical=False,
            )
        return CheckResult(
            name="Memory Service", passed=True, message=f"Reachable at {self.settings.health_url}"
        )

    def check_python_version(self) -> CheckResult:
        """Check Python version."""
        version = sys.version_info

        if version < (3, 10):
            return CheckResult(
                name="Python Version",
                passed=False,
                message=f"Python {version.major}.{version.minor} (requires >= 3.10)",
            )

        return CheckResult(
            name="Python Version",
            passed=True,
            message=f"Python {version.major}.{version.minor}.{version.micro}",
        )

    def check_dependencies(self) -> CheckResult:
        """Check required Python dependencies."""
        missing = [name for name in REQUIRED_MODULES if importlib.util.find_spec(name) is None]

        if missing:
            packages = " ".join(name.replace("_", "-") for name in missing)
            return CheckResult(
                name="Dependencies",
                passed=False,
                message=f"Missing: {', '.join(missing)}",
                fix_command=f"pip install {packages}",
            )

        return CheckResult(
            name="Dependencies",
            passed=True,
            message="All required dependencies installed",
        )


def print_report(report: HealthReport, console: Console | None = None) -> None:
    """Print the health report."""
    console = console or Console()
    console.print("\n[bold]mako-hooks Health Check[/bold]")
    console.print("=" * 60)

    for check in report.checks:
        if check.passed:
            status = r"[green]\[PASS][/green]"
        elif check.critical:
            status = r"[red]\[FAIL][/red]"
        else:
            status = r"[yellow]\[WARN][/yellow]"

        console.print(f"{status} {check.name}", highlight=False)
        console.print(f"       {check.message}", highlight=False, markup=False)

        if not check.passed and check.fix_command:
            console.print(f"       Fix: {check.fix_command}", highlight=False, markup=False)

    console.print()
    console.print("-" * 60)
    console.print(
        f"Total: {report.passed} passed, {report.failed} failed, {report.warnings} warnings"
    )

    if report.healthy:
        console.print("[green]mako-hooks is healthy![/green]")
    else:
        console.print("[red]mako-hooks has issues that need attention.[/red]")


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    parser = argparse.ArgumentParser(description="mako-hooks Health Check")
    parser.add_argument(
        "--json",
        action="store_true",
        help="Output as JSON",
    )
    parser.add_argument(
        "--plugin-root",
        type=Path,
        default=None,
        help="Plugin root to check (default: CLAUDE_PLUGIN_ROOT)",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable debug logging",
    )

    args = parser.parse_args(argv)
    configure_logging(debug=args.verbose)

    report = HealthChecker(plugin_root=args.plugin_root).check_all()

    if args.json:
        print(json.dumps(report.to_dict(), indent=2))
    else:
        print_report(report)

    return 0 if report.healthy else 1


if __name__ == "__main__":
    sys.exit(main())
