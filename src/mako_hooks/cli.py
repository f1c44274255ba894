"""
mako-hooks CLI

Runs the hooks by name and inspects what they leave behind: telemetry,
session state, routing and memory-service health.
"""

import json
import sys
from pathlib import Path
from typing import Optional

import click
from rich import box
from rich.console import Console
from rich.table import Table

from mako_hooks import __version__
from mako_hooks.config import get_settings
from mako_hooks.doctor import HealthChecker, print_report
from mako_hooks.envelope import run_hook
from mako_hooks.errors import ProbeError, StateError
from mako_hooks.hooks import HOOK_MODULES, load_hook
from mako_hooks.log import configure_logging
from mako_hooks.memory import probe_memory_service
from mako_hooks.routing import ROUTING, next_step
from mako_hooks.session_state import read_state_file, state_path
from mako_hooks.telemetry import read_events, summarize_events

# Rich console for pretty output
console = Console()
error_console = Console(stderr=True)


def print_error(message: str) -> None:
    """Print an error message to stderr."""
    error_console.print(f"[bold red]Error:[/bold red] {message}")


def print_success(message: str) -> None:
    """Print a success message."""
    console.print(f"[bold green]OK[/bold green] {message}")


def print_warning(message: str) -> None:
    """Print a warning message."""
    console.print(f"[bold yellow]![/bold yellow] {message}")


@click.group()
@click.version_option(version=__version__, prog_name="mako-hooks")
@click.option("--debug", is_flag=True, help="Debug logging on stderr")
def main(debug: bool) -> None:
    """
    mako-hooks - MAKO lifecycle hooks

    Telemetry, memory-service fallback and session-state recovery for the
    orchestrator's hooks.
    """
    configure_logging(debug or get_settings().debug)


@main.command("hook")
@click.argument("name", type=click.Choice(sorted(HOOK_MODULES)))
def hook(name: str) -> None:
    """Run a hook: JSON payload on stdin, JSON envelope on stdout."""
    module = load_hook(name)
    sys.exit(run_hook(module.HOOK_NAME, module.handle_hook, module.FALLBACK_OUTPUT))


@main.command()
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.option(
    "--plugin-root",
    type=click.Path(file_okay=False, path_type=Path),
    help="Plugin root to check (default: CLAUDE_PLUGIN_ROOT)",
)
def doctor(as_json: bool, plugin_root: Optional[Path]) -> None:
    """Check the installation. Exits 1 if a critical check fails."""
    report = HealthChecker(plugin_root=plugin_root).check_all()

    if as_json:
        click.echo(json.dumps(report.to_dict(), indent=2))
    else:
        print_report(report, console)

    sys.exit(0 if report.healthy else 1)


@main.command()
@click.option("--hook", "hook_name", help="Only show this hook")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.option(
    "--path",
    type=click.Path(dir_okay=False, path_type=Path),
    help="Telemetry log (default: <plugin_root>/telemetry/events.jsonl)",
)
def telemetry(hook_name: Optional[str], as_json: bool, path: Optional[Path]) -> None:
    """Summarize hook executions from the telemetry log."""
    stats = summarize_events(read_events(path))
    if hook_name:
        stats = {k: v for k, v in stats.items() if k == hook_name}

    if as_json:
        click.echo(json.dumps(
            {
                name: {
                    "runs": s.runs,
                    "completed": s.completed,
                    "errors": s.errors,
                    "mean_duration_ms": round(s.mean_duration_ms, 1),
                    "max_duration_ms": s.max_duration_ms,
                    "last_error": s.last_error,
                }
                for name, s in stats.items()
            },
            indent=2,
        ))
        return

    if not stats:
        print_warning("No telemetry events recorded")
        return

    table = Table(title="Hook Telemetry", box=box.ROUNDED)
    table.add_column("Hook", style="cyan")
    table.add_column("Runs", justify="right")
    table.add_column("Errors", justify="right")
    table.add_column("Mean (ms)", justify="right")
    table.add_column("Max (ms)", justify="right")
    table.add_column("Last error", style="dim")

    for name, s in stats.items():
        errors = f"[red]{s.errors}[/red]" if s.errors else "0"
        table.add_row(
            name,
            str(s.runs),
            errors,
            f"{s.mean_duration_ms:.1f}",
            str(s.max_duration_ms),
            s.last_error or "",
        )

    console.print(table)


@main.command()
@click.option(
    "--project",
    type=click.Path(file_okay=False, path_type=Path),
    help="Project directory (default: CLAUDE_PROJECT_DIR or cwd)",
)
def state(project: Optional[Path]) -> None:
    """Show the saved session state of a project."""
    path = state_path(project)
    try:
        data = read_state_file(path)
    except StateError as e:
        print_error(str(e))
        sys.exit(1)

    if not data:
        print_warning(f"No session state at {path}")
        return

    click.echo(json.dumps(data, indent=2, ensure_ascii=False))


@main.command()
@click.argument("agent", required=False)
def route(agent: Optional[str]) -> None:
    """Show the next pipeline step after AGENT, or the whole routing table."""
    if agent:
        click.echo(next_step(agent))
        return

    table = Table(title="Pipeline Routing", box=box.SIMPLE)
    table.add_column("After", style="cyan")
    table.add_column("Next")
    for name, step in ROUTING.items():
        table.add_row(name, step)
    console.print(table)


@main.command()
def probe() -> None:
    """Check whether the memory service answers."""
    settings = get_settings()
    if settings.force_unhealthy:
        print_warning("Memory service forced unhealthy (MCP_MEMORY_HEALTHY=false)")
        sys.exit(1)

    try:
        probe_memory_service(settings.health_url)
    except ProbeError as e:
        print_error(str(e))
        sys.exit(1)

    print_success(f"Memory service reachable at {settings.health_url}")


if __name__ == "__main__":
    main()
