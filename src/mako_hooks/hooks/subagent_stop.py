"""
SubagentStop hook: ``subagent-stop-memory``.

Fires when a sub-agent finishes. Reminds the orchestrator to persist the
result with ``store_memory()``, to update sprint-status.yaml, and names the
next step of the pipeline. Never talks to the memory service itself beyond
the health probe.

Input (via stdin):
{
  "session_id": "uuid",
  "agent_type": "mako:hojo"
}
"""

from __future__ import annotations

from typing import Any

import structlog

from mako_hooks.config import get_settings
from mako_hooks.envelope import HookSpecificOutput, run_hook
from mako_hooks.memory import is_memory_service_healthy, memory_fallback_message
from mako_hooks.routing import next_step, parse_agent_name
from mako_hooks.sprint import extract_field, read_sprint_document

logger = structlog.get_logger(__name__)

HOOK_NAME = "subagent-stop-memory"
HOOK_EVENT = "SubagentStop"

FALLBACK_OUTPUT = HookSpecificOutput(
    HOOK_EVENT,
    additional_context="Un agent a termine. store_memory() + update sprint-status.yaml.",
).to_dict()


def build_phase_info(raw: str | None) -> str:
    """Current and next phase, as a suffix for the completion line."""
    if not raw:
        return ""
    phase = extract_field(raw, "current_phase") or ""
    following = extract_field(raw, "next_phase") or ""
    if not (phase or following):
        return ""
    return f" | sprint-status: phase={phase}, next={following}"


def build_reminder(agent: str, phase_info: str, memory_warning: str = "") -> str:
    """Build the post-agent checklist."""
    lines = [
        f"Agent '{agent}' a termine. Resultat recu.{phase_info}",
        "",
        "ACTIONS REQUISES :",
        "1. store_memory() -- Persister le resultat de cet agent",
        (
            f'   Format: store_memory(content: "<projet> | {agent}: <resume 1-2 lignes> '
            f'| next: <etape>", memory_type: "observation", '
            f'tags: ["project:<nom>", "phase:{agent}"])'
        ),
        "2. Mettre a jour sprint-status.yaml (current_phase, next_phase, story statuses)",
        f"3. Prochaine etape du pipeline : {next_step(agent)}",
        "",
        "Si tu as deja fait le store_memory() (instruction du skill), ignore le point 1.",
    ]
    reminder = "\n".join(lines)
    if memory_warning:
        reminder += f"\n\n{memory_warning}"
    return reminder


def handle_hook(input_data: dict[str, Any]) -> dict[str, Any]:
    """
    Main hook handler function.

    Args:
        input_data: Dictionary containing hook input

    Returns:
        Dictionary containing hook output
    """
    settings = get_settings()
    agent = parse_agent_name(input_data)
    raw = read_sprint_document(settings.sprint_status_path())

    memory_warning = ""
    if not is_memory_service_healthy(settings):
        memory_warning = memory_fallback_message(HOOK_NAME)
        logger.warning(memory_warning, hook=HOOK_NAME)

    return HookSpecificOutput(
        HOOK_EVENT,
        additional_context=build_reminder(agent, build_phase_info(raw), memory_warning),
    ).to_dict()


def main() -> None:
    """Main entry point for the hook."""
    run_hook(HOOK_NAME, handle_hook, FALLBACK_OUTPUT)


if __name__ == "__main__":
    main()
