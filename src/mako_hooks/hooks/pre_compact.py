"""
PreCompact hook: ``pre-compact-save``.

Fires just before the host compacts the conversation. Saves the current
sprint fields together with the carried-over agent ids, decisions and notes
to ``.mako-session-state.json``, then tells the orchestrator how to recover
once compaction is done.

Input (via stdin):
{
  "session_id": "uuid",
  "trigger": "auto|manual"
}

Output (via stdout):
{
  "hookSpecificOutput": {
    "hookEventName": "PreCompact",
    "additionalContext": "COMPACTAGE IMMINENT -- SAUVEGARDE CONTEXTE\\n..."
  }
}
"""

from __future__ import annotations

from typing import Any

import structlog

from mako_hooks.config import get_settings
from mako_hooks.envelope import HookSpecificOutput, run_hook
from mako_hooks.memory import is_memory_service_healthy, memory_fallback_message
from mako_hooks.session_state import format_agent_ids, load_and_merge, persist
from mako_hooks.sprint import extract_sprint_fields, format_sprint_summary, read_sprint_document

logger = structlog.get_logger(__name__)

HOOK_NAME = "pre-compact-save"
HOOK_EVENT = "PreCompact"

NO_SPRINT = "No sprint-status.yaml found."
NO_AGENTS = "None saved."

RECOVERY_STEPS = (
    "APRES LE COMPACTAGE :",
    "1. Lis sprint-status.yaml pour recuperer l'etat du sprint",
    "2. Lis .mako-session-state.json pour les agent IDs et decisions en cours",
    "3. retrieve_memory(query: '<nom-du-projet>') pour le contexte memoire",
    "4. Tu es Rufus. Ne code pas. Delegue. Continue le pipeline.",
)

FALLBACK_OUTPUT = HookSpecificOutput(
    HOOK_EVENT,
    additional_context=(
        "Compactage imminent. Apres: lis sprint-status.yaml et .mako-session-state.json."
    ),
).to_dict()


def build_recovery_context(sprint_summary: str, agent_ids: str, memory_warning: str = "") -> str:
    """Build the recovery instructions injected before compaction."""
    lines = [
        "COMPACTAGE IMMINENT -- SAUVEGARDE CONTEXTE",
        "",
        f"Sprint: {sprint_summary}",
        f"Agent IDs: {agent_ids}",
        "",
        *RECOVERY_STEPS,
    ]
    context = "\n".join(lines)
    if memory_warning:
        context += f"\n\n{memory_warning}"
    return context


def handle_hook(input_data: dict[str, Any]) -> dict[str, Any]:
    """
    Main hook handler function.

    Args:
        input_data: Dictionary containing hook input (unused)

    Returns:
        Dictionary containing hook output
    """
    settings = get_settings()
    project_dir = settings.project_root

    raw = read_sprint_document(settings.sprint_status_path(project_dir))
    sprint = extract_sprint_fields(raw)
    sprint_summary = format_sprint_summary(sprint) if raw else NO_SPRINT

    state = load_and_merge(project_dir, sprint)
    if not persist(project_dir, state):
        logger.warning("Continuing without a saved session state", project=str(project_dir))

    agent_ids = format_agent_ids(state.active_agents) or NO_AGENTS

    memory_warning = ""
    if not is_memory_service_healthy(settings):
        memory_warning = memory_fallback_message(HOOK_NAME)
        logger.warning(memory_warning, hook=HOOK_NAME)

    return HookSpecificOutput(
        HOOK_EVENT,
        additional_context=build_recovery_context(sprint_summary, agent_ids, memory_warning),
    ).to_dict()


def main() -> None:
    """Main entry point for the hook."""
    run_hook(HOOK_NAME, handle_hook, FALLBACK_OUTPUT)


if __name__ == "__main__":
    main()
