"""
UserPromptSubmit hook: ``user-prompt-submit-rufus``.

Fires on every user message and reminds the orchestrator of the sprint
state, the agents it has in flight and its ground rules. The reminder is
kept to five short lines so it does not crowd the context.

Output (via stdout):
{
  "result": "continue",
  "message": "<system-reminder>\\n[RUFUS CONTEXT RELOAD]\\n...\\n</system-reminder>"
}
"""

from __future__ import annotations

from typing import Any

from mako_hooks.config import get_settings
from mako_hooks.envelope import run_hook
from mako_hooks.session_state import format_agent_ids, read_active_agents
from mako_hooks.sprint import UNKNOWN, count_stories, extract_field, read_sprint_document

HOOK_NAME = "user-prompt-submit-rufus"

NO_SPRINT = "No active sprint."
RULES = (
    "Rules: Tu es Rufus. Ne code pas. Delegue. "
    "Mets a jour sprint-status apres chaque transition."
)
MAX_AGENT_IDS = 5

FALLBACK_OUTPUT: dict[str, Any] = {"result": "continue"}


def build_sprint_info(raw: str | None) -> str:
    """Render the one-line sprint summary, or ``NO_SPRINT`` without a document."""
    if raw is None:
        return NO_SPRINT

    def field(name: str) -> str:
        return extract_field(raw, name) or UNKNOWN

    stories = count_stories(raw)
    return (
        f"Workflow: {field('workflow')} | Status: {field('status')} | "
        f"Phase: {field('current_phase')} | Next: {field('next_phase')} | "
        f"Tier: {field('quality_tier')} | Stories: {stories.ratio} done"
    )


def build_reminder(sprint_info: str, agents: dict[str, str]) -> str:
    """Wrap the sprint line and the rules in a ``<system-reminder>`` block."""
    agent_ids = ""
    if agents:
        agent_ids = f" | AgentIDs: {format_agent_ids(agents, limit=MAX_AGENT_IDS)}"
    return "\n".join(
        [
            "<system-reminder>",
            "[RUFUS CONTEXT RELOAD]",
            sprint_info + agent_ids,
            RULES,
            "</system-reminder>",
        ]
    )


def handle_hook(input_data: dict[str, Any]) -> dict[str, Any]:
    """Build the context reminder for the submitted prompt."""
    settings = get_settings()
    project_dir = settings.project_root

    raw = read_sprint_document(settings.sprint_status_path(project_dir))
    agents = read_active_agents(project_dir, limit=MAX_AGENT_IDS)

    return {
        "result": "continue",
        "message": build_reminder(build_sprint_info(raw), agents),
    }


def main() -> None:
    """Main entry point for the hook."""
    run_hook(HOOK_NAME, handle_hook, FALLBACK_OUTPUT)


if __name__ == "__main__":
    main()
