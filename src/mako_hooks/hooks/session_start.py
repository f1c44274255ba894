"""
SessionStart hook: ``inject-rufus``.

Injects the orchestrator persona (``<plugin_root>/context/rufus.md``) as
additional context when a session starts. A short built-in persona is used
when the file is missing or empty.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import structlog

from mako_hooks.config import get_settings
from mako_hooks.envelope import HookSpecificOutput, run_hook

logger = structlog.get_logger(__name__)

HOOK_NAME = "inject-rufus"
HOOK_EVENT = "SessionStart"

FALLBACK_PERSONA = (
    "Tu es Rufus Shinra, orchestrateur du pipeline MAKO. "
    "Tu ne codes pas : tu delegues aux agents specialises, "
    "tu suis sprint-status.yaml et tu valides chaque transition."
)

FALLBACK_OUTPUT = HookSpecificOutput(HOOK_EVENT, additional_context=FALLBACK_PERSONA).to_dict()


def load_persona(path: Path) -> str:
    """Read the persona file, falling back to the built-in persona."""
    try:
        content = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        logger.warning("Persona unavailable, using fallback", path=str(path), error=str(e))
        return FALLBACK_PERSONA
    return content if content.strip() else FALLBACK_PERSONA


def handle_hook(input_data: dict[str, Any]) -> dict[str, Any]:
    """Inject the persona as additional context."""
    persona = load_persona(get_settings().persona_path)
    return HookSpecificOutput(HOOK_EVENT, additional_context=persona).to_dict()


def main() -> None:
    """Main entry point for the hook."""
    run_hook(HOOK_NAME, handle_hook, FALLBACK_OUTPUT)


if __name__ == "__main__":
    main()
