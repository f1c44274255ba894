"""
Hook entry points.

Each module exposes ``HOOK_NAME``, ``handle_hook(input_data)``,
``FALLBACK_OUTPUT`` and ``main()``, and can be run with
``python -m mako_hooks.hooks.<module>``.
"""

from __future__ import annotations

import importlib
from types import ModuleType

HOOK_MODULES: dict[str, str] = {
    "inject-rufus": "mako_hooks.hooks.session_start",
    "ensure-memory-server": "mako_hooks.hooks.memory_server",
    "user-prompt-submit-rufus": "mako_hooks.hooks.user_prompt_submit",
    "subagent-stop-memory": "mako_hooks.hooks.subagent_stop",
    "pre-compact-save": "mako_hooks.hooks.pre_compact",
    "pre-commit-check": "mako_hooks.hooks.pre_commit_check",
}


def load_hook(name: str) -> ModuleType:
    """
    Import the module implementing a hook.

    Raises:
        KeyError: If no hook has that name.
    """
    return importlib.import_module(HOOK_MODULES[name])


__all__ = ["HOOK_MODULES", "load_hook"]
