"""
Pipeline routing.

After a subagent finishes, the orchestrator is told which agent comes next
in the pipeline. The table is fixed; unknown agents get a generic pointer
back to the sprint-status document.
"""

from __future__ import annotations

import re
from types import MappingProxyType
from typing import Any, Mapping

UNKNOWN_AGENT = "unknown"

DEFAULT_NEXT_STEP = "check workflow in sprint-status.yaml"

ROUTING: Mapping[str, str] = MappingProxyType(
    {
        "tseng": "scarlet or reeve (depending on workflow)",
        "scarlet": "reeve (architecture)",
        "genesis": "reeve or heidegger (depending on workflow)",
        "reeve": "alignment gate then heidegger or hojo",
        "heidegger": "lazard (if Standard+) or hojo",
        "lazard": "hojo",
        "hojo": "reno (testing)",
        "reno": "elena (security + edge cases)",
        "elena": "palmer (docs) or rude (review)",
        "palmer": "rude (review)",
        "rude": "DoD gate then retrospective",
        "sephiroth": "hojo (apply fix) or jenova (meta-learning)",
        "jenova": "report to user",
    }
)

_AGENT_TYPE = re.compile(r"mako:(\w+)")


def next_step(agent: object) -> str:
    """
    Get the next pipeline step after ``agent``.

    Lookup is exact and case-sensitive. Anything that is not a known agent
    name, including ``None``, yields ``DEFAULT_NEXT_STEP``.
    """
    if not isinstance(agent, str):
        return DEFAULT_NEXT_STEP
    return ROUTING.get(agent, DEFAULT_NEXT_STEP)


def parse_agent_name(payload: Mapping[str, Any] | None) -> str:
    """
    Extract the agent name from a SubagentStop payload.

    Reads ``agent_type`` (or ``agentType``) and takes the word after
    ``mako:``, e.g. ``"mako:hojo"`` -> ``"hojo"``.
    """
    if not isinstance(payload, Mapping):
        return UNKNOWN_AGENT
    agent_type = payload.get("agent_type") or payload.get("agentType")
    if not isinstance(agent_type, str):
        return UNKNOWN_AGENT
    match = _AGENT_TYPE.search(agent_type)
    return match.group(1) if match else UNKNOWN_AGENT
