"""
Field extraction for sprint-status documents.

``sprint-status.yaml`` is maintained by the orchestrator. Hooks only need a
handful of scalar fields and the story statuses, so they read it as a fixed
micro-format with anchored, bounded regular expressions instead of taking a
YAML parser dependency.

Every pattern has a single bounded quantifier for the value, so matching is
linear in the document length whatever the input looks like.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import Path

import structlog

logger = structlog.get_logger(__name__)

UNKNOWN = "?"

SPRINT_FIELDS = (
    "workflow",
    "status",
    "current_phase",
    "next_phase",
    "quality_tier",
    "scale",
)

STORY_STATUSES = ("backlog", "ready-for-dev", "in-progress", "review", "done")

MAX_VALUE_LENGTH = 200

_FIELD_PATTERNS: dict[str, re.Pattern[str]] = {
    name: re.compile(
        rf'^(?P<indent>[ \t]*){name}:[ \t]*"?(?P<value>[^"\n]{{1,{MAX_VALUE_LENGTH}}})',
        re.MULTILINE,
    )
    for name in SPRINT_FIELDS
}

_STORY_STATUS = re.compile(
    r'status:[ \t]*"?(?P<status>' + "|".join(map(re.escape, STORY_STATUSES)) + r")(?![\w-])"
)
_SPRINT_STATUS_LINE = re.compile(r"^status:[^\n]*", re.MULTILINE)


@dataclass(frozen=True)
class StoryCounts:
    """Story completion counts."""

    done: int = 0
    total: int = 0

    @property
    def ratio(self) -> str:
        """Completion as ``done/total``."""
        return f"{self.done}/{self.total}"


def _as_text(raw: object) -> str:
    if isinstance(raw, str):
        return raw
    if isinstance(raw, (bytes, bytearray)):
        return bytes(raw).decode("utf-8", errors="replace")
    return ""


def extract_field(raw: str | bytes | None, field: str) -> str | None:
    """
    Extract one scalar field (``field: value``, optionally quoted).

    Top-level occurrences win over indented ones; otherwise the first
    occurrence in the document is used.

    Args:
        raw: Document content.
        field: One of ``SPRINT_FIELDS``.

    Returns:
        The value without quotes or surrounding whitespace, or None.

    Raises:
        ValueError: If ``field`` is not a known sprint field.
    """
    pattern = _FIELD_PATTERNS.get(field)
    if pattern is None:
        raise ValueError(f"Unknown sprint field: {field!r}")

    text = _as_text(raw)
    if not text:
        return None

    first: str | None = None
    for match in pattern.finditer(text):
        value = match.group("value").strip()
        if not value:
            continue
        if not match.group("indent"):
            return value
        if first is None:
            first = value
    return first


def extract_sprint_fields(raw: str | bytes | None) -> dict[str, str]:
    """Extract all sprint fields, using ``"?"`` for missing ones."""
    return {name: extract_field(raw, name) or UNKNOWN for name in SPRINT_FIELDS}


def count_stories(raw: str | bytes | None) -> StoryCounts:
    """
    Count story statuses in a sprint-status document.

    Every ``status: <story status>`` token counts, except the sprint-level
    ``status`` field: the first unindented ``status:`` line. It is only
    discounted when its value is itself a story status. Story statuses are
    always indented or behind a list dash, whether stories are written as a
    list or as a mapping.
    """
    text = _as_text(raw)
    if not text:
        return StoryCounts()

    sprint_line = _SPRINT_STATUS_LINE.search(text)

    done = total = 0
    for match in _STORY_STATUS.finditer(text):
        if sprint_line and sprint_line.start() <= match.start() < sprint_line.end():
            continue
        total += 1
        if match.group("status") == "done":
            done += 1
    return StoryCounts(done=done, total=total)


def read_sprint_document(path: Path) -> str | None:
    """
    Read a sprint-status document.

    Returns:
        The content (possibly empty), or None when the file is missing,
        unreadable or not a regular file.
    """
    try:
        return path.read_bytes().decode("utf-8", errors="replace")
    except OSError as e:
        logger.debug("Sprint status unavailable", path=str(path), error=str(e))
        return None


def format_sprint_summary(fields: dict[str, str]) -> str:
    """Render sprint fields as ``key: value | key: value``."""
    return " | ".join(f"{key}: {value}" for key, value in fields.items())
