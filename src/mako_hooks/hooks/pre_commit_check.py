"""
PreToolUse hook: ``pre-commit-check``.

Runs the project's test suite before a ``git commit`` goes through and
blocks the commit when the tests fail. The test command is detected from
the project files; projects without one are always allowed.

Input (via stdin):
{
  "tool_name": "Bash",
  "tool_input": {"command": "git commit -m ..."}
}

Output (via stdout):
{"decision": "allow"}
or
{"decision": "block", "reason": "Tests failed ..."}
"""

from __future__ import annotations

import json
import re
import shutil
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import structlog

from mako_hooks.config import get_settings
from mako_hooks.envelope import run_hook

logger = structlog.get_logger(__name__)

HOOK_NAME = "pre-commit-check"

TEST_TIMEOUT_S = 120
OUTPUT_TAIL_CHARS = 1000

NPM_DEFAULT_TEST = "no test specified"
LOCKFILES = (
    ("bun.lockb", "bun"),
    ("pnpm-lock.yaml", "pnpm"),
    ("yarn.lock", "yarn"),
)
PYTHON_MARKERS = ("pyproject.toml", "pytest.ini", "setup.py")

_MAKE_TEST_TARGET = re.compile(r"^test[ \t]*:", re.MULTILINE)
_GIT_COMMIT = re.compile(r"\bgit\s+commit\b")

ALLOW: dict[str, Any] = {"decision": "allow"}
FALLBACK_OUTPUT = ALLOW


@dataclass(frozen=True)
class TestCommand:
    """A detected test command."""

    __test__ = False

    argv: tuple[str, ...]

    @property
    def display(self) -> str:
        return " ".join(self.argv)


def _package_json_test(cwd: Path) -> TestCommand | None:
    try:
        package = json.loads((cwd / "package.json").read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError, json.JSONDecodeError):
        return None
    if not isinstance(package, dict):
        return None
    scripts = package.get("scripts")
    test = scripts.get("test") if isinstance(scripts, dict) else None
    if not isinstance(test, str) or not test.strip() or NPM_DEFAULT_TEST in test:
        return None

    manager = next(
        (name for lockfile, name in LOCKFILES if (cwd / lockfile).exists()),
        "npm",
    )
    return TestCommand((manager, "test"))


def _makefile_has_test(cwd: Path) -> bool:
    try:
        content = (cwd / "Makefile").read_text(encoding="utf-8", errors="replace")
    except OSError:
        return False
    return _MAKE_TEST_TARGET.search(content) is not None


def find_test_command(cwd: Path) -> TestCommand | None:
    """
    Detect the project's test command.

    Priority: package.json ``scripts.test`` (bun, pnpm, yarn or npm by
    lockfile), Cargo.toml, a Makefile ``test`` target, then Python project
    markers.
    """
    command = _package_json_test(cwd)
    if command is not None:
        return command
    if (cwd / "Cargo.toml").is_file():
        return TestCommand(("cargo", "test", "--quiet"))
    if _makefile_has_test(cwd):
        return TestCommand(("make", "test"))
    if any((cwd / marker).is_file() for marker in PYTHON_MARKERS):
        return TestCommand(("python", "-m", "pytest", "--quiet", "-x"))
    return None


def is_commit_call(input_data: dict[str, Any]) -> bool:
    """
    Return True if the tool call is a ``git commit``.

    An empty payload counts as a commit so the hook can be run by hand.
    """
    if not input_data:
        return True
    if input_data.get("tool_name") not in (None, "Bash"):
        return False
    tool_input = input_data.get("tool_input")
    command = tool_input.get("command") if isinstance(tool_input, dict) else None
    return isinstance(command, str) and _GIT_COMMIT.search(command) is not None


def _block(reason: str) -> dict[str, Any]:
    return {"decision": "block", "reason": reason}


def run_test_command(command: TestCommand, cwd: Path, timeout: float = TEST_TIMEOUT_S) -> dict[str, Any]:
    """Run the tests and turn the outcome into a hook decision."""
    executable = shutil.which(command.argv[0]) or command.argv[0]
    try:
        result = subprocess.run(
            [executable, *command.argv[1:]],
            cwd=cwd,
            capture_output=True,
            text=True,
            errors="replace",
            timeout=timeout,
        )
    except subprocess.TimeoutExpired:
        return _block(
            f"Tests timed out after {timeout:g}s.\n"
            f"Command: {command.display}\n"
            "Fix before committing."
        )
    except OSError as e:
        return _block(
            f"Tests could not be run: {e}\n"
            f"Command: {command.display}\n"
            "Fix before committing."
        )

    if result.returncode == 0:
        return dict(ALLOW)

    output = (result.stdout or "") + (result.stderr or "")
    return _block(
        f"Tests failed (exit code {result.returncode}).\n"
        f"Command: {command.display}\n"
        f"Output (last {OUTPUT_TAIL_CHARS} chars):\n"
        f"{output[-OUTPUT_TAIL_CHARS:]}\n"
        "Fix before committing."
    )


def handle_hook(input_data: dict[str, Any]) -> dict[str, Any]:
    """Allow the tool call, or block a commit whose tests fail."""
    if not is_commit_call(input_data):
        return dict(ALLOW)

    cwd = get_settings().project_root
    command = find_test_command(cwd)
    if command is None:
        logger.debug("No test command detected", cwd=str(cwd))
        return dict(ALLOW)

    logger.info("Running tests before commit", command=command.display)
    return run_test_command(command, cwd)


def main() -> None:
    """Main entry point for the hook."""
    run_hook(HOOK_NAME, handle_hook, FALLBACK_OUTPUT)


if __name__ == "__main__":
    main()
