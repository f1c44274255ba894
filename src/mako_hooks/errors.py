"""
Exception hierarchy for mako-hooks.

Library functions raise these; component boundaries (telemetry, health
probe, session-state store) fold them into degraded values so that a hook
always produces its output envelope.
"""


class MakoHookError(Exception):
    """Base exception for mako-hooks errors."""

    pass


class StateError(MakoHookError):
    """Raised when a persisted session-state snapshot cannot be read."""

    pass


class PersistenceError(MakoHookError):
    """Raised when a snapshot or log line cannot be written."""

    pass


class ProbeError(MakoHookError):
    """Raised when the memory service health probe does not succeed."""

    pass
