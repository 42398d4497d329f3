"""
Exception taxonomy for OmniForge.

Only ``MissingDependencyError`` (strict), ``ScriptNotFoundError`` and
``ScriptExecutionError`` affect the outcome of a run. Malformed catalog
fields and corrupt state lines are resolved locally (defaults / skipped
lines) and never reach the caller.
"""

from __future__ import annotations

from typing import Optional, Sequence


class OmniForgeError(Exception):
    """Base class for all OmniForge errors."""


class CatalogError(OmniForgeError):
    """The phase catalog file is missing or not a mapping."""


class MetadataMalformedError(OmniForgeError):
    """A catalog field is present but cannot be parsed."""

    def __init__(self, phase_id: int, field: str, value: object) -> None:
        self.phase_id = phase_id
        self.field = field
        self.value = value
        super().__init__(
            f"Phase {phase_id}: malformed value for '{field}': {value!r}"
        )


class StateCorruptionError(OmniForgeError):
    """A persisted state line could not be parsed."""

    def __init__(self, line_no: int, line: str) -> None:
        self.line_no = line_no
        self.line = line
        super().__init__(f"Unparsable state entry at line {line_no}: {line!r}")


class MissingDependencyError(OmniForgeError):
    """One or more required commands are not on PATH."""

    def __init__(self, phase_id: Optional[int], missing: Sequence[str]) -> None:
        self.phase_id = phase_id
        self.missing = list(missing)
        where = f"Phase {phase_id}" if phase_id is not None else "Dependency check"
        super().__init__(f"{where}: missing required commands: {', '.join(self.missing)}")


class ScriptNotFoundError(OmniForgeError):
    """A cataloged script key has no backing file."""

    def __init__(self, key: str, path: str) -> None:
        self.key = key
        self.path = path
        super().__init__(f"Script not found: {key} ({path})")


class ScriptExecutionError(OmniForgeError):
    """A script exited non-zero or timed out."""

    def __init__(self, key: str, exit_code: int, timed_out: bool = False) -> None:
        self.key = key
        self.exit_code = exit_code
        self.timed_out = timed_out
        reason = "timed out" if timed_out else "script failed"
        super().__init__(f"{key}: {reason} (exit {exit_code})")


class PhaseAbortedError(OmniForgeError):
    """Raised under fail-fast to stop the current phase and the run."""

    def __init__(self, phase_id: int, reason: str) -> None:
        self.phase_id = phase_id
        self.reason = reason
        super().__init__(f"Phase {phase_id} aborted: {reason}")
