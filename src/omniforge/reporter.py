"""
Per-run counters and the end-of-run recap.

An ``ExecutionRun`` is created fresh for every orchestrator invocation and
is never persisted. The orchestrator feeds it ``ScriptEvent`` records via
``ExecutionReporter.record``; the summary and recap are derived from those
in-memory counters only.
"""

from __future__ import annotations

import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional


class RunMode(str, Enum):
    DRY_RUN = "dry-run"
    LIVE = "live"


class ExecutionPolicy(str, Enum):
    """Whether the first failure aborts the run."""

    FAIL_FAST = "fail-fast"
    CONTINUE = "continue"


class Outcome(str, Enum):
    SUCCESS = "success"
    FAILED = "failed"
    SKIPPED = "skipped"


class PhaseStatus(str, Enum):
    NOT_STARTED = "not_started"
    DISABLED = "disabled"
    RUNNING = "running"
    COMPLETED = "completed"
    COMPLETED_WITH_ERRORS = "completed_with_errors"


@dataclass(frozen=True)
class ScriptEvent:
    """One skip/success/failure observed by the orchestrator."""

    phase_id: int
    key: str
    outcome: Outcome
    duration_ms: int = 0
    exit_code: Optional[int] = None
    message: Optional[str] = None


@dataclass
class PhaseTally:
    phase_id: int
    name: str
    ok: int = 0
    fail: int = 0
    skip: int = 0
    status: PhaseStatus = PhaseStatus.NOT_STARTED
    errors: List[str] = field(default_factory=list)

    @property
    def failed(self) -> bool:
        return self.status == PhaseStatus.COMPLETED_WITH_ERRORS


@dataclass
class ExecutionRun:
    """State of a single invocation: mode, policy and counters."""

    mode: RunMode = RunMode.LIVE
    policy: ExecutionPolicy = ExecutionPolicy.CONTINUE
    force: bool = False
    run_id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])
    started_at: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
    completed: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
    phases: Dict[int, PhaseTally] = field(default_factory=dict)
    aborted_at: Optional[str] = None
    log_file: Optional[Path] = None
    _start: float = field(default_factory=time.monotonic, repr=False)
    _end: Optional[float] = field(default=None, repr=False)

    @property
    def dry_run(self) -> bool:
        return self.mode == RunMode.DRY_RUN

    @property
    def ok(self) -> bool:
        """True iff no script failed and no phase failed."""
        if self.failed or self.errors:
            return False
        return not any(t.failed for t in self.phases.values())

    @property
    def exit_code(self) -> int:
        return 0 if self.ok else 1

    @property
    def duration_ms(self) -> int:
        end = self._end if self._end is not None else time.monotonic()
        return int((end - self._start) * 1000)

    def finish(self) -> None:
        self._end = time.monotonic()

    def tally(self, phase_id: int, name: Optional[str] = None) -> PhaseTally:
        if phase_id not in self.phases:
            self.phases[phase_id] = PhaseTally(phase_id=phase_id, name=name or f"Phase {phase_id}")
        return self.phases[phase_id]


@dataclass(frozen=True)
class PhaseSummary:
    phase_id: int
    name: str
    ok: int
    fail: int
    skip: int
    status: PhaseStatus


@dataclass(frozen=True)
class RunSummary:
    mode: RunMode
    policy: ExecutionPolicy
    duration_ms: int
    per_phase: List[PhaseSummary]
    failed_scripts: List[str]
    errors: List[str]
    completed: int
    skipped: int
    failed: int
    aborted_at: Optional[str] = None

    @property
    def has_failures(self) -> bool:
        return bool(self.failed_scripts or self.errors) or any(
            p.status == PhaseStatus.COMPLETED_WITH_ERRORS for p in self.per_phase
        )


class ExecutionReporter:
    """Accumulates events into an ``ExecutionRun`` and summarizes it."""

    def __init__(self, run: ExecutionRun):
        self.run = run

    def record(self, event: ScriptEvent) -> None:
        tally = self.run.tally(event.phase_id)
        if event.outcome == Outcome.SUCCESS:
            self.run.completed.append(event.key)
            tally.ok += 1
        elif event.outcome == Outcome.SKIPPED:
            self.run.skipped.append(event.key)
            tally.skip += 1
        else:
            self.run.failed.append(event.key)
            tally.fail += 1
            message = event.message or "script failed"
            exit_code = event.exit_code if event.exit_code is not None else 1
            error = f"{event.key}: {message} (exit {exit_code})"
            self.run.errors.append(error)
            tally.errors.append(error)

    def record_phase_error(self, phase_id: int, message: str) -> None:
        """Record a failure that is not tied to a script (e.g. dependencies)."""
        tally = self.run.tally(phase_id)
        error = f"Phase {phase_id}: {message}"
        self.run.errors.append(error)
        tally.errors.append(error)
        tally.status = PhaseStatus.COMPLETED_WITH_ERRORS

    def summary(self) -> RunSummary:
        per_phase = [
            PhaseSummary(
                phase_id=t.phase_id,
                name=t.name,
                ok=t.ok,
                fail=t.fail,
                skip=t.skip,
                status=t.status,
            )
            for _, t in sorted(self.run.phases.items())
        ]
        return RunSummary(
            mode=self.run.mode,
            policy=self.run.policy,
            duration_ms=self.run.duration_ms,
            per_phase=per_phase,
            failed_scripts=list(self.run.failed),
            errors=list(self.run.errors),
            completed=len(self.run.completed),
            skipped=len(self.run.skipped),
            failed=len(self.run.failed),
            aborted_at=self.run.aborted_at,
        )


# ANSI color codes for terminal output
class Colors:
    """ANSI color codes for terminal output."""
    GREEN = "\033[92m"
    YELLOW = "\033[93m"
    RED = "\033[91m"
    BLUE = "\033[94m"
    RESET = "\033[0m"
    BOLD = "\033[1m"


class _NoColors:
    GREEN = YELLOW = RED = BLUE = RESET = BOLD = ""


RULE = "=" * 42


def render_recap(summary: RunSummary, use_colors: bool = False) -> str:
    """
    Render the end-of-run recap.

    Args:
        summary: Summary produced by ``ExecutionReporter.summary``
        use_colors: Whether to use ANSI color codes

    Returns:
        Formatted recap string
    """
    c = Colors if use_colors else _NoColors
    minutes, seconds = divmod(summary.duration_ms // 1000, 60)
    mode = "dry-run (no commands executed)" if summary.mode == RunMode.DRY_RUN else "live"

    phase_counts = {"completed": 0, "disabled": 0, "failed": 0}
    for p in summary.per_phase:
        if p.status == PhaseStatus.COMPLETED_WITH_ERRORS:
            phase_counts["failed"] += 1
        elif p.status == PhaseStatus.DISABLED:
            phase_counts["disabled"] += 1
        elif p.status == PhaseStatus.COMPLETED:
            phase_counts["completed"] += 1

    lines = [
        "",
        RULE,
        f"{c.BOLD}  OMNIFORGE EXECUTION RECAP{c.RESET}",
        RULE,
        "",
        "Summary:",
        f"  Mode: {mode}",
        f"  Policy: {summary.policy.value}",
        f"  Duration: {minutes}m {seconds}s",
        "  Phases: completed={completed} disabled={disabled} failed={failed}".format(**phase_counts),
        f"  Scripts: completed={summary.completed} skipped={summary.skipped} failed={summary.failed}",
        "",
    ]

    counted = [p for p in summary.per_phase if p.status != PhaseStatus.DISABLED]
    if counted:
        lines.append("Per-phase summary (ok/fail/skip):")
        for p in counted:
            lines.append(f"  Phase {p.phase_id} ({p.name}): ok={p.ok} fail={p.fail} skip={p.skip}")
        lines.append("")

    if not summary.has_failures:
        lines.append(f"{c.GREEN}No failures detected{c.RESET}")
        return "\n".join(lines)

    lines.extend([RULE, f"{c.RED}  FAILURES DETECTED{c.RESET}", RULE, ""])
    if summary.aborted_at:
        lines.extend([f"Run aborted at: {summary.aborted_at}", ""])

    if summary.failed_scripts:
        lines.append("Failed scripts:")
        lines.extend(f"  - {key}" for key in summary.failed_scripts)
        lines.append("")

    if summary.errors:
        lines.append("Error details:")
        lines.extend(f"  {err}" for err in summary.errors)
        lines.append("")

    lines.extend([
        RULE,
        f"{c.BOLD}  RECOVERY OPTIONS{c.RESET}",
        RULE,
        "",
        "To retry (skips completed scripts):",
        "   omniforge run",
        "",
        "To force re-run all scripts:",
        "   omniforge run --force",
        "",
        "To clear state and start fresh:",
        "   omniforge status --clear",
        "   omniforge run",
    ])
    return "\n".join(lines)
