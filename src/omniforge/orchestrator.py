"""
Phase orchestration: walks the catalog and runs each phase's scripts.

For every phase, in ascending id order:

1. Disabled phases are a no-op.
2. Dependencies are checked per the phase's prereq mode (always ``warn``
   in a dry run); a strict failure fails the phase without running any
   of its scripts.
3. Scripts run one at a time in declared order. A script already recorded
   as succeeded is skipped unless ``force`` is set or resume mode is
   ``rerun``. A missing script file is a failure. Each success is written
   to the state store before the next script starts.

Under ``fail-fast`` the first failure stops the run. Under ``continue``
every enabled phase is attempted and all failures are reported together.

Usage::

    from omniforge.orchestrator import PhaseOrchestrator
    from omniforge.reporter import ExecutionPolicy

    orchestrator = PhaseOrchestrator.from_config()
    run = orchestrator.execute_all(policy=ExecutionPolicy.FAIL_FAST)
    if not run.ok:
        print(orchestrator.recap(run))
"""

from __future__ import annotations

import logging
import os
import shutil
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import IO, List, Optional, Protocol, Union

from omniforge.config import OmniForgeConfig, get_config
from omniforge.deps import DependencyChecker
from omniforge.errors import PhaseAbortedError, ScriptExecutionError, ScriptNotFoundError
from omniforge.executor import DryRunExecutor, ExecutionResult, ScriptExecutor
from omniforge.logger import RunLogger, open_run_log
from omniforge.registry import Phase, PhaseRegistry
from omniforge.reporter import (
    ExecutionPolicy,
    ExecutionReporter,
    ExecutionRun,
    Outcome,
    PhaseStatus,
    RunMode,
    ScriptEvent,
    render_recap,
)
from omniforge.state import ExecutionStateStore
from omniforge.tracing import emit_run_summary, phase_span, run_span, script_span, set_outcome

logger = logging.getLogger(__name__)

MIN_FREE_DISK_BYTES = 1024 ** 3


class Executor(Protocol):
    def run(self, path: Union[str, Path], timeout_seconds: float, retries: int = 0) -> ExecutionResult:
        ...


@dataclass
class _RunContext:
    run: ExecutionRun
    reporter: ExecutionReporter
    events: RunLogger
    executor: Executor


@dataclass
class PreflightReport:
    """Problems found before any phase runs."""

    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    @property
    def passed(self) -> bool:
        return not self.errors

    def render(self) -> str:
        lines = ["PREFLIGHT CHECK", ""]
        lines.extend(f"ERROR: {e}" for e in self.errors)
        lines.extend(f"WARN: {w}" for w in self.warnings)
        if self.errors:
            lines.append(
                f"Preflight check FAILED: {len(self.errors)} error(s), {len(self.warnings)} warning(s)"
            )
        elif self.warnings:
            lines.append(f"Preflight check passed with {len(self.warnings)} warning(s)")
        else:
            lines.append("Preflight check PASSED")
        return "\n".join(lines)


class PhaseOrchestrator:
    """Runs catalog phases sequentially against the execution state store."""

    def __init__(
        self,
        registry: PhaseRegistry,
        state: ExecutionStateStore,
        executor: Optional[Executor] = None,
        checker: Optional[DependencyChecker] = None,
        config: Optional[OmniForgeConfig] = None,
    ):
        """
        Args:
            registry: Loaded phase catalog
            state: Execution state store used for resume decisions
            executor: Script executor; a ScriptExecutor per run when not set
            checker: Dependency checker; resolves on the process PATH when not set
            config: Configuration; the global config when not set
        """
        self.registry = registry
        self.state = state
        self.config = config or get_config()
        self.checker = checker or DependencyChecker()
        self._executor = executor

    @classmethod
    def from_config(cls, config: Optional[OmniForgeConfig] = None) -> "PhaseOrchestrator":
        """Build an orchestrator from the configured catalog and state file."""
        config = config or get_config()
        registry = PhaseRegistry.load(
            config.catalog,
            max_phase_id=config.max_phase_id,
            default_timeout=config.default_timeout_seconds,
        )
        return cls(registry, ExecutionStateStore(config.state_path), config=config)

    @property
    def scripts_dir(self) -> Path:
        return self.config.scripts_path

    # -- run lifecycle ----------------------------------------------------

    def new_run(
        self,
        policy: Optional[Union[ExecutionPolicy, str]] = None,
        dry_run: bool = False,
        force: bool = False,
    ) -> ExecutionRun:
        """Create a fresh ExecutionRun, opening a run log if configured."""
        run = ExecutionRun(
            mode=RunMode.DRY_RUN if dry_run else RunMode.LIVE,
            policy=ExecutionPolicy(policy or self.config.execution_policy),
            force=force,
        )
        log_dir = self.config.log_path
        if log_dir is not None:
            run.log_file = open_run_log(log_dir, dry_run=dry_run)
        return run

    def _context(self, run: ExecutionRun) -> _RunContext:
        if run.dry_run:
            executor: Executor = DryRunExecutor()
        elif self._executor is not None:
            executor = self._executor
        else:
            executor = ScriptExecutor(
                shell=self.config.shell,
                log_sink=run.log_file,
                retry_delay_seconds=self.config.retry_delay_seconds,
                env={
                    "PROJECT_ROOT": str(Path(self.config.project_root).resolve()),
                    "SCRIPTS_DIR": str(self.scripts_dir.resolve()),
                },
                cwd=self.config.project_root,
            )
        return _RunContext(
            run=run,
            reporter=ExecutionReporter(run),
            events=RunLogger(run_id=run.run_id, mode=run.mode.value, log_file=run.log_file),
            executor=executor,
        )

    # -- public API -------------------------------------------------------

    def execute_phase(
        self,
        phase_id: int,
        force: bool = False,
        run: Optional[ExecutionRun] = None,
        policy: Optional[Union[ExecutionPolicy, str]] = None,
        dry_run: bool = False,
    ) -> bool:
        """
        Execute a single phase.

        Args:
            phase_id: Phase to execute
            force: Re-run scripts even if recorded as succeeded (also implied by ``run.force``)
            run: Run to accumulate into; a new one is created when not set
            policy: Policy for a newly created run
            dry_run: Dry-run mode for a newly created run

        Returns:
            True iff the phase completed without failures (or is disabled)
        """
        if run is None:
            run = self.new_run(policy=policy, dry_run=dry_run, force=force)
        force = force or run.force
        ctx = self._context(run)
        try:
            return self._execute_phase(phase_id, ctx, force)
        except PhaseAbortedError as e:
            run.aborted_at = e.reason
            logger.error("%s", e)
            return False
        finally:
            run.finish()

    def execute_all(
        self,
        force: bool = False,
        policy: Optional[Union[ExecutionPolicy, str]] = None,
        dry_run: bool = False,
        phase_filter: Optional[int] = None,
    ) -> ExecutionRun:
        """
        Execute all discovered phases (or only ``phase_filter``).

        Returns:
            The finished ExecutionRun; ``run.ok`` is the AND of all phase results

        Raises:
            ValueError: ``phase_filter`` is not a discovered phase id
        """
        phase_ids = self.registry.discover()
        if phase_filter is not None:
            if phase_filter not in phase_ids:
                raise ValueError(f"Unknown phase: {phase_filter} (discovered: {phase_ids})")
            phase_ids = [phase_filter]

        run = self.new_run(policy=policy, dry_run=dry_run, force=force)
        ctx = self._context(run)

        with run_span(run.run_id, run.mode.value, run.policy.value) as span:
            ctx.events.run_started(policy=run.policy.value, force=force, phases=phase_ids)

            if not phase_ids:
                logger.error("No phases discovered from catalog")
                run.errors.append("No phases discovered from catalog")

            logger.debug("Discovered %d phases: %s", len(phase_ids), phase_ids)
            for phase_id in phase_ids:
                try:
                    ok = self._execute_phase(phase_id, ctx, force)
                except PhaseAbortedError as e:
                    run.aborted_at = e.reason
                    logger.error("%s", e)
                    break
                if not ok and run.policy == ExecutionPolicy.FAIL_FAST:
                    break

            run.finish()
            summary = ctx.reporter.summary()
            emit_run_summary(span, summary)
            ctx.events.run_completed(
                ok=run.ok,
                completed=summary.completed,
                failed=summary.failed,
                skipped=summary.skipped,
                duration_ms=summary.duration_ms,
            )

        return run

    def run(
        self,
        phase_filter: Optional[int] = None,
        force: bool = False,
        dry_run: bool = False,
        policy: Optional[Union[ExecutionPolicy, str]] = None,
        stream: Optional[IO[str]] = None,
    ) -> int:
        """
        Execute, write the recap to ``stream`` and return a process exit code.
        """
        run = self.execute_all(force=force, policy=policy, dry_run=dry_run, phase_filter=phase_filter)
        out = stream or sys.stdout
        out.write(self.recap(run) + "\n")
        return run.exit_code

    def recap(self, run: ExecutionRun, use_colors: bool = False) -> str:
        return render_recap(ExecutionReporter(run).summary(), use_colors=use_colors)

    # -- phase and script execution ---------------------------------------

    def _execute_phase(self, phase_id: int, ctx: _RunContext, force: bool) -> bool:
        run = ctx.run
        phase = self.registry.get_phase(phase_id)
        if phase is None:
            ctx.reporter.record_phase_error(phase_id, "not found in catalog")
            return False

        tally = run.tally(phase_id, phase.name)

        if not phase.enabled:
            logger.info("Phase %d (%s) is disabled, skipping", phase_id, phase.name)
            tally.status = PhaseStatus.DISABLED
            ctx.events.phase_disabled(phase_id, phase.name)
            return True

        with phase_span(phase_id, phase.name):
            tally.status = PhaseStatus.RUNNING

            problem = self._check_phase_prerequisites(phase, run)
            if problem is not None:
                logger.error("Phase %d (%s) %s", phase_id, phase.name, problem)
                ctx.reporter.record_phase_error(phase_id, problem)
                ctx.events.phase_completed(phase_id, phase.name, tally.status.value)
                if run.policy == ExecutionPolicy.FAIL_FAST:
                    raise PhaseAbortedError(phase_id, f"phase {phase_id} {problem}")
                return False

            logger.info("Phase %d: %s", phase_id, phase.name)
            ctx.events.phase_started(phase_id, phase.name, len(phase.scripts))
            if not phase.scripts:
                logger.warning("No scripts defined for phase %d", phase_id)

            phase_failed = False
            for key in phase.scripts:
                if self._execute_script(phase, key, ctx, force):
                    continue
                phase_failed = True
                if run.policy == ExecutionPolicy.FAIL_FAST:
                    tally.status = PhaseStatus.COMPLETED_WITH_ERRORS
                    ctx.events.phase_completed(phase_id, phase.name, tally.status.value)
                    raise PhaseAbortedError(phase_id, key)

            if phase_failed:
                logger.warning("Phase %d completed with errors", phase_id)
                tally.status = PhaseStatus.COMPLETED_WITH_ERRORS
            else:
                logger.debug("Phase %d (%s) completed", phase_id, phase.name)
                tally.status = PhaseStatus.COMPLETED
            ctx.events.phase_completed(phase_id, phase.name, tally.status.value)
            return not phase_failed

    def _check_phase_prerequisites(self, phase: Phase, run: ExecutionRun) -> Optional[str]:
        """Return a failure reason, or None if the phase may run."""
        specs = phase.config.dependency_specs
        if specs:
            report = self.checker.check_deps(specs, phase.config.prereq_mode, dry_run=run.dry_run)
            if not report:
                return f"dependency check failed: missing {', '.join(report.missing_commands)}"
            if report.missing and run.dry_run:
                logger.warning(
                    "Phase %d (%s) dependency check failed (continuing in dry-run mode)",
                    phase.id,
                    phase.name,
                )

        if phase.config.docker_required and self.config.require_docker and not run.dry_run:
            if not self.checker.check_docker():
                return "requires Docker; ensure Docker is available"
        return None

    def _execute_script(self, phase: Phase, key: str, ctx: _RunContext, force: bool) -> bool:
        run = ctx.run
        name = Path(key).name

        if not force and self.config.resume_mode == "skip" and self.state.has_succeeded(key):
            logger.info("[SKIP] %s (already done)", name)
            ctx.reporter.record(ScriptEvent(phase.id, key, Outcome.SKIPPED))
            ctx.events.script_skipped(phase.id, key)
            return True

        path = self.scripts_dir / key
        if not path.is_file():
            missing = ScriptNotFoundError(key, str(path))
            logger.error("[FAIL] %s (not found)", name)
            logger.debug("%s", missing)
            ctx.reporter.record(
                ScriptEvent(phase.id, key, Outcome.FAILED, exit_code=1, message="script not found")
            )
            ctx.events.script_failed(phase.id, key, "script not found", exit_code=1)
            return False

        with script_span(phase.id, key) as span:
            logger.info("[..] %s", name)
            ctx.events.script_started(phase.id, key)
            result = ctx.executor.run(path, phase.config.timeout_seconds, retries=0)

            if result.ok:
                if not run.dry_run or self.config.dry_run_marks_success:
                    self.state.mark_success(key)
                ctx.reporter.record(
                    ScriptEvent(phase.id, key, Outcome.SUCCESS, duration_ms=result.duration_ms, exit_code=0)
                )
                if run.dry_run:
                    logger.info("[DRY] %s (would run)", name)
                else:
                    logger.info("[OK] %s (%.0fs)", name, result.duration_ms / 1000)
                ctx.events.script_succeeded(phase.id, key, result.duration_ms)
                set_outcome(span, Outcome.SUCCESS.value, 0, result.duration_ms)
                return True

            failure = ScriptExecutionError(key, result.exit_code, result.timed_out)
            reason = "timed out" if result.timed_out else "script failed"
            logger.error("[FAIL] %s (%.0fs): %s", name, result.duration_ms / 1000, failure)
            ctx.reporter.record(
                ScriptEvent(
                    phase.id,
                    key,
                    Outcome.FAILED,
                    duration_ms=result.duration_ms,
                    exit_code=result.exit_code,
                    message=reason,
                )
            )
            ctx.events.script_failed(
                phase.id, key, reason, exit_code=result.exit_code, duration_ms=result.duration_ms
            )
            set_outcome(span, Outcome.FAILED.value, result.exit_code, result.duration_ms)
            return False

    # -- preflight --------------------------------------------------------

    def preflight(self, dry_run: bool = False) -> PreflightReport:
        """
        Check every enabled phase before anything runs.

        Dependency problems are errors only for strict phases outside a dry
        run. Missing scripts and low disk space are warnings; an unwritable
        project root is an error.
        """
        report = PreflightReport()

        enabled = [p for p in (self.registry.get_phase(i) for i in self.registry.discover()) if p and p.enabled]
        for phase in enabled:
            deps = self.checker.check_deps(
                phase.config.dependency_specs, phase.config.prereq_mode, dry_run=dry_run
            )
            if deps.missing:
                message = (
                    f"Phase {phase.id} ({phase.name}) missing dependencies: "
                    f"{', '.join(deps.missing_commands)}"
                )
                if deps:
                    report.warnings.append(message)
                else:
                    report.errors.append(message)

        for phase in enabled:
            for key in phase.scripts:
                if not (self.scripts_dir / key).is_file():
                    logger.warning("Missing script: %s", key)
                    report.warnings.append(f"Missing script: {key}")

        root = Path(self.config.project_root)
        try:
            if shutil.disk_usage(root).free < MIN_FREE_DISK_BYTES:
                report.warnings.append("Low disk space: less than 1GB available")
        except OSError as e:
            logger.debug("Disk usage check failed for %s: %s", root, e)

        if not os.access(root, os.W_OK):
            report.errors.append(f"PROJECT_ROOT is not writable: {root}")

        return report
