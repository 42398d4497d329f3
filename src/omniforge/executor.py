"""
Runs a single installer script to completion under a timeout.

Scripts follow a plain exit-code contract: ``0`` is success, anything
else is failure. Output is not parsed; it goes to the run log file when
one is configured, otherwise it is inherited from the parent process.

A script that exceeds its timeout is terminated (SIGTERM to its process
group, SIGKILL after a grace period) and reported with exit code 124,
the same code ``timeout(1)`` uses. If the interpreter itself cannot be
started the result has exit code 127, as a shell reports for a missing
command. An interrupt while waiting kills the child before propagating.
"""

from __future__ import annotations

import logging
import os
import signal
import subprocess
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional, Union

logger = logging.getLogger(__name__)

TIMEOUT_EXIT_CODE = 124
SPAWN_FAILURE_EXIT_CODE = 127
KILL_GRACE_SECONDS = 2.0

PathLike = Union[str, Path]


@dataclass(frozen=True)
class ExecutionResult:
    """Outcome of one script execution."""

    exit_code: int
    duration_ms: int
    timed_out: bool = False
    attempts: int = 1
    dry_run: bool = False

    @property
    def ok(self) -> bool:
        return self.exit_code == 0


class ScriptExecutor:
    """Spawns scripts as child processes, one at a time."""

    def __init__(
        self,
        shell: str = "bash",
        log_sink: Optional[PathLike] = None,
        retry_delay_seconds: float = 5.0,
        env: Optional[Dict[str, str]] = None,
        cwd: Optional[PathLike] = None,
    ):
        """
        Args:
            shell: Interpreter the script path is passed to
            log_sink: File that child stdout/stderr is appended to
            retry_delay_seconds: Pause before each retry
            env: Extra environment variables for the child
            cwd: Working directory for the child
        """
        self.shell = shell
        self.log_sink = Path(log_sink) if log_sink else None
        self.retry_delay_seconds = retry_delay_seconds
        self.env = dict(env or {})
        self.cwd = str(cwd) if cwd else None

    def run(self, path: PathLike, timeout_seconds: float, retries: int = 0) -> ExecutionResult:
        """
        Run ``path`` and wait for it to finish.

        Args:
            path: Script to execute
            timeout_seconds: Wall-clock limit per attempt
            retries: Additional attempts after a failure

        Returns:
            ExecutionResult of the final attempt
        """
        path = Path(path)
        attempts = 0
        result = ExecutionResult(exit_code=1, duration_ms=0)

        while attempts <= retries:
            attempts += 1
            if attempts > 1:
                logger.debug("Retry %d/%d for %s", attempts - 1, retries, path.name)
                time.sleep(self.retry_delay_seconds)

            exit_code, duration_ms, timed_out = self._run_once(path, timeout_seconds)
            result = ExecutionResult(
                exit_code=exit_code,
                duration_ms=duration_ms,
                timed_out=timed_out,
                attempts=attempts,
            )
            if result.ok:
                break
            logger.debug("%s failed (exit: %d)", path.name, exit_code)

        return result

    def _run_once(self, path: Path, timeout_seconds: float):
        env = os.environ.copy()
        env.update(self.env)

        sink = open(self.log_sink, "ab") if self.log_sink else None
        start = time.monotonic()
        try:
            try:
                proc = subprocess.Popen(
                    [self.shell, str(path)],
                    stdout=sink,
                    stderr=subprocess.STDOUT if sink else None,
                    stdin=subprocess.DEVNULL,
                    env=env,
                    cwd=self.cwd,
                    start_new_session=(os.name == "posix"),
                )
            except OSError as e:
                logger.error("Cannot start %s with %r: %s", path.name, self.shell, e)
                duration_ms = int((time.monotonic() - start) * 1000)
                return SPAWN_FAILURE_EXIT_CODE, duration_ms, False

            try:
                exit_code = proc.wait(timeout=timeout_seconds)
                timed_out = False
            except subprocess.TimeoutExpired:
                logger.warning("Timeout after %ss, killing %s", timeout_seconds, path.name)
                _terminate(proc)
                exit_code = TIMEOUT_EXIT_CODE
                timed_out = True
            except BaseException:
                # The child runs in its own session and never sees the parent's Ctrl-C.
                logger.warning("Interrupted, killing %s", path.name)
                _terminate(proc)
                raise
        finally:
            if sink is not None:
                sink.close()

        duration_ms = int((time.monotonic() - start) * 1000)
        return exit_code, duration_ms, timed_out


class DryRunExecutor:
    """Executor stand-in for previews: spawns nothing, always succeeds."""

    def run(self, path: PathLike, timeout_seconds: float = 0, retries: int = 0) -> ExecutionResult:
        logger.debug("Dry run: would execute %s", path)
        return ExecutionResult(exit_code=0, duration_ms=0, dry_run=True)


def _terminate(proc: subprocess.Popen) -> None:
    """SIGTERM the child's process group, then SIGKILL after a grace period."""
    _signal(proc, signal.SIGTERM)
    try:
        proc.wait(timeout=KILL_GRACE_SECONDS)
    except subprocess.TimeoutExpired:
        _signal(proc, getattr(signal, "SIGKILL", signal.SIGTERM))
        proc.wait()


def _signal(proc: subprocess.Popen, sig: int) -> None:
    try:
        if os.name == "posix":
            os.killpg(proc.pid, sig)
        else:
            proc.send_signal(sig)
    except ProcessLookupError:
        pass
