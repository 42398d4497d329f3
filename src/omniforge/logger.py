"""
Structured logging for bootstrap runs.

Emits one JSON line per run event on the ``omniforge.events`` logger and,
when a run log file is open, mirrors a plain status line into it.

Logged events:
- run.started / run.completed
- phase.started / phase.disabled / phase.completed
- script.started / script.succeeded / script.failed / script.skipped

Usage:
    from omniforge.logger import RunLogger, open_run_log

    log_file = open_run_log(Path("logs"))
    events = RunLogger(run_id="abc123", mode="live", log_file=log_file)
    events.script_succeeded(phase_id=0, key="foundation/init-nextjs.sh", duration_ms=1500)
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

_events_logger = logging.getLogger("omniforge.events")

_TEXT_FORMAT = "%(asctime)s %(levelname)-7s %(name)s: %(message)s"


class _JsonFormatter(logging.Formatter):
    """Render records as one JSON object per line."""

    def format(self, record: logging.LogRecord) -> str:
        message = record.getMessage()
        if record.name == _events_logger.name:
            return message
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname.lower(),
            "logger": record.name,
            "message": message,
        }
        if record.exc_info:
            entry["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


def configure_logging(level: str = "info", fmt: str = "text") -> None:
    """Attach a stderr handler to the ``omniforge`` logger."""
    root = logging.getLogger("omniforge")
    root.setLevel(getattr(logging, level.upper(), logging.INFO))

    for handler in list(root.handlers):
        if getattr(handler, "_omniforge", False):
            root.removeHandler(handler)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(_JsonFormatter() if fmt == "json" else logging.Formatter(_TEXT_FORMAT))
    handler._omniforge = True  # type: ignore[attr-defined]
    root.addHandler(handler)

    # Event lines are JSON already; only show them when JSON output is requested.
    _events_logger.setLevel(logging.INFO if fmt == "json" else logging.CRITICAL)


def open_run_log(log_dir: Path, script_name: str = "omniforge", dry_run: bool = False) -> Path:
    """
    Create a run-scoped log file and write its header.

    Returns:
        Path of the new log file, ``omniforge_<YYYYmmdd_HHMMSS>.log``
    """
    log_dir.mkdir(parents=True, exist_ok=True)
    path = log_dir / f"omniforge_{datetime.now().strftime('%Y%m%d_%H%M%S')}.log"
    path.touch()
    append_log_line(path, "=== OmniForge Logging Initialized ===", "INIT")
    append_log_line(path, f"Script: {script_name}", "INIT")
    append_log_line(path, f"DRY_RUN: {str(dry_run).lower()}", "INIT")
    return path


def append_log_line(path: Path, message: str, level: str = "DETAIL") -> None:
    """Append ``[timestamp] [LEVEL] message`` to a run log file."""
    timestamp = datetime.now().strftime("%Y-%m-%d %H:%M:%S")
    with open(path, "a", encoding="utf-8") as f:
        f.write(f"[{timestamp}] [{level}] {message}\n")


class RunLogger:
    """
    Structured logger for run events.

    Each entry includes ``run_id`` and ``mode`` so all lines for one
    invocation can be filtered together.
    """

    def __init__(
        self,
        run_id: str,
        mode: str = "live",
        log_file: Optional[Path] = None,
        service_name: str = "omniforge",
    ):
        """
        Args:
            run_id: Identifier of the current ExecutionRun
            mode: ``live`` or ``dry-run``
            log_file: Run log file to mirror status lines into
            service_name: Service name for log attribution
        """
        self.run_id = run_id
        self.mode = mode
        self.log_file = log_file
        self.service_name = service_name
        self._logger = _events_logger

    def _emit(self, event: str, level: str = "info", **fields: Any) -> None:
        entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": level,
            "event": event,
            "service": self.service_name,
            "run_id": self.run_id,
            "mode": self.mode,
        }
        entry.update({k: v for k, v in fields.items() if v is not None})

        log_line = json.dumps(entry, default=str)
        if level == "error":
            self._logger.error(log_line)
        elif level == "warn":
            self._logger.warning(log_line)
        else:
            self._logger.info(log_line)

    def _status(self, status: str, key: str, detail: str = "") -> None:
        if self.log_file is not None:
            append_log_line(self.log_file, f"{status} {key} {detail}".rstrip(), "STATUS")

    def run_started(self, policy: str, force: bool, phases: list) -> None:
        self._emit("run.started", policy=policy, force=force, phases=phases)

    def run_completed(self, ok: bool, completed: int, failed: int, skipped: int, duration_ms: int) -> None:
        self._emit(
            "run.completed",
            level="info" if ok else "error",
            ok=ok,
            completed=completed,
            failed=failed,
            skipped=skipped,
            duration_ms=duration_ms,
        )

    def phase_started(self, phase_id: int, name: str, scripts: int) -> None:
        self._emit("phase.started", phase_id=phase_id, phase_name=name, scripts=scripts)
        if self.log_file is not None:
            append_log_line(self.log_file, f"Phase {phase_id}: {name}", "PHASE")

    def phase_disabled(self, phase_id: int, name: str) -> None:
        self._emit("phase.disabled", phase_id=phase_id, phase_name=name)

    def phase_completed(self, phase_id: int, name: str, status: str) -> None:
        level = "warn" if status != "completed" else "info"
        self._emit("phase.completed", level=level, phase_id=phase_id, phase_name=name, status=status)

    def script_started(self, phase_id: int, key: str) -> None:
        self._emit("script.started", phase_id=phase_id, script=key)
        self._status("RUN", key)

    def script_succeeded(self, phase_id: int, key: str, duration_ms: int) -> None:
        self._emit("script.succeeded", phase_id=phase_id, script=key, duration_ms=duration_ms)
        self._status("OK", key, f"({duration_ms / 1000:.0f}s)")

    def script_failed(
        self,
        phase_id: int,
        key: str,
        reason: str,
        exit_code: Optional[int] = None,
        duration_ms: Optional[int] = None,
    ) -> None:
        self._emit(
            "script.failed",
            level="error",
            phase_id=phase_id,
            script=key,
            reason=reason,
            exit_code=exit_code,
            duration_ms=duration_ms,
        )
        self._status("FAIL", key, f"- {reason} (exit {exit_code if exit_code is not None else 1})")

    def script_skipped(self, phase_id: int, key: str, reason: str = "already completed") -> None:
        self._emit("script.skipped", phase_id=phase_id, script=key, reason=reason)
        self._status("SKIP", key, f"- {reason}")
