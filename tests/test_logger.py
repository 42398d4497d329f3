"""
Tests for structured run logging.
"""

import json
import logging
from io import StringIO

import pytest

from omniforge.logger import RunLogger, append_log_line, configure_logging, open_run_log


@pytest.fixture
def log_capture():
    """Capture omniforge.events output."""
    logger = logging.getLogger("omniforge.events")
    logger.handlers.clear()
    logger.setLevel(logging.DEBUG)

    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(logging.Formatter("%(message)s"))
    logger.addHandler(handler)

    yield stream

    logger.removeHandler(handler)


def entries(stream):
    return [json.loads(line) for line in stream.getvalue().strip().splitlines()]


class TestRunLogger:
    def test_event_fields(self, log_capture):
        events = RunLogger(run_id="run123", mode="live")
        events.script_succeeded(phase_id=0, key="foundation/init-nextjs.sh", duration_ms=1500)

        entry = entries(log_capture)[0]
        assert entry["event"] == "script.succeeded"
        assert entry["level"] == "info"
        assert entry["service"] == "omniforge"
        assert entry["run_id"] == "run123"
        assert entry["mode"] == "live"
        assert entry["phase_id"] == 0
        assert entry["script"] == "foundation/init-nextjs.sh"
        assert entry["duration_ms"] == 1500
        assert "timestamp" in entry

    def test_none_fields_are_dropped(self, log_capture):
        RunLogger(run_id="r").script_failed(phase_id=1, key="x.sh", reason="script not found")
        entry = entries(log_capture)[0]
        assert entry["level"] == "error"
        assert entry["reason"] == "script not found"
        assert "exit_code" not in entry
        assert "duration_ms" not in entry

    def test_run_lifecycle(self, log_capture):
        events = RunLogger(run_id="r", mode="dry-run")
        events.run_started(policy="continue", force=False, phases=[0, 1])
        events.phase_started(0, "Foundation", scripts=2)
        events.phase_completed(0, "Foundation", "completed_with_errors")
        events.run_completed(ok=False, completed=1, failed=1, skipped=0, duration_ms=10)

        logged = entries(log_capture)
        assert [e["event"] for e in logged] == [
            "run.started",
            "phase.started",
            "phase.completed",
            "run.completed",
        ]
        assert logged[0]["phases"] == [0, 1]
        assert logged[2]["level"] == "warn"
        assert logged[3]["level"] == "error"
        assert all(e["mode"] == "dry-run" for e in logged)

    def test_status_lines_mirrored_to_log_file(self, log_capture, tmp_path):
        log_file = tmp_path / "run.log"
        events = RunLogger(run_id="r", log_file=log_file)
        events.script_skipped(0, "a.sh")
        events.script_failed(0, "b.sh", reason="script failed", exit_code=2)

        content = log_file.read_text()
        assert "[STATUS] SKIP a.sh - already completed" in content
        assert "[STATUS] FAIL b.sh - script failed (exit 2)" in content


class TestLogFiles:
    def test_open_run_log(self, tmp_path):
        path = open_run_log(tmp_path / "logs", dry_run=True)
        assert path.parent == tmp_path / "logs"
        assert path.name.startswith("omniforge_")
        assert path.suffix == ".log"
        content = path.read_text()
        assert "[INIT] === OmniForge Logging Initialized ===" in content
        assert "[INIT] DRY_RUN: true" in content

    def test_append_log_line(self, tmp_path):
        path = tmp_path / "x.log"
        append_log_line(path, "hello", "WARN")
        append_log_line(path, "again")
        lines = path.read_text().splitlines()
        assert lines[0].endswith("[WARN] hello")
        assert lines[1].endswith("[DETAIL] again")


class TestConfigureLogging:
    def test_levels(self):
        configure_logging("debug", "text")
        assert logging.getLogger("omniforge").level == logging.DEBUG
        assert logging.getLogger("omniforge.events").level == logging.CRITICAL

        configure_logging("info", "json")
        assert logging.getLogger("omniforge.events").level == logging.INFO

    def test_does_not_stack_handlers(self):
        configure_logging()
        configure_logging()
        owned = [h for h in logging.getLogger("omniforge").handlers if getattr(h, "_omniforge", False)]
        assert len(owned) == 1

    def test_text_console_shows_no_event_json(self, capsys):
        configure_logging("info", "text")
        RunLogger(run_id="r").script_failed(0, "b.sh", reason="script failed", exit_code=1)
        RunLogger(run_id="r").run_completed(ok=False, completed=0, failed=1, skipped=0, duration_ms=1)
        assert "script.failed" not in capsys.readouterr().err

    def test_json_console_shows_events(self, capsys):
        configure_logging("info", "json")
        RunLogger(run_id="r").script_failed(0, "b.sh", reason="script failed", exit_code=1)
        assert '"event": "script.failed"' in capsys.readouterr().err
