"""
Tests for the omniforge CLI.
"""

import json
import os

import pytest
from click.testing import CliRunner

from omniforge.cli import main

pytestmark = pytest.mark.skipif(os.name != "posix", reason="requires bash")

CATALOG = """
phases:
  0:
    name: Foundation
    description: Base tooling
    scripts:
      - a.sh
      - b.sh
  1:
    name: Features
    scripts:
      - c.sh
  2:
    name: Extras
    enabled: false
    scripts:
      - d.sh
"""


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def project(project_root, make_script):
    (project_root / "omni.phases.yaml").write_text(CATALOG)
    make_script("a.sh")
    make_script("b.sh", exit_code=1)
    make_script("c.sh")
    return project_root


def invoke(runner, project, *args):
    return runner.invoke(main, ["--project-root", str(project), *args])


def state_keys(project):
    path = project / ".bootstrap_state"
    if not path.exists():
        return []
    return [json.loads(line)["key"] for line in path.read_text().splitlines()]


class TestRunCommand:
    def test_continue_run(self, runner, project):
        result = invoke(runner, project, "run")
        assert result.exit_code == 1
        assert "Phase 0 (Foundation): ok=1 fail=1 skip=0" in result.output
        assert "Phase 1 (Features): ok=1 fail=0 skip=0" in result.output
        assert "RECOVERY OPTIONS" in result.output
        assert state_keys(project) == ["a.sh", "c.sh"]

    def test_fail_fast(self, runner, project):
        result = invoke(runner, project, "run", "--policy", "fail-fast")
        assert result.exit_code == 1
        assert "Run aborted at: b.sh" in result.output
        assert state_keys(project) == ["a.sh"]

    def test_phase_filter(self, runner, project):
        result = invoke(runner, project, "run", "--phase", "1")
        assert result.exit_code == 0
        assert "No failures detected" in result.output
        assert state_keys(project) == ["c.sh"]

    def test_unknown_phase(self, runner, project):
        result = invoke(runner, project, "run", "--phase", "9")
        assert result.exit_code == 2
        assert "Unknown phase" in result.output

    def test_dry_run(self, runner, project):
        result = invoke(runner, project, "run", "--dry-run")
        assert result.exit_code == 0
        assert "dry-run (no commands executed)" in result.output
        assert state_keys(project) == ["a.sh", "b.sh", "c.sh"]

    def test_force(self, runner, project, make_script):
        make_script("b.sh")
        assert invoke(runner, project, "run").exit_code == 0
        result = invoke(runner, project, "run", "--force")
        assert result.exit_code == 0
        assert "skipped=0" in result.output

    def test_missing_catalog(self, runner, project_root):
        result = invoke(runner, project_root, "run")
        assert result.exit_code == 1
        assert "Error" in result.output

    def test_log_dir_from_env(self, runner, project, monkeypatch):
        monkeypatch.setenv("OMNIFORGE_LOG_DIR", "logs")
        result = invoke(runner, project, "run")
        assert "Full log:" in result.output
        assert list((project / "logs").glob("omniforge_*.log"))


class TestOtherCommands:
    def test_list(self, runner, project):
        result = invoke(runner, project, "list")
        assert result.exit_code == 0
        assert "Phase 0: Foundation [enabled]" in result.output
        assert "Phase 2: Extras [DISABLED]" in result.output

    def test_status_before_run(self, runner, project):
        result = invoke(runner, project, "status")
        assert result.exit_code == 0
        assert "Bootstrap has not been run yet" in result.output

    def test_status_and_clear(self, runner, project):
        invoke(runner, project, "run")

        result = invoke(runner, project, "status")
        assert "Completed scripts: 2" in result.output

        result = invoke(runner, project, "status", "--clear-key", "a.sh")
        assert "Cleared state for: a.sh" in result.output
        assert state_keys(project) == ["c.sh"]

        result = invoke(runner, project, "status", "--clear-key", "a.sh")
        assert "No state recorded for: a.sh" in result.output

        result = invoke(runner, project, "status", "--clear")
        assert "Cleared all bootstrap state" in result.output
        assert not (project / ".bootstrap_state").exists()

    def test_preflight(self, runner, project):
        result = invoke(runner, project, "preflight")
        assert result.exit_code == 0
        assert "PREFLIGHT CHECK" in result.output

    def test_preflight_missing_script_warns(self, runner, project):
        (project / "tech_stack" / "c.sh").unlink()
        result = invoke(runner, project, "preflight")
        assert result.exit_code == 0
        assert "WARN: Missing script: c.sh" in result.output

    def test_version(self, runner):
        result = runner.invoke(main, ["--version"])
        assert result.exit_code == 0
        assert "version" in result.output
