"""
Pytest configuration and fixtures for OmniForge tests.
"""

from __future__ import annotations

import logging
import os
import stat
from pathlib import Path
from typing import Callable, Dict, Generator

import pytest

from omniforge.config import OmniForgeConfig, reset_config
from omniforge.registry import PhaseRegistry
from omniforge.state import ExecutionStateStore


# ============================================================================
# Environment Fixtures
# ============================================================================


@pytest.fixture(autouse=True)
def isolate_env(monkeypatch) -> Generator[None, None, None]:
    """Strip OMNIFORGE_* variables and reset the config singleton."""
    for key in list(os.environ):
        if key.startswith("OMNIFORGE_"):
            monkeypatch.delenv(key, raising=False)
    reset_config()
    yield
    reset_config()

    # configure_logging() from CLI tests binds handlers to CliRunner streams.
    for name in ("omniforge", "omniforge.events"):
        log = logging.getLogger(name)
        log.setLevel(logging.NOTSET)
        for handler in list(log.handlers):
            if getattr(handler, "_omniforge", False):
                log.removeHandler(handler)


# ============================================================================
# Project Fixtures
# ============================================================================


@pytest.fixture
def project_root(tmp_path: Path) -> Path:
    root = tmp_path / "project"
    (root / "tech_stack").mkdir(parents=True)
    return root


@pytest.fixture
def config(project_root: Path) -> OmniForgeConfig:
    return OmniForgeConfig(
        project_root=str(project_root),
        require_docker=False,
        retry_delay_seconds=0,
        _env_file=None,
    )


@pytest.fixture
def state_store(config: OmniForgeConfig) -> ExecutionStateStore:
    return ExecutionStateStore(config.state_path)


@pytest.fixture
def make_script(project_root: Path) -> Callable[..., Path]:
    """Write an executable bash script under tech_stack/ and return its path."""

    def _make(key: str, exit_code: int = 0, body: str = "") -> Path:
        path = project_root / "tech_stack" / key
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(f"#!/usr/bin/env bash\n{body}\nexit {exit_code}\n")
        path.chmod(path.stat().st_mode | stat.S_IXUSR)
        return path

    return _make


@pytest.fixture
def two_phase_catalog() -> Dict:
    """Phase 0 = [a.sh, b.sh], Phase 1 = [c.sh]."""
    return {
        "phases": {
            0: {"name": "Foundation", "scripts": ["a.sh", "b.sh"]},
            1: {"name": "Features", "scripts": ["c.sh"]},
        }
    }


@pytest.fixture
def two_phase_registry(two_phase_catalog) -> PhaseRegistry:
    return PhaseRegistry.from_mapping(two_phase_catalog)
