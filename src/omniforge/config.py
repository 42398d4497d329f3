"""
Centralized configuration for OmniForge.

Uses Pydantic BaseSettings for environment variable integration
and validation. All configurable values should be defined here.

Configuration sources (in order of precedence):
1. Explicit constructor arguments
2. Environment variables (OMNIFORGE_*)
3. .env file
4. Default values

Example:
    from omniforge.config import get_config

    config = get_config()
    print(config.state_path)  # <project_root>/.bootstrap_state

    # Override at runtime
    config = get_config(execution_policy="fail-fast")
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Literal, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class OmniForgeConfig(BaseSettings):
    """
    Central configuration for OmniForge.

    All settings can be overridden via environment variables
    prefixed with OMNIFORGE_.

    Example:
        export OMNIFORGE_EXECUTION_POLICY=fail-fast
        export OMNIFORGE_LOG_LEVEL=debug
    """

    model_config = SettingsConfigDict(
        env_prefix="OMNIFORGE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Layout
    project_root: str = Field(
        default=".",
        description="Root of the project being bootstrapped",
    )
    catalog_path: str = Field(
        default="omni.phases.yaml",
        description="Phase catalog file (relative paths resolve against project_root)",
    )
    scripts_dir: str = Field(
        default="tech_stack",
        description="Directory that script keys resolve against",
    )
    state_file: str = Field(
        default=".bootstrap_state",
        description="Execution state store file",
    )

    # Logging
    log_dir: Optional[str] = Field(
        default=None,
        description="Directory for run-scoped log files (disabled if not set)",
    )
    log_level: Literal["debug", "info", "warning", "error"] = Field(
        default="info",
        description="Logging level for OmniForge",
    )
    log_format: Literal["json", "text"] = Field(
        default="text",
        description="Console log format",
    )

    # Execution
    execution_policy: Literal["fail-fast", "continue"] = Field(
        default="continue",
        description="Default policy when a caller does not pass one",
    )
    resume_mode: Literal["skip", "rerun"] = Field(
        default="skip",
        description="skip: do not re-run scripts already recorded as succeeded",
    )
    default_timeout_seconds: int = Field(
        default=600,
        ge=1,
        description="Phase timeout used when the catalog does not set one",
    )
    retry_delay_seconds: float = Field(
        default=5.0,
        ge=0,
        description="Delay between executor retries",
    )
    max_phase_id: int = Field(
        default=99,
        ge=0,
        description="Upper bound (inclusive) of the phase discovery probe",
    )
    dry_run_marks_success: bool = Field(
        default=True,
        description="Record dry-run scripts as succeeded in the state store",
    )
    require_docker: bool = Field(
        default=True,
        description="Enforce docker_required on phases that declare it",
    )
    shell: str = Field(
        default="bash",
        description="Interpreter used to run installer scripts",
    )

    @field_validator("project_root", "catalog_path", "scripts_dir", "state_file", "log_dir")
    @classmethod
    def expand_path(cls, v: Optional[str]) -> Optional[str]:
        """Expand ~ and environment variables in paths."""
        if v is None:
            return v
        return os.path.expanduser(os.path.expandvars(v))

    def _resolve(self, value: str) -> Path:
        path = Path(value)
        if path.is_absolute():
            return path
        return Path(self.project_root) / path

    @property
    def catalog(self) -> Path:
        """Resolved phase catalog path."""
        return self._resolve(self.catalog_path)

    @property
    def scripts_path(self) -> Path:
        """Resolved scripts directory."""
        return self._resolve(self.scripts_dir)

    @property
    def state_path(self) -> Path:
        """Resolved state store path."""
        return self._resolve(self.state_file)

    @property
    def log_path(self) -> Optional[Path]:
        """Resolved run log directory, if configured."""
        if self.log_dir is None:
            return None
        return self._resolve(self.log_dir)


# Global singleton
_config: Optional[OmniForgeConfig] = None


def get_config(**overrides) -> OmniForgeConfig:
    """
    Get the global configuration instance.

    Creates a singleton on first call. Subsequent calls return
    the same instance unless overrides are provided.

    Args:
        **overrides: Override any config values

    Returns:
        OmniForgeConfig instance
    """
    global _config

    if overrides or _config is None:
        _config = OmniForgeConfig(**overrides)

    return _config


def reset_config() -> None:
    """Reset the global configuration (for testing)."""
    global _config
    _config = None
