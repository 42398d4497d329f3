"""
Command-line prerequisite checks for phases.

Each phase declares the commands it needs (``git``, ``node``, ``pnpm``...)
together with an install hint. A hint of ``builtin`` marks a dependency
that is always satisfied. Missing commands block the phase only in
``strict`` mode; in ``warn`` mode they are logged and execution continues.
Dry runs always check in ``warn`` mode so a preview never aborts on
missing tooling.
"""

from __future__ import annotations

import logging
import shutil
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Sequence

from omniforge.errors import MissingDependencyError
from omniforge.registry import DependencySpec, PrereqMode

logger = logging.getLogger(__name__)

Which = Callable[..., Optional[str]]


@dataclass
class DependencyReport:
    """Result of checking a list of dependency specs."""

    effective_mode: PrereqMode
    found: List[str] = field(default_factory=list)
    missing: List[DependencySpec] = field(default_factory=list)

    @property
    def satisfied(self) -> bool:
        if self.effective_mode == PrereqMode.WARN:
            return True
        return not self.missing

    @property
    def missing_commands(self) -> List[str]:
        return [spec.command for spec in self.missing]

    def __bool__(self) -> bool:
        return self.satisfied


class DependencyChecker:
    """Resolves dependency commands on the execution PATH."""

    def __init__(self, which: Which = shutil.which, path: Optional[str] = None):
        """
        Args:
            which: Command resolver, ``shutil.which`` by default
            path: Explicit search path; the process PATH when not set
        """
        self._which = which
        self.path = path

    def is_available(self, command: str) -> bool:
        return self._which(command, path=self.path) is not None

    def check_deps(
        self,
        specs: Sequence[DependencySpec],
        mode: PrereqMode = PrereqMode.WARN,
        dry_run: bool = False,
    ) -> DependencyReport:
        """
        Check each spec and log one line per dependency.

        Args:
            specs: Dependency specs to check
            mode: Configured prerequisite mode for the phase
            dry_run: Downgrade ``strict`` to ``warn``

        Returns:
            DependencyReport, truthy iff the phase may proceed
        """
        effective = PrereqMode.WARN if dry_run else PrereqMode(mode)
        report = DependencyReport(effective_mode=effective)

        for spec in specs:
            if spec.is_builtin:
                logger.debug("Builtin dependency: %s", spec.command)
                report.found.append(spec.command)
                continue

            if self.is_available(spec.command):
                logger.debug("Found dependency: %s", spec.command)
                report.found.append(spec.command)
                continue

            report.missing.append(spec)
            if effective == PrereqMode.STRICT:
                logger.error("Required: %s - Install from %s", spec.command, spec.hint)
            else:
                logger.warning("Optional: %s not found - Install from %s", spec.command, spec.hint)

        return report

    def require(
        self,
        specs: Sequence[DependencySpec],
        mode: PrereqMode = PrereqMode.STRICT,
        phase_id: Optional[int] = None,
        dry_run: bool = False,
    ) -> DependencyReport:
        """Like ``check_deps`` but raises ``MissingDependencyError`` when unsatisfied."""
        report = self.check_deps(specs, mode, dry_run=dry_run)
        if not report:
            raise MissingDependencyError(phase_id, report.missing_commands)
        return report

    def check_docker(self) -> bool:
        """True if the ``docker`` command resolves."""
        return self.is_available("docker")


def check_deps(
    specs: Sequence[DependencySpec],
    mode: PrereqMode = PrereqMode.WARN,
    dry_run: bool = False,
) -> bool:
    """Check specs against the process PATH."""
    return DependencyChecker().check_deps(specs, mode, dry_run=dry_run).satisfied
