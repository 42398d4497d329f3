"""OmniForge CLI - phase execution command."""

from __future__ import annotations

import sys
from typing import Optional

import click

from omniforge.config import OmniForgeConfig
from omniforge.errors import CatalogError
from omniforge.orchestrator import PhaseOrchestrator


def load_orchestrator(config: OmniForgeConfig) -> PhaseOrchestrator:
    """Build an orchestrator or exit with a readable error."""
    try:
        return PhaseOrchestrator.from_config(config)
    except CatalogError as e:
        raise click.ClickException(str(e)) from e


@click.command()
@click.option("--phase", "phase_filter", type=int, default=None, help="Run only this phase id")
@click.option("--force", is_flag=True, help="Re-run scripts already recorded as succeeded")
@click.option("--dry-run", is_flag=True, help="Preview without executing scripts")
@click.option(
    "--policy",
    type=click.Choice(["fail-fast", "continue"]),
    default=None,
    help="Stop at the first failure, or attempt everything and report at the end",
)
@click.pass_obj
def run(
    config: OmniForgeConfig,
    phase_filter: Optional[int],
    force: bool,
    dry_run: bool,
    policy: Optional[str],
):
    """Execute bootstrap phases in order."""
    orchestrator = load_orchestrator(config)

    try:
        result = orchestrator.execute_all(
            force=force,
            policy=policy,
            dry_run=dry_run,
            phase_filter=phase_filter,
        )
    except ValueError as e:
        raise click.BadParameter(str(e), param_hint="--phase") from e

    click.echo(orchestrator.recap(result, use_colors=sys.stdout.isatty()))
    if result.log_file is not None:
        click.echo(f"\nFull log: {result.log_file}")
    sys.exit(result.exit_code)
