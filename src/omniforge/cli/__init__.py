"""
OmniForge CLI - Run bootstrap phases and inspect execution state.

Commands:
    omniforge run        Execute phases (resume, force, dry-run)
    omniforge list       List phases and their scripts
    omniforge status     Show or clear recorded script completions
    omniforge preflight  Check dependencies and scripts before running
"""

from typing import Optional

import click

from omniforge.config import get_config
from omniforge.logger import configure_logging

from .phases import list_phases, preflight
from .run import run
from .status import status


@click.group()
@click.version_option(package_name="omniforge")
@click.option(
    "--project-root",
    type=click.Path(file_okay=False),
    default=None,
    help="Project root (overrides OMNIFORGE_PROJECT_ROOT)",
)
@click.option("--catalog", default=None, help="Phase catalog file")
@click.option("--log-level", type=click.Choice(["debug", "info", "warning", "error"]), default=None)
@click.pass_context
def main(ctx: click.Context, project_root: Optional[str], catalog: Optional[str], log_level: Optional[str]):
    """OmniForge - ordered, resumable project bootstrapping."""
    overrides = {}
    if project_root:
        overrides["project_root"] = project_root
    if catalog:
        overrides["catalog_path"] = catalog
    if log_level:
        overrides["log_level"] = log_level

    config = get_config(**overrides)
    configure_logging(config.log_level, config.log_format)
    ctx.obj = config


main.add_command(run)
main.add_command(list_phases)
main.add_command(status)
main.add_command(preflight)


if __name__ == "__main__":
    main()
