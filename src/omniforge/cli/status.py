"""OmniForge CLI - execution state inspection."""

from __future__ import annotations

from typing import Optional

import click

from omniforge.config import OmniForgeConfig
from omniforge.state import ExecutionStateStore


@click.command()
@click.option("--clear", "clear_all", is_flag=True, help="Clear all recorded state")
@click.option("--clear-key", default=None, help="Clear the state of a single script key")
@click.pass_obj
def status(config: OmniForgeConfig, clear_all: bool, clear_key: Optional[str]):
    """Show which scripts have completed."""
    store = ExecutionStateStore(config.state_path)

    if clear_all:
        store.clear_all()
        click.echo("Cleared all bootstrap state")
        return

    if clear_key:
        if store.clear(clear_key):
            click.echo(f"Cleared state for: {clear_key}")
        else:
            click.echo(f"No state recorded for: {clear_key}")
        return

    click.echo(store.summary())
