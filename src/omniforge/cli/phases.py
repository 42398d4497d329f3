"""OmniForge CLI - catalog listing and preflight commands."""

from __future__ import annotations

import sys

import click

from omniforge.config import OmniForgeConfig

from .run import load_orchestrator


@click.command("list")
@click.pass_obj
def list_phases(config: OmniForgeConfig):
    """List all phases and their scripts."""
    orchestrator = load_orchestrator(config)
    click.echo(orchestrator.registry.list_all())


@click.command()
@click.option("--dry-run", is_flag=True, help="Report dependency errors as warnings")
@click.pass_obj
def preflight(config: OmniForgeConfig, dry_run: bool):
    """Check dependencies, scripts and the project root before running."""
    orchestrator = load_orchestrator(config)
    report = orchestrator.preflight(dry_run=dry_run)
    click.echo(report.render())
    sys.exit(0 if report.passed else 1)
