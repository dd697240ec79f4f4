# Copyright (c) 2025 Marc Schütze <scharc@gmail.com>
# SPDX-License-Identifier: MIT
# See LICENSE file in the project root for full license information.

"""Recent remote locations."""

import click
from rich.table import Table

from remotessh.cli import cli
from remotessh.cli.helpers import console, handle_errors
from remotessh.history import RemoteLocationHistory


@cli.group()
def history():
    """Recently opened remote locations."""
    pass


@history.command("list")
@handle_errors
def list_locations():
    """List remembered locations, most recent first."""
    entries = RemoteLocationHistory().get_history()
    if not entries:
        console.print("[yellow]No remote locations recorded[/yellow]")
        return

    table = Table(title="Recent Locations")
    table.add_column("Host", style="cyan")
    table.add_column("Path", style="green")
    for host in sorted(entries):
        for path in entries[host]:
            table.add_row(host, path)
    console.print(table)


@history.command("add")
@click.argument("host")
@click.argument("path")
@handle_errors
def add_location(host: str, path: str):
    """Remember PATH on HOST."""
    if RemoteLocationHistory().add_location(host, path):
        console.print(f"[green]✓ Added {host}:{path}[/green]")
    else:
        console.print(f"[dim]{host}:{path} already recorded[/dim]")


@history.command("remove")
@click.argument("host")
@click.argument("path")
@handle_errors
def remove_location(host: str, path: str):
    """Forget PATH on HOST."""
    if RemoteLocationHistory().remove_location(host, path):
        console.print(f"[green]✓ Removed {host}:{path}[/green]")
    else:
        console.print(f"[yellow]{host}:{path} not found[/yellow]")
