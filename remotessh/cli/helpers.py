# Copyright (c) 2025 Marc Schütze <scharc@gmail.com>
# SPDX-License-Identifier: MIT
# See LICENSE file in the project root for full license information.

"""Shared helpers for the remotessh CLI."""

import asyncio
import functools
import sys
from typing import Callable, Optional

import click
from rich.console import Console
from rich.panel import Panel

from remotessh.destination import SSHDestination
from remotessh.errors import RemoteSSHError
from remotessh.settings import RemoteSSHSettings
from remotessh.ssh_connection import ConnectionConfig, FixedDelayReadiness, SSHProcessClient

console = Console()
_err_console = Console(stderr=True)


def show_error_panel(title: str, message: str, hint: Optional[str] = None) -> None:
    """Display a formatted error panel.

    Args:
        title: Panel title (shown in red)
        message: Main error message
        hint: Optional hint text (shown with blue "Hint:" prefix)
    """
    content = message
    if hint:
        content += f"\n\n[blue]Hint:[/blue] {hint}"
    _err_console.print(Panel(content, title=f"[red]{title}[/red]", border_style="red"))


def handle_errors(func: Callable) -> Callable:
    """Decorator that wraps CLI commands with standard error handling.

    RemoteSSHError is shown with its hint, Ctrl-C exits quietly with 130,
    anything else gets a generic panel. All exit non-zero.
    """

    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except SystemExit:
            raise
        except click.ClickException:
            raise
        except KeyboardInterrupt:
            _err_console.print("[dim]Interrupted[/dim]")
            sys.exit(130)
        except RemoteSSHError as exc:
            show_error_panel(type(exc).__name__, exc.message, exc.hint)
            sys.exit(1)
        except Exception as exc:
            show_error_panel("Error", str(exc))
            sys.exit(1)

    return wrapper


def run_async(coro):
    """Run a coroutine to completion from a sync click command."""
    return asyncio.run(coro)


def make_client(
    destination: str,
    settings: RemoteSSHSettings,
    identity: Optional[str] = None,
) -> SSHProcessClient:
    """Build a client for a ``[user@]host[:port]`` string."""
    dest = SSHDestination.parse(destination)
    config = ConnectionConfig(
        host=dest.hostname,
        port=dest.port or 22,
        username=dest.user,
        identity=identity,
        connect_timeout=settings.connect_timeout,
        extra_options=tuple(settings.extra_ssh_options),
    )
    return SSHProcessClient(
        config,
        readiness=FixedDelayReadiness(settings.tunnel_grace_seconds),
        ssh_binary=settings.ssh_binary,
    )
