# Copyright (c) 2025 Marc Schütze <scharc@gmail.com>
# SPDX-License-Identifier: MIT
# See LICENSE file in the project root for full license information.

"""Commands that talk to a remote host: exec, forward, resolve."""

import asyncio
import json
from typing import Optional, Tuple

import click

from remotessh.cli import cli
from remotessh.cli.helpers import console, handle_errors, make_client, run_async
from remotessh.destination import SSHDestination
from remotessh.errors import InvalidConfig
from remotessh.events import Channel, Phase, topic_name
from remotessh.ports import is_port_available
from remotessh.resolver import SessionResolver, detect_platform, get_remote_authority
from remotessh.server_setup import load_installer
from remotessh.settings import get_settings
from remotessh.ssh_connection import ExecOptions, SSHProcessClient, TunnelSpec

identity_option = click.option(
    "-i", "--identity", type=click.Path(dir_okay=False), help="Private key file."
)


def parse_remote_target(target: str, local_port: Optional[int] = None) -> TunnelSpec:
    """Parse ``PORT``, ``HOST:PORT`` or an absolute socket path."""
    if target.startswith("/"):
        return TunnelSpec(local_port=local_port, remote_socket_path=target)
    address, _, port = target.rpartition(":")
    if not port.isdigit():
        raise InvalidConfig(
            f"Invalid remote target '{target}'", hint="Use PORT, HOST:PORT or /path/to/socket"
        )
    return TunnelSpec(
        local_port=local_port, remote_address=address or "localhost", remote_port=int(port)
    )


async def _wait_for_disconnect(client: SSHProcessClient) -> None:
    """Block until any tunnel of the client goes away."""
    stopped = asyncio.Event()
    client.events.on(topic_name(Channel.TUNNEL, Phase.DISCONNECTED), lambda event: stopped.set())
    await stopped.wait()


@cli.command()
@click.argument("destination")
def authority(destination: str):
    """Print the remote authority for a [user@]host[:port] destination.

    Examples:
        remotessh authority alice@example.com:2222
    """
    try:
        dest = SSHDestination.parse(destination)
    except InvalidConfig as e:
        raise click.BadParameter(str(e), param_hint="DESTINATION")
    click.echo(get_remote_authority(dest.to_encoded_string()))


@cli.command("exec")
@click.argument("destination")
@click.argument("command", nargs=-1, required=True)
@click.option("--ignore-exit-code", is_flag=True, help="Succeed even if the command fails.")
@click.option("--timeout", type=float, default=None, help="Kill the command after N seconds.")
@identity_option
@handle_errors
def exec_command(
    destination: str,
    command: Tuple[str, ...],
    ignore_exit_code: bool,
    timeout: Optional[float],
    identity: Optional[str],
):
    """Run COMMAND on DESTINATION and print its output."""
    client = make_client(destination, get_settings(), identity)
    options = ExecOptions(ignore_exit_code=ignore_exit_code, timeout=timeout)

    async def run():
        try:
            return await client.exec(command[0], list(command[1:]), options)
        finally:
            await client.close()

    result = run_async(run())
    if result.stdout:
        click.echo(result.stdout, nl=False)
    if result.stderr:
        click.echo(result.stderr, nl=False, err=True)


@cli.command()
@click.argument("destination")
@identity_option
@handle_errors
def platform(destination: str, identity: Optional[str]):
    """Detect the operating system of DESTINATION."""
    settings = get_settings()
    client = make_client(destination, settings, identity)

    async def run():
        try:
            return await detect_platform(client, client.config.host, settings.remote_platform)
        finally:
            await client.close()

    detected = run_async(run())
    click.echo(detected or "unknown")


@cli.command()
@click.argument("destination")
@identity_option
@handle_errors
def check(destination: str, identity: Optional[str]):
    """Check that an SSH session to DESTINATION can be opened."""
    client = make_client(destination, get_settings(), identity)

    async def run():
        try:
            await client.connect()
        finally:
            await client.close()

    run_async(run())
    console.print(f"[green]✓ Connected to {client.config.destination}[/green]")


@cli.command()
@click.argument("destination")
@click.argument("remote")
@click.option("-l", "--local-port", type=int, default=None, help="Local port (default: random).")
@identity_option
@handle_errors
def forward(destination: str, remote: str, local_port: Optional[int], identity: Optional[str]):
    """Forward a local port to REMOTE on DESTINATION until interrupted.

    REMOTE is PORT, HOST:PORT or an absolute Unix socket path.

    Examples:
        remotessh forward dev.example.com 8000
        remotessh forward dev.example.com /run/user/1000/server.sock -l 9000
    """
    spec = parse_remote_target(remote, local_port)
    if local_port and not is_port_available(local_port):
        raise InvalidConfig(
            f"Local port {local_port} is already in use", hint="Pick another --local-port"
        )
    client = make_client(destination, get_settings(), identity)

    async def run():
        try:
            tunnel = await client.add_tunnel(spec)
            console.print(
                f"[green]✓ localhost:{tunnel.local_port} -> {spec.key}[/green] "
                "[dim](Ctrl-C to stop)[/dim]"
            )
            await _wait_for_disconnect(client)
            console.print(f"[yellow]⚠ Tunnel {tunnel.name} closed by ssh[/yellow]")
        finally:
            await client.close()

    run_async(run())


@cli.command()
@click.argument("authority_name", metavar="AUTHORITY")
@click.option(
    "--installer",
    "installer_path",
    default=None,
    help="Server installer as module:attribute (default: server_installer in config).",
)
@click.option("--attempt", type=int, default=1, help="Attempt number, for logging.")
@handle_errors
def resolve(authority_name: str, installer_path: Optional[str], attempt: int):
    """Bootstrap the server for AUTHORITY and keep a local endpoint open.

    Prints the endpoint as JSON, then holds the tunnel until interrupted.
    """
    settings = get_settings()
    installer_path = installer_path or settings.server_installer
    if not installer_path:
        raise InvalidConfig(
            "No server installer configured",
            hint="Set server_installer in config.yml or pass --installer module:attribute",
        )
    resolver = SessionResolver(load_installer(installer_path), settings)

    async def run():
        try:
            result = await resolver.resolve(authority_name, attempt=attempt)
            click.echo(
                json.dumps(
                    {
                        "host": result.host,
                        "port": result.port,
                        "connection_token": result.connection_token,
                    }
                )
            )
            client = resolver.get_client(authority_name)
            await _wait_for_disconnect(client)
        finally:
            await resolver.dispose()

    run_async(run())
