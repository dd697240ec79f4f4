# Copyright (c) 2025 Marc Schütze <scharc@gmail.com>
# SPDX-License-Identifier: MIT
# See LICENSE file in the project root for full license information.

"""Resolve ``ssh-remote+<destination>`` authorities to local endpoints.

A resolve walks through:
    PARSED -> PLATFORM_KNOWN -> SERVER_BOOTSTRAPPED -> TUNNEL_OPEN -> RESOLVED
and ends in FAILED on any error. Only ResolutionFailed crosses the
boundary; the underlying exception is chained as its cause.

One SessionResolver serves many resolve() calls. Each authority gets one
SSHProcessClient, reused when that authority is resolved again.
"""

from __future__ import annotations

import enum
import os
from dataclasses import dataclass
from typing import Dict, List, Optional, Union

from remotessh.destination import SSHDestination
from remotessh.disposable import dispose_all
from remotessh.errors import InvalidAuthority, RemoteSSHError, ResolutionFailed
from remotessh.ports import find_random_port
from remotessh.server_setup import ServerInstaller
from remotessh.settings import RemoteSSHSettings, get_settings
from remotessh.ssh_connection import (
    ConnectionConfig,
    FixedDelayReadiness,
    SSHProcessClient,
    TunnelSpec,
)
from remotessh.utils.logging import get_logger

logger = get_logger(__name__)

REMOTE_SSH_AUTHORITY = "ssh-remote"
PLATFORM_PROBE_COMMAND = "uname -s"


def get_remote_authority(encoded_destination: str) -> str:
    return f"{REMOTE_SSH_AUTHORITY}+{encoded_destination}"


def parse_authority(authority: str) -> SSHDestination:
    """Split ``<scheme>+<encoded>`` and decode the destination."""
    scheme, _, encoded = authority.partition("+")
    if scheme != REMOTE_SSH_AUTHORITY:
        raise InvalidAuthority(f"Invalid authority type for SSH resolver: {scheme}")
    if not encoded:
        raise InvalidAuthority(f"Authority '{authority}' has no destination")
    return SSHDestination.parse_encoded(encoded)


def classify_platform(uname_output: str) -> Optional[str]:
    """Map ``uname -s`` output to linux/macos/windows, or None."""
    if "Linux" in uname_output:
        return "linux"
    if "Darwin" in uname_output:
        return "macos"
    if any(marker in uname_output for marker in ("Windows", "MINGW", "MSYS")):
        return "windows"
    return None


async def detect_platform(
    client: SSHProcessClient,
    hostname: str,
    overrides: Optional[Dict[str, str]] = None,
) -> Optional[str]:
    """Configured override first, then ``uname -s``.

    ssh failures (RemoteSSHError) are logged and give None; anything else
    propagates.
    """
    platform = (overrides or {}).get(hostname)
    if platform:
        return platform
    try:
        result = await client.exec(PLATFORM_PROBE_COMMAND)
    except RemoteSSHError as e:
        logger.error(f"Failed to detect platform of {hostname}", exc=e, console_output=False)
        return None
    platform = classify_platform(result.stdout)
    if platform is None:
        logger.warning(
            f"Unrecognized platform for {hostname}: {result.stdout.strip()!r}",
            console_output=False,
        )
    return platform


class ResolveState(str, enum.Enum):
    PARSED = "parsed"
    PLATFORM_KNOWN = "platform_known"
    SERVER_BOOTSTRAPPED = "server_bootstrapped"
    TUNNEL_OPEN = "tunnel_open"
    RESOLVED = "resolved"
    FAILED = "failed"


@dataclass(frozen=True)
class ResolverResult:
    """Endpoint the caller should dial."""

    host: str
    port: int
    connection_token: str


@dataclass
class TunnelInfo:
    """A forward opened by the resolver, released on dispose()."""

    client: SSHProcessClient
    name: str
    local_port: int
    remote_port_or_socket_path: Union[int, str]

    async def dispose(self) -> None:
        await self.client.close_tunnel(self.name)


class SessionResolver:
    """Turns authorities into ``localhost:<port>`` endpoints backed by ssh forwards."""

    def __init__(
        self,
        installer: ServerInstaller,
        settings: Optional[RemoteSSHSettings] = None,
    ):
        self.installer = installer
        self.settings = settings or get_settings()
        self._clients: Dict[str, SSHProcessClient] = {}
        self._tunnels: List[TunnelInfo] = []
        self._disposed = False

    @property
    def tunnels(self) -> List[TunnelInfo]:
        return list(self._tunnels)

    def get_client(self, authority: str) -> Optional[SSHProcessClient]:
        return self._clients.get(authority)

    def _client_for(self, authority: str, dest: SSHDestination) -> SSHProcessClient:
        client = self._clients.get(authority)
        if client is None:
            config = ConnectionConfig(
                host=dest.hostname,
                port=dest.port or 22,
                username=dest.user or os.environ.get("USER") or None,
                connect_timeout=self.settings.connect_timeout,
                extra_options=tuple(self.settings.extra_ssh_options),
            )
            client = SSHProcessClient(
                config,
                readiness=FixedDelayReadiness(self.settings.tunnel_grace_seconds),
                ssh_binary=self.settings.ssh_binary,
            )
            self._clients[authority] = client
        return client

    async def resolve(self, authority: str, attempt: int = 1) -> ResolverResult:
        """Resolve an authority to a local endpoint.

        Raises:
            ResolutionFailed: any failure (InvalidAuthority for a bad scheme)
        """
        logger.info(
            f"Resolving ssh remote authority '{authority}' (attempt #{attempt})",
            console_output=False,
        )
        if self._disposed:
            raise ResolutionFailed("SSH resolver has been disposed")

        state: Optional[ResolveState] = None
        try:
            dest = parse_authority(authority)
            state = ResolveState.PARSED
            client = self._client_for(authority, dest)

            platform = await detect_platform(
                client, dest.hostname, self.settings.remote_platform
            )
            state = ResolveState.PLATFORM_KNOWN
            logger.debug(f"Platform of {dest.hostname}: {platform or 'unknown'}")

            server = await self.installer.install(
                client,
                download_url_template=self.settings.server_download_url_template,
                default_extensions=list(self.settings.default_extensions),
                platform=platform,
                listen_on_socket=self.settings.remote_server_listen_on_socket,
            )
            state = ResolveState.SERVER_BOOTSTRAPPED

            listening_on = server.listening_on
            if isinstance(listening_on, int) and not isinstance(listening_on, bool):
                spec = TunnelSpec(local_port=find_random_port(), remote_port=listening_on)
            elif isinstance(listening_on, str) and listening_on:
                spec = TunnelSpec(local_port=find_random_port(), remote_socket_path=listening_on)
            else:
                raise ResolutionFailed(f"Server reported an invalid address: {listening_on!r}")

            tunnel = await client.add_tunnel(spec)
            state = ResolveState.TUNNEL_OPEN
            self._record_tunnel(TunnelInfo(client, tunnel.name, tunnel.local_port, listening_on))

            state = ResolveState.RESOLVED
            logger.info(
                f"Resolved '{authority}' to localhost:{tunnel.local_port}", console_output=False
            )
            return ResolverResult("localhost", tunnel.local_port, server.connection_token)

        except ResolutionFailed as e:
            logger.error(
                f"Failed to resolve SSH authority ({_state_name(state)} -> {ResolveState.FAILED.value})",
                exc=e,
                console_output=False,
            )
            raise
        except Exception as e:
            logger.error(
                f"Failed to resolve SSH authority ({_state_name(state)} -> {ResolveState.FAILED.value})",
                exc=e,
                console_output=False,
            )
            raise ResolutionFailed(str(e) or type(e).__name__) from e

    def _record_tunnel(self, info: TunnelInfo) -> None:
        for known in self._tunnels:
            if known.client is info.client and known.name == info.name:
                return
        self._tunnels.append(info)

    async def dispose(self) -> None:
        """Close every tunnel opened so far, then every client. Never raises."""
        self._disposed = True
        tunnels, self._tunnels = self._tunnels, []
        await dispose_all(t.dispose for t in tunnels)

        clients, self._clients = list(self._clients.values()), {}
        await dispose_all(c.close for c in clients)


def _state_name(state: Optional[ResolveState]) -> str:
    return state.value if state else "unparsed"
