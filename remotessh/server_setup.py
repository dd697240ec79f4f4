# Copyright (c) 2025 Marc Schütze <scharc@gmail.com>
# SPDX-License-Identifier: MIT
# See LICENSE file in the project root for full license information.

"""Interface to the remote server bootstrap step.

The resolver does not know how a server gets installed or started. It hands
a live SSHProcessClient to a ServerInstaller and gets back where the server
listens plus its connection token. Installers may be called more than once
for the same host (e.g. on reconnect) and should cope with a server that is
already running.
"""

from __future__ import annotations

import importlib
from dataclasses import dataclass
from typing import TYPE_CHECKING, List, Optional, Protocol, Union

from remotessh.errors import InvalidConfig

if TYPE_CHECKING:
    from remotessh.ssh_connection import SSHProcessClient


@dataclass(frozen=True)
class ServerInstallResult:
    """Where the remote server listens: a TCP port (int) or a socket path (str)."""

    listening_on: Union[int, str]
    connection_token: str


class ServerInstaller(Protocol):
    async def install(
        self,
        client: "SSHProcessClient",
        *,
        download_url_template: Optional[str],
        default_extensions: List[str],
        platform: Optional[str],
        listen_on_socket: bool,
    ) -> ServerInstallResult: ...


def load_installer(import_path: str) -> ServerInstaller:
    """Load an installer from ``"package.module:attribute"``.

    The attribute may be an installer object or a zero-argument factory
    (e.g. a class) returning one.
    """
    module_name, sep, attr = import_path.partition(":")
    if not sep or not module_name or not attr:
        raise InvalidConfig(
            f"Invalid server_installer '{import_path}'",
            hint="Use the form package.module:attribute",
        )
    try:
        target = getattr(importlib.import_module(module_name), attr)
    except (ImportError, AttributeError) as e:
        raise InvalidConfig(f"Cannot load server installer '{import_path}': {e}") from e

    if isinstance(target, type) or (not hasattr(target, "install") and callable(target)):
        target = target()
    if not hasattr(target, "install"):
        raise InvalidConfig(f"'{import_path}' has no install() method")
    return target
