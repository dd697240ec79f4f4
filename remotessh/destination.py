# Copyright (c) 2025 Marc Schütze <scharc@gmail.com>
# SPDX-License-Identifier: MIT
# See LICENSE file in the project root for full license information.

"""Parsing and encoding of ``[user@]host[:port]`` destinations.

The encoded form is embedded in authorities like ``ssh-remote+<encoded>``.
Everything except lowercase letters, digits and ``-._~`` is percent-encoded,
uppercase letters included, so the authority survives case folding.
"""

import string
from dataclasses import dataclass
from typing import Optional
from urllib.parse import unquote

from remotessh.errors import InvalidConfig

_UNRESERVED = frozenset(string.ascii_lowercase + string.digits + "-._~")


@dataclass(frozen=True)
class SSHDestination:
    """A parsed ssh destination."""

    hostname: str
    user: Optional[str] = None
    port: Optional[int] = None

    @classmethod
    def parse(cls, dest: str) -> "SSHDestination":
        """Parse ``[user@]host[:port]``. IPv6 hosts use ``[addr]:port``."""
        dest = dest.strip()
        user, _, rest = dest.rpartition("@")

        port_str = ""
        if rest.startswith("["):
            host, bracket, tail = rest[1:].partition("]")
            if not bracket or (tail and not tail.startswith(":")):
                raise InvalidConfig(f"Invalid ssh destination: '{dest}'")
            port_str = tail[1:]
        elif rest.count(":") == 1:
            host, _, port_str = rest.partition(":")
        else:
            host = rest

        if not host:
            raise InvalidConfig(f"Invalid ssh destination: '{dest}' has no host")

        port = None
        if port_str:
            if not port_str.isdigit() or not 0 < int(port_str) < 65536:
                raise InvalidConfig(f"Invalid port '{port_str}' in ssh destination '{dest}'")
            port = int(port_str)

        return cls(hostname=host, user=user or None, port=port)

    @classmethod
    def parse_encoded(cls, encoded: str) -> "SSHDestination":
        """Inverse of to_encoded_string()."""
        return cls.parse(unquote(encoded))

    def to_encoded_string(self) -> str:
        out = []
        for ch in str(self):
            if ch in _UNRESERVED:
                out.append(ch)
            else:
                out.extend(f"%{b:02x}" for b in ch.encode("utf-8"))
        return "".join(out)

    def __str__(self) -> str:
        host = f"[{self.hostname}]" if ":" in self.hostname else self.hostname
        result = f"{self.user}@{host}" if self.user else host
        if self.port is not None:
            result += f":{self.port}"
        return result
