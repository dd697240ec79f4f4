# Copyright (c) 2025 Marc Schütze <scharc@gmail.com>
# SPDX-License-Identifier: MIT
# See LICENSE file in the project root for full license information.

"""Local port helpers."""

import socket

LOOPBACK = "127.0.0.1"


def find_random_port(host: str = LOOPBACK) -> int:
    """Ask the OS for a free TCP port.

    The socket is closed before returning, so another process may grab the
    port before the caller binds it. Callers surface that as a tunnel
    failure.
    """
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind((host, 0))
        return sock.getsockname()[1]


def is_port_available(port: int, host: str = LOOPBACK) -> bool:
    """Try to bind the port to see if it's free."""
    try:
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
            sock.bind((host, port))
        return True
    except OSError:
        return False
