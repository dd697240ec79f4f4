# Copyright (c) 2025 Marc Schütze <scharc@gmail.com>
# SPDX-License-Identifier: MIT
# See LICENSE file in the project root for full license information.

"""Tests for destination parsing/encoding and local port helpers."""

import socket

import pytest

from remotessh.destination import SSHDestination
from remotessh.errors import InvalidConfig
from remotessh.ports import LOOPBACK, find_random_port, is_port_available


class TestParse:
    """Test [user@]host[:port] parsing"""

    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("example.com", SSHDestination("example.com")),
            ("alice@example.com", SSHDestination("example.com", user="alice")),
            ("alice@example.com:2222", SSHDestination("example.com", "alice", 2222)),
            ("[::1]:2200", SSHDestination("::1", port=2200)),
            ("fe80::1", SSHDestination("fe80::1")),
            ("a@b@host", SSHDestination("host", user="a@b")),
        ],
    )
    def test_valid(self, raw, expected):
        """Test accepted destination forms"""
        assert SSHDestination.parse(raw) == expected

    @pytest.mark.parametrize("raw", ["", "alice@", "host:abc", "host:70000", "[::1"])
    def test_invalid(self, raw):
        """Test malformed destinations raise InvalidConfig"""
        with pytest.raises(InvalidConfig):
            SSHDestination.parse(raw)

    def test_str(self):
        """Test str() brackets IPv6 hosts and appends the port"""
        assert str(SSHDestination("example.com", "alice", 2222)) == "alice@example.com:2222"
        assert str(SSHDestination("::1", port=22)) == "[::1]:22"


class TestEncoding:
    """Test the authority-safe encoding"""

    def test_escapes_at_sign(self):
        """Test @ is percent-encoded"""
        dest = SSHDestination.parse("alice@example.com")
        assert dest.to_encoded_string() == "alice%40example.com"

    def test_escapes_uppercase_and_colon(self):
        """Test uppercase letters and colons are escaped with lowercase hex"""
        dest = SSHDestination.parse("Bob@Host:22")
        assert dest.to_encoded_string() == "%42ob%40%48ost%3a22"

    def test_decodes_back(self):
        """Test parse_encoded inverts to_encoded_string"""
        dest = SSHDestination.parse("Bob@[fe80::1]:2222")
        assert SSHDestination.parse_encoded(dest.to_encoded_string()) == dest


class TestPorts:
    """Test local port helpers"""

    def test_random_port_is_free(self):
        """Test find_random_port returns a bindable port"""
        port = find_random_port()

        assert 0 < port < 65536
        assert is_port_available(port)

    def test_bound_port_not_available(self):
        """Test a port held by a listening socket is reported busy"""
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
            sock.bind((LOOPBACK, 0))
            sock.listen(1)
            port = sock.getsockname()[1]

            assert not is_port_available(port)
