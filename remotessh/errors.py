# Copyright (c) 2025 Marc Schütze <scharc@gmail.com>
# SPDX-License-Identifier: MIT
# See LICENSE file in the project root for full license information.

"""Exception types raised by the SSH client and the session resolver.

These bubble up to the CLI's handle_errors, which renders the message
and the optional hint in an error panel.
"""

from typing import Optional


class RemoteSSHError(Exception):
    """Base class for all remotessh failures."""

    def __init__(self, message: str, hint: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.hint = hint


class InvalidConfig(RemoteSSHError):
    """Connection or tunnel configuration is unusable (e.g. empty host)."""


class SpawnError(RemoteSSHError):
    """The operating system could not start the ssh child process."""

    def __init__(self, binary: str, cause: BaseException):
        super().__init__(
            f"Failed to start '{binary}': {cause}",
            hint="Check that an OpenSSH client is installed and on PATH",
        )
        self.binary = binary
        self.cause = cause


class CommandFailed(RemoteSSHError):
    """A remote command exited with a non-zero status."""

    def __init__(self, command: str, exit_code: Optional[int], stdout: str, stderr: str):
        detail = (stderr or stdout).strip()
        message = f"Command '{command}' failed with exit code {exit_code}"
        if detail:
            message += f": {detail}"
        super().__init__(message)
        self.command = command
        self.exit_code = exit_code
        self.stdout = stdout
        self.stderr = stderr


class ConnectTimeout(RemoteSSHError):
    """No success signal was observed within the allowed window."""

    def __init__(self, what: str, seconds: float):
        super().__init__(f"Timed out after {seconds:g}s waiting for {what}")
        self.seconds = seconds


class ConnectionFailed(RemoteSSHError):
    """The primary ssh session exited before it was considered up."""

    def __init__(self, destination: str, exit_code: Optional[int], stderr: str = ""):
        message = f"SSH connection to {destination} exited with code {exit_code}"
        if stderr.strip():
            message += f": {stderr.strip()}"
        super().__init__(message)
        self.exit_code = exit_code
        self.stderr = stderr


class TunnelError(RemoteSSHError):
    """Base class for tunnel establishment failures."""

    def __init__(self, message: str, name: str):
        super().__init__(message)
        self.name = name


class TunnelFatalStderr(TunnelError):
    """The tunnel process reported a known fatal condition on stderr."""

    def __init__(self, name: str, stderr: str):
        super().__init__(f"Failed to create tunnel {name}: {stderr.strip()}", name)
        self.stderr = stderr


class TunnelExitedEarly(TunnelError):
    """The tunnel process died during the grace window."""

    def __init__(self, name: str, exit_code: Optional[int], stderr: str = ""):
        message = f"Tunnel {name} process exited with code {exit_code}"
        if stderr.strip():
            message += f": {stderr.strip()}"
        super().__init__(message, name)
        self.exit_code = exit_code
        self.stderr = stderr


class ResolutionFailed(RemoteSSHError):
    """Resolving a remote authority to a local endpoint failed."""


class InvalidAuthority(ResolutionFailed):
    """The authority does not use the ssh-remote scheme."""
