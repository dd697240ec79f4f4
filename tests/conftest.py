# Copyright (c) 2025 Marc Schütze <scharc@gmail.com>
# SPDX-License-Identifier: MIT
# See LICENSE file in the project root for full license information.

"""Pytest fixtures for remotessh tests.

Nothing here starts a real ssh. ``spawner`` replaces
asyncio.create_subprocess_exec with a fake that records the argv and hands
back FakeProcess objects whose output and exit the test controls.
"""

import asyncio
import os
import tempfile
from pathlib import Path

import pytest

# Keep test runs out of the user's log directory; must happen before
# remotessh configures logging on import.
os.environ.setdefault(
    "REMOTESSH_LOG_FILE", str(Path(tempfile.gettempdir()) / "remotessh-tests.log")
)


class FakeProcess:
    """Stands in for asyncio.subprocess.Process."""

    def __init__(self):
        self.stdout = asyncio.StreamReader()
        self.stderr = asyncio.StreamReader()
        self.returncode = None
        self.terminated = False
        self.killed = False
        self._exited = asyncio.get_running_loop().create_future()

    def feed_stdout(self, data: bytes) -> None:
        self.stdout.feed_data(data)

    def feed_stderr(self, data: bytes) -> None:
        self.stderr.feed_data(data)

    def exit(self, code: int) -> None:
        if self.returncode is not None:
            return
        self.returncode = code
        self.stdout.feed_eof()
        self.stderr.feed_eof()
        self._exited.set_result(code)

    async def wait(self) -> int:
        # Shielded: callers time out on wait() without killing the "process"
        return await asyncio.shield(self._exited)

    def terminate(self) -> None:
        self.terminated = True
        self.exit(-15)

    def kill(self) -> None:
        self.killed = True
        self.exit(-9)


class FakeSpawner:
    """Replacement for asyncio.create_subprocess_exec.

    Queue one behaviour per expected spawn with respond()/fail_with().
    Unscripted spawns get a process that stays running. Set ``delay`` to
    make each spawn take that many seconds.
    """

    def __init__(self):
        self.calls = []
        self.processes = []
        self._script = []
        self.delay = 0

    def respond(self, stdout=b"", stderr=b"", returncode=None):
        """Next spawn writes the given output; exits if returncode is set."""

        def behaviour(proc):
            if stdout:
                proc.feed_stdout(stdout)
            if stderr:
                proc.feed_stderr(stderr)
            if returncode is not None:
                proc.exit(returncode)

        self._script.append(behaviour)
        return self

    def fail_with(self, exc):
        """Next spawn raises exc, like a missing ssh binary."""

        def behaviour(proc):
            raise exc

        self._script.append(behaviour)
        return self

    async def __call__(self, program, *args, **kwargs):
        self.calls.append([program, *args])
        if self.delay:
            await asyncio.sleep(self.delay)
        proc = FakeProcess()
        if self._script:
            self._script.pop(0)(proc)
        self.processes.append(proc)
        return proc

    @property
    def last_args(self):
        return self.calls[-1]


@pytest.fixture
def spawner(monkeypatch):
    """Patch subprocess creation for the duration of a test."""
    fake = FakeSpawner()
    monkeypatch.setattr("remotessh.ssh_connection.asyncio.create_subprocess_exec", fake)
    return fake


@pytest.fixture
def readiness():
    from remotessh.ssh_connection import FixedDelayReadiness

    return FixedDelayReadiness(0.05)


@pytest.fixture
def make_client(readiness):
    """Factory for SSHProcessClient with a fast readiness detector."""
    from remotessh.ssh_connection import ConnectionConfig, SSHProcessClient

    def factory(host="example.com", **config_kwargs):
        return SSHProcessClient(ConnectionConfig(host=host, **config_kwargs), readiness=readiness)

    return factory


@pytest.fixture
def event_log():
    """Collects LifecycleEvents as (topic, payload) tuples."""
    events = []

    def record(event):
        events.append((event.topic, event.payload))

    record.events = events
    return record
