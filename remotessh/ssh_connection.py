# Copyright (c) 2025 Marc Schütze <scharc@gmail.com>
# SPDX-License-Identifier: MIT
# See LICENSE file in the project root for full license information.

"""SSH client built on the system OpenSSH binary.

This module drives ``ssh`` child processes with asyncio:
- One-shot remote commands (``exec``), optionally returning early once the
  output satisfies a predicate (``exec_and_wait_until``)
- Local port forwards (``-N -L``) supervised for their whole lifetime
- An optional standing primary session used as a connectivity check

Lifecycle transitions are published on ``client.events`` (see
remotessh.events). Each exec spawns its own process; only tunnels and the
primary session are long-lived.
"""

from __future__ import annotations

import asyncio
import codecs
import dataclasses
from contextlib import suppress
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Protocol, Sequence, Set, Tuple

from remotessh.errors import (
    CommandFailed,
    ConnectionFailed,
    ConnectTimeout,
    InvalidConfig,
    SpawnError,
    TunnelError,
    TunnelExitedEarly,
    TunnelFatalStderr,
)
from remotessh.events import Channel, EventBus, LifecycleEvent, Phase
from remotessh.ports import find_random_port
from remotessh.utils.logging import get_logger

logger = get_logger(__name__)

# Constants
DEFAULT_SSH_PORT = 22
SSH_KEEPALIVE_INTERVAL = 60  # seconds
SSH_KEEPALIVE_COUNT_MAX = 3  # missed keepalives before disconnect
TUNNEL_GRACE_SECONDS = 1.0
TERMINATE_TIMEOUT = 5.0
READ_CHUNK_SIZE = 4096

# Substrings on a tunnel's stderr that mean it will never work
FATAL_TUNNEL_ERRORS = (
    "Address already in use",
    "Permission denied",
    "Connection refused",
)

OutputTester = Callable[[str, str], bool]


@dataclass(frozen=True)
class ConnectionConfig:
    """Connection settings for one destination. Never mutated; see overlay()."""

    host: str
    port: int = DEFAULT_SSH_PORT
    username: Optional[str] = None
    identity: Optional[str] = None
    connect_timeout: int = 60
    extra_options: Tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if not self.host:
            raise InvalidConfig("SSH host is required")
        if not 0 < self.port < 65536:
            raise InvalidConfig(f"Invalid SSH port: {self.port}")
        # Accept any sequence for convenience, store a tuple
        object.__setattr__(self, "extra_options", tuple(self.extra_options))

    @property
    def destination(self) -> str:
        """``user@host`` or bare ``host``."""
        if self.username:
            return f"{self.username}@{self.host}"
        return self.host

    def overlay(self, **overrides: Any) -> "ConnectionConfig":
        """Return a copy with the given fields replaced."""
        try:
            return dataclasses.replace(self, **overrides)
        except TypeError as e:
            raise InvalidConfig(f"Invalid connection override: {e}") from e


def build_ssh_args(config: ConnectionConfig, extra: Sequence[str] = ()) -> List[str]:
    """Build ssh arguments for a config.

    ``extra`` goes right before the destination (e.g. ``-N -L ...``).
    """
    args = []
    for option in (
        f"ConnectTimeout={config.connect_timeout}",
        f"ServerAliveInterval={SSH_KEEPALIVE_INTERVAL}",
        f"ServerAliveCountMax={SSH_KEEPALIVE_COUNT_MAX}",
        "BatchMode=yes",
    ):
        args.extend(["-o", option])
    args.append("-T")  # No pseudo-terminal

    if config.identity:
        args.extend(["-i", config.identity])

    if config.port != DEFAULT_SSH_PORT:
        args.extend(["-p", str(config.port)])

    args.extend(config.extra_options)
    args.extend(extra)
    args.append(config.destination)
    return args


@dataclass(frozen=True)
class TunnelSpec:
    """A requested local forward to a remote TCP port or Unix socket."""

    remote_port: Optional[int] = None
    remote_socket_path: Optional[str] = None
    remote_address: str = "localhost"
    local_port: Optional[int] = None
    name: Optional[str] = None

    def __post_init__(self) -> None:
        if (self.remote_port is None) == (self.remote_socket_path is None):
            raise InvalidConfig("Tunnel needs exactly one of remote_port or remote_socket_path")

    @property
    def key(self) -> str:
        """Name used to deduplicate and look up tunnels."""
        if self.name:
            return self.name
        target = self.remote_port if self.remote_port is not None else self.remote_socket_path
        return f"{self.remote_address}@{target}"

    def forward_arg(self, local_port: int) -> str:
        """Value for ``-L``."""
        if self.remote_socket_path is not None:
            return f"{local_port}:{self.remote_socket_path}"
        return f"{local_port}:{self.remote_address}:{self.remote_port}"


@dataclass(eq=False)
class ActiveTunnel:
    """A forward owned by one SSHProcessClient."""

    spec: TunnelSpec
    local_port: int
    process: Optional[asyncio.subprocess.Process] = None
    stderr: str = ""
    established: asyncio.Future = field(
        default_factory=lambda: asyncio.get_running_loop().create_future(), repr=False
    )
    _finished: bool = field(default=False, repr=False)

    @property
    def name(self) -> str:
        return self.spec.key

    @property
    def is_running(self) -> bool:
        return self.process is not None and self.process.returncode is None


@dataclass
class ExecOptions:
    """Per-call options for exec and exec_and_wait_until."""

    ignore_exit_code: bool = False
    timeout: Optional[float] = None
    overrides: Dict[str, Any] = field(default_factory=dict)


@dataclass
class ExecResult:
    """Output of a remote command. exit_code is None if it returned early."""

    stdout: str
    stderr: str
    exit_code: Optional[int] = None


class TunnelReadinessDetector(Protocol):
    """Decides when a freshly spawned forward (or session) is usable."""

    async def wait_until_ready(self, process: asyncio.subprocess.Process) -> bool:
        """Return True once ready, False if it will not become ready."""
        ...


class FixedDelayReadiness:
    """Assume the process is up if it is still alive after a grace window.

    ssh gives no explicit "forward ready" signal in batch mode, so a
    process that survives the window without a fatal message is taken as
    established. Under unusual network conditions this is a false positive.
    """

    def __init__(self, delay: float = TUNNEL_GRACE_SECONDS):
        self.delay = delay

    async def wait_until_ready(self, process: asyncio.subprocess.Process) -> bool:
        try:
            await asyncio.wait_for(process.wait(), timeout=self.delay)
        except asyncio.TimeoutError:
            return True
        return False


class _Output:
    """Accumulated text of one child process."""

    def __init__(self) -> None:
        self.stdout = ""
        self.stderr = ""


async def _pump(
    stream: Optional[asyncio.StreamReader], on_text: Callable[[str], None]
) -> None:
    """Read a stream to EOF, decoding incrementally."""
    if stream is None:
        return
    decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
    while True:
        chunk = await stream.read(READ_CHUNK_SIZE)
        if not chunk:
            tail = decoder.decode(b"", final=True)
            if tail:
                on_text(tail)
            return
        text = decoder.decode(chunk)
        if text:
            on_text(text)


def _signal_terminate(process: Optional[asyncio.subprocess.Process]) -> None:
    if process is not None and process.returncode is None:
        with suppress(ProcessLookupError):
            process.terminate()


async def _terminate(process: Optional[asyncio.subprocess.Process]) -> None:
    """Terminate and reap a child, escalating to SIGKILL."""
    if process is None:
        return
    _signal_terminate(process)
    try:
        await asyncio.wait_for(process.wait(), timeout=TERMINATE_TIMEOUT)
    except asyncio.TimeoutError:
        with suppress(ProcessLookupError):
            process.kill()
        await process.wait()


class SSHProcessClient:
    """Runs commands and forwards for one destination via ``ssh``.

    Events (topics on ``self.events``):
    - ``ssh`` / ``ssh:<phase>``: primary session and client close
    - ``tunnel`` / ``tunnel:<phase>``: each forward
    """

    def __init__(
        self,
        config: ConnectionConfig,
        readiness: Optional[TunnelReadinessDetector] = None,
        ssh_binary: str = "ssh",
    ):
        self.config = config
        self.readiness = readiness or FixedDelayReadiness()
        self.ssh_binary = ssh_binary
        self.events = EventBus()

        self._tunnels: Dict[str, ActiveTunnel] = {}
        self._primary: Optional[asyncio.subprocess.Process] = None
        self._detached: Set[asyncio.subprocess.Process] = set()
        self._background: Set[asyncio.Task] = set()

    # Events

    def _emit(self, channel: Channel, phase: Phase, **payload: Any) -> None:
        self.events.emit(LifecycleEvent(channel, phase, self, payload))

    def _track(self, task: asyncio.Task) -> asyncio.Task:
        """Keep a reference to a background task until it finishes."""
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        task.add_done_callback(_log_task_error)
        return task

    # Process helpers

    async def _spawn(self, args: List[str], stdout: int = asyncio.subprocess.PIPE):
        logger.info(
            f"Starting SSH command with arguments {' '.join(args)}", console_output=False
        )
        try:
            return await asyncio.create_subprocess_exec(
                self.ssh_binary,
                *args,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=stdout,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise SpawnError(self.ssh_binary, e) from e

    # Commands

    async def exec(
        self,
        command: str,
        args: Optional[Sequence[str]] = None,
        options: Optional[ExecOptions] = None,
    ) -> ExecResult:
        """Run a remote command to completion.

        Raises:
            CommandFailed: non-zero exit and options.ignore_exit_code unset
            SpawnError: ssh could not be started
            ConnectTimeout: options.timeout elapsed (the child is killed)
        """
        return await self._run(command, args, None, options or ExecOptions())

    async def exec_and_wait_until(
        self,
        command: str,
        tester: OutputTester,
        args: Optional[Sequence[str]] = None,
        options: Optional[ExecOptions] = None,
    ) -> ExecResult:
        """Run a remote command until ``tester(stdout, stderr)`` is true.

        Returns on the first chunk that satisfies the tester; the process
        keeps running and its output is drained in the background. If the
        process exits first this behaves like exec().
        """
        return await self._run(command, args, tester, options or ExecOptions())

    async def _run(
        self,
        command: str,
        args: Optional[Sequence[str]],
        tester: Optional[OutputTester],
        options: ExecOptions,
    ) -> ExecResult:
        if args:
            command = f"{command} {' '.join(args)}"
        config = self.config.overlay(**options.overrides) if options.overrides else self.config

        process = await self._spawn(build_ssh_args(config) + [command])
        output = _Output()
        loop = asyncio.get_running_loop()
        matched: Optional[asyncio.Future] = loop.create_future() if tester else None

        def check() -> None:
            if matched is not None and not matched.done() and tester(output.stdout, output.stderr):
                matched.set_result(None)

        def on_stdout(text: str) -> None:
            output.stdout += text
            check()

        def on_stderr(text: str) -> None:
            output.stderr += text
            check()

        async def supervise() -> int:
            await asyncio.gather(_pump(process.stdout, on_stdout), _pump(process.stderr, on_stderr))
            return await process.wait()

        supervisor = asyncio.ensure_future(supervise())
        waiters = {supervisor} if matched is None else {supervisor, matched}

        try:
            done, _ = await asyncio.wait(
                waiters, timeout=options.timeout, return_when=asyncio.FIRST_COMPLETED
            )
        except asyncio.CancelledError:
            _signal_terminate(process)
            supervisor.cancel()
            raise

        if matched is not None and matched.done():
            if not supervisor.done():
                self._detached.add(process)
                supervisor.add_done_callback(lambda _: self._detached.discard(process))
                self._track(supervisor)
            return ExecResult(output.stdout, output.stderr, process.returncode)

        if not done:
            await _terminate(process)
            supervisor.cancel()
            with suppress(asyncio.CancelledError):
                await supervisor
            raise ConnectTimeout(f"'{command}' on {config.destination}", options.timeout)

        if matched is not None:
            matched.cancel()
        if supervisor.exception() is not None:
            await _terminate(process)
        exit_code = supervisor.result()

        if exit_code == 0 or options.ignore_exit_code:
            return ExecResult(output.stdout, output.stderr, exit_code)
        raise CommandFailed(command, exit_code, output.stdout, output.stderr)

    # Primary session

    async def connect(self) -> None:
        """Open a standing ``ssh -N`` session to check connectivity.

        No-op while a primary session is alive.
        """
        if self._primary is not None and self._primary.returncode is None:
            return

        destination = self.config.destination
        self._emit(Channel.SSH, Phase.BEFORE_CONNECT, destination=destination)
        try:
            process = await self._spawn(
                build_ssh_args(self.config, ["-N"]), stdout=asyncio.subprocess.DEVNULL
            )
        except SpawnError as e:
            self._emit(Channel.SSH, Phase.DISCONNECTED, destination=destination, error=e)
            raise

        output = _Output()

        def on_stderr(text: str) -> None:
            output.stderr += text

        async def supervise() -> None:
            await _pump(process.stderr, on_stderr)
            code = await process.wait()
            if self._primary is process:
                self._primary = None
                logger.warning(
                    f"SSH session to {destination} exited with code {code}", console_output=False
                )
                self._emit(Channel.SSH, Phase.DISCONNECTED, destination=destination, exit_code=code)

        supervisor = self._track(asyncio.ensure_future(supervise()))

        try:
            ready = await self.readiness.wait_until_ready(process)
        except BaseException as e:
            await _terminate(process)
            self._emit(Channel.SSH, Phase.DISCONNECTED, destination=destination, error=e)
            raise

        if ready and process.returncode is None:
            self._primary = process
            logger.info(f"SSH session to {destination} established", console_output=False)
            self._emit(Channel.SSH, Phase.CONNECTED, destination=destination)
            return

        if process.returncode is None:
            await _terminate(process)
            error: Exception = ConnectTimeout(
                f"ssh connection to {destination}", self.config.connect_timeout
            )
        else:
            await supervisor
            error = ConnectionFailed(destination, process.returncode, output.stderr)
        self._emit(Channel.SSH, Phase.DISCONNECTED, destination=destination, error=error)
        raise error

    # Tunnels

    def get_tunnel(self, name: str) -> Optional[ActiveTunnel]:
        return self._tunnels.get(name)

    @property
    def tunnels(self) -> List[ActiveTunnel]:
        """Snapshot of registered tunnels (including ones still establishing)."""
        return list(self._tunnels.values())

    async def add_tunnel(self, spec: TunnelSpec) -> ActiveTunnel:
        """Start (or reuse) a local forward.

        A tunnel with the same name is returned as-is; if it is still being
        established this waits for that attempt instead of spawning again.

        Raises:
            SpawnError: ssh could not be started
            TunnelFatalStderr: ssh reported a known fatal error
            TunnelExitedEarly: ssh exited during the grace window
            ConnectTimeout: the readiness detector gave up on a live process
        """
        name = spec.key
        existing = self._tunnels.get(name)
        if existing is not None:
            await asyncio.shield(existing.established)
            return existing

        local_port = spec.local_port or find_random_port()
        logger.info(
            f"Creating tunnel {name}: localhost:{local_port} -> {spec.forward_arg(local_port)}",
            console_output=False,
        )

        # Registered before any await so concurrent callers find it
        tunnel = ActiveTunnel(spec=spec, local_port=local_port)
        self._tunnels[name] = tunnel
        self._emit(Channel.TUNNEL, Phase.BEFORE_CONNECT, tunnel=spec)

        args = build_ssh_args(self.config, ["-N", "-L", spec.forward_arg(local_port)])
        try:
            try:
                process = await self._spawn(args, stdout=asyncio.subprocess.DEVNULL)
            except SpawnError as e:
                self._fail_tunnel(tunnel, e)
                return await tunnel.established

            tunnel.process = process
            if tunnel.established.done():
                # Closed while spawning
                await _terminate(process)
                return await tunnel.established

            self._track(asyncio.ensure_future(self._supervise_tunnel(tunnel)))
            await self._establish(tunnel)
            return await tunnel.established
        except asyncio.CancelledError:
            # Unregister so the name is not blocked for later callers
            self._fail_tunnel(tunnel, None)
            raise

    async def _establish(self, tunnel: ActiveTunnel) -> None:
        """Race the readiness detector against the supervisor's verdict."""
        readiness = asyncio.ensure_future(self.readiness.wait_until_ready(tunnel.process))
        try:
            await asyncio.wait(
                {readiness, tunnel.established}, return_when=asyncio.FIRST_COMPLETED
            )
        finally:
            if not readiness.done():
                readiness.cancel()

        if tunnel.established.done():
            return

        if readiness.exception() is not None:
            self._fail_tunnel(tunnel, readiness.exception())
            return

        if tunnel.process.returncode is None:
            if readiness.result():
                tunnel.established.set_result(tunnel)
                logger.info(
                    f"Tunnel {tunnel.name} established on localhost:{tunnel.local_port}",
                    console_output=False,
                )
                self._emit(Channel.TUNNEL, Phase.CONNECTED, tunnel=tunnel.spec,
                           local_port=tunnel.local_port)
            else:
                self._fail_tunnel(tunnel, ConnectTimeout(f"tunnel {tunnel.name}",
                                                         self.config.connect_timeout))
        # Otherwise the process already exited; the supervisor settles it

    async def _supervise_tunnel(self, tunnel: ActiveTunnel) -> None:
        """Watch stderr for fatal messages, then handle process exit."""
        process = tunnel.process

        def on_stderr(text: str) -> None:
            tunnel.stderr += text
            if self._tunnels.get(tunnel.name) is not tunnel:
                return
            if any(pattern in tunnel.stderr for pattern in FATAL_TUNNEL_ERRORS):
                logger.warning(
                    f"Tunnel {tunnel.name} failed: {tunnel.stderr.strip()}", console_output=False
                )
                self._fail_tunnel(tunnel, TunnelFatalStderr(tunnel.name, tunnel.stderr))

        await _pump(process.stderr, on_stderr)
        code = await process.wait()

        if self._tunnels.get(tunnel.name) is tunnel:
            logger.warning(f"Tunnel {tunnel.name} exited with code {code}", console_output=False)
            self._fail_tunnel(tunnel, TunnelExitedEarly(tunnel.name, code, tunnel.stderr))

    def _fail_tunnel(self, tunnel: ActiveTunnel, error: Optional[BaseException]) -> None:
        """Unregister a broken tunnel, stop its process and report it once."""
        if self._tunnels.get(tunnel.name) is tunnel:
            del self._tunnels[tunnel.name]
        _signal_terminate(tunnel.process)

        if not tunnel.established.done():
            if error is None:
                tunnel.established.cancel()
            else:
                tunnel.established.set_exception(error)

        if not tunnel._finished:
            tunnel._finished = True
            self._emit(Channel.TUNNEL, Phase.DISCONNECTED, tunnel=tunnel.spec, error=error)

    async def close_tunnel(self, name: Optional[str] = None) -> None:
        """Close one tunnel by name, or all of them.

        Unknown names are ignored. Closing all works on a snapshot of the
        names registered at call time.
        """
        if name is None:
            await asyncio.gather(*(self.close_tunnel(n) for n in list(self._tunnels)))
            return

        tunnel = self._tunnels.pop(name, None)
        if tunnel is None:
            return

        logger.info(f"Closing tunnel {name}", console_output=False)
        self._emit(Channel.TUNNEL, Phase.BEFORE_DISCONNECT, tunnel=tunnel.spec)
        if not tunnel.established.done():
            tunnel.established.set_exception(
                TunnelError(f"Tunnel {name} was closed before it was established", name)
            )
        tunnel._finished = True
        await _terminate(tunnel.process)
        self._emit(Channel.TUNNEL, Phase.DISCONNECTED, tunnel=tunnel.spec)

    # Shutdown

    async def close(self) -> None:
        """Close all tunnels and the primary session. Safe to call twice."""
        self._emit(Channel.SSH, Phase.BEFORE_DISCONNECT, destination=self.config.destination)
        await self.close_tunnel()

        primary, self._primary = self._primary, None
        await _terminate(primary)

        detached, self._detached = list(self._detached), set()
        await asyncio.gather(*(_terminate(p) for p in detached))

        self._emit(Channel.SSH, Phase.DISCONNECTED, destination=self.config.destination)


def _log_task_error(task: asyncio.Task) -> None:
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.error("Background SSH task failed", exc=exc, console_output=False)
