"""Remote command execution over SSH.

This module is the only place that talks to remote hosts for commands and
file uploads. Commands are described as RemoteCommand values: argv steps are
shell-quoted element by element, and only operator-authored scripts (hooks,
install/build commands, the runtime manager prelude) are inserted verbatim.
"""

from __future__ import annotations

import os
import shlex
import threading
from collections.abc import Callable
from dataclasses import dataclass, field
from types import TracebackType

import paramiko

from rollout.lib.errors import RemoteExecutionError
from rollout.lib.logging_config import get_logger
from rollout.models.deployment import RemoteCredential

logger = get_logger(__name__)

Step = tuple[str, ...] | str


@dataclass(frozen=True)
class RemoteCommand:
    """A structured shell command sent to a remote host.

    Steps are chained with ``&&`` so the first failing step aborts the rest.
    A tuple step is an argv vector and every element is quoted. A str step is
    a trusted script inserted as written, wrapped in a brace group so its
    own operators cannot change how the chain is evaluated.

    Example:
        >>> RemoteCommand.argv("mkdir", "-p", "/srv/app releases").render()
        "mkdir -p '/srv/app releases'"
    """

    steps: tuple[Step, ...] = field(default_factory=tuple)
    cwd: str | None = None

    @classmethod
    def argv(cls, *args: str, cwd: str | None = None) -> RemoteCommand:
        """Create a command from a single argv vector."""
        return cls(steps=(tuple(args),), cwd=cwd)

    @classmethod
    def script(cls, script: str, cwd: str | None = None) -> RemoteCommand:
        """Create a command from a trusted script."""
        return cls(steps=(script,), cwd=cwd)

    def then(self, *args: str) -> RemoteCommand:
        """Return a copy with an argv step appended."""
        return RemoteCommand(steps=(*self.steps, tuple(args)), cwd=self.cwd)

    def then_script(self, script: str) -> RemoteCommand:
        """Return a copy with a trusted script step appended."""
        return RemoteCommand(steps=(*self.steps, script), cwd=self.cwd)

    def in_dir(self, cwd: str) -> RemoteCommand:
        """Return a copy that changes into cwd before the first step."""
        return RemoteCommand(steps=self.steps, cwd=cwd)

    def render(self) -> str:
        """Render the command line executed by the remote shell."""
        if not self.steps:
            raise ValueError("RemoteCommand has no steps")

        parts: list[str] = []
        if self.cwd:
            parts.append(shlex.join(["cd", self.cwd]))
        for step in self.steps:
            if isinstance(step, tuple):
                parts.append(shlex.join(step))
            else:
                parts.append(f"{{ {step}\n}}")
        return " && ".join(parts)

    def __str__(self) -> str:
        return self.render()


class _StreamReader(threading.Thread):
    """Reads one channel stream to EOF in the background."""

    def __init__(self, stream: paramiko.ChannelFile, name: str) -> None:
        super().__init__(name=name, daemon=True)
        self._stream = stream
        self._data = b""
        self._error: Exception | None = None

    def run(self) -> None:
        try:
            self._data = self._stream.read()
        except Exception as e:
            self._error = e

    def result(self) -> bytes:
        """Wait for EOF and return the bytes read, re-raising a read error."""
        self.join()
        if self._error is not None:
            raise self._error
        return self._data


class RemoteCommandExecutor:
    """Runs commands on remote hosts through paramiko.

    One SSH connection is kept per (user, host, port) and reused by every
    command of a run. Every command is bounded by a timeout so that an
    unresponsive host cannot block a cluster deployment indefinitely.

    Example:
        >>> with RemoteCommandExecutor(command_timeout=120) as executor:
        ...     executor.run(credential, RemoteCommand.argv("uname", "-a"))
    """

    def __init__(
        self,
        command_timeout: float = 600.0,
        connect_timeout: float = 30.0,
        client_factory: Callable[[], paramiko.SSHClient] = paramiko.SSHClient,
    ) -> None:
        """Initialize the executor.

        Args:
            command_timeout: Default upper bound in seconds for one command
            connect_timeout: TCP and SSH handshake timeout in seconds
            client_factory: Factory for SSH clients
        """
        self.command_timeout = command_timeout
        self.connect_timeout = connect_timeout
        self._client_factory = client_factory
        self._clients: dict[tuple[str, str, int], paramiko.SSHClient] = {}
        self._lock = threading.Lock()

    def __enter__(self) -> RemoteCommandExecutor:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()

    def run(
        self,
        credential: RemoteCredential,
        command: RemoteCommand,
        *,
        check: bool = True,
        timeout: float | None = None,
    ) -> str:
        """Run a command on a host and return its captured stdout.

        Output on stderr from a successful command is logged as a warning and
        otherwise ignored; the Node.js toolchain writes progress there.

        Args:
            credential: Host to run on
            command: Structured command
            check: Raise when the command exits non-zero
            timeout: Override of the executor's command timeout

        Returns:
            Captured standard output

        Raises:
            RemoteExecutionError: If the host is unreachable, authentication
                fails, the command times out, or (with check) exits non-zero
        """
        rendered = command.render()
        limit = timeout if timeout is not None else self.command_timeout
        logger.debug(f"[{credential.address}] $ {rendered}")

        client = self._get_client(credential)
        try:
            _stdin, stdout, stderr = client.exec_command(rendered, timeout=limit)
            # Both streams share one receive window and must be read together
            stderr_reader = _StreamReader(stderr, name=f"stderr-{credential.host}")
            stderr_reader.start()
            out = stdout.read().decode("utf-8", errors="replace")
            err = stderr_reader.result().decode("utf-8", errors="replace")
            exit_status = stdout.channel.recv_exit_status()
        except TimeoutError as e:
            self._discard(credential)
            raise RemoteExecutionError(
                credential.address,
                rendered,
                f"Command timed out after {limit:g}s",
            ) from e
        except (paramiko.SSHException, OSError) as e:
            self._discard(credential)
            raise RemoteExecutionError(
                credential.address,
                rendered,
                f"SSH transport error: {e}",
            ) from e

        if exit_status != 0 and check:
            raise RemoteExecutionError(
                credential.address,
                rendered,
                f"Command exited with status {exit_status}",
                exit_status=exit_status,
                stderr=err,
            )

        if err.strip() and exit_status == 0:
            logger.warning(f"[{credential.address}] {err.strip()}")
        return out

    def upload(
        self, credential: RemoteCredential, content: str, remote_path: str
    ) -> None:
        """Write a text file on a host over SFTP, replacing any existing file.

        Raises:
            RemoteExecutionError: If the transfer fails
        """
        logger.debug(f"[{credential.address}] upload {remote_path}")
        client = self._get_client(credential)
        try:
            sftp = client.open_sftp()
            try:
                with sftp.open(remote_path, "w") as remote_file:
                    remote_file.write(content)
            finally:
                sftp.close()
        except (paramiko.SSHException, OSError) as e:
            raise RemoteExecutionError(
                credential.address,
                f"sftp put {remote_path}",
                f"Upload failed: {e}",
            ) from e

    def close(self) -> None:
        """Close every cached connection."""
        with self._lock:
            clients = list(self._clients.values())
            self._clients.clear()
        for client in clients:
            client.close()

    def _get_client(self, credential: RemoteCredential) -> paramiko.SSHClient:
        key = _connection_key(credential)
        with self._lock:
            client = self._clients.get(key)
        if client is not None:
            transport = client.get_transport()
            if transport is not None and transport.is_active():
                return client
            self._discard(credential)

        client = self._connect(credential)
        with self._lock:
            self._clients[key] = client
        return client

    def _connect(self, credential: RemoteCredential) -> paramiko.SSHClient:
        client = self._client_factory()
        client.load_system_host_keys()
        client.set_missing_host_key_policy(paramiko.AutoAddPolicy())

        key_filename = None
        if credential.key_file:
            key_filename = os.path.expanduser(credential.key_file)

        logger.debug(f"Connecting to {credential.address}")
        try:
            client.connect(
                hostname=credential.host,
                port=credential.port,
                username=credential.username,
                key_filename=key_filename,
                password=credential.password,
                timeout=self.connect_timeout,
                banner_timeout=self.connect_timeout,
                auth_timeout=self.connect_timeout,
                look_for_keys=key_filename is None and credential.password is None,
            )
        except paramiko.AuthenticationException as e:
            client.close()
            raise RemoteExecutionError(
                credential.address, "connect", f"Authentication failed: {e}"
            ) from e
        except (paramiko.SSHException, OSError) as e:
            client.close()
            raise RemoteExecutionError(
                credential.address, "connect", f"Host unreachable: {e}"
            ) from e
        return client

    def _discard(self, credential: RemoteCredential) -> None:
        with self._lock:
            client = self._clients.pop(_connection_key(credential), None)
        if client is not None:
            client.close()


def _connection_key(credential: RemoteCredential) -> tuple[str, str, int]:
    return (credential.username, credential.host, credential.port)
