"""Mirror the local project tree into a release directory with rsync."""

from __future__ import annotations

import os
import shlex
import subprocess  # nosec B404
from collections.abc import Iterable
from pathlib import Path

from rollout.config.defaults import DEFAULT_SYNC_EXCLUDES
from rollout.lib.errors import SyncError
from rollout.lib.logging_config import get_logger
from rollout.models.deployment import RemoteCredential

logger = get_logger(__name__)


class FileSynchronizer:
    """Copies the project tree to a remote path using rsync over SSH.

    The transfer is a mirror (``--delete``), so running it twice against the
    same target reproduces the same tree. Dependency caches, VCS metadata,
    build output and log files are never transferred.
    """

    def __init__(
        self,
        source_dir: str | Path = ".",
        extra_excludes: Iterable[str] = (),
        timeout: float | None = None,
        connect_timeout: float = 30.0,
    ) -> None:
        """Initialize the synchronizer.

        Args:
            source_dir: Local project root to mirror
            extra_excludes: Patterns excluded in addition to the defaults
            timeout: Upper bound in seconds for one transfer (None = no bound)
            connect_timeout: SSH connection timeout in seconds
        """
        self.source_dir = Path(source_dir)
        self.excludes = [*DEFAULT_SYNC_EXCLUDES, *extra_excludes]
        self.timeout = timeout
        self.connect_timeout = connect_timeout

    def build_command(
        self, credential: RemoteCredential, release_path: str
    ) -> list[str]:
        """Build the rsync argv vector for a transfer.

        Args:
            credential: Target host
            release_path: Absolute remote directory to fill

        Returns:
            Argument list suitable for subprocess.run without a shell
        """
        ssh_transport = [
            "ssh",
            "-o",
            "StrictHostKeyChecking=accept-new",
            "-o",
            f"ConnectTimeout={int(self.connect_timeout)}",
            "-p",
            str(credential.port),
        ]
        if credential.key_file:
            ssh_transport += ["-i", os.path.expanduser(credential.key_file)]
        if not credential.password:
            # Fail instead of prompting when no key is accepted
            ssh_transport += ["-o", "BatchMode=yes"]

        argv = ["rsync", "-az", "--delete", "-e", shlex.join(ssh_transport)]
        for pattern in self.excludes:
            argv.append(f"--exclude={pattern}")

        source = str(self.source_dir).rstrip("/") + "/"
        destination = f"{credential.username}@{credential.host}:{release_path}/"
        argv += [source, destination]

        if credential.password and not credential.key_file:
            argv = ["sshpass", "-e", *argv]
        return argv

    def sync(self, credential: RemoteCredential, release_path: str) -> None:
        """Mirror the project tree into release_path on the host.

        Raises:
            SyncError: If rsync is unavailable, times out or exits non-zero
        """
        argv = self.build_command(credential, release_path)
        logger.info(f"[{credential.address}] Uploading code to {release_path}")
        logger.debug(f"[{credential.address}] $ {shlex.join(argv)}")

        env = None
        if argv[0] == "sshpass":
            env = {**os.environ, "SSHPASS": credential.password or ""}

        try:
            result = subprocess.run(  # noqa: S603  # nosec B603
                argv,
                capture_output=True,
                text=True,
                timeout=self.timeout,
                env=env,
            )
        except FileNotFoundError as e:
            raise SyncError(
                credential.address,
                f"'{argv[0]}' is not installed or not on PATH",
            ) from e
        except subprocess.TimeoutExpired as e:
            raise SyncError(
                credential.address,
                f"Transfer timed out after {self.timeout:g}s",
            ) from e

        if result.returncode != 0:
            detail = result.stderr.strip() or result.stdout.strip()
            raise SyncError(
                credential.address,
                f"rsync exited with status {result.returncode}: {detail}",
            )

        logger.info(f"[{credential.address}] Code uploaded")
