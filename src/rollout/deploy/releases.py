"""Release directory layout management on remote hosts.

Layout for an application deployed to /var/www/app::

    /var/www/app/
        current -> releases/2025-01-01T12-00-00-000000Z
        releases/
            2025-01-01T11-00-00-000000Z/
            2025-01-01T12-00-00-000000Z/
        shared/
"""

from __future__ import annotations

import posixpath
import threading
from datetime import datetime, timedelta, timezone

from rollout.deploy.remote import RemoteCommand, RemoteCommandExecutor
from rollout.lib.logging_config import get_logger
from rollout.models.deployment import ReleaseLayout, RemoteCredential
from rollout.models.release import Release

logger = get_logger(__name__)

RELEASE_ID_FORMAT = "%Y-%m-%dT%H-%M-%S-%fZ"
DEFAULT_KEEP_RELEASES = 5

# Direct subdirectories of the releases directory, one name per line
_LIST_RELEASE_DIRS_ARGS = (
    "-mindepth",
    "1",
    "-maxdepth",
    "1",
    "-type",
    "d",
    "-printf",
    "%f\\n",
)

_id_lock = threading.Lock()
_last_issued: datetime | None = None


def allocate_release_id(now: datetime | None = None) -> str:
    """Allocate a new release identifier from the current UTC time.

    Identifiers are fixed width and contain no colons or dots, so they are
    valid directory names and sort lexically in creation order. Within a
    process an identifier is never issued twice: a clock reading that is not
    later than the previous one is advanced by one microsecond.

    Args:
        now: Clock reading to use instead of the current time

    Returns:
        Release identifier such as "2025-01-01T12-00-00-000000Z"
    """
    global _last_issued

    stamp = (now or datetime.now(timezone.utc)).astimezone(timezone.utc)
    with _id_lock:
        if _last_issued is not None and stamp <= _last_issued:
            stamp = _last_issued + timedelta(microseconds=1)
        _last_issued = stamp
    return stamp.strftime(RELEASE_ID_FORMAT)


class ReleaseManager:
    """Owns the release layout on a host: directories, cutover and pruning."""

    def __init__(self, executor: RemoteCommandExecutor) -> None:
        """Initialize the manager with the executor used for remote commands."""
        self.executor = executor

    def allocate_release_id(self) -> str:
        """Allocate a new, never reused release identifier."""
        return allocate_release_id()

    def release_for(self, layout: ReleaseLayout, release_id: str) -> Release:
        """Return the Release for an identifier under a layout."""
        return Release(id=release_id, path=posixpath.join(layout.releases, release_id))

    def prepare_layout(
        self, credential: RemoteCredential, layout: ReleaseLayout
    ) -> None:
        """Ensure the releases and shared directories exist."""
        self.executor.run(
            credential,
            RemoteCommand.argv("mkdir", "-p", "--", layout.releases, layout.shared),
        )

    def create_release_directory(self, credential: RemoteCredential, path: str) -> None:
        """Create a release directory; succeeds if it already exists."""
        logger.info(f"[{credential.address}] Creating release directory {path}")
        self.executor.run(credential, RemoteCommand.argv("mkdir", "-p", "--", path))

    def cutover(
        self, credential: RemoteCredential, release_path: str, current_path: str
    ) -> None:
        """Point the current symlink at release_path.

        The new link is created under a temporary name and renamed over the
        old one, so readers see either the previous or the new release and
        never a missing link.
        """
        logger.info(
            f"[{credential.address}] Switching {current_path} -> {release_path}"
        )
        temp_link = f"{current_path}.next-{posixpath.basename(release_path)}"
        command = RemoteCommand.argv("ln", "-sfn", release_path, temp_link).then(
            "mv", "-Tf", temp_link, current_path
        )
        self.executor.run(credential, command)

    def current_release(
        self, credential: RemoteCredential, current_path: str
    ) -> str | None:
        """Return the release identifier current points to, if any."""
        output = self.executor.run(
            credential, RemoteCommand.argv("readlink", "--", current_path), check=False
        )
        target = output.strip()
        if not target:
            return None
        return posixpath.basename(target.rstrip("/"))

    def list_releases(
        self, credential: RemoteCredential, releases_dir: str
    ) -> list[str]:
        """List release identifiers on a host, newest first."""
        command = RemoteCommand.argv("find", releases_dir, *_LIST_RELEASE_DIRS_ARGS)
        output = self.executor.run(credential, command, check=False)
        names = [line.strip() for line in output.splitlines() if line.strip()]
        return sorted(names, reverse=True)

    def prune_releases(
        self,
        credential: RemoteCredential,
        releases_dir: str,
        keep: int = DEFAULT_KEEP_RELEASES,
        current_path: str | None = None,
    ) -> list[str]:
        """Delete all but the newest keep releases.

        The release that current points to is never deleted, even when it
        falls outside the retained window (for example after a manual
        rollback to an old release).

        Args:
            credential: Target host
            releases_dir: Directory holding the releases
            keep: Number of most recent releases to retain
            current_path: Path of the current symlink to protect

        Returns:
            Identifiers of the deleted releases

        Raises:
            ValueError: If keep is lower than 1
        """
        if keep < 1:
            raise ValueError(f"keep must be at least 1, got {keep}")

        releases = self.list_releases(credential, releases_dir)
        live = self.current_release(credential, current_path) if current_path else None

        stale = [name for name in releases[keep:] if name != live]
        if not stale:
            logger.info(f"[{credential.address}] No old releases to clean up")
            return []

        if live in releases[keep:]:
            logger.warning(
                f"[{credential.address}] Keeping live release {live} outside "
                f"the retention window of {keep}"
            )

        paths = [posixpath.join(releases_dir, name) for name in stale]
        self.executor.run(credential, RemoteCommand.argv("rm", "-rf", "--", *paths))
        logger.info(
            f"[{credential.address}] Removed {len(stale)} old release(s): "
            + ", ".join(stale)
        )
        return stale
