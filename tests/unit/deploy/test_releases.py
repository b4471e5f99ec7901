"""Unit tests for release identifiers and ReleaseManager."""

from __future__ import annotations

import re
from datetime import datetime, timezone
from typing import Any

import pytest

from rollout.deploy.releases import ReleaseManager, allocate_release_id
from rollout.models.deployment import ReleaseLayout, RemoteCredential

RELEASE_ID_RE = re.compile(r"^\d{4}-\d{2}-\d{2}T\d{2}-\d{2}-\d{2}-\d{6}Z$")


def _ids(count: int) -> list[str]:
    return [f"2025-01-{day:02d}T12-00-00-000000Z" for day in range(1, count + 1)]


class TestAllocateReleaseId:
    """Tests for release identifier allocation."""

    def test_format_is_filesystem_safe(self) -> None:
        """Test that identifiers contain no colons, dots or slashes."""
        release_id = allocate_release_id()
        assert RELEASE_ID_RE.match(release_id)

    def test_uses_utc(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test that the clock reading is rendered in UTC."""
        monkeypatch.setattr("rollout.deploy.releases._last_issued", None)
        stamp = datetime(2031, 5, 4, 3, 2, 1, 123456, tzinfo=timezone.utc)
        assert allocate_release_id(stamp) == "2031-05-04T03-02-01-123456Z"

    def test_identifiers_are_unique_and_ordered(self) -> None:
        """Test that consecutive identifiers never repeat and sort in order."""
        ids = [allocate_release_id() for _ in range(200)]
        assert len(set(ids)) == len(ids)
        assert ids == sorted(ids)

    def test_same_clock_reading_is_advanced(
        self, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """Test that a repeated clock reading still yields a new identifier."""
        monkeypatch.setattr("rollout.deploy.releases._last_issued", None)
        stamp = datetime(2040, 1, 1, tzinfo=timezone.utc)
        first = allocate_release_id(stamp)
        second = allocate_release_id(stamp)
        assert second > first


class TestReleaseManager:
    """Tests for directory management, cutover and pruning."""

    def test_release_for_joins_layout(self, fake_executor: Any) -> None:
        """Test the release path under the releases directory."""
        release = ReleaseManager(fake_executor).release_for(
            ReleaseLayout.standard("app"), "r1"
        )
        assert release.id == "r1"
        assert release.path == "/var/www/app/releases/r1"

    def test_prepare_layout(
        self, fake_executor: Any, credential: RemoteCredential
    ) -> None:
        """Test that releases and shared directories are created."""
        ReleaseManager(fake_executor).prepare_layout(
            credential, ReleaseLayout.standard("app")
        )
        assert fake_executor.commands_for("prod.example.com") == [
            "mkdir -p -- /var/www/app/releases /var/www/app/shared"
        ]

    def test_cutover_is_atomic_rename(
        self, fake_executor: Any, credential: RemoteCredential
    ) -> None:
        """Test that current is replaced by renaming a temporary link."""
        ReleaseManager(fake_executor).cutover(
            credential, "/var/www/app/releases/r2", "/var/www/app/current"
        )
        [command] = fake_executor.commands_for("prod.example.com")
        assert command == (
            "ln -sfn /var/www/app/releases/r2 /var/www/app/current.next-r2"
            " && mv -Tf /var/www/app/current.next-r2 /var/www/app/current"
        )

    def test_current_release(
        self, fake_executor: Any, credential: RemoteCredential
    ) -> None:
        """Test reading the live release from the symlink."""
        fake_executor.respond("readlink", "/var/www/app/releases/r3\n")
        manager = ReleaseManager(fake_executor)
        assert manager.current_release(credential, "/var/www/app/current") == "r3"

    def test_current_release_missing(
        self, fake_executor: Any, credential: RemoteCredential
    ) -> None:
        """Test that a missing symlink yields None."""
        manager = ReleaseManager(fake_executor)
        assert manager.current_release(credential, "/var/www/app/current") is None

    def test_list_releases_newest_first(
        self, fake_executor: Any, credential: RemoteCredential
    ) -> None:
        """Test that identifiers are listed newest first."""
        fake_executor.respond("find", "\n".join(["b_2", "a_1", "c_3"]) + "\n")
        releases = ReleaseManager(fake_executor).list_releases(
            credential, "/var/www/app/releases"
        )
        assert releases == ["c_3", "b_2", "a_1"]

    def test_prune_keeps_five_newest(
        self, fake_executor: Any, credential: RemoteCredential
    ) -> None:
        """Test that only releases beyond the newest five are deleted."""
        ids = _ids(8)
        fake_executor.respond("find", "\n".join(ids))
        fake_executor.respond("readlink", f"/var/www/app/releases/{ids[-1]}")

        removed = ReleaseManager(fake_executor).prune_releases(
            credential, "/var/www/app/releases", current_path="/var/www/app/current"
        )

        assert removed == [ids[2], ids[1], ids[0]]
        rm = fake_executor.commands_for("prod.example.com")[-1]
        assert rm.startswith("rm -rf -- ")
        for release_id in ids[3:]:
            assert release_id not in rm

    def test_prune_never_deletes_live_release(
        self, fake_executor: Any, credential: RemoteCredential
    ) -> None:
        """Test that a rolled-back live release outside the window is kept."""
        ids = _ids(7)
        fake_executor.respond("find", "\n".join(ids))
        fake_executor.respond("readlink", f"/var/www/app/releases/{ids[0]}")

        removed = ReleaseManager(fake_executor).prune_releases(
            credential, "/var/www/app/releases", current_path="/var/www/app/current"
        )

        assert removed == [ids[1]]
        assert ids[0] not in fake_executor.commands_for("prod.example.com")[-1]

    def test_prune_nothing_to_do(
        self, fake_executor: Any, credential: RemoteCredential
    ) -> None:
        """Test that no rm is issued when within the retention window."""
        fake_executor.respond("find", "\n".join(_ids(3)))
        removed = ReleaseManager(fake_executor).prune_releases(
            credential, "/var/www/app/releases", keep=5
        )
        assert removed == []
        assert not any(
            c.startswith("rm ") for c in fake_executor.commands_for("prod.example.com")
        )

    def test_prune_rejects_zero_keep(
        self, fake_executor: Any, credential: RemoteCredential
    ) -> None:
        """Test that at least one release is always retained."""
        with pytest.raises(ValueError):
            ReleaseManager(fake_executor).prune_releases(
                credential, "/var/www/app/releases", keep=0
            )
