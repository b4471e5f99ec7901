"""Unit tests for HookRunner."""

from __future__ import annotations

from typing import Any

import pytest

from rollout.deploy.hooks import HookRunner
from rollout.lib.errors import HookError
from rollout.models.deployment import DeploymentDefaults, RemoteCredential

RELEASE = "/var/www/app/releases/r1"


class TestHookRunner:
    """Tests for running operator hooks."""

    def test_hooks_run_in_order_with_runtime(
        self, fake_executor: Any, credential: RemoteCredential
    ) -> None:
        """Test each hook runs in the working path after the nvm prelude."""
        HookRunner(fake_executor, DeploymentDefaults()).run(
            credential, RELEASE, ["npm run migrate", "npm run seed"], "before_deploy"
        )

        commands = fake_executor.commands_for("prod.example.com")
        assert len(commands) == 2
        assert commands[0] == (
            f"cd {RELEASE} && {{ . ~/.nvm/nvm.sh\n}} && nvm use 20"
            " && { npm run migrate\n}"
        )
        assert commands[1].endswith("{ npm run seed\n}")

    def test_empty_hook_list_is_noop(
        self, fake_executor: Any, credential: RemoteCredential
    ) -> None:
        """Test that no command is sent without hooks."""
        HookRunner(fake_executor, DeploymentDefaults()).run(credential, RELEASE, [])
        assert fake_executor.commands == []

    def test_first_failure_stops_and_names_command(
        self, fake_executor: Any, credential: RemoteCredential
    ) -> None:
        """Test the failing hook is named and later hooks do not run."""
        fake_executor.fail_on("sudo nginx")
        runner = HookRunner(fake_executor, DeploymentDefaults())

        with pytest.raises(HookError) as exc_info:
            runner.run(
                credential,
                RELEASE,
                ["pm2 save", "sudo nginx -s reload", "echo done"],
                "after_deploy",
            )

        error = exc_info.value
        assert error.command == "sudo nginx -s reload"
        assert error.phase == "after_deploy"
        assert "sudo nginx -s reload" in str(error)
        assert len(fake_executor.commands) == 2
