"""Unit tests for runtime setup, dependency install and build."""

from __future__ import annotations

from typing import Any

import pytest

from rollout.deploy.runtime import RuntimeEnvironmentSetup, nvm_prelude
from rollout.lib.errors import SetupError
from rollout.models.deployment import DeploymentDefaults, RemoteCredential

RELEASE = "/var/www/app/releases/r1"


class TestNvmPrelude:
    """Tests for the nvm prelude."""

    def test_sources_nvm_and_selects_version(self) -> None:
        """Test the prelude selects the configured version."""
        prelude = nvm_prelude(DeploymentDefaults(runtime_version="18"))
        assert prelude.render() == "{ . ~/.nvm/nvm.sh\n} && nvm use 18"

    def test_custom_nvm_dir_and_cwd(self) -> None:
        """Test a custom nvm directory and working directory."""
        prelude = nvm_prelude(
            DeploymentDefaults(nvm_dir="/opt/nvm/"), cwd="/srv/app"
        )
        assert prelude.render().startswith("cd /srv/app && { . /opt/nvm/nvm.sh\n}")


class TestRuntimeEnvironmentSetup:
    """Tests for RuntimeEnvironmentSetup."""

    def test_setup_runtime_installs_and_uses_version(
        self, fake_executor: Any, credential: RemoteCredential
    ) -> None:
        """Test that the version is installed, selected and reported."""
        RuntimeEnvironmentSetup(fake_executor, DeploymentDefaults()).setup_runtime(
            credential, RELEASE
        )
        [command] = fake_executor.commands_for("prod.example.com")
        assert command.startswith(f"cd {RELEASE} && ")
        assert "nvm install 20 && nvm use 20" in command
        assert command.endswith("node --version && npm --version")

    def test_install_runs_in_release_directory(
        self, fake_executor: Any, credential: RemoteCredential
    ) -> None:
        """Test the install command runs after the nvm prelude."""
        RuntimeEnvironmentSetup(
            fake_executor, DeploymentDefaults()
        ).install_dependencies(credential, RELEASE)
        [command] = fake_executor.commands_for("prod.example.com")
        assert command == (
            f"cd {RELEASE} && {{ . ~/.nvm/nvm.sh\n}} && nvm use 20"
            " && { npm ci --production\n}"
        )

    def test_build_uses_configured_command(
        self, fake_executor: Any, credential: RemoteCredential
    ) -> None:
        """Test a custom build command."""
        defaults = DeploymentDefaults(build_command="yarn build:prod")
        RuntimeEnvironmentSetup(fake_executor, defaults).build(credential, RELEASE)
        [command] = fake_executor.commands_for("prod.example.com")
        assert command.endswith("{ yarn build:prod\n}")

    def test_empty_build_command_is_skipped(
        self, fake_executor: Any, credential: RemoteCredential
    ) -> None:
        """Test that an empty build command sends nothing."""
        defaults = DeploymentDefaults(build_command="")
        RuntimeEnvironmentSetup(fake_executor, defaults).build(credential, RELEASE)
        assert fake_executor.commands == []

    @pytest.mark.parametrize(
        ("method", "needle", "stage"),
        [
            ("setup_runtime", "nvm install", "runtime"),
            ("install_dependencies", "npm ci", "install"),
            ("build", "npm run build", "build"),
        ],
    )
    def test_failure_raises_setup_error(
        self,
        fake_executor: Any,
        credential: RemoteCredential,
        method: str,
        needle: str,
        stage: str,
    ) -> None:
        """Test that each step reports its own stage on failure."""
        fake_executor.fail_on(needle)
        setup = RuntimeEnvironmentSetup(fake_executor, DeploymentDefaults())

        with pytest.raises(SetupError) as exc_info:
            getattr(setup, method)(credential, RELEASE)

        assert exc_info.value.stage == stage
        assert exc_info.value.host == "deploy@prod.example.com"
