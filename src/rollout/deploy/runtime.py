"""Runtime setup inside a release directory.

The Node.js version is selected through nvm, which is a shell function and
has to be sourced in the same shell that runs the following commands, so
every command built here starts with the nvm prelude.
"""

from __future__ import annotations

from rollout.deploy.remote import RemoteCommand, RemoteCommandExecutor
from rollout.lib.errors import RemoteExecutionError, SetupError
from rollout.lib.logging_config import get_logger
from rollout.models.deployment import DeploymentDefaults, RemoteCredential

logger = get_logger(__name__)


def nvm_prelude(defaults: DeploymentDefaults, cwd: str | None = None) -> RemoteCommand:
    """Return a command that sources nvm and selects the runtime version.

    Args:
        defaults: Deployment defaults holding nvm_dir and runtime_version
        cwd: Directory to change into first

    Returns:
        RemoteCommand ready to have further steps appended
    """
    nvm_dir = defaults.nvm_dir.rstrip("/")
    return RemoteCommand.script(f". {nvm_dir}/nvm.sh", cwd=cwd).then(
        "nvm", "use", defaults.runtime_version
    )


class RuntimeEnvironmentSetup:
    """Installs the runtime, dependencies and build output of a release."""

    def __init__(
        self, executor: RemoteCommandExecutor, defaults: DeploymentDefaults
    ) -> None:
        """Initialize with the executor and the shared deployment defaults."""
        self.executor = executor
        self.defaults = defaults

    def setup_runtime(self, credential: RemoteCredential, release_path: str) -> None:
        """Install (if needed) and select the configured Node.js version.

        Raises:
            SetupError: If nvm cannot install or select the version
        """
        version = self.defaults.runtime_version
        logger.info(f"[{credential.address}] Setting up Node.js {version}")
        nvm_dir = self.defaults.nvm_dir.rstrip("/")
        command = (
            RemoteCommand.script(f". {nvm_dir}/nvm.sh", cwd=release_path)
            .then("nvm", "install", version)
            .then("nvm", "use", version)
            .then("node", "--version")
            .then("npm", "--version")
        )
        output = self._run(credential, command, "runtime")
        logger.debug(f"[{credential.address}] {output.strip()}")

    def install_dependencies(
        self, credential: RemoteCredential, release_path: str
    ) -> None:
        """Run the configured install command in the release directory.

        Raises:
            SetupError: If the install command fails
        """
        if not self.defaults.install_command.strip():
            logger.info(f"[{credential.address}] No install command configured")
            return
        logger.info(f"[{credential.address}] Installing dependencies")
        command = nvm_prelude(self.defaults, cwd=release_path).then_script(
            self.defaults.install_command
        )
        self._run(credential, command, "install")

    def build(self, credential: RemoteCredential, release_path: str) -> None:
        """Run the configured build command in the release directory.

        Raises:
            SetupError: If the build command fails
        """
        if not self.defaults.build_command.strip():
            logger.info(f"[{credential.address}] No build command configured")
            return
        logger.info(f"[{credential.address}] Building application")
        command = nvm_prelude(self.defaults, cwd=release_path).then_script(
            self.defaults.build_command
        )
        self._run(credential, command, "build")

    def _run(
        self, credential: RemoteCredential, command: RemoteCommand, stage: str
    ) -> str:
        try:
            return self.executor.run(credential, command)
        except RemoteExecutionError as e:
            raise SetupError(credential.address, stage, e.message) from e
