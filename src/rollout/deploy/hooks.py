"""Operator-supplied lifecycle hooks."""

from __future__ import annotations

from collections.abc import Sequence

from rollout.deploy.remote import RemoteCommandExecutor
from rollout.deploy.runtime import nvm_prelude
from rollout.lib.errors import HookError, RemoteExecutionError
from rollout.lib.logging_config import get_logger
from rollout.models.deployment import DeploymentDefaults, RemoteCredential

logger = get_logger(__name__)


class HookRunner:
    """Runs hook commands, in order, in a release's runtime context."""

    def __init__(
        self, executor: RemoteCommandExecutor, defaults: DeploymentDefaults
    ) -> None:
        """Initialize with the executor and the shared deployment defaults."""
        self.executor = executor
        self.defaults = defaults

    def run(
        self,
        credential: RemoteCredential,
        working_path: str,
        commands: Sequence[str],
        phase: str = "hooks",
    ) -> None:
        """Run each hook command in working_path with the runtime selected.

        Hooks are operator-authored shell and run as written. The first
        failing hook stops the phase.

        Args:
            credential: Target host
            working_path: Directory the hooks run in
            commands: Hook commands in execution order
            phase: Lifecycle phase name used in logs and errors

        Raises:
            HookError: Naming the first command that failed
        """
        if not commands:
            return

        logger.info(f"[{credential.address}] Running {len(commands)} {phase} hook(s)")
        for hook in commands:
            logger.info(f"[{credential.address}] hook: {hook}")
            command = nvm_prelude(self.defaults, cwd=working_path).then_script(hook)
            try:
                self.executor.run(credential, command)
            except RemoteExecutionError as e:
                raise HookError(credential.address, phase, hook, e.message) from e

        logger.info(f"[{credential.address}] {phase} hooks completed")
