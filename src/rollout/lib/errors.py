"""Custom exception hierarchy for Rollout configuration and deployments."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from rollout.models.release import DeploymentReport


class RolloutError(Exception):
    """Base exception for all Rollout errors.

    All Rollout-specific exceptions inherit from this class, enabling
    centralized exception handling in the CLI.
    """

    pass


class ConfigError(RolloutError):
    """Exception raised for configuration errors.

    Raised when the deployment configuration cannot be found, parsed or
    validated, and when a deployment target name is unknown. Always raised
    before any remote side effect happens.

    Attributes:
        field: The configuration field that caused the error
        message: Human-readable error message describing the issue
    """

    def __init__(self, field: str, message: str) -> None:
        """Initialize ConfigError with field and message.

        Args:
            field: Configuration field name where error occurred
            message: Descriptive error message
        """
        self.field = field
        self.message = message
        super().__init__(f"Configuration error in '{field}': {message}")


class DeploymentError(RolloutError):
    """Base exception for failures during a deployment run.

    Attributes:
        operation: Deployment operation that failed (e.g. "sync", "cutover")
        message: Human-readable error message
        host: Host the operation targeted, if any
    """

    def __init__(self, operation: str, message: str, host: str | None = None) -> None:
        """Create a deployment error with operation context."""
        self.operation = operation
        self.message = message
        self.host = host
        prefix = f"[{host}] " if host else ""
        super().__init__(f"{prefix}{operation} failed: {message}")


class RemoteExecutionError(DeploymentError):
    """Exception raised when a remote command cannot run or exits non-zero.

    The underlying transport exception, when there is one, is chained as
    ``__cause__``.

    Attributes:
        command: Rendered command line that was sent to the host
        exit_status: Remote exit status, or None if the command never ran
        stderr: Captured error stream output
    """

    def __init__(
        self,
        host: str,
        command: str,
        message: str,
        exit_status: int | None = None,
        stderr: str = "",
    ) -> None:
        """Create a remote execution error."""
        self.command = command
        self.exit_status = exit_status
        self.stderr = stderr
        detail = message
        if stderr:
            detail = f"{message}\n{stderr.strip()}"
        super().__init__("remote command", detail, host=host)


class SyncError(DeploymentError):
    """Exception raised when mirroring the project tree to a host fails."""

    def __init__(self, host: str, message: str) -> None:
        """Create a sync error for a host."""
        super().__init__("sync", message, host=host)


class SetupError(DeploymentError):
    """Exception raised when runtime setup, install or build fails.

    Attributes:
        stage: Setup step that failed (runtime, install, build)
    """

    def __init__(self, host: str, stage: str, message: str) -> None:
        """Create a setup error naming the failing step."""
        self.stage = stage
        super().__init__(f"setup ({stage})", message, host=host)


class HookError(DeploymentError):
    """Exception raised when an operator-supplied hook command fails.

    Attributes:
        phase: Lifecycle phase of the hook (before_deploy, after_deploy)
        command: The hook command that failed
    """

    def __init__(self, host: str, phase: str, command: str, message: str) -> None:
        """Create a hook error naming the offending command."""
        self.phase = phase
        self.command = command
        super().__init__(
            f"{phase} hook", f"command '{command}' failed: {message}", host=host
        )


class HostDeploymentError(DeploymentError):
    """Exception raised when a host pipeline stops at a stage.

    Wraps the step-level error with the host identity and stage name.

    Attributes:
        stage: Name of the stage that failed
        cause: The step-level exception
    """

    def __init__(self, host: str, stage: str, cause: Exception) -> None:
        """Wrap a step error with host and stage context."""
        self.stage = stage
        self.cause = cause
        reason = cause.message if isinstance(cause, DeploymentError) else str(cause)
        super().__init__(f"stage '{stage}'", reason, host=host)


class ClusterDeploymentError(DeploymentError):
    """Exception raised when one or more hosts of a cluster failed.

    Raised only after every host pipeline reached a terminal state.

    Attributes:
        cluster: Cluster name
        failures: Host pipeline errors keyed by host
        report: Full deployment report, successful hosts included
    """

    def __init__(
        self,
        cluster: str,
        failures: dict[str, HostDeploymentError],
        report: DeploymentReport | None = None,
    ) -> None:
        """Create a cluster error enumerating the failed hosts."""
        self.cluster = cluster
        self.failures = failures
        self.report = report
        hosts = ", ".join(failures)
        lines = [f"{len(failures)} host(s) failed: {hosts}"]
        for host, error in failures.items():
            lines.append(f"  {host}: {error.stage}: {error.message}")
        super().__init__(f"cluster '{cluster}'", "\n".join(lines))
