"""Value types produced while a deployment runs."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, ConfigDict, Field

from rollout.models.deployment import EnvValue

if TYPE_CHECKING:
    from rollout.lib.errors import HostDeploymentError


class DeploymentStage(str, Enum):
    """States of the single-host deployment pipeline, in execution order."""

    ALLOCATE_RELEASE = "allocate_release"
    CREATE_DIRECTORY = "create_directory"
    SYNC = "sync"
    SETUP_RUNTIME = "setup_runtime"
    INSTALL_DEPS = "install_deps"
    BUILD = "build"
    BEFORE_HOOKS = "before_hooks"
    CUTOVER = "cutover"
    START_SERVICES = "start_services"
    AFTER_HOOKS = "after_hooks"
    PRUNE_OLD_RELEASES = "prune_old_releases"
    DONE = "done"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        """Whether the pipeline stops in this state."""
        return self in (DeploymentStage.DONE, DeploymentStage.FAILED)


PIPELINE_STAGES: tuple[DeploymentStage, ...] = tuple(
    stage for stage in DeploymentStage if not stage.is_terminal
)


@dataclass(frozen=True)
class Release:
    """One deployed artifact version on a host.

    Attributes:
        id: Time-derived, filesystem-safe identifier
        path: Absolute path of the release directory
    """

    id: str
    path: str


class SupervisorDescriptor(BaseModel):
    """Process supervisor entry for one service.

    Attributes:
        name: Service name, the supervisor's identity for the process
        script: Absolute path of the entry script
        instances: Number of instances to run
        max_memory_restart: Memory ceiling that triggers a restart
        env: Merged environment variables
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    name: str = Field(..., description="Service name")
    script: str = Field(..., description="Absolute entry script path")
    instances: int = Field(..., ge=0, description="Instance count")
    max_memory_restart: str = Field(..., description="Memory ceiling")
    env: dict[str, EnvValue] = Field(default_factory=dict, description="Environment")

    def to_ecosystem(self) -> dict[str, Any]:
        """Return the pm2 ecosystem document describing this service."""
        return {
            "apps": [
                {
                    "name": self.name,
                    "script": self.script,
                    "instances": self.instances,
                    "max_memory_restart": self.max_memory_restart,
                    "env": dict(self.env),
                }
            ]
        }


@dataclass
class HostResult:
    """Outcome of one host pipeline.

    Attributes:
        host: Host address
        role: Cluster role, if any
        release: Release allocated for the run
        completed_stages: Stages that finished without error, in order
        stage: Terminal stage (DONE or FAILED) or the stage in progress
        failed_stage: Stage that raised, when the pipeline failed
        error: The wrapped error, when the pipeline failed
    """

    host: str
    role: str | None = None
    release: Release | None = None
    completed_stages: list[DeploymentStage] = field(default_factory=list)
    stage: DeploymentStage = DeploymentStage.ALLOCATE_RELEASE
    failed_stage: DeploymentStage | None = None
    error: HostDeploymentError | None = None

    @property
    def succeeded(self) -> bool:
        """Whether the pipeline reached DONE."""
        return self.stage is DeploymentStage.DONE


@dataclass
class DeploymentReport:
    """Aggregated outcome of one deployment invocation.

    Attributes:
        target: Environment or cluster name
        kind: "environment" or "cluster"
        hosts: Per-host results
    """

    target: str
    kind: str
    hosts: list[HostResult] = field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        """Whether every host reached DONE."""
        return bool(self.hosts) and all(result.succeeded for result in self.hosts)

    @property
    def failed_hosts(self) -> list[str]:
        """Hosts whose pipeline ended in FAILED."""
        return [result.host for result in self.hosts if not result.succeeded]
