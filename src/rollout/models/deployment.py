"""Pydantic models for deployment configuration.

This module defines the configuration schema for Rollout deployments:
SSH credentials, the on-disk release layout, services managed by the
process supervisor, named environments and multi-host clusters.
"""

import posixpath
import re
from typing import Annotated

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)

# Regex patterns for validation
SERVICE_NAME_PATTERN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]*$")
MEMORY_PATTERN = re.compile(r"^\d+[KMG]?$")

EnvValue = str | int | float | bool


class RemoteCredential(BaseModel):
    """How to reach one host over SSH.

    Attributes:
        host: Hostname or IP address
        username: Remote login user
        key_file: Path to a private key (``~`` is expanded on use)
        password: Password, when key authentication is not available
        port: SSH port
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    host: str = Field(..., min_length=1, description="Hostname or IP address")
    username: str = Field(..., min_length=1, description="Remote login user")
    key_file: str | None = Field(default=None, description="Private key path")
    password: str | None = Field(default=None, description="Login password")
    port: Annotated[int, Field(ge=1, le=65535)] = Field(
        default=22, description="SSH port"
    )

    @model_validator(mode="after")
    def validate_auth(self) -> "RemoteCredential":
        """Validate that key_file and password are not both set."""
        if self.key_file and self.password:
            raise ValueError("Set either key_file or password, not both")
        return self

    @property
    def address(self) -> str:
        """Human-readable address used in logs and error messages."""
        if self.port != 22:
            return f"{self.username}@{self.host}:{self.port}"
        return f"{self.username}@{self.host}"


class ReleaseLayout(BaseModel):
    """Filesystem convention on the remote host.

    Attributes:
        deploy_to: Application root directory
        current: Symlink that points at the live release
        releases: Directory holding one subdirectory per release
        shared: Files shared between releases
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    deploy_to: str = Field(..., description="Application root directory")
    current: str = Field(..., description="Symlink to the live release")
    releases: str = Field(..., description="Directory of release history")
    shared: str = Field(..., description="Files shared between releases")

    @field_validator("deploy_to", "current", "releases", "shared")
    @classmethod
    def validate_absolute(cls, v: str) -> str:
        """Validate that layout paths are absolute and normalized."""
        if not v.startswith("/"):
            raise ValueError(f"Deployment path must be absolute: {v}")
        normalized = posixpath.normpath(v)
        if normalized == "/":
            raise ValueError("Deployment path cannot be the filesystem root")
        return normalized

    @classmethod
    def standard(cls, app_name: str) -> "ReleaseLayout":
        """Return the /var/www/<app> layout."""
        return cls._under(f"/var/www/{app_name}")

    @classmethod
    def home(cls, app_name: str, username: str = "deploy") -> "ReleaseLayout":
        """Return the /home/<user>/<app> layout."""
        return cls._under(f"/home/{username}/{app_name}")

    @classmethod
    def opt(cls, app_name: str) -> "ReleaseLayout":
        """Return the /opt/<app> layout."""
        return cls._under(f"/opt/{app_name}")

    @classmethod
    def _under(cls, root: str) -> "ReleaseLayout":
        return cls(
            deploy_to=root,
            current=f"{root}/current",
            releases=f"{root}/releases",
            shared=f"{root}/shared",
        )


class ServiceSpec(BaseModel):
    """One long-running process managed by the supervisor.

    Attributes:
        name: Service name, unique within an environment
        script: Entry script relative to the release root
        port: Port the service listens on
        instances: Instance count override
        env: Environment variable overrides
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    name: str = Field(..., description="Service name")
    script: str = Field(..., min_length=1, description="Entry script path")
    port: Annotated[int, Field(ge=1, le=65535)] | None = Field(
        default=None, description="Listening port"
    )
    instances: Annotated[int, Field(ge=0)] | None = Field(
        default=None, description="Instance count override"
    )
    env: dict[str, EnvValue] = Field(
        default_factory=dict, description="Environment variable overrides"
    )

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        """Validate service name pattern."""
        if not SERVICE_NAME_PATTERN.match(v):
            raise ValueError(
                f"Invalid service name: {v}. "
                "Must contain only letters, numbers, '.', '_', '-'"
            )
        return v

    @field_validator("script")
    @classmethod
    def validate_script(cls, v: str) -> str:
        """Validate that the script is relative to the release root."""
        if v.startswith("/"):
            raise ValueError(f"Service script must be relative: {v}")
        return v


class SupervisorDefaults(BaseModel):
    """Process supervisor policy shared by every service.

    Attributes:
        instances: Default instance count (0 means one per CPU core)
        max_memory_restart: Memory ceiling that triggers a restart (e.g. 500M)
        env: Base environment variables
    """

    model_config = ConfigDict(extra="forbid")

    instances: Annotated[int, Field(ge=0)] = Field(
        default=1, description="Default instance count"
    )
    max_memory_restart: str = Field(default="500M", description="Memory ceiling")
    env: dict[str, EnvValue] = Field(
        default_factory=dict, description="Base environment variables"
    )

    @field_validator("max_memory_restart")
    @classmethod
    def validate_memory(cls, v: str) -> str:
        """Validate memory format (e.g. 500M, 1G)."""
        if not MEMORY_PATTERN.match(v):
            raise ValueError(
                f"Invalid memory format: {v}. Must be a number optionally "
                "followed by K, M or G."
            )
        return v

    @classmethod
    def single(cls) -> "SupervisorDefaults":
        """Single instance configuration for simple applications."""
        return cls(
            instances=1, max_memory_restart="500M", env={"NODE_ENV": "production"}
        )

    @classmethod
    def cluster(cls, instances: int = 0) -> "SupervisorDefaults":
        """Cluster configuration for CPU-bound applications."""
        return cls(
            instances=instances,
            max_memory_restart="1G",
            env={"NODE_ENV": "production"},
        )

    @classmethod
    def memory_optimized(cls) -> "SupervisorDefaults":
        """Configuration for memory-intensive applications."""
        return cls(
            instances=1,
            max_memory_restart="2G",
            env={
                "NODE_ENV": "production",
                "NODE_OPTIONS": "--max-old-space-size=2048",
            },
        )


class HookConfig(BaseModel):
    """Operator-supplied shell commands run around the cutover."""

    model_config = ConfigDict(extra="forbid")

    before_deploy: list[str] = Field(
        default_factory=list, description="Commands run before the cutover"
    )
    after_deploy: list[str] = Field(
        default_factory=list, description="Commands run after services start"
    )


class EnvironmentProfile(BaseModel):
    """A named deployment target such as production or staging.

    Attributes:
        ssh: Credentials for the target host
        paths: Release layout on the host
        services: Services to run, in start order
        hooks: Lifecycle hooks
    """

    model_config = ConfigDict(extra="forbid")

    ssh: RemoteCredential = Field(..., description="SSH credentials")
    paths: ReleaseLayout = Field(..., description="Release layout")
    services: list[ServiceSpec] = Field(
        default_factory=list, description="Services to run"
    )
    hooks: HookConfig = Field(default_factory=HookConfig, description="Hooks")

    @field_validator("services")
    @classmethod
    def validate_unique_services(cls, v: list[ServiceSpec]) -> list[ServiceSpec]:
        """Validate that service names are unique."""
        seen: set[str] = set()
        for service in v:
            if service.name in seen:
                raise ValueError(f"Duplicate service name: {service.name}")
            seen.add(service.name)
        return v


class ClusterServer(RemoteCredential):
    """A host in a cluster, optionally labelled with a role."""

    role: str | None = Field(default=None, description="Role label")


class ClusterProfile(BaseModel):
    """A named set of hosts deployed together.

    Attributes:
        servers: Hosts in the cluster
        services_by_role: Service names each role runs
        environment: Environment supplying the service catalog and hooks
        paths: Release layout (defaults to /var/www/<cluster name>)
    """

    model_config = ConfigDict(extra="forbid")

    servers: list[ClusterServer] = Field(..., min_length=1, description="Hosts")
    services_by_role: dict[str, list[str]] | None = Field(
        default=None, description="Service names per role"
    )
    environment: str | None = Field(
        default=None, description="Environment supplying the service catalog"
    )
    paths: ReleaseLayout | None = Field(default=None, description="Release layout")

    @field_validator("servers")
    @classmethod
    def validate_unique_hosts(cls, v: list[ClusterServer]) -> list[ClusterServer]:
        """Validate that each host appears once."""
        seen: set[str] = set()
        for server in v:
            if server.address in seen:
                raise ValueError(f"Duplicate server: {server.address}")
            seen.add(server.address)
        return v


class DeploymentDefaults(BaseModel):
    """Settings shared by every environment and cluster.

    Attributes:
        runtime_version: Node.js version installed through nvm
        build_command: Command that builds the application
        install_command: Command that installs dependencies
        supervisor: Process supervisor defaults
        nvm_dir: nvm installation directory on the hosts
        keep_releases: Number of releases retained by the prune step
        command_timeout: Upper bound in seconds for one remote command
        connect_timeout: SSH connection timeout in seconds
        sync_excludes: Extra patterns excluded from the file sync
    """

    model_config = ConfigDict(extra="forbid")

    runtime_version: str = Field(default="20", description="Node.js version")
    build_command: str = Field(default="npm run build", description="Build command")
    install_command: str = Field(
        default="npm ci --production", description="Dependency install command"
    )
    supervisor: SupervisorDefaults = Field(
        default_factory=SupervisorDefaults, description="Supervisor defaults"
    )
    nvm_dir: str = Field(default="~/.nvm", description="nvm directory")
    keep_releases: Annotated[int, Field(ge=1)] = Field(
        default=5, description="Releases retained by the prune step"
    )
    command_timeout: Annotated[float, Field(gt=0)] = Field(
        default=600, description="Per remote command timeout in seconds"
    )
    connect_timeout: Annotated[float, Field(gt=0)] = Field(
        default=30, description="SSH connection timeout in seconds"
    )
    sync_excludes: list[str] = Field(
        default_factory=list, description="Extra file sync exclude patterns"
    )


class DeploymentConfig(BaseModel):
    """Top-level deployment configuration.

    Attributes:
        defaults: Settings shared by every target
        environments: Single-host targets keyed by name
        clusters: Multi-host targets keyed by name
    """

    model_config = ConfigDict(extra="forbid")

    defaults: DeploymentDefaults = Field(
        default_factory=DeploymentDefaults, description="Shared settings"
    )
    environments: dict[str, EnvironmentProfile] = Field(
        default_factory=dict, description="Environments keyed by name"
    )
    clusters: dict[str, ClusterProfile] = Field(
        default_factory=dict, description="Clusters keyed by name"
    )

    @model_validator(mode="after")
    def validate_targets(self) -> "DeploymentConfig":
        """Validate target names and cluster service references."""
        shared = set(self.environments) & set(self.clusters)
        if shared:
            raise ValueError(
                "Names used by both an environment and a cluster: "
                + ", ".join(sorted(shared))
            )

        for cluster_name, cluster in self.clusters.items():
            if cluster.environment and cluster.environment not in self.environments:
                raise ValueError(
                    f"Cluster '{cluster_name}' references unknown environment "
                    f"'{cluster.environment}'"
                )
            if not self.environments:
                raise ValueError(
                    f"Cluster '{cluster_name}' needs an environment to provide "
                    "its service catalog"
                )
            if not cluster.services_by_role:
                continue
            catalog = {s.name for s in self.catalog_for(cluster_name).services}
            for role, names in cluster.services_by_role.items():
                unknown = [name for name in names if name not in catalog]
                if unknown:
                    raise ValueError(
                        f"Cluster '{cluster_name}' role '{role}' references "
                        f"unknown service(s): {', '.join(unknown)}"
                    )
        return self

    def catalog_for(self, cluster_name: str) -> EnvironmentProfile:
        """Return the environment that supplies a cluster's services and hooks.

        Falls back to the first declared environment when the cluster does not
        name one.
        """
        cluster = self.clusters[cluster_name]
        if cluster.environment:
            return self.environments[cluster.environment]
        return next(iter(self.environments.values()))

    def target_names(self) -> tuple[list[str], list[str]]:
        """Return (environment names, cluster names) in declaration order."""
        return list(self.environments), list(self.clusters)
