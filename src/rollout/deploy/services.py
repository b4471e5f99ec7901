"""Process supervisor (pm2) management for deployed services."""

from __future__ import annotations

import json
import posixpath
from collections.abc import Iterable

from rollout.deploy.remote import RemoteCommand, RemoteCommandExecutor
from rollout.deploy.runtime import nvm_prelude
from rollout.lib.logging_config import get_logger
from rollout.models.deployment import (
    DeploymentDefaults,
    RemoteCredential,
    ServiceSpec,
    SupervisorDefaults,
)
from rollout.models.release import SupervisorDescriptor

logger = get_logger(__name__)

DESCRIPTOR_SUFFIX = ".ecosystem.json"


def render_descriptor(
    service: ServiceSpec,
    defaults: SupervisorDefaults,
    release_root: str,
) -> SupervisorDescriptor:
    """Build the supervisor descriptor for a service.

    The environment is the supervisor defaults merged with the service's
    own variables; service keys win on conflict.

    Args:
        service: Service to describe
        defaults: Supervisor defaults shared by every service
        release_root: Absolute directory the service script is relative to

    Returns:
        SupervisorDescriptor for the service

    Example:
        >>> descriptor = render_descriptor(
        ...     ServiceSpec(name="api", script="dist/main.js", env={"PORT": 3000}),
        ...     SupervisorDefaults(env={"NODE_ENV": "production"}),
        ...     "/var/www/app/current",
        ... )
        >>> descriptor.script
        '/var/www/app/current/dist/main.js'
    """
    instances = service.instances
    if instances is None:
        instances = defaults.instances
    return SupervisorDescriptor(
        name=service.name,
        script=posixpath.join(release_root, service.script),
        instances=instances,
        max_memory_restart=defaults.max_memory_restart,
        env={**defaults.env, **service.env},
    )


class ServiceManager:
    """Writes supervisor descriptors and starts or reloads services."""

    def __init__(
        self, executor: RemoteCommandExecutor, defaults: DeploymentDefaults
    ) -> None:
        """Initialize with the executor and the shared deployment defaults."""
        self.executor = executor
        self.defaults = defaults

    def render_descriptor(
        self, service: ServiceSpec, release_root: str
    ) -> SupervisorDescriptor:
        """Build the descriptor for a service using the configured defaults."""
        return render_descriptor(service, self.defaults.supervisor, release_root)

    def descriptor_path(self, descriptor_dir: str, name: str) -> str:
        """Return where the descriptor for a service is stored on the host."""
        return posixpath.join(descriptor_dir, f"{name}{DESCRIPTOR_SUFFIX}")

    def apply(
        self,
        credential: RemoteCredential,
        descriptor: SupervisorDescriptor,
        descriptor_dir: str,
    ) -> None:
        """Upload a descriptor and start or reload the service.

        The descriptor file is overwritten on every run and pm2 matches apps
        by name, so applying the same service again reloads it in place.

        Raises:
            RemoteExecutionError: If the upload or the pm2 command fails
        """
        logger.info(f"[{credential.address}] Managing service: {descriptor.name}")
        path = self.descriptor_path(descriptor_dir, descriptor.name)
        payload = json.dumps(descriptor.to_ecosystem(), indent=2, sort_keys=True)

        self.executor.run(
            credential, RemoteCommand.argv("mkdir", "-p", "--", descriptor_dir)
        )
        self.executor.upload(credential, payload + "\n", path)

        command = nvm_prelude(self.defaults).then(
            "pm2", "startOrReload", path, "--update-env"
        )
        self.executor.run(credential, command)
        logger.info(f"[{credential.address}] Service {descriptor.name} is running")

    def apply_all(
        self,
        credential: RemoteCredential,
        services: Iterable[ServiceSpec],
        release_root: str,
        descriptor_dir: str,
    ) -> list[SupervisorDescriptor]:
        """Render and apply every service in order.

        Returns:
            The applied descriptors
        """
        applied: list[SupervisorDescriptor] = []
        for service in services:
            descriptor = self.render_descriptor(service, release_root)
            self.apply(credential, descriptor, descriptor_dir)
            applied.append(descriptor)
        if not applied:
            logger.info(f"[{credential.address}] No services to manage")
        return applied
