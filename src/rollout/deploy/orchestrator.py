"""Deployment orchestration for environments and clusters.

A single host is deployed by a strictly ordered pipeline of stages (see
DeploymentStage). A cluster runs one such pipeline per host concurrently;
hosts never share mutable state except the executor's connection cache.
"""

from __future__ import annotations

import posixpath
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass

from rollout.deploy.hooks import HookRunner
from rollout.deploy.releases import ReleaseManager
from rollout.deploy.remote import RemoteCommandExecutor
from rollout.deploy.runtime import RuntimeEnvironmentSetup
from rollout.deploy.services import ServiceManager
from rollout.deploy.sync import FileSynchronizer
from rollout.lib.errors import (
    ClusterDeploymentError,
    ConfigError,
    HostDeploymentError,
)
from rollout.lib.logging_config import get_logger
from rollout.models.deployment import (
    DeploymentConfig,
    EnvironmentProfile,
    ReleaseLayout,
    RemoteCredential,
    ServiceSpec,
)
from rollout.models.release import (
    DeploymentReport,
    DeploymentStage,
    HostResult,
)

logger = get_logger(__name__)

StageCallback = Callable[[str, DeploymentStage], None]

# Supervisor descriptors live outside the releases so they survive pruning
SUPERVISOR_DIR = "supervisor"


@dataclass(frozen=True)
class HostTarget:
    """One host to deploy, with its synthesized environment profile."""

    profile: EnvironmentProfile
    role: str | None = None

    @property
    def address(self) -> str:
        """Address of the host."""
        return self.profile.ssh.address


class DeploymentOrchestrator:
    """Runs deployments described by a DeploymentConfig.

    Example:
        >>> config = load_deployment_config()
        >>> with DeploymentOrchestrator(config) as orchestrator:
        ...     report = orchestrator.deploy("production")
    """

    def __init__(
        self,
        config: DeploymentConfig,
        *,
        executor: RemoteCommandExecutor | None = None,
        synchronizer: FileSynchronizer | None = None,
        on_stage: StageCallback | None = None,
        max_workers: int | None = None,
    ) -> None:
        """Initialize the orchestrator.

        Args:
            config: Validated deployment configuration
            executor: Remote command executor (one is created if omitted)
            synchronizer: File synchronizer (one is created if omitted)
            on_stage: Called with (host, stage) on every stage transition;
                in cluster mode it is called from worker threads
            max_workers: Upper bound on concurrent host pipelines
                (defaults to one worker per host)
        """
        defaults = config.defaults
        self.config = config
        self.on_stage = on_stage
        self.max_workers = max_workers

        self._owns_executor = executor is None
        self.executor = executor or RemoteCommandExecutor(
            command_timeout=defaults.command_timeout,
            connect_timeout=defaults.connect_timeout,
        )
        self.synchronizer = synchronizer or FileSynchronizer(
            extra_excludes=defaults.sync_excludes,
            timeout=defaults.command_timeout,
            connect_timeout=defaults.connect_timeout,
        )
        self.releases = ReleaseManager(self.executor)
        self.runtime = RuntimeEnvironmentSetup(self.executor, defaults)
        self.services = ServiceManager(self.executor, defaults)
        self.hooks = HookRunner(self.executor, defaults)

    def __enter__(self) -> DeploymentOrchestrator:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def close(self) -> None:
        """Close the executor if this orchestrator created it."""
        if self._owns_executor:
            self.executor.close()

    def deploy(self, name: str) -> DeploymentReport:
        """Deploy a named environment or cluster.

        Args:
            name: Environment or cluster name

        Returns:
            DeploymentReport in which every host reached DONE

        Raises:
            ConfigError: If the name is unknown (before any remote command)
            HostDeploymentError: If an environment deployment failed
            ClusterDeploymentError: If any host of a cluster failed
        """
        if name in self.config.environments:
            return self.deploy_environment(name)
        if name in self.config.clusters:
            return self.deploy_cluster(name)
        raise ConfigError("target", self._unknown_target_message(name))

    def deploy_environment(self, name: str) -> DeploymentReport:
        """Deploy a single-host environment.

        Raises:
            ConfigError: If the environment does not exist
            HostDeploymentError: If the host pipeline failed
        """
        profile = self.config.environments.get(name)
        if profile is None:
            raise ConfigError("target", self._unknown_target_message(name))

        logger.info(f"Deploying environment '{name}' to {profile.ssh.address}")
        report = DeploymentReport(target=name, kind="environment")
        result = self._run_host(HostTarget(profile=profile))
        report.hosts.append(result)

        if result.error is not None:
            raise result.error
        logger.info(f"Environment '{name}' deployed")
        return report

    def deploy_cluster(self, name: str) -> DeploymentReport:
        """Deploy every host of a cluster concurrently.

        A failing host never cancels the others. The call returns only after
        every host pipeline reached DONE or FAILED; successful hosts are not
        rolled back when another host fails.

        Raises:
            ConfigError: If the cluster or a role mapping is invalid
            ClusterDeploymentError: Naming every failed host
        """
        targets = self.build_host_profiles(name)
        workers = self.max_workers or len(targets)
        logger.info(
            f"Deploying cluster '{name}' to {len(targets)} host(s) "
            f"with {workers} worker(s)"
        )

        report = DeploymentReport(target=name, kind="cluster")
        with ThreadPoolExecutor(
            max_workers=workers, thread_name_prefix=f"rollout-{name}"
        ) as pool:
            futures = [pool.submit(self._run_host, target) for target in targets]
            report.hosts = [future.result() for future in futures]

        failures: dict[str, HostDeploymentError] = {}
        for result in report.hosts:
            if result.error is not None:
                failures[result.host] = result.error

        if failures:
            logger.error(
                f"Cluster '{name}': {len(failures)} of {len(report.hosts)} "
                "host(s) failed"
            )
            raise ClusterDeploymentError(name, failures, report)

        logger.info(f"Cluster '{name}' deployed to {len(report.hosts)} host(s)")
        return report

    def resolve_services_for_role(
        self, cluster_name: str, role: str | None
    ) -> list[ServiceSpec]:
        """Select the services a cluster host runs.

        A host without a role, or a cluster without a role map, runs the full
        service catalog. Otherwise the host runs exactly the services mapped
        to its role, in the order they are listed.

        Raises:
            ConfigError: If the role is not mapped or names an unknown service
        """
        cluster = self.config.clusters[cluster_name]
        catalog = self.config.catalog_for(cluster_name).services
        if role is None or not cluster.services_by_role:
            return list(catalog)

        field = f"clusters.{cluster_name}.services_by_role"
        if role not in cluster.services_by_role:
            raise ConfigError(field, f"No services declared for role '{role}'")

        by_name = {service.name: service for service in catalog}
        names = cluster.services_by_role[role]
        unknown = [n for n in names if n not in by_name]
        if unknown:
            raise ConfigError(
                field,
                f"Role '{role}' references unknown service(s): {', '.join(unknown)}",
            )
        return [by_name[n] for n in names]

    def build_host_profiles(self, cluster_name: str) -> list[HostTarget]:
        """Synthesize one environment profile per cluster host.

        Every host is resolved before any is deployed, so configuration
        errors surface without remote side effects.

        Raises:
            ConfigError: If the cluster is unknown or a role cannot be resolved
        """
        cluster = self.config.clusters.get(cluster_name)
        if cluster is None:
            raise ConfigError("target", self._unknown_target_message(cluster_name))

        catalog = self.config.catalog_for(cluster_name)
        paths = cluster.paths or ReleaseLayout.standard(cluster_name)

        targets = []
        for server in cluster.servers:
            credential = RemoteCredential(**server.model_dump(exclude={"role"}))
            profile = EnvironmentProfile(
                ssh=credential,
                paths=paths,
                services=self.resolve_services_for_role(cluster_name, server.role),
                hooks=catalog.hooks,
            )
            targets.append(HostTarget(profile=profile, role=server.role))
        return targets

    def _run_host(self, target: HostTarget) -> HostResult:
        """Run the stage pipeline for one host.

        Never raises for step failures: the error is wrapped in a
        HostDeploymentError and recorded on the result.
        """
        profile = target.profile
        credential = profile.ssh
        paths = profile.paths
        defaults = self.config.defaults
        result = HostResult(host=credential.address, role=target.role)

        def release_path() -> str:
            if result.release is None:
                raise RuntimeError("Release path requested before allocation")
            return result.release.path

        def allocate_release() -> None:
            release_id = self.releases.allocate_release_id()
            result.release = self.releases.release_for(paths, release_id)
            logger.info(f"[{result.host}] Allocated release {release_id}")

        def create_directory() -> None:
            self.releases.prepare_layout(credential, paths)
            self.releases.create_release_directory(credential, release_path())

        stages: list[tuple[DeploymentStage, Callable[[], object]]] = [
            (DeploymentStage.ALLOCATE_RELEASE, allocate_release),
            (DeploymentStage.CREATE_DIRECTORY, create_directory),
            (
                DeploymentStage.SYNC,
                lambda: self.synchronizer.sync(credential, release_path()),
            ),
            (
                DeploymentStage.SETUP_RUNTIME,
                lambda: self.runtime.setup_runtime(credential, release_path()),
            ),
            (
                DeploymentStage.INSTALL_DEPS,
                lambda: self.runtime.install_dependencies(credential, release_path()),
            ),
            (
                DeploymentStage.BUILD,
                lambda: self.runtime.build(credential, release_path()),
            ),
            (
                DeploymentStage.BEFORE_HOOKS,
                lambda: self.hooks.run(
                    credential,
                    release_path(),
                    profile.hooks.before_deploy,
                    "before_deploy",
                ),
            ),
            (
                DeploymentStage.CUTOVER,
                lambda: self.releases.cutover(
                    credential, release_path(), paths.current
                ),
            ),
            (
                DeploymentStage.START_SERVICES,
                lambda: self.services.apply_all(
                    credential,
                    profile.services,
                    paths.current,
                    posixpath.join(paths.shared, SUPERVISOR_DIR),
                ),
            ),
            (
                DeploymentStage.AFTER_HOOKS,
                lambda: self.hooks.run(
                    credential,
                    paths.current,
                    profile.hooks.after_deploy,
                    "after_deploy",
                ),
            ),
            (
                DeploymentStage.PRUNE_OLD_RELEASES,
                lambda: self.releases.prune_releases(
                    credential,
                    paths.releases,
                    keep=defaults.keep_releases,
                    current_path=paths.current,
                ),
            ),
        ]

        for stage, step in stages:
            self._enter(result, stage)
            try:
                step()
            except Exception as e:
                error = HostDeploymentError(result.host, stage.value, e)
                error.__cause__ = e
                result.failed_stage = stage
                result.error = error
                logger.error(f"[{result.host}] Failed at {stage.value}: {e}")
                if result.release is not None:
                    logger.warning(
                        f"[{result.host}] Release directory {result.release.path} "
                        "was left in place"
                    )
                self._enter(result, DeploymentStage.FAILED)
                return result
            result.completed_stages.append(stage)

        self._enter(result, DeploymentStage.DONE)
        release_id = result.release.id if result.release else "?"
        logger.info(f"[{result.host}] Deployed release {release_id}")
        return result

    def _enter(self, result: HostResult, stage: DeploymentStage) -> None:
        result.stage = stage
        logger.debug(f"[{result.host}] -> {stage.value}")
        if self.on_stage is not None:
            self.on_stage(result.host, stage)

    def _unknown_target_message(self, name: str) -> str:
        environments, clusters = self.config.target_names()
        return (
            f"Unknown environment or cluster '{name}'. "
            f"Available environments: {', '.join(environments) or '(none)'}. "
            f"Available clusters: {', '.join(clusters) or '(none)'}."
        )
