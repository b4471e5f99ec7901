"""CLI commands for deploying applications with Rollout.

Implements the 'rollout deploy' command group: 'init' writes a starter
configuration and 'run' deploys a named environment or cluster.
"""

from __future__ import annotations

import sys
from collections.abc import Generator
from contextlib import contextmanager
from typing import TYPE_CHECKING

import click

from rollout.config.defaults import DEFAULT_APP_NAME
from rollout.config.loader import load_deployment_config, resolve_config_path
from rollout.deploy.orchestrator import DeploymentOrchestrator
from rollout.deploy.templates import render_config_template
from rollout.lib.errors import (
    ClusterDeploymentError,
    ConfigError,
    DeploymentError,
    HostDeploymentError,
)
from rollout.lib.logging_config import get_logger, setup_logging
from rollout.models.deployment import SERVICE_NAME_PATTERN

if TYPE_CHECKING:
    from rollout.models.deployment import DeploymentConfig
    from rollout.models.release import DeploymentReport, DeploymentStage

logger = get_logger(__name__)

EXAMPLE_RUN = "rollout deploy run production"


@contextmanager
def handle_deployment_errors(
    config: DeploymentConfig | None = None,
) -> Generator[None, None, None]:
    """Context manager for consistent error handling in deployment commands.

    Every failure exits with status 1. When the configuration was loaded, the
    available environments and clusters are listed to help pick a target.
    """
    try:
        yield
    except ConfigError as e:
        logger.error(f"Configuration error: {e}")
        click.secho("Error: Configuration error", fg="red", err=True)
        click.echo(f"  {e.message}", err=True)
        if e.field == "target" and config is not None:
            _display_targets(config)
        sys.exit(1)
    except ClusterDeploymentError as e:
        logger.error(f"Deployment error: {e}")
        click.secho(
            f"Error: Deployment to cluster '{e.cluster}' failed", fg="red", err=True
        )
        for host, error in e.failures.items():
            click.echo(f"  {host}: {error.stage}: {error.message}", err=True)
        if e.report is not None:
            succeeded = [r.host for r in e.report.hosts if r.succeeded]
            if succeeded:
                click.echo(f"  Succeeded: {', '.join(succeeded)}", err=True)
        sys.exit(1)
    except HostDeploymentError as e:
        logger.error(f"Deployment error: {e}")
        click.secho(f"Error: Deployment to {e.host} failed", fg="red", err=True)
        click.echo(f"  {e.stage}: {e.message}", err=True)
        sys.exit(1)
    except DeploymentError as e:
        logger.error(f"Deployment error: {e}")
        click.secho(f"Error: {e.operation} failed", fg="red", err=True)
        click.echo(f"  {e.message}", err=True)
        sys.exit(1)
    except Exception as e:
        logger.exception(f"Unexpected error: {e}")
        click.secho(f"Error: {e}", fg="red", err=True)
        sys.exit(1)


@click.group(name="deploy", invoke_without_command=True)
@click.pass_context
def deploy(ctx: click.Context) -> None:
    """Deploy applications to remote hosts over SSH.

    Subcommands:

        init    Create a starter deployment configuration
        run     Deploy an environment or cluster

    Example:

        rollout deploy init

        rollout deploy run production
    """
    ctx.ensure_object(dict)

    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())


@deploy.command()
@click.option(
    "--config",
    "config_path",
    type=click.Path(dir_okay=False),
    default=None,
    help="Configuration file to create (default: ./rollout.deploy.yaml)",
)
@click.option(
    "--app-name",
    type=str,
    default=DEFAULT_APP_NAME,
    show_default=True,
    help="Application name used for the remote directories",
)
@click.option(
    "--force",
    is_flag=True,
    help="Overwrite an existing configuration file",
)
def init(config_path: str | None, app_name: str, force: bool) -> None:
    """Create a starter deployment configuration.

    An existing file is left untouched unless --force is given.

    Example:

        rollout deploy init

        rollout deploy init --app-name shop-api
    """
    path = resolve_config_path(config_path)

    if path.exists() and not force:
        click.secho(f"Configuration already exists: {path}", fg="yellow")
        click.echo("Use --force to overwrite or edit the file manually.")
        return

    if not SERVICE_NAME_PATTERN.match(app_name):
        click.secho(f"Error: Invalid application name: {app_name}", fg="red", err=True)
        click.echo("  Use only letters, numbers, '.', '_' and '-'.", err=True)
        sys.exit(1)

    try:
        path.write_text(render_config_template(app_name), encoding="utf-8")
    except OSError as e:
        logger.error(f"Failed to write {path}: {e}")
        click.secho(f"Failed to create config: {e}", fg="red", err=True)
        sys.exit(1)

    click.secho(f"✓ Created deployment configuration: {path}", fg="green")
    click.echo()
    click.echo("Next steps:")
    click.echo(f"  1. Edit {path} with your server details")
    click.echo(f"  2. Run '{EXAMPLE_RUN}' to deploy")


@deploy.command()
@click.argument("name", required=False)
@click.option(
    "--config",
    "config_path",
    type=click.Path(dir_okay=False),
    default=None,
    help="Deployment configuration file (default: ./rollout.deploy.yaml)",
)
@click.option(
    "--verbose",
    "-v",
    is_flag=True,
    help="Enable verbose debug logging",
)
@click.option(
    "--quiet",
    "-q",
    is_flag=True,
    help="Suppress progress output",
)
def run(name: str | None, config_path: str | None, verbose: bool, quiet: bool) -> None:
    """Deploy an environment or cluster.

    NAME is an environment or cluster declared in the configuration.

    Example:

        rollout deploy run production

        rollout deploy run production-cluster --verbose
    """
    setup_logging(verbose=verbose, quiet=quiet)

    if not name:
        click.secho(
            "Error: Please specify an environment or cluster name", fg="red", err=True
        )
        click.echo(f"Example: {EXAMPLE_RUN}", err=True)
        sys.exit(1)

    with handle_deployment_errors():
        config = load_deployment_config(config_path)

    with handle_deployment_errors(config):
        if name not in config.environments and name not in config.clusters:
            click.secho(
                f"Error: Environment or cluster '{name}' not found in configuration",
                fg="red",
                err=True,
            )
            _display_targets(config)
            sys.exit(1)

        kind = "environment" if name in config.environments else "cluster"
        if not quiet:
            click.secho(f"Starting deployment to {kind}: {name}", fg="cyan")

        on_stage = None if quiet else _echo_stage
        with DeploymentOrchestrator(config, on_stage=on_stage) as orchestrator:
            report = orchestrator.deploy(name)

        if not quiet:
            _display_deploy_success(report)


def _echo_stage(host: str, stage: DeploymentStage) -> None:
    """Print a stage transition for a host."""
    click.echo(f"  [{host}] {stage.value.replace('_', ' ')}")


def _display_targets(config: DeploymentConfig) -> None:
    """Print the environments and clusters declared in the configuration."""
    environments, clusters = config.target_names()
    click.echo("", err=True)
    click.echo(
        f"Available environments: {', '.join(environments) or '(none)'}", err=True
    )
    click.echo(f"Available clusters: {', '.join(clusters) or '(none)'}", err=True)


def _display_deploy_success(report: DeploymentReport) -> None:
    """Display a summary of a successful deployment."""
    click.echo()
    click.secho(
        f"✓ Deployment to {report.kind} '{report.target}' completed", fg="green"
    )
    for result in report.hosts:
        release = result.release.id if result.release else "-"
        role = f" ({result.role})" if result.role else ""
        click.echo(f"  {result.host}{role}: release {release}")

