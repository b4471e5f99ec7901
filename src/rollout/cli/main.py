"""Entry point for the rollout command line interface."""

import click

from rollout import __version__
from rollout.cli.commands.deploy import deploy


@click.group()
@click.version_option(__version__, prog_name="rollout")
def cli() -> None:
    """Rollout - release-based deployments over SSH.

    Run 'rollout deploy init' to create a configuration, then
    'rollout deploy run <environment-or-cluster>' to deploy.
    """


cli.add_command(deploy)


def main() -> None:
    """Run the rollout CLI."""
    cli()


if __name__ == "__main__":
    main()
