"""Rollout - Release-based deployments of Node.js applications over SSH.

Rollout mirrors a project into a fresh timestamped release directory on each
host, builds it there and switches a ``current`` symlink atomically, so a
failed deployment never affects the live release.

Main features:
- Named environments and multi-host clusters in one YAML file
- Runtime selection through nvm, process supervision through pm2
- Parallel cluster deployments with per-host failure reporting
- Bounded release history with automatic pruning
"""

from rollout.config.loader import ConfigLoader, load_deployment_config
from rollout.deploy.orchestrator import DeploymentOrchestrator
from rollout.lib.errors import ConfigError, DeploymentError, RolloutError

__version__ = "0.1.0"

__all__ = [
    "__version__",
    "ConfigLoader",
    "ConfigError",
    "DeploymentError",
    "DeploymentOrchestrator",
    "RolloutError",
    "load_deployment_config",
]
