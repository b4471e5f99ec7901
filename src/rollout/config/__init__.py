"""Configuration loading and validation for Rollout deployments.

Main components:
- ConfigLoader: Load and validate rollout.deploy.yaml files
- load_deployment_config: One-call helper for CLI commands
- Environment variable substitution (${VAR_NAME} pattern)
"""

from rollout.config.env_loader import get_env_var, substitute_env_vars
from rollout.config.loader import (
    ConfigLoader,
    load_deployment_config,
    resolve_config_path,
)

__all__ = [
    "ConfigLoader",
    "get_env_var",
    "load_deployment_config",
    "resolve_config_path",
    "substitute_env_vars",
]
