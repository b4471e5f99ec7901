"""Configuration loader for Rollout deployments.

This module provides the ConfigLoader class for locating, parsing and
validating the deployment configuration YAML file.
"""

import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError as PydanticValidationError

from rollout.config.defaults import CONFIG_PATH_ENV_VAR, DEFAULT_CONFIG_FILENAME
from rollout.config.env_loader import substitute_env_vars
from rollout.config.validator import flatten_pydantic_errors
from rollout.lib.errors import ConfigError
from rollout.lib.logging_config import get_logger
from rollout.models.deployment import DeploymentConfig

logger = get_logger(__name__)


def resolve_config_path(config_path: str | Path | None = None) -> Path:
    """Resolve the configuration file location.

    Resolution order:
    1. Explicit path argument
    2. ROLLOUT_CONFIG environment variable
    3. rollout.deploy.yaml in the current working directory

    Args:
        config_path: Optional explicit path

    Returns:
        Absolute path of the configuration file (which may not exist)
    """
    if config_path:
        return Path(config_path).expanduser().resolve()
    env_path = os.environ.get(CONFIG_PATH_ENV_VAR)
    if env_path:
        return Path(env_path).expanduser().resolve()
    return Path.cwd() / DEFAULT_CONFIG_FILENAME


class ConfigLoader:
    """Loads and validates deployment configuration from YAML files.

    This class handles:
    - Locating the configuration file
    - Environment variable substitution (${VAR} and ${VAR:-default})
    - Parsing YAML into Python dictionaries
    - Converting validation errors into human-readable messages
    """

    def parse_yaml(self, file_path: str | Path) -> dict[str, Any]:
        """Parse a YAML file after environment variable substitution.

        Args:
            file_path: Path to the YAML file to parse

        Returns:
            Dictionary containing parsed YAML content ({} for an empty file)

        Raises:
            ConfigError: If the file is missing, unreadable or not valid YAML
        """
        path = Path(file_path)

        if not path.exists():
            raise ConfigError(
                "config_file",
                f"Deployment configuration not found at {path}. "
                "Run 'rollout deploy init' to create it.",
            )

        try:
            raw_text = path.read_text(encoding="utf-8")
        except OSError as e:
            raise ConfigError(
                "config_file",
                f"Failed to read deployment configuration at {path}: {e}",
            ) from e

        substituted = substitute_env_vars(raw_text)

        try:
            content = yaml.safe_load(substituted)
        except yaml.YAMLError as e:
            raise ConfigError(
                "yaml_parse",
                f"Failed to parse YAML file {path}: {str(e)}",
            ) from e

        if content is None:
            return {}
        if not isinstance(content, dict):
            raise ConfigError(
                "yaml_parse",
                f"Expected a mapping at the top of {path}, "
                f"got {type(content).__name__}",
            )
        return content

    def load_deployment_config(
        self, config_path: str | Path | None = None
    ) -> DeploymentConfig:
        """Load and validate the deployment configuration.

        Args:
            config_path: Optional explicit path (see resolve_config_path)

        Returns:
            Validated DeploymentConfig instance

        Raises:
            ConfigError: If the file cannot be loaded or is invalid
        """
        path = resolve_config_path(config_path)
        logger.debug(f"Loading deployment configuration from {path}")

        content = self.parse_yaml(path)
        return self.validate(content, source=str(path))

    def validate(
        self, content: dict[str, Any], source: str = "<dict>"
    ) -> DeploymentConfig:
        """Validate raw configuration data against the DeploymentConfig schema.

        Args:
            content: Parsed configuration mapping
            source: Description of where the data came from, for messages

        Returns:
            Validated DeploymentConfig instance

        Raises:
            ConfigError: If validation fails
        """
        try:
            config = DeploymentConfig.model_validate(content)
        except PydanticValidationError as e:
            error_messages = flatten_pydantic_errors(e)
            error_text = "\n".join(error_messages)
            raise ConfigError(
                "deployment_validation",
                f"Invalid deployment configuration in {source}:\n{error_text}",
            ) from e

        environments, clusters = config.target_names()
        logger.debug(
            f"Loaded {len(environments)} environment(s) and "
            f"{len(clusters)} cluster(s) from {source}"
        )
        return config


def load_deployment_config(config_path: str | Path | None = None) -> DeploymentConfig:
    """One-call helper used by the CLI."""
    return ConfigLoader().load_deployment_config(config_path)
