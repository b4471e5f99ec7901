"""Default values for locating and generating the deployment configuration."""

# Conventional configuration file, resolved against the working directory
DEFAULT_CONFIG_FILENAME = "rollout.deploy.yaml"

# Environment variable that overrides the configuration path
CONFIG_PATH_ENV_VAR = "ROLLOUT_CONFIG"

# Application name used by `rollout deploy init` when none is given
DEFAULT_APP_NAME = "my-app"

# Patterns never mirrored to a release directory
DEFAULT_SYNC_EXCLUDES: tuple[str, ...] = ("node_modules", ".git", "dist", "*.log")
