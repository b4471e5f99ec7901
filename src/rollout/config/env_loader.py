"""Environment variable substitution for configuration files.

Supports ``${VAR}`` and ``${VAR:-default}`` references anywhere in the raw
configuration text. ``$$`` escapes a literal dollar sign.
"""

import os
import re
from collections.abc import Mapping

from rollout.lib.errors import ConfigError

_ENV_PATTERN = re.compile(
    r"\$\$|\$\{(?P<name>[A-Za-z_][A-Za-z0-9_]*)(?::-(?P<default>[^}]*))?\}"
)


def get_env_var(name: str, default: str | None = None) -> str | None:
    """Return an environment variable, or default when unset."""
    return os.environ.get(name, default)


def substitute_env_vars(text: str, env: Mapping[str, str] | None = None) -> str:
    """Replace ${VAR} references in text with environment values.

    Args:
        text: Raw configuration text
        env: Mapping to read from (defaults to os.environ)

    Returns:
        Text with every reference substituted

    Raises:
        ConfigError: If a referenced variable is unset and has no default
    """
    source = os.environ if env is None else env
    missing: list[str] = []

    def _replace(match: re.Match[str]) -> str:
        if match.group(0) == "$$":
            return "$"
        name = match.group("name")
        if name in source:
            return source[name]
        default = match.group("default")
        if default is not None:
            return default
        missing.append(name)
        return match.group(0)

    result = _ENV_PATTERN.sub(_replace, text)
    if missing:
        raise ConfigError(
            "env_substitution",
            "Environment variable(s) not set: " + ", ".join(sorted(set(missing))),
        )
    return result
