"""Tests for environment variable substitution."""

import pytest

from rollout.config.env_loader import get_env_var, substitute_env_vars
from rollout.lib.errors import ConfigError


class TestSubstituteEnvVars:
    """Tests for substitute_env_vars."""

    def test_replaces_reference(self) -> None:
        """Test plain ${VAR} substitution."""
        result = substitute_env_vars("host: ${HOST}", env={"HOST": "web1"})
        assert result == "host: web1"

    def test_uses_default_when_unset(self) -> None:
        """Test ${VAR:-default} when the variable is unset."""
        assert substitute_env_vars("${PORT:-22}", env={}) == "22"

    def test_set_value_overrides_default(self) -> None:
        """Test that a set variable wins over its default."""
        assert substitute_env_vars("${PORT:-22}", env={"PORT": "2222"}) == "2222"

    def test_empty_default(self) -> None:
        """Test an empty default."""
        assert substitute_env_vars("x${SUFFIX:-}", env={}) == "x"

    def test_double_dollar_escapes(self) -> None:
        """Test that $$ produces a literal dollar sign."""
        text = "echo $${HOME}"
        assert substitute_env_vars(text, env={"HOME": "/root"}) == "echo ${HOME}"

    def test_missing_variables_are_all_reported(self) -> None:
        """Test that every missing variable is named once."""
        with pytest.raises(ConfigError) as exc_info:
            substitute_env_vars("${B} ${A} ${B}", env={})
        assert exc_info.value.field == "env_substitution"
        assert exc_info.value.message.endswith("A, B")

    def test_text_without_references_is_unchanged(self) -> None:
        """Test that plain text is returned as is."""
        text = "build_command: npm run build\n"
        assert substitute_env_vars(text, env={}) == text


class TestGetEnvVar:
    """Tests for get_env_var."""

    def test_returns_default_when_unset(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test default for unset variables."""
        monkeypatch.delenv("ROLLOUT_TEST_VALUE", raising=False)
        assert get_env_var("ROLLOUT_TEST_VALUE", "fallback") == "fallback"

    def test_returns_value(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test reading a set variable."""
        monkeypatch.setenv("ROLLOUT_TEST_VALUE", "set")
        assert get_env_var("ROLLOUT_TEST_VALUE") == "set"
