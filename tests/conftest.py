"""Pytest configuration and shared fixtures for Rollout tests."""

import copy
import os
import shutil
import tempfile
import threading
from collections.abc import Generator
from pathlib import Path
from typing import Any

import pytest

from rollout.deploy.remote import RemoteCommand
from rollout.lib.errors import RemoteExecutionError, SyncError
from rollout.models.deployment import DeploymentConfig, RemoteCredential

SAMPLE_CONFIG: dict[str, Any] = {
    "defaults": {
        "runtime_version": "20",
        "keep_releases": 5,
        "supervisor": {
            "instances": 1,
            "max_memory_restart": "500M",
            "env": {"NODE_ENV": "production"},
        },
    },
    "environments": {
        "production": {
            "ssh": {
                "host": "prod.example.com",
                "username": "deploy",
                "key_file": "~/.ssh/id_rsa",
            },
            "paths": {
                "deploy_to": "/var/www/app",
                "current": "/var/www/app/current",
                "releases": "/var/www/app/releases",
                "shared": "/var/www/app/shared",
            },
            "services": [
                {
                    "name": "api",
                    "script": "dist/main.js",
                    "port": 3000,
                    "env": {"PORT": 3000},
                },
                {"name": "worker", "script": "dist/worker.js"},
            ],
            "hooks": {
                "before_deploy": ["npm run migrate"],
                "after_deploy": ["pm2 save"],
            },
        },
        "staging": {
            "ssh": {"host": "staging.example.com", "username": "deploy"},
            "paths": {
                "deploy_to": "/var/www/app-staging",
                "current": "/var/www/app-staging/current",
                "releases": "/var/www/app-staging/releases",
                "shared": "/var/www/app-staging/shared",
            },
            "services": [
                {
                    "name": "staging-api",
                    "script": "dist/main.js",
                    "env": {"NODE_ENV": "staging", "PORT": 3001},
                }
            ],
        },
    },
    "clusters": {
        "production-cluster": {
            "environment": "production",
            "servers": [
                {"host": "web1.example.com", "username": "deploy", "role": "web"},
                {"host": "web2.example.com", "username": "deploy", "role": "web"},
                {
                    "host": "worker1.example.com",
                    "username": "deploy",
                    "role": "worker",
                },
            ],
            "services_by_role": {"web": ["api"], "worker": ["worker"]},
        },
    },
}


class FakeExecutor:
    """Records remote commands instead of running them.

    Failures are injected with fail_on(); canned stdout with respond().
    """

    def __init__(self) -> None:
        self.commands: list[tuple[str, str]] = []
        self.uploads: list[tuple[str, str, str]] = []
        self.closed = False
        self._failures: list[tuple[str | None, str]] = []
        self._outputs: list[tuple[str, str]] = []
        self._lock = threading.Lock()

    def fail_on(self, substring: str, host: str | None = None) -> None:
        """Fail checked commands containing substring (on host, if given)."""
        self._failures.append((host, substring))

    def respond(self, substring: str, output: str) -> None:
        """Return output for commands containing substring."""
        self._outputs.append((substring, output))

    def run(
        self,
        credential: RemoteCredential,
        command: RemoteCommand,
        *,
        check: bool = True,
        timeout: float | None = None,
    ) -> str:
        rendered = command.render()
        with self._lock:
            self.commands.append((credential.host, rendered))
        for host, substring in self._failures:
            if check and substring in rendered and host in (None, credential.host):
                raise RemoteExecutionError(
                    credential.address,
                    rendered,
                    "Command exited with status 1",
                    exit_status=1,
                    stderr="simulated failure",
                )
        for substring, output in self._outputs:
            if substring in rendered:
                return output
        return ""

    def upload(
        self, credential: RemoteCredential, content: str, remote_path: str
    ) -> None:
        with self._lock:
            self.uploads.append((credential.host, remote_path, content))

    def close(self) -> None:
        self.closed = True

    def commands_for(self, host: str) -> list[str]:
        """Rendered commands sent to one host, in order."""
        return [rendered for target, rendered in self.commands if target == host]


class FakeSynchronizer:
    """Records file syncs; can be told to fail for a host."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, str]] = []
        self.failing_hosts: set[str] = set()
        self._lock = threading.Lock()

    def sync(self, credential: RemoteCredential, release_path: str) -> None:
        with self._lock:
            self.calls.append((credential.host, release_path))
        if credential.host in self.failing_hosts:
            raise SyncError(credential.address, "rsync exited with status 12")


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for test file operations.

    Yields:
        Path to temporary directory

    Cleanup:
        Automatically removes directory after test
    """
    tmp = Path(tempfile.mkdtemp())
    yield tmp
    shutil.rmtree(tmp, ignore_errors=True)


@pytest.fixture
def isolated_env() -> Generator[dict[str, str], None, None]:
    """Provide isolated environment variables for testing.

    Saves current environment and restores after test.
    """
    original_env = os.environ.copy()
    yield original_env
    os.environ.clear()
    os.environ.update(original_env)


@pytest.fixture
def sample_config_dict() -> dict[str, Any]:
    """Deep copy of the sample deployment configuration mapping."""
    return copy.deepcopy(SAMPLE_CONFIG)


@pytest.fixture
def deployment_config(sample_config_dict: dict[str, Any]) -> DeploymentConfig:
    """Validated sample deployment configuration."""
    return DeploymentConfig.model_validate(sample_config_dict)


@pytest.fixture
def credential() -> RemoteCredential:
    """Key-based credential for a single host."""
    return RemoteCredential(
        host="prod.example.com", username="deploy", key_file="~/.ssh/id_rsa"
    )


@pytest.fixture
def fake_executor() -> FakeExecutor:
    """Recording executor that never opens a connection."""
    return FakeExecutor()


@pytest.fixture
def fake_synchronizer() -> FakeSynchronizer:
    """Recording synchronizer that never runs rsync."""
    return FakeSynchronizer()


# Configure pytest
def pytest_configure(config: Any) -> None:
    """Configure pytest with marker options."""
    config.addinivalue_line(
        "markers",
        "slow: marks tests as slow (deselect with '-m \"not slow\"')",
    )
    config.addinivalue_line(
        "markers",
        "integration: marks tests as integration tests",
    )
    config.addinivalue_line(
        "markers",
        "unit: marks tests as unit tests",
    )
