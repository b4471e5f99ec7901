"""Rollout deployment engine.

This package provides the building blocks of a deployment: remote command
execution, file sync, release management, runtime setup, process
supervision and hooks, plus the orchestrator that composes them.
"""

from rollout.deploy.hooks import HookRunner
from rollout.deploy.orchestrator import DeploymentOrchestrator
from rollout.deploy.releases import ReleaseManager, allocate_release_id
from rollout.deploy.remote import RemoteCommand, RemoteCommandExecutor
from rollout.deploy.runtime import RuntimeEnvironmentSetup
from rollout.deploy.services import ServiceManager, render_descriptor
from rollout.deploy.sync import FileSynchronizer
from rollout.deploy.templates import render_config_template

__all__ = [
    "DeploymentOrchestrator",
    "FileSynchronizer",
    "HookRunner",
    "ReleaseManager",
    "RemoteCommand",
    "RemoteCommandExecutor",
    "RuntimeEnvironmentSetup",
    "ServiceManager",
    "allocate_release_id",
    "render_config_template",
    "render_descriptor",
]
