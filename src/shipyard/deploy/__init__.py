"""Shipyard deployment engine.

This package provides the deployment functionality for apps, engines and
engine modules: source synchronization, builds, process supervision, port
allocation and deployment history.
"""

from shipyard.deploy.engine import (
    DeploymentEngine,
    DeploymentPhase,
    DeployResult,
    create_deployment_engine,
)
from shipyard.deploy.git import GitClient
from shipyard.deploy.ports import PortAllocator
from shipyard.deploy.state import StateStore, generate_deployment_id
from shipyard.deploy.supervisor import PM2Supervisor, ProcessInfo, ProcessSupervisor
from shipyard.deploy.targets import (
    Target,
    TargetKind,
    find_target_by_repo,
    normalize_repo_url,
    resolve_target,
)

__all__ = [
    "DeployResult",
    "DeploymentEngine",
    "DeploymentPhase",
    "GitClient",
    "PM2Supervisor",
    "PortAllocator",
    "ProcessInfo",
    "ProcessSupervisor",
    "StateStore",
    "create_deployment_engine",
    "Target",
    "TargetKind",
    "find_target_by_repo",
    "generate_deployment_id",
    "normalize_repo_url",
    "resolve_target",
]
