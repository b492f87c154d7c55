"""Pydantic models for application descriptors.

An application descriptor lives in ``<SHIPYARD_DIR>/apps/<name>.yaml`` and
describes one deployable app: where its source lives, how to build it, and
how it runs.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from shipyard.config.defaults import (
    DEFAULT_APP_MEMORY,
    DEFAULT_BUILD_TIMEOUT,
    get_runtime_command,
)


class AppType(str, Enum):
    """Kind of application being deployed."""

    NEXTJS = "nextjs"
    NODE = "node"
    STATIC = "static"
    SCRIPT = "script"


class Runtime(str, Enum):
    """Package manager used to install, build and start an app."""

    NPM = "npm"
    BUN = "bun"
    PNPM = "pnpm"
    YARN = "yarn"


class DeployMode(str, Enum):
    """How a deployment is activated.

    SUPERVISED runs a long-lived process under the process supervisor;
    SCRIPT hands activation to a deploy script in the working copy.
    """

    SUPERVISED = "supervised-process"
    SCRIPT = "script"


def coerce_deploy_mode(value: Any) -> Any:
    # "pm2" is the older spelling of supervised-process
    if isinstance(value, str) and value.lower() == "pm2":
        return DeployMode.SUPERVISED
    return value


class BuildConfig(BaseModel):
    """Build step configuration. The command defaults by runtime."""

    model_config = ConfigDict(extra="forbid")

    command: str | None = Field(default=None, description="Build command override")
    timeout: int = Field(
        default=DEFAULT_BUILD_TIMEOUT, gt=0, description="Build timeout in seconds"
    )


class StartConfig(BaseModel):
    """Start command configuration. The command defaults by runtime."""

    model_config = ConfigDict(extra="forbid")

    command: str | None = Field(default=None, description="Start command override")


class AppDeployConfig(BaseModel):
    """Deployment mode for an application."""

    model_config = ConfigDict(extra="forbid")

    mode: DeployMode = Field(default=DeployMode.SUPERVISED)
    script: str | None = Field(default=None, description="Deploy script for script mode")

    @field_validator("mode", mode="before")
    @classmethod
    def normalize_mode(cls, v: Any) -> Any:
        """Accept the legacy 'pm2' spelling."""
        return coerce_deploy_mode(v)


class ResourcesConfig(BaseModel):
    """Resource limits for supervised processes."""

    model_config = ConfigDict(extra="forbid")

    memory: str = Field(default=DEFAULT_APP_MEMORY, description="Memory ceiling")
    instances: int = Field(default=1, ge=1, description="Instance count")


class PM2Config(BaseModel):
    """Process supervisor overrides."""

    model_config = ConfigDict(extra="forbid")

    name: str | None = Field(default=None, description="Process name override")
    instances: int = Field(default=1, ge=1)
    memory: str = Field(default=DEFAULT_APP_MEMORY)


class NginxConfig(BaseModel):
    """Reverse-proxy customization consumed by the proxy generator."""

    model_config = ConfigDict(extra="forbid")

    client_max_body_size: str = "10M"
    gzip: bool = True
    cache_static: bool = True
    proxy_read_timeout: int = 60
    proxy_send_timeout: int = 60
    websocket_path: str | None = None


class HealthConfig(BaseModel):
    """Health-check parameters."""

    model_config = ConfigDict(extra="forbid")

    path: str = "/"
    port: int | None = None
    interval: int = 30
    timeout: int = 5


class AppConfig(BaseModel):
    """Application descriptor.

    ``name`` is the identity used for port allocation, log directories and
    process naming unless ``pm2.name`` overrides the process name.
    """

    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    name: str = Field(..., min_length=1, description="Unique application name")
    description: str | None = None

    repo: str = Field(..., min_length=1, description="Git repository URL")
    branch: str = Field(default="main")
    path: str = Field(..., min_length=1, description="Working copy path")
    ssh_key: str | None = Field(default=None, alias="sshKey")

    type: AppType = Field(default=AppType.NEXTJS)
    runtime: Runtime = Field(default=Runtime.NPM)

    domain: str | None = None
    aliases: list[str] = Field(default_factory=list)

    port: int | None = Field(default=None, ge=1, le=65535)

    build: BuildConfig = Field(default_factory=BuildConfig)
    start: StartConfig = Field(default_factory=StartConfig)
    env: dict[str, str] = Field(default_factory=dict)
    deploy: AppDeployConfig = Field(default_factory=AppDeployConfig)
    resources: ResourcesConfig = Field(default_factory=ResourcesConfig)
    pm2: PM2Config = Field(default_factory=PM2Config)
    nginx: NginxConfig = Field(default_factory=NginxConfig)
    health: HealthConfig = Field(default_factory=HealthConfig)

    @field_validator("env", mode="before")
    @classmethod
    def stringify_env(cls, v: Any) -> Any:
        """Coerce YAML scalars (ints, bools) in env values to strings."""
        if isinstance(v, dict):
            return {str(k): "" if val is None else str(val) for k, val in v.items()}
        return v

    @property
    def process_name(self) -> str:
        """Name of the supervised process for this app."""
        return self.pm2.name or self.name

    @property
    def build_command(self) -> str:
        return self.build.command or get_runtime_command(self.runtime.value, "build")

    @property
    def start_command(self) -> str:
        return self.start.command or get_runtime_command(self.runtime.value, "start")

    @property
    def is_script_mode(self) -> bool:
        return self.deploy.mode == DeployMode.SCRIPT
