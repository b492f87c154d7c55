"""Pydantic models for engine descriptors.

An engine is a parent process that owns a shared checkout and hosts named
modules. Modules may bring their own repository or live under a subpath
of the engine checkout.
"""

from __future__ import annotations

import os
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from shipyard.config.defaults import (
    DEFAULT_BUILD_TIMEOUT,
    DEFAULT_ENGINE_MEMORY,
    get_runtime_command,
)
from shipyard.models.app import (
    DeployMode,
    HealthConfig,
    NginxConfig,
    Runtime,
    StartConfig,
    coerce_deploy_mode,
)


class EnginePortsConfig(BaseModel):
    """Fixed ports the engine process manages itself."""

    model_config = ConfigDict(extra="forbid")

    http: int | None = None
    websocket: int | None = None
    module_start: int | None = None
    module_end: int | None = None


class EnginePM2Config(BaseModel):
    """Process supervisor settings for the engine server process."""

    model_config = ConfigDict(extra="forbid")

    name: str | None = None
    instances: int = Field(default=1, ge=1)
    memory: str = Field(default=DEFAULT_ENGINE_MEMORY)


class EngineFilesConfig(BaseModel):
    """Engine configuration file locations."""

    model_config = ConfigDict(extra="forbid")

    file: str | None = None
    env_file: str | None = None


class EngineDatabaseConfig(BaseModel):
    """Engine database migration settings."""

    model_config = ConfigDict(extra="forbid")

    type: str | None = None
    migrations: str | None = None
    module_migrations: str | None = None


class EngineBuildConfig(BaseModel):
    """Engine build override. Defaults to the runtime install command."""

    model_config = ConfigDict(extra="forbid")

    command: str | None = None
    timeout: int | None = Field(default=None, gt=0)


class EngineServerConfig(BaseModel):
    """The engine's own server process."""

    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    repo: str = Field(..., min_length=1)
    branch: str = "main"
    path: str = Field(..., min_length=1)
    ssh_key: str | None = Field(default=None, alias="sshKey")

    ports: EnginePortsConfig = Field(default_factory=EnginePortsConfig)
    pm2: EnginePM2Config = Field(default_factory=EnginePM2Config)
    config: EngineFilesConfig = Field(default_factory=EngineFilesConfig)
    database: EngineDatabaseConfig = Field(default_factory=EngineDatabaseConfig)

    runtime: Runtime = Runtime.NPM
    build: EngineBuildConfig = Field(default_factory=EngineBuildConfig)
    start: StartConfig = Field(default_factory=StartConfig)
    health: HealthConfig = Field(default_factory=HealthConfig)

    @property
    def build_command(self) -> str:
        return self.build.command or get_runtime_command(self.runtime.value, "install")

    @property
    def start_command(self) -> str:
        return self.start.command or get_runtime_command(self.runtime.value, "start")

    @property
    def managed_ports(self) -> list[int]:
        """Ports the engine binds itself, excluded from auto-allocation."""
        return [p for p in (self.ports.http, self.ports.websocket) if p is not None]


class ModuleDeployConfig(BaseModel):
    """Deployment mode for an engine module. Defaults to script mode."""

    model_config = ConfigDict(extra="forbid")

    mode: DeployMode = DeployMode.SCRIPT
    script: str | None = None
    pm2_name: str | None = None

    @field_validator("mode", mode="before")
    @classmethod
    def normalize_mode(cls, v: Any) -> Any:
        """Accept the legacy 'pm2' spelling."""
        return coerce_deploy_mode(v)


class ModuleBuildConfig(BaseModel):
    """Module build step; a module builds only when this is configured."""

    model_config = ConfigDict(extra="forbid")

    command: str = Field(..., min_length=1)
    timeout: int = Field(default=DEFAULT_BUILD_TIMEOUT, gt=0)


class ModuleNginxConfig(NginxConfig):
    """Proxy customization for modules served through shared engine services."""

    websocket_port: int | None = None
    api_path: str | None = None
    api_port: int | None = None


class ModuleConfig(BaseModel):
    """A named module hosted by an engine."""

    model_config = ConfigDict(extra="forbid")

    name: str = Field(..., min_length=1)

    repo: str | None = None
    path: str | None = Field(default=None, description="Own checkout path")
    subpath: str | None = Field(
        default=None, description="Path relative to the engine checkout"
    )
    branch: str = "main"

    domain: str | None = None
    aliases: list[str] = Field(default_factory=list)

    port: int = Field(..., ge=1, le=65535)

    deploy: ModuleDeployConfig = Field(default_factory=ModuleDeployConfig)
    build: ModuleBuildConfig | None = None
    start: StartConfig = Field(default_factory=StartConfig)
    runtime: Runtime = Runtime.NPM
    env: dict[str, str] = Field(default_factory=dict)
    nginx: ModuleNginxConfig = Field(default_factory=ModuleNginxConfig)

    @field_validator("env", mode="before")
    @classmethod
    def stringify_env(cls, v: Any) -> Any:
        """Coerce YAML scalars in env values to strings."""
        if isinstance(v, dict):
            return {str(k): "" if val is None else str(val) for k, val in v.items()}
        return v

    @property
    def start_command(self) -> str:
        return self.start.command or get_runtime_command(self.runtime.value, "start")

    @property
    def is_script_mode(self) -> bool:
        return self.deploy.mode == DeployMode.SCRIPT


class EngineConfig(BaseModel):
    """Engine descriptor: one server process plus its modules."""

    model_config = ConfigDict(extra="forbid")

    type: Literal["engine"] = "engine"
    name: str = Field(..., min_length=1)
    description: str | None = None

    server: EngineServerConfig
    modules: dict[str, ModuleConfig] = Field(default_factory=dict)

    @model_validator(mode="before")
    @classmethod
    def default_module_names(cls, data: Any) -> Any:
        """Fill a module's name from its mapping key when omitted."""
        if isinstance(data, dict) and isinstance(data.get("modules"), dict):
            modules: dict[str, Any] = {}
            for key, module in data["modules"].items():
                if isinstance(module, dict) and not module.get("name"):
                    module = {**module, "name": key}
                modules[key] = module
            data = {**data, "modules": modules}
        return data

    @property
    def process_name(self) -> str:
        """Name of the supervised engine server process."""
        return self.server.pm2.name or self.name

    def module_key(self, module_name: str) -> str:
        """Fully-qualified target identifier for a module."""
        return f"{self.name}/{module_name}"

    def module_path(self, module_name: str) -> str:
        """Effective working path of a module.

        Resolution order: the module's own ``path``, then ``subpath`` under the
        engine checkout, then the engine checkout itself.
        """
        module = self.modules[module_name]
        if module.path:
            return module.path
        if module.subpath:
            return os.path.join(self.server.path, module.subpath)
        return self.server.path

    def module_process_name(self, module_name: str) -> str:
        """Supervised process name for a module in supervised mode."""
        module = self.modules[module_name]
        return module.deploy.pm2_name or f"{self.name}-{module_name}"
