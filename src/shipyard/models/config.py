"""Pydantic models for the global Shipyard configuration (config.yaml)."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, model_validator

from shipyard.config.defaults import (
    DEFAULT_APP_MEMORY,
    DEFAULT_BUILD_TIMEOUT,
    DEFAULT_WEBHOOK_PORT,
    PORT_RANGES,
)


class PortRange(BaseModel):
    """Inclusive port range."""

    model_config = ConfigDict(extra="forbid")

    start: int = Field(..., ge=1, le=65535)
    end: int = Field(..., ge=1, le=65535)

    @model_validator(mode="after")
    def validate_bounds(self) -> PortRange:
        """Validate that start <= end."""
        if self.start > self.end:
            raise ValueError(f"start ({self.start}) must be <= end ({self.end})")
        return self


class PortRangesConfig(BaseModel):
    """Named ranges used by the port allocator."""

    model_config = ConfigDict(extra="forbid")

    standard: PortRange = Field(
        default_factory=lambda: PortRange(**PORT_RANGES["standard"])
    )
    games: PortRange = Field(default_factory=lambda: PortRange(**PORT_RANGES["games"]))
    special: PortRange = Field(
        default_factory=lambda: PortRange(**PORT_RANGES["special"])
    )

    def as_dict(self) -> dict[str, PortRange]:
        return {"standard": self.standard, "games": self.games, "special": self.special}


class SSLConfig(BaseModel):
    """TLS settings. The contact email falls back to contact@<domain>."""

    model_config = ConfigDict(extra="forbid")

    enabled: bool = True
    email: str | None = None
    auto_renew: bool = True


class DefaultsConfig(BaseModel):
    """Defaults applied when descriptors leave a value unset."""

    model_config = ConfigDict(extra="forbid")

    node_version: str = "23"
    build_timeout: int = Field(default=DEFAULT_BUILD_TIMEOUT, gt=0)
    health_check_timeout: int = 30
    max_memory: str = DEFAULT_APP_MEMORY
    instances: int = Field(default=1, ge=1)


class ServerConfig(BaseModel):
    """Webhook server and host-wide settings."""

    model_config = ConfigDict(extra="forbid")

    webhook_port: int = Field(default=DEFAULT_WEBHOOK_PORT, ge=1, le=65535)
    webhook_secret: str | None = Field(
        default=None, description="Shared HMAC secret; may be ${ENV_VAR}"
    )
    port_ranges: PortRangesConfig = Field(default_factory=PortRangesConfig)
    ssl: SSLConfig = Field(default_factory=SSLConfig)
    defaults: DefaultsConfig = Field(default_factory=DefaultsConfig)


class GitProvider(str, Enum):
    """Supported source-control providers."""

    GITHUB = "github"
    GITLAB = "gitlab"
    BITBUCKET = "bitbucket"


class GitConfig(BaseModel):
    """Source-control settings."""

    model_config = ConfigDict(extra="forbid")

    provider: GitProvider = GitProvider.GITHUB
    ssh_key: str | None = None


class DeploymentPolicy(BaseModel):
    """Deployment behavior.

    ``rollback_on_failure`` is recorded for future use; failed deployments are
    not rolled back automatically.
    """

    model_config = ConfigDict(extra="forbid")

    keep_releases: int = Field(default=3, ge=1)
    health_check_retries: int = Field(default=3, ge=0)
    rollback_on_failure: bool = True


class FailureNotification(BaseModel):
    model_config = ConfigDict(extra="forbid")

    webhook: str | None = None


class NotificationsConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    on_failure: FailureNotification = Field(default_factory=FailureNotification)


class GlobalConfig(BaseModel):
    """Top-level config.yaml."""

    model_config = ConfigDict(extra="forbid")

    version: int = 1
    server: ServerConfig = Field(default_factory=ServerConfig)
    git: GitConfig = Field(default_factory=GitConfig)
    deployment: DeploymentPolicy = Field(default_factory=DeploymentPolicy)
    notifications: NotificationsConfig = Field(default_factory=NotificationsConfig)
