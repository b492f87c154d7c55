"""Filesystem layout for Shipyard configuration, state and logs."""

from __future__ import annotations

import os
import re
from dataclasses import dataclass
from pathlib import Path

DEFAULT_SHIPYARD_DIR = "/etc/shipyard"
DEFAULT_LOG_DIR = "/var/log/shipyard"
DEFAULT_SSH_KEY = Path.home() / ".ssh" / "id_ed25519"

_UNSAFE_SLUG_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


def target_slug(target_key: str) -> str:
    """Return a filesystem-safe directory name for a target identifier.

    Engine modules are keyed as ``engine/module``; their logs live under
    ``engine-module``.
    """
    slug = target_key.replace("/", "-")
    return _UNSAFE_SLUG_CHARS.sub("_", slug)


@dataclass(frozen=True)
class ShipyardPaths:
    """Resolved locations of every file Shipyard reads or writes.

    Attributes:
        root: Configuration root (holds config.yaml, apps/, engines/, state/)
        log_dir: Root directory for log files
    """

    root: Path
    log_dir: Path

    @classmethod
    def from_env(cls) -> ShipyardPaths:
        """Build paths from SHIPYARD_DIR / SHIPYARD_LOG_DIR or the defaults."""
        root = Path(os.environ.get("SHIPYARD_DIR") or DEFAULT_SHIPYARD_DIR)
        log_dir = Path(os.environ.get("SHIPYARD_LOG_DIR") or DEFAULT_LOG_DIR)
        return cls(root=root, log_dir=log_dir)

    @property
    def config_file(self) -> Path:
        return self.root / "config.yaml"

    @property
    def env_file(self) -> Path:
        return self.root / ".env"

    @property
    def apps_dir(self) -> Path:
        return self.root / "apps"

    @property
    def engines_dir(self) -> Path:
        return self.root / "engines"

    @property
    def state_dir(self) -> Path:
        return self.root / "state"

    @property
    def ports_file(self) -> Path:
        return self.state_dir / "ports.json"

    @property
    def deployments_file(self) -> Path:
        return self.state_dir / "deployments.json"

    @property
    def main_log(self) -> Path:
        return self.log_dir / "shipyard.log"

    @property
    def webhook_log(self) -> Path:
        return self.log_dir / "webhooks.log"

    @property
    def apps_log_dir(self) -> Path:
        return self.log_dir / "apps"

    def target_log_dir(self, target_key: str) -> Path:
        """Return the per-target directory holding attempt logs."""
        return self.apps_log_dir / target_slug(target_key)
