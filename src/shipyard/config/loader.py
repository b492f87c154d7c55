"""Configuration loader for Shipyard.

This module provides the ConfigLoader class for loading, parsing, and
validating the global configuration plus application and engine descriptors
from YAML files.

Descriptors are read fresh from disk on every call; nothing is cached, so
edits made between invocations are picked up immediately.
"""

from __future__ import annotations

from collections.abc import Callable, Iterator
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, TypeVar

import yaml
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from shipyard.config.env_loader import (
    get_env_var,
    load_env_file,
    substitute_env_vars_deep,
)
from shipyard.config.paths import ShipyardPaths
from shipyard.config.validator import flatten_pydantic_errors
from shipyard.lib.errors import ConfigError, FileNotFoundError
from shipyard.lib.logging_config import get_logger
from shipyard.models.app import AppConfig
from shipyard.models.config import GlobalConfig
from shipyard.models.engine import EngineConfig

logger = get_logger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)

YAML_SUFFIXES = (".yaml", ".yml")

# Environment variables that fill in global settings the file leaves unset
ENV_VAR_MAP = {
    "webhook_port": "SHIPYARD_WEBHOOK_PORT",
    "webhook_secret": "SHIPYARD_WEBHOOK_SECRET",
}


def _read_yaml(path: Path) -> Any:
    """Read a YAML file and substitute ``${VAR}`` references in its values.

    Raises:
        FileNotFoundError: If the file cannot be read
        ConfigError: If YAML parsing fails
    """
    try:
        raw_text = path.read_text(encoding="utf-8")
    except OSError as e:
        raise FileNotFoundError(
            str(path),
            f"Configuration file not found at {path}. "
            f"Please ensure the file exists at this path.",
        ) from e

    try:
        content = yaml.safe_load(raw_text)
    except yaml.YAMLError as e:
        raise ConfigError(
            "yaml_parse",
            f"Failed to parse YAML file {path}: {str(e)}",
        ) from e

    return substitute_env_vars_deep(content)


def _validate(model: type[ModelT], data: Any, source: str, error_code: str) -> ModelT:
    """Validate parsed data against a model, naming the source on failure."""
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigError(
            error_code,
            f"Invalid configuration in {source}: expected a mapping at the top level",
        )
    try:
        return model(**data)
    except PydanticValidationError as e:
        error_text = "\n".join(flatten_pydantic_errors(e))
        raise ConfigError(
            error_code,
            f"Invalid configuration in {source}:\n{error_text}",
        ) from e


def _apply_env_overrides(data: dict[str, Any]) -> dict[str, Any]:
    """Fill unset server settings from SHIPYARD_* environment variables."""
    server = dict(data.get("server") or {})
    for field_name, env_name in ENV_VAR_MAP.items():
        if server.get(field_name):
            continue
        value = get_env_var(env_name)
        if value is None:
            continue
        if field_name == "webhook_port":
            try:
                server[field_name] = int(value)
            except ValueError:
                logger.warning(f"Ignoring non-numeric {env_name}={value!r}")
                continue
        else:
            server[field_name] = value
    return {**data, "server": server}


@dataclass
class LoadReport:
    """Descriptors loaded from a directory plus per-file failures.

    Attributes:
        configs: Successfully parsed descriptors keyed by name
        errors: Failure message keyed by file path
    """

    configs: dict[str, Any] = field(default_factory=dict)
    errors: dict[str, str] = field(default_factory=dict)

    def __iter__(self) -> Iterator[str]:
        return iter(self.configs)

    def __len__(self) -> int:
        return len(self.configs)


class ConfigLoader:
    """Loads and validates Shipyard configuration from YAML files.

    This class handles:
    - Loading ``.env`` secrets from the configuration root
    - Parsing YAML files and substituting ``${VAR}`` references
    - Validating the global config, app and engine descriptors
    - Loading whole descriptor directories, skipping malformed files
    """

    def __init__(self, paths: ShipyardPaths | None = None) -> None:
        """Initialize the loader.

        Args:
            paths: Filesystem layout (defaults to SHIPYARD_DIR from the env)
        """
        self.paths = paths or ShipyardPaths.from_env()
        load_env_file(self.paths.env_file)

    def is_initialized(self) -> bool:
        """Return True when the global config file exists."""
        return self.paths.config_file.exists()

    # ------------------------------------------------------------------
    # Global configuration
    # ------------------------------------------------------------------

    def load_global_config(self) -> GlobalConfig:
        """Load config.yaml.

        Returns:
            Validated GlobalConfig

        Raises:
            FileNotFoundError: If config.yaml does not exist
            ConfigError: If parsing or validation fails
        """
        path = self.paths.config_file
        if not path.exists():
            raise FileNotFoundError(
                str(path),
                "Shipyard is not initialized. Create config.yaml or run: shipyard init",
            )
        data = _read_yaml(path) or {}
        if isinstance(data, dict):
            data = _apply_env_overrides(data)
        return _validate(GlobalConfig, data, str(path), "global_config")

    def load_global_config_or_default(self) -> GlobalConfig:
        """Load config.yaml, falling back to defaults when it is absent."""
        if not self.paths.config_file.exists():
            return _validate(
                GlobalConfig, _apply_env_overrides({}), "defaults", "global_config"
            )
        return self.load_global_config()

    # ------------------------------------------------------------------
    # Descriptors
    # ------------------------------------------------------------------

    def parse_app(self, raw: Any, source: str = "<memory>") -> AppConfig:
        """Validate raw (already env-substituted) data as an app descriptor."""
        return _validate(AppConfig, raw, source, "app_validation")

    def parse_engine(self, raw: Any, source: str = "<memory>") -> EngineConfig:
        """Validate raw (already env-substituted) data as an engine descriptor."""
        return _validate(EngineConfig, raw, source, "engine_validation")

    def load_app_file(self, path: Path) -> AppConfig:
        return self.parse_app(_read_yaml(path), str(path))

    def load_engine_file(self, path: Path) -> EngineConfig:
        return self.parse_engine(_read_yaml(path), str(path))

    def load_app_configs(self) -> LoadReport:
        """Load every app descriptor in the apps directory."""
        return self._load_directory(self.paths.apps_dir, self.load_app_file, "app")

    def load_engine_configs(self) -> LoadReport:
        """Load every engine descriptor in the engines directory."""
        return self._load_directory(
            self.paths.engines_dir, self.load_engine_file, "engine"
        )

    def load_app_config(self, name: str) -> AppConfig | None:
        """Load a single app descriptor by name, or None if no file exists."""
        path = self._find_descriptor(self.paths.apps_dir, name)
        return self.load_app_file(path) if path else None

    def load_engine_config(self, name: str) -> EngineConfig | None:
        """Load a single engine descriptor by name, or None if no file exists."""
        path = self._find_descriptor(self.paths.engines_dir, name)
        return self.load_engine_file(path) if path else None

    def load_all(self) -> tuple[LoadReport, LoadReport]:
        """Load every app and engine descriptor.

        Returns:
            Tuple of (apps report, engines report)
        """
        return self.load_app_configs(), self.load_engine_configs()

    def fixed_app_ports(self) -> list[tuple[str, int]]:
        """Return (name, port) for every app descriptor with a pinned port."""
        report = self.load_app_configs()
        return [
            (name, config.port)
            for name, config in report.configs.items()
            if config.port is not None
        ]

    @staticmethod
    def _find_descriptor(directory: Path, name: str) -> Path | None:
        for suffix in YAML_SUFFIXES:
            candidate = directory / f"{name}{suffix}"
            if candidate.exists():
                return candidate
        return None

    @staticmethod
    def _load_directory(
        directory: Path,
        load_file: Callable[[Path], Any],
        kind: str,
    ) -> LoadReport:
        """Load all descriptors in a directory.

        A malformed file is logged and recorded in the report; it never stops
        sibling files from loading.
        """
        report = LoadReport()
        if not directory.is_dir():
            return report

        for path in sorted(directory.iterdir()):
            if path.suffix not in YAML_SUFFIXES or not path.is_file():
                continue
            try:
                config = load_file(path)
            except (ConfigError, FileNotFoundError) as e:
                message = getattr(e, "message", str(e))
                logger.error(f"Failed to load {kind} {path.name}: {message}")
                report.errors[str(path)] = message
                continue

            if config.name in report.configs:
                logger.warning(
                    f"Duplicate {kind} name '{config.name}' in {path.name}; "
                    f"keeping the first definition"
                )
                continue
            report.configs[config.name] = config

        return report
