"""Configuration loading, validation, and management for Shipyard.

This package provides tools for loading, parsing, and validating the global
configuration and the app/engine descriptors from YAML files.

Main components:
- ConfigLoader: Load and validate config.yaml and descriptor directories
- ShipyardPaths: Filesystem layout driven by SHIPYARD_DIR / SHIPYARD_LOG_DIR
- Environment variable substitution (${VAR_NAME} pattern)
- Default values (port ranges, runtime commands, timeouts)
"""

from shipyard.config.env_loader import get_env_var, load_env_file, substitute_env_vars
from shipyard.config.loader import ConfigLoader, LoadReport
from shipyard.config.paths import ShipyardPaths

__all__ = [
    "ConfigLoader",
    "LoadReport",
    "ShipyardPaths",
    "substitute_env_vars",
    "get_env_var",
    "load_env_file",
]
