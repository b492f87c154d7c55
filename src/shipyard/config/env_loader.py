"""Environment variable handling for Shipyard configuration.

Descriptors may reference environment variables anywhere a string appears
using the ``${NAME}`` pattern. Unset variables resolve to an empty string.
"""

from __future__ import annotations

import os
import re
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from dotenv import load_dotenv

from shipyard.lib.logging_config import get_logger

logger = get_logger(__name__)

ENV_VAR_PATTERN = re.compile(r"\$\{([^}]+)\}")


def substitute_env_vars(
    text: str, env: Mapping[str, str] | None = None
) -> str:
    """Replace every ``${NAME}`` in a string with its environment value.

    Args:
        text: String possibly containing ``${NAME}`` references
        env: Mapping to resolve from (defaults to os.environ)

    Returns:
        String with all references substituted; unset names become "".
    """
    source = os.environ if env is None else env

    def _replace(match: re.Match[str]) -> str:
        name = match.group(1).strip()
        value = source.get(name)
        if value is None:
            logger.debug(f"Environment variable '{name}' is not set, using ''")
            return ""
        return value

    return ENV_VAR_PATTERN.sub(_replace, text)


def substitute_env_vars_deep(
    value: Any, env: Mapping[str, str] | None = None
) -> Any:
    """Recursively substitute environment references in parsed YAML data.

    Strings are substituted; dicts and lists are walked; every other value
    is returned unchanged. Mapping keys are left as-is.
    """
    if isinstance(value, str):
        return substitute_env_vars(value, env)
    if isinstance(value, list):
        return [substitute_env_vars_deep(item, env) for item in value]
    if isinstance(value, dict):
        return {key: substitute_env_vars_deep(item, env) for key, item in value.items()}
    return value


def get_env_var(name: str, default: str | None = None) -> str | None:
    """Return an environment variable, treating empty strings as unset."""
    value = os.environ.get(name)
    return value if value else default


def load_env_file(path: Path) -> bool:
    """Load a dotenv file without overriding variables already set.

    Args:
        path: Path to the .env file

    Returns:
        True if the file existed and was loaded.
    """
    if not path.is_file():
        return False
    loaded = load_dotenv(path, override=False)
    logger.debug(f"Loaded environment file {path}")
    return bool(loaded)
