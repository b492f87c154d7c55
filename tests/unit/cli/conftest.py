"""Fixtures for CLI command tests."""

from collections.abc import Generator

import pytest
from click.testing import CliRunner

from shipyard.lib.logging_config import ROOT_LOGGER_NAME, get_logger


@pytest.fixture
def runner() -> CliRunner:
    """Create a CLI runner."""
    return CliRunner()


@pytest.fixture(autouse=True)
def reset_logging() -> Generator[None, None, None]:
    """Drop handlers bound to the runner's captured streams."""
    yield
    logger = get_logger(ROOT_LOGGER_NAME)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
