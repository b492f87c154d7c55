"""Unit tests for the shipyard doctor CLI command."""

from __future__ import annotations

from collections.abc import Callable, Generator
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest
from click.testing import CliRunner

from shipyard.cli.main import main
from shipyard.config.paths import ShipyardPaths


@pytest.fixture
def git() -> Generator[MagicMock, None, None]:
    with patch("shipyard.cli.commands.doctor.GitClient") as mock_class:
        client = mock_class.return_value
        client.is_available.return_value = True
        client.is_repo.return_value = True
        client.current_branch.return_value = "main"
        client.short_commit.return_value = "abc1234"
        client.commit_message.return_value = "Fix login redirect\n\nDetails."
        yield client


@pytest.fixture
def pm2() -> Generator[MagicMock, None, None]:
    with patch("shipyard.cli.commands.doctor.PM2Supervisor") as mock_class:
        supervisor = mock_class.return_value
        supervisor.is_available.return_value = True
        yield supervisor


class TestDoctorCommand:
    """Tests for 'shipyard doctor'."""

    def test_healthy_host(
        self,
        runner: CliRunner,
        shipyard_paths: ShipyardPaths,
        write_app: Callable[..., Path],
        git: MagicMock,
        pm2: MagicMock,
    ) -> None:
        shipyard_paths.config_file.write_text("server:\n  webhook_secret: s3cret\n")
        write_app("api")

        result = runner.invoke(main, ["doctor"])

        assert result.exit_code == 0, result.output
        assert "main @ abc1234 Fix login redirect" in result.output
        assert "FAIL" not in result.output
        assert "All checks passed!" in result.output

    def test_missing_tools_and_config(
        self,
        runner: CliRunner,
        shipyard_paths: ShipyardPaths,
        git: MagicMock,
        pm2: MagicMock,
    ) -> None:
        git.is_available.return_value = False
        pm2.is_available.return_value = False

        result = runner.invoke(main, ["doctor"])

        assert result.exit_code == 1
        assert "FAIL Git" in result.output
        assert "npm install -g pm2" in result.output
        assert f"Missing: {shipyard_paths.config_file}" in result.output

    def test_secret_from_environment(
        self,
        runner: CliRunner,
        shipyard_paths: ShipyardPaths,
        git: MagicMock,
        pm2: MagicMock,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        shipyard_paths.config_file.write_text("version: 1\n")

        missing = runner.invoke(main, ["doctor"])
        monkeypatch.setenv("SHIPYARD_WEBHOOK_SECRET", "from-env")
        present = runner.invoke(main, ["doctor"])

        assert missing.exit_code == 1
        assert "FAIL Webhook secret" in missing.output
        assert present.exit_code == 0, present.output

    def test_branch_drift_and_broken_descriptor(
        self,
        runner: CliRunner,
        shipyard_paths: ShipyardPaths,
        write_app: Callable[..., Path],
        git: MagicMock,
        pm2: MagicMock,
    ) -> None:
        shipyard_paths.config_file.write_text("server:\n  webhook_secret: s3cret\n")
        write_app("api", branch="main")
        (shipyard_paths.apps_dir / "broken.yaml").write_text("name: broken\n")
        git.current_branch.return_value = "hotfix"

        result = runner.invoke(main, ["doctor"])

        assert result.exit_code == 1
        assert "FAIL App api" in result.output
        assert "hotfix @ abc1234" in result.output
        assert "(expected main)" in result.output
        assert "FAIL Descriptor broken.yaml" in result.output

    def test_uncloned_app_is_not_a_failure(
        self,
        runner: CliRunner,
        shipyard_paths: ShipyardPaths,
        write_app: Callable[..., Path],
        git: MagicMock,
        pm2: MagicMock,
    ) -> None:
        shipyard_paths.config_file.write_text("server:\n  webhook_secret: s3cret\n")
        write_app("api")
        git.is_repo.return_value = False

        result = runner.invoke(main, ["doctor"])

        assert result.exit_code == 0, result.output
        assert "Not cloned yet" in result.output
        git.current_branch.assert_not_called()
