"""Unit tests for the ports, history, logs and serve CLI commands."""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime, timezone
from pathlib import Path
from unittest.mock import AsyncMock, patch

from click.testing import CliRunner

from shipyard.cli.main import main
from shipyard.config.paths import ShipyardPaths
from shipyard.deploy.state import StateStore
from shipyard.models.state import DeploymentRecord, DeploymentStatus


class TestPortsCommand:
    """Tests for 'shipyard ports'."""

    def test_allocate_is_sticky(
        self, runner: CliRunner, shipyard_paths: ShipyardPaths
    ) -> None:
        first = runner.invoke(main, ["ports", "--allocate", "api"])
        second = runner.invoke(main, ["ports", "--allocate", "api"])

        assert first.exit_code == 0, first.output
        assert first.output.strip() == "api: 3001"
        assert second.output.strip() == "api: 3001"

    def test_allocate_from_games_range(
        self, runner: CliRunner, shipyard_paths: ShipyardPaths
    ) -> None:
        result = runner.invoke(main, ["ports", "--allocate", "snake", "--range", "games"])

        assert result.output.strip() == "snake: 4000"

    def test_table_lists_apps_and_modules(
        self,
        runner: CliRunner,
        shipyard_paths: ShipyardPaths,
        write_app: Callable[..., Path],
        write_engine: Callable[..., Path],
    ) -> None:
        write_app("api", port=3005, domain="api.example.com")
        write_engine("arcade", modules={"snake": {"port": 4101}})

        result = runner.invoke(main, ["ports"])

        assert result.exit_code == 0, result.output
        assert "api.example.com" in result.output
        assert "arcade/snake" in result.output
        assert "reserved" in result.output


class TestHistoryCommand:
    """Tests for 'shipyard history'."""

    def test_no_history(self, runner: CliRunner, shipyard_paths: ShipyardPaths) -> None:
        result = runner.invoke(main, ["history", "api"])

        assert result.exit_code == 0
        assert "No deployments recorded for api" in result.output

    def test_lists_records_newest_first(
        self, runner: CliRunner, shipyard_paths: ShipyardPaths
    ) -> None:
        store = StateStore(shipyard_paths)
        timestamp = datetime(2026, 1, 2, 3, 4, 5, tzinfo=timezone.utc)
        store.record_deployment(
            "api",
            DeploymentRecord(
                id="01AAA", commit="aaa1111", timestamp=timestamp,
                status=DeploymentStatus.SUCCESS, duration_ms=1200,
            ),
        )
        store.record_deployment(
            "api",
            DeploymentRecord(
                id="01BBB", commit="bbb2222", timestamp=timestamp,
                status=DeploymentStatus.FAILED, duration_ms=300,
                error="exit 1", phase="build",
            ),
        )

        result = runner.invoke(main, ["history", "api"])

        assert result.exit_code == 0, result.output
        assert result.output.index("01BBB") < result.output.index("01AAA")
        assert "* 01BBB" in result.output
        assert "build: exit 1" in result.output
        assert "2026-01-02 03:04:05" in result.output

    def test_limit(self, runner: CliRunner, shipyard_paths: ShipyardPaths) -> None:
        store = StateStore(shipyard_paths)
        for i in range(3):
            store.record_deployment(
                "api",
                DeploymentRecord(
                    id=f"01ID{i}", timestamp=datetime.now(timezone.utc),
                    status=DeploymentStatus.SUCCESS,
                ),
            )

        result = runner.invoke(main, ["history", "api", "-n", "1"])

        assert "01ID2" in result.output
        assert "01ID1" not in result.output


class TestLogsCommand:
    """Tests for 'shipyard logs'."""

    def test_shows_latest_log_tail(
        self, runner: CliRunner, shipyard_paths: ShipyardPaths
    ) -> None:
        log_dir = shipyard_paths.target_log_dir("arcade/snake")
        log_dir.mkdir(parents=True)
        (log_dir / "01AAA.log").write_text("old attempt\n")
        (log_dir / "01BBB.log").write_text("line 1\nline 2\nline 3\n")

        result = runner.invoke(main, ["logs", "arcade/snake", "-n", "2"])

        assert result.exit_code == 0, result.output
        assert "=== 01BBB.log ===" in result.output
        assert "line 1" not in result.output
        assert "line 3" in result.output
        assert "old attempt" not in result.output
        assert "2 deployment logs available" in result.output

    def test_no_logs(self, runner: CliRunner, shipyard_paths: ShipyardPaths) -> None:
        result = runner.invoke(main, ["logs", "api"])

        assert result.exit_code == 0
        assert "No deployment logs found for api" in result.output


class TestServeCommand:
    """Tests for 'shipyard serve'."""

    def test_port_defaults_to_configured_webhook_port(
        self, runner: CliRunner, shipyard_paths: ShipyardPaths
    ) -> None:
        shipyard_paths.config_file.write_text("server:\n  webhook_port: 9100\n")
        mock_run = AsyncMock()

        with patch("shipyard.cli.commands.serve._run_server", mock_run):
            result = runner.invoke(main, ["serve", "--host", "127.0.0.1"])

        assert result.exit_code == 0, result.output
        kwargs = mock_run.call_args.kwargs
        assert kwargs["port"] == 9100
        assert kwargs["host"] == "127.0.0.1"

    def test_invalid_config_exits_two(
        self, runner: CliRunner, shipyard_paths: ShipyardPaths
    ) -> None:
        shipyard_paths.config_file.write_text("server:\n  webhook_port: nope\n")

        result = runner.invoke(main, ["serve"])

        assert result.exit_code == 2
