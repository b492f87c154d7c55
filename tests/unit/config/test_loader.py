"""Unit tests for the configuration loader.

Tests cover:
- Global config loading, defaults and environment overrides
- App and engine descriptor parsing with env substitution
- Partial-failure tolerant directory loading
- Fixed-port scan used by the port allocator
"""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path

import pytest

from shipyard.config.loader import ConfigLoader
from shipyard.config.paths import ShipyardPaths
from shipyard.lib.errors import ConfigError, FileNotFoundError
from shipyard.models.app import DeployMode, Runtime


class TestGlobalConfig:
    """Tests for config.yaml loading."""

    def test_missing_config_raises(self, shipyard_paths: ShipyardPaths) -> None:
        """A missing config.yaml is reported as not initialized."""
        loader = ConfigLoader(shipyard_paths)

        assert loader.is_initialized() is False
        with pytest.raises(FileNotFoundError) as exc_info:
            loader.load_global_config()
        assert "not initialized" in exc_info.value.message

    def test_defaults_when_server_block_missing(
        self, shipyard_paths: ShipyardPaths
    ) -> None:
        """An empty config still yields fully defaulted settings."""
        shipyard_paths.config_file.write_text("version: 1\n")
        config = ConfigLoader(shipyard_paths).load_global_config()

        assert config.server.webhook_port == 9000
        assert config.server.webhook_secret is None
        assert config.server.port_ranges.standard.start == 3001
        assert config.server.port_ranges.games.end == 4099
        assert config.deployment.rollback_on_failure is True

    def test_secret_substituted_from_environment(
        self, shipyard_paths: ShipyardPaths, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """${VAR} references in config.yaml resolve from the environment."""
        monkeypatch.setenv("HOOK_SECRET", "s3cret")
        shipyard_paths.config_file.write_text(
            "server:\n  webhook_secret: ${HOOK_SECRET}\n"
        )

        config = ConfigLoader(shipyard_paths).load_global_config()

        assert config.server.webhook_secret == "s3cret"

    def test_env_file_loaded(
        self, shipyard_paths: ShipyardPaths, isolated_env: dict[str, str]
    ) -> None:
        """Variables from <root>/.env are available for substitution."""
        shipyard_paths.env_file.write_text("DOTENV_SECRET=from-dotenv\n")
        shipyard_paths.config_file.write_text(
            "server:\n  webhook_secret: ${DOTENV_SECRET}\n"
        )

        config = ConfigLoader(shipyard_paths).load_global_config()

        assert config.server.webhook_secret == "from-dotenv"

    def test_environment_overrides_fill_unset_values(
        self, shipyard_paths: ShipyardPaths, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """SHIPYARD_WEBHOOK_* fill in values the file leaves unset."""
        monkeypatch.setenv("SHIPYARD_WEBHOOK_SECRET", "env-secret")
        monkeypatch.setenv("SHIPYARD_WEBHOOK_PORT", "9100")
        shipyard_paths.config_file.write_text("version: 1\n")

        config = ConfigLoader(shipyard_paths).load_global_config()

        assert config.server.webhook_secret == "env-secret"
        assert config.server.webhook_port == 9100

    def test_empty_environment_override_is_unset(
        self, shipyard_paths: ShipyardPaths, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("SHIPYARD_WEBHOOK_SECRET", "")
        shipyard_paths.config_file.write_text("version: 1\n")

        config = ConfigLoader(shipyard_paths).load_global_config()

        assert config.server.webhook_secret is None

    def test_invalid_range_rejected(self, shipyard_paths: ShipyardPaths) -> None:
        """A port range with start > end fails validation."""
        shipyard_paths.config_file.write_text(
            "server:\n  port_ranges:\n    standard: {start: 3100, end: 3001}\n"
        )

        with pytest.raises(ConfigError) as exc_info:
            ConfigLoader(shipyard_paths).load_global_config()
        assert "config.yaml" in exc_info.value.message

    def test_or_default_without_file(self, shipyard_paths: ShipyardPaths) -> None:
        config = ConfigLoader(shipyard_paths).load_global_config_or_default()
        assert config.server.webhook_port == 9000


class TestDescriptorLoading:
    """Tests for app and engine descriptor loading."""

    def test_app_defaults(
        self, shipyard_paths: ShipyardPaths, write_app: Callable[..., Path]
    ) -> None:
        """Optional app fields are populated with defaults."""
        write_app("api")

        app = ConfigLoader(shipyard_paths).load_app_config("api")

        assert app is not None
        assert app.branch == "main"
        assert app.runtime == Runtime.NPM
        assert app.deploy.mode == DeployMode.SUPERVISED
        assert app.build_command == "npm ci && npm run build"
        assert app.start_command == "npm start"
        assert app.process_name == "api"
        assert app.port is None

    def test_legacy_pm2_mode_and_ssh_key_alias(
        self, shipyard_paths: ShipyardPaths, write_app: Callable[..., Path]
    ) -> None:
        write_app("web", deploy={"mode": "pm2"}, sshKey="/keys/deploy")

        app = ConfigLoader(shipyard_paths).load_app_config("web")

        assert app is not None
        assert app.deploy.mode == DeployMode.SUPERVISED
        assert app.ssh_key == "/keys/deploy"

    def test_env_values_substituted_and_stringified(
        self,
        shipyard_paths: ShipyardPaths,
        write_app: Callable[..., Path],
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        monkeypatch.setenv("DB_URL", "postgres://db")
        monkeypatch.delenv("UNSET_VALUE", raising=False)
        write_app(
            "api",
            env={"DATABASE_URL": "${DB_URL}", "WORKERS": 4, "EMPTY": "${UNSET_VALUE}"},
        )

        app = ConfigLoader(shipyard_paths).load_app_config("api")

        assert app is not None
        assert app.env == {
            "DATABASE_URL": "postgres://db",
            "WORKERS": "4",
            "EMPTY": "",
        }

    def test_unknown_app_returns_none(self, shipyard_paths: ShipyardPaths) -> None:
        assert ConfigLoader(shipyard_paths).load_app_config("ghost") is None

    def test_malformed_file_does_not_block_siblings(
        self, shipyard_paths: ShipyardPaths, write_app: Callable[..., Path]
    ) -> None:
        """One broken descriptor is reported; the others still load."""
        write_app("api")
        write_app("web")
        (shipyard_paths.apps_dir / "broken.yaml").write_text("name: [unclosed\n")
        (shipyard_paths.apps_dir / "invalid.yaml").write_text("name: invalid\n")
        (shipyard_paths.apps_dir / "notes.txt").write_text("ignored")

        report = ConfigLoader(shipyard_paths).load_app_configs()

        assert sorted(report.configs) == ["api", "web"]
        assert len(report.errors) == 2
        assert any("broken.yaml" in path for path in report.errors)
        invalid_message = next(
            message for path, message in report.errors.items() if "invalid" in path
        )
        assert "invalid.yaml" in invalid_message

    def test_single_malformed_app_raises_config_error(
        self, shipyard_paths: ShipyardPaths
    ) -> None:
        (shipyard_paths.apps_dir / "api.yaml").write_text("name: api\nport: nope\n")

        with pytest.raises(ConfigError):
            ConfigLoader(shipyard_paths).load_app_config("api")

    def test_engine_module_names_and_paths(
        self, shipyard_paths: ShipyardPaths, write_engine: Callable[..., Path]
    ) -> None:
        """Module names default to their key; paths resolve by priority."""
        write_engine(
            "arcade",
            modules={
                "snake": {"port": 4101, "subpath": "games/snake"},
                "chess": {"port": 4102, "path": "/srv/chess", "repo": "git@x:o/chess"},
                "core": {"port": 4103},
            },
            ports={"http": 8080, "websocket": 4040},
        )

        engine = ConfigLoader(shipyard_paths).load_engine_config("arcade")

        assert engine is not None
        assert engine.modules["snake"].name == "snake"
        server_path = engine.server.path
        assert engine.module_path("snake") == str(Path(server_path) / "games/snake")
        assert engine.module_path("chess") == "/srv/chess"
        assert engine.module_path("core") == server_path
        assert engine.server.managed_ports == [8080, 4040]
        assert engine.server.build_command == "npm ci"
        assert engine.server.pm2.memory == "2G"
        assert engine.modules["core"].deploy.mode == DeployMode.SCRIPT

    def test_fixed_app_ports(
        self, shipyard_paths: ShipyardPaths, write_app: Callable[..., Path]
    ) -> None:
        write_app("api", port=3005)
        write_app("web")

        assert ConfigLoader(shipyard_paths).fixed_app_ports() == [("api", 3005)]

    def test_descriptors_reloaded_on_every_call(
        self, shipyard_paths: ShipyardPaths, write_app: Callable[..., Path]
    ) -> None:
        loader = ConfigLoader(shipyard_paths)
        write_app("api", branch="main")
        assert loader.load_app_config("api").branch == "main"  # type: ignore[union-attr]

        write_app("api", branch="release")
        assert loader.load_app_config("api").branch == "release"  # type: ignore[union-attr]
