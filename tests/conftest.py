"""Pytest configuration and shared fixtures for Shipyard tests."""

from __future__ import annotations

import os
import threading
from collections.abc import Callable, Generator
from pathlib import Path
from typing import Any

import pytest
import yaml

from shipyard.config.paths import ShipyardPaths
from shipyard.deploy.supervisor import ProcessInfo, ProcessSupervisor


class FakeGitClient:
    """In-memory stand-in for GitClient that records every call."""

    def __init__(self, commit: str = "abc1234") -> None:
        self.commit = commit
        self.calls: list[tuple[str, ...]] = []
        self.checked_out: set[str] = set()
        self.fail_on: str | None = None

    def _record(self, *call: str) -> None:
        self.calls.append(call)
        if self.fail_on == call[0]:
            raise RuntimeError(f"git {call[0]} failed")

    def is_repo(self, path: str | Path) -> bool:
        return str(path) in self.checked_out

    def ensure_checked_out(
        self,
        repo: str,
        path: str | Path,
        branch: str | None = None,
        ssh_key: str | None = None,
    ) -> bool:
        if self.is_repo(path):
            return False
        self._record("clone", repo, str(path), branch or "")
        self.checked_out.add(str(path))
        return True

    def synchronize(
        self, path: str | Path, branch: str = "main", ssh_key: str | None = None
    ) -> str:
        self._record("synchronize", str(path), branch)
        return self.commit

    def short_commit(self, path: str | Path) -> str:
        self._record("short_commit", str(path))
        return self.commit


class FakeSupervisor(ProcessSupervisor):
    """Process supervisor that keeps its process table in memory."""

    def __init__(self) -> None:
        self.calls: list[tuple[Any, ...]] = []
        self.processes: dict[str, ProcessInfo] = {}
        self.started: dict[str, dict[str, Any]] = {}
        self._lock = threading.Lock()

    def list_processes(self) -> list[ProcessInfo]:
        return list(self.processes.values())

    def start(
        self,
        name: str,
        command: str,
        *,
        cwd: str | Path,
        env: dict[str, str] | None = None,
        instances: int = 1,
        max_memory: str | None = None,
    ) -> None:
        with self._lock:
            self.calls.append(("start", name))
            self.started[name] = {
                "command": command,
                "cwd": str(cwd),
                "env": dict(env or {}),
                "instances": instances,
                "max_memory": max_memory,
            }
            self.processes[name] = ProcessInfo(name=name, status="online")

    def stop(self, name: str) -> bool:
        with self._lock:
            self.calls.append(("stop", name))
            process = self.processes.get(name)
            if process is None:
                return False
            self.processes[name] = ProcessInfo(name=name, status="stopped")
            return True

    def delete(self, name: str) -> bool:
        with self._lock:
            self.calls.append(("delete", name))
            return self.processes.pop(name, None) is not None

    def restart(self, name: str) -> None:
        self.calls.append(("restart", name))

    def persist(self) -> None:
        self.calls.append(("persist",))

    def is_available(self) -> bool:
        return True

    def call_names(self) -> list[str]:
        return [call[0] for call in self.calls]


@pytest.fixture
def isolated_env() -> Generator[dict[str, str]]:
    """Provide isolated environment variables for testing.

    Saves current environment and restores after test.
    """
    original_env = os.environ.copy()
    yield original_env
    os.environ.clear()
    os.environ.update(original_env)


@pytest.fixture
def shipyard_paths(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> ShipyardPaths:
    """Point SHIPYARD_DIR and SHIPYARD_LOG_DIR at a temporary layout."""
    root = tmp_path / "shipyard"
    log_dir = tmp_path / "logs"
    for directory in (root / "apps", root / "engines", root / "state", log_dir):
        directory.mkdir(parents=True)

    monkeypatch.setenv("SHIPYARD_DIR", str(root))
    monkeypatch.setenv("SHIPYARD_LOG_DIR", str(log_dir))
    monkeypatch.delenv("SHIPYARD_WEBHOOK_SECRET", raising=False)
    monkeypatch.delenv("SHIPYARD_WEBHOOK_PORT", raising=False)
    return ShipyardPaths(root=root, log_dir=log_dir)


@pytest.fixture
def write_app(shipyard_paths: ShipyardPaths) -> Callable[..., Path]:
    """Write an app descriptor into the apps directory."""

    def _write(name: str, **fields: Any) -> Path:
        data = {
            "name": name,
            "repo": f"git@github.com:org/{name}.git",
            "path": str(shipyard_paths.root.parent / "srv" / name),
            **fields,
        }
        path = shipyard_paths.apps_dir / f"{name}.yaml"
        path.write_text(yaml.safe_dump(data), encoding="utf-8")
        return path

    return _write


@pytest.fixture
def write_engine(shipyard_paths: ShipyardPaths) -> Callable[..., Path]:
    """Write an engine descriptor into the engines directory."""

    def _write(name: str, modules: dict[str, Any] | None = None, **server: Any) -> Path:
        data = {
            "type": "engine",
            "name": name,
            "server": {
                "repo": f"git@github.com:org/{name}.git",
                "path": str(shipyard_paths.root.parent / "srv" / name),
                **server,
            },
            "modules": modules or {},
        }
        path = shipyard_paths.engines_dir / f"{name}.yaml"
        path.write_text(yaml.safe_dump(data), encoding="utf-8")
        return path

    return _write


@pytest.fixture
def fake_git() -> FakeGitClient:
    return FakeGitClient()


@pytest.fixture
def fake_supervisor() -> FakeSupervisor:
    return FakeSupervisor()


def pytest_configure(config: Any) -> None:
    """Configure pytest with marker options."""
    config.addinivalue_line(
        "markers",
        "slow: marks tests as slow (deselect with '-m \"not slow\"')",
    )
    config.addinivalue_line(
        "markers",
        "integration: marks tests as integration tests",
    )
    config.addinivalue_line(
        "markers",
        "unit: marks tests as unit tests",
    )
