"""Process supervisor interface and the PM2 implementation."""

from __future__ import annotations

import json
import os
import subprocess  # nosec B404
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from shipyard.lib.errors import DeploymentError
from shipyard.lib.logging_config import get_logger

logger = get_logger(__name__)

PM2_TIMEOUT = 120


@dataclass(frozen=True)
class ProcessInfo:
    """Snapshot of one supervised process.

    Attributes:
        name: Registered process name
        status: Supervisor status (online, stopped, errored, launching)
        memory: Resident memory in bytes
        cpu: CPU usage percentage
        uptime_start: Start time in epoch milliseconds, 0 if unknown
        restart_count: Number of automatic restarts
    """

    name: str
    status: str
    memory: int = 0
    cpu: float = 0.0
    uptime_start: int = 0
    restart_count: int = 0

    @property
    def is_online(self) -> bool:
        return self.status == "online"


class ProcessSupervisor(ABC):
    """Abstract base class for long-running process supervisors."""

    @abstractmethod
    def list_processes(self) -> list[ProcessInfo]:
        """Return every registered process.

        Returns an empty list when the supervisor cannot be queried.
        """

    def get_process(self, name: str) -> ProcessInfo | None:
        """Return the named process, or None if it is not registered."""
        return next((p for p in self.list_processes() if p.name == name), None)

    @abstractmethod
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
        """Register and start a process.

        Args:
            name: Process name
            command: Command the supervisor runs
            cwd: Working directory
            env: Variables merged over the ambient environment
            instances: Instance count
            max_memory: Memory ceiling that triggers a restart (e.g. "512M")

        Raises:
            DeploymentError: If the process cannot be started.
        """

    @abstractmethod
    def stop(self, name: str) -> bool:
        """Stop a process, keeping its registration.

        Returns:
            False if the process was not registered.
        """

    @abstractmethod
    def delete(self, name: str) -> bool:
        """Stop a process and remove its registration.

        Returns:
            False if the process was not registered.
        """

    @abstractmethod
    def restart(self, name: str) -> None:
        """Restart a registered process."""

    @abstractmethod
    def persist(self) -> None:
        """Save the process list so it survives host restarts."""

    @abstractmethod
    def is_available(self) -> bool:
        """Check whether the supervisor can be used on this host."""


class PM2Supervisor(ProcessSupervisor):
    """Supervisor backed by the ``pm2`` command line."""

    def __init__(self, executable: str = "pm2") -> None:
        self.executable = executable

    def _run(
        self,
        args: list[str],
        cwd: str | Path | None = None,
        env: dict[str, str] | None = None,
    ) -> subprocess.CompletedProcess[str]:
        command = [self.executable, *args]
        logger.debug(f"Running {' '.join(command)}")
        try:
            return subprocess.run(  # noqa: S603  # nosec B603 B607
                command,
                cwd=cwd,
                env={**os.environ, **(env or {})},
                capture_output=True,
                text=True,
                timeout=PM2_TIMEOUT,
            )
        except (OSError, subprocess.TimeoutExpired) as e:
            raise DeploymentError(
                operation="pm2",
                message=f"{self.executable} {args[0]} could not run: {e}",
            ) from e

    def _check(self, args: list[str], **kwargs: Any) -> str:
        result = self._run(args, **kwargs)
        if result.returncode != 0:
            detail = result.stderr.strip() or result.stdout.strip()
            raise DeploymentError(
                operation="pm2",
                message=f"pm2 {args[0]} exited with {result.returncode}: {detail}",
            )
        return result.stdout

    def list_processes(self) -> list[ProcessInfo]:
        try:
            output = self._check(["jlist"])
            raw = json.loads(output or "[]")
        except (DeploymentError, json.JSONDecodeError) as e:
            logger.warning(f"Could not list pm2 processes: {e}")
            return []

        processes = []
        for entry in raw:
            pm2_env = entry.get("pm2_env") or {}
            monit = entry.get("monit") or {}
            processes.append(
                ProcessInfo(
                    name=entry.get("name", ""),
                    status=pm2_env.get("status", "stopped"),
                    memory=int(monit.get("memory") or 0),
                    cpu=float(monit.get("cpu") or 0),
                    uptime_start=int(pm2_env.get("pm_uptime") or 0),
                    restart_count=int(pm2_env.get("restart_time") or 0),
                )
            )
        return processes

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
        args = ["start", command, "--name", name]
        if instances:
            args.extend(["-i", str(instances)])
        if max_memory:
            args.extend(["--max-memory-restart", max_memory])
        self._check(args, cwd=cwd, env=env)
        logger.info(f"Started process {name}")

    def stop(self, name: str) -> bool:
        result = self._run(["stop", name])
        if result.returncode != 0:
            logger.debug(f"pm2 stop {name} skipped: {result.stderr.strip()}")
            return False
        return True

    def delete(self, name: str) -> bool:
        result = self._run(["delete", name])
        if result.returncode != 0:
            logger.debug(f"pm2 delete {name} skipped: {result.stderr.strip()}")
            return False
        return True

    def restart(self, name: str) -> None:
        self._check(["restart", name])

    def persist(self) -> None:
        self._check(["save"])

    def is_available(self) -> bool:
        try:
            return self._run(["--version"]).returncode == 0
        except DeploymentError:
            return False
