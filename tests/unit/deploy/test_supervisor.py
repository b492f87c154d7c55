"""Tests for the PM2 process supervisor."""

import json
from unittest.mock import MagicMock, patch

import pytest

from shipyard.deploy.supervisor import PM2Supervisor, ProcessInfo
from shipyard.lib.errors import DeploymentError


def _completed(stdout: str = "", returncode: int = 0, stderr: str = "") -> MagicMock:
    result = MagicMock()
    result.stdout = stdout
    result.stderr = stderr
    result.returncode = returncode
    return result


JLIST = json.dumps(
    [
        {
            "name": "api",
            "pm2_env": {"status": "online", "pm_uptime": 1700000000000, "restart_time": 2},
            "monit": {"memory": 52428800, "cpu": 1.5},
        },
        {"name": "worker", "pm2_env": {"status": "stopped"}},
    ]
)


class TestPM2Supervisor:
    """Tests for PM2Supervisor."""

    def test_list_processes_parses_jlist(self) -> None:
        with patch("subprocess.run", return_value=_completed(JLIST)):
            processes = PM2Supervisor().list_processes()

        assert processes[0] == ProcessInfo(
            name="api",
            status="online",
            memory=52428800,
            cpu=1.5,
            uptime_start=1700000000000,
            restart_count=2,
        )
        assert processes[0].is_online
        assert processes[1].status == "stopped"
        assert not processes[1].is_online

    def test_list_processes_empty_when_pm2_unavailable(self) -> None:
        with patch("subprocess.run", side_effect=FileNotFoundError("pm2")):
            assert PM2Supervisor().list_processes() == []

    def test_get_process(self) -> None:
        with patch("subprocess.run", return_value=_completed(JLIST)):
            supervisor = PM2Supervisor()
            assert supervisor.get_process("worker") is not None
            assert supervisor.get_process("ghost") is None

    def test_start_arguments_and_env(self) -> None:
        with patch("subprocess.run", return_value=_completed()) as mock_run:
            PM2Supervisor().start(
                "api",
                "npm start",
                cwd="/srv/api",
                env={"PORT": "3001"},
                instances=2,
                max_memory="512M",
            )

        args, kwargs = mock_run.call_args
        assert args[0] == [
            "pm2", "start", "npm start", "--name", "api",
            "-i", "2", "--max-memory-restart", "512M",
        ]
        assert kwargs["cwd"] == "/srv/api"
        assert kwargs["env"]["PORT"] == "3001"

    def test_start_failure_raises(self) -> None:
        with patch(
            "subprocess.run", return_value=_completed(returncode=1, stderr="boom")
        ):
            with pytest.raises(DeploymentError) as exc_info:
                PM2Supervisor().start("api", "npm start", cwd="/srv/api")

        assert exc_info.value.operation == "pm2"

    def test_stop_and_delete_unknown_process(self) -> None:
        """Stopping an unregistered process is not an error."""
        missing = _completed(returncode=1, stderr="process not found")
        with patch("subprocess.run", return_value=missing):
            supervisor = PM2Supervisor()
            assert supervisor.stop("ghost") is False
            assert supervisor.delete("ghost") is False

    def test_persist_runs_save(self) -> None:
        with patch("subprocess.run", return_value=_completed()) as mock_run:
            PM2Supervisor(executable="/usr/bin/pm2").persist()

        assert mock_run.call_args.args[0] == ["/usr/bin/pm2", "save"]
