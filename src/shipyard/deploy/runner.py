"""Shell command execution and per-attempt deployment logs."""

from __future__ import annotations

import os
import signal
import subprocess  # nosec B404
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path

from shipyard.lib.errors import CommandTimeoutError, DeploymentError
from shipyard.lib.logging_config import get_logger

logger = get_logger(__name__)

# Seconds to wait for output after a killed group before closing the pipes
DRAIN_TIMEOUT = 2.0


class DeploymentLog:
    """Append-only log file for one deployment attempt.

    Each line is written as ``[<ISO-8601 UTC timestamp>] <message>``.
    """

    def __init__(self, path: Path) -> None:
        self.path = path
        self.writable = True

    def write(self, message: str) -> None:
        if not self.writable:
            return
        timestamp = datetime.now(timezone.utc).isoformat(timespec="milliseconds")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with self.path.open("a", encoding="utf-8") as handle:
                handle.write(f"[{timestamp}] {message}\n")
        except OSError as e:
            # The attempt continues without its log file
            logger.warning(f"Cannot write deployment log {self.path}: {e}")
            self.writable = False

    def write_stream(self, tag: str, output: str) -> None:
        """Write captured output, one tagged line per output line."""
        for line in output.splitlines():
            self.write(f"{tag}: {line}")


@dataclass
class CommandResult:
    """Outcome of a shell command.

    Attributes:
        command: The command string passed to bash
        returncode: Exit status
        stdout: Captured standard output
        stderr: Captured standard error
    """

    command: str
    returncode: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.returncode == 0


def run_command(
    command: str,
    *,
    cwd: str | Path,
    env: dict[str, str] | None = None,
    timeout: float | None = None,
    log: DeploymentLog | None = None,
    check: bool = True,
) -> CommandResult:
    """Run ``command`` with ``bash -c`` in ``cwd``.

    The command gets its own process group so that a timeout kills every
    child it spawned, not only the shell.

    Args:
        command: Shell command line
        cwd: Working directory
        env: Variables merged over the ambient environment
        timeout: Seconds before the process group is killed
        log: Attempt log receiving tagged STDOUT/STDERR lines
        check: Raise DeploymentError on a non-zero exit status

    Returns:
        CommandResult with captured output.

    Raises:
        CommandTimeoutError: If the timeout elapsed
        DeploymentError: If the command cannot start, or exits non-zero
            while ``check`` is set
    """
    logger.info(f"$ {command}")
    try:
        process = subprocess.Popen(  # noqa: S603  # nosec B603 B607
            ["bash", "-c", command],  # noqa: S607
            cwd=cwd,
            env={**os.environ, **(env or {})},
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
            start_new_session=True,
        )
    except OSError as e:
        raise DeploymentError(
            operation="command",
            message=f"Unable to run '{command}' in {cwd}: {e}",
        ) from e

    try:
        stdout, stderr = process.communicate(timeout=timeout)
    except subprocess.TimeoutExpired as e:
        _kill_group(process)
        stdout, stderr = _drain(process)
        if log is not None:
            log.write_stream("STDOUT", stdout or "")
            log.write_stream("STDERR", stderr or "")
            log.write(f"Command timed out after {timeout:g}s")
        raise CommandTimeoutError(command, timeout or 0) from e

    if log is not None:
        log.write_stream("STDOUT", stdout)
        log.write_stream("STDERR", stderr)

    result = CommandResult(
        command=command,
        returncode=process.returncode,
        stdout=stdout,
        stderr=stderr,
    )
    if check and not result.ok:
        detail = stderr.strip().splitlines()[-1] if stderr.strip() else ""
        message = f"'{command}' exited with status {result.returncode}"
        raise DeploymentError(
            operation="command",
            message=f"{message}: {detail}" if detail else message,
        )
    return result


def _kill_group(process: subprocess.Popen[str]) -> None:
    try:
        os.killpg(process.pid, signal.SIGKILL)
    except ProcessLookupError:
        pass


def _drain(process: subprocess.Popen[str]) -> tuple[str, str]:
    """Collect what is left of a killed command's output.

    A descendant that moved to another session survives the group kill and
    can hold the pipes open indefinitely, so reading stops after
    ``DRAIN_TIMEOUT`` seconds.
    """
    try:
        return process.communicate(timeout=DRAIN_TIMEOUT)
    except subprocess.TimeoutExpired:
        logger.warning(
            f"Output pipes of pid {process.pid} still open after kill; "
            "discarding remaining output"
        )
    for stream in (process.stdout, process.stderr):
        if stream is not None:
            stream.close()
    process.wait()
    return "", ""
