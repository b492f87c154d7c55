"""Git operations for deployment working copies.

Every command runs with a per-call SSH key so private repositories can be
cloned and fetched non-interactively.
"""

from __future__ import annotations

import os
import shlex
import subprocess  # nosec B404
from pathlib import Path

from shipyard.config.paths import DEFAULT_SSH_KEY
from shipyard.lib.errors import DeploymentError
from shipyard.lib.logging_config import get_logger

logger = get_logger(__name__)

# Seconds allowed for network operations (clone, fetch)
NETWORK_TIMEOUT = 300
LOCAL_TIMEOUT = 30


class GitClient:
    """Thin wrapper around the ``git`` executable.

    Failures raise DeploymentError(operation="git") carrying git's stderr.
    """

    def __init__(self, default_ssh_key: str | Path | None = None) -> None:
        self.default_ssh_key = str(default_ssh_key or DEFAULT_SSH_KEY)

    def env(self, ssh_key: str | None = None) -> dict[str, str]:
        """Return the process environment with git's SSH command set."""
        key = os.path.expanduser(ssh_key or self.default_ssh_key)
        return {
            **os.environ,
            "GIT_SSH_COMMAND": (
                f"ssh -i {shlex.quote(key)} "
                "-o StrictHostKeyChecking=no -o BatchMode=yes"
            ),
            "GIT_TERMINAL_PROMPT": "0",
        }

    def _run(
        self,
        args: list[str],
        cwd: str | Path | None = None,
        ssh_key: str | None = None,
        timeout: float = LOCAL_TIMEOUT,
    ) -> str:
        command = ["git", *args]
        logger.debug(f"Running {' '.join(command)} in {cwd or os.getcwd()}")
        try:
            result = subprocess.run(  # noqa: S603  # nosec B603 B607
                command,
                cwd=cwd,
                env=self.env(ssh_key),
                capture_output=True,
                text=True,
                timeout=timeout,
            )
        except subprocess.TimeoutExpired as e:
            raise DeploymentError(
                operation="git",
                message=f"git {args[0]} timed out after {timeout:g}s",
            ) from e
        except OSError as e:
            raise DeploymentError(
                operation="git",
                message=f"Unable to run git: {e}",
            ) from e

        if result.returncode != 0:
            detail = result.stderr.strip() or result.stdout.strip()
            raise DeploymentError(
                operation="git",
                message=f"git {args[0]} exited with {result.returncode}: {detail}",
            )
        return result.stdout.strip()

    @staticmethod
    def is_repo(path: str | Path) -> bool:
        return (Path(path) / ".git").exists()

    def clone(
        self,
        repo: str,
        path: str | Path,
        branch: str | None = None,
        ssh_key: str | None = None,
    ) -> None:
        args = ["clone", repo, str(path)]
        if branch:
            args.extend(["--branch", branch])
        Path(path).parent.mkdir(parents=True, exist_ok=True)
        self._run(args, ssh_key=ssh_key, timeout=NETWORK_TIMEOUT)

    def fetch(self, path: str | Path, ssh_key: str | None = None) -> None:
        self._run(["fetch", "origin"], cwd=path, ssh_key=ssh_key, timeout=NETWORK_TIMEOUT)

    def reset(self, path: str | Path, ref: str, ssh_key: str | None = None) -> None:
        """Hard-reset the working copy to ``ref``, discarding local changes."""
        self._run(["reset", "--hard", ref], cwd=path, ssh_key=ssh_key)

    def ensure_checked_out(
        self,
        repo: str,
        path: str | Path,
        branch: str | None = None,
        ssh_key: str | None = None,
    ) -> bool:
        """Clone ``repo`` into ``path`` unless it is already a checkout.

        Returns:
            True if a clone was performed.
        """
        if self.is_repo(path):
            return False
        logger.info(f"Cloning {repo} into {path}")
        self.clone(repo, path, branch=branch, ssh_key=ssh_key)
        return True

    def synchronize(
        self, path: str | Path, branch: str = "main", ssh_key: str | None = None
    ) -> str:
        """Fetch and hard-reset to ``origin/<branch>``.

        Returns:
            Short commit hash of the resulting HEAD.
        """
        self.fetch(path, ssh_key=ssh_key)
        self.reset(path, f"origin/{branch}", ssh_key=ssh_key)
        return self.short_commit(path)

    def current_commit(self, path: str | Path) -> str:
        return self._run(["rev-parse", "HEAD"], cwd=path)

    def short_commit(self, path: str | Path) -> str:
        return self._run(["rev-parse", "--short", "HEAD"], cwd=path)

    def current_branch(self, path: str | Path) -> str:
        return self._run(["branch", "--show-current"], cwd=path)

    def commit_message(self, path: str | Path) -> str:
        return self._run(["log", "-1", "--pretty=%B"], cwd=path)

    def is_available(self) -> bool:
        """Check whether the git executable can be run."""
        try:
            self._run(["--version"])
        except DeploymentError:
            return False
        return True
