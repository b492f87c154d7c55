"""Per-target serialization of background deployments.

At most one deployment per target key runs at a time. A submission for a
busy key waits for the running one to finish, whatever its outcome, and
then runs. Different keys never wait on each other.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from typing import Any

from shipyard.lib.logging_config import get_logger

logger = get_logger(__name__)


class DeploymentQueue:
    """Keyed mutex that runs blocking deployment callables off the event loop."""

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}
        self._refcounts: dict[str, int] = {}
        self._running: set[str] = set()
        self._tasks: set[asyncio.Task[None]] = set()

    def submit(self, key: str, fn: Callable[[], Any]) -> asyncio.Task[None]:
        """Schedule ``fn`` to run once no other deployment holds ``key``.

        Must be called from a running event loop. ``fn`` runs in a worker
        thread so the loop keeps serving requests meanwhile.
        """
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        self._refcounts[key] = self._refcounts.get(key, 0) + 1

        task = asyncio.create_task(self._run(key, lock, fn), name=f"deploy:{key}")
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _run(self, key: str, lock: asyncio.Lock, fn: Callable[[], Any]) -> None:
        try:
            if lock.locked():
                logger.info(f"Deployment for {key} is queued behind a running one")
            async with lock:
                self._running.add(key)
                try:
                    await asyncio.to_thread(fn)
                except Exception:
                    logger.exception(f"Deployment failed for {key}")
                finally:
                    self._running.discard(key)
        finally:
            self._release(key)

    def _release(self, key: str) -> None:
        remaining = self._refcounts.get(key, 1) - 1
        if remaining <= 0:
            self._refcounts.pop(key, None)
            self._locks.pop(key, None)
        else:
            self._refcounts[key] = remaining

    def is_running(self, key: str) -> bool:
        """Return True while a deployment for ``key`` is executing."""
        return key in self._running

    def pending(self, key: str) -> int:
        """Return how many submissions for ``key`` have not finished yet."""
        return self._refcounts.get(key, 0)

    @property
    def active_keys(self) -> list[str]:
        return sorted(self._refcounts)

    async def join(self) -> None:
        """Wait until every submitted deployment has finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
