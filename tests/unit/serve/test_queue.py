"""Tests for per-target deployment serialization."""

from __future__ import annotations

import asyncio
import threading
import time

import pytest

from shipyard.serve.queue import DeploymentQueue


class TestDeploymentQueue:
    """Tests for DeploymentQueue."""

    @pytest.mark.asyncio
    async def test_same_key_runs_sequentially(self) -> None:
        """Two submissions for one key never overlap and keep their order."""
        queue = DeploymentQueue()
        events: list[str] = []
        active = 0
        peak = 0
        guard = threading.Lock()

        def work(label: str) -> None:
            nonlocal active, peak
            with guard:
                active += 1
                peak = max(peak, active)
            events.append(f"start-{label}")
            time.sleep(0.05)
            events.append(f"end-{label}")
            with guard:
                active -= 1

        queue.submit("api", lambda: work("first"))
        queue.submit("api", lambda: work("second"))
        assert queue.pending("api") == 2

        await queue.join()

        assert peak == 1
        assert events == ["start-first", "end-first", "start-second", "end-second"]
        assert queue.pending("api") == 0
        assert queue.active_keys == []

    @pytest.mark.asyncio
    async def test_different_keys_run_concurrently(self) -> None:
        """Deployments of different targets overlap in time."""
        queue = DeploymentQueue()
        barrier = threading.Barrier(2, timeout=5)
        passed: list[str] = []

        def work(key: str) -> None:
            barrier.wait()
            passed.append(key)

        queue.submit("api", lambda: work("api"))
        queue.submit("web", lambda: work("web"))

        await queue.join()

        assert sorted(passed) == ["api", "web"]

    @pytest.mark.asyncio
    async def test_failure_does_not_block_successor(self) -> None:
        queue = DeploymentQueue()
        ran: list[str] = []

        def broken() -> None:
            raise RuntimeError("build exploded")

        first = queue.submit("api", broken)
        queue.submit("api", lambda: ran.append("second"))

        await queue.join()

        assert ran == ["second"]
        assert first.exception() is None

    @pytest.mark.asyncio
    async def test_is_running_reflects_execution(self) -> None:
        queue = DeploymentQueue()
        started = threading.Event()
        release = threading.Event()

        def work() -> None:
            started.set()
            release.wait(timeout=5)

        queue.submit("api", work)
        await asyncio.to_thread(started.wait, 5)

        assert queue.is_running("api")
        assert not queue.is_running("web")

        release.set()
        await queue.join()

        assert not queue.is_running("api")
