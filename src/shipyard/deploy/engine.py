"""Deployment engine.

One attempt runs these phases strictly in order:

1. checkout  - clone the repository if the working copy is missing
2. sync      - fetch and hard-reset to ``origin/<branch>``, read the commit
3. quiesce   - stop the supervised process before building
4. build     - run the build command with a kill deadline
5. activate  - run the deploy script, or (re)start the supervised process
6. record    - append the outcome to the deployment history

The first failing phase ends the attempt. The failure is recorded with its
phase and message and returned as a result; it never raises to the caller.
"""

from __future__ import annotations

import os
import shlex
import time
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path

from shipyard.config.loader import ConfigLoader
from shipyard.config.paths import ShipyardPaths
from shipyard.deploy.git import GitClient
from shipyard.deploy.ports import PortAllocator
from shipyard.deploy.runner import DeploymentLog, run_command
from shipyard.deploy.state import StateStore, generate_deployment_id
from shipyard.deploy.supervisor import PM2Supervisor, ProcessSupervisor
from shipyard.deploy.targets import Target, TargetKind
from shipyard.lib.errors import PhaseFailureError, ShipyardError
from shipyard.lib.logging_config import get_logger
from shipyard.models.app import AppConfig
from shipyard.models.config import GlobalConfig
from shipyard.models.engine import EngineConfig
from shipyard.models.state import DeploymentRecord, DeploymentStatus

logger = get_logger(__name__)


class DeploymentPhase(str, Enum):
    """Ordered phases of one deployment attempt."""

    CHECKOUT = "checkout"
    SYNC = "sync"
    QUIESCE = "quiesce"
    BUILD = "build"
    ACTIVATE = "activate"
    RECORD = "record"


@dataclass
class DeployResult:
    """Outcome of one deployment attempt.

    Attributes:
        target: Target identifier
        deployment_id: Attempt identifier (also the attempt log file name)
        success: Whether every phase completed
        duration_ms: Elapsed wall-clock time in milliseconds
        commit: Short commit hash deployed, if sync completed
        error: Failure message
        phase: Failing phase name
        port: Port the process was bound to, if any
        log_path: Attempt log file
    """

    target: str
    deployment_id: str
    success: bool
    duration_ms: float
    commit: str | None = None
    error: str | None = None
    phase: str | None = None
    port: int | None = None
    log_path: Path | None = None


@dataclass
class DeploymentPlan:
    """Everything one attempt needs, resolved from a descriptor."""

    key: str
    path: str
    branch: str
    supervised: bool
    process_name: str
    start_command: str
    repo: str | None = None
    ssh_key: str | None = None
    build_command: str | None = None
    build_timeout: float | None = None
    script: str | None = None
    env: dict[str, str] = field(default_factory=dict)
    instances: int = 1
    max_memory: str | None = None
    resolve_port: Callable[[], int | None] | None = None
    before_activate: Callable[[], None] | None = None


def _describe(error: BaseException) -> str:
    message = getattr(error, "message", None)
    return message or str(error) or error.__class__.__name__


class DeploymentEngine:
    """Runs deployment attempts for apps, engines and engine modules.

    Collaborators are injected so tests can substitute fakes.
    """

    def __init__(
        self,
        git: GitClient,
        supervisor: ProcessSupervisor,
        store: StateStore,
        port_allocator: PortAllocator,
        paths: ShipyardPaths,
        global_config: GlobalConfig | None = None,
    ) -> None:
        self.git = git
        self.supervisor = supervisor
        self.store = store
        self.port_allocator = port_allocator
        self.paths = paths
        self.global_config = global_config or GlobalConfig()

    # ------------------------------------------------------------------
    # Public entry points
    # ------------------------------------------------------------------

    def deploy(self, target: Target) -> DeployResult:
        """Deploy a resolved target."""
        if target.kind == TargetKind.APP and target.app is not None:
            return self.deploy_app(target.app)
        if target.kind == TargetKind.MODULE and target.engine is not None:
            return self.deploy_module(target.engine, target.module_name or "")
        if target.engine is not None:
            return self.deploy_engine(target.engine)
        raise ValueError(f"Target has no descriptor: {target}")

    def deploy_app(self, app: AppConfig) -> DeployResult:
        """Deploy an application."""

        def resolve_port() -> int:
            if app.port is not None:
                return app.port
            return self.port_allocator.allocate(app.name, "standard")

        plan = DeploymentPlan(
            key=app.name,
            path=app.path,
            branch=app.branch,
            repo=app.repo,
            ssh_key=app.ssh_key or self.global_config.git.ssh_key,
            supervised=not app.is_script_mode,
            process_name=app.process_name,
            start_command=app.start_command,
            build_command=app.build_command,
            build_timeout=app.build.timeout,
            script=app.deploy.script,
            env=dict(app.env),
            instances=app.resources.instances,
            max_memory=app.resources.memory,
            resolve_port=resolve_port,
        )
        return self._execute(plan)

    def deploy_module(self, engine: EngineConfig, module_name: str) -> DeployResult:
        """Deploy one module hosted by an engine.

        The module's repository is synchronized only when it has its own;
        otherwise the engine checkout is used as-is.
        """
        module = engine.modules.get(module_name)
        if module is None:
            key = engine.module_key(module_name)
            return self._reject(key, f"Module not found: {key}")

        plan = DeploymentPlan(
            key=engine.module_key(module_name),
            path=engine.module_path(module_name),
            branch=module.branch,
            repo=module.repo,
            ssh_key=engine.server.ssh_key or self.global_config.git.ssh_key,
            supervised=not module.is_script_mode,
            process_name=engine.module_process_name(module_name),
            start_command=module.start_command,
            build_command=module.build.command if module.build else None,
            build_timeout=module.build.timeout if module.build else None,
            script=module.deploy.script,
            env=dict(module.env),
            resolve_port=lambda: module.port,
        )
        return self._execute(plan)

    def deploy_engine(self, engine: EngineConfig) -> DeployResult:
        """Deploy an engine's own server process.

        Every module sharing the engine process restarts with it.
        """
        server = engine.server
        logger.warning(
            f"Deploying engine {engine.name}: all modules sharing its process "
            f"({', '.join(engine.modules) or 'none'}) will restart"
        )

        def register_ports() -> None:
            self.port_allocator.set_engine_ports(engine.name, server.managed_ports)

        plan = DeploymentPlan(
            key=engine.name,
            path=server.path,
            branch=server.branch,
            repo=server.repo,
            ssh_key=server.ssh_key or self.global_config.git.ssh_key,
            supervised=True,
            process_name=engine.process_name,
            start_command=server.start_command,
            build_command=server.build_command,
            build_timeout=(
                server.build.timeout
                or self.global_config.server.defaults.build_timeout
            ),
            instances=server.pm2.instances,
            max_memory=server.pm2.memory,
            before_activate=register_ports,
        )
        return self._execute(plan)

    # ------------------------------------------------------------------
    # Attempt execution
    # ------------------------------------------------------------------

    def _execute(self, plan: DeploymentPlan) -> DeployResult:
        deployment_id = generate_deployment_id()
        log_path = self.paths.target_log_dir(plan.key) / f"{deployment_id}.log"
        log = DeploymentLog(log_path)
        started = time.perf_counter()
        commit: str | None = None
        port: int | None = None

        logger.info(f"Deploying {plan.key} ({deployment_id})")
        log.write(f"=== Starting deployment for {plan.key} ===")

        try:
            with self._phase(DeploymentPhase.CHECKOUT, log):
                if plan.repo:
                    cloned = self.git.ensure_checked_out(
                        plan.repo, plan.path, branch=plan.branch, ssh_key=plan.ssh_key
                    )
                    if cloned:
                        log.write(f"Cloned {plan.repo} into {plan.path}")

            with self._phase(DeploymentPhase.SYNC, log):
                if plan.repo:
                    commit = self.git.synchronize(
                        plan.path, plan.branch, ssh_key=plan.ssh_key
                    )
                else:
                    commit = self.git.short_commit(plan.path)
                log.write(f"Pulled commit: {commit}")

            with self._phase(DeploymentPhase.QUIESCE, log):
                if plan.supervised:
                    if self.supervisor.stop(plan.process_name):
                        log.write(f"Stopped {plan.process_name}")

            with self._phase(DeploymentPhase.BUILD, log):
                if plan.build_command:
                    run_command(
                        plan.build_command,
                        cwd=plan.path,
                        env=plan.env,
                        timeout=plan.build_timeout,
                        log=log,
                    )
                else:
                    log.write("No build command configured")

            with self._phase(DeploymentPhase.ACTIVATE, log):
                if plan.before_activate is not None:
                    plan.before_activate()
                if plan.supervised:
                    port = self._activate_process(plan, log)
                else:
                    self._run_script(plan, log)

        except PhaseFailureError as e:
            return self._fail(plan.key, deployment_id, started, e, commit, port, log)

        duration_ms = self._elapsed_ms(started)
        record = DeploymentRecord(
            id=deployment_id,
            commit=commit,
            timestamp=datetime.now(timezone.utc),
            status=DeploymentStatus.SUCCESS,
            duration_ms=duration_ms,
        )
        try:
            with self._phase(DeploymentPhase.RECORD, log):
                self.store.record_deployment(plan.key, record)
        except PhaseFailureError as e:
            logger.error(f"Deployed {plan.key} but could not record it: {e.message}")
            return DeployResult(
                target=plan.key,
                deployment_id=deployment_id,
                success=False,
                duration_ms=duration_ms,
                commit=commit,
                error=e.message,
                phase=e.phase,
                port=port,
                log_path=log_path,
            )

        log.write(f"=== Deployment complete ({duration_ms:.0f}ms) ===")
        logger.info(f"Deployed {plan.key} at {commit} in {duration_ms:.0f}ms")
        return DeployResult(
            target=plan.key,
            deployment_id=deployment_id,
            success=True,
            duration_ms=duration_ms,
            commit=commit,
            port=port,
            log_path=log_path,
        )

    @contextmanager
    def _phase(self, phase: DeploymentPhase, log: DeploymentLog) -> Iterator[None]:
        """Log phase boundaries and convert any failure into PhaseFailureError."""
        log.write(f"starting {phase.value}")
        logger.debug(f"Phase {phase.value} started")
        try:
            yield
        except PhaseFailureError:
            raise
        except Exception as e:
            raise PhaseFailureError(phase.value, _describe(e)) from e
        log.write(f"finished {phase.value}")

    def _activate_process(self, plan: DeploymentPlan, log: DeploymentLog) -> int | None:
        port = plan.resolve_port() if plan.resolve_port is not None else None
        env = dict(plan.env)
        if port is not None:
            env["PORT"] = str(port)

        self.supervisor.delete(plan.process_name)
        self.supervisor.start(
            plan.process_name,
            plan.start_command,
            cwd=plan.path,
            env=env,
            instances=plan.instances,
            max_memory=plan.max_memory,
        )
        self.supervisor.persist()
        log.write(
            f"Started {plan.process_name}"
            + (f" on port {port}" if port is not None else "")
        )
        return port

    def _run_script(self, plan: DeploymentPlan, log: DeploymentLog) -> None:
        if not plan.script:
            logger.warning(f"{plan.key} is in script mode but has no deploy script")
            log.write("No deploy script configured, nothing to activate")
            return
        script = shlex.quote(os.path.join(plan.path, plan.script))
        log.write(f"Running deploy script: {plan.script}")
        run_command(
            f"chmod +x {script} && {script}",
            cwd=plan.path,
            env=plan.env,
            log=log,
        )

    def _fail(
        self,
        key: str,
        deployment_id: str,
        started: float,
        error: PhaseFailureError,
        commit: str | None,
        port: int | None,
        log: DeploymentLog,
    ) -> DeployResult:
        duration_ms = self._elapsed_ms(started)
        log.write(f"=== Deployment FAILED in {error.phase}: {error.message} ===")
        logger.error(f"Deployment of {key} failed in {error.phase}: {error.message}")

        record = DeploymentRecord(
            id=deployment_id,
            commit=commit,
            timestamp=datetime.now(timezone.utc),
            status=DeploymentStatus.FAILED,
            duration_ms=duration_ms,
            error=error.message,
            phase=error.phase,
        )
        try:
            self.store.record_deployment(key, record)
        except ShipyardError as e:
            logger.error(f"Could not record failed deployment of {key}: {e}")

        return DeployResult(
            target=key,
            deployment_id=deployment_id,
            success=False,
            duration_ms=duration_ms,
            commit=commit,
            error=error.message,
            phase=error.phase,
            port=port,
            log_path=log.path,
        )

    def _reject(self, key: str, message: str) -> DeployResult:
        """Record an attempt that failed before any phase could start."""
        deployment_id = generate_deployment_id()
        log = DeploymentLog(self.paths.target_log_dir(key) / f"{deployment_id}.log")
        error = PhaseFailureError(DeploymentPhase.CHECKOUT.value, message)
        return self._fail(
            key, deployment_id, time.perf_counter(), error, None, None, log
        )

    @staticmethod
    def _elapsed_ms(started: float) -> float:
        return round((time.perf_counter() - started) * 1000, 3)


def create_deployment_engine(
    loader: ConfigLoader, global_config: GlobalConfig | None = None
) -> DeploymentEngine:
    """Build an engine wired to git, pm2 and the state documents.

    Args:
        loader: Loader whose paths locate state and logs
        global_config: Global settings (defaults when omitted)

    Returns:
        Configured DeploymentEngine
    """
    config = global_config or GlobalConfig()
    store = StateStore(loader.paths)
    allocator = PortAllocator(
        store,
        descriptor_ports=loader.fixed_app_ports,
        ranges=config.server.port_ranges.as_dict(),
    )
    return DeploymentEngine(
        git=GitClient(config.git.ssh_key),
        supervisor=PM2Supervisor(),
        store=store,
        port_allocator=allocator,
        paths=loader.paths,
        global_config=config,
    )
