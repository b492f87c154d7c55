"""Deployment state tracking helpers.

Two JSON documents live under ``<SHIPYARD_DIR>/state``: port allocations and
deployment history. Every mutation reloads the document from disk, applies
the change and rewrites it atomically while holding that document's lock.
"""

from __future__ import annotations

import json
import os
import tempfile
import threading
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import TypeVar

from pydantic import BaseModel, ValidationError
from ulid import ULID

from shipyard.config.paths import ShipyardPaths
from shipyard.lib.errors import DeploymentError
from shipyard.lib.logging_config import get_logger
from shipyard.models.state import (
    DeploymentRecord,
    DeploymentsState,
    PortAllocations,
    TargetDeployments,
)

logger = get_logger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)
ResultT = TypeVar("ResultT")

_registry_lock = threading.Lock()
_document_locks: dict[Path, threading.RLock] = {}


def document_lock(path: Path) -> threading.RLock:
    """Return the process-wide lock guarding a state document."""
    key = path.resolve()
    with _registry_lock:
        lock = _document_locks.get(key)
        if lock is None:
            lock = threading.RLock()
            _document_locks[key] = lock
        return lock


def generate_deployment_id() -> str:
    """Return a new timestamp-derived, lexicographically sortable id."""
    return str(ULID())


def load_document(path: Path, model: type[ModelT]) -> ModelT:
    """Load a state document, returning defaults when it is absent or empty."""
    if not path.exists():
        return model()

    try:
        content = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise DeploymentError(
            operation="state",
            message=f"Failed to read state at {path}: {exc}",
        ) from exc

    if not content.strip():
        return model()

    try:
        return model.model_validate_json(content)
    except ValidationError as exc:
        raise DeploymentError(
            operation="state",
            message=f"Invalid state format in {path}: {exc}",
        ) from exc


def save_document(path: Path, document: BaseModel) -> None:
    """Persist a state document by writing a temp file and renaming it."""
    payload = json.dumps(document.model_dump(mode="json"), indent=2)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(
            prefix=f".{path.name}.", suffix=".tmp", dir=path.parent
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(payload)
                handle.flush()
                os.fsync(handle.fileno())
            os.replace(tmp_name, path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise
    except OSError as exc:
        raise DeploymentError(
            operation="state",
            message=f"Failed to write state to {path}: {exc}",
        ) from exc


class StateStore:
    """Reads and mutates the persisted state documents."""

    def __init__(self, paths: ShipyardPaths) -> None:
        self.paths = paths

    # ------------------------------------------------------------------
    # Port allocations
    # ------------------------------------------------------------------

    def load_ports(self) -> PortAllocations:
        with document_lock(self.paths.ports_file):
            return load_document(self.paths.ports_file, PortAllocations)

    @contextmanager
    def ports_transaction(self) -> Iterator[PortAllocations]:
        """Hold the ports lock across a load / mutate / save cycle.

        The document is saved only if the block exits without raising.
        """
        path = self.paths.ports_file
        with document_lock(path):
            state = load_document(path, PortAllocations)
            yield state
            save_document(path, state)

    def update_ports(
        self, mutate: Callable[[PortAllocations], ResultT]
    ) -> ResultT:
        """Apply ``mutate`` to the freshly loaded ports document and save it."""
        with self.ports_transaction() as state:
            return mutate(state)

    # ------------------------------------------------------------------
    # Deployment history
    # ------------------------------------------------------------------

    def load_deployments(self) -> DeploymentsState:
        with document_lock(self.paths.deployments_file):
            return load_document(self.paths.deployments_file, DeploymentsState)

    def record_deployment(self, target: str, record: DeploymentRecord) -> None:
        """Prepend a record to a target's history and persist it.

        Other targets' histories are reloaded from disk first, so concurrent
        attempts on different targets never drop each other's records.
        """
        path = self.paths.deployments_file
        with document_lock(path):
            state = load_document(path, DeploymentsState)
            state.for_target(target).push(record)
            save_document(path, state)
        logger.debug(f"Recorded deployment {record.id} for {target}")

    def get_history(self, target: str) -> TargetDeployments:
        """Return a target's history, empty if it has never been deployed."""
        return self.load_deployments().get(target) or TargetDeployments()
