"""Persisted state models: port allocations and deployment history."""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, RootModel

from shipyard.config.defaults import DEFAULT_RESERVED_PORTS, MAX_HISTORY, PORT_RANGES


class RangeCursor(BaseModel):
    """A named port range with its advancing allocation cursor."""

    model_config = ConfigDict(extra="forbid")

    start: int
    end: int
    next: int


def default_range_cursors() -> dict[str, RangeCursor]:
    return {
        name: RangeCursor(start=bounds["start"], end=bounds["end"], next=bounds["start"])
        for name, bounds in PORT_RANGES.items()
    }


class PortAllocations(BaseModel):
    """Port allocation document (state/ports.json)."""

    model_config = ConfigDict(extra="forbid")

    allocations: dict[str, int] = Field(
        default_factory=dict, description="App name -> sticky port"
    )
    reserved: list[int] = Field(default_factory=lambda: list(DEFAULT_RESERVED_PORTS))
    engine_managed: dict[str, list[int]] = Field(
        default_factory=dict, description="Engine name -> ports it binds itself"
    )
    ranges: dict[str, RangeCursor] = Field(default_factory=default_range_cursors)

    def used_ports(self) -> set[int]:
        """Union of allocated, reserved and engine-managed ports."""
        used = set(self.allocations.values())
        used.update(self.reserved)
        for ports in self.engine_managed.values():
            used.update(ports)
        return used


class DeploymentStatus(str, Enum):
    """Outcome of a deployment attempt."""

    SUCCESS = "success"
    FAILED = "failed"
    IN_PROGRESS = "in_progress"


class DeploymentRecord(BaseModel):
    """Immutable record of one deployment attempt."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    id: str = Field(..., description="Sortable timestamp-derived identifier")
    commit: str | None = Field(default=None, description="Short commit hash")
    timestamp: datetime
    status: DeploymentStatus
    duration_ms: float | None = Field(default=None, ge=0)
    error: str | None = None
    phase: str | None = Field(default=None, description="Failing phase, if any")


class TargetDeployments(BaseModel):
    """History of one target, newest first."""

    model_config = ConfigDict(extra="forbid")

    current: str | None = None
    history: list[DeploymentRecord] = Field(default_factory=list)

    def push(self, record: DeploymentRecord) -> None:
        """Prepend a record, mark it current and cap the history."""
        self.current = record.id
        self.history = [record, *self.history][:MAX_HISTORY]

    def last_successful(self) -> DeploymentRecord | None:
        return next(
            (r for r in self.history if r.status == DeploymentStatus.SUCCESS), None
        )


class DeploymentsState(RootModel[dict[str, TargetDeployments]]):
    """Deployment history document keyed by target identifier."""

    root: dict[str, TargetDeployments] = Field(default_factory=dict)

    def get(self, target: str) -> TargetDeployments | None:
        return self.root.get(target)

    def for_target(self, target: str) -> TargetDeployments:
        return self.root.setdefault(target, TargetDeployments())

