"""Request and response models for the webhook server."""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

BRANCH_REF_PREFIX = "refs/heads/"


class WebhookStatus(str, Enum):
    """Acknowledgement outcome returned to the caller."""

    ACCEPTED = "accepted"
    IGNORED = "ignored"
    REJECTED = "rejected"
    ERROR = "error"


class WebhookResponse(BaseModel):
    """Body of every webhook and manual-deploy response."""

    status: WebhookStatus
    message: str
    target: str | None = Field(default=None, description="Target identifier")


class HealthResponse(BaseModel):
    """Liveness response."""

    status: str = "healthy"
    timestamp: datetime
    version: str


class PushRepository(BaseModel):
    """Repository section of a push payload."""

    model_config = ConfigDict(extra="ignore")

    name: str = ""
    full_name: str = ""


class PushEvent(BaseModel):
    """The parts of a push payload needed to pick a deploy target."""

    model_config = ConfigDict(extra="ignore")

    ref: str = Field(..., min_length=1)
    repository: PushRepository

    @property
    def branch(self) -> str | None:
        """Branch name of a ``refs/heads/`` ref, ``None`` for tags and other refs.

        Everything after the prefix is kept, so ``refs/heads/release/1.0`` is
        ``release/1.0``.
        """
        if not self.ref.startswith(BRANCH_REF_PREFIX):
            return None
        return self.ref[len(BRANCH_REF_PREFIX) :] or None
