"""Push-event and manual trigger handling for the webhook server.

Requests are acknowledged before the deployment runs; the outcome of a
queued deployment is visible only in the deployment history and logs.
"""

from __future__ import annotations

import asyncio
import hashlib
import hmac
import json
from collections.abc import Callable

from pydantic import ValidationError as PydanticValidationError

from shipyard.config.loader import ConfigLoader
from shipyard.deploy.engine import DeployResult
from shipyard.deploy.targets import Target, find_target_by_repo
from shipyard.lib.errors import ShipyardError
from shipyard.lib.logging_config import get_logger
from shipyard.serve.models import PushEvent, WebhookResponse, WebhookStatus
from shipyard.serve.queue import DeploymentQueue

logger = get_logger(__name__)

SIGNATURE_HEADER = "X-Hub-Signature-256"
EVENT_HEADER = "X-GitHub-Event"
SIGNATURE_PREFIX = "sha256="

DeployFn = Callable[[Target], DeployResult]


def compute_signature(secret: str, body: bytes) -> str:
    """Return the ``sha256=<hex>`` signature of ``body``."""
    digest = hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()
    return f"{SIGNATURE_PREFIX}{digest}"


def verify_signature(secret: str | None, body: bytes, header: str | None) -> bool:
    """Check an HMAC-SHA256 signature header against the raw request body.

    An empty secret or a missing header never verifies. The comparison is
    constant-time.
    """
    if not secret or not header:
        return False
    expected = compute_signature(secret, body)
    return hmac.compare_digest(expected.encode("utf-8"), header.strip().encode("utf-8"))


class WebhookDispatcher:
    """Turns verified requests into queued deployments.

    Each handler returns ``(status_code, response)`` so the HTTP layer stays
    a thin adapter. Descriptor files are read in a worker thread so a slow
    disk never stalls the event loop.

    Args:
        loader: Descriptor loader; descriptors are reloaded per request
        queue: Per-target serialization queue
        deploy: Blocking callable that deploys one target
        secret: Shared HMAC secret
    """

    def __init__(
        self,
        loader: ConfigLoader,
        queue: DeploymentQueue,
        deploy: DeployFn,
        secret: str | None,
    ) -> None:
        self.loader = loader
        self.queue = queue
        self.deploy = deploy
        self.secret = secret

    async def handle_push(
        self, body: bytes, signature: str | None, event: str | None
    ) -> tuple[int, WebhookResponse]:
        """Verify, filter and enqueue a push event."""
        if not verify_signature(self.secret, body, signature):
            logger.warning("Rejected webhook with missing or invalid signature")
            return 401, WebhookResponse(
                status=WebhookStatus.REJECTED, message="Unauthorized"
            )

        if event != "push":
            logger.debug(f"Ignoring event: {event}")
            return 200, WebhookResponse(
                status=WebhookStatus.IGNORED, message=f"Event {event} ignored"
            )

        try:
            push = PushEvent.model_validate(json.loads(body))
        except (ValueError, PydanticValidationError) as e:
            logger.warning(f"Malformed push payload: {e}")
            return 400, WebhookResponse(
                status=WebhookStatus.REJECTED, message="Invalid payload"
            )

        repository = push.repository
        branch = push.branch
        if branch is None:
            logger.info(f"Ignoring push to non-branch ref {push.ref}")
            return 200, WebhookResponse(
                status=WebhookStatus.IGNORED, message=f"Ref {push.ref} ignored"
            )
        logger.info(f"Push to {repository.full_name or repository.name} ({branch})")

        try:
            target = await asyncio.to_thread(
                find_target_by_repo, self.loader, repository.full_name, repository.name
            )
        except ShipyardError as e:
            logger.error(f"Could not load descriptors for webhook: {e}")
            return 200, WebhookResponse(
                status=WebhookStatus.ERROR, message="Configuration unavailable"
            )

        if target is None:
            logger.info(f"No target configured for {repository.full_name}")
            return 200, WebhookResponse(
                status=WebhookStatus.IGNORED, message="Repository not configured"
            )

        if branch != target.branch:
            logger.info(
                f"Ignoring push to {branch} for {target.key}, "
                f"expected {target.branch}"
            )
            return 200, WebhookResponse(
                status=WebhookStatus.IGNORED,
                message=f"Branch {branch} ignored",
                target=target.key,
            )

        self._enqueue(target)
        return 200, WebhookResponse(
            status=WebhookStatus.ACCEPTED,
            message="Deployment started",
            target=target.key,
        )

    async def handle_manual(self, name: str) -> tuple[int, WebhookResponse]:
        """Enqueue a redeploy of the named application."""
        logger.info(f"Manual deployment triggered for {name}")
        try:
            app = await asyncio.to_thread(self.loader.load_app_config, name)
        except ShipyardError as e:
            logger.error(f"Cannot deploy {name}: {e}")
            return 400, WebhookResponse(
                status=WebhookStatus.REJECTED,
                message=f"Invalid configuration for {name}",
            )

        if app is None:
            return 404, WebhookResponse(
                status=WebhookStatus.REJECTED, message=f"App not found: {name}"
            )

        target = Target.for_app(app)
        self._enqueue(target)
        return 200, WebhookResponse(
            status=WebhookStatus.ACCEPTED,
            message=f"Deployment started for {name}",
            target=target.key,
        )

    def _enqueue(self, target: Target) -> None:
        key = target.key

        def run() -> None:
            result = self.deploy(target)
            if result.success:
                logger.info(f"Deployed {target.kind.value} {key} at {result.commit}")
            else:
                logger.error(
                    f"Deployment failed for {key} in {result.phase}: {result.error}"
                )

        self.queue.submit(key, run)
