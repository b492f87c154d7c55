"""Webhook server implementation.

Provides the FastAPI application factory that receives push events and
manual redeploy requests and hands them to the deployment queue.
"""

from __future__ import annotations

from datetime import datetime, timezone

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from shipyard import __version__
from shipyard.config.loader import ConfigLoader
from shipyard.lib.logging_config import get_logger
from shipyard.serve.models import HealthResponse, WebhookResponse
from shipyard.serve.queue import DeploymentQueue
from shipyard.serve.webhook import (
    EVENT_HEADER,
    SIGNATURE_HEADER,
    DeployFn,
    WebhookDispatcher,
)

logger = get_logger(__name__)


class WebhookServer:
    """HTTP server receiving deployment triggers.

    Attributes:
        loader: Descriptor loader used per request
        queue: Per-target serialization queue shared by all routes
        dispatcher: Request handling logic
        host: The hostname to bind to
        port: The port to listen on
    """

    def __init__(
        self,
        loader: ConfigLoader,
        deploy: DeployFn,
        secret: str | None,
        host: str = "0.0.0.0",  # noqa: S104
        port: int = 9000,
        queue: DeploymentQueue | None = None,
    ) -> None:
        """Initialize the webhook server.

        Args:
            loader: Descriptor loader; descriptors are reloaded per request.
            deploy: Blocking callable that deploys one resolved target.
            secret: Shared HMAC secret. When empty every push is rejected.
            host: The hostname to bind to.
            port: The port to listen on.
            queue: Deployment queue (a new one is created by default).
        """
        self.loader = loader
        self.host = host
        self.port = port
        self.queue = queue or DeploymentQueue()
        self.dispatcher = WebhookDispatcher(loader, self.queue, deploy, secret)

        if not secret:
            logger.warning(
                "No webhook secret configured; every push event will be rejected. "
                "Set server.webhook_secret or SHIPYARD_WEBHOOK_SECRET."
            )

    def create_app(self) -> FastAPI:
        """Create and configure the FastAPI application.

        Returns:
            Configured FastAPI application instance.
        """
        app = FastAPI(
            title="Shipyard Webhook Server",
            description="Receives push events and triggers deployments",
            version=__version__,
            docs_url=None,
            redoc_url=None,
        )

        self._register_webhook_endpoints(app)
        self._register_health_endpoints(app)

        logger.info(f"FastAPI app created for webhook server on port {self.port}")
        return app

    @staticmethod
    def _respond(status_code: int, response: WebhookResponse) -> JSONResponse:
        return JSONResponse(
            status_code=status_code,
            content=response.model_dump(mode="json", exclude_none=True),
        )

    def _register_webhook_endpoints(self, app: FastAPI) -> None:
        """Register push-event and manual deploy endpoints.

        Args:
            app: The FastAPI application.
        """

        async def receive_push(request: Request) -> JSONResponse:
            body = await request.body()
            client = request.headers.get("x-forwarded-for") or (
                request.client.host if request.client else "unknown"
            )
            logger.debug(f"Webhook received from {client}")
            status_code, response = await self.dispatcher.handle_push(
                body,
                request.headers.get(SIGNATURE_HEADER),
                request.headers.get(EVENT_HEADER),
            )
            return self._respond(status_code, response)

        app.add_api_route("/", receive_push, methods=["POST"], tags=["Webhook"])
        app.add_api_route("/webhook", receive_push, methods=["POST"], tags=["Webhook"])

        @app.post("/deploy/{name}", tags=["Webhook"])
        async def manual_deploy(name: str) -> JSONResponse:
            """Redeploy an application by name."""
            status_code, response = await self.dispatcher.handle_manual(name)
            return self._respond(status_code, response)

    def _register_health_endpoints(self, app: FastAPI) -> None:
        """Register health check endpoints.

        Args:
            app: The FastAPI application.
        """

        @app.get("/health", response_model=HealthResponse, tags=["Health"])
        async def health() -> HealthResponse:
            """Basic health check endpoint."""
            return HealthResponse(
                status="healthy",
                timestamp=datetime.now(timezone.utc),
                version=__version__,
            )

    async def stop(self) -> None:
        """Wait for queued deployments to finish."""
        if self.queue.active_keys:
            logger.info(
                f"Waiting for deployments to finish: {', '.join(self.queue.active_keys)}"
            )
        await self.queue.join()
        logger.info("Webhook server stopped")
