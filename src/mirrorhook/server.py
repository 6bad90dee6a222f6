"""aiohttp HTTP front end for the webhook gateway.

The server verifies the request (when secrets are configured), decodes the
body and hands it to :class:`~mirrorhook.gateway.WebhookGateway`. Mirror
updates run later in the :class:`~mirrorhook.jobs.JobQueue`, so GitHub and
GitLab get their response without waiting for git.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Optional
from urllib.parse import parse_qs

from aiohttp import web

from .config import ServerConfig
from .exceptions import PayloadValidationError
from .gateway import WebhookGateway
from .jobs import JobQueue
from .payload import Payload
from .security import verify_github_signature, verify_gitlab_token

logger = logging.getLogger(__name__)

FORM_CONTENT_TYPE = "application/x-www-form-urlencoded"


def decode_body(body: bytes, content_type: Optional[str]) -> Any:
    """Decode a JSON body, or the ``payload`` field of a form-encoded body.

    Raises:
        PayloadValidationError: If the body cannot be decoded
    """
    try:
        text = body.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise PayloadValidationError("payload is not valid UTF-8") from exc

    if content_type == FORM_CONTENT_TYPE:
        fields = parse_qs(text)
        values = fields.get("payload")
        if not values:
            raise PayloadValidationError("payload parameter is missing")
        text = values[0]

    try:
        return json.loads(text)
    except json.JSONDecodeError as exc:
        raise PayloadValidationError(f"invalid JSON payload: {exc}") from exc


class WebhookServer:
    """Receives GitHub and GitLab webhooks.

    Routes:
        ``POST /`` and ``POST /webhook``: webhook endpoint
        ``GET /health``: queue statistics as JSON

    Example:
        >>> server = WebhookServer(config=config.server, gateway=gateway, job_queue=queue)
        >>> await server.start()
        >>> # Server running...
        >>> await server.stop()
    """

    def __init__(
        self,
        config: ServerConfig,
        gateway: WebhookGateway,
        job_queue: JobQueue,
    ):
        """Initialize the server.

        Args:
            config: Listener and verification settings
            gateway: Dispatches decoded webhooks
            job_queue: Queue started and stopped with the server
        """
        self.config = config
        self.gateway = gateway
        self.job_queue = job_queue

        self.app = web.Application()
        self._setup_routes()

        self.runner: Optional[web.AppRunner] = None
        self.site: Optional[web.TCPSite] = None

    def _setup_routes(self) -> None:
        self.app.router.add_post("/", self.handle_webhook)
        self.app.router.add_post("/webhook", self.handle_webhook)
        self.app.router.add_get("/health", self.health_check)

    def _verify(self, request: web.Request, body: bytes, data: Any) -> bool:
        """Authenticate a decoded webhook.

        The credential is chosen by the provider the body belongs to (GitLab
        bodies carry ``object_kind``), never by request headers. Once any
        credential is configured, a body from a provider without one is
        rejected.

        Args:
            request: Incoming request (for the credential headers)
            body: Raw body, as signed by GitHub
            data: Decoded body

        Returns:
            True if the request may be processed
        """
        github_secret = self.config.github_secret
        gitlab_token = self.config.gitlab_token
        if github_secret is None and gitlab_token is None:
            return True

        if Payload(data).is_from_gitlab:
            if gitlab_token is None:
                logger.warning("GitLab webhook rejected: no gitlab_token configured")
                return False
            return verify_gitlab_token(request.headers.get("X-Gitlab-Token"), gitlab_token)

        if github_secret is None:
            logger.warning("GitHub webhook rejected: no github_secret configured")
            return False
        return verify_github_signature(
            body, request.headers.get("X-Hub-Signature-256"), github_secret
        )

    async def handle_webhook(self, request: web.Request) -> web.Response:
        """Handle an incoming webhook.

        Returns:
            200 (scheduled), 202 (ignored), 400 (invalid), 401 (unverified),
            500 (misconfigured repository) or 503 (queue full), as text/plain
        """
        github_event = request.headers.get("X-GitHub-Event")
        gitlab_event = request.headers.get("X-Gitlab-Event")
        delivery_id = request.headers.get("X-GitHub-Delivery", "unknown")

        body = await request.read()

        try:
            data = decode_body(body, request.content_type)
        except PayloadValidationError as e:
            logger.warning(f"Failed to decode webhook payload: {e}")
            return web.Response(status=400, text=str(e))

        if not self._verify(request, body, data):
            logger.warning(
                f"Unverified webhook rejected (delivery {delivery_id})",
                extra={"event": github_event or gitlab_event},
            )
            return web.Response(status=401, text="Invalid signature")

        result = self.gateway.handle(data, github_event=github_event, gitlab_event=gitlab_event)
        return web.Response(status=int(result.status), text=result.message)

    async def health_check(self, request: web.Request) -> web.Response:
        return web.json_response(
            {
                "status": "healthy",
                "queue_size": self.job_queue.qsize(),
                "max_queue_size": self.job_queue.queue_size,
                "workers": self.job_queue.workers,
                "processed": self.job_queue.processed,
                "failed": self.job_queue.failed,
            }
        )

    async def start(self) -> None:
        """Start the job queue and the HTTP listener."""
        await self.job_queue.start()

        self.runner = web.AppRunner(self.app)
        await self.runner.setup()
        self.site = web.TCPSite(self.runner, self.config.listen_host, self.config.listen_port)
        await self.site.start()

        logger.info(
            f"Webhook server listening on {self.config.listen_host}:{self.config.listen_port}"
        )

    async def stop(self) -> None:
        """Stop accepting requests, then drain the job queue."""
        logger.info("Stopping webhook server...")
        if self.site:
            await self.site.stop()
        await self.job_queue.stop()
        if self.runner:
            await self.runner.cleanup()
        logger.info("Webhook server stopped")


__all__ = ["WebhookServer", "decode_body"]
