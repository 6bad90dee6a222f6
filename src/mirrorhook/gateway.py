"""Request-independent core of the webhook receiver.

:class:`WebhookGateway` takes a decoded body and the provider event headers,
decides synchronously whether the request is accepted, ignored or rejected,
and on acceptance submits one work unit to the job queue.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from http import HTTPStatus
from typing import Any, Optional

from .change import ChangeDescriptor, extract_change
from .exceptions import (
    DisabledTargetError,
    JobQueueFullError,
    PayloadValidationError,
    RepositoryConfigurationError,
)
from .payload import GITHUB_EVENT_HEADER, GITLAB_EVENT_HEADER, Payload, PayloadKind
from .repository import Repository
from .resolver import RepositoryResolver

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DispatchResult:
    """Outcome of handling one webhook request."""

    status: HTTPStatus
    message: str
    submitted: bool = False


class WebhookGateway:
    """Classify, resolve and schedule webhook requests.

    Attributes:
        resolver: Repository resolver holding the option tree
        job_queue: Anything with ``submit(work, name=...)``
    """

    def __init__(self, resolver: RepositoryResolver, job_queue: Any):
        """Initialize the gateway.

        Args:
            resolver: Resolver holding the option tree
            job_queue: Queue that runs accepted work units
        """
        self.resolver = resolver
        self.job_queue = job_queue

    def handle(
        self,
        data: Any,
        github_event: Optional[str] = None,
        gitlab_event: Optional[str] = None,
    ) -> DispatchResult:
        """Decide synchronously what to do with one webhook body.

        Args:
            data: Decoded request body
            github_event: ``X-GitHub-Event`` header value
            gitlab_event: ``X-Gitlab-Event`` header value

        Returns:
            200 ``pong`` for ping, 200 once the work unit is queued, 202 for
            disabled or non-target repositories, 400 for unsupported or
            invalid payloads, 500 for unusable repository options and 503
            when the job queue is full
        """
        payload = Payload(
            data if data is not None else {},
            {GITHUB_EVENT_HEADER: github_event, GITLAB_EVENT_HEADER: gitlab_event},
        )
        kind = payload.kind

        if kind is PayloadKind.PING:
            logger.info("Received ping event")
            return DispatchResult(HTTPStatus.OK, "pong")
        if kind is PayloadKind.UNSUPPORTED:
            return self._reject(
                HTTPStatus.BAD_REQUEST, f"Unsupported event: <{payload.event_name}>"
            )

        try:
            repository = self.resolver.resolve(payload)
            change = extract_change(payload)
        except PayloadValidationError as e:
            return self._reject(HTTPStatus.BAD_REQUEST, str(e))
        except DisabledTargetError as e:
            logger.info(str(e), extra={"event": payload.event_name})
            return DispatchResult(HTTPStatus.ACCEPTED, str(e))
        except RepositoryConfigurationError as e:
            logger.error(f"Repository configuration error: {e}")
            return DispatchResult(HTTPStatus.INTERNAL_SERVER_ERROR, str(e))

        return self._schedule(repository, change)

    def _schedule(self, repository: Repository, change: ChangeDescriptor) -> DispatchResult:
        def work() -> None:
            repository.process(change.before, change.after, change.reference)

        try:
            self.job_queue.submit(work, name=f"{repository.full_name} {change}")
        except JobQueueFullError as e:
            return DispatchResult(HTTPStatus.SERVICE_UNAVAILABLE, str(e))

        logger.info(
            f"Scheduled mirror update for {repository.full_name}: {change}",
            extra={
                "repository": repository.full_name,
                "kind": repository.payload.kind.value,
                "change": str(change),
            },
        )
        return DispatchResult(
            HTTPStatus.OK,
            f"scheduled: <{repository.full_name}>: <{change}>",
            submitted=True,
        )

    def _reject(self, status: HTTPStatus, message: str) -> DispatchResult:
        logger.warning(f"Rejected webhook: {message}", extra={"status": int(status)})
        return DispatchResult(status, message)


__all__ = ["DispatchResult", "WebhookGateway"]
