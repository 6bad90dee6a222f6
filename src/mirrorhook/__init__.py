"""Webhook gateway that keeps bare git mirrors in sync and sends commit mail.

GitHub (push, gollum) and GitLab (push, wiki_page) webhooks are normalized by
:class:`Payload`, resolved to a :class:`Repository` through layered
per-owner/per-repository options, and scheduled on a :class:`JobQueue`. The
job clones or fetches the mirror under a file lock and then runs an external
commit mailer with the ``"<before> <after> <ref>"`` change line.

Example usage:
    >>> from mirrorhook import RepositoryResolver, WebhookGateway, JobQueue
    >>> queue = JobQueue(workers=4)
    >>> gateway = WebhookGateway(RepositoryResolver({"to": "commits@example.com"}), queue)
    >>> result = gateway.handle(body, github_event="push")
"""

from .change import ChangeDescriptor, extract_change
from .config import ConfigurationManager, GatewayConfig, ServerConfig
from .exceptions import (
    ConfigurationError,
    DisabledTargetError,
    JobQueueFullError,
    MirrorHookError,
    NotifierError,
    PayloadValidationError,
    RepositoryConfigurationError,
    SyncError,
)
from .gateway import DispatchResult, WebhookGateway
from .jobs import JobQueue
from .options import RepositoryOptions, merge_options, option_layers
from .payload import EventClass, Payload, PayloadKind
from .repository import MirrorState, Repository
from .resolver import RepositoryResolver, RepositoryTarget
from .server import WebhookServer

__version__ = "0.1.0"

__all__ = [
    # Payloads
    "EventClass",
    "Payload",
    "PayloadKind",
    # Resolution
    "RepositoryOptions",
    "RepositoryResolver",
    "RepositoryTarget",
    "merge_options",
    "option_layers",
    # Changes
    "ChangeDescriptor",
    "extract_change",
    # Mirrors
    "MirrorState",
    "Repository",
    # Service
    "DispatchResult",
    "JobQueue",
    "WebhookGateway",
    "WebhookServer",
    # Configuration
    "ConfigurationManager",
    "GatewayConfig",
    "ServerConfig",
    # Errors
    "ConfigurationError",
    "DisabledTargetError",
    "JobQueueFullError",
    "MirrorHookError",
    "NotifierError",
    "PayloadValidationError",
    "RepositoryConfigurationError",
    "SyncError",
]
