"""Provider-agnostic view over GitHub and GitLab webhook payloads.

A :class:`Payload` wraps the decoded request body together with the event
headers and classifies the request exactly once into a :class:`PayloadKind`.
Everything downstream (resolution, change extraction, notifier options)
dispatches on that kind instead of re-inspecting provider specific keys.
"""

from __future__ import annotations

import re
from enum import Enum
from types import MappingProxyType
from typing import Any, Mapping, Optional, Tuple
from urllib.parse import urlsplit


GITHUB_EVENT_HEADER = "x-github-event"
GITLAB_EVENT_HEADER = "x-gitlab-event"

# git@host:owner/repo.git
_SSH_URI_PATTERN = re.compile(r"\A[^@/\s]+@(?P<host>[^:/\s]+):(?P<path>.+)\Z")


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class EventClass(str, Enum):
    """Event names understood by the gateway."""

    PUSH = "push"
    GOLLUM = "gollum"  # GitHub wiki change
    WIKI_PAGE = "wiki_page"  # GitLab wiki change
    PING = "ping"
    UNSUPPORTED = "unsupported"


class PayloadKind(str, Enum):
    """Closed set of payload variants produced by classification."""

    GITHUB_PUSH = "github-push"
    GITHUB_WIKI = "github-wiki"
    GITLAB_PUSH = "gitlab-push"
    GITLAB_WIKI = "gitlab-wiki"
    PING = "ping"
    UNSUPPORTED = "unsupported"

    @property
    def is_wiki(self) -> bool:
        return self in (PayloadKind.GITHUB_WIKI, PayloadKind.GITLAB_WIKI)

    @property
    def is_gitlab(self) -> bool:
        return self in (PayloadKind.GITLAB_PUSH, PayloadKind.GITLAB_WIKI)


_REPOSITORY_BROWSERS = {
    PayloadKind.GITHUB_PUSH: "github",
    PayloadKind.GITHUB_WIKI: "github-wiki",
    PayloadKind.GITLAB_PUSH: "gitlab",
    PayloadKind.GITLAB_WIKI: "gitlab-wiki",
}


# ---------------------------------------------------------------------------
# URI helpers
# ---------------------------------------------------------------------------


def split_repository_uri(uri: Any) -> Optional[Tuple[str, str]]:
    """Split an SSH (``user@host:path``) or HTTPS clone URI into host and path.

    Returns:
        ``(host, path)`` with the path stripped of leading slashes, or None
        when the URI is in neither form.

    Example:
        >>> split_repository_uri("git@gitlab.example.com:group/project.git")
        ('gitlab.example.com', 'group/project.git')
    """
    if not isinstance(uri, str):
        return None

    match = _SSH_URI_PATTERN.match(uri)
    if match:
        return match.group("host"), match.group("path").lstrip("/")

    if uri.startswith("https://"):
        parts = urlsplit(uri)
        if not parts.hostname:
            return None
        return parts.hostname, parts.path.lstrip("/")

    return None


def _wiki_clone_url(url: Optional[str]) -> Optional[str]:
    if url is None:
        return None
    return re.sub(r"\.git\Z", ".wiki.git", url)


# ---------------------------------------------------------------------------
# Payload
# ---------------------------------------------------------------------------


class Payload:
    """Immutable view over one webhook request.

    Attributes:
        data: Decoded request body
        metadata: Header derived event names, keyed by lower-case header name

    Example:
        >>> payload = Payload({"repository": {"name": "widgets"}},
        ...                   {"x-github-event": "push"})
        >>> payload["repository.name"]
        'widgets'
        >>> payload.kind
        <PayloadKind.GITHUB_PUSH: 'github-push'>
    """

    __slots__ = ("_data", "_metadata")

    def __init__(
        self,
        data: Mapping[str, Any],
        metadata: Optional[Mapping[str, Optional[str]]] = None,
    ):
        self._data = data
        self._metadata = MappingProxyType(dict(metadata or {}))

    @property
    def data(self) -> Mapping[str, Any]:
        return self._data

    @property
    def metadata(self) -> Mapping[str, Optional[str]]:
        return self._metadata

    def get(self, key: str, default: Any = None) -> Any:
        """Look up a dotted path such as ``"repository.owner.login"``.

        Missing keys and non-mapping intermediates yield ``default``.
        """
        current: Any = self._data
        for part in key.split("."):
            if not isinstance(current, Mapping):
                return default
            current = current.get(part)
            if current is None:
                return default
        return current

    def __getitem__(self, key: str) -> Any:
        return self.get(key)

    # -- classification ----------------------------------------------------

    @property
    def is_from_gitlab(self) -> bool:
        return isinstance(self._data, Mapping) and "object_kind" in self._data

    @property
    def event_name(self) -> Optional[str]:
        """Raw event name: ``object_kind`` for GitLab, the GitHub header otherwise."""
        if self.is_from_gitlab:
            value = self._data.get("object_kind")
        else:
            value = self._metadata.get(GITHUB_EVENT_HEADER)
        return str(value) if value is not None else None

    @property
    def event_class(self) -> EventClass:
        try:
            return EventClass(self.event_name)
        except ValueError:
            return EventClass.UNSUPPORTED

    @property
    def kind(self) -> PayloadKind:
        event_class = self.event_class
        if event_class is EventClass.PING:
            return PayloadKind.PING
        if self.is_from_gitlab:
            if event_class is EventClass.PUSH:
                return PayloadKind.GITLAB_PUSH
            if event_class is EventClass.WIKI_PAGE:
                return PayloadKind.GITLAB_WIKI
        else:
            if event_class is EventClass.PUSH:
                return PayloadKind.GITHUB_PUSH
            if event_class is EventClass.GOLLUM:
                return PayloadKind.GITHUB_WIKI
        return PayloadKind.UNSUPPORTED

    @property
    def is_wiki(self) -> bool:
        return self.kind.is_wiki

    @property
    def repository_browser(self) -> Optional[str]:
        """Link style tag passed to the commit mailer."""
        return _REPOSITORY_BROWSERS.get(self.kind)

    # -- clone URLs ----------------------------------------------------------

    @property
    def http_clone_url(self) -> Optional[str]:
        kind = self.kind
        if kind is PayloadKind.GITLAB_WIKI:
            return self.get("wiki.git_http_url")
        if kind is PayloadKind.GITLAB_PUSH:
            return self.get("repository.git_http_url")
        if kind is PayloadKind.GITHUB_WIKI:
            return _wiki_clone_url(self.get("repository.clone_url"))
        clone_url = self.get("repository.clone_url")
        if clone_url is None and self.get("repository.url") is not None:
            clone_url = f"{self.get('repository.url')}.git"
        return clone_url

    @property
    def ssh_clone_url(self) -> Optional[str]:
        kind = self.kind
        if kind is PayloadKind.GITLAB_WIKI:
            return self.get("wiki.git_ssh_url")
        if kind is PayloadKind.GITLAB_PUSH:
            return self.get("repository.git_ssh_url")
        if kind is PayloadKind.GITHUB_WIKI:
            return _wiki_clone_url(self.get("repository.ssh_url"))
        return self.get("repository.ssh_url")

    @property
    def repository_uri(self) -> Optional[str]:
        """URI that identifies the hosting domain (and, for GitLab, the owner).

        Returns the first candidate in SSH or HTTPS form, or the first present
        candidate when none parses so that the caller can report it.
        """
        kind = self.kind
        if kind is PayloadKind.GITLAB_WIKI:
            keys = ("wiki.git_ssh_url", "wiki.git_http_url")
        elif kind.is_gitlab:
            keys = ("repository.url", "repository.git_ssh_url", "repository.git_http_url")
        else:
            keys = ("repository.url", "repository.clone_url", "repository.ssh_url")

        candidates = [self.get(key) for key in keys]
        for candidate in candidates:
            if split_repository_uri(candidate) is not None:
                return candidate
        for candidate in candidates:
            if candidate is not None:
                return candidate
        return None

    def __repr__(self) -> str:
        return f"Payload(kind={self.kind.value!r}, event={self.event_name!r})"


__all__ = [
    "EventClass",
    "GITHUB_EVENT_HEADER",
    "GITLAB_EVENT_HEADER",
    "Payload",
    "PayloadKind",
    "split_repository_uri",
]
