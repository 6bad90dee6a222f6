"""Resolve a webhook payload to the repository whose mirror it updates."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Any, Mapping, Optional

from .exceptions import DisabledTargetError, PayloadValidationError
from .options import merge_options, option_layers
from .payload import Payload, PayloadKind, split_repository_uri
from .repository import CommandRunner, Repository

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RepositoryTarget:
    """Fully resolved identity of a repository."""

    domain: str
    owner_name: str
    repository_name: str


# ---------------------------------------------------------------------------
# URI parsing
# ---------------------------------------------------------------------------


def extract_domain(repository_uri: Any) -> Optional[str]:
    """Return the host of an SSH (``user@host:path``) or HTTPS URI."""
    parts = split_repository_uri(repository_uri)
    if parts is None:
        return None
    return parts[0]


def extract_uri_owner(repository_uri: Any) -> Optional[str]:
    """Return the path before the repository name, e.g. ``group/sub``.

    >>> extract_uri_owner("git@gitlab.example.com:group/sub/project.git")
    'group/sub'
    """
    parts = split_repository_uri(repository_uri)
    if parts is None:
        return None
    path = re.sub(r"\.git\Z", "", parts[1].rstrip("/"))
    owner, _, _ = path.rpartition("/")
    return owner or None


def _name_from_clone_url(url: Any) -> Optional[str]:
    parts = split_repository_uri(url)
    if parts is None:
        return None
    name = re.sub(r"\.git\Z", "", parts[1].rstrip("/")).rpartition("/")[2]
    return name or None


# ---------------------------------------------------------------------------
# Identity checks
# ---------------------------------------------------------------------------

# Each component becomes one directory level below the mirrors root.
_PATH_COMPONENT_PATTERN = re.compile(r"[A-Za-z0-9_.\-]+")


def is_path_component(value: str) -> bool:
    """Return True if ``value`` is safe as a single mirror path segment.

    >>> is_path_component("widgets.io")
    True
    >>> is_path_component("..")
    False
    """
    return (
        _PATH_COMPONENT_PATTERN.fullmatch(value) is not None
        and value not in (".", "..")
    )


def validate_target(target: RepositoryTarget) -> RepositoryTarget:
    """Reject identities that cannot be laid out under the mirrors root.

    The domain and repository name must each be one path segment; the owner
    may span several (nested GitLab groups), each of which must be one.

    Args:
        target: Identity extracted from the payload

    Returns:
        ``target`` unchanged

    Raises:
        PayloadValidationError: If any component is empty, ``.``, ``..``,
            absolute or contains characters outside ``[A-Za-z0-9_.-]``
    """
    if not is_path_component(target.domain):
        raise PayloadValidationError(f"invalid repository domain: <{target.domain!r}>")
    if not all(is_path_component(part) for part in target.owner_name.split("/")):
        raise PayloadValidationError(
            f"invalid repository owner name: <{target.owner_name!r}>"
        )
    if not is_path_component(target.repository_name):
        raise PayloadValidationError(
            f"invalid repository name: <{target.repository_name!r}>"
        )
    return target


# ---------------------------------------------------------------------------
# Resolver
# ---------------------------------------------------------------------------


class RepositoryResolver:
    """Turn payloads into ready-to-run :class:`Repository` instances.

    Attributes:
        options: Raw option tree: global defaults plus ``owners`` and
            ``domains`` override subtrees
        runner: Command runner handed to every repository (tests inject one)
    """

    def __init__(
        self,
        options: Mapping[str, Any],
        runner: Optional[CommandRunner] = None,
    ):
        """Initialize the resolver.

        Args:
            options: Option tree from the configuration file
            runner: Command runner for constructed repositories
        """
        self.options = options
        self.runner = runner

    def resolve(self, payload: Payload) -> Repository:
        """Resolve ``payload``.

        Raises:
            PayloadValidationError: If the payload lacks repository identity
            DisabledTargetError: If the repository is disabled or filtered out
            RepositoryConfigurationError: If resolved options are unusable
        """
        target = self.resolve_target(payload)
        logger.debug(
            f"Resolved {payload.kind.value} payload to "
            f"{target.domain}/{target.owner_name}/{target.repository_name}",
            extra={"domain": target.domain, "owner": target.owner_name},
        )
        return self.build_repository(target, payload)

    def resolve_target(self, payload: Payload) -> RepositoryTarget:
        """Extract the (domain, owner, name) identity of ``payload``.

        Args:
            payload: A push or wiki payload

        Returns:
            The validated target

        Raises:
            PayloadValidationError: If a component is missing or unusable as
                a mirror path segment
        """
        if payload.kind is PayloadKind.GITLAB_WIKI:
            target = self._resolve_gitlab_wiki_target(payload)
        else:
            target = self._resolve_repository_target(payload)
        return validate_target(target)

    def repository_options(
        self, domain: str, owner_name: str, repository_name: str
    ) -> dict:
        """Merge defaults and overrides for one repository.

        Args:
            domain: Hosting domain
            owner_name: Owner or group path
            repository_name: Repository name

        Returns:
            Flat option mapping, most specific override winning
        """
        layers = option_layers(self.options, domain, owner_name, repository_name)
        return merge_options(self.options, layers)

    def build_repository(self, target: RepositoryTarget, payload: Payload) -> Repository:
        """Construct the repository for ``target`` and apply the gates.

        Args:
            target: Resolved identity
            payload: The payload the identity came from

        Returns:
            An enabled, targeted :class:`Repository`

        Raises:
            DisabledTargetError: If ``enabled`` is false or the name does not
                match ``targets``
            RepositoryConfigurationError: If the merged options are unusable
        """
        options = self.repository_options(
            target.domain, target.owner_name, target.repository_name
        )
        repository = Repository(
            target.domain,
            target.owner_name,
            target.repository_name,
            payload,
            options,
            runner=self.runner,
        )
        if not repository.enabled:
            raise DisabledTargetError(
                f"ignore disabled repository: "
                f"<{target.owner_name!r}>:<{target.repository_name!r}>"
            )
        if not repository.is_target:
            raise DisabledTargetError(
                f"ignore non-target repository: "
                f"<{target.owner_name!r}>:<{target.repository_name!r}>"
            )
        return repository

    # -- per kind ------------------------------------------------------------

    def _resolve_repository_target(self, payload: Payload) -> RepositoryTarget:
        repository = payload["repository"]
        if repository is None:
            raise PayloadValidationError("repository information is missing")
        if not isinstance(repository, Mapping):
            raise PayloadValidationError(
                f"invalid repository information format: <{repository!r}>"
            )

        repository_uri = payload.repository_uri
        domain = extract_domain(repository_uri)
        if domain is None:
            raise PayloadValidationError(f"invalid repository URI: <{repository!r}>")

        repository_name = repository.get("name")
        if not repository_name and not payload.is_from_gitlab:
            repository_name = _name_from_clone_url(repository.get("clone_url"))
        if not repository_name:
            raise PayloadValidationError(f"repository name is missing: <{repository!r}>")

        owner_name = self._owner_name(payload, repository_uri)
        if not owner_name:
            raise PayloadValidationError(
                f"repository owner or owner name is missing: <{repository!r}>"
            )

        return RepositoryTarget(domain, str(owner_name), str(repository_name))

    def _resolve_gitlab_wiki_target(self, payload: Payload) -> RepositoryTarget:
        wiki = payload["wiki"]
        if wiki is None:
            raise PayloadValidationError("Wiki information is missing")
        if not isinstance(wiki, Mapping):
            raise PayloadValidationError(f"invalid Wiki information format: <{wiki!r}>")

        repository_uri = payload.repository_uri
        domain = extract_domain(repository_uri)
        if domain is None:
            raise PayloadValidationError(f"invalid repository URI: <{wiki!r}>")

        project = payload["project"]
        if project is None:
            raise PayloadValidationError("Project information is missing")
        if not isinstance(project, Mapping):
            raise PayloadValidationError(f"invalid Project information format: <{project!r}>")

        repository_name = project.get("name")
        if not repository_name:
            raise PayloadValidationError(f"repository name is missing: <{project!r}>")

        owner_name = self._owner_name(payload, repository_uri)
        if not owner_name:
            raise PayloadValidationError(
                f"repository owner or owner name is missing: <{project!r}>"
            )

        return RepositoryTarget(domain, str(owner_name), str(repository_name))

    def _owner_name(self, payload: Payload, repository_uri: Any) -> Optional[str]:
        if payload.is_from_gitlab:
            return extract_uri_owner(repository_uri)
        owner = payload["repository.owner"]
        if not isinstance(owner, Mapping):
            return None
        return owner.get("name") or owner.get("login")


__all__ = [
    "RepositoryResolver",
    "RepositoryTarget",
    "extract_domain",
    "extract_uri_owner",
    "is_path_component",
    "validate_target",
]
