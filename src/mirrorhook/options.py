"""Layered per-repository options.

Operators configure host wide defaults and narrow them with override
subtrees::

    to: commits@example.com
    owners:
      acme:
        enabled: false
        repositories:
          widgets: {enabled: true}
    domains:
      gitlab.example.com:
        owners:
          acme:
            repositories:
              widgets: {use_ssh: true}

:func:`option_layers` picks the subtrees that apply to one repository and
:func:`merge_options` folds them over the defaults, later layers winning.
"""

from __future__ import annotations

import re
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

# Keys that hold nested override subtrees rather than option values.
OVERRIDE_KEYS = frozenset({"domains", "owners", "repositories"})

DEFAULT_TARGET_PATTERN = r"[A-Za-z0-9_.\-]+"
DEFAULT_NOTIFIER = "git-commit-mailer"


# ---------------------------------------------------------------------------
# Merging
# ---------------------------------------------------------------------------


def _subtree(tree: Optional[Mapping[str, Any]], key: str, name: str) -> Mapping[str, Any]:
    if not isinstance(tree, Mapping):
        return {}
    children = tree.get(key)
    if not isinstance(children, Mapping):
        return {}
    child = children.get(name)
    return child if isinstance(child, Mapping) else {}


def option_layers(
    tree: Mapping[str, Any],
    domain: str,
    owner_name: str,
    repository_name: str,
) -> List[Mapping[str, Any]]:
    """Return the override layers for one repository, lowest precedence first.

    Order: owner, owner+repository, domain, domain+owner,
    domain+owner+repository.
    """
    owner = _subtree(tree, "owners", owner_name)
    owner_repository = _subtree(owner, "repositories", repository_name)

    domain_tree = _subtree(tree, "domains", domain)
    domain_owner = _subtree(domain_tree, "owners", owner_name)
    domain_owner_repository = _subtree(domain_owner, "repositories", repository_name)

    return [owner, owner_repository, domain_tree, domain_owner, domain_owner_repository]


def merge_options(
    base: Mapping[str, Any],
    layers: Sequence[Mapping[str, Any]] = (),
) -> Dict[str, Any]:
    """Fold ``layers`` over ``base`` left to right; later keys win.

    Override subtree keys (``domains``, ``owners``, ``repositories``) are
    dropped from every input so the result is flat.

    Example:
        >>> merge_options({"enabled": True, "to": "a@x"}, [{"enabled": False}])
        {'enabled': False, 'to': 'a@x'}
    """
    merged: Dict[str, Any] = {}
    for layer in (base, *layers):
        for key, value in layer.items():
            if key in OVERRIDE_KEYS:
                continue
            merged[key] = value
    return merged


# ---------------------------------------------------------------------------
# Typed options
# ---------------------------------------------------------------------------


def _as_list(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return [str(item) for item in value if item is not None]
    return [str(value)]


class RepositoryOptions(BaseModel):
    """Validated options for one resolved repository.

    Attributes:
        to: Commit mail recipients
        n_retries: Extra clone/fetch attempts after the first failure
        enabled: Whether the repository is processed at all
        use_ssh: Clone over SSH instead of HTTPS
        targets: Regular expressions a repository name must fully match
        base_dir: Directory that relative defaults are resolved against
        mirrors_directory: Root of the mirror tree (default ``<base_dir>/mirrors``)
        git: git executable
        git_commit_mailer: Commit mailer executable (``commit_email`` alias)
        ruby: Optional interpreter to run the commit mailer with
        lock_timeout: Seconds to wait for a mirror lock (-1 waits forever)
        git_timeout: Seconds before a git child process is abandoned
        notifier_timeout: Seconds before the commit mailer is abandoned
    """

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    to: List[str] = Field(default_factory=list)
    n_retries: int = Field(default=3, ge=0)
    enabled: bool = True
    use_ssh: bool = False
    targets: List[str] = Field(default_factory=lambda: [DEFAULT_TARGET_PATTERN])

    base_dir: Path = Field(default_factory=Path.cwd)
    mirrors_directory: Optional[Path] = None
    git: str = "git"
    git_commit_mailer: str = DEFAULT_NOTIFIER
    ruby: Optional[str] = None

    from_: Optional[str] = Field(default=None, alias="from")
    from_domain: Optional[str] = None
    sender: Optional[str] = None
    sleep_per_mail: Optional[float] = Field(default=None, ge=0)
    send_per_to: bool = False
    add_html: bool = False
    error_to: List[str] = Field(default_factory=list)
    max_size: str = "1M"

    lock_timeout: float = -1
    git_timeout: Optional[float] = Field(default=None, gt=0)
    notifier_timeout: Optional[float] = Field(default=None, gt=0)

    @model_validator(mode="before")
    @classmethod
    def _accept_commit_email_alias(cls, data: Any) -> Any:
        if isinstance(data, Mapping) and "commit_email" in data:
            data = dict(data)
            commit_email = data.pop("commit_email")
            if data.get("git_commit_mailer") is None and commit_email is not None:
                data["git_commit_mailer"] = commit_email
        return data

    @field_validator("to", "error_to", mode="before")
    @classmethod
    def _force_list(cls, value: Any) -> List[str]:
        return _as_list(value)

    @field_validator("targets", mode="before")
    @classmethod
    def _validate_targets(cls, value: Any) -> List[str]:
        if value is None:
            return [DEFAULT_TARGET_PATTERN]
        patterns = _as_list(value)
        for pattern in patterns:
            try:
                re.compile(pattern)
            except re.error as exc:
                raise ValueError(f"invalid target pattern {pattern!r}: {exc}") from exc
        return patterns

    @property
    def mirrors_root(self) -> Path:
        if self.mirrors_directory is not None:
            return self.mirrors_directory.expanduser()
        return self.base_dir.expanduser() / "mirrors"

    def is_target(self, name: str) -> bool:
        return any(re.fullmatch(pattern, name) for pattern in self.targets)


__all__ = [
    "DEFAULT_NOTIFIER",
    "DEFAULT_TARGET_PATTERN",
    "OVERRIDE_KEYS",
    "RepositoryOptions",
    "merge_options",
    "option_layers",
]
