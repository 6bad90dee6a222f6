"""Derive the (before, after, reference) change triple from a payload."""

from __future__ import annotations

from dataclasses import dataclass
from typing import List

from .exceptions import PayloadValidationError
from .payload import Payload, PayloadKind

# Wikis have no branches in the webhook payloads; their mirrors track master.
DEFAULT_REFERENCE = "refs/heads/master"


@dataclass(frozen=True)
class ChangeDescriptor:
    """Provider independent description of one change."""

    before: str
    after: str
    reference: str

    def __str__(self) -> str:
        return f"{self.before} {self.after} {self.reference}"


def extract_push_change(payload: Payload) -> ChangeDescriptor:
    """Read the commit range of a push event (GitHub or GitLab)."""
    before = payload["before"]
    if before is None:
        raise PayloadValidationError("before commit ID is missing")

    after = payload["after"]
    if after is None:
        raise PayloadValidationError("after commit ID is missing")

    reference = payload["ref"]
    if reference is None:
        raise PayloadValidationError("reference is missing")

    return ChangeDescriptor(str(before), str(after), str(reference))


def extract_gollum_change(payload: Payload) -> ChangeDescriptor:
    """Collapse a GitHub wiki (gollum) page batch into one revision range.

    A single page yields ``<sha>^..<sha>``; several pages yield the range from
    the first page's revision to the last page's revision.
    """
    pages = payload["pages"]
    if pages is None:
        raise PayloadValidationError("pages are missing")
    if not isinstance(pages, list):
        raise PayloadValidationError(f"invalid pages format: <{pages!r}>")
    if not pages:
        raise PayloadValidationError("no pages")

    revisions: List[str] = []
    for page in pages:
        revision = page.get("sha") if isinstance(page, dict) else None
        if not revision:
            raise PayloadValidationError(f"page revision is missing: <{page!r}>")
        revisions.append(str(revision))

    if len(revisions) == 1:
        after = revisions[0]
        before = f"{after}^"
    else:
        before = revisions[0]
        after = revisions[-1]

    return ChangeDescriptor(before, after, DEFAULT_REFERENCE)


def extract_gitlab_wiki_change(payload: Payload) -> ChangeDescriptor:
    """GitLab wiki events carry no revision range; assume the last commit."""
    return ChangeDescriptor("HEAD~", "HEAD", DEFAULT_REFERENCE)


def extract_change(payload: Payload) -> ChangeDescriptor:
    """Dispatch on the payload kind.

    Raises:
        PayloadValidationError: If required fields are missing or the kind
            carries no change
    """
    kind = payload.kind
    if kind in (PayloadKind.GITHUB_PUSH, PayloadKind.GITLAB_PUSH):
        return extract_push_change(payload)
    if kind is PayloadKind.GITHUB_WIKI:
        return extract_gollum_change(payload)
    if kind is PayloadKind.GITLAB_WIKI:
        return extract_gitlab_wiki_change(payload)
    raise PayloadValidationError(f"no change information in event: <{payload.event_name}>")


__all__ = [
    "ChangeDescriptor",
    "DEFAULT_REFERENCE",
    "extract_change",
    "extract_gitlab_wiki_change",
    "extract_gollum_change",
    "extract_push_change",
]
