"""Tests for payload classification and field access."""

import pytest

from mirrorhook.payload import (
    GITHUB_EVENT_HEADER,
    EventClass,
    Payload,
    PayloadKind,
    split_repository_uri,
)


def github(data, event):
    return Payload(data, {GITHUB_EVENT_HEADER: event})


# ---------------------------------------------------------------------------
# Field Access Tests
# ---------------------------------------------------------------------------


def test_dotted_lookup(github_push_payload):
    """Test nested keys are reachable with a dotted path."""
    payload = github(github_push_payload, "push")

    assert payload["repository.owner.login"] == "acme"
    assert payload.get("repository.name") == "widgets"


def test_missing_path_returns_none(github_push_payload):
    """Test a missing step anywhere in the path yields None."""
    payload = github(github_push_payload, "push")

    assert payload["repository.owner.name"] is None
    assert payload["nothing.here"] is None
    # Traversal through a non-mapping value
    assert payload["ref.deeper"] is None
    assert payload.get("nothing", "fallback") == "fallback"


# ---------------------------------------------------------------------------
# Classification Tests
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    "event,kind",
    [
        ("push", PayloadKind.GITHUB_PUSH),
        ("gollum", PayloadKind.GITHUB_WIKI),
        ("ping", PayloadKind.PING),
        ("issues", PayloadKind.UNSUPPORTED),
        (None, PayloadKind.UNSUPPORTED),
    ],
)
def test_github_kind_from_header(event, kind):
    """Test GitHub payloads are classified by the event header."""
    assert github({"repository": {}}, event).kind is kind


def test_gitlab_object_kind_wins_over_header(gitlab_push_payload):
    """Test object_kind in the body classifies GitLab, ignoring GitHub headers."""
    payload = github(gitlab_push_payload, "gollum")

    assert payload.is_from_gitlab
    assert payload.event_name == "push"
    assert payload.kind is PayloadKind.GITLAB_PUSH


def test_gitlab_wiki_kind(gitlab_wiki_payload):
    """Test GitLab wiki_page events."""
    payload = Payload(gitlab_wiki_payload)

    assert payload.event_class is EventClass.WIKI_PAGE
    assert payload.kind is PayloadKind.GITLAB_WIKI
    assert payload.is_wiki


def test_gitlab_tag_push_is_unsupported():
    """Test GitLab events other than push and wiki_page."""
    payload = Payload({"object_kind": "tag_push"})

    assert payload.event_class is EventClass.UNSUPPORTED
    assert payload.kind is PayloadKind.UNSUPPORTED


def test_non_mapping_body_is_github():
    """Test a list body never looks like GitLab."""
    payload = github([1, 2, 3], "push")

    assert not payload.is_from_gitlab
    assert payload["repository"] is None


@pytest.mark.parametrize(
    "kind,browser",
    [
        (PayloadKind.GITHUB_PUSH, "github"),
        (PayloadKind.GITHUB_WIKI, "github-wiki"),
        (PayloadKind.GITLAB_PUSH, "gitlab"),
        (PayloadKind.GITLAB_WIKI, "gitlab-wiki"),
    ],
)
def test_repository_browser(
    kind, browser, github_push_payload, github_gollum_payload,
    gitlab_push_payload, gitlab_wiki_payload,
):
    """Test repository browser tag for each kind."""
    payloads = {
        PayloadKind.GITHUB_PUSH: github(github_push_payload, "push"),
        PayloadKind.GITHUB_WIKI: github(github_gollum_payload, "gollum"),
        PayloadKind.GITLAB_PUSH: Payload(gitlab_push_payload),
        PayloadKind.GITLAB_WIKI: Payload(gitlab_wiki_payload),
    }
    assert payloads[kind].kind is kind
    assert payloads[kind].repository_browser == browser


# ---------------------------------------------------------------------------
# Clone URL Tests
# ---------------------------------------------------------------------------


def test_github_push_clone_urls(github_push_payload):
    """Test GitHub push clone URLs."""
    payload = github(github_push_payload, "push")

    assert payload.http_clone_url == "https://example.com/acme/widgets.git"
    assert payload.ssh_clone_url == "git@example.com:acme/widgets.git"


def test_github_push_clone_url_falls_back_to_url(github_push_payload):
    """Test repository.url + .git is used without clone_url."""
    del github_push_payload["repository"]["clone_url"]
    payload = github(github_push_payload, "push")

    assert payload.http_clone_url == "https://example.com/acme/widgets.git"


def test_gollum_clone_urls_point_at_wiki(github_gollum_payload):
    """Test gollum events clone the .wiki.git repository."""
    payload = github(github_gollum_payload, "gollum")

    assert payload.http_clone_url == "https://github.com/acme/widgets.wiki.git"
    assert payload.ssh_clone_url == "git@github.com:acme/widgets.wiki.git"


def test_gitlab_clone_urls(gitlab_push_payload, gitlab_wiki_payload):
    """Test GitLab push and wiki clone URLs."""
    push = Payload(gitlab_push_payload)
    wiki = Payload(gitlab_wiki_payload)

    assert push.http_clone_url == "https://gitlab.example.com/platform/tools/widgets.git"
    assert push.ssh_clone_url == "git@gitlab.example.com:platform/tools/widgets.git"
    assert wiki.http_clone_url == "https://gitlab.example.com/platform/widgets.wiki.git"
    assert wiki.ssh_clone_url == "git@gitlab.example.com:platform/widgets.wiki.git"


def test_repository_uri_skips_unparseable_candidates(github_push_payload):
    """Test repository_uri picks the first SSH or HTTPS candidate."""
    github_push_payload["repository"]["url"] = "http://example.com/acme/widgets"
    payload = github(github_push_payload, "push")

    assert payload.repository_uri == "https://example.com/acme/widgets.git"


# ---------------------------------------------------------------------------
# URI Helper Tests
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    "uri,expected",
    [
        ("git@github.com:acme/widgets.git", ("github.com", "acme/widgets.git")),
        ("https://github.com/acme/widgets", ("github.com", "acme/widgets")),
        ("https://gitlab.example.com/a/b/c.git", ("gitlab.example.com", "a/b/c.git")),
        ("http://github.com/acme/widgets", None),
        ("widgets", None),
        (None, None),
        (42, None),
    ],
)
def test_split_repository_uri(uri, expected):
    """Test SSH and HTTPS URI splitting."""
    assert split_repository_uri(uri) == expected
