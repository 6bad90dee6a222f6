"""Shared fixtures and test doubles for mirrorhook tests."""

import json
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional

import pytest

from mirrorhook.repository import CommandResult


# ---------------------------------------------------------------------------
# Command runner double
# ---------------------------------------------------------------------------


@dataclass
class RecordedCall:
    command: List[str]
    input: Optional[str]
    timeout: Optional[float]


class FakeRunner:
    """Stands in for ``run_command``.

    ``git clone`` creates the target directory, ``git fetch`` succeeds, and
    anything else is treated as the commit mailer. Failures can be scripted
    per operation.
    """

    def __init__(
        self,
        clone_failures: int = 0,
        fetch_failures: int = 0,
        notifier_returncode: int = 0,
        notifier_output: str = "",
        partial_clone: bool = False,
    ):
        self.clone_failures = clone_failures
        self.fetch_failures = fetch_failures
        self.notifier_returncode = notifier_returncode
        self.notifier_output = notifier_output
        self.partial_clone = partial_clone
        self.calls: List[RecordedCall] = []
        self._lock = threading.Lock()

    def __call__(self, command, input=None, timeout=None) -> CommandResult:
        command = list(command)
        with self._lock:
            self.calls.append(RecordedCall(command, input, timeout))

        if self._is_git(command):
            return self._git(command)
        return CommandResult(self.notifier_returncode, self.notifier_output)

    @staticmethod
    def _is_git(command: List[str]) -> bool:
        return Path(command[0]).name == "git"

    def _git(self, command: List[str]) -> CommandResult:
        if "clone" in command:
            target = Path(command[-1])
            if self.clone_failures:
                self.clone_failures -= 1
                if self.partial_clone:
                    target.mkdir(parents=True, exist_ok=True)
                return CommandResult(128, "fatal: unable to access repository")
            target.mkdir(parents=True, exist_ok=True)
            return CommandResult(0)
        if "fetch" in command:
            if self.fetch_failures:
                self.fetch_failures -= 1
                return CommandResult(1, "fatal: the remote end hung up unexpectedly")
            return CommandResult(0)
        return CommandResult(0)

    @property
    def git_calls(self) -> List[RecordedCall]:
        return [call for call in self.calls if self._is_git(call.command)]

    @property
    def notifier_calls(self) -> List[RecordedCall]:
        return [call for call in self.calls if not self._is_git(call.command)]

    def operations(self) -> List[str]:
        """Summarize calls as ``clone`` / ``fetch`` / ``notify``."""
        summary = []
        for call in self.calls:
            if "clone" in call.command:
                summary.append("clone")
            elif "fetch" in call.command:
                summary.append("fetch")
            else:
                summary.append("notify")
        return summary


class RecordingQueue:
    """Job queue double that keeps submitted work units."""

    def __init__(self):
        self.jobs: List[Any] = []
        self.names: List[str] = []

    def submit(self, work, name: str = "job") -> None:
        self.jobs.append(work)
        self.names.append(name)

    def run_all(self) -> None:
        for work in self.jobs:
            work()


class MockRequest:
    """Mock aiohttp.web.Request for testing."""

    def __init__(
        self,
        headers: Optional[Dict[str, str]] = None,
        body: bytes = b"",
        content_type: str = "application/json",
    ):
        self.headers = headers or {}
        self._body = body
        self.content_type = content_type

    async def read(self) -> bytes:
        return self._body


@pytest.fixture
def fake_runner():
    return FakeRunner()


@pytest.fixture
def recording_queue():
    return RecordingQueue()


@pytest.fixture
def mock_request():
    return MockRequest


# ---------------------------------------------------------------------------
# Options
# ---------------------------------------------------------------------------


@pytest.fixture
def mirrors_dir(tmp_path: Path) -> Path:
    return tmp_path / "mirrors"


@pytest.fixture
def base_options(mirrors_dir: Path) -> Dict[str, Any]:
    return {
        "to": "ops@example.com",
        "enabled": True,
        "mirrors_directory": str(mirrors_dir),
        "git": "git",
        "git_commit_mailer": "git-commit-mailer",
    }


# ---------------------------------------------------------------------------
# Sample payloads
# ---------------------------------------------------------------------------


@pytest.fixture
def github_push_payload() -> Dict[str, Any]:
    """GitHub push event body (X-GitHub-Event: push)."""
    return {
        "ref": "refs/heads/main",
        "before": "aaa",
        "after": "bbb",
        "repository": {
            "name": "widgets",
            "full_name": "acme/widgets",
            "url": "https://example.com/acme/widgets",
            "clone_url": "https://example.com/acme/widgets.git",
            "ssh_url": "git@example.com:acme/widgets.git",
            "owner": {"login": "acme"},
        },
        "pusher": {"name": "alice", "email": "alice@example.com"},
    }


@pytest.fixture
def github_gollum_payload() -> Dict[str, Any]:
    """GitHub wiki event body (X-GitHub-Event: gollum)."""
    return {
        "pages": [
            {"page_name": "Home", "action": "edited", "sha": "r0"},
            {"page_name": "Install", "action": "created", "sha": "r1"},
            {"page_name": "Usage", "action": "edited", "sha": "r2"},
        ],
        "repository": {
            "name": "widgets",
            "url": "https://github.com/acme/widgets",
            "clone_url": "https://github.com/acme/widgets.git",
            "ssh_url": "git@github.com:acme/widgets.git",
            "owner": {"login": "acme"},
        },
    }


@pytest.fixture
def gitlab_push_payload() -> Dict[str, Any]:
    """GitLab push hook body."""
    return {
        "object_kind": "push",
        "before": "1111",
        "after": "2222",
        "ref": "refs/heads/main",
        "user_name": "Alice",
        "project": {
            "name": "widgets",
            "web_url": "https://gitlab.example.com/platform/tools/widgets",
        },
        "repository": {
            "name": "widgets",
            "url": "git@gitlab.example.com:platform/tools/widgets.git",
            "homepage": "https://gitlab.example.com/platform/tools/widgets",
            "git_http_url": "https://gitlab.example.com/platform/tools/widgets.git",
            "git_ssh_url": "git@gitlab.example.com:platform/tools/widgets.git",
        },
    }


@pytest.fixture
def gitlab_wiki_payload() -> Dict[str, Any]:
    """GitLab wiki page hook body."""
    return {
        "object_kind": "wiki_page",
        "user": {"name": "Alice"},
        "project": {
            "name": "widgets",
            "web_url": "https://gitlab.example.com/platform/widgets",
        },
        "wiki": {
            "web_url": "https://gitlab.example.com/platform/widgets/wikis/home",
            "git_http_url": "https://gitlab.example.com/platform/widgets.wiki.git",
            "git_ssh_url": "git@gitlab.example.com:platform/widgets.wiki.git",
        },
        "object_attributes": {"title": "Home", "action": "update"},
    }


@pytest.fixture
def github_push_body(github_push_payload) -> bytes:
    return json.dumps(github_push_payload).encode("utf-8")


@pytest.fixture
def runner_factory():
    """Build a :class:`FakeRunner` with scripted failures."""
    return FakeRunner
