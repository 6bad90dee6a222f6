"""Tests for request dispatch."""

from http import HTTPStatus

import pytest

from mirrorhook.exceptions import JobQueueFullError
from mirrorhook.gateway import WebhookGateway
from mirrorhook.jobs import JobQueue
from mirrorhook.resolver import RepositoryResolver


@pytest.fixture
def gateway(base_options, fake_runner, recording_queue):
    return WebhookGateway(RepositoryResolver(base_options, runner=fake_runner), recording_queue)


# ---------------------------------------------------------------------------
# Dispatch Tests
# ---------------------------------------------------------------------------


def test_ping(gateway, recording_queue):
    """Test ping is answered without scheduling."""
    result = gateway.handle({"zen": "Keep it logically awesome."}, github_event="ping")

    assert result.status == HTTPStatus.OK
    assert result.message == "pong"
    assert recording_queue.jobs == []


def test_unsupported_event(gateway, recording_queue):
    """Test unknown events are rejected."""
    result = gateway.handle({"action": "opened"}, github_event="issues")

    assert result.status == HTTPStatus.BAD_REQUEST
    assert result.message == "Unsupported event: <issues>"
    assert recording_queue.jobs == []


def test_push_is_scheduled_then_processed(
    gateway, github_push_payload, recording_queue, fake_runner, mirrors_dir
):
    """Test a push is acknowledged first and mirrored by the work unit."""
    result = gateway.handle(github_push_payload, github_event="push")

    assert result.status == HTTPStatus.OK
    assert result.submitted
    assert result.message.startswith("scheduled: <example.com/acme/widgets>")
    assert len(recording_queue.jobs) == 1
    assert fake_runner.calls == []

    recording_queue.run_all()

    assert fake_runner.operations() == ["clone", "notify"]
    assert (mirrors_dir / "example.com" / "acme" / "widgets").is_dir()
    assert fake_runner.notifier_calls[0].input == "aaa bbb refs/heads/main\n"


def test_disabled_repository_is_acknowledged(
    gateway, base_options, github_push_payload, recording_queue
):
    """Test disabled repositories return 202 and schedule nothing."""
    base_options["enabled"] = False

    result = gateway.handle(github_push_payload, github_event="push")

    assert result.status == HTTPStatus.ACCEPTED
    assert "ignore disabled repository" in result.message
    assert not result.submitted
    assert recording_queue.jobs == []


def test_invalid_payload_touches_nothing(
    gateway, github_push_payload, recording_queue, fake_runner, mirrors_dir
):
    """Test a push without before is rejected before any filesystem work."""
    del github_push_payload["before"]

    result = gateway.handle(github_push_payload, github_event="push")

    assert result.status == HTTPStatus.BAD_REQUEST
    assert result.message == "before commit ID is missing"
    assert recording_queue.jobs == []
    assert fake_runner.calls == []
    assert not mirrors_dir.exists()


def test_missing_repository(gateway):
    """Test a push without repository information."""
    result = gateway.handle({"before": "a", "after": "b", "ref": "r"}, github_event="push")

    assert result.status == HTTPStatus.BAD_REQUEST
    assert result.message == "repository information is missing"


def test_missing_recipient_is_server_error(gateway, base_options, github_push_payload):
    """Test configuration errors are reported as 500."""
    del base_options["to"]

    result = gateway.handle(github_push_payload, github_event="push")

    assert result.status == HTTPStatus.INTERNAL_SERVER_ERROR
    assert "mail receive address is missing" in result.message


def test_gitlab_push(gateway, gitlab_push_payload, recording_queue):
    """Test GitLab pushes are classified from the body."""
    result = gateway.handle(gitlab_push_payload, gitlab_event="Push Hook")

    assert result.status == HTTPStatus.OK
    assert recording_queue.names == [
        "gitlab.example.com/platform/tools/widgets 1111 2222 refs/heads/main"
    ]


def test_queue_full(base_options, fake_runner, github_push_payload):
    """Test a full queue is reported as 503."""

    class FullQueue:
        def submit(self, work, name="job"):
            raise JobQueueFullError("job queue is full (1)")

    gateway = WebhookGateway(RepositoryResolver(base_options, runner=fake_runner), FullQueue())

    result = gateway.handle(github_push_payload, github_event="push")

    assert result.status == HTTPStatus.SERVICE_UNAVAILABLE
    assert not result.submitted


# ---------------------------------------------------------------------------
# End-to-end with the job queue
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_two_pushes_through_job_queue(
    base_options, fake_runner, github_push_payload, mirrors_dir
):
    """Test consecutive pushes clone once, then fetch."""
    queue = JobQueue(workers=2, queue_size=10)
    gateway = WebhookGateway(RepositoryResolver(base_options, runner=fake_runner), queue)
    await queue.start()
    try:
        first = gateway.handle(github_push_payload, github_event="push")
        await queue.join()
        second = gateway.handle(
            dict(github_push_payload, before="bbb", after="ccc"), github_event="push"
        )
        await queue.join()
    finally:
        await queue.stop()

    assert first.submitted and second.submitted
    assert fake_runner.operations() == ["clone", "notify", "fetch", "notify"]
    assert [call.input for call in fake_runner.notifier_calls] == [
        "aaa bbb refs/heads/main\n",
        "bbb ccc refs/heads/main\n",
    ]
    assert queue.processed == 2
    assert queue.failed == 0


def test_absolute_owner_is_rejected(gateway, github_push_payload, recording_queue, fake_runner):
    """Test an owner that is an absolute path never reaches the filesystem."""
    github_push_payload["repository"]["owner"] = {"login": "/tmp/evil"}

    result = gateway.handle(github_push_payload, github_event="push")

    assert result.status == HTTPStatus.BAD_REQUEST
    assert "invalid repository owner name" in result.message
    assert recording_queue.jobs == []
    assert fake_runner.calls == []
