"""Mirror controller: keep one bare mirror in sync and run the commit mailer.

Each accepted webhook builds a fresh :class:`Repository`. Its
:meth:`Repository.process` runs in a job queue worker thread and

1. takes the mirror's sibling file lock,
2. clones the mirror (``git clone --mirror``) when it is absent or fetches
   into it (``git fetch --prune``) when present, retrying failures up to
   ``n_retries`` times,
3. releases the lock and pipes ``"<before> <after> <ref>"`` into the
   external commit mailer exactly once.
"""

from __future__ import annotations

import logging
import os
import shlex
import shutil
import subprocess
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Callable, List, Mapping, Optional, Sequence, Union

from filelock import FileLock, Timeout
from pydantic import ValidationError

from .change import ChangeDescriptor
from .exceptions import (
    NotifierError,
    PayloadValidationError,
    RepositoryConfigurationError,
    SyncError,
)
from .options import RepositoryOptions
from .payload import Payload, PayloadKind

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Process execution
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class CommandResult:
    """Exit status and combined stdout/stderr of a child process."""

    returncode: int
    output: str = ""

    @property
    def ok(self) -> bool:
        return self.returncode == 0


CommandRunner = Callable[..., CommandResult]


def run_command(
    command: Sequence[str],
    *,
    input: Optional[str] = None,
    timeout: Optional[float] = None,
) -> CommandResult:
    """Run ``command`` and capture its combined output.

    Raises:
        subprocess.TimeoutExpired: If ``timeout`` elapses
        OSError: If the executable cannot be started
    """
    completed = subprocess.run(
        list(command),
        input=input,
        stdout=subprocess.PIPE,
        stderr=subprocess.STDOUT,
        text=True,
        timeout=timeout,
    )
    return CommandResult(completed.returncode, completed.stdout or "")


# ---------------------------------------------------------------------------
# Mirror state
# ---------------------------------------------------------------------------


class MirrorState(str, Enum):
    """Synchronization state of a mirror."""

    ABSENT = "absent"
    CLONING = "cloning"
    FETCHING = "fetching"
    READY = "ready"


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class Repository:
    """One resolved repository and its on-disk mirror.

    Attributes:
        domain: Hosting domain, e.g. ``github.com``
        owner_name: Owner (user, organization or GitLab group path)
        name: Repository name
        payload: The webhook payload the repository was resolved from
        options: Validated, merged options
        state: Current :class:`MirrorState`

    Example:
        >>> repository = Repository("github.com", "acme", "widgets", payload,
        ...                         {"to": "commits@example.com"})
        >>> repository.process("aaa", "bbb", "refs/heads/main")
    """

    def __init__(
        self,
        domain: str,
        owner_name: str,
        name: str,
        payload: Payload,
        options: Union[RepositoryOptions, Mapping[str, Any]],
        runner: Optional[CommandRunner] = None,
    ):
        """Initialize the repository.

        Args:
            domain: Hosting domain
            owner_name: Owner or group path
            name: Repository name
            payload: Payload the repository was resolved from
            options: Merged options, validated here when given as a mapping
            runner: Command runner (default :func:`run_command`)

        Raises:
            RepositoryConfigurationError: If the options are invalid or name
                no recipient
            PayloadValidationError: If the mirror path would fall outside
                the mirrors directory
        """
        self.domain = domain
        self.owner_name = owner_name
        self.name = name
        self.payload = payload

        if not isinstance(options, RepositoryOptions):
            try:
                options = RepositoryOptions.model_validate(dict(options))
            except ValidationError as exc:
                details = "; ".join(
                    f"{'.'.join(str(loc) for loc in err['loc'])}: {err['msg']}"
                    for err in exc.errors()
                )
                raise RepositoryConfigurationError(
                    f"invalid options for <{owner_name}/{name}>: {details}"
                ) from exc
        self.options = options

        if not self.options.to:
            raise RepositoryConfigurationError(f"mail receive address is missing: <{name}>")

        if not _is_within(self.mirror_path, self.mirrors_directory):
            raise PayloadValidationError(
                f"mirror path escapes the mirrors directory: <{self.full_name}>"
            )

        self._runner: CommandRunner = runner or run_command
        self.state = MirrorState.READY if self.mirror_path.exists() else MirrorState.ABSENT

    # -- derived facts -------------------------------------------------------

    @property
    def enabled(self) -> bool:
        return self.options.enabled

    @property
    def is_target(self) -> bool:
        return self.options.is_target(self.name)

    @property
    def max_retries(self) -> int:
        return self.options.n_retries

    @property
    def mirrors_directory(self) -> Path:
        return self.options.mirrors_root

    @property
    def mirror_path(self) -> Path:
        name = f"{self.name}.wiki" if self.payload.is_wiki else self.name
        return self.mirrors_directory / self.domain / self.owner_name / name

    @property
    def lock_path(self) -> Path:
        mirror_path = self.mirror_path
        return mirror_path.with_name(f"{mirror_path.name}.lock")

    @property
    def clone_url(self) -> Optional[str]:
        if self.options.use_ssh:
            return self.payload.ssh_clone_url
        return self.payload.http_clone_url

    @property
    def full_name(self) -> str:
        return f"{self.domain}/{self.owner_name}/{self.name}"

    # -- processing ----------------------------------------------------------

    def process(self, before: str, after: str, reference: str) -> None:
        """Bring the mirror up to date, then send commit mail for the change.

        Args:
            before: Commit (or revision expression) before the change
            after: Commit after the change
            reference: Updated reference, e.g. ``refs/heads/main``

        Raises:
            SyncError: If clone/fetch still fails after all retries
            NotifierError: If the commit mailer exits unsuccessfully
        """
        change = ChangeDescriptor(before, after, reference)
        logger.info(
            f"Processing {change} for {self.full_name}",
            extra={"repository": self.full_name, "change": str(change)},
        )
        self.synchronize()
        self.send_notification(change)

    def synchronize(self) -> None:
        """Clone or fetch the mirror while holding its file lock.

        The lock file is ``<mirror>.lock`` beside the mirror. An absent
        mirror is cloned, a present one fetched; failures are retried up to
        ``n_retries`` times before giving up.

        Raises:
            SyncError: If every attempt failed or the lock was not acquired
                within ``lock_timeout`` seconds
        """
        self.mirror_path.parent.mkdir(parents=True, exist_ok=True)
        lock = FileLock(str(self.lock_path), timeout=self.options.lock_timeout)

        try:
            with lock:
                self._synchronize_with_retry()
        except Timeout as exc:
            raise SyncError(
                f"timed out waiting for mirror lock: <{self.lock_path}>"
            ) from exc

    def _synchronize_with_retry(self) -> None:
        n_retries = 0
        while True:
            try:
                self._synchronize_once()
                return
            except SyncError as exc:
                n_retries += 1
                if n_retries > self.max_retries:
                    self.state = (
                        MirrorState.READY if self.mirror_path.exists() else MirrorState.ABSENT
                    )
                    logger.error(
                        f"Giving up on {self.mirror_path} after {n_retries} attempts: {exc}",
                        extra={"repository": self.full_name, "attempts": n_retries},
                    )
                    raise
                logger.warning(
                    f"Mirror sync failed, retrying ({n_retries}/{self.max_retries}): {exc}",
                    extra={"repository": self.full_name, "attempt": n_retries},
                )

    def _synchronize_once(self) -> None:
        mirror_path = self.mirror_path
        if mirror_path.exists():
            self.state = MirrorState.FETCHING
            self._git("--git-dir", str(mirror_path), "fetch", "--quiet", "--prune")
        else:
            clone_url = self.clone_url
            if not clone_url:
                raise SyncError(f"clone URL is missing: <{self.full_name}>")
            self.state = MirrorState.CLONING
            try:
                self._git("clone", "--quiet", "--mirror", clone_url, str(mirror_path))
            except SyncError:
                if mirror_path.exists():
                    shutil.rmtree(mirror_path, ignore_errors=True)
                raise
        self.state = MirrorState.READY
        logger.debug(f"Mirror ready: {mirror_path}")

    def _git(self, *arguments: str) -> CommandResult:
        command_line = [self.options.git, *arguments]
        try:
            result = self._runner(command_line, timeout=self.options.git_timeout)
        except subprocess.TimeoutExpired as exc:
            raise SyncError(f"command timed out: <{shlex.join(command_line)}>") from exc
        except OSError as exc:
            raise SyncError(f"failed to run command: <{shlex.join(command_line)}>: {exc}") from exc

        if not result.ok:
            raise SyncError(
                f"failed to run command: <{shlex.join(command_line)}>",
                output=result.output,
            )
        return result

    # -- notification --------------------------------------------------------

    def notifier_command(self) -> List[str]:
        """Build the commit mailer command line (without the change).

        Options with no value are left out.

        Returns:
            Argument list, interpreter first when ``ruby`` is set and
            recipients last
        """
        arguments: List[str] = [
            "--repository", str(self.mirror_path),
            "--max-size", self.options.max_size,
        ]
        kind = self.payload.kind
        _add_option(arguments, "--repository-browser", self.payload.repository_browser)
        if kind.is_gitlab:
            _add_option(arguments, "--gitlab-project-uri", self._gitlab_project_uri())
        else:
            _add_option(arguments, "--github-user", self.owner_name)
            _add_option(arguments, "--github-repository", self.name)
            name = f"{self.owner_name}/{self.name}"
            if kind is PayloadKind.GITHUB_WIKI:
                name += ".wiki"
            _add_option(arguments, "--name", name)

        options = self.options
        _add_option(arguments, "--from", options.from_)
        _add_option(arguments, "--from-domain", options.from_domain)
        _add_option(arguments, "--sender", options.sender)
        if options.sleep_per_mail is not None:
            _add_option(arguments, "--sleep-per-mail", f"{options.sleep_per_mail:g}")
        if options.send_per_to:
            arguments.append("--send-per-to")
        if options.add_html:
            arguments.append("--add-html")
        for error_to in options.error_to:
            _add_option(arguments, "--error-to", error_to)
        arguments.extend(options.to)

        command = [options.git_commit_mailer, *arguments]
        if options.ruby:
            command.insert(0, options.ruby)
        return command

    def send_notification(self, change: ChangeDescriptor) -> None:
        """Pipe the change into the commit mailer; never retried.

        Args:
            change: Written to stdin as ``"<before> <after> <ref>\\n"``

        Raises:
            NotifierError: If the mailer cannot be started, times out or
                exits non-zero
        """
        command_line = self.notifier_command()
        line = str(change)
        try:
            result = self._runner(
                command_line,
                input=f"{line}\n",
                timeout=self.options.notifier_timeout,
            )
        except subprocess.TimeoutExpired as exc:
            raise NotifierError(
                f"commit mailer timed out: <{shlex.join(command_line)}>:<{line}>",
                command_line=command_line,
                change=line,
                output=_decode_output(exc.output),
            ) from exc
        except OSError as exc:
            raise NotifierError(
                f"failed to run commit mailer: <{shlex.join(command_line)}>:<{line}>: {exc}",
                command_line=command_line,
                change=line,
            ) from exc

        if not result.ok:
            raise NotifierError(
                f"failed to run commit mailer: <{shlex.join(command_line)}>:<{line}>",
                command_line=command_line,
                change=line,
                output=result.output,
            )
        logger.info(
            f"Commit mail sent for {self.full_name}: {line}",
            extra={"repository": self.full_name, "change": line},
        )

    def _gitlab_project_uri(self) -> Optional[str]:
        if self.payload.kind is PayloadKind.GITLAB_WIKI:
            return self.payload["project.web_url"] or self.payload["project.homepage"]
        return self.payload["repository.homepage"] or self.payload["project.web_url"]

    def __repr__(self) -> str:
        return f"Repository({self.full_name!r}, state={self.state.value!r})"


def _add_option(arguments: List[str], name: str, value: Any) -> None:
    if value is None:
        return
    value = str(value)
    if not value:
        return
    arguments.extend([name, value])


def _is_within(path: Path, root: Path) -> bool:
    # Lexical check; ``..`` segments are collapsed before comparing.
    path = Path(os.path.normpath(os.path.abspath(path)))
    root = Path(os.path.normpath(os.path.abspath(root)))
    return path != root and path.is_relative_to(root)


def _decode_output(output: Any) -> str:
    if output is None:
        return ""
    if isinstance(output, bytes):
        return output.decode("utf-8", errors="replace")
    return str(output)


__all__ = [
    "CommandResult",
    "CommandRunner",
    "MirrorState",
    "Repository",
    "run_command",
]
