"""Exception hierarchy for webhook handling and mirror synchronization."""

from __future__ import annotations

from typing import Optional, Sequence


class MirrorHookError(Exception):
    """Base class for all mirrorhook errors."""

    pass


class PayloadValidationError(MirrorHookError):
    """Raised when an inbound payload is malformed or incomplete.

    The message is returned verbatim to the webhook sender as the body of a
    400 response, so it should name the missing or invalid field.
    """

    pass


class DisabledTargetError(MirrorHookError):
    """Raised when the resolved repository is disabled or not a target.

    The request is acknowledged (202) but nothing is scheduled.
    """

    pass


class RepositoryConfigurationError(MirrorHookError):
    """Raised when resolved options cannot drive a mirror (e.g. no recipient)."""

    pass


class SyncError(MirrorHookError):
    """Raised when a git clone or fetch of a mirror fails."""

    def __init__(self, message: str, output: Optional[str] = None):
        super().__init__(message)
        self.output = output


class NotifierError(MirrorHookError):
    """Raised when the external commit mailer exits unsuccessfully.

    Attributes:
        command_line: Argument list that was executed
        change: The "<before> <after> <ref>" line written to stdin
        output: Combined stdout/stderr of the notifier
    """

    def __init__(
        self,
        message: str,
        command_line: Sequence[str] = (),
        change: str = "",
        output: str = "",
    ):
        super().__init__(message)
        self.command_line = list(command_line)
        self.change = change
        self.output = output

    def __str__(self) -> str:
        text = super().__str__()
        if self.output:
            text = f"{text}\n{self.output.rstrip()}"
        return text


class JobQueueFullError(MirrorHookError):
    """Raised when a work unit cannot be queued because the queue is full."""

    pass


class ConfigurationError(MirrorHookError):
    """Raised when configuration is invalid or cannot be loaded."""

    pass


__all__ = [
    "MirrorHookError",
    "PayloadValidationError",
    "DisabledTargetError",
    "RepositoryConfigurationError",
    "SyncError",
    "NotifierError",
    "JobQueueFullError",
    "ConfigurationError",
]
