"""Exception hierarchy for podpipe."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from podpipe.readiness import WatchState


class PodpipeError(Exception):
    """Base exception for podpipe errors."""

    pass


class ConfigError(PodpipeError):
    """Configuration file or environment is invalid."""

    pass


class BackendError(PodpipeError):
    """A container CLI command failed."""

    pass


class CommandNotInstalledError(BackendError):
    """The container CLI (oc, podman) is not installed."""

    pass


class CommandTimeoutError(BackendError):
    """The container CLI command timed out."""

    pass


class NotLoggedInError(BackendError):
    """Not logged in to the cluster."""

    pass


class AttachError(PodpipeError):
    """Could not attach to the remote target."""

    pass


class TargetNotFoundError(AttachError):
    """The target pod or container does not exist."""

    pass


class TargetNotAttachableError(AttachError):
    """The target exists but is not running."""

    pass


class TargetNotReadyError(PodpipeError):
    """The target did not become ready before the deadline."""

    def __init__(self, message: str, state: WatchState | None = None) -> None:
        super().__init__(message)
        self.state = state
