"""Backend abstraction for podpipe remote execution."""

from __future__ import annotations

from podpipe.backends.base import (
    Attachment,
    AttachOptions,
    AttachTarget,
    Backend,
    Disconnected,
    Exited,
    Notification,
    Outcome,
)
from podpipe.backends.openshift import (
    OcNotInstalledError,
    OcNotLoggedInError,
    OcTimeoutError,
    OpenShiftBackend,
    OpenShiftConfig,
    OpenShiftError,
)
from podpipe.backends.podman import PodmanBackend, PodmanNotInstalledError
from podpipe.backends.process import ProcessAttachment

BACKEND_NAMES = ("openshift", "podman")


def create_backend(
    name: str,
    context: str | None = None,
    namespace: str | None = None,
) -> OpenShiftBackend | PodmanBackend:
    """Create a backend by name.

    Args:
        name: "openshift" or "podman".
        context: Kubeconfig context (OpenShift only).
        namespace: Default namespace (OpenShift only).

    Raises:
        ValueError: If the backend name is unknown.
    """
    if name == "openshift":
        return OpenShiftBackend(
            config=OpenShiftConfig(context=context, namespace=namespace)
        )
    if name == "podman":
        return PodmanBackend()
    raise ValueError(
        f"Unknown backend '{name}'. Choose one of: {', '.join(BACKEND_NAMES)}"
    )


__all__ = [
    "BACKEND_NAMES",
    "AttachOptions",
    "AttachTarget",
    "Attachment",
    "Backend",
    "Disconnected",
    "Exited",
    "Notification",
    "OcNotInstalledError",
    "OcNotLoggedInError",
    "OcTimeoutError",
    "OpenShiftBackend",
    "OpenShiftConfig",
    "OpenShiftError",
    "Outcome",
    "PodmanBackend",
    "PodmanNotInstalledError",
    "ProcessAttachment",
    "create_backend",
]
