"""Configuration models for podpipe."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from podpipe.orchestrator import DEFAULT_DRAIN_TIMEOUT, DEFAULT_READY_TIMEOUT
from podpipe.streams import DEFAULT_CHUNK_SIZE


@dataclass
class PodpipeConfig:
    """Settings for connecting to targets.

    Attributes:
        config_file: File the settings were read from (None for defaults).
        backend: "openshift" or "podman".
        context: Kubeconfig context (None for current context).
        namespace: Default namespace (None for current namespace).
        container: Default container within a pod.
        ready_timeout: Seconds to wait for a target to be running.
        drain_timeout: Seconds output pumps get after the command exits.
        chunk_size: Maximum bytes per read when pumping.
    """

    config_file: Path | None = None
    backend: str = "openshift"
    context: str | None = None
    namespace: str | None = None
    container: str | None = None
    ready_timeout: float = DEFAULT_READY_TIMEOUT
    drain_timeout: float = DEFAULT_DRAIN_TIMEOUT
    chunk_size: int = DEFAULT_CHUNK_SIZE
