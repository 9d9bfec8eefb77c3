"""Podman backend implementation."""

from __future__ import annotations

import asyncio
import subprocess
from collections.abc import AsyncIterator
from contextlib import AbstractAsyncContextManager

from podpipe.backends.base import (
    AttachOptions,
    AttachTarget,
    Disconnected,
    Exited,
    Notification,
    Outcome,
)
from podpipe.backends.process import ProcessAttachment, spawn_attachment, watch_lines
from podpipe.errors import (
    BackendError,
    CommandNotInstalledError,
    TargetNotAttachableError,
    TargetNotFoundError,
)

# podman exec reserves 125 for its own failures; 126/127 come from the
# remote side (command not executable / not found) and are real exit codes.
PODMAN_ERROR_EXIT = 125

# podman events statuses mapped to container states.
_EVENT_STATES = {
    "create": "created",
    "init": "created",
    "start": "running",
    "restart": "running",
    "unpause": "running",
    "pause": "paused",
    "died": "exited",
    "stop": "exited",
    "cleanup": "exited",
    "remove": "removed",
}


class PodmanNotInstalledError(CommandNotInstalledError):
    """The podman CLI is not installed."""

    pass


def classify_podman_exit(returncode: int, stderr_tail: str | None) -> Outcome:
    """Tell a remote exit status apart from a podman failure."""
    if returncode < 0:
        return Disconnected(f"podman terminated by signal {-returncode}")
    if returncode == PODMAN_ERROR_EXIT:
        lines = [line for line in (stderr_tail or "").splitlines() if line.strip()]
        reason = lines[-1].strip() if lines else "podman exec failed"
        return Disconnected(reason)
    return Exited(returncode)


def _parse_event_line(line: str) -> Notification | None:
    name, _, status = line.partition(" ")
    state = _EVENT_STATES.get(status.strip())
    if not name or state is None:
        return None
    return Notification(name=name, phase=state)


class PodmanBackend:
    """Podman remote execution backend.

    Commands run in local containers through ``podman exec``. The target's
    ``container`` names the container to exec into when set; otherwise the
    target name is the container name.
    """

    name = "podman"
    running_phase = "running"
    failed_phases = frozenset({"dead", "removed"})

    def _run_podman(
        self,
        *args: str,
        check: bool = True,
    ) -> subprocess.CompletedProcess[str]:
        """Run a podman command and capture its output.

        Raises:
            PodmanNotInstalledError: If podman is not installed.
            BackendError: If command fails and check=True.
        """
        cmd = ["podman", *args]
        try:
            result = subprocess.run(cmd, capture_output=True, text=True)
        except FileNotFoundError as e:
            raise PodmanNotInstalledError(
                "podman not found. Install it from https://podman.io"
            ) from e

        if check and result.returncode != 0:
            raise BackendError(f"podman command failed: {result.stderr.strip()}")
        return result

    @staticmethod
    def _container_name(target: AttachTarget) -> str:
        return target.container or target.name

    def _get_container_state(self, target: AttachTarget) -> str:
        """Get the state of the target container.

        Raises:
            TargetNotFoundError: If the container does not exist.
        """
        name = self._container_name(target)
        result = self._run_podman(
            "container", "inspect", "--format", "{{.State.Status}}", name,
            check=False,
        )
        if result.returncode != 0:
            raise TargetNotFoundError(f"Container '{name}' not found.")
        return result.stdout.strip()

    def build_exec_command(
        self,
        target: AttachTarget,
        command: list[str],
        options: AttachOptions,
    ) -> list[str]:
        """Build the ``podman exec`` invocation for a command."""
        cmd = ["podman", "exec"]
        if options.stdin or options.interactive:
            cmd.append("-i")
        if options.tty:
            cmd.append("-t")
        cmd.append(self._container_name(target))
        cmd.extend(command)
        return cmd

    async def attach(
        self,
        target: AttachTarget,
        command: list[str],
        options: AttachOptions,
    ) -> ProcessAttachment:
        """Run a command in a running container.

        Raises:
            TargetNotFoundError: If the container does not exist.
            TargetNotAttachableError: If the container is not running.
        """
        state = await asyncio.to_thread(self._get_container_state, target)
        if state != self.running_phase:
            raise TargetNotAttachableError(
                f"Container '{self._container_name(target)}' is not running "
                f"(status: {state or 'unknown'})."
            )

        cmd = self.build_exec_command(target, command, options)
        return await spawn_attachment(
            cmd, target, command, options, classify_podman_exit
        )

    def build_watch_command(self, target: AttachTarget) -> list[str]:
        """Build the ``podman events`` invocation for a container."""
        return [
            "podman", "events",
            "--filter", f"container={self._container_name(target)}",
            "--format", "{{.Name}} {{.Status}}",
        ]

    async def _initial_state(self, target: AttachTarget) -> list[Notification]:
        try:
            state = await asyncio.to_thread(self._get_container_state, target)
        except TargetNotFoundError:
            # Not created yet; the event stream reports it when it is.
            return []
        return [Notification(name=self._container_name(target), phase=state)]

    def watch(
        self, target: AttachTarget
    ) -> AbstractAsyncContextManager[AsyncIterator[Notification]]:
        """Watch state changes of the target container."""
        return watch_lines(
            self.build_watch_command(target),
            _parse_event_line,
            initial=lambda: self._initial_state(target),
        )
