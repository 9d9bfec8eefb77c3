"""Base protocol and value types for remote execution backends."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from contextlib import AbstractAsyncContextManager
from dataclasses import dataclass
from typing import Protocol

from podpipe.streams import ByteSink, ByteSource


@dataclass(frozen=True)
class AttachTarget:
    """Identifies where a command runs.

    Attributes:
        name: Pod or container name.
        container: Container within the pod (None for the default container).
        namespace: Namespace of the pod (None for the backend's current one).
    """

    name: str
    container: str | None = None
    namespace: str | None = None

    def __str__(self) -> str:
        text = self.name
        if self.namespace:
            text = f"{self.namespace}/{text}"
        if self.container:
            text = f"{text} ({self.container})"
        return text


@dataclass(frozen=True)
class AttachOptions:
    """Which standard streams to wire and how the remote side behaves.

    Attributes:
        stdin: Pipe local input into the remote command.
        stdout: Relay remote standard output through a pump.
        stderr: Relay remote standard error through a pump.
        interactive: Keep remote stdin open. Without ``stdin`` the local
            terminal is handed to the client process directly.
        tty: Allocate a pseudo-terminal for the remote command.
    """

    stdin: bool = False
    stdout: bool = True
    stderr: bool = True
    interactive: bool = False
    tty: bool = False


@dataclass(frozen=True)
class Exited:
    """The remote command ran to completion with this exit code."""

    code: int

    def __str__(self) -> str:
        return f"exited with code {self.code}"


@dataclass(frozen=True)
class Disconnected:
    """The transport ended before an exit status was obtained."""

    reason: str

    def __str__(self) -> str:
        return f"disconnected: {self.reason}"


Outcome = Exited | Disconnected


@dataclass(frozen=True)
class Notification:
    """One observed state of a watched resource."""

    name: str
    phase: str


class Attachment:
    """A live remote execution.

    Exposes up to three endpoints (``stdin`` to write into, ``stdout`` and
    ``stderr`` to read from); each is None when the direction was not
    requested. The completion slot resolves exactly once. ``wait`` can be
    awaited any number of times, before or after the pumps finish, and never
    cancels anything.
    """

    def __init__(
        self,
        target: AttachTarget,
        command: list[str],
        options: AttachOptions,
        stdin: ByteSink | None = None,
        stdout: ByteSource | None = None,
        stderr: ByteSource | None = None,
    ) -> None:
        self.target = target
        self.command = command
        self.options = options
        self.stdin = stdin
        self.stdout = stdout
        self.stderr = stderr
        self._completion: asyncio.Future[Outcome] = (
            asyncio.get_running_loop().create_future()
        )

    @property
    def done(self) -> bool:
        return self._completion.done()

    def resolve(self, outcome: Outcome) -> bool:
        """Resolve the completion slot.

        Returns:
            True if this call resolved it, False if it was already resolved.
        """
        if self._completion.done():
            return False
        self._completion.set_result(outcome)
        return True

    async def wait(self) -> Outcome:
        """Wait for the remote command to exit or the transport to drop."""
        return await asyncio.shield(self._completion)

    async def close(self) -> None:
        """Release the transport.

        An attachment closed before completion resolves as disconnected.
        """
        self.resolve(Disconnected("attachment closed"))


class Backend(Protocol):
    """Remote execution backend interface.

    Implementations (OpenShift, Podman) wrap an external client that knows
    how to reach the target; the core only sees attachments and
    notifications.
    """

    name: str
    running_phase: str
    failed_phases: frozenset[str]

    async def attach(
        self,
        target: AttachTarget,
        command: list[str],
        options: AttachOptions,
    ) -> Attachment:
        """Start ``command`` in the target and wire the requested streams.

        Raises:
            TargetNotFoundError: If the target does not exist.
            TargetNotAttachableError: If the target is not running.
        """
        ...

    def watch(
        self, target: AttachTarget
    ) -> AbstractAsyncContextManager[AsyncIterator[Notification]]:
        """Subscribe to state changes of the target.

        The subscription is held for the lifetime of the context manager.
        """
        ...
