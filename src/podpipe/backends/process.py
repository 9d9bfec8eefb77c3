"""Attachments and watches backed by a local client process.

Both backends reach their targets through a CLI (``oc exec``,
``podman exec``). The client process's pipes become the attachment's
endpoints and its exit becomes the completion signal.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager, suppress

from podpipe.backends.base import (
    Attachment,
    AttachOptions,
    AttachTarget,
    Notification,
    Outcome,
)
from podpipe.errors import BackendError, CommandNotInstalledError
from podpipe.streams import DEFAULT_CHUNK_SIZE, StreamReaderSource, StreamWriterSink

# Decides the outcome from the client's exit code and the tail of its error
# stream (None when the error stream was not wired).
ExitClassifier = Callable[[int, str | None], Outcome]

STDERR_TAIL_LIMIT = 4096


class _TailingSource:
    """Error stream reader that remembers the last few KiB it delivered."""

    def __init__(self, reader: asyncio.StreamReader) -> None:
        self._source = StreamReaderSource(reader)
        self._tail = bytearray()
        self.eof = asyncio.Event()

    async def read(self, size: int = DEFAULT_CHUNK_SIZE) -> bytes:
        try:
            data = await self._source.read(size)
        except OSError:
            self.eof.set()
            raise
        if data:
            self._tail += data
            del self._tail[:-STDERR_TAIL_LIMIT]
        else:
            self.eof.set()
        return data

    def text(self) -> str:
        return self._tail.decode(errors="replace")


async def _drain(source: _TailingSource) -> None:
    while await source.read():
        pass


class ProcessAttachment(Attachment):
    """Attachment whose transport is a client subprocess."""

    # How long to wait after the client exits for its error stream to be
    # drained before classifying the exit.
    STDERR_GRACE = 2.0

    def __init__(
        self,
        process: asyncio.subprocess.Process,
        target: AttachTarget,
        command: list[str],
        options: AttachOptions,
        classify: ExitClassifier,
    ) -> None:
        self._process = process
        self._classify = classify
        self._stderr_tail = (
            _TailingSource(process.stderr)
            if options.stderr and process.stderr is not None
            else None
        )
        super().__init__(
            target,
            command,
            options,
            stdin=StreamWriterSink(process.stdin) if options.stdin else None,
            stdout=StreamReaderSource(process.stdout) if options.stdout else None,
            stderr=self._stderr_tail,
        )
        self._exit_task = asyncio.create_task(self._watch_exit())

    @property
    def pid(self) -> int:
        return self._process.pid

    async def _watch_exit(self) -> None:
        returncode = await self._process.wait()
        tail: str | None = None
        if self._stderr_tail is not None:
            try:
                await asyncio.wait_for(
                    self._stderr_tail.eof.wait(), self.STDERR_GRACE
                )
            except TimeoutError:
                pass  # classify on whatever arrived
            tail = self._stderr_tail.text()
        self.resolve(self._classify(returncode, tail))

    async def close(self) -> None:
        if self._process.returncode is None:
            with suppress(ProcessLookupError):
                self._process.kill()
            await self._process.wait()
        await self._exit_task
        await super().close()


async def spawn_attachment(
    cmd: list[str],
    target: AttachTarget,
    command: list[str],
    options: AttachOptions,
    classify: ExitClassifier,
) -> ProcessAttachment:
    """Start the client process and wrap it as an attachment.

    Unwired output directions are inherited from this process, so they go
    straight to the local terminal. Stdin is piped when wired, inherited when
    the session is interactive without a local payload, and closed otherwise.

    Raises:
        CommandNotInstalledError: If the client binary is not installed.
    """
    if options.stdin:
        stdin = asyncio.subprocess.PIPE
    elif options.interactive:
        stdin = None
    else:
        stdin = asyncio.subprocess.DEVNULL

    try:
        process = await asyncio.create_subprocess_exec(
            *cmd,
            stdin=stdin,
            stdout=asyncio.subprocess.PIPE if options.stdout else None,
            stderr=asyncio.subprocess.PIPE if options.stderr else None,
        )
    except FileNotFoundError as e:
        raise CommandNotInstalledError(f"{cmd[0]} CLI not found.") from e

    return ProcessAttachment(process, target, command, options, classify)


@asynccontextmanager
async def watch_lines(
    cmd: list[str],
    parse: Callable[[str], Notification | None],
    initial: Callable[[], Awaitable[list[Notification]]] | None = None,
) -> AsyncIterator[AsyncIterator[Notification]]:
    """Run a line-per-event watch command for the duration of the context.

    Args:
        cmd: Watch command; must print one event per line.
        parse: Turns a line into a notification (None to skip the line).
        initial: Fetches the current state once the watch is running, so no
            change between the snapshot and the subscription is missed.

    Yields:
        Async iterator of notifications. It raises BackendError if the watch
        command fails.
    """
    try:
        process = await asyncio.create_subprocess_exec(
            *cmd,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except FileNotFoundError as e:
        raise CommandNotInstalledError(f"{cmd[0]} CLI not found.") from e

    assert process.stderr is not None
    stderr_tail = _TailingSource(process.stderr)
    drain = asyncio.create_task(_drain(stderr_tail))

    async def notifications() -> AsyncIterator[Notification]:
        if initial is not None:
            for notification in await initial():
                yield notification
        assert process.stdout is not None
        async for raw in process.stdout:
            notification = parse(raw.decode(errors="replace").strip())
            if notification is not None:
                yield notification
        returncode = await process.wait()
        if returncode != 0:
            await drain
            raise BackendError(
                f"watch command failed (exit code {returncode}): "
                f"{stderr_tail.text().strip()}"
            )

    try:
        yield notifications()
    finally:
        drain.cancel()
        if process.returncode is None:
            with suppress(ProcessLookupError):
                process.kill()
        await process.wait()
