"""Byte endpoints shared by pumps, attachments and captures.

Every endpoint is one of two capabilities: something that can be read
(``ByteSource``) or something that can be written and closed (``ByteSink``).
Files, remote channels and in-memory buffers all provide the same interface,
so a pump never needs to know what sits on either end.
"""

from __future__ import annotations

import asyncio
import io
import os
import stat
from collections import deque
from typing import BinaryIO, Protocol

DEFAULT_CHUNK_SIZE = 64 * 1024


class ByteSource(Protocol):
    """A readable byte endpoint."""

    async def read(self, size: int = DEFAULT_CHUNK_SIZE) -> bytes:
        """Read up to ``size`` bytes.

        Returns:
            The bytes read; an empty bytes object means end of stream.
        """
        ...


class ByteSink(Protocol):
    """A writable byte endpoint."""

    async def write(self, data: bytes) -> None:
        """Write all of ``data``."""
        ...

    async def close(self) -> None:
        """Signal end of stream to the reader on the other side."""
        ...


class FileSource:
    """Reads from a binary file object without blocking the event loop.

    Works for regular files as well as the local terminal (``sys.stdin.buffer``):
    ``read1`` is preferred so a terminal read returns as soon as some input
    is available instead of waiting for a full chunk.
    """

    def __init__(self, file: BinaryIO, close_file: bool = False) -> None:
        self._file = file
        self._close_file = close_file
        self._read = getattr(file, "read1", file.read)

    async def read(self, size: int = DEFAULT_CHUNK_SIZE) -> bytes:
        data = await asyncio.to_thread(self._read, size)
        return data or b""

    def close(self) -> None:
        if self._close_file:
            self._file.close()


class FileSink:
    """Writes to a binary file object (a local file or the local terminal)."""

    def __init__(self, file: BinaryIO, close_file: bool = False) -> None:
        self._file = file
        self._close_file = close_file

    async def write(self, data: bytes) -> None:
        await asyncio.to_thread(self._write_and_flush, data)

    def _write_and_flush(self, data: bytes) -> None:
        self._file.write(data)
        self._file.flush()

    async def close(self) -> None:
        if self._close_file:
            self._file.close()


class StreamReaderSource:
    """Remote channel endpoint backed by an ``asyncio.StreamReader``."""

    def __init__(self, reader: asyncio.StreamReader) -> None:
        self._reader = reader

    async def read(self, size: int = DEFAULT_CHUNK_SIZE) -> bytes:
        return await self._reader.read(size)


class StreamWriterSink:
    """Remote channel endpoint backed by an ``asyncio.StreamWriter``.

    Closing the sink closes the remote command's standard input, which is how
    the remote side learns that the local payload is complete.
    """

    def __init__(self, writer: asyncio.StreamWriter) -> None:
        self._writer = writer

    async def write(self, data: bytes) -> None:
        self._writer.write(data)
        await self._writer.drain()

    async def close(self) -> None:
        if self._writer.is_closing():
            return
        self._writer.close()
        await self._writer.wait_closed()


class PipeSource(StreamReaderSource):
    """Reads a pipe or terminal through the event loop.

    No worker thread is involved, so a read that is still waiting for local
    input is cancelled cleanly when the session ends. A terminal is reopened
    by name so that switching it to non-blocking mode leaves the local
    stdout and stderr alone.
    """

    def __init__(
        self, reader: asyncio.StreamReader, transport: asyncio.ReadTransport
    ) -> None:
        super().__init__(reader)
        self._transport = transport

    @classmethod
    async def open(cls, fd: int) -> PipeSource:
        if os.isatty(fd):
            pipe = open(os.ttyname(fd), "rb", buffering=0)
        else:
            pipe = os.fdopen(os.dup(fd), "rb", buffering=0)

        loop = asyncio.get_running_loop()
        reader = asyncio.StreamReader()
        try:
            transport, _ = await loop.connect_read_pipe(
                lambda: asyncio.StreamReaderProtocol(reader), pipe
            )
        except BaseException:
            pipe.close()
            raise
        return cls(reader, transport)

    def close(self) -> None:
        self._transport.close()


async def open_input(file: BinaryIO) -> FileSource | PipeSource:
    """Open a local input endpoint for ``file``.

    Regular files (and in-memory files) are read in a worker thread; pipes
    and terminals go through the event loop so a pending read never outlives
    the session.
    """
    try:
        fd = file.fileno()
    except (AttributeError, io.UnsupportedOperation):
        return FileSource(file)
    if stat.S_ISREG(os.fstat(fd).st_mode):
        return FileSource(file)
    return await PipeSource.open(fd)


class MemorySource:
    """Serves a fixed bytes payload."""

    def __init__(self, data: bytes) -> None:
        self._data = memoryview(data)
        self._position = 0

    def __len__(self) -> int:
        return len(self._data)

    async def read(self, size: int = DEFAULT_CHUNK_SIZE) -> bytes:
        chunk = self._data[self._position : self._position + size]
        self._position += len(chunk)
        return bytes(chunk)


class MemoryPipe:
    """In-memory unidirectional channel: one side writes, the other reads.

    Stands in for a remote channel wherever a local buffer will do (loopback
    attachments, echo commands in tests). Like a socket it has a bounded
    buffer: a writer waits while ``capacity`` bytes are unread. ``fail``
    breaks the pipe so that pending and future operations raise, the way a
    dropped connection would.
    """

    def __init__(self, capacity: int | None = DEFAULT_CHUNK_SIZE) -> None:
        self.capacity = capacity
        self._chunks: deque[bytes] = deque()
        self._buffered = 0
        self._closed = False
        self._error: OSError | None = None
        self._changed = asyncio.Condition()

    @property
    def closed(self) -> bool:
        return self._closed

    def _full(self) -> bool:
        return self.capacity is not None and self._buffered >= self.capacity

    async def write(self, data: bytes) -> None:
        async with self._changed:
            while self._full() and not self._closed and self._error is None:
                await self._changed.wait()
            if self._error is not None:
                raise self._error
            if self._closed:
                raise BrokenPipeError("write to closed pipe")
            if data:
                self._chunks.append(bytes(data))
                self._buffered += len(data)
                self._changed.notify_all()

    async def close(self) -> None:
        async with self._changed:
            self._closed = True
            self._changed.notify_all()

    async def fail(self, error: OSError | None = None) -> None:
        async with self._changed:
            self._error = error or ConnectionResetError("connection lost")
            self._changed.notify_all()

    async def read(self, size: int = DEFAULT_CHUNK_SIZE) -> bytes:
        async with self._changed:
            while not self._chunks and not self._closed and self._error is None:
                await self._changed.wait()
            if self._error is not None:
                raise self._error
            if not self._chunks:
                return b""
            chunk = self._chunks.popleft()
            if len(chunk) > size:
                self._chunks.appendleft(chunk[size:])
                chunk = chunk[:size]
            self._buffered -= len(chunk)
            self._changed.notify_all()
            return chunk
