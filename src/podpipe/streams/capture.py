"""Accumulating sink for remote output."""

from __future__ import annotations

import asyncio
import threading


class CapturedSink:
    """Append-only buffer with one writer and any number of later readers.

    The writer (a single stream pump) holds the sink until it calls
    ``close``; that is the handoff point after which readers see the final
    content. Every append and every snapshot runs under one lock, so a
    snapshot taken while a write is in flight sees a whole-write prefix and
    never a torn write. The sink does not arbitrate between two writers:
    callers guarantee there is only one.
    """

    def __init__(self, encoding: str = "utf-8") -> None:
        self.encoding = encoding
        self._buffer = bytearray()
        self._lock = threading.Lock()
        self._closed = asyncio.Event()

    def __len__(self) -> int:
        with self._lock:
            return len(self._buffer)

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    async def write(self, data: bytes) -> None:
        with self._lock:
            if self._closed.is_set():
                raise ValueError("write to closed capture")
            self._buffer += data

    async def close(self) -> None:
        self._closed.set()

    async def wait_closed(self) -> None:
        await self._closed.wait()

    def snapshot(self) -> bytes:
        """Return everything written so far."""
        with self._lock:
            return bytes(self._buffer)

    def text(self) -> str:
        """Return the content decoded as text.

        Undecodable bytes become U+FFFD instead of raising, so binary noise in
        remote output never aborts a capture.
        """
        return self.snapshot().decode(self.encoding, errors="replace")
