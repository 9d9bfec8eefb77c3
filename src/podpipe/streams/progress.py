"""Byte source that reports cumulative progress as it is read."""

from __future__ import annotations

from collections.abc import Callable

from podpipe.streams.base import DEFAULT_CHUNK_SIZE, ByteSource

ProgressObserver = Callable[[int], None]


class ProgressSource:
    """Wraps a finite source of known length and tracks how much was read.

    The offset starts at zero, only grows, and never passes ``total``: reads
    are clamped to the remaining length, and once ``total`` bytes have been
    delivered the source reports end of stream without touching the inner
    source again. The observer is called with the new offset after every
    non-empty read, before ``read`` returns; it is never called for end of
    stream. Errors from the inner source propagate unchanged.
    """

    def __init__(
        self,
        source: ByteSource,
        total: int,
        observer: ProgressObserver | None = None,
    ) -> None:
        if total < 0:
            raise ValueError(f"total must be non-negative, got {total}")
        self._source = source
        self._observer = observer
        self.total = total
        self.offset = 0

    @property
    def remaining(self) -> int:
        return self.total - self.offset

    @property
    def finished(self) -> bool:
        return self.offset >= self.total

    async def read(self, size: int = DEFAULT_CHUNK_SIZE) -> bytes:
        if self.finished:
            return b""
        data = await self._source.read(min(size, self.remaining))
        if not data:
            return b""
        # The inner source may ignore the size hint.
        data = data[: self.remaining]
        self.offset += len(data)
        if self._observer is not None:
            self._observer(self.offset)
        return data
