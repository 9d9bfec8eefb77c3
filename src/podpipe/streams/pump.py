"""Unidirectional copy task between two byte endpoints."""

from __future__ import annotations

import enum
from dataclasses import dataclass

from podpipe.streams.base import DEFAULT_CHUNK_SIZE, ByteSink, ByteSource


class Direction(enum.Enum):
    """Which standard stream of the remote command a pump serves."""

    INPUT = "stdin"
    OUTPUT = "stdout"
    ERROR = "stderr"


@dataclass
class PumpResult:
    """Outcome of one pump.

    Attributes:
        direction: Stream the pump served.
        bytes_copied: Bytes written to the sink before the pump stopped.
        error: I/O error that terminated the pump early, if any.
        cancelled: True if the pump was detached before reaching end of stream.
    """

    direction: Direction
    bytes_copied: int = 0
    error: BaseException | None = None
    cancelled: bool = False

    @property
    def ok(self) -> bool:
        return self.error is None and not self.cancelled

    def describe(self) -> str:
        if self.error is not None:
            return (
                f"{self.direction.value} terminated early after "
                f"{self.bytes_copied} bytes: {self.error}"
            )
        if self.cancelled:
            return (
                f"{self.direction.value} detached after {self.bytes_copied} bytes"
            )
        return f"{self.direction.value} complete ({self.bytes_copied} bytes)"


async def pump(
    direction: Direction,
    source: ByteSource,
    sink: ByteSink,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
    result: PumpResult | None = None,
) -> PumpResult:
    """Copy ``source`` into ``sink`` until end of stream.

    Bytes are written in the order they are read. The sink is closed when the
    source is exhausted, which for the input direction tells the remote
    command that its standard input is complete.

    An ``OSError`` on either side (the remote process went away, the
    connection was reset) stops the copy at once and is returned in the
    result rather than raised, so one broken direction never takes the rest
    of the session down with it.

    Args:
        direction: Stream being served.
        source: Where bytes come from.
        sink: Where bytes go.
        chunk_size: Maximum bytes per read.
        result: Result to update in place, so a caller that cancels the pump
            still knows how far it got.

    Returns:
        PumpResult describing how far the copy got.
    """
    if result is None:
        result = PumpResult(direction=direction)
    try:
        while True:
            data = await source.read(chunk_size)
            if not data:
                break
            await sink.write(data)
            result.bytes_copied += len(data)
    except OSError as e:
        result.error = e

    try:
        await sink.close()
    except OSError as e:
        if result.error is None:
            result.error = e

    return result
