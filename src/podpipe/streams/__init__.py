"""Byte endpoints, progress tracking, capture and pumps."""

from podpipe.streams.base import (
    DEFAULT_CHUNK_SIZE,
    ByteSink,
    ByteSource,
    FileSink,
    FileSource,
    MemoryPipe,
    MemorySource,
    PipeSource,
    StreamReaderSource,
    StreamWriterSink,
    open_input,
)
from podpipe.streams.capture import CapturedSink
from podpipe.streams.progress import ProgressObserver, ProgressSource
from podpipe.streams.pump import Direction, PumpResult, pump

__all__ = [
    "DEFAULT_CHUNK_SIZE",
    "ByteSink",
    "ByteSource",
    "CapturedSink",
    "Direction",
    "FileSink",
    "FileSource",
    "MemoryPipe",
    "MemorySource",
    "PipeSource",
    "ProgressObserver",
    "ProgressSource",
    "PumpResult",
    "StreamReaderSource",
    "StreamWriterSink",
    "open_input",
    "pump",
]
