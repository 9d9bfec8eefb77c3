"""Copy a local file into a remote container through a command's stdin."""

from __future__ import annotations

import posixpath
import shlex
from pathlib import Path

from podpipe.backends.base import AttachOptions, AttachTarget
from podpipe.orchestrator import DEFAULT_READY_TIMEOUT, RunResult, SessionOrchestrator
from podpipe.streams import FileSource, ProgressObserver, ProgressSource


def build_upload_command(remote_path: str) -> list[str]:
    """Build the remote command that writes stdin to ``remote_path``.

    The parent directory is created first; an existing file is overwritten.

    Raises:
        ValueError: If the path is empty or names a directory.
    """
    if not remote_path or remote_path.endswith("/"):
        raise ValueError(f"Remote path must name a file, got '{remote_path}'")

    parent = posixpath.dirname(remote_path)
    write = f"cat > {shlex.quote(remote_path)}"
    if parent and parent != "/":
        script = f"mkdir -p {shlex.quote(parent)} && {write}"
    else:
        script = write
    return ["sh", "-c", script]


async def upload_file(
    orchestrator: SessionOrchestrator,
    target: AttachTarget,
    local_path: Path,
    remote_path: str,
    observer: ProgressObserver | None = None,
    wait_ready: bool = True,
    ready_timeout: float | None = DEFAULT_READY_TIMEOUT,
) -> RunResult:
    """Upload ``local_path`` to ``remote_path`` inside the target.

    The file is streamed once; if the session drops part way the result is
    disconnected and nothing is re-sent.

    Args:
        orchestrator: Orchestrator bound to the target's backend.
        target: Where to upload.
        local_path: Local file to send.
        remote_path: Destination file path in the container.
        observer: Called with the cumulative byte count after every read.
        wait_ready: Wait for the target to be running first.
        ready_timeout: Deadline for the readiness wait in seconds.

    Returns:
        RunResult of the remote write command.
    """
    command = build_upload_command(remote_path)
    total = local_path.stat().st_size

    with local_path.open("rb") as f:
        source = ProgressSource(FileSource(f), total=total, observer=observer)
        return await orchestrator.run(
            target,
            command,
            options=AttachOptions(stdin=True, stdout=True, stderr=True),
            stdin=source,
            wait_ready=wait_ready,
            ready_timeout=ready_timeout,
        )
