"""Runs a remote command end to end: wait, attach, pump, await, report."""

from __future__ import annotations

import asyncio
import sys
from collections.abc import Callable
from dataclasses import dataclass, field, replace

from podpipe.backends.base import (
    Attachment,
    AttachOptions,
    AttachTarget,
    Backend,
    Disconnected,
    Exited,
    Outcome,
)
from podpipe.errors import TargetNotReadyError
from podpipe.readiness import ReadinessWatcher, WatchState, running_watcher
from podpipe.streams import (
    DEFAULT_CHUNK_SIZE,
    ByteSink,
    ByteSource,
    CapturedSink,
    Direction,
    PumpResult,
    pump,
)

Reporter = Callable[[str], None]

# Exit code reported for a session whose transport dropped; never 0.
DISCONNECTED_EXIT_CODE = 255

DEFAULT_READY_TIMEOUT = 300.0
DEFAULT_DRAIN_TIMEOUT = 5.0


def report_to_stderr(message: str) -> None:
    """Default reporter: one line per message on stderr."""
    print(message, file=sys.stderr)


@dataclass
class RunResult:
    """What a remote run produced.

    Attributes:
        outcome: Exited or Disconnected.
        stdout: Captured standard output, None if not captured or empty.
        stderr: Captured standard error, None if not captured or empty.
        pumps: One result per pump that was started.
    """

    outcome: Outcome
    stdout: bytes | None = None
    stderr: bytes | None = None
    pumps: list[PumpResult] = field(default_factory=list)

    @property
    def disconnected(self) -> bool:
        return isinstance(self.outcome, Disconnected)

    @property
    def exit_code(self) -> int:
        if isinstance(self.outcome, Exited):
            return self.outcome.code
        return DISCONNECTED_EXIT_CODE

    @property
    def stdout_text(self) -> str | None:
        return _decode(self.stdout)

    @property
    def stderr_text(self) -> str | None:
        return _decode(self.stderr)

    @property
    def failed_pumps(self) -> list[PumpResult]:
        return [p for p in self.pumps if not p.ok]

    def pump_for(self, direction: Direction) -> PumpResult | None:
        for result in self.pumps:
            if result.direction is direction:
                return result
        return None


def _decode(data: bytes | None) -> str | None:
    if data is None:
        return None
    return data.decode("utf-8", errors="replace")


class SessionOrchestrator:
    """Sequences readiness, attachment, pumps and completion for one backend.

    Diagnostics go to the injected reporter; the orchestrator never assumes a
    global logging setup.
    """

    def __init__(
        self,
        backend: Backend,
        reporter: Reporter = report_to_stderr,
        drain_timeout: float = DEFAULT_DRAIN_TIMEOUT,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ) -> None:
        """Initialize the orchestrator.

        Args:
            backend: Backend that attaches to targets.
            reporter: Receives warnings and captured output summaries.
            drain_timeout: Seconds output pumps get to reach end of stream
                after the session completes.
            chunk_size: Maximum bytes per pump read.
        """
        self._backend = backend
        self._reporter = reporter
        self._drain_timeout = drain_timeout
        self._chunk_size = chunk_size

    @property
    def backend(self) -> Backend:
        return self._backend

    async def wait_ready(
        self,
        target: AttachTarget,
        timeout: float | None = DEFAULT_READY_TIMEOUT,
    ) -> ReadinessWatcher:
        """Wait for the target to be running.

        Raises:
            TargetNotReadyError: On timeout or watch failure.
        """
        watcher = running_watcher(self._backend, target, timeout)
        state = await watcher.wait()
        if state is not WatchState.OBSERVED:
            raise TargetNotReadyError(f"{target} is {watcher.describe()}.", state)
        return watcher

    async def run(
        self,
        target: AttachTarget,
        command: list[str],
        options: AttachOptions | None = None,
        stdin: ByteSource | None = None,
        stdout: ByteSink | None = None,
        stderr: ByteSink | None = None,
        wait_ready: bool = True,
        ready_timeout: float | None = DEFAULT_READY_TIMEOUT,
    ) -> RunResult:
        """Run ``command`` in ``target`` and wait for it to finish.

        Args:
            target: Where to run.
            command: Remote command vector.
            options: Stream wiring; ``stdin`` is switched on when a source is
                given.
            stdin: Local payload for the remote command's standard input.
            stdout: Destination for remote output; captured when None.
            stderr: Destination for remote errors; captured when None.
            wait_ready: Wait for the target to be running before attaching.
            ready_timeout: Deadline for the readiness wait in seconds.

        Returns:
            RunResult with the outcome, captured output and pump results.

        Raises:
            TargetNotReadyError: If the readiness wait fails.
            AttachError: If the target cannot be attached to.
        """
        options = options or AttachOptions()
        if stdin is not None and not options.stdin:
            options = replace(options, stdin=True)
        if options.stdin and stdin is None:
            raise ValueError("options.stdin is set but no stdin source was given")

        if wait_ready:
            await self.wait_ready(target, ready_timeout)

        attachment = await self._backend.attach(target, command, options)
        try:
            return await self._drive(attachment, stdin, stdout, stderr)
        finally:
            await attachment.close()

    async def _drive(
        self,
        attachment: Attachment,
        stdin: ByteSource | None,
        stdout: ByteSink | None,
        stderr: ByteSink | None,
    ) -> RunResult:
        captures: dict[Direction, CapturedSink] = {}
        results: dict[Direction, PumpResult] = {}
        tasks: dict[Direction, asyncio.Task[PumpResult]] = {}

        def start(direction: Direction, source: ByteSource, sink: ByteSink) -> None:
            result = results[direction] = PumpResult(direction=direction)
            tasks[direction] = asyncio.create_task(
                pump(direction, source, sink, self._chunk_size, result),
                name=f"pump-{direction.value}",
            )

        if attachment.stdin is not None and stdin is not None:
            start(Direction.INPUT, stdin, attachment.stdin)
        for direction, source, sink in (
            (Direction.OUTPUT, attachment.stdout, stdout),
            (Direction.ERROR, attachment.stderr, stderr),
        ):
            if source is None:
                continue
            if sink is None:
                sink = captures[direction] = CapturedSink()
            start(direction, source, sink)

        try:
            outcome = await attachment.wait()
            await self._join(tasks, results)
        finally:
            for task in tasks.values():
                task.cancel()

        for result in results.values():
            if not result.ok:
                self._reporter(f"Warning: {result.describe()}")
        if isinstance(outcome, Disconnected):
            self._reporter(f"Warning: {attachment.target} {outcome}")

        captured = {
            direction: sink.snapshot() or None
            for direction, sink in captures.items()
        }
        return RunResult(
            outcome=outcome,
            stdout=captured.get(Direction.OUTPUT),
            stderr=captured.get(Direction.ERROR),
            pumps=list(results.values()),
        )

    async def _join(
        self,
        tasks: dict[Direction, asyncio.Task[PumpResult]],
        results: dict[Direction, PumpResult],
    ) -> None:
        """Await every pump after completion.

        Input can no longer be delivered once the remote side has finished,
        so an unfinished input pump is detached. Output pumps get the drain
        timeout to reach end of stream, then are detached too.
        """
        input_task = tasks.get(Direction.INPUT)
        if input_task is not None and not input_task.done():
            input_task.cancel()

        output_tasks = [t for d, t in tasks.items() if d is not Direction.INPUT]
        if output_tasks:
            _, pending = await asyncio.wait(output_tasks, timeout=self._drain_timeout)
            for task in pending:
                task.cancel()

        outcomes = await asyncio.gather(*tasks.values(), return_exceptions=True)
        for direction, value in zip(tasks, outcomes, strict=True):
            if isinstance(value, asyncio.CancelledError):
                results[direction].cancelled = True
            elif isinstance(value, BaseException):
                results[direction].error = value


async def run_remote(
    backend: Backend,
    target: AttachTarget,
    command: list[str],
    stdin: ByteSource | None = None,
    options: AttachOptions | None = None,
    wait_ready: bool = True,
    ready_timeout: float | None = DEFAULT_READY_TIMEOUT,
    reporter: Reporter = report_to_stderr,
) -> RunResult:
    """Run a remote command with captured output in one call."""
    orchestrator = SessionOrchestrator(backend, reporter=reporter)
    return await orchestrator.run(
        target,
        command,
        options=options,
        stdin=stdin,
        wait_ready=wait_ready,
        ready_timeout=ready_timeout,
    )
