"""Wait for a watched resource to reach a state before a deadline."""

from __future__ import annotations

import asyncio
import enum
from collections.abc import AsyncIterator, Callable
from contextlib import AbstractAsyncContextManager

from podpipe.backends.base import AttachTarget, Backend, Notification
from podpipe.errors import PodpipeError

Subscribe = Callable[[], AbstractAsyncContextManager[AsyncIterator[Notification]]]
Predicate = Callable[[Notification], bool]


class WatchState(enum.Enum):
    """Lifecycle of a readiness watch."""

    WATCHING = "watching"
    OBSERVED = "observed"
    TIMED_OUT = "timed_out"
    WATCH_ERROR = "watch_error"


def phase_is(*phases: str) -> Predicate:
    """Predicate that holds when the notification's phase is one of ``phases``."""
    wanted = frozenset(phases)
    return lambda notification: notification.phase in wanted


class ReadinessWatcher:
    """Watches one resource until a predicate holds or a deadline passes.

    One watcher covers one resource, one predicate and one deadline; ``wait``
    may only be called once. The subscription is scoped to ``wait`` and is
    released on every exit path, timeout included.

    Attributes:
        state: Current WatchState.
        snapshot: Last notification seen, or None.
        error: Description of what went wrong for WATCH_ERROR.
    """

    def __init__(
        self,
        subscribe: Subscribe,
        predicate: Predicate,
        timeout: float | None,
        failure: Predicate | None = None,
    ) -> None:
        """Initialize the watcher.

        Args:
            subscribe: Opens the notification subscription.
            predicate: Condition to wait for.
            timeout: Deadline in seconds (None waits forever).
            failure: Condition that means the predicate can no longer hold.
        """
        self._subscribe = subscribe
        self._predicate = predicate
        self._failure = failure
        self.timeout = timeout
        self.state = WatchState.WATCHING
        self.snapshot: Notification | None = None
        self.error: str | None = None
        self._started = False

    @property
    def terminal(self) -> bool:
        return self.state is not WatchState.WATCHING

    async def wait(self) -> WatchState:
        """Watch until a terminal state is reached.

        Returns:
            OBSERVED, TIMED_OUT or WATCH_ERROR.

        Raises:
            RuntimeError: If called more than once.
        """
        if self._started:
            raise RuntimeError("ReadinessWatcher.wait() can only be called once")
        self._started = True

        try:
            async with asyncio.timeout(self.timeout):
                async with self._subscribe() as notifications:
                    async for notification in notifications:
                        self.snapshot = notification
                        if self._predicate(notification):
                            self.state = WatchState.OBSERVED
                            return self.state
                        if self._failure is not None and self._failure(notification):
                            self.error = (
                                f"{notification.name} entered phase "
                                f"{notification.phase}"
                            )
                            self.state = WatchState.WATCH_ERROR
                            return self.state
        except TimeoutError:
            self.state = WatchState.TIMED_OUT
            return self.state
        except (PodpipeError, OSError) as e:
            self.error = str(e)
            self.state = WatchState.WATCH_ERROR
            return self.state

        self.error = "watch ended before the condition was met"
        self.state = WatchState.WATCH_ERROR
        return self.state

    def describe(self) -> str:
        if self.state is WatchState.OBSERVED:
            return "ready"
        if self.state is WatchState.TIMED_OUT:
            last = self.snapshot.phase if self.snapshot else "no status"
            return f"not ready within {self.timeout} seconds (last: {last})"
        if self.state is WatchState.WATCH_ERROR:
            return f"watch failed: {self.error}"
        return "watching"


def running_watcher(
    backend: Backend,
    target: AttachTarget,
    timeout: float | None,
) -> ReadinessWatcher:
    """Build a watcher that waits for the target to be running on ``backend``."""
    return ReadinessWatcher(
        subscribe=lambda: backend.watch(target),
        predicate=phase_is(backend.running_phase),
        timeout=timeout,
        failure=phase_is(*backend.failed_phases),
    )
