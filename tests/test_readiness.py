"""Tests for the readiness watcher."""

from __future__ import annotations

import asyncio
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import pytest

from podpipe.backends import AttachTarget, Notification
from podpipe.errors import BackendError
from podpipe.readiness import ReadinessWatcher, WatchState, phase_is, running_watcher

from fakes import FakeBackend


def scripted(*steps: tuple[float, str], hang: bool = False):
    """Subscription that emits (delay, phase) steps, optionally never ending."""
    state = {"opened": 0, "closed": 0}

    async def notifications() -> AsyncIterator[Notification]:
        for delay, phase in steps:
            await asyncio.sleep(delay)
            yield Notification(name="web-0", phase=phase)
        if hang:
            await asyncio.Event().wait()

    @asynccontextmanager
    async def subscribe() -> AsyncIterator[AsyncIterator[Notification]]:
        state["opened"] += 1
        try:
            yield notifications()
        finally:
            state["closed"] += 1

    return subscribe, state


class TestReadinessWatcher:
    """Tests for ReadinessWatcher."""

    @pytest.mark.asyncio
    async def test_observed_when_predicate_holds(self) -> None:
        """The watcher resolves OBSERVED on the first matching notification."""
        subscribe, state = scripted((0, "Pending"), (0, "Running"), (0, "Failed"))
        watcher = ReadinessWatcher(subscribe, phase_is("Running"), timeout=5)

        assert watcher.state is WatchState.WATCHING
        assert await watcher.wait() is WatchState.OBSERVED
        assert watcher.snapshot == Notification(name="web-0", phase="Running")
        assert state == {"opened": 1, "closed": 1}

    @pytest.mark.asyncio
    async def test_observed_after_change_and_before_deadline(self) -> None:
        """OBSERVED arrives no earlier than the change and before the deadline."""
        subscribe, _ = scripted((0, "Pending"), (0.05, "Running"), hang=True)
        watcher = ReadinessWatcher(subscribe, phase_is("Running"), timeout=2)

        start = time.monotonic()
        assert await watcher.wait() is WatchState.OBSERVED
        elapsed = time.monotonic() - start

        assert 0.04 <= elapsed < 2

    @pytest.mark.asyncio
    async def test_times_out_at_deadline(self) -> None:
        """A stream that never satisfies the predicate times out at the deadline."""
        subscribe, state = scripted((0, "Pending"), hang=True)
        watcher = ReadinessWatcher(subscribe, phase_is("Running"), timeout=0.1)

        start = time.monotonic()
        assert await watcher.wait() is WatchState.TIMED_OUT
        elapsed = time.monotonic() - start

        assert 0.09 <= elapsed < 1.0
        assert watcher.snapshot is not None
        assert watcher.snapshot.phase == "Pending"
        assert "not ready within 0.1 seconds (last: Pending)" in watcher.describe()

    @pytest.mark.asyncio
    async def test_subscription_released_on_timeout(self) -> None:
        """The watch subscription is closed when the deadline expires."""
        subscribe, state = scripted(hang=True)
        watcher = ReadinessWatcher(subscribe, phase_is("Running"), timeout=0.05)

        await watcher.wait()

        assert state == {"opened": 1, "closed": 1}

    @pytest.mark.asyncio
    async def test_failure_phase_is_watch_error(self) -> None:
        """A failure phase ends the watch early."""
        subscribe, _ = scripted((0, "Pending"), (0, "Failed"), hang=True)
        watcher = ReadinessWatcher(
            subscribe, phase_is("Running"), timeout=5, failure=phase_is("Failed")
        )

        assert await watcher.wait() is WatchState.WATCH_ERROR
        assert watcher.error == "web-0 entered phase Failed"

    @pytest.mark.asyncio
    async def test_stream_end_is_watch_error(self) -> None:
        """A watch that ends without the predicate holding is an error."""
        subscribe, state = scripted((0, "Pending"))
        watcher = ReadinessWatcher(subscribe, phase_is("Running"), timeout=5)

        assert await watcher.wait() is WatchState.WATCH_ERROR
        assert "ended" in (watcher.error or "")
        assert state["closed"] == 1

    @pytest.mark.asyncio
    async def test_backend_error_is_watch_error(self) -> None:
        """Errors raised by the subscription become WATCH_ERROR."""

        @asynccontextmanager
        async def subscribe() -> AsyncIterator[AsyncIterator[Notification]]:
            raise BackendError("oc CLI not found.")
            yield  # pragma: no cover

        watcher = ReadinessWatcher(subscribe, phase_is("Running"), timeout=5)

        assert await watcher.wait() is WatchState.WATCH_ERROR
        assert watcher.error == "oc CLI not found."
        assert watcher.describe() == "watch failed: oc CLI not found."

    @pytest.mark.asyncio
    async def test_not_reentrant(self) -> None:
        """A watcher can only be waited on once."""
        subscribe, _ = scripted((0, "Running"))
        watcher = ReadinessWatcher(subscribe, phase_is("Running"), timeout=5)
        await watcher.wait()

        with pytest.raises(RuntimeError):
            await watcher.wait()

    @pytest.mark.asyncio
    async def test_running_watcher_uses_backend_phases(self) -> None:
        """running_watcher waits for the backend's running phase."""
        backend = FakeBackend(phases=["Pending", "Running"])
        watcher = running_watcher(backend, AttachTarget(name="web-0"), timeout=5)

        assert await watcher.wait() is WatchState.OBSERVED
        assert backend.watches_opened == backend.watches_closed == 1

    @pytest.mark.asyncio
    async def test_running_watcher_fails_on_backend_failed_phase(self) -> None:
        """running_watcher treats the backend's failed phases as errors."""
        backend = FakeBackend(phases=["Pending", "Failed"], hang_after_phases=True)
        watcher = running_watcher(backend, AttachTarget(name="web-0"), timeout=5)

        assert await watcher.wait() is WatchState.WATCH_ERROR


def test_phase_is_matches_any_listed_phase() -> None:
    """phase_is accepts several phases."""
    predicate = phase_is("Failed", "Error")

    assert predicate(Notification(name="p", phase="Error"))
    assert not predicate(Notification(name="p", phase="Running"))
