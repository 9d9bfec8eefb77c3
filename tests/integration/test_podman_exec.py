"""Integration tests for running commands in real Podman containers."""

from __future__ import annotations

import os
from pathlib import Path

import pytest

from podpipe.backends import AttachTarget, Exited, PodmanBackend
from podpipe.errors import TargetNotFoundError
from podpipe.orchestrator import SessionOrchestrator
from podpipe.streams import MemorySource, ProgressSource
from podpipe.upload import upload_file

pytestmark = [pytest.mark.integration, pytest.mark.podman]


@pytest.fixture
def orchestrator() -> SessionOrchestrator:
    return SessionOrchestrator(PodmanBackend(), reporter=lambda message: None)


class TestPodmanExec:
    """Commands run through podman exec."""

    @pytest.mark.asyncio
    async def test_echo_round_trip(
        self, podman_container: str, orchestrator: SessionOrchestrator
    ) -> None:
        """Bytes piped into cat come back unchanged."""
        payload = os.urandom(1_000_000)
        offsets: list[int] = []
        source = ProgressSource(MemorySource(payload), len(payload), offsets.append)

        result = await orchestrator.run(
            AttachTarget(name=podman_container), ["cat"], stdin=source, ready_timeout=60
        )

        assert result.outcome == Exited(0)
        assert result.stdout == payload
        assert offsets[-1] == len(payload)

    @pytest.mark.asyncio
    async def test_exit_code_and_stderr(
        self, podman_container: str, orchestrator: SessionOrchestrator
    ) -> None:
        result = await orchestrator.run(
            AttachTarget(name=podman_container),
            ["sh", "-c", "echo oops >&2; exit 7"],
            ready_timeout=60,
        )

        assert result.outcome == Exited(7)
        assert result.stdout is None
        assert result.stderr_text == "oops\n"

    @pytest.mark.asyncio
    async def test_missing_container(self, require_podman: None, unique_name: str) -> None:
        orchestrator = SessionOrchestrator(PodmanBackend(), reporter=lambda message: None)

        with pytest.raises(TargetNotFoundError):
            await orchestrator.run(AttachTarget(name=unique_name), ["true"], wait_ready=False)


class TestPodmanUpload:
    """Uploads through a command's stdin."""

    @pytest.mark.asyncio
    async def test_upload_then_read_back(
        self,
        podman_container: str,
        orchestrator: SessionOrchestrator,
        tmp_path: Path,
    ) -> None:
        payload = os.urandom(256 * 1024)
        local = tmp_path / "payload.bin"
        local.write_bytes(payload)
        target = AttachTarget(name=podman_container)

        uploaded = await upload_file(orchestrator, target, local, "/tmp/in/payload.bin")
        read_back = await orchestrator.run(target, ["cat", "/tmp/in/payload.bin"])

        assert uploaded.exit_code == 0
        assert read_back.stdout == payload
