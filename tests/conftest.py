"""Shared fixtures for podpipe tests."""

from __future__ import annotations

import pytest

from podpipe.backends import AttachTarget


@pytest.fixture
def target() -> AttachTarget:
    return AttachTarget(name="web-0", namespace="demo")


@pytest.fixture
def messages() -> list[str]:
    """Collects reporter output."""
    return []
