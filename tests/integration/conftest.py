"""Pytest fixtures and configuration for integration tests."""

from __future__ import annotations

import os
import secrets
import shutil
import subprocess
from collections.abc import Iterator

import pytest

# Default test image - can be overridden via environment variables
DEFAULT_TEST_IMAGE = "docker.io/library/alpine:3.20"


def pytest_configure(config: pytest.Config) -> None:
    """Register custom markers for integration tests."""
    config.addinivalue_line(
        "markers",
        "integration: integration tests requiring real infrastructure",
    )
    config.addinivalue_line(
        "markers",
        "podman: tests requiring real podman installation",
    )
    config.addinivalue_line(
        "markers",
        "kubernetes: tests requiring an OpenShift cluster",
    )


@pytest.fixture(scope="session")
def podman_available() -> bool:
    """Check if podman is available and working."""
    if shutil.which("podman") is None:
        return False

    try:
        result = subprocess.run(
            ["podman", "version"],
            capture_output=True,
            text=True,
            timeout=10,
        )
        return result.returncode == 0
    except (subprocess.TimeoutExpired, OSError):
        return False


@pytest.fixture(scope="session")
def kubernetes_available() -> bool:
    """Check if an OpenShift cluster is accessible through oc."""
    if shutil.which("oc") is None:
        return False

    try:
        result = subprocess.run(
            ["oc", "whoami"],
            capture_output=True,
            text=True,
            timeout=30,
        )
        return result.returncode == 0
    except (subprocess.TimeoutExpired, OSError):
        return False


@pytest.fixture
def require_podman(podman_available: bool) -> None:
    """Skip test if podman is not available."""
    if not podman_available:
        pytest.skip("podman not available")


@pytest.fixture
def require_kubernetes(kubernetes_available: bool) -> None:
    """Skip test if the cluster is not available."""
    if not kubernetes_available:
        pytest.skip("OpenShift cluster not available")


@pytest.fixture
def unique_name() -> str:
    """Generate a unique container or pod name for testing."""
    return f"podpipe-test-{secrets.token_hex(4)}"


@pytest.fixture(scope="session")
def test_image() -> str:
    """Get the test image name.

    Can be overridden with PODPIPE_TEST_IMAGE environment variable.
    """
    return os.environ.get("PODPIPE_TEST_IMAGE", DEFAULT_TEST_IMAGE)


@pytest.fixture
def podman_container(
    require_podman: None, unique_name: str, test_image: str
) -> Iterator[str]:
    """Start a long-running container and remove it afterwards."""
    result = subprocess.run(
        ["podman", "run", "-d", "--name", unique_name, test_image, "sleep", "600"],
        capture_output=True,
        text=True,
        timeout=300,
    )
    if result.returncode != 0:
        pytest.skip(f"cannot start test container: {result.stderr.strip()}")
    try:
        yield unique_name
    finally:
        subprocess.run(["podman", "rm", "-f", "-t", "0", unique_name], capture_output=True)


@pytest.fixture
def openshift_pod(
    require_kubernetes: None, unique_name: str, test_image: str
) -> Iterator[str]:
    """Create a long-running pod in the current namespace and delete it afterwards.

    The pod is not waited for; tests exercise the readiness wait themselves.
    """
    result = subprocess.run(
        [
            "oc", "run", unique_name,
            f"--image={test_image}",
            "--restart=Never",
            "--command", "--", "sleep", "600",
        ],
        capture_output=True,
        text=True,
        timeout=60,
    )
    if result.returncode != 0:
        pytest.skip(f"cannot create test pod: {result.stderr.strip()}")
    try:
        yield unique_name
    finally:
        subprocess.run(
            ["oc", "delete", "pod", unique_name, "--wait=false", "--ignore-not-found"],
            capture_output=True,
        )
