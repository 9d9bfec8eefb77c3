"""OpenShift backend implementation."""

from __future__ import annotations

import asyncio
import re
import subprocess
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass

from podpipe.backends.base import (
    AttachOptions,
    AttachTarget,
    Disconnected,
    Exited,
    Notification,
    Outcome,
)
from podpipe.backends.process import ProcessAttachment, spawn_attachment, watch_lines
from podpipe.errors import (
    BackendError,
    CommandNotInstalledError,
    CommandTimeoutError,
    NotLoggedInError,
    TargetNotAttachableError,
    TargetNotFoundError,
)


class OpenShiftError(BackendError):
    """Base exception for OpenShift backend errors."""

    pass


class OcNotInstalledError(OpenShiftError, CommandNotInstalledError):
    """The oc CLI is not installed."""

    pass


class OcNotLoggedInError(OpenShiftError, NotLoggedInError):
    """Not logged in to OpenShift cluster."""

    pass


class OcTimeoutError(OpenShiftError, CommandTimeoutError):
    """The oc CLI command timed out."""

    pass


@dataclass
class OpenShiftConfig:
    """Configuration for OpenShift backend.

    Attributes:
        context: Kubeconfig context to use (None for current context).
        namespace: Default namespace for targets (None for current namespace).
    """

    context: str | None = None
    namespace: str | None = None  # None means use current namespace


# kubectl/oc report a remote non-zero exit on their own stderr with this line
# and exit with the same code.
_TERMINATED_RE = re.compile(r"command terminated with exit code (\d+)")


def _last_line(text: str) -> str:
    lines = [line.strip() for line in text.splitlines() if line.strip()]
    return lines[-1] if lines else ""


def classify_oc_exit(returncode: int, stderr_tail: str | None) -> Outcome:
    """Tell a remote exit status apart from a dropped connection.

    Args:
        returncode: Exit code of the ``oc exec`` process.
        stderr_tail: Last part of its error stream, or None if not captured.

    Returns:
        Exited for a status the remote command produced, Disconnected when
        ``oc`` itself gave up (lost connection, killed, API error).
    """
    if returncode == 0:
        return Exited(0)
    if returncode < 0:
        return Disconnected(f"oc terminated by signal {-returncode}")
    if stderr_tail is None:
        return Exited(returncode)

    matches = _TERMINATED_RE.findall(stderr_tail)
    if matches and int(matches[-1]) == returncode:
        return Exited(returncode)

    reason = _last_line(stderr_tail) or f"oc exited with code {returncode}"
    return Disconnected(reason)


def _parse_watch_line(line: str) -> Notification | None:
    name, _, phase = line.partition(" ")
    if not name or not phase:
        return None
    return Notification(name=name, phase=phase.strip())


class OpenShiftBackend:
    """OpenShift remote execution backend.

    Commands run in pods through ``oc exec``; readiness is observed with
    ``oc get pods --watch``.
    """

    name = "openshift"
    running_phase = "Running"
    failed_phases = frozenset({"Failed", "Error", "Succeeded"})

    # Default timeout for oc commands (seconds)
    OC_DEFAULT_TIMEOUT = 30

    def __init__(self, config: OpenShiftConfig | None = None) -> None:
        """Initialize the OpenShift backend.

        Args:
            config: OpenShift configuration. Defaults to OpenShiftConfig().
        """
        self._config = config or OpenShiftConfig()
        self._resolved_namespace: str | None = None

    @property
    def namespace(self) -> str:
        """Get the resolved namespace.

        If namespace is not explicitly configured, uses the current namespace
        from the kubeconfig context.

        Returns:
            Resolved namespace name.
        """
        if self._resolved_namespace is not None:
            return self._resolved_namespace

        if self._config.namespace:
            self._resolved_namespace = self._config.namespace
        else:
            # Get current namespace from kubeconfig
            self._resolved_namespace = self._get_current_namespace()

        return self._resolved_namespace

    def _oc_prefix(self) -> list[str]:
        cmd = ["oc"]
        if self._config.context:
            cmd.extend(["--context", self._config.context])
        return cmd

    def _run_oc(
        self,
        *args: str,
        check: bool = True,
        timeout: int | None = None,
    ) -> subprocess.CompletedProcess[str]:
        """Run an oc command and capture its output.

        Args:
            *args: Command arguments (without 'oc').
            check: Raise on non-zero exit (default True).
            timeout: Timeout in seconds (default OC_DEFAULT_TIMEOUT).
                     Use None to inherit class default, 0 for no timeout.

        Returns:
            CompletedProcess result.

        Raises:
            OcNotInstalledError: If oc is not installed.
            OcTimeoutError: If command times out.
            OpenShiftError: If command fails and check=True.
        """
        cmd = self._oc_prefix()
        cmd.extend(args)

        if timeout is None:
            timeout_value: float | None = self.OC_DEFAULT_TIMEOUT
        elif timeout == 0:
            timeout_value = None  # No timeout
        else:
            timeout_value = timeout

        try:
            result = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                timeout=timeout_value,
            )
        except subprocess.TimeoutExpired:
            cmd_str = " ".join(cmd)
            raise OcTimeoutError(
                f"oc command timed out after {timeout_value}s: {cmd_str}\n"
                "This may indicate network issues connecting to the cluster.\n"
                "Check your cluster connectivity and try: oc status"
            ) from None
        except FileNotFoundError as e:
            raise OcNotInstalledError(
                "oc CLI not found. Install it from your OpenShift cluster or "
                "run: brew install openshift-cli"
            ) from e

        if check and result.returncode != 0:
            self._raise_for_stderr(result.stderr)

        return result

    @staticmethod
    def _raise_for_stderr(stderr: str) -> None:
        if "error: You must be logged in" in stderr:
            raise OcNotLoggedInError(
                "Not logged in to OpenShift. Run: oc login <cluster-url>"
            )
        raise OpenShiftError(f"oc command failed: {stderr.strip()}")

    def _get_current_namespace(self) -> str:
        """Get the current namespace from oc config.

        Returns:
            Current namespace name.
        """
        result = self._run_oc(
            "config", "view", "--minify", "-o",
            "jsonpath={.contexts[0].context.namespace}"
        )
        ns = result.stdout.strip()
        return ns if ns else "default"

    def _namespace_for(self, target: AttachTarget) -> str:
        return target.namespace or self.namespace

    def _get_pod_phase(self, target: AttachTarget) -> str:
        """Get the phase of the target pod.

        Raises:
            TargetNotFoundError: If the pod does not exist.
        """
        ns = self._namespace_for(target)
        result = self._run_oc(
            "get", "pod", target.name,
            "-n", ns,
            "-o", "jsonpath={.status.phase}",
            check=False,
        )
        if result.returncode != 0:
            if "NotFound" in result.stderr or "not found" in result.stderr:
                raise TargetNotFoundError(
                    f"Pod '{target.name}' not found in namespace '{ns}'."
                )
            self._raise_for_stderr(result.stderr)
        return result.stdout.strip()

    def build_exec_command(
        self,
        target: AttachTarget,
        command: list[str],
        options: AttachOptions,
    ) -> list[str]:
        """Build the ``oc exec`` invocation for a command."""
        cmd = self._oc_prefix()
        cmd.extend(["exec", "-n", self._namespace_for(target)])
        if options.stdin or options.interactive:
            cmd.append("-i")
        if options.tty:
            cmd.append("-t")
        cmd.append(target.name)
        if target.container:
            cmd.extend(["-c", target.container])
        cmd.append("--")
        cmd.extend(command)
        return cmd

    async def attach(
        self,
        target: AttachTarget,
        command: list[str],
        options: AttachOptions,
    ) -> ProcessAttachment:
        """Run a command in a running pod.

        Raises:
            TargetNotFoundError: If the pod does not exist.
            TargetNotAttachableError: If the pod is not running.
        """
        phase = await asyncio.to_thread(self._get_pod_phase, target)
        if phase != self.running_phase:
            raise TargetNotAttachableError(
                f"Pod '{target.name}' is not running (status: {phase or 'unknown'})."
            )

        cmd = self.build_exec_command(target, command, options)
        return await spawn_attachment(cmd, target, command, options, classify_oc_exit)

    def build_watch_command(self, target: AttachTarget) -> list[str]:
        """Build the ``oc get --watch`` invocation for a pod."""
        cmd = self._oc_prefix()
        cmd.extend([
            "get", "pods",
            "-n", self._namespace_for(target),
            "--field-selector", f"metadata.name={target.name}",
            "--watch",
            "-o", 'jsonpath={.metadata.name}{" "}{.status.phase}{"\\n"}',
        ])
        return cmd

    @asynccontextmanager
    async def watch(self, target: AttachTarget) -> AsyncIterator[AsyncIterator[Notification]]:
        """Watch phase changes of the target pod.

        Resolving the current namespace runs ``oc``, so the command is built
        in a worker thread.
        """
        cmd = await asyncio.to_thread(self.build_watch_command, target)
        async with watch_lines(cmd, _parse_watch_line) as notifications:
            yield notifications
