"""Typer CLI for podpipe."""

from __future__ import annotations

import asyncio
import os
import sys
from pathlib import Path
from typing import Annotated

import typer

from podpipe import __version__
from podpipe.backends import AttachOptions, AttachTarget, create_backend
from podpipe.config import PodpipeConfig, load_config
from podpipe.errors import PodpipeError
from podpipe.orchestrator import RunResult, SessionOrchestrator
from podpipe.progress import TransferProgress
from podpipe.streams import (
    ByteSink,
    ByteSource,
    FileSink,
    FileSource,
    ProgressSource,
    open_input,
)
from podpipe.upload import upload_file

app = typer.Typer(
    name="podpipe",
    help="Pipe local input into commands running in remote containers.",
    add_completion=False,
    no_args_is_help=True,
)


def version_callback(value: bool) -> None:
    """Print version information and exit."""
    if value:
        typer.echo(f"podpipe {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            "-V",
            callback=version_callback,
            is_eager=True,
            help="Show podpipe version and exit.",
        ),
    ] = False,
) -> None:
    """Pipe local input into commands running in remote containers."""


def _report(message: str) -> None:
    typer.echo(message, err=True)


def _fail(message: str) -> typer.Exit:
    typer.echo(f"Error: {message}", err=True)
    return typer.Exit(1)


BackendOpt = Annotated[
    str | None,
    typer.Option("--backend", "-b", help="Backend to use: openshift or podman."),
]
ContextOpt = Annotated[
    str | None,
    typer.Option("--context", help="Kubeconfig context (OpenShift)."),
]
NamespaceOpt = Annotated[
    str | None,
    typer.Option("--namespace", "-n", help="Namespace of the target pod."),
]
ContainerOpt = Annotated[
    str | None,
    typer.Option("--container", "-c", help="Container within the pod."),
]
TimeoutOpt = Annotated[
    float | None,
    typer.Option("--timeout", help="Seconds to wait for the target to run."),
]
WaitOpt = Annotated[
    bool,
    typer.Option("--wait/--no-wait", help="Wait for the target to be running."),
]


def _settings(
    backend: str | None,
    context: str | None,
    namespace: str | None,
    container: str | None,
    timeout: float | None,
) -> PodpipeConfig:
    """Load workspace config and environment, then apply CLI flags."""
    try:
        config = load_config(Path.cwd(), os.environ)
    except PodpipeError as e:
        raise _fail(str(e)) from None

    if backend:
        config.backend = backend
    if context:
        config.context = context
    if namespace:
        config.namespace = namespace
    if container:
        config.container = container
    if timeout is not None:
        config.ready_timeout = timeout
    return config


def _orchestrator(config: PodpipeConfig) -> SessionOrchestrator:
    try:
        backend = create_backend(
            config.backend, context=config.context, namespace=config.namespace
        )
    except ValueError as e:
        raise _fail(str(e)) from None
    return SessionOrchestrator(
        backend,
        reporter=_report,
        drain_timeout=config.drain_timeout,
        chunk_size=config.chunk_size,
    )


def _target(name: str, config: PodpipeConfig) -> AttachTarget:
    return AttachTarget(name=name, container=config.container, namespace=config.namespace)


def _finish(result: RunResult) -> typer.Exit:
    """Print captured output and turn the outcome into the process exit code."""
    if result.stdout_text:
        typer.echo(result.stdout_text, nl=False)
    if result.stderr_text:
        typer.echo(result.stderr_text, nl=False, err=True)
    if result.disconnected:
        typer.echo(f"Error: session {result.outcome}", err=True)
    return typer.Exit(result.exit_code)


def _reset_terminal() -> None:
    """Reset terminal state after a tty session drops."""
    os.system("stty sane 2>/dev/null")  # noqa: S605


@app.command("exec")
def exec_command(
    target: Annotated[str, typer.Argument(help="Pod or container name.")],
    command: Annotated[
        list[str],
        typer.Argument(help="Command to run in the target (after --)."),
    ],
    stdin: Annotated[
        bool,
        typer.Option("--stdin", "-i", help="Pass local stdin to the command."),
    ] = False,
    tty: Annotated[
        bool,
        typer.Option("--tty", "-t", help="Allocate a pseudo-terminal."),
    ] = False,
    input_file: Annotated[
        Path | None,
        typer.Option(
            "--input",
            exists=True,
            dir_okay=False,
            readable=True,
            help="Send this file as the command's stdin, with progress.",
        ),
    ] = None,
    capture: Annotated[
        bool,
        typer.Option(
            "--capture",
            help="Collect output and print it after the command exits.",
        ),
    ] = False,
    wait: WaitOpt = True,
    timeout: TimeoutOpt = None,
    backend: BackendOpt = None,
    context: ContextOpt = None,
    namespace: NamespaceOpt = None,
    container: ContainerOpt = None,
) -> None:
    """Run a command in a running pod or container."""
    if input_file is not None and (stdin or tty):
        raise _fail("--input cannot be combined with --stdin or --tty")

    config = _settings(backend, context, namespace, container, timeout)
    orchestrator = _orchestrator(config)
    attach_target = _target(target, config)

    if tty:
        # The local terminal is handed to the client as-is.
        options = AttachOptions(
            stdin=False, stdout=False, stderr=False, interactive=stdin, tty=True
        )
    else:
        options = AttachOptions(stdin=stdin or input_file is not None)

    out_sink: ByteSink | None = None
    err_sink: ByteSink | None = None
    if not capture:
        out_sink = FileSink(sys.stdout.buffer)
        err_sink = FileSink(sys.stderr.buffer)

    async def session(source: ByteSource | None) -> RunResult:
        return await orchestrator.run(
            attach_target,
            command,
            options=options,
            stdin=source,
            stdout=out_sink,
            stderr=err_sink,
            wait_ready=wait,
            ready_timeout=config.ready_timeout,
        )

    async def stdin_session() -> RunResult:
        source = await open_input(sys.stdin.buffer)
        try:
            return await session(source)
        finally:
            source.close()

    try:
        if input_file is not None:
            total = input_file.stat().st_size
            with (
                input_file.open("rb") as f,
                TransferProgress(total, f"-> {target}") as progress,
            ):
                source = ProgressSource(FileSource(f), total, progress.observer)
                result = asyncio.run(session(source))
                progress.finish("sent" if source.finished else "interrupted")
        elif options.stdin:
            result = asyncio.run(stdin_session())
        else:
            result = asyncio.run(session(None))
    except PodpipeError as e:
        raise _fail(str(e)) from None
    except KeyboardInterrupt:
        raise typer.Exit(130) from None
    finally:
        if tty:
            _reset_terminal()

    raise _finish(result)


@app.command("upload")
def upload_command(
    local_path: Annotated[
        Path,
        typer.Argument(exists=True, dir_okay=False, readable=True, help="File to send."),
    ],
    target: Annotated[str, typer.Argument(help="Pod or container name.")],
    remote_path: Annotated[str, typer.Argument(help="Destination path in the container.")],
    wait: WaitOpt = True,
    timeout: TimeoutOpt = None,
    backend: BackendOpt = None,
    context: ContextOpt = None,
    namespace: NamespaceOpt = None,
    container: ContainerOpt = None,
) -> None:
    """Upload a file into a running pod or container."""
    config = _settings(backend, context, namespace, container, timeout)
    orchestrator = _orchestrator(config)
    attach_target = _target(target, config)

    total = local_path.stat().st_size
    try:
        with TransferProgress(total, f"{local_path.name} -> {remote_path}") as progress:
            result = asyncio.run(
                upload_file(
                    orchestrator,
                    attach_target,
                    local_path,
                    remote_path,
                    observer=progress.observer,
                    wait_ready=wait,
                    ready_timeout=config.ready_timeout,
                )
            )
            progress.finish("uploaded" if result.exit_code == 0 else "failed")
    except (PodpipeError, ValueError) as e:
        raise _fail(str(e)) from None
    except KeyboardInterrupt:
        raise typer.Exit(130) from None

    raise _finish(result)


@app.command("wait")
def wait_command(
    target: Annotated[str, typer.Argument(help="Pod or container name.")],
    timeout: TimeoutOpt = None,
    backend: BackendOpt = None,
    context: ContextOpt = None,
    namespace: NamespaceOpt = None,
    container: ContainerOpt = None,
) -> None:
    """Wait until a pod or container is running."""
    config = _settings(backend, context, namespace, container, timeout)
    orchestrator = _orchestrator(config)
    attach_target = _target(target, config)

    try:
        asyncio.run(orchestrator.wait_ready(attach_target, config.ready_timeout))
    except PodpipeError as e:
        raise _fail(str(e)) from None
    except KeyboardInterrupt:
        raise typer.Exit(130) from None

    typer.echo(f"{attach_target} is running.")
