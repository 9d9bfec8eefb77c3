"""Terminal progress display for transfers."""

from __future__ import annotations

from types import TracebackType

from rich.console import Console
from rich.progress import (
    BarColumn,
    DownloadColumn,
    Progress,
    SpinnerColumn,
    TaskID,
    TextColumn,
    TimeElapsedColumn,
    TimeRemainingColumn,
)


class TransferProgress:
    """Byte-count progress bar driven by a ProgressSource observer.

    Usage:
        with TransferProgress(total, "Uploading") as progress:
            source = ProgressSource(inner, total, observer=progress.observer)
    """

    def __init__(
        self,
        total: int,
        description: str = "Transferring",
        console: Console | None = None,
    ) -> None:
        self.total = total
        self.description = description
        self._progress = Progress(
            SpinnerColumn(style="green"),
            TimeElapsedColumn(),
            BarColumn(complete_style="cyan", finished_style="blue"),
            DownloadColumn(),
            TimeRemainingColumn(),
            TextColumn("[progress.description]{task.description}"),
            console=console or Console(stderr=True),
            transient=False,
        )
        self._task: TaskID | None = None

    def __enter__(self) -> TransferProgress:
        self._progress.start()
        self._task = self._progress.add_task(self.description, total=self.total)
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self._progress.stop()

    def observer(self, offset: int) -> None:
        """Record the cumulative number of bytes transferred."""
        if self._task is not None:
            self._progress.update(self._task, completed=offset)

    def finish(self, message: str = "done") -> None:
        if self._task is not None:
            self._progress.update(self._task, description=message)
