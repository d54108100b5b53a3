"""Rich progress bar bound to discovery progress callbacks."""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager

from rich.console import Console
from rich.progress import BarColumn, MofNCompleteColumn, Progress, SpinnerColumn, TextColumn

from cluster_explorer.discovery.coordinator import DiscoveryProgress, ProgressCallback


@contextmanager
def discovery_progress(
    enabled: bool,
    console: Console | None = None,
    description: str = "Discovering",
) -> Iterator[ProgressCallback | None]:
    """Yield a progress callback driving a transient bar, or None when disabled.

    The callback is invoked from worker threads; Rich progress updates are
    lock-protected.
    """
    if not enabled:
        yield None
        return

    progress = Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        MofNCompleteColumn(),
        TextColumn("[dim]{task.fields[last]}[/dim]"),
        console=console or Console(stderr=True),
        transient=True,
    )
    task_id = progress.add_task(description, total=None, last="")

    def on_progress(update: DiscoveryProgress) -> None:
        scope = update.namespace or "*"
        progress.update(
            task_id,
            completed=update.completed,
            total=update.total,
            last=f"{update.kind}/{scope}: {update.count}",
        )

    with progress:
        yield on_progress
