"""Render ProgressBus events as a rich spinner while sources are indexed."""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager

from rich.progress import Progress, SpinnerColumn, TextColumn

from quarry.cli.common import console
from quarry.ingest.events import IndexingProgress, ProgressBus


@contextmanager
def show_progress(bus: ProgressBus, labels: dict[str, str] | None = None) -> Iterator[None]:
    """Show one spinner line that follows the latest event on *bus*.

    Args:
        bus: Bus the indexer publishes to.
        labels: Optional source id → display name mapping.
    """
    names = labels or {}
    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        transient=True,
        console=console,
    ) as prog:
        task = prog.add_task("Indexing…", total=None)

        def _on_event(event: IndexingProgress) -> None:
            name = names.get(event.source_id, event.source_id)
            step = event.step or event.status.value
            prog.update(task, description=f"{name}: {step}…")

        unsubscribe = bus.subscribe(_on_event)
        try:
            yield
        finally:
            unsubscribe()
