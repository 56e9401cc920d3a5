"""Console rendering and progress helpers for importer CLI."""
from __future__ import annotations

from typing import Any, Dict, Iterable, Optional

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.progress import BarColumn, Progress, SpinnerColumn, TaskID, TextColumn
from rich.table import Table

from .models import ImportItem, ImportStage
from .services.collection import CollectionIndex, FetchProgress, group_by_folder
from .utils.events import ItemEvent
from .utils.formatting import format_bytes

console = Console()

STAGE_LABELS = {
    ImportStage.CHECKING: "Checking",
    ImportStage.FETCHING_METADATA: "Fetching",
    ImportStage.DOWNLOADING: "Downloading",
    ImportStage.CREATING_RECORD: "Creating",
    ImportStage.UPLOADING: "Uploading",
    ImportStage.UPLOADING_THUMBNAIL: "Thumbnail",
    ImportStage.POLLING: "Processing",
    ImportStage.COMPLETE: "Complete",
    ImportStage.ERROR: "Error",
}

STAGE_STYLES = {
    ImportStage.COMPLETE: "green",
    ImportStage.ERROR: "red",
    ImportStage.POLLING: "yellow",
}


def stage_label(stage: ImportStage) -> str:
    return STAGE_LABELS.get(stage, stage.value)


def render_configuration_summary(config: Dict[str, Any]) -> None:
    """Render startup configuration summary."""
    table = Table.grid(padding=(0, 2))
    table.add_column(style="bold cyan", justify="right")
    table.add_column(style="white")

    for key, value in config.items():
        rendered = "-" if value is None else str(value)
        table.add_row(key, rendered)

    panel = Panel(
        table,
        title="[bold green]vimeo-import[/bold green]",
        subtitle="[dim]Vimeo -> Ignite[/dim]",
        border_style="blue",
    )
    console.print(panel)


def render_queue(items: Iterable[ImportItem]) -> None:
    """Print the import queue as a table."""
    table = Table(title="Imports")
    table.add_column("Item")
    table.add_column("Vimeo ID")
    table.add_column("Title")
    table.add_column("Stage")
    table.add_column("Progress", justify="right")
    table.add_column("Ignite ID")
    table.add_column("Status")

    for item in items:
        style = STAGE_STYLES.get(item.stage, "cyan")
        title = item.source_metadata.title if item.source_metadata else "-"
        status = item.error_message if item.stage == ImportStage.ERROR else item.status_text
        table.add_row(
            escape(item.id),
            escape(item.source_id),
            escape(title),
            f"[{style}]{stage_label(item.stage)}[/{style}]",
            f"{item.progress:.0f}%",
            escape(item.destination_id or "-"),
            escape(status or ""),
        )
    console.print(table)


class ImportProgressDisplay:
    """One progress bar per import item, driven by ItemEvents."""

    def __init__(self):
        self._progress = Progress(
            SpinnerColumn(),
            TextColumn("[bold]{task.fields[label]}[/bold]"),
            BarColumn(),
            TextColumn("{task.percentage:>5.1f}%"),
            TextColumn("{task.fields[status]}"),
            console=console,
        )
        self._tasks: Dict[str, TaskID] = {}

    def start(self) -> None:
        self._progress.start()

    def stop(self) -> None:
        self._progress.stop()

    def on_item_event(self, event: ItemEvent) -> None:
        item = event.item
        if event.kind == "removed":
            task_id = self._tasks.pop(item.id, None)
            if task_id is not None:
                self._progress.remove_task(task_id)
            return

        status = item.error_message if item.stage == ImportStage.ERROR else item.status_text
        style = STAGE_STYLES.get(item.stage, "cyan")
        fields = {
            "label": f"{escape(item.source_id)} [{style}]{stage_label(item.stage)}[/{style}]",
            "status": escape(status or ""),
        }
        task_id = self._tasks.get(item.id)
        if task_id is None:
            self._tasks[item.id] = self._progress.add_task(
                "", total=100, completed=item.progress, **fields
            )
        else:
            self._progress.update(task_id, completed=item.progress, **fields)


class FetchProgressDisplay:
    """Prints page counters of a collection fetch."""

    def __init__(self):
        self._last: Optional[FetchProgress] = None

    def on_progress(self, progress: FetchProgress) -> None:
        self._last = progress
        if progress.status == "fetching" and progress.current_page:
            total = progress.total_pages or "?"
            console.print(
                f"[dim]Page {progress.current_page}/{total} - {progress.total_videos} videos[/dim]"
            )
        elif progress.status == "error":
            console.print(f"[red]{escape(progress.error_message or '')}[/red]")

    def on_rate_limit(self, info: str) -> None:
        console.print(f"[yellow]{escape(info)}[/yellow]")


def render_collection(index: CollectionIndex, grouped: bool = True) -> None:
    """Print fetched videos, grouped by folder path or flat."""
    if not grouped:
        table = Table(title=f"Videos ({len(index.videos)})")
        table.add_column("Vimeo ID")
        table.add_column("Title")
        table.add_column("Folder")
        table.add_column("Size", justify="right")
        for video in index.videos:
            table.add_row(
                escape(video.video_id),
                escape(video.title),
                escape(video.folder_path or "-"),
                format_bytes(video.file_size) if video.file_size else "-",
            )
        console.print(table)
        return

    groups = group_by_folder(index)
    ordered = sorted(
        (fid for fid in groups if fid is not None),
        key=lambda fid: index.folders[fid].path.lower() if fid in index.folders else "",
    )
    for folder_id in [None] + ordered:
        videos = groups.get(folder_id, [])
        if folder_id is None:
            if not videos:
                continue
            title = "(root)"
        else:
            folder = index.folders.get(folder_id)
            title = folder.path if folder else folder_id
        table = Table(title=f"{escape(title)} ({len(videos)})", title_justify="left")
        table.add_column("Vimeo ID")
        table.add_column("Title")
        table.add_column("Size", justify="right")
        for video in videos:
            table.add_row(
                escape(video.video_id),
                escape(video.title),
                format_bytes(video.file_size) if video.file_size else "-",
            )
        console.print(table)
