"""Progress display for crawls."""

from __future__ import annotations

from rich.progress import (
    BarColumn,
    Progress,
    SpinnerColumn,
    TaskProgressColumn,
    TextColumn,
    TimeElapsedColumn,
)

from dbcrawl.cli.common.output import err_console
from dbcrawl.core.crawl import active_stages, crawl
from dbcrawl.core.model import Catalog
from dbcrawl.core.options import CrawlOptions
from dbcrawl.core.retrievers import Stage
from dbcrawl.core.source import MetadataSource


def stage_label(stage: Stage) -> str:
    """Human-readable stage name, e.g. "primary keys"."""
    return stage.name.replace("_", " ")


class StageProgress:
    """
    Crawl stage callback driving a rich progress bar.

    One step per active stage; the description shows the stage being
    retrieved.
    """

    def __init__(self, progress: Progress, total: int) -> None:
        self.progress = progress
        self.task_id = progress.add_task("starting", total=max(total, 1), stage="")

    def __call__(self, stage: Stage, event: str) -> None:
        if event == "start":
            self.progress.update(self.task_id, stage=stage_label(stage))
        elif event == "done":
            self.progress.advance(self.task_id, 1)


def crawl_with_progress(
    source: MetadataSource,
    options: CrawlOptions,
    *,
    title: str | None = None,
    show: bool = True,
) -> Catalog:
    """Run a crawl, showing one progress step per retrieval stage."""
    if not show:
        return crawl(source, options, title=title)

    progress = Progress(
        SpinnerColumn(),
        TextColumn("[bold]Crawling[/]"),
        BarColumn(),
        TaskProgressColumn(),
        TextColumn("[meta]{task.fields[stage]}[/]"),
        TimeElapsedColumn(),
        console=err_console,
        transient=True,
    )
    with progress:
        callback = StageProgress(progress, len(active_stages(options)))
        return crawl(source, options, title=title, on_stage=callback)
