"""Crawl entry points.

`crawl` runs the retrieval pipeline against a metadata source, infers weak
associations and returns a sealed Catalog. `load_row_counts` attaches row
counts to a finished catalog as a separate, explicitly requested step.
"""

from __future__ import annotations

import logging
import time
from datetime import datetime, timezone
from importlib.metadata import PackageNotFoundError, version
from typing import Callable

from dbcrawl.core.errors import MetadataSourceUnavailable
from dbcrawl.core.model import Catalog, CrawlInfo, DatabaseInfo, DriverInfo
from dbcrawl.core.options import CrawlOptions, LoadOptions
from dbcrawl.core.retrievers import (
    PIPELINE,
    RetrievalContext,
    RowCountRetriever,
    Stage,
    validate_pipeline,
)
from dbcrawl.core.source import MetadataSource
from dbcrawl.core.weak import WeakAssociationsAnalyzer

logger = logging.getLogger(__name__)

CRAWLER_NAME = "dbcrawl"

StageCallback = Callable[[Stage, str], None]

validate_pipeline(PIPELINE)


def crawler_version() -> str:
    try:
        return version(CRAWLER_NAME)
    except PackageNotFoundError:
        return "unknown"


def _read_info(what: str, call, default):
    try:
        info = call()
    except MetadataSourceUnavailable:
        raise
    except Exception:  # noqa: BLE001
        logger.warning("Could not retrieve %s", what, exc_info=True)
        return default
    return info if info is not None else default


def active_stages(options: CrawlOptions) -> list[Stage]:
    """Return the pipeline stages that run for the given options."""
    return [stage for stage in PIPELINE if stage.is_active(options)]


def crawl(
    source: MetadataSource,
    options: CrawlOptions | None = None,
    *,
    title: str | None = None,
    on_stage: StageCallback | None = None,
    analyzer: WeakAssociationsAnalyzer | None = None,
) -> Catalog:
    """
    Crawl a metadata source into a sealed catalog.

    Args:
        source: Metadata source to read from.
        options: Crawl options. Defaults to `CrawlOptions()`.
        title: Optional title recorded in the crawl info.
        on_stage: Called with (stage, "start") and (stage, "done") around
                  every active stage, for progress reporting.
        analyzer: Weak association analyzer; the default naming convention
                  is used when omitted.

    Returns:
        The finished, sealed catalog.

    Raises:
        MetadataSourceUnavailable: If the source cannot be reached.
    """
    options = options or CrawlOptions()
    started = time.monotonic()

    crawl_info = CrawlInfo(
        crawler_name=CRAWLER_NAME,
        crawler_version=crawler_version(),
        crawl_timestamp=datetime.now(timezone.utc),
        info_level=options.load.info_level.value,
        title=title,
    )
    catalog = Catalog(
        crawl_info,
        database_info=_read_info(
            "database information", source.database_info, DatabaseInfo()
        ),
        driver_info=_read_info(
            "driver information", source.driver_info, DriverInfo()
        ),
    )

    with RetrievalContext(source, options, catalog) as context:
        for stage in active_stages(options):
            if on_stage:
                on_stage(stage, "start")
            stage_started = time.monotonic()
            stage.retriever(context).retrieve()
            logger.debug(
                "Stage %s finished in %.2fs", stage.name, time.monotonic() - stage_started
            )
            if on_stage:
                on_stage(stage, "done")

    analyzer = analyzer or WeakAssociationsAnalyzer()
    catalog.set_weak_associations(analyzer.analyze(catalog.tables))
    catalog.seal()

    logger.info(
        "Crawled %d schemas, %d tables, %d routines in %.2fs",
        len(catalog.schemas),
        len(catalog.tables),
        len(catalog.routines),
        time.monotonic() - started,
    )
    return catalog


def load_row_counts(
    catalog: Catalog,
    source: MetadataSource,
    *,
    max_workers: int = 1,
    timeout: float | None = None,
) -> Catalog:
    """
    Attach row counts to the tables of a finished catalog.

    Tables whose count cannot be read keep `row_count = None`.
    """
    options = CrawlOptions(
        load=LoadOptions(load_row_counts=True, max_workers=max_workers, timeout=timeout)
    )
    with RetrievalContext(source, options, catalog) as context:
        RowCountRetriever(context).retrieve()
    return catalog
