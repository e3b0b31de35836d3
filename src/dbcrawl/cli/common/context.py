"""Application context management for the CLI."""

from dataclasses import dataclass

from dbcrawl.cli.common.exits import exit_from_exc
from dbcrawl.core.errors import CrawlError
from dbcrawl.core.registry import SourceConnector, SourceRegistry, default_registry
from dbcrawl.core.source import MetadataSource


@dataclass
class CrawlAppContext:
    """Application context holding the selected connector and its metadata source."""

    url: str | None
    profile: str | None
    connector: SourceConnector
    source: MetadataSource


def build_crawl_context(
    *,
    url: str | None,
    source_id: str | None,
    profile: str | None,
    registry: SourceRegistry | None = None,
) -> CrawlAppContext:
    """Build the context for a crawl command.

    Args:
        url: Connection URL.
        source_id: Explicit connector identifier; chosen from the URL if None.
        profile: Databricks profile for Unity Catalog sources.
        registry: Connector registry; `default_registry()` if None.

    Returns:
        CrawlAppContext: Context with an opened metadata source.
    """
    registry = registry or default_registry()
    connector = registry.find(source_id) if source_id else registry.find_for_url(url)
    try:
        source = registry.open(identifier=source_id, url=url, profile=profile)
    except CrawlError as exc:
        exit_from_exc(exc)
    return CrawlAppContext(url=url, profile=profile, connector=connector, source=source)
