"""`dbcrawl sources`: list the metadata sources dbcrawl can connect to."""

from dbcrawl.cli.common.output import out
from dbcrawl.core.registry import default_registry


def sources():
    """List registered metadata sources."""
    registry = default_registry()
    out.sources_table([*registry, registry.fallback], title="Metadata sources")
