"""Error taxonomy for crawling and traversal."""


class CrawlError(Exception):
    """Base class for all dbcrawl errors."""


class ConfigurationError(CrawlError, ValueError):
    """Raised when crawl options are invalid (bad regex, unknown routine type, ...)."""


class MetadataSourceUnavailable(CrawlError):
    """Raised when the metadata source cannot be reached at all."""


class TraversalStateError(CrawlError, RuntimeError):
    """Raised when a traversal method is called out of protocol order."""
