"""Registry of metadata source connectors.

A SourceRegistry is an ordinary value: build it once at startup (usually
with `default_registry()`), pass it to whatever needs to look up a
connector, and register extra connectors on it before use.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, Iterator

from dbcrawl.core.adapters.relational import SqlAlchemyMetadataSource
from dbcrawl.core.adapters.unitycatalog import UnityCatalogMetadataSource
from dbcrawl.core.errors import ConfigurationError
from dbcrawl.core.source import MetadataSource

SourceFactory = Callable[..., MetadataSource]


def url_scheme(url: str | None) -> str | None:
    """
    Return the backend part of a connection URL scheme, lower-cased.

    "postgresql+psycopg2://..." gives "postgresql"; "sqlite:///x.db" gives
    "sqlite". Returns None if the URL has no scheme.
    """
    if not url or "://" not in url:
        return None
    scheme = url.split("://", 1)[0]
    return scheme.split("+", 1)[0].strip().lower() or None


@dataclass(frozen=True)
class SourceConnector:
    """
    Describes how to open one kind of metadata source.

    Attributes:
        identifier: Short name used to select the connector (e.g. "sqlite").
                    The generic fallback connector has no identifier.
        description: Human-readable description.
        factory: Callable building a MetadataSource. It is called with the
                 keyword arguments `url` and `profile`.
        url_schemes: URL schemes this connector accepts.
    """

    identifier: str | None
    description: str
    factory: SourceFactory = field(repr=False)
    url_schemes: tuple[str, ...] = ()

    def supports_url(self, url: str | None) -> bool:
        scheme = url_scheme(url)
        return scheme is not None and scheme in self.url_schemes

    def open(self, *, url: str | None = None, profile: str | None = None) -> MetadataSource:
        """Create a metadata source for the given connection settings."""
        return self.factory(url=url, profile=profile)


class SourceRegistry:
    """
    Lookup of SourceConnector by identifier or URL.

    `find` never returns None: unknown identifiers resolve to the fallback
    connector, which handles any URL SQLAlchemy understands.
    """

    def __init__(self, fallback: SourceConnector) -> None:
        if fallback.identifier is not None:
            raise ValueError("The fallback connector must not have an identifier")
        self._fallback = fallback
        self._connectors: dict[str, SourceConnector] = {}

    def register(self, connector: SourceConnector) -> SourceConnector:
        if not connector.identifier:
            raise ValueError("Registered connectors need an identifier")
        key = connector.identifier.lower()
        if key in self._connectors:
            raise ValueError(f"Connector '{connector.identifier}' is already registered")
        self._connectors[key] = connector
        return connector

    def __iter__(self) -> Iterator[SourceConnector]:
        for key in sorted(self._connectors):
            yield self._connectors[key]

    def __len__(self) -> int:
        return len(self._connectors)

    @property
    def fallback(self) -> SourceConnector:
        return self._fallback

    def has_identifier(self, identifier: str | None) -> bool:
        return bool(identifier) and identifier.lower() in self._connectors

    def find(self, identifier: str | None) -> SourceConnector:
        """Return the connector for an identifier, or the fallback connector."""
        if not identifier:
            return self._fallback
        return self._connectors.get(identifier.lower(), self._fallback)

    def find_for_url(self, url: str | None) -> SourceConnector:
        """Return the connector whose URL schemes match the URL, or the fallback."""
        for connector in self:
            if connector.supports_url(url):
                return connector
        return self._fallback

    def open(
        self,
        *,
        identifier: str | None = None,
        url: str | None = None,
        profile: str | None = None,
    ) -> MetadataSource:
        """
        Open a metadata source.

        An explicit identifier wins; it must be registered. Otherwise the
        connector is chosen from the URL.

        Raises:
            ConfigurationError: If the identifier is unknown, or neither an
                                identifier nor a URL is given.
        """
        if identifier:
            if not self.has_identifier(identifier):
                known = ", ".join(c.identifier for c in self) or "none"
                raise ConfigurationError(
                    f"Unknown source '{identifier}' (known sources: {known})"
                )
            connector = self.find(identifier)
        elif url:
            connector = self.find_for_url(url)
        else:
            raise ConfigurationError("Provide a connection URL or a source identifier")
        return connector.open(url=url, profile=profile)


def _open_sqlalchemy(*, url: str | None, profile: str | None = None) -> MetadataSource:
    if not url:
        raise ConfigurationError("A connection URL is required for this source")
    return SqlAlchemyMetadataSource.from_url(url)


def _open_unity_catalog(*, url: str | None, profile: str | None = None) -> MetadataSource:
    return UnityCatalogMetadataSource.from_url(url, profile=profile)


def default_registry() -> SourceRegistry:
    """Build the registry of built-in connectors."""
    registry = SourceRegistry(
        fallback=SourceConnector(
            identifier=None,
            description="Any database with a SQLAlchemy dialect",
            factory=_open_sqlalchemy,
        )
    )
    registry.register(
        SourceConnector(
            identifier="sqlite",
            description="SQLite",
            factory=_open_sqlalchemy,
            url_schemes=("sqlite",),
        )
    )
    registry.register(
        SourceConnector(
            identifier="postgresql",
            description="PostgreSQL",
            factory=_open_sqlalchemy,
            url_schemes=("postgresql", "postgres"),
        )
    )
    registry.register(
        SourceConnector(
            identifier="mysql",
            description="MySQL and MariaDB",
            factory=_open_sqlalchemy,
            url_schemes=("mysql", "mariadb"),
        )
    )
    registry.register(
        SourceConnector(
            identifier="unitycatalog",
            description="Databricks Unity Catalog",
            factory=_open_unity_catalog,
            url_schemes=("unitycatalog", "databricks"),
        )
    )
    return registry
