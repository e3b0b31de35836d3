"""Crawl options and their construction from user input.

Options are immutable values, validated when they are built. Invalid
input (a malformed regular expression, an unknown routine type, a bad
worker count) raises ConfigurationError here, before any metadata is
retrieved.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable

from dbcrawl.core.errors import ConfigurationError
from dbcrawl.core.model import RoutineType
from dbcrawl.core.rules import (
    ExcludeAll,
    IncludeAll,
    InclusionRule,
    RegexExclusionRule,
    RegexInclusionRule,
)

DEFAULT_TABLE_TYPES: frozenset[str] = frozenset({"TABLE", "BASE TABLE", "VIEW"})
DEFAULT_ROUTINE_TYPES: frozenset[RoutineType] = frozenset(
    {RoutineType.FUNCTION, RoutineType.PROCEDURE}
)


class InfoLevel(str, Enum):
    """
    Ordered tiers controlling how much metadata a crawl retrieves.

    Values:
        MINIMUM: Schemas and table names only.
        STANDARD: Adds columns, keys, indexes and remarks.
        DETAILED: Adds routines, routine parameters and view definitions.
        MAXIMUM: Adds sequences and synonyms.
    """

    MINIMUM = "minimum"
    STANDARD = "standard"
    DETAILED = "detailed"
    MAXIMUM = "maximum"

    @property
    def rank(self) -> int:
        return list(InfoLevel).index(self)

    def __ge__(self, other):
        if not isinstance(other, InfoLevel):
            return NotImplemented
        return self.rank >= other.rank

    def __gt__(self, other):
        if not isinstance(other, InfoLevel):
            return NotImplemented
        return self.rank > other.rank

    def __le__(self, other):
        if not isinstance(other, InfoLevel):
            return NotImplemented
        return self.rank <= other.rank

    def __lt__(self, other):
        if not isinstance(other, InfoLevel):
            return NotImplemented
        return self.rank < other.rank

    def schema_info_level(self) -> SchemaInfoLevel:
        """Return the retrieval switches for this level."""
        return SchemaInfoLevel.for_level(self)


@dataclass(frozen=True)
class SchemaInfoLevel:
    """Fixed set of retrieval switches derived from an InfoLevel."""

    retrieve_tables: bool = True
    retrieve_columns: bool = False
    retrieve_primary_keys: bool = False
    retrieve_foreign_keys: bool = False
    retrieve_indexes: bool = False
    retrieve_remarks: bool = False
    retrieve_view_definitions: bool = False
    retrieve_routines: bool = False
    retrieve_routine_parameters: bool = False

    @classmethod
    def for_level(cls, level: InfoLevel) -> SchemaInfoLevel:
        standard = level >= InfoLevel.STANDARD
        detailed = level >= InfoLevel.DETAILED
        return cls(
            retrieve_tables=True,
            retrieve_columns=standard,
            retrieve_primary_keys=standard,
            retrieve_foreign_keys=standard,
            retrieve_indexes=standard,
            retrieve_remarks=standard,
            retrieve_view_definitions=detailed,
            retrieve_routines=detailed,
            retrieve_routine_parameters=detailed,
        )


@dataclass(frozen=True)
class LimitOptions:
    """Inclusion rules and type allow-lists deciding which objects are kept."""

    schema_rule: InclusionRule = field(default_factory=IncludeAll)
    table_rule: InclusionRule = field(default_factory=IncludeAll)
    column_rule: InclusionRule = field(default_factory=IncludeAll)
    routine_rule: InclusionRule = field(default_factory=ExcludeAll)
    routine_parameter_rule: InclusionRule = field(default_factory=ExcludeAll)
    sequence_rule: InclusionRule = field(default_factory=ExcludeAll)
    synonym_rule: InclusionRule = field(default_factory=ExcludeAll)
    # None means every table type is kept.
    table_types: frozenset[str] | None = DEFAULT_TABLE_TYPES
    routine_types: frozenset[RoutineType] = DEFAULT_ROUTINE_TYPES

    def includes_table_type(self, table_type: str) -> bool:
        return self.table_types is None or table_type in self.table_types

    def includes_routine_type(self, routine_type: RoutineType) -> bool:
        return routine_type in self.routine_types


@dataclass(frozen=True)
class LoadOptions:
    """How deep and how fast metadata is loaded."""

    info_level: InfoLevel = InfoLevel.STANDARD
    load_row_counts: bool = False
    max_workers: int = 4
    # Seconds allowed per retriever stage; None waits indefinitely.
    timeout: float | None = None

    def __post_init__(self) -> None:
        if self.max_workers < 1:
            raise ConfigurationError("max_workers must be >= 1")
        if self.timeout is not None and self.timeout <= 0:
            raise ConfigurationError("timeout must be a positive number of seconds")

    @property
    def schema_info_level(self) -> SchemaInfoLevel:
        return self.info_level.schema_info_level()


@dataclass(frozen=True)
class FilterOptions:
    """
    Post-retrieval filters.

    The depths pull in tables linked by foreign keys to the tables the
    table rule includes: parents are the tables they reference, children
    the tables that reference them, up to that many hops away.
    """

    no_empty_tables: bool = False
    parent_table_filter_depth: int = 0
    child_table_filter_depth: int = 0

    def __post_init__(self) -> None:
        if self.parent_table_filter_depth < 0 or self.child_table_filter_depth < 0:
            raise ConfigurationError("Table filter depths must be >= 0")

    @property
    def includes_related_tables(self) -> bool:
        return self.parent_table_filter_depth > 0 or self.child_table_filter_depth > 0


@dataclass(frozen=True)
class CrawlOptions:
    """All options for a single crawl."""

    limit: LimitOptions = field(default_factory=LimitOptions)
    load: LoadOptions = field(default_factory=LoadOptions)
    filter: FilterOptions = field(default_factory=FilterOptions)

    @property
    def filters_related_tables(self) -> bool:
        """Whether tables are crawled widely and then narrowed by foreign key distance."""
        return (
            self.filter.includes_related_tables
            and self.load.schema_info_level.retrieve_foreign_keys
        )


def parse_info_level(value: str | InfoLevel) -> InfoLevel:
    """Parse an info level name case-insensitively."""
    if isinstance(value, InfoLevel):
        return value
    try:
        return InfoLevel(str(value).strip().lower())
    except ValueError as exc:
        choices = ", ".join(level.value for level in InfoLevel)
        raise ConfigurationError(
            f"Unknown info level '{value}' (expected one of: {choices})"
        ) from exc


def _parse_routine_types(values: Iterable[str]) -> frozenset[RoutineType]:
    types: set[RoutineType] = set()
    for value in values:
        name = str(value).strip().lower()
        try:
            routine_type = RoutineType(name)
        except ValueError as exc:
            raise ConfigurationError(f"Unknown routine type: '{value}'") from exc
        if routine_type is RoutineType.UNKNOWN:
            raise ConfigurationError(f"Unknown routine type: '{value}'")
        types.add(routine_type)
    return frozenset(types)


def _parse_table_types(values: Iterable[str]) -> frozenset[str]:
    types: set[str] = set()
    for value in values:
        if value is None or not str(value).strip():
            raise ConfigurationError("Table types must not be blank")
        types.add(str(value).strip())
    return frozenset(types)


def build_limit_options(
    *,
    schemas: str | None = None,
    tables: str | None = None,
    exclude_columns: str | None = None,
    routines: str | None = None,
    exclude_parameters: str | None = None,
    sequences: str | None = None,
    synonyms: str | None = None,
    table_types: Iterable[str] | None = None,
    routine_types: Iterable[str] | None = None,
) -> LimitOptions:
    """
    Build LimitOptions from user-provided patterns and type names.

    Each pattern is optional; omitted patterns keep the default rule for
    their object kind. Inclusion patterns (`schemas`, `tables`, `routines`,
    `sequences`, `synonyms`) name the objects to keep. Exclusion patterns
    (`exclude_columns`, `exclude_parameters`) name the objects to drop.

    Args:
        schemas: Regex on schema full names.
        tables: Regex on table full names.
        exclude_columns: Regex on column full names to exclude.
        routines: Regex on routine full names.
        exclude_parameters: Regex on routine parameter full names to exclude.
        sequences: Regex on sequence full names.
        synonyms: Regex on synonym full names.
        table_types: Table types to keep, compared case-sensitively.
        routine_types: Routine types to keep ("function", "procedure"),
                       parsed case-insensitively.

    Returns:
        A validated LimitOptions instance.

    Raises:
        ConfigurationError: If a pattern is not a valid regular expression,
                            a table type is blank, or a routine type is unknown.
    """
    defaults = LimitOptions()

    def _include(pattern: str | None, default: InclusionRule) -> InclusionRule:
        return default if pattern is None else RegexInclusionRule(pattern)

    def _exclude(pattern: str | None, default: InclusionRule) -> InclusionRule:
        return default if pattern is None else RegexExclusionRule(pattern)

    return LimitOptions(
        schema_rule=_include(schemas, defaults.schema_rule),
        table_rule=_include(tables, defaults.table_rule),
        column_rule=_exclude(exclude_columns, defaults.column_rule),
        routine_rule=_include(routines, defaults.routine_rule),
        routine_parameter_rule=_exclude(
            exclude_parameters, defaults.routine_parameter_rule
        ),
        sequence_rule=_include(sequences, defaults.sequence_rule),
        synonym_rule=_include(synonyms, defaults.synonym_rule),
        table_types=(
            defaults.table_types
            if table_types is None
            else _parse_table_types(table_types)
        ),
        routine_types=(
            defaults.routine_types
            if routine_types is None
            else _parse_routine_types(routine_types)
        ),
    )
