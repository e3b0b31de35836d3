"""Crawl option construction from CLI input.

Translates the raw strings typer collects into a validated CrawlOptions.
All validation errors surface as ConfigurationError.
"""

from dataclasses import replace

from dbcrawl.core.errors import ConfigurationError
from dbcrawl.core.options import (
    CrawlOptions,
    FilterOptions,
    LoadOptions,
    build_limit_options,
    parse_info_level,
)
from dbcrawl.core.traversal import NamedObjectSort

ALL_TYPES = "ALL"


def split_list(value: str | None) -> list[str] | None:
    """Split a comma-separated option value; None when the option is absent."""
    if value is None:
        return None
    return [part.strip() for part in value.split(",")]


def parse_sort(value: str, *, option_name: str) -> NamedObjectSort:
    try:
        return NamedObjectSort(value.strip().lower())
    except ValueError as exc:
        raise ConfigurationError(
            f"Invalid value for {option_name}: '{value}' (expected alphabetical or natural)"
        ) from exc


def build_crawl_options(
    *,
    info_level: str = "standard",
    schemas: str | None = None,
    tables: str | None = None,
    exclude_columns: str | None = None,
    routines: str | None = None,
    exclude_parameters: str | None = None,
    sequences: str | None = None,
    synonyms: str | None = None,
    table_types: str | None = None,
    routine_types: str | None = None,
    load_row_counts: bool = False,
    no_empty_tables: bool = False,
    parent_tables: int = 0,
    child_tables: int = 0,
    max_workers: int = 4,
    timeout: float | None = None,
) -> CrawlOptions:
    """
    Build CrawlOptions from CLI option values.

    `table_types` and `routine_types` are comma-separated; a table types
    value of "ALL" keeps every table type.

    Raises:
        ConfigurationError: If any value is invalid.
    """
    types = split_list(table_types)
    limit = build_limit_options(
        schemas=schemas,
        tables=tables,
        exclude_columns=exclude_columns,
        routines=routines,
        exclude_parameters=exclude_parameters,
        sequences=sequences,
        synonyms=synonyms,
        table_types=None if types == [ALL_TYPES] else types,
        routine_types=split_list(routine_types),
    )
    if types == [ALL_TYPES]:
        limit = replace(limit, table_types=None)
    return CrawlOptions(
        limit=limit,
        load=LoadOptions(
            info_level=parse_info_level(info_level),
            load_row_counts=load_row_counts,
            max_workers=max_workers,
            timeout=timeout,
        ),
        filter=FilterOptions(
            no_empty_tables=no_empty_tables,
            parent_table_filter_depth=parent_tables,
            child_table_filter_depth=child_tables,
        ),
    )
