"""`dbcrawl schema`: crawl a database and print its catalog."""

from __future__ import annotations

from dbcrawl.cli.common.context import build_crawl_context
from dbcrawl.cli.common.crawl_options import build_crawl_options, parse_sort
from dbcrawl.cli.common.exits import exit_from_exc
from dbcrawl.cli.common.formatter import TextFormatter, TextFormatterOptions
from dbcrawl.cli.common.options import (
    ChildTablesOpt,
    ExcludeColumnsOpt,
    ExcludeParametersOpt,
    InfoLevelOpt,
    LoadRowCountsOpt,
    NoEmptyTablesOpt,
    NoInfoOpt,
    ParallelOpt,
    ParentTablesOpt,
    ProfileOpt,
    ProgressOpt,
    RoutinesOpt,
    RoutineTypesOpt,
    SchemasOpt,
    SequencesOpt,
    ShowDatabaseInfoOpt,
    ShowDriverInfoOpt,
    SortRoutinesOpt,
    SortTablesOpt,
    SourceOpt,
    SynonymsOpt,
    TablesOpt,
    TableTypesOpt,
    TimeoutOpt,
    TitleOpt,
    UrlOpt,
    WeakAssociationsOpt,
)
from dbcrawl.cli.common.output import out
from dbcrawl.cli.common.progress import crawl_with_progress
from dbcrawl.core.errors import ConfigurationError, CrawlError
from dbcrawl.core.traversal import SchemaTraverser


def schema(
    url: str | None = UrlOpt,
    source: str | None = SourceOpt,
    profile: str | None = ProfileOpt,
    info_level: str = InfoLevelOpt,
    schemas: str | None = SchemasOpt,
    tables: str | None = TablesOpt,
    exclude_columns: str | None = ExcludeColumnsOpt,
    routines: str | None = RoutinesOpt,
    exclude_parameters: str | None = ExcludeParametersOpt,
    sequences: str | None = SequencesOpt,
    synonyms: str | None = SynonymsOpt,
    table_types: str | None = TableTypesOpt,
    routine_types: str | None = RoutineTypesOpt,
    load_row_counts: bool = LoadRowCountsOpt,
    no_empty_tables: bool = NoEmptyTablesOpt,
    parent_tables: int = ParentTablesOpt,
    child_tables: int = ChildTablesOpt,
    parallel: int = ParallelOpt,
    timeout: float | None = TimeoutOpt,
    sort_tables: str = SortTablesOpt,
    sort_routines: str = SortRoutinesOpt,
    no_info: bool = NoInfoOpt,
    show_database_info: bool = ShowDatabaseInfoOpt,
    show_driver_info: bool = ShowDriverInfoOpt,
    weak_associations: bool = WeakAssociationsOpt,
    title: str | None = TitleOpt,
    progress: bool = ProgressOpt,
):
    """Crawl database metadata and print the catalog."""
    try:
        options = build_crawl_options(
            info_level=info_level,
            schemas=schemas,
            tables=tables,
            exclude_columns=exclude_columns,
            routines=routines,
            exclude_parameters=exclude_parameters,
            sequences=sequences,
            synonyms=synonyms,
            table_types=table_types,
            routine_types=routine_types,
            load_row_counts=load_row_counts,
            no_empty_tables=no_empty_tables,
            parent_tables=parent_tables,
            child_tables=child_tables,
            max_workers=parallel,
            timeout=timeout,
        )
        tables_sort = parse_sort(sort_tables, option_name="--sort-tables")
        routines_sort = parse_sort(sort_routines, option_name="--sort-routines")
    except ConfigurationError as exc:
        exit_from_exc(exc)

    if no_empty_tables and not load_row_counts:
        out.warn("--no-empty-tables has no effect without --load-row-counts")

    appctx = build_crawl_context(url=url, source_id=source, profile=profile)

    try:
        catalog = crawl_with_progress(appctx.source, options, title=title, show=progress)
    except CrawlError as exc:
        exit_from_exc(exc, message=f"Crawl failed: {exc}")

    formatter = TextFormatter(
        TextFormatterOptions(
            no_info=no_info,
            show_database_info=show_database_info,
            show_driver_info=show_driver_info,
            show_weak_associations=weak_associations,
            title=title,
        )
    )
    SchemaTraverser(
        catalog,
        formatter,
        tables_sort=tables_sort,
        routines_sort=routines_sort,
    ).traverse()
