"""Common CLI options for the CLI."""

import typer

UrlOpt = typer.Option(
    None,
    "--url",
    "-u",
    envvar="DBCRAWL_URL",
    help="Connection URL (SQLAlchemy URL, or unitycatalog://<catalog>[,<catalog>])",
)

SourceOpt = typer.Option(
    None,
    "--source",
    "-s",
    envvar="DBCRAWL_SOURCE",
    help="Metadata source identifier (see `dbcrawl sources`); guessed from the URL if omitted",
)

ProfileOpt = typer.Option(
    None,
    "--profile",
    "-p",
    envvar="DATABRICKS_CONFIG_PROFILE",
    help="Databricks CLI profile (from ~/.databrickscfg)",
)

InfoLevelOpt = typer.Option(
    "standard",
    "--info-level",
    "-l",
    help="How much metadata to retrieve: minimum, standard, detailed or maximum",
)

SchemasOpt = typer.Option(
    None,
    "--schemas",
    help="Regex on schema full names to include",
)

TablesOpt = typer.Option(
    None,
    "--tables",
    help="Regex on table full names to include",
)

ExcludeColumnsOpt = typer.Option(
    None,
    "--exclude-columns",
    help="Regex on column full names to exclude",
)

RoutinesOpt = typer.Option(
    None,
    "--routines",
    help="Regex on routine full names to include (routines are skipped by default)",
)

ExcludeParametersOpt = typer.Option(
    None,
    "--exclude-parameters",
    help="Regex on routine parameter full names to exclude",
)

SequencesOpt = typer.Option(
    None,
    "--sequences",
    help="Regex on sequence full names to include (sequences are skipped by default)",
)

SynonymsOpt = typer.Option(
    None,
    "--synonyms",
    help="Regex on synonym full names to include (synonyms are skipped by default)",
)

TableTypesOpt = typer.Option(
    None,
    "--table-types",
    help='Comma-separated table types to include, e.g. "TABLE,VIEW". Case-sensitive. '
    'Use "ALL" for every type.',
)

RoutineTypesOpt = typer.Option(
    None,
    "--routine-types",
    help='Comma-separated routine types to include: "function", "procedure"',
)

LoadRowCountsOpt = typer.Option(
    False,
    "--load-row-counts",
    help="Count the rows of every table",
)

NoEmptyTablesOpt = typer.Option(
    False,
    "--no-empty-tables",
    help="Leave out tables without rows (requires --load-row-counts)",
)

ParentTablesOpt = typer.Option(
    0,
    "--parent-tables",
    min=0,
    help="Also keep tables referenced by the included tables, up to this many foreign key hops",
)

ChildTablesOpt = typer.Option(
    0,
    "--child-tables",
    min=0,
    help="Also keep tables referencing the included tables, up to this many foreign key hops",
)

ParallelOpt = typer.Option(
    4,
    "--parallel",
    "-n",
    min=1,
    help="Maximum number of concurrent metadata calls",
)

TimeoutOpt = typer.Option(
    None,
    "--timeout",
    help="Seconds allowed per retrieval stage",
)

SortTablesOpt = typer.Option(
    "alphabetical",
    "--sort-tables",
    help="Table order: alphabetical or natural (as reported by the database)",
)

SortRoutinesOpt = typer.Option(
    "alphabetical",
    "--sort-routines",
    help="Routine order: alphabetical or natural (as reported by the database)",
)

NoInfoOpt = typer.Option(
    False,
    "--no-info",
    help="Do not print crawl, database and driver information",
)

ShowDatabaseInfoOpt = typer.Option(
    False,
    "--show-database-info",
    help="Print database product information",
)

ShowDriverInfoOpt = typer.Option(
    False,
    "--show-driver-info",
    help="Print driver information",
)

WeakAssociationsOpt = typer.Option(
    True,
    "--weak-associations/--no-weak-associations",
    help="Print inferred weak associations",
)

TitleOpt = typer.Option(
    None,
    "--title",
    help="Title printed at the top of the report",
)

ProgressOpt = typer.Option(
    True,
    "--progress/--no-progress",
    help="Show retrieval progress",
)
