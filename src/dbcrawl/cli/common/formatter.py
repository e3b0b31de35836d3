"""Text report formatter.

TextFormatter is a TraversalHandler that prints a catalog with rich. It is
driven by SchemaTraverser and decides for itself which header and info
sections to show.
"""

from __future__ import annotations

from dataclasses import dataclass

from rich.console import Console
from rich.markup import escape
from rich.table import Table as RichTable

from dbcrawl.cli.common.output import console as default_console
from dbcrawl.core.model import (
    UNKNOWN,
    CrawlInfo,
    DatabaseInfo,
    DriverInfo,
    ForeignKey,
    Routine,
    Sequence,
    Synonym,
    Table,
    WeakAssociation,
)


@dataclass(frozen=True)
class TextFormatterOptions:
    """Visibility switches for the text report."""

    no_info: bool = False
    show_database_info: bool = False
    show_driver_info: bool = False
    show_weak_associations: bool = True
    title: str | None = None


def _column_flags(column) -> str:
    flags = []
    if column.part_of_primary_key:
        flags.append("PK")
    if column.part_of_foreign_key:
        flags.append("FK")
    if column.part_of_unique_index:
        flags.append("UQ")
    if column.auto_incremented:
        flags.append("auto")
    return " ".join(flags)


def _reference(fk: ForeignKey) -> str:
    pairs = ", ".join(
        f"{ref.foreign_key_column.full_name} --> {ref.primary_key_column.full_name}"
        for ref in fk.column_references
    )
    rules = []
    if fk.update_rule:
        rules.append(f"on update {fk.update_rule}")
    if fk.delete_rule:
        rules.append(f"on delete {fk.delete_rule}")
    suffix = f" ({'; '.join(rules)})" if rules else ""
    return f"{pairs}{suffix}"


class TextFormatter:
    """
    Prints a catalog as a text report.

    Args:
        options: Which sections to show.
        console: Rich console to print on; the CLI report console by default.
    """

    def __init__(
        self,
        options: TextFormatterOptions | None = None,
        *,
        console: Console | None = None,
    ) -> None:
        self.options = options or TextFormatterOptions()
        self.console = console or default_console
        self.tables_printed = 0
        self.routines_printed = 0

    def _kv(self, items: dict) -> None:
        for k, v in items.items():
            if v is None or v == "":
                continue
            self.console.print(f"[meta]{k}[/]: {escape(str(v))}")

    def _section(self, title: str) -> None:
        self.console.print()
        self.console.print(f"[title]{escape(title)}[/]")

    def begin(self) -> None:
        if self.options.title:
            self.console.print(f"[title]{escape(self.options.title)}[/]")

    def end(self) -> None:
        self.console.print()
        self.console.print(
            f"[meta]{self.tables_printed} tables, {self.routines_printed} routines[/]"
        )

    def handle_header_start(self) -> None:
        pass

    def handle_crawl_info(self, crawl_info: CrawlInfo) -> None:
        if self.options.no_info:
            return
        self._section("Crawl information")
        self._kv(
            {
                "crawler": f"{crawl_info.crawler_name} {crawl_info.crawler_version}",
                "crawled at": crawl_info.crawl_timestamp.isoformat(timespec="seconds"),
                "info level": crawl_info.info_level,
            }
        )

    def handle_header_end(self) -> None:
        pass

    def handle_info_start(self) -> None:
        pass

    def handle_database_info(self, database_info: DatabaseInfo) -> None:
        if self.options.no_info or not self.options.show_database_info:
            return
        self._section("Database information")
        self._kv(
            {
                "product": database_info.product_name,
                "version": database_info.product_version,
                "user": database_info.user_name,
                **dict(database_info.properties),
            }
        )

    def handle_driver_info(self, driver_info: DriverInfo) -> None:
        if self.options.no_info or not self.options.show_driver_info:
            return
        self._section("Driver information")
        self._kv(
            {
                "driver": driver_info.driver_name,
                "version": driver_info.driver_version,
                "url": driver_info.connection_url,
            }
        )

    def handle_info_end(self) -> None:
        pass

    def handle_table(
        self, table: Table, weak_associations: tuple[WeakAssociation, ...]
    ) -> None:
        self.tables_printed += 1
        kind = "view" if table.is_view else table.table_type.lower()
        self._section(f"{table.full_name} [{kind}]")
        if table.remarks:
            self.console.print(f"[meta]{escape(table.remarks)}[/]")
        if table.row_count is not None:
            self.console.print(f"[meta]rows[/]: {table.row_count}")

        if table.columns:
            t = RichTable(show_header=True, show_lines=False, box=None, pad_edge=False)
            t.add_column("#", style="meta", justify="right")
            t.add_column("Column", style="ok", no_wrap=True)
            t.add_column("Type")
            t.add_column("Null", style="meta")
            t.add_column("Key", style="key")
            t.add_column("Remarks", style="meta")
            for column in table.columns:
                t.add_row(
                    str(column.ordinal_position),
                    escape(column.name),
                    escape(column.type_name or UNKNOWN),
                    "null" if column.nullable else "not null",
                    _column_flags(column),
                    escape(column.remarks or ""),
                )
            self.console.print(t)

        if table.primary_key is not None:
            names = ", ".join(c.name for c in table.primary_key.columns)
            label = table.primary_key.name or "primary key"
            self.console.print(f"[key]Primary key[/] {escape(label)}: {escape(names)}")

        for fk in table.foreign_keys:
            self.console.print(
                f"[key]Foreign key[/] {escape(fk.name or '')}: {escape(_reference(fk))}"
            )

        for index in table.indexes:
            names = ", ".join(c.name for c in index.columns)
            unique = "unique index" if index.unique else "index"
            self.console.print(
                f"[key]{unique.capitalize()}[/] {escape(index.name or '')}: {escape(names)}"
            )

        if self.options.show_weak_associations:
            for wa in weak_associations:
                self.console.print(
                    "[meta]Weak association[/]: "
                    f"{escape(wa.foreign_key_column.full_name)} --> "
                    f"{escape(wa.primary_key_column.full_name)}"
                )

        if table.definition:
            self.console.print(f"[meta]definition[/]: {escape(table.definition)}")

    def handle_routine(self, routine: Routine) -> None:
        self.routines_printed += 1
        returns = f" returns {routine.return_type}" if routine.return_type else ""
        self._section(f"{routine.full_name} [{routine.routine_type.value}]{returns}")
        if routine.remarks:
            self.console.print(f"[meta]{escape(routine.remarks)}[/]")
        for parameter in routine.parameters:
            self.console.print(
                f"  {parameter.ordinal_position}. {escape(parameter.name)} "
                f"[meta]{escape(parameter.mode)}[/] {escape(parameter.type_name)}"
            )

    def handle_sequence(self, sequence: Sequence) -> None:
        details = []
        if sequence.start_value is not None:
            details.append(f"start {sequence.start_value}")
        if sequence.increment is not None:
            details.append(f"increment {sequence.increment}")
        suffix = f" ({', '.join(details)})" if details else ""
        self._section(f"{sequence.full_name} [sequence]{suffix}")

    def handle_synonym(self, synonym: Synonym) -> None:
        self._section(
            f"{synonym.full_name} [synonym] --> {synonym.referenced_object}"
        )
