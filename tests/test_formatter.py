import io
from datetime import datetime, timezone

from rich.console import Console

from dbcrawl.cli.common.formatter import TextFormatter, TextFormatterOptions
from dbcrawl.cli.common.output import THEME
from dbcrawl.core.model import (
    Catalog,
    Column,
    ColumnReference,
    CrawlInfo,
    DatabaseInfo,
    DriverInfo,
    ForeignKey,
    PrimaryKey,
    Routine,
    RoutineParameter,
    RoutineType,
    Schema,
    Table,
    TableKind,
    WeakAssociation,
)
from dbcrawl.core.traversal import SchemaTraverser


def _catalog():
    catalog = Catalog(
        CrawlInfo(
            crawler_name="dbcrawl",
            crawler_version="1.2.3",
            crawl_timestamp=datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc),
            info_level="standard",
        ),
        DatabaseInfo(product_name="sqlite", product_version="3.45.1", user_name="ada"),
        DriverInfo(driver_name="SQLAlchemy sqlite+pysqlite", driver_version="2.0.30"),
    )
    schema = catalog.add_schema(Schema(catalog_name=None, name="BOOKS"))

    authors = Table(schema=schema, name="AUTHORS", remarks="Contact details [internal]")
    authors.columns.append(
        Column(table=authors, name="ID", ordinal_position=1, type_name="INTEGER", nullable=False)
    )
    authors.columns[0].part_of_primary_key = True
    authors.primary_key = PrimaryKey(table=authors, name="PK_AUTHORS", columns=[authors.columns[0]])

    books = Table(schema=schema, name="BOOKS", row_count=12)
    books.columns.extend(
        [
            Column(table=books, name="ID", ordinal_position=1, type_name="INTEGER"),
            Column(table=books, name="AUTHOR_ID", ordinal_position=2, type_name="INTEGER"),
            Column(table=books, name="EDITOR_ID", ordinal_position=3, type_name="INTEGER"),
        ]
    )
    fk = ForeignKey(
        name="FK_BOOKS_AUTHORS",
        column_references=[
            ColumnReference(primary_key_column=authors.columns[0], foreign_key_column=books.columns[1])
        ],
        delete_rule="CASCADE",
    )
    authors.foreign_keys.append(fk)
    books.foreign_keys.append(fk)

    view = Table(
        schema=schema,
        name="AUTHORSLIST",
        table_type="VIEW",
        kind=TableKind.VIEW,
        definition="SELECT ID FROM AUTHORS",
    )
    schema.tables.extend([authors, books, view])

    routine = Routine(schema=schema, name="NEW_AUTHOR", routine_type=RoutineType.PROCEDURE)
    routine.parameters.append(
        RoutineParameter(routine=routine, name="NAME", ordinal_position=1, mode="IN", type_name="VARCHAR")
    )
    schema.routines.append(routine)

    catalog.set_weak_associations(
        [WeakAssociation(primary_key_column=authors.columns[0], foreign_key_column=books.columns[2])]
    )
    catalog.seal()
    return catalog


def _render(options=None, catalog=None):
    buffer = io.StringIO()
    formatter = TextFormatter(options, console=Console(file=buffer, width=200, theme=THEME))
    SchemaTraverser(catalog or _catalog(), formatter).traverse()
    return buffer.getvalue(), formatter


def test_report_sections():
    text, formatter = _render()

    assert "Crawl information" in text
    assert "dbcrawl 1.2.3" in text
    assert "BOOKS.AUTHORS [table]" in text
    assert "BOOKS.AUTHORSLIST [view]" in text
    assert "definition: SELECT ID FROM AUTHORS" in text
    assert "Primary key PK_AUTHORS: ID" in text
    assert "Foreign key FK_BOOKS_AUTHORS: BOOKS.BOOKS.AUTHOR_ID --> BOOKS.AUTHORS.ID (on delete CASCADE)" in text
    assert "rows: 12" in text
    assert "BOOKS.NEW_AUTHOR [procedure]" in text
    assert "1. NAME IN VARCHAR" in text
    assert "3 tables, 1 routines" in text
    assert (formatter.tables_printed, formatter.routines_printed) == (3, 1)


def test_markup_in_names_is_printed_literally():
    text, _ = _render()

    assert "Contact details [internal]" in text


def test_info_sections_need_their_flags():
    text, _ = _render()

    assert "Database information" not in text
    assert "Driver information" not in text

    text, _ = _render(TextFormatterOptions(show_database_info=True, show_driver_info=True))

    assert "Database information" in text
    assert "product: sqlite" in text
    assert "Driver information" in text
    assert "driver: SQLAlchemy sqlite+pysqlite" in text


def test_no_info_hides_every_info_section():
    text, _ = _render(
        TextFormatterOptions(no_info=True, show_database_info=True, show_driver_info=True)
    )

    assert "Crawl information" not in text
    assert "Database information" not in text
    assert "Driver information" not in text
    assert "BOOKS.BOOKS [table]" in text


def test_weak_associations_can_be_hidden():
    text, _ = _render()
    assert "Weak association: BOOKS.BOOKS.EDITOR_ID --> BOOKS.AUTHORS.ID" in text

    text, _ = _render(TextFormatterOptions(show_weak_associations=False))
    assert "Weak association" not in text


def test_title_is_printed_first():
    text, _ = _render(TextFormatterOptions(title="Library schema"))

    assert text.lstrip().startswith("Library schema")
