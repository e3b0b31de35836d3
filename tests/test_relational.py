import pytest
from sqlalchemy import create_engine

from dbcrawl.core.adapters.relational import TEMPORARY_TABLE_TYPE, SqlAlchemyMetadataSource
from dbcrawl.core.crawl import crawl
from dbcrawl.core.errors import ConfigurationError
from dbcrawl.core.model import TableKind
from dbcrawl.core.options import CrawlOptions, InfoLevel, LoadOptions, build_limit_options
from dbcrawl.core.source import UNSUPPORTED

DDL = [
    "CREATE TABLE AUTHORS (ID INTEGER PRIMARY KEY, FIRSTNAME VARCHAR(20) NOT NULL, LASTNAME VARCHAR(20))",
    """
    CREATE TABLE BOOKS (
        ID INTEGER PRIMARY KEY,
        TITLE VARCHAR(255) NOT NULL,
        ISBN VARCHAR(20),
        AUTHOR_ID INTEGER,
        CONSTRAINT UQ_BOOKS_ISBN UNIQUE (ISBN)
    )
    """,
    "CREATE INDEX IDX_BOOKS_TITLE ON BOOKS (TITLE)",
    "CREATE TABLE PUBLISHERS (ID INTEGER PRIMARY KEY, PUBLISHER VARCHAR(255))",
    """
    CREATE TABLE BOOKPUBLISHERS (
        BOOK_ID INTEGER NOT NULL,
        PUBLISHER_ID INTEGER NOT NULL,
        CONSTRAINT FK_BP_BOOK FOREIGN KEY (BOOK_ID) REFERENCES BOOKS (ID) ON DELETE CASCADE
    )
    """,
    "CREATE VIEW AUTHORSLIST AS SELECT ID, FIRSTNAME, LASTNAME FROM AUTHORS",
    "CREATE TEMP TABLE TEMP_AUTHOR_LIST (ID INTEGER, NAME VARCHAR(40))",
    "INSERT INTO AUTHORS (ID, FIRSTNAME, LASTNAME) VALUES (1, 'Ada', 'Lovelace'), (2, 'Alan', 'Turing')",
    "INSERT INTO BOOKS (ID, TITLE, ISBN, AUTHOR_ID) VALUES (1, 'Notes', '1', 1)",
]


@pytest.fixture
def connection():
    engine = create_engine("sqlite://")
    with engine.connect() as conn:
        for statement in DDL:
            conn.exec_driver_sql(statement)
        yield conn
    engine.dispose()


@pytest.fixture
def source(connection):
    return SqlAlchemyMetadataSource(connection)


def _table(catalog, name):
    matches = [t for t in catalog.tables if t.name == name]
    assert len(matches) == 1, name
    return matches[0]


def test_connection_source_is_single_threaded(source):
    assert source.concurrency == 1


def test_temporary_table_only(source):
    options = CrawlOptions(
        limit=build_limit_options(table_types=[TEMPORARY_TABLE_TYPE]),
        load=LoadOptions(info_level=InfoLevel.MINIMUM),
    )

    catalog = crawl(source, options)

    assert len(catalog.schemas) == 1
    assert [t.name for t in catalog.tables] == ["TEMP_AUTHOR_LIST"]
    assert catalog.tables[0].table_type == TEMPORARY_TABLE_TYPE
    assert catalog.tables[0].columns == ()


def test_temporary_table_columns(source):
    options = CrawlOptions(limit=build_limit_options(table_types=[TEMPORARY_TABLE_TYPE]))

    catalog = crawl(source, options)

    assert [c.name for c in _table(catalog, "TEMP_AUTHOR_LIST").columns] == ["ID", "NAME"]


def test_standard_crawl(source):
    catalog = crawl(source)

    assert [s.name for s in catalog.schemas] == ["main"]
    assert {t.name for t in catalog.tables} == {
        "AUTHORS",
        "BOOKS",
        "PUBLISHERS",
        "BOOKPUBLISHERS",
        "AUTHORSLIST",
    }

    authors = _table(catalog, "AUTHORS")
    assert [c.name for c in authors.columns] == ["ID", "FIRSTNAME", "LASTNAME"]
    assert [c.ordinal_position for c in authors.columns] == [1, 2, 3]
    assert authors.lookup_column("FIRSTNAME").nullable is False
    assert authors.lookup_column("FIRSTNAME").type_name == "VARCHAR(20)"
    assert [c.name for c in authors.primary_key.columns] == ["ID"]
    assert authors.lookup_column("ID").part_of_primary_key


def test_views_are_tagged(source):
    catalog = crawl(source)

    view = _table(catalog, "AUTHORSLIST")
    assert view.kind is TableKind.VIEW
    assert view.table_type == "VIEW"
    assert view.definition is None


def test_view_definition_at_detailed_level(source):
    options = CrawlOptions(
        limit=build_limit_options(tables=".*AUTHORSLIST"),
        load=LoadOptions(info_level=InfoLevel.DETAILED),
    )

    catalog = crawl(source, options)

    assert "FROM AUTHORS" in _table(catalog, "AUTHORSLIST").definition


def test_foreign_keys(source):
    catalog = crawl(source)

    books = _table(catalog, "BOOKS")
    bookpublishers = _table(catalog, "BOOKPUBLISHERS")
    assert len(bookpublishers.foreign_keys) == 1
    fk = bookpublishers.foreign_keys[0]
    assert fk in books.foreign_keys
    assert fk.primary_key_table is books
    assert bookpublishers.lookup_column("BOOK_ID").part_of_foreign_key


def test_indexes_and_unique_constraints(source):
    catalog = crawl(source)

    books = _table(catalog, "BOOKS")
    by_columns = {tuple(c.name for c in i.columns): i for i in books.indexes}
    assert not by_columns[("TITLE",)].unique
    assert by_columns[("ISBN",)].unique
    assert books.lookup_column("ISBN").part_of_unique_index


def test_weak_associations_from_reflection(source):
    catalog = crawl(source)

    pairs = {
        (wa.foreign_key_column.full_name, wa.primary_key_column.full_name)
        for wa in catalog.weak_associations
    }
    assert ("main.BOOKS.AUTHOR_ID", "main.AUTHORS.ID") in pairs
    assert ("main.BOOKPUBLISHERS.PUBLISHER_ID", "main.PUBLISHERS.ID") in pairs


def test_row_counts_and_empty_tables(source):
    options = CrawlOptions(load=LoadOptions(load_row_counts=True))

    catalog = crawl(source, options)

    assert _table(catalog, "AUTHORS").row_count == 2
    assert _table(catalog, "BOOKS").row_count == 1
    assert _table(catalog, "PUBLISHERS").row_count == 0


def test_unsupported_capabilities(source):
    assert source.list_routines(None) is UNSUPPORTED
    assert source.list_synonyms(None) is UNSUPPORTED
    assert source.list_sequences(None) is UNSUPPORTED


def test_database_and_driver_info(source):
    database = source.database_info()
    driver = source.driver_info()

    assert database.product_name == "sqlite"
    assert database.properties["default_schema"] == "main"
    assert driver.driver_name.startswith("SQLAlchemy sqlite")


def test_invalid_url_is_a_configuration_error():
    with pytest.raises(ConfigurationError, match="Invalid connection URL"):
        SqlAlchemyMetadataSource.from_url("not a url")


def test_unknown_dialect_is_a_configuration_error():
    with pytest.raises(ConfigurationError):
        SqlAlchemyMetadataSource.from_url("nosuchdb://host/db")
