"""Catalog domain model.

The catalog is an object graph built once per crawl:

    Catalog -> Schema -> {Table, Routine, Sequence, Synonym}
    Table -> {Column, PrimaryKey, ForeignKey, Index}
    Routine -> RoutineParameter

Retrievers append children to already-present parents while the catalog is
being built. When the crawl finishes, `Catalog.seal()` turns every child
collection into a tuple; from then on the catalog is read-only, except that
row counts may still be attached through `Catalog.attach_row_count`.

Graph objects compare by identity. Their names are unique within their
parent, which the Catalog and the retrievers enforce.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Iterable, Mapping
from typing import Sequence as Seq

UNKNOWN = "<unknown>"


def _join(*parts: str | None) -> str:
    return ".".join(p for p in parts if p)


class TableKind(str, Enum):
    """Whether a table is a base table or a view."""

    TABLE = "table"
    VIEW = "view"


class RoutineType(str, Enum):
    """Kind of a stored routine."""

    FUNCTION = "function"
    PROCEDURE = "procedure"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class CrawlInfo:
    """Information about the crawl itself."""

    crawler_name: str
    crawler_version: str
    crawl_timestamp: datetime
    info_level: str
    title: str | None = None


@dataclass(frozen=True)
class DatabaseInfo:
    """Database product information reported by the metadata source."""

    product_name: str = UNKNOWN
    product_version: str = UNKNOWN
    user_name: str | None = None
    properties: Mapping[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class DriverInfo:
    """Driver (client library) information reported by the metadata source."""

    driver_name: str = UNKNOWN
    driver_version: str = UNKNOWN
    connection_url: str | None = None


@dataclass(eq=False)
class Column:
    """A table column. Ordinal positions run 1..n within a table."""

    table: Table = field(repr=False)
    name: str
    ordinal_position: int
    type_name: str = UNKNOWN
    nullable: bool = True
    default_value: str | None = None
    auto_incremented: bool = False
    remarks: str | None = None
    part_of_primary_key: bool = False
    part_of_unique_index: bool = False
    part_of_foreign_key: bool = False
    attributes: dict[str, str] = field(default_factory=dict, repr=False)

    @property
    def full_name(self) -> str:
        return _join(self.table.full_name, self.name)


@dataclass(eq=False)
class PrimaryKey:
    """Primary key of a table, with its columns in key order."""

    table: Table = field(repr=False)
    name: str | None
    columns: Seq[Column] = field(default_factory=list)


@dataclass(eq=False)
class Index:
    """An index on a table, with its columns in index order."""

    table: Table = field(repr=False)
    name: str | None
    unique: bool = False
    columns: Seq[Column] = field(default_factory=list)
    index_type: str | None = None


@dataclass(frozen=True)
class ColumnReference:
    """A (referenced column, referencing column) pair."""

    primary_key_column: Column
    foreign_key_column: Column
    key_sequence: int = 1


@dataclass(eq=False)
class ForeignKey:
    """
    A declared foreign key.

    Column references are ordered by key sequence; every referenced and
    referencing column belongs to the catalog the key is attached to.
    """

    name: str | None
    column_references: Seq[ColumnReference] = field(default_factory=list)
    update_rule: str | None = None
    delete_rule: str | None = None

    @property
    def primary_key_table(self) -> Table:
        return self.column_references[0].primary_key_column.table

    @property
    def foreign_key_table(self) -> Table:
        return self.column_references[0].foreign_key_column.table


@dataclass(frozen=True)
class WeakAssociation:
    """
    An inferred, undeclared relationship between two columns.

    Weak associations are guesses made from naming conventions. They are
    never treated as foreign keys and are held by the Catalog, not by a
    table.
    """

    primary_key_column: Column
    foreign_key_column: Column

    @property
    def primary_key_table(self) -> Table:
        return self.primary_key_column.table

    @property
    def foreign_key_table(self) -> Table:
        return self.foreign_key_column.table

    def touches(self, table: Table) -> bool:
        return table is self.primary_key_table or table is self.foreign_key_table


@dataclass(eq=False)
class Table:
    """
    A table or view.

    `kind` tags the variant; only views carry a `definition`.
    """

    schema: Schema = field(repr=False)
    name: str
    table_type: str = "TABLE"
    kind: TableKind = TableKind.TABLE
    remarks: str | None = None
    definition: str | None = None
    row_count: int | None = None
    columns: Seq[Column] = field(default_factory=list, repr=False)
    primary_key: PrimaryKey | None = field(default=None, repr=False)
    foreign_keys: Seq[ForeignKey] = field(default_factory=list, repr=False)
    indexes: Seq[Index] = field(default_factory=list, repr=False)
    attributes: dict[str, str] = field(default_factory=dict, repr=False)

    @property
    def full_name(self) -> str:
        return _join(self.schema.full_name, self.name)

    @property
    def is_view(self) -> bool:
        return self.kind is TableKind.VIEW

    def lookup_column(self, name: str) -> Column | None:
        """Return the column with the given name, or None."""
        for column in self.columns:
            if column.name == name:
                return column
        return None

    @property
    def imported_foreign_keys(self) -> list[ForeignKey]:
        """Foreign keys in which this table is the referencing side."""
        return [fk for fk in self.foreign_keys if fk.foreign_key_table is self]

    @property
    def exported_foreign_keys(self) -> list[ForeignKey]:
        """Foreign keys in which this table is the referenced side."""
        return [fk for fk in self.foreign_keys if fk.primary_key_table is self]


@dataclass(eq=False)
class RoutineParameter:
    """A routine parameter, ordered by ordinal position."""

    routine: Routine = field(repr=False)
    name: str
    ordinal_position: int
    mode: str = UNKNOWN
    type_name: str = UNKNOWN

    @property
    def full_name(self) -> str:
        return _join(self.routine.full_name, self.name)


@dataclass(eq=False)
class Routine:
    """
    A stored function or procedure.

    `routine_type` tags the variant; functions may carry a `return_type`.
    """

    schema: Schema = field(repr=False)
    name: str
    routine_type: RoutineType = RoutineType.UNKNOWN
    specific_name: str | None = None
    return_type: str | None = None
    remarks: str | None = None
    definition: str | None = None
    parameters: Seq[RoutineParameter] = field(default_factory=list, repr=False)
    attributes: dict[str, str] = field(default_factory=dict, repr=False)

    @property
    def full_name(self) -> str:
        return _join(self.schema.full_name, self.name)


@dataclass(eq=False)
class Sequence:
    """A database sequence."""

    schema: Schema = field(repr=False)
    name: str
    increment: int | None = None
    start_value: int | None = None
    remarks: str | None = None

    @property
    def full_name(self) -> str:
        return _join(self.schema.full_name, self.name)


@dataclass(eq=False)
class Synonym:
    """A synonym (alias) for another database object."""

    schema: Schema = field(repr=False)
    name: str
    referenced_object: str = UNKNOWN
    remarks: str | None = None

    @property
    def full_name(self) -> str:
        return _join(self.schema.full_name, self.name)


@dataclass(eq=False)
class Schema:
    """
    A schema, identified by its (catalog name, schema name) pair.

    Either part may be None for backends without catalogs or schemas.
    """

    catalog_name: str | None
    name: str | None
    remarks: str | None = None
    tables: Seq[Table] = field(default_factory=list, repr=False)
    routines: Seq[Routine] = field(default_factory=list, repr=False)
    sequences: Seq[Sequence] = field(default_factory=list, repr=False)
    synonyms: Seq[Synonym] = field(default_factory=list, repr=False)

    @property
    def key(self) -> tuple[str | None, str | None]:
        return (self.catalog_name, self.name)

    @property
    def full_name(self) -> str:
        return _join(self.catalog_name, self.name)

    def lookup_table(self, name: str) -> Table | None:
        """Return the table with the given name, or None."""
        for table in self.tables:
            if table.name == name:
                return table
        return None


class CatalogSealedError(RuntimeError):
    """Raised when a sealed catalog is modified."""


class Catalog:
    """
    Root of one crawl's metadata.

    Owns all schemas, keyed by (catalog name, schema name), and the
    cross-cutting collection of weak associations.
    """

    def __init__(
        self,
        crawl_info: CrawlInfo,
        database_info: DatabaseInfo | None = None,
        driver_info: DriverInfo | None = None,
    ) -> None:
        self.crawl_info = crawl_info
        self.database_info = database_info or DatabaseInfo()
        self.driver_info = driver_info or DriverInfo()
        self._schemas: dict[tuple[str | None, str | None], Schema] = {}
        self._weak_associations: tuple[WeakAssociation, ...] = ()
        self._sealed = False

    def __repr__(self) -> str:
        return f"Catalog(schemas={len(self._schemas)}, sealed={self._sealed})"

    @property
    def sealed(self) -> bool:
        return self._sealed

    def _check_open(self) -> None:
        if self._sealed:
            raise CatalogSealedError("Catalog is read-only after the crawl completes")

    @property
    def schemas(self) -> tuple[Schema, ...]:
        """Schemas in retrieval order."""
        return tuple(self._schemas.values())

    @property
    def tables(self) -> tuple[Table, ...]:
        """All tables, schema by schema, in retrieval order."""
        return tuple(t for s in self._schemas.values() for t in s.tables)

    @property
    def routines(self) -> tuple[Routine, ...]:
        return tuple(r for s in self._schemas.values() for r in s.routines)

    @property
    def weak_associations(self) -> tuple[WeakAssociation, ...]:
        return self._weak_associations

    def add_schema(self, schema: Schema) -> Schema:
        """Add a schema; raises ValueError if its identity is already present."""
        self._check_open()
        if schema.key in self._schemas:
            raise ValueError(f"Duplicate schema: {schema.key}")
        self._schemas[schema.key] = schema
        return schema

    def lookup_schema(self, catalog_name: str | None, name: str | None) -> Schema | None:
        return self._schemas.get((catalog_name, name))

    def lookup_table(
        self, catalog_name: str | None, schema_name: str | None, table_name: str
    ) -> Table | None:
        """
        Find a table by its qualified name.

        Blank catalog or schema names act as wildcards, since many backends
        do not report them for references.
        """
        schema = self.lookup_schema(catalog_name, schema_name)
        if schema is not None:
            return schema.lookup_table(table_name)
        for candidate in self._schemas.values():
            if catalog_name and candidate.catalog_name and catalog_name != candidate.catalog_name:
                continue
            if schema_name and candidate.name and schema_name != candidate.name:
                continue
            table = candidate.lookup_table(table_name)
            if table is not None:
                return table
        return None

    def remove_table(self, table: Table) -> None:
        """Drop a table and every foreign key that involves it."""
        self._check_open()
        schema = table.schema
        schema.tables = [t for t in schema.tables if t is not table]
        for fk in list(table.foreign_keys):
            for other in {fk.primary_key_table, fk.foreign_key_table}:
                if other is not table:
                    other.foreign_keys = [k for k in other.foreign_keys if k is not fk]
                    _refresh_foreign_key_flags(other)

    def set_weak_associations(self, associations: Iterable[WeakAssociation]) -> None:
        self._check_open()
        self._weak_associations = tuple(associations)

    def weak_associations_for(self, table: Table) -> tuple[WeakAssociation, ...]:
        """Weak associations with at least one endpoint in the given table."""
        return tuple(wa for wa in self._weak_associations if wa.touches(table))

    def attach_row_count(self, table: Table, row_count: int | None) -> None:
        """Attach a row count; allowed after sealing."""
        table.row_count = row_count

    def seal(self) -> None:
        """Freeze every child collection. Idempotent."""
        if self._sealed:
            return
        for schema in self._schemas.values():
            for table in schema.tables:
                table.columns = tuple(table.columns)
                table.foreign_keys = tuple(table.foreign_keys)
                table.indexes = tuple(table.indexes)
                for index in table.indexes:
                    index.columns = tuple(index.columns)
                if table.primary_key is not None:
                    table.primary_key.columns = tuple(table.primary_key.columns)
            for routine in schema.routines:
                routine.parameters = tuple(routine.parameters)
            schema.tables = tuple(schema.tables)
            schema.routines = tuple(schema.routines)
            schema.sequences = tuple(schema.sequences)
            schema.synonyms = tuple(schema.synonyms)
        self._sealed = True


def _refresh_foreign_key_flags(table: Table) -> None:
    in_fk = {
        id(ref.foreign_key_column)
        for fk in table.foreign_keys
        for ref in fk.column_references
    }
    for column in table.columns:
        column.part_of_foreign_key = id(column) in in_fk
