"""Metadata source interface consumed by the retrievers.

A metadata source is the only component that talks to a database (or a
catalog service). It answers best-effort listing calls with plain record
objects; anything it cannot answer it reports as UNSUPPORTED instead of
raising. Backends are allowed to return partial or inconsistent data:
missing names, absent ordinal positions, None types. The retrievers clean
that up.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Mapping, Protocol, TypeVar, Union

from dbcrawl.core.model import DatabaseInfo, DriverInfo, Routine, Schema, Table


class Unsupported(Enum):
    """Marker type for capabilities a metadata source does not provide."""

    UNSUPPORTED = "unsupported"


UNSUPPORTED = Unsupported.UNSUPPORTED

T = TypeVar("T")
Listing = Union[list[T], Unsupported]


@dataclass(frozen=True)
class SchemaRecord:
    catalog_name: str | None
    name: str | None
    remarks: str | None = None


@dataclass(frozen=True)
class TableRecord:
    name: str | None
    table_type: str | None = "TABLE"
    remarks: str | None = None
    definition: str | None = None
    attributes: Mapping[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class ColumnRecord:
    name: str | None
    ordinal_position: int | None = None
    type_name: str | None = None
    nullable: bool | None = None
    default_value: str | None = None
    auto_incremented: bool = False
    remarks: str | None = None


@dataclass(frozen=True)
class PrimaryKeyRecord:
    name: str | None
    column_names: tuple[str, ...] = ()


@dataclass(frozen=True)
class ForeignKeyRecord:
    """A foreign key as seen from its referencing table."""

    name: str | None
    column_names: tuple[str, ...]
    referenced_table: str
    referenced_column_names: tuple[str, ...]
    referenced_catalog: str | None = None
    referenced_schema: str | None = None
    update_rule: str | None = None
    delete_rule: str | None = None


@dataclass(frozen=True)
class IndexRecord:
    name: str | None
    column_names: tuple[str, ...] = ()
    unique: bool = False
    index_type: str | None = None


@dataclass(frozen=True)
class RoutineRecord:
    name: str | None
    routine_type: str | None = None
    specific_name: str | None = None
    return_type: str | None = None
    remarks: str | None = None
    definition: str | None = None


@dataclass(frozen=True)
class RoutineParameterRecord:
    name: str | None
    ordinal_position: int | None = None
    mode: str | None = None
    type_name: str | None = None


@dataclass(frozen=True)
class SequenceRecord:
    name: str | None
    increment: int | None = None
    start_value: int | None = None
    remarks: str | None = None


@dataclass(frozen=True)
class SynonymRecord:
    name: str | None
    referenced_object: str | None = None
    remarks: str | None = None


class MetadataSource(Protocol):
    """
    Interface for metadata listing operations used by the retrievers.

    `concurrency` documents how many calls may run at the same time:
    1 means the source must be called from one thread at a time.
    """

    concurrency: int

    def database_info(self) -> DatabaseInfo:
        """Return database product information."""
        ...

    def driver_info(self) -> DriverInfo:
        """Return client/driver information."""
        ...

    def list_schemas(self) -> Listing[SchemaRecord]:
        """Return all schemas visible to the current principal."""
        ...

    def list_tables(self, schema: Schema) -> Listing[TableRecord]:
        """Return tables and views in a schema."""
        ...

    def list_columns(self, table: Table) -> Listing[ColumnRecord]:
        """Return the columns of a table."""
        ...

    def list_primary_key(self, table: Table) -> PrimaryKeyRecord | None | Unsupported:
        """Return the primary key of a table, or None if it has none."""
        ...

    def list_foreign_keys(self, table: Table) -> Listing[ForeignKeyRecord]:
        """Return foreign keys in which the table is the referencing side."""
        ...

    def list_indexes(self, table: Table) -> Listing[IndexRecord]:
        """Return indexes (and unique constraints) of a table."""
        ...

    def list_routines(self, schema: Schema) -> Listing[RoutineRecord]:
        """Return functions and procedures in a schema."""
        ...

    def list_routine_parameters(self, routine: Routine) -> Listing[RoutineParameterRecord]:
        """Return the parameters of a routine."""
        ...

    def list_sequences(self, schema: Schema) -> Listing[SequenceRecord]:
        """Return sequences in a schema."""
        ...

    def list_synonyms(self, schema: Schema) -> Listing[SynonymRecord]:
        """Return synonyms in a schema."""
        ...

    def row_count(self, table: Table) -> int | None | Unsupported:
        """Return the number of rows in a table."""
        ...
