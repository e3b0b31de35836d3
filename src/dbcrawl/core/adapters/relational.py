"""Relational metadata source over SQLAlchemy reflection.

Wraps `sqlalchemy.inspect()` so that any database with a SQLAlchemy dialect
can be crawled. Temporary tables are reported with the table type
"GLOBAL TEMPORARY" in the default schema; views are reported as "VIEW" with
their definition when the dialect can provide it.

Routines and synonyms are not covered by SQLAlchemy reflection and are
reported as unsupported.
"""

from __future__ import annotations

import logging
import threading

import sqlalchemy
from sqlalchemy import create_engine, func, inspect, select, table as table_clause
from sqlalchemy.engine import Connection, Engine, make_url
from sqlalchemy.engine.reflection import Inspector
from sqlalchemy.exc import ArgumentError, CompileError, DBAPIError, NoSuchModuleError

from dbcrawl.core.errors import ConfigurationError, MetadataSourceUnavailable
from dbcrawl.core.model import UNKNOWN, DatabaseInfo, DriverInfo, Schema, Table
from dbcrawl.core.source import (
    UNSUPPORTED,
    ColumnRecord,
    ForeignKeyRecord,
    IndexRecord,
    PrimaryKeyRecord,
    SchemaRecord,
    SequenceRecord,
    TableRecord,
)

logger = logging.getLogger(__name__)

TEMPORARY_TABLE_TYPE = "GLOBAL TEMPORARY"
_TEMPORARY = "temporary"


def _type_name(column: dict) -> str | None:
    type_ = column.get("type")
    if type_ is None:
        return None
    try:
        return str(type_)
    except CompileError:
        # Dialect-specific types without a generic rendering.
        return type(type_).__name__


def _comment(value) -> str | None:
    if isinstance(value, dict):
        value = value.get("text")
    return value or None


class SqlAlchemyMetadataSource:
    """
    Metadata source for relational databases.

    Args:
        bind: A SQLAlchemy Engine or Connection. A Connection is used from
              one thread at a time; temporary tables are only visible
              through the connection that created them.
        concurrency: Number of concurrent calls allowed for an Engine.
                     SQLite engines are always used from one thread.
    """

    def __init__(self, bind: Engine | Connection, *, concurrency: int = 4) -> None:
        self.bind = bind
        self.engine: Engine = bind.engine if isinstance(bind, Connection) else bind
        if isinstance(bind, Connection) or self.engine.dialect.name == "sqlite":
            self.concurrency = 1
        else:
            self.concurrency = max(1, concurrency)
        self._local = threading.local()

    @classmethod
    def from_url(cls, url: str, *, concurrency: int = 4) -> SqlAlchemyMetadataSource:
        """
        Create a source from a SQLAlchemy database URL.

        Raises:
            ConfigurationError: If the URL is malformed or its driver is missing.
        """
        try:
            parsed = make_url(url)
            kwargs = {}
            if parsed.get_backend_name() != "sqlite":
                kwargs = {"pool_size": concurrency, "max_overflow": 0}
            engine = create_engine(parsed, **kwargs)
        except (ArgumentError, NoSuchModuleError, ImportError) as exc:
            raise ConfigurationError(f"Invalid connection URL: {exc}") from exc
        return cls(engine, concurrency=concurrency)

    def _inspector(self) -> Inspector:
        # Inspectors cache reflection results and are not shared between threads.
        inspector = getattr(self._local, "inspector", None)
        if inspector is None:
            try:
                inspector = inspect(self.bind)
            except DBAPIError as exc:
                raise MetadataSourceUnavailable(f"Could not connect: {exc}") from exc
            self._local.inspector = inspector
        return inspector

    def _schema_arg(self, schema: Schema | None) -> str | None:
        if schema is None or schema.name is None:
            return None
        if schema.name == self._inspector().default_schema_name:
            return None
        return schema.name

    def _table_schema_arg(self, table: Table) -> str | None:
        if table.attributes.get(_TEMPORARY):
            return None
        return self._schema_arg(table.schema)

    def database_info(self) -> DatabaseInfo:
        inspector = self._inspector()
        dialect = inspector.dialect
        server_version = getattr(dialect, "server_version_info", None)
        return DatabaseInfo(
            product_name=dialect.name,
            product_version=(
                ".".join(str(part) for part in server_version) if server_version else UNKNOWN
            ),
            user_name=self.engine.url.username,
            properties={"default_schema": inspector.default_schema_name or ""},
        )

    def driver_info(self) -> DriverInfo:
        dialect = self.engine.dialect
        return DriverInfo(
            driver_name=f"SQLAlchemy {dialect.name}+{dialect.driver}",
            driver_version=sqlalchemy.__version__,
            connection_url=self.engine.url.render_as_string(hide_password=True),
        )

    def list_schemas(self) -> list[SchemaRecord]:
        inspector = self._inspector()
        names = inspector.get_schema_names()
        default = inspector.default_schema_name
        if default and default not in names:
            names = [default, *names]
        return [SchemaRecord(catalog_name=None, name=name) for name in names]

    def list_tables(self, schema: Schema) -> list[TableRecord]:
        inspector = self._inspector()
        schema_arg = self._schema_arg(schema)
        out: list[TableRecord] = []
        for name in inspector.get_table_names(schema=schema_arg):
            out.append(
                TableRecord(
                    name=name,
                    table_type="TABLE",
                    remarks=self._table_comment(name, schema_arg),
                )
            )
        for name in inspector.get_view_names(schema=schema_arg):
            out.append(
                TableRecord(
                    name=name,
                    table_type="VIEW",
                    remarks=self._table_comment(name, schema_arg),
                    definition=self._view_definition(name, schema_arg),
                )
            )
        if schema.name == inspector.default_schema_name:
            out.extend(self._temporary_tables())
        return out

    def _temporary_tables(self) -> list[TableRecord]:
        try:
            names = self._inspector().get_temp_table_names()
        except NotImplementedError:
            return []
        return [
            TableRecord(
                name=name,
                table_type=TEMPORARY_TABLE_TYPE,
                attributes={_TEMPORARY: "true"},
            )
            for name in names
        ]

    def _table_comment(self, name: str, schema: str | None) -> str | None:
        try:
            return _comment(self._inspector().get_table_comment(name, schema=schema))
        except NotImplementedError:
            return None

    def _view_definition(self, name: str, schema: str | None) -> str | None:
        try:
            definition = self._inspector().get_view_definition(name, schema=schema)
        except NotImplementedError:
            return None
        except DBAPIError:
            logger.debug("Could not read definition of view %s", name, exc_info=True)
            return None
        return str(definition) if definition else None

    def list_columns(self, table: Table) -> list[ColumnRecord]:
        columns = self._inspector().get_columns(
            table.name, schema=self._table_schema_arg(table)
        )
        out: list[ColumnRecord] = []
        for position, column in enumerate(columns, start=1):
            default = column.get("default")
            out.append(
                ColumnRecord(
                    name=column.get("name"),
                    ordinal_position=position,
                    type_name=_type_name(column),
                    nullable=column.get("nullable"),
                    default_value=None if default is None else str(default),
                    auto_incremented=column.get("autoincrement") is True,
                    remarks=_comment(column.get("comment")),
                )
            )
        return out

    def list_primary_key(self, table: Table) -> PrimaryKeyRecord | None:
        pk = self._inspector().get_pk_constraint(
            table.name, schema=self._table_schema_arg(table)
        )
        columns = tuple((pk or {}).get("constrained_columns") or ())
        if not columns:
            return None
        return PrimaryKeyRecord(name=pk.get("name"), column_names=columns)

    def list_foreign_keys(self, table: Table) -> list[ForeignKeyRecord]:
        out: list[ForeignKeyRecord] = []
        for fk in self._inspector().get_foreign_keys(
            table.name, schema=self._table_schema_arg(table)
        ):
            referred_table = fk.get("referred_table")
            if not referred_table:
                continue
            options = fk.get("options") or {}
            out.append(
                ForeignKeyRecord(
                    name=fk.get("name"),
                    column_names=tuple(fk.get("constrained_columns") or ()),
                    referenced_table=referred_table,
                    referenced_column_names=tuple(fk.get("referred_columns") or ()),
                    referenced_schema=fk.get("referred_schema"),
                    update_rule=options.get("onupdate"),
                    delete_rule=options.get("ondelete"),
                )
            )
        return out

    def list_indexes(self, table: Table) -> list[IndexRecord]:
        inspector = self._inspector()
        schema_arg = self._table_schema_arg(table)
        out: list[IndexRecord] = []
        seen: set[str] = set()
        for idx in inspector.get_indexes(table.name, schema=schema_arg):
            columns = tuple(c for c in idx.get("column_names") or () if c)
            out.append(
                IndexRecord(
                    name=idx.get("name"),
                    column_names=columns,
                    unique=bool(idx.get("unique")),
                )
            )
            if idx.get("name"):
                seen.add(idx["name"])
        try:
            constraints = inspector.get_unique_constraints(table.name, schema=schema_arg)
        except NotImplementedError:
            constraints = []
        for uc in constraints:
            if uc.get("name") and uc["name"] in seen:
                continue
            out.append(
                IndexRecord(
                    name=uc.get("name"),
                    column_names=tuple(uc.get("column_names") or ()),
                    unique=True,
                    index_type="UNIQUE CONSTRAINT",
                )
            )
        return out

    def list_routines(self, schema: Schema):
        return UNSUPPORTED

    def list_routine_parameters(self, routine):
        return UNSUPPORTED

    def list_sequences(self, schema: Schema):
        inspector = self._inspector()
        if not getattr(inspector.dialect, "supports_sequences", False):
            return UNSUPPORTED
        return [
            SequenceRecord(name=name)
            for name in inspector.get_sequence_names(schema=self._schema_arg(schema))
        ]

    def list_synonyms(self, schema: Schema):
        return UNSUPPORTED

    def row_count(self, table: Table) -> int:
        query = select(func.count()).select_from(
            table_clause(table.name, schema=self._table_schema_arg(table))
        )
        if isinstance(self.bind, Connection):
            return int(self.bind.execute(query).scalar_one())
        with self.engine.connect() as conn:
            return int(conn.execute(query).scalar_one())
