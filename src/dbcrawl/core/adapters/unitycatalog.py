"""Unity Catalog metadata source.

Maps Databricks Unity Catalog objects onto the crawler's records:

    catalog.schema      -> schema (catalog name, schema name)
    table / view        -> table ("TABLE" or "VIEW"; the Unity Catalog
                           table type is kept as the "uc_table_type" attribute)
    table constraints   -> primary and foreign keys
    function            -> routine, with its input parameters

Unity Catalog has no indexes, sequences or synonyms, and row counts would
need a running warehouse, so those are reported as unsupported.
"""

from __future__ import annotations

import threading
from typing import Iterable
from urllib.parse import urlsplit

from databricks.sdk import WorkspaceClient
from databricks.sdk.version import __version__ as sdk_version

from dbcrawl.core.auth import get_client
from dbcrawl.core.model import UNKNOWN, DatabaseInfo, DriverInfo, Routine, Schema, Table
from dbcrawl.core.source import (
    UNSUPPORTED,
    ColumnRecord,
    ForeignKeyRecord,
    PrimaryKeyRecord,
    RoutineParameterRecord,
    RoutineRecord,
    SchemaRecord,
    TableRecord,
)

_VIEW_TYPES = {"VIEW", "MATERIALIZED_VIEW", "METRIC_VIEW"}


def _enum_value(value) -> str | None:
    """Return the string value of an SDK enum (or plain string)."""
    if value is None:
        return None
    return str(getattr(value, "value", value))


def _split_full_name(full_name: str) -> tuple[str | None, str | None, str]:
    parts = full_name.split(".")
    if len(parts) >= 3:
        return parts[-3], parts[-2], parts[-1]
    if len(parts) == 2:
        return None, parts[0], parts[1]
    return None, None, parts[0]


class UnityCatalogMetadataSource:
    """
    Metadata source backed by the Databricks SDK Unity Catalog APIs.

    Args:
        client: Workspace client used for all calls.
        catalogs: Catalog names to crawl; all visible catalogs when None.
        concurrency: Number of SDK calls allowed at the same time.
        profile: Profile the client was built from, reported in the database info.
    """

    def __init__(
        self,
        client: WorkspaceClient,
        *,
        catalogs: Iterable[str] | None = None,
        concurrency: int = 8,
        profile: str | None = None,
    ) -> None:
        self.client = client
        self.catalogs = tuple(catalogs) if catalogs else None
        self.concurrency = max(1, concurrency)
        self.profile = profile
        self._tables: dict[str, object] = {}
        self._details: dict[str, object] = {}
        self._functions: dict[str, object] = {}
        self._lock = threading.Lock()

    @classmethod
    def from_url(
        cls, url: str | None, *, profile: str | None = None
    ) -> UnityCatalogMetadataSource:
        """
        Build a source from a URL such as "unitycatalog://main,sales".

        The URL host part lists the catalogs to crawl; leave it empty to
        crawl every catalog. Credentials come from the profile.
        """
        catalogs = None
        if url:
            netloc = urlsplit(url).netloc
            catalogs = [c.strip() for c in netloc.split(",") if c.strip()] or None
        return cls(get_client(profile), catalogs=catalogs, profile=profile)

    def database_info(self) -> DatabaseInfo:
        me = self.client.current_user.me()
        return DatabaseInfo(
            product_name="Databricks Unity Catalog",
            product_version=UNKNOWN,
            user_name=getattr(me, "user_name", None),
            properties={"profile": self.profile} if self.profile else {},
        )

    def driver_info(self) -> DriverInfo:
        config = getattr(self.client, "config", None)
        return DriverInfo(
            driver_name="databricks-sdk",
            driver_version=sdk_version,
            connection_url=getattr(config, "host", None),
        )

    def _catalog_names(self) -> list[str]:
        if self.catalogs:
            return list(self.catalogs)
        names = []
        for c in self.client.catalogs.list():
            name = getattr(c, "name", None)
            if name:
                names.append(name)
        return names

    def list_schemas(self) -> list[SchemaRecord]:
        out: list[SchemaRecord] = []
        for catalog in self._catalog_names():
            for s in self.client.schemas.list(catalog_name=catalog):
                name = getattr(s, "name", None)
                full_name = getattr(s, "full_name", None)
                if not name and full_name:
                    name = full_name.split(".")[-1]
                if not name:
                    continue
                out.append(
                    SchemaRecord(
                        catalog_name=getattr(s, "catalog_name", None) or catalog,
                        name=name,
                        remarks=getattr(s, "comment", None),
                    )
                )
        return out

    def list_tables(self, schema: Schema) -> list[TableRecord]:
        out: list[TableRecord] = []
        for t in self.client.tables.list(
            catalog_name=schema.catalog_name, schema_name=schema.name
        ):
            name = getattr(t, "name", None)
            if not name:
                continue
            full_name = getattr(t, "full_name", None) or f"{schema.full_name}.{name}"
            with self._lock:
                self._tables[full_name] = t
            uc_type = _enum_value(getattr(t, "table_type", None))
            attributes = {}
            if uc_type:
                attributes["uc_table_type"] = uc_type
            owner = getattr(t, "owner", None)
            if owner:
                attributes["owner"] = owner
            data_source_format = _enum_value(getattr(t, "data_source_format", None))
            if data_source_format:
                attributes["data_source_format"] = data_source_format
            out.append(
                TableRecord(
                    name=name,
                    table_type="VIEW" if uc_type in _VIEW_TYPES else "TABLE",
                    remarks=getattr(t, "comment", None),
                    definition=getattr(t, "view_definition", None),
                    attributes=attributes,
                )
            )
        return out

    def _table_info(self, table: Table):
        with self._lock:
            info = self._tables.get(table.full_name)
        if info is None:
            info = self._table_details(table)
        return info

    def _table_details(self, table: Table):
        # Constraints are only guaranteed on a full table lookup.
        with self._lock:
            info = self._details.get(table.full_name)
        if info is None:
            info = self.client.tables.get(full_name=table.full_name)
            with self._lock:
                self._details[table.full_name] = info
        return info

    def list_columns(self, table: Table) -> list[ColumnRecord]:
        info = self._table_info(table)
        out: list[ColumnRecord] = []
        for c in getattr(info, "columns", None) or []:
            position = getattr(c, "position", None)
            out.append(
                ColumnRecord(
                    name=getattr(c, "name", None),
                    ordinal_position=None if position is None else int(position) + 1,
                    type_name=getattr(c, "type_text", None)
                    or _enum_value(getattr(c, "type_name", None)),
                    nullable=getattr(c, "nullable", None),
                    remarks=getattr(c, "comment", None),
                )
            )
        return out

    def _constraints(self, table: Table) -> list:
        info = self._table_details(table)
        return list(getattr(info, "table_constraints", None) or [])

    def list_primary_key(self, table: Table) -> PrimaryKeyRecord | None:
        for constraint in self._constraints(table):
            pk = getattr(constraint, "primary_key_constraint", None)
            if pk is None:
                continue
            return PrimaryKeyRecord(
                name=getattr(pk, "name", None),
                column_names=tuple(getattr(pk, "child_columns", None) or ()),
            )
        return None

    def list_foreign_keys(self, table: Table) -> list[ForeignKeyRecord]:
        out: list[ForeignKeyRecord] = []
        for constraint in self._constraints(table):
            fk = getattr(constraint, "foreign_key_constraint", None)
            parent = getattr(fk, "parent_table", None) if fk is not None else None
            if not parent:
                continue
            catalog_name, schema_name, table_name = _split_full_name(parent)
            out.append(
                ForeignKeyRecord(
                    name=getattr(fk, "name", None),
                    column_names=tuple(getattr(fk, "child_columns", None) or ()),
                    referenced_table=table_name,
                    referenced_column_names=tuple(getattr(fk, "parent_columns", None) or ()),
                    referenced_catalog=catalog_name,
                    referenced_schema=schema_name,
                )
            )
        return out

    def list_indexes(self, table: Table):
        return UNSUPPORTED

    def list_routines(self, schema: Schema) -> list[RoutineRecord]:
        out: list[RoutineRecord] = []
        for f in self.client.functions.list(
            catalog_name=schema.catalog_name, schema_name=schema.name
        ):
            name = getattr(f, "name", None)
            if not name:
                continue
            full_name = getattr(f, "full_name", None) or f"{schema.full_name}.{name}"
            with self._lock:
                self._functions[full_name] = f
            out.append(
                RoutineRecord(
                    name=name,
                    # Unity Catalog only has functions.
                    routine_type="function",
                    specific_name=getattr(f, "specific_name", None),
                    return_type=getattr(f, "full_data_type", None)
                    or _enum_value(getattr(f, "data_type", None)),
                    remarks=getattr(f, "comment", None),
                    definition=getattr(f, "routine_definition", None),
                )
            )
        return out

    def list_routine_parameters(self, routine: Routine) -> list[RoutineParameterRecord]:
        with self._lock:
            info = self._functions.get(routine.full_name)
        if info is None:
            info = self.client.functions.get(name=routine.full_name)
        params = getattr(getattr(info, "input_params", None), "parameters", None) or []
        out: list[RoutineParameterRecord] = []
        for p in params:
            position = getattr(p, "position", None)
            out.append(
                RoutineParameterRecord(
                    name=getattr(p, "name", None),
                    ordinal_position=None if position is None else int(position) + 1,
                    mode=_enum_value(getattr(p, "parameter_mode", None)) or "IN",
                    type_name=getattr(p, "type_text", None)
                    or _enum_value(getattr(p, "type_name", None)),
                )
            )
        return out

    def list_sequences(self, schema: Schema):
        return UNSUPPORTED

    def list_synonyms(self, schema: Schema):
        return UNSUPPORTED

    def row_count(self, table: Table):
        return UNSUPPORTED
