"""Retrievers and the retrieval pipeline.

Each retriever loads one kind of object from the metadata source into the
catalog, attaching new children to parents that earlier stages already
created. The pipeline lists the stages in dependency order; every stage
declares what it reads from and writes to the catalog, and
`validate_pipeline` checks that nothing is read before it is written.

Failure policy:
  - A failing call for one object (one table's columns, one schema's
    routines) is logged and skipped; the object keeps whatever it has.
  - MetadataSourceUnavailable always propagates and aborts the crawl.
  - A stage that runs past its timeout stops; results that arrived in time
    are attached. Calls still running keep their worker until they return,
    so later stages never exceed the source's declared concurrency.
"""

from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor, as_completed
from concurrent.futures import TimeoutError as FuturesTimeoutError
from dataclasses import dataclass
from typing import Any, Callable, Iterable, TypeVar

from dbcrawl.core.errors import MetadataSourceUnavailable
from dbcrawl.core.model import (
    UNKNOWN,
    Catalog,
    Column,
    ColumnReference,
    ForeignKey,
    Index,
    PrimaryKey,
    Routine,
    RoutineParameter,
    RoutineType,
    Schema,
    Sequence,
    Synonym,
    Table,
    TableKind,
)
from dbcrawl.core.options import CrawlOptions
from dbcrawl.core.rules import ExcludeAll, InclusionRule
from dbcrawl.core.source import (
    UNSUPPORTED,
    ColumnRecord,
    ForeignKeyRecord,
    MetadataSource,
    RoutineParameterRecord,
    SchemaRecord,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _blank_to_none(value: str | None) -> str | None:
    if value is None:
        return None
    value = str(value).strip()
    return value or None


def _describe(obj: Any) -> str:
    return getattr(obj, "full_name", None) or str(obj)


class _Deadline:
    """Wall-clock budget for one stage."""

    def __init__(self, timeout: float | None) -> None:
        self._end = None if timeout is None else time.monotonic() + timeout

    def remaining(self) -> float | None:
        if self._end is None:
            return None
        return max(0.0, self._end - time.monotonic())

    @property
    def bounded(self) -> bool:
        return self._end is not None


class RetrievalContext:
    """Shared state for the stages of one crawl."""

    def __init__(
        self, source: MetadataSource, options: CrawlOptions, catalog: Catalog
    ) -> None:
        self.source = source
        self.options = options
        self.catalog = catalog
        self.info_level = options.load.schema_info_level
        declared = getattr(source, "concurrency", 1) or 1
        self.workers = max(1, min(options.load.max_workers, int(declared)))
        # Tables the table rule matched, as opposed to ones kept for their relations.
        self.included_tables: set[Table] = set()
        self._pool: ThreadPoolExecutor | None = None

    @property
    def pool(self) -> ThreadPoolExecutor:
        """The one executor through which every stage of the crawl calls the source."""
        if self._pool is None:
            self._pool = ThreadPoolExecutor(
                max_workers=self.workers, thread_name_prefix="dbcrawl"
            )
        return self._pool

    def close(self) -> None:
        if self._pool is not None:
            # Calls left over from a timed-out stage finish in the background.
            self._pool.shutdown(wait=False, cancel_futures=True)
            self._pool = None

    def __enter__(self) -> RetrievalContext:
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()


class Retriever(ABC):
    """
    Base class for all retrievers.

    Subclasses implement `retrieve`, which reads parents from the catalog,
    calls the metadata source, and attaches the results.
    """

    what = "metadata"

    def __init__(self, context: RetrievalContext) -> None:
        self.context = context
        self.source = context.source
        self.catalog = context.catalog
        self.limit = context.options.limit
        self.info_level = context.info_level
        self.deadline = _Deadline(context.options.load.timeout)

    @abstractmethod
    def retrieve(self) -> None:
        """Load this retriever's objects into the catalog."""
        ...

    def _fetch_all(
        self, items: Iterable[T], fetch: Callable[[T], Any]
    ) -> list[tuple[T, Any]]:
        """
        Call `fetch` for every item and return (item, result) pairs.

        Calls run on the crawl's shared thread pool when the source allows
        concurrency or a timeout is set, otherwise one after the other on the
        calling thread. Results are returned in input order, whatever order
        they completed in. Failed, unsupported and timed-out calls are left
        out.
        """
        items = list(items)
        results: dict[int, Any] = {}
        unsupported = False

        def _accept(index: int, call: Callable[[], Any]) -> None:
            nonlocal unsupported
            try:
                result = call()
            except MetadataSourceUnavailable:
                raise
            except Exception:  # noqa: BLE001
                logger.warning(
                    "Could not retrieve %s for %s",
                    self.what,
                    _describe(items[index]),
                    exc_info=True,
                )
                return
            if result is UNSUPPORTED:
                unsupported = True
                return
            results[index] = result

        if self.context.workers > 1 or self.deadline.bounded:
            futures = {
                self.context.pool.submit(fetch, item): index
                for index, item in enumerate(items)
            }
            try:
                for future in as_completed(futures, timeout=self.deadline.remaining()):
                    _accept(futures[future], future.result)
            except FuturesTimeoutError:
                self._timed_out(len(results), len(items))
            finally:
                # Queued calls are dropped; running ones keep their worker.
                for future in futures:
                    future.cancel()
        else:
            for index, item in enumerate(items):
                _accept(index, lambda item=item: fetch(item))

        if unsupported:
            logger.debug("Metadata source does not support retrieving %s", self.what)
        return [(items[index], results[index]) for index in sorted(results)]

    def _timed_out(self, done: int, total: int) -> None:
        logger.warning(
            "Timed out retrieving %s after %d of %d objects; keeping partial results",
            self.what,
            done,
            total,
        )


class SchemaRetriever(Retriever):
    what = "schemas"

    def retrieve(self) -> None:
        try:
            records = self.source.list_schemas()
        except MetadataSourceUnavailable:
            raise
        except Exception as exc:
            raise MetadataSourceUnavailable(f"Could not list schemas: {exc}") from exc

        if records is UNSUPPORTED:
            records = [SchemaRecord(catalog_name=None, name=None)]

        for record in records:
            schema = Schema(
                catalog_name=_blank_to_none(record.catalog_name),
                name=_blank_to_none(record.name),
                remarks=record.remarks if self.info_level.retrieve_remarks else None,
            )
            if not self.limit.schema_rule.matches(schema.full_name):
                continue
            if self.catalog.lookup_schema(*schema.key) is not None:
                logger.debug("Skipping duplicate schema %s", schema.full_name)
                continue
            self.catalog.add_schema(schema)
        logger.debug("Retrieved %d schemas", len(self.catalog.schemas))


class TableRetriever(Retriever):
    what = "tables"

    def retrieve(self) -> None:
        level = self.info_level
        widened = self.context.options.filters_related_tables
        for schema, records in self._fetch_all(self.catalog.schemas, self.source.list_tables):
            for record in records:
                name = _blank_to_none(record.name)
                if name is None:
                    logger.debug("Skipping unnamed table in %s", schema.full_name)
                    continue
                table_type = _blank_to_none(record.table_type) or "TABLE"
                if not self.limit.includes_table_type(table_type):
                    continue
                kind = TableKind.VIEW if "VIEW" in table_type.upper() else TableKind.TABLE
                table = Table(
                    schema=schema,
                    name=name,
                    table_type=table_type,
                    kind=kind,
                    remarks=record.remarks if level.retrieve_remarks else None,
                    definition=(
                        record.definition
                        if kind is TableKind.VIEW and level.retrieve_view_definitions
                        else None
                    ),
                    attributes=dict(record.attributes or {}),
                )
                included = self.limit.table_rule.matches(table.full_name)
                if not included and not widened:
                    continue
                if schema.lookup_table(name) is not None:
                    logger.debug("Skipping duplicate table %s", table.full_name)
                    continue
                schema.tables.append(table)
                if included:
                    self.context.included_tables.add(table)
        logger.debug("Retrieved %d tables", len(self.catalog.tables))


def _ordered(records: list, key: Callable[[Any], int | None]) -> list:
    """Sort by reported position, unknown positions last, stable otherwise."""
    indexed = list(enumerate(records))
    indexed.sort(key=lambda p: (key(p[1]) is None, key(p[1]) or 0, p[0]))
    return [record for _, record in indexed]


class ColumnRetriever(Retriever):
    what = "columns"

    def retrieve(self) -> None:
        for table, records in self._fetch_all(self.catalog.tables, self.source.list_columns):
            self._attach(table, records)

    def _attach(self, table: Table, records: list[ColumnRecord]) -> None:
        seen: set[str] = set()
        columns: list[Column] = []
        for record in _ordered(records, lambda r: r.ordinal_position):
            name = _blank_to_none(record.name)
            if name is None or name in seen:
                continue
            seen.add(name)
            column = Column(
                table=table,
                name=name,
                ordinal_position=0,
                type_name=_blank_to_none(record.type_name) or UNKNOWN,
                nullable=True if record.nullable is None else bool(record.nullable),
                default_value=record.default_value,
                auto_incremented=bool(record.auto_incremented),
                remarks=record.remarks if self.info_level.retrieve_remarks else None,
            )
            if self.limit.column_rule.matches(column.full_name):
                columns.append(column)
        for position, column in enumerate(columns, start=1):
            column.ordinal_position = position
        table.columns = columns


def _resolve_columns(table: Table, names: Iterable[str]) -> tuple[list[Column], list[str]]:
    found: list[Column] = []
    missing: list[str] = []
    for name in names:
        column = table.lookup_column(name)
        if column is None:
            missing.append(name)
        else:
            found.append(column)
    return found, missing


class PrimaryKeyRetriever(Retriever):
    what = "primary keys"

    def retrieve(self) -> None:
        for table, record in self._fetch_all(self.catalog.tables, self.source.list_primary_key):
            if record is None or not record.column_names:
                continue
            columns, missing = _resolve_columns(table, record.column_names)
            if missing:
                logger.debug(
                    "Primary key of %s references unavailable columns %s",
                    table.full_name,
                    missing,
                )
            if not columns:
                continue
            for column in columns:
                column.part_of_primary_key = True
            table.primary_key = PrimaryKey(
                table=table, name=_blank_to_none(record.name), columns=columns
            )


class ForeignKeyRetriever(Retriever):
    what = "foreign keys"

    def retrieve(self) -> None:
        attached = 0
        for table, records in self._fetch_all(self.catalog.tables, self.source.list_foreign_keys):
            for record in records:
                foreign_key = self._build(table, record)
                if foreign_key is None:
                    continue
                table.foreign_keys.append(foreign_key)
                referenced = foreign_key.primary_key_table
                if referenced is not table:
                    referenced.foreign_keys.append(foreign_key)
                for reference in foreign_key.column_references:
                    reference.foreign_key_column.part_of_foreign_key = True
                attached += 1
        logger.debug("Retrieved %d foreign keys", attached)

    def _build(self, table: Table, record: ForeignKeyRecord) -> ForeignKey | None:
        if not record.column_names or len(record.column_names) != len(
            record.referenced_column_names
        ):
            logger.debug("Skipping malformed foreign key %s on %s", record.name, table.full_name)
            return None

        referenced = self._lookup_referenced_table(table, record)
        if referenced is None:
            logger.debug(
                "Dropping foreign key %s on %s: table %s is not in the catalog",
                record.name,
                table.full_name,
                record.referenced_table,
            )
            return None

        references: list[ColumnReference] = []
        for sequence, (fk_name, pk_name) in enumerate(
            zip(record.column_names, record.referenced_column_names), start=1
        ):
            fk_column = table.lookup_column(fk_name)
            pk_column = referenced.lookup_column(pk_name)
            if fk_column is None or pk_column is None:
                logger.debug(
                    "Dropping foreign key %s on %s: column %s -> %s is not in the catalog",
                    record.name,
                    table.full_name,
                    fk_name,
                    pk_name,
                )
                return None
            references.append(
                ColumnReference(
                    primary_key_column=pk_column,
                    foreign_key_column=fk_column,
                    key_sequence=sequence,
                )
            )
        return ForeignKey(
            name=_blank_to_none(record.name),
            column_references=references,
            update_rule=record.update_rule,
            delete_rule=record.delete_rule,
        )

    def _lookup_referenced_table(self, table: Table, record: ForeignKeyRecord) -> Table | None:
        # Unqualified references point into the referencing table's schema.
        catalog_name = _blank_to_none(record.referenced_catalog)
        schema_name = _blank_to_none(record.referenced_schema)
        if catalog_name is None and schema_name is None:
            local = table.schema.lookup_table(record.referenced_table)
            if local is not None:
                return local
        if catalog_name is None:
            catalog_name = table.schema.catalog_name
        return self.catalog.lookup_table(catalog_name, schema_name, record.referenced_table)


class IndexRetriever(Retriever):
    what = "indexes"

    def retrieve(self) -> None:
        for table, records in self._fetch_all(self.catalog.tables, self.source.list_indexes):
            indexes: list[Index] = []
            for record in records:
                columns, _ = _resolve_columns(table, record.column_names)
                if not columns:
                    continue
                if record.unique:
                    for column in columns:
                        column.part_of_unique_index = True
                indexes.append(
                    Index(
                        table=table,
                        name=_blank_to_none(record.name),
                        unique=bool(record.unique),
                        columns=columns,
                        index_type=record.index_type,
                    )
                )
            table.indexes = indexes


def parse_routine_type(value: str | None) -> RoutineType:
    """Map a backend routine type string to a RoutineType."""
    if value is None:
        # Backends that cannot tell report procedures.
        return RoutineType.PROCEDURE
    text = str(value).strip().lower()
    if "function" in text:
        return RoutineType.FUNCTION
    if "procedure" in text:
        return RoutineType.PROCEDURE
    return RoutineType.UNKNOWN


class RoutineRetriever(Retriever):
    what = "routines"

    def retrieve(self) -> None:
        for schema, records in self._fetch_all(self.catalog.schemas, self.source.list_routines):
            seen: set[tuple[str, str | None]] = set()
            for record in records:
                name = _blank_to_none(record.name)
                if name is None:
                    continue
                routine_type = parse_routine_type(record.routine_type)
                if not self.limit.includes_routine_type(routine_type):
                    continue
                routine = Routine(
                    schema=schema,
                    name=name,
                    routine_type=routine_type,
                    specific_name=_blank_to_none(record.specific_name),
                    return_type=record.return_type,
                    remarks=record.remarks if self.info_level.retrieve_remarks else None,
                    definition=record.definition,
                )
                if not self.limit.routine_rule.matches(routine.full_name):
                    continue
                key = (name, routine.specific_name)
                if key in seen:
                    logger.debug(
                        "Skipping duplicate routine %s (specific name %s)",
                        routine.full_name,
                        routine.specific_name,
                    )
                    continue
                seen.add(key)
                schema.routines.append(routine)
        logger.debug("Retrieved %d routines", len(self.catalog.routines))


class RoutineParameterRetriever(Retriever):
    what = "routine parameters"

    def retrieve(self) -> None:
        for routine, records in self._fetch_all(
            self.catalog.routines, self.source.list_routine_parameters
        ):
            self._attach(routine, records)

    def _attach(self, routine: Routine, records: list[RoutineParameterRecord]) -> None:
        parameters: list[RoutineParameter] = []
        seen: set[str] = set()
        for record in _ordered(records, lambda r: r.ordinal_position):
            name = _blank_to_none(record.name)
            if name is None or name in seen:
                continue
            seen.add(name)
            parameter = RoutineParameter(
                routine=routine,
                name=name,
                ordinal_position=0,
                mode=_blank_to_none(record.mode) or UNKNOWN,
                type_name=_blank_to_none(record.type_name) or UNKNOWN,
            )
            if self.limit.routine_parameter_rule.matches(parameter.full_name):
                parameters.append(parameter)
        for position, parameter in enumerate(parameters, start=1):
            parameter.ordinal_position = position
        routine.parameters = parameters


class SequenceRetriever(Retriever):
    what = "sequences"

    def retrieve(self) -> None:
        for schema, records in self._fetch_all(self.catalog.schemas, self.source.list_sequences):
            for record in records:
                name = _blank_to_none(record.name)
                if name is None:
                    continue
                sequence = Sequence(
                    schema=schema,
                    name=name,
                    increment=record.increment,
                    start_value=record.start_value,
                    remarks=record.remarks if self.info_level.retrieve_remarks else None,
                )
                if self.limit.sequence_rule.matches(sequence.full_name):
                    schema.sequences.append(sequence)


class SynonymRetriever(Retriever):
    what = "synonyms"

    def retrieve(self) -> None:
        for schema, records in self._fetch_all(self.catalog.schemas, self.source.list_synonyms):
            for record in records:
                name = _blank_to_none(record.name)
                if name is None:
                    continue
                synonym = Synonym(
                    schema=schema,
                    name=name,
                    referenced_object=_blank_to_none(record.referenced_object) or UNKNOWN,
                    remarks=record.remarks if self.info_level.retrieve_remarks else None,
                )
                if self.limit.synonym_rule.matches(synonym.full_name):
                    schema.synonyms.append(synonym)


class RowCountRetriever(Retriever):
    what = "row counts"

    def retrieve(self) -> None:
        for table, count in self._fetch_all(self.catalog.tables, self.source.row_count):
            self.catalog.attach_row_count(table, None if count is None else int(count))


class EmptyTableFilter(Retriever):
    """Drops tables whose loaded row count is zero. Unknown counts are kept."""

    what = "empty tables"

    def retrieve(self) -> None:
        empty = [t for t in self.catalog.tables if t.row_count == 0]
        for table in empty:
            self.catalog.remove_table(table)
        if empty:
            logger.info("Removed %d empty tables", len(empty))


def _within_hops(
    start: Iterable[Table], depth: int, neighbours: Callable[[Table], Iterable[Table]]
) -> set[Table]:
    reached = set(start)
    frontier = set(reached)
    for _ in range(depth):
        frontier = {n for table in frontier for n in neighbours(table)} - reached
        if not frontier:
            break
        reached |= frontier
    return reached


def _parents(table: Table) -> list[Table]:
    return [fk.primary_key_table for fk in table.imported_foreign_keys]


def _children(table: Table) -> list[Table]:
    return [fk.foreign_key_table for fk in table.exported_foreign_keys]


class RelatedTableFilter(Retriever):
    """
    Narrows a widened table crawl to the tables the table rule includes,
    plus their parents and children up to the configured foreign key depths.

    Foreign keys to a dropped table go with it.
    """

    what = "related tables"

    def retrieve(self) -> None:
        options = self.context.options.filter
        included = [t for t in self.catalog.tables if t in self.context.included_tables]
        keep = _within_hops(included, options.parent_table_filter_depth, _parents)
        keep |= _within_hops(included, options.child_table_filter_depth, _children)

        dropped = [t for t in self.catalog.tables if t not in keep]
        for table in dropped:
            self.catalog.remove_table(table)
        logger.debug(
            "Kept %d related tables; removed %d unrelated tables",
            len(keep) - len(included),
            len(dropped),
        )


def _requested(rule: InclusionRule) -> bool:
    return not isinstance(rule, ExcludeAll)


@dataclass(frozen=True)
class Stage:
    """One pipeline step, with its catalog read/write footprint."""

    name: str
    retriever: type[Retriever]
    reads: frozenset[str]
    writes: frozenset[str]
    is_active: Callable[[CrawlOptions], bool]


def _stage(name, retriever, reads, writes, is_active) -> Stage:
    return Stage(name, retriever, frozenset(reads), frozenset(writes), is_active)


PIPELINE: tuple[Stage, ...] = (
    _stage("schemas", SchemaRetriever, (), ("schemas",), lambda o: True),
    _stage(
        "tables",
        TableRetriever,
        ("schemas",),
        ("tables",),
        lambda o: o.load.schema_info_level.retrieve_tables,
    ),
    _stage(
        "columns",
        ColumnRetriever,
        ("tables",),
        ("columns",),
        lambda o: o.load.schema_info_level.retrieve_columns,
    ),
    _stage(
        "primary_keys",
        PrimaryKeyRetriever,
        ("columns",),
        ("primary_keys",),
        lambda o: o.load.schema_info_level.retrieve_primary_keys,
    ),
    _stage(
        "foreign_keys",
        ForeignKeyRetriever,
        ("columns",),
        ("foreign_keys",),
        lambda o: o.load.schema_info_level.retrieve_foreign_keys,
    ),
    _stage(
        "related_tables",
        RelatedTableFilter,
        ("foreign_keys",),
        ("tables",),
        lambda o: o.filters_related_tables,
    ),
    _stage(
        "indexes",
        IndexRetriever,
        ("columns",),
        ("indexes",),
        lambda o: o.load.schema_info_level.retrieve_indexes,
    ),
    _stage(
        "routines",
        RoutineRetriever,
        ("schemas",),
        ("routines",),
        lambda o: o.load.schema_info_level.retrieve_routines
        and _requested(o.limit.routine_rule),
    ),
    _stage(
        "routine_parameters",
        RoutineParameterRetriever,
        ("routines",),
        ("routine_parameters",),
        lambda o: o.load.schema_info_level.retrieve_routine_parameters
        and _requested(o.limit.routine_rule)
        and _requested(o.limit.routine_parameter_rule),
    ),
    # An explicit sequence or synonym rule requests them at any info level.
    _stage(
        "sequences",
        SequenceRetriever,
        ("schemas",),
        ("sequences",),
        lambda o: _requested(o.limit.sequence_rule),
    ),
    _stage(
        "synonyms",
        SynonymRetriever,
        ("schemas",),
        ("synonyms",),
        lambda o: _requested(o.limit.synonym_rule),
    ),
    _stage(
        "row_counts",
        RowCountRetriever,
        ("tables",),
        ("row_counts",),
        lambda o: o.load.load_row_counts,
    ),
    _stage(
        "empty_tables",
        EmptyTableFilter,
        ("row_counts", "foreign_keys"),
        ("tables",),
        lambda o: o.load.load_row_counts and o.filter.no_empty_tables,
    ),
)


def validate_pipeline(stages: Iterable[Stage]) -> None:
    """
    Check that every stage only reads what earlier stages write.

    Raises:
        ValueError: If a stage reads catalog state no earlier stage writes.
    """
    written: set[str] = set()
    for stage in stages:
        unmet = stage.reads - written
        if unmet:
            raise ValueError(
                f"Stage '{stage.name}' reads {sorted(unmet)} before it is retrieved"
            )
        written |= stage.writes
