"""Catalog traversal.

A SchemaTraverser walks a finished catalog and drives a TraversalHandler
through a fixed protocol:

    begin()
    header:  handle_header_start, handle_crawl_info, handle_header_end
    info:    handle_info_start, handle_database_info, handle_driver_info,
             handle_info_end
    body:    per schema, in name order:
                 handle_table (tables in the configured order),
                 handle_routine (routines in the configured order),
                 handle_sequence, handle_synonym (name order)
    end()

Every header and info method is called exactly once; handlers decide for
themselves what to show. The traverser never changes the catalog, so
several traversals may run over the same catalog at once.
"""

from __future__ import annotations

from enum import Enum
from typing import Iterable, Protocol, TypeVar

from dbcrawl.core.errors import TraversalStateError
from dbcrawl.core.model import (
    Catalog,
    CrawlInfo,
    DatabaseInfo,
    DriverInfo,
    Routine,
    Sequence,
    Synonym,
    Table,
    WeakAssociation,
)

T = TypeVar("T")


class TraversalHandler(Protocol):
    """Interface implemented by formatters and other catalog consumers."""

    def begin(self) -> None: ...

    def end(self) -> None: ...

    def handle_header_start(self) -> None: ...

    def handle_crawl_info(self, crawl_info: CrawlInfo) -> None: ...

    def handle_header_end(self) -> None: ...

    def handle_info_start(self) -> None: ...

    def handle_database_info(self, database_info: DatabaseInfo) -> None: ...

    def handle_driver_info(self, driver_info: DriverInfo) -> None: ...

    def handle_info_end(self) -> None: ...

    def handle_table(
        self, table: Table, weak_associations: tuple[WeakAssociation, ...]
    ) -> None: ...

    def handle_routine(self, routine: Routine) -> None: ...

    def handle_sequence(self, sequence: Sequence) -> None: ...

    def handle_synonym(self, synonym: Synonym) -> None: ...


class NamedObjectSort(str, Enum):
    """Ordering of named objects during traversal."""

    NATURAL = "natural"
    ALPHABETICAL = "alphabetical"

    @classmethod
    def from_flag(cls, alphabetical: bool) -> NamedObjectSort:
        return cls.ALPHABETICAL if alphabetical else cls.NATURAL

    def apply(self, objects: Iterable[T]) -> list[T]:
        """Return the objects in this order. Natural order is retrieval order."""
        objects = list(objects)
        if self is NamedObjectSort.NATURAL:
            return objects
        return sorted(objects, key=_name_key)


def _name_key(obj) -> tuple[str, str]:
    full_name = obj.full_name
    return (full_name.lower(), full_name)


class TraversalState(str, Enum):
    NOT_STARTED = "not_started"
    HEADER = "header"
    INFO = "info"
    BODY = "body"
    FINISHED = "finished"
    ABORTED = "aborted"


class SchemaTraverser:
    """
    Drives a handler over a catalog.

    Use `traverse()` for a complete run, or call `begin()`, `header()`,
    `info()`, `body()` and `end()` in that order. Any call out of order,
    and any call after `end()` or after a handler error, raises
    TraversalStateError.
    """

    def __init__(
        self,
        catalog: Catalog,
        handler: TraversalHandler,
        *,
        tables_sort: NamedObjectSort = NamedObjectSort.ALPHABETICAL,
        routines_sort: NamedObjectSort = NamedObjectSort.ALPHABETICAL,
    ) -> None:
        if catalog is None:
            raise ValueError("No catalog provided")
        if handler is None:
            raise ValueError("No handler provided")
        self.catalog = catalog
        self.handler = handler
        self.tables_sort = tables_sort
        self.routines_sort = routines_sort
        self._state = TraversalState.NOT_STARTED
        self._body_done = False

    @property
    def state(self) -> TraversalState:
        return self._state

    def _expect(self, expected: TraversalState, action: str) -> None:
        if self._state is not expected:
            raise TraversalStateError(
                f"Cannot {action} in state '{self._state.value}' "
                f"(expected '{expected.value}')"
            )

    def _guarded(self, calls) -> None:
        try:
            for call in calls:
                call()
        except Exception:
            self._state = TraversalState.ABORTED
            raise

    def begin(self) -> None:
        self._expect(TraversalState.NOT_STARTED, "begin traversal")
        self._guarded([self.handler.begin])
        self._state = TraversalState.HEADER

    def header(self) -> None:
        self._expect(TraversalState.HEADER, "visit header")
        crawl_info = self.catalog.crawl_info
        self._guarded(
            [
                self.handler.handle_header_start,
                lambda: self.handler.handle_crawl_info(crawl_info),
                self.handler.handle_header_end,
            ]
        )
        self._state = TraversalState.INFO

    def info(self) -> None:
        self._expect(TraversalState.INFO, "visit info")
        database_info = self.catalog.database_info
        driver_info = self.catalog.driver_info
        self._guarded(
            [
                self.handler.handle_info_start,
                lambda: self.handler.handle_database_info(database_info),
                lambda: self.handler.handle_driver_info(driver_info),
                self.handler.handle_info_end,
            ]
        )
        self._state = TraversalState.BODY

    def body(self) -> None:
        self._expect(TraversalState.BODY, "visit body")
        if self._body_done:
            raise TraversalStateError("Body has already been visited")
        self._guarded([self._visit_body])
        self._body_done = True

    def end(self) -> None:
        self._expect(TraversalState.BODY, "end traversal")
        if not self._body_done:
            raise TraversalStateError("Cannot end traversal before the body is visited")
        self._guarded([self.handler.end])
        self._state = TraversalState.FINISHED

    def traverse(self) -> None:
        """Run the complete protocol."""
        self.begin()
        self.header()
        self.info()
        self.body()
        self.end()

    def _visit_body(self) -> None:
        handler = self.handler
        active = {id(t) for t in self.catalog.tables}
        schemas = sorted(self.catalog.schemas, key=_name_key)
        for schema in schemas:
            for table in self.tables_sort.apply(schema.tables):
                weak_associations = tuple(
                    wa
                    for wa in self.catalog.weak_associations_for(table)
                    if id(wa.primary_key_table) in active
                    and id(wa.foreign_key_table) in active
                )
                handler.handle_table(table, weak_associations)
            for routine in self.routines_sort.apply(schema.routines):
                handler.handle_routine(routine)
            for sequence in NamedObjectSort.ALPHABETICAL.apply(schema.sequences):
                handler.handle_sequence(sequence)
            for synonym in NamedObjectSort.ALPHABETICAL.apply(schema.synonyms):
                handler.handle_synonym(synonym)
