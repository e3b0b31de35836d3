from datetime import datetime, timezone

import pytest

from dbcrawl.core.errors import TraversalStateError
from dbcrawl.core.model import (
    Catalog,
    Column,
    CrawlInfo,
    PrimaryKey,
    Routine,
    RoutineType,
    Schema,
    Sequence,
    Synonym,
    Table,
    WeakAssociation,
)
from dbcrawl.core.traversal import NamedObjectSort, SchemaTraverser, TraversalState


class _Recorder:
    def __init__(self, fail_on=None):
        self.events = []
        self.weak = {}
        self.fail_on = fail_on

    def _record(self, event, name=None):
        if event == self.fail_on:
            raise RuntimeError(f"{event} failed")
        self.events.append((event, name) if name else event)

    def begin(self):
        self._record("begin")

    def end(self):
        self._record("end")

    def handle_header_start(self):
        self._record("header_start")

    def handle_crawl_info(self, crawl_info):
        self._record("crawl_info")

    def handle_header_end(self):
        self._record("header_end")

    def handle_info_start(self):
        self._record("info_start")

    def handle_database_info(self, database_info):
        self._record("database_info")

    def handle_driver_info(self, driver_info):
        self._record("driver_info")

    def handle_info_end(self):
        self._record("info_end")

    def handle_table(self, table, weak_associations):
        self.weak[table.name] = weak_associations
        self._record("table", table.full_name)

    def handle_routine(self, routine):
        self._record("routine", routine.full_name)

    def handle_sequence(self, sequence):
        self._record("sequence", sequence.full_name)

    def handle_synonym(self, synonym):
        self._record("synonym", synonym.full_name)


def _catalog():
    catalog = Catalog(
        CrawlInfo(
            crawler_name="dbcrawl",
            crawler_version="test",
            crawl_timestamp=datetime(2024, 1, 1, tzinfo=timezone.utc),
            info_level="standard",
        )
    )
    s2 = catalog.add_schema(Schema(catalog_name="CAT", name="S2"))
    s1 = catalog.add_schema(Schema(catalog_name="CAT", name="S1"))

    for name in ("orders", "Customers", "ADDRESSES"):
        table = Table(schema=s1, name=name)
        table.columns.append(Column(table=table, name="ID", ordinal_position=1, type_name="INTEGER"))
        s1.tables.append(table)
    s2.tables.append(Table(schema=s2, name="AUDIT"))

    s1.routines.extend(
        [
            Routine(schema=s1, name="zeta", routine_type=RoutineType.FUNCTION),
            Routine(schema=s1, name="Alpha", routine_type=RoutineType.PROCEDURE),
        ]
    )
    s1.sequences.extend([Sequence(schema=s1, name="SEQ_B"), Sequence(schema=s1, name="SEQ_A")])
    s1.synonyms.append(Synonym(schema=s1, name="CUST", referenced_object="CAT.S1.Customers"))

    customers = s1.lookup_table("Customers")
    customers.primary_key = PrimaryKey(table=customers, name=None, columns=[customers.columns[0]])
    orders = s1.lookup_table("orders")
    orders.columns.append(
        Column(table=orders, name="CUSTOMERID", ordinal_position=2, type_name="INTEGER")
    )
    catalog.set_weak_associations(
        [
            WeakAssociation(
                primary_key_column=customers.columns[0],
                foreign_key_column=orders.columns[1],
            )
        ]
    )
    catalog.seal()
    return catalog


def test_traverse_calls_handler_in_protocol_order():
    handler = _Recorder()

    SchemaTraverser(_catalog(), handler).traverse()

    assert handler.events == [
        "begin",
        "header_start",
        "crawl_info",
        "header_end",
        "info_start",
        "database_info",
        "driver_info",
        "info_end",
        ("table", "CAT.S1.ADDRESSES"),
        ("table", "CAT.S1.Customers"),
        ("table", "CAT.S1.orders"),
        ("routine", "CAT.S1.Alpha"),
        ("routine", "CAT.S1.zeta"),
        ("sequence", "CAT.S1.SEQ_A"),
        ("sequence", "CAT.S1.SEQ_B"),
        ("synonym", "CAT.S1.CUST"),
        ("table", "CAT.S2.AUDIT"),
        "end",
    ]


def test_natural_sort_keeps_retrieval_order():
    handler = _Recorder()

    SchemaTraverser(
        _catalog(),
        handler,
        tables_sort=NamedObjectSort.NATURAL,
        routines_sort=NamedObjectSort.NATURAL,
    ).traverse()

    tables = [name for event, name in handler.events[8:] if event == "table"]
    routines = [name for event, name in handler.events[8:] if event == "routine"]
    assert tables == ["CAT.S1.orders", "CAT.S1.Customers", "CAT.S1.ADDRESSES", "CAT.S2.AUDIT"]
    assert routines == ["CAT.S1.zeta", "CAT.S1.Alpha"]


def test_sort_from_flag():
    assert NamedObjectSort.from_flag(True) is NamedObjectSort.ALPHABETICAL
    assert NamedObjectSort.from_flag(False) is NamedObjectSort.NATURAL


def test_weak_associations_are_passed_to_both_tables():
    handler = _Recorder()

    SchemaTraverser(_catalog(), handler).traverse()

    assert len(handler.weak["orders"]) == 1
    assert handler.weak["orders"] == handler.weak["Customers"]
    assert handler.weak["ADDRESSES"] == ()
    assert handler.weak["AUDIT"] == ()


def test_traversal_does_not_change_the_catalog():
    catalog = _catalog()
    before = [t.full_name for t in catalog.tables]

    SchemaTraverser(catalog, _Recorder()).traverse()
    SchemaTraverser(catalog, _Recorder()).traverse()

    assert [t.full_name for t in catalog.tables] == before


def test_step_by_step_traversal_tracks_state():
    traverser = SchemaTraverser(_catalog(), _Recorder())
    assert traverser.state is TraversalState.NOT_STARTED

    traverser.begin()
    assert traverser.state is TraversalState.HEADER
    traverser.header()
    assert traverser.state is TraversalState.INFO
    traverser.info()
    assert traverser.state is TraversalState.BODY
    traverser.body()
    traverser.end()
    assert traverser.state is TraversalState.FINISHED


def test_begin_twice_is_an_error():
    traverser = SchemaTraverser(_catalog(), _Recorder())
    traverser.begin()

    with pytest.raises(TraversalStateError):
        traverser.begin()


def test_header_before_begin_is_an_error():
    traverser = SchemaTraverser(_catalog(), _Recorder())

    with pytest.raises(TraversalStateError):
        traverser.header()


def test_end_before_body_is_an_error():
    traverser = SchemaTraverser(_catalog(), _Recorder())
    traverser.begin()
    traverser.header()
    traverser.info()

    with pytest.raises(TraversalStateError):
        traverser.end()


def test_body_runs_once():
    traverser = SchemaTraverser(_catalog(), _Recorder())
    traverser.begin()
    traverser.header()
    traverser.info()
    traverser.body()

    with pytest.raises(TraversalStateError):
        traverser.body()


@pytest.mark.parametrize("step", ["begin", "header", "info", "body", "end", "traverse"])
def test_nothing_is_allowed_after_end(step):
    traverser = SchemaTraverser(_catalog(), _Recorder())
    traverser.traverse()

    with pytest.raises(TraversalStateError):
        getattr(traverser, step)()


def test_handler_error_aborts_traversal():
    handler = _Recorder(fail_on="table")
    traverser = SchemaTraverser(_catalog(), handler)

    with pytest.raises(RuntimeError, match="table failed"):
        traverser.traverse()

    assert traverser.state is TraversalState.ABORTED
    with pytest.raises(TraversalStateError):
        traverser.end()


def test_missing_catalog_or_handler():
    with pytest.raises(ValueError):
        SchemaTraverser(None, _Recorder())
    with pytest.raises(ValueError):
        SchemaTraverser(_catalog(), None)
