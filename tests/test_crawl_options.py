import pytest

from dbcrawl.cli.common.crawl_options import build_crawl_options, parse_sort, split_list
from dbcrawl.core.errors import ConfigurationError
from dbcrawl.core.model import RoutineType
from dbcrawl.core.options import InfoLevel
from dbcrawl.core.rules import RegexExclusionRule, RegexInclusionRule
from dbcrawl.core.traversal import NamedObjectSort


def test_split_list():
    assert split_list(None) is None
    assert split_list("TABLE, VIEW") == ["TABLE", "VIEW"]


def test_build_crawl_options_defaults():
    options = build_crawl_options()

    assert options.load.info_level is InfoLevel.STANDARD
    assert options.load.max_workers == 4
    assert not options.load.load_row_counts
    assert not options.filter.no_empty_tables
    assert "TABLE" in options.limit.table_types


def test_build_crawl_options_patterns_and_types():
    options = build_crawl_options(
        info_level="maximum",
        tables=".*BOOKS",
        exclude_columns=r".*\.SECRET",
        table_types="TABLE,GLOBAL TEMPORARY",
        routine_types="FUNCtion",
        load_row_counts=True,
        no_empty_tables=True,
        parent_tables=2,
        child_tables=1,
        max_workers=2,
        timeout=30,
    )

    assert options.load.info_level is InfoLevel.MAXIMUM
    assert options.limit.table_rule == RegexInclusionRule(".*BOOKS")
    assert options.limit.column_rule == RegexExclusionRule(r".*\.SECRET")
    assert options.limit.table_types == frozenset({"TABLE", "GLOBAL TEMPORARY"})
    assert options.limit.routine_types == frozenset({RoutineType.FUNCTION})
    assert options.filter.no_empty_tables
    assert options.filter.parent_table_filter_depth == 2
    assert options.filter.child_table_filter_depth == 1
    assert (options.load.max_workers, options.load.timeout) == (2, 30)


def test_all_table_types():
    options = build_crawl_options(table_types="ALL")

    assert options.limit.table_types is None
    assert options.limit.includes_table_type("SYSTEM TABLE")


@pytest.mark.parametrize(
    "kwargs",
    [
        {"info_level": "everything"},
        {"tables": "("},
        {"routine_types": "trigger"},
        {"max_workers": 0},
        {"child_tables": -1},
    ],
)
def test_invalid_values(kwargs):
    with pytest.raises(ConfigurationError):
        build_crawl_options(**kwargs)


def test_parse_sort():
    assert parse_sort("Natural", option_name="--sort-tables") is NamedObjectSort.NATURAL
    with pytest.raises(ConfigurationError, match="--sort-routines"):
        parse_sort("random", option_name="--sort-routines")
