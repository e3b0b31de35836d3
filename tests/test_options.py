import pytest

from dbcrawl.core.errors import ConfigurationError
from dbcrawl.core.model import RoutineType
from dbcrawl.core.options import (
    DEFAULT_TABLE_TYPES,
    InfoLevel,
    LimitOptions,
    LoadOptions,
    SchemaInfoLevel,
    build_limit_options,
    parse_info_level,
)
from dbcrawl.core.rules import ExcludeAll, IncludeAll, RegexExclusionRule, RegexInclusionRule


def test_default_limit_options():
    limit = build_limit_options()

    assert limit == LimitOptions()
    assert isinstance(limit.schema_rule, IncludeAll)
    assert isinstance(limit.table_rule, IncludeAll)
    assert isinstance(limit.column_rule, IncludeAll)
    assert isinstance(limit.routine_rule, ExcludeAll)
    assert isinstance(limit.routine_parameter_rule, ExcludeAll)
    assert isinstance(limit.synonym_rule, ExcludeAll)
    assert isinstance(limit.sequence_rule, ExcludeAll)
    assert {"TABLE", "BASE TABLE", "VIEW"} <= limit.table_types
    assert limit.table_types == DEFAULT_TABLE_TYPES


def test_patterns_map_to_inclusion_and_exclusion_rules():
    limit = build_limit_options(
        tables=".*regexp.*",
        routines=".*regexp.*",
        exclude_columns=".*regexp.*",
    )

    assert limit.table_rule == RegexInclusionRule(".*regexp.*")
    assert limit.routine_rule == RegexInclusionRule(".*regexp.*")
    assert limit.column_rule == RegexExclusionRule(".*regexp.*")
    assert not limit.column_rule.matches("PUBLIC.T.some_regexp_column")
    assert limit.column_rule.matches("PUBLIC.T.ID")


def test_bad_regex_fails_before_crawl():
    with pytest.raises(ConfigurationError):
        build_limit_options(tables="*broken")


def test_routine_types_are_case_insensitive():
    limit = build_limit_options(routine_types=["FUNCtion"])

    assert limit.routine_types == frozenset({RoutineType.FUNCTION})
    assert limit.includes_routine_type(RoutineType.FUNCTION)
    assert not limit.includes_routine_type(RoutineType.PROCEDURE)


@pytest.mark.parametrize("value", ["trigger", "unknown", ""])
def test_unknown_routine_type_is_rejected(value):
    with pytest.raises(ConfigurationError, match="routine type"):
        build_limit_options(routine_types=[value])


def test_table_types_are_case_sensitive():
    limit = build_limit_options(table_types=["GLOBAL TEMPORARY"])

    assert limit.includes_table_type("GLOBAL TEMPORARY")
    assert not limit.includes_table_type("global temporary")
    assert not limit.includes_table_type("TABLE")


def test_blank_table_type_is_rejected():
    with pytest.raises(ConfigurationError):
        build_limit_options(table_types=["TABLE", " "])


def test_info_levels_are_ordered():
    assert InfoLevel.MINIMUM < InfoLevel.STANDARD < InfoLevel.DETAILED < InfoLevel.MAXIMUM
    assert sorted([InfoLevel.MAXIMUM, InfoLevel.MINIMUM]) == [InfoLevel.MINIMUM, InfoLevel.MAXIMUM]


def test_schema_info_level_switches():
    minimum = SchemaInfoLevel.for_level(InfoLevel.MINIMUM)
    standard = SchemaInfoLevel.for_level(InfoLevel.STANDARD)
    detailed = SchemaInfoLevel.for_level(InfoLevel.DETAILED)
    maximum = SchemaInfoLevel.for_level(InfoLevel.MAXIMUM)

    assert minimum.retrieve_tables and not minimum.retrieve_columns
    assert standard.retrieve_columns and standard.retrieve_foreign_keys
    assert not standard.retrieve_routines
    assert detailed.retrieve_routines and detailed.retrieve_routine_parameters
    assert maximum == detailed


def test_parse_info_level():
    assert parse_info_level(" Detailed ") is InfoLevel.DETAILED
    with pytest.raises(ConfigurationError, match="info level"):
        parse_info_level("everything")


@pytest.mark.parametrize("kwargs", [{"max_workers": 0}, {"timeout": 0}, {"timeout": -1.5}])
def test_invalid_load_options(kwargs):
    with pytest.raises(ConfigurationError):
        LoadOptions(**kwargs)
