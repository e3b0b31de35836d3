"""Weak association inference.

A weak association is a likely relationship between two columns that is
not declared as a foreign key: for example BOOKS.AUTHOR_ID and the primary
key AUTHORS.ID. Candidates are found by giving every column a match key
derived from its name, then pairing columns that share a key.

The naming convention that produces match keys is pluggable. The default
IdentifierNamingConvention only considers identifier-like columns (names
ending in "id") and expands a bare "ID" primary key to "<table>id", with
the table name singularized and any prefix shared by all tables removed.
"""

from __future__ import annotations

import logging
import os
import re
from collections import defaultdict
from typing import Iterable, Protocol

from dbcrawl.core.model import UNKNOWN, Column, Table, WeakAssociation

logger = logging.getLogger(__name__)

_NON_ALNUM = re.compile(r"[^0-9a-z]+")

# Ordered: first matching prefix wins.
_TYPE_CATEGORIES: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("temporal", ("timestamp", "datetime", "date", "time", "interval")),
    ("boolean", ("bool", "bit")),
    (
        "binary",
        (
            "binary",
            "varbinary",
            "blob",
            "tinyblob",
            "mediumblob",
            "longblob",
            "bytea",
            "raw",
            "image",
        ),
    ),
    (
        "numeric",
        (
            "int",
            "integer",
            "bigint",
            "smallint",
            "tinyint",
            "mediumint",
            "serial",
            "bigserial",
            "smallserial",
            "number",
            "numeric",
            "decimal",
            "dec",
            "float",
            "double",
            "real",
            "long",
            "short",
            "byte",
            "money",
        ),
    ),
    (
        "string",
        (
            "char",
            "character",
            "varchar",
            "nchar",
            "nvarchar",
            "varchar2",
            "nvarchar2",
            "text",
            "ntext",
            "string",
            "clob",
            "nclob",
            "uuid",
            "uniqueidentifier",
            "enum",
            "citext",
            "tinytext",
            "mediumtext",
            "longtext",
        ),
    ),
)


def type_category(type_name: str | None) -> str:
    """
    Map a declared column type to a coarse category.

    Unrecognised types map to `other:<base type>`, so they are only
    compatible with the same base type.
    """
    if not type_name or type_name == UNKNOWN:
        return "unknown"
    base = type_name.strip().lower()
    base = re.split(r"[\s(\[]", base, maxsplit=1)[0]
    base = base.replace("unsigned", "")
    for category, names in _TYPE_CATEGORIES:
        if base in names:
            return category
    # INT4, INT8, FLOAT8, TIMESTAMPTZ and friends
    for category, names in _TYPE_CATEGORIES:
        if any(base.startswith(name) for name in names if len(name) >= 3):
            return category
    return f"other:{base}"


def types_compatible(left: Column, right: Column) -> bool:
    """Whether two columns have compatible declared type categories."""
    left_category = type_category(left.type_name)
    right_category = type_category(right.type_name)
    if left_category == "unknown" or right_category == "unknown":
        return False
    return left_category == right_category


def _fold(name: str) -> str:
    return _NON_ALNUM.sub("", name.lower())


def singularize(word: str) -> str:
    """Naive English singular of a folded name."""
    if word.endswith("ies") and len(word) > 3:
        return word[:-3] + "y"
    if word.endswith(("sses", "shes", "ches", "xes")):
        return word[:-2]
    if word.endswith("s") and not word.endswith("ss") and len(word) > 1:
        return word[:-1]
    return word


def is_sole_primary_key_column(column: Column) -> bool:
    primary_key = column.table.primary_key
    return (
        primary_key is not None
        and len(primary_key.columns) == 1
        and primary_key.columns[0] is column
    )


class NamingConvention(Protocol):
    """Produces the match key of a column, or None if it cannot match."""

    def prepare(self, tables: list[Table]) -> None:
        """Inspect the full table set before keys are requested."""
        ...

    def key(self, column: Column) -> str | None:
        """Return the match key for a column."""
        ...

    def owns_key(self, column: Column, key: str) -> bool:
        """Whether the key is derived from the column's own table name."""
        ...


class IdentifierNamingConvention:
    """
    Default naming convention for identifier columns.

    Args:
        suffixes: Folded name suffixes that mark identifier columns.
        strip_common_prefix: Remove a prefix shared by all table names
                             (such as "tbl_") before deriving table keys.
    """

    def __init__(
        self,
        suffixes: Iterable[str] = ("id",),
        *,
        strip_common_prefix: bool = True,
    ) -> None:
        self.suffixes = tuple(_fold(s) for s in suffixes)
        self.strip_common_prefix = strip_common_prefix
        self._prefix = ""

    def prepare(self, tables: list[Table]) -> None:
        self._prefix = ""
        if not self.strip_common_prefix or len(tables) < 2:
            return
        prefix = os.path.commonprefix([t.name.lower() for t in tables])
        # Only strip whole words, such as "tbl_".
        cut = max(prefix.rfind("_"), prefix.rfind("."))
        self._prefix = prefix[: cut + 1] if cut >= 0 else ""

    def table_key(self, table: Table) -> str:
        name = table.name.lower()
        if self._prefix and name.startswith(self._prefix):
            name = name[len(self._prefix):]
        return singularize(_fold(name))

    def key(self, column: Column) -> str | None:
        folded = _fold(column.name)
        for suffix in self.suffixes:
            if not folded.endswith(suffix):
                continue
            if folded == suffix:
                if is_sole_primary_key_column(column):
                    return self.table_key(column.table) + suffix
                return None
            return folded
        return None

    def owns_key(self, column: Column, key: str) -> bool:
        return any(key == self.table_key(column.table) + s for s in self.suffixes)


class WeakAssociationsAnalyzer:
    """
    Infers weak associations over a finished set of tables.

    For each column, every other column with the same match key is a
    candidate partner when:
      - the partner is part of a primary key or unique index,
      - the two tables are not already linked by a declared foreign key,
      - their declared types are compatible,
      - they are not the same column.

    When both columns could be the referenced side, the one ranked first
    (sole primary key column, then owner of the key, then table and column
    name) is the referenced side. A column matching several partners keeps
    only the best one: a sole primary key column first, then the smallest
    table full name.
    """

    def __init__(self, naming: NamingConvention | None = None) -> None:
        self.naming = naming or IdentifierNamingConvention()

    def analyze(self, tables: Iterable[Table]) -> list[WeakAssociation]:
        tables = sorted(tables, key=lambda t: (t.full_name, t.name))
        self.naming.prepare(tables)

        linked = self._declared_links(tables)
        by_key: dict[str, list[Column]] = defaultdict(list)
        keys: dict[int, str] = {}
        for table in tables:
            for column in table.columns:
                key = self.naming.key(column)
                if key:
                    by_key[key].append(column)
                    keys[id(column)] = key

        associations: list[WeakAssociation] = []
        for table in tables:
            for column in table.columns:
                key = keys.get(id(column))
                if key is None:
                    continue
                partners = [
                    partner
                    for partner in by_key[key]
                    if self._is_candidate(column, partner, key, linked)
                ]
                if not partners:
                    continue
                best = min(partners, key=self._partner_rank)
                associations.append(
                    WeakAssociation(primary_key_column=best, foreign_key_column=column)
                )

        associations.sort(
            key=lambda wa: (
                wa.foreign_key_table.full_name,
                wa.foreign_key_column.ordinal_position,
                wa.primary_key_table.full_name,
                wa.primary_key_column.name,
            )
        )
        logger.debug("Inferred %d weak associations", len(associations))
        return associations

    @staticmethod
    def _declared_links(tables: list[Table]) -> set[frozenset[int]]:
        links: set[frozenset[int]] = set()
        for table in tables:
            for foreign_key in table.foreign_keys:
                links.add(
                    frozenset(
                        {id(foreign_key.primary_key_table), id(foreign_key.foreign_key_table)}
                    )
                )
        return links

    @staticmethod
    def _referenceable(column: Column) -> bool:
        return column.part_of_primary_key or column.part_of_unique_index

    def _direction_rank(self, column: Column, key: str) -> tuple:
        return (
            not is_sole_primary_key_column(column),
            not self.naming.owns_key(column, key),
            column.table.full_name,
            column.name,
        )

    def _is_candidate(
        self, column: Column, partner: Column, key: str, linked: set[frozenset[int]]
    ) -> bool:
        if partner is column or not self._referenceable(partner):
            return False
        if frozenset({id(column.table), id(partner.table)}) in linked:
            return False
        if not types_compatible(column, partner):
            return False
        if self._referenceable(column):
            # Both could be referenced; only the higher ranked one is.
            return self._direction_rank(partner, key) < self._direction_rank(column, key)
        return True

    @staticmethod
    def _partner_rank(partner: Column) -> tuple:
        return (
            not is_sole_primary_key_column(partner),
            partner.table.full_name,
            partner.name,
        )
