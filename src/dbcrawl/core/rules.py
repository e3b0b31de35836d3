"""Inclusion rule abstractions and implementations.

This module defines the rules used to decide whether a named database
object (schema, table, column, routine, ...) is retained in a crawl.
Rules are evaluated against the object's fully qualified name, for example
`PUBLIC.BOOKS.AUTHORS.FIRST_NAME`.

Rules are immutable, side-effect-free values. They compare equal when they
are of the same kind and carry the same pattern, so options built from the
same user input compare equal too.
"""

from __future__ import annotations

import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field

from dbcrawl.core.errors import ConfigurationError


class InclusionRule(ABC):
    """
    Abstract base class for all inclusion rules.

    An InclusionRule decides whether an object with a given fully
    qualified name should be kept.
    """

    @abstractmethod
    def matches(self, name: str) -> bool:
        """
        Determine whether the named object is included by this rule.

        Args:
            name: Fully qualified name of the object to evaluate.

        Returns:
            True if the object is included, False otherwise.
        """
        ...


@dataclass(frozen=True)
class IncludeAll(InclusionRule):
    """Rule that includes every object."""

    def matches(self, name: str) -> bool:
        return True


@dataclass(frozen=True)
class ExcludeAll(InclusionRule):
    """Rule that excludes every object."""

    def matches(self, name: str) -> bool:
        return False


def _compile(pattern: str) -> re.Pattern:
    if pattern is None:
        raise ConfigurationError("Inclusion pattern must not be None")
    try:
        return re.compile(pattern)
    except re.error as exc:
        raise ConfigurationError(f"Invalid regex expression '{pattern}': {exc}") from exc


@dataclass(frozen=True)
class RegexInclusionRule(InclusionRule):
    """
    Rule that includes objects whose full name matches a regular expression.

    The whole name must match, so `.*BOOKS.*` is needed to match any name
    containing BOOKS.
    """

    pattern: str
    _regex: re.Pattern = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "_regex", _compile(self.pattern))

    def matches(self, name: str) -> bool:
        return self._regex.fullmatch(name or "") is not None


@dataclass(frozen=True)
class RegexExclusionRule(InclusionRule):
    """
    Rule that includes objects whose full name does NOT match a regular
    expression.

    Used for "exclude columns" and "exclude parameters" style options: the
    pattern names the objects to drop.
    """

    pattern: str
    _regex: re.Pattern = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "_regex", _compile(self.pattern))

    def matches(self, name: str) -> bool:
        return self._regex.fullmatch(name or "") is None
