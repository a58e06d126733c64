"""Query tree nodes.

Queries are plain immutable values; the executor interprets them against a
snapshot. Every node carries a ``boost`` that multiplies its score
contribution.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field, replace
from enum import Enum


@dataclass(frozen=True)
class Query:
    boost: float = field(default=1.0, kw_only=True)

    def boosted(self, boost: float) -> Query:
        return replace(self, boost=self.boost * boost)


@dataclass(frozen=True)
class TermQuery(Query):
    """Match documents whose ``field`` contains ``term`` (already analyzed)."""

    field: str
    term: str


@dataclass(frozen=True)
class PhraseQuery(Query):
    """Match the analyzed ``terms`` at consecutive positions in ``field``."""

    field: str
    terms: tuple[str, ...]


@dataclass(frozen=True)
class RangeQuery(Query):
    """Numeric range; ``None`` bounds are open. Scores a constant ``boost``."""

    field: str
    lower: float | None = None
    upper: float | None = None
    include_lower: bool = True
    include_upper: bool = True


@dataclass(frozen=True)
class FuzzyQuery(Query):
    field: str
    term: str
    max_edits: int = 2


@dataclass(frozen=True)
class PrefixQuery(Query):
    field: str
    prefix: str


@dataclass(frozen=True)
class WildcardQuery(Query):
    """``*`` matches any run of characters, ``?`` exactly one."""

    field: str
    pattern: str


class Occur(str, Enum):
    MUST = "must"
    SHOULD = "should"
    MUST_NOT = "must_not"


@dataclass(frozen=True)
class BooleanQuery(Query):
    """Combine clauses.

    All ``must`` clauses have to match; when there are none, at least one
    ``should`` clause has to. ``must_not`` clauses exclude. A boolean with no
    positive clauses matches nothing. Scores add up over matching clauses.
    """

    must: tuple[Query, ...] = ()
    should: tuple[Query, ...] = ()
    must_not: tuple[Query, ...] = ()

    @property
    def is_empty(self) -> bool:
        return not (self.must or self.should)


@dataclass(frozen=True)
class MatchAllQuery(Query):
    pass


@dataclass(frozen=True)
class MatchNoneQuery(Query):
    reason: str = ""


def any_of(clauses: Iterable[Query]) -> Query:
    """OR the clauses, dropping ones that can never match."""
    clauses = tuple(clause for clause in clauses if not isinstance(clause, MatchNoneQuery))
    if not clauses:
        return MatchNoneQuery(reason="empty disjunction")
    if len(clauses) == 1:
        return clauses[0]
    return BooleanQuery(should=clauses)


def all_of(clauses: Iterable[Query]) -> Query:
    """AND the clauses; a ``MatchNoneQuery`` among them short-circuits."""
    clauses = tuple(clauses)
    for clause in clauses:
        if isinstance(clause, MatchNoneQuery):
            return clause
    if not clauses:
        return MatchAllQuery()
    if len(clauses) == 1:
        return clauses[0]
    return BooleanQuery(must=clauses)
