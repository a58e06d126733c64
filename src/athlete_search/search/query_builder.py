"""Translate search criteria into one composed query tree.

Rules:
- Every present criterion contributes one required (AND) clause.
- A criterion with several textual representations (a keyword matched via
  several strategies, a continent expanded to its countries) is an OR of
  individually weighted alternatives.
- User text is escaped before it reaches the query parser, so characters such
  as the leading minus of ``-81`` are literal.

Match strategies and their weights live in one table, ``MATCH_STRATEGIES``;
each search mode selects a subset and ``compose()`` turns it into clauses.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from enum import Enum
import logging

from athlete_search.domain.criteria import SearchCriteria
from athlete_search.domain.vocabulary import VocabularyRegistry, WeightClass, get_registry
from athlete_search.errors import MalformedQueryError
from athlete_search.observability.metrics import QUERY_PARSE_FAILURES
from athlete_search.search.fuzzy import MAX_EDIT_DISTANCE
from athlete_search.search.query import (
    BooleanQuery,
    MatchNoneQuery,
    Query,
    RangeQuery,
    TermQuery,
    all_of,
    any_of,
)
from athlete_search.search.query_parser import QueryParser, escape
from athlete_search.search.schema import (
    AGE_VALUE,
    LOCATION,
    LOCATION_EXACT,
    NAME,
    NAME_EXACT,
    WEIGHT_CODE,
    Schema,
    create_athlete_schema,
)


logger = logging.getLogger(__name__)


class MatchStrategy(str, Enum):
    EXACT = "exact"
    PHRASE = "phrase"
    PREFIX = "prefix"
    FUZZY = "fuzzy"
    WILDCARD = "wildcard"


@dataclass(frozen=True)
class StrategyWeight:
    strategy: MatchStrategy
    field: str
    weight: float


# Higher-fidelity strategies outrank looser ones
MATCH_STRATEGIES: tuple[StrategyWeight, ...] = (
    StrategyWeight(MatchStrategy.EXACT, NAME, 3.0),
    StrategyWeight(MatchStrategy.EXACT, LOCATION, 2.0),
    StrategyWeight(MatchStrategy.PHRASE, NAME, 2.5),
    StrategyWeight(MatchStrategy.PREFIX, NAME, 2.0),
    StrategyWeight(MatchStrategy.PREFIX, LOCATION, 1.5),
    StrategyWeight(MatchStrategy.FUZZY, NAME, 1.0),
    StrategyWeight(MatchStrategy.FUZZY, LOCATION, 0.8),
    StrategyWeight(MatchStrategy.WILDCARD, NAME, 0.5),
    StrategyWeight(MatchStrategy.WILDCARD, LOCATION, 0.3),
)

_EXACT_FIELD = {NAME: NAME_EXACT, LOCATION: LOCATION_EXACT}

KEYWORD_STRATEGIES = frozenset({MatchStrategy.EXACT, MatchStrategy.PHRASE})
FUZZY_STRATEGIES = frozenset({MatchStrategy.FUZZY, MatchStrategy.WILDCARD, MatchStrategy.PREFIX})

# Weight of the country phrase alternative relative to an exact country match
_COUNTRY_PHRASE_WEIGHT = 1.0


def _location_weight(strategy: MatchStrategy) -> float:
    return next(entry.weight for entry in MATCH_STRATEGIES if entry.strategy is strategy and entry.field == LOCATION)


def select(strategies: Iterable[MatchStrategy]) -> tuple[StrategyWeight, ...]:
    wanted = set(strategies)
    return tuple(entry for entry in MATCH_STRATEGIES if entry.strategy in wanted)


class QueryBuilder:
    """Pure translation from criteria (or a raw keyword) to a query tree."""

    def __init__(
        self,
        schema: Schema | None = None,
        registry: VocabularyRegistry | None = None,
        *,
        fuzzy_max_edits: int = MAX_EDIT_DISTANCE,
    ) -> None:
        self.schema = schema or create_athlete_schema()
        self.registry = registry or get_registry()
        self.fuzzy_max_edits = min(fuzzy_max_edits, MAX_EDIT_DISTANCE)

    # Search modes

    def build(self, criteria: SearchCriteria) -> Query:
        """Combined search: every present criterion is required."""
        clauses: list[Query] = []
        if criteria.keyword:
            clauses.append(self.compose(criteria.keyword, select(KEYWORD_STRATEGIES)))
        if criteria.fuzzy_keyword:
            clauses.append(self.fuzzy(criteria.fuzzy_keyword, criteria.similarity))
        if criteria.age_group is not None:
            group = criteria.age_group
            clauses.append(RangeQuery(AGE_VALUE, lower=group.min_age, upper=group.max_age))
        if criteria.has_age_range:
            clauses.append(RangeQuery(AGE_VALUE, lower=criteria.min_age, upper=criteria.max_age))
        if criteria.weight_class is not None:
            clauses.append(self._weight_class_clause(criteria.weight_class))
        if criteria.has_weight_range:
            clauses.append(self._weight_range_clause(criteria.min_weight, criteria.max_weight))
        if criteria.continent is not None:
            clauses.append(self._countries_clause(self.registry.lookup_countries(criteria.continent)))
        if criteria.country:
            clauses.append(self._country_clause(criteria.country))
        query = all_of(clauses)
        logger.debug("Built combined query with %d required clauses", len(clauses))
        return query

    def smart(self, keyword: str) -> Query:
        """Match one keyword through every strategy, weighted by fidelity."""
        return self.compose(keyword, MATCH_STRATEGIES)

    def fuzzy(self, keyword: str, similarity: float = 0.0) -> Query:
        """Typo-tolerant match; ``similarity`` in [0, 1] raises the weight of fuzzy alternatives."""
        return self.compose(keyword, select(FUZZY_STRATEGIES), fuzzy_factor=1.0 + similarity)

    def query_string(self, text: str, default_field: str = NAME) -> Query:
        """Parse caller-supplied query syntax as-is; bad syntax matches nothing."""
        return self._parse(default_field, text)

    # Composition

    def compose(
        self,
        text: str,
        strategies: Iterable[StrategyWeight],
        *,
        fuzzy_factor: float = 1.0,
    ) -> Query:
        """OR together one clause per strategy entry, each boosted by its weight."""
        text = " ".join((text or "").split())
        if not text:
            return MatchNoneQuery(reason="empty keyword")
        clauses = []
        for entry in strategies:
            weight = entry.weight * (fuzzy_factor if entry.strategy is MatchStrategy.FUZZY else 1.0)
            clause = self._strategy_clause(entry.strategy, entry.field, text)
            if clause is not None:
                clauses.append(clause.boosted(weight))
        return any_of(clauses)

    def _strategy_clause(self, strategy: MatchStrategy, field_name: str, text: str) -> Query | None:
        if strategy is MatchStrategy.EXACT:
            return self._parse(field_name, f'{_EXACT_FIELD[field_name]}:"{escape(text)}"')
        if strategy is MatchStrategy.PHRASE:
            return self._parse(field_name, f'"{escape(text)}"')

        tokens = [token.text for token in self.schema.analyzer_for(field_name)(text)]
        if not tokens:
            return None
        if strategy is MatchStrategy.PREFIX:
            per_token = [f"{escape(token)}*" for token in tokens]
        elif strategy is MatchStrategy.FUZZY:
            per_token = [f"{escape(token)}~{self.fuzzy_max_edits}" for token in tokens]
        else:
            per_token = [f"*{escape(token)}*" for token in tokens]
        # Every token has to match for a multi-word keyword
        return self._parse(field_name, " ".join(f"+{clause}" for clause in per_token))

    def _parse(self, default_field: str, text: str) -> Query:
        # Parsers hold per-parse state, so each call gets its own
        try:
            query = QueryParser(self.schema, default_field).parse(text)
        except MalformedQueryError as exc:
            QUERY_PARSE_FAILURES.labels().inc()
            logger.warning("Malformed query %r treated as matching nothing: %s", text, exc)
            return MatchNoneQuery(reason=str(exc))
        if isinstance(query, BooleanQuery) and query.is_empty:
            return MatchNoneQuery(reason="no searchable terms")
        return query

    # Facets

    def _weight_class_clause(self, weight_class: WeightClass) -> Query:
        return self._parse(NAME, f"{WEIGHT_CODE}:{escape(weight_class.code)}")

    def _weight_range_clause(self, min_weight: float | None, max_weight: float | None) -> Query:
        lower = 0.0 if min_weight is None else min_weight
        upper = float("inf") if max_weight is None else max_weight
        buckets = WeightClass.in_range(lower, upper)
        if not buckets:
            return MatchNoneQuery(reason=f"no weight class within [{lower}, {upper}]")
        return any_of(self._weight_class_clause(bucket) for bucket in buckets)

    def _exact_term(self, field_name: str, value: str) -> Query | None:
        tokens = self.schema.analyzer_for(field_name)(value)
        return TermQuery(field_name, tokens[0].text) if tokens else None

    def _countries_clause(self, countries: Iterable[str]) -> Query:
        terms = (self._exact_term(LOCATION_EXACT, country) for country in countries)
        return any_of(term for term in terms if term is not None)

    def _country_clause(self, country: str) -> Query:
        """Exact country, then the phrase, then partial input such as ``Kor`` via substrings."""
        alternatives = []
        exact = self._exact_term(LOCATION_EXACT, country)
        if exact is not None:
            alternatives.append(exact.boosted(_location_weight(MatchStrategy.EXACT)))
        phrase = self._strategy_clause(MatchStrategy.PHRASE, LOCATION, country)
        if phrase is not None:
            alternatives.append(phrase.boosted(_COUNTRY_PHRASE_WEIGHT))
        partial = self._strategy_clause(MatchStrategy.WILDCARD, LOCATION, country)
        if partial is not None:
            alternatives.append(partial.boosted(_location_weight(MatchStrategy.WILDCARD)))
        return any_of(alternatives)
