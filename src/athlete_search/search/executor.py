"""Runs a query tree against one index snapshot.

Scoring:
- term: ``boost * idf * bm25``
- phrase: ``boost * sum(idf) * bm25(phrase frequency)``
- fuzzy: best ``similarity * idf * bm25`` over the expanded terms
- range, prefix, wildcard, match-all: constant ``boost``
- boolean: sum of matching clause scores, times ``boost``

The match set is computed exhaustively, so ``total`` is exact; only the
ranked window is truncated to ``limit``. Ties are broken by document id.
"""

from __future__ import annotations

from dataclasses import dataclass, field
import heapq
import logging

from athlete_search.domain.models import SearchHit
from athlete_search.errors import MalformedQueryError, ResultWindowError, ValidationError
from athlete_search.observability.metrics import QUERY_PARSE_FAILURES
from athlete_search.observability.tracing import create_span
from athlete_search.search.document_index import IndexSnapshot
from athlete_search.search.fuzzy import find_fuzzy_matches, similarity
from athlete_search.search.phrase import phrase_frequency
from athlete_search.search.query import (
    BooleanQuery,
    FuzzyQuery,
    MatchAllQuery,
    MatchNoneQuery,
    PhraseQuery,
    PrefixQuery,
    Query,
    RangeQuery,
    TermQuery,
    WildcardQuery,
)
from athlete_search.search.schema import NumericField
from athlete_search.search.stats import bm25, calculate_idf


logger = logging.getLogger(__name__)

Scores = dict[str, float]


@dataclass(frozen=True)
class SearchHits:
    """Ranked window plus the exact number of matching documents."""

    hits: list[SearchHit] = field(default_factory=list)
    total: int = 0
    generation: int = 0

    @property
    def doc_ids(self) -> list[str]:
        return [hit.doc_id for hit in self.hits]


def wildcard_to_glob(pattern: str) -> str:
    """Translate a wildcard pattern (``*``, ``?``, backslash escapes) to an SQLite GLOB."""
    out: list[str] = []
    chars = iter(pattern)
    for ch in chars:
        if ch == "\\":
            literal = next(chars, "")
            out.append(f"[{literal}]" if literal and literal in "*?[]" else literal)
        elif ch in "*?":
            out.append(ch)
        elif ch in "[]":
            out.append(f"[{ch}]")
        else:
            out.append(ch)
    return "".join(out)


class SearchExecutor:
    """Evaluates query trees; stateless apart from its limits, so one instance serves all threads."""

    def __init__(self, *, max_result_window: int = 10000, fuzzy_max_expansions: int = 50) -> None:
        self.max_result_window = max_result_window
        self.fuzzy_max_expansions = fuzzy_max_expansions

    def execute(self, snapshot: IndexSnapshot, query: Query, limit: int, *, start: int = 0) -> SearchHits:
        """Return the top ``limit`` hits by score and the exact match count.

        ``start`` is the offset of the page the caller will cut from the hits;
        when it lies at or past the match count no hits are ranked. Otherwise
        ``ResultWindowError`` is raised if more than ``max_result_window`` ranked
        hits would have to be retrieved.

        A query that turns out to be malformed during evaluation yields zero hits.
        """
        if limit < 0 or start < 0:
            raise ValidationError(f"limit and start must be non-negative, got limit={limit} start={start}")

        with create_span(
            "search.execute",
            attributes={"search.limit": limit, "index.generation": snapshot.generation},
        ) as span:
            try:
                scores = self._evaluate(snapshot, query)
            except MalformedQueryError as exc:
                QUERY_PARSE_FAILURES.labels().inc()
                logger.warning("Query could not be evaluated, returning no hits: %s", exc)
                return SearchHits(hits=[], total=0, generation=snapshot.generation)

            total = len(scores)
            span.set_attribute("search.total_hits", total)
            if start and start >= total:
                return SearchHits(hits=[], total=total, generation=snapshot.generation)
            if min(limit, total) > self.max_result_window:
                raise ResultWindowError(limit, self.max_result_window)
            ranked = heapq.nsmallest(limit, scores.items(), key=lambda item: (-item[1], item[0]))

        hits = [SearchHit(doc_id=doc_id, score=score) for doc_id, score in ranked]
        logger.debug("Executed query: total=%d returned=%d generation=%d", total, len(hits), snapshot.generation)
        return SearchHits(hits=hits, total=total, generation=snapshot.generation)

    def count(self, snapshot: IndexSnapshot, query: Query) -> int:
        return self.execute(snapshot, query, 0).total

    def _evaluate(self, snapshot: IndexSnapshot, query: Query) -> Scores:
        if isinstance(query, TermQuery):
            scores = self._term_scores(snapshot, query.field, query.term)
        elif isinstance(query, PhraseQuery):
            scores = self._phrase_scores(snapshot, query)
        elif isinstance(query, BooleanQuery):
            scores = self._boolean_scores(snapshot, query)
        elif isinstance(query, FuzzyQuery):
            scores = self._fuzzy_scores(snapshot, query)
        elif isinstance(query, RangeQuery):
            scores = self._range_scores(snapshot, query)
        elif isinstance(query, PrefixQuery):
            self._check_term_field(snapshot, query.field)
            return dict.fromkeys(snapshot.docs_with_prefix(query.field, query.prefix), query.boost)
        elif isinstance(query, WildcardQuery):
            self._check_term_field(snapshot, query.field)
            glob = wildcard_to_glob(query.pattern)
            return dict.fromkeys(snapshot.docs_matching_glob(query.field, glob), query.boost)
        elif isinstance(query, MatchAllQuery):
            return dict.fromkeys(snapshot.all_doc_ids(), query.boost)
        elif isinstance(query, MatchNoneQuery):
            return {}
        else:
            raise MalformedQueryError(f"Unsupported query node: {type(query).__name__}")

        if query.boost != 1.0:
            return {doc_id: score * query.boost for doc_id, score in scores.items()}
        return scores

    @staticmethod
    def _check_term_field(snapshot: IndexSnapshot, field_name: str) -> None:
        schema = snapshot.schema
        if field_name not in schema or not schema[field_name].indexed or isinstance(schema[field_name], NumericField):
            raise MalformedQueryError(f"Field '{field_name}' cannot be searched by term")

    def _term_weight(self, snapshot: IndexSnapshot, field_name: str, doc_freq: int) -> tuple[float, float]:
        idf = calculate_idf(doc_freq, snapshot.doc_count)
        return idf, snapshot.field_stats(field_name).average_length

    def _term_scores(self, snapshot: IndexSnapshot, field_name: str, term: str) -> Scores:
        self._check_term_field(snapshot, field_name)
        postings = snapshot.postings(field_name, term)
        if not postings:
            return {}
        idf, avg_length = self._term_weight(snapshot, field_name, len(postings))
        return {p.doc_id: idf * bm25(p.frequency, p.doc_length, avg_length) for p in postings}

    def _phrase_scores(self, snapshot: IndexSnapshot, query: PhraseQuery) -> Scores:
        self._check_term_field(snapshot, query.field)
        if not query.terms:
            return {}
        postings_per_term = [snapshot.postings(query.field, term) for term in query.terms]
        if any(not postings for postings in postings_per_term):
            return {}
        by_doc = [{p.doc_id: p for p in postings} for postings in postings_per_term]
        candidates = set(by_doc[0]).intersection(*by_doc[1:])
        idf_sum = sum(calculate_idf(len(postings), snapshot.doc_count) for postings in postings_per_term)
        avg_length = snapshot.field_stats(query.field).average_length

        scores: Scores = {}
        for doc_id in candidates:
            frequency = phrase_frequency([doc_postings[doc_id].positions for doc_postings in by_doc])
            if frequency:
                doc_length = by_doc[0][doc_id].doc_length
                scores[doc_id] = idf_sum * bm25(frequency, doc_length, avg_length)
        return scores

    def _fuzzy_scores(self, snapshot: IndexSnapshot, query: FuzzyQuery) -> Scores:
        self._check_term_field(snapshot, query.field)
        matches = find_fuzzy_matches(
            query.term,
            snapshot.terms(query.field),
            query.max_edits,
            max_expansions=self.fuzzy_max_expansions,
        )
        scores: Scores = {}
        for term, distance in matches:
            weight = similarity(query.term, term, distance)
            if weight <= 0:
                continue
            for doc_id, score in self._term_scores(snapshot, query.field, term).items():
                candidate = weight * score
                if candidate > scores.get(doc_id, 0.0):
                    scores[doc_id] = candidate
        return scores

    def _range_scores(self, snapshot: IndexSnapshot, query: RangeQuery) -> Scores:
        schema = snapshot.schema
        if query.field not in schema or not isinstance(schema[query.field], NumericField):
            raise MalformedQueryError(f"Range queries need a numeric field, got '{query.field}'")
        doc_ids = snapshot.numeric_range(
            query.field,
            query.lower,
            query.upper,
            include_lower=query.include_lower,
            include_upper=query.include_upper,
        )
        return dict.fromkeys(doc_ids, 1.0)

    def _boolean_scores(self, snapshot: IndexSnapshot, query: BooleanQuery) -> Scores:
        if query.is_empty:
            return {}

        if query.must:
            scores = self._evaluate(snapshot, query.must[0])
            for clause in query.must[1:]:
                if not scores:
                    return {}
                clause_scores = self._evaluate(snapshot, clause)
                scores = {
                    doc_id: score + clause_scores[doc_id] for doc_id, score in scores.items() if doc_id in clause_scores
                }
            for clause in query.should:
                if not scores:
                    break
                for doc_id, score in self._evaluate(snapshot, clause).items():
                    if doc_id in scores:
                        scores[doc_id] += score
        else:
            scores = {}
            for clause in query.should:
                for doc_id, score in self._evaluate(snapshot, clause).items():
                    scores[doc_id] = scores.get(doc_id, 0.0) + score

        for clause in query.must_not:
            if not scores:
                break
            for doc_id in self._evaluate(snapshot, clause):
                scores.pop(doc_id, None)
        return scores
