"""Search service orchestration layer.

Combines query building, snapshot execution and pagination behind one API
used by the HTTP adapter and by tests. Each search runs against exactly one
index snapshot: ranking, the total count and the returned documents all come
from the same point-in-time view.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

from athlete_search.config import Settings
from athlete_search.domain.criteria import SearchCriteria
from athlete_search.domain.models import AthleteDocument, RebuildReport, SearchPage
from athlete_search.domain.vocabulary import AgeGroup, Continent, VocabularyRegistry, WeightClass, get_registry
from athlete_search.errors import AthleteSearchError, ValidationError
from athlete_search.ingest import JsonRecordSource
from athlete_search.observability.context import get_trace_context, set_trace_context
from athlete_search.observability.metrics import SEARCH_LATENCY, SEARCH_REQUESTS, track_latency
from athlete_search.observability.tracing import create_span
from athlete_search.search.document_index import DocumentIndex, IndexState
from athlete_search.search.executor import SearchExecutor
from athlete_search.search.paginator import PageRequest, paginate
from athlete_search.search.query import Query
from athlete_search.search.query_builder import QueryBuilder


logger = logging.getLogger(__name__)


def _bind_search_mode(mode: str) -> None:
    ctx = get_trace_context()
    set_trace_context(**{**ctx, "search_mode": mode})


class AthleteSearchService:
    """High-level search orchestration service.

    Owns the index lifecycle and wires the query builder, executor and
    paginator together. Safe to share between threads: searches only touch
    their own snapshot, and writes are serialized by the index.
    """

    def __init__(
        self,
        index: DocumentIndex,
        *,
        settings: Settings | None = None,
        registry: VocabularyRegistry | None = None,
        builder: QueryBuilder | None = None,
        executor: SearchExecutor | None = None,
    ) -> None:
        """Initialize the service with its collaborators.

        Args:
            index: Document index (opened by ``open()`` if not already open)
            settings: Paging limits, fuzzy bounds and the default rebuild source
            registry: Continent vocabulary; defaults to the process-wide registry
            builder: Query builder; built from ``index.schema`` and ``registry`` when omitted
            executor: Search executor; built from ``settings`` when omitted
        """
        self.settings = settings or Settings()
        self.index = index
        self.registry = registry or get_registry()
        self.builder = builder or QueryBuilder(
            index.schema,
            self.registry,
            fuzzy_max_edits=self.settings.fuzzy_max_edits,
        )
        self.executor = executor or SearchExecutor(
            max_result_window=self.settings.max_result_window,
            fuzzy_max_expansions=self.settings.fuzzy_max_expansions,
        )

    @classmethod
    def from_settings(cls, settings: Settings, registry: VocabularyRegistry | None = None) -> AthleteSearchService:
        index = DocumentIndex(
            settings.index_file,
            synchronous=settings.sqlite_synchronous,
            busy_timeout_ms=settings.sqlite_busy_timeout_ms,
        )
        return cls(index, settings=settings, registry=registry)

    def open(self) -> AthleteSearchService:
        self.index.open()
        return self

    def close(self) -> None:
        self.index.close()

    def __enter__(self) -> AthleteSearchService:
        return self.open()

    def __exit__(self, *_exc: object) -> None:
        self.close()

    # Searches

    def search(self, criteria: SearchCriteria, page_no: int | None = None, page_size: int | None = None) -> SearchPage:
        """Combined search: every criterion set on ``criteria`` must hold."""
        return self._run("combined", self.builder.build(criteria), page_no, page_size)

    def smart_search(self, keyword: str, page_no: int | None = None, page_size: int | None = None) -> SearchPage:
        if not keyword or not keyword.strip():
            raise ValidationError("keyword must not be empty")
        return self._run("smart", self.builder.smart(keyword), page_no, page_size)

    def fuzzy_search(
        self,
        keyword: str,
        similarity: float = 0.0,
        page_no: int | None = None,
        page_size: int | None = None,
    ) -> SearchPage:
        if not keyword or not keyword.strip():
            raise ValidationError("fuzzy keyword must not be empty")
        if not 0.0 <= similarity <= 1.0:
            raise ValidationError(f"similarity must be within [0, 1], got {similarity}")
        return self._run("fuzzy", self.builder.fuzzy(keyword, similarity), page_no, page_size)

    def query_string_search(self, text: str, page_no: int | None = None, page_size: int | None = None) -> SearchPage:
        """Search with raw query syntax; malformed input returns an empty page."""
        return self._run("query", self.builder.query_string(text), page_no, page_size)

    def _run(self, mode: str, query: Query, page_no: int | None, page_size: int | None) -> SearchPage:
        request = PageRequest.clamped(
            page_no,
            page_size,
            default_page_size=self.settings.default_page_size,
            max_page_size=self.settings.max_page_size,
        )
        _bind_search_mode(mode)
        status = "error"
        try:
            with (
                track_latency(SEARCH_LATENCY, mode=mode),
                create_span(
                    f"search.{mode}",
                    attributes={"search.page_no": request.page_no, "search.page_size": request.page_size},
                ),
                self.index.open_snapshot() as snapshot,
            ):
                hits = self.executor.execute(snapshot, query, request.end, start=request.start)
                window, total = paginate(
                    hits.hits,
                    hits.total,
                    request.page_no,
                    request.page_size,
                    max_page_size=self.settings.max_page_size,
                )
                found = snapshot.get_documents(hit.doc_id for hit in window)
            status = "ok"
        except AthleteSearchError:
            logger.warning("Search failed (mode=%s)", mode, exc_info=True)
            raise
        finally:
            SEARCH_REQUESTS.labels(mode=mode, status=status).inc()

        items = [found[hit.doc_id] for hit in window if hit.doc_id in found]
        logger.info(
            "Search %s: total=%d page=%d size=%d returned=%d generation=%d",
            mode,
            total,
            request.page_no,
            request.page_size,
            len(items),
            hits.generation,
        )
        return SearchPage(items=items, total=total, page_no=request.page_no, page_size=request.page_size)

    # Vocabulary

    @staticmethod
    def age_groups() -> list[dict[str, Any]]:
        return [{"name": group.name, "min_age": group.min_age, "max_age": group.max_age} for group in AgeGroup]

    @staticmethod
    def weight_classes() -> list[dict[str, Any]]:
        return [
            {"name": weight.name, "code": weight.code, "lower": weight.lower, "upper": weight.upper}
            for weight in WeightClass
        ]

    @staticmethod
    def continents() -> list[dict[str, str]]:
        return [{"name": continent.name, "display_name": continent.display_name} for continent in Continent]

    def countries(self, continent: Continent | str) -> list[str]:
        return self.registry.lookup_countries(Continent.parse(continent))

    def others(self, continent: Continent | str) -> list[str]:
        return self.registry.others(Continent.parse(continent))

    def add_other(self, country: str, continent: Continent | str) -> bool:
        return self.registry.add_other(country, Continent.parse(continent))

    def continent_of(self, country: str) -> Continent | None:
        if not country or not country.strip():
            raise ValidationError("country must not be empty")
        return self.registry.continent_of(country)

    # Writes

    def upsert(self, document: AthleteDocument) -> int:
        return self.index.upsert(document)

    def delete(self, doc_id: str) -> int:
        return self.index.delete(doc_id)

    def rebuild_from_source(self, base_path: Path | str | None = None) -> RebuildReport:
        """Replace the index with every record under ``base_path``.

        Bad records are skipped and reported; a storage failure rolls the index
        back to its previous contents and propagates. Must not run
        concurrently with other rebuilds.
        """
        root = Path(base_path) if base_path is not None else self.settings.source_path
        if not root.is_dir():
            raise ValidationError(f"record directory does not exist: {root}")

        source = JsonRecordSource(root)
        logger.info("Rebuilding index from %s", root)
        doc_count = self.index.rebuild(source)
        report = RebuildReport(
            processed=source.processed,
            indexed=source.indexed,
            failed=source.failed,
            errors=[error.to_dict() for error in source.errors],
            generation=self.index.generation,
        )
        logger.info(
            "Rebuild complete: processed=%d indexed=%d failed=%d documents=%d",
            report.processed,
            report.indexed,
            report.failed,
            doc_count,
        )
        return report

    def health(self) -> dict[str, Any]:
        state = self.index.state
        payload: dict[str, Any] = {"status": "ok" if state is IndexState.OPEN else "unavailable", "state": state.value}
        if state is IndexState.OPEN:
            payload["documents"] = self.index.doc_count()
            payload["generation"] = self.index.generation
        return payload
