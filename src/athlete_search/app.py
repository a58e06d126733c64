"""Main ASGI application entry point.

A thin Starlette adapter over ``AthleteSearchService``. All search work is
blocking SQLite I/O, so handlers hand it to the thread pool.

Routes:
    GET  /search/combined        criteria search (keyword, ageGroup, kg, continent, ...)
    GET  /search/smart           ?keyword=
    GET  /search/fuzzy           ?keyword=&similarity=
    GET  /search/query           ?q= (query syntax)
    GET  /vocabulary/...         age-groups, weight-classes, continents, countries, continent-of
    GET  /vocabulary/others      ?continent=
    POST /vocabulary/others      {"country": ..., "continent": ...}
    POST /admin/rebuild          {"path": ...} (optional)
    GET  /health, /metrics

Usage:
    python -m athlete_search.app
"""

from __future__ import annotations

from collections.abc import Callable
from contextlib import asynccontextmanager
import logging
from typing import Any

import orjson
from starlette.applications import Starlette
from starlette.concurrency import run_in_threadpool
from starlette.middleware import Middleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from starlette.routing import Route

from athlete_search.config import Settings, get_settings
from athlete_search.domain.criteria import criteria_from_mapping
from athlete_search.errors import IndexUnavailableError, ValidationError
from athlete_search.observability.logging import configure_logging
from athlete_search.observability.metrics import get_metrics, get_metrics_content_type, init_metrics
from athlete_search.observability.tracing import TraceContextMiddleware, init_tracing
from athlete_search.service_layer import AthleteSearchService


logger = logging.getLogger(__name__)


def _ok(data: Any) -> JSONResponse:
    return JSONResponse({"success": True, "data": data})


def _int_param(request: Request, *names: str) -> int | None:
    for name in names:
        raw = request.query_params.get(name)
        if raw is None or raw == "":
            continue
        try:
            return int(raw)
        except ValueError:
            raise ValidationError(f"{name}: '{raw}' is not an integer") from None
    return None


def _float_param(request: Request, name: str, default: float) -> float:
    raw = request.query_params.get(name)
    if raw is None or raw == "":
        return default
    try:
        return float(raw)
    except ValueError:
        raise ValidationError(f"{name}: '{raw}' is not a number") from None


def _required_param(request: Request, *names: str) -> str:
    for name in names:
        value = request.query_params.get(name, "").strip()
        if value:
            return value
    raise ValidationError(f"missing query parameter '{names[0]}'")


def _paging(request: Request) -> dict[str, int | None]:
    return {
        "page_no": _int_param(request, "pageNo", "page_no", "page"),
        "page_size": _int_param(request, "pageSize", "page_size", "size"),
    }


async def _json_body(request: Request) -> dict[str, Any]:
    body = await request.body()
    if not body:
        return {}
    try:
        payload = orjson.loads(body)
    except orjson.JSONDecodeError as exc:
        raise ValidationError(f"request body is not valid JSON: {exc}") from exc
    if not isinstance(payload, dict):
        raise ValidationError("request body must be a JSON object")
    return payload


async def _validation_error(request: Request, exc: Exception) -> JSONResponse:
    issues = getattr(exc, "issues", [str(exc)])
    return JSONResponse({"success": False, "message": str(exc), "issues": issues}, status_code=400)


async def _unavailable_error(request: Request, exc: Exception) -> JSONResponse:
    logger.error("Index unavailable while serving %s: %s", request.url.path, exc)
    return JSONResponse({"success": False, "message": str(exc)}, status_code=503)


def create_app(service: AthleteSearchService | None = None, settings: Settings | None = None) -> Starlette:
    """Create the ASGI application.

    Args:
        service: Pre-built service (tests); built from ``settings`` when omitted
        settings: Configuration; defaults to the process-wide settings

    Returns:
        Starlette application whose lifespan opens and closes the index
    """
    settings = settings or get_settings()
    if service is None:
        service = AthleteSearchService.from_settings(settings)

    @asynccontextmanager
    async def lifespan(app: Starlette):
        try:
            await run_in_threadpool(service.open)
        except IndexUnavailableError as exc:
            # Keep serving so /health can report the failure
            logger.error("Index failed to open: %s", exc)
        try:
            yield
        finally:
            await run_in_threadpool(service.close)

    def page_endpoint(run: Callable[[Request], Any]) -> Callable[[Request], Any]:
        async def endpoint(request: Request) -> JSONResponse:
            page = await run_in_threadpool(run, request)
            return _ok(page.to_dict())

        return endpoint

    def combined(request: Request):
        criteria = criteria_from_mapping(dict(request.query_params))
        return service.search(criteria, **_paging(request))

    def smart(request: Request):
        return service.smart_search(_required_param(request, "keyword", "kw"), **_paging(request))

    def fuzzy(request: Request):
        keyword = _required_param(request, "keyword", "fuzzyKeyword", "kw")
        return service.fuzzy_search(keyword, _float_param(request, "similarity", 0.0), **_paging(request))

    def query_string(request: Request):
        return service.query_string_search(_required_param(request, "q", "query"), **_paging(request))

    async def age_groups(request: Request) -> JSONResponse:
        return _ok(service.age_groups())

    async def weight_classes(request: Request) -> JSONResponse:
        return _ok(service.weight_classes())

    async def continents(request: Request) -> JSONResponse:
        return _ok(service.continents())

    async def countries(request: Request) -> JSONResponse:
        continent = _required_param(request, "continent")
        return _ok({"continent": continent, "countries": service.countries(continent)})

    async def continent_of(request: Request) -> JSONResponse:
        country = _required_param(request, "country")
        continent = service.continent_of(country)
        return _ok({"country": country, "continent": continent.name if continent else None})

    async def list_others(request: Request) -> JSONResponse:
        continent = _required_param(request, "continent")
        return _ok({"continent": continent, "others": service.others(continent)})

    async def add_other(request: Request) -> JSONResponse:
        payload = await _json_body(request)
        country = str(payload.get("country") or "")
        continent = str(payload.get("continent") or "")
        if not continent.strip():
            raise ValidationError("continent must not be empty")
        added = service.add_other(country, continent)
        return _ok({"added": added, "others": service.others(continent)})

    async def rebuild(request: Request) -> JSONResponse:
        payload = await _json_body(request)
        report = await run_in_threadpool(service.rebuild_from_source, payload.get("path"))
        return _ok(report.model_dump())

    async def health(request: Request) -> JSONResponse:
        payload = await run_in_threadpool(service.health)
        return JSONResponse(payload, status_code=200 if payload["status"] == "ok" else 503)

    async def metrics(request: Request) -> Response:
        return Response(get_metrics(), media_type=get_metrics_content_type())

    routes = [
        Route("/health", endpoint=health, methods=["GET"]),
        Route("/metrics", endpoint=metrics, methods=["GET"]),
        Route("/search/combined", endpoint=page_endpoint(combined), methods=["GET"]),
        Route("/search/smart", endpoint=page_endpoint(smart), methods=["GET"]),
        Route("/search/fuzzy", endpoint=page_endpoint(fuzzy), methods=["GET"]),
        Route("/search/query", endpoint=page_endpoint(query_string), methods=["GET"]),
        Route("/vocabulary/age-groups", endpoint=age_groups, methods=["GET"]),
        Route("/vocabulary/weight-classes", endpoint=weight_classes, methods=["GET"]),
        Route("/vocabulary/continents", endpoint=continents, methods=["GET"]),
        Route("/vocabulary/countries", endpoint=countries, methods=["GET"]),
        Route("/vocabulary/continent-of", endpoint=continent_of, methods=["GET"]),
        Route("/vocabulary/others", endpoint=list_others, methods=["GET"]),
        Route("/vocabulary/others", endpoint=add_other, methods=["POST"]),
        Route("/admin/rebuild", endpoint=rebuild, methods=["POST"]),
    ]

    app = Starlette(
        debug=settings.log_level.lower() == "debug",
        routes=routes,
        middleware=[Middleware(TraceContextMiddleware)],
        exception_handlers={
            ValidationError: _validation_error,
            IndexUnavailableError: _unavailable_error,
        },
        lifespan=lifespan,
    )
    app.state.service = service
    return app


def main() -> None:
    """Main entry point for the HTTP server."""
    import uvicorn

    settings = get_settings()
    configure_logging(
        settings.log_level,
        settings.log_json,
        logger_levels={"athlete_search": settings.log_level, "uvicorn": settings.log_level},
    )
    init_tracing()
    init_metrics()

    app = create_app(settings=settings)

    logger.info("Starting server on %s:%d", settings.http_host, settings.http_port)
    logger.info("Index: %s", settings.index_file)

    uvicorn.run(
        app,
        host=settings.http_host,
        port=settings.http_port,
        log_level=settings.log_level.lower(),
        log_config=None,  # Don't let uvicorn override our logging config
    )


if __name__ == "__main__":
    main()
