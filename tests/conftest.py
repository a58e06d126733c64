"""Shared test fixtures and configuration."""

from __future__ import annotations

import os

import pytest


# Complete test environment that overrides every config value read from the environment
TEST_ENV = {
    "ATHLETE_SEARCH_DEFAULT_PAGE_SIZE": "10",
    "ATHLETE_SEARCH_MAX_PAGE_SIZE": "100",
    "ATHLETE_SEARCH_MAX_RESULT_WINDOW": "10000",
    "ATHLETE_SEARCH_FUZZY_MAX_EDITS": "2",
    "ATHLETE_SEARCH_FUZZY_MAX_EXPANSIONS": "50",
    "ATHLETE_SEARCH_SQLITE_SYNCHRONOUS": "FULL",
    "ATHLETE_SEARCH_LOG_LEVEL": "info",
    "ATHLETE_SEARCH_LOG_JSON": "false",
    "ATHLETE_SEARCH_HTTP_HOST": "127.0.0.1",
    "ATHLETE_SEARCH_HTTP_PORT": "15010",
}


# Set environment variables immediately when conftest.py is loaded
for key, value in TEST_ENV.items():
    os.environ[key] = value

# Now we can safely import config-dependent modules
from athlete_search.config import Settings, get_settings
from athlete_search.domain.models import AthleteDocument
from athlete_search.domain.vocabulary import VocabularyRegistry
from athlete_search.search.document_index import DocumentIndex
from athlete_search.service_layer import AthleteSearchService


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    """Reset environment variables to test defaults before each test."""
    for key, value in TEST_ENV.items():
        monkeypatch.setenv(key, value)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


def _athlete(
    doc_id: str,
    name: str,
    *,
    age: int | None = None,
    weight_code: str | None = None,
    location: str | None = None,
) -> AthleteDocument:
    return AthleteDocument(
        id=doc_id,
        name=name,
        age_text=None if age is None else f"{age} years",
        age_value=age,
        weight_code=weight_code,
        location=location,
    )


SAMPLE_ATHLETES = [
    _athlete("a1", "John Smith", age=16, weight_code="-60", location="France"),
    _athlete("a2", "Maria Garcia", age=19, weight_code="-66", location="Spain"),
    _athlete("a3", "Kenji Tanaka", age=25, weight_code="-73", location="Japan"),
    _athlete("a4", "Anna Smithson", age=28, weight_code="-81", location="Germany"),
    _athlete("a5", "Lucas Silva", age=33, weight_code="-90", location="Brazil"),
    _athlete("a6", "Teddy Riner", age=35, weight_code="+100", location="France"),
    _athlete("a7", "Hiro Sato", age=17, weight_code="-100", location="Japan"),
    _athlete("a8", "Pierre Dubois", age=40, weight_code="-81", location="Andorra"),
    _athlete("a9", "Jan de Vries", age=21, weight_code="-90", location="Netherlands"),
    _athlete("a10", "Kim Min-jun", age=23, weight_code="-73", location="South Korea"),
]


@pytest.fixture
def athlete_factory():
    """Factory for ``AthleteDocument`` values with a derived display age."""
    return _athlete


@pytest.fixture
def sample_athletes() -> list[AthleteDocument]:
    return list(SAMPLE_ATHLETES)


@pytest.fixture
def test_settings(tmp_path) -> Settings:
    return Settings(index_path=tmp_path / "index", source_path=tmp_path / "workspace")


@pytest.fixture
def index(tmp_path):
    """An open, empty on-disk index."""
    document_index = DocumentIndex(tmp_path / "index" / "athletes.db")
    document_index.open()
    yield document_index
    document_index.close()


@pytest.fixture
def populated_index(index, sample_athletes):
    index.rebuild(sample_athletes)
    return index


@pytest.fixture
def registry() -> VocabularyRegistry:
    """A private registry so added "others" never leak between tests."""
    return VocabularyRegistry()


@pytest.fixture
def service(populated_index, registry, test_settings) -> AthleteSearchService:
    return AthleteSearchService(populated_index, settings=test_settings, registry=registry)
