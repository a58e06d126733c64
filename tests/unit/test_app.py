"""Unit tests for the Starlette HTTP adapter."""

from __future__ import annotations

import pytest
from starlette.testclient import TestClient

from athlete_search.app import create_app
from athlete_search.search.document_index import DocumentIndex
from athlete_search.service_layer import AthleteSearchService


pytestmark = pytest.mark.unit


@pytest.fixture
def client(service, test_settings):
    app = create_app(service=service, settings=test_settings)
    with TestClient(app) as test_client:
        yield test_client


def item_ids(response):
    return [item["id"] for item in response.json()["data"]["items"]]


class TestSearchRoutes:
    def test_combined_search(self, client):
        response = client.get("/search/combined", params={"kg": "+100"})
        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["data"]["total"] == 1
        assert item_ids(response) == ["a6"]

    def test_combined_search_with_paging(self, client):
        response = client.get("/search/combined", params={"minAge": "10", "pageNo": "2", "pageSize": "4"})
        data = response.json()["data"]
        assert data["total"] == 10
        assert data["page_no"] == 2
        assert data["total_pages"] == 3
        assert len(data["items"]) == 4

    def test_combined_search_needs_a_criterion(self, client):
        response = client.get("/search/combined")
        assert response.status_code == 400
        body = response.json()
        assert body["success"] is False
        assert any("at least one search criterion" in issue for issue in body["issues"])

    def test_invalid_enum_reports_allowed_values(self, client):
        response = client.get("/search/combined", params={"ageGroup": "toddler"})
        assert response.status_code == 400
        assert "CADET" in response.json()["message"]

    def test_smart_search(self, client):
        response = client.get("/search/smart", params={"keyword": "smith"})
        assert item_ids(response) == ["a1", "a4"]

    def test_smart_search_requires_keyword(self, client):
        assert client.get("/search/smart").status_code == 400

    def test_fuzzy_search(self, client):
        response = client.get("/search/fuzzy", params={"keyword": "Smyth", "similarity": "0.5"})
        assert "a1" in item_ids(response)

    def test_fuzzy_search_bad_similarity(self, client):
        assert client.get("/search/fuzzy", params={"keyword": "a", "similarity": "high"}).status_code == 400
        assert client.get("/search/fuzzy", params={"keyword": "a", "similarity": "2"}).status_code == 400

    def test_bad_paging_number(self, client):
        response = client.get("/search/smart", params={"keyword": "smith", "pageNo": "two"})
        assert response.status_code == 400
        assert "pageNo" in response.json()["message"]

    def test_query_string_malformed_is_empty_not_error(self, client):
        response = client.get("/search/query", params={"q": "name:(smith"})
        assert response.status_code == 200
        assert response.json()["data"]["total"] == 0

    def test_result_window_exceeded(self, populated_index, registry, test_settings):
        settings = test_settings.model_copy(update={"max_result_window": 5})
        service = AthleteSearchService(populated_index, settings=settings, registry=registry)
        with TestClient(create_app(service=service, settings=settings)) as client:
            response = client.get("/search/combined", params={"minAge": "10", "pageNo": "2", "pageSize": "4"})
            assert response.status_code == 400
            assert "max_result_window" in response.json()["message"]

            response = client.get("/search/combined", params={"minAge": "10", "pageNo": "200", "pageSize": "100"})
            assert response.status_code == 200
            assert response.json()["data"]["items"] == []
            assert response.json()["data"]["total"] == 10


class TestVocabularyRoutes:
    def test_static_lists(self, client):
        assert len(client.get("/vocabulary/age-groups").json()["data"]) == 4
        assert len(client.get("/vocabulary/weight-classes").json()["data"]) == 7
        assert len(client.get("/vocabulary/continents").json()["data"]) == 6

    def test_countries(self, client):
        data = client.get("/vocabulary/countries", params={"continent": "asia"}).json()["data"]
        assert "Japan" in data["countries"]

    def test_others_round_trip(self, client):
        response = client.post("/vocabulary/others", json={"country": "Andorra", "continent": "europe"})
        assert response.status_code == 200
        assert response.json()["data"] == {"added": True, "others": ["Andorra"]}

        listed = client.get("/vocabulary/others", params={"continent": "europe"}).json()["data"]
        assert listed["others"] == ["Andorra"]

        found = client.get("/vocabulary/continent-of", params={"country": "Andorra"}).json()["data"]
        assert found == {"country": "Andorra", "continent": "EUROPE"}

    def test_add_other_validation(self, client):
        assert client.post("/vocabulary/others", json={"country": "X"}).status_code == 400
        assert client.post("/vocabulary/others", json={"country": "", "continent": "europe"}).status_code == 400
        assert client.post("/vocabulary/others", content=b"[1]").status_code == 400
        assert client.post("/vocabulary/others", content=b"{bad").status_code == 400


class TestOperationalRoutes:
    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["documents"] == 10

    def test_metrics(self, client):
        client.get("/search/smart", params={"keyword": "smith"})
        response = client.get("/metrics")
        assert response.status_code == 200
        assert b"athlete_search_requests_total" in response.content

    def test_rebuild(self, client, tmp_path):
        records = tmp_path / "records"
        records.mkdir()
        (records / "1.json").write_text('{"id": "z1", "name": "Zed"}', encoding="utf-8")
        response = client.post("/admin/rebuild", json={"path": str(records)})
        assert response.status_code == 200
        assert response.json()["data"]["indexed"] == 1
        assert client.get("/health").json()["documents"] == 1

    def test_rebuild_missing_directory(self, client, tmp_path):
        response = client.post("/admin/rebuild", json={"path": str(tmp_path / "missing")})
        assert response.status_code == 400


def test_unavailable_index_serves_503(tmp_path, registry, test_settings):
    db_path = tmp_path / "broken.db"
    db_path.mkdir()
    service = AthleteSearchService(DocumentIndex(db_path), settings=test_settings, registry=registry)
    with TestClient(create_app(service=service, settings=test_settings)) as client:
        assert client.get("/health").status_code == 503
        response = client.get("/search/smart", params={"keyword": "smith"})
        assert response.status_code == 503
        assert response.json()["success"] is False
