"""Tests for the HTTP surface."""

import orjson
import pytest
from fastapi.testclient import TestClient

from catalog_server.main import create_app
from catalog_server.settings import Settings


@pytest.fixture
def settings() -> Settings:
    return Settings(postgres_url="postgresql://catalog@localhost/catalog")


@pytest.fixture
def client_for(settings):
    def make(engine):
        return TestClient(create_app(settings=settings, engine=engine))
    return make


class TestQueryEndpoint:
    def test_track_table(self, initialised_engine, client_for):
        with client_for(initialised_engine) as client:
            response = client.post("/v1/query", content=orjson.dumps({"type": "track_table", "args": "author"}))

        assert response.status_code == 200
        assert response.json() == {"message": "success"}

    def test_invalid_json(self, initialised_engine, client_for):
        with client_for(initialised_engine) as client:
            response = client.post("/v1/query", content=b"{")

        assert response.status_code == 400
        assert response.json()["code"] == "invalid-json"
        assert initialised_engine.begin_count == 0

    def test_metadata_conflict(self, initialised_engine, client_for):
        query = orjson.dumps({"type": "untrack_table", "args": {"table": "author"}})
        with client_for(initialised_engine) as client:
            response = client.post("/v1/query", content=query)

        body = response.json()
        assert response.status_code == 400
        assert body["code"] == "not-exists"
        assert body["status"] == 400

    def test_uninitialised_catalog(self, empty_engine, client_for):
        query = orjson.dumps({"type": "track_table", "args": "author"})
        with client_for(empty_engine) as client:
            response = client.post("/v1/query", content=query)

        assert response.status_code == 500
        assert response.json()["code"] == "postgres-error"


class TestHealthEndpoint:
    def test_healthy(self, initialised_engine, client_for):
        with client_for(initialised_engine) as client:
            response = client.get("/v1/health")

        body = response.json()
        assert body["status"] == "healthy"
        assert body["catalog"]["initialised"] is True
        assert body["catalog"]["version"] == "1.1"

    def test_outdated_catalog(self, engine_at, client_for):
        with client_for(engine_at("1")) as client:
            body = client.get("/v1/health").json()

        assert body["status"] == "unhealthy"
        assert body["catalog"]["version"] == "1"
        assert body["catalog"]["expected_version"] == "1.1"

    def test_missing_catalog(self, empty_engine, client_for):
        with client_for(empty_engine) as client:
            body = client.get("/v1/health").json()

        assert body["status"] == "unhealthy"
        assert body["catalog"]["initialised"] is False
        assert "not initialised" in body["catalog"]["error"]


def test_settings_normalise_driver():
    settings = Settings(postgres_url="postgres://u@h/db")
    assert settings.postgres_url == "postgresql+asyncpg://u@h/db"


def test_request_id_echoed(initialised_engine, client_for):
    with client_for(initialised_engine) as client:
        generated = client.get("/v1/health")
        given = client.get("/v1/health", headers={"X-Request-Id": "abc123"})

    assert len(generated.headers["X-Request-Id"]) == 12
    assert given.headers["X-Request-Id"] == "abc123"
