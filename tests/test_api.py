"""
Tests for the HTTP API
======================

Routes exercised through FastAPI's TestClient on an in-memory indexer.
"""

import pytest
import yaml
from fastapi.testclient import TestClient

from specgraph.api.app import create_app

from tests.conftest import BANK_SPEC, PAY_SPEC


@pytest.fixture
def spec_dir(tmp_path):
    (tmp_path / "pay.yaml").write_text(yaml.safe_dump(PAY_SPEC), encoding="utf-8")
    (tmp_path / "bank.yaml").write_text(yaml.safe_dump(BANK_SPEC), encoding="utf-8")
    return tmp_path


@pytest.fixture
def client(indexer):
    with TestClient(create_app(indexer)) as test_client:
        yield test_client


@pytest.fixture
def indexed_client(client, spec_dir):
    response = client.post("/graph/index", json={"path": str(spec_dir)})
    assert response.status_code == 200
    return client


class TestIndexRoute:
    def test_index_directory(self, client, spec_dir):
        response = client.post("/graph/index", json={"path": str(spec_dir)})
        body = response.json()
        assert response.status_code == 200
        assert body["success"] is True
        assert body["specifications_indexed"] == 2
        assert body["endpoints_indexed"] == 3

    def test_missing_directory_is_reported_not_raised(self, client, tmp_path):
        response = client.post("/graph/index", json={"path": str(tmp_path / "missing")})
        assert response.status_code == 200
        assert response.json()["success"] is False


class TestQueryRoutes:
    def test_queries_before_indexing_conflict(self, client):
        assert client.get("/graph/statistics").status_code == 409

    def test_backend(self, client):
        assert client.get("/graph/backend").json() == {"persistent": False, "backend": "memory"}

    def test_statistics(self, indexed_client):
        body = indexed_client.get("/graph/statistics").json()
        assert body["specification_count"] == 2
        assert body["schema_count"] == 7

    def test_related_schemas(self, indexed_client):
        response = indexed_client.get("/graph/schemas/Account/related", params={"max_depth": 1})
        assert [r["schema_name"] for r in response.json()] == ["Address", "Owner"]

    def test_endpoint_dependencies(self, indexed_client):
        response = indexed_client.get("/graph/endpoints/dependencies", params={"path": "/v1/payments", "method": "get"})
        assert response.status_code == 200
        assert response.json()["related_schemas"] == ["Payment"]

    def test_endpoint_dependencies_not_found(self, indexed_client):
        response = indexed_client.get("/graph/endpoints/dependencies", params={"path": "/v1/nonexistent", "method": "GET"})
        assert response.status_code == 404

    def test_traverse(self, indexed_client):
        response = indexed_client.post(
            "/graph/traverse",
            json={"start_node_type": "Schema", "start_node_filter": {"name": "Address"}, "max_depth": 1},
        )
        names = [n["properties"]["name"] for n in response.json()["nodes"]]
        assert names[0] == "Address"
        assert "Country" in names

    def test_traverse_rejects_bad_label(self, indexed_client):
        response = indexed_client.post("/graph/traverse", json={"start_node_type": "Bad Label"})
        assert response.status_code == 422

    def test_specification_graph(self, indexed_client):
        response = indexed_client.get("/graph/specifications/bank.yaml")
        body = response.json()
        assert response.status_code == 200
        assert body["statistics"]["total_schemas"] == 6
        assert "schema" in body["schemas"][0]

    def test_specification_graph_not_found(self, indexed_client):
        assert indexed_client.get("/graph/specifications/nope.yaml").status_code == 404

    def test_search(self, indexed_client):
        response = indexed_client.post("/graph/search", json={"node_type": "Schema", "pattern": {"name": "*account*"}})
        assert response.json()["total_matches"] == 2

    def test_clear(self, indexed_client):
        assert indexed_client.delete("/graph/clear").status_code == 200
        assert indexed_client.get("/graph/statistics").status_code == 409
