"""
Shared Test Fixtures
====================

In-memory graph stores, indexers and small sample documents.

Set ``SPECGRAPH_TEST_NEO4J_URI``, ``SPECGRAPH_TEST_NEO4J_USER`` and
``SPECGRAPH_TEST_NEO4J_PASSWORD`` to also run the backend behaviour suite
against a live Neo4j server.  That database is wiped by the tests.
"""

import os

import pytest

from specgraph.config import Settings
from specgraph.core.loader import parse_document
from specgraph.graph.database import Neo4jGraphBackend
from specgraph.graph.indexer import GraphIndexer
from specgraph.graph.memory import InMemoryGraphBackend
from specgraph.graph.store import GraphStore


def _ref(name):
    return {"$ref": f"#/components/schemas/{name}"}


PAY_SPEC = {
    "openapi": "3.0.3",
    "info": {"title": "Payments API", "version": "1.0.0"},
    "tags": [{"name": "payments", "description": "Payment operations"}],
    "paths": {
        "/v1/payments": {
            "get": {
                "operationId": "listPayments",
                "tags": ["payments"],
                "responses": {
                    "200": {
                        "description": "OK",
                        "content": {"application/json": {"schema": _ref("Payment")}},
                    }
                },
            }
        }
    },
    "components": {
        "schemas": {
            "Payment": {
                "type": "object",
                "required": ["id"],
                "properties": {"id": {"type": "string"}, "amount": {"type": "number"}},
            }
        }
    },
}

BANK_SPEC = {
    "openapi": "3.0.3",
    "info": {"title": "Banking API", "version": "2.1.0", "description": "Accounts and transfers"},
    "paths": {
        "/v1/accounts/{accountId}": {
            "parameters": [
                {"name": "accountId", "in": "path", "required": True, "schema": {"type": "string"}},
            ],
            "get": {
                "operationId": "getAccount",
                "tags": ["accounts"],
                "parameters": [
                    {"name": "X-Request-Id", "in": "header", "schema": {"type": "string", "format": "uuid"}},
                ],
                "responses": {
                    "200": {"description": "OK", "content": {"application/json": {"schema": _ref("Account")}}},
                    "404": {"description": "Not found"},
                },
            },
        },
        "/v1/transfers": {
            "post": {
                "operationId": "createTransfer",
                "tags": ["transfers", "accounts"],
                "requestBody": {"content": {"application/json": {"schema": _ref("Transfer")}}},
                "responses": {
                    "201": {"description": "Created", "content": {"application/json": {"schema": _ref("Transfer")}}},
                },
            }
        },
    },
    "components": {
        "schemas": {
            "Account": {
                "type": "object",
                "required": ["id", "owner"],
                "properties": {
                    "id": {"type": "string"},
                    "owner": _ref("Owner"),
                    "address": _ref("Address"),
                },
            },
            "Address": {
                "type": "object",
                "properties": {"street": {"type": "string"}, "country": _ref("Country")},
            },
            "Country": {"type": "string", "enum": ["IT", "DE", "FR"]},
            "Owner": {"type": "object", "properties": {"name": {"type": "string"}}},
            "SavingsAccount": {"allOf": [_ref("Account"), {"properties": {"rate": {"type": "number"}}}]},
            "Transfer": {
                "type": "object",
                "properties": {
                    "source": _ref("Account"),
                    "target": _ref("Account"),
                    "amount": {"type": "number"},
                },
            },
        }
    },
}


@pytest.fixture
def memory_settings():
    """Settings with no Neo4j URI, so every store falls back to memory."""
    return Settings(neo4j_uri="", spec_dir="does-not-exist")


@pytest.fixture
def memory_store(memory_settings):
    return GraphStore(memory_settings, backend=InMemoryGraphBackend())


@pytest.fixture
def pay_document():
    return parse_document("pay.yaml", PAY_SPEC)


@pytest.fixture
def bank_document():
    return parse_document("bank.yaml", BANK_SPEC)


@pytest.fixture
def indexer(memory_store, memory_settings):
    idx = GraphIndexer(store=memory_store, config=memory_settings)
    yield idx
    idx.close()


@pytest.fixture
def indexed(indexer, pay_document, bank_document):
    """An indexer that has indexed both sample documents."""
    indexer.index_documents([pay_document, bank_document])
    return indexer


def _neo4j_env():
    keys = ("SPECGRAPH_TEST_NEO4J_URI", "SPECGRAPH_TEST_NEO4J_USER", "SPECGRAPH_TEST_NEO4J_PASSWORD")
    values = [os.environ.get(key) for key in keys]
    return values if all(values) else None


@pytest.fixture(params=["memory", "neo4j"])
def any_store(request, memory_settings):
    """A cleared store on each available backend."""
    if request.param == "memory":
        store = GraphStore(memory_settings, backend=InMemoryGraphBackend())
    else:
        env = _neo4j_env()
        if env is None:
            pytest.skip("SPECGRAPH_TEST_NEO4J_* not set")
        uri, user, password = env
        backend = Neo4jGraphBackend(uri, user, password)
        backend.connect()
        store = GraphStore(memory_settings, backend=backend)
        store.clear_all()
    yield store
    store.close()
