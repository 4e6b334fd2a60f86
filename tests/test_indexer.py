"""
Tests for the Graph Indexer
===========================

Indexing phases, error accumulation and the derived queries, on the
in-memory backend.
"""

import pytest
import yaml

from specgraph.graph.errors import NotIndexedError
from specgraph.graph.indexer import collect_references, schema_ref_of
from specgraph.models.identity import endpoint_id, schema_id, tag_id
from specgraph.models.indexing import IndexingPhase
from specgraph.models.spec import OperationInfo, SpecDocument

from tests.conftest import PAY_SPEC


class TestBasicIngest:
    """One specification, one endpoint, one schema."""

    def test_counts_and_related_schemas(self, indexer, pay_document):
        result = indexer.index_documents([pay_document])

        assert result.success
        assert result.errors == []
        assert result.specifications_indexed == 1
        assert result.endpoints_indexed == 1
        assert result.schemas_indexed == 1
        assert result.relationships_created == 7
        assert result.duration_ms >= 0

        stats = indexer.get_statistics()
        assert stats.specification_count == 1
        assert stats.endpoint_count == 1
        assert stats.schema_count == 1

        deps = indexer.get_endpoint_dependencies("/v1/payments", "GET")
        assert deps is not None
        assert deps.related_schemas == ["Payment"]
        assert deps.response_schemas[0].status_code == "200"
        assert deps.response_schemas[0].schema_ref == "Payment"

    def test_forward_schema_link_is_created(self, indexer, pay_document):
        indexer.index_documents([pay_document])
        store = indexer.graph_store
        outgoing = store.get_outgoing(endpoint_id("pay.yaml", "/v1/payments", "GET"), ["USES_SCHEMA"])
        assert len(outgoing) == 1
        rel, target = outgoing[0]
        assert target.id == schema_id("pay.yaml", "Payment")
        assert rel.properties == {"context": "response", "mediaType": "application/json"}

    def test_tag_carries_description(self, indexer, pay_document):
        indexer.index_documents([pay_document])
        tag = indexer.graph_store.find_by_id(tag_id("payments"))
        assert tag.properties["description"] == "Payment operations"

    def test_state_flags(self, indexer, pay_document):
        assert not indexer.is_indexed()
        assert indexer.indexing_result is None
        result = indexer.index_documents([pay_document])
        assert indexer.is_initialized()
        assert indexer.is_indexed()
        assert indexer.indexing_result == result
        assert not indexer.is_using_persistent_backend()


class TestIdempotency:
    def test_reindex_does_not_duplicate(self, indexer, pay_document, bank_document):
        indexer.index_documents([pay_document, bank_document])
        first = indexer.get_statistics()
        second_result = indexer.index_documents([pay_document, bank_document])
        second = indexer.get_statistics()

        assert second_result.success
        assert second.node_count == first.node_count
        assert second.relationship_count == first.relationship_count
        assert second.nodes_by_label == first.nodes_by_label


class TestQueries:
    """Derived queries over both sample documents."""

    def test_missing_endpoint(self, indexed):
        assert indexed.get_endpoint_dependencies("/v1/nonexistent", "GET") is None

    def test_endpoint_dependencies(self, indexed):
        deps = indexed.get_endpoint_dependencies("/v1/accounts/{accountId}", "get")
        assert deps.method == "GET"
        assert deps.spec_file == "bank.yaml"
        assert [(p.name, p.location, p.required) for p in deps.parameters] == [
            ("accountId", "path", True),
            ("X-Request-Id", "header", False),
        ]
        assert [(r.status_code, r.schema_ref) for r in deps.response_schemas] == [("200", "Account"), ("404", None)]
        assert deps.request_body_schema is None
        assert deps.related_schemas == ["Account"]

    def test_request_body_schema(self, indexed):
        deps = indexed.get_endpoint_dependencies("/v1/transfers", "POST", spec_file="bank.yaml")
        assert deps.request_body_schema == "Transfer"
        assert deps.related_schemas == ["Transfer"]

    def test_related_schemas_breadth_first(self, indexed):
        related = indexed.find_related_schemas("Account")
        assert [(r.schema_name, r.depth) for r in related] == [("Address", 1), ("Owner", 1), ("Country", 2)]
        assert related[2].path == [
            schema_id("bank.yaml", "Account"),
            schema_id("bank.yaml", "Address"),
            schema_id("bank.yaml", "Country"),
        ]

    def test_related_schemas_respects_depth(self, indexed):
        assert [r.schema_name for r in indexed.find_related_schemas("Account", max_depth=1)] == ["Address", "Owner"]

    def test_nested_reference_found_at_depth_one(self, indexed):
        related = indexed.find_related_schemas("SavingsAccount", max_depth=1)
        assert [(r.schema_name, r.depth) for r in related] == [("Account", 1)]

    def test_duplicate_references_collapse(self, indexed):
        outgoing = indexed.graph_store.get_outgoing(schema_id("bank.yaml", "Transfer"), ["REFERENCES"])
        assert len(outgoing) == 1
        assert outgoing[0][0].properties["refPath"] == "#/components/schemas/Account"

    def test_unknown_schema(self, indexed):
        assert indexed.find_related_schemas("Nope") == []

    def test_wildcard_search(self, indexed):
        result = indexed.search_by_pattern("Schema", {"name": "*Account*"})
        names = {m.nodes[0].properties["name"] for m in result.matches}
        assert names == {"Account", "SavingsAccount"}
        assert result.total_matches == 2

    def test_traversal_is_monotonic_in_depth(self, indexed):
        previous = set()
        for depth in range(5):
            result = indexed.traverse_graph("Specification", {"fileName": "bank.yaml"}, max_depth=depth)
            ids = {n.id for n in result.nodes}
            assert previous <= ids
            previous = ids
        assert len(previous) > 1

    def test_traversal_from_unmatched_filter(self, indexed):
        result = indexed.traverse_graph("Schema", {"name": "Nope"})
        assert result.nodes == []

    def test_specification_graph(self, indexed):
        graph = indexed.get_specification_graph("bank.yaml")
        assert graph.specification["title"] == "Banking API"
        assert graph.statistics.total_endpoints == 2
        assert graph.statistics.total_schemas == 6
        assert graph.statistics.total_relationships == 32

        account = next(s for s in graph.schemas if s.schema_["name"] == "Account")
        assert account.references == ["Address", "Owner"]
        assert sorted(p["name"] for p in account.properties) == ["address", "id", "owner"]
        assert account.schema_["required"] == ["id", "owner"]

        get_account = next(e for e in graph.endpoints if e.endpoint["method"] == "GET")
        assert get_account.tags == ["accounts"]
        assert len(get_account.parameters) == 2

    def test_unknown_specification(self, indexed):
        assert indexed.get_specification_graph("nope.yaml") is None

    def test_statistics(self, indexed):
        stats = indexed.get_statistics()
        assert stats.specification_count == 2
        assert stats.endpoint_count == 3
        assert stats.schema_count == 7
        assert stats.nodes_by_label["Tag"] == 3


class TestNotIndexed:
    def test_queries_before_indexing(self, indexer):
        calls = [
            lambda: indexer.find_related_schemas("Payment"),
            lambda: indexer.get_endpoint_dependencies("/v1/payments", "GET"),
            lambda: indexer.traverse_graph("Schema", {"name": "Payment"}),
            lambda: indexer.get_specification_graph("pay.yaml"),
            lambda: indexer.search_by_pattern("Schema", {"name": "*"}),
            indexer.get_statistics,
        ]
        for call in calls:
            with pytest.raises(NotIndexedError):
                call()

    def test_clear_resets(self, indexed):
        indexed.clear_all()
        assert indexed.graph_store.get_statistics().node_count == 0
        assert not indexed.is_indexed()
        with pytest.raises(NotIndexedError):
            indexed.get_statistics()


class TestProgressAndErrors:
    def test_progress_reports_every_item_in_phase_order(self, indexer, pay_document, bank_document):
        events = []
        indexer.index_documents([pay_document, bank_document], on_progress=events.append)

        phases = [e.phase for e in events]
        assert phases == sorted(phases, key=list(IndexingPhase).index)

        per_phase = {phase: [e for e in events if e.phase == phase] for phase in IndexingPhase}
        assert len(per_phase[IndexingPhase.SPECIFICATIONS]) == 2
        assert len(per_phase[IndexingPhase.ENDPOINTS]) == 3
        assert len(per_phase[IndexingPhase.SCHEMAS]) == 7
        assert len(per_phase[IndexingPhase.RELATIONSHIPS]) == 11
        for items in per_phase.values():
            assert [e.current for e in items] == list(range(1, len(items) + 1))
            assert all(e.total == len(items) for e in items)

    def test_failures_are_collected_and_pass_continues(self, indexer, pay_document):
        broken = SpecDocument(
            file_name="broken.yaml",
            title="Broken",
            operations=[OperationInfo(path="/x", method="GET", parameters=[{"name": "q"}])],
            schemas={"Bad": "not-a-schema", "Good": {"type": "object"}},
        )
        result = indexer.index_documents([broken, pay_document])

        assert not result.success
        assert result.specifications_indexed == 2
        assert result.endpoints_indexed == 1
        assert result.schemas_indexed == 2
        assert len(result.errors) == 2
        assert "GET /x" in result.errors[0]
        assert "Missing required field: in" in result.errors[0]
        assert "Bad" in result.errors[1]
        assert indexer.is_indexed()
        assert indexer.get_endpoint_dependencies("/v1/payments", "GET") is not None


class TestLoadAndIndex:
    def test_directory(self, indexer, tmp_path):
        (tmp_path / "pay.yaml").write_text(yaml.safe_dump(PAY_SPEC), encoding="utf-8")
        result = indexer.load_and_index(tmp_path)
        assert result.success
        assert result.specifications_indexed == 1
        assert indexer.get_specification_graph("pay.yaml") is not None

    def test_missing_source_is_recorded(self, indexer, tmp_path):
        result = indexer.load_and_index(tmp_path / "missing")
        assert not result.success
        assert result.errors[0].startswith("Failed to load specifications from")
        assert indexer.is_indexed()
        assert indexer.get_statistics().node_count == 0

    def test_unparseable_file_is_recorded(self, indexer, tmp_path):
        (tmp_path / "pay.yaml").write_text(yaml.safe_dump(PAY_SPEC), encoding="utf-8")
        (tmp_path / "bad.yaml").write_text("openapi: [unclosed", encoding="utf-8")
        result = indexer.load_and_index(tmp_path)
        assert not result.success
        assert result.specifications_indexed == 1
        assert result.errors[0].startswith("Failed to load bad.yaml")

    def test_malformed_operation_does_not_abort_pass(self, indexer, tmp_path):
        broken = {
            "openapi": "3.0.0",
            "info": {"title": "Broken"},
            "paths": {"/x": {"get": {"responses": {"200": "not-a-response"}, "requestBody": ["nope"]}}},
        }
        (tmp_path / "a_bad.yaml").write_text(yaml.safe_dump(broken), encoding="utf-8")
        (tmp_path / "b_good.yaml").write_text(yaml.safe_dump(PAY_SPEC), encoding="utf-8")

        result = indexer.load_and_index(tmp_path)

        assert not result.success
        assert result.specifications_indexed == 1
        assert len(result.errors) == 1
        assert result.errors[0].startswith("Failed to load a_bad.yaml")
        assert indexer.get_specification_graph("b_good.yaml") is not None

    def test_list_shaped_responses_are_ignored(self, indexer, tmp_path):
        odd = {
            "openapi": "3.0.0",
            "info": {"title": "Odd"},
            "paths": {"/x": {"get": {"responses": [{"200": {}}]}}},
        }
        (tmp_path / "a_odd.yaml").write_text(yaml.safe_dump(odd), encoding="utf-8")
        (tmp_path / "b_good.yaml").write_text(yaml.safe_dump(PAY_SPEC), encoding="utf-8")

        result = indexer.load_and_index(tmp_path)

        assert result.success
        assert result.specifications_indexed == 2
        assert result.endpoints_indexed == 2
        deps = indexer.get_endpoint_dependencies("/x", "GET")
        assert deps.response_schemas == []


class TestReferenceHelpers:
    def test_collect_references_walks_everything(self):
        tree = {
            "allOf": [{"$ref": "#/components/schemas/A"}],
            "properties": {"b": {"items": {"$ref": "#/components/schemas/B"}}, "c": {"$ref": "ext.yaml#/C"}},
        }
        assert collect_references(tree) == [
            "#/components/schemas/A",
            "#/components/schemas/B",
            "ext.yaml#/C",
        ]

    def test_collect_references_survives_self_containing_trees(self):
        tree = {"$ref": "#/definitions/A"}
        tree["self"] = tree
        assert collect_references(tree) == ["#/definitions/A"]

    def test_schema_ref_of_array(self):
        assert schema_ref_of({"type": "array", "items": {"$ref": "#/components/schemas/Pet"}}) == "Pet"
        assert schema_ref_of({"type": "string"}) is None
        assert schema_ref_of(None) is None
