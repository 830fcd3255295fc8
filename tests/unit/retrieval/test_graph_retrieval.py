from unittest.mock import AsyncMock

import pytest

from factgraph.core.exceptions import UpstreamError
from factgraph.services.graph.constants import ALLOWED_EDGE_TYPES
from factgraph.services.retrieval.graph_retrieval import (
    GraphAccumulator,
    GraphRetrievalService,
    sanitize_edge_types,
)


def entity(entity_id: str, label: str = "Company") -> dict:
    return {"labels": ["Entity", label], "properties": {"entityId": entity_id, "name": entity_id.upper()}}


def segment(rel_type: str, start: dict, end: dict, assertion_id: str) -> dict:
    return {"type": rel_type, "properties": {"assertionId": assertion_id}, "start": start, "end": end}


def test_sanitize_keeps_allowed_types_in_order():
    assert sanitize_edge_types(["IMPACTS", "DROP", "EXPOSED_TO"]) == ["IMPACTS", "EXPOSED_TO"]


def test_sanitize_falls_back_to_all_types():
    assert sanitize_edge_types(None) == ALLOWED_EDGE_TYPES
    assert sanitize_edge_types(["MENTIONS"]) == ALLOWED_EDGE_TYPES


class TestGraphAccumulator:

    def test_shared_segments_are_deduplicated(self):
        apple, tsmc, taiwan = entity("apple"), entity("tsmc"), entity("taiwan", "Country")
        supplies = segment("SUPPLIES_TO", tsmc, apple, "a1")
        exposed = segment("EXPOSED_TO", tsmc, taiwan, "a2")

        acc = GraphAccumulator(dedupe_edges=True)
        acc.add_segments([supplies, exposed])
        acc.add_segments([supplies])

        result = acc.result()
        assert [n.id for n in result.nodes] == ["tsmc", "apple", "taiwan"]
        assert [(e.type, e.from_id, e.to_id) for e in result.edges] == [
            ("SUPPLIES_TO", "tsmc", "apple"),
            ("EXPOSED_TO", "tsmc", "taiwan"),
        ]

    def test_edges_keep_real_direction_and_serialize_from_to(self):
        acc = GraphAccumulator()
        acc.add_segments([segment("SUPPLIES_TO", entity("tsmc"), entity("apple"), "a1")])

        edge = acc.result().edges[0].model_dump(by_alias=True)
        assert edge["from"] == "tsmc"
        assert edge["to"] == "apple"

    def test_segments_without_ids_are_ignored(self):
        acc = GraphAccumulator()
        acc.add_segments([segment("IMPACTS", {"labels": [], "properties": {}}, entity("apple"), "a1")])
        assert acc.result().edges == []


class TestGraphRetrievalService:

    @pytest.mark.asyncio
    async def test_traverse_without_seeds_skips_query(self, mock_neo4j_client):
        result = await GraphRetrievalService(mock_neo4j_client).traverse(["", "  "])

        assert result.nodes == []
        mock_neo4j_client.run_query.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_traverse_uses_all_seeds_and_clamps(self, mock_neo4j_client):
        mock_neo4j_client.run_query.return_value = [
            {"segments": [segment("SUPPLIES_TO", entity("tsmc"), entity("apple"), "a1")]},
        ]

        result = await GraphRetrievalService(mock_neo4j_client).traverse(
            ["apple", "tsmc"], edge_types=["SUPPLIES_TO"], depth=9, limit=1000
        )

        query, params = mock_neo4j_client.run_query.await_args.args
        assert "[:SUPPLIES_TO*1..3]" in query
        assert params == {"seeds": ["apple", "tsmc"], "limit": 200}
        assert len(result.edges) == 1

    @pytest.mark.asyncio
    async def test_explain_path_returns_first_path(self, mock_neo4j_client):
        mock_neo4j_client.run_query.return_value = [
            {
                "segments": [
                    segment("SUPPLIES_TO", entity("tsmc"), entity("apple"), "a1"),
                    segment("EXPOSED_TO", entity("tsmc"), entity("taiwan", "Country"), "a2"),
                ]
            }
        ]

        result = await GraphRetrievalService(mock_neo4j_client).explain_path("apple", "taiwan", max_hops=0)

        query, params = mock_neo4j_client.run_query.await_args.args
        assert "*..1]" in query
        assert params == {"from": "apple", "to": "taiwan"}
        assert [e.type for e in result.edges] == ["SUPPLIES_TO", "EXPOSED_TO"]

    @pytest.mark.asyncio
    async def test_no_path_is_empty_result(self, mock_neo4j_client):
        result = await GraphRetrievalService(mock_neo4j_client).explain_path("apple", "mars")
        assert result.edges == []
        assert result.nodes == []

    @pytest.mark.asyncio
    async def test_driver_failure_is_upstream_error(self, mock_neo4j_client):
        mock_neo4j_client.run_query = AsyncMock(side_effect=RuntimeError("ServiceUnavailable"))

        with pytest.raises(UpstreamError):
            await GraphRetrievalService(mock_neo4j_client).traverse(["apple"])
