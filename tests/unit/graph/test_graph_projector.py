"""Unit tests for GraphProjector against a mocked Neo4j client."""

import uuid
from datetime import datetime, timezone

import pytest

from factgraph.core.exceptions import ValidationError
from factgraph.services.graph.graph_projector import (
    GraphProjector,
    assertion_edge_row,
    label_for_entity_type,
    relationship_type,
)


@pytest.fixture
def projector(mock_neo4j_client) -> GraphProjector:
    return GraphProjector(mock_neo4j_client)


def edge_row(**overrides):
    row = {
        "assertionId": uuid.uuid4(),
        "predicate": "SUPPLIES_TO",
        "subjectEntityId": uuid.uuid4(),
        "objectEntityId": uuid.uuid4(),
        "confidence": 0.7,
        "sourceDocumentId": uuid.uuid4(),
        "sourceChunkId": None,
        "validFrom": datetime(2024, 5, 1, tzinfo=timezone.utc),
        "validTo": None,
        "status": "active",
    }
    row.update(overrides)
    return row


def test_relationship_type_validation():
    assert relationship_type("EXPOSED_TO") == "EXPOSED_TO"
    for bad in ("", "exposed_to", "EXPOSED TO", "X-Y", "1ABC"):
        with pytest.raises(ValidationError):
            relationship_type(bad)


def test_unknown_entity_type_gets_generic_label():
    assert label_for_entity_type("company") == "Company"
    assert label_for_entity_type("unicorn") == "Entity"


def test_assertion_edge_row_maps_record(make_assertion):
    a = make_assertion()
    row = assertion_edge_row(a)
    assert row["assertionId"] == a.id
    assert row["subjectEntityId"] == a.subject_entity_id
    assert row["objectEntityId"] == a.object_entity_id
    assert row["status"] == "active"


@pytest.mark.asyncio
async def test_upsert_entities_groups_by_label(projector, mock_neo4j_client):
    rows = [
        {"id": uuid.uuid4(), "type": "company", "name": "Apple Inc."},
        {"id": uuid.uuid4(), "type": "country", "name": "China"},
        {"id": uuid.uuid4(), "type": "company", "name": "Foxconn"},
    ]

    count = await projector.upsert_entities(rows)

    assert count == 3
    assert mock_neo4j_client.execute_write_query.await_count == 2
    queries = [c.args[0] for c in mock_neo4j_client.execute_write_query.await_args_list]
    assert any(":Company" in q for q in queries)
    assert any(":Country" in q for q in queries)


@pytest.mark.asyncio
async def test_upsert_edges_skips_literal_rows(projector, mock_neo4j_client):
    mock_neo4j_client.run_query.return_value = [{"upserted": 1}]
    rows = [edge_row(), edge_row(objectEntityId=None)]

    upserted = await projector.upsert_assertion_edges(rows)

    assert upserted == 1
    mock_neo4j_client.run_query.assert_awaited_once()
    query, params = mock_neo4j_client.run_query.await_args.args
    assert "[r:SUPPLIES_TO {assertionId: row.assertionId}]" in query
    assert len(params["rows"]) == 1
    sent = params["rows"][0]
    assert sent["sourceChunkId"] == ""
    assert sent["validFrom"] == "2024-05-01T00:00:00+00:00"
    assert sent["validTo"] is None


@pytest.mark.asyncio
async def test_upsert_edges_one_query_per_type(projector, mock_neo4j_client):
    mock_neo4j_client.run_query.return_value = [{"upserted": 1}]
    rows = [edge_row(), edge_row(predicate="EXPOSED_TO"), edge_row()]

    await projector.upsert_assertion_edges(rows)

    assert mock_neo4j_client.run_query.await_count == 2


@pytest.mark.asyncio
async def test_upsert_edges_rejects_unsafe_predicate(projector, mock_neo4j_client):
    with pytest.raises(ValidationError):
        await projector.upsert_assertion_edges([edge_row(predicate="X]->() DETACH DELETE n //")])
    mock_neo4j_client.run_query.assert_not_awaited()


@pytest.mark.asyncio
async def test_close_edges_passes_status_and_time(projector, mock_neo4j_client):
    mock_neo4j_client.run_query.return_value = [{"updated": 0}]
    closed_at = datetime(2025, 1, 2, tzinfo=timezone.utc)
    assertion_id = uuid.uuid4()

    updated = await projector.close_assertion_edges([assertion_id], "retracted", closed_at)

    assert updated == 0
    params = mock_neo4j_client.run_query.await_args.args[1]
    assert params == {
        "ids": [str(assertion_id)],
        "status": "retracted",
        "validTo": "2025-01-02T00:00:00+00:00",
    }


@pytest.mark.asyncio
async def test_close_edges_without_ids_is_noop(projector, mock_neo4j_client):
    assert await projector.close_assertion_edges([], "retracted", datetime.now(timezone.utc)) == 0
    mock_neo4j_client.run_query.assert_not_awaited()
