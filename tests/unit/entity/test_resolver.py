"""Entity resolution order and concept stubs."""

import uuid
from types import SimpleNamespace
from unittest.mock import AsyncMock

import pytest

from factgraph.schemas.extraction import ExtractedEntity
from factgraph.services.entity.resolver import EntityResolver


@pytest.fixture
def resolver(mock_session) -> EntityResolver:
    resolver = EntityResolver(mock_session)

    async def upsert(entity_type, name, aliases=None, identifiers=None):
        return SimpleNamespace(id=uuid.uuid4(), type=entity_type, canonical_name=name), True

    resolver.entities.upsert = AsyncMock(side_effect=upsert)
    return resolver


@pytest.mark.asyncio
async def test_upserts_run_in_type_then_name_order(resolver):
    candidates = [
        ExtractedEntity(type="sector", name="Semiconductors"),
        ExtractedEntity(type="company", name="TSMC", identifiers={"cik": 1046179}),
    ]

    by_key = await resolver.resolve_extracted(candidates, ["TSMC", "AI demand", "Apple", "ai demand"])

    order = [(c.args[0], c.args[1]) for c in resolver.entities.upsert.await_args_list]
    assert order == [
        ("company", "TSMC"),
        ("concept", "AI demand"),
        ("concept", "Apple"),
        ("sector", "Semiconductors"),
    ]
    assert set(by_key) == {"tsmc", "semiconductors", "ai demand", "apple"}
    assert by_key["ai demand"].type == "concept"

    tsmc_call = resolver.entities.upsert.await_args_list[0]
    assert tsmc_call.kwargs["identifiers"] == {"cik": "1046179"}


@pytest.mark.asyncio
async def test_unknown_type_becomes_concept(resolver):
    by_key = await resolver.resolve_extracted([ExtractedEntity(type="widget", name="Vision Pro")])

    assert by_key["vision pro"].type == "concept"
