"""Entity upsert statements, checked against the PostgreSQL dialect."""

import uuid
from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest
from sqlalchemy.dialects import postgresql

from factgraph.repositories.entity_repository import EntityRepository, merge_aliases, merge_identifiers


def _result(value) -> MagicMock:
    result = MagicMock()
    result.scalar_one_or_none.return_value = value
    return result


def _sql(stmt) -> str:
    return str(stmt.compile(dialect=postgresql.dialect()))


@pytest.mark.asyncio
async def test_new_key_is_inserted_and_locked(mock_session):
    entity = SimpleNamespace(id=uuid.uuid4(), type="company", canonical_name="TSMC", aliases=["TSMC"], identifiers={})
    mock_session.execute.side_effect = [_result(entity.id), _result(entity)]

    found, created = await EntityRepository(mock_session).upsert("company", "  TSMC ", aliases=["TSMC"])

    assert created is True
    assert found is entity

    insert_stmt = mock_session.execute.await_args_list[0].args[0]
    assert "ON CONFLICT (type, canonical_name) DO NOTHING" in _sql(insert_stmt)
    assert "RETURNING entities.id" in _sql(insert_stmt)
    assert insert_stmt.compile(dialect=postgresql.dialect()).params["canonical_name"] == "TSMC"

    assert "FOR UPDATE" in _sql(mock_session.execute.await_args_list[1].args[0])
    mock_session.flush.assert_not_awaited()


@pytest.mark.asyncio
async def test_conflicting_key_merges_into_existing_row(mock_session):
    entity = SimpleNamespace(
        id=uuid.uuid4(), type="company", canonical_name="TSMC",
        aliases=["TSMC"], identifiers={"cik": "1046179"}, updated_at=None,
    )
    mock_session.execute.side_effect = [_result(None), _result(entity)]

    found, created = await EntityRepository(mock_session).upsert(
        "company", "TSMC", aliases=["Taiwan Semiconductor"], identifiers={"ticker": "TSM"}
    )

    assert created is False
    assert found.aliases == ["TSMC", "Taiwan Semiconductor"]
    assert found.identifiers == {"cik": "1046179", "ticker": "TSM"}
    assert found.updated_at is not None
    mock_session.flush.assert_awaited_once()


@pytest.mark.asyncio
async def test_unchanged_row_is_not_flushed(mock_session):
    entity = SimpleNamespace(id=uuid.uuid4(), type="concept", canonical_name="AI demand", aliases=[], identifiers={})
    mock_session.execute.side_effect = [_result(None), _result(entity)]

    _, created = await EntityRepository(mock_session).upsert("concept", "AI demand")

    assert created is False
    mock_session.flush.assert_not_awaited()


def test_merge_helpers():
    assert merge_aliases(["A", " "], ["B", "A"]) == ["A", "B"]
    assert merge_identifiers({"cik": "1", "ticker": "X"}, {"ticker": "Y"}) == {"cik": "1", "ticker": "Y"}
