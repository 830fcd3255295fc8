"""Pytest configuration and shared fixtures."""

import uuid
from datetime import datetime, timezone
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest


@pytest.fixture
def mock_session() -> MagicMock:
    """AsyncSession stand-in; commit/rollback/flush are awaitable."""
    session = MagicMock()
    session.commit = AsyncMock()
    session.rollback = AsyncMock()
    session.flush = AsyncMock()
    session.execute = AsyncMock()
    return session


@pytest.fixture
def mock_neo4j_client() -> MagicMock:
    client = MagicMock()
    client.run_query = AsyncMock(return_value=[])
    client.execute_write_query = AsyncMock(return_value={})
    client.ensure_constraints = AsyncMock()
    return client


@pytest.fixture
def make_assertion():
    """Build an Assertion-like record with sensible defaults."""

    def _make(**overrides) -> SimpleNamespace:
        values = {
            "id": uuid.uuid4(),
            "subject_entity_id": uuid.uuid4(),
            "predicate": "CEO",
            "object_entity_id": uuid.uuid4(),
            "literal_value": None,
            "confidence": 0.8,
            "source_document_id": uuid.uuid4(),
            "source_chunk_id": uuid.uuid4(),
            "extraction_run_id": None,
            "valid_from": datetime(2024, 1, 1, tzinfo=timezone.utc),
            "valid_to": None,
            "status": "active",
        }
        values.update(overrides)
        return SimpleNamespace(**values)

    return _make
