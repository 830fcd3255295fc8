"""Extraction against a real AsyncSession on in-memory SQLite.

A rollback expires every row the session has loaded, which a mocked
session never does. The extractor and graph projector stay mocked.
"""

import uuid
from datetime import date, datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio
from sqlalchemy import func, select
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.ext.compiler import compiles
from sqlalchemy.pool import StaticPool

from factgraph.core.database import Base, build_session_maker
from factgraph.database.models import Assertion, Document, DocumentChunk, Entity, ExtractionRun
from factgraph.schemas.extraction import ExtractedRelation, ExtractionOutput
from factgraph.services.extraction.extraction_service import ExtractionService
from factgraph.services.extraction.normalization import entity_key

CREATED = datetime(2024, 11, 1, tzinfo=timezone.utc)

TABLES = [
    Entity.__table__,
    Document.__table__,
    DocumentChunk.__table__,
    ExtractionRun.__table__,
    Assertion.__table__,
]


@compiles(JSONB, "sqlite")
def _jsonb_as_sqlite_json(type_, compiler, **kw):
    return "JSON"


@pytest_asyncio.fixture
async def session_maker():
    engine = create_async_engine("sqlite+aiosqlite://", poolclass=StaticPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all, tables=TABLES)
    yield build_session_maker(engine)
    await engine.dispose()


@pytest_asyncio.fixture
async def document_id(session_maker) -> uuid.UUID:
    doc_id = uuid.uuid4()
    async with session_maker() as session:
        session.add(
            Document(
                id=doc_id,
                source="sec_edgar",
                doc_type="10-k",
                cik="320193",
                accession_no="0000320193-24-000123",
                filing_date=date(2024, 11, 1),
                url="https://www.sec.gov/Archives/edgar/data/320193/000032019324000123/aapl-20240928.htm",
                content_hash="0" * 64,
                created_at=CREATED,
            )
        )
        session.add_all(
            [
                DocumentChunk(
                    id=uuid.uuid4(), document_id=doc_id, chunk_index=i, text=f"chunk {i}", created_at=CREATED
                )
                for i in range(3)
            ]
        )
        session.add_all(
            [
                Entity(
                    id=uuid.uuid4(), type="company", canonical_name=name, aliases=[], identifiers={},
                    created_at=CREATED, updated_at=CREATED,
                )
                for name in ("TSMC", "Apple Inc.")
            ]
        )
        await session.commit()
    return doc_id


@pytest.fixture
def extractor() -> MagicMock:
    extractor = MagicMock()
    extractor.model = "test-model"
    extractor.prompt_version = "v1"
    extractor.extract = AsyncMock(
        return_value=ExtractionOutput(
            relations=[ExtractedRelation(subject="TSMC", predicate="SUPPLIES_TO", object="Apple Inc.", confidence=0.7)]
        )
    )
    return extractor


@pytest.fixture
def projector() -> MagicMock:
    projector = MagicMock()
    projector.upsert_filing_and_chunks = AsyncMock(return_value=3)
    projector.upsert_entities = AsyncMock(side_effect=lambda rows: len(rows))
    projector.upsert_mentions = AsyncMock(side_effect=lambda rows: len(rows))
    projector.upsert_assertion_edges = AsyncMock(side_effect=lambda rows: len(rows))
    return projector


@pytest.mark.asyncio
async def test_store_failure_in_one_chunk_keeps_later_chunks(session_maker, document_id, extractor, projector):
    async with session_maker() as session:
        service = ExtractionService(session, extractor, projector)

        async def resolve(candidates, endpoints):
            rows = (await session.execute(select(Entity))).scalars().all()
            return {entity_key(e.canonical_name): e for e in rows}

        service.resolver = MagicMock()
        service.resolver.resolve_extracted = AsyncMock(side_effect=resolve)

        store_insert = service.assertions.insert_many
        calls = []

        async def insert_many(drafts):
            calls.append(len(drafts))
            if len(calls) == 1:
                raise OperationalError("INSERT INTO assertions", {}, Exception("deadlock detected"))
            return await store_insert(drafts)

        service.assertions.insert_many = insert_many

        result = await service.extract_document(document_id)

    assert result.attempted_chunks == 3
    assert result.failed_chunks == 1
    assert result.processed_chunks == 2
    assert result.assertions_inserted == 2
    assert result.graph_edges_upserted == 2
    assert result.failures[0].chunk_index == 0
    assert "deadlock detected" in result.failures[0].error
    assert result.stale == []

    async with session_maker() as session:
        stored = await session.scalar(select(func.count()).select_from(Assertion))
        null_literals = await session.scalar(
            select(func.count()).select_from(Assertion).where(Assertion.literal_value.is_(None))
        )
        finished_at = await session.scalar(
            select(ExtractionRun.finished_at).where(ExtractionRun.id == result.extraction_run_id)
        )

    assert stored == 2
    assert null_literals == 2
    assert finished_at is not None


@pytest.mark.asyncio
async def test_max_chunks_limits_the_run(session_maker, document_id, extractor, projector):
    async with session_maker() as session:
        service = ExtractionService(session, extractor, projector)
        service.resolver = MagicMock()
        service.resolver.resolve_extracted = AsyncMock(return_value={})

        result = await service.extract_document(document_id, max_chunks=2)

    assert result.attempted_chunks == 2
    assert result.processed_chunks == 2
    assert extractor.extract.await_args_list[0].args == ("chunk 0",)
