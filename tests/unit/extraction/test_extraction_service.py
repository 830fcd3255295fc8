"""Unit tests for the document extraction pipeline with mocked collaborators."""

import uuid
from datetime import date
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from factgraph.core.exceptions import NotFoundError, UpstreamError
from factgraph.schemas.extraction import ExtractedEntity, ExtractedRelation, ExtractionOutput
from factgraph.services.extraction.extraction_service import ExtractionService


def _entity(name: str, entity_type: str = "company") -> SimpleNamespace:
    return SimpleNamespace(id=uuid.uuid4(), type=entity_type, canonical_name=name)


def _chunk(document_id: uuid.UUID, index: int) -> SimpleNamespace:
    return SimpleNamespace(id=uuid.uuid4(), document_id=document_id, chunk_index=index, text=f"chunk {index}")


@pytest.fixture
def document() -> SimpleNamespace:
    return SimpleNamespace(
        id=uuid.uuid4(), cik="320193", accession_no="0000320193-24-000123",
        doc_type="10-K", filing_date=date(2024, 11, 1),
    )


@pytest.fixture
def extractor() -> MagicMock:
    extractor = MagicMock()
    extractor.model = "test-model"
    extractor.prompt_version = "v1"
    extractor.extract = AsyncMock(return_value=ExtractionOutput())
    return extractor


@pytest.fixture
def projector() -> MagicMock:
    projector = MagicMock()
    projector.upsert_filing_and_chunks = AsyncMock(return_value=None)
    projector.upsert_entities = AsyncMock(return_value=None)
    projector.upsert_mentions = AsyncMock(return_value=None)
    projector.upsert_assertion_edges = AsyncMock(side_effect=lambda rows: len(rows))
    return projector


@pytest.fixture
def service(mock_session, extractor, projector, document) -> ExtractionService:
    svc = ExtractionService(mock_session, extractor, projector, max_failures_reported=2)
    svc.documents = MagicMock()
    svc.documents.get_by_id = AsyncMock(return_value=document)
    svc.chunks = MagicMock()
    svc.chunks.get_by_document = AsyncMock(return_value=[])
    svc.runs = MagicMock()
    svc.runs.start = AsyncMock(return_value=SimpleNamespace(id=uuid.uuid4()))
    svc.runs.finish = AsyncMock()
    svc.assertions = MagicMock()
    svc.assertions.insert_many = AsyncMock(
        side_effect=lambda drafts: [
            SimpleNamespace(id=uuid.uuid4(), valid_to=None, status="active", **d.model_dump()) for d in drafts
        ]
    )
    svc.resolver = MagicMock()
    svc.resolver.resolve_extracted = AsyncMock(return_value={})
    return svc


def _relation(subject: str, predicate: str, obj: str, confidence: float = 0.8) -> ExtractedRelation:
    return ExtractedRelation(subject=subject, predicate=predicate, object=obj, confidence=confidence)


@pytest.mark.asyncio
async def test_missing_document_is_not_found(service):
    service.documents.get_by_id.return_value = None

    with pytest.raises(NotFoundError):
        await service.extract_document(uuid.uuid4())

    service.runs.start.assert_not_awaited()


@pytest.mark.asyncio
async def test_max_chunks_is_passed_through(service, document):
    await service.extract_document(document.id, max_chunks=3)

    service.chunks.get_by_document.assert_awaited_once_with(document.id, limit=3)
    assert service.runs.start.await_args.kwargs["parameters"]["max_chunks"] == 3


@pytest.mark.asyncio
async def test_relations_become_assertions_and_edges(service, document, extractor, projector):
    tsmc, apple = _entity("TSMC"), _entity("Apple Inc.")
    chunk = _chunk(document.id, 0)
    service.chunks.get_by_document.return_value = [chunk]
    service.resolver.resolve_extracted.return_value = {"tsmc": tsmc, "apple inc.": apple}
    extractor.extract.return_value = ExtractionOutput(
        entities=[ExtractedEntity(type="company", name="TSMC"), ExtractedEntity(type="company", name="Apple Inc.")],
        relations=[_relation("TSMC", "supplies to", "Apple Inc.", 0.7)],
    )

    result = await service.extract_document(document.id)

    drafts = service.assertions.insert_many.await_args.args[0]
    assert len(drafts) == 1
    draft = drafts[0]
    assert draft.subject_entity_id == tsmc.id
    assert draft.object_entity_id == apple.id
    assert draft.predicate == "SUPPLIES_TO"
    assert draft.confidence == 0.7
    assert draft.source_document_id == document.id
    assert draft.source_chunk_id == chunk.id
    assert draft.extraction_run_id == result.extraction_run_id

    endpoints = service.resolver.resolve_extracted.await_args.args[1]
    assert endpoints == ["TSMC", "Apple Inc."]

    assert result.attempted_chunks == 1
    assert result.processed_chunks == 1
    assert result.failed_chunks == 0
    assert result.entities_upserted == 2
    assert result.assertions_inserted == 1
    assert result.graph_edges_upserted == 1
    assert result.stale == []

    filing_row, chunk_rows = projector.upsert_filing_and_chunks.await_args.args
    assert filing_row["accessionNo"] == document.accession_no
    assert chunk_rows == [{"id": chunk.id, "documentId": document.id, "chunkIndex": 0}]

    mention_rows = projector.upsert_mentions.await_args.args[0]
    assert {row["entityId"] for row in mention_rows} == {tsmc.id, apple.id}
    assert all(row["chunkId"] == chunk.id for row in mention_rows)
    service.runs.finish.assert_awaited_once()


@pytest.mark.asyncio
async def test_invalid_relations_are_dropped(service, document, extractor):
    apple = _entity("Apple Inc.")
    service.chunks.get_by_document.return_value = [_chunk(document.id, 0)]
    service.resolver.resolve_extracted.return_value = {"apple inc.": apple, "iphone": apple}
    extractor.extract.return_value = ExtractionOutput(
        relations=[
            _relation("Apple Inc.", "IMPACTS", "Nobody Resolved"),
            _relation("Apple Inc.", "IMPACTS", "iPhone"),
            _relation("Apple Inc.", "COMPETES_WITH", "Apple Inc."),
        ],
    )

    result = await service.extract_document(document.id)

    service.assertions.insert_many.assert_not_awaited()
    assert result.assertions_inserted == 0
    assert result.processed_chunks == 1


@pytest.mark.asyncio
async def test_unknown_predicate_is_dropped(service, document, extractor):
    a, b = _entity("A Corp"), _entity("B Corp")
    service.chunks.get_by_document.return_value = [_chunk(document.id, 0)]
    service.resolver.resolve_extracted.return_value = {"a corp": a, "b corp": b}
    extractor.extract.return_value = ExtractionOutput(
        relations=[_relation("A Corp", "ACQUIRED", "B Corp"), _relation("A Corp", "benefits from", "B Corp")],
    )

    result = await service.extract_document(document.id)

    drafts = service.assertions.insert_many.await_args.args[0]
    assert [d.predicate for d in drafts] == ["BENEFITS_FROM"]
    assert result.assertions_inserted == 1


@pytest.mark.asyncio
async def test_chunk_failures_are_recorded_and_capped(service, document, extractor):
    chunks = [_chunk(document.id, i) for i in range(4)]
    service.chunks.get_by_document.return_value = chunks
    extractor.extract.side_effect = [
        UpstreamError("bad json"),
        ExtractionOutput(),
        UpstreamError("timeout"),
        UpstreamError("rate limited"),
    ]

    result = await service.extract_document(document.id)

    assert result.attempted_chunks == 4
    assert result.processed_chunks == 1
    assert result.failed_chunks == 3
    assert len(result.failures) == 2
    assert result.failures[0].chunk_id == chunks[0].id
    assert result.failures[0].error == "bad json"
    assert result.failures[1].chunk_index == 2
    service.runs.finish.assert_awaited_once()


@pytest.mark.asyncio
async def test_store_failure_in_chunk_rolls_back_and_continues(service, document, extractor, mock_session):
    a, b = _entity("A Corp"), _entity("B Corp")
    service.chunks.get_by_document.return_value = [_chunk(document.id, 0), _chunk(document.id, 1)]
    service.resolver.resolve_extracted.return_value = {"a corp": a, "b corp": b}
    extractor.extract.return_value = ExtractionOutput(relations=[_relation("A Corp", "IMPACTS", "B Corp")])
    service.assertions.insert_many.side_effect = [RuntimeError("deadlock"), [SimpleNamespace(
        id=uuid.uuid4(), subject_entity_id=a.id, predicate="IMPACTS", object_entity_id=b.id,
        literal_value=None, confidence=0.8, source_document_id=document.id, source_chunk_id=None,
        valid_from=None, valid_to=None, status="active",
    )]]

    result = await service.extract_document(document.id)

    mock_session.rollback.assert_awaited_once()
    assert result.failed_chunks == 1
    assert result.processed_chunks == 1
    assert result.assertions_inserted == 1


@pytest.mark.asyncio
async def test_projection_failures_are_stale(service, document, extractor, projector, mock_session):
    a, b = _entity("A Corp"), _entity("B Corp")
    chunk = _chunk(document.id, 0)
    service.chunks.get_by_document.return_value = [chunk]
    service.resolver.resolve_extracted.return_value = {"a corp": a, "b corp": b}
    extractor.extract.return_value = ExtractionOutput(relations=[_relation("A Corp", "IMPACTS", "B Corp")])
    projector.upsert_filing_and_chunks.side_effect = RuntimeError("neo4j down")
    projector.upsert_assertion_edges.side_effect = RuntimeError("neo4j down")

    result = await service.extract_document(document.id)

    assert [s.step for s in result.stale] == [
        "graph.upsert_filing_and_chunks",
        "graph.upsert_assertion_edges",
    ]
    assert result.stale[0].ids == [str(document.id)]
    assert result.assertions_inserted == 1
    assert result.graph_edges_upserted == 0
    assert result.processed_chunks == 1
    mock_session.rollback.assert_not_awaited()


@pytest.mark.asyncio
async def test_unmatched_edges_are_stale(service, document, extractor, projector):
    a, b, c = _entity("A Corp"), _entity("B Corp"), _entity("C Corp")
    service.chunks.get_by_document.return_value = [_chunk(document.id, 0)]
    service.resolver.resolve_extracted.return_value = {"a corp": a, "b corp": b, "c corp": c}
    extractor.extract.return_value = ExtractionOutput(
        relations=[_relation("A Corp", "IMPACTS", "B Corp"), _relation("A Corp", "IMPACTS", "C Corp")]
    )
    projector.upsert_assertion_edges.side_effect = lambda rows: len(rows) - 1

    result = await service.extract_document(document.id)

    assert result.graph_edges_upserted == 1
    assert [s.step for s in result.stale] == ["graph.upsert_assertion_edges"]
    assert result.stale[0].error == "Projected 1 of 2 assertion edges"
    assert len(result.stale[0].ids) == 2
