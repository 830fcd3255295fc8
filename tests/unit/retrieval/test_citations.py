import uuid
from datetime import date
from types import SimpleNamespace
from unittest.mock import AsyncMock

import pytest

from factgraph.services.retrieval.citations import CitationService, unique_in_order


def chunk_and_doc(chunk_id: uuid.UUID, index: int = 0):
    doc = SimpleNamespace(
        id=uuid.uuid4(),
        cik="320193",
        accession_no="0000320193-24-000123",
        doc_type="10-k",
        filing_date=date(2024, 11, 1),
        url="https://www.sec.gov/Archives/edgar/data/320193/000032019324000123/aapl-20240928.htm",
    )
    chunk = SimpleNamespace(
        id=chunk_id, document_id=doc.id, chunk_index=index, text=f"chunk {index}"
    )
    return chunk, doc


@pytest.fixture
def service(mock_session) -> CitationService:
    svc = CitationService(mock_session)
    svc.chunks = AsyncMock()
    svc.assertions = AsyncMock()
    return svc


def test_unique_in_order_drops_blanks_and_repeats():
    assert unique_in_order(["b", "a", "", "b", None, "c"]) == ["b", "a", "c"]


@pytest.mark.asyncio
async def test_chunk_citations_follow_input_order(service):
    first, second, unknown = uuid.uuid4(), uuid.uuid4(), uuid.uuid4()
    # Repository returns rows in arbitrary order
    service.chunks.get_with_documents.return_value = [chunk_and_doc(second, 1), chunk_and_doc(first, 0)]

    citations = await service.by_chunk_ids([first, unknown, second, first])

    assert [c.chunk_id for c in citations] == [first, second]
    assert citations[0].document.cik == "320193"
    service.chunks.get_with_documents.assert_awaited_once_with([first, unknown, second])


@pytest.mark.asyncio
async def test_empty_input_skips_queries(service):
    result = await service.resolve([], [])

    assert result.chunks == []
    assert result.assertions == []
    service.chunks.get_with_documents.assert_not_awaited()
    service.assertions.get_source_chunk_ids.assert_not_awaited()


@pytest.mark.asyncio
async def test_assertion_without_source_chunk_has_null_citation(service):
    with_chunk, without_chunk = uuid.uuid4(), uuid.uuid4()
    chunk_id = uuid.uuid4()
    service.assertions.get_source_chunk_ids.return_value = {with_chunk: chunk_id, without_chunk: None}
    service.chunks.get_with_documents.return_value = [chunk_and_doc(chunk_id)]

    citations = await service.by_assertion_ids([without_chunk, with_chunk])

    assert [c.assertion_id for c in citations] == [without_chunk, with_chunk]
    assert citations[0].citation is None
    assert citations[1].citation.chunk_id == chunk_id
