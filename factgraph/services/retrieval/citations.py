import uuid
from typing import Iterable, List

from sqlalchemy.ext.asyncio import AsyncSession

from factgraph.repositories.assertion_repository import AssertionRepository
from factgraph.repositories.document_repository import DocumentChunkRepository
from factgraph.schemas.retrieval import (
    AssertionCitation,
    ChunkCitation,
    CitationDocument,
    CitationsResult,
)


def unique_in_order(ids: Iterable) -> list:
    seen = set()
    out = []
    for i in ids:
        if i and i not in seen:
            seen.add(i)
            out.append(i)
    return out


class CitationService:
    """Resolves chunk and assertion ids to source text with filing metadata."""

    def __init__(self, session: AsyncSession):
        self.chunks = DocumentChunkRepository(session)
        self.assertions = AssertionRepository(session)

    async def by_chunk_ids(self, chunk_ids: Iterable[uuid.UUID]) -> List[ChunkCitation]:
        """Citations in first-seen input order; unknown ids are omitted."""
        ids = unique_in_order(chunk_ids)
        if not ids:
            return []

        by_id = {chunk.id: (chunk, doc) for chunk, doc in await self.chunks.get_with_documents(ids)}

        citations = []
        for chunk_id in ids:
            if chunk_id not in by_id:
                continue
            chunk, doc = by_id[chunk_id]
            citations.append(
                ChunkCitation(
                    chunk_id=chunk.id,
                    document_id=chunk.document_id,
                    chunk_index=chunk.chunk_index,
                    text=chunk.text,
                    document=CitationDocument(
                        cik=doc.cik,
                        accession_no=doc.accession_no,
                        doc_type=doc.doc_type,
                        filing_date=doc.filing_date,
                        url=doc.url,
                    ),
                )
            )
        return citations

    async def by_assertion_ids(self, assertion_ids: Iterable[uuid.UUID]) -> List[AssertionCitation]:
        """One entry per distinct assertion id; citation is None without a resolvable source chunk."""
        ids = unique_in_order(assertion_ids)
        if not ids:
            return []

        chunk_by_assertion = await self.assertions.get_source_chunk_ids(ids)
        citations = await self.by_chunk_ids(c for c in chunk_by_assertion.values() if c)
        citation_by_chunk = {c.chunk_id: c for c in citations}

        return [
            AssertionCitation(
                assertion_id=assertion_id,
                citation=citation_by_chunk.get(chunk_by_assertion.get(assertion_id)),
            )
            for assertion_id in ids
        ]

    async def resolve(
        self, chunk_ids: Iterable[uuid.UUID], assertion_ids: Iterable[uuid.UUID]
    ) -> CitationsResult:
        return CitationsResult(
            chunks=await self.by_chunk_ids(chunk_ids),
            assertions=await self.by_assertion_ids(assertion_ids),
        )
