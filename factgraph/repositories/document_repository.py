import uuid
from typing import Optional, Sequence

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from factgraph.database.models import Document, DocumentChunk
from factgraph.repositories.base_repository import BaseRepository


class DocumentRepository(BaseRepository[Document]):
    """Repository for immutable Document rows."""

    def __init__(self, session: AsyncSession):
        super().__init__(session, Document)

    async def get_by_source_accession(self, source: str, accession_no: str) -> Optional[Document]:
        query = select(Document).where(
            Document.source == source,
            Document.accession_no == accession_no,
        )
        result = await self.session.execute(query)
        return result.scalar_one_or_none()

    async def list_documents(
        self,
        cik: Optional[str] = None,
        doc_type: Optional[str] = None,
        accession_no: Optional[str] = None,
        limit: int = 25,
    ) -> list[Document]:
        """Newest filing first."""
        query = select(Document)
        if cik is not None:
            query = query.where(Document.cik == cik)
        if doc_type:
            query = query.where(Document.doc_type == doc_type)
        if accession_no:
            query = query.where(Document.accession_no == accession_no)

        query = query.order_by(Document.filing_date.desc()).limit(limit)
        result = await self.session.execute(query)
        return list(result.scalars().all())


class DocumentChunkRepository(BaseRepository[DocumentChunk]):
    """Repository for DocumentChunk rows and chunk-level citations."""

    def __init__(self, session: AsyncSession):
        super().__init__(session, DocumentChunk)

    async def add_many(self, rows: Sequence[dict]) -> list[DocumentChunk]:
        chunks = [DocumentChunk(**row) for row in rows]
        self.session.add_all(chunks)
        await self.session.flush()
        return chunks

    async def get_by_document(
        self, document_id: uuid.UUID, limit: Optional[int] = None
    ) -> list[DocumentChunk]:
        """Chunks of one document in chunk_index order."""
        query = (
            select(DocumentChunk)
            .where(DocumentChunk.document_id == document_id)
            .order_by(DocumentChunk.chunk_index)
        )
        if limit:
            query = query.limit(limit)
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def count_by_document(self, document_id: uuid.UUID) -> int:
        query = select(func.count()).select_from(DocumentChunk).where(
            DocumentChunk.document_id == document_id
        )
        result = await self.session.execute(query)
        return result.scalar_one()

    async def get_with_documents(
        self, chunk_ids: Sequence[uuid.UUID]
    ) -> list[tuple[DocumentChunk, Document]]:
        """Chunks joined to their parent document metadata, unordered."""
        if not chunk_ids:
            return []
        query = (
            select(DocumentChunk, Document)
            .join(Document, DocumentChunk.document_id == Document.id)
            .where(DocumentChunk.id.in_(list(chunk_ids)))
        )
        result = await self.session.execute(query)
        return [(row[0], row[1]) for row in result.all()]
