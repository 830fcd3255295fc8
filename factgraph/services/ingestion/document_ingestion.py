"""Filing ingestion: fetch, normalize, chunk, store and index.

Documents are immutable and keyed by (source, accession_no), so a filing
that is already stored is reported but never fetched again.
"""

import hashlib
import uuid
from typing import Any, Dict, List

from sqlalchemy.ext.asyncio import AsyncSession

from factgraph.core.config import IngestionSettings
from factgraph.core.exceptions import ValidationError
from factgraph.database.models import Document, DocumentChunk
from factgraph.repositories.document_repository import DocumentChunkRepository, DocumentRepository
from factgraph.repositories.vector_index import PgVectorIndex
from factgraph.schemas.common import PartialFailure
from factgraph.schemas.ingestion import (
    FORM_TO_DOC_TYPE,
    DocumentIngestRequest,
    DocumentIngestResult,
    FilingCandidate,
    IngestedDocument,
)
from factgraph.services.embeddings.sentence_transformer import SentenceTransformerEmbedder
from factgraph.services.entity.resolver import EntityResolver
from factgraph.services.ingestion.chunker import CharChunker
from factgraph.services.ingestion.fetcher import HttpSourceFetcher, build_filing_document_url
from factgraph.services.ingestion.text import strip_html_to_text
from factgraph.utils.identifiers import normalize_cik
from factgraph.utils.logging import get_logger

LOGGER = get_logger(__name__)

SOURCE_SEC_EDGAR = "sec_edgar"


def content_hash(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def chunk_payload(chunk: DocumentChunk, document: Document) -> Dict[str, Any]:
    return {
        "chunk_id": str(chunk.id),
        "document_id": str(document.id),
        "cik": document.cik,
        "accession_no": document.accession_no,
        "doc_type": document.doc_type,
        "filing_date": document.filing_date.isoformat(),
        "chunk_index": chunk.chunk_index,
    }


class DocumentIngestionService:
    """Ingests the latest filings of one filer."""

    def __init__(
        self,
        session: AsyncSession,
        fetcher: HttpSourceFetcher,
        embedder: SentenceTransformerEmbedder,
        index: PgVectorIndex,
        settings: IngestionSettings,
    ):
        self.session = session
        self.fetcher = fetcher
        self.embedder = embedder
        self.index = index
        self.settings = settings

        self.documents = DocumentRepository(session)
        self.chunks = DocumentChunkRepository(session)
        self.resolver = EntityResolver(session)

    async def ingest(self, request: DocumentIngestRequest) -> DocumentIngestResult:
        """Ingest up to `max_filings` newest filings of the requested forms.

        Raises:
            ValidationError: empty CIK or invalid chunking options
            UpstreamError: submission or document fetch failed
        """
        cik = normalize_cik(request.cik)
        if not cik:
            raise ValidationError("cik is required")

        chunker = CharChunker(
            chunk_size=request.chunk_size or self.settings.chunk_size,
            overlap=request.overlap if request.overlap is not None else self.settings.chunk_overlap,
        )
        max_chunks = request.max_chunks_per_filing or self.settings.max_chunks_per_document

        submission = await self.fetcher.fetch_submission(cik)

        try:
            await self.resolver.upsert_company_stub(
                submission.cik or cik,
                submission.name,
                submission.tickers[0] if submission.tickers else None,
            )
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise

        forms = set(request.forms or ["10-K", "10-Q"])
        candidates = [f for f in submission.filings if f.form in forms][: request.max_filings]

        result = DocumentIngestResult(cik=cik, considered=len(candidates))
        for filing in candidates:
            existing = await self.documents.get_by_source_accession(SOURCE_SEC_EDGAR, filing.accession_no)
            if existing is not None:
                result.skipped_existing += 1
                result.documents.append(
                    IngestedDocument(
                        accession_no=existing.accession_no,
                        doc_type=existing.doc_type,
                        filing_date=existing.filing_date,
                        document_id=existing.id,
                        chunks=await self.chunks.count_by_document(existing.id),
                        existing=True,
                    )
                )
                continue

            await self._ingest_filing(result, cik, filing, chunker, max_chunks)

        LOGGER.info(
            "Filer ingestion completed",
            extra={
                "cik": cik,
                "considered": result.considered,
                "skipped_existing": result.skipped_existing,
                "inserted_documents": result.inserted_documents,
                "inserted_chunks": result.inserted_chunks,
            }
        )
        return result

    async def _ingest_filing(
        self,
        result: DocumentIngestResult,
        cik: str,
        filing: FilingCandidate,
        chunker: CharChunker,
        max_chunks: int,
    ) -> None:
        html = await self.fetcher.fetch_document(cik, filing.accession_no, filing.primary_document)
        text = strip_html_to_text(html)
        windows = chunker.split(text)[:max_chunks]

        try:
            document = await self.documents.create(
                id=uuid.uuid4(),
                source=SOURCE_SEC_EDGAR,
                doc_type=FORM_TO_DOC_TYPE[filing.form],
                cik=cik,
                accession_no=filing.accession_no,
                filing_date=filing.filing_date,
                url=build_filing_document_url(cik, filing.accession_no, filing.primary_document),
                content_hash=content_hash(text),
            )
            rows = []
            for w in windows:
                chunk_id = uuid.uuid4()
                rows.append(
                    {
                        "id": chunk_id,
                        "document_id": document.id,
                        "chunk_index": w.index,
                        "text": w.text,
                        "start_offset": w.start_offset,
                        "end_offset": w.end_offset,
                        "vector_point_id": str(chunk_id),
                    }
                )
            chunks = await self.chunks.add_many(rows) if rows else []
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise

        result.inserted_documents += 1
        result.inserted_chunks += len(chunks)
        result.documents.append(
            IngestedDocument(
                accession_no=document.accession_no,
                doc_type=document.doc_type,
                filing_date=document.filing_date,
                document_id=document.id,
                chunks=len(chunks),
            )
        )

        try:
            result.vector_points_upserted += await self._index_chunks(document, chunks)
        except Exception as e:
            LOGGER.error(
                "Vector indexing failed after document commit",
                exc_info=True,
                extra={"document_id": str(document.id)}
            )
            result.stale.append(
                PartialFailure(step="vector.upsert", error=str(e), ids=[str(c.id) for c in chunks])
            )

    async def _index_chunks(self, document: Document, chunks: List[DocumentChunk]) -> int:
        written = 0
        batch_size = self.embedder.batch_size
        for start in range(0, len(chunks), batch_size):
            batch = chunks[start:start + batch_size]
            vectors = await self.embedder.embed_texts([c.text for c in batch])
            points = [
                {"id": c.vector_point_id, "vector": v, "payload": chunk_payload(c, document)}
                for c, v in zip(batch, vectors)
            ]
            written += await self.index.upsert(points)
        return written
