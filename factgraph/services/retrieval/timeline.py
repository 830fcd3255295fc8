import asyncio

from factgraph.database.models import Document
from factgraph.schemas.retrieval import (
    TimelineDocument,
    TimelineSearchRequest,
    TimelineSearchResult,
    VectorSearchFilters,
)
from factgraph.services.retrieval.documents import DocumentLister
from factgraph.services.retrieval.vector_search import VectorSearchService
from factgraph.utils.identifiers import clamp_int
from factgraph.utils.logging import get_logger

LOGGER = get_logger(__name__)


class TimelineSearchService:
    """Runs one semantic search per recent filing to show how a topic evolves.

    Filings come from the document store, newest first. Each per-filing
    search is pinned to that filing's filters without broadening.
    """

    def __init__(self, lister: DocumentLister, vector_search: VectorSearchService):
        self.lister = lister
        self.vector_search = vector_search

    async def search(self, request: TimelineSearchRequest) -> TimelineSearchResult:
        q = request.query.strip()
        if not q:
            return TimelineSearchResult(query=q, model=self.vector_search.embedder.model_name)

        limit_docs = clamp_int(request.limit_docs, 8, 1, 24)
        top_k_per_doc = clamp_int(request.top_k_per_doc, 3, 1, 10)
        concurrency = clamp_int(request.concurrency, 3, 1, 6)

        docs = await self.lister.list_documents(
            cik=request.cik, doc_type=request.doc_type, limit=limit_docs
        )
        if not docs and request.doc_type:
            LOGGER.info(
                "No filings for doc_type, retrying without it",
                extra={"cik": request.cik, "doc_type": request.doc_type}
            )
            docs = await self.lister.list_documents(cik=request.cik, limit=limit_docs)

        semaphore = asyncio.Semaphore(concurrency)

        async def search_document(doc: Document) -> TimelineDocument:
            async with semaphore:
                res = await self.vector_search.search(
                    q,
                    top_k=top_k_per_doc,
                    filters=VectorSearchFilters(
                        cik=doc.cik, doc_type=doc.doc_type, accession_no=doc.accession_no
                    ),
                    broaden=False,
                )
            return TimelineDocument(
                document_id=doc.id,
                cik=doc.cik,
                accession_no=doc.accession_no,
                doc_type=doc.doc_type,
                filing_date=doc.filing_date,
                url=doc.url,
                hits=res.hits,
            )

        per_doc = await asyncio.gather(*(search_document(d) for d in docs))

        return TimelineSearchResult(
            query=q,
            model=self.vector_search.embedder.model_name,
            documents_considered=len(docs),
            results=[r for r in per_doc if r.hits],
        )
