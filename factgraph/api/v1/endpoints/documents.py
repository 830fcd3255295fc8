from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Query, Request

from factgraph.api.v1.dependencies import ContainerDep, SessionDep, WriteGuard
from factgraph.schemas.retrieval import DocType, DocumentSummary
from factgraph.services.retrieval.documents import DocumentLister
from factgraph.utils.responses import create_api_response

router = APIRouter()


@router.get(
    "",
    summary="List filings newest first",
    operation_id="list_documents",
)
async def list_documents(
    request: Request,
    session: SessionDep,
    cik: Optional[str] = Query(None, description="CIK, ticker or company name"),
    doc_type: Optional[DocType] = Query(None),
    accession_no: Optional[str] = Query(None),
    limit: Optional[int] = Query(None, ge=1),
):
    docs = await DocumentLister(session).list_documents(
        cik=cik, doc_type=doc_type, accession_no=accession_no, limit=limit
    )
    return create_api_response(
        {"documents": [DocumentSummary.model_validate(d).model_dump(mode="json") for d in docs]},
        message=f"Found {len(docs)} documents",
        request=request,
    )


@router.post(
    "/{document_id}/extract",
    summary="Extract entities and assertions from a stored document",
    operation_id="extract_document",
    dependencies=[WriteGuard],
)
async def extract_document(
    document_id: UUID,
    request: Request,
    container: ContainerDep,
    max_chunks: Optional[int] = Query(None, ge=1),
):
    """Runs extraction over the first `max_chunks` chunks.

    Graph projection failures do not fail the request; they are listed in `stale`.
    """
    result = await container.extract_document(document_id, max_chunks)
    return create_api_response(result, message="Extraction completed", request=request)
