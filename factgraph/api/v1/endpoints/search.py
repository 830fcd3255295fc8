from fastapi import APIRouter, Request

from factgraph.api.v1.dependencies import ContainerDep, SessionDep
from factgraph.schemas.retrieval import TimelineSearchRequest, VectorSearchRequest
from factgraph.services.retrieval.documents import DocumentLister
from factgraph.services.retrieval.timeline import TimelineSearchService
from factgraph.services.retrieval.vector_search import VectorSearchService
from factgraph.utils.responses import create_api_response

router = APIRouter()


@router.post(
    "/vector",
    summary="Semantic search over document chunks",
    operation_id="vector_search",
)
async def vector_search(body: VectorSearchRequest, request: Request, container: ContainerDep):
    service = VectorSearchService(container.embedder, container.vector_index)
    result = await service.search(body.query, top_k=body.top_k, filters=body.filters)
    return create_api_response(result, message=f"Found {len(result.hits)} hits", request=request)


@router.post(
    "/timeline",
    summary="Per-filing semantic search across a filer's recent documents",
    operation_id="timeline_search",
)
async def timeline_search(
    body: TimelineSearchRequest,
    request: Request,
    container: ContainerDep,
    session: SessionDep,
):
    service = TimelineSearchService(
        DocumentLister(session),
        VectorSearchService(container.embedder, container.vector_index),
    )
    result = await service.search(body)
    return create_api_response(result, message="Timeline search completed", request=request)
