from fastapi import APIRouter, Request

from factgraph.api.v1.dependencies import SessionDep
from factgraph.schemas.retrieval import CitationsRequest
from factgraph.services.retrieval.citations import CitationService
from factgraph.utils.responses import create_api_response

router = APIRouter()


@router.post(
    "",
    summary="Resolve chunk and assertion ids to source citations",
    operation_id="resolve_citations",
)
async def resolve_citations(body: CitationsRequest, request: Request, session: SessionDep):
    result = await CitationService(session).resolve(body.chunk_ids, body.assertion_ids)
    return create_api_response(result, message="Citations resolved", request=request)
