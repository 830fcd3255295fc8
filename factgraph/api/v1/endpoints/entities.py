from typing import Optional

from fastapi import APIRouter, Query, Request

from factgraph.api.v1.dependencies import SessionDep
from factgraph.services.retrieval.entity_search import EntitySearchService
from factgraph.utils.responses import create_api_response

router = APIRouter()


@router.get(
    "/search",
    summary="Search entities by name, alias, ticker or CIK",
    operation_id="search_entities",
)
async def search_entities(
    request: Request,
    session: SessionDep,
    q: str = Query(..., min_length=1, description="Name, alias, ticker or CIK"),
    type: Optional[str] = Query(None, description="Restrict to one entity type"),
    limit: Optional[int] = Query(None, ge=1),
):
    hits = await EntitySearchService(session).search(q, entity_type=type, limit=limit)
    return create_api_response(
        {"entities": [h.model_dump(mode="json") for h in hits]},
        message=f"Found {len(hits)} entities",
        request=request,
    )
