from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Query, Request

from factgraph.api.v1.dependencies import SessionDep
from factgraph.schemas.fact import AssertionStatus, FactsQuery
from factgraph.services.retrieval.facts import FactsService
from factgraph.utils.responses import create_api_response

router = APIRouter()


@router.get(
    "",
    summary="Query assertions by subject, predicate, object or status",
    operation_id="query_facts",
)
async def query_facts(
    request: Request,
    session: SessionDep,
    subject_entity_id: Optional[UUID] = Query(None),
    predicate: Optional[str] = Query(None),
    object_entity_id: Optional[UUID] = Query(None),
    status: Optional[AssertionStatus] = Query(None),
    limit: Optional[int] = Query(None, ge=1),
):
    """At least one filter is needed; without one the result is empty."""
    result = await FactsService(session).query(
        FactsQuery(
            subject_entity_id=subject_entity_id,
            predicate=predicate,
            object_entity_id=object_entity_id,
            status=status,
            limit=limit,
        )
    )
    return create_api_response(result, message=f"Found {len(result.facts)} facts", request=request)
