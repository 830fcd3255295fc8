from typing import List, Optional

from fastapi import APIRouter, Query, Request

from factgraph.api.v1.dependencies import ContainerDep, SessionDep
from factgraph.services.conflicts.conflict_detector import ConflictDetector
from factgraph.utils.responses import create_api_response

router = APIRouter()


@router.get(
    "",
    summary="Detect conflicting values for single-valued predicates",
    operation_id="detect_conflicts",
)
async def detect_conflicts(
    request: Request,
    session: SessionDep,
    container: ContainerDep,
    predicates: Optional[List[str]] = Query(None),
    limit: Optional[int] = Query(None, ge=1),
):
    report = await ConflictDetector(session, container.settings.retrieval).detect(predicates, limit)
    return create_api_response(
        report, message=f"Found {len(report.conflicts)} conflicts", request=request
    )
