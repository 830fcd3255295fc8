from fastapi import APIRouter, Request, status

from factgraph.api.v1.dependencies import ContainerDep, SessionDep, WriteGuard
from factgraph.schemas.correction import CorrectionRequest
from factgraph.services.corrections.correction_service import CorrectionService
from factgraph.utils.responses import create_api_response

router = APIRouter()


@router.post(
    "",
    status_code=status.HTTP_201_CREATED,
    summary="Retract, supersede or override an assertion",
    operation_id="apply_correction",
    dependencies=[WriteGuard],
)
async def apply_correction(
    body: CorrectionRequest,
    request: Request,
    session: SessionDep,
    container: ContainerDep,
):
    """Applies the correction to the fact store, then closes and upserts graph edges.

    A target that is no longer active yields 409. Graph failures after the
    commit are reported in `stale` instead of failing the request.
    """
    result = await CorrectionService(session, container.projector).execute(body)
    return create_api_response(result, message=f"Correction ({body.action}) applied", request=request)
