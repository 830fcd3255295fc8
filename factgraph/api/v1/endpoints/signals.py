from fastapi import APIRouter, Request

from factgraph.api.v1.dependencies import ContainerDep, SessionDep, WriteGuard
from factgraph.schemas.signals import EarningsIngestRequest, ScreenSignalsRequest, SignalIngestRequest
from factgraph.services.signals.screener import SignalScreener
from factgraph.services.signals.signal_service import SignalService
from factgraph.utils.responses import create_api_response

router = APIRouter()


@router.post(
    "/ingest",
    summary="Upsert dated numeric signals",
    operation_id="ingest_signals",
    dependencies=[WriteGuard],
)
async def ingest_signals(body: SignalIngestRequest, request: Request, session: SessionDep):
    result = await SignalService(session).ingest(body.rows)
    return create_api_response(result, message="Signals ingested", request=request)


@router.post(
    "/ingest/earnings",
    summary="Pull consensus EPS estimates for tickers and upsert them as signals",
    operation_id="ingest_earnings_signals",
    dependencies=[WriteGuard],
)
async def ingest_earnings(body: EarningsIngestRequest, request: Request, container: ContainerDep):
    result = await container.ingest_earnings(body)
    return create_api_response(
        result, message=f"{result.signal_rows_prepared} earnings signals prepared", request=request
    )


@router.post(
    "/screen",
    summary="Screen filers by EPS trend and flow totals",
    operation_id="screen_signals",
)
async def screen_signals(body: ScreenSignalsRequest, request: Request, session: SessionDep):
    result = await SignalScreener(session).screen(body)
    return create_api_response(result, message=f"{result.matched} filers matched", request=request)
