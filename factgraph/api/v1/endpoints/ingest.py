import asyncio
import json
from collections.abc import AsyncIterator
from typing import Any, Dict

from fastapi import APIRouter, Request
from fastapi.responses import StreamingResponse

from factgraph.api.v1.dependencies import ContainerDep, WriteGuard
from factgraph.schemas.ingestion import BulkIngestRequest, DocumentIngestRequest
from factgraph.services.ingestion.bulk_ingestion import BulkIngestionService
from factgraph.utils.logging import get_logger
from factgraph.utils.responses import create_api_response

LOGGER = get_logger(__name__)

router = APIRouter(dependencies=[WriteGuard])

NDJSON_MEDIA_TYPE = "application/x-ndjson"

_END = object()


def ndjson_line(event: Dict[str, Any]) -> bytes:
    return (json.dumps(event, default=str) + "\n").encode("utf-8")


async def stream_bulk_events(service: BulkIngestionService, body: BulkIngestRequest) -> AsyncIterator[bytes]:
    """Runs the batch in a task and yields its events as NDJSON lines.

    An unexpected failure of the batch itself ends the stream with a
    `fatal` event.
    """
    queue: asyncio.Queue = asyncio.Queue()

    async def emit(event: Dict[str, Any]) -> None:
        await queue.put(event)

    async def produce() -> None:
        try:
            await service.run(body, emit=emit)
        except Exception as e:
            LOGGER.error("Bulk ingestion aborted", exc_info=True, extra={"requested": len(body.ciks)})
            await queue.put({"event": "fatal", "error": str(e)})
        finally:
            await queue.put(_END)

    task = asyncio.create_task(produce())
    try:
        while True:
            event = await queue.get()
            if event is _END:
                break
            yield ndjson_line(event)
    finally:
        if not task.done():
            task.cancel()


@router.post(
    "",
    summary="Ingest the latest filings of one filer",
    operation_id="ingest_document",
)
async def ingest_document(body: DocumentIngestRequest, request: Request, container: ContainerDep):
    result = await container.ingest_document(body)
    return create_api_response(
        result,
        message=f"Inserted {result.inserted_documents} documents, {result.inserted_chunks} chunks",
        request=request,
    )


@router.post(
    "/bulk",
    summary="Ingest many filers, optionally extracting the new documents",
    operation_id="bulk_ingest",
)
async def bulk_ingest(body: BulkIngestRequest, request: Request, container: ContainerDep):
    """Streams NDJSON progress events when `stream` is set (default: when `extract` is set).

    Events: start, ingest.start/done/error, extract.start/done/error, done,
    and fatal if the batch itself fails.
    """
    service = container.bulk_ingestion()

    if body.should_stream:
        return StreamingResponse(
            stream_bulk_events(service, body),
            media_type=NDJSON_MEDIA_TYPE,
            headers={"Cache-Control": "no-cache"},
        )

    result = await service.run(body)
    return create_api_response(
        result,
        message="Bulk ingestion completed" if result.ok else "Bulk ingestion completed with failures",
        request=request,
    )
