"""Bulk ingestion over many filers with an optional extraction phase.

Progress is reported through an `emit` callback as ordered events:

    start -> ingest.start/done/error ... -> extract.start/done/error ... -> done

A failing item is recorded and never aborts its siblings or the batch.
"""

import asyncio
import time
import uuid
from collections import defaultdict
from typing import Any, Awaitable, Callable, Dict, List, Optional

from factgraph.schemas.extraction import ExtractionResult
from factgraph.schemas.ingestion import (
    BulkIngestRequest,
    BulkIngestResult,
    BulkItemOutcome,
    DocumentIngestRequest,
    DocumentIngestResult,
)
from factgraph.utils.identifiers import normalize_cik
from factgraph.utils.logging import get_logger

LOGGER = get_logger(__name__)

IngestDocumentFn = Callable[[DocumentIngestRequest], Awaitable[DocumentIngestResult]]
ExtractDocumentFn = Callable[[uuid.UUID, int], Awaitable[ExtractionResult]]
EmitFn = Callable[[Dict[str, Any]], Awaitable[None]]

DEFAULT_MAX_FAILURES_REPORTED = 25


def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)


async def _no_emit(event: Dict[str, Any]) -> None:
    return None


class BulkIngestionService:
    """Runs single-filer ingestion for many CIKs under a concurrency bound.

    Writes for the same CIK are serialized; different CIKs run in parallel.
    Each item callable is expected to open its own session.
    """

    def __init__(
        self,
        ingest_document: IngestDocumentFn,
        extract_document: ExtractDocumentFn,
        max_failures_reported: int = DEFAULT_MAX_FAILURES_REPORTED,
    ):
        self.ingest_document = ingest_document
        self.extract_document = extract_document
        self.max_failures_reported = max_failures_reported

    async def run(self, request: BulkIngestRequest, emit: Optional[EmitFn] = None) -> BulkIngestResult:
        emit = emit or _no_emit
        await emit({"event": "start", "requested": len(request.ciks), "extract": request.extract})

        ingested = await self._ingest_all(request, emit)

        extracted: Optional[List[BulkItemOutcome]] = None
        if request.extract:
            document_ids: List[str] = []
            for outcome in ingested:
                if outcome.ok and outcome.result:
                    docs = outcome.result.get("documents") or []
                    document_ids.extend(str(d["document_id"]) for d in docs[: request.extract_docs_per_cik])
            extracted = await self._extract_all(document_ids, request, emit)

        outcomes = ingested + (extracted or [])
        failures = [f"{o.key}: {o.error}" for o in outcomes if not o.ok][: self.max_failures_reported]

        result = BulkIngestResult(
            ok=all(o.ok for o in outcomes),
            requested=len(request.ciks),
            ingested=ingested,
            extracted=extracted,
            failures=failures,
        )

        LOGGER.info(
            "Bulk ingestion finished",
            extra={
                "requested": result.requested,
                "ok": result.ok,
                "failures": len([o for o in outcomes if not o.ok]),
            }
        )
        await emit({"event": "done", **result.model_dump(mode="json")})
        return result

    async def _ingest_all(self, request: BulkIngestRequest, emit: EmitFn) -> List[BulkItemOutcome]:
        semaphore = asyncio.Semaphore(request.concurrency)
        locks: Dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

        async def ingest_one(raw_cik: str) -> BulkItemOutcome:
            async with semaphore:
                started = time.monotonic()
                await emit({"event": "ingest.start", "cik": raw_cik})
                try:
                    async with locks[normalize_cik(raw_cik)]:
                        res = await self.ingest_document(
                            DocumentIngestRequest(
                                cik=raw_cik,
                                forms=request.forms or ["10-K", "10-Q"],
                                max_filings=request.max_filings or 1,
                                max_chunks_per_filing=request.max_chunks_per_filing,
                            )
                        )
                except Exception as e:
                    ms = _elapsed_ms(started)
                    LOGGER.warning(f"Ingestion failed for CIK {raw_cik}: {e}", extra={"cik": raw_cik})
                    await emit({"event": "ingest.error", "cik": raw_cik, "ms": ms, "error": str(e)})
                    return BulkItemOutcome(key=raw_cik, ok=False, ms=ms, error=str(e))

                ms = _elapsed_ms(started)
                await emit(
                    {
                        "event": "ingest.done",
                        "cik": res.cik,
                        "ms": ms,
                        "inserted_documents": res.inserted_documents,
                        "inserted_chunks": res.inserted_chunks,
                        "skipped_existing": res.skipped_existing,
                        "considered": res.considered,
                    }
                )
                return BulkItemOutcome(key=res.cik, ok=True, ms=ms, result=res.model_dump(mode="json"))

        return list(await asyncio.gather(*(ingest_one(c) for c in request.ciks)))

    async def _extract_all(
        self, document_ids: List[str], request: BulkIngestRequest, emit: EmitFn
    ) -> List[BulkItemOutcome]:
        semaphore = asyncio.Semaphore(request.extract_concurrency)

        async def extract_one(document_id: str) -> BulkItemOutcome:
            async with semaphore:
                started = time.monotonic()
                await emit(
                    {"event": "extract.start", "document_id": document_id, "max_chunks": request.extract_max_chunks}
                )
                try:
                    res = await self.extract_document(uuid.UUID(document_id), request.extract_max_chunks)
                except Exception as e:
                    ms = _elapsed_ms(started)
                    LOGGER.warning(
                        f"Extraction failed for document {document_id}: {e}",
                        extra={"document_id": document_id}
                    )
                    await emit({"event": "extract.error", "document_id": document_id, "ms": ms, "error": str(e)})
                    return BulkItemOutcome(key=document_id, ok=False, ms=ms, error=str(e))

                ms = _elapsed_ms(started)
                payload = res.model_dump(mode="json")
                await emit({"event": "extract.done", "document_id": document_id, "ms": ms, "result": payload})
                return BulkItemOutcome(key=document_id, ok=True, ms=ms, result=payload)

        return list(await asyncio.gather(*(extract_one(d) for d in document_ids)))
