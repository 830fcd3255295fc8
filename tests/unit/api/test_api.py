"""HTTP surface tests with a mocked service container.

The TestClient is used without a context manager so the lifespan (and
with it real database and graph connections) never runs.
"""

import json
import uuid
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient

from factgraph.api.errors import status_for
from factgraph.core.config import Settings
from factgraph.core.exceptions import (
    AppError,
    ConflictError,
    NotFoundError,
    UpstreamError,
    ValidationError,
)
from factgraph.main import create_app
from factgraph.schemas.extraction import ExtractionResult
from factgraph.schemas.ingestion import BulkIngestResult, BulkItemOutcome, DocumentIngestResult
from factgraph.schemas.signals import EarningsIngestResult, EarningsTickerOutcome
from factgraph.services.ingestion.bulk_ingestion import BulkIngestionService


@pytest.fixture
def container() -> MagicMock:
    container = MagicMock()
    container.settings.ingestion.ingestion_secret = ""
    container.db.health_check = AsyncMock(return_value={"status": "healthy"})
    container.neo4j.health_check = AsyncMock(return_value={"status": "healthy"})
    container.ingest_document = AsyncMock(
        return_value=DocumentIngestResult(cik="320193", considered=1, inserted_documents=1, inserted_chunks=4)
    )
    container.extract_document = AsyncMock()
    container.ingest_earnings = AsyncMock()
    return container


@pytest.fixture
def client(container) -> TestClient:
    return TestClient(create_app(Settings(), container=container))


@pytest.mark.parametrize(
    "exc, expected",
    [
        (ValidationError("bad"), 400),
        (NotFoundError("Assertion", "x"), 404),
        (ConflictError("closed"), 409),
        (UpstreamError("neo4j"), 502),
        (AppError("boom"), 500),
    ],
)
def test_status_for(exc, expected):
    assert status_for(exc)[0] == expected


def test_health_reports_degraded_graph(client, container):
    container.neo4j.health_check.return_value = {"status": "unhealthy", "error": "refused"}

    response = client.get("/health")

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "degraded"
    assert body["database"]["status"] == "healthy"
    assert body["graph"]["error"] == "refused"


def test_health_ok(client):
    assert client.get("/health").json()["status"] == "healthy"


def test_root(client):
    assert client.get("/").json()["health"] == "/health"


def test_ingest_returns_envelope(client, container):
    response = client.post("/api/v1/ingest", json={"cik": "320193"})

    assert response.status_code == 200
    body = response.json()
    assert body["status"] is True
    assert body["data"]["inserted_documents"] == 1
    assert body["meta"]["api_version"] == "v1"
    assert container.ingest_document.await_args.args[0].cik == "320193"


@pytest.mark.parametrize(
    "exc, status_code, title",
    [
        (ValidationError("cik is required"), 400, "Invalid Request"),
        (NotFoundError("Document", "abc"), 404, "Not Found"),
        (UpstreamError("Source fetch failed (503)"), 502, "Upstream Failure"),
    ],
)
def test_app_errors_become_problem_details(client, container, exc, status_code, title):
    container.ingest_document.side_effect = exc

    response = client.post("/api/v1/ingest", json={"cik": "320193"})

    assert response.status_code == status_code
    body = response.json()
    assert body["title"] == title
    assert body["status"] == status_code
    assert body["detail"] == exc.message
    assert body["instance"] == "/api/v1/ingest"


def test_invalid_body_is_rejected(client):
    response = client.post("/api/v1/ingest/bulk", json={"ciks": []})
    assert response.status_code == 422


class TestIngestionSecret:

    def test_missing_secret_is_unauthorized(self, client, container):
        container.settings.ingestion.ingestion_secret = "s3cret"

        response = client.post("/api/v1/ingest", json={"cik": "320193"})

        assert response.status_code == 401
        container.ingest_document.assert_not_awaited()

    def test_wrong_secret_is_unauthorized(self, client, container):
        container.settings.ingestion.ingestion_secret = "s3cret"

        response = client.post("/api/v1/ingest", json={"cik": "320193"}, headers={"X-Ingestion-Secret": "nope"})

        assert response.status_code == 401

    def test_matching_secret_is_accepted(self, client, container):
        container.settings.ingestion.ingestion_secret = "s3cret"

        response = client.post("/api/v1/ingest", json={"cik": "320193"}, headers={"X-Ingestion-Secret": "s3cret"})

        assert response.status_code == 200

    def test_earnings_ingest_is_guarded(self, client, container):
        container.settings.ingestion.ingestion_secret = "s3cret"

        response = client.post("/api/v1/signals/ingest/earnings", json={"tickers": ["AAPL"]})

        assert response.status_code == 401
        container.ingest_earnings.assert_not_awaited()

    def test_extract_is_guarded(self, client, container):
        container.settings.ingestion.ingestion_secret = "s3cret"

        response = client.post(f"/api/v1/documents/{uuid.uuid4()}/extract")

        assert response.status_code == 401
        container.extract_document.assert_not_awaited()


def test_extract_document(client, container):
    document_id = uuid.uuid4()
    container.extract_document.return_value = ExtractionResult(
        document_id=document_id, extraction_run_id=uuid.uuid4(), attempted_chunks=3, processed_chunks=3
    )

    response = client.post(f"/api/v1/documents/{document_id}/extract", params={"max_chunks": 3})

    assert response.status_code == 200
    assert response.json()["data"]["processed_chunks"] == 3
    container.extract_document.assert_awaited_once_with(document_id, 3)


def test_bulk_without_stream_returns_envelope(client, container):
    service = MagicMock()
    service.run = AsyncMock(
        return_value=BulkIngestResult(
            ok=False, requested=1,
            ingested=[BulkItemOutcome(key="1", ok=False, ms=3, error="down")],
            failures=["1: down"],
        )
    )
    container.bulk_ingestion.return_value = service

    response = client.post("/api/v1/ingest/bulk", json={"ciks": ["1"]})

    assert response.status_code == 200
    body = response.json()
    assert body["message"] == "Bulk ingestion completed with failures"
    assert body["data"]["failures"] == ["1: down"]


def test_bulk_streams_ndjson_events(client, container):
    async def ingest(request):
        return DocumentIngestResult(cik="320193", considered=1)

    container.bulk_ingestion.return_value = BulkIngestionService(ingest, None)

    response = client.post("/api/v1/ingest/bulk", json={"ciks": ["320193"], "stream": True})

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("application/x-ndjson")
    events = [json.loads(line) for line in response.text.splitlines() if line]
    assert [e["event"] for e in events] == ["start", "ingest.start", "ingest.done", "done"]
    assert events[-1]["ok"] is True


def test_bulk_stream_reports_fatal(client, container):
    service = MagicMock()
    service.run = AsyncMock(side_effect=RuntimeError("queue exploded"))
    container.bulk_ingestion.return_value = service

    response = client.post("/api/v1/ingest/bulk", json={"ciks": ["320193"], "stream": True})

    events = [json.loads(line) for line in response.text.splitlines() if line]
    assert events == [{"event": "fatal", "error": "queue exploded"}]


def test_earnings_ingest_returns_envelope(client, container):
    container.ingest_earnings.return_value = EarningsIngestResult(
        tickers_requested=1, rows_fetched=3, signal_rows_prepared=4,
        per_ticker=[EarningsTickerOutcome(ticker="AAPL", fetched=3)],
    )

    response = client.post("/api/v1/signals/ingest/earnings", json={"tickers": ["AAPL"], "limit": 100})

    assert response.status_code == 200
    body = response.json()
    assert body["message"] == "4 earnings signals prepared"
    assert body["data"]["per_ticker"][0]["ticker"] == "AAPL"
    assert container.ingest_earnings.await_args.args[0].limit == 100


@pytest.mark.parametrize("body", [{"tickers": []}, {"tickers": ["AAPL"], "limit": 0}])
def test_earnings_ingest_rejects_invalid_body(client, body):
    assert client.post("/api/v1/signals/ingest/earnings", json=body).status_code == 422


def test_unconfigured_earnings_key_is_a_server_error(client, container):
    container.ingest_earnings.side_effect = AppError("MASSIVE_API_KEY is not configured")

    response = client.post("/api/v1/signals/ingest/earnings", json={"tickers": ["AAPL"]})

    assert response.status_code == 500
    assert response.json()["detail"] == "MASSIVE_API_KEY is not configured"
