from datetime import date
from typing import Any, Literal, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from factgraph.schemas.common import PartialFailure

FilingForm = Literal["10-K", "10-Q", "20-F", "6-K"]

FORM_TO_DOC_TYPE: dict[str, str] = {
    "10-K": "10-k",
    "10-Q": "10-q",
    "20-F": "20-f",
    "6-K": "6-k",
}


class CompanySubmission(BaseModel):
    """Company profile plus its recent filings, as returned by a source fetcher."""

    cik: str
    name: str
    tickers: list[str] = Field(default_factory=list)
    filings: list["FilingCandidate"] = Field(default_factory=list)


class FilingCandidate(BaseModel):
    accession_no: str
    filing_date: date
    form: str
    primary_document: str


class DocumentIngestRequest(BaseModel):
    cik: str
    forms: list[FilingForm] = Field(default_factory=lambda: ["10-K", "10-Q"])
    max_filings: int = Field(default=1, ge=1, le=20)
    max_chunks_per_filing: Optional[int] = Field(default=None, ge=1, le=500)
    chunk_size: Optional[int] = None
    overlap: Optional[int] = None


class IngestedDocument(BaseModel):
    accession_no: str
    doc_type: str
    filing_date: date
    document_id: UUID
    chunks: int
    existing: bool = False


class DocumentIngestResult(BaseModel):
    cik: str
    considered: int = 0
    skipped_existing: int = 0
    inserted_documents: int = 0
    inserted_chunks: int = 0
    vector_points_upserted: int = 0
    documents: list[IngestedDocument] = Field(default_factory=list)
    stale: list[PartialFailure] = Field(default_factory=list)


class BulkIngestRequest(BaseModel):
    ciks: list[str] = Field(min_length=1, max_length=50)
    forms: Optional[list[FilingForm]] = None
    max_filings: Optional[int] = Field(default=None, ge=1, le=20)
    max_chunks_per_filing: Optional[int] = Field(default=None, ge=1, le=500)
    concurrency: int = Field(default=2, ge=1, le=6)
    extract: bool = False
    extract_max_chunks: int = Field(default=40, ge=1, le=200)
    extract_concurrency: int = Field(default=1, ge=1, le=3)
    extract_docs_per_cik: int = Field(default=1, ge=1, le=5)
    stream: Optional[bool] = Field(
        default=None,
        description="NDJSON progress events; defaults to on when extract is set",
    )

    @property
    def should_stream(self) -> bool:
        return self.extract if self.stream is None else self.stream


class BulkItemOutcome(BaseModel):
    key: str
    ok: bool
    ms: int
    result: Optional[dict[str, Any]] = None
    error: Optional[str] = None


class BulkIngestResult(BaseModel):
    ok: bool
    requested: int
    ingested: list[BulkItemOutcome] = Field(default_factory=list)
    extracted: Optional[list[BulkItemOutcome]] = None
    failures: list[str] = Field(default_factory=list, description="Capped list of item errors")


CompanySubmission.model_rebuild()
