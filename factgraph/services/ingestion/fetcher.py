"""HTTP source fetcher for SEC EDGAR submissions and filing documents."""

from datetime import date
from typing import Any, Dict, List, Optional

import httpx

from factgraph.core.config import IngestionSettings
from factgraph.core.exceptions import UpstreamError
from factgraph.schemas.ingestion import FORM_TO_DOC_TYPE, CompanySubmission, FilingCandidate
from factgraph.utils.identifiers import normalize_cik, pad_cik
from factgraph.utils.logging import get_logger

LOGGER = get_logger(__name__)

SUBMISSIONS_URL = "https://data.sec.gov/submissions/CIK{cik10}.json"
ARCHIVE_URL = "https://www.sec.gov/Archives/edgar/data/{cik}/{accession}/{primary_document}"

JSON_ACCEPT = "application/json"
DOCUMENT_ACCEPT = "text/html,application/xhtml+xml,text/plain;q=0.9,*/*;q=0.8"


def build_submission_url(cik: str) -> str:
    return SUBMISSIONS_URL.format(cik10=pad_cik(cik))


def build_filing_document_url(cik: str, accession_no: str, primary_document: str) -> str:
    return ARCHIVE_URL.format(
        cik=normalize_cik(cik),
        accession=accession_no.replace("-", ""),
        primary_document=primary_document,
    )


def parse_submission(data: Dict[str, Any]) -> CompanySubmission:
    """Company profile plus recent filings of a known form, newest first."""
    recent = (data.get("filings") or {}).get("recent") or {}
    forms = recent.get("form") or []
    accession_numbers = recent.get("accessionNumber") or []
    filing_dates = recent.get("filingDate") or []
    primary_documents = recent.get("primaryDocument") or []

    filings: List[FilingCandidate] = []
    for i, form in enumerate(forms):
        if form not in FORM_TO_DOC_TYPE:
            continue
        try:
            accession_no = accession_numbers[i]
            filing_date = filing_dates[i]
            primary_document = primary_documents[i]
        except IndexError:
            continue
        if not accession_no or not filing_date or not primary_document:
            continue
        filings.append(
            FilingCandidate(
                accession_no=accession_no,
                filing_date=date.fromisoformat(filing_date),
                form=form,
                primary_document=primary_document,
            )
        )

    filings.sort(key=lambda f: f.filing_date, reverse=True)

    return CompanySubmission(
        cik=normalize_cik(str(data.get("cik") or "")),
        name=(data.get("name") or "").strip(),
        tickers=[t for t in data.get("tickers") or [] if t],
        filings=filings,
    )


class HttpSourceFetcher:
    """GETs source documents with a descriptive User-Agent.

    Failures raise UpstreamError; retrying is left to the caller.
    """

    def __init__(self, settings: IngestionSettings, http_client: Optional[httpx.AsyncClient] = None):
        self.user_agent = settings.user_agent
        self.timeout = settings.fetch_timeout
        self._client = http_client

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout, follow_redirects=True)
        return self._client

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()

    async def fetch(self, url: str, accept: str = DOCUMENT_ACCEPT) -> httpx.Response:
        try:
            response = await self.client.get(
                url, headers={"User-Agent": self.user_agent, "Accept": accept}
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            LOGGER.error(
                f"Source fetch failed with HTTP {e.response.status_code}",
                extra={"url": url}
            )
            raise UpstreamError(
                f"Source fetch failed ({e.response.status_code}) for {url}", original_error=e
            ) from e
        except httpx.HTTPError as e:
            LOGGER.error(f"Source fetch failed: {e}", extra={"url": url})
            raise UpstreamError(f"Source fetch failed for {url}: {e}", original_error=e) from e
        return response

    async def fetch_submission(self, cik: str) -> CompanySubmission:
        response = await self.fetch(build_submission_url(cik), accept=JSON_ACCEPT)
        try:
            data = response.json()
        except ValueError as e:
            raise UpstreamError(f"Submission for CIK {cik} is not valid JSON", original_error=e) from e
        return parse_submission(data)

    async def fetch_document(self, cik: str, accession_no: str, primary_document: str) -> str:
        response = await self.fetch(build_filing_document_url(cik, accession_no, primary_document))
        return response.text
