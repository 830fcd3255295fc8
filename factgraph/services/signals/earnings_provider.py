"""Consensus EPS estimates from the Massive (Benzinga partner) earnings feed.

Rows are fetched per ticker, mapped to `eps_est_<period>_<year>` signals
for the company's CIK and upserted through the regular signal path.
"""

import math
import re
from collections import defaultdict
from datetime import date
from typing import Any, Dict, List, Optional, Sequence

import httpx
from sqlalchemy.ext.asyncio import AsyncSession

from factgraph.core.config import EarningsSettings
from factgraph.core.exceptions import AppError, UpstreamError
from factgraph.repositories.entity_repository import EntityRepository
from factgraph.schemas.signals import (
    EarningsIngestRequest,
    EarningsIngestResult,
    EarningsTickerOutcome,
    SignalIngestRow,
)
from factgraph.services.signals.signal_service import SignalService
from factgraph.utils.logging import get_logger

LOGGER = get_logger(__name__)

EARNINGS_PATH = "/benzinga/v1/earnings"
EARNINGS_DOCS_URL = "https://massive.com/docs/rest/partners/benzinga/earnings"
EARNINGS_SOURCE = "massive_benzinga"
EARNINGS_CONFIDENCE = 0.9
NEXT_EVENT_KEY = "eps_est_next"
DEFAULT_CURRENCY = "USD"

RAW_FIELDS = ("benzinga_id", "company_name", "fiscal_period", "fiscal_year", "last_updated", "eps_method", "importance")


def safe_key_part(value: Any) -> str:
    return re.sub(r"[^a-z0-9]+", "_", str(value).lower()).strip("_")


def _date_only(value: Any) -> Optional[date]:
    if not isinstance(value, str) or len(value) < 10:
        return None
    try:
        return date.fromisoformat(value[:10])
    except ValueError:
        return None


def _eps(row: Dict[str, Any]) -> Optional[float]:
    value = row.get("estimated_eps")
    if isinstance(value, bool) or not isinstance(value, (int, float)) or not math.isfinite(value):
        return None
    return float(value)


def _signal_row(ticker: str, cik: str, row: Dict[str, Any], signal_key: str, as_of: date, **extra) -> SignalIngestRow:
    raw = {"ticker": ticker, **{field: row.get(field) for field in RAW_FIELDS}}
    raw["earnings_date"] = row.get("date")
    raw.update(extra)
    return SignalIngestRow(
        cik=cik,
        signal_key=signal_key,
        as_of_date=as_of,
        value=_eps(row),
        unit=row.get("currency") or DEFAULT_CURRENCY,
        source=EARNINGS_SOURCE,
        source_ref=row.get("benzinga_id"),
        source_url=EARNINGS_DOCS_URL,
        confidence=EARNINGS_CONFIDENCE,
        raw=raw,
    )


def group_by_ticker(rows: Sequence[Dict[str, Any]]) -> Dict[str, List[Dict[str, Any]]]:
    """Rows keyed by upper-cased ticker; rows without one are dropped."""
    grouped: Dict[str, List[Dict[str, Any]]] = defaultdict(list)
    for row in rows:
        ticker = (row.get("ticker") or "").strip().upper()
        if ticker:
            grouped[ticker].append(row)
    return dict(grouped)


def map_earnings_rows(
    ticker: str,
    cik: str,
    rows: Sequence[Dict[str, Any]],
    include_next_alias: bool = True,
    today: Optional[date] = None,
) -> List[SignalIngestRow]:
    """Signals for one ticker's earnings rows.

    Each row with an estimate, fiscal period and fiscal year becomes an
    `eps_est_<period>_<year>` observation dated by `last_updated` (falling
    back to the earnings date). With `include_next_alias`, the earliest
    event on or after `today` is also written as `eps_est_next`.
    """
    out: List[SignalIngestRow] = []
    for row in rows:
        if _eps(row) is None or not row.get("fiscal_period") or not row.get("fiscal_year"):
            continue
        as_of = _date_only(row.get("last_updated")) or _date_only(row.get("date"))
        if as_of is None:
            continue
        signal_key = f"eps_est_{safe_key_part(row['fiscal_period'])}_{row['fiscal_year']}"
        out.append(_signal_row(ticker, cik, row, signal_key, as_of))

    if include_next_alias:
        today_str = (today or date.today()).isoformat()
        upcoming = sorted(
            (r for r in rows if (r.get("date") or "") >= today_str and _eps(r) is not None),
            key=lambda r: r.get("date") or "",
        )
        if upcoming:
            nxt = upcoming[0]
            as_of = _date_only(nxt.get("last_updated")) or _date_only(nxt.get("date"))
            if as_of is not None:
                out.append(_signal_row(ticker, cik, nxt, NEXT_EVENT_KEY, as_of, alias=True))

    return out


class MassiveEarningsClient:
    """GETs the earnings feed with bearer auth. Failures raise UpstreamError."""

    def __init__(self, settings: EarningsSettings, http_client: Optional[httpx.AsyncClient] = None):
        self.base_url = settings.base_url.strip().rstrip("/")
        self.api_key = settings.api_key.strip()
        self.timeout = settings.timeout
        self._client = http_client

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()

    async def fetch_earnings(
        self,
        ticker: str,
        date_gte: Optional[str] = None,
        date_lte: Optional[str] = None,
        last_updated_gte: Optional[str] = None,
        limit: int = 5000,
    ) -> List[Dict[str, Any]]:
        params = {
            "ticker": ticker,
            "date.gte": date_gte,
            "date.lte": date_lte,
            "last_updated.gte": last_updated_gte,
            "limit": limit,
            "sort": "last_updated.desc",
        }
        url = self.base_url + EARNINGS_PATH
        try:
            response = await self.client.get(
                url,
                params={k: v for k, v in params.items() if v is not None},
                headers={"Accept": "application/json", "Authorization": f"Bearer {self.api_key}"},
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            LOGGER.error(
                f"Earnings fetch failed with HTTP {e.response.status_code}",
                extra={"ticker": ticker}
            )
            raise UpstreamError(
                f"Earnings fetch failed ({e.response.status_code}) for {ticker}", original_error=e
            ) from e
        except httpx.HTTPError as e:
            LOGGER.error(f"Earnings fetch failed: {e}", extra={"ticker": ticker})
            raise UpstreamError(f"Earnings fetch failed for {ticker}: {e}", original_error=e) from e

        try:
            data = response.json()
        except ValueError as e:
            raise UpstreamError(f"Earnings response for {ticker} is not valid JSON", original_error=e) from e

        results = data.get("results") if isinstance(data, dict) else None
        return [r for r in results or [] if isinstance(r, dict)]


class EarningsIngestionService:
    """Fetches earnings rows per ticker, resolves CIKs and upserts the estimates."""

    def __init__(self, session: AsyncSession, client: MassiveEarningsClient):
        self.session = session
        self.client = client
        self.entities = EntityRepository(session)
        self.signals = SignalService(session)

    async def ingest(self, request: EarningsIngestRequest, today: Optional[date] = None) -> EarningsIngestResult:
        if not self.client.configured:
            raise AppError("MASSIVE_API_KEY is not configured")

        tickers = list(dict.fromkeys(t.strip().upper() for t in request.tickers if t.strip()))
        result = EarningsIngestResult(tickers_requested=len(tickers))
        prepared: List[SignalIngestRow] = []

        for ticker in tickers:
            rows = await self.client.fetch_earnings(
                ticker,
                date_gte=request.date_gte,
                date_lte=request.date_lte,
                last_updated_gte=request.last_updated_gte,
                limit=request.limit,
            )
            outcome = EarningsTickerOutcome(ticker=ticker, fetched=len(rows))
            result.rows_fetched += len(rows)

            cik = await self.entities.resolve_cik_by_ticker(ticker)
            if not cik:
                outcome.skipped_no_cik = True
            else:
                for row_ticker, group in group_by_ticker(rows).items():
                    if row_ticker == ticker:
                        prepared.extend(
                            map_earnings_rows(ticker, cik, group, request.include_next_alias, today)
                        )
            result.per_ticker.append(outcome)

        result.signal_rows_prepared = len(prepared)
        result.ingest = await self.signals.ingest(prepared)

        LOGGER.info(
            "Earnings estimates ingested",
            extra={
                "tickers": result.tickers_requested,
                "rows_fetched": result.rows_fetched,
                "prepared": result.signal_rows_prepared,
                "skipped_no_cik": sum(1 for o in result.per_ticker if o.skipped_no_cik),
            }
        )
        return result
