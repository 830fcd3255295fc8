from datetime import date
from typing import Any, Optional

from pydantic import BaseModel, Field


class SignalIngestRow(BaseModel):
    """One incoming observation; normalized and filtered before upsert."""

    cik: str
    signal_key: str
    as_of_date: Optional[date] = None
    value: float
    unit: Optional[str] = None
    source: Optional[str] = None
    source_ref: Optional[str] = None
    source_url: Optional[str] = None
    confidence: Optional[float] = None
    raw: dict[str, Any] = Field(default_factory=dict)


class SignalIngestRequest(BaseModel):
    rows: list[SignalIngestRow] = Field(default_factory=list)


class SignalIngestResult(BaseModel):
    inserted: int = 0
    updated: int = 0
    skipped: int = 0
    resolved_entity_ids: int = 0


class ScreenSignalsRequest(BaseModel):
    ciks: Optional[list[str]] = None
    eps_key: Optional[str] = None
    eps_lookback_days: Optional[int] = None
    eps_min_delta: Optional[float] = None
    flow_key: Optional[str] = None
    flow_lookback_days: Optional[int] = None
    flow_min_sum: Optional[float] = None
    limit: Optional[int] = None
    as_of: Optional[date] = Field(default=None, description="Window end; defaults to today")


class EpsTrend(BaseModel):
    key: str
    earliest_date: date
    earliest_value: float
    latest_date: date
    latest_value: float
    delta: float


class FlowTotal(BaseModel):
    key: str
    start_date: date
    end_date: date
    sum: float


class ScreenSignalsRow(BaseModel):
    cik: str
    eps: EpsTrend
    flows: FlowTotal


class ScreenSignalsResult(BaseModel):
    eps_key: str
    flow_key: str
    eps_window_days: int
    flow_window_days: int
    matched: int = 0
    rows: list[ScreenSignalsRow] = Field(default_factory=list)


class EarningsIngestRequest(BaseModel):
    """Pull consensus EPS estimates for a set of tickers and store them as signals."""

    tickers: list[str] = Field(min_length=1, max_length=200)
    last_updated_gte: Optional[str] = Field(default=None, description="Only rows updated on/after this date")
    date_gte: Optional[str] = Field(default=None, description="Earnings date lower bound (YYYY-MM-DD)")
    date_lte: Optional[str] = Field(default=None, description="Earnings date upper bound (YYYY-MM-DD)")
    limit: int = Field(default=5000, ge=1, le=50000)
    include_next_alias: bool = Field(default=True, description="Also write eps_est_next for the next upcoming event")


class EarningsTickerOutcome(BaseModel):
    ticker: str
    fetched: int = 0
    skipped_no_cik: bool = False


class EarningsIngestResult(BaseModel):
    ok: bool = True
    tickers_requested: int = 0
    rows_fetched: int = 0
    signal_rows_prepared: int = 0
    ingest: SignalIngestResult = Field(default_factory=SignalIngestResult)
    per_ticker: list[EarningsTickerOutcome] = Field(default_factory=list)
