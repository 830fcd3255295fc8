"""Rising-EPS plus positive-flow screen over the signals table.

The window rows are fetched per key and the screen itself is computed in
Python, so the rules are testable without a database.
"""

import math
from collections import defaultdict
from datetime import date, timedelta
from typing import Dict, Iterable, List, Optional, Tuple

from sqlalchemy.ext.asyncio import AsyncSession

from factgraph.repositories.signal_repository import SignalRepository
from factgraph.schemas.signals import (
    EpsTrend,
    FlowTotal,
    ScreenSignalsRequest,
    ScreenSignalsResult,
    ScreenSignalsRow,
)
from factgraph.utils.identifiers import clamp_int, normalize_cik

DEFAULT_EPS_KEY = "eps_ntm_consensus"
DEFAULT_FLOW_KEY = "fund_flow_4w_usd"
MAX_KEY_LENGTH = 128

SignalPoint = Tuple[str, date, float]


def _key(value: Optional[str], default: str) -> str:
    return ((value or "").strip() or default)[:MAX_KEY_LENGTH]


def _threshold(value: Optional[float]) -> float:
    """Missing, NaN or infinite thresholds fall back to 0."""
    if value is None or not math.isfinite(value):
        return 0.0
    return float(value)


def eps_trends(rows: Iterable[SignalPoint], key: str) -> Dict[str, EpsTrend]:
    """Earliest vs latest observation per CIK."""
    by_cik: Dict[str, List[Tuple[date, float]]] = defaultdict(list)
    for cik, as_of, value in rows:
        by_cik[cik].append((as_of, value))

    trends = {}
    for cik, points in by_cik.items():
        points.sort(key=lambda p: p[0])
        (first_date, first_value), (last_date, last_value) = points[0], points[-1]
        trends[cik] = EpsTrend(
            key=key,
            earliest_date=first_date,
            earliest_value=first_value,
            latest_date=last_date,
            latest_value=last_value,
            delta=last_value - first_value,
        )
    return trends


def flow_totals(rows: Iterable[SignalPoint], key: str) -> Dict[str, FlowTotal]:
    """Sum of values per CIK with the date range covered."""
    totals: Dict[str, FlowTotal] = {}
    for cik, as_of, value in rows:
        current = totals.get(cik)
        if current is None:
            totals[cik] = FlowTotal(key=key, start_date=as_of, end_date=as_of, sum=value)
            continue
        current.sum += value
        current.start_date = min(current.start_date, as_of)
        current.end_date = max(current.end_date, as_of)
    return totals


def screen(
    eps_rows: Iterable[SignalPoint],
    flow_rows: Iterable[SignalPoint],
    eps_key: str,
    flow_key: str,
    eps_min_delta: Optional[float] = 0.0,
    flow_min_sum: Optional[float] = 0.0,
    limit: int = 50,
) -> List[ScreenSignalsRow]:
    """CIKs with both series, delta > eps_min_delta and sum > flow_min_sum, largest flow first."""
    eps_min_delta = _threshold(eps_min_delta)
    flow_min_sum = _threshold(flow_min_sum)
    trends = eps_trends(eps_rows, eps_key)
    flows = flow_totals(flow_rows, flow_key)

    matched = [
        ScreenSignalsRow(cik=cik, eps=trends[cik], flows=flows[cik])
        for cik in trends
        if cik in flows
        and trends[cik].delta > eps_min_delta
        and flows[cik].sum > flow_min_sum
    ]
    matched.sort(key=lambda r: (-r.flows.sum, r.cik))
    return matched[:limit]


class SignalScreener:
    def __init__(self, session: AsyncSession):
        self.signals = SignalRepository(session)

    async def screen(self, request: ScreenSignalsRequest) -> ScreenSignalsResult:
        eps_key = _key(request.eps_key, DEFAULT_EPS_KEY)
        flow_key = _key(request.flow_key, DEFAULT_FLOW_KEY)
        eps_days = clamp_int(request.eps_lookback_days, 90, 7, 365)
        flow_days = clamp_int(request.flow_lookback_days, 28, 7, 365)
        limit = clamp_int(request.limit, 50, 1, 200)
        ciks = [c for c in (normalize_cik(c) for c in request.ciks or []) if c]

        end = request.as_of or date.today()
        eps_rows = await self.signals.get_window(eps_key, end - timedelta(days=eps_days), end, ciks)
        flow_rows = await self.signals.get_window(flow_key, end - timedelta(days=flow_days), end, ciks)

        rows = screen(
            eps_rows,
            flow_rows,
            eps_key,
            flow_key,
            eps_min_delta=request.eps_min_delta,
            flow_min_sum=request.flow_min_sum,
            limit=limit,
        )
        return ScreenSignalsResult(
            eps_key=eps_key,
            flow_key=flow_key,
            eps_window_days=eps_days,
            flow_window_days=flow_days,
            matched=len(rows),
            rows=rows,
        )
