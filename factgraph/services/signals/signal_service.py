import math
from typing import Any, Dict, Optional, Sequence

from sqlalchemy.ext.asyncio import AsyncSession

from factgraph.repositories.entity_repository import EntityRepository
from factgraph.repositories.signal_repository import SignalRepository
from factgraph.schemas.signals import SignalIngestRow, SignalIngestResult
from factgraph.utils.identifiers import normalize_cik
from factgraph.utils.logging import get_logger

LOGGER = get_logger(__name__)

DEFAULT_SOURCE = "manual"
DEFAULT_CONFIDENCE = 0.9
MAX_SOURCE_LENGTH = 128


def _strip_or_none(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    return value.strip() or None


def normalize_signal_row(row: SignalIngestRow) -> Optional[Dict[str, Any]]:
    """Column values for one observation, or None when the row must be skipped."""
    cik = normalize_cik(row.cik)
    signal_key = (row.signal_key or "").strip()
    if not cik or not signal_key or row.as_of_date is None:
        return None
    if row.value is None or not math.isfinite(row.value):
        return None

    confidence = row.confidence
    if confidence is None or not math.isfinite(confidence):
        confidence = DEFAULT_CONFIDENCE
    confidence = max(0.0, min(1.0, confidence))

    return {
        "cik": cik,
        "signal_key": signal_key,
        "as_of_date": row.as_of_date,
        "value": float(row.value),
        "unit": _strip_or_none(row.unit),
        "source": ((row.source or "").strip() or DEFAULT_SOURCE)[:MAX_SOURCE_LENGTH],
        "source_ref": _strip_or_none(row.source_ref),
        "source_url": _strip_or_none(row.source_url),
        "confidence": confidence,
        "raw": dict(row.raw or {}),
    }


class SignalService:
    """Upserts dated numeric observations and links them to company entities when one exists."""

    def __init__(self, session: AsyncSession):
        self.session = session
        self.signals = SignalRepository(session)
        self.entities = EntityRepository(session)

    async def ingest(self, rows: Sequence[SignalIngestRow]) -> SignalIngestResult:
        result = SignalIngestResult()
        entity_by_cik: Dict[str, Any] = {}

        try:
            for row in rows:
                values = normalize_signal_row(row)
                if values is None:
                    result.skipped += 1
                    continue

                cik = values["cik"]
                if cik not in entity_by_cik:
                    entity = await self.entities.find_company_by_cik(cik)
                    entity_by_cik[cik] = entity.id if entity else None
                values["subject_entity_id"] = entity_by_cik[cik]
                if values["subject_entity_id"] is not None:
                    result.resolved_entity_ids += 1

                if await self.signals.upsert_signal(values):
                    result.inserted += 1
                else:
                    result.updated += 1

            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise

        LOGGER.info(
            "Signals ingested",
            extra={
                "inserted": result.inserted,
                "updated": result.updated,
                "skipped": result.skipped,
                "resolved_entity_ids": result.resolved_entity_ids,
            }
        )
        return result
