import uuid
from datetime import date, datetime, timezone
from typing import Any, Optional, Sequence

from sqlalchemy import literal_column, select
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession

from factgraph.database.models import Signal
from factgraph.repositories.base_repository import BaseRepository


class SignalRepository(BaseRepository[Signal]):
    """Time-series signals, unique on (cik, signal_key, as_of_date, source)."""

    def __init__(self, session: AsyncSession):
        super().__init__(session, Signal)

    async def upsert_signal(self, row: dict[str, Any]) -> bool:
        """Insert or update in place (no versioning).

        Returns:
            True when a new row was inserted, False when an existing one was updated.
        """
        now = datetime.now(timezone.utc)
        values = {"id": uuid.uuid4(), "created_at": now, "updated_at": now, **row}

        stmt = insert(Signal).values(**values)
        stmt = stmt.on_conflict_do_update(
            index_elements=[Signal.cik, Signal.signal_key, Signal.as_of_date, Signal.source],
            set_={
                "subject_entity_id": stmt.excluded.subject_entity_id,
                "value": stmt.excluded.value,
                "unit": stmt.excluded.unit,
                "source_ref": stmt.excluded.source_ref,
                "source_url": stmt.excluded.source_url,
                "confidence": stmt.excluded.confidence,
                "raw": stmt.excluded.raw,
                "updated_at": now,
            },
        ).returning(Signal.id, literal_column("(xmax = 0)").label("inserted"))

        result = await self.session.execute(stmt)
        return bool(result.one().inserted)

    async def get_window(
        self,
        signal_key: str,
        start: date,
        end: date,
        ciks: Optional[Sequence[str]] = None,
    ) -> list[tuple[str, date, float]]:
        """(cik, as_of_date, value) for one key within [start, end], oldest first."""
        query = select(Signal.cik, Signal.as_of_date, Signal.value).where(
            Signal.signal_key == signal_key,
            Signal.as_of_date >= start,
            Signal.as_of_date <= end,
        )
        if ciks:
            query = query.where(Signal.cik.in_(list(ciks)))
        query = query.order_by(Signal.cik, Signal.as_of_date)

        result = await self.session.execute(query)
        return [(row.cik, row.as_of_date, float(row.value)) for row in result]
