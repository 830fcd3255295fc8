import uuid
from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from factgraph.database.models import Correction, ExtractionRun
from factgraph.repositories.base_repository import BaseRepository


class CorrectionRepository(BaseRepository[Correction]):
    """Append-only Correction rows."""

    def __init__(self, session: AsyncSession):
        super().__init__(session, Correction)

    async def record(
        self,
        target_assertion_id: uuid.UUID,
        action: str,
        reason: Optional[str] = None,
        created_by: Optional[str] = None,
        new_assertion_id: Optional[uuid.UUID] = None,
    ) -> Correction:
        return await self.create(
            id=uuid.uuid4(),
            target_assertion_id=target_assertion_id,
            action=action,
            reason=reason,
            created_by=created_by,
            new_assertion_id=new_assertion_id,
        )


class ExtractionRunRepository(BaseRepository[ExtractionRun]):
    """Append-only ExtractionRun audit records."""

    def __init__(self, session: AsyncSession):
        super().__init__(session, ExtractionRun)

    async def start(self, model: str, prompt_version: str, parameters: dict[str, Any]) -> ExtractionRun:
        return await self.create(
            id=uuid.uuid4(),
            model=model,
            prompt_version=prompt_version,
            parameters=parameters,
            started_at=datetime.now(timezone.utc),
        )

    async def finish(self, run_id: uuid.UUID) -> None:
        stmt = (
            update(ExtractionRun)
            .where(ExtractionRun.id == run_id)
            .values(finished_at=datetime.now(timezone.utc))
        )
        await self.session.execute(stmt)
