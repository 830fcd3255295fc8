import uuid
from datetime import datetime, timezone
from typing import Optional, Sequence

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from factgraph.core.exceptions import ValidationError
from factgraph.database.models import Assertion
from factgraph.repositories.base_repository import BaseRepository
from factgraph.schemas.fact import AssertionDraft, AssertionFilter


def validate_draft(draft: AssertionDraft) -> None:
    """Exactly one of object_entity_id / literal_value must be set, and a predicate given."""
    if not (draft.predicate or "").strip():
        raise ValidationError("Assertion requires a predicate")

    has_object = draft.object_entity_id is not None
    has_literal = draft.literal_value is not None
    if has_object == has_literal:
        raise ValidationError(
            "Assertion requires exactly one of object_entity_id or literal_value"
        )


class AssertionRepository(BaseRepository[Assertion]):
    """Repository for versioned Assertion rows.

    Rows are never deleted and their subject/predicate/object never change;
    only status and valid_to move, and only from active.
    """

    def __init__(self, session: AsyncSession):
        super().__init__(session, Assertion)

    async def get_for_update(self, assertion_id: uuid.UUID) -> Optional[Assertion]:
        """Load and row-lock an assertion for the rest of the transaction."""
        query = select(Assertion).where(Assertion.id == assertion_id).with_for_update()
        result = await self.session.execute(query)
        return result.scalar_one_or_none()

    async def insert_assertion(self, draft: AssertionDraft) -> Assertion:
        """Insert a new active assertion.

        Raises:
            ValidationError: neither or both of object_entity_id and literal_value set
        """
        validate_draft(draft)
        return await self.create(
            id=uuid.uuid4(),
            subject_entity_id=draft.subject_entity_id,
            predicate=draft.predicate.strip(),
            object_entity_id=draft.object_entity_id,
            literal_value=draft.literal_value,
            confidence=draft.confidence,
            source_document_id=draft.source_document_id,
            source_chunk_id=draft.source_chunk_id,
            extraction_run_id=draft.extraction_run_id,
            valid_from=draft.valid_from or datetime.now(timezone.utc),
            valid_to=None,
            status="active",
        )

    async def insert_many(self, drafts: Sequence[AssertionDraft]) -> list[Assertion]:
        rows = []
        for draft in drafts:
            validate_draft(draft)
            rows.append(
                Assertion(
                    id=uuid.uuid4(),
                    subject_entity_id=draft.subject_entity_id,
                    predicate=draft.predicate.strip(),
                    object_entity_id=draft.object_entity_id,
                    literal_value=draft.literal_value,
                    confidence=draft.confidence,
                    source_document_id=draft.source_document_id,
                    source_chunk_id=draft.source_chunk_id,
                    extraction_run_id=draft.extraction_run_id,
                    valid_from=draft.valid_from or datetime.now(timezone.utc),
                    valid_to=None,
                    status="active",
                )
            )
        self.session.add_all(rows)
        await self.session.flush()
        return rows

    async def update_assertion_status(
        self, assertion_id: uuid.UUID, status: str, valid_to: datetime
    ) -> int:
        """Close an active assertion. Returns rows changed (0 when not active)."""
        if status not in ("retracted", "superseded"):
            raise ValidationError(f"Cannot close an assertion with status '{status}'")
        stmt = (
            update(Assertion)
            .where(Assertion.id == assertion_id, Assertion.status == "active")
            .values(status=status, valid_to=valid_to)
            .execution_options(synchronize_session="fetch")
        )
        result = await self.session.execute(stmt)
        return result.rowcount

    async def find_active_assertions(
        self, filters: AssertionFilter, limit: int = 2000
    ) -> list[Assertion]:
        """Currently valid assertions (status active, valid_to null)."""
        query = select(Assertion).where(
            Assertion.status == "active",
            Assertion.valid_to.is_(None),
        )
        if filters.subject_entity_id:
            query = query.where(Assertion.subject_entity_id == filters.subject_entity_id)
        if filters.predicate:
            query = query.where(Assertion.predicate == filters.predicate)
        if filters.object_entity_id:
            query = query.where(Assertion.object_entity_id == filters.object_entity_id)
        if filters.predicates:
            query = query.where(Assertion.predicate.in_(filters.predicates))

        query = query.order_by(Assertion.subject_entity_id, Assertion.valid_from).limit(limit)
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def query_facts(
        self,
        subject_entity_id: Optional[uuid.UUID] = None,
        predicate: Optional[str] = None,
        object_entity_id: Optional[uuid.UUID] = None,
        status: Optional[str] = None,
        limit: int = 50,
    ) -> list[Assertion]:
        """Exact filtered lookup, newest valid_from first. Empty without a filter."""
        conditions = []
        if subject_entity_id:
            conditions.append(Assertion.subject_entity_id == subject_entity_id)
        if predicate:
            conditions.append(Assertion.predicate == predicate)
        if object_entity_id:
            conditions.append(Assertion.object_entity_id == object_entity_id)
        if status:
            conditions.append(Assertion.status == status)

        if not conditions:
            return []

        query = (
            select(Assertion)
            .where(*conditions)
            .order_by(Assertion.valid_from.desc())
            .limit(limit)
        )
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def get_source_chunk_ids(
        self, assertion_ids: Sequence[uuid.UUID]
    ) -> dict[uuid.UUID, Optional[uuid.UUID]]:
        if not assertion_ids:
            return {}
        query = select(Assertion.id, Assertion.source_chunk_id).where(
            Assertion.id.in_(list(assertion_ids))
        )
        result = await self.session.execute(query)
        return {row.id: row.source_chunk_id for row in result}
