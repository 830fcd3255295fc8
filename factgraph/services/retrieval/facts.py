from sqlalchemy.ext.asyncio import AsyncSession

from factgraph.repositories.assertion_repository import AssertionRepository
from factgraph.schemas.fact import AssertionRecord, FactsQuery, FactsResult
from factgraph.utils.identifiers import clamp_int


class FactsService:
    """Exact filtered lookups over assertions. No filter means no rows."""

    def __init__(self, session: AsyncSession):
        self.assertions = AssertionRepository(session)

    async def query(self, request: FactsQuery) -> FactsResult:
        if not request.has_filter():
            return FactsResult()

        rows = await self.assertions.query_facts(
            subject_entity_id=request.subject_entity_id,
            predicate=request.predicate,
            object_entity_id=request.object_entity_id,
            status=request.status,
            limit=clamp_int(request.limit, 50, 1, 200),
        )
        return FactsResult(facts=[AssertionRecord.model_validate(r) for r in rows])
