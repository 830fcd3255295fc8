"""Detects single-valued predicates holding more than one current value."""

import json
from collections import OrderedDict
from typing import Optional, Sequence

from sqlalchemy.ext.asyncio import AsyncSession

from factgraph.core.config import RetrievalSettings
from factgraph.database.models import Assertion
from factgraph.repositories.assertion_repository import AssertionRepository
from factgraph.schemas.conflict import ConflictReport, ConflictWarning
from factgraph.schemas.fact import AssertionFilter
from factgraph.utils.identifiers import clamp_int
from factgraph.utils.logging import get_logger

LOGGER = get_logger(__name__)

NULL_VALUE = "NULL"
MAX_SCAN_LIMIT = 5000


def assertion_value(assertion: Assertion) -> str:
    """Comparable value of an assertion: object id, else the JSON literal, else NULL."""
    if assertion.object_entity_id is not None:
        return str(assertion.object_entity_id)
    if assertion.literal_value is not None:
        return json.dumps(assertion.literal_value, sort_keys=True, default=str)
    return NULL_VALUE


def group_conflicts(assertions: Sequence[Assertion]) -> list[ConflictWarning]:
    """Group by (subject, predicate) and keep groups with more than one distinct value."""
    groups: "OrderedDict[tuple, list[Assertion]]" = OrderedDict()
    for a in assertions:
        groups.setdefault((a.subject_entity_id, a.predicate), []).append(a)

    conflicts = []
    for (subject_id, predicate), members in groups.items():
        values: list[str] = []
        for a in members:
            v = assertion_value(a)
            if v not in values:
                values.append(v)
        if len(values) > 1:
            conflicts.append(
                ConflictWarning(
                    subject_entity_id=subject_id,
                    predicate=predicate,
                    values=values,
                    assertion_ids=[a.id for a in members],
                )
            )
    return conflicts


class ConflictDetector:
    """Read-only scan of active assertions for the configured single-valued predicates."""

    def __init__(self, session: AsyncSession, settings: RetrievalSettings):
        self.assertions = AssertionRepository(session)
        self.settings = settings

    async def detect(
        self,
        predicates: Optional[Sequence[str]] = None,
        limit: Optional[int] = None,
    ) -> ConflictReport:
        wanted = [p.strip().upper() for p in (predicates or []) if p and p.strip()]
        if not wanted:
            wanted = list(self.settings.single_valued_predicates)

        scan_limit = clamp_int(limit, self.settings.conflict_scan_limit, 1, MAX_SCAN_LIMIT)

        rows = await self.assertions.find_active_assertions(
            AssertionFilter(predicates=wanted), limit=scan_limit
        )
        conflicts = group_conflicts(rows)

        if conflicts:
            LOGGER.warning(
                f"Detected {len(conflicts)} single-valued predicate conflicts",
                extra={"predicates": wanted, "scanned": len(rows)}
            )

        return ConflictReport(
            predicates=wanted,
            scanned=len(rows),
            truncated=len(rows) >= scan_limit,
            conflicts=conflicts,
        )
