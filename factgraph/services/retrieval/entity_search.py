import re
from typing import List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from factgraph.repositories.entity_repository import EntityRepository
from factgraph.schemas.retrieval import EntitySearchHit
from factgraph.utils.identifiers import clamp_int, digits_only

_CORPORATE_SUFFIXES = re.compile(
    r"\b(incorporated|inc\.?|corp\.?|corporation|ltd\.?|limited|llc|plc|holdings?)\b",
    re.IGNORECASE,
)
_WHITESPACE = re.compile(r"\s+")
_TICKER = re.compile(r"^[A-Z]{1,5}$")
_CIK = re.compile(r"^\d{6,10}$")


def name_variants(query: str) -> List[str]:
    """Match variants so "Apple Inc." still finds "Apple".

    The query itself, the text before a comma, the query without corporate
    suffixes, and the first word of a multi-word query.
    """
    q = _WHITESPACE.sub(" ", (query or "").strip())
    if not q:
        return []

    candidates = [
        q,
        q.split(",", 1)[0].strip(),
        _WHITESPACE.sub(" ", _CORPORATE_SUFFIXES.sub("", q)).strip(" ,."),
    ]
    if " " in q:
        candidates.append(q.split(" ")[0].strip())

    out: List[str] = []
    for c in candidates:
        if c and c not in out:
            out.append(c)
    return out


class EntitySearchService:
    def __init__(self, session: AsyncSession):
        self.entities = EntityRepository(session)

    async def search(
        self,
        query: str,
        entity_type: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> List[EntitySearchHit]:
        variants = name_variants(query)
        if not variants:
            return []

        q = variants[0]
        ticker = q.upper() if _TICKER.match(q.upper()) else None
        digits = digits_only(q)
        cik_digits = digits if _CIK.match(digits) else None

        rows = await self.entities.search(
            variants,
            ticker=ticker,
            cik_digits=cik_digits,
            entity_type=entity_type,
            limit=clamp_int(limit, 10, 1, 50),
        )
        return [EntitySearchHit.model_validate(r) for r in rows]
