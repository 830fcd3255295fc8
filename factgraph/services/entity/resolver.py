"""Entity resolution service.

Resolves extracted entity mentions and filer profiles to stored entities.
Matching is exact on the (type, canonical_name) key after normalization;
there is no fuzzy identity resolution.
"""

from typing import Dict, List, Optional, Sequence, Tuple

from sqlalchemy.ext.asyncio import AsyncSession

from factgraph.database.models import Entity
from factgraph.repositories.entity_repository import (
    EntityRepository,
    merge_aliases,
    merge_identifiers,
)
from factgraph.schemas.extraction import ExtractedEntity
from factgraph.services.extraction.normalization import (
    entity_key,
    normalize_entity_type,
    normalize_identifiers,
)
from factgraph.utils.identifiers import normalize_cik
from factgraph.utils.logging import get_logger

LOGGER = get_logger(__name__)


class EntityResolver:
    """Find-or-create entities within the caller's transaction.

    Attributes:
        entities: Entity repository bound to the caller's session
    """

    def __init__(self, session: AsyncSession):
        self.entities = EntityRepository(session)

    async def resolve(
        self,
        entity_type: str,
        name: str,
        aliases: Optional[Sequence[str]] = None,
        identifiers: Optional[Dict[str, str]] = None,
    ) -> Entity:
        entity, created = await self.entities.upsert(entity_type, name, aliases, identifiers)
        if created:
            LOGGER.debug(
                "Created entity",
                extra={"entity_id": str(entity.id), "entity_type": entity_type, "entity_name": entity.canonical_name}
            )
        return entity

    async def resolve_extracted(
        self, candidates: Sequence[ExtractedEntity], relation_endpoints: Sequence[str] = ()
    ) -> Dict[str, Entity]:
        """Resolve one chunk's entities, keyed by lower-cased name.

        Relation endpoints not named among the typed entities become
        `concept` stubs. Upserts run in (type, name) order so concurrent
        chunks lock shared rows in the same order; a later typed candidate
        still wins a shared key, as in input order.
        """
        wanted: List[Tuple[str, str, Optional[Sequence[str]], Optional[Dict[str, str]]]] = []
        named = set()
        for candidate in candidates:
            name = candidate.name.strip()
            wanted.append(
                (
                    normalize_entity_type(candidate.type),
                    name,
                    candidate.aliases,
                    normalize_identifiers(candidate.identifiers),
                )
            )
            named.add(entity_key(name))

        for name in relation_endpoints:
            key = entity_key(name)
            if not key or key in named:
                continue
            wanted.append(("concept", name.strip(), None, None))
            named.add(key)

        resolved: Dict[int, Entity] = {}
        for i in sorted(range(len(wanted)), key=lambda i: wanted[i][:2]):
            entity_type, name, aliases, identifiers = wanted[i]
            resolved[i] = await self.resolve(entity_type, name, aliases=aliases, identifiers=identifiers)

        by_key: Dict[str, Entity] = {}
        for i in range(len(wanted)):
            by_key[entity_key(resolved[i].canonical_name)] = resolved[i]
        return by_key

    async def upsert_company_stub(
        self, cik: str, name: str, ticker: Optional[str] = None
    ) -> Optional[Entity]:
        """Make sure a filer has a company entity carrying its CIK and ticker.

        An existing company matched by CIK identifier or name keeps its
        canonical name and gains the identifiers and aliases.
        """
        cik = normalize_cik(cik)
        name = (name or "").strip()
        ticker = (ticker or "").strip().upper() or None
        if not cik or not name:
            return None

        identifiers = {"cik": cik}
        if ticker:
            identifiers["ticker"] = ticker
        aliases = [a for a in (name, ticker) if a]

        existing = await self.entities.find_company_for_filer(cik, name)
        if existing is None:
            entity, _ = await self.entities.upsert("company", name, aliases, identifiers)
            return entity

        return (
            await self.entities.upsert(
                "company",
                existing.canonical_name,
                merge_aliases(existing.aliases, aliases),
                merge_identifiers(existing.identifiers, identifiers),
            )
        )[0]
