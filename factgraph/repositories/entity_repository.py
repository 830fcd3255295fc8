import uuid
from datetime import datetime, timezone
from typing import Optional, Sequence

from sqlalchemy import and_, func, or_, select
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession

from factgraph.database.models import Entity
from factgraph.repositories.base_repository import BaseRepository


def merge_aliases(existing: Sequence[str] | None, incoming: Sequence[str] | None) -> list[str]:
    """Set union of aliases, first-seen order, blanks dropped."""
    out: list[str] = []
    for alias in [*(existing or []), *(incoming or [])]:
        value = (alias or "").strip()
        if value and value not in out:
            out.append(value)
    return out


def merge_identifiers(existing: dict | None, incoming: dict | None) -> dict[str, str]:
    """Incoming identifiers overwrite existing ones on key collision."""
    return {**(existing or {}), **(incoming or {})}


def _cik_identifier_matches(cik: str):
    return or_(
        Entity.identifiers["cik"].astext == cik,
        Entity.identifiers["CIK"].astext == cik,
    )


class EntityRepository(BaseRepository[Entity]):
    """Repository for Entity records keyed by (type, canonical_name)."""

    def __init__(self, session: AsyncSession):
        super().__init__(session, Entity)

    async def get_by_key(
        self, entity_type: str, canonical_name: str, for_update: bool = False
    ) -> Optional[Entity]:
        """Exact, case-sensitive lookup on the dedup key."""
        query = select(Entity).where(
            Entity.type == entity_type,
            Entity.canonical_name == canonical_name,
        )
        if for_update:
            query = query.with_for_update()
        result = await self.session.execute(query)
        return result.scalar_one_or_none()

    async def upsert(
        self,
        entity_type: str,
        canonical_name: str,
        aliases: Optional[Sequence[str]] = None,
        identifiers: Optional[dict[str, str]] = None,
    ) -> tuple[Entity, bool]:
        """Insert the (type, canonical_name) row if absent, else merge into it.

        The insert skips on a unique conflict, so concurrent callers racing on
        a new key all end up holding the same row lock.

        Returns:
            (entity, created)
        """
        canonical_name = canonical_name.strip()
        now = datetime.now(timezone.utc)
        stmt = (
            insert(Entity)
            .values(
                id=uuid.uuid4(),
                type=entity_type,
                canonical_name=canonical_name,
                aliases=merge_aliases([], aliases),
                identifiers=dict(identifiers or {}),
                created_at=now,
                updated_at=now,
            )
            .on_conflict_do_nothing(index_elements=[Entity.type, Entity.canonical_name])
            .returning(Entity.id)
        )
        inserted_id = (await self.session.execute(stmt)).scalar_one_or_none()

        # Entities are never deleted, so the key resolves either way
        entity = await self.get_by_key(entity_type, canonical_name, for_update=True)
        if inserted_id is not None:
            return entity, True

        merged_aliases = merge_aliases(entity.aliases, aliases)
        merged_identifiers = merge_identifiers(entity.identifiers, identifiers)

        if merged_aliases != list(entity.aliases or []) or merged_identifiers != dict(entity.identifiers or {}):
            # New objects so the JSONB columns are flagged dirty
            entity.aliases = merged_aliases
            entity.identifiers = merged_identifiers
            entity.updated_at = now
            await self.session.flush()
        return entity, False

    async def find_company_by_cik(self, cik: str) -> Optional[Entity]:
        """Company entity whose identifiers hold this normalized CIK under `cik` or `CIK`."""
        if not cik:
            return None
        query = (
            select(Entity)
            .where(Entity.type == "company", _cik_identifier_matches(cik))
            .limit(1)
        )
        result = await self.session.execute(query)
        return result.scalar_one_or_none()

    async def find_company_for_filer(self, cik: str, name: str) -> Optional[Entity]:
        """Existing company stub for a filer: by CIK identifier, else by name containment."""
        conditions = [_cik_identifier_matches(cik)]
        if name:
            conditions.append(Entity.canonical_name.ilike(f"%{name}%"))
        query = (
            select(Entity)
            .where(Entity.type == "company", or_(*conditions))
            .limit(1)
            .with_for_update()
        )
        result = await self.session.execute(query)
        return result.scalar_one_or_none()

    async def search(
        self,
        name_variants: Sequence[str],
        ticker: Optional[str] = None,
        cik_digits: Optional[str] = None,
        entity_type: Optional[str] = None,
        limit: int = 10,
    ) -> list[Entity]:
        """Case-insensitive containment on any name variant, or a ticker/CIK identifier match."""
        conditions = [Entity.canonical_name.ilike(f"%{v}%") for v in name_variants if v]
        if ticker:
            conditions.append(Entity.identifiers["ticker"].astext == ticker)
        if cik_digits:
            conditions.append(Entity.identifiers["cik"].astext.ilike(f"%{cik_digits}%"))
        if not conditions:
            return []

        match_any = or_(*conditions)
        where = and_(Entity.type == entity_type, match_any) if entity_type else match_any

        query = select(Entity).where(where).limit(limit)
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def resolve_cik_by_ticker(self, ticker: str) -> Optional[str]:
        cik_expr = func.coalesce(Entity.identifiers["cik"].astext, Entity.identifiers["CIK"].astext)
        query = (
            select(cik_expr)
            .where(Entity.type == "company", Entity.identifiers["ticker"].astext == ticker)
            .limit(1)
        )
        result = await self.session.execute(query)
        return result.scalar_one_or_none()

    async def resolve_cik_by_name(self, name: str) -> Optional[str]:
        cik_expr = func.coalesce(Entity.identifiers["cik"].astext, Entity.identifiers["CIK"].astext)
        query = (
            select(cik_expr)
            .where(
                Entity.type == "company",
                Entity.canonical_name.ilike(f"%{name}%"),
                or_(Entity.identifiers.has_key("cik"), Entity.identifiers.has_key("CIK")),
            )
            .limit(1)
        )
        result = await self.session.execute(query)
        return result.scalar_one_or_none()
