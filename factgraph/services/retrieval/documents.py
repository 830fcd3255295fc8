import re
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from factgraph.database.models import Document
from factgraph.repositories.document_repository import DocumentRepository
from factgraph.repositories.entity_repository import EntityRepository
from factgraph.utils.identifiers import clamp_int, digits_only, normalize_cik

DEFAULT_LIMIT = 25
MAX_LIMIT = 100

_CIK_DIGITS = re.compile(r"^\d{4,10}$")
_TICKER = re.compile(r"^[A-Z.]{1,6}$")


class DocumentLister:
    """Lists filings newest first, accepting a CIK, ticker or company name as the cik filter."""

    def __init__(self, session: AsyncSession):
        self.documents = DocumentRepository(session)
        self.entities = EntityRepository(session)

    async def resolve_cik(self, value: str) -> Optional[str]:
        """CIK digits as-is, else a company's CIK by ticker, else by name containment."""
        raw = (value or "").strip()
        if not raw:
            return None

        digits = digits_only(raw)
        if _CIK_DIGITS.match(digits):
            return normalize_cik(digits)

        ticker = raw.upper()
        if _TICKER.match(ticker):
            cik = await self.entities.resolve_cik_by_ticker(ticker)
            if cik:
                return normalize_cik(cik)

        cik = await self.entities.resolve_cik_by_name(raw)
        if cik:
            return normalize_cik(cik)
        return None

    async def list_documents(
        self,
        cik: Optional[str] = None,
        doc_type: Optional[str] = None,
        accession_no: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> list[Document]:
        bounded = clamp_int(limit, DEFAULT_LIMIT, 1, MAX_LIMIT)

        cik_filter = None
        if cik and cik.strip():
            # Unresolvable names stay as given and match nothing
            cik_filter = await self.resolve_cik(cik) or normalize_cik(cik)

        return await self.documents.list_documents(
            cik=cik_filter,
            doc_type=doc_type or None,
            accession_no=(accession_no or "").strip() or None,
            limit=bounded,
        )
