"""Semantic chunk search with progressive filter broadening."""

from typing import Dict, List, Optional

from factgraph.repositories.vector_index import PgVectorIndex
from factgraph.schemas.retrieval import VectorHit, VectorSearchFilters, VectorSearchResult
from factgraph.services.embeddings.sentence_transformer import SentenceTransformerEmbedder
from factgraph.utils.identifiers import clamp_int, normalize_cik
from factgraph.utils.logging import get_logger

LOGGER = get_logger(__name__)

DEFAULT_TOP_K = 10
MAX_TOP_K = 50


def build_filter_attempts(filters: Optional[VectorSearchFilters]) -> List[Dict[str, str]]:
    """Filter sets to try in order, most specific first, duplicates removed.

    [cik, doc_type, accession_no] -> [cik, doc_type] -> [cik] -> []
    """
    filters = filters or VectorSearchFilters()

    cik = normalize_cik(filters.cik) if filters.cik and filters.cik.strip() else ""
    doc_type = filters.doc_type or ""
    accession_no = (filters.accession_no or "").strip()

    base = {}
    if cik:
        base["cik"] = cik
    with_doc_type = dict(base)
    if doc_type:
        with_doc_type["doc_type"] = doc_type
    full = dict(with_doc_type)
    if accession_no:
        full["accession_no"] = accession_no

    attempts: List[Dict[str, str]] = []
    seen = set()
    for attempt in (full, with_doc_type, base, {}):
        key = tuple(sorted(attempt.items()))
        if key in seen:
            continue
        seen.add(key)
        attempts.append(attempt)
    return attempts


def to_hit(point: dict) -> VectorHit:
    payload = point.get("payload") or {}
    return VectorHit(
        score=float(point["score"]),
        chunk_id=str(payload.get("chunk_id") or point["id"]),
        document_id=str(payload.get("document_id") or ""),
        payload=payload,
    )


class VectorSearchService:
    """Embeds the query once, then searches with broader filters until something matches."""

    def __init__(self, embedder: SentenceTransformerEmbedder, index: PgVectorIndex):
        self.embedder = embedder
        self.index = index

    async def search(
        self,
        query: str,
        top_k: Optional[int] = None,
        filters: Optional[VectorSearchFilters] = None,
        broaden: bool = True,
    ) -> VectorSearchResult:
        """Search chunks semantically.

        With `broaden=False` only the most specific filter set is tried.

        Raises:
            UpstreamError: embedding or vector search failed
        """
        q = (query or "").strip()
        if not q:
            return VectorSearchResult(model=self.embedder.model_name)

        limit = clamp_int(top_k, DEFAULT_TOP_K, 1, MAX_TOP_K)
        vector = await self.embedder.embed_query(q)

        attempts = build_filter_attempts(filters)
        if not broaden:
            attempts = attempts[:1]

        hits: List[VectorHit] = []
        matched: Optional[Dict[str, str]] = None
        tried = 0
        for attempt in attempts:
            tried += 1
            points = await self.index.search(vector, attempt, limit)
            hits = [to_hit(p) for p in points]
            if hits:
                matched = attempt
                break

        if tried > 1:
            LOGGER.info(
                "Vector search broadened filters",
                extra={"attempts": tried, "matched_filters": matched, "hits": len(hits)}
            )

        return VectorSearchResult(
            model=self.embedder.model_name,
            hits=hits,
            matched_filters=matched,
            attempts=tried,
        )
