from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy import select
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from factgraph.core.exceptions import UpstreamError
from factgraph.database.models import ChunkEmbedding
from factgraph.utils.logging import get_logger

LOGGER = get_logger(__name__)

PAYLOAD_FILTER_KEYS = ("cik", "doc_type", "accession_no", "document_id")


class PgVectorIndex:
    """Vector index over the `chunk_embeddings` table.

    Points carry a JSONB payload (chunk_id, document_id, cik, doc_type,
    accession_no, filing_date, chunk_index) that search filters match on
    exactly. Scores are cosine similarity, `1 - cosine_distance`.

    The index opens its own sessions so a vector failure never touches the
    caller's fact-store transaction.
    """

    def __init__(self, session_maker: async_sessionmaker[AsyncSession], model_name: Optional[str] = None):
        self.session_maker = session_maker
        self.model_name = model_name

    async def upsert(self, points: Sequence[Dict[str, Any]]) -> int:
        """Upsert points shaped {id, vector, payload}. Returns points written."""
        if not points:
            return 0

        rows = [
            {
                "id": str(p["id"]),
                "embedding": list(p["vector"]),
                "payload": dict(p.get("payload") or {}),
                "embedding_model": self.model_name,
            }
            for p in points
        ]
        stmt = insert(ChunkEmbedding).values(rows)
        stmt = stmt.on_conflict_do_update(
            index_elements=[ChunkEmbedding.id],
            set_={
                "embedding": stmt.excluded.embedding,
                "payload": stmt.excluded.payload,
                "embedding_model": stmt.excluded.embedding_model,
            },
        )

        try:
            async with self.session_maker() as session:
                await session.execute(stmt)
                await session.commit()
        except Exception as e:
            LOGGER.error("Vector upsert failed", exc_info=True, extra={"points": len(rows)})
            raise UpstreamError(f"Vector upsert failed: {e}", original_error=e) from e

        return len(rows)

    async def search(
        self,
        vector: List[float],
        filters: Optional[Dict[str, str]] = None,
        top_k: int = 10,
    ) -> List[Dict[str, Any]]:
        """Nearest points by cosine distance, restricted by exact payload matches.

        Returns:
            [{id, score, payload}] best first
        """
        distance = ChunkEmbedding.embedding.cosine_distance(vector)
        query = select(ChunkEmbedding.id, ChunkEmbedding.payload, distance.label("distance"))

        for key, value in (filters or {}).items():
            if key not in PAYLOAD_FILTER_KEYS:
                LOGGER.warning(f"Ignoring unsupported vector filter key: {key}")
                continue
            query = query.where(ChunkEmbedding.payload[key].astext == str(value))

        query = query.order_by(distance).limit(top_k)

        try:
            async with self.session_maker() as session:
                result = await session.execute(query)
                rows = result.all()
        except Exception as e:
            LOGGER.error("Vector search failed", exc_info=True, extra={"filters": filters})
            raise UpstreamError(f"Vector search failed: {e}", original_error=e) from e

        return [
            {"id": row.id, "score": 1.0 - float(row.distance), "payload": row.payload or {}}
            for row in rows
        ]
