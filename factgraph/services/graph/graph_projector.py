"""Graph projection of the fact store.

Every write here is a MERGE keyed by a fact-store id (entityId, documentId,
chunkId, assertionId), so any call can be replayed after a partial failure
without creating duplicates.
"""

from collections import defaultdict
from typing import Any, Dict, List, Sequence

from factgraph.core.exceptions import ValidationError
from factgraph.core.neo4j_client import Neo4jClient
from factgraph.services.graph.constants import (
    CLOSE_ASSERTION_EDGES_QUERY,
    ENTITY_TYPE_LABELS,
    RELATIONSHIP_TYPE_PATTERN,
    UPSERT_ASSERTION_EDGES_QUERY,
    UPSERT_CHUNKS_QUERY,
    UPSERT_ENTITIES_QUERY,
    UPSERT_FILING_QUERY,
    UPSERT_MENTIONS_QUERY,
)
from factgraph.utils.logging import get_logger

LOGGER = get_logger(__name__)


def _iso(value: Any) -> str:
    return value.isoformat() if hasattr(value, "isoformat") else str(value)


def label_for_entity_type(entity_type: str) -> str:
    return ENTITY_TYPE_LABELS.get(entity_type, "Entity")


def relationship_type(predicate: str) -> str:
    """Validate a predicate for use as a Cypher relationship type."""
    if not predicate or not RELATIONSHIP_TYPE_PATTERN.match(predicate):
        raise ValidationError(f"Predicate cannot be projected as a relationship type: {predicate!r}")
    return predicate


def assertion_edge_row(assertion: Any) -> Dict[str, Any]:
    """Projection row for an Assertion record."""
    return {
        "assertionId": assertion.id,
        "predicate": assertion.predicate,
        "subjectEntityId": assertion.subject_entity_id,
        "objectEntityId": assertion.object_entity_id,
        "confidence": assertion.confidence,
        "sourceDocumentId": assertion.source_document_id,
        "sourceChunkId": assertion.source_chunk_id,
        "validFrom": assertion.valid_from,
        "validTo": assertion.valid_to,
        "status": assertion.status,
    }


class GraphProjector:
    """Writes entities, filings, chunks, mentions and assertion edges to Neo4j."""

    def __init__(self, neo4j_client: Neo4jClient):
        self.neo4j_client = neo4j_client

    async def ensure_schema(self) -> None:
        await self.neo4j_client.ensure_constraints()

    async def upsert_entities(self, rows: Sequence[Dict[str, Any]]) -> int:
        """MERGE entity nodes by entityId, overwriting name and type.

        Args:
            rows: [{id, type, name}]
        """
        if not rows:
            return 0

        by_label: Dict[str, List[Dict[str, Any]]] = defaultdict(list)
        for row in rows:
            by_label[label_for_entity_type(row["type"])].append(
                {"id": str(row["id"]), "type": row["type"], "name": row["name"]}
            )

        for label, group in by_label.items():
            await self.neo4j_client.execute_write_query(
                UPSERT_ENTITIES_QUERY.format(label=label), {"rows": group}
            )

        LOGGER.info(
            f"Upserted {len(rows)} entity nodes",
            extra={"labels": sorted(by_label.keys())}
        )
        return len(rows)

    async def upsert_filing_and_chunks(
        self, filing: Dict[str, Any], chunks: Sequence[Dict[str, Any]]
    ) -> int:
        """MERGE the Filing node, its Chunk nodes and HAS_CHUNK edges.

        Args:
            filing: {documentId, cik, accessionNo, docType, filingDate}
            chunks: [{id, documentId, chunkIndex}]
        """
        filing_params = {
            "documentId": str(filing["documentId"]),
            "cik": filing["cik"],
            "accessionNo": filing["accessionNo"],
            "docType": filing["docType"],
            "filingDate": _iso(filing["filingDate"]),
        }
        await self.neo4j_client.execute_write_query(UPSERT_FILING_QUERY, {"filing": filing_params})

        if chunks:
            rows = [
                {
                    "id": str(c["id"]),
                    "documentId": str(c["documentId"]),
                    "chunkIndex": int(c["chunkIndex"]),
                }
                for c in chunks
            ]
            await self.neo4j_client.execute_write_query(
                UPSERT_CHUNKS_QUERY, {"documentId": filing_params["documentId"], "rows": rows}
            )

        return len(chunks)

    async def upsert_mentions(self, rows: Sequence[Dict[str, Any]]) -> int:
        """MERGE one unversioned MENTIONS edge per (chunk, entity).

        Args:
            rows: [{chunkId, entityId, confidence, sourceDocumentId, validFrom}]
        """
        if not rows:
            return 0

        params = [
            {
                "chunkId": str(r["chunkId"]),
                "entityId": str(r["entityId"]),
                "confidence": float(r["confidence"]),
                "sourceDocumentId": str(r["sourceDocumentId"]),
                "validFrom": _iso(r["validFrom"]),
            }
            for r in rows
        ]
        await self.neo4j_client.execute_write_query(UPSERT_MENTIONS_QUERY, {"rows": params})
        return len(params)

    async def upsert_assertion_edges(self, rows: Sequence[Dict[str, Any]]) -> int:
        """MERGE one edge per assertion, keyed by assertionId within its predicate type.

        Rows without an object entity (literal-valued assertions) have no edge
        to project and are skipped.

        Args:
            rows: [{assertionId, predicate, subjectEntityId, objectEntityId,
                    confidence, sourceDocumentId, sourceChunkId, validFrom,
                    validTo, status}]

        Returns:
            Number of edges matched or created
        """
        by_type: Dict[str, List[Dict[str, Any]]] = defaultdict(list)
        for r in rows:
            if not r.get("objectEntityId"):
                LOGGER.debug(
                    "Skipping literal-valued assertion for graph projection",
                    extra={"assertion_id": str(r.get("assertionId"))}
                )
                continue
            by_type[relationship_type(r["predicate"])].append(
                {
                    "assertionId": str(r["assertionId"]),
                    "subjectEntityId": str(r["subjectEntityId"]),
                    "objectEntityId": str(r["objectEntityId"]),
                    "confidence": float(r["confidence"]),
                    "sourceDocumentId": str(r["sourceDocumentId"]),
                    "sourceChunkId": str(r["sourceChunkId"]) if r.get("sourceChunkId") else "",
                    "validFrom": _iso(r["validFrom"]),
                    "validTo": _iso(r["validTo"]) if r.get("validTo") else None,
                    "status": r.get("status") or "active",
                }
            )

        upserted = 0
        for rel_type, group in by_type.items():
            records = await self.neo4j_client.run_query(
                UPSERT_ASSERTION_EDGES_QUERY.format(rel_type=rel_type), {"rows": group}
            )
            upserted += int(records[0]["upserted"]) if records else 0

        if by_type:
            LOGGER.info(
                f"Upserted {upserted} assertion edges",
                extra={"types": sorted(by_type.keys())}
            )
        return upserted

    async def close_assertion_edges(
        self, assertion_ids: Sequence[str], status: str, valid_to: Any
    ) -> int:
        """Mirror a closed assertion onto whatever edge carries its assertionId.

        Zero is a valid answer: the edge may not have been projected yet.
        """
        if not assertion_ids:
            return 0

        records = await self.neo4j_client.run_query(
            CLOSE_ASSERTION_EDGES_QUERY,
            {"ids": [str(i) for i in assertion_ids], "status": status, "validTo": _iso(valid_to)},
        )
        updated = int(records[0]["updated"]) if records else 0

        LOGGER.info(
            f"Closed {updated} assertion edges",
            extra={"assertion_ids": [str(i) for i in assertion_ids], "status": status}
        )
        return updated
